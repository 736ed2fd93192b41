import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from sqlalchemy import event, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as OrmSession
from sqlmodel import Session, select

from app.core.config import settings
from app.core.exceptions import NotFound, PersistenceFailure
from app.models.notification import Notification, NotificationKind, NotificationType
from app.models.profile import Profile, ProfileRole

logger = logging.getLogger(__name__)

_PENDING_EVENTS = "pending_notification_events"


@dataclass(frozen=True)
class NotificationEvent:
    """Change-feed payload for one committed notification insert."""
    notification_id: int
    user_profile_id: int
    kind: NotificationKind
    related_id: Optional[int] = None
    event: str = "INSERT"
    table: str = "notification"


class NotificationFeed:
    """
    In-process change feed keyed by recipient.

    Callbacks run on whichever thread committed the insert, so they must be
    quick and thread-safe. Delivery is at-least-once from the consumer's point
    of view: a consumer should re-fetch instead of counting events.
    """

    def __init__(self):
        self._subscribers: Dict[int, List[Callable[[NotificationEvent], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, profile_id: int, callback: Callable[[NotificationEvent], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers[profile_id].append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(profile_id)
                if callbacks and callback in callbacks:
                    callbacks.remove(callback)
                    if not callbacks:
                        del self._subscribers[profile_id]

        return unsubscribe

    def subscriber_count(self, profile_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(profile_id, ()))

    def publish(self, notification_event: NotificationEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(notification_event.user_profile_id, ()))

        for callback in callbacks:
            try:
                callback(notification_event)
            except Exception:
                logger.error(
                    f"Notification subscriber failed for profile {notification_event.user_profile_id}",
                    exc_info=True,
                )


feed = NotificationFeed()


@event.listens_for(OrmSession, "after_commit")
def _publish_committed(session):
    for pending in session.info.pop(_PENDING_EVENTS, []):
        feed.publish(pending)


@event.listens_for(OrmSession, "after_rollback")
def _discard_rolled_back(session):
    session.info.pop(_PENDING_EVENTS, None)


class NotificationService:
    def __init__(self, session: Session):
        self.session = session

    # =====================================================
    # FAN-OUT
    # =====================================================
    def notify(
        self,
        recipient_id: int,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
        kind: NotificationKind = NotificationKind.GENERIC,
        related_id: Optional[int] = None,
        commit: bool = True,
    ) -> Notification:
        """
        Append an unread notification for ``recipient_id``.

        With ``commit=False`` the row joins the caller's transaction and is
        announced on the feed only if that transaction commits.
        """
        notification = Notification(
            user_profile_id=recipient_id,
            title=title,
            message=message,
            type=notification_type,
            kind=kind,
            related_id=related_id,
            is_read=False,
        )
        self.session.add(notification)
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            self._fail("create notification", e)

        self.session.info.setdefault(_PENDING_EVENTS, []).append(
            NotificationEvent(
                notification_id=notification.id,
                user_profile_id=recipient_id,
                kind=kind,
                related_id=related_id,
            )
        )

        if commit:
            self._commit("create notification")
            self.session.refresh(notification)
        return notification

    def notify_admins(
        self,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.RESERVATION,
        kind: NotificationKind = NotificationKind.RESERVATION,
        related_id: Optional[int] = None,
        commit: bool = True,
    ) -> List[Notification]:
        admin_ids = self.session.exec(
            select(Profile.id).where(Profile.role == ProfileRole.ADMIN, Profile.is_active == True)  # noqa: E712
        ).all()
        created = [
            self.notify(admin_id, title, message, notification_type, kind, related_id, commit=False)
            for admin_id in admin_ids
        ]
        if commit and created:
            self._commit("notify administrators")
        return created

    # =====================================================
    # RECIPIENT QUERIES / COMMANDS
    # =====================================================
    def list_recent(self, profile_id: int, limit: Optional[int] = None) -> List[Notification]:
        page_size = settings.NOTIFICATION_PAGE_SIZE
        limit = min(limit or page_size, page_size)
        return self.session.exec(
            select(Notification)
            .where(Notification.user_profile_id == profile_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).all()

    def unread_count(self, profile_id: int) -> int:
        return self.session.exec(
            select(func.count(Notification.id)).where(
                Notification.user_profile_id == profile_id,
                Notification.is_read == False,  # noqa: E712
            )
        ).one()

    def mark_read(self, profile_id: int, notification_id: int) -> Notification:
        """Idempotent: marking an already read notification changes nothing."""
        notification = self._get_owned(profile_id, notification_id)
        if not notification.is_read:
            notification.is_read = True
            self.session.add(notification)
            self._commit("mark notification read")
            self.session.refresh(notification)
        return notification

    def mark_all_read(self, profile_id: int) -> int:
        result = self.session.exec(
            update(Notification)
            .where(
                Notification.user_profile_id == profile_id,
                Notification.is_read == False,  # noqa: E712
            )
            .values(is_read=True)
        )
        self._commit("mark notifications read")
        return result.rowcount

    def delete(self, profile_id: int, notification_id: int) -> None:
        notification = self._get_owned(profile_id, notification_id)
        self.session.delete(notification)
        self._commit("delete notification")

    def _get_owned(self, profile_id: int, notification_id: int) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.user_profile_id != profile_id:
            raise NotFound("Notification not found")
        return notification

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail(action, e)

    def _fail(self, action: str, error: Exception) -> None:
        self.session.rollback()
        logger.error(f"Failed to {action}: {error}", exc_info=True)
        raise PersistenceFailure(f"Could not {action}") from error
