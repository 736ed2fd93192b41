import logging
import threading
from typing import Callable, ContextManager, List, Optional
from sqlmodel import Session

from app.models.notification import Notification
from app.services.notification import NotificationEvent, NotificationFeed, NotificationService, feed as default_feed

logger = logging.getLogger(__name__)


class NotificationInbox:
    """
    Consumer-side view of one recipient's notifications.

    Keeps the recent list and an unread counter. Any feed event triggers a
    full re-fetch, so several inserts announced together cost one reload. The
    counter is adjusted optimistically on mark/delete and only recomputed from
    the store on the next reload.
    """

    def __init__(
        self,
        session_factory: Callable[[], ContextManager[Session]],
        profile_id: int,
        feed: NotificationFeed = default_feed,
        limit: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.profile_id = profile_id
        self.feed = feed
        self.limit = limit
        self.notifications: List[Notification] = []
        self.unread_count = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.RLock()

    def start(self) -> "NotificationInbox":
        self.reload()
        if self._unsubscribe is None:
            self._unsubscribe = self.feed.subscribe(self.profile_id, self._on_event)
        return self

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def reload(self) -> None:
        with self._lock:
            with self.session_factory() as session:
                notifications = NotificationService(session).list_recent(self.profile_id, self.limit)
                # Detach from the session so the list stays readable after it closes
                for notification in notifications:
                    session.expunge(notification)
            self.notifications = list(notifications)
            self.unread_count = sum(1 for n in self.notifications if not n.is_read)

    def mark_read(self, notification_id: int) -> None:
        with self.session_factory() as session:
            NotificationService(session).mark_read(self.profile_id, notification_id)

        with self._lock:
            local = self._find(notification_id)
            if local is not None and not local.is_read:
                local.is_read = True
                self.unread_count = max(0, self.unread_count - 1)

    def mark_all_read(self) -> None:
        with self.session_factory() as session:
            NotificationService(session).mark_all_read(self.profile_id)

        with self._lock:
            for notification in self.notifications:
                notification.is_read = True
            self.unread_count = 0

    def delete(self, notification_id: int) -> None:
        with self.session_factory() as session:
            NotificationService(session).delete(self.profile_id, notification_id)

        with self._lock:
            local = self._find(notification_id)
            if local is not None:
                self.notifications.remove(local)
                if not local.is_read:
                    self.unread_count = max(0, self.unread_count - 1)

    def _find(self, notification_id: int) -> Optional[Notification]:
        return next((n for n in self.notifications if n.id == notification_id), None)

    def _on_event(self, notification_event: NotificationEvent) -> None:
        logger.debug(f"Inbox {self.profile_id} reloading after notification {notification_event.notification_id}")
        self.reload()
