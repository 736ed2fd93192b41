import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, delete

from app.core.config import settings
from app.core.exceptions import (
    ConcurrentModification,
    EmptyCart,
    InvalidRequest,
    NotFound,
    PersistenceFailure,
    ReservaError,
    StockChanged,
    Unauthenticated,
)
from app.core.money import to_money, sum_money
from app.models.cart import Cart, CartLine
from app.models.consultant import Consultant
from app.models.notification import NotificationKind, NotificationType
from app.models.profile import Profile
from app.models.reservation import ContactMethod, Reservation, ReservationItem, ReservationStatus
from app.services.catalog import CatalogService
from app.services.notification import NotificationService
from app.services import reservation_status

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    ReservationStatus.PENDING: "pending",
    ReservationStatus.CONFIRMED: "confirmed",
    ReservationStatus.PROCESSING: "being processed",
    ReservationStatus.COMPLETED: "completed",
    ReservationStatus.CANCELLED: "cancelled",
}

STATUS_NOTIFICATION_TYPES = {
    ReservationStatus.COMPLETED: NotificationType.SUCCESS,
    ReservationStatus.CANCELLED: NotificationType.WARNING,
}

# Default for set_status notes: leave the stored notes alone. None clears them.
NOTES_UNCHANGED = object()


class ReservationService:
    def __init__(self, session: Session):
        self.session = session
        self.catalog = CatalogService(session)
        self.notifications = NotificationService(session)

    # =====================================================
    # CART -> RESERVATION
    # =====================================================
    def create_from_cart(
        self,
        profile_id: Optional[int],
        consultant_id: Optional[int] = None,
        notes: Optional[str] = None,
        contact_method: ContactMethod = ContactMethod.WEB,
    ) -> Tuple[Reservation, List[ReservationItem]]:
        """
        Convert the profile's cart into a pending reservation.

        1. Re-validates every line against current stock (stale lines are not trusted)
        2. Totals the lines with their stored unit prices
        3. Inserts the reservation and one item per line
        4. Empties the cart and queues the notifications

        Steps 3 and 4 share one transaction: either the reservation exists with
        all of its items and the cart is empty, or nothing changed.
        """
        if profile_id is None:
            raise Unauthenticated()

        cart = self.session.exec(select(Cart).where(Cart.owner_profile_id == profile_id)).first()
        lines = []
        if cart:
            lines = self.session.exec(
                select(CartLine).where(CartLine.cart_id == cart.id).order_by(CartLine.id)
            ).all()
        if not lines:
            raise EmptyCart()

        self._validate_lines(lines)
        if consultant_id is not None:
            self._require_active_consultant(consultant_id)

        total = sum_money(line.unit_price * line.quantity for line in lines)

        try:
            now = datetime.utcnow()
            reservation = Reservation(
                user_profile_id=profile_id,
                consultant_id=consultant_id,
                status=ReservationStatus.PENDING,
                total_amount=total,
                notes=notes,
                contact_method=contact_method,
                created_at=now,
                updated_at=now,
            )
            self.session.add(reservation)
            self.session.flush()

            items = [
                ReservationItem(
                    reservation_id=reservation.id,
                    product_id=line.product_id,
                    pack_id=line.pack_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    subtotal=to_money(line.unit_price * line.quantity),
                )
                for line in lines
            ]
            self.session.add_all(items)
            self.session.flush()

            # Cart-clear is the commit point as seen by the customer
            self.session.exec(delete(CartLine).where(CartLine.cart_id == cart.id))

            self.notifications.notify(
                profile_id,
                "Reservation created",
                f"Your reservation #{reservation.id} was received. A consultant will contact you soon.",
                NotificationType.SUCCESS,
                NotificationKind.RESERVATION,
                reservation.id,
                commit=False,
            )
            self.notifications.notify_admins(
                "New reservation",
                f"Reservation #{reservation.id} for {total} is waiting for confirmation.",
                related_id=reservation.id,
                commit=False,
            )
            self.session.commit()
        except ReservaError:
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Reservation for profile {profile_id} failed: {e}", exc_info=True)
            raise PersistenceFailure("Could not create the reservation; your cart was not changed") from e

        self.session.refresh(reservation)
        items = self.get_items(reservation.id)
        logger.info(
            f"Reservation {reservation.id} created for profile {profile_id}: "
            f"{len(items)} items, total {reservation.total_amount}"
        )
        return reservation, items

    def _validate_lines(self, lines: List[CartLine]) -> None:
        bad_products, bad_packs = [], []
        for line in lines:
            item = self.catalog.get_item(product_id=line.product_id, pack_id=line.pack_id)
            if item is not None and item.can_supply(line.quantity):
                continue
            if line.product_id is not None:
                bad_products.append(line.product_id)
            else:
                bad_packs.append(line.pack_id)

        if bad_products or bad_packs:
            logger.warning(f"Stock changed for products {bad_products} packs {bad_packs}")
            raise StockChanged(
                "Some items are no longer available in the requested quantity",
                product_ids=bad_products,
                pack_ids=bad_packs,
            )

    def _require_active_consultant(self, consultant_id: int) -> Consultant:
        consultant = self.session.get(Consultant, consultant_id)
        if not consultant or not consultant.is_active:
            raise InvalidRequest("Consultant is not available", details={"consultant_id": consultant_id})
        return consultant

    # =====================================================
    # QUERIES
    # =====================================================
    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.session.get(Reservation, reservation_id)
        if not reservation:
            raise NotFound("Reservation not found")
        return reservation

    def get_owned(self, profile_id: int, reservation_id: int) -> Reservation:
        reservation = self.get_reservation(reservation_id)
        if reservation.user_profile_id != profile_id:
            raise NotFound("Reservation not found")
        return reservation

    def get_items(self, reservation_id: int) -> List[ReservationItem]:
        return self.session.exec(
            select(ReservationItem)
            .where(ReservationItem.reservation_id == reservation_id)
            .order_by(ReservationItem.id)
        ).all()

    def list_for_profile(self, profile_id: int, status: Optional[ReservationStatus] = None) -> List[Reservation]:
        query = select(Reservation).where(Reservation.user_profile_id == profile_id)
        if status:
            query = query.where(Reservation.status == status)
        return self.session.exec(query.order_by(Reservation.created_at.desc(), Reservation.id.desc())).all()

    def search(
        self,
        status: Optional[ReservationStatus] = None,
        consultant_id: Optional[int] = None,
        user_profile_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Reservation], int]:
        query = select(Reservation)
        if status:
            query = query.where(Reservation.status == status)
        if consultant_id:
            query = query.where(Reservation.consultant_id == consultant_id)
        if user_profile_id:
            query = query.where(Reservation.user_profile_id == user_profile_id)
        if date_from:
            query = query.where(Reservation.created_at >= date_from)
        if date_to:
            query = query.where(Reservation.created_at <= date_to)

        total = self.session.exec(
            select(func.count()).select_from(query.subquery())
        ).one()
        reservations = self.session.exec(
            query.order_by(Reservation.created_at.desc(), Reservation.id.desc()).offset(offset).limit(limit)
        ).all()
        return reservations, total

    # =====================================================
    # STATUS MACHINE
    # =====================================================
    def set_status(
        self,
        actor: Optional[Profile],
        reservation_id: int,
        new_status: ReservationStatus,
        notes: Any = NOTES_UNCHANGED,
        expected_version: Optional[int] = None,
    ) -> Reservation:
        """
        Change the status on behalf of ``actor``.

        Customers may only cancel their own reservation while it is still
        open; administrators follow the transition table unless the override
        setting is on. An administrator re-setting the current status is a
        no-op unless ``notes`` is given; ``notes=None`` clears them.
        ``expected_version`` makes the write conditional on nobody having
        changed the reservation since it was read.
        """
        if actor is None:
            raise Unauthenticated()

        reservation = self.get_reservation(reservation_id)
        if not actor.is_admin and reservation.user_profile_id != actor.id:
            raise NotFound("Reservation not found")

        if expected_version is not None and reservation.version != expected_version:
            raise ConcurrentModification(
                "Reservation was modified by someone else; reload and try again",
                details={"current_version": reservation.version},
            )

        current = reservation.status
        if actor.is_admin:
            reservation_status.check_admin_transition(
                current, new_status, allow_override=settings.RESERVATION_ADMIN_OVERRIDE
            )
        else:
            reservation_status.check_customer_transition(current, new_status)

        if current == new_status and notes is NOTES_UNCHANGED:
            return reservation

        values = {
            "status": new_status,
            "updated_at": datetime.utcnow(),
            "version": reservation.version + 1,
        }
        if notes is not NOTES_UNCHANGED:
            values["notes"] = notes

        try:
            result = self.session.exec(
                update(Reservation)
                .where(Reservation.id == reservation.id, Reservation.version == reservation.version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise ConcurrentModification("Reservation was modified by someone else; reload and try again")

            if current != new_status:
                self._notify_status_change(actor, reservation, new_status)
            self.session.commit()
        except ReservaError:
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Status change of reservation {reservation_id} failed: {e}", exc_info=True)
            raise PersistenceFailure("Could not update the reservation status") from e

        self.session.refresh(reservation)
        logger.info(
            f"Reservation {reservation.id}: {current.value} -> {new_status.value} "
            f"by {'admin' if actor.is_admin else 'customer'} {actor.id}"
        )
        return reservation

    def cancel(self, actor: Optional[Profile], reservation_id: int, expected_version: Optional[int] = None) -> Reservation:
        return self.set_status(actor, reservation_id, ReservationStatus.CANCELLED, expected_version=expected_version)

    def _notify_status_change(self, actor: Profile, reservation: Reservation, new_status: ReservationStatus) -> None:
        label = STATUS_LABELS[new_status]
        if actor.is_admin:
            self.notifications.notify(
                reservation.user_profile_id,
                "Reservation updated",
                f"Your reservation #{reservation.id} is now {label}.",
                STATUS_NOTIFICATION_TYPES.get(new_status, NotificationType.INFO),
                NotificationKind.RESERVATION,
                reservation.id,
                commit=False,
            )
        else:
            self.notifications.notify_admins(
                "Reservation cancelled",
                f"Reservation #{reservation.id} was cancelled by the customer.",
                NotificationType.WARNING,
                related_id=reservation.id,
                commit=False,
            )

    # =====================================================
    # RECONCILIATION
    # =====================================================
    def reconcile_orphans(self, grace_seconds: Optional[int] = None, now: Optional[datetime] = None) -> List[int]:
        """
        Delete reservations that have no items and are older than the grace period.

        Conversion is transactional, so orphans only come from outside writes
        or a store that lost part of a commit.
        """
        if grace_seconds is None:
            grace_seconds = settings.ORPHAN_GRACE_SECONDS
        cutoff = (now or datetime.utcnow()) - timedelta(seconds=grace_seconds)

        has_items = select(ReservationItem.id).where(ReservationItem.reservation_id == Reservation.id).exists()
        orphan_ids = self.session.exec(
            select(Reservation.id).where(Reservation.created_at < cutoff, ~has_items)
        ).all()

        if not orphan_ids:
            return []

        try:
            self.session.exec(delete(Reservation).where(Reservation.id.in_(orphan_ids)))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Orphan sweep failed: {e}", exc_info=True)
            raise PersistenceFailure("Could not delete orphan reservations") from e

        logger.info(f"Deleted {len(orphan_ids)} orphan reservations: {list(orphan_ids)}")
        return list(orphan_ids)
