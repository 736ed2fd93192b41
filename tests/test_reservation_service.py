"""Tests for converting a cart into a reservation."""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.core.exceptions import EmptyCart, InvalidRequest, PersistenceFailure, StockChanged, Unauthenticated
from app.models import (
    ContactMethod,
    Notification,
    NotificationKind,
    NotificationType,
    Reservation,
    ReservationItem,
    ReservationStatus,
)
from app.services.cart import CartService
from app.services.notification import NotificationService
from app.services.reservation import ReservationService


def fill_cart(session, profile, *entries):
    cart = CartService(session)
    for kwargs in entries:
        cart.add_line(profile.id, **kwargs)
    return cart


class TestCreateFromCart:
    def test_copies_every_line_and_empties_cart(self, session, customer, oil, soap, pack):
        cart = fill_cart(
            session, customer,
            dict(product_id=oil.id, quantity=2),
            dict(product_id=soap.id, quantity=3),
            dict(pack_id=pack.id, quantity=1),
        )

        reservation, items = ReservationService(session).create_from_cart(customer.id, notes="after 5pm")

        assert reservation.status == ReservationStatus.PENDING
        assert reservation.version == 1
        assert reservation.notes == "after 5pm"
        assert reservation.contact_method == ContactMethod.WEB
        assert reservation.total_amount == Decimal("45.75")
        assert [(i.product_id, i.pack_id, i.quantity, i.subtotal) for i in items] == [
            (oil.id, None, 2, Decimal("20.00")),
            (soap.id, None, 3, Decimal("13.50")),
            (None, pack.id, 1, Decimal("12.25")),
        ]
        assert sum(i.subtotal for i in items) == reservation.total_amount
        assert cart.list_lines(customer.id) == []

    def test_uses_cart_price_not_live_price(self, session, customer, oil):
        fill_cart(session, customer, dict(product_id=oil.id, quantity=2))
        oil.current_price = Decimal("15.00")
        session.add(oil)
        session.commit()

        reservation, items = ReservationService(session).create_from_cart(customer.id)

        assert items[0].unit_price == Decimal("10.00")
        assert reservation.total_amount == Decimal("20.00")

    def test_total_has_no_float_drift(self, session, customer, oil):
        oil.current_price = Decimal("0.35")
        session.add(oil)
        session.commit()
        fill_cart(session, customer, dict(product_id=oil.id, quantity=3))

        reservation, _ = ReservationService(session).create_from_cart(customer.id)
        assert reservation.total_amount == Decimal("1.05")

    def test_with_consultant_and_contact_method(self, session, customer, oil, consultant):
        fill_cart(session, customer, dict(product_id=oil.id))

        reservation, _ = ReservationService(session).create_from_cart(
            customer.id, consultant_id=consultant.id, contact_method=ContactMethod.WHATSAPP
        )
        assert reservation.consultant_id == consultant.id
        assert reservation.contact_method == ContactMethod.WHATSAPP

    def test_inactive_consultant_rejected(self, session, customer, oil, consultant):
        consultant.is_active = False
        session.add(consultant)
        session.commit()
        cart = fill_cart(session, customer, dict(product_id=oil.id))

        with pytest.raises(InvalidRequest):
            ReservationService(session).create_from_cart(customer.id, consultant_id=consultant.id)
        assert len(cart.list_lines(customer.id)) == 1

    def test_empty_cart(self, session, customer):
        with pytest.raises(EmptyCart):
            ReservationService(session).create_from_cart(customer.id)
        assert session.exec(select(Reservation)).all() == []

    def test_cleared_cart_is_empty(self, session, customer, oil):
        fill_cart(session, customer, dict(product_id=oil.id)).clear(customer.id)
        with pytest.raises(EmptyCart):
            ReservationService(session).create_from_cart(customer.id)

    def test_anonymous_caller(self, session):
        with pytest.raises(Unauthenticated):
            ReservationService(session).create_from_cart(None)


class TestStockRevalidation:
    def test_stock_dropped_below_quantity(self, session, customer, oil, soap):
        cart = fill_cart(
            session, customer,
            dict(product_id=oil.id, quantity=3),
            dict(product_id=soap.id, quantity=1),
        )
        oil.stock = 2
        session.add(oil)
        session.commit()

        with pytest.raises(StockChanged) as exc_info:
            ReservationService(session).create_from_cart(customer.id)

        assert exc_info.value.product_ids == [oil.id]
        assert exc_info.value.pack_ids == []
        assert session.exec(select(Reservation)).all() == []
        assert [line.quantity for line in cart.list_lines(customer.id)] == [3, 1]

    def test_deactivated_item(self, session, customer, oil, pack):
        fill_cart(session, customer, dict(product_id=oil.id), dict(pack_id=pack.id))
        pack.is_active = False
        session.add(pack)
        session.commit()

        with pytest.raises(StockChanged) as exc_info:
            ReservationService(session).create_from_cart(customer.id)
        assert exc_info.value.pack_ids == [pack.id]
        assert exc_info.value.details["pack_ids"] == [pack.id]


class TestConversionNotifications:
    def test_customer_and_admins_notified(self, session, customer, admin, oil, feed_events):
        customer_events = feed_events(customer.id)
        admin_events = feed_events(admin.id)
        fill_cart(session, customer, dict(product_id=oil.id))

        reservation, _ = ReservationService(session).create_from_cart(customer.id)

        [mine] = NotificationService(session).list_recent(customer.id)
        assert mine.type == NotificationType.SUCCESS
        assert mine.kind == NotificationKind.RESERVATION
        assert mine.related_id == reservation.id
        assert not mine.is_read

        [theirs] = NotificationService(session).list_recent(admin.id)
        assert theirs.type == NotificationType.RESERVATION
        assert theirs.related_id == reservation.id

        assert [e.notification_id for e in customer_events] == [mine.id]
        assert [e.notification_id for e in admin_events] == [theirs.id]

    def test_failure_leaves_cart_untouched(self, session, customer, admin, oil, soap, feed_events, monkeypatch):
        customer_events = feed_events(customer.id)
        cart = fill_cart(
            session, customer,
            dict(product_id=oil.id, quantity=2),
            dict(product_id=soap.id, quantity=1),
        )

        def store_down(*args, **kwargs):
            raise SQLAlchemyError("store unavailable")

        monkeypatch.setattr(NotificationService, "notify_admins", store_down)

        with pytest.raises(PersistenceFailure):
            ReservationService(session).create_from_cart(customer.id)

        assert session.exec(select(Reservation)).all() == []
        assert session.exec(select(ReservationItem)).all() == []
        assert session.exec(select(Notification)).all() == []
        assert [line.quantity for line in cart.list_lines(customer.id)] == [2, 1]
        assert customer_events == []


class TestQueries:
    def test_list_for_profile_filters_by_owner_and_status(self, session, customer, other_customer, admin, oil):
        service = ReservationService(session)
        fill_cart(session, customer, dict(product_id=oil.id))
        first, _ = service.create_from_cart(customer.id)
        fill_cart(session, customer, dict(product_id=oil.id))
        second, _ = service.create_from_cart(customer.id)
        service.set_status(admin, first.id, ReservationStatus.CONFIRMED)

        assert {r.id for r in service.list_for_profile(customer.id)} == {first.id, second.id}
        assert [r.id for r in service.list_for_profile(customer.id, ReservationStatus.PENDING)] == [second.id]
        assert service.list_for_profile(other_customer.id) == []

    def test_search(self, session, customer, other_customer, admin, oil, consultant):
        service = ReservationService(session)
        fill_cart(session, customer, dict(product_id=oil.id))
        mine, _ = service.create_from_cart(customer.id, consultant_id=consultant.id)
        fill_cart(session, other_customer, dict(product_id=oil.id))
        theirs, _ = service.create_from_cart(other_customer.id)

        reservations, total = service.search()
        assert total == 2

        reservations, total = service.search(consultant_id=consultant.id)
        assert (total, [r.id for r in reservations]) == (1, [mine.id])

        reservations, total = service.search(user_profile_id=other_customer.id)
        assert [r.id for r in reservations] == [theirs.id]

        reservations, total = service.search(date_from=datetime.utcnow() + timedelta(days=1))
        assert (total, reservations) == (0, [])

        reservations, total = service.search(limit=1)
        assert total == 2
        assert len(reservations) == 1


class TestReconcileOrphans:
    def test_deletes_only_old_reservations_without_items(self, session, customer, oil):
        service = ReservationService(session)
        fill_cart(session, customer, dict(product_id=oil.id))
        complete, _ = service.create_from_cart(customer.id)

        old = datetime.utcnow() - timedelta(hours=1)
        complete.created_at = old
        stale_orphan = Reservation(
            user_profile_id=customer.id, total_amount=Decimal("10.00"), created_at=old, updated_at=old
        )
        fresh_orphan = Reservation(user_profile_id=customer.id, total_amount=Decimal("10.00"))
        session.add_all([complete, stale_orphan, fresh_orphan])
        session.commit()
        stale_id, fresh_id, complete_id = stale_orphan.id, fresh_orphan.id, complete.id

        assert service.reconcile_orphans(grace_seconds=300) == [stale_id]

        remaining = {r.id for r in session.exec(select(Reservation)).all()}
        assert remaining == {complete_id, fresh_id}

    def test_nothing_to_do(self, session):
        assert ReservationService(session).reconcile_orphans() == []
