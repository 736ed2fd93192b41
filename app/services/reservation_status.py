"""
Reservation lifecycle rules.

pending -> confirmed/processing -> completed, and any non-terminal status ->
cancelled. ``processing`` is interchangeable with ``confirmed``; completed and
cancelled are terminal. Customers may only cancel their own reservation.
"""
from typing import Dict, FrozenSet

from app.core.exceptions import TransitionDenied
from app.models.reservation import ReservationStatus

PENDING = ReservationStatus.PENDING
CONFIRMED = ReservationStatus.CONFIRMED
PROCESSING = ReservationStatus.PROCESSING
COMPLETED = ReservationStatus.COMPLETED
CANCELLED = ReservationStatus.CANCELLED

TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    PENDING: frozenset({CONFIRMED, PROCESSING, CANCELLED}),
    CONFIRMED: frozenset({PROCESSING, COMPLETED, CANCELLED}),
    PROCESSING: frozenset({CONFIRMED, COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

CANCELLABLE: FrozenSet[ReservationStatus] = frozenset({PENDING, CONFIRMED, PROCESSING})


def is_terminal(status: ReservationStatus) -> bool:
    return not TRANSITIONS[status]


def check_admin_transition(
    current: ReservationStatus,
    requested: ReservationStatus,
    allow_override: bool = False,
) -> None:
    if current == requested or allow_override:
        return
    if requested not in TRANSITIONS[current]:
        raise TransitionDenied(
            f"Cannot change a {current.value} reservation to {requested.value}",
            current=current.value,
            requested=requested.value,
        )


def check_customer_transition(current: ReservationStatus, requested: ReservationStatus) -> None:
    if requested != CANCELLED:
        raise TransitionDenied(
            "Customers can only cancel a reservation",
            current=current.value,
            requested=requested.value,
        )
    if current not in CANCELLABLE:
        raise TransitionDenied(
            f"A {current.value} reservation can no longer be cancelled",
            current=current.value,
            requested=requested.value,
        )
