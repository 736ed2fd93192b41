from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session
from pydantic import BaseModel

from app.db.session import get_session
from app.models.profile import Profile
from app.models.reservation import ContactMethod, Reservation, ReservationItem, ReservationStatus
from app.routers.auth import get_current_profile
from app.services.reservation import ReservationService

router = APIRouter()

class ReservationCreate(BaseModel):
    consultant_id: Optional[int] = None
    notes: Optional[str] = None
    contact_method: ContactMethod = ContactMethod.WEB

class ReservationCancel(BaseModel):
    expected_version: Optional[int] = None

class ReservationItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    pack_id: Optional[int]
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

class ReservationResponse(BaseModel):
    id: int
    user_profile_id: int
    consultant_id: Optional[int]
    status: ReservationStatus
    total_amount: Decimal
    notes: Optional[str]
    contact_method: ContactMethod
    version: int
    created_at: datetime
    updated_at: datetime
    items: List[ReservationItemResponse] = []

def get_reservation_service(session: Session = Depends(get_session)) -> ReservationService:
    return ReservationService(session)

def to_response(reservation: Reservation, items: Optional[List[ReservationItem]] = None) -> ReservationResponse:
    return ReservationResponse(
        id=reservation.id,
        user_profile_id=reservation.user_profile_id,
        consultant_id=reservation.consultant_id,
        status=reservation.status,
        total_amount=reservation.total_amount,
        notes=reservation.notes,
        contact_method=reservation.contact_method,
        version=reservation.version,
        created_at=reservation.created_at,
        updated_at=reservation.updated_at,
        items=[
            ReservationItemResponse(
                id=item.id,
                product_id=item.product_id,
                pack_id=item.pack_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
            )
            for item in (items or [])
        ],
    )

@router.post("/", response_model=ReservationResponse, status_code=201)
def create_reservation(
    reservation_in: ReservationCreate,
    current_profile: Profile = Depends(get_current_profile),
    service: ReservationService = Depends(get_reservation_service)
):
    """Convert the current cart into a pending reservation"""
    reservation, items = service.create_from_cart(
        current_profile.id,
        consultant_id=reservation_in.consultant_id,
        notes=reservation_in.notes,
        contact_method=reservation_in.contact_method,
    )
    return to_response(reservation, items)

@router.get("/", response_model=List[ReservationResponse])
def list_reservations(
    status: Optional[ReservationStatus] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: ReservationService = Depends(get_reservation_service)
):
    return [to_response(r) for r in service.list_for_profile(current_profile.id, status)]

@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: ReservationService = Depends(get_reservation_service)
):
    reservation = service.get_owned(current_profile.id, reservation_id)
    return to_response(reservation, service.get_items(reservation.id))

@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    cancel_in: Optional[ReservationCancel] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: ReservationService = Depends(get_reservation_service)
):
    """Cancel one of the current profile's open reservations"""
    expected_version = cancel_in.expected_version if cancel_in else None
    reservation = service.cancel(current_profile, reservation_id, expected_version=expected_version)
    return to_response(reservation, service.get_items(reservation.id))
