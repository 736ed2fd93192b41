import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, select
from pydantic import BaseModel, Field

from app.core.exceptions import InvalidRequest, NotFound
from app.db.session import get_session
from app.models.consultant import Consultant
from app.models.notification import NotificationKind, NotificationType
from app.models.product import Pack, Product
from app.models.profile import Profile
from app.models.reservation import ReservationStatus
from app.routers.auth import get_current_admin
from app.routers.notifications import NotificationResponse, get_notification_service
from app.routers.reservations import ReservationResponse, get_reservation_service, to_response
from app.services.notification import NotificationService
from app.services.reservation import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter()

# Pydantic models for requests/responses
class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus
    notes: Optional[str] = None
    expected_version: Optional[int] = None

class ReservationPage(BaseModel):
    reservations: List[ReservationResponse]
    total: int
    page: int
    pages: int

class ReconcileResult(BaseModel):
    deleted: List[int]

class ProductCreate(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    current_price: Decimal = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    is_active: bool = True

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    current_price: Optional[Decimal] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

class PackCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    is_active: bool = True

class ConsultantCreate(BaseModel):
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    user_profile_id: Optional[int] = None

class ConsultantUpdate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None

class NotificationCreate(BaseModel):
    user_profile_id: int
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    kind: NotificationKind = NotificationKind.GENERIC
    related_id: Optional[int] = None


# Reservation endpoints
@router.get("/reservations", response_model=ReservationPage)
def get_reservations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[ReservationStatus] = None,
    consultant_id: Optional[int] = None,
    user_profile_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    admin: Profile = Depends(get_current_admin),
    service: ReservationService = Depends(get_reservation_service)
):
    """Get all reservations with pagination and filters"""
    reservations, total = service.search(
        status=status,
        consultant_id=consultant_id,
        user_profile_id=user_profile_id,
        date_from=date_from,
        date_to=date_to,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return {
        "reservations": [to_response(r) for r in reservations],
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit
    }

@router.get("/reservations/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    admin: Profile = Depends(get_current_admin),
    service: ReservationService = Depends(get_reservation_service)
):
    reservation = service.get_reservation(reservation_id)
    return to_response(reservation, service.get_items(reservation.id))

@router.put("/reservations/{reservation_id}/status", response_model=ReservationResponse)
def update_reservation_status(
    reservation_id: int,
    status_update: ReservationStatusUpdate,
    admin: Profile = Depends(get_current_admin),
    service: ReservationService = Depends(get_reservation_service)
):
    """Move a reservation along the status table and notify its owner"""
    # notes only when sent; an explicit null clears them
    changes = status_update.model_dump(exclude_unset=True, include={"notes"})
    reservation = service.set_status(
        admin,
        reservation_id,
        status_update.status,
        expected_version=status_update.expected_version,
        **changes,
    )
    return to_response(reservation, service.get_items(reservation.id))

@router.post("/reservations/reconcile", response_model=ReconcileResult)
def reconcile_reservations(
    grace_seconds: Optional[int] = Query(None, ge=0),
    admin: Profile = Depends(get_current_admin),
    service: ReservationService = Depends(get_reservation_service)
):
    """Delete reservations that never received their items"""
    return {"deleted": service.reconcile_orphans(grace_seconds)}


# Catalog endpoints
@router.post("/products", response_model=Product, status_code=201)
def create_product(
    product_in: ProductCreate,
    admin: Profile = Depends(get_current_admin),
    session: Session = Depends(get_session)
):
    if session.exec(select(Product).where(Product.slug == product_in.slug)).first():
        raise InvalidRequest("Slug already in use", details={"slug": product_in.slug})

    product = Product(**product_in.model_dump())
    session.add(product)
    session.commit()
    session.refresh(product)
    logger.info(f"Product {product.id} created by admin {admin.id}")
    return product

@router.put("/products/{product_id}", response_model=Product)
def update_product(
    product_id: int,
    product_update: ProductUpdate,
    admin: Profile = Depends(get_current_admin),
    session: Session = Depends(get_session)
):
    """Update price, stock or visibility; existing cart lines keep their price"""
    product = session.get(Product, product_id)
    if not product:
        raise NotFound("Product not found", details={"product_id": product_id})

    for field, value in product_update.model_dump(exclude_unset=True).items():
        setattr(product, field, value)
    product.updated_at = datetime.utcnow()
    session.add(product)
    session.commit()
    session.refresh(product)
    return product

@router.post("/packs", response_model=Pack, status_code=201)
def create_pack(
    pack_in: PackCreate,
    admin: Profile = Depends(get_current_admin),
    session: Session = Depends(get_session)
):
    pack = Pack(**pack_in.model_dump())
    session.add(pack)
    session.commit()
    session.refresh(pack)
    return pack


# Consultant endpoints
@router.get("/consultants", response_model=List[Consultant])
def get_consultants(
    admin: Profile = Depends(get_current_admin),
    session: Session = Depends(get_session)
):
    return session.exec(select(Consultant).order_by(Consultant.full_name)).all()

@router.post("/consultants", response_model=Consultant, status_code=201)
def create_consultant(
    consultant_in: ConsultantCreate,
    admin: Profile = Depends(get_current_admin),
    session: Session = Depends(get_session)
):
    if consultant_in.user_profile_id is not None and not session.get(Profile, consultant_in.user_profile_id):
        raise NotFound("Profile not found", details={"user_profile_id": consultant_in.user_profile_id})

    consultant = Consultant(**consultant_in.model_dump())
    session.add(consultant)
    session.commit()
    session.refresh(consultant)
    return consultant

@router.put("/consultants/{consultant_id}", response_model=Consultant)
def update_consultant(
    consultant_id: int,
    consultant_update: ConsultantUpdate,
    admin: Profile = Depends(get_current_admin),
    session: Session = Depends(get_session)
):
    consultant = session.get(Consultant, consultant_id)
    if not consultant:
        raise NotFound("Consultant not found", details={"consultant_id": consultant_id})

    for field, value in consultant_update.model_dump(exclude_unset=True).items():
        setattr(consultant, field, value)
    consultant.updated_at = datetime.utcnow()
    session.add(consultant)
    session.commit()
    session.refresh(consultant)
    return consultant


# Notification endpoints
@router.post("/notifications", response_model=NotificationResponse, status_code=201)
def send_notification(
    notification_in: NotificationCreate,
    admin: Profile = Depends(get_current_admin),
    session: Session = Depends(get_session),
    service: NotificationService = Depends(get_notification_service)
):
    """Send a notification to one profile"""
    if not session.get(Profile, notification_in.user_profile_id):
        raise NotFound("Profile not found", details={"user_profile_id": notification_in.user_profile_id})

    return service.notify(
        notification_in.user_profile_id,
        notification_in.title,
        notification_in.message,
        notification_type=notification_in.type,
        kind=notification_in.kind,
        related_id=notification_in.related_id,
    )
