from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Response
from sqlmodel import Session
from pydantic import BaseModel, Field, model_validator

from app.db.session import get_session
from app.models.cart import CartLine
from app.models.profile import Profile
from app.routers.auth import get_current_profile
from app.services.cart import CartService

router = APIRouter()

class CartLineCreate(BaseModel):
    product_id: Optional[int] = None
    pack_id: Optional[int] = None
    quantity: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def exactly_one_item(self):
        if (self.product_id is None) == (self.pack_id is None):
            raise ValueError("Provide either product_id or pack_id")
        return self

class CartLineUpdate(BaseModel):
    quantity: int

class CartLineResponse(BaseModel):
    id: int
    product_id: Optional[int]
    pack_id: Optional[int]
    unit_price: Decimal
    quantity: int
    stock_ceiling: int
    subtotal: Decimal

class CartResponse(BaseModel):
    cart_id: Optional[int]
    lines: List[CartLineResponse]
    total: Decimal

def get_cart_service(session: Session = Depends(get_session)) -> CartService:
    return CartService(session)

def to_line_response(line: CartLine) -> CartLineResponse:
    return CartLineResponse(
        id=line.id,
        product_id=line.product_id,
        pack_id=line.pack_id,
        unit_price=line.unit_price,
        quantity=line.quantity,
        stock_ceiling=line.stock_ceiling,
        subtotal=line.subtotal,
    )

def build_cart_response(service: CartService, profile_id: int) -> CartResponse:
    cart = service.get_cart(profile_id)
    lines = service.list_lines(profile_id)
    return CartResponse(
        cart_id=cart.id if cart else None,
        lines=[to_line_response(line) for line in lines],
        total=service.total(profile_id),
    )

@router.get("/", response_model=CartResponse)
def get_cart(current_profile: Profile = Depends(get_current_profile), service: CartService = Depends(get_cart_service)):
    """Get the current profile's cart"""
    return build_cart_response(service, current_profile.id)

@router.post("/lines", response_model=CartLineResponse, status_code=201)
def add_line(
    line_in: CartLineCreate,
    current_profile: Profile = Depends(get_current_profile),
    service: CartService = Depends(get_cart_service)
):
    """Add a product or pack, or increase the quantity of its line"""
    line = service.add_line(
        current_profile.id,
        quantity=line_in.quantity,
        product_id=line_in.product_id,
        pack_id=line_in.pack_id,
    )
    return to_line_response(line)

@router.put("/lines/{line_id}", response_model=CartResponse)
def update_line(
    line_id: int,
    line_update: CartLineUpdate,
    current_profile: Profile = Depends(get_current_profile),
    service: CartService = Depends(get_cart_service)
):
    """Set a line's quantity; 0 or less removes the line"""
    service.set_line_quantity(current_profile.id, line_id, line_update.quantity)
    return build_cart_response(service, current_profile.id)

@router.delete("/lines/{line_id}", status_code=204)
def remove_line(
    line_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: CartService = Depends(get_cart_service)
):
    service.remove_line(current_profile.id, line_id)
    return Response(status_code=204)

@router.delete("/", status_code=204)
def clear_cart(current_profile: Profile = Depends(get_current_profile), service: CartService = Depends(get_cart_service)):
    service.clear(current_profile.id)
    return Response(status_code=204)
