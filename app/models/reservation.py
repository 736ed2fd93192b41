from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import CheckConstraint, Column, Enum as SAEnum
from sqlmodel import Field, Relationship, SQLModel

class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class ContactMethod(str, Enum):
    WEB = "web"
    WHATSAPP = "whatsapp"
    PHONE = "phone"
    EMAIL = "email"

class ReservationItem(SQLModel, table=True):
    __tablename__ = "reservation_item"
    __table_args__ = (
        CheckConstraint("(product_id IS NULL) <> (pack_id IS NULL)", name="ck_reservation_item_one_item"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    reservation_id: int = Field(foreign_key="reservation.id", index=True)
    product_id: Optional[int] = Field(default=None, foreign_key="product.id")
    pack_id: Optional[int] = Field(default=None, foreign_key="pack.id")

    # Frozen at creation; never recomputed from the live price
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(max_digits=10, decimal_places=2)
    subtotal: Decimal = Field(max_digits=12, decimal_places=2)

    created_at: datetime = Field(default_factory=datetime.utcnow)

class Reservation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_profile_id: int = Field(foreign_key="profile.id", index=True)
    consultant_id: Optional[int] = Field(default=None, foreign_key="consultant.id", index=True)

    # Lifecycle
    status: ReservationStatus = Field(
        default=ReservationStatus.PENDING,
        sa_column=Column(
            SAEnum(ReservationStatus, values_callable=lambda x: [e.value for e in x]),
            nullable=False,
            index=True,
        ),
    )
    version: int = Field(default=1)  # bumped on every status change

    # Details
    total_amount: Decimal = Field(max_digits=12, decimal_places=2)
    notes: Optional[str] = None
    contact_method: ContactMethod = Field(default=ContactMethod.WEB)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    items: List["ReservationItem"] = Relationship(sa_relationship_kwargs={"cascade": "all, delete-orphan"})
