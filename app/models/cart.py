from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel

class Cart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # One cart per profile, created on first use
    owner_profile_id: int = Field(foreign_key="profile.id", unique=True, index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CartLine(SQLModel, table=True):
    __tablename__ = "cart_line"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_line_product"),
        UniqueConstraint("cart_id", "pack_id", name="uq_cart_line_pack"),
        CheckConstraint("(product_id IS NULL) <> (pack_id IS NULL)", name="ck_cart_line_one_item"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    # References
    cart_id: int = Field(foreign_key="cart.id", index=True)
    product_id: Optional[int] = Field(default=None, foreign_key="product.id")
    pack_id: Optional[int] = Field(default=None, foreign_key="pack.id")

    # Line Details
    unit_price: Decimal = Field(max_digits=10, decimal_places=2)  # snapshot at add time
    quantity: int = Field(default=1, ge=1)
    stock_ceiling: int = Field(default=0)  # stock seen at the last mutation, informational

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity
