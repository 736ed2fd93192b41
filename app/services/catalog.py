from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional
from sqlmodel import Session, select, or_
from app.models.product import Product, Pack


@dataclass(frozen=True)
class CatalogItem:
    """Availability and price of a product or pack at the moment it was read."""
    name: str
    price: Decimal
    stock: int
    is_active: bool
    product_id: Optional[int] = None
    pack_id: Optional[int] = None

    @property
    def is_available(self) -> bool:
        return self.is_active and self.stock > 0

    def can_supply(self, quantity: int) -> bool:
        return self.is_active and self.stock >= quantity


class CatalogService:
    """Read-only stock and price oracle."""

    def __init__(self, session: Session):
        self.session = session

    def get_item(self, product_id: Optional[int] = None, pack_id: Optional[int] = None) -> Optional[CatalogItem]:
        if (product_id is None) == (pack_id is None):
            raise ValueError("Exactly one of product_id or pack_id is required")

        if product_id is not None:
            product = self.session.get(Product, product_id)
            if not product:
                return None
            return CatalogItem(
                name=product.name,
                price=product.current_price,
                stock=product.stock,
                is_active=product.is_active,
                product_id=product.id,
            )

        pack = self.session.get(Pack, pack_id)
        if not pack:
            return None
        return CatalogItem(
            name=pack.name,
            price=pack.price,
            stock=pack.stock,
            is_active=pack.is_active,
            pack_id=pack.id,
        )

    def list_products(self, q: Optional[str] = None, include_inactive: bool = False) -> List[Product]:
        query = select(Product)
        if not include_inactive:
            query = query.where(Product.is_active == True)  # noqa: E712
        if q:
            query = query.where(
                or_(
                    Product.name.ilike(f"%{q}%"),
                    Product.description.ilike(f"%{q}%")
                )
            )
        return self.session.exec(query.order_by(Product.name)).all()

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.session.get(Product, product_id)

    def list_packs(self, include_inactive: bool = False) -> List[Pack]:
        query = select(Pack)
        if not include_inactive:
            query = query.where(Pack.is_active == True)  # noqa: E712
        return self.session.exec(query.order_by(Pack.name)).all()
