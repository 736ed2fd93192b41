import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select, delete

from app.core.exceptions import (
    InvalidRequest,
    NotFound,
    PersistenceFailure,
    ProductUnavailable,
    Unauthenticated,
)
from app.core.money import sum_money
from app.models.cart import Cart, CartLine
from app.services.catalog import CatalogService

logger = logging.getLogger(__name__)


class CartService:
    """
    Server-held cart of one profile.

    Quantities are always clamped to the stock seen at the moment of the
    mutation; a line that would end up with quantity 0 is removed instead.
    """

    def __init__(self, session: Session):
        self.session = session
        self.catalog = CatalogService(session)

    # =====================================================
    # QUERIES
    # =====================================================
    def get_cart(self, profile_id: Optional[int]) -> Optional[Cart]:
        self._require_profile(profile_id)
        return self.session.exec(
            select(Cart).where(Cart.owner_profile_id == profile_id)
        ).first()

    def list_lines(self, profile_id: Optional[int]) -> List[CartLine]:
        cart = self.get_cart(profile_id)
        if not cart:
            return []
        return self.session.exec(
            select(CartLine).where(CartLine.cart_id == cart.id).order_by(CartLine.id)
        ).all()

    def total(self, profile_id: Optional[int]) -> Decimal:
        return sum_money(line.subtotal for line in self.list_lines(profile_id))

    # =====================================================
    # COMMANDS
    # =====================================================
    def get_or_create_cart(self, profile_id: Optional[int]) -> Cart:
        cart = self.get_cart(profile_id)
        if cart:
            return cart

        cart = Cart(owner_profile_id=profile_id)
        self.session.add(cart)
        try:
            self.session.commit()
        except IntegrityError:
            # Another request created it first
            self.session.rollback()
            cart = self.get_cart(profile_id)
            if cart:
                return cart
            raise PersistenceFailure("Could not create cart")
        except SQLAlchemyError as e:
            self._fail("create cart", e)

        self.session.refresh(cart)
        logger.info(f"Created cart {cart.id} for profile {profile_id}")
        return cart

    def add_line(
        self,
        profile_id: Optional[int],
        quantity: int = 1,
        product_id: Optional[int] = None,
        pack_id: Optional[int] = None,
    ) -> CartLine:
        """Add an item, or increase the quantity of its existing line, up to the stock ceiling."""
        self._require_profile(profile_id)

        if quantity < 1:
            raise InvalidRequest("Quantity must be at least 1")

        try:
            item = self.catalog.get_item(product_id=product_id, pack_id=pack_id)
        except ValueError as e:
            raise InvalidRequest(str(e))

        if item is None:
            raise NotFound("Product not found")

        if not item.is_available:
            logger.warning(f"Profile {profile_id} tried to add unavailable item {item.name!r}")
            raise ProductUnavailable(
                f"{item.name} is not available",
                product_id=product_id,
                pack_id=pack_id,
            )

        cart = self.get_or_create_cart(profile_id)
        line = self._find_line(cart.id, product_id, pack_id)

        if line:
            # Keep the original price snapshot; extra units beyond stock are dropped
            line.quantity = min(line.quantity + quantity, item.stock)
            line.updated_at = datetime.utcnow()
        else:
            line = CartLine(
                cart_id=cart.id,
                product_id=product_id,
                pack_id=pack_id,
                unit_price=item.price,
                quantity=min(quantity, item.stock),
            )
        line.stock_ceiling = item.stock
        cart.updated_at = datetime.utcnow()

        self.session.add(line)
        self.session.add(cart)
        self._commit("add line")
        self.session.refresh(line)

        logger.info(f"Cart {cart.id}: {item.name!r} now x{line.quantity}")
        return line

    def set_line_quantity(self, profile_id: Optional[int], line_id: int, quantity: int) -> Optional[CartLine]:
        """Returns the updated line, or None when the line was removed."""
        line = self._get_owned_line(profile_id, line_id)
        if not line:
            raise NotFound("Cart line not found")

        if quantity < 1:
            self._delete_line(line)
            return None

        item = self.catalog.get_item(product_id=line.product_id, pack_id=line.pack_id)
        if item is None or not item.is_active:
            raise ProductUnavailable(
                "Product is no longer available",
                product_id=line.product_id,
                pack_id=line.pack_id,
            )

        clamped = min(quantity, item.stock)
        if clamped < 1:
            self._delete_line(line)
            return None

        line.quantity = clamped
        line.stock_ceiling = item.stock
        line.updated_at = datetime.utcnow()
        self.session.add(line)
        self._commit("update line")
        self.session.refresh(line)
        return line

    def remove_line(self, profile_id: Optional[int], line_id: int) -> bool:
        """Idempotent; returns False when there was nothing to remove."""
        line = self._get_owned_line(profile_id, line_id)
        if not line:
            return False
        self._delete_line(line)
        return True

    def clear(self, profile_id: Optional[int]) -> int:
        """Remove every line of the cart; idempotent."""
        cart = self.get_cart(profile_id)
        if not cart:
            return 0

        result = self.session.exec(delete(CartLine).where(CartLine.cart_id == cart.id))
        self._commit("clear cart")
        if result.rowcount:
            logger.info(f"Cleared {result.rowcount} lines from cart {cart.id}")
        return result.rowcount

    # =====================================================
    # HELPERS
    # =====================================================
    def _require_profile(self, profile_id: Optional[int]) -> None:
        if profile_id is None:
            raise Unauthenticated()

    def _find_line(self, cart_id: int, product_id: Optional[int], pack_id: Optional[int]) -> Optional[CartLine]:
        query = select(CartLine).where(CartLine.cart_id == cart_id)
        if product_id is not None:
            query = query.where(CartLine.product_id == product_id)
        else:
            query = query.where(CartLine.pack_id == pack_id)
        return self.session.exec(query).first()

    def _get_owned_line(self, profile_id: Optional[int], line_id: int) -> Optional[CartLine]:
        self._require_profile(profile_id)
        return self.session.exec(
            select(CartLine)
            .join(Cart, Cart.id == CartLine.cart_id)
            .where(CartLine.id == line_id, Cart.owner_profile_id == profile_id)
        ).first()

    def _delete_line(self, line: CartLine) -> None:
        self.session.delete(line)
        self._commit("remove line")

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail(action, e)

    def _fail(self, action: str, error: Exception) -> None:
        self.session.rollback()
        logger.error(f"Cart store failed to {action}: {error}", exc_info=True)
        raise PersistenceFailure(f"Could not {action}") from error
