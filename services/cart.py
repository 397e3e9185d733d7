"""Cart reservation service.

Every cart mutation moves stock through the inventory ledger in the same
transaction as the cart-item write: adding reserves units, lowering a
quantity or removing an item releases them. Each public function opens
exactly one transaction via ``run_in_transaction``; the operations it wraps
only read and write through the session they are given and never commit.

Callers pass the session explicitly and get a ``Result`` back carrying
either one of the records defined here or a ``Failure``.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy.orm.exc import StaleDataError

from core.logging import get_logger
from core.result import ErrorKind, Result
from models.cartModels import Cart, CartItem
from models.userModel import Users
from services.inventory import apply_delta, insufficient_stock, lock_product
from services.transaction import DEFAULT_RETRIES, run_in_transaction
from services.validation import require_id, require_positive_quantity

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    description: str
    price: float
    is_connected_only: bool
    stock_quantity: int


@dataclass(frozen=True)
class CartItemRecord:
    id: int
    cart_id: int
    product_id: int
    quantity: int
    product: Optional[ProductSnapshot] = None


@dataclass(frozen=True)
class CartRecord:
    id: Optional[int]
    user_id: int
    items: List[CartItemRecord] = field(default_factory=list)

    @property
    def total_quantity(self):
        return sum(item.quantity for item in self.items)

    @property
    def total_price(self):
        return sum(item.quantity * item.product.price for item in self.items if item.product)


@dataclass(frozen=True)
class ClearedCart:
    cart_id: int
    released_items: int
    message: str = "Cart cleared successfully"


def _snapshot(product):
    if product is None:
        return None
    return ProductSnapshot(
        id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        is_connected_only=product.is_connected_only,
        stock_quantity=product.stock_quantity,
    )


def _item_record(item, product=None):
    return CartItemRecord(
        id=item.id,
        cart_id=item.cart_id,
        product_id=item.product_id,
        quantity=item.quantity,
        product=_snapshot(product if product is not None else item.product),
    )


def _find_cart(session, user_id):
    return session.query(Cart).filter_by(user_id=user_id).first()


def _owned_item(session, user_id, item_id):
    """Load a cart item, locked, only if it sits in ``user_id``'s cart.

    The product row is locked before the item row, the order every cart
    operation takes its locks in.
    """
    cart = _find_cart(session, user_id)
    if cart is None:
        return Result.failure(ErrorKind.NOT_FOUND, "Cart not found")

    product_id = session.execute(
        select(CartItem.product_id).where(CartItem.id == item_id, CartItem.cart_id == cart.id)
    ).scalar_one_or_none()
    if product_id is None:
        return Result.failure(ErrorKind.NOT_FOUND, "Cart item not found")
    lock_product(session, product_id)

    item = (
        session.query(CartItem)
        .filter_by(id=item_id, cart_id=cart.id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if item is None:
        return Result.failure(ErrorKind.NOT_FOUND, "Cart item not found")
    return Result.success(item)


# ---------------------------------------------------------------------------
# Operations (run inside the caller's transaction)
# ---------------------------------------------------------------------------
def add_item_op(session, user_id, product_id, quantity):
    product = lock_product(session, product_id)
    if product is None:
        return Result.failure(ErrorKind.NOT_FOUND, "Product not found")

    cart = _find_cart(session, user_id)
    if cart is None:
        if session.get(Users, user_id) is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")
        cart = Cart(user_id=user_id)
        session.add(cart)
        session.flush()

    existing = (
        session.query(CartItem)
        .filter_by(cart_id=cart.id, product_id=product_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    existing_qty = existing.quantity if existing else 0
    requested_total = existing_qty + quantity

    # What the item already holds is off the shelf, so only the new units
    # have to fit in the unreserved stock.
    if requested_total > product.stock_quantity + existing_qty:
        return insufficient_stock(product.stock_quantity, quantity)

    applied = apply_delta(session, product_id, -quantity)
    if not applied.ok:
        return applied

    if existing:
        existing.quantity = requested_total
        item = existing
    else:
        item = CartItem(cart_id=cart.id, product_id=product_id, quantity=requested_total)
        session.add(item)
    session.flush()

    logger.info(
        "stock_reserved",
        user_id=user_id,
        product_id=product_id,
        quantity=quantity,
        item_quantity=requested_total,
        stock_quantity=applied.value,
    )
    return Result.success(_item_record(item, product))


def update_item_op(session, user_id, item_id, new_quantity):
    found = _owned_item(session, user_id, item_id)
    if not found.ok:
        return found
    item = found.value

    diff = new_quantity - item.quantity
    if diff != 0:
        # growing reserves -diff units, shrinking releases |diff|
        applied = apply_delta(session, item.product_id, -diff)
        if not applied.ok:
            return applied
        logger.info(
            "reservation_adjusted",
            user_id=user_id,
            item_id=item_id,
            product_id=item.product_id,
            previous_quantity=item.quantity,
            quantity=new_quantity,
            stock_quantity=applied.value,
        )

    item.quantity = new_quantity
    session.flush()
    return Result.success(_item_record(item))


def remove_item_op(session, user_id, item_id):
    found = _owned_item(session, user_id, item_id)
    if not found.ok:
        return found
    item = found.value

    applied = apply_delta(session, item.product_id, item.quantity)
    if not applied.ok:
        return applied

    record = _item_record(item)
    session.delete(item)
    session.flush()

    logger.info(
        "stock_released",
        user_id=user_id,
        item_id=item_id,
        product_id=record.product_id,
        quantity=record.quantity,
        stock_quantity=applied.value,
    )
    return Result.success(record)


def release_cart(session, user_id):
    """Return every reserved unit in the user's cart and empty it.

    Runs inside the caller's transaction; ``clear_cart`` and account
    deletion both build on it.
    """
    cart = _find_cart(session, user_id)
    if cart is None:
        return Result.failure(ErrorKind.NOT_FOUND, "Cart not found")

    # products first, in id order, then the items: the order add_item_op locks in
    product_ids = session.execute(
        select(CartItem.product_id).where(CartItem.cart_id == cart.id).order_by(CartItem.product_id)
    ).scalars().all()
    for product_id in product_ids:
        lock_product(session, product_id)

    items = (
        session.query(CartItem)
        .filter_by(cart_id=cart.id)
        .order_by(CartItem.product_id)
        .with_for_update()
        .populate_existing()
        .all()
    )
    for item in items:
        applied = apply_delta(session, item.product_id, item.quantity)
        if not applied.ok:
            return applied

    if items:
        # only the rows, at the versions, whose quantities were just released
        deleted = (
            session.query(CartItem)
            .filter(
                CartItem.cart_id == cart.id,
                or_(*(and_(CartItem.id == item.id, CartItem.version == item.version) for item in items)),
            )
            .delete(synchronize_session=False)
        )
        if deleted != len(items):
            raise StaleDataError(
                f"Cart {cart.id} changed while being cleared: expected {len(items)} items, deleted {deleted}"
            )
    session.expire(cart)

    logger.info("cart_cleared", user_id=user_id, cart_id=cart.id, released_items=len(items))
    return Result.success(ClearedCart(cart_id=cart.id, released_items=len(items)))


def get_cart_op(session, user_id):
    cart = (
        session.query(Cart)
        .options(selectinload(Cart.cart_items).joinedload(CartItem.product))
        .filter_by(user_id=user_id)
        .first()
    )
    if cart is None:
        return Result.success(CartRecord(id=None, user_id=user_id))
    return Result.success(
        CartRecord(
            id=cart.id,
            user_id=cart.user_id,
            items=[_item_record(item) for item in cart.cart_items],
        )
    )


# ---------------------------------------------------------------------------
# Public API: one transaction per call
# ---------------------------------------------------------------------------
def add_item(session, user_id, product_id, quantity, retries=DEFAULT_RETRIES):
    """Reserve ``quantity`` units of a product in the user's cart.

    Creates the cart on first use and merges into an existing line for the
    same product.
    """
    invalid = (
        require_id(user_id, "user_id")
        or require_id(product_id, "product_id")
        or require_positive_quantity(quantity)
    )
    if invalid:
        return invalid
    return run_in_transaction(session, add_item_op, user_id, product_id, quantity, retries=retries)


def update_item(session, user_id, item_id, new_quantity, retries=DEFAULT_RETRIES):
    """Set a cart line to ``new_quantity``, reserving or releasing the difference.

    Zero is rejected; dropping a line goes through ``remove_item``.
    """
    invalid = (
        require_id(user_id, "user_id")
        or require_id(item_id, "item_id")
        or require_positive_quantity(new_quantity)
    )
    if invalid:
        return invalid
    return run_in_transaction(session, update_item_op, user_id, item_id, new_quantity, retries=retries)


def remove_item(session, user_id, item_id, retries=DEFAULT_RETRIES):
    """Delete a cart line and release its whole quantity."""
    invalid = require_id(user_id, "user_id") or require_id(item_id, "item_id")
    if invalid:
        return invalid
    return run_in_transaction(session, remove_item_op, user_id, item_id, retries=retries)


def clear_cart(session, user_id, retries=DEFAULT_RETRIES):
    invalid = require_id(user_id, "user_id")
    if invalid:
        return invalid
    return run_in_transaction(session, release_cart, user_id, retries=retries)


def get_cart(session, user_id, retries=DEFAULT_RETRIES):
    invalid = require_id(user_id, "user_id")
    if invalid:
        return invalid
    return run_in_transaction(session, get_cart_op, user_id, retries=retries)
