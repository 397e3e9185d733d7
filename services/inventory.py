"""Inventory ledger: the only code that changes a product's stock counter.

Stock moves by signed deltas. A negative delta reserves units (they leave
the available pool), a positive one releases them back. The counter can
never go below zero: the pre-check gives a readable error, and the guarded
UPDATE re-checks at write time so two transactions that both passed the
pre-check against the same stale read cannot jointly over-allocate.
"""

from dataclasses import dataclass

from sqlalchemy import update

from core.logging import get_logger
from core.result import ErrorKind, Result
from models.productModels import Products
from services.transaction import DEFAULT_RETRIES, run_in_transaction
from services.validation import require_id, require_int

logger = get_logger(__name__)


@dataclass(frozen=True)
class StockLevel:
    product_id: int
    stock_quantity: int


def lock_product(session, product_id):
    """Load a product row fresh from the store, locked until the transaction ends.

    ``FOR UPDATE`` is emitted on backends that support it; SQLite ignores it
    and serializes writers instead.
    """
    return session.get(Products, product_id, with_for_update=True, populate_existing=True)


def insufficient_stock(available, requested):
    return Result.failure(
        ErrorKind.INSUFFICIENT_STOCK,
        f"Insufficient stock: {available} available, {requested} requested",
    )


def apply_delta(session, product_id, delta):
    """Add ``delta`` to the product's stock inside the caller's transaction.

    Returns the updated stock value. Does not commit.
    """
    product = lock_product(session, product_id)
    if product is None:
        return Result.failure(ErrorKind.NOT_FOUND, f"Product with ID {product_id} not found")

    current = product.stock_quantity
    if current + delta < 0:
        return insufficient_stock(current, -delta)

    if delta == 0:
        return Result.success(current)

    outcome = session.execute(
        update(Products)
        .where(Products.id == product_id, Products.stock_quantity + delta >= 0)
        .values(stock_quantity=Products.stock_quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        # another transaction took the stock between our read and our write
        session.refresh(product)
        logger.info(
            "stock_update_lost_race",
            product_id=product_id,
            delta=delta,
            stock_quantity=product.stock_quantity,
        )
        return insufficient_stock(product.stock_quantity, -delta)

    session.refresh(product)
    logger.debug(
        "stock_delta_applied",
        product_id=product_id,
        delta=delta,
        previous=current,
        stock_quantity=product.stock_quantity,
    )
    return Result.success(product.stock_quantity)


def _adjust_stock(session, product_id, delta):
    applied = apply_delta(session, product_id, delta)
    if not applied.ok:
        return applied
    return Result.success(StockLevel(product_id=product_id, stock_quantity=applied.value))


def adjust_stock(session, product_id, delta, retries=DEFAULT_RETRIES):
    """Apply a stock delta as a standalone transaction (restocks, corrections)."""
    invalid = require_id(product_id, "product_id") or require_int(delta, "delta")
    if invalid:
        return invalid

    result = run_in_transaction(session, _adjust_stock, product_id, delta, retries=retries)
    if result.ok:
        logger.info("stock_adjusted", product_id=product_id, delta=delta, stock_quantity=result.value.stock_quantity)
    return result
