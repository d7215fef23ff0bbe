from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rental_management.errors import InsufficientStock, InvalidQuantity, ProductNotFound
from rental_management.models.rental_models import Product


STOCK_LOGGER = logging.getLogger("rental_management.stock")


def _current_stock(db: Session, product_id: int) -> int | None:
    return db.execute(select(Product.Stock).where(Product.ProductID == product_id)).scalar()


def _expire_cached_stock(db: Session, product_id: int) -> None:
    product = db.get(Product, product_id)
    if product is not None:
        db.expire(product, ["Stock"])


def reserve(db: Session, product_id: int, quantity: int) -> int:
    """Take ``quantity`` units of a product out of stock.

    The check and the decrement are a single conditional UPDATE, so two
    callers racing on the same product cannot both succeed past the
    available stock. Returns the stock left after the reservation.
    """
    if quantity <= 0:
        raise InvalidQuantity("Reserved quantity must be greater than zero.", field="rentedAmount")

    result = db.execute(
        update(Product)
        .where(Product.ProductID == product_id)
        .where(Product.Stock >= quantity)
        .values(Stock=Product.Stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = _current_stock(db, product_id)
        if available is None:
            raise ProductNotFound(f"Product not found: {product_id}", entity=product_id)
        STOCK_LOGGER.warning(
            "Reserve rejected product_id=%s requested=%s available=%s",
            product_id,
            quantity,
            available,
        )
        raise InsufficientStock(
            f"Insufficient stock for product {product_id}. Available: {available}",
            field="rentedAmount",
            entity=product_id,
        )

    _expire_cached_stock(db, product_id)
    remaining = _current_stock(db, product_id)
    STOCK_LOGGER.info("Reserved product_id=%s quantity=%s stock=%s", product_id, quantity, remaining)
    return int(remaining)


def release(db: Session, product_id: int, quantity: int) -> int | None:
    if quantity <= 0:
        return _current_stock(db, product_id)

    result = db.execute(
        update(Product)
        .where(Product.ProductID == product_id)
        .values(Stock=Product.Stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        STOCK_LOGGER.warning("Release skipped product_id=%s quantity=%s reason=product_missing", product_id, quantity)
        return None

    _expire_cached_stock(db, product_id)
    restored = _current_stock(db, product_id)
    STOCK_LOGGER.info("Released product_id=%s quantity=%s stock=%s", product_id, quantity, restored)
    return int(restored)
