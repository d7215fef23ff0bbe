"""Order lifecycle: reservation, returns, cancellation and close-out.

Orders move ``on_rent`` -> ``returned_after_rent`` once every rented unit is
back, or ``on_rent`` -> ``cancelled`` when the remaining units are released
early. Each operation runs in one transaction on the session it is handed:
stock counters and order rows commit together or roll back together.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rental_management.errors import (
    ConcurrentModification,
    DuplicateRequest,
    IncompleteReturn,
    InternalError,
    InvalidQuantity,
    InvalidReturnDate,
    InvalidTransition,
    LineNotFound,
    MissingField,
    ProductNotFound,
    RentalError,
    ValidationError,
)
from rental_management.models.rental_models import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_ON_RENT,
    ORDER_STATUS_RETURNED,
    Order,
    Product,
    RentalLine,
)
from rental_management.schemas.orders import CreateOrderDto, PartialReturnDto, UpdateOrderDto
from rental_management.services.order_service import generate_order_number, get_order
from rental_management.services.pricing import order_cost
from rental_management.services.return_reconciler import commit_return, remaining_quantity, validate_return
from rental_management.services.stock_ledger import release, reserve


ORDER_LOGGER = logging.getLogger("rental_management.orders")


@dataclass
class ReturnOutcome:
    order: Order
    all_fully_returned: bool
    total_cost: float


@contextmanager
def _transaction(db: Session, action: str, order_id: int | None = None):
    try:
        yield
        db.commit()
    except RentalError as exc:
        db.rollback()
        ORDER_LOGGER.warning("%s rejected order_id=%s kind=%s detail=%s", action, order_id, exc.kind, exc.message)
        raise
    except StaleDataError as exc:
        db.rollback()
        ORDER_LOGGER.warning("%s lost a concurrent update order_id=%s", action, order_id)
        raise ConcurrentModification(
            "Order was modified by another request. Reload and try again.",
            entity=order_id,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        ORDER_LOGGER.exception("%s failed order_id=%s", action, order_id)
        raise InternalError(f"Could not {action.lower()}.", entity=order_id) from exc
    except Exception:
        db.rollback()
        ORDER_LOGGER.exception("%s aborted order_id=%s", action, order_id)
        raise


def _require_text(value: str | None, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise MissingField(f"{field} is required", field=field)
    return cleaned


def _existing_order_id(db: Session, idempotency_key: str) -> int | None:
    return db.execute(select(Order.OrderID).where(Order.IdempotencyKey == idempotency_key)).scalar()


def _require_on_rent(order: Order, action: str) -> None:
    if order.OrderStatus != ORDER_STATUS_ON_RENT:
        raise InvalidTransition(
            f"Cannot {action} an order in state {order.OrderStatus}.",
            field="orderStatus",
            entity=order.OrderID,
        )


def _find_line(order: Order, product_id: int, line_id: int | None = None) -> RentalLine:
    if line_id is not None:
        for line in order.Lines:
            if line.LineID == line_id and line.ProductID == product_id:
                return line
        raise LineNotFound("Product not found in this order", field="lineId", entity=line_id)

    candidates = [line for line in order.Lines if line.ProductID == product_id]
    if not candidates:
        raise LineNotFound("Product not found in this order", field="productId", entity=product_id)
    for line in candidates:
        if remaining_quantity(line) > 0:
            return line
    return candidates[0]


def _check_return_date(order: Order, returned_date: datetime) -> None:
    if returned_date < order.RentingStartDate:
        raise InvalidReturnDate(
            "returnedDate must be on or after rentingStartDate.",
            field="returnedDate",
            entity=order.OrderID,
        )


def _open_lines(order: Order) -> list[RentalLine]:
    return [line for line in order.Lines if remaining_quantity(line) > 0]


def _close_out(order: Order, total: float) -> None:
    order.TotalPrice = total
    order.OrderStatus = ORDER_STATUS_RETURNED
    order.UpdatedDate = datetime.now()


def create_order(db: Session, payload: CreateOrderDto, actor_id: int) -> Order:
    idempotency_key = _require_text(payload.idempotencyKey, "idempotencyKey")
    customer_name = _require_text(payload.customerName, "customerName")
    customer_phone = _require_text(payload.customerPhoneNumber, "customerPhoneNumber")
    if not payload.products:
        raise MissingField("At least one product is required", field="products")
    if payload.rentingEndDate and payload.rentingEndDate < payload.rentingStartDate:
        raise ValidationError(
            "rentingEndDate must be on or after rentingStartDate.",
            kind="InvalidDateRange",
            field="rentingEndDate",
        )

    with _transaction(db, "Create order"):
        existing = _existing_order_id(db, idempotency_key)
        if existing is not None:
            raise DuplicateRequest(
                "An order with this idempotency key already exists.",
                field="idempotencyKey",
                entity=existing,
            )

        now = datetime.now()
        order = Order(
            OrderNumber=generate_order_number(db),
            IdempotencyKey=idempotency_key,
            CustomerName=customer_name,
            CustomerPhone=customer_phone,
            RentingStartDate=payload.rentingStartDate,
            RentingEndDate=payload.rentingEndDate,
            TotalPrice=0,
            PaymentStatus=payload.paymentStatus or "pending",
            OrderStatus=ORDER_STATUS_ON_RENT,
            CreatedBy=actor_id,
            CreatedDate=now,
            UpdatedDate=now,
        )

        for item in payload.products:
            if item.rentedAmount <= 0:
                raise InvalidQuantity(
                    "rentedAmount must be greater than zero.",
                    field="rentedAmount",
                    entity=item.productId,
                )
            product = db.get(Product, item.productId)
            if not product:
                raise ProductNotFound(f"Product not found: {item.productId}", field="productId", entity=item.productId)
            reserve(db, product.ProductID, item.rentedAmount)
            order.Lines.append(
                RentalLine(
                    ProductID=product.ProductID,
                    ProductName=product.ProductName,
                    CategoryID=product.CategoryID,
                    CategoryName=product.CategoryName,
                    RentedAmount=item.rentedAmount,
                    PerDayPrice=product.PerDayPrice,
                )
            )

        db.add(order)
        try:
            db.flush()
        except IntegrityError as exc:
            # Lost a race on one of the unique columns; the reservations go with the rollback.
            db.rollback()
            winner = _existing_order_id(db, idempotency_key)
            if winner is not None:
                raise DuplicateRequest(
                    "An order with this idempotency key already exists.",
                    field="idempotencyKey",
                    entity=winner,
                ) from exc
            raise ConcurrentModification(
                "Order number was taken by a concurrent request. Retry the request.",
                field="orderNumber",
            ) from exc

    ORDER_LOGGER.info(
        "Order created order_id=%s number=%s lines=%s actor=%s",
        order.OrderID,
        order.OrderNumber,
        len(order.Lines),
        actor_id,
    )
    return order


def cancel_order(db: Session, order_id: int, actor_id: int) -> Order:
    with _transaction(db, "Cancel order", order_id):
        order = get_order(db, order_id)
        _require_on_rent(order, "cancel")
        # Units already returned were released at return time.
        for line in order.Lines:
            remaining = remaining_quantity(line)
            if remaining > 0:
                release(db, line.ProductID, remaining)
        order.OrderStatus = ORDER_STATUS_CANCELLED
        order.UpdatedDate = datetime.now()

    ORDER_LOGGER.info("Order cancelled order_id=%s actor=%s", order_id, actor_id)
    return order


def partial_return(db: Session, order_id: int, payload: PartialReturnDto, actor_id: int) -> ReturnOutcome:
    with _transaction(db, "Return product", order_id):
        order = get_order(db, order_id)
        _require_on_rent(order, "return items for")
        line = _find_line(order, payload.productId, payload.lineId)
        _check_return_date(order, payload.returnedDate)
        pending = validate_return(line, payload.returnedQuantity, payload.returnedDate)
        commit_return(db, pending, actor_id)

        all_returned = not _open_lines(order)
        total = order_cost(order)
        if all_returned:
            _close_out(order, total)
        else:
            order.UpdatedDate = datetime.now()

    ORDER_LOGGER.info(
        "Return recorded order_id=%s product_id=%s quantity=%s closed=%s actor=%s",
        order_id,
        payload.productId,
        payload.returnedQuantity,
        all_returned,
        actor_id,
    )
    return ReturnOutcome(order=order, all_fully_returned=all_returned, total_cost=total)


def return_all(db: Session, order_id: int, returned_date: datetime, actor_id: int) -> ReturnOutcome:
    with _transaction(db, "Return order", order_id):
        order = get_order(db, order_id)
        _require_on_rent(order, "return")
        _check_return_date(order, returned_date)
        for line in _open_lines(order):
            pending = validate_return(line, remaining_quantity(line), returned_date)
            commit_return(db, pending, actor_id)
        total = order_cost(order)
        _close_out(order, total)

    ORDER_LOGGER.info("Order returned in full order_id=%s total=%s actor=%s", order_id, total, actor_id)
    return ReturnOutcome(order=order, all_fully_returned=True, total_cost=total)


def finalize_return(db: Session, order_id: int, actor_id: int) -> Order:
    with _transaction(db, "Complete return", order_id):
        order = get_order(db, order_id)
        if order.OrderStatus == ORDER_STATUS_RETURNED:
            return order
        _require_on_rent(order, "complete the return of")
        open_lines = _open_lines(order)
        if open_lines:
            raise IncompleteReturn(
                "Not all products/quantities are returned yet. Return remaining items first.",
                entity=[line.LineID for line in open_lines],
            )
        _close_out(order, order_cost(order))

    ORDER_LOGGER.info("Order finalized order_id=%s total=%s actor=%s", order_id, order.TotalPrice, actor_id)
    return order


def update_order_fields(db: Session, order_id: int, patch: UpdateOrderDto, actor_id: int) -> Order:
    provided = patch.model_fields_set
    with _transaction(db, "Update order", order_id):
        order = get_order(db, order_id)
        if "customerName" in provided:
            order.CustomerName = _require_text(patch.customerName, "customerName")
        if "customerPhoneNumber" in provided:
            order.CustomerPhone = _require_text(patch.customerPhoneNumber, "customerPhoneNumber")
        if patch.rentingStartDate is not None:
            order.RentingStartDate = patch.rentingStartDate
        if "rentingEndDate" in provided:
            order.RentingEndDate = patch.rentingEndDate
        if patch.paymentStatus is not None:
            order.PaymentStatus = patch.paymentStatus
        if patch.orderStatus is not None and patch.orderStatus != order.OrderStatus:
            # Status only moves through cancel_order / partial_return / finalize_return.
            ORDER_LOGGER.warning(
                "Direct status edit refused order_id=%s from=%s to=%s actor=%s",
                order_id,
                order.OrderStatus,
                patch.orderStatus,
                actor_id,
            )
            raise InvalidTransition(
                f"Cannot change an order from {order.OrderStatus} to {patch.orderStatus} by editing it. "
                "Use cancel or complete-return.",
                field="orderStatus",
                entity=order_id,
            )
        order.UpdatedDate = datetime.now()

    ORDER_LOGGER.info("Order updated order_id=%s fields=%s actor=%s", order_id, sorted(provided), actor_id)
    return order
