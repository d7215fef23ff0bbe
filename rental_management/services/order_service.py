from __future__ import annotations

import math
import os

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from rental_management.errors import InvalidTransition, OrderNotFound
from rental_management.models.rental_models import ORDER_STATUS_RETURNED, Order, RentalLine
from rental_management.services.pricing import line_breakdown, order_cost
from rental_management.services.return_reconciler import remaining_quantity, returned_quantity


DEFAULT_ORDER_PREFIX = (os.environ.get("ORDER_NUMBER_PREFIX") or "ORD").strip() or "ORD"
DEFAULT_PAGE_SIZE = int(os.environ.get("ORDERS_PAGE_SIZE") or "9")


def generate_order_number(db: Session, prefix: str = DEFAULT_ORDER_PREFIX) -> str:
    token = (prefix or DEFAULT_ORDER_PREFIX).upper()
    last = db.execute(
        select(Order)
        .where(Order.OrderNumber.like(f"{token}-%"))
        .order_by(Order.OrderID.desc())
    ).scalars().first()
    next_number = 1
    if last and last.OrderNumber:
        raw = last.OrderNumber.replace(f"{token}-", "")
        try:
            next_number = int(raw) + 1
        except ValueError:
            next_number = 1
    return f"{token}-{next_number:03d}"


def order_query():
    return select(Order).options(selectinload(Order.Lines).selectinload(RentalLine.Returns))


def get_order(db: Session, order_id: int) -> Order:
    order = db.execute(order_query().where(Order.OrderID == order_id)).scalars().first()
    if not order:
        raise OrderNotFound("Order not found", entity=order_id)
    return order


def serialize_line(line: RentalLine) -> dict:
    return {
        "lineID": line.LineID,
        "productID": line.ProductID,
        "productName": line.ProductName,
        "categoryID": line.CategoryID,
        "categoryName": line.CategoryName,
        "rentedAmount": int(line.RentedAmount or 0),
        "perDayPrice": float(line.PerDayPrice or 0),
        "returnedQuantity": returned_quantity(line),
        "remainingQuantity": remaining_quantity(line),
        "returns": [
            {
                "returnID": event.ReturnID,
                "returnedQuantity": int(event.ReturnedQuantity),
                "returnedDate": event.ReturnedDate,
                "recordedBy": event.RecordedBy,
            }
            for event in line.Returns
        ],
    }


def serialize_order(order: Order) -> dict:
    return {
        "orderID": order.OrderID,
        "orderNumber": order.OrderNumber,
        "idempotencyKey": order.IdempotencyKey,
        "customerName": order.CustomerName,
        "customerPhoneNumber": order.CustomerPhone,
        "rentingStartDate": order.RentingStartDate,
        "rentingEndDate": order.RentingEndDate,
        "totalPrice": float(order.TotalPrice or 0),
        "paymentStatus": order.PaymentStatus,
        "orderStatus": order.OrderStatus,
        "createdBy": order.CreatedBy,
        "createdDate": order.CreatedDate,
        "updatedDate": order.UpdatedDate,
        "products": [serialize_line(line) for line in order.Lines],
    }


def list_orders(db: Session, search: str | None = None, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
    page = max(1, int(page or 1))
    limit = max(1, int(limit or DEFAULT_PAGE_SIZE))
    term = (search or "").strip()

    stmt = order_query()
    if term:
        pattern = f"%{term}%"
        stmt = stmt.where(
            or_(
                Order.CustomerName.ilike(pattern),
                Order.CustomerPhone.ilike(pattern),
                Order.OrderStatus.ilike(pattern),
                Order.PaymentStatus.ilike(pattern),
                Order.Lines.any(
                    or_(
                        RentalLine.ProductName.ilike(pattern),
                        RentalLine.CategoryName.ilike(pattern),
                    )
                ),
            )
        )

    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar() or 0
    orders = db.execute(
        stmt.order_by(Order.OrderID.desc()).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return {
        "total": int(total),
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if total else 0,
        "orders": [serialize_order(order) for order in orders],
    }


def build_bill(order: Order) -> dict:
    if order.OrderStatus != ORDER_STATUS_RETURNED:
        raise InvalidTransition(
            "A bill is only available once every item has been returned.",
            field="orderStatus",
            entity=order.OrderID,
        )
    items = line_breakdown(order)
    return {
        "orderID": order.OrderID,
        "orderNumber": order.OrderNumber,
        "customerName": order.CustomerName,
        "customerPhoneNumber": order.CustomerPhone,
        "rentingStartDate": order.RentingStartDate,
        "paymentStatus": order.PaymentStatus,
        "items": items,
        "computedTotal": order_cost(order),
        "totalPrice": float(order.TotalPrice or 0),
    }
