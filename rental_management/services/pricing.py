from __future__ import annotations

import math
from datetime import date, datetime, timezone

from rental_management.models.rental_models import Order, RentalLine, ReturnEvent


SECONDS_PER_DAY = 24 * 60 * 60


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return datetime(value.year, value.month, value.day)


def rental_days(start: date | datetime, end: date | datetime) -> int:
    # Same-day and negative intervals are charged as one day.
    elapsed = (_as_datetime(end) - _as_datetime(start)).total_seconds()
    return max(1, math.ceil(elapsed / SECONDS_PER_DAY))


def return_cost(start: date | datetime, event: ReturnEvent, per_day_price) -> float:
    days = rental_days(start, event.ReturnedDate)
    return days * float(per_day_price or 0) * int(event.ReturnedQuantity or 0)


def line_cost(start: date | datetime, line: RentalLine) -> float:
    return sum(return_cost(start, event, line.PerDayPrice) for event in line.Returns)


def order_cost(order: Order) -> float:
    return sum(line_cost(order.RentingStartDate, line) for line in order.Lines)


def line_breakdown(order: Order) -> list[dict]:
    rows = []
    for line in order.Lines:
        per_day = float(line.PerDayPrice or 0)
        for event in line.Returns:
            days = rental_days(order.RentingStartDate, event.ReturnedDate)
            rows.append(
                {
                    "lineID": line.LineID,
                    "productID": line.ProductID,
                    "productName": line.ProductName,
                    "categoryName": line.CategoryName,
                    "returnedQuantity": int(event.ReturnedQuantity),
                    "returnedDate": event.ReturnedDate,
                    "rentedDays": days,
                    "perDayPrice": per_day,
                    "amount": return_cost(order.RentingStartDate, event, per_day),
                }
            )
    return rows
