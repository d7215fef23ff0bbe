from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from rental_management.errors import InvalidQuantity, OverReturn
from rental_management.models.rental_models import RentalLine, ReturnEvent
from rental_management.services.stock_ledger import release


@dataclass
class PendingReturn:
    line: RentalLine
    quantity: int
    returned_date: datetime


def returned_quantity(line: RentalLine) -> int:
    return sum(int(event.ReturnedQuantity or 0) for event in line.Returns)


def remaining_quantity(line: RentalLine) -> int:
    return int(line.RentedAmount or 0) - returned_quantity(line)


def validate_return(line: RentalLine, quantity: int, returned_date: datetime) -> PendingReturn:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(
            "Returned quantity must be a positive whole number.",
            field="returnedQuantity",
            entity=line.ProductID,
        )
    remaining = remaining_quantity(line)
    if quantity > remaining:
        raise OverReturn(
            f"Only {remaining} item(s) left to return for this product",
            field="returnedQuantity",
            entity=line.ProductID,
        )
    return PendingReturn(line=line, quantity=quantity, returned_date=returned_date)


def commit_return(db: Session, pending: PendingReturn, actor_id: int | None = None) -> ReturnEvent:
    """Record the return on its line and put the units back in stock.

    Both writes go through ``db`` without committing; the caller owns the
    transaction so the line and the stock counter move together.
    """
    event = ReturnEvent(
        ReturnedQuantity=pending.quantity,
        ReturnedDate=pending.returned_date,
        RecordedBy=actor_id,
        CreatedDate=datetime.now(),
    )
    pending.line.Returns.append(event)
    release(db, pending.line.ProductID, pending.quantity)
    return event
