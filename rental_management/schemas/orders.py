from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator


PaymentStatusLiteral = Literal["pending", "paid", "failed"]
OrderStatusLiteral = Literal["on_rent", "returned_after_rent", "cancelled"]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CreateOrderLineDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    productId: int
    rentedAmount: int


class CreateOrderDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    idempotencyKey: str
    customerName: str
    customerPhoneNumber: str
    rentingStartDate: datetime
    rentingEndDate: Optional[datetime] = None
    paymentStatus: PaymentStatusLiteral = "pending"
    products: List[CreateOrderLineDto] = []

    @field_validator("rentingStartDate", "rentingEndDate")
    @classmethod
    def normalize_dates(cls, value):
        return _naive_utc(value)


class PartialReturnDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    productId: int
    returnedQuantity: int
    returnedDate: datetime
    lineId: Optional[int] = None

    @field_validator("returnedDate")
    @classmethod
    def normalize_dates(cls, value):
        return _naive_utc(value)


class ReturnAllDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    returnedDate: datetime

    @field_validator("returnedDate")
    @classmethod
    def normalize_dates(cls, value):
        return _naive_utc(value)


class UpdateOrderDto(BaseModel):
    # Quantities and prices only move through the reservation/return protocol.
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    customerName: Optional[str] = None
    customerPhoneNumber: Optional[str] = None
    rentingStartDate: Optional[datetime] = None
    rentingEndDate: Optional[datetime] = None
    paymentStatus: Optional[PaymentStatusLiteral] = None
    orderStatus: Optional[OrderStatusLiteral] = None

    @field_validator("rentingStartDate", "rentingEndDate")
    @classmethod
    def normalize_dates(cls, value):
        return _naive_utc(value)
