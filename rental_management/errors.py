from __future__ import annotations

from typing import Any


class RentalError(Exception):
    status_code = 500
    default_kind = "InternalError"

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        field: str | None = None,
        entity: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.field = field
        self.entity = entity

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "kind": self.kind}
        if self.field is not None:
            payload["field"] = self.field
        if self.entity is not None:
            payload["entity"] = self.entity
        return payload


class ValidationError(RentalError):
    status_code = 400
    default_kind = "ValidationError"


class NotFoundError(RentalError):
    status_code = 404
    default_kind = "NotFound"


class ConflictError(RentalError):
    status_code = 409
    default_kind = "Conflict"


class InternalError(RentalError):
    status_code = 500
    default_kind = "InternalError"


class MissingField(ValidationError):
    default_kind = "MissingField"


class InvalidQuantity(ValidationError):
    default_kind = "InvalidQuantity"


class InvalidReturnDate(ValidationError):
    default_kind = "InvalidReturnDate"


class OrderNotFound(NotFoundError):
    default_kind = "OrderNotFound"


class ProductNotFound(NotFoundError):
    default_kind = "ProductNotFound"


class CategoryNotFound(NotFoundError):
    default_kind = "CategoryNotFound"


class LineNotFound(NotFoundError):
    default_kind = "LineNotFound"


class InsufficientStock(ConflictError):
    default_kind = "InsufficientStock"


class OverReturn(ConflictError):
    default_kind = "OverReturn"


class InvalidTransition(ConflictError):
    default_kind = "InvalidTransition"


class IncompleteReturn(ConflictError):
    default_kind = "IncompleteReturn"


class DuplicateRequest(ConflictError):
    default_kind = "DuplicateRequest"


class ConcurrentModification(ConflictError):
    default_kind = "ConcurrentModification"
