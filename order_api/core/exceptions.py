"""
Domain exceptions for the order management core.

Every aggregate operation fails fast with one of these instead of
normalizing bad data. The API layer maps them to HTTP responses.
"""

from typing import Any, Dict, Iterable, Optional


class OrderDomainError(Exception):
    """Base exception for all domain errors."""

    default_code = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class ValidationError(OrderDomainError):
    """Raised when input is malformed (negative price, empty name, ...)."""

    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs):
        details = kwargs.pop("details", None) or {
            "field": field,
            "value": str(value) if value is not None else None,
        }
        super().__init__(message, details=details, **kwargs)
        self.field = field


class NotFoundError(OrderDomainError):
    """Raised when an id does not resolve to an entity."""

    default_code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"{entity_type} with id '{entity_id}' not found",
            details={"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class IntegrityError(OrderDomainError):
    """Raised when an operation would break referential integrity."""

    default_code = "INTEGRITY_ERROR"


class InsufficientStockError(ValidationError):
    """Raised when a product does not have enough stock for a request."""

    def __init__(self, product_id: Any, requested: int, available: int, name: Optional[str] = None):
        label = name or f"product '{product_id}'"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            code="INSUFFICIENT_STOCK",
            details={
                "product_id": str(product_id),
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidStateTransitionError(OrderDomainError):
    """Raised when an order status change is not an allowed edge."""

    default_code = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        current_status: str,
        target_status: str,
        allowed_transitions: Optional[Iterable[str]] = None,
        message: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message or f"Cannot transition order from '{current_status}' to '{target_status}'",
            details={
                "current_status": current_status,
                "target_status": target_status,
                "allowed_transitions": sorted(allowed_transitions or []),
            },
            **kwargs,
        )
        self.current_status = current_status
        self.target_status = target_status


class OrderLockedError(ValidationError, InvalidStateTransitionError):
    """Raised when items are added to or removed from a terminal order."""

    default_code = "ORDER_LOCKED"

    def __init__(self, order_id: Any, status: str):
        OrderDomainError.__init__(
            self,
            f"Order '{order_id}' is {status}; its items can no longer change",
            details={"order_id": str(order_id), "current_status": status},
        )
        self.field = "status"
        self.current_status = status
        self.target_status = status


class ConcurrentModificationError(OrderDomainError):
    """Raised when optimistic locking detects a lost update."""

    default_code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: Any, expected_version: int):
        super().__init__(
            f"{entity_type} '{entity_id}' was modified by another transaction",
            details={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "expected_version": expected_version,
            },
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
