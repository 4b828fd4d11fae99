"""
Order management entities.

Plain dataclasses with no knowledge of the database. Nested collections
(Category.products, Order.items) are owned by their parent and are only
changed through the functions in ``order_api.domain.catalog`` and
``order_api.domain.ordering``; the public attributes expose read-only
tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from order_api.core.config import CURRENCY_PLACES
from order_api.core.exceptions import ValidationError

# precision of the money columns
MONEY_DIGITS = 12
MAX_MONEY = Decimal(10) ** (MONEY_DIGITS - CURRENCY_PLACES)
CURRENCY_QUANTUM = Decimal(1).scaleb(-CURRENCY_PLACES)
ZERO = Decimal(0).quantize(CURRENCY_QUANTUM)


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Parse a money amount that fits the money columns, rejecting negatives and extra decimal places."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a decimal amount", field=field_name, value=value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a decimal amount", field=field_name, value=value)
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite amount", field=field_name, value=value)
    if amount < 0:
        raise ValidationError(f"{field_name} must not be negative", field=field_name, value=value)
    if amount >= MAX_MONEY:
        raise ValidationError(f"{field_name} must be less than {MAX_MONEY}", field=field_name, value=value)
    if amount != amount.quantize(CURRENCY_QUANTUM):
        raise ValidationError(
            f"{field_name} has more than {CURRENCY_PLACES} decimal places",
            field=field_name,
            value=value,
        )
    return amount.quantize(CURRENCY_QUANTUM)


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


@dataclass
class Product:
    name: str
    price: Decimal
    stock: int
    category_id: Optional[int]
    description: Optional[str] = None
    id: Optional[int] = None
    version: int = 0


@dataclass
class Category:
    name: str
    id: Optional[int] = None
    _products: Dict[int, Product] = field(default_factory=dict, repr=False, compare=False)

    @property
    def products(self) -> Tuple[Product, ...]:
        return tuple(self._products[key] for key in sorted(self._products))

    def has_products(self) -> bool:
        return bool(self._products)


@dataclass
class OrderItem:
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    order_id: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Order:
    order_date: date = field(default_factory=date.today)
    status: OrderStatus = OrderStatus.PENDING
    subtotal: Decimal = ZERO
    igv: Decimal = ZERO
    total: Decimal = ZERO
    id: Optional[int] = None
    _items: List[OrderItem] = field(default_factory=list, repr=False, compare=False)

    @property
    def items(self) -> Tuple[OrderItem, ...]:
        return tuple(self._items)

    def find_item(self, item_id: int) -> Optional[OrderItem]:
        for item in self._items:
            if item.id is not None and item.id == item_id:
                return item
        return None
