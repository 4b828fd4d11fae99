"""
Order aggregate.

An Order owns its OrderItems. Every item mutation goes through this module
so that, after each successful call,

    item.subtotal  == item.unit_price * item.quantity
    order.subtotal == sum(item.subtotal for item in order.items)
    order.igv      == round(order.subtotal * tax_rate)
    order.total    == order.subtotal + order.igv

Each operation validates everything before it changes anything, so a
failed call leaves the order and the products exactly as they were.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from order_api.core.config import TAX_RATE
from order_api.core.exceptions import (
    InsufficientStockError,
    IntegrityError,
    InvalidStateTransitionError,
    NotFoundError,
    OrderLockedError,
    ValidationError,
)
from order_api.domain.entities import (
    ALLOWED_TRANSITIONS,
    MAX_MONEY,
    ZERO,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    round_money,
    to_money,
)

Line = Tuple[Product, int]


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown order status '{value}'", field="status", value=value)


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer", field="quantity", value=quantity)
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", field="quantity", value=quantity)
    return quantity


def _check_mutable(order: Order) -> None:
    if order.status.is_terminal:
        raise OrderLockedError(order.id, order.status.value)


def _check_product(product: Product) -> Decimal:
    if product.id is None:
        raise ValidationError("Product must be saved before it can be ordered", field="product_id")
    return to_money(product.price, "price")


def recompute_totals(order: Order, tax_rate: Decimal = TAX_RATE) -> Order:
    """Derive subtotal, igv and total from the order's items."""
    subtotal = sum((item.subtotal for item in order._items), ZERO)
    igv = round_money(subtotal * tax_rate)
    order.subtotal = subtotal
    order.igv = igv
    order.total = subtotal + igv
    return order


def verify_totals(order: Order, tax_rate: Decimal = TAX_RATE) -> Order:
    """Raise IntegrityError if stored amounts disagree with the items."""
    for item in order._items:
        if item.subtotal != item.unit_price * item.quantity:
            raise IntegrityError(
                f"Order item '{item.id}' subtotal {item.subtotal} != "
                f"{item.unit_price} x {item.quantity}",
                details={"order_id": str(order.id), "item_id": str(item.id)},
            )
    expected = recompute_totals(
        Order(order_date=order.order_date, status=order.status, _items=list(order._items)),
        tax_rate,
    )
    stored = (order.subtotal, order.igv, order.total)
    if stored != (expected.subtotal, expected.igv, expected.total):
        raise IntegrityError(
            f"Order '{order.id}' totals {stored} do not match its items",
            details={
                "order_id": str(order.id),
                "expected": [str(expected.subtotal), str(expected.igv), str(expected.total)],
            },
        )
    return order


def add_items(order: Order, lines: Sequence[Line], tax_rate: Decimal = TAX_RATE) -> List[OrderItem]:
    """
    Add several products at once.

    All lines are checked first, with quantities of the same product
    summed against its stock, and only then applied.
    """
    _check_mutable(order)

    prices = []
    requested: Dict[int, int] = defaultdict(int)
    products: Dict[int, Product] = {}
    for product, quantity in lines:
        _check_quantity(quantity)
        prices.append(_check_product(product))
        requested[product.id] += quantity
        if products.setdefault(product.id, product) is not product:
            raise ValidationError(
                f"Product '{product.id}' was passed as two different objects",
                field="product_id",
                value=product.id,
            )

    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.stock < quantity:
            raise InsufficientStockError(product_id, quantity, product.stock, name=product.name)

    subtotal = sum((item.subtotal for item in order._items), ZERO)
    subtotal += sum((price * quantity for (_, quantity), price in zip(lines, prices)), ZERO)
    if subtotal + round_money(subtotal * tax_rate) >= MAX_MONEY:
        raise ValidationError(
            f"Order total would reach {MAX_MONEY}",
            field="quantity",
            details={"field": "quantity", "order_id": str(order.id), "subtotal": str(subtotal)},
        )

    created = []
    for (product, quantity), unit_price in zip(lines, prices):
        item = OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=unit_price * quantity,
        )
        product.stock -= quantity
        order._items.append(item)
        created.append(item)

    recompute_totals(order, tax_rate)
    return created


def add_item(order: Order, product: Product, quantity: int, tax_rate: Decimal = TAX_RATE) -> OrderItem:
    return add_items(order, [(product, quantity)], tax_rate)[0]


def remove_item(order: Order, item_id: int, product: Product, tax_rate: Decimal = TAX_RATE) -> OrderItem:
    """Drop an item from the order and give its quantity back to the product."""
    _check_mutable(order)
    item = order.find_item(item_id)
    if item is None:
        raise NotFoundError("OrderItem", item_id)
    if product.id != item.product_id:
        raise ValidationError(
            f"Order item '{item_id}' is for product '{item.product_id}', not '{product.id}'",
            field="product_id",
            value=product.id,
        )

    order._items.remove(item)
    product.stock += item.quantity
    recompute_totals(order, tax_rate)
    return item


def release_items(order: Order, products: Mapping[int, Product]) -> Dict[int, int]:
    """Return every item's quantity to its product. Totals are untouched."""
    released: Dict[int, int] = defaultdict(int)
    for item in order._items:
        if item.product_id not in products:
            raise NotFoundError("Product", item.product_id)
        released[item.product_id] += item.quantity

    for product_id, quantity in released.items():
        products[product_id].stock += quantity
    return dict(released)


def transition_status(order: Order, new_status) -> Order:
    target = parse_status(new_status)
    allowed = ALLOWED_TRANSITIONS[order.status]
    if target not in allowed:
        raise InvalidStateTransitionError(
            order.status.value,
            target.value,
            allowed_transitions=[status.value for status in allowed],
        )
    order.status = target
    return order


def create_order(
    order_date: Optional[date] = None,
    lines: Iterable[Line] = (),
    tax_rate: Decimal = TAX_RATE,
) -> Order:
    """New pending order, optionally filled with ``lines`` in one step."""
    order = Order(order_date=order_date or date.today())
    lines = list(lines)
    if lines:
        add_items(order, lines, tax_rate)
    return recompute_totals(order, tax_rate)
