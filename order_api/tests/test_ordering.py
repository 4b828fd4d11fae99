from datetime import date
from decimal import Decimal

import pytest

from order_api.core.exceptions import (
    InsufficientStockError,
    IntegrityError,
    InvalidStateTransitionError,
    NotFoundError,
    OrderLockedError,
    ValidationError,
)
from order_api.domain import ordering
from order_api.domain.entities import Order, OrderItem, OrderStatus, Product


def make_product(product_id=1, price="10.00", stock=5):
    return Product(id=product_id, name=f"Product {product_id}", price=Decimal(price), stock=stock, category_id=1)


def assert_consistent(order):
    for item in order.items:
        assert item.subtotal == item.unit_price * item.quantity
    assert order.subtotal == sum((item.subtotal for item in order.items), Decimal("0"))
    assert order.total == order.subtotal + order.igv


class TestTotals:

    def test_two_item_example(self):
        """(10.00 x 2) + (5.00 x 3) at 18% tax"""
        order = ordering.create_order(order_date=date(2024, 6, 15))
        ordering.add_item(order, make_product(1, "10.00", 5), 2)
        ordering.add_item(order, make_product(2, "5.00", 10), 3)

        assert order.subtotal == Decimal("35.00")
        assert order.igv == Decimal("6.30")
        assert order.total == Decimal("41.30")
        assert_consistent(order)

    def test_empty_order_has_zero_totals(self):
        order = ordering.create_order()
        assert (order.subtotal, order.igv, order.total) == (Decimal("0"), Decimal("0"), Decimal("0"))
        assert order.status is OrderStatus.PENDING

    def test_igv_rounds_half_up(self):
        order = ordering.create_order()
        ordering.add_item(order, make_product(price="0.25"), 1)
        # 0.25 * 0.18 = 0.045
        assert order.igv == Decimal("0.05")
        assert order.total == Decimal("0.30")

    def test_recompute_is_idempotent(self):
        order = ordering.create_order()
        ordering.add_item(order, make_product(price="19.99", stock=100), 7)
        first = (order.subtotal, order.igv, order.total)
        ordering.recompute_totals(order)
        ordering.recompute_totals(order)
        assert (order.subtotal, order.igv, order.total) == first

    def test_custom_tax_rate(self):
        order = ordering.create_order()
        ordering.add_item(order, make_product(price="100.00"), 1, tax_rate=Decimal("0.10"))
        assert order.igv == Decimal("10.00")
        assert order.total == Decimal("110.00")

    def test_verify_totals_detects_tampering(self):
        order = ordering.create_order()
        ordering.add_item(order, make_product(), 2)
        ordering.verify_totals(order)

        order.total += Decimal("0.01")
        with pytest.raises(IntegrityError):
            ordering.verify_totals(order)

    def test_verify_totals_detects_bad_item_subtotal(self):
        item = OrderItem(id=1, product_id=1, quantity=2, unit_price=Decimal("10.00"), subtotal=Decimal("21.00"))
        order = Order(_items=[item])
        with pytest.raises(IntegrityError):
            ordering.verify_totals(order)


class TestAddItem:

    def test_snapshot_price_and_stock_decrement(self):
        product = make_product(price="10.00", stock=5)
        order = ordering.create_order()
        item = ordering.add_item(order, product, 2)

        assert item.unit_price == Decimal("10.00")
        assert item.subtotal == Decimal("20.00")
        assert product.stock == 3

        # A later price change does not touch the snapshot
        product.price = Decimal("99.00")
        ordering.recompute_totals(order)
        assert order.items[0].unit_price == Decimal("10.00")
        assert order.subtotal == Decimal("20.00")

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2"])
    def test_invalid_quantity_is_rejected(self, quantity):
        product = make_product(stock=5)
        order = ordering.create_order()
        with pytest.raises(ValidationError):
            ordering.add_item(order, product, quantity)
        assert product.stock == 5
        assert order.items == ()

    def test_insufficient_stock(self):
        product = make_product(stock=2)
        order = ordering.create_order()
        with pytest.raises(InsufficientStockError) as exc_info:
            ordering.add_item(order, product, 3)
        assert isinstance(exc_info.value, ValidationError)
        assert "Insufficient stock" in str(exc_info.value)
        assert product.stock == 2
        assert order.total == Decimal("0")

    def test_total_must_fit_the_money_columns(self):
        product = make_product(price="5000000000.00", stock=5)
        order = ordering.create_order()
        with pytest.raises(ValidationError) as exc_info:
            ordering.add_item(order, product, 2)
        assert exc_info.value.details["field"] == "quantity"
        assert product.stock == 5
        assert order.items == ()

    @pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_terminal_order_rejects_items(self, status):
        product = make_product()
        order = Order(id=7, status=status)
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            ordering.add_item(order, product, 1)
        assert isinstance(exc_info.value, OrderLockedError)
        assert isinstance(exc_info.value, ValidationError)
        assert product.stock == 5

    def test_confirmed_order_still_accepts_items(self):
        order = Order(status=OrderStatus.CONFIRMED)
        ordering.add_item(order, make_product(), 1)
        assert len(order.items) == 1

    def test_batch_is_all_or_nothing(self):
        mixer = make_product(1, "10.00", stock=5)
        cable = make_product(2, "1.50", stock=1)
        order = ordering.create_order()

        with pytest.raises(InsufficientStockError):
            ordering.add_items(order, [(mixer, 2), (cable, 1), (cable, 1)])

        assert mixer.stock == 5
        assert cable.stock == 1
        assert order.items == ()
        assert order.total == Decimal("0")

    def test_create_order_with_lines(self):
        mixer = make_product(1, "10.00", stock=5)
        headphones = make_product(2, "5.00", stock=10)
        order = ordering.create_order(lines=[(mixer, 2), (headphones, 3)])
        assert order.total == Decimal("41.30")
        assert (mixer.stock, headphones.stock) == (3, 7)

    def test_unsaved_product_cannot_be_ordered(self):
        product = make_product()
        product.id = None
        with pytest.raises(ValidationError):
            ordering.add_item(ordering.create_order(), product, 1)


class TestRemoveItem:

    def _order_with_items(self):
        mixer = make_product(1, "10.00", stock=5)
        headphones = make_product(2, "5.00", stock=10)
        order = ordering.create_order(lines=[(mixer, 2), (headphones, 3)])
        for number, item in enumerate(order.items, start=1):
            item.id = number
        return order, mixer, headphones

    def test_remove_restores_stock_and_totals(self):
        order, mixer, _ = self._order_with_items()
        removed = ordering.remove_item(order, 1, mixer)

        assert removed.quantity == 2
        assert mixer.stock == 5
        assert order.subtotal == Decimal("15.00")
        assert order.igv == Decimal("2.70")
        assert order.total == Decimal("17.70")
        assert_consistent(order)

    def test_unknown_item(self):
        order, mixer, _ = self._order_with_items()
        with pytest.raises(NotFoundError):
            ordering.remove_item(order, 99, mixer)
        assert len(order.items) == 2

    def test_wrong_product(self):
        order, _, headphones = self._order_with_items()
        with pytest.raises(ValidationError):
            ordering.remove_item(order, 1, headphones)
        assert headphones.stock == 7

    def test_terminal_order(self):
        order, mixer, _ = self._order_with_items()
        order.status = OrderStatus.COMPLETED
        with pytest.raises(OrderLockedError):
            ordering.remove_item(order, 1, mixer)
        assert mixer.stock == 3
        assert order.total == Decimal("41.30")

    def test_release_items(self):
        order, mixer, headphones = self._order_with_items()
        released = ordering.release_items(order, {1: mixer, 2: headphones})
        assert released == {1: 2, 2: 3}
        assert (mixer.stock, headphones.stock) == (5, 10)
        assert order.total == Decimal("41.30")


class TestStatusMachine:

    @pytest.mark.parametrize("current, target", [
        (OrderStatus.PENDING, "confirmed"),
        (OrderStatus.CONFIRMED, "completed"),
        (OrderStatus.PENDING, "cancelled"),
        (OrderStatus.CONFIRMED, "cancelled"),
    ])
    def test_allowed_transitions(self, current, target):
        order = Order(status=current)
        ordering.transition_status(order, target)
        assert order.status == OrderStatus(target)

    @pytest.mark.parametrize("current, target", [
        (current, target)
        for current in OrderStatus
        for target in OrderStatus
        if (current, target) not in {
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.COMPLETED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
        }
    ])
    def test_every_other_edge_is_rejected(self, current, target):
        order = Order(status=current)
        with pytest.raises(InvalidStateTransitionError):
            ordering.transition_status(order, target)
        assert order.status is current

    def test_unknown_status(self):
        order = Order()
        with pytest.raises(ValidationError):
            ordering.transition_status(order, "shipped")
        assert order.status is OrderStatus.PENDING
