import asyncio
import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from order_api.core.config import STOCK_RETRY_BACKOFF_SECONDS, STOCK_UPDATE_MAX_RETRIES, TAX_RATE
from order_api.core.exceptions import (
    ConcurrentModificationError,
    InvalidStateTransitionError,
    NotFoundError,
    OrderDomainError,
    OrderLockedError,
)
from order_api.domain import ordering
from order_api.domain.entities import Order, OrderItem, OrderStatus, Product
from order_api.repositories.base import OrderStore
from order_api.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (product_id, quantity)
ItemRequest = Tuple[int, int]


class OrderService:
    """
    Order processing with optimistic concurrency control on product stock.

    Every attempt reads fresh copies from the store, runs the pure domain
    operation on them and writes stock back with a version check. If
    another transaction moved a product's version in between, the attempt
    is rolled back and retried with fresh reads, which then either succeed
    or fail with InsufficientStockError.

    Mutations of one order are serialized through ``order_locks``; share
    one KeyedLocks between all services of a process.
    """

    def __init__(
        self,
        store: OrderStore,
        order_locks: Optional[KeyedLocks] = None,
        tax_rate=TAX_RATE,
        max_retries: int = STOCK_UPDATE_MAX_RETRIES,
        retry_backoff: float = STOCK_RETRY_BACKOFF_SECONDS,
    ):
        self.store = store
        self.order_locks = order_locks or KeyedLocks()
        self.tax_rate = tax_rate
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    async def _with_retries(self, attempt: Callable[[], T], description: str) -> T:
        for number in range(1, self.max_retries + 1):
            try:
                result = attempt()
                self.store.commit()
                return result
            except ConcurrentModificationError:
                self.store.rollback()
                if number == self.max_retries:
                    logger.error(f"{description}: giving up after {number} conflicting attempts")
                    raise
                logger.warning(f"{description}: concurrency conflict on attempt {number}, retrying...")
                await asyncio.sleep(self.retry_backoff * number)
            except OrderDomainError as e:
                self.store.rollback()
                logger.info(f"{description} rejected: {e.message}")
                raise
            except Exception as e:
                # Rollback transaction on any error
                self.store.rollback()
                logger.error(f"{description} failed: {str(e)}")
                raise

    def _load_order(self, order_id: int) -> Order:
        return ordering.verify_totals(self.store.get_order(order_id), self.tax_rate)

    def _load_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        return {product_id: self.store.get_product(product_id) for product_id in sorted(set(product_ids))}

    def _write_stock(self, products: Dict[int, Product], versions: Dict[int, int]) -> None:
        for product_id, product in products.items():
            expected = versions[product_id]
            if not self.store.compare_and_swap_stock(product_id, expected, product.stock):
                raise ConcurrentModificationError("Product", product_id, expected)
            product.version = expected + 1

    def _fill(self, order: Order, requests: Sequence[ItemRequest]) -> List[OrderItem]:
        products = self._load_products(product_id for product_id, _ in requests)
        versions = {product_id: product.version for product_id, product in products.items()}
        items = ordering.add_items(
            order,
            [(products[product_id], quantity) for product_id, quantity in requests],
            self.tax_rate,
        )
        self._write_stock(products, versions)
        self.store.save_order(order)
        return items

    # Queries

    def get_order(self, order_id: int) -> Order:
        return self._load_order(order_id)

    def list_orders(self, status: Optional[str] = None) -> List[Order]:
        orders = self.store.list_orders(ordering.parse_status(status) if status is not None else None)
        return [ordering.verify_totals(order, self.tax_rate) for order in orders]

    # Commands

    async def create_order(self, items: Sequence[ItemRequest] = (), order_date: Optional[date] = None) -> Order:
        """Create a pending order, reserving stock for all ``items`` or none."""
        def attempt():
            order = ordering.create_order(order_date=order_date, tax_rate=self.tax_rate)
            if items:
                self._fill(order, items)
            else:
                self.store.save_order(order)
            return order

        order = await self._with_retries(attempt, "Create order")
        logger.info(f"Order {order.id} created with {len(order.items)} item(s), total {order.total}")
        return order

    async def add_items(self, order_id: int, items: Sequence[ItemRequest]) -> List[OrderItem]:
        async with self.order_locks.hold(order_id):
            def attempt():
                return self._fill(self._load_order(order_id), items)

            created = await self._with_retries(attempt, f"Add items to order {order_id}")
        logger.info(f"Added {len(created)} item(s) to order {order_id}")
        return created

    async def add_item(self, order_id: int, product_id: int, quantity: int) -> OrderItem:
        return (await self.add_items(order_id, [(product_id, quantity)]))[0]

    async def remove_item(self, order_id: int, item_id: int) -> Order:
        async with self.order_locks.hold(order_id):
            def attempt():
                order = self._load_order(order_id)
                if order.status.is_terminal:
                    raise OrderLockedError(order_id, order.status.value)
                item = order.find_item(item_id)
                if item is None:
                    raise NotFoundError("OrderItem", item_id)
                product = self.store.get_product(item.product_id)
                version = product.version
                ordering.remove_item(order, item_id, product, self.tax_rate)
                self._write_stock({product.id: product}, {product.id: version})
                return self.store.save_order(order)

            order = await self._with_retries(attempt, f"Remove item {item_id} from order {order_id}")
        logger.info(f"Removed item {item_id} from order {order_id}")
        return order

    async def transition_status(self, order_id: int, new_status: str) -> Order:
        """Move an order along its lifecycle; cancelling returns the items' stock."""
        async with self.order_locks.hold(order_id):
            def attempt():
                order = self._load_order(order_id)
                ordering.transition_status(order, new_status)
                if order.status is OrderStatus.CANCELLED:
                    self._release(order)
                return self.store.save_order(order)

            order = await self._with_retries(attempt, f"Move order {order_id} to {new_status}")
        logger.info(f"Order {order_id} is now {order.status.value}")
        return order

    async def delete_order(self, order_id: int) -> None:
        """
        Delete a pending or cancelled order with its items. A pending order
        gives its stock back first; confirmed and completed orders stay.
        """
        async with self.order_locks.hold(order_id):
            def attempt():
                order = self._load_order(order_id)
                if order.status in (OrderStatus.CONFIRMED, OrderStatus.COMPLETED):
                    raise InvalidStateTransitionError(
                        order.status.value,
                        "deleted",
                        message=f"Order '{order_id}' is {order.status.value} and cannot be deleted",
                    )
                if order.status is OrderStatus.PENDING:
                    self._release(order)
                self.store.delete_order(order_id)

            await self._with_retries(attempt, f"Delete order {order_id}")
        logger.info(f"Order {order_id} deleted")

    def _release(self, order: Order) -> None:
        products = self._load_products(item.product_id for item in order.items)
        versions = {product_id: product.version for product_id, product in products.items()}
        ordering.release_items(order, products)
        self._write_stock(products, versions)
