import copy
import itertools
import logging
import threading
from typing import Callable, Dict, List, Optional

from order_api.core.exceptions import ConcurrentModificationError, NotFoundError
from order_api.domain import catalog
from order_api.domain.catalog import CategoryRemoval
from order_api.domain.entities import Category, Order, OrderStatus, Product
from order_api.repositories.base import OrderStore

logger = logging.getLogger(__name__)


class InMemoryStore(OrderStore):
    """
    Dict-backed store, safe to share between threads.

    Every write records how to undo itself; rollback() replays the undo
    journal, commit() forgets it.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._categories: Dict[int, Category] = {}
        self._products: Dict[int, Product] = {}
        self._orders: Dict[int, Order] = {}
        self._local = threading.local()
        self._ids = {
            "category": itertools.count(1),
            "product": itertools.count(1),
            "order": itertools.count(1),
            "order_item": itertools.count(1),
        }

    @property
    def _journal(self) -> List[Callable[[], None]]:
        # each thread only rolls back its own writes
        if not hasattr(self._local, "journal"):
            self._local.journal = []
        return self._local.journal

    def _put(self, table: Dict[int, object], key: int, value) -> None:
        if key in table:
            previous = table[key]
            self._journal.append(lambda: table.__setitem__(key, previous))
        else:
            self._journal.append(lambda: table.pop(key, None))
        table[key] = value

    def _drop(self, table: Dict[int, object], key: int) -> None:
        previous = table.pop(key)
        self._journal.append(lambda: table.__setitem__(key, previous))

    # Categories

    def get_category(self, category_id: int) -> Category:
        with self._lock:
            stored = self._categories.get(category_id)
            if stored is None:
                raise NotFoundError("Category", category_id)
            category = Category(id=stored.id, name=stored.name)
            for product in self.list_products(category_id=category_id):
                catalog.add_product(category, product)
            return category

    def list_categories(self) -> List[Category]:
        with self._lock:
            return [self.get_category(key) for key in sorted(self._categories)]

    def category_exists(self, category_id: int) -> bool:
        return category_id in self._categories

    def save_category(self, category: Category) -> Category:
        with self._lock:
            if category.id is None:
                category.id = next(self._ids["category"])
            elif category.id not in self._categories:
                raise NotFoundError("Category", category.id)
            self._put(self._categories, category.id, Category(id=category.id, name=category.name))
            return category

    def delete_category(self, removal: CategoryRemoval) -> None:
        with self._lock:
            if removal.category_id not in self._categories:
                raise NotFoundError("Category", removal.category_id)
            for product_id in removal.product_ids:
                self._drop(self._products, product_id)
            self._drop(self._categories, removal.category_id)

    # Products

    def get_product(self, product_id: int) -> Product:
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            return copy.deepcopy(product)

    def list_products(self, category_id: Optional[int] = None) -> List[Product]:
        with self._lock:
            return [
                copy.deepcopy(self._products[key])
                for key in sorted(self._products)
                if category_id is None or self._products[key].category_id == category_id
            ]

    def save_product(self, product: Product) -> Product:
        with self._lock:
            if product.id is None:
                product.id = next(self._ids["product"])
                product.version = 1
            else:
                stored = self._products.get(product.id)
                if stored is None:
                    raise NotFoundError("Product", product.id)
                if stored.version != product.version:
                    raise ConcurrentModificationError("Product", product.id, product.version)
                product.version += 1
            self._put(self._products, product.id, copy.deepcopy(product))
            return product

    def delete_product(self, product_id: int) -> None:
        with self._lock:
            if product_id not in self._products:
                raise NotFoundError("Product", product_id)
            self._drop(self._products, product_id)

    def count_product_references(self, product_id: int) -> int:
        with self._lock:
            return sum(
                1
                for order in self._orders.values()
                for item in order.items
                if item.product_id == product_id
            )

    def compare_and_swap_stock(self, product_id: int, expected_version: int, new_stock: int) -> bool:
        with self._lock:
            stored = self._products.get(product_id)
            if stored is None:
                raise NotFoundError("Product", product_id)
            if stored.version != expected_version:
                logger.warning(
                    f"Stock update for product {product_id} lost: version {expected_version} is stale"
                )
                return False
            updated = copy.deepcopy(stored)
            updated.stock = new_stock
            updated.version = expected_version + 1
            self._put(self._products, product_id, updated)
            return True

    # Orders

    def get_order(self, order_id: int) -> Order:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            return copy.deepcopy(order)

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        with self._lock:
            return [
                copy.deepcopy(self._orders[key])
                for key in sorted(self._orders)
                if status is None or self._orders[key].status == OrderStatus(status)
            ]

    def save_order(self, order: Order) -> Order:
        with self._lock:
            if order.id is None:
                order.id = next(self._ids["order"])
            elif order.id not in self._orders:
                raise NotFoundError("Order", order.id)
            for item in order.items:
                if item.id is None:
                    item.id = next(self._ids["order_item"])
                item.order_id = order.id
            self._put(self._orders, order.id, copy.deepcopy(order))
            return order

    def delete_order(self, order_id: int) -> None:
        with self._lock:
            if order_id not in self._orders:
                raise NotFoundError("Order", order_id)
            self._drop(self._orders, order_id)

    # Transactions

    def commit(self) -> None:
        with self._lock:
            self._journal.clear()

    def rollback(self) -> None:
        with self._lock:
            while self._journal:
                self._journal.pop()()
