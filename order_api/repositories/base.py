"""
Store interface consumed by the services.

Implementations hand out detached copies of the domain entities, so the
domain layer can work on them freely; nothing reaches the store until one
of the write methods is called and ``commit`` runs.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from order_api.domain.catalog import CategoryRemoval
from order_api.domain.entities import Category, Order, OrderStatus, Product


class OrderStore(ABC):

    # Categories

    @abstractmethod
    def get_category(self, category_id: int) -> Category:
        """Load a category with its products; NotFoundError if missing."""

    @abstractmethod
    def list_categories(self) -> List[Category]:
        pass

    @abstractmethod
    def category_exists(self, category_id: int) -> bool:
        pass

    @abstractmethod
    def save_category(self, category: Category) -> Category:
        """Insert (assigning the id) or update the category row."""

    @abstractmethod
    def delete_category(self, removal: CategoryRemoval) -> None:
        """Delete the listed products, then the category."""

    # Products

    @abstractmethod
    def get_product(self, product_id: int) -> Product:
        pass

    @abstractmethod
    def list_products(self, category_id: Optional[int] = None) -> List[Product]:
        pass

    @abstractmethod
    def save_product(self, product: Product) -> Product:
        """
        Insert a new product, or update an existing one if its stored
        version still equals ``product.version``.

        Raises ConcurrentModificationError on a version mismatch.
        """

    @abstractmethod
    def delete_product(self, product_id: int) -> None:
        pass

    @abstractmethod
    def count_product_references(self, product_id: int) -> int:
        """Number of order items pointing at the product."""

    @abstractmethod
    def compare_and_swap_stock(self, product_id: int, expected_version: int, new_stock: int) -> bool:
        """
        Set the product's stock if its version is still ``expected_version``
        and bump the version. Returns False when the version moved on.
        """

    # Orders

    @abstractmethod
    def get_order(self, order_id: int) -> Order:
        pass

    @abstractmethod
    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        pass

    @abstractmethod
    def save_order(self, order: Order) -> Order:
        """Insert or update the order and synchronise its items."""

    @abstractmethod
    def delete_order(self, order_id: int) -> None:
        pass

    # Transactions

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass
