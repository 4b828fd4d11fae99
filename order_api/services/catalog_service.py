import logging
from decimal import Decimal
from typing import List, Optional

from order_api.core.exceptions import NotFoundError, OrderDomainError
from order_api.domain import catalog
from order_api.domain.entities import Category, Product
from order_api.repositories.base import OrderStore

logger = logging.getLogger(__name__)


class CatalogService:
    """Create, read, update and delete categories and products."""

    def __init__(self, store: OrderStore):
        self.store = store

    def _run(self, action, *args, **kwargs):
        try:
            result = action(*args, **kwargs)
            self.store.commit()
            return result
        except OrderDomainError:
            self.store.rollback()
            raise
        except Exception as e:
            self.store.rollback()
            logger.error(f"Catalog update failed: {str(e)}")
            raise

    # Categories

    def create_category(self, name: str) -> Category:
        category = catalog.validate_category(Category(name=name))
        category = self._run(self.store.save_category, category)
        logger.info(f"Created category {category.id} ({category.name})")
        return category

    def get_category(self, category_id: int) -> Category:
        return self.store.get_category(category_id)

    def list_categories(self) -> List[Category]:
        return self.store.list_categories()

    def rename_category(self, category_id: int, name: str) -> Category:
        def rename():
            category = self.store.get_category(category_id)
            category.name = name
            catalog.validate_category(category)
            return self.store.save_category(category)

        return self._run(rename)

    def remove_category(self, category_id: int, cascade: bool = False) -> catalog.CategoryRemoval:
        def remove():
            category = self.store.get_category(category_id)
            referenced = [
                product.id
                for product in category.products
                if self.store.count_product_references(product.id)
            ]
            removal = catalog.remove_category(category, cascade=cascade, referenced_product_ids=referenced)
            self.store.delete_category(removal)
            return removal

        removal = self._run(remove)
        logger.info(
            f"Removed category {removal.category_id} with {len(removal.product_ids)} product(s)"
        )
        return removal

    # Products

    def create_product(
        self,
        name: str,
        price: Decimal,
        stock: int,
        category_id: int,
        description: Optional[str] = None,
    ) -> Product:
        def create():
            category = self.store.get_category(category_id)
            product = catalog.validate_product(
                Product(
                    name=name,
                    price=price,
                    stock=stock,
                    category_id=category_id,
                    description=description,
                )
            )
            self.store.save_product(product)
            catalog.add_product(category, product)
            return product

        product = self._run(create)
        logger.info(f"Created product {product.id} ({product.name}) in category {category_id}")
        return product

    def get_product(self, product_id: int) -> Product:
        return self.store.get_product(product_id)

    def list_products(self, category_id: Optional[int] = None) -> List[Product]:
        if category_id is not None and not self.store.category_exists(category_id):
            raise NotFoundError("Category", category_id)
        return self.store.list_products(category_id=category_id)

    def update_product(self, product_id: int, **changes) -> Product:
        """
        Change product fields. Prices of existing order items are snapshots
        and are not affected.
        """
        def update():
            product = self.store.get_product(product_id)
            old_category_id = product.category_id
            catalog.update_product(product, **changes)
            if product.category_id != old_category_id:
                target = self.store.get_category(product.category_id)
                catalog.detach_product(self.store.get_category(old_category_id), product.id)
                catalog.add_product(target, product)
            return self.store.save_product(product)

        product = self._run(update)
        logger.info(f"Updated product {product.id} (version {product.version})")
        return product

    def remove_product(self, product_id: int) -> None:
        def remove():
            product = self.store.get_product(product_id)
            catalog.ensure_product_removable(product, self.store.count_product_references(product_id))
            self.store.delete_product(product_id)

        self._run(remove)
        logger.info(f"Removed product {product_id}")
