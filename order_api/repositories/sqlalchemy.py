import logging
from typing import List, Optional

from sqlalchemy import and_, func, update
from sqlalchemy.orm import Session

from order_api.core.exceptions import ConcurrentModificationError, NotFoundError
from order_api.domain import catalog
from order_api.domain.catalog import CategoryRemoval
from order_api.domain.entities import Category, Order, OrderItem, OrderStatus, Product
from order_api.models import database as tables
from order_api.repositories.base import OrderStore

logger = logging.getLogger(__name__)


def _product_from_row(row: tables.Product) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        price=row.price,
        description=row.description,
        stock=row.stock,
        category_id=row.category_id,
        version=row.version,
    )


def _item_from_row(row: tables.OrderItem) -> OrderItem:
    return OrderItem(
        id=row.id,
        order_id=row.order_id,
        product_id=row.product_id,
        quantity=row.quantity,
        unit_price=row.unit_price,
        subtotal=row.subtotal,
    )


def _order_from_row(row: tables.Order) -> Order:
    return Order(
        id=row.id,
        order_date=row.order_date,
        status=OrderStatus(row.status),
        subtotal=row.subtotal,
        igv=row.igv,
        total=row.total,
        _items=[_item_from_row(item) for item in row.order_items],
    )


class SqlAlchemyStore(OrderStore):
    """
    Relational store on a SQLAlchemy session.

    Writes are flushed but not committed; the caller decides with
    commit() or rollback().
    """

    def __init__(self, db: Session):
        self.db = db

    # Categories

    def _category_row(self, category_id: int) -> tables.Category:
        row = self.db.get(tables.Category, category_id)
        if row is None:
            raise NotFoundError("Category", category_id)
        return row

    def _load_category(self, row: tables.Category) -> Category:
        category = Category(id=row.id, name=row.name)
        for product in self.list_products(category_id=row.id):
            catalog.add_product(category, product)
        return category

    def get_category(self, category_id: int) -> Category:
        return self._load_category(self._category_row(category_id))

    def list_categories(self) -> List[Category]:
        rows = self.db.query(tables.Category).order_by(tables.Category.id).all()
        return [self._load_category(row) for row in rows]

    def category_exists(self, category_id: int) -> bool:
        return self.db.get(tables.Category, category_id) is not None

    def save_category(self, category: Category) -> Category:
        if category.id is None:
            row = tables.Category(name=category.name)
            self.db.add(row)
            self.db.flush()
            category.id = row.id
        else:
            self._category_row(category.id).name = category.name
            self.db.flush()
        return category

    def delete_category(self, removal: CategoryRemoval) -> None:
        row = self._category_row(removal.category_id)
        if removal.product_ids:
            self.db.query(tables.Product).filter(
                tables.Product.id.in_(removal.product_ids)
            ).delete(synchronize_session="fetch")
        self.db.delete(row)
        self.db.flush()

    # Products

    def _product_row(self, product_id: int) -> tables.Product:
        row = self.db.get(tables.Product, product_id)
        if row is None:
            raise NotFoundError("Product", product_id)
        return row

    def get_product(self, product_id: int) -> Product:
        row = self._product_row(product_id)
        # Another session may have bumped the version since this row was cached
        self.db.refresh(row)
        return _product_from_row(row)

    def list_products(self, category_id: Optional[int] = None) -> List[Product]:
        query = self.db.query(tables.Product)
        if category_id is not None:
            query = query.filter(tables.Product.category_id == category_id)
        # populate_existing: stock and version may have been changed by a bulk UPDATE
        rows = query.order_by(tables.Product.id).populate_existing().all()
        return [_product_from_row(row) for row in rows]

    def save_product(self, product: Product) -> Product:
        if product.id is None:
            row = tables.Product(
                name=product.name,
                price=product.price,
                description=product.description,
                stock=product.stock,
                category_id=product.category_id,
                version=1,
            )
            self.db.add(row)
            self.db.flush()
            product.id = row.id
            product.version = row.version
            return product

        # Optimistic locking: Update only if version hasn't changed
        result = self.db.execute(
            update(tables.Product)
            .where(and_(tables.Product.id == product.id, tables.Product.version == product.version))
            .values(
                name=product.name,
                price=product.price,
                description=product.description,
                stock=product.stock,
                category_id=product.category_id,
                version=product.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._product_row(product.id)
            raise ConcurrentModificationError("Product", product.id, product.version)
        product.version += 1
        return product

    def delete_product(self, product_id: int) -> None:
        self.db.delete(self._product_row(product_id))
        self.db.flush()

    def count_product_references(self, product_id: int) -> int:
        return (
            self.db.query(func.count(tables.OrderItem.id))
            .filter(tables.OrderItem.product_id == product_id)
            .scalar()
        )

    def compare_and_swap_stock(self, product_id: int, expected_version: int, new_stock: int) -> bool:
        result = self.db.execute(
            update(tables.Product)
            .where(and_(tables.Product.id == product_id, tables.Product.version == expected_version))
            .values(stock=new_stock, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                f"Stock update for product {product_id} lost: version {expected_version} is stale"
            )
            return False
        return True

    # Orders

    def _order_row(self, order_id: int) -> tables.Order:
        row = self.db.get(tables.Order, order_id)
        if row is None:
            raise NotFoundError("Order", order_id)
        return row

    def get_order(self, order_id: int) -> Order:
        return _order_from_row(self._order_row(order_id))

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        query = self.db.query(tables.Order)
        if status is not None:
            query = query.filter(tables.Order.status == OrderStatus(status).value)
        return [_order_from_row(row) for row in query.order_by(tables.Order.id).all()]

    def save_order(self, order: Order) -> Order:
        if order.id is None:
            row = tables.Order()
            self.db.add(row)
        else:
            row = self._order_row(order.id)

        row.order_date = order.order_date
        row.status = order.status.value
        row.subtotal = order.subtotal
        row.igv = order.igv
        row.total = order.total

        kept_ids = {item.id for item in order.items if item.id is not None}
        for item_row in list(row.order_items):
            if item_row.id not in kept_ids:
                row.order_items.remove(item_row)

        new_rows = []
        for item in order.items:
            if item.id is None:
                item_row = tables.OrderItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    subtotal=item.subtotal,
                )
                row.order_items.append(item_row)
                new_rows.append((item, item_row))

        self.db.flush()
        order.id = row.id
        for item, item_row in new_rows:
            item.id = item_row.id
        for item in order.items:
            item.order_id = row.id
        return order

    def delete_order(self, order_id: int) -> None:
        self.db.delete(self._order_row(order_id))
        self.db.flush()

    # Transactions

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
