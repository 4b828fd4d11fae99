import asyncio
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import inspect

from order_api.core.exceptions import ConcurrentModificationError, InsufficientStockError, NotFoundError
from order_api.domain import catalog, ordering
from order_api.domain.entities import Category, Order, OrderStatus, Product
from order_api.repositories.sqlalchemy import SqlAlchemyStore
from order_api.services.catalog_service import CatalogService
from order_api.services.locks import KeyedLocks
from order_api.services.order_service import OrderService


@pytest.fixture
def sql_store(test_db):
    return SqlAlchemyStore(test_db)

@pytest.fixture
def sample_product(sql_store):
    """Create a sample product with only 5 items in stock"""
    service = CatalogService(sql_store)
    category = service.create_category("DJ Equipment")
    return service.create_product(
        name="Professional DJ Mixer",
        price=Decimal("10.00"),
        stock=5,
        category_id=category.id,
        description="High-quality DJ mixer for professional use",
    )


class TestTableLayout:

    def test_column_names(self, test_engine):
        inspector = inspect(test_engine)
        columns = {
            table: {column["name"] for column in inspector.get_columns(table)}
            for table in ("categories", "products", "orders", "order_items")
        }
        assert columns["categories"] == {"id_category", "name_category"}
        assert columns["products"] >= {
            "id_product", "name_product", "price", "description_producto", "stock_product", "id_category",
        }
        assert columns["orders"] == {"id_order", "order_date", "status", "subtotal", "igv", "total"}
        assert columns["order_items"] == {
            "id_order_item", "id_order", "id_product", "quantity", "unit_price", "subtotal",
        }


class TestSqlAlchemyStore:

    def test_category_round_trip(self, sql_store, sample_product):
        category = sql_store.get_category(sample_product.category_id)
        assert category.name == "DJ Equipment"
        assert [product.id for product in category.products] == [sample_product.id]
        assert category.products[0].price == Decimal("10.00")

    def test_missing_entities(self, sql_store):
        with pytest.raises(NotFoundError):
            sql_store.get_category(1)
        with pytest.raises(NotFoundError):
            sql_store.get_product(1)
        with pytest.raises(NotFoundError):
            sql_store.get_order(1)

    def test_order_round_trip(self, sql_store, sample_product):
        product = sql_store.get_product(sample_product.id)
        order = ordering.create_order(order_date=date(2024, 6, 15), lines=[(product, 2)])
        sql_store.save_order(order)
        sql_store.commit()

        assert order.items[0].id is not None
        loaded = sql_store.get_order(order.id)
        assert loaded.order_date == date(2024, 6, 15)
        assert loaded.status is OrderStatus.PENDING
        assert loaded.items[0].unit_price == Decimal("10.00")
        assert loaded.items[0].order_id == order.id
        assert (loaded.subtotal, loaded.igv, loaded.total) == (
            Decimal("20.00"), Decimal("3.60"), Decimal("23.60"),
        )
        ordering.verify_totals(loaded)
        assert sql_store.count_product_references(product.id) == 1

    def test_removed_items_are_deleted(self, sql_store, sample_product):
        product = sql_store.get_product(sample_product.id)
        order = ordering.create_order(lines=[(product, 1), (product, 1)])
        sql_store.save_order(order)
        sql_store.commit()

        ordering.remove_item(order, order.items[0].id, product)
        sql_store.save_order(order)
        sql_store.commit()

        assert len(sql_store.get_order(order.id).items) == 1
        assert sql_store.count_product_references(product.id) == 1

        sql_store.delete_order(order.id)
        sql_store.commit()
        assert sql_store.count_product_references(product.id) == 0

    def test_compare_and_swap_stock(self, sql_store, sample_product):
        assert sql_store.compare_and_swap_stock(sample_product.id, sample_product.version, 4)
        assert not sql_store.compare_and_swap_stock(sample_product.id, sample_product.version, 3)
        sql_store.commit()

        product = sql_store.get_product(sample_product.id)
        assert product.stock == 4
        assert product.version == sample_product.version + 1

    def test_stale_product_update_is_rejected(self, sql_store, sample_product, session_factory):
        other = SqlAlchemyStore(session_factory())
        try:
            fresh = other.get_product(sample_product.id)
            catalog.update_product(fresh, price=Decimal("11.00"))
            other.save_product(fresh)
            other.commit()
        finally:
            other.db.close()

        stale = sample_product
        catalog.update_product(stale, price=Decimal("12.00"))
        with pytest.raises(ConcurrentModificationError):
            sql_store.save_product(stale)
        sql_store.rollback()
        assert sql_store.get_product(sample_product.id).price == Decimal("11.00")

    def test_cascade_delete_category(self, sql_store, sample_product):
        removal = catalog.remove_category(sql_store.get_category(sample_product.category_id), cascade=True)
        sql_store.delete_category(removal)
        sql_store.commit()

        assert not sql_store.category_exists(removal.category_id)
        with pytest.raises(NotFoundError):
            sql_store.get_product(sample_product.id)

    def test_list_and_filter(self, sql_store, sample_product):
        other = Category(name="Lighting")
        sql_store.save_category(other)
        sql_store.save_product(Product(name="Strobe", price=Decimal("50.00"), stock=2, category_id=other.id))
        sql_store.save_order(Order())
        sql_store.commit()

        assert [category.name for category in sql_store.list_categories()] == ["DJ Equipment", "Lighting"]
        assert [product.name for product in sql_store.list_products(category_id=other.id)] == ["Strobe"]
        assert len(sql_store.list_products()) == 2
        assert len(sql_store.list_orders(status=OrderStatus.PENDING)) == 1
        assert sql_store.list_orders(status=OrderStatus.CANCELLED) == []


class TestConcurrentOrdersOnDatabase:
    """Each request gets its own session, like the API does"""

    @pytest.mark.asyncio
    async def test_race_condition_prevented(self, session_factory, sample_product):
        locks = KeyedLocks()
        sessions = [session_factory(), session_factory()]
        services = [OrderService(SqlAlchemyStore(db), order_locks=locks, retry_backoff=0) for db in sessions]
        try:
            results = await asyncio.gather(
                *[service.create_order([(sample_product.id, 3)]) for service in services],
                return_exceptions=True,
            )
        finally:
            for db in sessions:
                db.close()

        successful_orders = sum(1 for result in results if isinstance(result, Order))
        errors = [result for result in results if isinstance(result, Exception)]
        assert successful_orders == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientStockError)

        db = session_factory()
        try:
            product = SqlAlchemyStore(db).get_product(sample_product.id)
        finally:
            db.close()
        assert product.stock == 2

    @pytest.mark.asyncio
    async def test_stale_read_is_retried(self, session_factory, sample_product):
        first = SqlAlchemyStore(session_factory())
        second = SqlAlchemyStore(session_factory())
        try:
            # first reads, second sells 3 in between, first's write must notice
            stale = first.get_product(sample_product.id)
            await OrderService(second, retry_backoff=0).create_order([(sample_product.id, 3)])

            assert not first.compare_and_swap_stock(stale.id, stale.version, stale.stock - 3)
            first.rollback()

            with pytest.raises(InsufficientStockError):
                await OrderService(first, retry_backoff=0).create_order([(sample_product.id, 3)])
            assert first.get_product(sample_product.id).stock == 2
        finally:
            first.db.close()
            second.db.close()
