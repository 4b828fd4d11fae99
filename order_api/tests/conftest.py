from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from order_api.core.database import get_db, init_db, make_engine
from order_api.repositories.memory import InMemoryStore
from order_api.services.catalog_service import CatalogService
from order_api.services.order_service import OrderService


@pytest.fixture
def store():
    return InMemoryStore()

@pytest.fixture
def catalog_service(store):
    return CatalogService(store)

@pytest.fixture
def order_service(store):
    return OrderService(store, retry_backoff=0)

@pytest.fixture
def category(catalog_service):
    return catalog_service.create_category("DJ Equipment")

@pytest.fixture
def mixer(catalog_service, category):
    """Only 5 items in stock"""
    return catalog_service.create_product(
        name="Professional DJ Mixer",
        price=Decimal("10.00"),
        stock=5,
        category_id=category.id,
        description="Two channel mixer",
    )

@pytest.fixture
def headphones(catalog_service, category):
    return catalog_service.create_product(
        name="DJ Headphones",
        price=Decimal("5.00"),
        stock=10,
        category_id=category.id,
    )

# Relational store on a SQLite file per test

@pytest.fixture
def test_engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()

@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    del app.dependency_overrides[get_db]
