from fastapi import Depends
from sqlalchemy.orm import Session

from order_api.core.database import get_db
from order_api.repositories.sqlalchemy import SqlAlchemyStore
from order_api.services.catalog_service import CatalogService
from order_api.services.locks import KeyedLocks
from order_api.services.order_service import OrderService

# Shared by every request of this process so that one order is never
# mutated by two requests at once
order_locks = KeyedLocks()


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(SqlAlchemyStore(db))


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(SqlAlchemyStore(db), order_locks=order_locks)
