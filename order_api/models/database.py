from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from order_api.core.config import CURRENCY_PLACES
from order_api.core.database import Base
from order_api.domain.entities import MONEY_DIGITS

MONEY = Numeric(MONEY_DIGITS, CURRENCY_PLACES)


class Category(Base):
    """Product category"""
    __tablename__ = "categories"

    id = Column("id_category", Integer, primary_key=True, index=True)
    name = Column("name_category", String(120), nullable=False)


class Product(Base):
    """Product in the catalog; version is used for optimistic locking on stock"""
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock_product >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column("id_product", Integer, primary_key=True, index=True)
    name = Column("name_product", String(200), nullable=False)
    price = Column(MONEY, nullable=False)
    description = Column("description_producto", String)
    stock = Column("stock_product", Integer, nullable=False, default=0)
    category_id = Column(
        "id_category",
        Integer,
        ForeignKey("categories.id_category", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    version = Column(Integer, nullable=False, default=1)


class Order(Base):
    """Customer order; owns its items"""
    __tablename__ = "orders"

    id = Column("id_order", Integer, primary_key=True, index=True)
    order_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    subtotal = Column(MONEY, nullable=False, default=0)
    igv = Column(MONEY, nullable=False, default=0)
    total = Column(MONEY, nullable=False, default=0)

    order_items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    """Line of an order; unit_price is the product price when the line was added"""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column("id_order_item", Integer, primary_key=True, index=True)
    order_id = Column(
        "id_order", Integer, ForeignKey("orders.id_order", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        "id_product", Integer, ForeignKey("products.id_product", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    subtotal = Column(MONEY, nullable=False)

    order = relationship("Order", back_populates="order_items")
