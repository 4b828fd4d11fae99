from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from order_api.domain.entities import OrderStatus


class CategoryCreate(BaseModel):
    name: str

class CategoryUpdate(BaseModel):
    name: str

class ProductBase(BaseModel):
    name: str
    price: Decimal
    description: Optional[str] = None
    stock: int
    category_id: int

class ProductCreate(ProductBase):
    pass

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = None
    description: Optional[str] = None
    stock: Optional[int] = None
    category_id: Optional[int] = None

class Product(ProductBase):
    id: int
    version: int

    class Config:
        from_attributes = True

class Category(BaseModel):
    id: int
    name: str
    products: List[Product] = []

    class Config:
        from_attributes = True

class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int

class OrderItem(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True

class OrderCreate(BaseModel):
    order_date: Optional[date] = None
    items: List[OrderItemCreate] = []

class OrderItemsAdd(BaseModel):
    items: List[OrderItemCreate]

class OrderStatusChange(BaseModel):
    status: str

class Order(BaseModel):
    id: int
    order_date: date
    status: OrderStatus
    subtotal: Decimal
    igv: Decimal
    total: Decimal
    items: List[OrderItem] = []

    class Config:
        from_attributes = True

class ErrorResponse(BaseModel):
    detail: str
    code: str
    details: dict = {}
