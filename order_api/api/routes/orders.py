from typing import List, Optional

from fastapi import APIRouter, Depends, Response

from order_api.api.dependencies import get_order_service
from order_api.models.schemas import Order, OrderCreate, OrderItemsAdd, OrderStatusChange
from order_api.services.order_service import OrderService

router = APIRouter()

@router.post("/", response_model=Order, status_code=201)
async def create_order(order_data: OrderCreate, service: OrderService = Depends(get_order_service)):
    """Create a pending order, reserving stock for its items"""
    items = [(item.product_id, item.quantity) for item in order_data.items]
    order = await service.create_order(items, order_date=order_data.order_date)
    return Order.model_validate(order)

@router.get("/", response_model=List[Order])
async def get_orders(status: Optional[str] = None, service: OrderService = Depends(get_order_service)):
    """Get all orders, optionally filtered by status"""
    return [Order.model_validate(order) for order in service.list_orders(status=status)]

@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: int, service: OrderService = Depends(get_order_service)):
    """Get a specific order"""
    return Order.model_validate(service.get_order(order_id))

@router.delete("/{order_id}", status_code=204)
async def delete_order(order_id: int, service: OrderService = Depends(get_order_service)):
    """Delete a pending or cancelled order"""
    await service.delete_order(order_id)
    return Response(status_code=204)

@router.post("/{order_id}/items", response_model=Order)
async def add_order_items(
    order_id: int,
    data: OrderItemsAdd,
    service: OrderService = Depends(get_order_service),
):
    """Add items to a pending or confirmed order"""
    await service.add_items(order_id, [(item.product_id, item.quantity) for item in data.items])
    return Order.model_validate(service.get_order(order_id))

@router.delete("/{order_id}/items/{item_id}", response_model=Order)
async def remove_order_item(
    order_id: int,
    item_id: int,
    service: OrderService = Depends(get_order_service),
):
    """Remove an item from an order, returning its stock"""
    return Order.model_validate(await service.remove_item(order_id, item_id))

@router.post("/{order_id}/status", response_model=Order)
async def change_order_status(
    order_id: int,
    data: OrderStatusChange,
    service: OrderService = Depends(get_order_service),
):
    """Move an order to another status"""
    return Order.model_validate(await service.transition_status(order_id, data.status))
