from typing import List, Optional

from fastapi import APIRouter, Depends, Response

from order_api.api.dependencies import get_catalog_service
from order_api.models.schemas import Product, ProductCreate, ProductUpdate
from order_api.services.catalog_service import CatalogService

router = APIRouter()

@router.post("/", response_model=Product, status_code=201)
async def create_product(data: ProductCreate, service: CatalogService = Depends(get_catalog_service)):
    """Create a new product in an existing category"""
    return Product.model_validate(service.create_product(**data.model_dump()))

@router.get("/", response_model=List[Product])
async def get_products(
    category_id: Optional[int] = None,
    service: CatalogService = Depends(get_catalog_service),
):
    """Get all products, optionally of one category"""
    return [Product.model_validate(product) for product in service.list_products(category_id=category_id)]

@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: int, service: CatalogService = Depends(get_catalog_service)):
    """Get a specific product"""
    return Product.model_validate(service.get_product(product_id))

@router.put("/{product_id}", response_model=Product)
async def update_product(
    product_id: int,
    data: ProductUpdate,
    service: CatalogService = Depends(get_catalog_service),
):
    """Update a product"""
    product = service.update_product(product_id, **data.model_dump(exclude_unset=True))
    return Product.model_validate(product)

@router.delete("/{product_id}", status_code=204)
async def delete_product(product_id: int, service: CatalogService = Depends(get_catalog_service)):
    """Delete a product that no order item references"""
    service.remove_product(product_id)
    return Response(status_code=204)
