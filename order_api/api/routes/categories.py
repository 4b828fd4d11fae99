from typing import List

from fastapi import APIRouter, Depends, Response

from order_api.api.dependencies import get_catalog_service
from order_api.models.schemas import Category, CategoryCreate, CategoryUpdate
from order_api.services.catalog_service import CatalogService

router = APIRouter()

@router.post("/", response_model=Category, status_code=201)
async def create_category(data: CategoryCreate, service: CatalogService = Depends(get_catalog_service)):
    """Create a new category"""
    return Category.model_validate(service.create_category(data.name))

@router.get("/", response_model=List[Category])
async def get_categories(service: CatalogService = Depends(get_catalog_service)):
    """Get all categories with their products"""
    return [Category.model_validate(category) for category in service.list_categories()]

@router.get("/{category_id}", response_model=Category)
async def get_category(category_id: int, service: CatalogService = Depends(get_catalog_service)):
    """Get a specific category"""
    return Category.model_validate(service.get_category(category_id))

@router.put("/{category_id}", response_model=Category)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    service: CatalogService = Depends(get_catalog_service),
):
    """Rename a category"""
    return Category.model_validate(service.rename_category(category_id, data.name))

@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: int,
    cascade: bool = False,
    service: CatalogService = Depends(get_catalog_service),
):
    """Delete a category; with cascade=true its products are deleted too"""
    service.remove_category(category_id, cascade=cascade)
    return Response(status_code=204)
