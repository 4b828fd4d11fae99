"""
Category/Product aggregate.

Product.category_id is the authoritative side of the association; the
category's product container is a view kept in step with it. Nothing here
touches persistence: operations return plain results that a store applies.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Tuple

from order_api.core.exceptions import IntegrityError, NotFoundError, ValidationError
from order_api.domain.entities import Category, Product, to_money

_UPDATABLE_PRODUCT_FIELDS = frozenset({"name", "price", "description", "stock", "category_id"})


@dataclass(frozen=True)
class CategoryRemoval:
    """What has to be deleted to remove a category."""

    category_id: int
    product_ids: Tuple[int, ...] = ()


def validate_category(category: Category) -> Category:
    if not isinstance(category.name, str) or not category.name.strip():
        raise ValidationError("Category name must not be empty", field="name", value=category.name)
    return category


def validate_product(product: Product) -> Product:
    if not isinstance(product.name, str) or not product.name.strip():
        raise ValidationError("Product name must not be empty", field="name", value=product.name)
    product.price = to_money(product.price, "price")
    if isinstance(product.stock, bool) or not isinstance(product.stock, int):
        raise ValidationError("Product stock must be an integer", field="stock", value=product.stock)
    if product.stock < 0:
        raise ValidationError("Product stock must not be negative", field="stock", value=product.stock)
    if product.category_id is None:
        raise ValidationError("Product must belong to a category", field="category_id")
    return product


def add_product(category: Category, product: Product) -> Category:
    """Put a product into its category, replacing any copy with the same id."""
    if product.category_id != category.id:
        raise ValidationError(
            f"Product '{product.id}' belongs to category '{product.category_id}', "
            f"not '{category.id}'",
            field="category_id",
            value=product.category_id,
        )
    if product.id is None:
        raise ValidationError("Product must be saved before joining a category", field="id")
    validate_product(product)
    category._products[product.id] = product
    return category


def detach_product(category: Category, product_id: int) -> Product:
    try:
        return category._products.pop(product_id)
    except KeyError:
        raise NotFoundError("Product", product_id)


def update_product(product: Product, **changes) -> Product:
    """Apply field changes to a product; nothing changes if validation fails."""
    unknown = set(changes) - _UPDATABLE_PRODUCT_FIELDS
    if unknown:
        field_name = sorted(unknown)[0]
        raise ValidationError(f"Product field '{field_name}' cannot be updated", field=field_name)

    candidate = validate_product(replace(product, **changes))
    for name in changes:
        setattr(product, name, getattr(candidate, name))
    return product


def ensure_product_removable(product: Product, reference_count: int) -> None:
    if reference_count > 0:
        raise IntegrityError(
            f"Product '{product.id}' is referenced by {reference_count} order item(s)",
            details={"product_id": str(product.id), "references": reference_count},
        )


def remove_category(
    category: Category,
    cascade: bool = False,
    referenced_product_ids: Iterable[int] = (),
) -> CategoryRemoval:
    """
    Decide how a category is removed.

    A category that still owns products is only removed with ``cascade``;
    the owned products go with it, unless an order item still points at
    one of them.
    """
    product_ids = tuple(sorted(category._products))
    if product_ids and not cascade:
        raise IntegrityError(
            f"Category '{category.id}' still has {len(product_ids)} product(s)",
            details={"category_id": str(category.id), "product_ids": list(product_ids)},
        )

    referenced = sorted(set(referenced_product_ids) & set(product_ids))
    if referenced:
        raise IntegrityError(
            f"Category '{category.id}' has products referenced by orders",
            details={"category_id": str(category.id), "product_ids": referenced},
        )

    category._products.clear()
    return CategoryRemoval(category_id=category.id, product_ids=product_ids)
