# Overview: Find-or-create services for brands, products and expense types referenced by import rows.

"""
Reference Sync

WHY: Imported orders and expenses point at products and expense types by
their external ids, and products point at brands by name. Under the
auto-create policy, missing references are created here; existing ones are
refreshed with whatever the import row knows.

RULES:
- Natural keys: brand name, product id (external ProductID), expense type
  id (external ExpenseID).
- Create fills NOT-NULL gaps with shared defaults ("Default" brand,
  "Default" category, "Unisex" gender), each created once.
- Update touches only fields that are present (non-null) in the row and
  differ from what is stored. Nothing is ever nulled out, and a product's
  brand only changes when the row names a brand.
- Concurrent creators converge through unique constraints and read-back
  (concurrency.get_or_create).
"""

from __future__ import annotations

from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Brand, Category, ExpenseType, Gender, Product
from .concurrency import get_or_create


DEFAULT_BRAND_NAME = "Default"
DEFAULT_CATEGORY_NAME = "Default"
DEFAULT_GENDER_NAME = "Unisex"


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_bool(value: Any) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def default_category() -> Category:
    category, _ = get_or_create(Category, name=DEFAULT_CATEGORY_NAME)
    return category


def default_gender() -> Gender:
    gender, _ = get_or_create(Gender, name=DEFAULT_GENDER_NAME)
    return gender


def sync_category(name: Any) -> Category | None:
    name = _clean(name)
    if name is None:
        return None
    category, _ = get_or_create(Category, name=name)
    return category


def sync_gender(name: Any) -> Gender | None:
    name = _clean(name)
    if name is None:
        return None
    gender, _ = get_or_create(Gender, name=name)
    return gender


def sync_brand(name: Any) -> Brand:
    """Brand by name; a blank name resolves to the shared default brand."""
    name = _clean(name) or DEFAULT_BRAND_NAME
    brand, created = get_or_create(Brand, name=name)
    if created:
        current_app.logger.info("Created brand %r (id=%s)", brand.name, brand.id)
    return brand


def sync_product(data: dict[str, Any]) -> Product:
    """
    Product by external ProductID.

    Recognized keys: ProductID (required), Product (name), Brand (name),
    CategoryName, GenderName, newSystem, Visible, flyer.
    """
    product_id = int(data["ProductID"])
    name = _clean(data.get("Product"))
    brand_name = _clean(data.get("Brand"))
    category = sync_category(data.get("CategoryName"))
    gender = sync_gender(data.get("GenderName"))
    new_system = _to_bool(data.get("newSystem"))
    visible = _to_bool(data.get("Visible"))
    flyer = _clean(data.get("flyer"))

    product = db.session.get(Product, product_id)
    if product is None:
        brand = sync_brand(brand_name)
        defaults = {
            "name": name or f"Product {product_id}",
            "brand_id": brand.id,
            "main_category_id": (category or default_category()).id,
            "gender_id": (gender or default_gender()).id,
            "new_system": bool(new_system) if new_system is not None else False,
            "visible": visible if visible is not None else True,
            "flyer": flyer,
        }
        product, created = get_or_create(Product, defaults=defaults, id=product_id)
        if created:
            current_app.logger.info("Created product %s (%r)", product.id, product.name)
            return product

    updates: dict[str, Any] = {}
    if name is not None and product.name != name:
        updates["name"] = name
    if brand_name is not None:
        brand = sync_brand(brand_name)
        if product.brand_id != brand.id:
            updates["brand_id"] = brand.id
    if category is not None and product.main_category_id != category.id:
        updates["main_category_id"] = category.id
    if gender is not None and product.gender_id != gender.id:
        updates["gender_id"] = gender.id
    if new_system is not None and product.new_system != new_system:
        updates["new_system"] = new_system
    if visible is not None and product.visible != visible:
        updates["visible"] = visible
    if flyer is not None and product.flyer != flyer:
        updates["flyer"] = flyer

    if updates:
        for field, value in updates.items():
            setattr(product, field, value)
        db.session.flush()
        current_app.logger.info("Updated product %s: %s", product.id, ", ".join(sorted(updates)))

    return product


def sync_expense_type(expense_type_id: Any, name: Any = None) -> ExpenseType:
    """Expense type by external ExpenseID; unnamed types get "Expense Type {id}"."""
    expense_type_id = int(expense_type_id)
    name = _clean(name)

    expense_type, created = get_or_create(
        ExpenseType,
        defaults={"name": name or f"Expense Type {expense_type_id}"},
        id=expense_type_id,
    )
    if created:
        current_app.logger.info("Created expense type %s (%r)", expense_type.id, expense_type.name)
    elif name is not None and expense_type.name != name:
        expense_type.name = name
        db.session.flush()
    return expense_type
