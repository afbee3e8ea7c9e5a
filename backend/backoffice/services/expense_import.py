# Overview: Upsert of one external expense row keyed by (date, product, expense type).

from __future__ import annotations

from typing import Any

from flask import current_app

from ..entities import ReferenceHandlingPolicy
from ..errors import ReferentialSkip
from ..extensions import db
from ..models import Expense, ExpenseType, Product
from ..time_utils import parse_date
from .concurrency import get_or_create
from .money import money_changed, normalize_decimal
from .reference_sync import sync_expense_type, sync_product


def _product_payload(row: dict[str, Any], product_id: int) -> dict[str, Any]:
    return {
        "ProductID": product_id,
        "Product": row.get("ProductName"),
        "Brand": row.get("ProductBrand"),
        "CategoryName": row.get("CategoryName"),
        "GenderName": row.get("GenderName"),
        "newSystem": row.get("ProductNewSystem"),
        "Visible": row.get("ProductVisible"),
        "flyer": row.get("ProductFlyer"),
    }


def ensure_references(row: dict[str, Any], policy: ReferenceHandlingPolicy) -> tuple[int, int]:
    """
    Make sure the expense type and product exist (or skip).

    Under auto-create the expense type is synced first, then the product.
    """
    external_id = row.get("id")
    product_id = int(row["ProductID"])
    expense_type_id = int(row["ExpenseID"])

    if policy == ReferenceHandlingPolicy.AUTO_CREATE:
        sync_expense_type(expense_type_id, row.get("ExpenseTypeName"))
        if db.session.get(Product, product_id) is None:
            sync_product(_product_payload(row, product_id))
        return product_id, expense_type_id

    if db.session.get(ExpenseType, expense_type_id) is None:
        raise ReferentialSkip("expense", external_id, "expense_type", expense_type_id)
    if db.session.get(Product, product_id) is None:
        raise ReferentialSkip("expense", external_id, "product", product_id)
    return product_id, expense_type_id


def import_expense(row: dict[str, Any], policy: ReferenceHandlingPolicy) -> str:
    """Returns "created", "updated" or "unchanged"."""
    expense_date = parse_date(row.get("ExpenseDate"))
    if expense_date is None:
        raise ValueError(f"Expense {row.get('id')} has no readable ExpenseDate")

    product_id, expense_type_id = ensure_references(row, policy)
    amount = normalize_decimal(row.get("Expense"))

    key = {
        "expense_date": expense_date,
        "product_id": product_id,
        "expense_type_id": expense_type_id,
    }
    expense = db.session.query(Expense).filter_by(**key).first()
    if expense is None:
        expense, created = get_or_create(
            Expense,
            defaults={"amount": amount, "external_id": row.get("id")},
            **key,
        )
        if created:
            current_app.logger.debug("Created expense %s for product %s on %s", expense.id, product_id, expense_date)
            return "created"

    if not money_changed(expense.amount, amount):
        return "unchanged"

    expense.amount = amount
    db.session.flush()
    return "updated"
