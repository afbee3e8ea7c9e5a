# Overview: Order line upsert with source-data validation flags.

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Order, OrderItem, ProductItem
from .concurrency import get_or_create
from .money import TWO_PLACES, money_changed, normalize_decimal, parse_amount


PRICE_WARNING_THRESHOLD = Decimal("10000")
QTY_WARNING_THRESHOLD = 1000


def _raw(value: Any) -> str | None:
    return None if value is None else str(value)


def _parse_qty(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return None


def validate_item(price_raw: Any, qty_raw: Any) -> dict[str, Any]:
    """
    Normalized price/qty plus validity flags.

    Bad values are kept, not rejected: negative price, zero/negative or
    non-numeric quantity mark the line invalid; zero price, very large price
    or quantity are recorded as warnings only.
    """
    errors: list[str] = []
    is_valid = True

    price = parse_amount(price_raw)
    if price is None:
        errors.append("Price is not numeric")
        is_valid = False
        price = Decimal("0")
    elif price < 0:
        errors.append("Negative price")
        is_valid = False
    elif price == 0:
        errors.append("Warning: zero price")
    elif price > PRICE_WARNING_THRESHOLD:
        errors.append("Warning: unusually high price")

    qty = _parse_qty(qty_raw)
    if qty is None:
        errors.append("Quantity is not numeric")
        is_valid = False
        qty = 0
    elif qty <= 0:
        errors.append("Quantity must be positive")
        is_valid = False
    elif qty > QTY_WARNING_THRESHOLD:
        errors.append("Warning: unusually high quantity")

    price_str = normalize_decimal(price)
    return {
        "price": price_str,
        "qty": qty,
        "line_total": str((Decimal(price_str) * qty).quantize(TWO_PLACES)),
        "price_raw": _raw(price_raw),
        "qty_raw": _raw(qty_raw),
        "is_valid": is_valid,
        "validation_errors": errors or None,
    }


def import_order_item(order: Order, row: dict[str, Any]) -> str:
    """
    Upsert one external order item for an already-imported order.

    Returns "created", "updated", "unchanged" or "skipped" (referenced
    ProductItem missing locally).
    """
    external_id = int(row["idOrderItem"])
    item_id = int(row["ItemID"]) if row.get("ItemID") is not None else None

    if item_id is None or db.session.get(ProductItem, item_id) is None:
        current_app.logger.warning(
            "Order item %s of order %s skipped: product item %s not found",
            external_id, order.external_order_id, item_id,
        )
        return "skipped"

    values = validate_item(row.get("Price"), row.get("Qty"))
    values["order_id"] = order.id
    values["item_id"] = item_id

    existing = db.session.query(OrderItem).filter_by(external_id=external_id).first()
    if existing is None:
        existing, created = get_or_create(OrderItem, defaults=values, external_id=external_id)
        if created:
            return "created"

    changed = (
        existing.order_id != values["order_id"]
        or existing.item_id != values["item_id"]
        or existing.qty != values["qty"]
        or money_changed(existing.price, values["price"])
    )
    if not changed:
        return "unchanged"

    for field, value in values.items():
        setattr(existing, field, value)
    db.session.flush()
    return "updated"


def import_order_items(order: Order, items: list[dict[str, Any]]) -> dict[str, int]:
    counts = {"created": 0, "updated": 0, "unchanged": 0, "skipped": 0}
    for item in items or ():
        counts[import_order_item(order, item)] += 1
    return counts
