# Overview: Upsert of one external order row with its customer, addresses and items.

"""
Order Import

ORDER OF WORK (one row, one transaction owned by the orchestrator):
1. Product reference (external "BrandID"): skip or auto-create per policy
2. Customer find-or-create
3. Order create, or update of fields that changed
4. Addresses (dedup + link)
5. Order items

DERIVED FIELDS (recomputed on every import):
- is_marketplace: email, name and phone all empty, or the agent names a
  marketplace channel
- has_missing_contact_info: any of email/name/phone empty
- is_refunded: refund amount > 0
- is_partial_refund: refunded, grand total > 0, refund < grand total
- refund_amount_is_valid: raw refund amount is empty, numeric, or numeric
  once non-numeric characters are stripped

RESULT: "created", "updated" (order fields, addresses or items changed) or
"unchanged". A missing product under skip-on-missing raises ReferentialSkip.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import current_app

from ..entities import ReferenceHandlingPolicy
from ..errors import ReferentialSkip
from ..extensions import db
from ..models import Order, Product
from ..time_utils import parse_date, parse_external_datetime, utcnow
from .address_import import import_order_addresses
from .concurrency import get_or_create
from .customer_import import extract_customer_fields, import_customer
from .money import is_valid_amount, money_changed, normalize_decimal
from .order_item_import import import_order_items
from .reference_sync import sync_product


MARKETPLACE_AGENT_KEYWORDS = ("amazon", "fba", "marketplace")
MONEY_FIELDS = ("product_total", "grand_total", "shipping", "refund_amount")
FALSE_FLAGS = ("", "0", "no", "n", "false")


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any) -> int | None:
    if value is None or str(value).strip() == "":
        return None
    return int(value)


def is_marketplace_agent(agent: str | None) -> bool:
    if not agent:
        return False
    lowered = agent.lower()
    return any(keyword in lowered for keyword in MARKETPLACE_AGENT_KEYWORDS)


def derive_order_fields(row: dict[str, Any]) -> dict[str, Any]:
    """Column values for an Order built from one external row."""
    contact = extract_customer_fields(row)
    missing = [not contact[name] for name in ("email", "name", "phone")]
    agent = _clean(row.get("Agent"))

    grand_total = normalize_decimal(row.get("GrandTotal"))
    refund_raw = row.get("RefundAmount")
    refund_amount = normalize_decimal(refund_raw)
    refund_value = Decimal(refund_amount)
    grand_value = Decimal(grand_total)
    is_refunded = refund_value > 0

    refund_type = _clean(row.get("Refund"))

    return {
        "agent": agent,
        "created": parse_external_datetime(row.get("Created")),
        "order_date": parse_date(row.get("OrderDate")),
        "order_num": _clean(row.get("OrderNum")),
        "order_n": _clean(row.get("OrderN")),
        "product_total": normalize_decimal(row.get("ProductTotal")),
        "grand_total": grand_total,
        "shipping": normalize_decimal(row.get("Shipping")),
        "shipping_method": _clean(row.get("ShippingMethod")),
        "refund": refund_type is not None and refund_type.lower() not in FALSE_FLAGS,
        "refund_type": refund_type,
        "refund_amount": refund_amount,
        "refund_amount_raw": None if refund_raw is None else str(refund_raw),
        "refund_amount_is_valid": is_valid_amount(refund_raw),
        "is_refunded": is_refunded,
        "is_partial_refund": is_refunded and grand_value > 0 and refund_value < grand_value,
        "is_marketplace": all(missing) or is_marketplace_agent(agent),
        "has_missing_contact_info": any(missing),
    }


def _apply_changes(order: Order, values: dict[str, Any]) -> list[str]:
    changed = []
    for field, value in values.items():
        current = getattr(order, field)
        if field in MONEY_FIELDS:
            if not money_changed(current, value):
                continue
        elif field == "created" and value is None:
            # unreadable Created keeps the first-seen timestamp
            continue
        elif current == value:
            continue
        setattr(order, field, value)
        changed.append(field)
    return changed


def ensure_product(row: dict[str, Any], order_id: int, policy: ReferenceHandlingPolicy) -> int | None:
    product_id = _as_int(row.get("BrandID"))
    if product_id is None:
        return None
    if db.session.get(Product, product_id) is not None:
        return product_id

    if policy == ReferenceHandlingPolicy.SKIP_ON_MISSING:
        raise ReferentialSkip("order", order_id, "product", product_id)

    sync_product({
        "ProductID": product_id,
        "Product": row.get("ProductName"),
        "Brand": row.get("ProductBrand"),
    })
    return product_id


def import_order(row: dict[str, Any], policy: ReferenceHandlingPolicy) -> str:
    external_order_id = int(row["OrderID"])
    product_id = ensure_product(row, external_order_id, policy)

    customer, _ = import_customer(row)

    values = derive_order_fields(row)
    values["product_id"] = product_id
    values["customer_id"] = customer.id

    order = db.session.query(Order).filter_by(external_order_id=external_order_id).first()
    if order is None:
        defaults = dict(values)
        if defaults["created"] is None:
            defaults["created"] = utcnow()
        order, created = get_or_create(Order, defaults=defaults, external_order_id=external_order_id)
        if created:
            import_order_addresses(order, customer, row)
            import_order_items(order, row.get("items") or [])
            current_app.logger.debug("Created order %s", external_order_id)
            return "created"

    changed_fields = _apply_changes(order, values)
    if changed_fields:
        db.session.flush()

    addresses_changed = import_order_addresses(order, customer, row)
    item_counts = import_order_items(order, row.get("items") or [])

    if changed_fields or addresses_changed or item_counts["created"] or item_counts["updated"]:
        current_app.logger.debug(
            "Updated order %s (%s)", external_order_id, ", ".join(changed_fields) or "addresses/items",
        )
        return "updated"
    return "unchanged"
