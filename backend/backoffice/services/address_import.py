# Overview: Billing/shipping address extraction, dedup and order linking for imported orders.

"""
Address Import

PRESENCE: a billing or shipping block counts only if at least one of
address, city, zip is non-empty. Blank blocks never create rows.

SHAPES:
- billing only            -> one address, type billing
- shipping only           -> one address, type shipping
- both, equal             -> one address, type both
- both, different         -> two addresses
Equality is case-insensitive over trimmed address/address2/city/state/zip/
country.

DEDUP: (customer_id, address_hash) is unique. Seeing a stored billing
address again as shipping (or the reverse) promotes it to "both". Linking an
address to an order is idempotent.
"""

from __future__ import annotations

import hashlib
from typing import Any

from ..extensions import db
from ..models import Address, Customer, Order, OrderAddress
from .concurrency import get_or_create


ADDRESS_FIELDS = ("address", "address2", "city", "state", "zip", "country")
PRESENCE_FIELDS = ("address", "city", "zip")


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_address(row: dict[str, Any], prefix: str) -> dict[str, str | None] | None:
    """Address block for prefix "Billing" or "Shipping", or None when blank."""
    fields = {
        "address": _clean(row.get(f"{prefix}Address")),
        "address2": _clean(row.get(f"{prefix}Address2")),
        "city": _clean(row.get(f"{prefix}City")),
        "state": _clean(row.get(f"{prefix}State")),
        "zip": _clean(row.get(f"{prefix}Zip")),
        "country": _clean(row.get(f"{prefix}Country")),
    }
    if not any(fields[name] for name in PRESENCE_FIELDS):
        return None

    if prefix == "Shipping":
        fields["name"] = _clean(row.get("ShippingName"))
        fields["phone"] = _clean(row.get("ShippingPhone"))
    else:
        fields["name"] = _clean(row.get("Name"))
        fields["phone"] = _clean(row.get("Phone"))
    return fields


def _normalized(fields: dict[str, Any]) -> tuple[str, ...]:
    return tuple((fields.get(name) or "").strip().lower() for name in ADDRESS_FIELDS)


def addresses_equal(a: dict[str, Any], b: dict[str, Any]) -> bool:
    return _normalized(a) == _normalized(b)


def address_hash(fields: dict[str, Any]) -> str:
    return hashlib.sha256("|".join(_normalized(fields)).encode("utf-8")).hexdigest()


def find_or_create_address(customer: Customer, fields: dict[str, Any], address_type: str) -> tuple[Address, bool]:
    """Returns (address, changed) where changed covers creation and type promotion."""
    digest = address_hash(fields)
    defaults = {name: fields.get(name) for name in (*ADDRESS_FIELDS, "name", "phone")}
    defaults["type"] = address_type

    address, created = get_or_create(
        Address,
        defaults=defaults,
        customer_id=customer.id,
        address_hash=digest,
    )
    if created:
        return address, True

    if address.type != address_type and address.type != "both":
        address.type = "both"
        db.session.flush()
        return address, True
    return address, False


def attach_address(order: Order, address: Address, usage: str) -> bool:
    link = db.session.query(OrderAddress).filter_by(order_id=order.id, address_id=address.id).first()
    if link is None:
        db.session.add(OrderAddress(order_id=order.id, address_id=address.id, usage=usage))
        db.session.flush()
        return True
    if link.usage != usage and link.usage != "both":
        link.usage = "both"
        db.session.flush()
        return True
    return False


def import_order_addresses(order: Order, customer: Customer, row: dict[str, Any]) -> bool:
    """Create/dedup the order's addresses and link them. Returns whether anything changed."""
    billing = extract_address(row, "Billing")
    shipping = extract_address(row, "Shipping")

    blocks: list[tuple[dict[str, Any], str]] = []
    if billing and shipping and addresses_equal(billing, shipping):
        blocks.append((billing, "both"))
    else:
        if billing:
            blocks.append((billing, "billing"))
        if shipping:
            blocks.append((shipping, "shipping"))

    changed = False
    for fields, usage in blocks:
        address, address_changed = find_or_create_address(customer, fields, usage)
        linked = attach_address(order, address, usage)
        changed = changed or address_changed or linked
    return changed
