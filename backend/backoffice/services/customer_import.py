# Overview: Customer matching and upsert for imported orders.

from __future__ import annotations

from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Customer
from .concurrency import get_or_create


ANONYMOUS_CUSTOMER_NAME = "Anonymous Customer"


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_customer_fields(row: dict[str, Any]) -> dict[str, str | None]:
    """Email, name and phone for an order row, falling back to shipping/billing contact columns."""
    return {
        "email": _clean(row.get("Email")),
        "name": _clean(row.get("Name")) or _clean(row.get("ShippingName")),
        "phone": (
            _clean(row.get("Phone"))
            or _clean(row.get("BillingPhone"))
            or _clean(row.get("ShippingPhone"))
        ),
    }


def find_customer(email: str | None, name: str | None, phone: str | None) -> Customer | None:
    """
    Match by email when there is one; otherwise by (no email, name, phone).

    Anonymous rows without a name are stored under ANONYMOUS_CUSTOMER_NAME,
    so the lookup uses the same substitute.
    """
    if email:
        return db.session.query(Customer).filter_by(email=email).first()

    query = db.session.query(Customer).filter(
        Customer.email.is_(None),
        Customer.name == (name or ANONYMOUS_CUSTOMER_NAME),
    )
    if phone is None:
        query = query.filter(Customer.phone.is_(None))
    else:
        query = query.filter(Customer.phone == phone)
    return query.order_by(Customer.id.asc()).first()


def import_customer(row: dict[str, Any]) -> tuple[Customer, bool]:
    """
    Find or create the order's customer.

    Returns (customer, changed). Existing customers get name/phone updated
    only with non-empty values that differ.
    """
    fields = extract_customer_fields(row)
    email, name, phone = fields["email"], fields["name"], fields["phone"]

    customer = find_customer(email, name, phone)
    if customer is None:
        if email:
            customer, created = get_or_create(
                Customer,
                defaults={"name": name or ANONYMOUS_CUSTOMER_NAME, "phone": phone},
                email=email,
            )
        else:
            customer = Customer(email=None, name=name or ANONYMOUS_CUSTOMER_NAME, phone=phone)
            db.session.add(customer)
            db.session.flush()
            created = True
        if created:
            current_app.logger.debug("Created customer %s (%s)", customer.id, email or customer.name)
            return customer, True

    changed = False
    if name and customer.name != name:
        customer.name = name
        changed = True
    if phone and customer.phone != phone:
        customer.phone = phone
        changed = True
    if changed:
        db.session.flush()
    return customer, changed
