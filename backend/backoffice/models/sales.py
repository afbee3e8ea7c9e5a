from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z


ADDRESS_TYPES = ("billing", "shipping", "both")


class Customer(db.Model):
    """
    Buyer, deduplicated across imported orders.

    MATCHING:
    - With an email: email is the natural key (unique).
    - Without an email (marketplace/anonymous orders): the composite
      (email IS NULL, name, phone) identifies the customer.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_anonymous", "name", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class Address(db.Model):
    """
    Postal address owned by one customer.

    DEDUP: address_hash is the SHA-256 of the normalized field set; the pair
    (customer_id, address_hash) is unique. An address seen as billing and
    later as shipping (or vice versa) is promoted to type "both".
    """
    __tablename__ = "addresses"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "address_hash", name="uq_addresses_customer_hash"),
        db.CheckConstraint("type IN ('billing', 'shipping', 'both')", name="ck_addresses_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    address2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(128), nullable=True)
    zip = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(64), nullable=True)

    address_hash = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("addresses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "type": self.type,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "address2": self.address2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
        }


class OrderAddress(db.Model):
    """Order ↔ Address link, recording how the order used the address."""
    __tablename__ = "order_addresses"
    __table_args__ = (
        db.UniqueConstraint("order_id", "address_id", name="uq_order_addresses"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=False, index=True)
    usage = db.Column(db.String(16), nullable=False)

    address = db.relationship("Address")


class Order(db.Model):
    """
    Imported order.

    DESIGN:
    - external_order_id is the natural key (external "OrderID").
    - product_id comes from the external "BrandID" column, which is really a
      product foreign key. It drives access inheritance (Order -> Product).
    - Money columns hold fixed 2-decimal strings ("110.00") so re-imports
      compare exactly what was stored, not a float approximation.
    - is_* / has_* flags are derived at import time and recomputed on update.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_product", "product_id"),
        db.Index("ix_orders_order_date", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_order_id = db.Column(db.Integer, nullable=False, unique=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    agent = db.Column(db.String(128), nullable=True)
    created = db.Column(db.DateTime(timezone=True), nullable=False)
    order_date = db.Column(db.Date, nullable=True)
    order_num = db.Column(db.String(64), nullable=True)
    order_n = db.Column(db.String(64), nullable=True)

    product_total = db.Column(db.String(32), nullable=False, default="0.00")
    grand_total = db.Column(db.String(32), nullable=False, default="0.00")
    shipping = db.Column(db.String(32), nullable=False, default="0.00")
    shipping_method = db.Column(db.String(128), nullable=True)

    refund = db.Column(db.Boolean, nullable=False, default=False)
    refund_type = db.Column(db.String(64), nullable=True)
    refund_amount = db.Column(db.String(32), nullable=False, default="0.00")
    refund_amount_raw = db.Column(db.String(64), nullable=True)
    refund_amount_is_valid = db.Column(db.Boolean, nullable=False, default=True)
    is_refunded = db.Column(db.Boolean, nullable=False, default=False)
    is_partial_refund = db.Column(db.Boolean, nullable=False, default=False)

    is_marketplace = db.Column(db.Boolean, nullable=False, default=False)
    has_missing_contact_info = db.Column(db.Boolean, nullable=False, default=False)

    imported_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("orders", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    address_links = db.relationship("OrderAddress", backref="order", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_order_id": self.external_order_id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "agent": self.agent,
            "created": to_utc_z(self.created),
            "order_date": to_iso_date(self.order_date),
            "order_num": self.order_num,
            "order_n": self.order_n,
            "product_total": self.product_total,
            "grand_total": self.grand_total,
            "shipping": self.shipping,
            "shipping_method": self.shipping_method,
            "refund": self.refund,
            "refund_type": self.refund_type,
            "refund_amount": self.refund_amount,
            "refund_amount_raw": self.refund_amount_raw,
            "refund_amount_is_valid": self.refund_amount_is_valid,
            "is_refunded": self.is_refunded,
            "is_partial_refund": self.is_partial_refund,
            "is_marketplace": self.is_marketplace,
            "has_missing_contact_info": self.has_missing_contact_info,
        }


class OrderItem(db.Model):
    """
    Order line, keyed by the external idOrderItem.

    Questionable source values (negative price, zero quantity) are stored
    as-is with is_valid=False and a reason list, never rejected.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_order", "order_id"),
        db.Index("ix_order_items_item", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.Integer, nullable=False, unique=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("product_items.id"), nullable=False)

    price = db.Column(db.String(32), nullable=False, default="0.00")
    qty = db.Column(db.Integer, nullable=False, default=0)
    line_total = db.Column(db.String(32), nullable=False, default="0.00")

    price_raw = db.Column(db.String(64), nullable=True)
    qty_raw = db.Column(db.String(64), nullable=True)
    is_valid = db.Column(db.Boolean, nullable=False, default=True)
    validation_errors = db.Column(db.JSON, nullable=True)

    order = db.relationship("Order", backref=db.backref("items", lazy=True))
    product_item = db.relationship("ProductItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "price": self.price,
            "qty": self.qty,
            "line_total": self.line_total,
            "is_valid": self.is_valid,
            "validation_errors": self.validation_errors or [],
        }
