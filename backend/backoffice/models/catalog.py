from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Brand(db.Model):
    """
    Top of the access hierarchy.

    Natural key: name (imports reference brands by name only).
    """
    __tablename__ = "brands"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Category(db.Model):
    """Shared reference data; visible to anyone with some brand/product access."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Gender(db.Model):
    __tablename__ = "genders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Sellable product, keyed by the external ProductID.

    DESIGN: The primary key IS the external natural key, so orders and
    expenses can reference products without a mapping table. Category and
    gender are NOT NULL; imports that do not know them get the shared
    "Default" category and "Unisex" gender (see reference_sync).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_brand", "brand_id"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    name = db.Column(db.String(255), nullable=False)

    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False)
    main_category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    marketing_category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    gender_id = db.Column(db.Integer, db.ForeignKey("genders.id"), nullable=False)

    new_system = db.Column(db.Boolean, nullable=False, default=False)
    visible = db.Column(db.Boolean, nullable=False, default=True)
    flyer = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    main_category = db.relationship("Category", foreign_keys=[main_category_id])
    marketing_category = db.relationship("Category", foreign_keys=[marketing_category_id])
    gender = db.relationship("Gender")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand_id": self.brand_id,
            "main_category_id": self.main_category_id,
            "marketing_category_id": self.marketing_category_id,
            "gender_id": self.gender_id,
            "new_system": self.new_system,
            "visible": self.visible,
            "flyer": self.flyer,
        }


class ProductItem(db.Model):
    """Variant/SKU of a product, keyed by the external ItemID."""
    __tablename__ = "product_items"
    __table_args__ = (
        db.Index("ix_product_items_product", "product_id"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    name = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    product = db.relationship("Product", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "quantity": self.quantity,
            "active": self.active,
        }


class ExpenseType(db.Model):
    """Expense category, keyed by the external ExpenseID."""
    __tablename__ = "expense_types"

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}
