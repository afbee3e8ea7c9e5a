from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date


class Expense(db.Model):
    """
    Imported product expense.

    WHY the triple key: the external expenses table has an id column, but it
    is not stable across the exports this data historically came from.
    (expense_date, product_id, expense_type_id) is what identifies an
    expense, so it carries the unique constraint.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.UniqueConstraint("expense_date", "product_id", "expense_type_id", name="uq_expenses_natural_key"),
        db.Index("ix_expenses_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.Integer, nullable=True)

    expense_date = db.Column(db.Date, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    expense_type_id = db.Column(db.Integer, db.ForeignKey("expense_types.id"), nullable=False)
    amount = db.Column(db.String(32), nullable=False, default="0.00")

    imported_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("expenses", lazy=True))
    expense_type = db.relationship("ExpenseType")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "expense_date": to_iso_date(self.expense_date),
            "product_id": self.product_id,
            "expense_type_id": self.expense_type_id,
            "amount": self.amount,
        }
