# Overview: Read-only adapter over the external order/expense database.

"""
External Source Adapter

WHY: Orders and expenses originate in a legacy database we never write to.
This module is the only code that talks to it.

CONTRACT:
- Read-only. Only SELECT statements are executed (ReadOnlyViolation
  otherwise), on the "external" bind (EXTERNAL_DATABASE_URL).
- Three query modes per stream:
    get_*(from, to, limit)          bounded window, eager lookup joins
    stream_*_incremental(d, id)     keyset pages ordered (date, id),
                                    strictly after (d, id), never OFFSET
    stream_*_by_date_range(f, t)    one window per day, keyset inside a day
- Order items are batch-loaded per page with WHERE OrderID IN (...).
- Driver and query failures surface as ConnectivityError.
- test_connection() never raises.

Rows come back as plain dicts keyed by the legacy column names (billing and
shipping address columns aliased Billing*/Shipping*). Orders carry an
"items" list.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Iterator, Optional

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Select

from ..entities import ImportKind
from ..errors import ConfigurationError, ConnectivityError, ReadOnlyViolation
from ..extensions import db
from ..time_utils import parse_date


EXTERNAL_BIND = "external"
FETCH_SIZE_DEFAULT = 1000
ITEM_BATCH_SIZE_DEFAULT = 100


# =============================================================================
# EXTERNAL SCHEMA
# =============================================================================
# Kept out of db.metadata so db.create_all() never touches the external server.

external_metadata = sa.MetaData()

ext_expenses = sa.Table(
    "expenses",
    external_metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("ProductID", sa.Integer),
    sa.Column("ExpenseID", sa.Integer),
    sa.Column("ExpenseDate", sa.Date),
    sa.Column("Expense", sa.String(32)),
)

ext_product = sa.Table(
    "product",
    external_metadata,
    sa.Column("ProductID", sa.Integer, primary_key=True),
    sa.Column("Product", sa.String(255)),
    sa.Column("Brand", sa.String(255)),
    sa.Column("newSystem", sa.Boolean),
    sa.Column("Visible", sa.Boolean),
    sa.Column("flyer", sa.String(255)),
    sa.Column("main_category_id", sa.Integer),
    sa.Column("marketing_category_id", sa.Integer),
    sa.Column("gender_id", sa.Integer),
)

ext_category = sa.Table(
    "category",
    external_metadata,
    sa.Column("category_id", sa.Integer, primary_key=True),
    sa.Column("category_name", sa.String(255)),
)

ext_gender = sa.Table(
    "gender",
    external_metadata,
    sa.Column("gender_id", sa.Integer, primary_key=True),
    sa.Column("gender_name", sa.String(64)),
)

ext_expensetype = sa.Table(
    "expensetype",
    external_metadata,
    sa.Column("ExpenseID", sa.Integer, primary_key=True),
    sa.Column("Name", sa.String(255)),
)

ext_orders = sa.Table(
    "Orders",
    external_metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("Agent", sa.String(128)),
    sa.Column("Created", sa.String(32)),
    sa.Column("OrderDate", sa.Integer),  # YYYYMMDD
    sa.Column("OrderNum", sa.String(64)),
    sa.Column("OrderN", sa.String(64)),
    sa.Column("ProductTotal", sa.String(32)),
    sa.Column("GrandTotal", sa.String(32)),
    sa.Column("Shipping", sa.String(32)),
    sa.Column("ShippingMethod", sa.String(128)),
    sa.Column("Refund", sa.String(64)),
    sa.Column("RefundAmount", sa.String(64)),
    sa.Column("BrandID", sa.Integer),  # product id, despite the name
    sa.Column("Email", sa.String(255)),
    sa.Column("Name", sa.String(255)),
    sa.Column("Phone", sa.String(64)),
    sa.Column("Address", sa.String(255)),
    sa.Column("Address2", sa.String(255)),
    sa.Column("City", sa.String(128)),
    sa.Column("State", sa.String(128)),
    sa.Column("Zip", sa.String(32)),
    sa.Column("Country", sa.String(64)),
    sa.Column("ShipName", sa.String(255)),
    sa.Column("ShipAddress", sa.String(255)),
    sa.Column("ShipAddress2", sa.String(255)),
    sa.Column("ShipCity", sa.String(128)),
    sa.Column("ShipState", sa.String(128)),
    sa.Column("ShipZip", sa.String(32)),
    sa.Column("ShipCountry", sa.String(64)),
    sa.Column("ShipPhone", sa.String(64)),
)

ext_order_items = sa.Table(
    "OrderItems",
    external_metadata,
    sa.Column("idOrderItem", sa.Integer, primary_key=True),
    sa.Column("OrderID", sa.Integer, index=True),
    sa.Column("ItemID", sa.Integer),
    sa.Column("Price", sa.String(32)),
    sa.Column("Qty", sa.String(32)),
)


def _ymd(value: date) -> int:
    return int(value.strftime("%Y%m%d"))


def cursor_of(kind: ImportKind, row: dict) -> tuple[Optional[date], int]:
    """(date, id) position of a row in its stream's ordering."""
    if kind == ImportKind.ORDERS:
        return parse_date(row.get("OrderDate")), int(row["OrderID"])
    return parse_date(row.get("ExpenseDate")), int(row["id"])


def _chunked(values: list, size: int) -> Iterator[list]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class ExternalSource:
    def __init__(
        self,
        engine: sa.engine.Engine | None = None,
        *,
        fetch_size: int = FETCH_SIZE_DEFAULT,
        item_batch_size: int = ITEM_BATCH_SIZE_DEFAULT,
        logger=None,
    ):
        self._engine = engine
        self.fetch_size = max(1, int(fetch_size))
        self.item_batch_size = max(1, int(item_batch_size))
        self._logger = logger

    @classmethod
    def from_app(cls, app=None) -> "ExternalSource":
        """Build from Flask config. Raises ConfigurationError when no external bind is set."""
        app = app or current_app
        binds = app.config.get("SQLALCHEMY_BINDS") or {}
        if EXTERNAL_BIND not in binds:
            raise ConfigurationError("EXTERNAL_DATABASE_URL is not configured")
        return cls(
            fetch_size=app.config.get("EXTERNAL_FETCH_SIZE", FETCH_SIZE_DEFAULT),
            item_batch_size=app.config.get("EXTERNAL_ITEM_BATCH_SIZE", ITEM_BATCH_SIZE_DEFAULT),
            logger=app.logger,
        )

    @property
    def logger(self):
        return self._logger or current_app.logger

    @property
    def engine(self) -> sa.engine.Engine:
        if self._engine is None:
            try:
                self._engine = db.engines[EXTERNAL_BIND]
            except KeyError:
                raise ConfigurationError("EXTERNAL_DATABASE_URL is not configured") from None
        return self._engine

    # -------------------------------------------------------------------------
    # Low-level access
    # -------------------------------------------------------------------------

    def _execute(self, stmt) -> list[dict[str, Any]]:
        if not isinstance(stmt, Select):
            raise ReadOnlyViolation(f"External source accepts SELECT only, got {type(stmt).__name__}")
        try:
            with self.engine.connect() as conn:
                result = conn.execute(stmt)
                rows = [dict(row) for row in result.mappings().all()]
                conn.rollback()
                return rows
        except SQLAlchemyError as exc:
            raise ConnectivityError(f"External query failed: {exc}") from exc

    def test_connection(self) -> bool:
        try:
            self._execute(sa.select(sa.literal(1)))
            return True
        except (ConnectivityError, ConfigurationError) as exc:
            self.logger.error("External database connection failed: %s", exc)
            return False

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _orders_select(self) -> Select:
        o = ext_orders
        p = ext_product
        return sa.select(
            o.c.id.label("OrderID"),
            o.c.Agent,
            o.c.Created,
            o.c.OrderDate,
            o.c.OrderNum,
            o.c.OrderN,
            o.c.ProductTotal,
            o.c.GrandTotal,
            o.c.Shipping,
            o.c.ShippingMethod,
            o.c.Refund,
            o.c.RefundAmount,
            o.c.BrandID,
            o.c.Email,
            o.c.Name,
            o.c.Phone,
            o.c.Address.label("BillingAddress"),
            o.c.Address2.label("BillingAddress2"),
            o.c.City.label("BillingCity"),
            o.c.State.label("BillingState"),
            o.c.Zip.label("BillingZip"),
            o.c.Country.label("BillingCountry"),
            o.c.ShipName.label("ShippingName"),
            o.c.ShipAddress.label("ShippingAddress"),
            o.c.ShipAddress2.label("ShippingAddress2"),
            o.c.ShipCity.label("ShippingCity"),
            o.c.ShipState.label("ShippingState"),
            o.c.ShipZip.label("ShippingZip"),
            o.c.ShipCountry.label("ShippingCountry"),
            o.c.ShipPhone.label("ShippingPhone"),
            p.c.Product.label("ProductName"),
            p.c.Brand.label("ProductBrand"),
        ).select_from(o.outerjoin(p, p.c.ProductID == o.c.BrandID))

    def _expenses_select(self) -> Select:
        e = ext_expenses
        p = ext_product
        c = ext_category
        g = ext_gender
        t = ext_expensetype
        return sa.select(
            e.c.id,
            e.c.ProductID,
            e.c.ExpenseID,
            e.c.ExpenseDate,
            e.c.Expense,
            p.c.Product.label("ProductName"),
            p.c.Brand.label("ProductBrand"),
            p.c.newSystem.label("ProductNewSystem"),
            p.c.Visible.label("ProductVisible"),
            p.c.flyer.label("ProductFlyer"),
            c.c.category_name.label("CategoryName"),
            g.c.gender_name.label("GenderName"),
            t.c.Name.label("ExpenseTypeName"),
        ).select_from(
            e.outerjoin(p, p.c.ProductID == e.c.ProductID)
            .outerjoin(c, c.c.category_id == p.c.main_category_id)
            .outerjoin(g, g.c.gender_id == p.c.gender_id)
            .outerjoin(t, t.c.ExpenseID == e.c.ExpenseID)
        )

    def _attach_items(self, orders: list[dict]) -> list[dict]:
        """Load order items for a page of orders, one IN query per batch."""
        by_id: dict[int, dict] = {}
        for order in orders:
            order["items"] = []
            by_id[order["OrderID"]] = order

        for batch in _chunked(list(by_id), self.item_batch_size):
            stmt = (
                sa.select(
                    ext_order_items.c.idOrderItem,
                    ext_order_items.c.OrderID,
                    ext_order_items.c.ItemID,
                    ext_order_items.c.Price,
                    ext_order_items.c.Qty,
                )
                .where(ext_order_items.c.OrderID.in_(batch))
                .order_by(ext_order_items.c.idOrderItem.asc())
            )
            for item in self._execute(stmt):
                by_id[item["OrderID"]]["items"].append(item)
        return orders

    # -------------------------------------------------------------------------
    # Bounded windows
    # -------------------------------------------------------------------------

    def get_orders(self, from_date: date, to_date: date, limit: int | None = None) -> list[dict]:
        o = ext_orders
        stmt = (
            self._orders_select()
            .where(o.c.OrderDate >= _ymd(from_date), o.c.OrderDate <= _ymd(to_date))
            .order_by(o.c.OrderDate.asc(), o.c.id.asc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return self._attach_items(self._execute(stmt))

    def get_expenses(self, from_date: date, to_date: date, limit: int | None = None) -> list[dict]:
        e = ext_expenses
        stmt = (
            self._expenses_select()
            .where(e.c.ExpenseDate >= from_date, e.c.ExpenseDate < to_date + timedelta(days=1))
            .order_by(e.c.ExpenseDate.asc(), e.c.id.asc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return self._execute(stmt)

    def get_last_orders(self, n: int) -> list[dict]:
        """Newest n orders, returned oldest first."""
        o = ext_orders
        stmt = self._orders_select().order_by(o.c.OrderDate.desc(), o.c.id.desc()).limit(n)
        rows = self._execute(stmt)
        rows.reverse()
        return self._attach_items(rows)

    def get_last_expenses(self, n: int) -> list[dict]:
        e = ext_expenses
        stmt = self._expenses_select().order_by(e.c.ExpenseDate.desc(), e.c.id.desc()).limit(n)
        rows = self._execute(stmt)
        rows.reverse()
        return rows

    # -------------------------------------------------------------------------
    # Keyset streams
    # -------------------------------------------------------------------------

    def _keyset_pages(self, base: Select, date_col, id_col, since_date, since_id, window=None) -> Iterator[list[dict]]:
        """
        Yield pages ordered by (date, id), each strictly after the last row
        of the previous page.

        Rows without a date have no place in the (date, id) order and are
        left out; incremental streams log how many there are.
        """
        cursor_date = since_date
        cursor_id = since_id if since_id is not None else 0
        if window is None:
            self._warn_undated(date_col)

        while True:
            stmt = base.where(date_col.isnot(None))
            if window is not None:
                stmt = stmt.where(*window)
            if cursor_date is not None:
                stmt = stmt.where(
                    sa.or_(
                        date_col > cursor_date,
                        sa.and_(date_col == cursor_date, id_col > cursor_id),
                    )
                )
            stmt = stmt.order_by(date_col.asc(), id_col.asc()).limit(self.fetch_size)

            page = self._execute(stmt)
            if not page:
                return
            # read before yielding; consumers strip the cursor columns
            last = page[-1]
            cursor_date = last["_cursor_date"]
            cursor_id = last["_cursor_id"]
            full = len(page) >= self.fetch_size

            yield page
            if not full:
                return

    def _warn_undated(self, date_col) -> None:
        stmt = sa.select(sa.func.count().label("undated")).select_from(date_col.table).where(date_col.is_(None))
        undated = self._execute(stmt)[0]["undated"]
        if undated:
            self.logger.warning(
                "Skipping %d %s rows without %s", undated, date_col.table.name, date_col.name
            )

    def stream_orders_incremental(self, since_date: date | None = None, since_id: int | None = None) -> Iterator[dict]:
        o = ext_orders
        base = self._orders_select().add_columns(
            o.c.OrderDate.label("_cursor_date"), o.c.id.label("_cursor_id")
        )
        since = _ymd(since_date) if since_date is not None else None
        for page in self._keyset_pages(base, o.c.OrderDate, o.c.id, since, since_id):
            yield from self._clean(self._attach_items(page))

    def stream_expenses_incremental(self, since_date: date | None = None, since_id: int | None = None) -> Iterator[dict]:
        e = ext_expenses
        base = self._expenses_select().add_columns(
            e.c.ExpenseDate.label("_cursor_date"), e.c.id.label("_cursor_id")
        )
        for page in self._keyset_pages(base, e.c.ExpenseDate, e.c.id, since_date, since_id):
            yield from self._clean(page)

    def stream_orders_by_date_range(self, from_date: date, to_date: date) -> Iterator[dict]:
        o = ext_orders
        base = self._orders_select().add_columns(
            o.c.OrderDate.label("_cursor_date"), o.c.id.label("_cursor_id")
        )
        for day in _days(from_date, to_date):
            window = (o.c.OrderDate == _ymd(day),)
            for page in self._keyset_pages(base, o.c.OrderDate, o.c.id, None, None, window=window):
                yield from self._clean(self._attach_items(page))

    def stream_expenses_by_date_range(self, from_date: date, to_date: date) -> Iterator[dict]:
        e = ext_expenses
        base = self._expenses_select().add_columns(
            e.c.ExpenseDate.label("_cursor_date"), e.c.id.label("_cursor_id")
        )
        for day in _days(from_date, to_date):
            window = (e.c.ExpenseDate >= day, e.c.ExpenseDate < day + timedelta(days=1))
            for page in self._keyset_pages(base, e.c.ExpenseDate, e.c.id, None, None, window=window):
                yield from self._clean(page)

    @staticmethod
    def _clean(rows: list[dict]) -> Iterator[dict]:
        for row in rows:
            row.pop("_cursor_date", None)
            row.pop("_cursor_id", None)
            yield row

    # -------------------------------------------------------------------------
    # Dispatch by import kind
    # -------------------------------------------------------------------------

    def stream_incremental(self, kind: ImportKind, since_date: date | None = None, since_id: int | None = None) -> Iterator[dict]:
        if kind == ImportKind.ORDERS:
            return self.stream_orders_incremental(since_date, since_id)
        return self.stream_expenses_incremental(since_date, since_id)

    def stream_by_date_range(self, kind: ImportKind, from_date: date, to_date: date) -> Iterator[dict]:
        if kind == ImportKind.ORDERS:
            return self.stream_orders_by_date_range(from_date, to_date)
        return self.stream_expenses_by_date_range(from_date, to_date)

    def get_last(self, kind: ImportKind, n: int) -> list[dict]:
        if kind == ImportKind.ORDERS:
            return self.get_last_orders(n)
        return self.get_last_expenses(n)


def _days(from_date: date, to_date: date) -> Iterator[date]:
    day = from_date
    while day <= to_date:
        yield day
        day += timedelta(days=1)
