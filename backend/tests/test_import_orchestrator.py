"""
Import pipeline tests.

Verifies:
- Re-running an import over unchanged data creates and updates nothing
- Changed amounts are detected and stored normalized
- Missing references are skipped (strict) or created (auto-create)
- Addresses are deduplicated per customer and promoted to "both"
- One bad row never aborts the run
- Checkpoints only move forward; incremental runs resume after them
- Runs are serialized per stream, can be cancelled, and survive brief
  connection loss
"""

from datetime import date, timedelta

import pytest
import sqlalchemy as sa

from backoffice.entities import EntityKind, ImportKind, ReferenceHandlingPolicy
from backoffice.errors import ConnectivityError, ImportAlreadyRunning
from backoffice.models import (
    Address,
    Customer,
    Expense,
    ExpenseType,
    Order,
    OrderAddress,
    OrderItem,
    Product,
    ProductItem,
    SyncState,
)
from backoffice.services import access_service, reference_sync, sync_state_service
from backoffice.services import import_orchestrator as orchestrator_module
from backoffice.services.access_resolver import resolver
from backoffice.services.external_source import ExternalSource
from backoffice.services.import_orchestrator import ImportOrchestrator, ImportStats, parse_only
from backoffice.time_utils import utcnow

from conftest import (
    auth_headers,
    external_expense,
    external_order,
    get_auth_token,
    insert_external,
    make_user,
    update_external,
)


STRICT = ReferenceHandlingPolicy.SKIP_ON_MISSING
AUTO = ReferenceHandlingPolicy.AUTO_CREATE
DAY = date(2024, 1, 15)


@pytest.fixture
def references(db_session):
    """Product 100 (brand Acme) with item 1000, and expense type 7."""
    product = reference_sync.sync_product({"ProductID": 100, "Product": "Product A", "Brand": "Acme"})
    reference_sync.sync_expense_type(7, "Ads")
    db_session.add(ProductItem(id=1000, product_id=product.id, name="Item A"))
    db_session.commit()
    return product


@pytest.fixture
def orchestrator(source):
    return ImportOrchestrator.from_app(source=source)


def run_orders(orchestrator, policy=STRICT, from_date=DAY, to_date=DAY):
    return orchestrator.run_date_range(ImportKind.ORDERS, from_date, to_date, policy=policy)


def run_expenses(orchestrator, policy=STRICT, from_date=DAY, to_date=DAY):
    return orchestrator.run_date_range(ImportKind.EXPENSES, from_date, to_date, policy=policy)


def item_row(item_id, order_id, *, product_item=1000, price="50.00", qty="2"):
    return {"idOrderItem": item_id, "OrderID": order_id, "ItemID": product_item, "Price": price, "Qty": qty}


# =============================================================================
# IDEMPOTENCE AND CHANGE DETECTION
# =============================================================================


class TestIdempotence:
    def test_second_run_changes_nothing(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1), external_order(2)])
        insert_external(external_db["order_items"], [item_row(11, 1), item_row(21, 2)])
        insert_external(external_db["expenses"], [external_expense(1)])

        first = orchestrator.sync([ImportKind.ORDERS, ImportKind.EXPENSES], policy=STRICT, from_date=DAY, to_date=DAY)
        assert first["orders"].to_dict() == {"created": 2, "updated": 0, "skipped": 0, "errors": 0}
        assert first["expenses"].created == 1

        second = orchestrator.sync([ImportKind.ORDERS, ImportKind.EXPENSES], policy=STRICT, from_date=DAY, to_date=DAY)
        assert second["orders"].to_dict() == {"created": 0, "updated": 0, "skipped": 2, "errors": 0}
        assert second["expenses"].to_dict() == {"created": 0, "updated": 0, "skipped": 1, "errors": 0}

        assert db_session.query(Order).count() == 2
        assert db_session.query(OrderItem).count() == 2
        assert db_session.query(Customer).count() == 2
        assert db_session.query(Expense).count() == 1

    def test_grand_total_change_is_an_update(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1), external_order(2)])
        run_orders(orchestrator)

        update_external(external_db["orders"], external_db["orders"].c.id == 1, GrandTotal="120")
        stats = run_orders(orchestrator)

        assert stats.updated == 1
        assert stats.skipped == 1
        order = db_session.query(Order).filter_by(external_order_id=1).one()
        assert order.grand_total == "120.00"

    def test_sub_cent_difference_is_not_a_change(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1, GrandTotal="110.00")])
        run_orders(orchestrator)

        update_external(external_db["orders"], external_db["orders"].c.id == 1, GrandTotal="110.004")
        stats = run_orders(orchestrator)

        assert stats.updated == 0
        assert stats.skipped == 1

    def test_new_item_on_existing_order_is_an_update(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1)])
        insert_external(external_db["order_items"], [item_row(11, 1)])
        run_orders(orchestrator)

        insert_external(external_db["order_items"], [item_row(12, 1, price="5.00", qty="1")])
        stats = run_orders(orchestrator)

        assert stats.updated == 1
        assert db_session.query(OrderItem).count() == 2

    def test_expense_amount_change(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["expenses"], [external_expense(1, amount="25")])
        run_expenses(orchestrator)

        update_external(external_db["expenses"], external_db["expenses"].c.id == 1, Expense="30.5")
        stats = run_expenses(orchestrator)

        assert stats.updated == 1
        assert db_session.query(Expense).one().amount == "30.50"


# =============================================================================
# REFERENCE HANDLING
# =============================================================================


class TestReferenceHandling:
    def test_unknown_product_skipped_in_strict_mode(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1, product_id=99999)])

        stats = run_orders(orchestrator)

        assert stats.skipped == 1
        assert stats.created == 0
        assert db_session.query(Order).count() == 0
        assert db_session.get(Product, 99999) is None

    def test_unknown_product_created_in_auto_mode(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["product"], [{"ProductID": 99999, "Product": "Zed", "Brand": "Zeta"}])
        insert_external(external_db["orders"], [external_order(1, product_id=99999)])

        stats = run_orders(orchestrator, policy=AUTO)

        assert stats.created == 1
        product = db_session.get(Product, 99999)
        assert product.name == "Zed"
        assert product.brand.name == "Zeta"

    def test_order_without_product_is_imported(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1, product_id=None)])

        stats = run_orders(orchestrator)

        assert stats.created == 1
        assert db_session.query(Order).one().product_id is None

    def test_zero_product_id_is_looked_up_like_any_other(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1, product_id=0)])

        stats = run_orders(orchestrator)

        assert stats.skipped == 1
        assert stats.created == 0
        assert db_session.query(Order).count() == 0

    @pytest.mark.parametrize("product_id,expense_type_id", [(555, 7), (100, 99)])
    def test_expense_with_unknown_reference_skipped(
        self, db_session, external_db, references, orchestrator, product_id, expense_type_id
    ):
        insert_external(external_db["expenses"], [
            external_expense(1, product_id=product_id, expense_type_id=expense_type_id),
        ])

        stats = run_expenses(orchestrator)

        assert stats.skipped == 1
        assert db_session.query(Expense).count() == 0

    def test_expense_references_created_in_auto_mode(self, db_session, external_db, orchestrator):
        insert_external(external_db["product"], [
            {"ProductID": 555, "Product": "Scarf", "Brand": "Acme", "main_category_id": 1, "gender_id": 2},
        ])
        insert_external(external_db["category"], [{"category_id": 1, "category_name": "Accessories"}])
        insert_external(external_db["gender"], [{"gender_id": 2, "gender_name": "Women"}])
        insert_external(external_db["expenses"], [external_expense(1, product_id=555, expense_type_id=99)])

        stats = run_expenses(orchestrator, policy=AUTO)

        assert stats.created == 1
        product = db_session.get(Product, 555)
        assert product.main_category.name == "Accessories"
        assert product.gender.name == "Women"
        assert db_session.get(ExpenseType, 99).name == "Expense Type 99"

    def test_expenses_run_first_and_create_products_for_orders(self, db_session, external_db, orchestrator):
        insert_external(external_db["product"], [{"ProductID": 300, "Product": "Boot", "Brand": "Acme"}])
        insert_external(external_db["expenses"], [external_expense(1, product_id=300, expense_type_id=7)])
        insert_external(external_db["orders"], [external_order(1, product_id=300)])

        results = orchestrator.sync(
            parse_only("orders,expenses"), policy=AUTO, from_date=DAY, to_date=DAY,
        )

        assert list(results) == ["expenses", "orders"]
        assert results["orders"].created == 1
        assert db_session.query(Order).one().product_id == 300

    def test_order_item_with_unknown_product_item_is_dropped(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1)])
        insert_external(external_db["order_items"], [item_row(11, 1), item_row(12, 1, product_item=5555)])

        stats = run_orders(orchestrator)

        assert stats.created == 1
        assert [i.external_id for i in db_session.query(OrderItem).all()] == [11]


# =============================================================================
# CUSTOMERS, ADDRESSES, DERIVED FIELDS
# =============================================================================


class TestOrderDetails:
    def test_billing_then_shipping_address_becomes_both(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [
            external_order(1, Email="same@example.com", Address="1 Main St", City="Springfield", Zip="12345"),
            external_order(2, Email="same@example.com", ShipAddress="1 main st ", ShipCity="SPRINGFIELD",
                           ShipZip="12345"),
        ])

        stats = run_orders(orchestrator)

        assert stats.created == 2
        address = db_session.query(Address).one()
        assert address.type == "both"
        linked = {link.order.external_order_id for link in db_session.query(OrderAddress).all()}
        assert linked == {1, 2}
        assert db_session.query(Customer).count() == 1

    def test_equal_billing_and_shipping_on_one_order(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [
            external_order(1, Address="1 Main St", City="Springfield", ShipAddress="1 Main St",
                           ShipCity="Springfield"),
        ])
        run_orders(orchestrator)

        address = db_session.query(Address).one()
        assert address.type == "both"
        assert db_session.query(OrderAddress).one().usage == "both"

    def test_different_billing_and_shipping(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [
            external_order(1, Address="1 Main St", City="Springfield", ShipAddress="9 Elm St", ShipCity="Shelbyville"),
        ])
        run_orders(orchestrator)

        assert sorted(a.type for a in db_session.query(Address).all()) == ["billing", "shipping"]

    def test_blank_address_block_creates_nothing(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1, Address="  ", State="CA", Country="US")])
        run_orders(orchestrator)

        assert db_session.query(Address).count() == 0

    def test_anonymous_marketplace_order(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [
            external_order(1, Email=None, Name=None, Phone=None),
            external_order(2, Email=None, Name=None, Phone=None),
        ])
        run_orders(orchestrator)

        orders = db_session.query(Order).order_by(Order.external_order_id).all()
        assert all(o.is_marketplace and o.has_missing_contact_info for o in orders)
        customer = db_session.query(Customer).one()
        assert customer.name == "Anonymous Customer"
        assert customer.email is None

    def test_marketplace_agent(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1, Agent="Amazon FBA")])
        run_orders(orchestrator)

        order = db_session.query(Order).one()
        assert order.is_marketplace is True
        assert order.has_missing_contact_info is False

    def test_partial_refund_with_noisy_amount(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [
            external_order(1, Refund="Yes", RefundAmount="$50.00 refunded"),
        ])
        run_orders(orchestrator)

        order = db_session.query(Order).one()
        assert order.refund is True
        assert order.refund_amount == "50.00"
        assert order.refund_amount_is_valid is True
        assert order.is_refunded is True
        assert order.is_partial_refund is True

    def test_unreadable_refund_amount(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1, Refund="Yes", RefundAmount="n/a")])
        run_orders(orchestrator)

        order = db_session.query(Order).one()
        assert order.refund_amount == "0.00"
        assert order.refund_amount_raw == "n/a"
        assert order.refund_amount_is_valid is False
        assert order.is_refunded is False

    def test_invalid_item_values_are_flagged_not_rejected(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1)])
        insert_external(external_db["order_items"], [item_row(11, 1, price="-5", qty="0")])
        run_orders(orchestrator)

        item = db_session.query(OrderItem).one()
        assert item.is_valid is False
        assert "Negative price" in item.validation_errors
        assert "Quantity must be positive" in item.validation_errors
        assert item.qty == 0


# =============================================================================
# RUN CONTROL
# =============================================================================


class TestRunControl:
    def test_bad_row_does_not_abort_run(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["expenses"], [
            external_expense(1, expense_date=None),
            external_expense(2, expense_date=date(2024, 1, 14)),
            external_expense(3),
        ])

        stats = orchestrator.run_last_n(ImportKind.EXPENSES, 10, policy=STRICT)

        assert stats.errors == 1
        assert stats.created == 2
        assert stats.processed == 3
        assert db_session.query(Expense).count() == 2

    def test_last_n_does_not_checkpoint(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1)])

        orchestrator.run_last_n(ImportKind.ORDERS, 5, policy=STRICT)

        assert sync_state_service.get_state(ImportKind.ORDERS).cursor is None

    def test_held_lease_blocks_run(self, db_session, external_db, references, orchestrator):
        assert sync_state_service.acquire_lease(ImportKind.ORDERS, "other-host:1", 3600)

        with pytest.raises(ImportAlreadyRunning):
            run_orders(orchestrator)

        sync_state_service.release_lease(ImportKind.ORDERS, "other-host:1")
        run_orders(orchestrator)

    def test_stale_lease_is_taken_over(self, db_session, external_db, references, orchestrator):
        sync_state_service.acquire_lease(ImportKind.ORDERS, "crashed-host:1", 3600)
        state = sync_state_service.get_state(ImportKind.ORDERS)
        state.locked_at = utcnow() - timedelta(hours=2)
        db_session.commit()

        run_orders(orchestrator)

        db_session.refresh(state)
        assert state.locked_by is None

    def test_cancel_before_start_stops_after_first_kind(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1)])
        orchestrator.cancel()

        results = orchestrator.sync(
            [ImportKind.ORDERS, ImportKind.EXPENSES], policy=STRICT, from_date=DAY, to_date=DAY,
        )

        assert list(results) == ["expenses"]
        assert results["expenses"].cancelled is True
        assert db_session.query(Order).count() == 0

    def test_cancel_mid_run_finishes_current_chunk(self, db_session, external_db, references, orchestrator, monkeypatch):
        insert_external(external_db["expenses"], [
            external_expense(i, expense_type_id=7, product_id=100, expense_date=DAY + timedelta(days=i))
            for i in range(1, 6)
        ])
        real_import = orchestrator_module.import_expense

        def import_then_cancel(row, policy):
            orchestrator.cancel()
            return real_import(row, policy)

        monkeypatch.setattr(orchestrator_module, "import_expense", import_then_cancel)
        stats = run_expenses(orchestrator, to_date=DAY + timedelta(days=10))

        # chunk size is 2 in the test config
        assert stats.cancelled is True
        assert stats.processed == 2
        assert db_session.query(Expense).count() == 2

    def test_date_range_requires_dates(self, db_session, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.sync([ImportKind.ORDERS], policy=STRICT)

    def test_parse_only(self):
        assert parse_only(None) == [ImportKind.EXPENSES, ImportKind.ORDERS]
        assert parse_only("orders") == [ImportKind.ORDERS]
        assert parse_only(["expenses", " orders "]) == [ImportKind.EXPENSES, ImportKind.ORDERS]
        with pytest.raises(ValueError):
            parse_only("invoices")

    def test_stats_count_unchanged_as_skipped(self):
        stats = ImportStats()
        stats.record("created")
        stats.record("unchanged")
        assert stats.to_dict() == {"created": 1, "updated": 0, "skipped": 1, "errors": 0}


class FlakySource(ExternalSource):
    """Drops the connection after the first row of the first `failures` streams."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.streams_opened = 0

    def stream_by_date_range(self, kind, from_date, to_date):
        rows = super().stream_by_date_range(kind, from_date, to_date)
        self.streams_opened += 1
        if self.streams_opened <= self.failures:
            return self._drop_after_first(rows)
        return rows

    @staticmethod
    def _drop_after_first(rows):
        for index, row in enumerate(rows):
            if index == 1:
                raise ConnectivityError("connection reset by peer")
            yield row


class TestConnectivity:
    def test_unreachable_source_fails_fast(self, app, db_session):
        source = ExternalSource(sa.create_engine("sqlite:////nonexistent-dir/nowhere.db"), logger=app.logger)
        orchestrator = ImportOrchestrator.from_app(source=source)

        with pytest.raises(ConnectivityError):
            run_orders(orchestrator)

    def test_stream_resumes_after_connection_loss(self, app, db_session, external_db, references):
        insert_external(external_db["orders"], [external_order(i) for i in (1, 2, 3)])
        sleeps = []
        source = FlakySource(1, logger=app.logger)
        orchestrator = ImportOrchestrator.from_app(source=source, sleep=sleeps.append)

        stats = run_orders(orchestrator)

        assert stats.created == 3
        assert stats.errors == 0
        assert source.streams_opened == 2
        assert len(sleeps) == 1
        assert db_session.query(Order).count() == 3

    def test_gives_up_after_retries_and_releases_lease(self, app, db_session, external_db, references):
        insert_external(external_db["orders"], [external_order(i) for i in (1, 2, 3)])
        source = FlakySource(100, logger=app.logger)
        orchestrator = ImportOrchestrator.from_app(source=source, connectivity_retries=2, sleep=lambda s: None)

        with pytest.raises(ConnectivityError):
            run_orders(orchestrator)

        assert source.streams_opened == 3
        assert sync_state_service.get_state(ImportKind.ORDERS).locked_by is None


# =============================================================================
# CHECKPOINTS
# =============================================================================


class TestCheckpoints:
    def test_checkpoint_never_moves_backward(self, db_session):
        assert sync_state_service.advance_checkpoint(ImportKind.ORDERS, date(2024, 1, 15), 5) is True
        assert sync_state_service.advance_checkpoint(ImportKind.ORDERS, date(2024, 1, 14), 9) is False
        assert sync_state_service.advance_checkpoint(ImportKind.ORDERS, date(2024, 1, 15), 5) is False
        assert sync_state_service.advance_checkpoint(ImportKind.ORDERS, date(2024, 1, 15), 6) is True

        assert sync_state_service.get_state(ImportKind.ORDERS).cursor == (date(2024, 1, 15), 6)

    def test_incremental_resumes_strictly_after_checkpoint(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [
            external_order(1, order_date=20240113),
            external_order(2, order_date=20240114),
            external_order(3, order_date=20240115),
        ])

        first = orchestrator.run_incremental(ImportKind.ORDERS, policy=STRICT)
        assert first.created == 3
        assert sync_state_service.get_state(ImportKind.ORDERS).cursor == (date(2024, 1, 15), 3)

        insert_external(external_db["orders"], [
            external_order(4, order_date=20240116),
            # behind the checkpoint: never seen by an incremental run
            external_order(5, order_date=20240101),
        ])
        second = orchestrator.run_incremental(ImportKind.ORDERS, policy=STRICT)

        assert second.created == 1
        assert second.processed == 1
        assert sync_state_service.get_state(ImportKind.ORDERS).cursor == (date(2024, 1, 16), 4)
        assert db_session.query(Order).filter_by(external_order_id=5).count() == 0

    def test_first_date_range_run_does_not_checkpoint(self, db_session, external_db, references, orchestrator):
        insert_external(external_db["orders"], [external_order(1)])
        run_orders(orchestrator)

        assert sync_state_service.get_state(ImportKind.ORDERS).cursor is None

    def test_contiguous_date_range_advances_checkpoint(self, db_session, external_db, references, orchestrator):
        sync_state_service.advance_checkpoint(ImportKind.ORDERS, date(2024, 1, 14), 1)
        insert_external(external_db["orders"], [external_order(7, order_date=20240115)])

        run_orders(orchestrator)

        assert sync_state_service.get_state(ImportKind.ORDERS).cursor == (DAY, 7)

    def test_detached_date_range_leaves_checkpoint(self, db_session, external_db, references, orchestrator):
        sync_state_service.advance_checkpoint(ImportKind.ORDERS, date(2024, 1, 1), 1)
        insert_external(external_db["orders"], [external_order(7, order_date=20240115)])

        run_orders(orchestrator)

        assert sync_state_service.get_state(ImportKind.ORDERS).cursor == (date(2024, 1, 1), 1)

    def test_checkpoint_advances_past_failed_rows(self, db_session, external_db, references, orchestrator, monkeypatch):
        insert_external(external_db["orders"], [external_order(1, order_date=20240114), external_order(2)])
        real_import = orchestrator_module.import_order

        def fail_second(row, policy):
            if row["OrderID"] == 2:
                raise RuntimeError("boom")
            return real_import(row, policy)

        monkeypatch.setattr(orchestrator_module, "import_order", fail_second)
        stats = orchestrator.run_incremental(ImportKind.ORDERS, policy=STRICT)

        assert stats.created == 1
        assert stats.errors == 1
        assert sync_state_service.get_state(ImportKind.ORDERS).cursor == (DAY, 2)

    def test_sync_state_row_per_kind(self, db_session):
        sync_state_service.get_or_create_state(ImportKind.ORDERS)
        sync_state_service.get_or_create_state(ImportKind.ORDERS)

        assert db_session.query(SyncState).count() == 1


# =============================================================================
# ACCESS AFTER IMPORT
# =============================================================================


class TestAccessAfterImport:
    def test_imported_rows_visible_through_existing_brand_grant(
        self, db_session, external_db, references, orchestrator, team_a, setup_roles
    ):
        user = make_user(db_session, "brand-viewer", team=team_a)
        access_service.grant_access(user_id=user.id, entity_type=EntityKind.BRAND, entity_id=references.brand_id)
        assert resolver.resolve(user, EntityKind.EXPENSE) == frozenset()

        insert_external(external_db["expenses"], [external_expense(1)])
        run_expenses(orchestrator)

        expense = db_session.query(Expense).one()
        assert resolver.resolve(user, EntityKind.EXPENSE) == {expense.id}


# =============================================================================
# HTTP
# =============================================================================


class TestImportApi:
    @pytest.fixture
    def admin_headers(self, client, admin_user):
        return auth_headers(get_auth_token(client, "admin"))

    def test_sync_endpoint(self, client, external_db, references, admin_headers):
        insert_external(external_db["orders"], [external_order(1)])

        resp = client.post("/api/import/sync", json={"date": "2024-01-15", "only": "orders"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["success"] is True
        assert resp.json["date_range"] == {"from": "2024-01-15", "to": "2024-01-15"}
        assert resp.json["stats"] == {"orders": {"created": 1, "updated": 0, "skipped": 0, "errors": 0}}

    @pytest.mark.parametrize(
        "body",
        [
            {"date": "not-a-date"},
            {"from": "2024-02-01", "to": "2024-01-01"},
            {"only": "invoices"},
            {"chunk": 5000},
            {"limit": "many"},
        ],
    )
    def test_bad_options(self, client, external_db, admin_headers, body):
        resp = client.post("/api/import/sync", json=body, headers=admin_headers)
        assert resp.status_code == 400

    def test_lease_conflict(self, client, external_db, references, admin_headers):
        sync_state_service.acquire_lease(ImportKind.ORDERS, "other-host:1", 3600)

        resp = client.post("/api/import/sync", json={"date": "2024-01-15", "only": "orders"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_test_connection(self, client, external_db, admin_headers):
        resp = client.get("/api/import/test-connection", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["connected"] is True

    def test_non_admin_forbidden(self, client, manager_user, external_db):
        headers = auth_headers(get_auth_token(client, "manager"))
        resp = client.post("/api/import/sync", json={"date": "2024-01-15"}, headers=headers)
        assert resp.status_code == 403
