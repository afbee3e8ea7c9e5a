"""
Reference sync tests: brands, products, expense types.
"""

from backoffice.models import Brand, Category, ExpenseType, Gender, Product
from backoffice.services import reference_sync
from backoffice.services.concurrency import get_or_create


class TestSyncProduct:
    def test_creates_with_defaults(self, db_session):
        product = reference_sync.sync_product({"ProductID": 300})

        assert product.id == 300
        assert product.name == "Product 300"
        assert db_session.get(Brand, product.brand_id).name == "Default"
        assert db_session.get(Category, product.main_category_id).name == "Default"
        assert db_session.get(Gender, product.gender_id).name == "Unisex"
        assert product.visible is True
        assert product.new_system is False

    def test_defaults_created_once(self, db_session):
        reference_sync.sync_product({"ProductID": 300})
        reference_sync.sync_product({"ProductID": 301})

        assert db_session.query(Brand).filter_by(name="Default").count() == 1
        assert db_session.query(Category).filter_by(name="Default").count() == 1
        assert db_session.query(Gender).filter_by(name="Unisex").count() == 1

    def test_creates_with_lookups(self, db_session):
        product = reference_sync.sync_product({
            "ProductID": 300, "Product": "Boot", "Brand": "Acme",
            "CategoryName": "Shoes", "GenderName": "Women", "Visible": "0", "newSystem": 1,
        })

        assert product.name == "Boot"
        assert db_session.get(Brand, product.brand_id).name == "Acme"
        assert db_session.get(Category, product.main_category_id).name == "Shoes"
        assert product.visible is False
        assert product.new_system is True

    def test_update_only_touches_present_fields(self, db_session):
        reference_sync.sync_product({"ProductID": 300, "Product": "Boot", "Brand": "Acme", "flyer": "f.pdf"})

        product = reference_sync.sync_product({"ProductID": 300, "Product": "Boot v2", "Brand": None, "flyer": None})

        assert product.name == "Boot v2"
        assert db_session.get(Brand, product.brand_id).name == "Acme"
        assert product.flyer == "f.pdf"

    def test_brand_change(self, db_session):
        reference_sync.sync_product({"ProductID": 300, "Brand": "Acme"})
        product = reference_sync.sync_product({"ProductID": 300, "Brand": "Beta"})

        assert db_session.get(Brand, product.brand_id).name == "Beta"
        assert db_session.query(Product).count() == 1


class TestSyncExpenseType:
    def test_create_named_and_unnamed(self, db_session):
        assert reference_sync.sync_expense_type(7, "Ads").name == "Ads"
        assert reference_sync.sync_expense_type("8").name == "Expense Type 8"

    def test_rename_only_with_a_name(self, db_session):
        reference_sync.sync_expense_type(7, "Ads")
        reference_sync.sync_expense_type(7, None)
        assert db_session.get(ExpenseType, 7).name == "Ads"

        reference_sync.sync_expense_type(7, "Social Ads")
        assert db_session.get(ExpenseType, 7).name == "Social Ads"


class TestGetOrCreate:
    def test_existing_row_is_returned(self, db_session):
        first, created = get_or_create(Brand, name="Acme")
        second, created_again = get_or_create(Brand, name="Acme")

        assert created is True
        assert created_again is False
        assert first.id == second.id

    def test_lost_race_reads_back_winner(self, db_session, monkeypatch):
        """A unique violation inside the savepoint is absorbed and the outer transaction survives."""
        winner = Brand(name="Acme")
        db_session.add(winner)
        db_session.commit()

        # Simulate the race: the lookup misses, the insert collides.
        db_session.add(Brand(name="Other"))
        db_session.flush()
        original_query = db_session.query

        calls = []

        def query_missing_first(*args, **kwargs):
            calls.append(args)
            query = original_query(*args, **kwargs)
            if len(calls) == 1:
                return query.filter(Brand.id < 0)
            return query

        monkeypatch.setattr(db_session, "query", query_missing_first)
        brand, created = get_or_create(Brand, name="Acme")
        monkeypatch.undo()

        assert created is False
        assert brand.id == winner.id
        db_session.commit()
        assert db_session.query(Brand).filter_by(name="Other").count() == 1
