"""
Pytest fixtures for back-office tests.

Provides the app (in-memory SQLite for both the local database and the
external bind), per-test cleanup, users with roles, a small catalog tree
and helpers for seeding the external database.
"""

from datetime import date

import pytest
import sqlalchemy as sa

from backoffice import create_app
from backoffice.extensions import access_cache, db
from backoffice.models import (
    Brand,
    Category,
    Customer,
    Expense,
    ExpenseType,
    Gender,
    Order,
    OrderItem,
    Product,
    ProductItem,
    Team,
    User,
)
from backoffice.services import permission_service
from backoffice.services.auth_service import hash_password
from backoffice.time_utils import utcnow
from backoffice.services.external_source import (
    ExternalSource,
    ext_category,
    ext_expenses,
    ext_expensetype,
    ext_gender,
    ext_order_items,
    ext_orders,
    ext_product,
    external_metadata,
)


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EXTERNAL_DATABASE_URL': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'IMPORT_RETRY_BACKOFF_SECONDS': 0,
        'IMPORT_CHUNK_SIZE': 2,
        'IMPORT_CHECKPOINT_EVERY': 2,
    })

    with app.app_context():
        db.create_all()
        external_metadata.create_all(db.engines["external"])
        yield app
        db.session.remove()
        external_metadata.drop_all(db.engines["external"])
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh databases for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        with db.engines["external"].begin() as conn:
            for table in reversed(external_metadata.sorted_tables):
                conn.execute(table.delete())

        # bulk deletes bypass the grant listeners
        access_cache.invalidate_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Permissions plus global default roles (viewer, manager)."""
    permission_service.initialize_permissions()
    return permission_service.ensure_default_roles()


@pytest.fixture(scope='function')
def team_a(db_session):
    team = Team(name="Team A")
    db_session.add(team)
    db_session.commit()
    return team


@pytest.fixture(scope='function')
def team_b(db_session):
    team = Team(name="Team B")
    db_session.add(team)
    db_session.commit()
    return team


def make_user(db_session, username: str, *, team=None, is_global_admin: bool = False, role=None) -> User:
    user = User(
        team_id=team.id if team else None,
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(PASSWORD),
        is_global_admin=is_global_admin,
    )
    db_session.add(user)
    db_session.commit()
    if role is not None:
        permission_service.assign_role(user.id, role)
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, setup_roles):
    return make_user(db_session, "admin", is_global_admin=True)


@pytest.fixture(scope='function')
def manager_user(db_session, team_a, setup_roles):
    """Team A manager: every coarse permission, rows through grants only."""
    roles = permission_service.ensure_default_roles(team_a.id)
    return make_user(db_session, "manager", team=team_a, role=roles["manager"])


@pytest.fixture(scope='function')
def viewer_user(db_session, team_a, setup_roles):
    roles = permission_service.ensure_default_roles(team_a.id)
    return make_user(db_session, "viewer", team=team_a, role=roles["viewer"])


@pytest.fixture(scope='function')
def outsider_user(db_session, team_a, setup_roles):
    """Authenticated, no roles, no grants."""
    return make_user(db_session, "outsider", team=team_a)


@pytest.fixture(scope='function')
def catalog(db_session):
    """
    Two brands, each with one product, one item, one order with an order
    item and a customer, and one expense.

        brand_a -> product 100 -> item 1000, order A, expense
        brand_b -> product 200 -> item 2000, order B, expense
    """
    category = Category(name="Default")
    gender = Gender(name="Unisex")
    expense_type = ExpenseType(id=7, name="Ads")
    brand_a = Brand(name="Acme")
    brand_b = Brand(name="Beta")
    db_session.add_all([category, gender, expense_type, brand_a, brand_b])
    db_session.flush()

    tree = {"brand_a": brand_a, "brand_b": brand_b, "category": category, "gender": gender,
            "expense_type": expense_type}

    for suffix, brand, product_id in (("a", brand_a, 100), ("b", brand_b, 200)):
        product = Product(
            id=product_id, name=f"Product {suffix.upper()}", brand_id=brand.id,
            main_category_id=category.id, gender_id=gender.id,
        )
        db_session.add(product)
        db_session.flush()

        item = ProductItem(id=product_id * 10, product_id=product.id, name=f"Item {suffix.upper()}")
        customer = Customer(email=f"buyer_{suffix}@example.com", name=f"Buyer {suffix.upper()}")
        db_session.add_all([item, customer])
        db_session.flush()

        order = Order(
            external_order_id=product_id + 1, product_id=product.id, customer_id=customer.id,
            created=utcnow(), order_date=date(2024, 1, 15),
        )
        db_session.add(order)
        db_session.flush()

        order_item = OrderItem(external_id=product_id + 2, order_id=order.id, item_id=item.id, price="10.00", qty=1,
                               line_total="10.00")
        expense = Expense(expense_date=date(2024, 1, 15), product_id=product.id, expense_type_id=expense_type.id,
                          amount="5.00")
        db_session.add_all([order_item, expense])
        db_session.flush()

        tree.update({
            f"product_{suffix}": product,
            f"item_{suffix}": item,
            f"customer_{suffix}": customer,
            f"order_{suffix}": order,
            f"order_item_{suffix}": order_item,
            f"expense_{suffix}": expense,
        })

    db_session.commit()
    return tree


# =============================================================================
# External database helpers
# =============================================================================


def insert_external(table: sa.Table, rows: list[dict]) -> None:
    with db.engines["external"].begin() as conn:
        conn.execute(table.insert(), rows)


def update_external(table: sa.Table, where, **values) -> None:
    with db.engines["external"].begin() as conn:
        conn.execute(table.update().where(where).values(**values))


@pytest.fixture(scope='function')
def external_db(db_session):
    """Handles for seeding the external tables."""
    return {
        "orders": ext_orders,
        "order_items": ext_order_items,
        "expenses": ext_expenses,
        "product": ext_product,
        "category": ext_category,
        "gender": ext_gender,
        "expensetype": ext_expensetype,
    }


@pytest.fixture(scope='function')
def source(external_db):
    return ExternalSource.from_app()


def external_order(order_id: int, *, order_date: int = 20240115, product_id: int = 100, **overrides) -> dict:
    row = {
        "id": order_id,
        "Agent": "web",
        "Created": "1705312800",
        "OrderDate": order_date,
        "OrderNum": f"ORD-{order_id}",
        "OrderN": str(order_id),
        "ProductTotal": "100.00",
        "GrandTotal": "110.00",
        "Shipping": "10.00",
        "ShippingMethod": "ground",
        "Refund": None,
        "RefundAmount": None,
        "BrandID": product_id,
        "Email": f"customer{order_id}@example.com",
        "Name": "Jane Buyer",
        "Phone": "555-0100",
        "Address": None,
        "Address2": None,
        "City": None,
        "State": None,
        "Zip": None,
        "Country": None,
        "ShipName": None,
        "ShipAddress": None,
        "ShipAddress2": None,
        "ShipCity": None,
        "ShipState": None,
        "ShipZip": None,
        "ShipCountry": None,
        "ShipPhone": None,
    }
    row.update(overrides)
    return row


def external_expense(expense_id: int, *, expense_date: date = date(2024, 1, 15), product_id: int = 100,
                     expense_type_id: int = 7, amount: str = "25.00") -> dict:
    return {
        "id": expense_id,
        "ProductID": product_id,
        "ExpenseID": expense_type_id,
        "ExpenseDate": expense_date,
        "Expense": amount,
    }


# =============================================================================
# HTTP helpers
# =============================================================================


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
