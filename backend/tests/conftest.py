"""
Pytest fixtures for Trade Ledger backend tests.

Provides test database setup, users, auth headers and invoice payload factories.
"""

import threading
from datetime import timedelta

import pytest

from tradeledger import create_app
from tradeledger.extensions import db
from tradeledger.models import Customer
from tradeledger.services.auth_service import create_user
from tradeledger.time_utils import utcnow


ADMIN_PASSWORD = "Admin123!"
EMPLOYEE_PASSWORD = "Employee123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'COMPANY_NAME': 'Test Trading LLC',
        'COMPANY_TRN': '100000000000003',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """
    App on a file-backed SQLite database, for tests that hit it from
    several threads (an in-memory database is private to one connection).
    """
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False, 'timeout': 30}},
        'BCRYPT_ROUNDS': 4,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def run_concurrently(app, worker, count: int) -> tuple[list, list]:
    """
    Start `count` threads that call worker() together, each inside its own
    app context (and therefore its own session).

    Returns (results, errors).
    """
    barrier = threading.Barrier(count)
    results, errors = [], []
    lock = threading.Lock()

    def _run():
        with app.app_context():
            barrier.wait()
            try:
                value = worker()
            except Exception as e:
                with lock:
                    errors.append(e)
            else:
                with lock:
                    results.append(value)

    threads = [threading.Thread(target=_run) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results, errors


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user(username="admin", email="admin@example.com", password=ADMIN_PASSWORD, role="admin")


@pytest.fixture(scope='function')
def employee_user(db_session):
    return create_user(username="clerk", email="clerk@example.com", password=EMPLOYEE_PASSWORD, role="employee")


@pytest.fixture(scope='function')
def trn_customer(db_session):
    """A customer that may be invoiced with VAT."""
    customer = Customer(name="Acme Trading", trn="100200300400003")
    db_session.add(customer)
    db_session.commit()
    return customer


def get_auth_token(client, username: str, password: str) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin", ADMIN_PASSWORD))


@pytest.fixture(scope='function')
def employee_headers(client, employee_user):
    return auth_headers(get_auth_token(client, "clerk", EMPLOYEE_PASSWORD))


def future_date(days: int = 30) -> str:
    return (utcnow() + timedelta(days=days)).date().isoformat()


def past_date(days: int = 30) -> str:
    return (utcnow() - timedelta(days=days)).date().isoformat()


def sales_payload(**overrides) -> dict:
    payload = {
        "invoice_date": utcnow().date().isoformat(),
        "due_date": future_date(),
        "customer": "Acme Trading",
        "container_no": "MSCU1234567",
        "supplier": "Karachi Rice Mills",
        "product": "Basmati Rice",
        "marka": "AK-7",
        "description": "Basmati rice, 25kg bags",
        "quantity": 10,
        "rate": 100,
        "vat_percentage": 0,
        "discount": 0,
    }
    payload.update(overrides)
    return payload


def flat_payload(**overrides) -> dict:
    payload = {
        "invoice_date": utcnow().date().isoformat(),
        "due_date": future_date(),
        "agent": "Gulf Line Agencies",
        "amount": 8000,
        "conversion_rate": 80,
    }
    payload.update(overrides)
    return payload
