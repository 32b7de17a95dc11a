"""
Pytest fixtures for SmartPOS backend tests.

Provides the application against in-memory SQLite, a clean database per
test, a recording notifier, and factories for catalogue and promotion data.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from smartpos import create_app
from smartpos.extensions import db
from smartpos.models import CashSession, Ticket, StockMovement
from smartpos.services import catalog_service, promotions_service, ticket_service
from smartpos.services.notification_service import NOTIFIER_KEY
from smartpos.services.ticket_service import CreateTicketRequest, TicketLineRequest
from smartpos.time_utils import utcnow


class RecordingNotifier:
    """Collects sale summaries; can be told to fail."""

    def __init__(self):
        self.summaries = []
        self.fail = False

    def notify_sale(self, summary):
        if self.fail:
            raise RuntimeError("notification sink unavailable")
        self.summaries.append(summary)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFICATIONS_INLINE': True,
        'SALE_NOTIFICATIONS_ENABLED': False,
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
def notifier(app):
    """Replace the sale notifier with a recording fake."""
    original = app.extensions[NOTIFIER_KEY]
    recorder = RecordingNotifier()
    app.extensions[NOTIFIER_KEY] = recorder
    yield recorder
    app.extensions[NOTIFIER_KEY] = original


@pytest.fixture(scope='function')
def make_product(db_session):
    """Create a product, optionally seeding stock through an adjustment."""
    counter = {"n": 0}

    def _make(sale_price="10.00", purchase_price="6.00", tax_percentage="10.00", stock=0, code=None, name=None):
        counter["n"] += 1
        product = catalog_service.create_product(
            code=code or f"P-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            sale_price=sale_price,
            purchase_price=purchase_price,
            tax_percentage=tax_percentage,
        )
        if stock:
            ticket_service.bulk_adjustment({product.id: stock}, "Opening stock")
        return product

    return _make


@pytest.fixture(scope='function')
def make_coupon(db_session):
    def _make(**overrides):
        now = utcnow()
        data = {
            "code": "SAVE10",
            "discount_type": "PERCENTAGE",
            "discount_value": Decimal("10"),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
        }
        data.update(overrides)
        return promotions_service.create_coupon(data)

    return _make


@pytest.fixture(scope='function')
def make_discount(db_session):
    def _make(**overrides):
        now = utcnow()
        data = {
            "name": "Store promo",
            "discount_type": "FIXED_AMOUNT",
            "discount_value": Decimal("5.00"),
            "applicable_on": "TOTAL",
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
        }
        data.update(overrides)
        return promotions_service.create_discount(data)

    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    return catalog_service.create_customer(first_name="Maria", last_name="Lopez", email="maria@example.com")


@pytest.fixture(scope='function')
def sell():
    """Shortcut: create a ticket from (product, quantity) pairs."""
    def _sell(*items, ticket_type="SALE", **kwargs):
        lines = []
        for item in items:
            product, quantity = item[0], item[1]
            is_defective = item[2] if len(item) > 2 else False
            lines.append(TicketLineRequest(product_id=product.id, quantity=quantity, is_defective=is_defective))
        return ticket_service.create_ticket(CreateTicketRequest(ticket_type=ticket_type, lines=lines, **kwargs))

    return _sell


def count_rows(model) -> int:
    return db.session.query(model).count()


@pytest.fixture(scope='function')
def row_counts(db_session):
    """Snapshot of ticket / movement / session row counts."""
    def _counts():
        return {
            "tickets": count_rows(Ticket),
            "movements": count_rows(StockMovement),
            "sessions": count_rows(CashSession),
        }
    return _counts
