"""
Pytest fixtures for VendSys backend tests.

Provides the in-memory app, a per-test clean database, the test client, and
fakes for the two external collaborators (payment gateway and alert mail).
"""

from datetime import datetime

import pytest

from vendsys import create_app
from vendsys.errors import GatewayUnavailableError, NotFoundError, TransportFailureError
from vendsys.extensions import db
from vendsys.models import Machine, User
from vendsys.services.mail_transport import MailTransport
from vendsys.services.payment_gateway import GatewayPayment, PaymentGateway, Preference


T0 = datetime(2026, 10, 17, 12, 0, 0)


class FakeGateway(PaymentGateway):
    """In-memory payment gateway. Payments are registered by tests."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.preferences = []
        self.payments = {}
        self.payment_lookups = []
        self.fail_create = False
        self.fail_lookup = False

    def create_preference(self, items, external_reference, notification_url, currency):
        if self.fail_create:
            raise GatewayUnavailableError("gateway down")
        pref_id = f"PREF-{len(self.preferences) + 1}"
        self.preferences.append({
            "id": pref_id,
            "items": items,
            "external_reference": external_reference,
            "notification_url": notification_url,
            "currency": currency,
        })
        return Preference(id=pref_id, redirect_url=f"https://pay.example/checkout/{pref_id}")

    def set_payment(self, payment_id, status, external_reference, status_detail=None):
        self.payments[str(payment_id)] = GatewayPayment(
            id=str(payment_id),
            status=status,
            status_detail=status_detail or f"{status}_detail",
            external_reference=external_reference,
        )

    def get_payment(self, payment_id):
        self.payment_lookups.append(str(payment_id))
        if self.fail_lookup:
            raise GatewayUnavailableError("gateway down")
        try:
            return self.payments[str(payment_id)]
        except KeyError:
            raise NotFoundError(f"payment {payment_id} not found")


class RecordingTransport(MailTransport):
    """Records every send. `on_send` runs before recording; `fail` raises."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.sent = []
        self.fail = False
        self.on_send = None

    def send(self, recipients, subject, html):
        if self.on_send is not None:
            self.on_send(recipients, subject, html)
        if self.fail:
            raise TransportFailureError("smtp down")
        self.sent.append({"recipients": sorted(recipients), "subject": subject, "html": html})


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'BACKEND_URL': 'https://api.vending.test',
            'FRONTEND_URL': 'https://dashboard.vending.test',
            'HEARTBEAT_TOLERANCE_MINUTES': 7,
        },
        payment_gateway=FakeGateway(),
        mail_transport=RecordingTransport(),
    )

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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def gateway(app, db_session):
    fake = app.extensions["payment_gateway"]
    fake.reset()
    return fake


@pytest.fixture(scope='function')
def transport(app, db_session):
    fake = app.extensions["mail_transport"]
    fake.reset()
    return fake


def make_user(db_session, email, role="technician", machine_offline=True, is_active=True):
    user = User(
        email=email,
        name=email.split("@")[0],
        role=role,
        password_hash="x",
        notify_email_machine_offline=machine_offline,
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    return user


def make_machine(db_session, machine_id, status="offline", last_heartbeat=None, location="Lobby"):
    machine = Machine(machine_id=machine_id, status=status, last_heartbeat=last_heartbeat, location=location)
    db_session.add(machine)
    db_session.commit()
    return machine


@pytest.fixture(scope='function')
def alert_recipients(db_session):
    """An admin and a technician who want offline alerts, plus users who must not get them."""
    make_user(db_session, "admin@vending.test", role="admin")
    make_user(db_session, "tech@vending.test", role="technician")
    make_user(db_session, "sales@vending.test", role="sales")
    make_user(db_session, "quiet@vending.test", role="technician", machine_offline=False)
    make_user(db_session, "gone@vending.test", role="admin", is_active=False)
    return ["admin@vending.test", "tech@vending.test"]
