import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from opslink.config import Settings
from opslink.errors import PaymentProviderError, ProvisioningError
from opslink.main import create_app
from opslink.services.payments import CheckoutSession, StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


class FakePayments(StripeGateway):
    """Stripe gateway with canned customer/session calls and real signature checks."""

    def __init__(self):
        super().__init__("sk_test", WEBHOOK_SECRET)
        self.customers = []
        self.sessions = []
        self.fail_customer = False
        self.fail_session = False

    def create_customer(self, email):
        if self.fail_customer:
            raise PaymentProviderError("Failed to create billing customer")
        self.customers.append(email)
        return f"cus_{len(self.customers)}"

    def create_checkout_session(self, customer_ref, price_ref, success_url, cancel_url, metadata, idempotency_key=None):
        if self.fail_session:
            raise PaymentProviderError("Failed to create checkout session")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({
            "id": session_id,
            "customer": customer_ref,
            "price": price_ref,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": dict(metadata),
            "idempotency_key": idempotency_key,
        })
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")


class FakeProvisioner:

    def __init__(self, failures=0):
        self.failures = failures
        self.calls = []
        self.before_return = None

    def provision(self, order_id, owner_ref, plan):
        self.calls.append((order_id, owner_ref, plan.key))
        if len(self.calls) <= self.failures:
            raise ProvisioningError("Server creation failed with HTTP 500")
        if self.before_return:
            self.before_return(order_id)
        return f"{100 + len(self.calls)}"

    def close(self):
        pass


class RecordingNotifier:

    def __init__(self):
        self.events = []

    def names(self):
        return [name for name, _ in self.events]

    def user_registered(self, email):
        self.events.append(("user_registered", email))

    def user_logged_in(self, email):
        self.events.append(("user_logged_in", email))

    def server_ready(self, user_email, order, external_resource_id):
        self.events.append(("server_ready", order.id))

    def provisioning_failed(self, user_email, order, error):
        self.events.append(("provisioning_failed", order.id))

    def orphan_resource(self, order, external_resource_id):
        self.events.append(("orphan_resource", order.id))

    def order_changed(self, order_id, title):
        self.events.append(("order_changed", title))

    def client_log(self, title, description):
        self.events.append(("client_log", title))


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def completion_event(order_id, session_ref, plan="static-basic", event_id="evt_test_1", subscription="sub_test_1"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_ref,
                "object": "checkout.session",
                "subscription": subscription,
                "metadata": {"order_id": order_id, "plan": plan},
            }
        },
    }


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        JWT_SECRET="test-jwt-secret",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        FRONTEND_URL="https://opslink.test",
        RATE_LIMIT_PER_MINUTE=10_000,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def app(settings, payments, provisioner, notifier, sleeps):
    return create_app(settings, payments=payments, provisioner=provisioner, notifier=notifier, sleep=sleeps.append)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def components(app):
    return app.state.components


@pytest.fixture
def store(components):
    return components.store


@pytest.fixture
def pending_order(components):
    """A checked-out order waiting for its payment confirmation."""
    result = components.checkout.initiate("static-basic", email="buyer@example.com")
    return components.store.get_order(result.order_id)


@pytest.fixture
def user_token(components):
    def _token(user_id):
        return {"Authorization": f"Bearer {components.jwt.create_access_token(user_id)}"}
    return _token
