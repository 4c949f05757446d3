"""
OpsLink Hosting - Checkout
Creates the pending order and its Stripe checkout session
"""
import logging
import secrets
from dataclasses import dataclass
from typing import Mapping, Optional

from opslink.config import PlanTemplate
from opslink.errors import CheckoutError, InvalidRequestError, PaymentProviderError
from opslink.models.user import User
from opslink.services.order_store import OrderStore
from opslink.services.passwords import digest_secret, hash_password
from opslink.services.payments import StripeGateway

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    order_id: str
    session_id: str
    checkout_url: str


class CheckoutService:

    def __init__(
        self,
        store: OrderStore,
        payments: StripeGateway,
        plans: Mapping[str, PlanTemplate],
        frontend_url: str,
    ):
        self._store = store
        self._payments = payments
        self._plans = plans
        self._frontend_url = frontend_url.rstrip("/")

    def resolve_user(self, user_id: Optional[str], email: Optional[str]) -> User:
        """Authenticated user, or a guest resolved/created by email."""
        if user_id:
            user = self._store.get_user(user_id)
            if not user:
                raise InvalidRequestError("User not found")
            return user
        if not email:
            raise InvalidRequestError("Email is required for guest checkout")
        # Guests get a random password; they set their own after checkout
        return self._store.get_or_create_user(email, hash_password(secrets.token_urlsafe(12)), is_guest=True)

    def ensure_billing_customer(self, user: User) -> str:
        if user.billing_customer_ref:
            return user.billing_customer_ref
        customer_ref = self._payments.create_customer(user.email)
        return self._store.assign_billing_customer(user.id, customer_ref)

    def initiate(self, plan_key: str, *, user_id: Optional[str] = None, email: Optional[str] = None) -> CheckoutResult:
        plan = self._plans.get(plan_key or "")
        if plan is None:
            raise InvalidRequestError("Invalid plan")

        user = self.resolve_user(user_id, email)
        try:
            customer_ref = self.ensure_billing_customer(user)
        except PaymentProviderError as e:
            raise CheckoutError("Failed to create checkout session") from e

        # Only travels in the success redirect; exchanged once for a guest token
        handoff = secrets.token_urlsafe(32)
        order = self._store.create_order(user.id, plan.key, handoff_secret_hash=digest_secret(handoff))
        try:
            session = self._payments.create_checkout_session(
                customer_ref=customer_ref,
                price_ref=plan.price_ref,
                success_url=(
                    f"{self._frontend_url}/set-password.html"
                    f"?session_id={{CHECKOUT_SESSION_ID}}&handoff={handoff}"
                ),
                cancel_url=f"{self._frontend_url}/website-hosting.html?canceled=true",
                metadata={"order_id": order.id, "plan": plan.key, "user_id": user.id},
                idempotency_key=f"checkout-{order.id}",
            )
        except PaymentProviderError as e:
            logger.error(f"Order {order.id} left pending without a checkout session (cleanup candidate)")
            raise CheckoutError("Failed to create checkout session") from e

        self._store.attach_payment_session(order.id, session.id)
        logger.info(f"Checkout session {session.id} created for order {order.id}")
        return CheckoutResult(order_id=order.id, session_id=session.id, checkout_url=session.url)
