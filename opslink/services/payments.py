"""
OpsLink Hosting - Stripe Gateway
Billing customers, subscription checkout sessions and webhook verification
"""
import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import stripe

from opslink.errors import PaymentProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    id: str
    url: str


class StripeGateway:
    """Thin wrapper over the Stripe SDK. Never mutates stripe.api_key globally."""

    def __init__(self, secret_key: str, webhook_secret: str, tolerance: int = 300):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance

    def create_customer(self, email: str) -> str:
        try:
            customer = stripe.Customer.create(email=email, api_key=self._secret_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for {email}: {e}")
            raise PaymentProviderError("Failed to create billing customer") from e
        return customer.id

    def create_checkout_session(
        self,
        customer_ref: str,
        price_ref: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession:
        options = {"api_key": self._secret_key}
        if idempotency_key:
            options["idempotency_key"] = idempotency_key
        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_ref, "quantity": 1}],
                customer=customer_ref,
                metadata=metadata,
                subscription_data={"metadata": metadata},
                success_url=success_url,
                cancel_url=cancel_url,
                **options,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise PaymentProviderError("Failed to create checkout session") from e
        return CheckoutSession(id=session.id, url=session.url)

    def verify_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """Check the Stripe-Signature header over the raw body, then decode it."""
        if not signature or not self._webhook_secret:
            raise WebhookSignatureError("Missing webhook signature")
        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(text, signature, self._webhook_secret, self._tolerance)
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            raise WebhookSignatureError("Invalid webhook signature") from e
        try:
            event = json.loads(text)
        except ValueError as e:
            raise WebhookSignatureError("Webhook payload is not valid JSON") from e
        if not isinstance(event, dict):
            raise WebhookSignatureError("Webhook payload is not an event object")
        return event
