"""
OpsLink Hosting - Error types
"""
from typing import Optional


class OpsLinkError(Exception):
    """Base error carrying a user-facing message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(OpsLinkError):
    """Missing field, unknown plan or other bad input. Nothing was mutated."""


class AuthenticationError(OpsLinkError):
    """Missing or invalid bearer credential."""


class WebhookSignatureError(OpsLinkError):
    """Webhook payload failed signature verification."""


class PaymentProviderError(OpsLinkError):
    """Stripe call failed."""


class ProvisioningError(OpsLinkError):
    """Pterodactyl call failed or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RetryExhaustedError(OpsLinkError):
    """All attempts of a retried call failed."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class CheckoutError(OpsLinkError):
    """Checkout session could not be initiated."""


class OrderActionError(OpsLinkError):
    """An order action was rejected by ownership or state guards."""
