"""
OpsLink Hosting - Reconciliation Engine
Turns verified Stripe checkout completions into provisioned servers.

Flow per event:
  1. verify the Stripe-Signature header (rejects with no side effects)
  2. resolve the order from session metadata, falling back to the session id
  3. claim the pending order with one compare-and-set; losers acknowledge
  4. provision on Pterodactyl with bounded exponential backoff
  5. commit active/failed with a compare-and-set conditional on pending,
     then notify

Step 5 is conditional on the order still being pending, so a cancellation
that lands while provisioning is in flight is never overwritten.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional
from uuid import uuid4

from opslink.config import PlanTemplate
from opslink.errors import RetryExhaustedError
from opslink.models.order import Order, OrderStatus, can_transition
from opslink.services.notifications import Notifier
from opslink.services.order_store import OrderStore
from opslink.services.payments import StripeGateway
from opslink.services.pterodactyl import PterodactylClient
from opslink.services.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


class ReconcileOutcome(str, Enum):
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"
    DUPLICATE = "duplicate"
    ACTIVATED = "activated"
    FAILED = "failed"
    SUPERSEDED = "superseded"
    ERROR = "error"


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    order_id: Optional[str] = None
    external_resource_id: Optional[str] = None


class ReconciliationEngine:

    def __init__(
        self,
        store: OrderStore,
        payments: StripeGateway,
        provisioner: PterodactylClient,
        notifier: Notifier,
        plans: Mapping[str, PlanTemplate],
        policy: RetryPolicy,
        *,
        default_owner_ref: str,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._payments = payments
        self._provisioner = provisioner
        self._notifier = notifier
        self._plans = plans
        self._policy = policy
        self._default_owner_ref = default_owner_ref
        self._sleep = sleep

    def handle(self, payload: bytes, signature: Optional[str]) -> ReconcileResult:
        """Entry point for the webhook. Raises WebhookSignatureError on a bad signature."""
        event = self._payments.verify_event(payload, signature)
        return self.process_event(event)

    def process_event(self, event: dict) -> ReconcileResult:
        event_type = event.get("type")
        if event_type != CHECKOUT_COMPLETED:
            logger.info(f"Ignoring webhook event {event.get('id')} of type {event_type}")
            return ReconcileResult(ReconcileOutcome.IGNORED)

        data = event.get("data")
        session = data.get("object") if isinstance(data, dict) else None
        if not isinstance(session, dict):
            logger.warning(f"Checkout completion {event.get('id')} carries no session object")
            return ReconcileResult(ReconcileOutcome.UNRESOLVED)

        order = self._resolve_order(session)
        if order is None:
            logger.warning(f"Checkout completion {session.get('id')} does not match any order")
            return ReconcileResult(ReconcileOutcome.UNRESOLVED)

        try:
            return self._reconcile(order, session, claim=str(event.get("id") or session.get("id") or uuid4()))
        except Exception as e:
            # Still acknowledged: the claim already blocks reprocessing on redelivery
            logger.exception(f"Reconciliation of order {order.id} crashed: {e}")
            self._notifier.client_log("Server Provisioning Error", f"Order: {order.id}\nError: {e}")
            return ReconcileResult(ReconcileOutcome.ERROR, order.id)

    def _resolve_order(self, session: dict) -> Optional[Order]:
        metadata = session.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        session_ref = session.get("id")
        if not isinstance(session_ref, str):
            session_ref = None

        order_id = metadata.get("order_id")
        order = self._store.get_order(order_id) if isinstance(order_id, str) else None
        if order is None:
            order = self._store.find_order_by_session(session_ref)
        if order is None:
            return None

        if session_ref and order.payment_session_ref and order.payment_session_ref != session_ref:
            logger.warning(
                f"Session {session_ref} names order {order.id}, which belongs to session {order.payment_session_ref}"
            )
            return None
        if metadata.get("plan") and metadata["plan"] != order.plan:
            logger.warning(f"Session plan {metadata['plan']} differs from order {order.id} plan {order.plan}")
        return order

    def _reconcile(self, order: Order, session: dict, claim: str) -> ReconcileResult:
        settled = not can_transition(order.status, OrderStatus.ACTIVE)
        if settled or not self._store.claim_for_provisioning(order.id, claim):
            current = self._store.get_order(order.id)
            logger.info(f"Order {order.id} already handled (status={current.status}); acknowledging duplicate")
            return ReconcileResult(ReconcileOutcome.DUPLICATE, order.id, current.external_resource_id)

        user = self._store.get_user(order.user_id)
        user_email = user.email if user else ""
        owner_ref = (user.panel_user_id if user else None) or self._default_owner_ref

        plan = self._plans.get(order.plan)
        if plan is None:
            logger.error(f"Order {order.id} references unknown plan {order.plan}")
            return self._fail(order, user_email, f"Unknown plan {order.plan}")

        try:
            external_id = call_with_retry(
                lambda attempt: self._provisioner.provision(order.id, owner_ref, plan),
                self._policy,
                sleep=self._sleep,
                on_retry=lambda attempt, error, delay: logger.warning(
                    f"Provisioning order {order.id} (plan={plan.key}) attempt {attempt} failed, "
                    f"next try in {delay:.1f}s: {error}"
                ),
            )
        except RetryExhaustedError as e:
            return self._fail(order, user_email, str(e.last_error))

        if not self._store.mark_active(order.id, external_id, _subscription_ref(session)):
            logger.warning(f"Order {order.id} left pending during provisioning; server {external_id} is orphaned")
            self._notifier.orphan_resource(order, external_id)
            return ReconcileResult(ReconcileOutcome.SUPERSEDED, order.id)

        self._notifier.server_ready(user_email, order, external_id)
        return ReconcileResult(ReconcileOutcome.ACTIVATED, order.id, external_id)

    def _fail(self, order: Order, user_email: str, error: str) -> ReconcileResult:
        if not self._store.mark_failed(order.id):
            logger.warning(f"Order {order.id} left pending during provisioning; not marking failed")
            return ReconcileResult(ReconcileOutcome.SUPERSEDED, order.id)
        logger.error(f"Provisioning failed for order {order.id}: {error}")
        self._notifier.provisioning_failed(user_email, order, error)
        return ReconcileResult(ReconcileOutcome.FAILED, order.id)


def _subscription_ref(session: dict) -> Optional[str]:
    subscription = session.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")
    return subscription if isinstance(subscription, str) else None
