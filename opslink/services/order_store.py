"""
OpsLink Hosting - Order Store
Users and orders, with atomic compare-and-set status updates.

Every mutation of Order.status is a single UPDATE ... WHERE status IN (...)
statement, so concurrent webhook deliveries and order actions resolve
deterministically: exactly one writer sees rowcount == 1.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from opslink.database import transaction
from opslink.models.order import ALLOWED_TRANSITIONS, MODIFIABLE_STATUSES, Order, OrderStatus
from opslink.models.user import User

logger = logging.getLogger(__name__)


class OrderStore:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ============================================================
    # USERS
    # ============================================================

    def get_user(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        with transaction(self._session_factory) as session:
            return session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with transaction(self._session_factory) as session:
            return session.query(User).filter(User.email == email).first()

    def create_user(self, email: str, password_hash: str, is_guest: bool = False) -> User:
        """Insert a user. Raises IntegrityError when the email is taken."""
        with transaction(self._session_factory) as session:
            user = User(email=email, password_hash=password_hash, is_guest=is_guest)
            session.add(user)
            session.flush()
            logger.info(f"User created: {user.id}")
            return user

    def get_or_create_user(self, email: str, password_hash: str, is_guest: bool = False) -> User:
        existing = self.get_user_by_email(email)
        if existing:
            return existing
        try:
            return self.create_user(email, password_hash, is_guest=is_guest)
        except IntegrityError:
            # Lost a race against a concurrent registration for the same email
            return self.get_user_by_email(email)

    def assign_billing_customer(self, user_id: str, customer_ref: str) -> str:
        """Set the billing customer reference once. Returns the stored value."""
        with transaction(self._session_factory) as session:
            applied = (
                session.query(User)
                .filter(User.id == user_id, User.billing_customer_ref.is_(None))
                .update({User.billing_customer_ref: customer_ref}, synchronize_session=False)
            )
            if applied:
                return customer_ref
            stored = session.get(User, user_id)
            logger.warning(f"User {user_id} already had billing customer {stored.billing_customer_ref}; kept it")
            return stored.billing_customer_ref

    def set_panel_password(self, user_id: str, panel_password_hash: str) -> bool:
        with transaction(self._session_factory) as session:
            return bool(
                session.query(User)
                .filter(User.id == user_id)
                .update({User.panel_password_hash: panel_password_hash}, synchronize_session=False)
            )

    # ============================================================
    # ORDERS
    # ============================================================

    def create_order(self, user_id: str, plan: str, handoff_secret_hash: Optional[str] = None) -> Order:
        with transaction(self._session_factory) as session:
            order = Order(
                user_id=user_id,
                plan=plan,
                status=OrderStatus.PENDING.value,
                handoff_secret_hash=handoff_secret_hash,
                addons=[],
            )
            session.add(order)
            session.flush()
            logger.info(f"Order {order.id} created for user {user_id} (plan={plan})")
            return order

    def get_order(self, order_id: str) -> Optional[Order]:
        if not order_id:
            return None
        with transaction(self._session_factory) as session:
            return session.get(Order, order_id)

    def find_order_by_session(self, session_ref: str) -> Optional[Order]:
        if not session_ref:
            return None
        with transaction(self._session_factory) as session:
            return session.query(Order).filter(Order.payment_session_ref == session_ref).first()

    def list_orders_for_user(self, user_id: str) -> List[Order]:
        with transaction(self._session_factory) as session:
            return (
                session.query(Order)
                .filter(Order.user_id == user_id)
                .order_by(Order.created_at)
                .all()
            )

    def attach_payment_session(self, order_id: str, session_ref: str) -> bool:
        with transaction(self._session_factory) as session:
            return bool(
                session.query(Order)
                .filter(Order.id == order_id, Order.payment_session_ref.is_(None))
                .update(
                    {Order.payment_session_ref: session_ref, Order.updated_at: datetime.utcnow()},
                    synchronize_session=False,
                )
            )

    def consume_handoff(self, session_ref: str, secret_hash: str) -> Optional[Order]:
        """Use up the one-time guest handoff of a paid order. Returns the order when it applied."""
        if not session_ref or not secret_hash:
            return None
        with transaction(self._session_factory) as session:
            applied = (
                session.query(Order)
                .filter(
                    Order.payment_session_ref == session_ref,
                    Order.handoff_secret_hash == secret_hash,
                    or_(
                        Order.status == OrderStatus.ACTIVE.value,
                        Order.provisioning_claim.isnot(None),
                    ),
                )
                .update({Order.handoff_secret_hash: None}, synchronize_session=False)
            )
            if not applied:
                return None
            return session.query(Order).filter(Order.payment_session_ref == session_ref).first()

    # ============================================================
    # COMPARE-AND-SET
    # ============================================================

    def _compare_and_set(self, order_id: str, expected: Iterable[OrderStatus], values: dict, *criteria) -> bool:
        values = dict(values)
        values[Order.updated_at] = datetime.utcnow()
        with transaction(self._session_factory) as session:
            applied = (
                session.query(Order)
                .filter(
                    Order.id == order_id,
                    Order.status.in_([OrderStatus(s).value for s in expected]),
                    *criteria,
                )
                .update(values, synchronize_session=False)
            )
            return applied == 1

    def _transition(self, order_id: str, target: OrderStatus, values: Optional[dict] = None) -> bool:
        updates = dict(values or {})
        updates[Order.status] = target.value
        applied = self._compare_and_set(order_id, ALLOWED_TRANSITIONS[target], updates)
        if applied:
            logger.info(f"Order {order_id} -> {target.value}")
        return applied

    def claim_for_provisioning(self, order_id: str, claim: str) -> bool:
        """Win the exclusive right to provision a pending order."""
        return self._compare_and_set(
            order_id,
            [OrderStatus.PENDING],
            {Order.provisioning_claim: claim},
            Order.provisioning_claim.is_(None),
        )

    def mark_active(self, order_id: str, external_resource_id: str, subscription_ref: Optional[str]) -> bool:
        return self._transition(
            order_id,
            OrderStatus.ACTIVE,
            {
                Order.external_resource_id: external_resource_id,
                Order.payment_subscription_ref: subscription_ref,
            },
        )

    def mark_failed(self, order_id: str) -> bool:
        return self._transition(order_id, OrderStatus.FAILED)

    def cancel(self, order_id: str) -> bool:
        return self._transition(order_id, OrderStatus.CANCELED)

    def set_backup(self, order_id: str, enabled: bool) -> bool:
        return self._compare_and_set(order_id, MODIFIABLE_STATUSES, {Order.backup_enabled: bool(enabled)})

    def change_plan(self, order_id: str, plan: str) -> bool:
        return self._compare_and_set(order_id, MODIFIABLE_STATUSES, {Order.plan: plan})
