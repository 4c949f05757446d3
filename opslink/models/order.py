from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, String
from sqlalchemy.orm import relationship

from opslink.database import Base


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"
    CANCELED = "canceled"


# target status -> statuses it may be entered from
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.ACTIVE: frozenset({OrderStatus.PENDING}),
    OrderStatus.FAILED: frozenset({OrderStatus.PENDING}),
    OrderStatus.CANCELED: frozenset({OrderStatus.PENDING, OrderStatus.ACTIVE, OrderStatus.FAILED}),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(current) in ALLOWED_TRANSITIONS.get(OrderStatus(target), frozenset())


# statuses in which an owner may change backups or the plan
MODIFIABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.ACTIVE})


def can_modify(current: OrderStatus) -> bool:
    return OrderStatus(current) in MODIFIABLE_STATUSES


class Order(Base):
    """A purchased hosting server, tracked from checkout to cancellation."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    plan = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default=OrderStatus.PENDING.value, index=True)
    external_resource_id = Column(String(64), nullable=True)
    payment_session_ref = Column(String(255), unique=True, nullable=True)
    payment_subscription_ref = Column(String(255), nullable=True)
    provisioning_claim = Column(String(255), nullable=True)
    handoff_secret_hash = Column(String(64), nullable=True)  # one-time guest token exchange, cleared on use
    backup_enabled = Column(Boolean, nullable=False, default=False)
    addons = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="orders")

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plan": self.plan,
            "status": self.status,
            "externalResourceId": self.external_resource_id,
            "backupEnabled": bool(self.backup_enabled),
            "addons": list(self.addons or []),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
