from opslink.models.order import (
    ALLOWED_TRANSITIONS,
    MODIFIABLE_STATUSES,
    Order,
    OrderStatus,
    can_modify,
    can_transition,
)
from opslink.models.user import User

__all__ = ["ALLOWED_TRANSITIONS", "MODIFIABLE_STATUSES", "Order", "OrderStatus", "User", "can_modify", "can_transition"]
