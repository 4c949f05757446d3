"""
OpsLink Hosting - Order actions
Owner-initiated changes to an existing server: backups, cancellation, upgrade.

TODO: sync backup limits, plan resizing and teardown on cancel to Pterodactyl,
and prorate upgrades in Stripe. These only change local state today.
"""
import logging
from dataclasses import dataclass
from typing import Mapping, Union

from opslink.config import PlanTemplate
from opslink.errors import OrderActionError
from opslink.models.order import Order, OrderStatus, can_modify, can_transition
from opslink.services.notifications import Notifier
from opslink.services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleBackup:
    enable: bool


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Upgrade:
    new_plan: str


OrderAction = Union[ToggleBackup, Cancel, Upgrade]


@dataclass
class ActionResult:
    order: Order
    changed: bool


class OrderActionGateway:

    def __init__(self, store: OrderStore, notifier: Notifier, plans: Mapping[str, PlanTemplate]):
        self._store = store
        self._notifier = notifier
        self._plans = plans

    def perform(self, user_id: str, order_id: str, action: OrderAction) -> ActionResult:
        order = self._store.get_order(order_id)
        if order is None or order.user_id != user_id:
            raise OrderActionError("Server not found")

        match action:
            case ToggleBackup(enable=enable):
                changed, title = self._toggle_backup(order, enable), f"Backup {'enabled' if enable else 'disabled'}"
            case Cancel():
                changed, title = self._cancel(order), "Server canceled"
            case Upgrade(new_plan=new_plan):
                changed, title = self._upgrade(order, new_plan), f"Server upgraded → {new_plan}"
            case _:
                raise TypeError(f"Unsupported order action: {action!r}")

        if changed:
            self._notifier.order_changed(order.id, title)
        return ActionResult(order=self._store.get_order(order.id), changed=changed)

    def _toggle_backup(self, order: Order, enable: bool) -> bool:
        if not can_modify(order.status):
            raise OrderActionError("Backups can only be changed on an active server")
        if bool(order.backup_enabled) == bool(enable):
            return False
        if not self._store.set_backup(order.id, enable):
            raise OrderActionError("Backups can only be changed on an active server")
        return True

    def _cancel(self, order: Order) -> bool:
        if can_transition(order.status, OrderStatus.CANCELED) and self._store.cancel(order.id):
            return True
        current = self._store.get_order(order.id)
        if current.status == OrderStatus.CANCELED.value:
            logger.info(f"Order {order.id} already canceled")
            return False
        raise OrderActionError("Server action failed")

    def _upgrade(self, order: Order, new_plan: str) -> bool:
        if not new_plan or new_plan not in self._plans:
            raise OrderActionError("Invalid plan")
        if not can_modify(order.status):
            raise OrderActionError("Only active servers can be upgraded")
        if order.plan == new_plan:
            return False
        if not self._store.change_plan(order.id, new_plan):
            raise OrderActionError("Only active servers can be upgraded")
        return True
