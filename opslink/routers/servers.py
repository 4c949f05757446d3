"""
OpsLink Hosting - Servers Router
Handles: checkout session, list servers, server actions
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from opslink.components import Components, get_components
from opslink.models.user import User
from opslink.routers.auth import get_current_user, get_optional_user
from opslink.services.order_actions import Cancel, ToggleBackup, Upgrade

router = APIRouter()


class CheckoutRequest(BaseModel):
    plan: str
    email: Optional[EmailStr] = None


class ServerActionRequest(BaseModel):
    serverId: str
    enable: Optional[bool] = None
    newPlan: Optional[str] = None


def parse_action(action: str, request: ServerActionRequest):
    if action == "backups":
        return ToggleBackup(enable=bool(request.enable))
    if action == "cancel":
        return Cancel()
    if action == "upgrade":
        return Upgrade(new_plan=request.newPlan or "")
    return None


@router.post("/checkout-session")
def create_checkout_session(
    request: CheckoutRequest,
    user: Optional[User] = Depends(get_optional_user),
    components: Components = Depends(get_components),
):
    """Create a pending order and hand back the Stripe checkout URL"""
    result = components.checkout.initiate(
        request.plan,
        user_id=user.id if user else None,
        email=request.email.lower() if request.email else None,
    )
    return {"success": True, "checkoutUrl": result.checkout_url, "orderId": result.order_id}


@router.get("/servers")
def list_servers(user: User = Depends(get_current_user), components: Components = Depends(get_components)):
    orders = components.store.list_orders_for_user(user.id)
    return {"success": True, "servers": [o.to_dict() for o in orders]}


@router.post("/server/{action}")
def server_action(
    action: str,
    request: ServerActionRequest,
    user: User = Depends(get_current_user),
    components: Components = Depends(get_components),
):
    parsed = parse_action(action, request)
    if parsed is None:
        return {"success": False, "message": "Unknown action"}
    result = components.actions.perform(user.id, request.serverId, parsed)
    return {"success": True, "server": result.order.to_dict()}
