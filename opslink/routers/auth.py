"""
OpsLink Hosting - Authentication Router
Handles: register, login, guest token exchange, panel password, client log relay
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr
from sqlalchemy.exc import IntegrityError

from opslink.components import Components, get_components
from opslink.errors import AuthenticationError, PaymentProviderError
from opslink.models.user import User
from opslink.services.passwords import digest_secret, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()
security = HTTPBearer(auto_error=False)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class PanelPasswordRequest(BaseModel):
    password: str


class ClientLogRequest(BaseModel):
    title: str
    description: str = ""


# ============================================================
# DEPENDENCIES
# ============================================================

def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    components: Components = Depends(get_components),
) -> Optional[User]:
    """User behind the bearer token, or None when no token was sent."""
    if not credentials:
        return None
    payload = components.jwt.verify_token(credentials.credentials)
    user = components.store.get_user(payload["sub"])
    if not user:
        raise AuthenticationError("Invalid token")
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise AuthenticationError("Unauthorized")
    return user


def sanitize_string(value: str, max_length: int = 255) -> str:
    if not value:
        return ""
    return value.replace("\x00", "")[:max_length].strip()


# ============================================================
# ROUTES
# ============================================================

@router.post("/register")
def register(request: RegisterRequest, components: Components = Depends(get_components)):
    """Register a new user account"""
    if not request.password:
        return {"success": False, "message": "Password is required"}
    email = request.email.lower()
    try:
        user = components.store.create_user(email, hash_password(request.password))
    except IntegrityError:
        return {"success": False, "message": "Email already exists."}

    try:
        components.checkout.ensure_billing_customer(user)
    except PaymentProviderError:
        logger.warning(f"Billing customer for {email} deferred to first checkout")

    components.notifier.user_registered(email)
    return {"success": True}


@router.post("/login")
def login(request: LoginRequest, components: Components = Depends(get_components)):
    """Login with email and password"""
    user = components.store.get_user_by_email(request.email.lower())
    if not user:
        return {"success": False, "message": "User not found"}
    if not verify_password(request.password, user.password_hash):
        return {"success": False, "message": "Invalid password"}

    components.notifier.user_logged_in(user.email)
    return {"success": True, "token": components.jwt.create_access_token(user.id)}


@router.get("/guest-token/{session_ref}")
def guest_token(session_ref: str, handoff: str = "", components: Components = Depends(get_components)):
    """Exchange a paid guest checkout for a short-lived token of its buyer.

    Needs the one-time handoff secret from the success redirect. Only guest
    accounts qualify, and only once the payment has been confirmed.
    """
    order = components.store.find_order_by_session(session_ref)
    owner = components.store.get_user(order.user_id) if order else None
    if not owner or not owner.is_guest:
        return {"success": False, "message": "Invalid or expired link"}

    order = components.store.consume_handoff(session_ref, digest_secret(handoff))
    if not order:
        logger.warning(f"Rejected guest token exchange for session {session_ref}")
        return {"success": False, "message": "Invalid or expired link"}
    return {"success": True, "token": components.jwt.create_guest_token(order.user_id)}


@router.post("/set-panel-password")
def set_panel_password(
    request: PanelPasswordRequest,
    user: User = Depends(get_current_user),
    components: Components = Depends(get_components),
):
    if not request.password:
        return {"success": False, "message": "Password is required"}
    if not components.store.set_panel_password(user.id, hash_password(request.password)):
        return {"success": False, "message": "Failed to set password"}
    return {"success": True}


@router.post("/discord-log")
def discord_log(request: ClientLogRequest, components: Components = Depends(get_components)):
    """Relay a client-side event to the operator log channel"""
    components.notifier.client_log(
        sanitize_string(request.title, 256),
        sanitize_string(request.description, 2000),
    )
    return {"success": True}
