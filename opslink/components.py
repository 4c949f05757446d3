"""
OpsLink Hosting - Component wiring
Builds the services shared by all routers and exposes them to handlers.
"""
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from opslink.config import PlanTemplate, Settings, load_plan_catalog
from opslink.services.checkout import CheckoutService
from opslink.services.discord import DiscordNotifier
from opslink.services.email_service import EmailService
from opslink.services.jwt_service import JWTService
from opslink.services.notifications import Notifier
from opslink.services.order_actions import OrderActionGateway
from opslink.services.order_store import OrderStore
from opslink.services.payments import StripeGateway
from opslink.services.pterodactyl import PterodactylClient
from opslink.services.reconciliation import ReconciliationEngine
from opslink.services.retry import RetryPolicy


@dataclass
class Components:
    settings: Settings
    plans: Mapping[str, PlanTemplate]
    store: OrderStore
    payments: StripeGateway
    provisioner: PterodactylClient
    notifier: Notifier
    jwt: JWTService
    checkout: CheckoutService
    reconciler: ReconciliationEngine
    actions: OrderActionGateway


def build_components(
    settings: Settings,
    session_factory: sessionmaker,
    *,
    payments: Optional[StripeGateway] = None,
    provisioner: Optional[PterodactylClient] = None,
    notifier: Optional[Notifier] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Components:
    plans = load_plan_catalog(settings)
    store = OrderStore(session_factory)
    payments = payments or StripeGateway(
        settings.STRIPE_SECRET_KEY,
        settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    )
    provisioner = provisioner or PterodactylClient(
        settings.PTERO_URL,
        settings.PTERO_API_KEY,
        location_id=settings.PTERO_LOCATION_ID,
        name_prefix=settings.SERVER_NAME_PREFIX,
        timeout=settings.PTERO_TIMEOUT_SECONDS,
    )
    notifier = notifier or Notifier(EmailService(settings), DiscordNotifier(settings.DISCORD_WEBHOOK_URL))

    return Components(
        settings=settings,
        plans=plans,
        store=store,
        payments=payments,
        provisioner=provisioner,
        notifier=notifier,
        jwt=JWTService(settings),
        checkout=CheckoutService(store, payments, plans, settings.FRONTEND_URL),
        reconciler=ReconciliationEngine(
            store,
            payments,
            provisioner,
            notifier,
            plans,
            RetryPolicy.from_settings(settings),
            default_owner_ref=str(settings.PTERO_DEFAULT_OWNER_ID),
            sleep=sleep,
        ),
        actions=OrderActionGateway(store, notifier, plans),
    )


def get_components(request: Request) -> Components:
    return request.app.state.components
