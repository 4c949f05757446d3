"""
OpsLink Hosting - Notifications
Best-effort customer emails and operator log lines. Nothing here raises.
"""
import logging
from functools import wraps

from opslink.models.order import Order
from opslink.services.discord import COLOR_ERROR, COLOR_INFO, COLOR_NOTICE, COLOR_SUCCESS, DiscordNotifier
from opslink.services.email_service import EmailService

logger = logging.getLogger(__name__)


def best_effort(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Notification {func.__name__} failed: {e}")
    return wrapper


class Notifier:

    def __init__(self, email: EmailService, discord: DiscordNotifier):
        self.email = email
        self.discord = discord

    @best_effort
    def user_registered(self, email: str):
        self.discord.send("New User Registered", f"Email: {email}", COLOR_SUCCESS)

    @best_effort
    def user_logged_in(self, email: str):
        self.discord.send("User Logged In", f"Email: {email}", COLOR_NOTICE)

    @best_effort
    def server_ready(self, user_email: str, order: Order, external_resource_id: str):
        self.email.send_server_ready(user_email, order.plan)
        self.discord.send(
            "Server Created",
            f"User: {user_email}\nPlan: {order.plan}\nPtero ID: {external_resource_id}",
            COLOR_SUCCESS,
        )

    @best_effort
    def provisioning_failed(self, user_email: str, order: Order, error: str):
        self.email.send_provisioning_failed(user_email, order.plan)
        self.discord.send(
            "Server Creation Failed",
            f"Order: {order.id}\nUser: {user_email}\nPlan: {order.plan}\nError: {error}",
            COLOR_ERROR,
        )

    @best_effort
    def orphan_resource(self, order: Order, external_resource_id: str):
        self.discord.send(
            "Server Created For Canceled Order",
            f"Order: {order.id}\nPtero ID: {external_resource_id}\nManual teardown required.",
            COLOR_ERROR,
        )

    @best_effort
    def order_changed(self, order_id: str, title: str):
        self.discord.send(title, f"Server ID: {order_id}", COLOR_INFO)

    @best_effort
    def client_log(self, title: str, description: str):
        self.discord.send(title, description, COLOR_INFO)
