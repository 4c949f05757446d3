"""
OpsLink Hosting - Configuration
Environment variables, plan catalog and provisioning retry policy
"""
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    APP_NAME: str = "OpsLink Hosting API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./opslink.db"

    # JWT
    JWT_SECRET: str = os.getenv("JWT_SECRET", "opslink-secret-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days
    GUEST_TOKEN_EXPIRE_MINUTES: int = 60

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    PRICE_STATIC_BASIC: str = "price_static_basic"
    PRICE_DYNAMIC_BASIC: str = "price_dynamic_basic"

    # Frontend
    FRONTEND_URL: str = "http://localhost:5000"

    # Pterodactyl panel
    PTERO_URL: str = "http://localhost:8080"
    PTERO_API_KEY: str = ""
    PTERO_DEFAULT_OWNER_ID: int = 1
    PTERO_LOCATION_ID: int = 1
    PTERO_TIMEOUT_SECONDS: float = 30.0
    SERVER_NAME_PREFIX: str = "OpsLink"

    # Provisioning retry
    PROVISION_MAX_ATTEMPTS: int = 3
    PROVISION_INITIAL_DELAY_SECONDS: float = 3.0
    PROVISION_BACKOFF_MULTIPLIER: float = 2.0

    # SMTP Email
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "noreply@opslink.host"

    # Discord logging
    DISCORD_WEBHOOK_URL: str = ""

    # HTTP
    RATE_LIMIT_PER_MINUTE: int = 100
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True


@dataclass(frozen=True)
class PlanTemplate:
    """Provisioning template for one purchasable hosting plan."""

    key: str
    price_ref: str
    egg: int
    docker_image: str
    startup: str
    memory: int
    disk: int
    cpu: int
    backups: int
    environment: Mapping[str, str] = field(default_factory=dict)


def load_plan_catalog(settings: Settings) -> Mapping[str, PlanTemplate]:
    """Build the read-only plan table. Called once at startup."""
    plans: Dict[str, PlanTemplate] = {
        "static-basic": PlanTemplate(
            key="static-basic",
            price_ref=settings.PRICE_STATIC_BASIC,
            egg=15,
            docker_image="ghcr.io/pterodactyl/yolks:nodejs_18",
            startup="npm start",
            memory=1024,
            disk=1024,
            cpu=100,
            backups=1,
            environment=MappingProxyType({"NODE_ENV": "production"}),
        ),
        "dynamic-basic": PlanTemplate(
            key="dynamic-basic",
            price_ref=settings.PRICE_DYNAMIC_BASIC,
            egg=17,
            docker_image="ghcr.io/pterodactyl/yolks:php_8.2",
            startup="php -S 0.0.0.0:{{SERVER_PORT}} -t public",
            memory=2048,
            disk=2048,
            cpu=200,
            backups=2,
            environment=MappingProxyType({"PHP_VERSION": "8.2"}),
        ),
    }
    return MappingProxyType(plans)


settings = Settings()
