"""
OpsLink Hosting - Main API Entry Point
FastAPI application: checkout, Stripe webhook reconciliation, server management
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from opslink.components import build_components
from opslink.config import Settings, settings as default_settings
from opslink.database import build_engine, build_sessionmaker, get_db, init_db
from opslink.errors import AuthenticationError, OpsLinkError
from opslink.middleware.rate_limit import RateLimitMiddleware
from opslink.routers import auth, servers, webhook

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    payments=None,
    provisioner=None,
    notifier=None,
    sleep: Callable[[float], None] = time.sleep,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    session_factory = build_sessionmaker(engine)
    components = build_components(
        settings,
        session_factory,
        payments=payments,
        provisioner=provisioner,
        notifier=notifier,
        sleep=sleep,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"✅ {settings.APP_NAME} started ({len(components.plans)} plans)")
        yield
        components.provisioner.close()
        engine.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Hosting checkout, payment reconciliation and Pterodactyl provisioning",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.sessionmaker = session_factory
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.RATE_LIMIT_PER_MINUTE)

    app.include_router(auth.router, prefix="/api", tags=["Authentication"])
    app.include_router(servers.router, prefix="/api", tags=["Servers"])
    app.include_router(webhook.router, tags=["Webhook"])

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content={"success": False, "message": exc.message})

    @app.exception_handler(OpsLinkError)
    async def business_error_handler(request: Request, exc: OpsLinkError):
        return JSONResponse(status_code=200, content={"success": False, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=200, content={"success": False, "message": detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})

    @app.get("/health")
    def health_check(db: Session = Depends(get_db)):
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "service": settings.APP_NAME}

    return app


def main():
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=5000)


if __name__ == "__main__":
    main()
