"""
OpsLink Hosting - Database
Engine, session factory and request-scoped session dependency
"""
from contextlib import contextmanager
from pathlib import Path

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # Handlers run in the worker threadpool
        connect_args = {"check_same_thread": False}
        if database_url == "sqlite://" or ":memory:" in database_url:
            return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
        db_path = database_url.split("sqlite:///")[-1]
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        return create_engine(database_url, connect_args=connect_args)
    return create_engine(database_url, pool_pre_ping=True)


def build_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # Register models on Base.metadata before creating tables
    from opslink.models import order, user  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def transaction(session_factory: sessionmaker):
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db(request: Request):
    db: Session = request.app.state.sessionmaker()
    try:
        yield db
    finally:
        db.close()
