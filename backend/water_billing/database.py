"""
Database Engine & Session Management
SQLAlchemy setup with dependency injection for FastAPI.
"""
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from water_billing.config import get_settings

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    kwargs = {"connect_args": {"check_same_thread": False}}  # Required for SQLite
    path = url.split("sqlite:///", 1)[1] if "sqlite:///" in url else ""
    if not path or path == ":memory:":
        # Test-only: every session shares one connection and so one transaction,
        # which defeats the conditional writes under concurrent requests
        kwargs["poolclass"] = StaticPool
    elif os.path.dirname(path):
        os.makedirs(os.path.dirname(path), exist_ok=True)
    return kwargs


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_kwargs(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes on finish."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables. Called once at application startup."""
    from water_billing.models import payment as _payment_model      # noqa: F401
    from water_billing.models import balance as _balance_model      # noqa: F401
    from water_billing.models import alert as _alert_model          # noqa: F401
    from water_billing.models import telemetry as _telemetry_model  # noqa: F401

    Base.metadata.create_all(bind=engine)
