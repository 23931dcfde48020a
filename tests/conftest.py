# Pytest Configuration and Shared Fixtures
# Common test fixtures and configuration for the test suite

import os
import sys

# Set test database URL BEFORE importing any app modules
# This keeps the API module from creating a database file during tests
os.environ["DATABASE_URL"] = "sqlite://"

# Add the project root to the Python path for test imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ai.error_handling import reset_circuit_breakers
from ai.llm.factory import clear_backend_cache
from helpers import FakeBackendRegistry

# ============================================
# Global state
# ============================================

@pytest.fixture(autouse=True)
def reset_ai_state():
    """Circuit breakers and cached backends are process-wide; start every test clean."""
    reset_circuit_breakers()
    clear_backend_cache()
    yield
    reset_circuit_breakers()
    clear_backend_cache()


# ============================================
# Database fixtures
# ============================================

@pytest.fixture
def db_session():
    """Create an in-memory SQLite database shared across threads."""
    from models.database import Base

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    session = Session()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def make_user(db_session):
    """
    Factory for persisted users.

    AI settings are initialized from ``allocated``; pass ``allocated=None``
    for a user whose settings were never created.
    """
    counter = {"n": 0}

    def _make_user(
        plan: str = "free",
        allocated: float | None = 0.0,
        used: float = 0.0,
        last_reset: datetime | None = None,
        preferred_model: str = "auto",
        allow_premium: bool = True,
        **kwargs,
    ):
        from models.database import User

        counter["n"] += 1
        now = datetime.now(UTC)
        user = User(
            id=f"user-{counter['n']}",
            email=f"user{counter['n']}@example.com",
            name=f"User {counter['n']}",
            plan=plan,
            ai_preferred_model=preferred_model,
            ai_allow_premium=allow_premium,
            ai_budget_allocated=allocated,
            ai_budget_used=used,
            ai_budget_last_reset=(last_reset or now) if allocated is not None else None,
            last_quota_reset=now,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


# ============================================
# Backend fixtures
# ============================================

@pytest.fixture
def backends():
    """Fake backend factory with per-model outcomes."""
    return FakeBackendRegistry()
