"""
Pytest fixtures for the owner statement test suite.

Provides:
- In-memory SQLite sessions (no external database required)
- Deterministic clock and actor id
- Listing / group factories
- In-process booking and accounting providers
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import statement_batch.models  # noqa: F401
import statement_kernel.models  # noqa: F401
from statement_config import get_active_config
from statement_ingestion.guard import ProviderGuard
from statement_kernel.db.base import Base
from statement_kernel.domain.clock import DeterministicClock
from statement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from statement_kernel.models.listing import Listing, ListingGroup
from statement_kernel.services.lifecycle import StatementLifecycleManager
from statement_kernel.services.listing_repository import ListingRepository
from statement_services.expense_collector import ExpenseCollector
from statement_services.property_mapping import PropertyMappingRepository
from statement_services.statement_builder import StatementBuilder
from statement_services.statement_editor import StatementEditor
from tests.factories import StaticAccountingProvider, StaticBookingProvider

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture statement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, builder):
            builder.build(...)
            logs = captured_logs()
            assert any(r["message"] == "statement_built" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("statement_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_session():
    """In-memory SQLite session for fast unit tests."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def clock():
    return DeterministicClock(
        fixed_time=datetime(2025, 1, 8, 12, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def fast_guard():
    """Provider guard with no retries and no backoff."""
    return ProviderGuard(timeout_seconds=5.0, retries=0, backoff_seconds=0)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_listing(db_session):
    """Create and flush a Listing row.  Keyword arguments override defaults."""

    def _make(listing_id: int, **overrides) -> Listing:
        tags = overrides.pop("tags", None)
        values = {
            "id": listing_id,
            "name": f"Listing {listing_id}",
            "owner_id": 1,
            "owner_name": "Pat Owner",
            "pm_fee_percentage": Decimal("15.00"),
            "created_by_id": TEST_ACTOR_ID,
        }
        values.update(overrides)
        listing = Listing(**values)
        if tags:
            listing.set_tags(tags)
        db_session.add(listing)
        db_session.flush()
        return listing

    return _make


@pytest.fixture
def make_group(db_session):
    def _make(name: str, calculation_type: str = "checkout", tags=()) -> ListingGroup:
        group = ListingGroup(
            name=name,
            calculation_type=calculation_type,
            created_by_id=TEST_ACTOR_ID,
        )
        group.set_tags(tags)
        db_session.add(group)
        db_session.flush()
        return group

    return _make


# =============================================================================
# Providers and builders
# =============================================================================


@pytest.fixture
def booking():
    return StaticBookingProvider()


@pytest.fixture
def accounting():
    return StaticAccountingProvider()


@pytest.fixture
def listings(db_session):
    return ListingRepository(db_session)


@pytest.fixture
def make_builder(db_session, config, clock, fast_guard):
    """Build a StatementBuilder over fresh repositories (reads current listings)."""

    def _make(booking_provider, accounting_provider=None) -> StatementBuilder:
        repo = ListingRepository(db_session)
        collector = ExpenseCollector(
            db_session,
            repo,
            PropertyMappingRepository(db_session),
            accounting=accounting_provider,
            guard=fast_guard,
        )
        return StatementBuilder(
            db_session,
            repo,
            booking_provider,
            collector,
            config,
            clock=clock,
            guard=fast_guard,
        )

    return _make


@pytest.fixture
def editor(db_session, config):
    return StatementEditor(db_session, config)


@pytest.fixture
def lifecycle(db_session, clock):
    """Lifecycle manager with manual delivery and no payment gateway."""
    return StatementLifecycleManager(db_session, clock=clock)
