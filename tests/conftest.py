"""
Shared test fixtures.
"""

import pytest

from crossid_core.config import ValidationConfig
from crossid_core.matching.identity import Identity
from crossid_core.pipeline.engine import CrossValidationEngine
from crossid_core.utils.clock import ManualClock


@pytest.fixture
def clock():
    """Deterministic clock starting 2024-01-01T00:00:00Z."""
    return ManualClock()


@pytest.fixture
def engine(clock):
    """Initialized engine with default configuration."""
    engine = CrossValidationEngine(ValidationConfig(), clock=clock)
    engine.init()
    yield engine
    engine.shutdown()


@pytest.fixture
def bob_primary():
    return Identity(user_id="u1", email="bob@x.com", phone="+15551234567")


@pytest.fixture
def bob_secondary():
    return Identity(email="bob@x.com", phone="(555) 123-4567")


@pytest.fixture
def valid_user():
    return Identity(
        user_id="alice_01",
        email="alice@example.com",
        phone="+44 20 7946 0958",
        name="Alice Walker",
    )
