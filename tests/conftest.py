"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports ``app.core.config`` so
no ``.env`` file is loaded and settings stay deterministic.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.schemas.record import Record
from tests.fake_redis import FakeRedis
from tests.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock=clock)


@pytest.fixture
def sample_record() -> Record:
    return Record(
        name="Asha Verma",
        fathers_name="Ravi Verma",
        phone_number="9876543210",
        age="34",
        gender="F",
        address="12 MG Road",
        district="Pune",
        pincode="411001",
        state="Maharashtra",
        town="Pune",
        source="db3",
    )
