"""Pytest configuration and fixtures."""

import itertools
import os
import random

import pytest

from infra_engine.core.config import Settings, get_settings
from infra_engine.core.identifiers import IdentifierService
from infra_engine.core.schemas_infrastructure import InfrastructureEntity
from tests.fakes.fake_topology import make_organization


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["INFRA_ENGINE_ENV"] = "test"
    os.environ["TOPOLOGY_SERVICE_URL"] = "http://topology.test/api/vector-memory"
    os.environ.pop("ANTHROPIC_API_KEY", None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with no API key and no retry delays."""
    return Settings(
        INFRA_ENGINE_ENV="test",
        ANTHROPIC_API_KEY=None,
        TOPOLOGY_SERVICE_URL="http://topology.test/api/vector-memory",
        LLM_MAX_RETRIES=1,
        LLM_RETRY_INITIAL_DELAY=0,
        TOPOLOGY_MAX_RETRIES=1,
        TOPOLOGY_RETRY_INITIAL_DELAY=0,
        LOCAL_DOMAIN="local",
    )


@pytest.fixture
def identifiers() -> IdentifierService:
    """Deterministic ids: id-0001, id-0002, ..."""
    counter = itertools.count(1)
    return IdentifierService(factory=lambda: f"id-{next(counter):04d}")


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def organization() -> InfrastructureEntity:
    return make_organization(
        "Acme Bank",
        core_functions=["Payment Processing", "Customer Management"],
        description="Retail bank",
    )
