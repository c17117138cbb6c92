"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.personalization.models import EngineConfig, Module  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: End-to-end resolution through the assembler")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def now():
    """Fixed resolution instant."""
    return datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def engine_config():
    """Default engine configuration, independent of any .env file."""
    return EngineConfig()


@pytest.fixture
def five_modules():
    """A five-module curriculum, deliberately supplied out of order."""
    return [
        Module(slug="budgeting", name="Budgeting", description="monthly budgets and cash flow", position=2),
        Module(slug="intro", name="Introduction", description="what money is for", position=1),
        Module(slug="saving", name="Saving", description="emergency funds", position=3),
        Module(slug="investing", name="Investing", description="stocks, bonds and index funds", position=4),
        Module(slug="retirement", name="Retirement", description="pensions and long-term planning", position=5),
    ]


@pytest.fixture
def log_records():
    """
    Capture loguru output.

    Yields a list of (level name, message) tuples.
    """
    records: list[tuple[str, str]] = []

    def sink(message):
        record = message.record
        records.append((record["level"].name, record["message"]))

    handler_id = logger.add(sink, level="DEBUG")
    yield records
    logger.remove(handler_id)
