"""
Shared fixtures.

JSON logging is on for the whole session; ``captured_logs`` reads back what
a single test emitted.  Orchestrator tests build on ``harness`` (in-memory
collaborators) and store tests on ``session_factory`` (in-memory SQLite).
"""

import json
import logging
from io import StringIO

import pytest

from consolidation_kernel.db.engine import get_session_factory, init_engine_from_url, reset_engine
from consolidation_kernel.domain.clock import DeterministicClock
from consolidation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from consolidation_services.sql_store import create_schema
from tests.support import Harness


@pytest.fixture(autouse=True, scope="session")
def _json_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _fresh_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Returns a callable giving every ``consolidation.*`` record emitted so far
    in the test, decoded from JSON::

        events = [r["message"] for r in captured_logs()]
    """
    buffer = StringIO()
    capture = logging.StreamHandler(buffer)
    capture.setFormatter(StructuredFormatter())
    namespace = logging.getLogger("consolidation")
    saved_level = namespace.level
    namespace.setLevel(logging.DEBUG)
    namespace.addHandler(capture)

    yield lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    namespace.removeHandler(capture)
    namespace.setLevel(saved_level)


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def harness(deterministic_clock) -> Harness:
    """Empty in-memory collaborators sharing the deterministic clock."""
    return Harness(clock=deterministic_clock)


@pytest.fixture
def standard_harness(harness) -> Harness:
    """Harness preloaded with the two-subsidiary scenario from tests.support."""
    harness.install_standard()
    return harness


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database with the run and rule tables."""
    reset_engine()
    init_engine_from_url("sqlite://")
    create_schema()
    yield get_session_factory()
    reset_engine()
