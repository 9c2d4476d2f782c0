"""
Pytest configuration shared by unit and integration tests.
"""

import pytest

from shared.logging import configure_logging


@pytest.fixture(autouse=True, scope="session")
def quiet_logging():
    """Keep per-rule debug logging out of test output."""
    configure_logging("acl", "warning")
