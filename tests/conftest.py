"""
Pytest configuration for Feedback Analyzer tests.

Test Tier System:
- fast (default): Pure unit tests, all I/O mocked
- medium: API TestClient tests
- slow: Live database / external API tests

Run tiers:
- pytest                 # Everything
- pytest -m fast         # Fast only
- pytest -m "not slow"   # Fast + Medium

Unmarked tests are auto-assigned to the 'fast' tier.

API Key Safety:
- A fake OPENAI_API_KEY is force-set so a missing mock can never reach the real API.
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def pytest_collection_modifyitems(config, items):
    """Assign the 'fast' tier to tests that carry no tier marker."""
    for item in items:
        has_tier = (
            list(item.iter_markers(name='fast')) or
            list(item.iter_markers(name='medium')) or
            list(item.iter_markers(name='slow'))
        )
        if has_tier:
            continue
        item.add_marker(pytest.mark.fast)


def pytest_configure(config):
    """Guard against accidental live API calls."""
    os.environ["OPENAI_API_KEY"] = "sk-test-fake-key-for-testing"
    os.environ.pop("HF_API_TOKEN", None)


@pytest.fixture(scope="session")
def project_root():
    """Return project root path."""
    return PROJECT_ROOT
