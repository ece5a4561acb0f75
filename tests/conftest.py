"""Root conftest — suite markers, ``.env`` opt-ins and metric isolation."""

from __future__ import annotations

from pathlib import Path

import pytest
from dotenv import load_dotenv

from intentvault.observability import reset_operation_metrics

REPO_ROOT = Path(__file__).resolve().parents[1]

# Existing environment variables stay authoritative.
load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)

_SUITE_MARKERS = {
    "unit": pytest.mark.unit,
    "integration": pytest.mark.integration,
}


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark each test with its suite, taken from ``tests/<suite>/``."""
    tests_dir = REPO_ROOT / "tests"
    for item in items:
        try:
            suite = item.path.resolve().relative_to(tests_dir).parts[0]
        except (ValueError, IndexError):
            continue
        marker = _SUITE_MARKERS.get(suite)
        if marker is not None:
            item.add_marker(marker)


@pytest.fixture(autouse=True)
def _clean_operation_metrics():
    """Metrics are process-global; every test starts from zero."""
    reset_operation_metrics()
    yield
    reset_operation_metrics()
