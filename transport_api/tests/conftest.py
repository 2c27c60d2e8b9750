import os
import tempfile
from pathlib import Path

# src.db.session reads settings at import time; configure before any src import.
_TEST_DIR = Path(tempfile.mkdtemp(prefix="transport_api_tests_"))
os.environ["POSTGRES_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'api.db'}"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["AUTO_SEED"] = "false"
os.environ["DEFAULT_STORAGE_MODE"] = "shared"
os.environ["SESSION_SECRET_KEY"] = "test-secret"
os.environ["STORAGE_RETRY_BACKOFF_SECONDS"] = "0"
os.environ["SEED_ADMIN_USERNAME"] = "root"
os.environ["SEED_ADMIN_PASSWORD"] = "root-pass"

import pytest  # noqa: E402


def pytest_collection_modifyitems(config, items):
    # With REQUIRE_POSTGRES_TESTS set, a missing TEST_POSTGRES_URL is an error, not a skip.
    if os.environ.get("REQUIRE_POSTGRES_TESTS") and not os.environ.get("TEST_POSTGRES_URL"):
        if any(item.get_closest_marker("postgres") for item in items):
            raise pytest.UsageError("REQUIRE_POSTGRES_TESTS is set but TEST_POSTGRES_URL is not")
