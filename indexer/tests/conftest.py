"""
Pytest configuration and shared fixtures.

This module provides:
1. Automatic loading of .env.test configuration
2. Isolated storage locations for every test session
3. Custom marker registration
"""

import os
import shutil
import sys
import tempfile
import pytest
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

# Load test environment configuration
# Priority: environment variables > .env.test
_project_root = Path(__file__).parent.parent.parent
_env_test_path = _project_root / ".env.test"

if _env_test_path.exists():
    load_dotenv(_env_test_path, override=False)

# Keep the test session away from the user's index and folders
_session_dir = Path(tempfile.mkdtemp(prefix="indexer_tests_"))
os.environ.setdefault("INDEX_PATH", ":memory:")
os.environ.setdefault("HOTFOLDER_PATH", str(_session_dir / "hotfolder"))
os.environ.setdefault("INDEXED_RECORDS_PATH", str(_session_dir / "indexed"))
os.environ.setdefault("TEMP_PATH", str(_session_dir / "tmp"))
os.environ.setdefault("LOG_FILE", "")


def pytest_configure(config):
    """
    Pytest hook called after command line options have been parsed.

    This runs before test collection and setup.
    """
    config.addinivalue_line(
        "markers",
        "integration: marks tests that use a real Qdrant store"
    )
    config.addinivalue_line(
        "markers",
        "api: marks tests that exercise the HTTP endpoints"
    )
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


def pytest_sessionfinish(session, exitstatus):
    """Remove the session storage folder."""
    shutil.rmtree(_session_dir, ignore_errors=True)


@pytest.fixture
def fake_index():
    """Fresh in-memory search index."""
    from indexer.tests.fakes import FakeSearchIndex

    return FakeSearchIndex()
