"""Test configuration to isolate test data from a real notes folder.

This ensures test runs never write bundles or exports into the user's
storage directory.
"""

import os
import shutil
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Create a dedicated temp storage directory before any tests import server
TEST_STORAGE_DIR = tempfile.mkdtemp(prefix="readnotes-tests-")
os.environ["READNOTES_STORAGE_DIR"] = TEST_STORAGE_DIR
os.environ.pop("READNOTES_EXPORT_DIR", None)

# Import server after setting the env var so it binds to the temp dir
import server  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def cleanup_storage_dir():
    """Remove the temp storage directory after the test session."""
    yield
    shutil.rmtree(TEST_STORAGE_DIR, ignore_errors=True)


@pytest.fixture
def temp_data_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir

