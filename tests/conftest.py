import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add the parent directory to sys.path so we can import main
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import Settings
from main import create_app

TEST_USERNAME = "alice"
TEST_PASSWORD = "correct horse battery staple"
TEST_BASE_URL = "http://localhost:4000"
TEST_MAX_UPLOAD_SIZE = 64 * 1024


@pytest.fixture
def storage_dir(tmp_path):
    """Storage root that does not exist yet, like a fresh deployment."""
    return tmp_path / "uploads"


@pytest.fixture
def settings(storage_dir):
    return Settings(
        base_url=TEST_BASE_URL,
        auth_username=TEST_USERNAME,
        auth_password=TEST_PASSWORD,
        storage_dir=storage_dir,
        max_upload_size=TEST_MAX_UPLOAD_SIZE,
    )


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))


@pytest.fixture
def auth():
    return (TEST_USERNAME, TEST_PASSWORD)
