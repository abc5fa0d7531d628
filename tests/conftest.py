# Test configuration

import pytest
from fastapi.testclient import TestClient

from bucketstore.main import app, get_storage
from bucketstore.storage import FileStorage


@pytest.fixture
def storage(tmp_path):
    """Storage rooted in a fresh temporary directory."""
    return FileStorage(tmp_path / "data")


@pytest.fixture
def client(storage):
    """API client wired to the temporary storage."""
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
