"""Shared test fixtures and utilities for all tests.

Every test runs against a temporary state file and a known encryption
passphrase. Target databases are never contacted: the SQL executor and the
connection check are replaced with mocks.
"""

import sys
from pathlib import Path

# Ensure the project root is first in sys.path
project_root = str(Path(__file__).parent.parent.absolute())
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

TEST_ENCRYPTION_KEY = "test-passphrase"

SAMPLE_ROWS = [{"id": 7, "name": "Ada"}]


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def state_file(tmp_path):
    """Path of the JSON state file used by the test."""
    return tmp_path / "server-state.json"


@pytest.fixture(autouse=True)
def vulcan_env(monkeypatch, state_file):
    """Point configuration at the temporary state file and a test key."""
    monkeypatch.setenv("VULCAN_STATE_FILE", str(state_file))
    monkeypatch.setenv("VULCAN_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    monkeypatch.delenv("VULCAN_ENCRYPTION_KEY_PREVIOUS", raising=False)
    monkeypatch.delenv("VULCAN_PUBLIC_BASE_URL", raising=False)


@pytest.fixture(autouse=True)
def reset_vulcan_registry():
    """Drop Vulcan instances registered by previous tests."""
    from vulcan.services.vulcan_service import get_vulcan_registry

    get_vulcan_registry().clear()
    yield
    get_vulcan_registry().clear()


# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def connection_data():
    """Wire-format connection descriptor."""
    return {
        "engineType": "POSTGRESQL",
        "host": "db.example.com",
        "port": "5432",
        "username": "app",
        "password": "s3cret",
        "database": "shop",
    }


@pytest.fixture
def connection(connection_data):
    from vulcan.models.connection import ConnectionDescriptor

    return ConnectionDescriptor.model_validate(connection_data)


@pytest.fixture
def repository(state_file):
    from vulcan.services.api_repository import JsonFileAPIRepository

    return JsonFileAPIRepository(state_file)


@pytest.fixture
def published_api(repository):
    """Factory creating a PublishedAPI record in the repository."""

    def _create(sql_query="SELECT * FROM users WHERE id = 5", table_name="users", **overrides):
        data = {
            "name": f"{table_name} api",
            "url": f"/api/sql/{table_name}?connectionInfo=abc&query=x",
            "sqlQuery": sql_query,
            "connectionId": "conn-1",
            "tableName": table_name,
        }
        data.update(overrides)
        return repository.add_api(data)

    return _create


# ============================================================================
# Mock Database Fixtures
# ============================================================================

@pytest.fixture
def mock_executor():
    """Async SQL executor returning SAMPLE_ROWS."""
    return AsyncMock(return_value=list(SAMPLE_ROWS))


@pytest.fixture
def mock_database(mock_executor):
    """Replace SQL execution and connection checks used by the HTTP layer."""
    with patch("vulcan.services.vulcan_service.default_executor", mock_executor), \
            patch("vulcan.services.sql_query_service.default_executor", mock_executor), \
            patch("vulcan.services.publish_service.ping_connection_async",
                  AsyncMock(return_value=True)) as mock_ping:
        yield {"executor": mock_executor, "ping": mock_ping}


# ============================================================================
# FastAPI Application Fixtures
# ============================================================================

@pytest.fixture
def app(repository, mock_database):
    """The real application with the repository bound to the temporary state file."""
    from vulcan.app import app as vulcan_app
    from vulcan.services.api_repository import get_api_repository

    vulcan_app.dependency_overrides[get_api_repository] = lambda: repository
    yield vulcan_app
    vulcan_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Fixture that provides a test client for the app."""
    return TestClient(app)


# ============================================================================
# Encryption Fixtures
# ============================================================================

@pytest.fixture
def connection_info(connection_data):
    """Encrypted connectionInfo value for connection_data."""
    from vulcan.lib.encryption import encrypt

    return encrypt(json.dumps(connection_data))
