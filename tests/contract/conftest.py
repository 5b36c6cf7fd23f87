"""Shared test fixtures and utilities for contract tests.

Note: Common fixtures are defined in tests/conftest.py and are
automatically available to all contract tests.
"""

# Contract tests can use fixtures from tests/conftest.py:
# - app, client
# - repository, state_file, published_api
# - connection, connection_data, connection_info
# - mock_executor, mock_database
