"""Unit tests for connection and published API models."""

import pytest
from pydantic import ValidationError

from vulcan.models.connection import ConnectionDescriptor, Engine, missing_connection_fields
from vulcan.models.published_api import APIMetrics, PublishedAPI


class TestConnectionDescriptor:

    def test_numeric_port_and_null_database(self):
        connection = ConnectionDescriptor.model_validate({
            "engineType": "MYSQL",
            "host": "localhost",
            "port": 3306,
            "username": "root",
            "database": None,
        })

        assert connection.engine_type == Engine.MYSQL
        assert connection.port == "3306"
        assert connection.database == ""
        assert connection.password == ""

    def test_unknown_engine_is_rejected(self):
        with pytest.raises(ValidationError):
            ConnectionDescriptor.model_validate({
                "engineType": "ORACLE", "host": "h", "port": "1", "username": "u",
            })

    def test_connection_key_ignores_field_order(self, connection_data):
        reordered = dict(reversed(list(connection_data.items())))

        assert (
            ConnectionDescriptor.model_validate(connection_data).connection_key
            == ConnectionDescriptor.model_validate(reordered).connection_key
        )

    def test_redacted_hides_password(self, connection):
        assert connection.redacted()["password"] == "[REDACTED]"
        assert connection.to_wire()["password"] == "s3cret"

    def test_missing_fields(self):
        assert missing_connection_fields({"host": "h"}) == ["engineType", "username", "port"]


class TestAPIMetrics:

    def test_total_calls_is_derived(self):
        metrics = APIMetrics.model_validate({"totalCalls": 50, "successCalls": 2, "failedCalls": 3})

        assert metrics.total_calls == 5

    def test_published_api_wire_shape(self):
        api = PublishedAPI(
            name="Users",
            url="/api/sql/users",
            connection_id="conn",
            sql_query="SELECT * FROM users",
        )

        wire = api.to_wire()
        assert wire["status"] == "active"
        assert wire["method"] == "GET"
        assert wire["metrics"]["totalCalls"] == 0
        assert PublishedAPI.model_validate(wire) == api
