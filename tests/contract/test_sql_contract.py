"""Contract tests for /api/sql/{table} and /api/sql-to-api."""

import json
from urllib.parse import quote

from vulcan.lib.encryption import encrypt
from vulcan.lib.errors import ExecutionError

SQL = "SELECT * FROM users WHERE id = 5"


def _publish(client, connection_data, sql=SQL, table="users"):
    response = client.post("/api/vulcan/register", json={
        "name": "Users by id",
        "connection": connection_data,
        "tableName": table,
        "sqlQuery": sql,
    })
    assert response.status_code == 200, response.text
    return response.json()


def _url(table, connection_info, sql=SQL, **params):
    url = f"/api/sql/{table}?connectionInfo={quote(connection_info, safe='')}&query={quote(sql, safe='')}"
    for name, value in params.items():
        url += f"&{name}={quote(str(value), safe='')}"
    return url


class TestSqlToApi:

    def test_analyze_sql(self, client):
        response = client.post("/api/sql-to-api", json={"sql": SQL})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["endpoint"]["method"] == "GET"
        assert data["endpoint"]["path"] == "/api/users"
        assert data["endpoint"]["params"] == [
            {"name": "id", "type": "number", "required": True, "location": "query"}
        ]
        assert data["documentation"]["example"]["request"].startswith("curl -X GET /api/users")

    def test_missing_sql_is_400(self, client):
        assert client.post("/api/sql-to-api", json={}).status_code == 400


class TestPublishedCall:

    def test_call_url_executes_and_counts(self, client, connection_data, repository, mock_executor):
        published = _publish(client, connection_data)
        api_id = published["api"]["id"]

        response = client.get(published["documentation"]["callUrl"] + "&id=7")

        assert response.status_code == 200
        assert response.json() == [{"id": 7, "name": "Ada"}]
        _connection, sql = mock_executor.await_args.args
        assert sql == "SELECT * FROM users WHERE id = 7"

        metrics = repository.get_api(api_id).metrics
        assert metrics.success_calls == 1
        assert metrics.total_calls == 1
        assert metrics.current_concurrent_calls == 0

    def test_url_without_api_id_matches_by_path(self, client, connection_data, mock_executor):
        published = _publish(client, connection_data)

        response = client.get(published["api"]["url"] + "&id=3")

        assert response.status_code == 200
        assert mock_executor.await_args.args[1] == "SELECT * FROM users WHERE id = 3"

    def test_missing_parameter_is_400_and_not_counted(
        self, client, connection_data, repository, mock_executor
    ):
        published = _publish(client, connection_data)

        response = client.get(published["documentation"]["callUrl"])

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error_code"] == "PARAMETER_VALIDATION"
        assert "id" in detail["message"]
        mock_executor.assert_not_awaited()
        assert repository.get_api(published["api"]["id"]).metrics.total_calls == 0

    def test_execution_failure_is_500_and_counted(
        self, client, connection_data, repository, mock_executor
    ):
        mock_executor.side_effect = ExecutionError("connection refused")
        published = _publish(client, connection_data)

        response = client.get(published["documentation"]["callUrl"] + "&id=1")

        assert response.status_code == 500
        assert response.json()["detail"]["message"] == "Query execution failed"
        metrics = repository.get_api(published["api"]["id"]).metrics
        assert metrics.failed_calls == 1
        assert metrics.total_calls == 1

    def test_inactive_api_is_403(self, client, connection_data, repository, mock_executor):
        published = _publish(client, connection_data)
        client.post(
            "/api/api-management/update-status",
            json={"id": published["api"]["id"], "status": "inactive"},
        )

        by_id = client.get(published["documentation"]["callUrl"] + "&id=1")
        by_path = client.get(published["api"]["url"] + "&id=1")

        assert by_id.status_code == 403
        assert by_path.status_code == 403
        assert by_id.json()["detail"]["error_code"] == "API_INACTIVE"
        mock_executor.assert_not_awaited()

    def test_unknown_api_id_is_404(self, client, connection_info):
        response = client.get(_url("users", connection_info, apiId="missing", id=1))

        assert response.status_code == 404

    def test_unpublished_table_is_404(self, client, connection_info):
        response = client.get(_url("orders", connection_info, id=1))

        assert response.status_code == 404

    def test_query_must_match_published_sql(self, client, connection_data, connection_info):
        _publish(client, connection_data)

        response = client.get(_url("users", connection_info, sql="SELECT * FROM users", id=1))

        assert response.status_code == 404
        assert response.json()["detail"]["message"] == "API not found or unauthorized"

    def test_table_name_semicolon_is_stripped(self, client, connection_data, connection_info):
        _publish(client, connection_data)

        response = client.get(_url("users;", connection_info, id=1))

        assert response.status_code == 200

    def test_undecryptable_connection_is_400(self, client, published_api):
        published_api()

        response = client.get(_url("users", "bm90LXZhbGlk", id=1))

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "INVALID_CONNECTION"

    def test_missing_connection_info_is_400(self, client, published_api):
        published_api()

        response = client.get(f"/api/sql/users?query={quote(SQL, safe='')}&id=1")

        assert response.status_code == 400

    def test_connection_without_database_is_400(self, client, published_api, connection_data):
        published_api()
        del connection_data["database"]

        response = client.get(_url("users", encrypt(json.dumps(connection_data)), id=1))

        assert response.status_code == 400
        assert "Database name is required" in response.json()["detail"]["message"]

    def test_missing_encryption_key_is_503(self, client, published_api, monkeypatch):
        published_api()
        monkeypatch.delenv("VULCAN_ENCRYPTION_KEY")

        response = client.get(_url("users", "AAAA", id=1))

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "NOT_CONFIGURED"

    def test_other_methods_are_405(self, client):
        response = client.post("/api/sql/users")

        assert response.status_code == 405
        assert response.headers["allow"] == "GET"
