"""Contract tests for the /api/vulcan endpoints."""

import json
from urllib.parse import quote

SQL = "SELECT * FROM users WHERE id = 5"


class TestRegister:

    def test_register_publishes_api(self, client, connection_data, repository):
        response = client.post("/api/vulcan/register", json={
            "name": "Users by id",
            "description": "Look up one user",
            "connection": connection_data,
            "tableName": "users",
            "sqlQuery": SQL,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "SQL API registered successfully"
        api = data["api"]
        assert api["status"] == "active"
        assert api["url"].startswith("/api/sql/users?connectionInfo=")
        assert f"&query={quote(SQL, safe='')}" in api["url"]
        assert api["database"] == "shop"
        assert data["documentation"]["callUrl"].endswith(f"&apiId={api['id']}")
        assert data["documentation"]["parameters"]["id"] == "number (required)"
        assert repository.get_api(api["id"]) is not None

    def test_url_does_not_leak_password(self, client, connection_data):
        response = client.post("/api/vulcan/register", json={
            "name": "Users", "connection": connection_data, "tableName": "users", "sqlQuery": SQL,
        })

        assert "s3cret" not in response.json()["api"]["url"]

    def test_database_field_fills_connection(self, client, connection_data, repository):
        del connection_data["database"]

        response = client.post("/api/vulcan/register", json={
            "name": "Users",
            "connection": connection_data,
            "tableName": "users",
            "sqlQuery": SQL,
            "database": "analytics",
        })

        assert response.status_code == 200
        assert response.json()["api"]["database"] == "analytics"

    def test_public_base_url_prefixes_documentation(self, client, connection_data, monkeypatch):
        monkeypatch.setenv("VULCAN_PUBLIC_BASE_URL", "https://api.example.com/")

        response = client.post("/api/vulcan/register", json={
            "name": "Users", "connection": connection_data, "tableName": "users", "sqlQuery": SQL,
        })

        assert response.json()["documentation"]["url"].startswith("https://api.example.com/api/sql/users?")

    def test_missing_fields_is_400(self, client, connection_data):
        response = client.post("/api/vulcan/register", json={"connection": connection_data})

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "MISSING_FIELDS"

    def test_unreachable_database_is_400(self, client, connection_data, mock_database, repository):
        mock_database["ping"].return_value = False

        response = client.post("/api/vulcan/register", json={
            "name": "Users", "connection": connection_data, "tableName": "users", "sqlQuery": SQL,
        })

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Failed to validate database connection"
        assert repository.list_apis() == []

    def test_invalid_connection_is_400(self, client):
        response = client.post("/api/vulcan/register", json={
            "name": "Users",
            "connection": {"engineType": "ORACLE", "host": "h"},
            "tableName": "users",
            "sqlQuery": SQL,
        })

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "INVALID_CONNECTION"

    def test_missing_encryption_key_is_503(self, client, connection_data, monkeypatch, repository):
        monkeypatch.delenv("VULCAN_ENCRYPTION_KEY")

        response = client.post("/api/vulcan/register", json={
            "name": "Users", "connection": connection_data, "tableName": "users", "sqlQuery": SQL,
        })

        assert response.status_code == 503
        assert repository.list_apis() == []


class TestTableActions:

    def test_register_endpoint_without_publishing(self, client, connection_data, repository):
        response = client.post(
            "/api/vulcan/users/register", json={"connection": connection_data, "sql": SQL}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["endpoint"]["path"] == "/api/users"
        assert data["documentation"]["url"] == "/api/vulcan/users/get"
        assert data["documentation"]["example"]["curl"].endswith("/api/vulcan/users/get?id=value")
        assert repository.list_apis() == []

    def test_call_by_action(self, client, connection_data, mock_executor):
        client.post("/api/vulcan/users/register", json={"connection": connection_data, "sql": SQL})

        response = client.post("/api/vulcan/users/get", json={"connection": connection_data, "id": 7})

        assert response.status_code == 200
        assert response.json() == [{"id": 7, "name": "Ada"}]
        assert mock_executor.await_args.args[1] == "SELECT * FROM users WHERE id = 7"

    def test_action_for_unregistered_method_is_405(self, client, connection_data):
        client.post("/api/vulcan/users/register", json={"connection": connection_data, "sql": SQL})

        response = client.post("/api/vulcan/users/delete", json={"connection": connection_data, "id": 7})

        assert response.status_code == 405

    def test_unknown_action_is_400(self, client, connection_data):
        response = client.post("/api/vulcan/users/patch", json={"connection": connection_data})

        assert response.status_code == 400

    def test_register_without_sql_is_400(self, client, connection_data):
        response = client.post("/api/vulcan/users/register", json={"connection": connection_data})

        assert response.status_code == 400

    def test_missing_connection_is_400(self, client):
        response = client.post("/api/vulcan/users/register", json={"sql": SQL})

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "INVALID_CONNECTION"


class TestExecute:

    def test_execute_with_encrypted_connection(self, client, connection_data, connection_info, mock_executor):
        client.post("/api/vulcan/users/register", json={"connection": connection_data, "sql": SQL})

        response = client.get(
            f"/api/vulcan/execute/users?connectionInfo={quote(connection_info, safe='')}&id=9"
        )

        assert response.status_code == 200
        assert mock_executor.await_args.args[1] == "SELECT * FROM users WHERE id = 9"

    def test_execute_with_body_connection(self, client, connection_data, mock_executor):
        client.post(
            "/api/vulcan/users/register",
            json={"connection": connection_data, "sql": "DELETE FROM users WHERE id = 1"},
        )

        response = client.request(
            "DELETE", "/api/vulcan/execute/users", json={"connection": connection_data, "id": 4}
        )

        assert response.status_code == 200
        assert mock_executor.await_args.args[1] == "DELETE FROM users WHERE id = 4"

    def test_api_id_in_body_is_tracked(self, client, connection_data, repository, published_api, mock_executor):
        api = published_api()
        client.post(
            "/api/vulcan/users/register",
            json={"connection": connection_data, "sql": "DELETE FROM users WHERE id = 1"},
        )

        response = client.request(
            "DELETE",
            "/api/vulcan/execute/users",
            json={"connection": connection_data, "id": 1, "apiId": api.id},
        )

        assert response.status_code == 200
        assert repository.get_api(api.id).metrics.success_calls == 1

    def test_missing_parameter_is_400(self, client, connection_data, connection_info, mock_executor):
        client.post("/api/vulcan/users/register", json={"connection": connection_data, "sql": SQL})

        response = client.get(f"/api/vulcan/execute/users?connectionInfo={quote(connection_info, safe='')}")

        assert response.status_code == 400
        assert response.json()["parameter"] == "id"
        mock_executor.assert_not_awaited()

    def test_unknown_path_is_404(self, client, connection_data, connection_info):
        client.post("/api/vulcan/users/register", json={"connection": connection_data, "sql": SQL})

        response = client.get(f"/api/vulcan/execute/orders?connectionInfo={quote(connection_info, safe='')}")

        assert response.status_code == 404

    def test_unregistered_connection_is_404(self, client, connection_info):
        response = client.get(f"/api/vulcan/execute/users?connectionInfo={quote(connection_info, safe='')}")

        assert response.status_code == 404


class TestSwagger:

    def test_swagger_for_registered_connection(self, client, connection_data):
        client.post("/api/vulcan/users/register", json={"connection": connection_data, "sql": SQL})

        response = client.get("/api/vulcan/swagger", params={"connection": json.dumps(connection_data)})

        assert response.status_code == 200
        doc = response.json()
        assert doc["openapi"] == "3.0.0"
        assert doc["paths"]["/api/users"]["get"]["parameters"][0]["name"] == "id"

    def test_swagger_for_unknown_connection_is_404(self, client, connection_data):
        response = client.get("/api/vulcan/swagger", params={"connection": json.dumps(connection_data)})

        assert response.status_code == 404

    def test_swagger_requires_connection(self, client):
        assert client.get("/api/vulcan/swagger").status_code == 400
        assert client.get("/api/vulcan/swagger", params={"connection": "{bad"}).status_code == 400
