# ==============================================================================
# API ENDPOINT TESTS
# ==============================================================================
# End-to-end tests against the SQLite-backed shop backoffice
# ==============================================================================

import json

import pytest
from httpx import AsyncClient

USERS = "/api/backoffices/shop/sections/users/actions"
POSTS = "/api/backoffices/shop/sections/posts/actions"


def read_audit(audit_dir):
    entries = []
    for path in sorted(audit_dir.glob("audit-*.jsonl")):
        entries.extend(json.loads(line) for line in path.read_text(encoding="utf-8").splitlines())
    return entries


class TestHealth:
    """Tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        """Test health reports every data source."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["data_sources"] == {"shop/main": True}

    @pytest.mark.asyncio
    async def test_root(self, client: AsyncClient):
        """Test the root endpoint describes the API."""
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["api"] == "/api"


class TestSchemaDiscovery:
    """Tests for config and backoffice listing endpoints."""

    @pytest.mark.asyncio
    async def test_config_hides_secret(self, client: AsyncClient):
        """Test the config endpoint omits the JWT secret."""
        response = await client.get("/api/config")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["server"] == {"host": "127.0.0.1", "port": 9000}
        assert data["security"] == {"enabled": False}

    @pytest.mark.asyncio
    async def test_list_backoffices(self, client: AsyncClient):
        """Test the index lists sections per backoffice."""
        response = await client.get("/api/backoffices")

        assert response.status_code == 200
        assert response.json()["data"] == [{
            "id": "shop",
            "name": "Shop Admin",
            "description": "Test backoffice",
            "sections": ["users", "posts"],
        }]

    @pytest.mark.asyncio
    async def test_get_backoffice_hides_connection_string(self, client: AsyncClient):
        """Test data sources expose only their type."""
        response = await client.get("/api/backoffices/shop")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["data_sources"] == {"main": {"type": "database"}}
        assert "sqlite" not in json.dumps(data["data_sources"])

    @pytest.mark.asyncio
    async def test_unknown_backoffice(self, client: AsyncClient):
        """Test an unknown backoffice returns 404."""
        response = await client.get("/api/backoffices/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestReadActions:
    """Tests for GET on actions."""

    @pytest.mark.asyncio
    async def test_list_first_page(self, client: AsyncClient):
        """Test the list action pages with its configured size."""
        response = await client.get(f"{USERS}/list")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [u["name"] for u in data["data"]] == ["Alice", "Bob"]
        assert data["pagination"] == {"page": 1, "page_size": 2, "returned": 2}

    @pytest.mark.asyncio
    async def test_list_second_page(self, client: AsyncClient):
        """Test page parameters override the default."""
        response = await client.get(f"{USERS}/list", params={"page": 2})

        assert [u["name"] for u in response.json()["data"]["data"]] == ["Carol"]

    @pytest.mark.asyncio
    async def test_invalid_page(self, client: AsyncClient):
        """Test page numbers start at 1."""
        response = await client.get(f"{USERS}/list", params={"page": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_query_params_passed_through(self, client: AsyncClient):
        """Test extra query parameters bind into the query."""
        response = await client.get(f"{USERS}/by_name", params={"name": "Bob"})

        assert response.status_code == 200
        assert response.json()["data"]["data"] == [
            {"id": 2, "name": "Bob", "email": "bob@example.com"},
        ]

    @pytest.mark.asyncio
    async def test_form_definition(self, client: AsyncClient):
        """Test a form action returns its field layout."""
        response = await client.get(f"{USERS}/create")

        data = response.json()["data"]
        assert [f["id"] for f in data["fields"]] == ["name", "email"]
        assert data["config"]["form_mode"] == "create"

    @pytest.mark.asyncio
    async def test_unknown_action(self, client: AsyncClient):
        """Test an unknown action returns 404."""
        response = await client.get(f"{USERS}/nope")
        assert response.status_code == 404


class TestMutations:
    """Tests for POST on actions."""

    @pytest.mark.asyncio
    async def test_create_user(self, client: AsyncClient, shop_files):
        """Test a valid record is inserted and audited."""
        response = await client.post(
            f"{USERS}/create",
            json={"name": "Dave", "email": "dave@example.com"},
            headers={"X-User-ID": "admin-7"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Mutation executed successfully"
        assert body["data"]["data"]["inserted_id"] == 4

        lookup = await client.get(f"{USERS}/by_name", params={"name": "Dave"})
        assert lookup.json()["data"]["data"][0]["email"] == "dave@example.com"

        entries = read_audit(shop_files["audit"])
        assert entries[-1]["operation"] == "create"
        assert entries[-1]["record_id"] == "4"
        assert entries[-1]["user_id"] == "admin-7"

    @pytest.mark.asyncio
    async def test_validation_errors(self, client: AsyncClient):
        """Test every failing rule is returned with 400."""
        response = await client.post(f"{USERS}/create", json={"name": "A", "email": "nope"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["validation_errors"] == [
            {"field": "name", "message": "Name must be at least 2 characters"},
            {"field": "email", "message": "Email must be a valid email address"},
        ]

    @pytest.mark.asyncio
    async def test_dangling_reference(self, client: AsyncClient):
        """Test a post for a missing user is rejected."""
        response = await client.post(f"{POSTS}/create", json={"user_id": 999, "title": "Orphan"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "RELATIONSHIP_ERROR"
        assert error["details"]["relationship_errors"][0]["relationship_id"] == "post_author"

    @pytest.mark.asyncio
    async def test_update_user(self, client: AsyncClient, shop_files):
        """Test an update is applied and audited with old values."""
        response = await client.post(f"{USERS}/update", json={"id": 2, "name": "Robert"})

        assert response.status_code == 200
        assert response.json()["data"]["data"]["rows_affected"] == 1

        entry = read_audit(shop_files["audit"])[-1]
        assert entry["operation"] == "update"
        assert entry["old_values"]["name"] == "Bob"
        assert entry["new_values"]["name"] == "Robert"


class TestDelete:
    """Tests for DELETE on actions."""

    @pytest.mark.asyncio
    async def test_dry_run(self, client: AsyncClient):
        """Test a dry run lists the cascade and deletes nothing."""
        response = await client.delete(f"{USERS}/delete", params={"id": "1", "dry_run": "true"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Cascade plan computed"
        assert [
            (op["operation_type"], op["section"], op["record_id"])
            for op in body["data"]["cascade_operations"]
        ] == [("delete", "posts", 1), ("delete", "posts", 2)]

        posts = await client.get(f"{POSTS}/list")
        assert len(posts.json()["data"]["data"]) == 3

    @pytest.mark.asyncio
    async def test_delete_with_cascade(self, client: AsyncClient, shop_files):
        """Test deleting a user removes their posts first."""
        response = await client.delete(f"{USERS}/delete", params={"id": "1"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Record 1 deleted successfully"
        assert len(body["data"]["cascade_operations"]) == 2

        posts = await client.get(f"{POSTS}/list")
        assert [p["title"] for p in posts.json()["data"]["data"]] == ["Bob post"]
        users = await client.get(f"{USERS}/by_name", params={"name": "Alice"})
        assert users.json()["data"]["data"] == []

        entry = read_audit(shop_files["audit"])[-1]
        assert entry["operation"] == "delete"
        assert entry["record_id"] == "1"
        assert entry["old_values"]["name"] == "Alice"

    @pytest.mark.asyncio
    async def test_delete_requires_id(self, client: AsyncClient):
        """Test the id query parameter is mandatory."""
        response = await client.delete(f"{USERS}/delete")
        assert response.status_code == 422
