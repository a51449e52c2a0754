"""
Unit tests for the category API endpoints.
"""
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from internal.transport.http.v1.handlers import router, set_dependencies


HEADERS = {"X-Actor-ID": "admin-1", "X-Request-ID": "req-1"}


@pytest_asyncio.fixture
async def client(service):
    """HTTP client over the router, backed by the in-memory service."""
    set_dependencies(category_service=service)
    app = FastAPI()
    app.include_router(router)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def _create(client, name, parent_id=None, **extra):
    body = {"name": name, **extra}
    if parent_id:
        body["parent_id"] = parent_id
    response = await client.post("/api/v1/categories", json=body, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateAndGet:
    """Tests for POST /api/v1/categories and GET /api/v1/categories/{id}."""

    @pytest.mark.asyncio
    async def test_create_root_and_child(self, client):
        root = await _create(client, "Electronics")
        child = await _create(client, "Phones", parent_id=root["id"])

        assert (root["slug"], root["level"], root["path"]) == ("electronics", 0, "")
        assert (child["slug"], child["level"], child["path"]) == ("phones", 1, "electronics")
        assert child["created_by"] == "admin-1"

        response = await client.get(f"/api/v1/categories/{child['id']}")
        assert response.status_code == 200
        assert response.json()["parent_id"] == root["id"]

    @pytest.mark.asyncio
    async def test_missing_actor(self, client):
        response = await client.post("/api/v1/categories", json={"name": "Phones"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "missing_actor"

    @pytest.mark.asyncio
    async def test_duplicate_slug_conflict(self, client):
        await _create(client, "Phones")

        response = await client.post("/api/v1/categories", json={"name": "Phones"}, headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "slug_conflict"

    @pytest.mark.asyncio
    async def test_max_depth(self, client):
        parent_id = None
        for i in range(6):
            parent_id = (await _create(client, f"Level {i}", parent_id=parent_id))["id"]

        response = await client.post(
            "/api/v1/categories",
            json={"name": "Level 6", "parent_id": parent_id},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == {"message": "max depth exceeded", "code": "max_depth_exceeded"}

    @pytest.mark.asyncio
    async def test_invalid_body(self, client):
        response = await client.post("/api/v1/categories", json={"name": ""}, headers=HEADERS)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_missing(self, client):
        response = await client.get(f"/api/v1/categories/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"


class TestStructuralEndpoints:
    """Tests for update, move, delete and lifecycle endpoints."""

    @pytest.mark.asyncio
    async def test_patch(self, client):
        category = await _create(client, "Phones")

        response = await client.patch(
            f"/api/v1/categories/{category['id']}",
            json={"name": "Mobile Phones", "settings": {"sort_order": 2}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Mobile Phones"
        assert response.json()["slug"] == "phones"
        assert response.json()["settings"]["sort_order"] == 2

    @pytest.mark.asyncio
    async def test_move_and_cycle(self, client):
        root = await _create(client, "Electronics")
        child = await _create(client, "Phones", parent_id=root["id"])
        gadgets = await _create(client, "Gadgets")

        response = await client.post(
            f"/api/v1/categories/{child['id']}/move",
            json={"parent_id": gadgets["id"]},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["path"] == "gadgets"

        response = await client.post(
            f"/api/v1/categories/{gadgets['id']}/move",
            json={"parent_id": child["id"]},
            headers=HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "cyclic_move"

    @pytest.mark.asyncio
    async def test_delete(self, client):
        root = await _create(client, "Electronics")
        child = await _create(client, "Phones", parent_id=root["id"])

        response = await client.delete(f"/api/v1/categories/{root['id']}", headers=HEADERS)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "has_children"

        info = await client.get(f"/api/v1/categories/{root['id']}/deletion-info")
        assert info.json() == {
            "category_id": root["id"],
            "direct_products": 0,
            "direct_children": 1,
            "can_delete": False,
        }

        response = await client.delete(f"/api/v1/categories/{child['id']}", headers=HEADERS)
        assert response.status_code == 204

        log = await client.get(f"/api/v1/categories/{child['id']}/audit-log")
        assert [e["action"] for e in log.json()["data"]] == ["created", "deleted"]

    @pytest.mark.asyncio
    async def test_status_visibility_and_restore(self, client):
        category = await _create(client, "Phones")
        url = f"/api/v1/categories/{category['id']}"

        response = await client.post(f"{url}/status", json={"action": "archive"}, headers=HEADERS)
        assert response.json()["status"] == "archived"

        response = await client.post(f"{url}/restore", params={"reason": "mistake"}, headers=HEADERS)
        assert response.json()["status"] == "inactive"

        response = await client.post(f"{url}/visibility", json={"visible": True}, headers=HEADERS)
        assert response.status_code == 200

        response = await client.post(f"{url}/status", json={"action": "explode"}, headers=HEADERS)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_bulk_status(self, client):
        category = await _create(client, "Phones")
        missing = str(uuid4())

        response = await client.post(
            "/api/v1/categories/bulk-status",
            json={"ids": [category["id"], missing], "action": "deactivate"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["succeeded"] == [category["id"]]
        assert body["failed"][0]["id"] == missing
        assert body["failed"][0]["code"] == "not_found"


class TestReadEndpoints:
    """Tests for trees, breadcrumbs, metrics and product hooks."""

    @pytest.mark.asyncio
    async def test_tree(self, client):
        root = await _create(client, "Electronics")
        await _create(client, "Phones", parent_id=root["id"])

        response = await client.get("/api/v1/categories/tree")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data[0]["slug"] == "electronics"
        assert data[0]["children"][0]["slug"] == "phones"

    @pytest.mark.asyncio
    async def test_children_include_inactive(self, client):
        root = await _create(client, "Electronics")
        phones = await _create(client, "Phones", parent_id=root["id"])
        await _create(client, "Laptops", parent_id=root["id"])
        await client.post(f"/api/v1/categories/{phones['id']}/status", json={"action": "deactivate"}, headers=HEADERS)

        response = await client.get(f"/api/v1/categories/{root['id']}/children")

        assert response.status_code == 200
        assert [c["slug"] for c in response.json()["data"]] == ["laptops", "phones"]

    @pytest.mark.asyncio
    async def test_breadcrumb(self, client):
        root = await _create(client, "Electronics")
        child = await _create(client, "Phones", parent_id=root["id"])

        response = await client.get(f"/api/v1/categories/{child['id']}/breadcrumb")

        assert [c["slug"] for c in response.json()["data"]] == ["electronics", "phones"]

    @pytest.mark.asyncio
    async def test_product_change_updates_metrics(self, client, add_products):
        category = await _create(client, "Phones")
        add_products(UUID(category["id"]), 3, revenue=Decimal("1000"), orders=1)

        response = await client.post(
            "/api/v1/categories/product-changes",
            json={"event_type": "product.created", "category_id": category["id"]},
        )
        assert response.status_code == 202
        assert response.json()["accepted"] is True

        metrics = (await client.get(f"/api/v1/categories/{category['id']}/metrics")).json()
        assert metrics["metrics"]["total_products"] == 3
        assert metrics["metrics"]["popularity_score"] == 24

    @pytest.mark.asyncio
    async def test_irrelevant_product_change(self, client):
        category = await _create(client, "Phones")

        response = await client.post(
            "/api/v1/categories/product-changes",
            json={
                "event_type": "product.updated",
                "category_id": category["id"],
                "changed_fields": ["description"],
            },
        )

        assert response.status_code == 202
        assert response.json()["accepted"] is False

    @pytest.mark.asyncio
    async def test_manual_recompute_and_eligibility(self, client):
        category = await _create(client, "Phones")

        response = await client.post(
            f"/api/v1/categories/{category['id']}/metrics/recompute", headers=HEADERS
        )
        assert response.status_code == 202

        response = await client.get(f"/api/v1/categories/{category['id']}/product-eligibility")
        assert response.json()["allowed"] is True

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/v1/categories/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["metrics_dispatch"] == "inline"
