"""
User API tests - the generic pager over a second resource (admin only).
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_list_users_requires_admin(client: AsyncClient, auth_headers: dict):
    response = await client.get("/api/v1/users", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_users_envelope(client: AsyncClient, admin_headers: dict, test_user):
    response = await client.get("/api/v1/users", headers=admin_headers, params={"sort": "email"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["pagination"] == {"page": 1, "limit": 25, "total": 2, "totalPages": 1}
    assert [u["email"] for u in body["data"]] == ["admin@example.com", "test@example.com"]


@pytest.mark.asyncio
async def test_list_users_filter_select_and_expand(client: AsyncClient, admin_headers: dict, make_item):
    await make_item("lamp")
    response = await client.get(
        "/api/v1/users",
        headers=admin_headers,
        params={"role": "user", "select": "email", "expand": "items"},
    )
    body = response.json()
    assert body["count"] == 1
    user = body["data"][0]
    assert set(user) == {"id", "email", "items"}
    assert [i["title"] for i in user["items"]] == ["lamp"]


@pytest.mark.asyncio
async def test_list_users_paging(client: AsyncClient, admin_headers: dict, test_user):
    response = await client.get(
        "/api/v1/users", headers=admin_headers, params={"limit": "1", "page": "2", "sort": "email"}
    )
    body = response.json()
    assert body["count"] == 1
    assert body["data"][0]["email"] == "test@example.com"
    assert body["pagination"]["prev"] == {"page": 1, "limit": 1}
    assert "next" not in body["pagination"]


@pytest.mark.asyncio
async def test_list_users_rejects_bad_boolean(client: AsyncClient, admin_headers: dict):
    response = await client.get("/api/v1/users", headers=admin_headers, params={"is_active": "maybe"})
    assert response.status_code == 400
