"""
Regression tests for issues found during code review.

1. A registration that loses the uniqueness race must return 409 (not 500)
2. X-Query-Count header must report the actual query count (not always 0)
3. CORS must not set allow_credentials=true with allow_origins=*
4. The metrics endpoint must be admin-only and report consistent totals
"""
import pytest
from httpx import AsyncClient

from app.repositories.users import SqlUserRepository


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# 1. Unique constraint violations -> 409
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_registration_race_returns_409(async_client: AsyncClient, register_user, monkeypatch):
    """The pre-check passes but the insert hits the unique index: 409, not 500."""
    await register_user("racer")

    async def no_conflict(self, email, username, exclude_id=None):
        return None

    monkeypatch.setattr(SqlUserRepository, "find_conflicting_field", no_conflict)
    resp = await async_client.post("/api/v1/auth/register", json={
        "email": "racer@example.com",
        "username": "racer2",
        "password": "Password1",
        "confirm_password": "Password1",
    })
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_registration_race_does_not_enqueue_welcome(async_client: AsyncClient, register_user, job_queue, monkeypatch):
    await register_user("first")

    async def no_conflict(self, email, username, exclude_id=None):
        return None

    monkeypatch.setattr(SqlUserRepository, "find_conflicting_field", no_conflict)
    await async_client.post("/api/v1/auth/register", json={
        "email": "other@example.com",
        "username": "first",
        "password": "Password1",
        "confirm_password": "Password1",
    })
    assert len(job_queue.jobs) == 1


# ---------------------------------------------------------------------------
# 2. X-Query-Count header
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_query_count_header_nonzero_on_db_hit(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles")
    assert resp.status_code == 200
    assert int(resp.headers["x-query-count"]) > 0
    assert float(resp.headers["x-response-time-ms"]) >= 0


# ---------------------------------------------------------------------------
# 3. CORS
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cors_does_not_allow_credentials(async_client: AsyncClient):
    resp = await async_client.options(
        "/api/v1/articles",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert resp.headers.get("access-control-allow-origin") == "*"
    assert "access-control-allow-credentials" not in resp.headers


# ---------------------------------------------------------------------------
# 4. Metrics
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_metrics_for_admin(async_client: AsyncClient, register_user, make_admin):
    author = await register_user("metric_author")
    admin = await register_user("metric_admin")
    token = await make_admin(admin["user"]["id"], "metric_admin@example.com")

    popular = (await async_client.post("/api/v1/articles", headers=_auth(author["token"]), json={
        "title": "Popular", "description": "d", "body": "b",
    })).json()["data"]["article"]
    await async_client.post("/api/v1/articles", headers=_auth(author["token"]), json={
        "title": "Quiet", "description": "d", "body": "b",
    })
    await async_client.post(f"/api/v1/articles/{popular['id']}/favorite", headers=_auth(admin["token"]))
    await async_client.post(
        f"/api/v1/articles/{popular['id']}/comments", headers=_auth(admin["token"]), json={"body": "nice"}
    )

    resp = await async_client.get("/api/v1/metrics", headers=_auth(token))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_articles"] == 2
    assert data["total_comments"] == 1
    assert data["total_users"] == 2
    assert data["avg_comments_per_article"] == 0.5
    assert data["top_articles"][0]["slug"] == "popular"
    assert data["top_articles"][0]["favorites_count"] == 1
    assert set(data["cache_info"]) == {"hits", "misses", "hit_rate"}


@pytest.mark.asyncio
async def test_metrics_forbidden_for_regular_user(async_client: AsyncClient, register_user):
    user = await register_user("metric_user")
    resp = await async_client.get("/api/v1/metrics", headers=_auth(user["token"]))
    assert resp.status_code == 403
