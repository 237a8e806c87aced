"""Integration tests for the HTTP API."""

from datetime import timedelta
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.services.job_queue import QUERY_RUN, SOURCE_FETCH, JobQueue, get_job_queue
from app.services.sources.base import utcnow
from tests.integration.conftest import add_rows, make_news_item, make_source, seed_candidate


async def _noop(payload: dict[str, Any]) -> None:
    return None


@pytest_asyncio.fixture()
async def route_queue(app_client: AsyncClient) -> AsyncGenerator[JobQueue, None]:
    """A queue with no-op handlers injected in place of the app's queue."""
    from app.main import app

    queue = JobQueue(max_attempts=1, backoff_seconds=0)
    queue.register(SOURCE_FETCH, _noop)
    queue.register(QUERY_RUN, _noop)
    app.dependency_overrides[get_job_queue] = lambda: queue
    try:
        yield queue
    finally:
        app.dependency_overrides.pop(get_job_queue, None)


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, app_client: AsyncClient) -> None:
        response = await app_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSourceRoutes:
    """CRUD, validation and manual runs for sources."""

    @pytest.mark.asyncio
    async def test_source_types_lists_every_adapter(self, app_client: AsyncClient) -> None:
        response = await app_client.get("/api/sources/types")
        assert response.status_code == 200
        types = {entry["type"] for entry in response.json()}
        assert "RSS_FEED" in types
        assert "DRAFTKINGS_API" in types

    @pytest.mark.asyncio
    async def test_create_read_update_source(self, app_client: AsyncClient) -> None:
        payload = {
            "name": "PFT",
            "type": "RSS_FEED",
            "sport": "NFL",
            "config": {"feedUrl": "https://example.com/pft.xml"},
        }
        created = await app_client.post("/api/sources", json=payload)
        assert created.status_code == 201
        source = created.json()["source"]
        assert source["name"] == "PFT"
        assert source["status"] == "ACTIVE"

        fetched = await app_client.get(f"/api/sources/{source['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["config"] == {"feedUrl": "https://example.com/pft.xml"}

        patched = await app_client.patch(
            f"/api/sources/{source['id']}", json={"status": "PAUSED"}
        )
        assert patched.status_code == 200
        assert patched.json()["source"]["status"] == "PAUSED"

        listed = await app_client.get("/api/sources", params={"sport": "NFL"})
        assert [s["id"] for s in listed.json()] == [source["id"]]

    @pytest.mark.asyncio
    async def test_invalid_config_is_rejected(self, app_client: AsyncClient) -> None:
        response = await app_client.post(
            "/api/sources",
            json={"name": "Broken", "type": "RSS_FEED", "sport": "NFL", "config": {}},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["errors"] == ["feedUrl is required and must be a string"]

    @pytest.mark.asyncio
    async def test_unknown_source_is_404(self, app_client: AsyncClient) -> None:
        assert (await app_client.get("/api/sources/999999")).status_code == 404
        assert (await app_client.get("/api/sources/999999/health")).status_code == 404

    @pytest.mark.asyncio
    async def test_manual_run_then_cooldown(
        self,
        app_client: AsyncClient,
        route_queue: JobQueue,
        db_session: AsyncSession,
        org_id: str,
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))

        first = await app_client.post(f"/api/sources/{source.id}/run")
        assert first.status_code == 202
        assert first.json()["status"] == "QUEUED"
        assert route_queue.is_pending(SOURCE_FETCH, first.json()["id"])

        second = await app_client.post(f"/api/sources/{source.id}/run")
        assert second.status_code == 429

        health = await app_client.get(f"/api/sources/{source.id}/health")
        assert health.status_code == 200
        assert health.json()["total_runs"] == 1


class TestQueryRoutes:
    @pytest.mark.asyncio
    async def test_create_and_run_query(
        self, app_client: AsyncClient, route_queue: JobQueue
    ) -> None:
        created = await app_client.post(
            "/api/queries",
            json={"name": "Chiefs", "sport": "NFL", "keywords": ["Chiefs"]},
        )
        assert created.status_code == 201
        query_id = created.json()["id"]

        run = await app_client.post(f"/api/queries/{query_id}/run")
        assert run.status_code == 202
        run_id = run.json()["id"]

        status = await app_client.get(f"/api/queries/runs/{run_id}")
        assert status.status_code == 200
        assert status.json()["status"] == "QUEUED"
        assert (await app_client.post(f"/api/queries/{query_id}/run")).status_code == 429

        candidates = await app_client.get(f"/api/queries/runs/{run_id}/candidates")
        assert candidates.json() == []

    @pytest.mark.asyncio
    async def test_empty_keywords_rejected(self, app_client: AsyncClient) -> None:
        response = await app_client.post(
            "/api/queries", json={"name": "Empty", "sport": "NFL", "keywords": []}
        )
        assert response.status_code == 422


class TestNewsRoutes:
    """Feed ordering and the editorial endpoints."""

    @pytest.mark.asyncio
    async def test_feed_orders_by_importance_then_recency(
        self, app_client: AsyncClient, db_session: AsyncSession, org_id: str
    ) -> None:
        now = utcnow()
        (source,) = await add_rows(db_session, make_source(org_id))
        await add_rows(
            db_session,
            make_news_item(org_id, source.id, "low", importance_score=20, published_at=now),
            make_news_item(org_id, source.id, "high", importance_score=90,
                           published_at=now - timedelta(hours=5)),
            make_news_item(org_id, source.id, "unscored", published_at=now),
            make_news_item(org_id, source.id, "mid", importance_score=50, published_at=now),
        )

        response = await app_client.get("/api/news", params={"limit": 2})
        body = response.json()
        assert response.status_code == 200
        assert [i["headline"] for i in body["items"]] == ["Headline high", "Headline mid"]
        assert body["items"][0]["source_name"] == "ESPN NFL"
        assert body["total"] == 4
        assert body["has_more"] is True

        scored = await app_client.get("/api/news", params={"min_score": 30})
        assert scored.json()["total"] == 2

    @pytest.mark.asyncio
    async def test_unknown_news_item_is_404(self, app_client: AsyncClient) -> None:
        assert (await app_client.get("/api/news/999999")).status_code == 404
        assert (await app_client.get("/api/news/999999/matches")).status_code == 404
        assert (await app_client.post("/api/news/999999/dismiss")).status_code == 404

    @pytest.mark.asyncio
    async def test_pair_list_and_unpair(
        self, app_client: AsyncClient, db_session: AsyncSession, org_id: str
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))
        (item,) = await add_rows(db_session, make_news_item(org_id, source.id, "pair-me"))
        candidate = await seed_candidate(db_session, org_id, "clip-1")

        paired = await app_client.post(
            f"/api/news/{item.id}/pair", json={"candidate_id": candidate.id}
        )
        assert paired.status_code == 201

        matches = await app_client.get(f"/api/news/{item.id}/matches")
        assert [m["candidate_id"] for m in matches.json()] == [candidate.id]
        assert matches.json()[0]["status"] == "MATCHED"
        assert (await app_client.get(f"/api/news/{item.id}")).json()["is_paired"] is True

        removed = await app_client.delete(f"/api/news/{item.id}/pair/{candidate.id}")
        assert removed.status_code == 204
        assert (await app_client.get(f"/api/news/{item.id}")).json()["is_paired"] is False

    @pytest.mark.asyncio
    async def test_pair_unknown_candidate_is_404(
        self, app_client: AsyncClient, db_session: AsyncSession, org_id: str
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))
        (item,) = await add_rows(db_session, make_news_item(org_id, source.id, "lonely"))

        response = await app_client.post(
            f"/api/news/{item.id}/pair", json={"candidate_id": 999999}
        )
        assert response.status_code == 404


class TestCronRoute:
    @pytest.mark.asyncio
    async def test_tick_requires_secret(
        self, app_client: AsyncClient, route_queue: JobQueue, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "cron_secret", "tick-secret")

        denied = await app_client.post("/api/cron/tick")
        assert denied.status_code == 401

        allowed = await app_client.post(
            "/api/cron/tick", headers={"Authorization": "Bearer tick-secret"}
        )
        assert allowed.status_code == 200
        assert allowed.json()["sources_triggered"] == 0
