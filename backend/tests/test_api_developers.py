"""Tests for the developer search API."""

from unittest.mock import AsyncMock, patch

from factories import NOW, make_profile


class TestSearchEndpoint:
    async def test_search_returns_page(self, client, fake_repository):
        for name, rank in (("alpha", 80.0), ("beta", 60.0), ("gamma", 90.0)):
            fake_repository.profiles[name] = make_profile(name, talent_rank=rank)

        response = await client.get("/api/v1/developers", params={"page_size": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["page"] == 1
        assert body["page_size"] == 2
        assert [item["username"] for item in body["items"]] == ["gamma", "alpha"]

    async def test_query_string_becomes_filters(self, client, fake_repository):
        fake_repository.search = AsyncMock(return_value=[])
        fake_repository.count = AsyncMock(return_value=0)

        response = await client.get(
            "/api/v1/developers",
            params={
                "nations": "de, cn",
                "skills": "Go,Rust",
                "min_stars": 10,
                "min_activity": 30,
                "sort_by": "star_count",
                "sort_asc": "true",
                "page": 2,
            },
        )

        assert response.status_code == 200
        filters = fake_repository.search.await_args.args[0]
        assert filters.nations == ["de", "cn"]
        assert filters.skills == ["Go", "Rust"]
        assert filters.min_stars == 10
        assert filters.min_activity_days == 30
        kwargs = fake_repository.search.await_args.kwargs
        assert kwargs == {"sort_by": "star_count", "sort_asc": True, "page": 2, "page_size": 10}

    async def test_invalid_sort_field_rejected(self, client):
        response = await client.get("/api/v1/developers", params={"sort_by": "email"})
        assert response.status_code == 422

    async def test_page_size_capped(self, client):
        response = await client.get("/api/v1/developers", params={"page_size": 500})
        assert response.status_code == 422


class TestProfileEndpoints:
    async def test_get_developer(self, client, fake_repository):
        fake_repository.profiles["octocat"] = make_profile(nation="DE", nation_confidence=100)

        response = await client.get("/api/v1/developers/octocat")

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "octocat"
        assert body["nation"] == "DE"
        assert body["created_at"].startswith(NOW.strftime("%Y-%m-%dT%H:%M"))

    async def test_get_developer_ignores_login_case(self, client, fake_repository):
        fake_repository.profiles["octocat"] = make_profile("OctoCat")

        response = await client.get("/api/v1/developers/OCTOCAT")

        assert response.status_code == 200
        assert response.json()["username"] == "OctoCat"

    async def test_get_missing_developer(self, client):
        response = await client.get("/api/v1/developers/ghost")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "DEVELOPER_NOT_FOUND"

    async def test_top_developers(self, client, fake_repository):
        for name, rank in (("alpha", 10.0), ("beta", 99.0)):
            fake_repository.profiles[name] = make_profile(name, talent_rank=rank)

        response = await client.get("/api/v1/developers/top", params={"limit": 1})

        assert response.status_code == 200
        assert [p["username"] for p in response.json()] == ["beta"]

    async def test_delete_drops_store_and_cache(self, client, fake_repository, fake_redis):
        fake_repository.profiles["octocat"] = make_profile()
        await fake_redis.set("developer:octocat", "{}")

        response = await client.delete("/api/v1/developers/octocat")

        assert response.status_code == 204
        assert "octocat" not in fake_repository.profiles
        assert await fake_redis.get("developer:octocat") is None

    async def test_delete_ignores_login_case(self, client, fake_repository, fake_redis):
        fake_repository.profiles["octocat"] = make_profile()
        await fake_redis.set("developer:octocat", "{}")

        response = await client.delete("/api/v1/developers/OctoCat")

        assert response.status_code == 204
        assert fake_repository.profiles == {}
        assert await fake_redis.get("developer:octocat") is None

    async def test_delete_missing(self, client):
        response = await client.delete("/api/v1/developers/ghost")
        assert response.status_code == 404


class TestCrawlEndpoint:
    async def test_crawl_queues_celery_task(self, client):
        with patch("app.celery_worker.enrich_developers.delay") as delay:
            delay.return_value.id = "task-123"
            response = await client.post(
                "/api/v1/crawl", json={"usernames": ["octocat", "hubot"], "concurrency": 3}
            )

        assert response.status_code == 202
        assert response.json() == {"task_id": "task-123", "status": "queued", "count": 2}
        delay.assert_called_once_with(["octocat", "hubot"], 3)

    async def test_crawl_concurrency_bounds(self, client):
        response = await client.post("/api/v1/crawl", json={"usernames": ["a"], "concurrency": 7})
        assert response.status_code == 422

    async def test_crawl_requires_usernames(self, client):
        response = await client.post("/api/v1/crawl", json={"usernames": []})
        assert response.status_code == 422


class TestHealth:
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_readiness_degraded_without_mongo(self, client):
        with patch("app.main.get_mongo_client", return_value=None):
            response = await client.get("/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["checks"]["redis"]["status"] == "ok"
        assert body["checks"]["mongo"]["status"] == "error"

    async def test_readiness_healthy(self, client):
        mongo = AsyncMock()
        mongo.admin.command = AsyncMock(return_value={"ok": 1})
        with patch("app.main.get_mongo_client", return_value=mongo):
            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
