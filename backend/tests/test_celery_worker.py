"""Tests for the Celery enrichment task."""

from unittest.mock import AsyncMock, patch

from app.celery_worker import celery_app, enrich_developers
from app.exceptions import ConfigurationError


class TestEnrichDevelopersTask:
    def test_registered_on_enrichment_queue(self):
        assert "app.celery_worker.enrich_developers" in celery_app.tasks
        routes = celery_app.conf.task_routes
        assert routes["app.celery_worker.enrich_developers"] == {"queue": "enrichment"}

    def test_returns_batch_results(self):
        results = [{"username": "octocat", "success": True, "talent_rank": 42.0, "nation": "DE"}]
        with patch("app.celery_worker._run_batch", new=AsyncMock(return_value=results)) as run:
            outcome = enrich_developers.apply(args=[["octocat"], 3]).get()

        assert outcome == results
        run.assert_awaited_once_with(["octocat"], 3)

    def test_default_concurrency_from_settings(self):
        with patch("app.celery_worker._run_batch", new=AsyncMock(return_value=[])) as run:
            enrich_developers.apply(args=[["octocat"]]).get()

        assert run.await_args.args[1] == 5

    def test_configuration_error_is_not_retried(self):
        failing = AsyncMock(side_effect=ConfigurationError("TR_GITHUB_TOKEN"))
        with patch("app.celery_worker._run_batch", new=failing):
            result = enrich_developers.apply(args=[["octocat"]])

        assert result.failed()
        assert isinstance(result.result, ConfigurationError)
        assert failing.await_count == 1
