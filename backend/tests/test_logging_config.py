"""Tests for structured logging processors."""

from unittest.mock import AsyncMock

import structlog

from app.logging_config import _redact_credentials, _service_tagger
from factories import NOW, make_user
from services.enrichment import EnrichmentOrchestrator
from services.nation_predictor import NationPredictor


class TestRedaction:
    def test_sensitive_keys(self):
        event = _redact_credentials(None, "info", {"event": "x", "github_token": "abc", "api_key": "k"})
        assert event["github_token"] == "[REDACTED]"
        assert event["api_key"] == "[REDACTED]"

    def test_tokens_inside_messages(self):
        event = _redact_credentials(
            None,
            "warning",
            {"event": "github_request_failed", "error": "401 for Bearer ghp_abcdefgh12345678 sk-abcdefgh1234"},
        )
        assert "ghp_" not in event["error"]
        assert "sk-abcdefgh1234" not in event["error"]
        assert event["error"].startswith("401 for [REDACTED]")

    def test_plain_values_untouched(self):
        event = _redact_credentials(None, "info", {"event": "enrichment_completed", "username": "octocat"})
        assert event == {"event": "enrichment_completed", "username": "octocat"}


def test_service_tag():
    tag = _service_tagger("talentrank")
    assert tag(None, "info", {"event": "x"})["service"] == "talentrank"
    assert tag(None, "info", {"event": "x", "service": "evaluator"})["service"] == "evaluator"


async def test_enrichment_binds_state_and_username(fake_repository):
    seen = {}

    async def fetch_user(username):
        seen.update(structlog.contextvars.get_contextvars())
        return make_user()

    github = AsyncMock()
    github.fetch_user.side_effect = fetch_user
    github.fetch_repositories.return_value = []
    orchestrator = EnrichmentOrchestrator(
        github=github, repository=fake_repository, predictor=NationPredictor(), clock=lambda: NOW
    )

    await orchestrator.enrich("octocat")

    assert seen["username"] == "octocat"
    assert seen["enrichment_state"] == "fetching"
    assert "enrichment_state" not in structlog.contextvars.get_contextvars()
