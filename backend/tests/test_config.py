"""Tests for settings and error types."""

import pytest
from pydantic import SecretStr

from app.config import Environment, Settings
from app.exceptions import (
    ConfigurationError,
    ErrorKind,
    RetryExhaustedError,
    SourceNotFoundError,
    SourceRateLimitError,
    SourceTransientError,
    ValidationError,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.queue_name == "developer_evaluation"
        assert settings.batch_concurrency == 5
        assert settings.batch_max_concurrency == 6
        assert settings.ai_model == "deepseek-chat"

    def test_environment_is_case_insensitive(self):
        assert Settings(_env_file=None, environment="PRODUCTION").is_production

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TR_MONGO_DB", "ranking")
        assert Settings(_env_file=None).mongo_db == "ranking"

    def test_missing_github_token_fails_fast(self):
        settings = Settings(_env_file=None, github_token=None)
        with pytest.raises(ConfigurationError) as exc_info:
            settings.require_github_token()
        assert exc_info.value.kind == ErrorKind.CONFIGURATION
        assert exc_info.value.details == {"setting": "TR_GITHUB_TOKEN"}

    def test_empty_ai_key_fails_fast(self):
        settings = Settings(_env_file=None, ai_api_key=SecretStr(""))
        with pytest.raises(ConfigurationError):
            settings.require_ai_api_key()

    def test_secrets_are_masked(self, test_settings):
        assert "ghp_test" not in repr(test_settings)
        assert test_settings.require_github_token() == "ghp_test_token_fake_value"
        assert test_settings.environment == Environment.TESTING


class TestErrors:
    def test_retryable_kinds(self):
        assert SourceTransientError().retryable
        assert SourceRateLimitError().retryable
        assert not SourceNotFoundError().retryable
        assert not ValidationError("bad").retryable

    def test_to_dict(self):
        error = SourceRateLimitError(retry_after=30)
        assert error.to_dict() == {
            "error": {
                "code": "GITHUB_RATE_LIMIT",
                "message": "GitHub API rate limit exceeded. Try again later.",
                "details": {"retry_after_seconds": 30},
            }
        }

    def test_retry_exhausted_inherits_kind(self):
        error = RetryExhaustedError(3, SourceNotFoundError())
        assert error.kind == ErrorKind.NOT_FOUND
        assert error.details == {"attempts": 3}

    def test_retry_exhausted_foreign_error_is_transient(self):
        assert RetryExhaustedError(2, OSError("reset")).kind == ErrorKind.TRANSIENT
