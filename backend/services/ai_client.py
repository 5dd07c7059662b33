"""AI Chat-Completion Client.

Talks to an OpenAI-compatible chat completion endpoint (DeepSeek by
default) for two prompts: a developer evaluation and a nation guess.
Answers go through parse_ai_response(), so malformed output degrades
instead of failing.

SECURITY:
- The API key is sent only in the Authorization header
- Error messages NEVER contain the key or the raw response body
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from app.config import Settings, get_settings
from app.exceptions import AIServiceError
from app.logging_config import get_logger
from app.metrics import AI_CALL_DURATION, AI_CALLS
from services.ai_response import AIEvaluation, parse_ai_response
from services.nation_predictor import PredictionResult

logger = get_logger(__name__)

EVALUATION_SYSTEM_PROMPT = (
    "You are an expert technical recruiter. Assess the developer described "
    "by the user and answer with a single JSON object only."
)

NATION_SYSTEM_PROMPT = (
    "You infer which country a software developer most likely lives in. "
    "Answer with a single JSON object only."
)

EVALUATION_TEMPLATE = """Evaluate this developer's technical ability.

Profile:
- Username: {username}
- Name: {name}
- Bio: {bio}
- Location: {location}
- GitHub: {profile_url}
- Blog: {blog_url}

Technology:
- Skills: {skills}
- Repositories: {repositories}

Contribution totals:
- Stars: {star_count}
- Commits: {commit_count}
- Forks: {fork_count}

Return JSON in exactly this shape:
{{
    "specialties": ["main area 1", "main area 2"],
    "experience": {{"technology": "assessment of experience"}},
    "evaluation": "overall assessment of depth, breadth and project quality"
}}
"""

NATION_TEMPLATE = """Which country is this developer most likely based in?

- Username: {username}
- Name: {name}
- Email: {email}
- Location: {location}
- Bio: {bio}
- Company: {company}
- Skills: {skills}
- Repositories: {repositories}
- Stars: {star_count}, Commits: {commit_count}, Forks: {fork_count}

Return JSON: {{"nation": "<ISO 3166-1 alpha-2 code or empty>", "confidence": <0-100>}}
"""


def _render(template: str, facts: dict[str, Any]) -> str:
    values = {
        key: ", ".join(map(str, value)) if isinstance(value, (list, tuple)) else value
        for key, value in facts.items()
    }
    defaults = {
        "username": "",
        "name": "",
        "bio": "",
        "location": "",
        "email": "",
        "company": "",
        "profile_url": "",
        "blog_url": "",
        "skills": "",
        "repositories": "",
        "star_count": 0,
        "commit_count": 0,
        "fork_count": 0,
    }
    return template.format(**{**defaults, **values})


class AIClient:
    """Chat-completion client. No retries; callers decide what a failure means."""

    def __init__(self, api_key: str, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._api_key = api_key
        self.model = self.settings.ai_model

    async def complete(self, system: str, user: str, call_type: str = "text") -> str:
        """Send one chat completion and return the first choice's content."""
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
        }

        try:
            with AI_CALL_DURATION.labels(model=self.model).time():
                async with httpx.AsyncClient(timeout=self.settings.ai_timeout) as client:
                    response = await client.post(
                        self.settings.ai_api_base,
                        json=payload,
                        headers={"Authorization": f"Bearer {self._api_key}"},
                    )
        except httpx.RequestError as exc:
            AI_CALLS.labels(model=self.model, type=call_type, status="error").inc()
            logger.warning("ai_call_connection_failed", error=type(exc).__name__)
            raise AIServiceError(f"AI endpoint unreachable: {type(exc).__name__}") from exc

        AI_CALLS.labels(
            model=self.model, type=call_type, status=str(response.status_code)
        ).inc()

        if response.status_code != 200:
            logger.warning("ai_call_failed", status=response.status_code)
            raise AIServiceError(
                f"AI endpoint returned status {response.status_code}",
                status=response.status_code,
            )

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as exc:
            raise AIServiceError("AI endpoint returned no choices") from exc

    async def evaluate_developer(self, facts: dict[str, Any]) -> AIEvaluation:
        content = await self.complete(
            EVALUATION_SYSTEM_PROMPT,
            _render(EVALUATION_TEMPLATE, facts),
            call_type="evaluation",
        )
        return parse_ai_response(content)

    async def predict_nation(self, facts: dict[str, Any]) -> PredictionResult:
        content = await self.complete(
            NATION_SYSTEM_PROMPT,
            _render(NATION_TEMPLATE, facts),
            call_type="nation",
        )
        parsed = parse_ai_response(content)
        if not parsed.nation:
            return PredictionResult(source="none")
        return PredictionResult(
            nation=parsed.nation,
            confidence=parsed.confidence,
            factors=["ai"],
            source="ai",
        )
