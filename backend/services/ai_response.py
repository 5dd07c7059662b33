"""AI Response Parsing.

Chat models are asked for JSON but routinely wrap it in markdown fences,
prepend commentary, or answer in prose. parse_ai_response() accepts all
of these and never raises: strict JSON first, then per-field regex
extraction, and finally the raw text as the evaluation.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, Field

from app.logging_config import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
_NATION_RE = re.compile(r'"?nation"?\s*[:：]\s*"?([A-Za-z]{2})\b')
_CONFIDENCE_RE = re.compile(r'"?confidence"?\s*[:：]\s*"?(\d+(?:\.\d+)?)')
_SPECIALTIES_JSON_RE = re.compile(r'"specialties"\s*:\s*\[(.*?)\]', re.DOTALL)
_SPECIALTIES_LINE_RE = re.compile(r"(?:专长|specialties)\s*[：:]\s*(.*?)(?:\n|$)", re.IGNORECASE)
_EVALUATION_JSON_RE = re.compile(r'"evaluation"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
_EVALUATION_LINE_RE = re.compile(r"(?:评[价估]|evaluation)\s*[：:]\s*(.*?)(?:\n|$)", re.IGNORECASE)
_EXPERIENCE_LINE_RE = re.compile(
    r'^\s*"?([\w.+#\- ]{1,40}?)"?[ \t]*[：:][ \t]*"?(.+?)"?\s*,?\s*$', re.MULTILINE
)
_LIST_SPLIT_RE = re.compile(r"[,，、;；]")

# Experience lines are only read from answers that carry field labels
_FIELD_LABEL_RE = re.compile(
    r'(?:"?(?:experience|specialties|evaluation)"?|经验|专长|评[价估])\s*[：:]', re.IGNORECASE
)

# Keys that never count as experience entries
_RESERVED_KEYS = {
    "specialties",
    "experience",
    "evaluation",
    "nation",
    "confidence",
    "专长",
    "经验",
    "评价",
    "评估",
}


class AIEvaluation(BaseModel):
    """Normalised AI answer for both evaluation and nation prompts."""

    specialties: list[str] = Field(default_factory=list)
    experience: dict[str, str] = Field(default_factory=dict)
    evaluation: str = ""
    nation: str = ""
    confidence: float = 0.0


def _isolate_payload(text: str) -> str:
    fence = _FENCE_RE.search(text)
    if fence:
        return fence.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text.strip()


def _normalise_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    # Fractions are scaled to percent
    if 0.0 < confidence <= 1.0:
        confidence *= 100.0
    return max(0.0, min(confidence, 100.0))


def _normalise_nation(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    value = value.strip().upper()
    if len(value) == 2 and value.isascii() and value.isalpha():
        return value
    return ""


def _coerce_specialties(value: Any) -> list[str]:
    if isinstance(value, str):
        value = _LIST_SPLIT_RE.split(value)
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _coerce_experience(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    experience: dict[str, str] = {}
    for key, detail in value.items():
        if isinstance(detail, str):
            experience[str(key)] = detail
        else:
            experience[str(key)] = json.dumps(detail, ensure_ascii=False)
    return experience


def _from_json(data: dict[str, Any]) -> AIEvaluation:
    return AIEvaluation(
        specialties=_coerce_specialties(data.get("specialties")),
        experience=_coerce_experience(data.get("experience")),
        evaluation=str(data.get("evaluation") or "").strip(),
        nation=_normalise_nation(data.get("nation")),
        confidence=_normalise_confidence(data.get("confidence")),
    )


def _extract_specialties(text: str) -> list[str]:
    match = _SPECIALTIES_JSON_RE.search(text)
    if match:
        items = [item.strip().strip('"').strip("'") for item in match.group(1).split(",")]
        return [item for item in items if item]

    match = _SPECIALTIES_LINE_RE.search(text)
    if match:
        return _coerce_specialties(match.group(1))
    return []


def _extract_experience(text: str) -> dict[str, str]:
    experience: dict[str, str] = {}
    if not _FIELD_LABEL_RE.search(text):
        return experience
    for match in _EXPERIENCE_LINE_RE.finditer(text):
        key = match.group(1).strip()
        detail = match.group(2).strip()
        if not key or not detail or key.lower() in _RESERVED_KEYS:
            continue
        if detail[0] in "[{":
            continue
        experience[key] = detail
    return experience


def _extract_evaluation(text: str) -> str:
    match = _EVALUATION_JSON_RE.search(text)
    if match:
        try:
            return json.loads(f'"{match.group(1)}"').strip()
        except json.JSONDecodeError:
            return match.group(1).strip()

    match = _EVALUATION_LINE_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return ""


def _from_regex(text: str) -> AIEvaluation:
    nation = _NATION_RE.search(text)
    confidence = _CONFIDENCE_RE.search(text)
    return AIEvaluation(
        specialties=_extract_specialties(text),
        experience=_extract_experience(text),
        evaluation=_extract_evaluation(text) or text.strip(),
        nation=_normalise_nation(nation.group(1)) if nation else "",
        confidence=_normalise_confidence(confidence.group(1)) if confidence else 0.0,
    )


def parse_ai_response(text: str) -> AIEvaluation:
    """Parse a chat-completion answer into an AIEvaluation. Never raises."""
    if not text or not text.strip():
        return AIEvaluation()

    payload = _isolate_payload(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict):
        return _from_json(data)

    logger.debug("ai_response_not_json", length=len(text))
    return _from_regex(text)
