"""Nation Prediction.

Guesses a developer's country (ISO 3166 alpha-2) in up to three stages,
each tried only when the previous one produced nothing usable:

1. Location extraction: dictionary match on the profile location (or a
   location phrase found in the bio). Confidence 100.
2. Heuristic scoring: points from email domain, name, company and
   repository descriptions. Ties and weak evidence yield no prediction.
3. AI fallback: one chat-completion call with the aggregated facts.

Stages 1 and 2 are deterministic.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

from app.exceptions import TalentRankError
from app.logging_config import get_logger
from app.metrics import NATION_PREDICTIONS
from services.github_service import RepositoryRecord, UserRecord

if TYPE_CHECKING:
    from services.ai_client import AIClient

logger = get_logger(__name__)

NATION_CONFIDENCE_THRESHOLD = 40.0

# Heuristic weights
EMAIL_TLD_POINTS = 2.0
EMAIL_PROVIDER_POINTS = 1.5
NAME_KEYWORD_POINTS = 1.5
HAN_NAME_POINTS = 2.0
HAN_DESCRIPTIONS_POINTS = 2.0
HAN_DESCRIPTIONS_RATIO = 0.3
COMPANY_POINTS = 1.5
DESCRIPTION_KEYWORD_POINTS = 1.0

# Insertion order is the tie-break order for equally long matches
COUNTRIES: dict[str, str] = {
    # Asia
    "China": "CN",
    "中国": "CN",
    "Japan": "JP",
    "日本": "JP",
    "Korea": "KR",
    "韩国": "KR",
    "Singapore": "SG",
    "新加坡": "SG",
    "India": "IN",
    "Thailand": "TH",
    "Vietnam": "VN",
    "Malaysia": "MY",
    "Indonesia": "ID",
    # North America
    "USA": "US",
    "United States": "US",
    "America": "US",
    "Canada": "CA",
    "Mexico": "MX",
    # Europe
    "UK": "GB",
    "United Kingdom": "GB",
    "England": "GB",
    "Germany": "DE",
    "Deutschland": "DE",
    "France": "FR",
    "Italy": "IT",
    "Italia": "IT",
    "Spain": "ES",
    "España": "ES",
    "Netherlands": "NL",
    "Nederland": "NL",
    "Sweden": "SE",
    "Sverige": "SE",
    "Norway": "NO",
    "Danmark": "DK",
    "Finland": "FI",
    "Switzerland": "CH",
    "Ireland": "IE",
    "Poland": "PL",
    "Russia": "RU",
    "Россия": "RU",
    # Oceania
    "Australia": "AU",
    "New Zealand": "NZ",
    # South America
    "Brazil": "BR",
    "Brasil": "BR",
    "Argentina": "AR",
    "Chile": "CL",
    # Africa
    "South Africa": "ZA",
    "Egypt": "EG",
    "Nigeria": "NG",
}

CITIES: dict[str, str] = {
    "beijing": "CN",
    "shanghai": "CN",
    "shenzhen": "CN",
    "guangzhou": "CN",
    "hangzhou": "CN",
    "chengdu": "CN",
    "nanjing": "CN",
    "wuhan": "CN",
    "xian": "CN",
    "suzhou": "CN",
    "tokyo": "JP",
    "osaka": "JP",
    "kyoto": "JP",
    "yokohama": "JP",
    "sapporo": "JP",
    "fukuoka": "JP",
    "nagoya": "JP",
    "seoul": "KR",
    "busan": "KR",
    "incheon": "KR",
    "new york": "US",
    "san francisco": "US",
    "seattle": "US",
    "boston": "US",
    "chicago": "US",
    "los angeles": "US",
    "san jose": "US",
    "austin": "US",
    "portland": "US",
    "washington": "US",
    "london": "GB",
    "manchester": "GB",
    "cambridge": "GB",
    "oxford": "GB",
    "edinburgh": "GB",
    "glasgow": "GB",
    "bristol": "GB",
}

NAME_KEYWORDS: dict[str, str] = {
    "china": "CN",
    "cn": "CN",
    "jp": "JP",
    "kr": "KR",
    "sg": "SG",
}

CHINESE_EMAIL_PROVIDERS = ("qq.com", "foxmail.com", "163.com")

BIO_LOCATION_MARKERS = (
    "location:",
    "based in",
    "living in",
    "from",
    "所在地:",
    "位置:",
    "常驻:",
    "来自:",
    "工作地点:",
    "工作城市:",
    "所在城市:",
    "所在省份:",
    "所在国家:",
)

NOT_A_LOCATION = (
    "book", "ebook", "tutorial", "guide", "manual", "documentation",
    "scratch", "project", "repository", "code", "software", "app",
    "import", "export", "function", "class", "const", "var", "let",
    "return", "component", "require", "module",
)

LOCATION_WORDS = (
    "city", "province", "state", "country", "region", "district",
    "城市", "省份", "国家", "地区", "区域",
)

_HAN_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\U00020000-\U0002a6df]")
_TOKEN_SPLIT_RE = re.compile(r"[^0-9a-z]+")


def _keyword_pattern(key: str) -> re.Pattern[str]:
    # Latin keys must not match inside longer words ("uk" in "milwaukee")
    escaped = re.escape(key.lower())
    if key.isascii():
        return re.compile(rf"(?<![a-z]){escaped}(?![a-z])")
    return re.compile(escaped)


_LOCATION_PATTERNS: list[tuple[str, str, re.Pattern[str]]] = [
    (key, code, _keyword_pattern(key))
    for key, code in [*COUNTRIES.items(), *CITIES.items()]
]


class PredictionResult(BaseModel):
    """Outcome of a nation prediction. An empty nation means no prediction."""

    nation: str = ""
    confidence: float = 0.0
    factors: list[str] = Field(default_factory=list)
    source: Literal["location", "heuristic", "ai", "none"] = "none"

    @property
    def is_confident(self) -> bool:
        return bool(self.nation) and self.confidence >= NATION_CONFIDENCE_THRESHOLD


NO_PREDICTION = PredictionResult()


def contains_han(text: str) -> bool:
    return bool(text) and _HAN_RE.search(text) is not None


def is_valid_country_code(code: str) -> bool:
    return len(code) == 2 and code.isascii() and code.isalpha() and code.isupper()


def extract_nation(location: str) -> str:
    """Map free-form location text to a country code, or "" if unknown.

    Country names (including native spellings) and major cities are matched
    case-insensitively; the longest matching key wins.
    """
    if not location:
        return ""
    text = location.lower()

    best_key = ""
    best_code = ""
    for key, code, pattern in _LOCATION_PATTERNS:
        if len(key) > len(best_key) and pattern.search(text):
            best_key, best_code = key, code
    return best_code


def _is_plausible_location(text: str) -> bool:
    if not text or len(text) > 100:
        return False

    lowered = text.lower()
    if any(word in lowered for word in NOT_A_LOCATION):
        return False
    if any(word in lowered for word in LOCATION_WORDS):
        return True
    if extract_nation(text):
        return True

    if len(text) < 30 and not any(c in text for c in "{}[]()<>=/\\"):
        letters = sum(1 for c in text if c.isalpha() or c.isspace() or c in ",.")
        return letters / len(text) > 0.8
    return False


def extract_location_from_bio(bio: str) -> str:
    """Find a location phrase such as "Based in Berlin" in a bio."""
    if not bio:
        return ""

    for line in bio.splitlines():
        line = line.strip()
        lowered = line.lower()
        for marker in BIO_LOCATION_MARKERS:
            idx = lowered.find(marker)
            if idx == -1:
                continue
            candidate = line[idx + len(marker):].strip().strip(":：").strip()
            candidate = re.split(r"[.;|]", candidate, maxsplit=1)[0].strip()
            if _is_plausible_location(candidate):
                return candidate

    for word in bio.split():
        word = word.strip(",.;:!")
        if extract_nation(word):
            return word
    return ""


def quick_confidence(max_score: float, factor_count: int) -> float:
    confidence = 0.3 + min(max_score / 5.0, 0.4) + min(factor_count / 3.0, 0.3)
    return max(0.0, min(confidence, 1.0)) * 100.0


def quick_predict(
    username: str, user: UserRecord, repos: list[RepositoryRecord]
) -> PredictionResult:
    """Score countries from email, names, company and repository text."""
    points: dict[str, float] = {}
    factors: list[str] = []

    def award(code: str, value: float, factor: str) -> None:
        points[code] = points.get(code, 0.0) + value
        factors.append(factor)

    # Email domain
    email = user.email.lower().strip()
    if "@" in email:
        domain = email.rsplit("@", 1)[1]
        if domain.endswith(".cn"):
            award("CN", EMAIL_TLD_POINTS, "email_tld_cn")
        elif domain.endswith(".jp"):
            award("JP", EMAIL_TLD_POINTS, "email_tld_jp")
        else:
            for provider in CHINESE_EMAIL_PROVIDERS:
                if domain == provider or domain.endswith(f".{provider}"):
                    award("CN", EMAIL_PROVIDER_POINTS, f"email_provider_{provider.split('.')[0]}")
                    break

    # Display name script
    if contains_han(user.name):
        award("CN", HAN_NAME_POINTS, "han_display_name")

    # Username / display name keywords
    tokens = set(_TOKEN_SPLIT_RE.split(username.lower()))
    tokens.update(_TOKEN_SPLIT_RE.split(user.name.lower()))
    for keyword, code in NAME_KEYWORDS.items():
        if keyword in tokens:
            award(code, NAME_KEYWORD_POINTS, f"name_keyword_{keyword}")

    # Repository descriptions
    han_descriptions = 0
    for repo in repos:
        description = repo.description.lower()
        if contains_han(description):
            han_descriptions += 1
        if "中国" in description or "china" in description:
            award("CN", DESCRIPTION_KEYWORD_POINTS, f"repo_description_keyword:{repo.name}")

    if repos and han_descriptions / len(repos) > HAN_DESCRIPTIONS_RATIO:
        award("CN", HAN_DESCRIPTIONS_POINTS, "han_repo_descriptions")

    # Company
    if user.company:
        if contains_han(user.company):
            award("CN", COMPANY_POINTS, "company")
        else:
            company_nation = extract_nation(user.company)
            if company_nation:
                award(company_nation, COMPANY_POINTS, "company")

    if not points or not factors:
        return NO_PREDICTION

    max_score = max(points.values())
    leaders = [code for code, score in points.items() if score == max_score]
    if len(leaders) > 1:
        logger.debug("nation_heuristic_tie", candidates=sorted(leaders))
        return PredictionResult(factors=factors, source="none")

    return PredictionResult(
        nation=leaders[0],
        confidence=quick_confidence(max_score, len(factors)),
        factors=factors,
        source="heuristic",
    )


class NationPredictor:
    """Runs the location, heuristic and AI stages in order."""

    def __init__(self, ai_client: AIClient | None = None) -> None:
        self.ai_client = ai_client

    async def predict(
        self,
        username: str,
        user: UserRecord,
        repos: list[RepositoryRecord],
        facts: dict[str, Any] | None = None,
    ) -> PredictionResult:
        location = user.location or extract_location_from_bio(user.bio)
        nation = extract_nation(location)
        if nation:
            NATION_PREDICTIONS.labels(source="location").inc()
            return PredictionResult(
                nation=nation, confidence=100.0, factors=["location"], source="location"
            )

        heuristic = quick_predict(username, user, repos)
        if heuristic.is_confident:
            NATION_PREDICTIONS.labels(source="heuristic").inc()
            return heuristic

        if self.ai_client is not None and facts is not None:
            ai_result = await self._predict_with_ai(facts)
            if ai_result.is_confident:
                NATION_PREDICTIONS.labels(source="ai").inc()
                return ai_result

        NATION_PREDICTIONS.labels(source="none").inc()
        return NO_PREDICTION

    async def _predict_with_ai(self, facts: dict[str, Any]) -> PredictionResult:
        try:
            result = await self.ai_client.predict_nation(facts)
        except TalentRankError as exc:
            logger.warning("nation_ai_fallback_failed", error=exc.code)
            return NO_PREDICTION

        if not is_valid_country_code(result.nation):
            logger.info("nation_ai_no_usable_answer", nation=result.nation)
            return NO_PREDICTION
        return result
