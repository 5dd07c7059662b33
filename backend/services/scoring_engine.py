"""Talent Scoring Engine.

Pure functions that turn aggregated GitHub data into scores:

- talent_rank: weighted blend of contribution, project, influence,
  activity and expertise sub-scores, scaled to 0-100
- project_importance: average per-repository weight of stars, forks and size
- contribution_level: how much of the user's own work sits in their repositories
- generic_confidence: how much evidence backs the profile, 0-100

Counts use logarithmic scaling so a handful of very popular repositories
cannot dominate. Nothing here touches the network or the clock; callers
pass ``now`` explicitly.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from services.github_service import RepositoryRecord

# Reference counts at which a log-scaled sub-score saturates
REF_COMMITS = 10_000
REF_PRS = 1_000
REF_REVIEWS = 500
REF_ISSUES = 1_000
REF_STARS = 100_000
REF_FORKS = 10_000
REF_FOLLOWERS = 10_000

RECENT_ACTIVITY_WINDOW = timedelta(days=180)
RECENT_ACTIVITY_BOOST = 1.2
OWNER_BOOST = 1.5

# Defaults used when the signal is not measured
DEFAULT_QUALITY = 0.8
DEFAULT_CONSISTENCY = 0.8
DEFAULT_DEPTH = 0.8


@dataclass
class ContributionMetrics:
    commit_count: int = 0
    pr_count: int = 0
    review_count: int = 0
    issue_count: int = 0
    quality: float = DEFAULT_QUALITY


@dataclass
class ProjectMetrics:
    star_count: int = 0
    fork_count: int = 0
    core_projects: int = 0
    total_count: int = 0
    quality: float = 0.0


@dataclass
class InfluenceMetrics:
    followers: int = 0
    recognition: float = 0.0
    reach: float = 0.0


@dataclass
class ActivityMetrics:
    frequency: float = 0.0
    consistency: float = DEFAULT_CONSISTENCY
    growth: float = 0.0


@dataclass
class ExpertiseMetrics:
    languages: list[str] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)
    depth: float = DEFAULT_DEPTH


@dataclass
class DeveloperMetrics:
    """Inputs to talent_rank, grouped by dimension."""

    contributions: ContributionMetrics = field(default_factory=ContributionMetrics)
    projects: ProjectMetrics = field(default_factory=ProjectMetrics)
    influence: InfluenceMetrics = field(default_factory=InfluenceMetrics)
    activity: ActivityMetrics = field(default_factory=ActivityMetrics)
    expertise: ExpertiseMetrics = field(default_factory=ExpertiseMetrics)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _log_scale(count: float, reference: float) -> float:
    """log1p(count) / log1p(reference); 0 for non-positive counts."""
    if count <= 0:
        return 0.0
    return math.log1p(count) / math.log1p(reference)


# --- Talent rank ---


def contribution_score(m: ContributionMetrics) -> float:
    score = (
        0.4 * _log_scale(m.commit_count, REF_COMMITS)
        + 0.3 * _log_scale(m.pr_count, REF_PRS) * m.quality
        + 0.2 * _log_scale(m.review_count, REF_REVIEWS)
        + 0.1 * _log_scale(m.issue_count, REF_ISSUES)
    )
    return _clamp(score)


def project_score(m: ProjectMetrics) -> float:
    core = m.core_projects / m.total_count if m.total_count > 0 else 0.0
    score = (
        0.35 * _log_scale(m.star_count, REF_STARS)
        + 0.25 * _log_scale(m.fork_count, REF_FORKS)
        + 0.25 * core
        + 0.15 * m.quality
    )
    return _clamp(score)


def influence_score(m: InfluenceMetrics) -> float:
    score = (
        0.4 * _log_scale(m.followers, REF_FOLLOWERS)
        + 0.35 * m.recognition
        + 0.25 * m.reach
    )
    return _clamp(score)


def activity_score(m: ActivityMetrics) -> float:
    return _clamp(0.35 * m.frequency + 0.35 * m.consistency + 0.30 * m.growth)


def expertise_score(m: ExpertiseMetrics) -> float:
    breadth = min(len(m.languages) / 10.0, 1.0)
    domains = min(len(m.domains) / 5.0, 1.0)
    return _clamp(0.3 * breadth + 0.3 * domains + 0.4 * m.depth)


def talent_rank(metrics: DeveloperMetrics) -> float:
    """Composite talent rank in [0, 100]."""
    total = (
        0.25 * contribution_score(metrics.contributions)
        + 0.25 * project_score(metrics.projects)
        + 0.20 * influence_score(metrics.influence)
        + 0.15 * activity_score(metrics.activity)
        + 0.15 * expertise_score(metrics.expertise)
    )
    return _clamp(total * 100.0, 0.0, 100.0)


def activity_frequency(commit_count: int) -> float:
    return min(max(commit_count, 0) / 1000.0, 1.0)


def growth_trend(commit_count: int) -> float:
    return min(max(commit_count, 0) / 500.0, 1.0)


# --- Repository-based scores ---


def project_importance(repos: Iterable[RepositoryRecord], now: datetime) -> float:
    """Average importance of the user's own repositories, in [0, 1]."""
    total = 0.0
    counted = 0

    for repo in repos:
        if repo.fork:
            continue

        score = 0.0
        if repo.stargazers_count > 0:
            score += 2.0 * math.log10(repo.stargazers_count)
        if repo.forks_count > 0:
            score += 1.5 * math.log10(repo.forks_count)
        if repo.size > 0:
            score += 0.3 * math.log10(repo.size)

        if (
            not repo.archived
            and repo.updated_at is not None
            and now - repo.updated_at < RECENT_ACTIVITY_WINDOW
        ):
            score *= RECENT_ACTIVITY_BOOST

        total += score
        counted += 1

    if counted == 0:
        return 0.0
    return _clamp(total / counted / 10.0)


def _star_quality(stars: int) -> float:
    quality = stars / 100.0
    if quality > 1.0:
        quality = 1.0 + math.log10(quality)
    return quality


def contribution_level(
    username: str,
    repos: Iterable[RepositoryRecord],
    commit_counts: Mapping[str, int],
) -> float:
    """Weight of the user's own commits across non-fork repositories, in [0, 1].

    ``commit_counts`` maps repository name to the number of commits the
    user authored there; repositories with no commits are ignored.
    """
    login = username.lower()
    total = 0.0
    counted = 0

    for repo in repos:
        if repo.fork:
            continue
        commits = commit_counts.get(repo.name, 0)
        if commits <= 0:
            continue

        score = 2.0 * math.log10(commits)
        if repo.owner_login.lower() == login:
            score *= OWNER_BOOST
        score *= 1.0 + _star_quality(repo.stargazers_count)

        total += score
        counted += 1

    if counted == 0:
        return 0.0
    return _clamp(total / (counted * 10.0))


def generic_confidence(
    commits: int, stars: int, followers: int, has_location: bool
) -> float:
    """Evidence-based confidence in [0, 100].

    Base 50 points, up to 30 from commits, 10 from stars, 10 from
    followers and 10 for a stated location.
    """
    confidence = (
        0.5
        + min(max(commits, 0) / 1000.0, 0.3)
        + min(max(stars, 0) / 10000.0, 0.1)
        + min(max(followers, 0) / 1000.0, 0.1)
        + (0.1 if has_location else 0.0)
    )
    return min(confidence * 100.0, 100.0)


def build_metrics(
    *,
    commit_count: int,
    star_count: int,
    fork_count: int,
    repository_count: int,
    followers: int,
    skills: list[str],
    project_quality: float,
    recognition: float,
) -> DeveloperMetrics:
    """Assemble talent-rank inputs from aggregated profile data."""
    return DeveloperMetrics(
        contributions=ContributionMetrics(commit_count=commit_count),
        projects=ProjectMetrics(
            star_count=star_count,
            fork_count=fork_count,
            total_count=repository_count,
            quality=project_quality,
        ),
        influence=InfluenceMetrics(followers=followers, recognition=recognition),
        activity=ActivityMetrics(
            frequency=activity_frequency(commit_count),
            growth=growth_trend(commit_count),
        ),
        expertise=ExpertiseMetrics(languages=list(skills)),
    )
