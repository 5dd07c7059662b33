"""Tests for the talent-rank scoring functions."""

from datetime import UTC, datetime, timedelta

import pytest

from factories import make_repo
from services import scoring_engine
from services.scoring_engine import (
    ActivityMetrics,
    ContributionMetrics,
    DeveloperMetrics,
    ExpertiseMetrics,
    InfluenceMetrics,
    ProjectMetrics,
)

NOW = datetime(2026, 3, 1, tzinfo=UTC)


class TestLogScale:
    def test_zero_and_negative(self):
        assert scoring_engine._log_scale(0, 100) == 0.0
        assert scoring_engine._log_scale(-5, 100) == 0.0

    def test_reference_maps_to_one(self):
        assert scoring_engine._log_scale(100, 100) == pytest.approx(1.0)

    def test_monotonic(self):
        assert scoring_engine._log_scale(10, 1000) < scoring_engine._log_scale(100, 1000)


class TestTalentRank:
    def test_empty_metrics_only_defaults_count(self):
        # Defaults: consistency 0.8 and depth 0.8
        rank = scoring_engine.talent_rank(DeveloperMetrics())
        expected = 100 * (0.15 * 0.35 * 0.8 + 0.15 * 0.4 * 0.8)
        assert rank == pytest.approx(expected)

    def test_range_is_bounded(self):
        huge = DeveloperMetrics(
            contributions=ContributionMetrics(
                commit_count=10**9, pr_count=10**9, review_count=10**9, issue_count=10**9, quality=1.0
            ),
            projects=ProjectMetrics(
                star_count=10**9, fork_count=10**9, core_projects=10, total_count=10, quality=1.0
            ),
            influence=InfluenceMetrics(followers=10**9, recognition=1.0, reach=1.0),
            activity=ActivityMetrics(frequency=1.0, consistency=1.0, growth=1.0),
            expertise=ExpertiseMetrics(
                languages=[str(i) for i in range(20)], domains=[str(i) for i in range(10)], depth=1.0
            ),
        )
        assert scoring_engine.talent_rank(huge) == pytest.approx(100.0)

    def test_more_stars_rank_higher(self):
        low = scoring_engine.build_metrics(
            commit_count=100, star_count=10, fork_count=1, repository_count=5,
            followers=10, skills=["Python"], project_quality=0.2, recognition=0.1,
        )
        high = scoring_engine.build_metrics(
            commit_count=100, star_count=10_000, fork_count=1, repository_count=5,
            followers=10, skills=["Python"], project_quality=0.2, recognition=0.1,
        )
        assert scoring_engine.talent_rank(high) > scoring_engine.talent_rank(low)

    def test_project_score_without_repositories(self):
        assert scoring_engine.project_score(ProjectMetrics()) == 0.0


class TestActivity:
    def test_frequency_saturates(self):
        assert scoring_engine.activity_frequency(500) == pytest.approx(0.5)
        assert scoring_engine.activity_frequency(5000) == 1.0

    def test_growth_saturates(self):
        assert scoring_engine.growth_trend(250) == pytest.approx(0.5)
        assert scoring_engine.growth_trend(501) == 1.0

    def test_build_metrics_wires_inputs(self):
        metrics = scoring_engine.build_metrics(
            commit_count=1000, star_count=50, fork_count=5, repository_count=4,
            followers=20, skills=["Go", "Rust"], project_quality=0.4, recognition=0.3,
        )
        assert metrics.contributions.commit_count == 1000
        assert metrics.projects.total_count == 4
        assert metrics.projects.quality == 0.4
        assert metrics.influence.recognition == 0.3
        assert metrics.activity.frequency == 1.0
        assert metrics.expertise.languages == ["Go", "Rust"]


class TestProjectImportance:
    def test_forks_ignored(self):
        repos = [make_repo("forked", fork=True, stargazers_count=10_000)]
        assert scoring_engine.project_importance(repos, NOW) == 0.0

    def test_recent_activity_boost(self):
        recent = make_repo("a", stargazers_count=100, forks_count=0, size=0,
                           updated_at=NOW - timedelta(days=10))
        stale = make_repo("b", stargazers_count=100, forks_count=0, size=0,
                          updated_at=NOW - timedelta(days=400))
        # 2 * log10(100) = 4, boosted by 1.2, averaged, divided by 10
        assert scoring_engine.project_importance([recent], NOW) == pytest.approx(0.48)
        assert scoring_engine.project_importance([stale], NOW) == pytest.approx(0.4)

    def test_archived_repository_not_boosted(self):
        repo = make_repo("a", stargazers_count=100, forks_count=0, size=0,
                         archived=True, updated_at=NOW - timedelta(days=1))
        assert scoring_engine.project_importance([repo], NOW) == pytest.approx(0.4)

    def test_clamped_to_one(self):
        repo = make_repo("big", stargazers_count=10**9, forks_count=10**9, size=10**9,
                         updated_at=NOW)
        assert scoring_engine.project_importance([repo], NOW) == 1.0


class TestContributionLevel:
    def test_no_commits(self):
        assert scoring_engine.contribution_level("octocat", [make_repo()], {}) == 0.0

    def test_owner_boost(self):
        own = make_repo("mine", stargazers_count=0)
        other = make_repo("theirs", owner_login="someone", stargazers_count=0)
        mine = scoring_engine.contribution_level("octocat", [own], {"mine": 100})
        theirs = scoring_engine.contribution_level("octocat", [other], {"theirs": 100})
        # 2 * log10(100) = 4; owner x1.5 -> 6; / 10
        assert mine == pytest.approx(0.6)
        assert theirs == pytest.approx(0.4)

    def test_owner_match_is_case_insensitive(self):
        repo = make_repo("mine", owner_login="OctoCat", stargazers_count=0)
        assert scoring_engine.contribution_level("octocat", [repo], {"mine": 100}) == pytest.approx(0.6)

    def test_forks_skipped(self):
        repo = make_repo("fork", fork=True)
        assert scoring_engine.contribution_level("octocat", [repo], {"fork": 1000}) == 0.0


class TestGenericConfidence:
    def test_reference_scenario(self):
        assert scoring_engine.generic_confidence(1500, 200, 50, True) == pytest.approx(97.0)

    def test_minimum_is_fifty(self):
        assert scoring_engine.generic_confidence(0, 0, 0, False) == pytest.approx(50.0)

    def test_capped_at_hundred(self):
        assert scoring_engine.generic_confidence(10**6, 10**6, 10**6, True) == pytest.approx(100.0)
