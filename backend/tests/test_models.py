"""Tests for the developer document models."""

from datetime import timedelta

from db.models import (
    UPDATE_FREQUENCY_ACTIVE,
    UPDATE_FREQUENCY_DEFAULT,
    DeveloperProfile,
    ValidationSnapshot,
    update_frequency_for,
)
from factories import NOW, make_profile


class TestDeveloperProfile:
    def test_scores_clamped(self):
        profile = make_profile(talent_rank=140.0, confidence=-5.0, nation_confidence=101)
        assert profile.talent_rank == 100.0
        assert profile.confidence == 0.0
        assert profile.nation_confidence == 100.0

    def test_sets_sorted_and_deduplicated(self):
        profile = make_profile(skills=["Rust", "Go", "Rust", " ", ""], repositories=["b", "a", "a"])
        assert profile.skills == ["Go", "Rust"]
        assert profile.repositories == ["a", "b"]

    def test_nation_normalised(self):
        assert make_profile(nation="de").nation == "DE"
        assert make_profile(nation="Germany").nation == ""
        assert make_profile(nation="1A").nation == ""

    def test_name_defaults_to_username(self):
        assert make_profile(name="").name == "octocat"

    def test_updated_at_never_before_created_at(self):
        profile = make_profile(created_at=NOW, updated_at=NOW - timedelta(days=1))
        assert profile.updated_at == NOW

    def test_refresh_due_at(self):
        profile = make_profile(last_updated=NOW, update_frequency=UPDATE_FREQUENCY_ACTIVE)
        assert profile.refresh_due_at == NOW + timedelta(days=1)

    def test_document_uses_mongo_id(self):
        profile = make_profile()
        document = profile.to_document()
        assert document["_id"] == profile.id
        assert "id" not in document
        assert DeveloperProfile.from_document(document) == profile

    def test_document_carries_lowercase_lookup_key(self):
        document = make_profile("OctoCat").to_document()
        assert document["username"] == "OctoCat"
        assert document["username_key"] == "octocat"

    def test_ids_are_unique(self):
        assert make_profile().id != make_profile().id


class TestHelpers:
    def test_update_frequency_tiers(self):
        assert update_frequency_for(1001) == UPDATE_FREQUENCY_ACTIVE
        assert update_frequency_for(1000) == UPDATE_FREQUENCY_DEFAULT

    def test_validation_confidence_clamped(self):
        assert ValidationSnapshot(confidence=250).confidence == 100.0
