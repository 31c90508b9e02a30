import pytest
from pydantic import ValidationError

from swapfeed.config import (
    CANDIDATE_LIMIT,
    RESULT_MAX,
    SCORER_URL,
    CandidateItem,
    HealthResponse,
    PreferenceSignal,
    ScoreEntry,
    Settings,
)


def test_candidate_item_keeps_extra_columns():
    item = CandidateItem(id="i1", title="Lamp", category="home", price=5, images=["a.jpg"], user_id="u2")
    dumped = item.model_dump(mode="json")
    assert dumped["images"] == ["a.jpg"]
    assert dumped["user_id"] == "u2"
    assert dumped["description"] is None


def test_candidate_item_requires_id():
    with pytest.raises(ValidationError):
        CandidateItem(title="no id")


def test_preference_signal_liked_item():
    signal = PreferenceSignal(item_id="i1", items={"id": "i1", "title": "Lamp"})
    assert signal.liked_item.title == "Lamp"
    assert PreferenceSignal(item_id="i2").liked_item is None


@pytest.mark.parametrize("raw, expected", [(7, 7.0), ("8.5", 8.5), ("n/a", 0.0), (None, 0.0), (True, 0.0), ("nan", 0.0)])
def test_score_entry_coerces_score(raw, expected):
    assert ScoreEntry(id="a", score=raw).score == expected


def test_settings_defaults():
    s = Settings()
    assert s.candidate_limit == CANDIDATE_LIMIT == 50
    assert s.result_max == RESULT_MAX == 20
    assert s.scorer_url == SCORER_URL


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://proj.example.co/")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.delenv("SCORER_API_KEY", raising=False)
    monkeypatch.setenv("LOVABLE_API_KEY", "lk")
    monkeypatch.setenv("SCORER_TIMEOUT", "5")
    monkeypatch.setenv("RESULT_MAX", "10")

    s = Settings.from_env()
    assert s.scorer_api_key == "lk"
    assert s.scorer_timeout == 5.0
    assert s.result_max == 10
    assert s.rest_url == "https://proj.example.co/rest/v1"
    assert s.auth_url == "https://proj.example.co/auth/v1"


def test_health_response():
    assert HealthResponse(status="healthy").status == "healthy"


def test_candidate_item_numbers_round_trip_unchanged():
    dumped = CandidateItem(id="i1", price=12, estimated_value=7.5).model_dump(mode="json")
    assert dumped["price"] == 12 and isinstance(dumped["price"], int)
    assert dumped["estimated_value"] == 7.5
