from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest

import domain_selector
from domain_selector import DomainSelector, effective_profile_ids, rank, stabilize, tokenize
from jargon import JargonCorrection, JargonProfile
from models import DomainContext, RankedCandidate
from settings import Settings, builtin_post_process_prompts


def _profiles() -> dict[str, JargonProfile]:
    return {
        "alpha": JargonProfile(label="Alpha", terms=tuple(f"alpha{i}" for i in range(10))),
        "beta": JargonProfile(label="Beta", terms=tuple(f"beta{i}" for i in range(9))),
    }


def _settings(**overrides) -> Settings:  # noqa: ANN003
    values = {"domain_selector_enabled": True, "domain_selector_timeout_ms": 500}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def selector():  # noqa: ANN201
    instance = DomainSelector()
    yield instance
    instance.shutdown()


# ---------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------

def test_tokenize_keeps_plus_and_hash() -> None:
    assert tokenize("C# and C++ with snake_case, a b") == {"c#", "and", "c++", "with", "snake", "case"}


def test_rank_applies_floor_and_orders_by_score_then_id() -> None:
    ranked = rank(
        [
            RankedCandidate("b", 0.5),
            RankedCandidate("a", 0.5),
            RankedCandidate("c", 0.05),
            RankedCandidate("d", 0.0),
        ],
        min_score=0.0,
    )
    assert [c.id for c in ranked] == ["a", "b", "c"]
    assert [c.id for c in rank(ranked, min_score=0.1)] == ["a", "b"]


def test_stabilize_keeps_previous_when_lead_below_margin() -> None:
    ranked = [RankedCandidate("B", 0.33), RankedCandidate("A", 0.30)]
    result = stabilize(ranked, RankedCandidate("A", 0.30), hysteresis=0.08, limit=2)
    assert [c.id for c in result] == ["A", "B"]


def test_stabilize_switches_when_lead_beats_margin() -> None:
    ranked = [RankedCandidate("B", 0.50), RankedCandidate("A", 0.30)]
    result = stabilize(ranked, RankedCandidate("A", 0.30), hysteresis=0.08, limit=2)
    assert [c.id for c in result] == ["B", "A"]


def test_stabilize_reinserts_previous_that_fell_below_floor() -> None:
    ranked = [RankedCandidate("B", 0.2)]
    result = stabilize(ranked, RankedCandidate("A", 0.25), hysteresis=0.08, limit=1)
    assert result == [RankedCandidate("A", 0.25)]


def test_score_profile_weights_corrections() -> None:
    profile = JargonProfile(
        label="x",
        terms=("kafka",),
        corrections=(JargonCorrection(from_="cube CTL", to="kubectl"),),
    )
    tokens = tokenize("run cube ctl against kafka")
    # term 1.0 + correction-from 1.2, normalized by 1 + 1.5
    assert domain_selector.score_profile(profile, tokens) == pytest.approx(2.2 / 2.5)


# ---------------------------------------------------------------
# Profile selection
# ---------------------------------------------------------------

def test_profile_hysteresis_across_calls(selector: DomainSelector) -> None:
    settings = _settings()
    profiles = _profiles()

    first = selector.select_profiles_with_timeout(
        settings, DomainContext("alpha0 alpha1 alpha2"), profiles
    )
    assert first == ["alpha"]
    assert selector.last_profile == RankedCandidate("alpha", pytest.approx(0.3))

    # beta scores 3/9 = 0.333, only 0.033 ahead of alpha's 0.30
    second = selector.select_profiles_with_timeout(
        settings, DomainContext("alpha0 alpha1 alpha2 beta0 beta1 beta2"), profiles
    )
    assert second == ["alpha", "beta"]

    third = selector.select_profiles_with_timeout(
        settings, DomainContext(" ".join(f"beta{i}" for i in range(9))), profiles
    )
    assert third == ["beta"]
    assert selector.last_profile.id == "beta"


def test_top_k_limits_result(selector: DomainSelector) -> None:
    settings = _settings(domain_selector_top_k=1)
    result = selector.select_profiles_with_timeout(
        settings, DomainContext("alpha0 alpha1 alpha2 beta0"), _profiles()
    )
    assert result == ["alpha"]


def test_below_min_score_returns_none(selector: DomainSelector) -> None:
    settings = _settings(domain_selector_min_score=0.5)
    assert selector.select_profiles_with_timeout(settings, DomainContext("alpha0"), _profiles()) is None
    assert selector.last_profile is None


def test_disabled_returns_none_without_work(selector: DomainSelector) -> None:
    selector._executor = MagicMock()
    settings = _settings(domain_selector_enabled=False)

    assert selector.select_profiles_with_timeout(settings, DomainContext("alpha0"), _profiles()) is None
    selector._executor.submit.assert_not_called()


def test_selection_after_shutdown_returns_none() -> None:
    instance = DomainSelector()
    instance.shutdown()

    settings = _settings(post_process_auto_prompt_selection=True)
    assert instance.select_profiles_with_timeout(settings, DomainContext("alpha0 alpha1"), _profiles()) is None
    prompts = builtin_post_process_prompts()
    assert instance.select_post_process_prompt_with_timeout(settings, DomainContext("meeting agenda recap"), prompts) is None
    assert instance.last_profile is None


def test_blank_context_returns_none_without_work(selector: DomainSelector) -> None:
    selector._executor = MagicMock()

    assert selector.select_profiles_with_timeout(_settings(), DomainContext("   \n"), _profiles()) is None
    selector._executor.submit.assert_not_called()


def test_timeout_fails_open_and_keeps_memory(selector: DomainSelector, monkeypatch) -> None:  # noqa: ANN001
    def slow_score(profile, tokens):  # noqa: ANN001, ANN202
        time.sleep(0.2)
        return 1.0

    monkeypatch.setattr(domain_selector, "score_profile", slow_score)
    settings = _settings(domain_selector_timeout_ms=25)

    started = time.monotonic()
    result = selector.select_profiles_with_timeout(settings, DomainContext("alpha0"), _profiles())

    assert result is None
    assert time.monotonic() - started < 0.15
    assert selector.last_profile is None


# ---------------------------------------------------------------
# Prompt selection
# ---------------------------------------------------------------

def test_prompt_selection_uses_keywords(selector: DomainSelector) -> None:
    settings = _settings(post_process_auto_prompt_selection=True)
    picked = selector.select_post_process_prompt_with_timeout(
        settings,
        DomainContext("let's recap the meeting agenda and the decisions we made"),
        builtin_post_process_prompts(),
    )
    assert picked == "default_meeting_notes"
    assert selector.last_prompt.id == "default_meeting_notes"


def test_prompt_selection_requires_auto_selection(selector: DomainSelector) -> None:
    settings = _settings(post_process_auto_prompt_selection=False)
    picked = selector.select_post_process_prompt_with_timeout(
        settings, DomainContext("meeting agenda recap"), builtin_post_process_prompts()
    )
    assert picked is None


# ---------------------------------------------------------------
# effective_profile_ids
# ---------------------------------------------------------------

class FakeSelector:
    def __init__(self, picks) -> None:  # noqa: ANN001
        self.picks = picks
        self.calls: list[str] = []

    def select_profiles_with_timeout(self, settings, context, profiles):  # noqa: ANN001, ANN201
        self.calls.append(context.text)
        return self.picks


def test_effective_profiles_blend_with_manual() -> None:
    settings = Settings(jargon_enabled_profiles=["web_dev", "coding"])
    ids = effective_profile_ids(FakeSelector(["devops", "coding"]), settings, "text", {})
    assert ids == ["web_dev", "coding", "devops"]


def test_effective_profiles_replace_manual() -> None:
    settings = Settings(jargon_enabled_profiles=["web_dev"], domain_selector_blend_manual_profiles=False)
    assert effective_profile_ids(FakeSelector(["devops"]), settings, "text", {}) == ["devops"]


def test_effective_profiles_fallback_when_no_selection() -> None:
    settings = Settings(jargon_enabled_profiles=["web_dev"])
    assert effective_profile_ids(FakeSelector(None), settings, "text", {}) == ["web_dev"]
    assert effective_profile_ids(None, settings, "text", {}) == ["web_dev"]
