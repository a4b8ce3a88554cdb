"""Context-aware selection of jargon profiles and post-process prompts.

Scoring is pure token overlap and runs on a small worker pool so the caller
can bound its wait. Each selection purpose keeps its own ``SelectionMemory``
so a near-tied newcomer does not displace the previous winner (hysteresis).
"""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Iterable, Mapping, Optional, Sequence

from jargon import JargonProfile
from models import DomainContext, RankedCandidate, SelectionMemory
from settings import LLMPrompt, Settings

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 2000
MIN_PROFILE_TIMEOUT_MS = 25
MIN_PROMPT_TIMEOUT_MS = 10
MAX_PROMPT_TIMEOUT_MS = 80

TERM_WEIGHT = 1.0
CORRECTION_FROM_WEIGHT = 1.2
CORRECTION_TO_WEIGHT = 1.0
PROMPT_SIGNATURE_WEIGHT = 1.8
PROMPT_KEYWORD_BONUS = 0.2

DEFAULT_PROMPT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "default_action_items": ("action item", "todo", "next steps", "owner", "deadline", "task"),
    "default_document_writer": ("document", "proposal", "design doc", "write-up", "spec", "draft"),
    "default_meeting_notes": ("meeting", "agenda", "decisions", "attendees", "recap", "notes"),
    "default_slack_message": ("slack", "channel", "team update", "quick update", "message"),
}

_TOKEN_SPLIT = re.compile(r"(?:[^\w+#]|_)+")

ScoreFn = Callable[[threading.Event], list[RankedCandidate]]


def tokenize(text: str) -> set[str]:
    """Lowercase alphanumeric tokens longer than one char; ``+`` and ``#`` kept."""
    tokens = set()
    for token in _TOKEN_SPLIT.split(text.lower()):
        if len(token) > 1:
            tokens.add(token)
    return tokens


def _overlap(phrase: str, context_tokens: set[str]) -> float:
    phrase_tokens = tokenize(phrase)
    if not phrase_tokens:
        return 0.0
    return len(phrase_tokens & context_tokens) / len(phrase_tokens)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def truncate_context(text: str) -> str:
    return text[:MAX_CONTEXT_CHARS]


def score_profile(profile: JargonProfile, context_tokens: set[str]) -> float:
    total = 0.0
    for term in profile.terms:
        total += TERM_WEIGHT * _overlap(term, context_tokens)
    for correction in profile.corrections:
        total += CORRECTION_FROM_WEIGHT * _overlap(correction.from_, context_tokens)
        total += CORRECTION_TO_WEIGHT * _overlap(correction.to, context_tokens)
    size = max(len(profile.terms) + 1.5 * len(profile.corrections), 1.0)
    return _clamp(total / size, 0.0, 1.0)


def score_prompt(prompt: LLMPrompt, context: str, context_tokens: set[str]) -> float:
    total = PROMPT_SIGNATURE_WEIGHT * _overlap(f"{prompt.id} {prompt.name}", context_tokens)
    keywords = prompt.keywords or DEFAULT_PROMPT_KEYWORDS.get(prompt.id, ())
    lowered = context.lower()
    for keyword in keywords:
        if keyword and keyword.lower() in lowered:
            total += PROMPT_KEYWORD_BONUS
    return _clamp(total, 0.0, 1.0)


def rank(candidates: Iterable[RankedCandidate], min_score: float) -> list[RankedCandidate]:
    kept = [c for c in candidates if c.score > 0.0 and c.score >= min_score]
    kept.sort(key=lambda c: (-c.score, c.id))
    return kept


def stabilize(
    ranked: list[RankedCandidate],
    previous: Optional[RankedCandidate],
    hysteresis: float,
    limit: int,
) -> list[RankedCandidate]:
    """Keep the previous winner on top unless the new leader clearly beats it."""
    if not ranked:
        return []
    top = ranked[0]
    if previous is not None and top.id != previous.id and top.score < previous.score + hysteresis:
        rest = [c for c in ranked if c.id != previous.id]
        ranked = [previous] + rest
    return ranked[:limit]


class DomainSelector:
    def __init__(self, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="domain-selector")
        self._lock = threading.Lock()
        self._profile_memory = SelectionMemory()
        self._prompt_memory = SelectionMemory()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    @property
    def last_profile(self) -> Optional[RankedCandidate]:
        with self._lock:
            return self._profile_memory.snapshot()

    @property
    def last_prompt(self) -> Optional[RankedCandidate]:
        with self._lock:
            return self._prompt_memory.snapshot()

    # ------------------------------------------------------------------
    # Public selection entry points
    # ------------------------------------------------------------------

    def select_profiles_with_timeout(
        self,
        settings: Settings,
        context: DomainContext,
        profiles: Mapping[str, JargonProfile],
    ) -> Optional[list[str]]:
        if not settings.domain_selector_enabled:
            return None
        text = truncate_context(context.text)
        if not text.strip() or not profiles:
            return None

        top_k = max(settings.domain_selector_top_k, 1)
        min_score = _clamp(settings.domain_selector_min_score, 0.0, 1.0)
        hysteresis = _clamp(settings.domain_selector_hysteresis, 0.0, 1.0)
        timeout_ms = max(settings.domain_selector_timeout_ms, MIN_PROFILE_TIMEOUT_MS)
        snapshot = dict(profiles)

        def score(cancel: threading.Event) -> list[RankedCandidate]:
            tokens = tokenize(text)
            scored = []
            for profile_id, profile in snapshot.items():
                if cancel.is_set():
                    return []
                scored.append(RankedCandidate(id=profile_id, score=score_profile(profile, tokens)))
            return rank(scored, min_score)

        ranked = self._score_with_timeout("profile", score, timeout_ms)
        if not ranked:
            return None

        with self._lock:
            selected = stabilize(ranked, self._profile_memory.snapshot(), hysteresis, top_k)
            self._profile_memory.remember(selected[0])
        ids = [c.id for c in selected]
        logger.debug("Domain selector picked profiles %s", ids)
        return ids

    def select_post_process_prompt_with_timeout(
        self,
        settings: Settings,
        context: DomainContext,
        prompts: Sequence[LLMPrompt],
    ) -> Optional[str]:
        if not settings.post_process_auto_prompt_selection:
            return None
        text = truncate_context(context.text)
        if not text.strip() or not prompts:
            return None

        min_score = _clamp(settings.domain_selector_min_score, 0.0, 1.0)
        hysteresis = _clamp(settings.domain_selector_hysteresis, 0.0, 1.0)
        timeout_ms = _clamp(settings.domain_selector_timeout_ms, MIN_PROMPT_TIMEOUT_MS, MAX_PROMPT_TIMEOUT_MS)
        snapshot = list(prompts)

        def score(cancel: threading.Event) -> list[RankedCandidate]:
            tokens = tokenize(text)
            scored = []
            for prompt in snapshot:
                if cancel.is_set():
                    return []
                scored.append(RankedCandidate(id=prompt.id, score=score_prompt(prompt, text, tokens)))
            return rank(scored, min_score)

        ranked = self._score_with_timeout("prompt", score, timeout_ms)
        if not ranked:
            return None

        with self._lock:
            selected = stabilize(ranked, self._prompt_memory.snapshot(), hysteresis, 1)
            self._prompt_memory.remember(selected[0])
        logger.debug("Domain selector picked prompt %s", selected[0].id)
        return selected[0].id

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _score_with_timeout(
        self,
        purpose: str,
        fn: ScoreFn,
        timeout_ms: float,
    ) -> Optional[list[RankedCandidate]]:
        cancel = threading.Event()
        try:
            future = self._executor.submit(fn, cancel)
        except RuntimeError as exc:
            logger.warning("Domain selector %s scoring skipped: %s", purpose, exc)
            return None
        try:
            return future.result(timeout=timeout_ms / 1000.0)
        except FutureTimeoutError:
            cancel.set()
            future.cancel()
            logger.warning("Domain selector %s scoring timed out after %sms", purpose, timeout_ms)
            return None


def effective_profile_ids(
    selector: Optional[DomainSelector],
    settings: Settings,
    text: str,
    profiles: Mapping[str, JargonProfile],
) -> list[str]:
    """Manual profiles blended with (or replaced by) the selector's picks."""
    profile_ids = list(settings.jargon_enabled_profiles)
    if selector is None:
        return profile_ids

    auto_profiles = selector.select_profiles_with_timeout(settings, DomainContext(text=text), profiles)
    if auto_profiles is None:
        return profile_ids

    if settings.domain_selector_blend_manual_profiles:
        for profile_id in auto_profiles:
            if profile_id not in profile_ids:
                profile_ids.append(profile_id)
        return profile_ids
    return auto_profiles
