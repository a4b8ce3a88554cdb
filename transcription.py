"""Speech-engine call followed by output filtering and the jargon pass."""

from __future__ import annotations

import logging
import time
from typing import Optional

from domain_selector import DomainSelector, effective_profile_ids
from errors import TranscriptionError, classify_sdk_error
from interfaces import SettingsProvider, SpeechEngine
from jargon import apply_corrections, build_initial_prompt, build_profiles_map, dictionary_for_settings
from models import AudioClip
from transcript_filter import apply_custom_words, filter_transcription_output

logger = logging.getLogger(__name__)


class TranscriptionService:
    def __init__(
        self,
        engine: SpeechEngine,
        settings_provider: SettingsProvider,
        selector: Optional[DomainSelector] = None,
    ) -> None:
        self._engine = engine
        self._settings_provider = settings_provider
        self._selector = selector

    def transcribe(self, audio: Optional[AudioClip]) -> str:
        """Return cleaned text for ``audio``; raises ``TranscriptionError``."""
        if audio is None or audio.is_empty():
            return ""

        settings = self._settings_provider.get_settings()
        profiles = build_profiles_map(settings)

        initial_prompt = None
        if settings.has_jargon():
            manual = dictionary_for_settings(settings, settings.jargon_enabled_profiles, profiles)
            initial_prompt = build_initial_prompt(manual) or None

        started = time.monotonic()
        try:
            raw = self._engine.transcribe(audio, initial_prompt=initial_prompt)
        except TranscriptionError:
            raise
        except Exception as exc:
            code, retryable = classify_sdk_error(exc, TranscriptionError.default_code)
            raise TranscriptionError(str(exc), code=code, retryable=retryable) from exc
        logger.debug("Speech engine returned in %.0fms", (time.monotonic() - started) * 1000)

        text = raw or ""
        if settings.custom_words:
            text = apply_custom_words(text, settings.custom_words, settings.word_correction_threshold)
        text = filter_transcription_output(text)
        if not text:
            return ""

        if settings.has_jargon() or settings.domain_selector_enabled:
            profile_ids = effective_profile_ids(self._selector, settings, text, profiles)
            dictionary = dictionary_for_settings(settings, profile_ids, profiles)
            text = apply_corrections(text, dictionary.corrections)

        return text
