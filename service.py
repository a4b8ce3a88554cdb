"""Long-lived wiring that turns each finished recording into a pipeline run."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

from dispatch import ThreadDispatcher
from domain_selector import DomainSelector
from interfaces import HistoryStore, MainThreadDispatcher, RewriteService, SettingsProvider, SpeechEngine, TextInjector
from logging_config import configure_logging
from models import AudioClip
from pipeline import ErrorCallback, FinishedCallback, StateCallback, TranscriptionPipeline
from post_process import PostProcessor
from rewrite import DashscopeRewriteService
from settings import Settings
from speech import DashscopeSpeechEngine
from text_injection import KeyboardTextInjector
from transcription import TranscriptionService

logger = logging.getLogger(__name__)


class DictationService:
    """Owns the session-wide selector, injector and dispatcher.

    One ``DomainSelector`` is shared by every run so hysteresis spans the
    whole session. Speech and rewrite clients are built from current
    settings for each recording unless fixed instances are supplied. With
    ``configure_logs`` the process-wide logging is set up from
    ``Settings.log_level`` first.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        speech_engine: Optional[SpeechEngine] = None,
        rewrite_service: Optional[RewriteService] = None,
        injector: Optional[TextInjector] = None,
        dispatcher: Optional[MainThreadDispatcher] = None,
        history: Optional[HistoryStore] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_finished: Optional[FinishedCallback] = None,
        configure_logs: bool = False,
        log_file: Optional[Path] = None,
    ) -> None:
        if configure_logs:
            configure_logging(settings_provider.get_settings().log_level, log_file)
        self._settings_provider = settings_provider
        self._speech_engine = speech_engine
        self._rewrite_service = rewrite_service
        self._injector = injector or KeyboardTextInjector(settings_provider)
        self._owned_dispatcher: Optional[ThreadDispatcher] = None
        if dispatcher is None:
            self._owned_dispatcher = ThreadDispatcher()
            dispatcher = self._owned_dispatcher
        self._dispatcher = dispatcher
        self._history = history
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._on_finished = on_finished
        self._selector = DomainSelector()

    @property
    def selector(self) -> DomainSelector:
        return self._selector

    def build_pipeline(
        self,
        audio: Optional[AudioClip],
        pasted_segments: Sequence[str] = (),
        *,
        post_process: Optional[bool] = None,
        segments_already_pasted: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> TranscriptionPipeline:
        settings = self._settings_provider.get_settings()
        if post_process is None:
            post_process = settings.post_process_enabled

        transcriber = TranscriptionService(self._engine_for(settings), self._settings_provider, self._selector)
        post_processor = PostProcessor(self._rewrite_for(settings), self._selector) if post_process else None

        return TranscriptionPipeline(
            audio,
            pasted_segments,
            settings,
            post_process,
            transcriber=transcriber,
            post_processor=post_processor,
            injector=self._injector,
            dispatcher=self._dispatcher,
            history=self._history,
            cancel_event=cancel_event,
            segments_already_pasted=segments_already_pasted,
            on_state_change=self._on_state_change,
            on_error=self._on_error,
            on_finished=self._on_finished,
        )

    def process_recording(
        self,
        audio: Optional[AudioClip],
        pasted_segments: Sequence[str] = (),
        *,
        post_process: Optional[bool] = None,
        segments_already_pasted: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> threading.Thread:
        """Run one pipeline for ``audio`` on a background thread."""
        pipeline = self.build_pipeline(
            audio,
            pasted_segments,
            post_process=post_process,
            segments_already_pasted=segments_already_pasted,
            cancel_event=cancel_event,
        )
        thread = threading.Thread(target=pipeline.run, name="transcription-pipeline", daemon=True)
        thread.start()
        return thread

    def shutdown(self) -> None:
        self._selector.shutdown()
        if self._owned_dispatcher is not None:
            self._owned_dispatcher.shutdown()

    def _engine_for(self, settings: Settings) -> SpeechEngine:
        if self._speech_engine is not None:
            return self._speech_engine
        return DashscopeSpeechEngine(
            api_key=settings.asr_api_key,
            model=settings.asr_model,
            language=settings.selected_language,
        )

    def _rewrite_for(self, settings: Settings) -> RewriteService:
        if self._rewrite_service is not None:
            return self._rewrite_service
        return DashscopeRewriteService(
            api_key=settings.post_process_api_key,
            model=settings.post_process_model,
        )
