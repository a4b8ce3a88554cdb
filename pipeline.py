"""State-machine orchestration of one recording from audio to on-screen text.

A pipeline is built per recording and run once:

    Stopped -> RawTextVisible | Done -> PostProcessed | Done -> Done

Each transition takes the live state out of the pipeline (leaving ``Done``
in its place) and returns the next one, so a superseded state is never read
again. Text injection calls are marshalled through the dispatcher and the
pipeline waits for them before moving on.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Sequence

from at_file_expansion import maybe_expand_at_refs
from errors import INJECTION_FAILED, NO_ACTIVE_TARGET, TRANSCRIPTION_FAILED, CodedError
from interfaces import HistoryStore, MainThreadDispatcher, TextInjector
from models import (
    AudioClip,
    Done,
    InjectionResult,
    PipelineStage,
    PipelineState,
    PostProcessed,
    RawTextVisible,
    Stopped,
)
from post_process import PostProcessor, convert_chinese_variant
from settings import Settings
from text_diff import compute_text_diff
from transcript_filter import normalize_segment_text, should_insert_boundary_space
from transcription import TranscriptionService

logger = logging.getLogger(__name__)

StateCallback = Callable[[PipelineStage, PipelineStage], None]
ErrorCallback = Callable[[str, str], None]
FinishedCallback = Callable[[], None]


def build_raw_text(pasted_segments: Sequence[str], remaining: str) -> str:
    """Text the user would see: live segments plus the normalized final chunk."""
    if not pasted_segments:
        return remaining
    joined = "".join(pasted_segments)
    cleaned = normalize_segment_text(remaining) if remaining else remaining
    if not cleaned:
        return joined
    if should_insert_boundary_space(joined, cleaned):
        return f"{joined} {cleaned}"
    return f"{joined}{cleaned}"


class TranscriptionPipeline:
    def __init__(
        self,
        audio: Optional[AudioClip],
        pasted_segments: Sequence[str],
        settings: Settings,
        post_process: bool,
        *,
        transcriber: TranscriptionService,
        post_processor: Optional[PostProcessor],
        injector: TextInjector,
        dispatcher: MainThreadDispatcher,
        history: Optional[HistoryStore] = None,
        cancel_event: Optional[threading.Event] = None,
        segments_already_pasted: bool = False,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_finished: Optional[FinishedCallback] = None,
    ) -> None:
        self._settings = settings
        self._post_process = post_process
        self._transcriber = transcriber
        self._post_processor = post_processor
        self._injector = injector
        self._dispatcher = dispatcher
        self._history = history
        self._cancel_event = cancel_event
        self._segments_already_pasted = segments_already_pasted
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._on_finished = on_finished

        self._lock = threading.RLock()
        self._started = False
        self._audio_for_history = audio
        self._stage = PipelineStage.STOPPED
        self._state: PipelineState = Stopped(audio=audio, pasted_segments=tuple(pasted_segments))

    @property
    def stage(self) -> PipelineStage:
        return self._stage

    def run(self) -> None:
        """Drive the pipeline to ``Done``. Later calls are no-ops."""
        with self._lock:
            if self._started:
                return
            self._started = True

        try:
            if self._cancel_event is not None and self._cancel_event.is_set():
                logger.info("Pipeline cancelled before transcription, skipping")
                self._take_state()
                self._transition(PipelineStage.DONE)
                return

            while True:
                state = self._state
                if isinstance(state, Stopped):
                    next_state = self._transcribe_and_paste()
                elif isinstance(state, RawTextVisible):
                    next_state = self._post_process_text() if self._post_process else self._finalize()
                elif isinstance(state, PostProcessed):
                    next_state = self._apply_diff_and_finalize()
                else:
                    break
                self._state = next_state
                self._transition(next_state.stage)
        finally:
            if self._on_finished:
                self._on_finished()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transcribe_and_paste(self) -> PipelineState:
        """Stopped -> RawTextVisible | Done"""
        state = self._take_state()
        assert isinstance(state, Stopped)

        started = time.monotonic()
        try:
            remaining = self._transcriber.transcribe(state.audio)
        except CodedError as exc:
            self._fail(exc.code, exc.message)
            return Done()
        except Exception as exc:
            self._fail(TRANSCRIPTION_FAILED, str(exc))
            return Done()

        segments = state.pasted_segments
        transcription = "".join(segments) + remaining
        logger.debug("Transcription completed in %.0fms: %r", (time.monotonic() - started) * 1000, transcription)

        if not transcription.strip():
            return Done()

        if self._post_process:
            raw_text = build_raw_text(segments, remaining)
            was_already_pasted = False
            if segments and self._segments_already_pasted:
                # Segments are on screen; type the rest raw so the diff path can fix it up.
                tail = raw_text[len("".join(segments)) :]
                if tail:
                    results = self._inject("paste remaining", lambda: [self._injector.paste_without_trailing_policy(tail)])
                    was_already_pasted = all(r.success for r in results)
                else:
                    was_already_pasted = True
            return RawTextVisible(
                raw_text=raw_text,
                had_multiple_segments=bool(segments),
                was_already_pasted=was_already_pasted,
            )

        if segments and self._segments_already_pasted:
            text = remaining
        else:
            text = transcription
        if text:
            text = maybe_expand_at_refs(text, self._settings)
            self._inject("paste", lambda: [self._injector.paste(text)])
        self._save_history(transcription, None, None)
        return Done()

    def _post_process_text(self) -> PipelineState:
        """RawTextVisible -> PostProcessed"""
        state = self._take_state()
        assert isinstance(state, RawTextVisible)

        raw_text = state.raw_text
        final_text = raw_text
        post_processed_text: Optional[str] = None
        prompt_used: Optional[str] = None

        converted = convert_chinese_variant(self._settings, raw_text)
        if converted is not None:
            final_text = converted

        logger.info(
            "Starting post-processing on text (%d chars, had_segments=%s)",
            len(final_text),
            state.had_multiple_segments,
        )
        outcome = None
        if self._post_processor is not None:
            outcome = self._post_processor.process(self._settings, final_text, state.had_multiple_segments)

        if outcome is not None:
            post_processed_text = outcome.text
            final_text = outcome.text
            prompt_used = outcome.prompt
        elif final_text != raw_text:
            post_processed_text = final_text

        self._save_history(raw_text, post_processed_text, prompt_used)
        final_text = maybe_expand_at_refs(final_text, self._settings)

        return PostProcessed(
            raw_text=raw_text,
            final_text=final_text,
            was_already_pasted=state.was_already_pasted,
        )

    def _apply_diff_and_finalize(self) -> PipelineState:
        """PostProcessed -> Done"""
        state = self._take_state()
        assert isinstance(state, PostProcessed)

        raw_text = state.raw_text
        final_text = state.final_text
        injector = self._injector

        if not state.was_already_pasted:

            def paste_final() -> list[InjectionResult]:
                results = []
                if final_text:
                    results.append(injector.paste_without_trailing_policy(final_text))
                results.append(injector.apply_trailing_policy(final_text))
                return results

            self._inject("final paste", paste_final)
            return Done()

        diff = compute_text_diff(raw_text, final_text)
        if diff is None:
            logger.info("Text unchanged after processing, no replacement needed")
            self._inject("trailing policy", lambda: [injector.apply_trailing_policy(final_text)])
            return Done()

        logger.debug(
            "Applying diff: delete %d chars, insert %d chars, suffix %d chars",
            diff.delete_len,
            len(diff.insert),
            diff.suffix_len,
        )

        def replace() -> list[InjectionResult]:
            return [
                injector.replace_range(diff.suffix_len, diff.delete_len, diff.insert),
                injector.apply_trailing_policy(final_text),
            ]

        self._inject("diff apply", replace)
        return Done()

    def _finalize(self) -> PipelineState:
        self._take_state()
        return Done()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _take_state(self) -> PipelineState:
        state, self._state = self._state, Done()
        return state

    def _inject(self, label: str, action: Callable[[], list[InjectionResult]]) -> list[InjectionResult]:
        started = time.monotonic()
        try:
            results = self._dispatcher.run_sync(action)
        except Exception as exc:
            logger.error("Text injection (%s) could not be dispatched: %s", label, exc)
            self._emit_error(INJECTION_FAILED, str(exc))
            return [InjectionResult(success=False, reason=str(exc))]

        for result in results:
            if not result.success:
                logger.error("Text injection (%s) failed: %s", label, result.reason)
                self._emit_error(NO_ACTIVE_TARGET, result.reason)
        logger.debug("Text injection (%s) finished in %.0fms", label, (time.monotonic() - started) * 1000)
        return results

    def _save_history(self, raw_text: str, final_text: Optional[str], prompt_used: Optional[str]) -> None:
        if self._history is None:
            return
        try:
            self._history.save(self._audio_for_history, raw_text, final_text, prompt_used)
        except Exception as exc:
            logger.error("Failed to save transcription to history: %s", exc)

    def _fail(self, code: str, message: str) -> None:
        logger.error("Transcription failed (%s): %s", code, message)
        self._transition(PipelineStage.FAILED)
        self._emit_error(code, message)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_stage: PipelineStage) -> None:
        from_stage = self._stage
        if from_stage == to_stage:
            return
        self._stage = to_stage
        if self._on_state_change:
            self._on_state_change(from_stage, to_stage)
