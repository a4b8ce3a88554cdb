from __future__ import annotations

from typing import Optional

import pytest

from errors import AUTH_FAILED, NETWORK_ERROR, TranscriptionError
from models import AudioClip
from settings import Settings
from transcription import TranscriptionService

AUDIO = AudioClip(pcm16_bytes=b"\x01\x00" * 160)


class FakeSpeechEngine:
    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[AudioClip, Optional[str]]] = []

    def transcribe(self, audio: AudioClip, initial_prompt: Optional[str] = None) -> str:
        self.calls.append((audio, initial_prompt))
        if self.error is not None:
            raise self.error
        return self.text


class StaticSettings:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_settings(self) -> Settings:
        return self.settings


def test_empty_audio_skips_engine() -> None:
    engine = FakeSpeechEngine(text="hello")
    service = TranscriptionService(engine, StaticSettings(Settings()))

    assert service.transcribe(None) == ""
    assert service.transcribe(AudioClip(pcm16_bytes=b"")) == ""
    assert engine.calls == []


def test_output_is_filtered_without_jargon() -> None:
    engine = FakeSpeechEngine(text="so um I was thinking uh about this")
    service = TranscriptionService(engine, StaticSettings(Settings()))

    assert service.transcribe(AUDIO) == "so I was thinking about this"
    assert engine.calls == [(AUDIO, None)]


def test_jargon_corrections_and_initial_prompt() -> None:
    settings = Settings(jargon_enabled_profiles=["web_dev"])
    engine = FakeSpeechEngine(text="deploy the next js app, see @next_js.md")
    service = TranscriptionService(engine, StaticSettings(settings))

    assert service.transcribe(AUDIO) == "deploy the Next.js app, see @next_js.md"
    prompt = engine.calls[0][1]
    assert prompt is not None
    assert prompt.startswith("Technical dictation. Common terms: TypeScript, JavaScript")


def test_hallucination_returns_empty() -> None:
    engine = FakeSpeechEngine(text="Thank you for watching.")
    service = TranscriptionService(engine, StaticSettings(Settings()))
    assert service.transcribe(AUDIO) == ""


def test_transcription_error_propagates() -> None:
    engine = FakeSpeechEngine(error=TranscriptionError("bad key", code=AUTH_FAILED))
    service = TranscriptionService(engine, StaticSettings(Settings()))

    with pytest.raises(TranscriptionError) as info:
        service.transcribe(AUDIO)
    assert info.value.code == AUTH_FAILED


def test_unexpected_engine_error_is_wrapped() -> None:
    engine = FakeSpeechEngine(error=ConnectionError("connection reset"))
    service = TranscriptionService(engine, StaticSettings(Settings()))

    with pytest.raises(TranscriptionError) as info:
        service.transcribe(AUDIO)
    assert info.value.code == NETWORK_ERROR
    assert info.value.retryable is True


def test_custom_words_applied_before_filter() -> None:
    settings = Settings(custom_words=["ChargeBee"])
    engine = FakeSpeechEngine(text="um we pay with Charge B.")
    service = TranscriptionService(engine, StaticSettings(settings))

    assert service.transcribe(AUDIO) == "we pay with ChargeBee."


def test_custom_words_threshold_from_settings() -> None:
    settings = Settings(custom_words=["Vercel"], word_correction_threshold=0.1)
    service = TranscriptionService(FakeSpeechEngine(text="deploy to fercel now"), StaticSettings(settings))

    assert service.transcribe(AUDIO) == "deploy to fercel now"
