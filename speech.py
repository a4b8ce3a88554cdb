"""Speech engine adapter using DashScope qwen3-asr-flash.

The model takes a complete clip as a base64 WAV data URI and streams back
progressively longer transcripts via ``stream=True``; the last non-empty
chunk is the result. Recognition context (the jargon term list) rides in
the system message, which the model uses as a biasing prompt.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import wave
from typing import Optional

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, TranscriptionError, classify_sdk_error
from models import AudioClip

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


def pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def clip_from_float_samples(samples, sample_rate: int = 16000) -> AudioClip:  # noqa: ANN001
    """Build an ``AudioClip`` from mono float samples in [-1, 1]."""
    if np is None:
        raise RuntimeError("numpy is not installed")
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    pcm = (np.clip(data, -1.0, 1.0) * 32767.0).astype("<i2").tobytes()
    return AudioClip(pcm16_bytes=pcm, sample_rate=sample_rate, channels=1)


class DashscopeSpeechEngine:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
        language: Optional[str] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._language = language

    def transcribe(self, audio: AudioClip, initial_prompt: Optional[str] = None) -> str:
        if audio.is_empty():
            return ""
        if dashscope is None:
            raise TranscriptionError("dashscope is not installed", code=ASR_PROTOCOL_ERROR)

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise TranscriptionError("No API key configured", code=AUTH_FAILED)

        wav_b64 = pcm_to_wav_base64(audio.pcm16_bytes, audio.sample_rate, audio.channels)
        asr_options: dict = {"enable_itn": False}
        if self._language and self._language != "auto":
            asr_options["language"] = self._language.split("-")[0]

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": initial_prompt or ""}]},
                    {"role": "user", "content": [{"audio": f"data:audio/wav;base64,{wav_b64}"}]},
                ],
                result_format="message",
                asr_options=asr_options,
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest_text = ""
            for chunk in response:
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
        except Exception as exc:
            raise self._to_error(exc) from exc

        logger.debug("ASR returned %d chars", len(latest_text))
        return latest_text

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output", {})
            choices = output.get("choices", [])
            if not choices:
                return ""
            message = choices[0].get("message", {})
            content = message.get("content", [])
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""

    def _to_error(self, exc: Exception) -> TranscriptionError:
        code, retryable = classify_sdk_error(exc, ASR_PROTOCOL_ERROR)
        return TranscriptionError(str(exc), code=code, retryable=retryable)
