"""Transcript rewrite service backed by a DashScope chat model."""

from __future__ import annotations

import logging
import os
from typing import Optional

from errors import AUTH_FAILED, REWRITE_FAILED, RewriteError, classify_sdk_error

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


class DashscopeRewriteService:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-plus",
        request_timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def rewrite(self, prompt: str, system_message: Optional[str]) -> Optional[str]:
        if dashscope is None:
            raise RewriteError("dashscope is not installed")

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise RewriteError("No API key configured", code=AUTH_FAILED)

        messages = []
        if system_message:
            messages.append({"role": "system", "content": system_message})
        messages.append({"role": "user", "content": prompt})

        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=messages,
                result_format="message",
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            code, retryable = classify_sdk_error(exc, REWRITE_FAILED)
            raise RewriteError(str(exc), code=code, retryable=retryable) from exc

        status = self._get(response, "status_code")
        if status is not None and status != 200:
            message = f"{status} {self._get(response, 'message') or ''}".strip()
            code, retryable = classify_sdk_error(Exception(message), REWRITE_FAILED)
            raise RewriteError(message, code=code, retryable=retryable)

        return self._extract_text(response)

    def _extract_text(self, response: object) -> Optional[str]:
        output = self._get(response, "output")
        choices = self._get(output, "choices") or []
        if not choices:
            return None
        message = self._get(choices[0], "message")
        content = self._get(message, "content")
        if not content:
            return None
        return str(content)

    @staticmethod
    def _get(obj: object, key: str) -> object:
        if obj is None:
            return None
        if isinstance(obj, dict):
            return obj.get(key)
        try:
            return obj[key]  # type: ignore[index]
        except (KeyError, TypeError, IndexError):
            return getattr(obj, key, None)
