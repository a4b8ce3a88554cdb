"""Protocol interfaces for the collaborators the pipeline depends on."""

from __future__ import annotations

from typing import Callable, Optional, Protocol, TypeVar

from models import AudioClip, InjectionResult
from settings import Settings

T = TypeVar("T")


class SpeechEngine(Protocol):
    def transcribe(self, audio: AudioClip, initial_prompt: Optional[str] = None) -> str: ...


class RewriteService(Protocol):
    def rewrite(self, prompt: str, system_message: Optional[str]) -> Optional[str]: ...


class TextInjector(Protocol):
    def paste(self, text: str) -> InjectionResult: ...

    def paste_without_trailing_policy(self, text: str) -> InjectionResult: ...

    def replace_range(self, suffix_len: int, delete_len: int, insert_text: str) -> InjectionResult: ...

    def apply_trailing_policy(self, text: str) -> InjectionResult: ...


class RangeSelector(Protocol):
    def select_range_before_cursor(self, delete_len: int, suffix_len: int) -> bool: ...


class HistoryStore(Protocol):
    def save(
        self,
        audio: Optional[AudioClip],
        raw_text: str,
        final_text: Optional[str],
        prompt_used: Optional[str],
    ) -> None: ...


class SettingsProvider(Protocol):
    def get_settings(self) -> Settings: ...


class MainThreadDispatcher(Protocol):
    def run_sync(self, fn: Callable[[], T]) -> T: ...
