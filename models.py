"""Core data models for the dictation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class PipelineStage(str, Enum):
    STOPPED = "STOPPED"
    RAW_TEXT_VISIBLE = "RAW_TEXT_VISIBLE"
    POST_PROCESSED = "POST_PROCESSED"
    FAILED = "FAILED"
    DONE = "DONE"


@dataclass
class AudioClip:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1

    def is_empty(self) -> bool:
        return not self.pcm16_bytes


# ----------------------------------------------------------------------
# Pipeline state variants. Exactly one is live inside a pipeline; each
# transition receives the old variant and returns a new one.
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Stopped:
    """Recording just stopped: audio plus any segments emitted while recording."""

    audio: Optional[AudioClip]
    pasted_segments: tuple[str, ...] = ()

    stage = PipelineStage.STOPPED


@dataclass(frozen=True)
class RawTextVisible:
    raw_text: str
    had_multiple_segments: bool
    was_already_pasted: bool

    stage = PipelineStage.RAW_TEXT_VISIBLE


@dataclass(frozen=True)
class PostProcessed:
    raw_text: str
    final_text: str
    was_already_pasted: bool

    stage = PipelineStage.POST_PROCESSED


@dataclass(frozen=True)
class Done:
    stage = PipelineStage.DONE


PipelineState = Union[Stopped, RawTextVisible, PostProcessed, Done]


@dataclass(frozen=True)
class TextDiff:
    """Minimal edit turning already-visible text into its corrected form.

    Applied from the end of the visible text: skip ``suffix_len`` unchanged
    characters, remove ``delete_len`` characters before them, then insert
    ``insert`` at that point.
    """

    suffix_len: int
    delete_len: int
    insert: str


@dataclass
class InjectionResult:
    success: bool
    reason: str = "ok"


@dataclass(frozen=True)
class RankedCandidate:
    id: str
    score: float


@dataclass
class SelectionMemory:
    last_id: Optional[str] = None
    last_score: float = 0.0

    def remember(self, candidate: RankedCandidate) -> None:
        self.last_id = candidate.id
        self.last_score = candidate.score

    def snapshot(self) -> Optional[RankedCandidate]:
        if self.last_id is None:
            return None
        return RankedCandidate(id=self.last_id, score=self.last_score)


@dataclass
class DomainContext:
    text: str
