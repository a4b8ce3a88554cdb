"""Rewrite request assembly and cleanup for the post-processing step."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from domain_selector import DomainSelector, effective_profile_ids
from errors import RewriteError
from interfaces import RewriteService
from jargon import build_profiles_map, dictionary_for_settings
from models import DomainContext
from settings import Settings

try:
    from opencc import OpenCC
except Exception:  # pragma: no cover
    OpenCC = None  # type: ignore

logger = logging.getLogger(__name__)

BASE_DICTATION_SYSTEM_MESSAGE = (
    "You are a dictation post-processor. Follow these rules strictly:\n"
    "1) Do not invent facts, events, names, owners, dates, or outcomes.\n"
    "2) Preserve the speaker's exact claims and intent.\n"
    "3) If a detail is uncertain or missing, keep it vague rather than guessing.\n"
    "4) Keep technical identifiers, code tokens, file paths, CLI flags, and URLs unchanged.\n"
    "5) Do not add extra explanation or commentary beyond the requested output format."
)

SEGMENT_ARTIFACT_MESSAGE = (
    "This text was transcribed from multiple independent audio chunks during live dictation. "
    "The speech recognition model processed each segment separately, which causes several "
    "artifacts you must fix: missing spaces between segments (words from adjacent segments may "
    "be concatenated together without a space), incorrect sentence-ending punctuation inserted "
    "mid-thought (periods, ellipses where the speaker was just pausing), incorrect capitalization "
    "at segment boundaries (words capitalized because they started a new segment, not a new "
    "sentence), ellipses or trailing punctuation where the speaker simply paused, and utterance "
    "completion artifacts (the model may have added filler words or tried to complete a sentence "
    "at a segment boundary). Remove these artifacts and produce natural, flowing text that "
    "reflects what the speaker actually said."
)

JARGON_INSTRUCTION = "IMPORTANT: Use these exact spellings for technical terms: "
AT_FILE_INSTRUCTION = (
    "IMPORTANT: Preserve any @file-style references exactly (for example @main.rs or @\"my file.ts\"). "
    "Do not expand, remove, or rewrite these references."
)

_LEAKED_JARGON = re.compile(
    r"\n?\s*IMPORTANT:\s*Use these exact spellings for technical terms:\s*.*?(?:\n\s*\n|$)",
    re.IGNORECASE | re.DOTALL,
)
_LEAKED_AT_FILE = re.compile(
    r"\n?\s*IMPORTANT:\s*Preserve any @file-style references exactly\s*"
    r"\(for example @main\.rs or @\"my file\.ts\"\)\.\s*"
    r"Do not expand, remove, or rewrite these references\.\s*",
    re.IGNORECASE | re.DOTALL,
)
_LEAKED_SEGMENT = re.compile(
    r"\n?\s*IMPORTANT:\s*This text was transcribed from multiple independent audio segments "
    r"split on silence\..*?Remove these artifacts and produce natural, flowing text that "
    r"reflects what the speaker actually said\.\s*",
    re.IGNORECASE | re.DOTALL,
)

_ZERO_WIDTH = dict.fromkeys(map(ord, "\u200b\u200c\u200d\ufeff"))


@dataclass
class RewriteOutcome:
    text: str
    prompt: str


def build_system_message(had_multiple_segments: bool) -> str:
    parts = [BASE_DICTATION_SYSTEM_MESSAGE]
    if had_multiple_segments:
        parts.append(SEGMENT_ARTIFACT_MESSAGE)
    return "\n\n".join(parts)


def build_user_prompt(template: str, transcript: str, terms: list[str], at_file_expansion: bool = False) -> str:
    prompt = template.replace("${output}", transcript)
    if terms:
        prompt = f"{prompt}\n\n{JARGON_INSTRUCTION}{', '.join(terms)}"
    if at_file_expansion:
        prompt = f"{prompt}\n\n{AT_FILE_INSTRUCTION}"
    return prompt


def strip_leaked_prompt_instructions(text: str) -> str:
    text = _LEAKED_JARGON.sub("\n", text)
    text = _LEAKED_AT_FILE.sub("\n", text)
    text = _LEAKED_SEGMENT.sub("\n", text)
    return text.strip()


def clean_rewrite_output(text: str) -> str:
    return strip_leaked_prompt_instructions(text.translate(_ZERO_WIDTH))


def convert_chinese_variant(settings: Settings, text: str) -> Optional[str]:
    """Convert between Chinese scripts for ``zh-Hans``/``zh-Hant``; ``None`` when skipped."""
    if settings.selected_language == "zh-Hans":
        config = "tw2sp"
    elif settings.selected_language == "zh-Hant":
        config = "s2twp"
    else:
        return None

    if OpenCC is None:
        logger.warning("opencc is not installed; skipping Chinese variant conversion")
        return None
    try:
        converted = OpenCC(config).convert(text)
    except Exception as exc:
        logger.warning("Chinese variant conversion failed, keeping original text: %s", exc)
        return None
    logger.debug("OpenCC %s conversion: %d -> %d chars", config, len(text), len(converted))
    return converted


def select_prompt_id(
    selector: Optional[DomainSelector],
    settings: Settings,
    transcript: str,
) -> Optional[str]:
    fallback = settings.post_process_selected_prompt_id
    if not settings.post_process_auto_prompt_selection or selector is None:
        return fallback
    picked = selector.select_post_process_prompt_with_timeout(
        settings,
        DomainContext(text=transcript),
        settings.post_process_prompts,
    )
    return picked or fallback


class PostProcessor:
    def __init__(self, rewrite_service: RewriteService, selector: Optional[DomainSelector] = None) -> None:
        self._rewrite_service = rewrite_service
        self._selector = selector

    def process(self, settings: Settings, transcript: str, had_multiple_segments: bool) -> Optional[RewriteOutcome]:
        """Rewrite ``transcript``; ``None`` means keep the text as it is."""
        prompt_id = select_prompt_id(self._selector, settings, transcript)
        prompt = settings.find_prompt(prompt_id)
        if prompt is None:
            logger.debug("Post-processing skipped because no prompt is selected (id=%r)", prompt_id)
            return None
        if not prompt.prompt.strip():
            logger.debug("Post-processing skipped because prompt %r is empty", prompt.id)
            return None

        terms: list[str] = []
        if settings.has_jargon():
            profiles = build_profiles_map(settings)
            profile_ids = effective_profile_ids(self._selector, settings, transcript, profiles)
            terms = dictionary_for_settings(settings, profile_ids, profiles).terms

        user_prompt = build_user_prompt(prompt.prompt, transcript, terms, settings.at_file_expansion_enabled)
        system_message = build_system_message(had_multiple_segments)
        logger.debug(
            "Rewrite request with prompt %r (had_segments=%s, %d chars)",
            prompt.id,
            had_multiple_segments,
            len(user_prompt),
        )

        try:
            content = self._rewrite_service.rewrite(user_prompt, system_message)
        except RewriteError as exc:
            logger.error("Post-processing failed (%s): %s. Keeping original transcription.", exc.code, exc.message)
            return None
        except Exception as exc:
            logger.error("Post-processing failed: %s. Keeping original transcription.", exc)
            return None

        if content is None:
            logger.error("Rewrite response has no content")
            return None

        cleaned = clean_rewrite_output(content)
        if not cleaned:
            logger.error("Rewrite response was empty after cleanup")
            return None
        logger.debug("Post-processing succeeded, output length %d chars", len(cleaned))
        return RewriteOutcome(text=cleaned, prompt=prompt.prompt)
