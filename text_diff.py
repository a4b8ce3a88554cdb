"""Minimal prefix/suffix bounded edit between two text snapshots."""

from __future__ import annotations

from typing import Optional

from models import TextDiff


def compute_text_diff(original: str, processed: str) -> Optional[TextDiff]:
    """Return the single contiguous edit turning ``original`` into ``processed``.

    Common prefix and suffix are skipped; the suffix is bounded so the two
    never overlap. Returns ``None`` when both strings are equal.
    """
    if original == processed:
        return None

    shortest = min(len(original), len(processed))

    prefix = 0
    while prefix < shortest and original[prefix] == processed[prefix]:
        prefix += 1

    suffix = 0
    max_suffix = shortest - prefix
    while suffix < max_suffix and original[-1 - suffix] == processed[-1 - suffix]:
        suffix += 1

    return TextDiff(
        suffix_len=suffix,
        delete_len=len(original) - prefix - suffix,
        insert=processed[prefix : len(processed) - suffix],
    )


def apply_text_diff(original: str, diff: Optional[TextDiff]) -> str:
    """Apply ``diff`` to ``original`` the way the injector applies it on screen."""
    if diff is None:
        return original
    end = len(original) - diff.suffix_len
    start = end - diff.delete_len
    if start < 0 or end > len(original):
        raise ValueError(f"diff does not fit text of length {len(original)}: {diff}")
    return original[:start] + diff.insert + original[end:]
