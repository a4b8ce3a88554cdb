"""Cleanup of raw speech-engine output, custom-word snapping and segment joining helpers."""

from __future__ import annotations

import re

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

FILLER_WORDS = (
    "uh", "um", "uhm", "umm", "uhh", "uhhh", "ah", "eh",
    "hmm", "hm", "mmm", "mm", "mh", "ha", "ehh",
)

_FILLER_PATTERNS = [re.compile(rf"\b{word}\b[,.]?", re.IGNORECASE) for word in FILLER_WORDS]
_MULTI_SPACE = re.compile(r"\s{2,}")
_WHITESPACE_RUN = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.;:!?])")

HALLUCINATION_PHRASES = (
    "thank you for watching",
    "thanks for watching",
    "thank you for listening",
    "thanks for listening",
    "please subscribe",
    "like and subscribe",
    "see you next time",
    "see you in the next video",
    "bye bye",
    "bye",
    "thank you",
    "thanks",
    "subtitles by",
    "you",
)

_HALLUCINATION_PATTERNS = (
    re.compile(
        r"^(for more information[,.]?\s*)?(visit|go to)\s+\S+(\s+(or\s+)?(visit|go to)\s+\S+)*"
        r"(\s+for more information)?[.,]?\s*$",
        re.IGNORECASE,
    ),
    re.compile(r"^for more information[,.]?\s*(visit|go to)\s+\S+[.,]?\s*$", re.IGNORECASE),
    re.compile(r"^subtitles\s+(by|provided by|created by)\s+.*$", re.IGNORECASE),
)

_OPENING = set("([{\"'")
_CLOSING_PUNCT = set(".,;:!?)]}")


def _collapse_stutters(text: str) -> str:
    """Collapse 3+ consecutive repeats of a 1-2 letter word into one."""
    words = text.split()
    if not words:
        return text

    out: list[str] = []
    i = 0
    while i < len(words):
        word = words[i]
        lower = word.lower()
        if len(word) <= 2 and word.isalpha():
            j = i + 1
            while j < len(words) and words[j].lower() == lower:
                j += 1
            if j - i >= 3:
                out.append(word)
                i = j
                continue
        out.append(word)
        i += 1
    return " ".join(out)


def _normalize_for_match(text: str) -> str:
    kept = "".join(ch for ch in text if ch.isalnum() or ch.isspace())
    return " ".join(kept.lower().split())


def is_hallucination(text: str) -> bool:
    stripped = text.strip()
    if not stripped:
        return False
    if _normalize_for_match(stripped) in HALLUCINATION_PHRASES:
        return True
    return any(pattern.match(stripped) for pattern in _HALLUCINATION_PATTERNS)


def filter_transcription_output(text: str) -> str:
    """Strip fillers and stutters; drop output that is a known hallucination.

    >>> filter_transcription_output("So um I was thinking uh about this")
    'So I was thinking about this'
    """
    filtered = text
    for pattern in _FILLER_PATTERNS:
        filtered = pattern.sub("", filtered)

    filtered = _collapse_stutters(filtered)
    filtered = _MULTI_SPACE.sub(" ", filtered).strip()

    if is_hallucination(filtered):
        return ""
    return filtered


def normalize_segment_text(text: str) -> str:
    """Collapse whitespace and drop spaces in front of closing punctuation."""
    collapsed = _WHITESPACE_RUN.sub(" ", text).strip()
    return _SPACE_BEFORE_PUNCT.sub(r"\1", collapsed)


def should_insert_boundary_space(left: str, right: str) -> bool:
    if not left or not right:
        return False
    last = left[-1]
    first = right[0]
    if last.isspace() or last in _OPENING:
        return False
    if first.isspace() or first in _CLOSING_PUNCT:
        return False
    return True



MAX_NGRAM_WORDS = 3
MAX_CANDIDATE_LEN = 50
PHONETIC_WEIGHT = 0.3

_SOUNDEX_CODES = {
    ch: digit
    for letters, digit in (
        ("bfpv", "1"),
        ("cgjkqsxz", "2"),
        ("dt", "3"),
        ("l", "4"),
        ("mn", "5"),
        ("r", "6"),
    )
    for ch in letters
}


def _soundex(word: str) -> str:
    letters = [ch for ch in word.lower() if "a" <= ch <= "z"]
    if not letters:
        return ""
    code = letters[0].upper()
    previous = _SOUNDEX_CODES.get(letters[0], "")
    for ch in letters[1:]:
        digit = _SOUNDEX_CODES.get(ch, "")
        if digit and digit != previous:
            code += digit
            if len(code) == 4:
                break
        # h and w do not separate equal codes
        if ch not in "hw":
            previous = digit
    return code.ljust(4, "0")


def _strip_non_alnum(word: str) -> str:
    start, end = 0, len(word)
    while start < end and not word[start].isalnum():
        start += 1
    while end > start and not word[end - 1].isalnum():
        end -= 1
    return word[start:end]


def _build_ngram(words: list[str]) -> str:
    return "".join(_strip_non_alnum(word).lower() for word in words)


def extract_punctuation(word: str) -> tuple[str, str]:
    """Split leading and trailing punctuation off ``word``.

    >>> extract_punctuation("...hello?")
    ('...', '?')
    """
    core = _strip_non_alnum(word)
    if not core:
        return word, ""
    start = word.index(core)
    return word[:start], word[start + len(core):]


def preserve_case_pattern(original: str, replacement: str) -> str:
    letters = [ch for ch in original if ch.isalpha()]
    if letters and all(ch.isupper() for ch in letters):
        return replacement.upper()
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def _find_best_match(candidate: str, custom_words: list[str], squashed: list[str], threshold: float) -> str | None:
    if not candidate or len(candidate) > MAX_CANDIDATE_LEN:
        return None

    # Phonetic matches are discounted, so anything within threshold / weight may still qualify.
    cutoff = min(1.0, threshold / PHONETIC_WEIGHT)
    matches = process.extract(
        candidate,
        squashed,
        scorer=Levenshtein.normalized_distance,
        score_cutoff=cutoff,
        limit=None,
    )

    best: str | None = None
    best_score = float("inf")
    candidate_code = _soundex(candidate)
    for _, distance, index in sorted(matches, key=lambda match: match[2]):
        target = squashed[index]
        longest = max(len(candidate), len(target))
        if abs(len(candidate) - len(target)) > max(longest * 0.25, 2.0):
            continue
        score = distance
        if candidate_code and candidate_code == _soundex(target):
            score = distance * PHONETIC_WEIGHT
        if score < threshold and score < best_score:
            best = custom_words[index]
            best_score = score
    return best


def apply_custom_words(text: str, custom_words: list[str], threshold: float) -> str:
    """Replace words and short word runs that sound or look like a custom word.

    Runs of up to three words are tried longest first, so "Charge B" can become
    "ChargeBee". Lower thresholds are stricter; 0 accepts nothing.
    """
    if not custom_words:
        return text

    squashed = [word.lower().replace(" ", "") for word in custom_words]
    words = text.split()
    out: list[str] = []
    i = 0
    while i < len(words):
        for n in range(MAX_NGRAM_WORDS, 0, -1):
            if i + n > len(words):
                continue
            run = words[i:i + n]
            replacement = _find_best_match(_build_ngram(run), custom_words, squashed, threshold)
            if replacement is None:
                continue
            prefix, _ = extract_punctuation(run[0])
            _, suffix = extract_punctuation(run[-1])
            out.append(prefix + preserve_case_pattern(run[0], replacement) + suffix)
            i += n
            break
        else:
            out.append(words[i])
            i += 1
    return " ".join(out)
