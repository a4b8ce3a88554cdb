"""Resolve ``@file`` references in dictated text against the current workspace.

Typed forms (``@auth.ts``, ``@"my file.ts"``) and spoken forms ("include file
src slash main dot rs") are both recognised. A reference that matches exactly
one file in the workspace is replaced by that file's absolute ``@path``;
unknown or ambiguous references are left as they were spoken.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rapidfuzz.distance import DamerauLevenshtein, Levenshtein

from settings import Settings

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({".git", "node_modules", "dist", "build", "target", ".next", "__pycache__", ".venv"})
MAX_DEPTH = 10
MAX_ENTRIES = 50_000
INDEX_TTL_S = 5.0

_AT_TOKEN = re.compile(r'@([a-zA-Z0-9_\-./]+)|@"([^"]+)"')
_SPOKEN_COMMAND = re.compile(r"\b(at|include|reference|for|file)\s+(?:file\s+)?([^\n,;:!?]+)", re.IGNORECASE)
_SPOKEN_SEPARATORS = (
    (" dot ", "."),
    (" slash ", "/"),
    (" backslash ", "/"),
    (" underscore ", "_"),
    (" hyphen ", "-"),
    (" dash ", "-"),
)
# Recognisers split short extensions into letters: "trade. r s" -> "trade.rs".
_SPLIT_EXTENSIONS = [
    (re.compile(r"\.\s*r\s*s\b", re.IGNORECASE), ".rs"),
    (re.compile(r"\.\s*t\s*s\b", re.IGNORECASE), ".ts"),
    (re.compile(r"\.\s*j\s*s\b", re.IGNORECASE), ".js"),
    (re.compile(r"\.\s*p\s*y\b", re.IGNORECASE), ".py"),
    (re.compile(r"\.\s*g\s*o\b", re.IGNORECASE), ".go"),
    (re.compile(r"\.\s*m\s*d\b", re.IGNORECASE), ".md"),
    (re.compile(r"\.\s*j\s*s\s*x\b", re.IGNORECASE), ".jsx"),
    (re.compile(r"\.\s*t\s*s\s*x\b", re.IGNORECASE), ".tsx"),
]
_TRAILING_AFTER_EXTENSION = re.compile(r"(.+?\.[a-z0-9]{1,10})(?:\s+.*)?", re.IGNORECASE)
_BARE_ALIAS = re.compile(r"[A-Za-z0-9_-]+")
_TRAILING_PUNCT = ".,;:!?)]}"

_index_lock = threading.Lock()
_index_cache: dict[Path, tuple[float, list[Path]]] = {}


@dataclass(frozen=True)
class AtToken:
    token: str
    start: int
    end: int


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def normalize_token(raw: str, spoken: bool = False) -> str:
    text = raw.strip()
    if spoken:
        for phrase, replacement in _SPOKEN_SEPARATORS:
            text = text.replace(phrase, replacement)
        for pattern, replacement in _SPLIT_EXTENSIONS:
            text = pattern.sub(replacement, text)
        match = _TRAILING_AFTER_EXTENSION.fullmatch(text)
        if match:
            text = match.group(1)
    text = text.strip().strip("\"'`").strip()
    return text.rstrip(_TRAILING_PUNCT)


def _looks_file_like_speech(raw: str) -> bool:
    lower = raw.lower()
    return any(marker in lower for marker in (" dot ", ".", " slash ", " backslash ", "/"))


def _is_file_like(token: str) -> bool:
    return "/" in token or "." in token


def parse_at_tokens(text: str) -> list[AtToken]:
    """Find typed ``@`` references and spoken file aliases in ``text``."""
    tokens: list[AtToken] = []

    for match in _AT_TOKEN.finditer(text):
        start = match.start()
        if start > 0:
            previous = text[start - 1]
            # name@example.com
            if (previous.isascii() and previous.isalnum()) or previous == "_":
                continue
        if match.group(1) is not None:
            value = normalize_token(match.group(1))
            end = match.start(1) + len(match.group(1).rstrip(_TRAILING_PUNCT))
        else:
            value = match.group(2).strip()
            end = match.end()
        if value:
            tokens.append(AtToken(value, start, end))

    for match in _SPOKEN_COMMAND.finditer(text):
        trigger = match.group(1).lower()
        raw = match.group(2).strip()
        if "@" in raw:
            continue
        if trigger == "for" and not _looks_file_like_speech(raw):
            continue
        value = normalize_token(raw, spoken=True)
        if value and (_is_file_like(value) or _BARE_ALIAS.fullmatch(value)):
            tokens.append(AtToken(value, match.start(), match.end()))

    return tokens


# ----------------------------------------------------------------------
# Matching
# ----------------------------------------------------------------------

def normalize_to_words(text: str) -> list[str]:
    """Split on ``_ - . space`` and camelCase boundaries, lowercased.

    >>> normalize_to_words("authService_v2.test")
    ['auth', 'service', 'v2', 'test']
    """
    words: list[str] = []
    current = ""
    for ch in text:
        if ch in "_- .":
            if current:
                words.append(current.lower())
                current = ""
        elif ch.isupper() and current and current[-1].islower():
            words.append(current.lower())
            current = ch
        else:
            current += ch
    if current:
        words.append(current.lower())
    return words


def words_close_enough(token: str, candidate: str) -> bool:
    t, c = token.lower(), candidate.lower()
    if t == c or DamerauLevenshtein.distance(t, c) <= 1:
        return True
    distance = Levenshtein.distance(t, c)
    return distance <= 1 or (distance == 2 and max(len(t), len(c)) >= 6)


def fuzzy_basename_match(token: str, filename: str) -> bool:
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    token_words = normalize_to_words(token)
    stem_words = normalize_to_words(stem)
    if not token_words or len(token_words) != len(stem_words):
        return False
    return all(words_close_enough(t, s) for t, s in zip(token_words, stem_words))


def extension_matches(token_ext: str, file_ext: str) -> bool:
    if not file_ext:
        return False
    if file_ext.lower() == token_ext.lower():
        return True
    # rs/ts/js are one edit apart; short extensions must match exactly
    if len(token_ext) < 3 or len(file_ext) < 3:
        return False
    distance = Levenshtein.distance(token_ext.lower(), file_ext.lower())
    return distance <= 1 or (distance == 2 and abs(len(token_ext) - len(file_ext)) <= 1)


def _split_extension(name: str) -> tuple[str, Optional[str]]:
    stem, dot, ext = name.rpartition(".")
    if dot and " " not in ext and len(ext) <= 10:
        return stem, ext
    return name, None


def fuzzy_path_match(token: str, workspace_root: Path, candidate: Path) -> bool:
    try:
        parts = candidate.relative_to(workspace_root).parts
    except ValueError:
        return False

    token_parts = [part for part in token.split("/") if part]
    if not token_parts or len(token_parts) != len(parts):
        return False

    for token_dir, candidate_dir in zip(token_parts[:-1], parts[:-1]):
        if not fuzzy_basename_match(token_dir, candidate_dir):
            return False

    candidate_file = parts[-1]
    if "." in candidate_file:
        candidate_stem, candidate_ext = candidate_file.rsplit(".", 1)
    else:
        candidate_stem, candidate_ext = candidate_file, ""
    token_stem, token_ext = _split_extension(token_parts[-1])
    if token_ext is not None and not extension_matches(token_ext, candidate_ext):
        return False
    return fuzzy_basename_match(token_stem, candidate_stem)


def resolve_token(token: str, workspace_root: Path, entries: list[Path]) -> Optional[Path]:
    """Return the single file ``token`` refers to, or ``None`` for 0 or 2+ matches."""
    if "/" in token:
        target = workspace_root / token
        exact = [entry for entry in entries if entry == target]
    else:
        exact = [entry for entry in entries if entry.name == token]
    if len(exact) == 1:
        return exact[0]

    if "/" in token:
        matches = [entry for entry in entries if fuzzy_path_match(token, workspace_root, entry)]
        return matches[0] if len(matches) == 1 else None

    name, ext = _split_extension(token)
    matches = [
        entry
        for entry in entries
        if (ext is None or extension_matches(ext, entry.suffix[1:])) and fuzzy_basename_match(name, entry.name)
    ]
    return matches[0] if len(matches) == 1 else None


# ----------------------------------------------------------------------
# Workspace index
# ----------------------------------------------------------------------

def walk_workspace(root: Path) -> list[Path]:
    """Files under ``root`` up to ``MAX_DEPTH`` deep, skipping build and VCS dirs."""
    entries: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)
        if depth + 1 < MAX_DEPTH:
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        else:
            dirnames[:] = []
        for name in sorted(filenames):
            entries.append(current / name)
            if len(entries) >= MAX_ENTRIES:
                return entries
    return entries


def workspace_entries(root: Path) -> list[Path]:
    with _index_lock:
        cached = _index_cache.get(root)
        if cached is not None and time.monotonic() - cached[0] <= INDEX_TTL_S:
            return cached[1]

    entries = walk_workspace(root)
    with _index_lock:
        _index_cache[root] = (time.monotonic(), entries)
    return entries


# ----------------------------------------------------------------------
# Expansion
# ----------------------------------------------------------------------

def format_resolved_at_path(path: Path) -> str:
    text = str(path)
    return f'@"{text}"' if " " in text else f"@{text}"


def expand_at_refs(text: str, workspace_root: Path) -> str:
    tokens = parse_at_tokens(text)
    if not tokens:
        return text

    entries = workspace_entries(workspace_root)
    logger.debug("Resolving %d @file tokens against %s (%d files)", len(tokens), workspace_root, len(entries))

    replacements: list[tuple[int, int, str]] = []
    for token in tokens:
        path = resolve_token(token.token, workspace_root, entries)
        if path is None:
            logger.debug("Could not uniquely resolve @%s", token.token)
            continue
        replacements.append((token.start, token.end, format_resolved_at_path(path)))

    result = text
    floor = len(text)
    for start, end, replacement in sorted(replacements, key=lambda r: r[0], reverse=True):
        if end > floor:
            continue
        result = result[:start] + replacement + result[end:]
        floor = start
    return result


def is_git_repository(start: Path) -> bool:
    return any((directory / ".git").exists() for directory in (start, *start.parents))


def find_workspace_root(settings: Settings) -> Optional[Path]:
    for raw in settings.recent_workspace_roots:
        candidate = Path(raw).expanduser()
        if candidate.is_dir():
            return candidate.resolve()
    try:
        cwd = Path.cwd()
    except OSError:
        return None
    return cwd if cwd.is_dir() else None


def maybe_expand_at_refs(text: str, settings: Settings) -> str:
    """Expand references when enabled and the workspace is inside a git repository."""
    if not settings.at_file_expansion_enabled or not text:
        return text

    root = find_workspace_root(settings)
    if root is None:
        logger.debug("@file expansion enabled but no workspace root was found")
        return text
    if not is_git_repository(root):
        logger.debug("@file expansion skipped: %s is not inside a git repository", root)
        return text
    return expand_at_refs(text, root)
