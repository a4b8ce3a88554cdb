"""Terminology dictionaries and protected-span-safe jargon corrections.

Profiles map spoken spellings of technical terms ("type script") to their
canonical forms ("TypeScript"). Corrections are applied word-bounded and
case-insensitively, but never inside protected spans: ``@file`` references,
backtick code, URLs, filesystem paths and CLI flags are masked with numbered
placeholders first and restored afterwards.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Mapping

if TYPE_CHECKING:
    from settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JargonCorrection:
    from_: str
    to: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.from_, "to": self.to}


@dataclass(frozen=True)
class JargonProfile:
    label: str
    terms: tuple[str, ...] = ()
    corrections: tuple[JargonCorrection, ...] = ()


@dataclass
class JargonSettings:
    enabled_profiles: list[str] = field(default_factory=list)
    custom_terms: list[str] = field(default_factory=list)
    custom_corrections: list[JargonCorrection] = field(default_factory=list)


@dataclass
class ActiveDictionary:
    terms: list[str] = field(default_factory=list)
    corrections: list[JargonCorrection] = field(default_factory=list)


def _profile(label: str, terms: Iterable[str], corrections: Iterable[tuple[str, str]]) -> JargonProfile:
    return JargonProfile(
        label=label,
        terms=tuple(terms),
        corrections=tuple(JargonCorrection(from_=src, to=dst) for src, dst in corrections),
    )


_BUILTIN_PROFILES: dict[str, JargonProfile] = {
    "web_dev": _profile(
        "Web Development",
        [
            "TypeScript", "JavaScript", "React", "Next.js", "Tailwind", "Webpack", "Vite",
            "GraphQL", "REST", "API", "JSON", "CORS", "OAuth", "JWT", "WebSocket", "SSR",
            "CSR", "SSG", "CDN", "DNS", "Vercel", "Netlify", "Supabase", "Prisma",
            "PostgreSQL", "MongoDB", "Redis", "Docker", "Kubernetes", "CI/CD", "GitHub",
            "npm", "pnpm", "Bun",
        ],
        [
            ("next js", "Next.js"),
            ("post gres", "PostgreSQL"),
            ("type script", "TypeScript"),
            ("java script", "JavaScript"),
            ("web socket", "WebSocket"),
            ("graph QL", "GraphQL"),
            ("tail wind", "Tailwind"),
            ("web pack", "Webpack"),
        ],
    ),
    "embedded": _profile(
        "Embedded Systems",
        [
            "UART", "SPI", "I2C", "GPIO", "RTOS", "JTAG", "FPGA", "ARM", "RISC-V", "STM32",
            "ESP32", "Arduino", "Raspberry Pi", "PWM", "ADC", "DAC", "DMA", "ISR", "HAL",
            "PCB", "VHDL", "Verilog", "GDB", "OpenOCD", "FreeRTOS", "Zephyr", "PlatformIO",
        ],
        [
            ("I two C", "I2C"),
            ("risk five", "RISC-V"),
            ("S T M 32", "STM32"),
            ("E S P 32", "ESP32"),
            ("you art", "UART"),
            ("G P I O", "GPIO"),
            ("jay tag", "JTAG"),
        ],
    ),
    "data_science": _profile(
        "Data Science & ML",
        [
            "TensorFlow", "PyTorch", "NumPy", "Pandas", "Scikit-learn", "Jupyter",
            "Matplotlib", "Keras", "CUDA", "GPU", "TPU", "CNN", "RNN", "LSTM", "GAN", "NLP",
            "BERT", "GPT", "LLM", "RAG", "Hugging Face", "MLflow", "Spark", "Hadoop",
        ],
        [
            ("tensor flow", "TensorFlow"),
            ("pie torch", "PyTorch"),
            ("num pie", "NumPy"),
            ("hugging face", "Hugging Face"),
            ("sick it learn", "Scikit-learn"),
            ("L L M", "LLM"),
        ],
    ),
    "devops": _profile(
        "DevOps & Cloud",
        [
            "Terraform", "Ansible", "Jenkins", "GitLab", "Prometheus", "Grafana", "Nginx",
            "Apache", "AWS", "GCP", "Azure", "S3", "EC2", "Lambda", "ECS", "EKS", "Helm",
            "Istio", "gRPC", "Kafka", "RabbitMQ", "Elasticsearch",
        ],
        [
            ("engine X", "Nginx"),
            ("terra form", "Terraform"),
            ("cube CTL", "kubectl"),
            ("G R P C", "gRPC"),
            ("E K S", "EKS"),
            ("E C S", "ECS"),
            ("E C two", "EC2"),
        ],
    ),
    "coding": _profile(
        "Coding",
        [
            "TypeScript", "JavaScript", "Rust", "Python", "Go", "SQL", "PostgreSQL", "Redis",
            "Docker", "Kubernetes", "Git", "GitHub", "Pull Request", "Code Review",
            "Refactor", "Lint", "CI/CD", "API", "gRPC", "GraphQL",
        ],
        [
            ("type script", "TypeScript"),
            ("java script", "JavaScript"),
            ("post gres", "PostgreSQL"),
            ("G R P C", "gRPC"),
            ("graph Q L", "GraphQL"),
            ("pull request", "Pull Request"),
        ],
    ),
    "business": _profile(
        "Business",
        [
            "Revenue", "Gross Margin", "Operating Expense", "Cash Flow", "Forecast",
            "Pipeline", "Conversion Rate", "Customer Retention", "Churn", "ARR", "MRR", "KPI",
            "OKR", "Roadmap", "Go-to-market", "ROI", "CAC", "LTV", "Stakeholder",
            "Quarterly Planning",
        ],
        [
            ("A R R", "ARR"),
            ("M R R", "MRR"),
            ("K P I", "KPI"),
            ("O K R", "OKR"),
            ("go to market", "Go-to-market"),
            ("R O I", "ROI"),
            ("C A C", "CAC"),
            ("L T V", "LTV"),
        ],
    ),
    "law_enforcement": _profile(
        "Law Enforcement",
        [
            "Probable Cause", "Miranda", "Warrant", "Search Warrant", "Arrest Warrant",
            "BOLO", "Dispatch", "Patrol", "Incident Report", "Evidence", "Chain of Custody",
            "Body Camera", "Use of Force", "De-escalation", "Detention", "Felony",
            "Misdemeanor", "Citation", "Perimeter", "Suspect",
        ],
        [
            ("B O L O", "BOLO"),
            ("miranda rights", "Miranda"),
            ("chain of custody", "Chain of Custody"),
            ("body cam", "Body Camera"),
            ("use of force", "Use of Force"),
            ("de escalation", "De-escalation"),
        ],
    ),
}


def builtin_profiles() -> dict[str, JargonProfile]:
    return dict(_BUILTIN_PROFILES)


def build_profiles_map(settings: "Settings") -> dict[str, JargonProfile]:
    """Built-in profiles overlaid with the user's packs (same id wins)."""
    profiles = builtin_profiles()
    for pack in settings.jargon_packs:
        profiles[pack.id] = JargonProfile(
            label=pack.label,
            terms=tuple(pack.terms),
            corrections=tuple(pack.corrections),
        )
    return profiles


def compute_active_dictionary(
    settings: JargonSettings,
    profiles: Mapping[str, JargonProfile],
) -> ActiveDictionary:
    profile_ids = sorted({pid for pid in settings.enabled_profiles if pid in profiles})

    # Custom terms first, then profiles in id order; the first casing seen wins.
    terms: list[str] = []
    seen: set[str] = set()
    candidates = list(settings.custom_terms)
    for profile_id in profile_ids:
        candidates.extend(profiles[profile_id].terms)
    for term in candidates:
        key = term.lower()
        if key in seen:
            continue
        seen.add(key)
        terms.append(term)

    by_source: dict[str, JargonCorrection] = {}
    for profile_id in profile_ids:
        for correction in profiles[profile_id].corrections:
            by_source[correction.from_.lower()] = correction
    for correction in settings.custom_corrections:
        by_source[correction.from_.lower()] = correction

    # Longest phrase first so "E C two" is never pre-empted by "E C".
    corrections = sorted(by_source.values(), key=lambda c: (-len(c.from_), c.from_))
    return ActiveDictionary(terms=terms, corrections=corrections)


INITIAL_PROMPT_PREFIX = "Technical dictation. Common terms: "
INITIAL_PROMPT_MAX_LEN = 1000


def build_initial_prompt(dictionary: ActiveDictionary) -> str:
    """Recognition context listing the dictionary terms, capped at 1000 chars."""
    if not dictionary.terms:
        return ""

    available = INITIAL_PROMPT_MAX_LEN - len(INITIAL_PROMPT_PREFIX) - 1
    parts: list[str] = []
    used = 0
    for term in dictionary.terms:
        addition = len(term) if not parts else len(term) + 2
        if used + addition > available:
            break
        parts.append(term)
        used += addition

    if not parts:
        return ""
    return INITIAL_PROMPT_PREFIX + ", ".join(parts) + "."


# ----------------------------------------------------------------------
# Protected span masking
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class SpanRule:
    name: str
    pattern: re.Pattern[str]


# Evaluated in this order at every position; the first rule that matches wins.
PROTECTED_SPAN_RULES: tuple[SpanRule, ...] = (
    SpanRule("at_reference", re.compile(r"@[\w\-./]+")),
    SpanRule("backtick_code", re.compile(r"`[^`]+`")),
    SpanRule("url", re.compile(r"https?://\S+")),
    SpanRule("path", re.compile(r"~/[\w\-.*/]+|/[\w\-]+(?:/[\w\-.*]+)+")),
    SpanRule("cli_flag", re.compile(r"(?<!\S)--?[\w\-]+=?(?:[\w\-./]+)?")),
)

_PLACEHOLDER = "⟦S{}⟧"


@dataclass(frozen=True)
class ProtectedSpan:
    placeholder: str
    original: str
    rule: str


def find_protected_spans(
    text: str,
    rules: tuple[SpanRule, ...] = PROTECTED_SPAN_RULES,
) -> list[tuple[int, int, str]]:
    """Non-overlapping ``(start, end, rule_name)`` spans, scanned left to right."""
    spans: list[tuple[int, int, str]] = []
    pos = 0
    while pos < len(text):
        for rule in rules:
            match = rule.pattern.match(text, pos)
            if match and match.end() > pos:
                spans.append((pos, match.end(), rule.name))
                pos = match.end()
                break
        else:
            pos += 1
    return spans


def mask_protected_spans(text: str) -> tuple[str, list[ProtectedSpan]]:
    pieces: list[str] = []
    spans: list[ProtectedSpan] = []
    cursor = 0
    for index, (start, end, rule) in enumerate(find_protected_spans(text)):
        placeholder = _PLACEHOLDER.format(index)
        pieces.append(text[cursor:start])
        pieces.append(placeholder)
        spans.append(ProtectedSpan(placeholder=placeholder, original=text[start:end], rule=rule))
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces), spans


def restore_protected_spans(text: str, spans: list[ProtectedSpan]) -> str:
    for span in spans:
        text = text.replace(span.placeholder, span.original)
    return text


def apply_corrections(text: str, corrections: Iterable[JargonCorrection]) -> str:
    corrections = list(corrections)
    if not corrections or not text:
        return text

    masked, spans = mask_protected_spans(text)

    for correction in corrections:
        if not correction.from_:
            continue
        pattern = re.compile(r"\b" + re.escape(correction.from_) + r"\b", re.IGNORECASE)
        replacement = correction.to
        masked = pattern.sub(lambda _match: replacement, masked)

    for span in spans:
        if masked.count(span.placeholder) != 1:
            logger.warning(
                "Placeholder %s was altered by a correction, returning original text",
                span.placeholder,
            )
            return text

    restored = restore_protected_spans(masked, spans)
    for span in spans:
        if span.placeholder in restored:
            logger.warning(
                "Placeholder %s was not properly restored, returning original text",
                span.placeholder,
            )
            return text
    return restored


def dictionary_for_settings(
    settings: "Settings",
    profile_ids: list[str],
    profiles: Mapping[str, JargonProfile],
) -> ActiveDictionary:
    jargon_settings = JargonSettings(
        enabled_profiles=list(profile_ids),
        custom_terms=list(settings.jargon_custom_terms),
        custom_corrections=list(settings.jargon_custom_corrections),
    )
    return compute_active_dictionary(jargon_settings, profiles)
