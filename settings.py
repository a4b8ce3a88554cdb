"""Application settings and a simple JSON-based settings store."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from jargon import JargonCorrection

logger = logging.getLogger(__name__)


class PasteMethod(str, Enum):
    CTRL_V = "ctrl_v"
    DIRECT = "direct"
    NONE = "none"
    SHIFT_INSERT = "shift_insert"
    CTRL_SHIFT_V = "ctrl_shift_v"


class ClipboardHandling(str, Enum):
    DONT_MODIFY = "dont_modify"
    COPY_TO_CLIPBOARD = "copy_to_clipboard"


class AutoSubmitKey(str, Enum):
    ENTER = "enter"
    CTRL_ENTER = "ctrl_enter"
    CMD_ENTER = "cmd_enter"


@dataclass
class LLMPrompt:
    id: str
    name: str
    prompt: str
    keywords: list[str] = field(default_factory=list)


@dataclass
class JargonPack:
    id: str
    label: str
    terms: list[str] = field(default_factory=list)
    corrections: list[JargonCorrection] = field(default_factory=list)


def _prompt(prompt_id: str, name: str, body: str) -> LLMPrompt:
    return LLMPrompt(id=prompt_id, name=name, prompt=body + "\n\nTranscript:\n${output}")


def builtin_post_process_prompts() -> list[LLMPrompt]:
    return [
        _prompt(
            "default_improve_transcriptions",
            "Improve Transcriptions",
            "Clean this transcript for readability while preserving meaning:\n"
            "1. Fix spelling, capitalization, punctuation, and spacing\n"
            "2. Convert spoken number words to digits when clear\n"
            "3. Remove obvious filler words and false starts only when confidence is high\n"
            "4. Keep technical terms and identifiers exact\n\n"
            "Return only the cleaned transcript text.",
        ),
        _prompt(
            "default_coding_assistant",
            "Coding Assistant",
            "Rewrite this transcript into an engineering update.\n\n"
            "Output format:\n## Summary\n- 2-4 factual bullets\n## Tasks\n- [ ] Task\n"
            "## Notes\n- Optional short bullets",
        ),
        _prompt(
            "default_slack_message",
            "Slack Message",
            "Convert this transcript into a concise Slack update.\n"
            "1. Keep it direct, friendly, and skimmable\n"
            "2. Preserve decisions, blockers, owners, and dates exactly\n"
            "3. Keep to 80-140 words unless source is shorter\n\n"
            "Return only the final Slack message body.",
        ),
        _prompt(
            "default_email_draft",
            "Email Draft",
            "Transform this transcript into a professional email draft.\n\n"
            "Output format:\nSubject: <clear subject>\n<body paragraphs>",
        ),
        _prompt(
            "default_document_writer",
            "Document Writer",
            "Turn this transcript into a structured document draft.\n\n"
            "Output format:\n# Title\n## Context\n## Details\n## Decisions\n## Next Steps",
        ),
        _prompt(
            "default_meeting_notes",
            "Meeting Notes",
            "Convert this transcript into clean meeting notes.\n\n"
            "Output format:\n## Summary\n- Bullet points\n## Decisions\n- Bullet points\n"
            "## Open Questions\n- Bullet points\n## Action Items\n"
            "- [ ] Owner - Task (Due: date or TBA)",
        ),
        _prompt(
            "default_action_items",
            "Action Items",
            "Extract only actionable tasks from this transcript.\n\n"
            "Output format:\n- [ ] Owner - Task (Due: date or TBA)\n\n"
            "Rules:\n- Use \"Unassigned\" when owner is unknown\n"
            "- Do not include non-actionable commentary",
        ),
        _prompt(
            "default_standup_update",
            "Standup Update",
            "Rewrite this transcript into a daily standup update.\n\n"
            "Output format:\nYesterday:\n- Bullet points\nToday:\n- Bullet points\n"
            "Blockers:\n- Bullet points or \"None\"\n\n"
            "Rules:\n- Max 3 bullets per section\n- Keep under 120 words when possible\n"
            "- Do not add details not present in source",
        ),
        _prompt(
            "default_pr_description",
            "PR Description",
            "Turn this transcript into a pull request description.\n\n"
            "Output format:\n## Summary\n## Changes\n## Testing\n## Reviewer Checklist",
        ),
        _prompt(
            "default_ticket_writer",
            "Jira Ticket",
            "Convert this transcript into a clear engineering ticket.\n\n"
            "Output format:\nTitle: <specific title>\nDescription:\nAcceptance Criteria:\n- ...",
        ),
        _prompt(
            "default_commit_message",
            "Commit Message",
            "Create a conventional commit message from this transcript.\n\n"
            "Rules:\n- Use one type: feat, fix, chore, refactor, docs, test\n"
            "- Keep subject <= 72 chars\n- Add body only if needed\n\n"
            "Return only the commit message.",
        ),
        _prompt(
            "default_release_notes",
            "Release Notes",
            "Rewrite this transcript into end-user release notes.\n\n"
            "Output format:\n## Added\n## Improved\n## Fixed",
        ),
        _prompt(
            "default_customer_support_reply",
            "Support Reply",
            "Turn this transcript into a customer support response.\n\n"
            "Rules:\n- Keep tone empathetic and concise\n- Clearly state next steps\n"
            "- Ask only necessary follow-up questions\n\nReturn only the final reply.",
        ),
        _prompt(
            "default_brain_dump_to_outline",
            "Brain Dump to Outline",
            "Organize this transcript into a structured outline.\n\n"
            "Output format:\n# Main Topic\n## Section\n- Bullet",
        ),
    ]


@dataclass
class Settings:
    log_level: str = "debug"
    selected_language: str = "auto"

    asr_api_key: str = ""
    asr_model: str = "qwen3-asr-flash"

    paste_method: PasteMethod = PasteMethod.CTRL_V
    paste_delay_ms: int = 60
    clipboard_handling: ClipboardHandling = ClipboardHandling.DONT_MODIFY
    append_trailing_space: bool = False
    auto_submit: bool = False
    auto_submit_key: AutoSubmitKey = AutoSubmitKey.ENTER

    post_process_enabled: bool = False
    post_process_auto_prompt_selection: bool = False
    post_process_api_key: str = ""
    post_process_model: str = "qwen-plus"
    post_process_prompts: list[LLMPrompt] = field(default_factory=builtin_post_process_prompts)
    post_process_selected_prompt_id: Optional[str] = None

    jargon_enabled_profiles: list[str] = field(default_factory=list)
    jargon_custom_terms: list[str] = field(default_factory=list)
    jargon_custom_corrections: list[JargonCorrection] = field(default_factory=list)
    jargon_packs: list[JargonPack] = field(default_factory=list)

    domain_selector_enabled: bool = False
    domain_selector_timeout_ms: int = 120
    domain_selector_top_k: int = 2
    domain_selector_min_score: float = 0.1
    domain_selector_hysteresis: float = 0.08
    domain_selector_blend_manual_profiles: bool = True

    custom_words: list[str] = field(default_factory=list)
    word_correction_threshold: float = 0.18

    at_file_expansion_enabled: bool = False
    recent_workspace_roots: list[str] = field(default_factory=list)

    def has_jargon(self) -> bool:
        return bool(
            self.jargon_enabled_profiles
            or self.jargon_custom_terms
            or self.jargon_custom_corrections
            or self.jargon_packs
        )

    def find_prompt(self, prompt_id: Optional[str]) -> Optional[LLMPrompt]:
        if prompt_id is None:
            return None
        for prompt in self.post_process_prompts:
            if prompt.id == prompt_id:
                return prompt
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        settings = cls()
        defaults = {f.name: getattr(settings, f.name) for f in fields(cls)}
        for name, default in defaults.items():
            if name not in data:
                continue
            try:
                value = _coerce(name, data[name], default)
            except (TypeError, ValueError, KeyError, AttributeError) as exc:
                logger.warning("Ignoring invalid setting %s=%r: %s", name, data[name], exc)
                continue
            setattr(settings, name, value)
        return settings

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


def _corrections(raw: Any) -> list[JargonCorrection]:
    return [JargonCorrection(from_=str(item["from"]), to=str(item["to"])) for item in raw]


def _coerce(name: str, raw: Any, default: Any) -> Any:
    if isinstance(default, Enum):
        return type(default)(raw)
    if name == "post_process_prompts":
        return [
            LLMPrompt(
                id=str(item["id"]),
                name=str(item["name"]),
                prompt=str(item["prompt"]),
                keywords=[str(k) for k in item.get("keywords", [])],
            )
            for item in raw
        ]
    if name == "jargon_custom_corrections":
        return _corrections(raw)
    if name == "jargon_packs":
        return [
            JargonPack(
                id=str(item["id"]),
                label=str(item.get("label", item["id"])),
                terms=[str(t) for t in item.get("terms", [])],
                corrections=_corrections(item.get("corrections", [])),
            )
            for item in raw
        ]
    if name == "post_process_selected_prompt_id":
        return None if raw is None else str(raw)
    if isinstance(default, bool):
        if not isinstance(raw, bool):
            raise TypeError("expected a boolean")
        return raw
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        if not isinstance(raw, list):
            raise TypeError("expected a list")
        return [str(item) for item in raw]
    return str(raw)


class JsonSettingsStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voicepaste" / "settings.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_settings(self) -> Settings:
        return Settings.from_dict(self._read_all())

    def save_settings(self, settings: Settings) -> None:
        data = settings.to_dict()
        data["jargon_custom_corrections"] = [c.to_dict() for c in settings.jargon_custom_corrections]
        data["jargon_packs"] = [
            {
                "id": pack.id,
                "label": pack.label,
                "terms": list(pack.terms),
                "corrections": [c.to_dict() for c in pack.corrections],
            }
            for pack in settings.jargon_packs
        ]
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
