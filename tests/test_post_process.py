from __future__ import annotations

from typing import Optional

import post_process
from errors import RewriteError
from post_process import (
    AT_FILE_INSTRUCTION,
    BASE_DICTATION_SYSTEM_MESSAGE,
    SEGMENT_ARTIFACT_MESSAGE,
    PostProcessor,
    build_system_message,
    build_user_prompt,
    clean_rewrite_output,
    convert_chinese_variant,
    select_prompt_id,
)
from settings import LLMPrompt, Settings


class FakeRewriteService:
    def __init__(self, reply: Optional[str] = "Cleaned text.", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, Optional[str]]] = []

    def rewrite(self, prompt: str, system_message: Optional[str]) -> Optional[str]:
        self.calls.append((prompt, system_message))
        if self.error is not None:
            raise self.error
        return self.reply


class FakeSelector:
    def __init__(self, prompt_id: Optional[str]) -> None:
        self.prompt_id = prompt_id

    def select_post_process_prompt_with_timeout(self, settings, context, prompts):  # noqa: ANN001, ANN201
        return self.prompt_id

    def select_profiles_with_timeout(self, settings, context, profiles):  # noqa: ANN001, ANN201
        return None


def _settings(**overrides) -> Settings:  # noqa: ANN003
    values = {
        "post_process_enabled": True,
        "post_process_prompts": [
            LLMPrompt(id="fix", name="Fix", prompt="Fix this:\n${output}"),
            LLMPrompt(id="blank", name="Blank", prompt="   "),
        ],
        "post_process_selected_prompt_id": "fix",
    }
    values.update(overrides)
    return Settings(**values)


def test_system_message_adds_segment_rules_only_for_segments() -> None:
    assert build_system_message(False) == BASE_DICTATION_SYSTEM_MESSAGE
    assert build_system_message(True) == f"{BASE_DICTATION_SYSTEM_MESSAGE}\n\n{SEGMENT_ARTIFACT_MESSAGE}"


def test_user_prompt_substitutes_transcript_and_terms() -> None:
    prompt = build_user_prompt("Clean: ${output}", "hello there", ["Rust", "Tauri"])
    assert prompt == "Clean: hello there\n\nIMPORTANT: Use these exact spellings for technical terms: Rust, Tauri"
    assert build_user_prompt("Clean: ${output}", "hi", []) == "Clean: hi"


def test_user_prompt_asks_to_keep_file_references() -> None:
    prompt = build_user_prompt("Clean: ${output}", "open @auth.ts", ["Rust"], at_file_expansion=True)
    assert prompt.startswith("Clean: open @auth.ts\n\nIMPORTANT: Use these exact spellings for technical terms: Rust\n\n")
    assert prompt.endswith("Do not expand, remove, or rewrite these references.")
    assert clean_rewrite_output("Done.\n\n" + AT_FILE_INSTRUCTION) == "Done."


def test_clean_output_strips_leaks_and_zero_width() -> None:
    leaked = "Hello\u200b world.\n\nIMPORTANT: Use these exact spellings for technical terms: Rust, Tauri"
    assert clean_rewrite_output(leaked) == "Hello world."

    at_file = (
        "Open the file.\nIMPORTANT: Preserve any @file-style references exactly "
        "(for example @main.rs or @\"my file.ts\"). Do not expand, remove, or rewrite these references."
    )
    assert clean_rewrite_output(at_file) == "Open the file."


def test_select_prompt_prefers_auto_pick() -> None:
    settings = _settings(post_process_auto_prompt_selection=True)
    assert select_prompt_id(FakeSelector("blank"), settings, "text") == "blank"
    assert select_prompt_id(FakeSelector(None), settings, "text") == "fix"
    assert select_prompt_id(None, settings, "text") == "fix"


def test_select_prompt_without_auto_selection_uses_fallback() -> None:
    assert select_prompt_id(FakeSelector("blank"), _settings(), "text") == "fix"


def test_process_returns_cleaned_rewrite() -> None:
    service = FakeRewriteService(reply="  I was thinking about this.\ufeff ")
    processor = PostProcessor(service)

    outcome = processor.process(_settings(), "i was thinking about this", had_multiple_segments=True)

    assert outcome is not None
    assert outcome.text == "I was thinking about this."
    assert outcome.prompt == "Fix this:\n${output}"
    prompt, system = service.calls[0]
    assert prompt == "Fix this:\ni was thinking about this"
    assert system is not None and SEGMENT_ARTIFACT_MESSAGE in system


def test_process_injects_jargon_terms() -> None:
    service = FakeRewriteService()
    processor = PostProcessor(service)
    settings = _settings(jargon_custom_terms=["Spittle", "Tauri"])

    processor.process(settings, "spittle on tauri", had_multiple_segments=False)

    assert service.calls[0][0].endswith("IMPORTANT: Use these exact spellings for technical terms: Spittle, Tauri")


def test_process_adds_file_reference_rule_when_enabled() -> None:
    service = FakeRewriteService()
    PostProcessor(service).process(_settings(at_file_expansion_enabled=True), "open @auth.ts", False)

    assert service.calls[0][0] == f"Fix this:\nopen @auth.ts\n\n{AT_FILE_INSTRUCTION}"


def test_process_skips_missing_or_empty_prompt() -> None:
    service = FakeRewriteService()
    processor = PostProcessor(service)

    assert processor.process(_settings(post_process_selected_prompt_id=None), "text", False) is None
    assert processor.process(_settings(post_process_selected_prompt_id="nope"), "text", False) is None
    assert processor.process(_settings(post_process_selected_prompt_id="blank"), "text", False) is None
    assert service.calls == []


def test_process_failures_fall_back() -> None:
    assert PostProcessor(FakeRewriteService(error=RewriteError("boom"))).process(_settings(), "t", False) is None
    assert PostProcessor(FakeRewriteService(error=RuntimeError("boom"))).process(_settings(), "t", False) is None
    assert PostProcessor(FakeRewriteService(reply=None)).process(_settings(), "t", False) is None
    assert PostProcessor(FakeRewriteService(reply=" \u200b ")).process(_settings(), "t", False) is None


class FakeOpenCC:
    configs: list[str] = []

    def __init__(self, config: str) -> None:
        self.configs.append(config)

    def convert(self, text: str) -> str:
        return f"<{text}>"


def test_chinese_conversion_by_language(monkeypatch) -> None:  # noqa: ANN001
    FakeOpenCC.configs = []
    monkeypatch.setattr(post_process, "OpenCC", FakeOpenCC)

    assert convert_chinese_variant(Settings(selected_language="zh-Hans"), "x") == "<x>"
    assert convert_chinese_variant(Settings(selected_language="zh-Hant"), "y") == "<y>"
    assert convert_chinese_variant(Settings(selected_language="en"), "z") is None
    assert FakeOpenCC.configs == ["tw2sp", "s2twp"]


def test_chinese_conversion_skipped_without_opencc(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(post_process, "OpenCC", None)
    assert convert_chinese_variant(Settings(selected_language="zh-Hans"), "x") is None


def test_chinese_conversion_failure_is_skipped(monkeypatch) -> None:  # noqa: ANN001
    def broken(config: str):  # noqa: ANN202
        raise RuntimeError("missing dictionary")

    monkeypatch.setattr(post_process, "OpenCC", broken)
    assert convert_chinese_variant(Settings(selected_language="zh-Hant"), "x") is None
