from __future__ import annotations

import sys
from types import SimpleNamespace

import pytest

import text_injection
from settings import AutoSubmitKey, ClipboardHandling, PasteMethod, Settings
from text_injection import KeyboardTextInjector, should_send_auto_submit

FakeKey = SimpleNamespace(
    cmd="<cmd>",
    ctrl="<ctrl>",
    shift="<shift>",
    insert="<insert>",
    enter="<enter>",
    left="<left>",
    right="<right>",
    backspace="<backspace>",
)


class FakeController:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def press(self, key: str) -> None:
        self.events.append(("press", key))

    def release(self, key: str) -> None:
        self.events.append(("release", key))

    def type(self, text: str) -> None:
        self.events.append(("type", text))

    def pressed(self, key: str) -> int:
        return self.events.count(("press", key))


class FakeClipboard:
    def __init__(self, content: str = "previous") -> None:
        self.content = content
        self.copies: list[str] = []

    def copy(self, text: str) -> None:
        self.copies.append(text)
        self.content = text

    def paste(self) -> str:
        return self.content


class StaticSettings:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_settings(self) -> Settings:
        return self.settings


class FakeRangeSelector:
    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[int, int]] = []

    def select_range_before_cursor(self, delete_len: int, suffix_len: int) -> bool:
        self.calls.append((delete_len, suffix_len))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def keyboard(monkeypatch) -> FakeController:  # noqa: ANN001
    controller = FakeController()
    monkeypatch.setattr(text_injection, "Controller", lambda: controller)
    monkeypatch.setattr(text_injection, "Key", FakeKey)
    monkeypatch.setattr(text_injection.time, "sleep", lambda _s: None)
    return controller


@pytest.fixture
def clipboard(monkeypatch) -> FakeClipboard:  # noqa: ANN001
    fake = FakeClipboard()
    monkeypatch.setattr(text_injection, "pyperclip", fake)
    return fake


def _injector(range_selector=None, **overrides) -> KeyboardTextInjector:  # noqa: ANN001, ANN003
    return KeyboardTextInjector(StaticSettings(Settings(**overrides)), range_selector=range_selector)


def test_returns_failure_when_dependencies_missing(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(text_injection, "pyperclip", None)
    monkeypatch.setattr(text_injection, "Controller", None)
    monkeypatch.setattr(text_injection, "Key", None)

    result = _injector().paste("hello")

    assert result.success is False
    assert result.reason == "clipboard/keyboard dependency missing"


def test_clipboard_paste_restores_previous_content(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    result = _injector().paste("hello")

    modifier = FakeKey.cmd if sys.platform == "darwin" else FakeKey.ctrl
    assert result.success is True
    assert clipboard.copies == ["hello", "previous"]
    assert keyboard.events == [("press", modifier), ("press", "v"), ("release", "v"), ("release", modifier)]


def test_paste_applies_trailing_space_and_submit(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    injector = _injector(
        paste_method=PasteMethod.DIRECT,
        append_trailing_space=True,
        auto_submit=True,
        auto_submit_key=AutoSubmitKey.CTRL_ENTER,
    )

    assert injector.paste("hello").success is True
    assert keyboard.events == [
        ("type", "hello "),
        ("press", FakeKey.ctrl),
        ("press", FakeKey.enter),
        ("release", FakeKey.enter),
        ("release", FakeKey.ctrl),
    ]
    assert clipboard.copies == []


def test_copy_to_clipboard_keeps_text(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    injector = _injector(paste_method=PasteMethod.DIRECT, clipboard_handling=ClipboardHandling.COPY_TO_CLIPBOARD)

    injector.paste("hello")

    assert clipboard.content == "hello"


def test_method_none_inserts_nothing(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    injector = _injector(paste_method=PasteMethod.NONE, auto_submit=True)

    assert injector.paste("hello").success is True
    assert injector.replace_range(3, 1, "x").reason == "skipped"
    assert keyboard.events == []
    assert clipboard.copies == []


def test_shift_insert_paste(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    _injector(paste_method=PasteMethod.SHIFT_INSERT).paste_without_trailing_policy("hi")

    assert keyboard.events[:2] == [("press", FakeKey.shift), ("press", FakeKey.insert)]


def test_replace_range_falls_back_to_keys(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    injector = _injector(range_selector=FakeRangeSelector(result=False), paste_method=PasteMethod.DIRECT)

    assert injector.replace_range(22, 1, "S").success is True
    assert keyboard.pressed(FakeKey.left) == 22
    assert keyboard.pressed(FakeKey.backspace) == 1
    assert ("type", "S") in keyboard.events
    assert keyboard.pressed(FakeKey.right) == 22


def test_replace_range_uses_selection_when_available(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    selector = FakeRangeSelector(result=True)
    injector = _injector(range_selector=selector, paste_method=PasteMethod.DIRECT)

    injector.replace_range(4, 2, "")

    assert selector.calls == [(2, 4)]
    assert keyboard.pressed(FakeKey.left) == 0
    assert keyboard.pressed(FakeKey.backspace) == 1
    assert keyboard.pressed(FakeKey.right) == 4


def test_replace_range_selector_error_falls_back(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    selector = FakeRangeSelector(error=RuntimeError("no accessibility"))
    injector = _injector(range_selector=selector, paste_method=PasteMethod.DIRECT)

    assert injector.replace_range(0, 3, "abc").success is True
    assert keyboard.pressed(FakeKey.backspace) == 3


def test_trailing_policy(keyboard: FakeController, clipboard: FakeClipboard) -> None:
    injector = _injector(paste_method=PasteMethod.DIRECT, append_trailing_space=True, auto_submit=True)

    assert injector.apply_trailing_policy("done").success is True
    assert keyboard.events == [("type", " "), ("press", FakeKey.enter), ("release", FakeKey.enter)]


def test_keyboard_error_is_reported(monkeypatch, clipboard: FakeClipboard) -> None:  # noqa: ANN001
    class BrokenController(FakeController):
        def type(self, text: str) -> None:
            raise OSError("no focused window")

    monkeypatch.setattr(text_injection, "Controller", BrokenController)
    monkeypatch.setattr(text_injection, "Key", FakeKey)

    result = _injector(paste_method=PasteMethod.DIRECT).paste("hello")

    assert result.success is False
    assert result.reason == "NO_ACTIVE_TARGET: no focused window"


def test_should_send_auto_submit() -> None:
    assert should_send_auto_submit(True, PasteMethod.CTRL_V) is True
    assert should_send_auto_submit(True, PasteMethod.NONE) is False
    assert should_send_auto_submit(False, PasteMethod.DIRECT) is False
