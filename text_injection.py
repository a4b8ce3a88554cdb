"""Keyboard and clipboard based text injection into the focused application."""

from __future__ import annotations

import logging
import sys
import time
from typing import Optional

from errors import NO_ACTIVE_TARGET
from interfaces import RangeSelector, SettingsProvider
from models import InjectionResult
from settings import AutoSubmitKey, ClipboardHandling, PasteMethod, Settings

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)

CLIPBOARD_RESTORE_DELAY_S = 0.05
KEY_SETTLE_DELAY_S = 0.03
SUBMIT_DELAY_S = 0.05


def should_send_auto_submit(auto_submit: bool, paste_method: PasteMethod) -> bool:
    return auto_submit and paste_method != PasteMethod.NONE


class KeyboardTextInjector:
    """Types or pastes text at the cursor using pynput and pyperclip.

    Every call reads fresh settings, so changes to the paste method or the
    trailing-space policy apply to the next injection.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        range_selector: Optional[RangeSelector] = None,
    ) -> None:
        self._settings_provider = settings_provider
        self._range_selector = range_selector
        self._keyboard = None

    # ------------------------------------------------------------------
    # TextInjector protocol
    # ------------------------------------------------------------------

    def paste(self, text: str) -> InjectionResult:
        settings = self._settings_provider.get_settings()
        if settings.append_trailing_space:
            text = f"{text} "
        return self._guarded(lambda: self._paste_with_policy(text, settings))

    def paste_without_trailing_policy(self, text: str) -> InjectionResult:
        settings = self._settings_provider.get_settings()
        return self._guarded(lambda: self._insert(text, settings))

    def replace_range(self, suffix_len: int, delete_len: int, insert_text: str) -> InjectionResult:
        settings = self._settings_provider.get_settings()
        if settings.paste_method == PasteMethod.NONE:
            logger.info("replace_range: paste method is none, skipping")
            return InjectionResult(success=True, reason="skipped")
        return self._guarded(lambda: self._replace_range(suffix_len, delete_len, insert_text, settings))

    def apply_trailing_policy(self, text: str) -> InjectionResult:
        settings = self._settings_provider.get_settings()
        return self._guarded(lambda: self._trailing_policy(text, settings))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _guarded(self, action) -> InjectionResult:  # noqa: ANN001
        if pyperclip is None or Controller is None or Key is None:
            return InjectionResult(success=False, reason="clipboard/keyboard dependency missing")
        try:
            action()
        except Exception as exc:
            logger.error("Text injection failed: %s", exc)
            return InjectionResult(success=False, reason=f"{NO_ACTIVE_TARGET}: {exc}")
        return InjectionResult(success=True)

    def _controller(self):  # noqa: ANN202
        if self._keyboard is None:
            self._keyboard = Controller()
        return self._keyboard

    def _paste_with_policy(self, text: str, settings: Settings) -> None:
        self._insert(text, settings)
        if should_send_auto_submit(settings.auto_submit, settings.paste_method):
            time.sleep(SUBMIT_DELAY_S)
            self._send_submit(settings.auto_submit_key)
        if settings.clipboard_handling == ClipboardHandling.COPY_TO_CLIPBOARD:
            pyperclip.copy(text)

    def _trailing_policy(self, text: str, settings: Settings) -> None:
        if settings.append_trailing_space:
            self._insert(" ", settings)
        if should_send_auto_submit(settings.auto_submit, settings.paste_method):
            time.sleep(SUBMIT_DELAY_S)
            self._send_submit(settings.auto_submit_key)
        if settings.clipboard_handling == ClipboardHandling.COPY_TO_CLIPBOARD and text:
            pyperclip.copy(text)

    def _insert(self, text: str, settings: Settings) -> None:
        method = settings.paste_method
        if method == PasteMethod.NONE:
            logger.info("Paste method is none, skipping insert of %d chars", len(text))
            return
        if not text:
            return
        if method == PasteMethod.DIRECT:
            self._controller().type(text)
            return
        self._paste_via_clipboard(text, method, settings.paste_delay_ms)

    def _paste_via_clipboard(self, text: str, method: PasteMethod, paste_delay_ms: int) -> None:
        old_clip: Optional[str] = None
        try:
            old_clip = pyperclip.paste()
        except Exception as exc:
            logger.debug("Could not read clipboard before paste: %s", exc)

        try:
            pyperclip.copy(text)
            time.sleep(max(paste_delay_ms, 0) / 1000.0)
            self._chord(*self._paste_keys(method))
            time.sleep(CLIPBOARD_RESTORE_DELAY_S)
        finally:
            if old_clip is not None:
                pyperclip.copy(old_clip)

    def _paste_keys(self, method: PasteMethod) -> tuple:
        modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
        if method == PasteMethod.CTRL_V:
            return (modifier, "v")
        if method == PasteMethod.CTRL_SHIFT_V:
            return (modifier, Key.shift, "v")
        if method == PasteMethod.SHIFT_INSERT:
            insert_key = getattr(Key, "insert", None)
            if insert_key is None:
                raise RuntimeError("Insert key is not available on this platform")
            return (Key.shift, insert_key)
        raise ValueError(f"Invalid paste method for clipboard paste: {method}")

    def _replace_range(self, suffix_len: int, delete_len: int, insert_text: str, settings: Settings) -> None:
        logger.debug("replace_range: suffix=%d, delete=%d, insert=%d chars", suffix_len, delete_len, len(insert_text))

        used_selection = False
        if self._range_selector is not None:
            try:
                used_selection = self._range_selector.select_range_before_cursor(delete_len, suffix_len)
            except Exception as exc:
                logger.info("Range selection unavailable, falling back to key-based replace: %s", exc)
                used_selection = False

        if not used_selection:
            if suffix_len > 0:
                self._repeat(Key.left, suffix_len)
                time.sleep(KEY_SETTLE_DELAY_S)
            if delete_len > 0:
                self._repeat(Key.backspace, delete_len)
                time.sleep(KEY_SETTLE_DELAY_S)

        if insert_text:
            self._insert(insert_text, settings)
            time.sleep(KEY_SETTLE_DELAY_S)
        elif delete_len > 0 and used_selection:
            # The selected range is still highlighted; clear it.
            self._repeat(Key.backspace, 1)
            time.sleep(KEY_SETTLE_DELAY_S)

        if suffix_len > 0:
            self._repeat(Key.right, suffix_len)

    def _send_submit(self, key: AutoSubmitKey) -> None:
        if key == AutoSubmitKey.CTRL_ENTER:
            self._chord(Key.ctrl, Key.enter)
        elif key == AutoSubmitKey.CMD_ENTER:
            self._chord(Key.cmd, Key.enter)
        else:
            self._chord(Key.enter)

    def _repeat(self, key, count: int) -> None:  # noqa: ANN001
        keyboard = self._controller()
        for _ in range(count):
            keyboard.press(key)
            keyboard.release(key)

    def _chord(self, *keys) -> None:  # noqa: ANN002
        keyboard = self._controller()
        for key in keys:
            keyboard.press(key)
        for key in reversed(keys):
            keyboard.release(key)
