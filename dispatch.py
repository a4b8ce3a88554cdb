"""Run callables on one designated thread and wait for the result.

OS text injection must happen on the thread that owns the UI automation
APIs. ``ThreadDispatcher`` provides such a thread for headless use;
``QtMainThreadDispatcher`` targets the Qt GUI thread of the desktop app.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from queue import Queue
from typing import Any, Callable, Optional, TypeVar

try:
    from PySide6.QtCore import QObject, QThread, Qt, Signal
except Exception:  # pragma: no cover
    QObject = None  # type: ignore
    QThread = None  # type: ignore
    Qt = None  # type: ignore
    Signal = None  # type: ignore

T = TypeVar("T")

_Job = Optional[tuple[Callable[[], Any], Future]]


class ThreadDispatcher:
    def __init__(self, name: str = "text-injection") -> None:
        self._queue: Queue[_Job] = Queue()
        self._closed = False
        self._thread = threading.Thread(target=self._worker, name=name, daemon=True)
        self._thread.start()

    def run_sync(self, fn: Callable[[], T]) -> T:
        if threading.current_thread() is self._thread:
            return fn()
        if self._closed:
            raise RuntimeError("dispatcher is shut down")
        future: Future = Future()
        self._queue.put((fn, future))
        return future.result()

    def shutdown(self, timeout: float = 1.0) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put(None)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=timeout)

    def _worker(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:  # Sentinel
                return
            fn, future = job
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(fn())
            except BaseException as exc:
                future.set_exception(exc)


_invoker_class = None


def _qt_invoker_class():  # noqa: ANN202
    global _invoker_class
    if _invoker_class is None:

        class _Invoker(QObject):
            invoke = Signal(object)

            def __init__(self) -> None:
                super().__init__()
                self.invoke.connect(self._run, Qt.BlockingQueuedConnection)

            def _run(self, job: Callable[[], None]) -> None:
                job()

        _invoker_class = _Invoker
    return _invoker_class


class QtMainThreadDispatcher:
    """Marshal calls onto the Qt GUI thread with a blocking queued signal.

    Must be constructed on the GUI thread, after the QApplication exists.
    """

    def __init__(self) -> None:
        if QObject is None:
            raise RuntimeError("PySide6 is required for QtMainThreadDispatcher")
        self._invoker = _qt_invoker_class()()

    def run_sync(self, fn: Callable[[], T]) -> T:
        if QThread.currentThread() == self._invoker.thread():
            return fn()

        future: Future = Future()

        def job() -> None:
            try:
                future.set_result(fn())
            except BaseException as exc:
                future.set_exception(exc)

        self._invoker.invoke.emit(job)
        return future.result()
