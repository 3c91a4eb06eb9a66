from __future__ import annotations
import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class UiDispatcher:
    """The single queue that owns overlay state.

    Either ``start()`` it to get a dedicated UI thread, or call
    ``run_pending()`` from a host loop that already is the UI thread.
    """

    def __init__(self, name: str = "UiThread"):
        self._name = name
        self._q: "queue.SimpleQueue[Any]" = queue.SimpleQueue()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        t = self._thread
        if not t:
            return
        self._q.put(_STOP)
        if t is not threading.current_thread():
            t.join(timeout=timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def is_ui_thread(self) -> bool:
        t = self._thread
        if t is None:
            return True
        return threading.get_ident() == t.ident

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        """Fire and forget."""
        self._q.put((fn, args, None))

    def call(self, fn: Callable[..., Any], *args: Any, timeout: float = 2.0) -> Any:
        """Run ``fn`` on the UI thread and wait for its result."""
        if not self.running or self.is_ui_thread():
            return fn(*args)
        fut: Future = Future()
        self._q.put((fn, args, fut))
        return fut.result(timeout=timeout)

    def run_pending(self) -> int:
        """Drain queued callbacks on the calling thread; returns how many ran."""
        n = 0
        while True:
            try:
                item = self._q.get_nowait()
            except queue.Empty:
                return n
            if item is _STOP:
                continue
            self._run_item(item)
            n += 1

    def _run_item(self, item):
        fn, args, fut = item
        try:
            result = fn(*args)
        except Exception as e:
            if fut is not None:
                fut.set_exception(e)
            else:
                logger.exception("[%s] callback %r failed", self._name, fn)
            return
        if fut is not None:
            fut.set_result(result)

    def _loop(self):
        while True:
            item = self._q.get()
            if item is _STOP:
                break
            self._run_item(item)
