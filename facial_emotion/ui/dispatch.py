import queue
import threading
from typing import Any, Callable


class DispatcherClosed(RuntimeError):
    pass


class _Call:
    def __init__(self, fn: Callable[..., Any], args: tuple):
        self.fn = fn
        self.args = args
        self.done = threading.Event()
        self.result: Any = None
        self.error: BaseException | None = None


class UiDispatcher:
    """Runs callables on the thread that owns the window.

    Worker threads call call_sync(); the UI loop calls process_pending() once
    per iteration. call_sync() blocks until the UI thread has run the call.
    """

    def __init__(self, poll_interval: float = 0.1):
        self._q: queue.Queue[_Call] = queue.Queue()
        self._closed = threading.Event()
        self._poll_interval = poll_interval
        self._owner = threading.get_ident()

    def bind_to_current_thread(self) -> None:
        self._owner = threading.get_ident()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def call_sync(self, fn: Callable[..., Any], *args: Any) -> Any:
        if self._closed.is_set():
            raise DispatcherClosed("UI dispatcher is closed")

        # Already on the UI thread: queueing would deadlock.
        if threading.get_ident() == self._owner:
            return fn(*args)

        call = _Call(fn, args)
        self._q.put(call)

        while not call.done.wait(self._poll_interval):
            if self._closed.is_set():
                raise DispatcherClosed("UI dispatcher closed before the call ran")

        if call.error is not None:
            raise call.error
        return call.result

    def process_pending(self) -> int:
        """Run every queued call in FIFO order. Returns how many ran."""
        ran = 0
        while True:
            try:
                call = self._q.get_nowait()
            except queue.Empty:
                return ran

            try:
                call.result = call.fn(*call.args)
            except Exception as e:
                call.error = e
            finally:
                call.done.set()
            ran += 1

    def close(self) -> None:
        self._closed.set()
