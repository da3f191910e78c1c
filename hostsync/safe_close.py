"""Process-wide shutdown coordination.

One ``SafeClose`` exists per process. Background routines are registered with
:meth:`SafeClose.attach`; each runs on its own daemon thread and receives a
``done`` callback plus the shared close signal (a ``threading.Event``). The
process exits once the signal has been sent and every routine has called
``done``. Only the first :meth:`send_close_signal` error is kept.
"""
from __future__ import annotations

import logging
from threading import Condition, Event, Lock, Thread
from typing import Callable

log = logging.getLogger(__name__)

Routine = Callable[[Callable[[], None], Event], None]


class SafeClose:
    def __init__(self) -> None:
        self._cond = Condition()
        self._close_signal = Event()
        self._running = 0
        self._err: BaseException | None = None

    def attach(self, fn: Routine, name: str | None = None) -> Thread:
        """Run ``fn(done, close_signal)`` on a daemon thread."""
        once = Lock()
        called = False

        def done() -> None:
            nonlocal called
            with once:
                if called:
                    return
                called = True
            with self._cond:
                self._running -= 1
                self._cond.notify_all()

        def runner() -> None:
            try:
                fn(done, self._close_signal)
            except Exception as e:
                log.exception("routine %s failed", name or getattr(fn, "__name__", fn))
                self.send_close_signal(e)
            finally:
                done()

        with self._cond:
            self._running += 1
        thr = Thread(target=runner, name=name, daemon=True)
        thr.start()
        return thr

    def send_close_signal(self, err: BaseException | None = None) -> None:
        """Fire the close signal. Only the first call has any effect."""
        with self._cond:
            if self._close_signal.is_set():
                return
            self._err = err
            self._close_signal.set()
            self._cond.notify_all()

    def receive_close_signal(self) -> Event:
        return self._close_signal

    @property
    def closed(self) -> bool:
        return self._close_signal.is_set()

    def wait_closed(self, timeout: float | None = None) -> BaseException | None:
        """Block until closed and every attached routine is done.

        Returns the error passed to the first ``send_close_signal`` call.
        Raises ``TimeoutError`` if *timeout* expires first.
        """
        with self._cond:
            finished = self._cond.wait_for(
                lambda: self._close_signal.is_set() and self._running <= 0,
                timeout=timeout,
            )
            if not finished:
                raise TimeoutError("routines still running")
            return self._err
