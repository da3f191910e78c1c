from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import Event, Lock
from typing import Callable, Iterable

from .config import KeepRule
from .errors import EmptyResultError, HostSyncError, NoChangeError, PersistError
from .hosts import HostsSynchronizer
from .poller import ServicePoller
from .settings import settings

log = logging.getLogger(__name__)


class WatchState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


@dataclass
class WatchTarget:
    """Services tracked in one environment, polled through one registry session."""

    env: str
    names: list[str]
    poller: ServicePoller
    keep: list[KeepRule] = field(default_factory=list)


class WatchScheduler:
    """Single ticker sweeping every environment and service in config order."""

    def __init__(
        self,
        targets: Iterable[WatchTarget],
        synchronizer: HostsSynchronizer,
        interval_s: float | None = None,
    ) -> None:
        self.targets = list(targets)
        self.synchronizer = synchronizer
        self.interval_s = interval_s if interval_s is not None else settings.poll_interval_s
        self._lock = Lock()
        self._state = WatchState.IDLE
        self._stopped = Event()

    @property
    def state(self) -> WatchState:
        with self._lock:
            return self._state

    def _set_state(self, state: WatchState) -> None:
        with self._lock:
            self._state = state

    def run(self, done: Callable[[], None], close_signal: Event) -> None:
        """Tick loop, meant to be attached to a SafeClose.

        The close signal is only checked between sweeps; a sweep that has
        started always runs to completion.
        """
        log.info("watch scheduler started interval=%ss targets=%d", self.interval_s, len(self.targets))
        try:
            while not close_signal.wait(self.interval_s):
                try:
                    self.sweep()
                except Exception:
                    log.exception("watch sweep failed")
        finally:
            self._set_state(WatchState.STOPPED)
            self._stopped.set()
            log.info("watch scheduler stopped")
            done()

    def wait_stopped(self, timeout: float | None = None) -> bool:
        return self._stopped.wait(timeout)

    def sweep(self) -> int:
        """Poll every configured service once. Returns the number of updates applied."""
        self._set_state(WatchState.POLLING)
        applied = 0
        try:
            for target in self.targets:
                for name in target.names:
                    if self._sync_one(target, name):
                        applied += 1
        finally:
            self._set_state(WatchState.IDLE)
        return applied

    def _sync_one(self, target: WatchTarget, name: str) -> bool:
        try:
            hostname, ips = target.poller.poll(name, target.env, target.keep)
        except NoChangeError as e:
            log.debug("%s", e)
            return False
        except EmptyResultError as e:
            log.warning("%s, keeping current mappings", e)
            return False
        except HostSyncError as e:
            log.error("poll failed service=%s env=%s: %s", name, target.env, e)
            return False

        try:
            self.synchronizer.apply(hostname, ips)
        except PersistError as e:
            log.error("failed to save hosts host=%s: %s", hostname, e)
            return False
        return True
