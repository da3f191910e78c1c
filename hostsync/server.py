"""Process wiring: sessions, scheduler, backup and shutdown."""
from __future__ import annotations

import logging
import sqlite3
from threading import Event
from typing import Callable

import httpx

from . import db
from .backup import BackupManager
from .config import AppConfig, Config
from .errors import HostSyncError
from .hosts import HostsFile, HostsSynchronizer
from .log import setup_logging
from .poller import ServicePoller
from .registry import RegistrySession
from .safe_close import SafeClose
from .settings import settings
from .watcher import WatchScheduler, WatchTarget

log = logging.getLogger(__name__)

ClientFactory = Callable[[AppConfig], httpx.Client | None]


class HostSync:
    def __init__(
        self,
        cfg: Config,
        hosts: HostsFile,
        sessions: list[RegistrySession],
        scheduler: WatchScheduler,
        backup: BackupManager,
        sc: SafeClose,
    ) -> None:
        self.config = cfg
        self.hosts = hosts
        self.sessions = sessions
        self.scheduler = scheduler
        self.backup = backup
        self.sc = sc

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        hosts_path: str | None = None,
        poll_interval_s: float | None = None,
        client_factory: ClientFactory | None = None,
    ) -> "HostSync":
        """Load hosts, back them up, log in everywhere and start the routines.

        A load or login failure is fatal and raised; every routine started so
        far is told to stop first.
        """
        setup_logging(cfg.log.level or settings.log_level)
        try:
            db.init_db()
        except (sqlite3.Error, OSError) as e:
            log.warning("event journal unavailable: %s", e)

        hosts = HostsFile.load(hosts_path or settings.hosts_path)
        backup = BackupManager(hosts)
        backup.snapshot()

        sc = SafeClose()
        sessions: list[RegistrySession] = []
        targets: list[WatchTarget] = []
        try:
            for app in cfg.environments:
                client = client_factory(app) if client_factory else None
                session = RegistrySession(app.registry, client=client)
                sessions.append(session)
                session.login()
                log.info("registry session ready addr=%s env=%s", session.addr, app.env)
                sc.attach(session.run_renewal, name=f"renew:{app.env}")
                targets.append(
                    WatchTarget(env=app.env, names=list(app.names), keep=list(app.keep), poller=ServicePoller(session))
                )
        except HostSyncError as e:
            sc.send_close_signal(e)
            for session in sessions:
                session.close()
            backup.restore()
            raise

        scheduler = WatchScheduler(targets, HostsSynchronizer(hosts), interval_s=poll_interval_s)
        hs = cls(cfg, hosts, sessions, scheduler, backup, sc)
        sc.attach(scheduler.run, name="watch")
        # Registered last: runs after the scheduler has fully stopped.
        sc.attach(hs._shutdown, name="restore")

        db.log_event("INFO", f"started with {len(targets)} environment(s)")
        log.info("all registry sessions are loaded")
        return hs

    def _shutdown(self, done: Callable[[], None], close_signal: Event) -> None:
        try:
            close_signal.wait()
            self.scheduler.wait_stopped()
            self.backup.restore()
            for session in self.sessions:
                session.close()
        finally:
            done()

    @property
    def safe_close(self) -> SafeClose:
        return self.sc

    def close_with_err(self, err: BaseException | None) -> None:
        """Shortcut for ``safe_close.send_close_signal``."""
        self.sc.send_close_signal(err)

    def wait_closed(self) -> BaseException | None:
        err = self.sc.wait_closed()
        if err is not None:
            log.error("hostsync exited: %s", err)
            db.log_event("ERROR", f"exited: {err}")
        else:
            log.info("hostsync exited")
        return err


def status(cfg: Config, client_factory: ClientFactory | None = None) -> str:
    """Dry run: log in and poll every configured service once.

    Nothing is written to the hosts file.
    """
    lines: list[str] = []
    for app in cfg.environments:
        client = client_factory(app) if client_factory else None
        session = RegistrySession(app.registry, client=client)
        try:
            try:
                session.login()
            except HostSyncError:
                lines.append(f"registry: {session.addr}, error")
                continue
            lines.append(f"registry: {session.addr}")
            poller = ServicePoller(session)
            for name in app.names:
                try:
                    hostname, ips = poller.poll(name, app.env, app.keep)
                except HostSyncError:
                    lines.append(f"  {name}: error")
                    continue
                lines.append(f"  {hostname}: {' '.join(ips)}")
        finally:
            session.close()
    return "\n".join(lines) + "\n"
