from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _default_hosts_path() -> str:
    if os.name == "nt":
        root = os.getenv("SystemRoot", r"C:\Windows")
        return os.path.join(root, "System32", "drivers", "etc", "hosts")
    return "/etc/hosts"


@dataclass(frozen=True)
class Settings:
    # Core
    config_path: str = os.getenv("HOSTSYNC_CONFIG", "config.yaml")
    hosts_path: str = os.getenv("HOSTSYNC_HOSTS_PATH", _default_hosts_path())
    poll_interval_s: float = _env_float("HOSTSYNC_POLL_INTERVAL_S", 10.0)
    log_level: str = os.getenv("HOSTSYNC_LOG_LEVEL", "INFO")

    # Registry
    renew_interval_s: float = _env_float("HOSTSYNC_RENEW_INTERVAL_S", 1000.0)
    request_timeout_s: float = _env_float("HOSTSYNC_REQUEST_TIMEOUT_S", 10.0)

    # Event journal (sqlite)
    db_path: str = os.getenv("HOSTSYNC_DB_PATH", "hostsync.db")
    events_limit: int = _env_int("HOSTSYNC_EVENTS_LIMIT", 20)


settings = Settings()
