from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable, Sequence

from .config import KeepRule
from .errors import EmptyResultError, NoChangeError
from .registry import InstanceRecord, RegistrySession

log = logging.getLogger(__name__)


def cache_key(service_name: str, env: str) -> str:
    """Cache key for a service in an environment; also its hostname."""
    return f"{service_name}.{env}"


class ChangeCache:
    """Last published IP list per ``<service>.<env>`` key."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._entries: dict[str, list[str]] = {}

    def get(self, key: str) -> list[str] | None:
        with self._lock:
            ips = self._entries.get(key)
            return list(ips) if ips is not None else None

    def put(self, key: str, ips: Iterable[str]) -> None:
        with self._lock:
            self._entries[key] = list(ips)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def keep_instance(instance: InstanceRecord, keep: Sequence[KeepRule]) -> bool:
    if not instance.healthy:
        return False
    if not keep:
        return True
    return any(rule.matches(instance.metadata) for rule in keep)


def filter_instances(instances: Iterable[InstanceRecord], keep: Sequence[KeepRule] = ()) -> list[str]:
    """IPs of healthy instances passing the keep rules, in registry order."""
    return [inst.ip for inst in instances if keep_instance(inst, keep)]


class ServicePoller:
    """Polls one registry session and reports only changed IP lists."""

    def __init__(self, session: RegistrySession, cache: ChangeCache | None = None) -> None:
        self.session = session
        self.cache = cache if cache is not None else ChangeCache()

    def poll(self, service_name: str, env: str, keep: Sequence[KeepRule] = ()) -> tuple[str, list[str]]:
        """Return ``(hostname, ips)`` when the IP list changed.

        Raises RegistryQueryError, EmptyResultError or NoChangeError otherwise.
        The comparison is order sensitive: the same IPs in another order count
        as a change.
        """
        listing = self.session.list_instances(service_name)
        if not listing.hosts:
            raise EmptyResultError(f"registry returned no instances for {service_name}")

        ips = filter_instances(listing.hosts, keep)
        if not ips:
            raise EmptyResultError(f"no healthy instance of {service_name} passed the keep rules")

        hostname = cache_key(service_name, env)
        if self.cache.get(hostname) == ips:
            raise NoChangeError(f"instances of {hostname} unchanged")

        self.cache.put(hostname, ips)
        log.info("registry get service success service=%s ips=%s addr=%s", hostname, ips, self.session.addr)
        return hostname, ips
