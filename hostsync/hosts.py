"""Hosts file model and the synchronizer that rewrites it.

The file is kept as an ordered list of lines. Comments, blank lines and lines
that do not start with an IP address are carried through untouched, and
address lines that were never modified are written back exactly as read, so
saving an unmodified table reproduces the original file.
"""
from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from . import db
from .errors import PersistError

log = logging.getLogger(__name__)


class LineKind(Enum):
    EMPTY = "empty"
    COMMENT = "comment"
    ADDRESS = "address"
    UNKNOWN = "unknown"


@dataclass
class HostsLine:
    raw: str
    kind: LineKind
    address: str = ""
    hostnames: list[str] = field(default_factory=list)
    comment: str = ""
    dirty: bool = False

    @classmethod
    def parse(cls, raw: str) -> "HostsLine":
        stripped = raw.strip()
        if not stripped:
            return cls(raw, LineKind.EMPTY)
        if stripped.startswith("#"):
            return cls(raw, LineKind.COMMENT)
        body, _, comment = stripped.partition("#")
        parts = body.split()
        try:
            ipaddress.ip_address(parts[0])
        except ValueError:
            return cls(raw, LineKind.UNKNOWN)
        return cls(
            raw,
            LineKind.ADDRESS,
            address=parts[0],
            hostnames=[h.lower() for h in parts[1:]],
            comment=comment.strip(),
        )

    def render(self) -> str:
        if not self.dirty:
            return self.raw
        out = f"{self.address}\t{' '.join(self.hostnames)}"
        if self.comment:
            out += f" # {self.comment}"
        return out


class HostsFile:
    """In-memory hosts table bound to a read path and a write path."""

    def __init__(self, read_path: str | Path, write_path: str | Path | None = None) -> None:
        self.read_path = Path(read_path)
        self.write_path = Path(write_path) if write_path is not None else self.read_path
        self.lines: list[HostsLine] = []
        self._trailing_newline = True

    @classmethod
    def load(cls, read_path: str | Path, write_path: str | Path | None = None) -> "HostsFile":
        hosts = cls(read_path, write_path)
        try:
            text = hosts.read_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistError(f"failed to read hosts file {hosts.read_path}: {e}") from e
        hosts.parse(text)
        return hosts

    def parse(self, text: str) -> None:
        self.lines = [HostsLine.parse(raw) for raw in text.splitlines()]
        self._trailing_newline = text.endswith("\n") or not text

    def hosts_for(self, hostname: str) -> list[str]:
        """Addresses currently mapped to *hostname*, in file order."""
        name = hostname.lower()
        return [ln.address for ln in self.lines if ln.kind is LineKind.ADDRESS and name in ln.hostnames]

    def addresses(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for ln in self.lines:
            if ln.kind is LineKind.ADDRESS:
                out.setdefault(ln.address, []).extend(ln.hostnames)
        return out

    def remove_host(self, hostname: str) -> None:
        """Drop *hostname* from every line; address lines left empty are removed."""
        name = hostname.lower()
        kept: list[HostsLine] = []
        for ln in self.lines:
            if ln.kind is LineKind.ADDRESS and name in ln.hostnames:
                ln.hostnames = [h for h in ln.hostnames if h != name]
                ln.dirty = True
                if not ln.hostnames:
                    continue
            kept.append(ln)
        self.lines = kept

    def add_host(self, address: str, hostname: str) -> None:
        """Map *hostname* to *address*. Raises ValueError for a bad address."""
        address = str(ipaddress.ip_address(address))
        name = hostname.lower()
        for ln in self.lines:
            if ln.kind is LineKind.ADDRESS and ln.address == address:
                if name not in ln.hostnames:
                    ln.hostnames.append(name)
                    ln.dirty = True
                return
        self.lines.append(
            HostsLine(raw="", kind=LineKind.ADDRESS, address=address, hostnames=[name], dirty=True)
        )

    def render(self) -> str:
        text = "\n".join(ln.render() for ln in self.lines)
        if self.lines and self._trailing_newline:
            text += "\n"
        return text

    def save(self) -> None:
        self.save_as(self.write_path)

    def save_as(self, path: str | Path) -> None:
        path = Path(path)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.render())
        except OSError as e:
            raise PersistError(f"failed to write hosts file {path}: {e}") from e


class HostsSynchronizer:
    """Replaces every mapping of a hostname and persists the table."""

    def __init__(self, hosts: HostsFile) -> None:
        self.hosts = hosts

    def apply(self, hostname: str, ips: Iterable[str]) -> None:
        ips = list(ips)
        log.info("update hosts host=%s ips=%s", hostname, ips)
        self.hosts.remove_host(hostname)
        for ip in ips:
            try:
                self.hosts.add_host(ip, hostname)
            except ValueError:
                log.warning("skip invalid address host=%s ip=%r", hostname, ip)
                continue
            log.debug("add host host=%s ip=%s", hostname, ip)
        # In-memory state stays updated even if the write fails.
        self.hosts.save()
        db.log_event("INFO", f"mapped to {', '.join(ips)}", hostname=hostname)
