from __future__ import annotations


class HostSyncError(Exception):
    pass


class ConfigError(HostSyncError):
    pass


class AuthError(HostSyncError):
    """Registry login failed (transport, status or body)."""


class RegistryQueryError(HostSyncError):
    """Instance list request failed; the service is skipped this cycle."""


class EmptyResultError(HostSyncError):
    """Registry had nothing usable for a service; mappings stay untouched."""


class NoChangeError(HostSyncError):
    """Same IP list as the last observation. Not a failure."""


class PersistError(HostSyncError):
    pass


class BackupError(HostSyncError):
    pass


class RestoreError(HostSyncError):
    pass
