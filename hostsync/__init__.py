"""Registry-driven hosts file synchronizer.

Keeps local hosts entries (``<service>.<env>``) pointed at the healthy
instances a service registry reports:
 - logs in to each configured registry and renews the token on a timer
 - polls every tracked service and rewrites its hosts entries on change
 - backs the hosts file up at startup and restores it on shutdown
"""

__version__ = "0.1.0"
