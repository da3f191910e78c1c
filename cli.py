from __future__ import annotations

import argparse
import json
import logging
import signal
import sys

from hostsync import __version__, db
from hostsync.config import load_config
from hostsync.errors import HostSyncError
from hostsync.log import setup_logging
from hostsync.server import HostSync, status
from hostsync.settings import settings

log = logging.getLogger("hostsync")


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def cmd_start(args: argparse.Namespace) -> int:
    setup_logging(settings.log_level)
    config_path = args.config or settings.config_path
    try:
        cfg = load_config(config_path)
        log.info("main config loaded file=%s", config_path)
        hs = HostSync.from_config(cfg, hosts_path=args.hosts, poll_interval_s=args.interval)
    except HostSyncError as e:
        log.error("failed to start: %s", e)
        return 1

    def _on_signal(signum, frame) -> None:
        log.warning("signal received signal=%s", signal.Signals(signum).name)
        hs.safe_close.send_close_signal(None)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    err = hs.wait_closed()
    return 1 if err is not None else 0


def cmd_run(args: argparse.Namespace) -> int:
    setup_logging("error")
    try:
        cfg = load_config(args.config or settings.config_path)
    except HostSyncError as e:
        print(f"failed to load config: {e}", file=sys.stderr)
        return 1
    print(status(cfg), end="")
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="hostsync", description="Registry to hosts file synchronizer")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_start = sub.add_parser("start", help="Start syncing until SIGINT/SIGTERM")
    s_start.add_argument("-c", "--config", help="Config file (default: $HOSTSYNC_CONFIG or config.yaml)")
    s_start.add_argument("--hosts", help="Hosts file to manage (default: platform hosts file)")
    s_start.add_argument("--interval", type=float, help="Seconds between sweeps")

    s_run = sub.add_parser("run", help="Dry run with the config file")
    s_run.add_argument("-c", "--config")

    s_ev = sub.add_parser("events", help="Show journal events")
    s_ev.add_argument("--limit", type=int, default=settings.events_limit)

    sub.add_parser("version", help="Print version info and exit")

    args = p.parse_args(argv)

    if args.cmd == "start":
        return cmd_start(args)

    if args.cmd == "run":
        return cmd_run(args)

    if args.cmd == "events":
        db.init_db()
        _print(db.latest_events(args.limit))
        return 0

    if args.cmd == "version":
        print(__version__)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
