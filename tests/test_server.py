import threading
import time

import pytest

from hostsync import db
from hostsync.backup import backup_path_for
from hostsync.config import parse_config
from hostsync.errors import AuthError
from hostsync.server import HostSync, status
from hostsync.watcher import WatchState

from conftest import INITIAL_HOSTS, REGISTRY_ADDR, instance


def _config(**overrides):
    app = {
        "names": ["order-service", "user-service"],
        "env": "dev",
        "registry": {"addr": REGISTRY_ADDR, "username": "nacos", "password": "secret"},
    }
    app.update(overrides)
    return parse_config({"service": [app], "log": {"level": "debug"}})


def test_full_run_restores_hosts_on_shutdown(registry, hosts_path):
    registry.services["order-service"] = [instance("10.0.0.1"), instance("10.0.0.2", healthy=False)]
    registry.services["user-service"] = [instance("10.0.1.1")]

    hs = HostSync.from_config(
        _config(), hosts_path=str(hosts_path), poll_interval_s=3600, client_factory=lambda app: registry.client()
    )
    assert backup_path_for(hosts_path).read_text() == INITIAL_HOSTS
    assert registry.logins == 1

    assert hs.scheduler.sweep() == 2
    text = hosts_path.read_text()
    assert "10.0.0.1\torder-service.dev" in text
    assert "10.0.1.1\tuser-service.dev" in text
    assert "10.0.0.2" not in text

    hs.close_with_err(None)
    assert hs.wait_closed() is None

    assert hs.scheduler.state is WatchState.STOPPED
    assert hosts_path.read_text() == INITIAL_HOSTS
    assert not backup_path_for(hosts_path).exists()
    messages = [e["message"] for e in db.latest_events(10)]
    assert any("restored" in m for m in messages)


def test_shutdown_error_is_surfaced(registry, hosts_path):
    hs = HostSync.from_config(
        _config(), hosts_path=str(hosts_path), poll_interval_s=3600, client_factory=lambda app: registry.client()
    )
    err = RuntimeError("fatal")
    hs.close_with_err(err)
    hs.close_with_err(None)

    assert hs.wait_closed() is err
    assert hosts_path.read_text() == INITIAL_HOSTS


def test_startup_login_failure_is_fatal(registry, hosts_path):
    registry.login_status = 403

    with pytest.raises(AuthError):
        HostSync.from_config(
            _config(), hosts_path=str(hosts_path), client_factory=lambda app: registry.client()
        )

    assert hosts_path.read_text() == INITIAL_HOSTS
    assert not backup_path_for(hosts_path).exists()


def test_status_reports_without_writing(registry):
    registry.services["order-service"] = [instance("10.0.0.1"), instance("10.0.0.2")]

    out = status(_config(), client_factory=lambda app: registry.client())

    assert out == (
        f"registry: {REGISTRY_ADDR}\n"
        "  order-service.dev: 10.0.0.1 10.0.0.2\n"
        "  user-service: error\n"
    )


def test_status_reports_login_error(registry):
    registry.login_status = 500
    out = status(_config(), client_factory=lambda app: registry.client())
    assert out == f"registry: {REGISTRY_ADDR}, error\n"


def test_shutdown_mid_sweep_finishes_sweep_before_restore(registry, hosts_path):
    registry.services["order-service"] = [instance("10.0.0.1")]
    registry.services["user-service"] = [instance("10.0.1.1")]
    entered = threading.Event()
    release = threading.Event()

    def block_first(name):
        if name == "order-service" and not entered.is_set():
            entered.set()
            release.wait(5)

    registry.on_list = block_first
    hs = HostSync.from_config(
        _config(), hosts_path=str(hosts_path), poll_interval_s=0.01, client_factory=lambda app: registry.client()
    )
    assert entered.wait(5)
    assert hs.scheduler.state is WatchState.POLLING

    hs.safe_close.send_close_signal(None)
    assert hs.safe_close.receive_close_signal().is_set()
    time.sleep(0.05)
    # Restore waits for the in-flight sweep.
    assert backup_path_for(hosts_path).exists()
    with pytest.raises(TimeoutError):
        hs.safe_close.wait_closed(timeout=0.05)

    release.set()
    assert hs.wait_closed() is None

    assert [q["serviceName"] for q in registry.queries] == ["order-service", "user-service"]
    assert hs.scheduler.state is WatchState.STOPPED
    assert hosts_path.read_text() == INITIAL_HOSTS
    assert not backup_path_for(hosts_path).exists()

    time.sleep(0.05)
    assert len(registry.queries) == 2
