import sys
import urllib.parse
from dataclasses import replace

import httpx
import pytest

# Ensure project root is importable (so `import hostsync` and `import cli` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from hostsync import db  # noqa: E402
from hostsync.config import RegistryEndpoint  # noqa: E402
from hostsync.registry import INSTANCE_LIST_PATH, LOGIN_PATH  # noqa: E402

REGISTRY_ADDR = "http://registry.test:8848"

INITIAL_HOSTS = """\
# managed by the platform
127.0.0.1\tlocalhost
::1\tlocalhost ip6-localhost

10.9.9.9 legacy.internal   # keep me
"""


def instance(ip, healthy=True, port=8080, **metadata):
    return {"ip": ip, "port": port, "healthy": healthy, "metadata": metadata}


class FakeRegistry:
    """In-memory stand-in for the registry open API, served through httpx.MockTransport."""

    def __init__(self):
        self.services = {}
        self.login_status = 200
        self.login_body = {"accessToken": "token-1", "tokenTtl": 18000, "globalAdmin": True}
        self.list_status = 200
        self.raise_on_login = None
        self.raise_on_list = None
        self.on_list = None
        self.logins = 0
        self.login_forms = []
        self.queries = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == LOGIN_PATH:
            self.logins += 1
            self.login_forms.append(dict(urllib.parse.parse_qsl(request.content.decode())))
            if self.raise_on_login is not None:
                raise self.raise_on_login
            if self.login_status != 200:
                return httpx.Response(self.login_status, text="unknown user!")
            return httpx.Response(200, json=self.login_body)

        if request.url.path == INSTANCE_LIST_PATH:
            params = dict(request.url.params)
            self.queries.append(params)
            if self.on_list is not None:
                self.on_list(params["serviceName"])
            if self.raise_on_list is not None:
                raise self.raise_on_list
            if self.list_status != 200:
                return httpx.Response(self.list_status, text="server error")
            name = params["serviceName"]
            return httpx.Response(
                200,
                json={"name": f"DEFAULT_GROUP@@{name}", "hosts": self.services.get(name, [])},
            )

        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def journal(tmp_path, monkeypatch):
    """Point the event journal at a per-test sqlite file."""
    path = tmp_path / "events.db"
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(path)))
    db.init_db()
    return path


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def endpoint():
    return RegistryEndpoint(addr=REGISTRY_ADDR + "/", username="nacos", password="secret")


@pytest.fixture
def hosts_path(tmp_path):
    p = tmp_path / "hosts"
    p.write_text(INITIAL_HOSTS)
    return p
