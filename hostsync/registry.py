"""Authenticated session against one service registry endpoint.

Paths follow the Nacos v1 open API. The access token is kept as an immutable
``Token`` snapshot that is swapped under a lock, so a poll always sees either
the old or the new token, never a mix. A failed login leaves the previous
token in place; polls keep using it until a later renewal succeeds.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Event, Lock
from typing import Any, Callable

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import RegistryEndpoint
from .errors import AuthError, RegistryQueryError
from .settings import settings

log = logging.getLogger(__name__)

LOGIN_PATH = "/nacos/v1/auth/login"
INSTANCE_LIST_PATH = "/nacos/v1/ns/instance/list"


class LoginResponse(BaseModel):
    # {"accessToken":"eyJhbGciOi...","tokenTtl":18000,"globalAdmin":true}
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", min_length=1)
    token_ttl: int = Field(..., alias="tokenTtl")
    global_admin: bool = Field(False, alias="globalAdmin")


class InstanceRecord(BaseModel):
    ip: str
    port: int = 0
    healthy: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_metadata(cls, v: Any) -> Any:
        return {} if v is None else v


class ServiceListing(BaseModel):
    name: str = ""
    hosts: list[InstanceRecord] = Field(default_factory=list)

    @field_validator("hosts", mode="before")
    @classmethod
    def _none_hosts(cls, v: Any) -> Any:
        return [] if v is None else v


@dataclass(frozen=True)
class Token:
    access_token: str
    ttl: int
    issued_at: float

    def expired(self, now: float) -> bool:
        return now - self.issued_at >= self.ttl


class RegistrySession:
    def __init__(
        self,
        endpoint: RegistryEndpoint,
        client: httpx.Client | None = None,
        timeout_s: float | None = None,
        renew_interval_s: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout_s if timeout_s is not None else settings.request_timeout_s
        )
        self.renew_interval_s = renew_interval_s if renew_interval_s is not None else settings.renew_interval_s
        self._clock = clock
        self._lock = Lock()
        self._token: Token | None = None

    @property
    def addr(self) -> str:
        return self.endpoint.base_url

    @property
    def token(self) -> Token | None:
        with self._lock:
            return self._token

    def is_expired(self) -> bool:
        token = self.token
        return token is None or token.expired(self._clock())

    def login(self) -> Token:
        """Log in and store the new token. Raises AuthError on any failure."""
        url = f"{self.addr}{LOGIN_PATH}"
        form = {"username": self.endpoint.username, "password": self.endpoint.password}
        try:
            resp = self._client.post(url, data=form)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise AuthError(f"registry login failed addr={self.addr}: {e}") from e
        if resp.status_code != 200:
            raise AuthError(f"registry login returned HTTP {resp.status_code} addr={self.addr}")
        try:
            body = LoginResponse.model_validate_json(resp.content)
        except ValidationError as e:
            raise AuthError(f"registry login returned a malformed body addr={self.addr}: {e}") from e

        token = Token(access_token=body.access_token, ttl=body.token_ttl, issued_at=self._clock())
        with self._lock:
            self._token = token
        log.debug("registry login ok addr=%s ttl=%s", self.addr, token.ttl)
        return token

    def renew_if_due(self) -> bool:
        """Log in again once the token's ttl has elapsed. Failures are logged."""
        if not self.is_expired():
            return False
        try:
            self.login()
        except AuthError as e:
            log.error("failed to renew registry access token: %s", e)
            return False
        log.info("registry access token renewed addr=%s", self.addr)
        return True

    def run_renewal(self, done: Callable[[], None], close_signal: Event) -> None:
        """Renewal loop, meant to be attached to a SafeClose."""
        try:
            while not close_signal.wait(self.renew_interval_s):
                log.info("refresh registry access token addr=%s", self.addr)
                self.renew_if_due()
        finally:
            log.info("registry session exited addr=%s", self.addr)
            done()

    def list_instances(self, service_name: str) -> ServiceListing:
        token = self.token
        params = {
            "accessToken": token.access_token if token else "",
            "serviceName": service_name,
        }
        url = f"{self.addr}{INSTANCE_LIST_PATH}"
        try:
            resp = self._client.get(url, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RegistryQueryError(f"registry get service failed service={service_name}: {e}") from e
        if resp.status_code != 200:
            raise RegistryQueryError(
                f"registry get service returned HTTP {resp.status_code} service={service_name}"
            )
        try:
            return ServiceListing.model_validate_json(resp.content)
        except ValidationError as e:
            raise RegistryQueryError(f"registry get service returned a malformed body service={service_name}: {e}") from e

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
