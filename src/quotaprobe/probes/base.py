from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Mapping
import copy
from enum import Enum
import logging
from pathlib import Path
from types import MappingProxyType

import httpx

from quotaprobe.discovery import LocalProcessDiscovery, ProcessInfo, ProcessSignature
from quotaprobe.errors import (
    AuthenticationRequired,
    BinaryNotFound,
    CLINotFound,
    ExecutionFailed,
    LaunchFailed,
    ParseFailed,
    TimedOut,
)
from quotaprobe.models import UsageSnapshot
from quotaprobe.runner import InteractiveRunner, RunOptions, RunResult

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 5.0
DEFAULT_CLI_TIMEOUT = 20.0


class ProbeKind(str, Enum):
    CLI_BINARY = "cli"
    LOCAL_PROCESS = "local-process"
    REMOTE_API = "remote-api"


class UsageProbe(ABC):
    """Acquires one provider's usage snapshot."""

    kind: ProbeKind
    provider_id: str

    @abstractmethod
    async def probe(self) -> UsageSnapshot:
        raise NotImplementedError

    @abstractmethod
    async def is_available(self) -> bool:
        raise NotImplementedError


def raise_for_status(response: httpx.Response) -> None:
    if response.status_code == 401:
        raise AuthenticationRequired(f"{response.request.url.host} rejected the credentials (401)")
    if not response.is_success:
        raise ExecutionFailed(f"HTTP {response.status_code} from {response.request.url}", status_code=response.status_code)


class HttpClientMixin:
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    transport: httpx.AsyncBaseTransport | None = None

    def http_client(self, verify: bool = True) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.http_timeout, verify=verify, transport=self.transport)


class CLIBinaryProbe(UsageProbe):
    kind = ProbeKind.CLI_BINARY
    binary: str
    arguments: tuple[str, ...] = ()
    auto_responses: Mapping[str, str] = MappingProxyType({})

    def __init__(self, runner: InteractiveRunner, timeout: float = DEFAULT_CLI_TIMEOUT, workdir: str | None = None) -> None:
        self.runner = runner
        self.timeout = timeout
        self.workdir = workdir

    async def is_available(self) -> bool:
        try:
            await asyncio.to_thread(self.runner.resolve_binary, self.binary)
        except Exception as exc:
            logger.debug("%s unavailable: %s", self.binary, exc)
            return False
        return True

    async def run_cli(self, input_text: str) -> RunResult:
        if self.workdir:
            Path(self.workdir).mkdir(parents=True, exist_ok=True)
        options = RunOptions(
            timeout=self.timeout,
            working_directory=self.workdir,
            arguments=list(self.arguments),
            auto_responses=dict(self.auto_responses),
        )
        logger.debug("running %s %s", self.binary, input_text)
        try:
            return await asyncio.to_thread(self.runner.run, self.binary, input_text, options)
        except BinaryNotFound as exc:
            raise CLINotFound(self.binary) from exc
        except (LaunchFailed, TimedOut) as exc:
            raise ExecutionFailed(f"{self.binary} {input_text}: {exc}") from exc

    def parse_result(self, result: RunResult, parse) -> UsageSnapshot:
        try:
            return parse(result.output, self.provider_id)
        except ParseFailed as exc:
            if result.exit_code > 0:
                raise ExecutionFailed(f"{self.binary} exited with status {result.exit_code}") from exc
            raise


class RemoteAPIProbe(HttpClientMixin, UsageProbe):
    kind = ProbeKind.REMOTE_API

    @abstractmethod
    def has_credentials(self) -> bool:
        raise NotImplementedError

    async def is_available(self) -> bool:
        try:
            return self.has_credentials()
        except Exception as exc:
            logger.debug("%s credentials unreadable: %s", self.provider_id, exc)
            return False

    async def request(self, method: str, url: str, **kwargs) -> bytes:
        async with self.http_client() as client:
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                raise ExecutionFailed(f"{method} {url} failed: {exc}") from exc
        raise_for_status(response)
        return response.content


class LocalProcessProbe(HttpClientMixin, UsageProbe):
    """Talks to a locally running daemon found by its command line."""

    kind = ProbeKind.LOCAL_PROCESS
    signature: ProcessSignature
    endpoints: tuple[str, ...] = ()
    payload: Mapping = MappingProxyType({})
    token_header: str = "X-CSRF-Token"
    extra_headers: Mapping[str, str] = MappingProxyType({})

    def __init__(
        self,
        discovery: LocalProcessDiscovery | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.discovery = discovery or LocalProcessDiscovery()
        # Nested dicts too, so instances never share a request body.
        self.payload = copy.deepcopy(dict(type(self).payload))
        self.http_timeout = timeout
        self.transport = transport

    @abstractmethod
    def parse(self, raw: bytes) -> UsageSnapshot:
        raise NotImplementedError

    async def is_available(self) -> bool:
        try:
            await asyncio.to_thread(self.discovery.detect_process, self.signature)
        except Exception as exc:
            logger.debug("%s unavailable: %s", self.signature.label, exc)
            return False
        return True

    async def probe(self) -> UsageSnapshot:
        info = await asyncio.to_thread(self.discovery.detect_process, self.signature)
        try:
            ports = await asyncio.to_thread(self.discovery.discover_ports, info.pid)
        except CLINotFound:
            if info.extension_port is None:
                raise
            ports = []
        return self.parse(await self.fetch(info, ports))

    async def fetch(self, info: ProcessInfo, ports: list[int]) -> bytes:
        headers = {"Content-Type": "application/json", self.token_header: info.csrf_token, **self.extra_headers}
        async with self.http_client(verify=False) as client:
            for port in ports:
                for path in self.endpoints:
                    body = await self._attempt(client, f"https://127.0.0.1:{port}{path}", headers)
                    if body is not None:
                        return body
            if info.extension_port is not None:
                for path in self.endpoints:
                    body = await self._attempt(client, f"http://127.0.0.1:{info.extension_port}{path}", headers)
                    if body is not None:
                        return body
        raise CLINotFound(f"{self.signature.label} API endpoint")

    async def _attempt(self, client: httpx.AsyncClient, url: str, headers: dict[str, str]) -> bytes | None:
        try:
            response = await client.post(url, headers=headers, json=self.payload)
        except httpx.HTTPError as exc:
            logger.debug("%s: %s", url, exc)
            return None
        if response.status_code == 401:
            raise AuthenticationRequired(f"{self.signature.label} rejected the CSRF token")
        if not response.is_success:
            logger.debug("%s: HTTP %d", url, response.status_code)
            return None
        body = response.content.strip()
        if not body or body == b"null":
            return None
        return body
