"""Observability endpoint: query access to the telemetry backends.

The runner talks to the backends only through the Endpoint protocol, one
handle per test case. HttpEndpoint implements it over HTTP against the
backends' host ports; provisioning is delegated to an explicit Provisioner
object so no global state is involved.

Example:
    from telemetry_acceptance.endpoint import HttpEndpoint
    from telemetry_acceptance.schemas import PortConfig

    with HttpEndpoint(PortConfig()) as endpoint:
        body = endpoint.run_promql("up")
"""

from __future__ import annotations

import socket
from contextlib import closing
from typing import Protocol, runtime_checkable

import httpx
import structlog

from telemetry_acceptance.errors import TransientQueryError
from telemetry_acceptance.schemas.test_case import PortConfig

logger = structlog.get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
"""Transport timeout in seconds for a single backend request."""

DEFAULT_LOG_LIMIT = 1000
"""Maximum number of log lines requested per log query."""


@runtime_checkable
class Endpoint(Protocol):
    """Query interface to the telemetry backends of one test case.

    Query methods return the raw response body; decoding is done by
    telemetry_acceptance.responses. Failures raise TransientQueryError.
    """

    def run_promql(self, query: str) -> bytes: ...

    def search_traces(self, traceql: str) -> bytes: ...

    def get_trace_by_id(self, trace_id: str) -> bytes: ...

    def search_logs(self, logql: str) -> bytes: ...

    def search_profiles(self, query: str) -> bytes: ...

    def search_compose_logs(self, message: str) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


@runtime_checkable
class Provisioner(Protocol):
    """Lifecycle of the environment behind an endpoint.

    Implementations own whatever state provisioning needs (networks,
    containers, clusters); the harness passes them in explicitly.
    """

    def start(self) -> None: ...

    def stop(self) -> None: ...


@runtime_checkable
class LogSource(Protocol):
    """Provisioner that can also return the combined output of its services."""

    def read_logs(self) -> str: ...


class NoOpProvisioner:
    """Provisioner for backends that are already running."""

    def start(self) -> None:
        """Nothing to start."""

    def stop(self) -> None:
        """Nothing to stop."""


class HttpEndpoint:
    """Endpoint querying the backends over HTTP on localhost.

    Args:
        ports: Host ports of the backends.
        provisioner: Lifecycle collaborator; defaults to NoOpProvisioner.
        client: HTTP client to use; one with a bounded timeout is created
            (and owned) when not supplied.
        host: Host the backends listen on.
        log_limit: Maximum number of log lines per log query.
    """

    def __init__(
        self,
        ports: PortConfig,
        provisioner: Provisioner | None = None,
        client: httpx.Client | None = None,
        host: str = "localhost",
        log_limit: int = DEFAULT_LOG_LIMIT,
    ) -> None:
        self.ports = ports
        self.provisioner = provisioner or NoOpProvisioner()
        self.host = host
        self.log_limit = log_limit
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=DEFAULT_REQUEST_TIMEOUT)
        self._log = logger.bind(component="HttpEndpoint")

    def __enter__(self) -> HttpEndpoint:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this endpoint created it."""
        if self._owns_client:
            self._client.close()

    def _url(self, port: int, path: str) -> str:
        return f"http://{self.host}:{port}{path}"

    def _get(self, url: str, params: dict[str, str | int] | None, query: str) -> bytes:
        try:
            response = self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise TransientQueryError(f"request to {url} failed: {e}", query=query) from e
        if response.status_code != httpx.codes.OK:
            raise TransientQueryError(
                f"expected HTTP status 200 from {url}, but got: {response.status_code}",
                query=query,
                response=response.content,
            )
        return response.content

    def run_promql(self, query: str) -> bytes:
        """Run a PromQL instant query."""
        url = self._url(self.ports.prometheus_http_port, "/api/v1/query")
        return self._get(url, {"query": query}, query)

    def search_traces(self, traceql: str) -> bytes:
        """Search traces with a TraceQL query."""
        url = self._url(self.ports.tempo_http_port, "/api/search")
        return self._get(url, {"q": traceql}, traceql)

    def get_trace_by_id(self, trace_id: str) -> bytes:
        """Fetch a full trace."""
        url = self._url(self.ports.tempo_http_port, f"/api/traces/{trace_id}")
        return self._get(url, None, f"trace {trace_id}")

    def search_logs(self, logql: str) -> bytes:
        """Search the last five minutes of logs with a LogQL query."""
        url = self._url(self.ports.loki_http_port, "/loki/api/v1/query_range")
        return self._get(url, {"since": "5m", "limit": self.log_limit, "query": logql}, logql)

    def search_profiles(self, query: str) -> bytes:
        """Render the profile of the last minute."""
        url = self._url(self.ports.pyroscope_http_port, "/pyroscope/render")
        return self._get(url, {"from": "now-1m", "query": query}, query)

    def search_compose_logs(self, message: str) -> bool:
        """Check whether any service output line contains ``message``.

        Raises:
            TransientQueryError: If the provisioner cannot provide logs.
        """
        if not isinstance(self.provisioner, LogSource):
            raise TransientQueryError(
                f"{type(self.provisioner).__name__} does not provide service logs",
                query=message,
            )
        output = self.provisioner.read_logs()
        return any(message in line for line in output.splitlines())

    def start(self) -> None:
        self._log.info("endpoint_starting", provisioner=type(self.provisioner).__name__)
        self.provisioner.start()

    def stop(self) -> None:
        self._log.info("endpoint_stopping", provisioner=type(self.provisioner).__name__)
        self.provisioner.stop()


class PortAllocator:
    """Allocates distinct free host ports for test cases running in parallel.

    Args:
        count: Number of test cases that will request ports.

    Example:
        allocator = PortAllocator(len(test_cases))
        for test_case in test_cases:
            test_case.port_config = allocator.allocate_ports()
    """

    PORTS_PER_TEST_CASE = 6

    def __init__(self, count: int) -> None:
        self.count = count
        self._issued = 0
        self._allocated: set[int] = set()

    def _free_port(self) -> int:
        while True:
            with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
                sock.bind(("", 0))
                port = sock.getsockname()[1]
            if port not in self._allocated:
                self._allocated.add(port)
                return port

    def allocate_ports(self) -> PortConfig:
        """Return a PortConfig whose ports were free and not handed out before.

        Raises:
            ValueError: If called more often than the allocator was sized for.
        """
        if self._issued >= self.count:
            raise ValueError(f"all port sets of this allocator are in use (count={self.count})")
        self._issued += 1
        ports = [self._free_port() for _ in range(self.PORTS_PER_TEST_CASE)]
        return PortConfig(
            application_port=ports[0],
            grafana_http_port=ports[1],
            prometheus_http_port=ports[2],
            loki_http_port=ports[3],
            tempo_http_port=ports[4],
            pyroscope_http_port=ports[5],
        )


__all__ = [
    "DEFAULT_LOG_LIMIT",
    "DEFAULT_REQUEST_TIMEOUT",
    "Endpoint",
    "HttpEndpoint",
    "LogSource",
    "NoOpProvisioner",
    "PortAllocator",
    "Provisioner",
]
