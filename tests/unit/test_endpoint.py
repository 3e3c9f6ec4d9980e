"""Unit tests for the HTTP endpoint and port allocation.

Tests cover:
- Backend URLs and query parameters
- Non-200 responses and transport errors as TransientQueryError
- Provisioner delegation and compose log search
- PortAllocator
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from telemetry_acceptance.endpoint import (
    Endpoint,
    HttpEndpoint,
    NoOpProvisioner,
    PortAllocator,
    Provisioner,
)
from telemetry_acceptance.errors import TransientQueryError
from telemetry_acceptance.schemas import PortConfig


class Recorder:
    """MockTransport handler recording requests and answering with a fixed response."""

    def __init__(self, status: int = 200, body: bytes = b'{"status":"success"}') -> None:
        self.status = status
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, content=self.body)


class ComposeLogs(NoOpProvisioner):
    """Provisioner with canned service output."""

    def read_logs(self) -> str:
        return "app-1  | booting\napp-1  | Started DiceApplication\n"


@pytest.fixture
def recorder() -> Recorder:
    """Handler answering every request with 200."""
    return Recorder()


@pytest.fixture
def endpoint(recorder: Recorder) -> HttpEndpoint:
    """HttpEndpoint using the recorder as transport."""
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    return HttpEndpoint(PortConfig(), client=client)


class TestQueries:
    """Tests for the backend query methods."""

    def test_run_promql(self, endpoint: HttpEndpoint, recorder: Recorder) -> None:
        """PromQL goes to the Prometheus instant query API."""
        body = endpoint.run_promql('up{job="dice"}')

        request = recorder.requests[0]
        assert body == b'{"status":"success"}'
        assert request.url.host == "localhost"
        assert request.url.port == 9090
        assert request.url.path == "/api/v1/query"
        assert request.url.params["query"] == 'up{job="dice"}'

    def test_search_traces(self, endpoint: HttpEndpoint, recorder: Recorder) -> None:
        """TraceQL goes to the Tempo search API."""
        endpoint.search_traces('{ span.http.route = "/" }')

        request = recorder.requests[0]
        assert request.url.port == 3200
        assert request.url.path == "/api/search"
        assert request.url.params["q"] == '{ span.http.route = "/" }'

    def test_get_trace_by_id(self, endpoint: HttpEndpoint, recorder: Recorder) -> None:
        """Traces are fetched by ID from Tempo."""
        endpoint.get_trace_by_id("2f3e0cee77ae5dc9")

        assert recorder.requests[0].url.path == "/api/traces/2f3e0cee77ae5dc9"

    def test_search_logs(self, endpoint: HttpEndpoint, recorder: Recorder) -> None:
        """LogQL goes to Loki's query_range API over the last five minutes."""
        endpoint.search_logs('{service_name="dice"}')

        request = recorder.requests[0]
        assert request.url.port == 3100
        assert request.url.path == "/loki/api/v1/query_range"
        assert request.url.params["since"] == "5m"
        assert request.url.params["limit"] == "1000"
        assert request.url.params["query"] == '{service_name="dice"}'

    def test_search_profiles(self, endpoint: HttpEndpoint, recorder: Recorder) -> None:
        """Profile queries go to Pyroscope's render API over the last minute."""
        endpoint.search_profiles("process_cpu:cpu:nanoseconds:cpu:nanoseconds")

        request = recorder.requests[0]
        assert request.url.port == 4040
        assert request.url.path == "/pyroscope/render"
        assert request.url.params["from"] == "now-1m"

    def test_allocated_ports(self, recorder: Recorder) -> None:
        """Queries use the test case's ports."""
        client = httpx.Client(transport=httpx.MockTransport(recorder))
        endpoint = HttpEndpoint(PortConfig(prometheus_http_port=19090), client=client)

        endpoint.run_promql("up")

        assert recorder.requests[0].url.port == 19090

    def test_non_200_is_transient(self) -> None:
        """Error statuses are retried, carrying the status and body."""
        recorder = Recorder(status=503, body=b"not ready")
        client = httpx.Client(transport=httpx.MockTransport(recorder))
        endpoint = HttpEndpoint(PortConfig(), client=client)

        with pytest.raises(TransientQueryError, match="but got: 503") as exc_info:
            endpoint.run_promql("up")

        assert exc_info.value.query == "up"
        assert exc_info.value.response == b"not ready"

    def test_transport_error_is_transient(self) -> None:
        """Connection failures are retried."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(refuse))
        endpoint = HttpEndpoint(PortConfig(), client=client)

        with pytest.raises(TransientQueryError, match="connection refused"):
            endpoint.search_logs("{}")


class TestLifecycle:
    """Tests for provisioning and client ownership."""

    def test_satisfies_protocol(self, endpoint: HttpEndpoint) -> None:
        """HttpEndpoint is an Endpoint; NoOpProvisioner is a Provisioner."""
        assert isinstance(endpoint, Endpoint)
        assert isinstance(NoOpProvisioner(), Provisioner)

    def test_start_stop_delegate(self) -> None:
        """start and stop are delegated to the provisioner."""
        provisioner = MagicMock(spec=["start", "stop"])
        endpoint = HttpEndpoint(PortConfig(), provisioner=provisioner)

        endpoint.start()
        endpoint.stop()
        endpoint.close()

        provisioner.start.assert_called_once_with()
        provisioner.stop.assert_called_once_with()

    def test_borrowed_client_stays_open(self, recorder: Recorder) -> None:
        """A client passed in is not closed by the endpoint."""
        client = httpx.Client(transport=httpx.MockTransport(recorder))

        with HttpEndpoint(PortConfig(), client=client):
            pass

        assert client.is_closed is False

    def test_compose_logs_from_log_source(self) -> None:
        """Compose logs are searched line by line for a substring."""
        endpoint = HttpEndpoint(PortConfig(), provisioner=ComposeLogs())

        assert endpoint.search_compose_logs("Started DiceApplication") is True
        assert endpoint.search_compose_logs("Stopped") is False

    def test_compose_logs_without_log_source(self, endpoint: HttpEndpoint) -> None:
        """A provisioner without logs cannot answer compose log checks."""
        with pytest.raises(TransientQueryError, match="does not provide service logs"):
            endpoint.search_compose_logs("Started")


class TestPortAllocator:
    """Tests for PortAllocator."""

    def test_distinct_ports(self) -> None:
        """Every allocated port is distinct across test cases."""
        allocator = PortAllocator(3)

        configs = [allocator.allocate_ports() for _ in range(3)]

        ports = [port for config in configs for port in config.as_env().values()]
        assert len(ports) == 3 * PortAllocator.PORTS_PER_TEST_CASE
        assert len(set(ports)) == len(ports)

    def test_exhausted(self) -> None:
        """Asking for more port sets than sized for is an error."""
        allocator = PortAllocator(1)
        allocator.allocate_ports()

        with pytest.raises(ValueError, match="count=1"):
            allocator.allocate_ports()
