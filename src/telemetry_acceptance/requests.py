"""HTTP calls that drive the application under test.

Every poll iteration issues each configured Input once so the application
keeps producing telemetry. Failures are TransientQueryError: the
application may simply not be up yet.
"""

from __future__ import annotations

from collections.abc import Sequence

import httpx
import structlog

from telemetry_acceptance.errors import TransientQueryError
from telemetry_acceptance.schemas.definition import Input
from telemetry_acceptance.schemas.test_case import PortConfig

logger = structlog.get_logger(__name__)

DEFAULT_INPUT_TIMEOUT = 10.0
"""Transport timeout in seconds for a single application call."""


def create_client(timeout: float = DEFAULT_INPUT_TIMEOUT) -> httpx.Client:
    """Create the HTTP client used for application calls.

    TLS verification is disabled: test applications commonly serve
    self-signed certificates.
    """
    return httpx.Client(verify=False, timeout=timeout)


def input_url(input: Input, ports: PortConfig) -> str:
    """Build ``{scheme}://{host}:{application_port}{path}`` for an input."""
    return f"{input.effective_scheme}://{input.effective_host}:{ports.application_port}{input.path}"


def send_input(client: httpx.Client, input: Input, ports: PortConfig) -> httpx.Response:
    """Issue one application call and check its status.

    Args:
        client: HTTP client, see create_client.
        input: The call to issue.
        ports: Port configuration providing the application port.

    Returns:
        The response.

    Raises:
        TransientQueryError: On transport errors or an unexpected status.
    """
    url = input_url(input, ports)
    try:
        response = client.request(
            input.effective_method,
            url,
            headers=input.headers,
            content=input.body or None,
        )
    except httpx.HTTPError as e:
        raise TransientQueryError(
            f"expected no error calling application endpoint {url}: {e}", query=url
        ) from e
    if response.status_code != input.expected_status:
        raise TransientQueryError(
            f"expected HTTP status {input.expected_status} from {url}, "
            f"but got: {response.status_code}",
            query=url,
            response=response.content,
        )
    return response


def send_inputs(client: httpx.Client, inputs: Sequence[Input], ports: PortConfig) -> None:
    """Issue every input in order, stopping at the first failure."""
    for input in inputs:
        send_input(client, input, ports)


__all__ = [
    "DEFAULT_INPUT_TIMEOUT",
    "create_client",
    "input_url",
    "send_input",
    "send_inputs",
]
