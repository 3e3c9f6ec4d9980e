"""Decoding of telemetry backend responses.

Turns raw query responses from the log, trace, metric and profile stores
into the normalized records consumed by the matcher. Anything that cannot be
decoded raises TransientQueryError: the backend may simply not be ready, so
the polling loop retries.

Supported formats:
    Loki query_range        -> one Record per log line (attributes = stream labels)
    Tempo search            -> trace IDs
    Tempo trace by id       -> one Record per span (span, scope and resource attributes)
    Prometheus instant query -> sample values
    Pyroscope render        -> flamebearer names
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from telemetry_acceptance.errors import TransientQueryError
from telemetry_acceptance.matching import Record

_RESPONSE_CONFIG = ConfigDict(extra="ignore", populate_by_name=True)


def _decode(model: type[BaseModel], body: bytes | str, what: str, query: str | None) -> Any:
    if not body:
        raise TransientQueryError(f"empty {what} response", query=query, response=body)
    try:
        return model.model_validate_json(body)
    except ValidationError as e:
        raise TransientQueryError(
            f"cannot decode {what} response: {e.error_count()} error(s), first: "
            f"{e.errors()[0]['msg']}",
            query=query,
            response=body,
        ) from e


# Loki


class LokiStream(BaseModel):
    model_config = _RESPONSE_CONFIG

    stream: dict[str, str] = Field(default_factory=dict)
    values: list[list[Any]] = Field(default_factory=list)


class LokiData(BaseModel):
    model_config = _RESPONSE_CONFIG

    result: list[LokiStream] = Field(default_factory=list)


class LokiResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    status: str = ""
    data: LokiData = Field(default_factory=LokiData)


def parse_log_lines(body: bytes | str, query: str | None = None) -> list[Record]:
    """Decode a Loki ``query_range`` response into log line records.

    Args:
        body: Raw response body.
        query: The LogQL query, for diagnostics.

    Returns:
        One Record per log line, in stream order.

    Raises:
        TransientQueryError: If the body is empty, malformed or not successful.
    """
    response: LokiResponse = _decode(LokiResponse, body, "log query", query)
    if response.status != "success":
        raise TransientQueryError(
            f"log query status is {response.status!r}, expected 'success'",
            query=query,
            response=body,
        )
    records = []
    for stream in response.data.result:
        for value in stream.values:
            # [timestamp, line] or [timestamp, line, structured metadata]
            if len(value) < 2:
                continue
            records.append(Record(name=str(value[1]), attributes=dict(stream.stream)))
    return records


# Tempo


class TempoTrace(BaseModel):
    model_config = _RESPONSE_CONFIG

    trace_id: str = Field(default="", alias="traceID")
    root_service_name: str = Field(default="", alias="rootServiceName")
    root_trace_name: str = Field(default="", alias="rootTraceName")


class TempoSearchResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    traces: list[TempoTrace] = Field(default_factory=list)


class KeyValue(BaseModel):
    model_config = _RESPONSE_CONFIG

    key: str
    value: dict[str, Any] = Field(default_factory=dict)


class Scope(BaseModel):
    model_config = _RESPONSE_CONFIG

    name: str = ""
    version: str = ""
    attributes: list[KeyValue] = Field(default_factory=list)


class Span(BaseModel):
    model_config = _RESPONSE_CONFIG

    name: str = ""
    trace_id: str = Field(default="", alias="traceId")
    span_id: str = Field(default="", alias="spanId")
    kind: str | int = ""
    attributes: list[KeyValue] = Field(default_factory=list)


class ScopeSpans(BaseModel):
    model_config = _RESPONSE_CONFIG

    scope: Scope = Field(default_factory=Scope)
    spans: list[Span] = Field(default_factory=list)


class Resource(BaseModel):
    model_config = _RESPONSE_CONFIG

    attributes: list[KeyValue] = Field(default_factory=list)


class ResourceSpans(BaseModel):
    model_config = _RESPONSE_CONFIG

    resource: Resource = Field(default_factory=Resource)
    scope_spans: list[ScopeSpans] = Field(default_factory=list, alias="scopeSpans")


class TraceDetails(BaseModel):
    model_config = _RESPONSE_CONFIG

    batches: list[ResourceSpans] = Field(default_factory=list)
    resource_spans: list[ResourceSpans] = Field(default_factory=list, alias="resourceSpans")

    @property
    def all_resource_spans(self) -> list[ResourceSpans]:
        return [*self.batches, *self.resource_spans]


def any_value_to_str(value: dict[str, Any]) -> str:
    """Render an OTLP JSON AnyValue as a string.

    Args:
        value: AnyValue object, e.g. ``{"stringValue": "GET"}``.

    Returns:
        The stringified value; arrays and key/value lists as JSON.
    """
    return _stringify(_plain(value))


def _plain(value: dict[str, Any]) -> Any:
    if "stringValue" in value:
        return value["stringValue"]
    if "boolValue" in value:
        return bool(value["boolValue"])
    if "intValue" in value:
        return int(value["intValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "bytesValue" in value:
        try:
            return base64.b64decode(value["bytesValue"]).hex()
        except (binascii.Error, ValueError):
            return value["bytesValue"]
    if "arrayValue" in value:
        return [_plain(v) for v in value["arrayValue"].get("values", [])]
    if "kvlistValue" in value:
        entries = value["kvlistValue"].get("values", [])
        return {kv["key"]: _plain(kv.get("value", {})) for kv in entries}
    return ""


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _attributes(kvs: list[KeyValue]) -> dict[str, str]:
    return {kv.key: any_value_to_str(kv.value) for kv in kvs}


def parse_trace_ids(body: bytes | str, query: str | None = None) -> list[str]:
    """Decode a Tempo search response into trace IDs.

    Raises:
        TransientQueryError: If the body is empty or malformed.
    """
    response: TempoSearchResponse = _decode(TempoSearchResponse, body, "trace search", query)
    return [trace.trace_id for trace in response.traces if trace.trace_id]


def parse_trace_spans(body: bytes | str, query: str | None = None) -> list[Record]:
    """Decode a Tempo trace-by-id response into span records.

    Both the legacy ``batches`` and the OTLP ``resourceSpans`` layouts are
    accepted. Each span's attributes are the union of resource, scope and
    span attributes (span wins), plus ``otel.library.name`` and
    ``otel.library.version`` from the instrumentation scope.

    Raises:
        TransientQueryError: If the body is empty or malformed.
    """
    details: TraceDetails = _decode(TraceDetails, body, "trace", query)
    try:
        return _span_records(details)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise TransientQueryError(
            f"malformed span attribute in trace response: {e!r}", query=query, response=body
        ) from e


def _span_records(details: TraceDetails) -> list[Record]:
    records = []
    for resource_spans in details.all_resource_spans:
        resource_attributes = _attributes(resource_spans.resource.attributes)
        for scope_spans in resource_spans.scope_spans:
            scope = scope_spans.scope
            scope_attributes = {
                **_attributes(scope.attributes),
                "otel.library.name": scope.name,
                "otel.library.version": scope.version,
            }
            for span in scope_spans.spans:
                attributes = {
                    **resource_attributes,
                    **scope_attributes,
                    **_attributes(span.attributes),
                }
                records.append(Record(name=span.name, attributes=attributes))
    return records


# Prometheus


class PrometheusResult(BaseModel):
    model_config = _RESPONSE_CONFIG

    metric: dict[str, str] = Field(default_factory=dict)
    value: list[float | str] = Field(default_factory=list)


class PrometheusData(BaseModel):
    model_config = _RESPONSE_CONFIG

    result_type: str = Field(default="", alias="resultType")
    result: list[PrometheusResult] = Field(default_factory=list)


class PrometheusResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    status: str = ""
    data: PrometheusData = Field(default_factory=PrometheusData)


def parse_metric_values(body: bytes | str, query: str | None = None) -> list[float]:
    """Decode a Prometheus instant query response into sample values.

    Args:
        body: Raw response body.
        query: The PromQL query, for diagnostics.

    Returns:
        The value of every returned sample, in result order.

    Raises:
        TransientQueryError: If the body is malformed, unsuccessful or a
            sample value is not a number.
    """
    response: PrometheusResponse = _decode(PrometheusResponse, body, "metric query", query)
    if response.status and response.status != "success":
        raise TransientQueryError(
            f"metric query status is {response.status!r}, expected 'success'",
            query=query,
            response=body,
        )
    values = []
    for result in response.data.result:
        # [timestamp, "value"]
        if len(result.value) < 2:
            raise TransientQueryError("metric sample has no value", query=query, response=body)
        try:
            values.append(float(result.value[1]))
        except ValueError as e:
            raise TransientQueryError(
                f"metric sample value {result.value[1]!r} is not a number",
                query=query,
                response=body,
            ) from e
    return values


# Pyroscope


class Flamebearer(BaseModel):
    model_config = _RESPONSE_CONFIG

    names: list[str] = Field(default_factory=list)


class ProfileResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    flamebearer: Flamebearer = Field(default_factory=Flamebearer)


def parse_flamebearer_names(body: bytes | str, query: str | None = None) -> list[str]:
    """Decode a Pyroscope render response into flamebearer names.

    Raises:
        TransientQueryError: If the body is empty or malformed.
    """
    response: ProfileResponse = _decode(ProfileResponse, body, "profile query", query)
    return list(response.flamebearer.names)


__all__ = [
    "any_value_to_str",
    "parse_flamebearer_names",
    "parse_log_lines",
    "parse_metric_values",
    "parse_trace_ids",
    "parse_trace_spans",
]
