"""Run settings.

Loaded from environment variables with the ``TELEMETRY_ACCEPTANCE_`` prefix;
CLI options override them.

Environment Variables:
    TELEMETRY_ACCEPTANCE_BASE_PATH: Directory scanned for test case files
    TELEMETRY_ACCEPTANCE_TIMEOUT: Deadline in seconds for presence checks
    TELEMETRY_ACCEPTANCE_ABSENT_TIMEOUT: Deadline in seconds for absence checks
    TELEMETRY_ACCEPTANCE_MANUAL_DEBUG: Keep feeding inputs instead of checking
    TELEMETRY_ACCEPTANCE_VERBOSE: Log every query and response
    TELEMETRY_ACCEPTANCE_FAIL_FAST: Stop a test case at the first failed check
    TELEMETRY_ACCEPTANCE_LOG_LEVEL: Minimum log level
    TELEMETRY_ACCEPTANCE_LOG_JSON: Emit JSON logs

Example:
    >>> settings = RunSettings(timeout=60)
    >>> settings.absent_timeout
    10.0
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from telemetry_acceptance.schemas.definition import parse_duration
from telemetry_acceptance.schemas.test_case import DEFAULT_ABSENT_TIMEOUT, DEFAULT_TIMEOUT


class RunSettings(BaseSettings):
    """Settings of one harness run."""

    model_config = SettingsConfigDict(
        env_prefix="TELEMETRY_ACCEPTANCE_",
        extra="ignore",
        frozen=True,
    )

    base_path: Path = Field(
        default=Path("."),
        # JAVA_TESTCASE_BASE_PATH is the name used by existing CI setups
        validation_alias=AliasChoices(
            "TELEMETRY_ACCEPTANCE_BASE_PATH", "JAVA_TESTCASE_BASE_PATH", "base_path"
        ),
        description="Directory scanned for test case files",
    )
    timeout: float = Field(
        default=DEFAULT_TIMEOUT,
        gt=0.0,
        description="Deadline in seconds for checks expecting a signal",
    )
    absent_timeout: float = Field(
        default=DEFAULT_ABSENT_TIMEOUT,
        gt=0.0,
        description="Deadline in seconds for checks expecting no signal",
    )
    manual_debug: bool = Field(
        default=False,
        description="Keep feeding inputs to the application until interrupted",
    )
    verbose: bool = Field(default=False, description="Log every query and response")
    fail_fast: bool = Field(
        default=True,
        description="Stop a test case at its first failed check",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    log_json: bool = Field(default=False, description="Emit JSON logs")
    output_root: Path = Field(
        default=Path("build"),
        description="Directory receiving one output directory per test case",
    )

    @field_validator("timeout", "absent_timeout", mode="before")
    @classmethod
    def parse_timeout(cls, v: Any) -> Any:
        """Accept duration strings (``"30s"``, ``"2m"``) as well as seconds."""
        if isinstance(v, str):
            try:
                return float(v)
            except ValueError:
                return parse_duration(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


__all__ = ["RunSettings"]
