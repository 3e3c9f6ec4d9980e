"""Loading of test case definitions.

This module turns YAML files on disk into TestCase objects:
- reads and strictly validates one definition file (unknown keys rejected)
- resolves ``include`` entries relative to the including file, recursively
- discovers test case files below a base directory
- expands matrix definitions into one test case per variant

Discovery rules:
    - file names matching ``oats.*\\.ya?ml`` are test cases
    - names containing ``-template.yaml`` / ``-template.yml`` are skipped
    - directories containing a ``.oatsignore`` file are skipped entirely
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, TypeVar, cast

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from telemetry_acceptance.errors import ConfigurationError
from telemetry_acceptance.schemas.definition import TestCaseDefinition
from telemetry_acceptance.schemas.test_case import (
    DEFAULT_ABSENT_TIMEOUT,
    DEFAULT_TIMEOUT,
    TestCase,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

TEST_CASE_FILE_PATTERN = re.compile(r"oats.*\.ya?ml")
TEMPLATE_MARKERS = ("-template.yaml", "-template.yml")
IGNORE_FILE = ".oatsignore"


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as dictionary.

    Raises:
        ConfigurationError: If the file is missing, unreadable or not a YAML mapping.
    """
    if not path.is_file():
        raise ConfigurationError(f"File not found: {path}", source=str(path))

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML syntax in {path.name}: {e}", source=str(path)
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}", source=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected a mapping at the top level of {path.name}, got {type(data).__name__}",
            source=str(path),
        )
    return cast(dict[str, Any], data)


def _validate_model(data: dict[str, Any], model_class: type[T], path: Path) -> T:
    """Validate parsed YAML against a Pydantic model.

    Raises:
        ConfigurationError: Listing every validation error.
    """
    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(loc) for loc in err.get('loc', ())) or '<root>'}: {err.get('msg')}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            f"Validation error in {path.name}", errors=errors, source=str(path)
        ) from e


def include_path(path: Path, include: str) -> Path:
    """Resolve an include entry relative to the including file's directory."""
    return (path.parent / Path(include)).resolve()


def load_definition(path: Path, _chain: tuple[Path, ...] = ()) -> TestCaseDefinition:
    """Load a definition and merge its includes, recursively.

    Includes are merged in order; the returned definition has an empty
    ``include`` list.

    Args:
        path: Path to the definition file.

    Returns:
        The merged TestCaseDefinition.

    Raises:
        ConfigurationError: If a file is missing or invalid, or includes form a cycle.
    """
    path = path.resolve()
    if path in _chain:
        cycle = " -> ".join(str(p) for p in (*_chain, path))
        raise ConfigurationError(f"Circular include detected: {cycle}", source=str(_chain[0]))
    chain = (*_chain, path)

    definition = _validate_model(_load_yaml(path), TestCaseDefinition, path)
    for include in definition.include:
        other = load_definition(include_path(path, include), chain)
        definition = definition.merge(other)
    return definition.model_copy(update={"include": []})


def build_test_case_name(base: Path, path: Path) -> str:
    """Derive a test case name from its path relative to ``base``.

    ``<base>/oats.yaml`` becomes ``run-oats``; ``<base>/java/jdbc/oats.yaml``
    becomes ``run-java-jdbc-oats``.
    """
    relative = path.parent.relative_to(base)
    parts = [part for part in relative.parts if part not in ("", ".")]
    return "-".join(["run", *parts, path.stem])


def is_test_case_file(name: str) -> bool:
    """Check whether a file name denotes a test case definition."""
    if TEST_CASE_FILE_PATTERN.search(name) is None:
        return False
    return not any(marker in name for marker in TEMPLATE_MARKERS)


def discover_files(base: Path) -> list[Path]:
    """Find test case files below ``base`` in lexical order.

    Directories containing an ``.oatsignore`` file are skipped with all
    their subdirectories.
    """
    found = []
    for root, dirs, files in os.walk(base):
        root_path = Path(root)
        if (root_path / IGNORE_FILE).exists():
            logger.info("directory_ignored", path=str(root_path))
            dirs[:] = []
            continue
        dirs.sort()
        found.extend(root_path / name for name in sorted(files) if is_test_case_file(name))
    return found


def read_test_case(
    base: Path,
    path: Path,
    timeout: float = DEFAULT_TIMEOUT,
    absent_timeout: float = DEFAULT_ABSENT_TIMEOUT,
    manual_debug: bool = False,
) -> list[TestCase]:
    """Load one definition file into test cases.

    A definition with a matrix yields one test case per variant, named
    ``<name>-<variant>``, with the variant's deployment descriptors.

    Returns:
        The test cases defined by the file.
    """
    base = base.resolve()
    path = path.resolve()
    definition = load_definition(path)
    name = build_test_case_name(base, path)

    def build(
        case_name: str, case_definition: TestCaseDefinition, variant: str | None
    ) -> TestCase:
        return TestCase(
            name=case_name,
            path=path,
            dir=path.parent,
            definition=case_definition,
            matrix_variant=variant,
            timeout=timeout,
            absent_timeout=absent_timeout,
            manual_debug=manual_debug,
        )

    if not definition.matrix:
        return [build(name, definition, None)]

    cases = []
    for variant in definition.matrix:
        variant_definition = definition.model_copy(
            update={
                "docker_compose": variant.docker_compose,
                "kubernetes": variant.kubernetes,
            }
        )
        cases.append(build(f"{name}-{variant.name}", variant_definition, variant.name))
    return cases


def read_test_cases(
    base: Path | str,
    timeout: float = DEFAULT_TIMEOUT,
    absent_timeout: float = DEFAULT_ABSENT_TIMEOUT,
    manual_debug: bool = False,
) -> list[TestCase]:
    """Discover and load every test case below ``base``.

    Args:
        base: Directory to scan (a single file is accepted too).
        timeout: Deadline in seconds for presence checks.
        absent_timeout: Deadline in seconds for absence checks.
        manual_debug: Keep feeding inputs instead of checking.

    Returns:
        Test cases in discovery order; empty if ``base`` is empty.

    Raises:
        ConfigurationError: If any file cannot be loaded.
    """
    if base == "":
        return []
    base_path = Path(base).resolve()
    if base_path.is_file():
        files = [base_path]
        base_path = base_path.parent
    elif base_path.is_dir():
        files = discover_files(base_path)
    else:
        raise ConfigurationError(f"Test case path does not exist: {base_path}")

    cases = []
    for path in files:
        cases.extend(read_test_case(base_path, path, timeout, absent_timeout, manual_debug))
    logger.info("test_cases_discovered", base=str(base_path), count=len(cases))
    return cases


__all__ = [
    "IGNORE_FILE",
    "TEST_CASE_FILE_PATTERN",
    "discover_files",
    "include_path",
    "is_test_case_file",
    "load_definition",
    "read_test_case",
    "read_test_cases",
    "build_test_case_name",
]
