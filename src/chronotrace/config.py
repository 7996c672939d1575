"""Configuration loading and management."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from chronotrace.errors import ConfigurationError

PROJECT_DIR = ".chronotrace"

ENV_ROOTS = "CHRONOTRACE_ROOTS"
ENV_INCLUDE_DEPENDENCIES = "CHRONOTRACE_INCLUDE_DEPENDENCIES"
ENV_INCLUDE_STDLIB = "CHRONOTRACE_INCLUDE_STDLIB"

_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off", "")


@dataclass(slots=True, frozen=True)
class TraceConfig:
    """Session configuration. Immutable for the lifetime of a session.

    Priority when loaded: explicit options > env vars > project config > defaults
    """

    application_roots: tuple[str, ...] = field(default_factory=lambda: (os.getcwd(),))
    include_dependency_code: bool = False
    include_standard_library_code: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "application_roots": list(self.application_roots),
            "include_dependency_code": self.include_dependency_code,
            "include_standard_library_code": self.include_standard_library_code,
        }


def find_project_root(start: Path | None = None) -> Path | None:
    """Find the project root by looking for .chronotrace/ or .git/."""
    current = start or Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).exists():
            return parent
        if (parent / ".git").exists():
            return parent
    return None


def load_json_config(path: Path) -> dict[str, Any]:
    """Load a JSON config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (json.JSONDecodeError, OSError):
        return {}


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (yaml.YAMLError, OSError):
        return {}


def load_config(
    options: dict[str, Any] | None = None,
    *,
    working_dir: str | None = None,
) -> TraceConfig:
    """Load configuration from all sources with proper priority.

    Unrecognised option names are ignored.
    """
    load_dotenv()
    base = Path(working_dir or os.getcwd())
    merged: dict[str, Any] = {}

    # 1. Project-level config (.chronotrace/config.yaml, then config.json)
    project_root = find_project_root(base)
    if project_root:
        config_dir = project_root / PROJECT_DIR
        _apply_dict(merged, load_yaml_config(config_dir / "config.yaml"))
        _apply_dict(merged, load_json_config(config_dir / "config.json"))

    # 2. Environment variables
    if roots := os.environ.get(ENV_ROOTS):
        merged["application_roots"] = [r for r in roots.split(os.pathsep) if r]
    if (deps := os.environ.get(ENV_INCLUDE_DEPENDENCIES)) is not None:
        merged["include_dependency_code"] = deps
    if (stdlib := os.environ.get(ENV_INCLUDE_STDLIB)) is not None:
        merged["include_standard_library_code"] = stdlib

    # 3. Explicit options (highest priority)
    _apply_dict(merged, options or {})

    return build_config(merged, working_dir=str(base))


def build_config(data: dict[str, Any], *, working_dir: str | None = None) -> TraceConfig:
    """Validate a dict of canonical option names into a :class:`TraceConfig`."""
    base = Path(working_dir or os.getcwd())
    roots = _coerce_roots(data.get("application_roots"), base)
    return TraceConfig(
        application_roots=roots,
        include_dependency_code=_coerce_bool(
            data.get("include_dependency_code", False), "include_dependency_code"
        ),
        include_standard_library_code=_coerce_bool(
            data.get("include_standard_library_code", False), "include_standard_library_code"
        ),
    )


def _coerce_roots(value: Any, base: Path) -> tuple[str, ...]:
    if value is None:
        return (str(base),)
    if isinstance(value, (str, os.PathLike)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(
            f"application_roots must be a path or list of paths, got {type(value).__name__}",
            option="application_roots",
        )
    roots: list[str] = []
    for item in value:
        if not isinstance(item, (str, os.PathLike)):
            raise ConfigurationError(
                f"application root must be a path, got {item!r}",
                option="application_roots",
            )
        path = Path(item).expanduser()
        resolved = str(path if path.is_absolute() else base / path)
        # ordered set
        if resolved not in roots:
            roots.append(resolved)
    return tuple(roots) or (str(base),)


def _coerce_bool(value: Any, option: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ConfigurationError(f"{option} must be a boolean, got {value!r}", option=option)


def _apply_dict(target: dict[str, Any], data: dict[str, Any]) -> None:
    """Apply dictionary values to the merged options, only for known fields."""
    field_map = {
        "application_roots": "application_roots",
        "include_dependency_code": "include_dependency_code",
        "include_standard_library_code": "include_standard_library_code",
        # Aliases
        "app_paths": "application_roots",
        "roots": "application_roots",
        "trace_gems": "include_dependency_code",
        "trace_dependencies": "include_dependency_code",
        "trace_stdlib": "include_standard_library_code",
        "applicationRoots": "application_roots",
        "includeDependencyCode": "include_dependency_code",
        "includeStandardLibraryCode": "include_standard_library_code",
    }
    for key, attr in field_map.items():
        if key in data and data[key] is not None:
            target[attr] = data[key]
