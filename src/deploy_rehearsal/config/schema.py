"""
deploy-rehearsal — configuration schema and validation.

File: src/deploy_rehearsal/config/schema.py

Purpose
- Define configuration defaults and strict validation rules for ``rehearsal.toml``.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown fields and embedded secrets; tokens are referenced by env var name only.
- Redact sensitive fields when dumping the effective config.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from deploy_rehearsal.domain.models import MergeStrategy

MAX_GITHUB_PAGE_SIZE: Final[int] = 100
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("console", "json")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "secret",
        "token",
        "password",
        "passwd",
        "apikey",
        "pat",
        "private",
        "credential",
        "credentials",
        "auth",
    }
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("simulation", "clone_root"),)

# List-valued fields that accept comma separated strings from env/CLI.
LIST_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("simulation", "merge_types"),)


class RepositoryConfig(TypedDict):
    owner: str
    name: str
    remote: str


class GitHubConfig(TypedDict):
    api_url: str
    token_env: str
    page_size: int
    timeout_seconds: float


class SimulationConfig(TypedDict):
    merge_types: list[str]
    committer_name: str
    committer_email: str
    clone_root: str
    clone_prefix: str


class GitConfig(TypedDict):
    record_separator: str
    field_separator: str


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: str


class RehearsalConfig(TypedDict):
    repository: RepositoryConfig
    github: GitHubConfig
    simulation: SimulationConfig
    git: GitConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[RehearsalConfig] = {
    "repository": {
        "owner": "",
        "name": "",
        "remote": "origin",
    },
    "github": {
        "api_url": "https://api.github.com/graphql",
        "token_env": "GITHUB_TOKEN",
        "page_size": MAX_GITHUB_PAGE_SIZE,
        "timeout_seconds": 30.0,
    },
    "simulation": {
        "merge_types": [],
        "committer_name": "Deployment Test",
        "committer_email": "test@test.com",
        "clone_root": "",
        "clone_prefix": "rehearsal-clone-",
    },
    "git": {
        "record_separator": "[[⬛]]",
        "field_separator": "[⬛]",
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "console",
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> RehearsalConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base`` without mutating either."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a redacted copy for logs and ``--show-config`` style output."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    if isinstance(redacted, dict):
        return redacted
    return {}


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]] = {
        "repository": _validate_repository,
        "github": _validate_github,
        "simulation": _validate_simulation,
        "git": _validate_git,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, set(validators), "", issues)
    _require_keys(payload, set(validators), "", issues)

    out: dict[str, Any] = {}
    for key in sorted(validators):
        raw = payload.get(key)
        if raw is None:
            continue
        section = _as_object(raw, key, issues)
        if section is None:
            continue
        out[key] = validators[key](section, key, issues)
    return out


def _validate_repository(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"owner", "name", "remote"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("owner", "name"):
        if key in payload:
            parsed = _as_optional_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "remote" in payload:
        remote = _as_str(payload["remote"], _join(path, "remote"), issues)
        if remote is not None:
            out["remote"] = remote
    return out


def _validate_github(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"api_url", "token_env", "page_size", "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "api_url" in payload:
        api_url = _as_str(payload["api_url"], _join(path, "api_url"), issues)
        if api_url is not None:
            if api_url.startswith(("https://", "http://")):
                out["api_url"] = api_url
            else:
                issues.add(_join(path, "api_url"), "must be an http(s) URL")

    if "token_env" in payload:
        token_env = _as_env_name(payload["token_env"], _join(path, "token_env"), issues)
        if token_env is not None:
            out["token_env"] = token_env

    if "page_size" in payload:
        page_size = _as_int(payload["page_size"], _join(path, "page_size"), issues, minimum=1)
        if page_size is not None:
            if page_size > MAX_GITHUB_PAGE_SIZE:
                issues.add(_join(path, "page_size"), f"must be <= {MAX_GITHUB_PAGE_SIZE}")
            else:
                out["page_size"] = page_size

    if "timeout_seconds" in payload:
        timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=0.0
        )
        if timeout is not None:
            if timeout == 0.0:
                issues.add(_join(path, "timeout_seconds"), "must be > 0")
            else:
                out["timeout_seconds"] = timeout
    return out


def _validate_simulation(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"merge_types", "committer_name", "committer_email", "clone_root", "clone_prefix"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "merge_types" in payload:
        merge_types = _as_merge_types(payload["merge_types"], _join(path, "merge_types"), issues)
        if merge_types is not None:
            out["merge_types"] = merge_types

    for key in ("committer_name", "committer_email", "clone_prefix"):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed

    prefix = out.get("clone_prefix")
    if isinstance(prefix, str) and ("/" in prefix or "\\" in prefix):
        issues.add(_join(path, "clone_prefix"), "must not contain path separators")
        out.pop("clone_prefix")

    if "clone_root" in payload:
        clone_root = _as_optional_str(payload["clone_root"], _join(path, "clone_root"), issues)
        if clone_root is not None:
            if "\x00" in clone_root:
                issues.add(_join(path, "clone_root"), "must not contain NUL bytes")
            else:
                out["clone_root"] = clone_root
    return out


def _validate_git(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"record_separator", "field_separator"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key not in payload:
            continue
        raw = payload[key]
        key_path = _join(path, key)
        if not isinstance(raw, str):
            issues.add(key_path, f"expected string, got {type(raw).__name__}")
        elif not raw:
            issues.add(key_path, "must not be empty")
        elif "\n" in raw or "\t" in raw or "\x00" in raw:
            issues.add(key_path, "must not contain newlines, tabs, or NUL bytes")
        else:
            out[key] = raw

    record = out.get("record_separator")
    field = out.get("field_separator")
    if record is not None and record == field:
        issues.add(path, "record_separator and field_separator must differ")
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_format"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        level = raw_level.upper() if isinstance(raw_level, str) else raw_level
        parsed_level = _as_enum(level, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS)
        if parsed_level is not None:
            out["log_level"] = parsed_level

    if "log_format" in payload:
        parsed_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=LOG_FORMATS,
        )
        if parsed_format is not None:
            out["log_format"] = parsed_format
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_optional_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    return value.strip()


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: GITHUB_TOKEN)")
        return None
    return parsed


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _as_merge_types(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str):
        items: list[object] = [item for item in value.split(",") if item.strip()]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None

    parsed: list[str] = []
    for index, item in enumerate(items):
        item_path = f"{path}[{index}]"
        if not isinstance(item, str):
            issues.add(item_path, f"expected string, got {type(item).__name__}")
            continue
        try:
            strategy = MergeStrategy.parse(item)
        except ValueError as exc:
            issues.add(item_path, str(exc))
            continue
        if strategy.value not in parsed:
            parsed.append(strategy.value)
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key) if path else key, "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            item = value[key]
            if _looks_sensitive_key(key):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(item, key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "DEFAULT_CONFIG",
    "LIST_FIELDS",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "MAX_GITHUB_PAGE_SIZE",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "RehearsalConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "redact_config",
    "validate_config",
]
