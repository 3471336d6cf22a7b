from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
import tomllib
from typing import Mapping, cast


DEFAULT_CONFIG_PATH = Path("gitlin.toml")
DEFAULT_LINEAR_API_URL = "https://api.linear.app/graphql"
DEFAULT_PROVENANCE_LABEL = "gitlin-created"
DEFAULT_PROVENANCE_LABEL_COLOR = "#7C3AED"
DEFAULT_TRIGGER_PHRASE = "/create-issues"
_COLOR_PATTERN = re.compile(r"#[0-9A-Fa-f]{6}")


@dataclass(frozen=True)
class LinearConfig:
    team_id: str
    api_key_env: str = "LINEAR_API_KEY"
    api_url: str = DEFAULT_LINEAR_API_URL
    request_timeout_seconds: int = 30
    provenance_label: str = DEFAULT_PROVENANCE_LABEL
    provenance_label_color: str = DEFAULT_PROVENANCE_LABEL_COLOR
    label_mapping: tuple[tuple[str, tuple[str, ...]], ...] = ()

    def label_mapping_dict(self) -> dict[str, tuple[str, ...]]:
        return {key: values for key, values in self.label_mapping}


@dataclass(frozen=True)
class GitHubConfig:
    trigger_phrase: str = DEFAULT_TRIGGER_PHRASE
    post_reply: bool = True
    react: bool = True


@dataclass(frozen=True)
class CodexConfig:
    enabled: bool
    model: str | None
    sandbox: str | None
    profile: str | None
    extra_args: tuple[str, ...]


@dataclass(frozen=True)
class AppConfig:
    linear: LinearConfig
    github: GitHubConfig
    codex: CodexConfig
    log_dir: Path | None = None


class ConfigError(ValueError):
    pass


def load_config(path: Path | None, *, environ: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if environ is None else environ
    data: dict[str, object] = {}
    if path is not None:
        try:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    linear_data = _optional_table(data, "linear") or {}
    github_data = _optional_table(data, "github") or {}
    codex_data = _optional_table(data, "codex") or {}
    logging_data = _optional_table(data, "logging") or {}

    linear = _parse_linear_config(linear_data=linear_data, environ=env)
    github = GitHubConfig(
        trigger_phrase=_str_with_default(github_data, "trigger_phrase", DEFAULT_TRIGGER_PHRASE),
        post_reply=_bool_with_default(github_data, "post_reply", True),
        react=_bool_with_default(github_data, "react", True),
    )
    codex = CodexConfig(
        enabled=_bool_with_default(codex_data, "enabled", True),
        model=_optional_str(codex_data, "model"),
        sandbox=_optional_str(codex_data, "sandbox"),
        profile=_optional_str(codex_data, "profile"),
        extra_args=_tuple_of_str(codex_data, "extra_args"),
    )
    log_dir = _optional_str(logging_data, "log_dir")
    return AppConfig(
        linear=linear,
        github=github,
        codex=codex,
        log_dir=Path(log_dir).expanduser() if log_dir is not None else None,
    )


def resolve_config_path(explicit: Path | None) -> Path | None:
    if explicit is not None:
        return explicit
    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH
    return None


def linear_api_key(config: LinearConfig, *, environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    value = env.get(config.api_key_env, "").strip()
    if not value:
        raise ConfigError(f"{config.api_key_env} environment variable is required")
    return value


def _parse_linear_config(
    *, linear_data: dict[str, object], environ: Mapping[str, str]
) -> LinearConfig:
    team_id = _optional_str(linear_data, "team_id") or environ.get("LINEAR_TEAM_ID", "").strip()
    if not team_id:
        raise ConfigError("linear.team_id is required (or set LINEAR_TEAM_ID)")

    timeout = _int_with_default(linear_data, "request_timeout_seconds", 30)
    if timeout < 1:
        raise ConfigError("linear.request_timeout_seconds must be >= 1")

    color = _str_with_default(
        linear_data, "provenance_label_color", DEFAULT_PROVENANCE_LABEL_COLOR
    )
    if _COLOR_PATTERN.fullmatch(color) is None:
        raise ConfigError("linear.provenance_label_color must be a #RRGGBB hex color")

    return LinearConfig(
        team_id=team_id,
        api_key_env=_str_with_default(linear_data, "api_key_env", "LINEAR_API_KEY"),
        api_url=_str_with_default(linear_data, "api_url", DEFAULT_LINEAR_API_URL),
        request_timeout_seconds=timeout,
        provenance_label=_str_with_default(
            linear_data, "provenance_label", DEFAULT_PROVENANCE_LABEL
        ),
        provenance_label_color=color,
        label_mapping=_label_mapping(linear_data, "label_mapping"),
    )


def _label_mapping(
    data: dict[str, object], key: str
) -> tuple[tuple[str, tuple[str, ...]], ...]:
    table = _optional_table(data, key)
    if table is None:
        return ()
    out: dict[str, tuple[str, ...]] = {}
    for raw_name, raw_targets in sorted(table.items()):
        name = raw_name.strip().lower()
        if not name:
            raise ConfigError(f"[linear.{key}] keys must be non-empty")
        if not isinstance(raw_targets, list):
            raise ConfigError(f"linear.{key}.{raw_name} must be a list of strings")
        targets: list[str] = []
        for item in raw_targets:
            if not isinstance(item, str) or not item.strip():
                raise ConfigError(f"linear.{key}.{raw_name} must be a list of non-empty strings")
            targets.append(item.strip())
        if name in out:
            raise ConfigError(f"Duplicate label mapping key (case-insensitive): {raw_name!r}")
        out[name] = tuple(targets)
    return tuple(out.items())


def _optional_table(data: dict[str, object], key: str) -> dict[str, object] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a TOML table when provided")
    if not all(isinstance(item, str) for item in value.keys()):
        raise ConfigError(f"[{key}] must have string keys")
    return cast(dict[str, object], value)


def _optional_str(data: dict[str, object], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} must be a non-empty string if provided")
    return value


def _int_with_default(data: dict[str, object], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    return value


def _bool_with_default(data: dict[str, object], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be a boolean")
    return value


def _str_with_default(data: dict[str, object], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} must be a non-empty string")
    return value


def _tuple_of_str(data: dict[str, object], key: str) -> tuple[str, ...]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list of strings")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{key} must be a list of strings")
        out.append(item)
    return tuple(out)
