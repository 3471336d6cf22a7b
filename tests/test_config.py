from __future__ import annotations

from pathlib import Path
import re

import pytest

from gitlin import config
from gitlin.config import ConfigError


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_load_config_reads_every_section(tmp_path: Path) -> None:
    cfg_path = _write(
        tmp_path / "gitlin.toml",
        """
[linear]
team_id = "team-1"
api_key_env = "MY_LINEAR_KEY"
request_timeout_seconds = 12
provenance_label = "from-review"
provenance_label_color = "#112233"

[linear.label_mapping]
Security = ["sec-review", " compliance "]
perf = ["performance"]

[github]
trigger_phrase = "/linear"
post_reply = false
react = false

[codex]
enabled = true
model = "gpt-5-codex"
sandbox = "read-only"
extra_args = ["--full-auto"]

[logging]
log_dir = "/var/log/gitlin"
""".strip(),
    )

    loaded = config.load_config(cfg_path, environ={})

    assert loaded.linear.team_id == "team-1"
    assert loaded.linear.api_key_env == "MY_LINEAR_KEY"
    assert loaded.linear.api_url == "https://api.linear.app/graphql"
    assert loaded.linear.request_timeout_seconds == 12
    assert loaded.linear.provenance_label == "from-review"
    assert loaded.linear.provenance_label_color == "#112233"
    assert loaded.linear.label_mapping_dict() == {
        "perf": ("performance",),
        "security": ("sec-review", "compliance"),
    }
    assert loaded.github.trigger_phrase == "/linear"
    assert loaded.github.post_reply is False
    assert loaded.github.react is False
    assert loaded.codex.model == "gpt-5-codex"
    assert loaded.codex.profile is None
    assert loaded.codex.extra_args == ("--full-auto",)
    assert loaded.log_dir == Path("/var/log/gitlin")


def test_load_config_without_file_uses_env_team_and_defaults() -> None:
    loaded = config.load_config(None, environ={"LINEAR_TEAM_ID": " team-env "})

    assert loaded.linear.team_id == "team-env"
    assert loaded.linear.provenance_label == "gitlin-created"
    assert loaded.linear.provenance_label_color == "#7C3AED"
    assert loaded.linear.label_mapping == ()
    assert loaded.github.trigger_phrase == "/create-issues"
    assert loaded.github.post_reply is True
    assert loaded.codex.enabled is True
    assert loaded.log_dir is None


def test_load_config_requires_team_id() -> None:
    with pytest.raises(ConfigError, match=re.escape("linear.team_id is required")):
        config.load_config(None, environ={})


def test_load_config_reports_missing_and_invalid_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Config file not found"):
        config.load_config(tmp_path / "missing.toml", environ={})

    bad = _write(tmp_path / "bad.toml", "[linear\nteam_id=")
    with pytest.raises(ConfigError, match="Invalid TOML"):
        config.load_config(bad, environ={})


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ('linear = "x"', "[linear] must be a TOML table"),
        (
            '[linear]\nteam_id = "t"\nrequest_timeout_seconds = 0',
            "linear.request_timeout_seconds must be >= 1",
        ),
        (
            '[linear]\nteam_id = "t"\nrequest_timeout_seconds = true',
            "request_timeout_seconds must be an integer",
        ),
        (
            '[linear]\nteam_id = "t"\nprovenance_label_color = "purple"',
            "provenance_label_color must be a #RRGGBB hex color",
        ),
        (
            '[linear]\nteam_id = "t"\n[linear.label_mapping]\nbug = "defect"',
            "linear.label_mapping.bug must be a list of strings",
        ),
        (
            '[linear]\nteam_id = "t"\n[linear.label_mapping]\nbug = [""]',
            "must be a list of non-empty strings",
        ),
        (
            '[linear]\nteam_id = "t"\n[linear.label_mapping]\nBug = ["a"]\nbug = ["b"]',
            "Duplicate label mapping key",
        ),
        ('[linear]\nteam_id = "t"\n[github]\npost_reply = "yes"', "post_reply must be a boolean"),
        ('[linear]\nteam_id = "t"\n[codex]\nextra_args = "x"', "extra_args must be a list"),
        ('[linear]\nteam_id = "t"\n[codex]\nmodel = ""', "model must be a non-empty string"),
        ('logging = 3\n[linear]\nteam_id = "t"', "[logging] must be a TOML table"),
        ('[linear]\nteam_id = "t"\n[logging]\nlog_dir = 5', "log_dir must be a non-empty string"),
    ],
)
def test_load_config_shape_errors(tmp_path: Path, content: str, expected: str) -> None:
    cfg_path = _write(tmp_path / "bad.toml", content)
    with pytest.raises(ConfigError, match=re.escape(expected)):
        config.load_config(cfg_path, environ={})


def test_resolve_config_path_prefers_explicit_then_cwd_default(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    explicit = tmp_path / "custom.toml"

    assert config.resolve_config_path(explicit) == explicit
    assert config.resolve_config_path(None) is None

    _write(tmp_path / "gitlin.toml", '[linear]\nteam_id = "t"\n')
    assert config.resolve_config_path(None) == Path("gitlin.toml")


def test_linear_api_key_reads_configured_env() -> None:
    linear = config.LinearConfig(team_id="t", api_key_env="KEY")

    assert config.linear_api_key(linear, environ={"KEY": " secret "}) == "secret"
    with pytest.raises(ConfigError, match="KEY environment variable is required"):
        config.linear_api_key(linear, environ={"KEY": ""})


def test_helpers() -> None:
    assert config._optional_str({}, "k") is None
    assert config._int_with_default({}, "k", 7) == 7
    assert config._bool_with_default({"k": False}, "k", True) is False
    assert config._str_with_default({}, "k", "d") == "d"
    assert config._tuple_of_str({"k": ["a", "b"]}, "k") == ("a", "b")
    with pytest.raises(ConfigError, match="must be a list of strings"):
        config._tuple_of_str({"k": [1]}, "k")
    with pytest.raises(ConfigError, match="must have string keys"):
        config._optional_table({"x": {1: "v"}}, "x")
