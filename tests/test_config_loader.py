"""Tests for fluent_request.config_loader.

Tests cover:
- Loading valid profiles files
- ${ENV_VAR} substitution and missing variables
- Missing files, invalid YAML, wrong top-level shape, unknown fields
- Profile lookup
"""

from pathlib import Path

import pytest

from fluent_request.config_loader import ConfigError, get_profile, load_profiles
from fluent_request.models import LogLevel


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "profiles.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadProfiles:
    def test_valid_file(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            """
profiles:
  slack:
    url: https://hooks.slack.com/services/abc
    verb: post
    content_type: application/json
    timeout: 5
    query:
      page: 1
  internal:
    url: https://internal.example.com/api
    keep_alive: true
    log_level: verbose
    tls:
      cert: /etc/certs/client.pem
      key: /etc/certs/client.key
""",
        )
        profiles = load_profiles(path)

        slack = profiles.profiles["slack"]
        assert slack.verb == "post"
        assert slack.timeout == 5
        assert slack.query == {"page": ["1"]}

        internal = profiles.profiles["internal"]
        assert internal.keep_alive
        assert internal.log_level is LogLevel.VERBOSE
        assert internal.tls.key == "/etc/certs/client.key"

    def test_env_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOOK_TOKEN", "s3cr3t")
        monkeypatch.setenv("API_USER", "bot")
        path = _write(
            tmp_path,
            """
profiles:
  hook:
    url: https://hooks.example.com/${HOOK_TOKEN}
    basic_auth:
      username: ${API_USER}
      password: pw-${HOOK_TOKEN}
""",
        )
        hook = load_profiles(path).profiles["hook"]
        assert hook.url == "https://hooks.example.com/s3cr3t"
        assert hook.basic_auth.username == "bot"
        assert hook.basic_auth.password == "pw-s3cr3t"

    def test_missing_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("FLUENT_REQUEST_UNSET_VAR", raising=False)
        path = _write(tmp_path, "profiles:\n  a:\n    url: http://h/${FLUENT_REQUEST_UNSET_VAR}\n")
        with pytest.raises(ConfigError, match="FLUENT_REQUEST_UNSET_VAR"):
            load_profiles(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_profiles(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "profiles: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_profiles(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError, match="must be a YAML mapping"):
            load_profiles(path)

    def test_unknown_profile_field(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "profiles:\n  a:\n    retries: 3\n")
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_profiles(path)

    def test_invalid_log_level(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "profiles:\n  a:\n    log_level: shouty\n")
        with pytest.raises(ConfigError):
            load_profiles(path)


class TestGetProfile:
    def test_found(self, tmp_path: Path) -> None:
        profiles = load_profiles(_write(tmp_path, "profiles:\n  a:\n    label: first\n"))
        assert get_profile(profiles, "a").label == "first"

    def test_not_found_lists_available(self, tmp_path: Path) -> None:
        profiles = load_profiles(_write(tmp_path, "profiles:\n  b: {}\n  a: {}\n"))
        with pytest.raises(ConfigError, match="Available: a, b"):
            get_profile(profiles, "missing")
