"""Tests for configuration loading and validation."""

import json
import os

import pytest

from bytesize_digest.config import (
    DEFAULT_CONFIG, find_config_file, load_config, load_env, required_env_vars,
    resolve_credentials, validate_config,
)
from bytesize_digest.errors import ConfigError, ErrorCode


def write_config(tmp_path, data):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(data))
    return str(config_file)


def minimal(**overrides):
    data = {"version": 1, "store": {"provider": "supabase"}}
    data.update(overrides)
    return data


def test_load_valid_config(tmp_path):
    """Valid config loads and gets defaults merged in."""
    cfg = load_config(write_config(tmp_path, minimal()))

    assert cfg["version"] == 1
    assert cfg["store"]["provider"] == "supabase"
    assert cfg["fetch"]["page_size"] == 20
    assert cfg["fetch"]["max_pages"] == 3
    assert cfg["delivery"]["from"] == "ByteSize <hello@autodm.in>"
    assert cfg["timezone"] == "UTC"


def test_wrong_version_raises(tmp_path):
    with pytest.raises(ConfigError) as exc:
        load_config(write_config(tmp_path, minimal(version=2)))
    assert exc.value.code == ErrorCode.CONFIG_VERSION_MISMATCH


def test_missing_store_raises(tmp_path):
    with pytest.raises(ConfigError) as exc:
        load_config(write_config(tmp_path, {"version": 1}))
    assert exc.value.code == ErrorCode.CONFIG_MISSING_REQUIRED_FIELD


def test_store_without_provider_raises():
    with pytest.raises(ConfigError) as exc:
        validate_config({"version": 1, "store": {}})
    assert exc.value.code == ErrorCode.CONFIG_MISSING_REQUIRED_FIELD


def test_invalid_json_raises(tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text("{ not json")

    with pytest.raises(ConfigError) as exc:
        load_config(str(config_file))
    assert exc.value.code == ErrorCode.CONFIG_INVALID_JSON


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError) as exc:
        load_config(str(tmp_path / "nope.json"))
    assert exc.value.code == ErrorCode.CONFIG_FILE_NOT_FOUND


def test_deep_merge_preserves_defaults():
    """Overriding one nested key keeps the section's other defaults."""
    cfg = validate_config(minimal(fetch={"max_pages": 5}))

    assert cfg["fetch"]["max_pages"] == 5
    assert cfg["fetch"]["page_size"] == 20
    assert cfg["fetch"]["page_timeout_seconds"] == 5.0


def test_defaults_not_mutated():
    cfg = validate_config(minimal(fetch={"max_pages": 5}))
    cfg["llm"]["provider"] = "gemini"

    assert DEFAULT_CONFIG["fetch"]["max_pages"] == 3
    assert DEFAULT_CONFIG["llm"]["provider"] == "openai"


@pytest.mark.parametrize("overrides", [
    {"store": {"provider": "mysql"}},
    {"llm": {"provider": "llama"}},
    {"delivery": {"provider": "carrier-pigeon"}},
    {"timezone": "Mars/Olympus"},
    {"fetch": {"page_size": 0}},
    {"fetch": {"max_pages": "3"}},
    {"fetch": {"page_timeout_seconds": 0}},
    {"fetch": {"page_delay_seconds": -1}},
    {"retry": {"max_retries": -1}},
    {"delivery": {"min_send_interval_seconds": -0.5}},
    {"llm": {"max_tokens": 0}},
    {"run": {"max_workers": 0}},
    {"run": {"timeout_seconds": 0}},
    {"fetch": {"page_timeout_seconds": "5"}},
    {"fetch": {"page_delay_seconds": None}},
    {"retry": {"initial_delay_seconds": "1"}},
    {"delivery": {"min_send_interval_seconds": True}},
    {"llm": {"max_tokens": "300"}},
    {"run": {"timeout_seconds": "60"}},
    {"run": {"send_grace_seconds": -1}},
])
def test_invalid_values_raise(overrides):
    with pytest.raises(ConfigError) as exc:
        validate_config(minimal(**overrides))
    assert exc.value.code == ErrorCode.CONFIG_INVALID_VALUE


def test_find_config_file_explicit(tmp_path):
    path = write_config(tmp_path, minimal())
    assert find_config_file(path) == path


def test_find_config_file_search_order(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "bytesize-digest.json").write_text("{}")

    assert find_config_file().endswith("config/bytesize-digest.json")

    (tmp_path / "bytesize-digest.json").write_text("{}")
    assert find_config_file() == "./bytesize-digest.json"


def test_required_env_vars():
    cfg = validate_config(minimal())
    assert required_env_vars(cfg) == ["OPENAI_API_KEY", "RESEND_API_KEY", "SUPABASE_URL", "SUPABASE_KEY"]

    cfg = validate_config(minimal(store={"provider": "file", "path": "subs.json"}, llm={"provider": "gemini"}))
    assert required_env_vars(cfg) == ["GEMINI_API_KEY", "RESEND_API_KEY"]


class TestResolveCredentials:
    """Tests for startup credential checks."""

    def test_all_present(self):
        cfg = validate_config(minimal())
        env = {
            "OPENAI_API_KEY": "sk",
            "RESEND_API_KEY": "re",
            "SUPABASE_URL": "https://p.supabase.co",
            "SUPABASE_KEY": "sb",
            "BIRD_ENV_PATH": "/tmp/bird.env",
        }

        creds = resolve_credentials(cfg, env)

        assert creds == {
            "llm_api_key": "sk",
            "resend_api_key": "re",
            "supabase_url": "https://p.supabase.co",
            "supabase_key": "sb",
            "bird_env_path": "/tmp/bird.env",
        }

    def test_missing_names_every_variable(self):
        cfg = validate_config(minimal())

        with pytest.raises(ConfigError) as exc:
            resolve_credentials(cfg, {"OPENAI_API_KEY": "sk"})

        assert exc.value.code == ErrorCode.CONFIG_MISSING_CREDENTIALS
        for name in ["RESEND_API_KEY", "SUPABASE_URL", "SUPABASE_KEY"]:
            assert name in exc.value.message
        assert "OPENAI_API_KEY" not in exc.value.message

    def test_empty_value_counts_as_missing(self):
        cfg = validate_config(minimal(store={"provider": "file", "path": "s.json"}))
        with pytest.raises(ConfigError):
            resolve_credentials(cfg, {"OPENAI_API_KEY": "", "RESEND_API_KEY": "re"})

    def test_bird_env_path_falls_back_to_config(self):
        cfg = validate_config(minimal(
            store={"provider": "file", "path": "s.json"},
            source={"env_path": "~/bird.env"},
        ))
        creds = resolve_credentials(cfg, {"OPENAI_API_KEY": "sk", "RESEND_API_KEY": "re"})
        assert creds["bird_env_path"] == "~/bird.env"


def test_load_env_file(tmp_path, monkeypatch):
    """Values from a .env file fill in unset variables only."""
    env_file = tmp_path / ".env"
    env_file.write_text("BYTESIZE_TEST_A=from_file\nBYTESIZE_TEST_B=from_file\n")
    monkeypatch.setenv("BYTESIZE_TEST_A", "placeholder")
    monkeypatch.delenv("BYTESIZE_TEST_A")
    monkeypatch.setenv("BYTESIZE_TEST_B", "from_env")

    assert load_env(str(env_file)) is True

    assert os.environ["BYTESIZE_TEST_A"] == "from_file"
    assert os.environ["BYTESIZE_TEST_B"] == "from_env"


def test_load_env_missing(tmp_path):
    assert load_env(str(tmp_path / "none.env")) is False
