"""Tests for configuration loading and validation."""

import pytest

from prdigest_core.config import DEFAULT_CONFIG, load_config, validate_config


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["model"] == "openai"
    assert config["concurrency_limit"] == 2
    assert config["item_timeout"] == 60
    assert config["batch_timeout"] == 900
    assert config["max_batch_size"] == 100
    assert config["store"] == "sqlite"
    assert config["store_path"] == ".prdigest.db"


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".prdigest.yml"
    cfg.write_text("model: anthropic\nconcurrency_limit: 4\nstore: memory\n")
    config = load_config(config_path=str(cfg))
    assert config["model"] == "anthropic"
    assert config["concurrency_limit"] == 4
    assert config["store"] == "memory"


def test_empty_config_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".prdigest.yml"
    cfg.write_text("")
    config = load_config(config_path=str(cfg))
    assert config["concurrency_limit"] == DEFAULT_CONFIG["concurrency_limit"]


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".prdigest.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": "anthropic"})
    assert config["model"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".prdigest.yml"
    cfg.write_text("item_timeout: 30\n")
    config = load_config(config_path=str(cfg), cli_overrides={"item_timeout": None})
    assert config["item_timeout"] == 30


def test_credentials_read_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-tok")
    monkeypatch.setenv("OPENAI_API_KEY", "oa-key")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    config = load_config(config_path=str(tmp_path / "none.yml"))
    assert config["github_token"] == "gh-tok"
    assert config["openai_api_key"] == "oa-key"
    assert config["anthropic_api_key"] is None


def test_defaults_are_valid():
    validate_config(dict(DEFAULT_CONFIG))  # must not raise


@pytest.mark.parametrize(
    "key,value",
    [
        ("model", "llama"),
        ("store", "postgres"),
        ("concurrency_limit", 0),
        ("concurrency_limit", "2"),
        ("concurrency_limit", True),
        ("max_batch_size", -1),
        ("item_timeout", 0),
        ("batch_timeout", "fast"),
    ],
)
def test_invalid_settings_rejected(key, value):
    config = dict(DEFAULT_CONFIG)
    config[key] = value
    with pytest.raises(ValueError, match=key if key not in ("model", "store") else "Unknown"):
        validate_config(config)


def test_fractional_timeouts_allowed():
    config = dict(DEFAULT_CONFIG, item_timeout=0.5, batch_timeout=12.5)
    validate_config(config)  # must not raise
