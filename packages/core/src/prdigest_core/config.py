import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "model": "openai",
    "concurrency_limit": 2,
    "item_timeout": 60,  # seconds per pull request, including commit and review analysis
    "batch_timeout": 900,  # seconds for the whole batch
    "max_batch_size": 100,
    "store": "sqlite",  # "sqlite" | "memory"
    "store_path": ".prdigest.db",
}

SUPPORTED_MODELS = ("anthropic", "openai")
SUPPORTED_STORES = ("sqlite", "memory")


def load_config(config_path: str = ".prdigest.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prdigest.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def validate_config(config: dict) -> None:
    """Raise ValueError when a setting the batch engine depends on is unusable."""
    if config.get("model") not in SUPPORTED_MODELS:
        raise ValueError(f"Unknown model provider: {config.get('model')!r}. Choose 'anthropic' or 'openai'.")
    if config.get("store") not in SUPPORTED_STORES:
        raise ValueError(f"Unknown store: {config.get('store')!r}. Choose 'sqlite' or 'memory'.")
    for key in ("concurrency_limit", "max_batch_size"):
        value = config.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"{key} must be a positive integer, got {value!r}.")
    for key in ("item_timeout", "batch_timeout"):
        value = config.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"{key} must be a positive number of seconds, got {value!r}.")
