"""Liquid Book market maker package initialization"""

import os
from pathlib import Path
from typing import Union
import re

import yaml

__version__ = "0.1.0"

CONFIG_ENV = "LIQUIDBOOK_CONFIG"


def _validate_api_key(key: str) -> str:
    """Validate and clean API key format."""
    # Remove any whitespace
    key = key.strip()

    # Binance API keys are 64 characters, some sub-accounts issue up to 72
    if len(key) < 64 or len(key) > 72:
        raise ValueError(f"API key must be between 64 and 72 characters long, got {len(key)}")

    if not re.match(r'^[a-zA-Z0-9]+$', key):
        raise ValueError("API key must contain only alphanumeric characters (a-z, A-Z, 0-9)")

    return key


def _resolve_credentials(exchange: dict) -> None:
    """Fill ``api_key`` / ``api_secret`` from the environment variables named in the config."""
    for field, env_field, default_env in (
        ("api_key", "api_key_env", "BINANCE_API_KEY"),
        ("api_secret", "api_secret_env", "BINANCE_SECRET_KEY"),
    ):
        if not exchange.get(field):
            value = os.environ.get(exchange.get(env_field, default_env))
            if value:
                exchange[field] = value
        if exchange.get(field):
            exchange[field] = _validate_api_key(exchange[field])


def load_config(path: Union[str, Path, None] = None) -> dict:
    """Load and parse the YAML configuration.

    Parameters
    ----------
    path
        Path to a YAML file. If *None*, ``$LIQUIDBOOK_CONFIG`` is used, then
        ``config.yaml`` in the package directory.

    Returns
    -------
    dict
        Parsed configuration dictionary, with API credentials resolved from
        the environment.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV) or Path(__file__).with_name("config.yaml")
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    for section in ("exchange", "trading"):
        if section not in config:
            raise ValueError(f"Missing required config section {section!r} in {path}")

    _resolve_credentials(config["exchange"])
    return config
