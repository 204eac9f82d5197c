"""
Configuration loading: config.yaml merged over defaults, then environment overrides.
"""

import copy
import os

import yaml
from dotenv import load_dotenv

from swolegen.errors import ConfigurationError

DEFAULT_CONFIG = {
    "llm": {
        "provider": "anthropic",
        "model": "claude-sonnet-4-5",
        "api_key_env": "ANTHROPIC_API_KEY",
        "retries": 3,
        "max_fetch_bytes": 65536,
        "timeout": 120,
        "max_tokens": 8000,
        "debug": False,
        "feed_rules_back": True,
    },
    "strava": {
        "activity_days": 7,
    },
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


def _merge(base, override):
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_int(name):
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name):
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def apply_env_overrides(config):
    llm = config["llm"]

    retries = _env_int("LLM_RETRIES")
    if retries is not None:
        llm["retries"] = retries

    max_fetch_bytes = _env_int("LLM_MAX_FETCH_BYTES")
    if max_fetch_bytes is not None:
        llm["max_fetch_bytes"] = max_fetch_bytes

    model = os.getenv("LLM_MODEL_ANALYZER")
    if model:
        llm["model"] = model

    debug = _env_bool("LLM_DEBUG")
    if debug is not None:
        llm["debug"] = debug

    return config


def check_config(config):
    """Reject values the pipeline cannot run with."""
    llm = config["llm"]
    retries = llm.get("retries")
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise ConfigurationError(f"llm.retries must be a non-negative integer, got {retries!r}")

    max_fetch_bytes = llm.get("max_fetch_bytes")
    if isinstance(max_fetch_bytes, bool) or not isinstance(max_fetch_bytes, int) or max_fetch_bytes <= 0:
        raise ConfigurationError(
            f"llm.max_fetch_bytes must be a positive integer, got {max_fetch_bytes!r}"
        )

    days = config["strava"].get("activity_days")
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        raise ConfigurationError(f"strava.activity_days must be a non-negative integer, got {days!r}")


def load_config(path="config.yaml"):
    """
    Load configuration.

    A missing config file is fine (defaults apply); a malformed one is not.

    Raises:
        ConfigurationError: on unreadable YAML or out-of-range values
    """
    load_dotenv()

    file_config = {}
    if path and os.path.exists(path):
        try:
            with open(path, "r") as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"config {path}: {exc}") from exc
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"config {path}: top level must be a mapping")

    config = _merge(DEFAULT_CONFIG, file_config)
    apply_env_overrides(config)
    check_config(config)
    return config
