"""
Configuration loading and validation for bytesize-digest.

Handles loading, parsing, and validating the bytesize-digest configuration
file. Supports version checking, required field validation, and defaults
merging.

Secrets never live in the config file. API keys and the Supabase project
are read from environment variables (optionally from a .env file) and
checked once at startup by resolve_credentials(), so a missing key aborts
the run before any work is done.
"""

import copy
import json
import os
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError, ErrorCode
from .utils import get_timezone

# Expected configuration version
EXPECTED_CONFIG_VERSION = 1

CONFIG_SEARCH_PATHS = [
    "./bytesize-digest.json",
    "./config/bytesize-digest.json",
    "~/.config/bytesize-digest/config.json",
]

# Environment variables holding secrets, per provider
LLM_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
}
DELIVERY_KEY_VARS = {
    "resend": "RESEND_API_KEY",
}
STORE_KEY_VARS = {
    "supabase": ["SUPABASE_URL", "SUPABASE_KEY"],
    "file": [],
}

# Default configuration values
DEFAULT_CONFIG = {
    "timezone": "UTC",
    "title": "ByteSized News",
    "source": {
        "provider": "bird",
        "env_path": None,
        "timeout": 30,
    },
    "fetch": {
        "page_size": 20,
        "max_pages": 3,
        "page_timeout_seconds": 5.0,
        "page_delay_seconds": 0.5,
        "max_workers": 8,
    },
    "llm": {
        "provider": "openai",
        "model": None,
        "temperature": 0.7,
        "max_tokens": 300,
        "max_workers": 4,
    },
    "delivery": {
        "provider": "resend",
        "from": "ByteSize <hello@autodm.in>",
        "subject": "Your Daily Twitter Digest",
        "min_send_interval_seconds": 0.5,
    },
    "retry": {
        "max_retries": 3,
        "initial_delay_seconds": 1.0,
    },
    "run": {
        "max_workers": 8,
        "timeout_seconds": None,
        "send_grace_seconds": 30.0,
    },
    "cache": {
        "path": None,
    },
    "logging": {
        "level": "INFO",
        "file": "data/bytesize-digest.log",
        "max_bytes": 5 * 1024 * 1024,
        "backup_count": 3,
    },
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate configuration file.

    Args:
        config_path: Optional path to config file. If None, searches default locations.

    Returns:
        Validated configuration dictionary with defaults merged.

    Raises:
        ConfigError: If config file not found, invalid, or fails validation.
    """
    config_path = find_config_file(config_path)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw_config = json.load(f)
    except FileNotFoundError:
        raise ConfigError(ErrorCode.CONFIG_FILE_NOT_FOUND)
    except json.JSONDecodeError:
        raise ConfigError(ErrorCode.CONFIG_INVALID_JSON)
    except PermissionError:
        raise ConfigError(ErrorCode.WRITE_PERMISSION_DENIED)

    return validate_config(raw_config)


def validate_config(raw_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a parsed config and merge it over the defaults.

    Raises:
        ConfigError: If the config fails validation
    """
    if not isinstance(raw_config, dict):
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, "Config must be a JSON object")

    config_version = raw_config.get("version")
    if config_version != EXPECTED_CONFIG_VERSION:
        raise ConfigError(
            ErrorCode.CONFIG_VERSION_MISMATCH,
            f"Expected version {EXPECTED_CONFIG_VERSION}, got {config_version}"
        )

    _validate_required_fields(raw_config)

    config = _merge_defaults(raw_config)

    _validate_config_values(config)

    return config


def find_config_file(config_path: Optional[str] = None) -> str:
    """
    Find config file in search order.

    Args:
        config_path: Explicit path from --config flag

    Returns:
        Path to config file

    Raises:
        ConfigError: If no config file found
    """
    if config_path:
        if os.path.exists(config_path):
            return config_path
        raise ConfigError(ErrorCode.CONFIG_FILE_NOT_FOUND, f"Config file not found: {config_path}")

    for path in CONFIG_SEARCH_PATHS:
        expanded = os.path.expanduser(path)
        if os.path.exists(expanded):
            return expanded

    raise ConfigError(ErrorCode.CONFIG_FILE_NOT_FOUND)


def load_env(env_path: Optional[str] = None) -> bool:
    """
    Load a .env file into the process environment.

    Existing environment variables win over the file.

    Returns:
        True if a file was loaded
    """
    env_paths = [env_path] if env_path else [
        ".env",
        os.path.join(os.path.dirname(__file__), '..', '..', '.env'),
    ]

    for path in env_paths:
        expanded = os.path.abspath(os.path.expanduser(path))
        if os.path.exists(expanded):
            load_dotenv(expanded, override=False)
            return True
    return False


def resolve_credentials(
    config: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Optional[str]]:
    """
    Read every secret the configured providers need.

    Args:
        config: Validated configuration
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Dict with llm_api_key, resend_api_key, supabase_url, supabase_key and
        bird_env_path (None where not needed)

    Raises:
        ConfigError: CONFIG_MISSING_CREDENTIALS naming every missing variable
    """
    env = os.environ if environ is None else environ
    missing = required_env_vars(config)
    missing = [name for name in missing if not env.get(name)]

    if missing:
        raise ConfigError(
            ErrorCode.CONFIG_MISSING_CREDENTIALS,
            f"Missing environment variables: {', '.join(missing)}"
        )

    llm_var = LLM_KEY_VARS.get(config["llm"]["provider"])
    delivery_var = DELIVERY_KEY_VARS.get(config["delivery"]["provider"])

    return {
        "llm_api_key": env.get(llm_var) if llm_var else None,
        "resend_api_key": env.get(delivery_var) if delivery_var else None,
        "supabase_url": env.get("SUPABASE_URL"),
        "supabase_key": env.get("SUPABASE_KEY"),
        "bird_env_path": env.get("BIRD_ENV_PATH") or config["source"].get("env_path"),
    }


def required_env_vars(config: Dict[str, Any]) -> List[str]:
    """Environment variables the configured providers require."""
    names = []

    llm_var = LLM_KEY_VARS.get(config["llm"]["provider"])
    if llm_var:
        names.append(llm_var)

    delivery_var = DELIVERY_KEY_VARS.get(config["delivery"]["provider"])
    if delivery_var:
        names.append(delivery_var)

    names.extend(STORE_KEY_VARS.get(config["store"]["provider"], []))
    return names


def _validate_required_fields(config: Dict[str, Any]) -> None:
    """Validate that all required fields are present."""
    for field in ["version", "store"]:
        if field not in config:
            raise ConfigError(
                ErrorCode.CONFIG_MISSING_REQUIRED_FIELD,
                f"Required field '{field}' missing"
            )

    if not isinstance(config["store"], dict):
        raise ConfigError(
            ErrorCode.CONFIG_INVALID_VALUE,
            "Field 'store' must be an object"
        )

    if "provider" not in config["store"]:
        raise ConfigError(
            ErrorCode.CONFIG_MISSING_REQUIRED_FIELD,
            "Field 'store' missing required field 'provider'"
        )


def _validate_config_values(config: Dict[str, Any]) -> None:
    """Validate configuration field values."""
    store_provider = config["store"]["provider"]
    if store_provider not in STORE_KEY_VARS:
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, f"Unknown store provider: {store_provider}")

    if config["llm"]["provider"] not in LLM_KEY_VARS:
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, f"Unknown LLM provider: {config['llm']['provider']}")

    if config["delivery"]["provider"] not in DELIVERY_KEY_VARS:
        raise ConfigError(
            ErrorCode.CONFIG_INVALID_VALUE,
            f"Unknown delivery provider: {config['delivery']['provider']}"
        )

    try:
        get_timezone(config["timezone"])
    except ValueError:
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, f"Unknown timezone: {config['timezone']}")

    fetch = config["fetch"]
    for field in ["page_size", "max_pages", "max_workers"]:
        if not isinstance(fetch[field], int) or fetch[field] <= 0:
            raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, f"fetch.{field} must be a positive integer")
    _check_seconds(fetch["page_timeout_seconds"], "fetch.page_timeout_seconds", allow_zero=False)
    _check_seconds(fetch["page_delay_seconds"], "fetch.page_delay_seconds")

    retry = config["retry"]
    if not isinstance(retry["max_retries"], int) or retry["max_retries"] < 0:
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, "retry.max_retries must be a non-negative integer")
    _check_seconds(retry["initial_delay_seconds"], "retry.initial_delay_seconds")

    _check_seconds(config["delivery"]["min_send_interval_seconds"], "delivery.min_send_interval_seconds")

    max_tokens = config["llm"]["max_tokens"]
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, "llm.max_tokens must be a positive integer")

    run = config["run"]
    if not isinstance(run["max_workers"], int) or run["max_workers"] <= 0:
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, "run.max_workers must be a positive integer")
    if run["timeout_seconds"] is not None:
        _check_seconds(run["timeout_seconds"], "run.timeout_seconds", allow_zero=False)
    _check_seconds(run["send_grace_seconds"], "run.send_grace_seconds")

    if not isinstance(config["logging"].get("level"), str):
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, "logging.level must be a level name")


def _check_seconds(value: Any, field: str, allow_zero: bool = True) -> None:
    """Require a non-negative number (positive unless allow_zero)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, f"{field} must be a number of seconds")
    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "cannot be negative" if allow_zero else "must be positive"
        raise ConfigError(ErrorCode.CONFIG_INVALID_VALUE, f"{field} {qualifier}")

def _merge_defaults(raw_config: Dict[str, Any]) -> Dict[str, Any]:
    """Merge user config with defaults."""
    return _deep_merge(DEFAULT_CONFIG, raw_config)


def _deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries without mutating either."""
    result = copy.deepcopy(base)

    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)

    return result
