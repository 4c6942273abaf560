import json
import os
from typing import Any, Dict, Mapping, Optional

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify app credentials (Authorization Code flow with client secret)
    "spotify_client_id": "",
    "spotify_client_secret": "",
    "spotify_scopes": [
        "playlist-modify-public",
        "playlist-read-collaborative",
    ],

    # Public base URL of this service; the OAuth redirect is <service_url>/authorize/
    "service_url": "http://localhost:8888",

    # Target playlist. Leave empty to pick it in the setup menu (it is then
    # stored next to the token).
    "spotify_playlist_id": "",

    "token_file": "spotify.token",

    # Retry behavior for Spotify API calls
    "spotify_max_retries": 5,
    "spotify_refresh_statuses": [401],
    "spotify_retry_statuses": [403],

    # Seconds before the playlist track cache is reloaded (0 = never)
    "playlist_cache_max_age": 0,

    "log_level": "INFO",
    "log_file": "",
}

# Environment variables override the file (same names the service has always used).
ENV_OVERRIDES = {
    "CLIENT_ID": "spotify_client_id",
    "CLIENT_SECRET": "spotify_client_secret",
    "URL": "service_url",
    "PLAYLIST_ID": "spotify_playlist_id",
}

REQUIRED_KEYS = ("spotify_client_id", "spotify_client_secret", "service_url")

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": True},
    "spotify_client_secret": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "service_url": {"type": str, "required": True},
    "spotify_playlist_id": {"type": str, "required": False},
    "token_file": {"type": str, "required": True},
    "spotify_max_retries": {"type": int, "required": False, "min": 1, "max": 10},
    "spotify_refresh_statuses": {"type": list, "required": False, "element_type": int},
    "spotify_retry_statuses": {"type": list, "required": False, "element_type": int},
    "playlist_cache_max_age": {"type": (int, float), "required": False, "min": 0, "max": 604800},
    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
    "log_file": {"type": str, "required": False},
}


def apply_env_overrides(config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Overlay non-empty ENV_OVERRIDES variables onto config (in place)."""
    environ = os.environ if environ is None else environ
    for env_key, config_key in ENV_OVERRIDES.items():
        value = str(environ.get(env_key, "") or "").strip()
        if value:
            config[config_key] = value
    return config


def load_config(path: str = CONFIG_PATH, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load configuration from file (if present), applying defaults and env overrides."""
    config: Dict[str, Any] = {}
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
        if not isinstance(config, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return apply_env_overrides(config, environ)


def missing_credentials(config: Dict[str, Any]) -> list[str]:
    """Return the required keys that are unset or blank."""
    return [key for key in REQUIRED_KEYS if not str((config or {}).get(key, "") or "").strip()]


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # Type check (bool is an int subclass; don't let it pass as a number)
        expected_type = rules.get("type")
        if expected_type and (not isinstance(value, expected_type) or (isinstance(value, bool) and expected_type is not bool)):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    for key in missing_credentials(config):
        if CONFIG_SCHEMA.get(key, {}).get("type") is str and key in config:
            errors.append(f"Field '{key}' must not be empty")

    return len(errors) == 0, errors
