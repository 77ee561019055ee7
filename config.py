import json
import os
import platform
from typing import Any, Dict, List, Tuple

CONFIG_PATH = "config.json"

SECRET_KEYS = ("spotify_client_secret",)

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify app credentials (developer.spotify.com/dashboard)
    "spotify_client_id": "",
    # Only needed for guest mode (client credentials grant)
    "spotify_client_secret": "",
    "spotify_redirect_uri": "http://127.0.0.1:3000/callback",
    "spotify_scopes": [
        "user-top-read",
        "user-read-email",
        "user-read-private",
        "playlist-read-private",
        "user-library-read",
    ],
    "spotify_show_dialog": False,

    # Session persistence
    "spotify_storage_file": "data/session.json",

    # PKCE
    "spotify_verifier_length": 64,
    "spotify_pkce_max_age": 600,
    "spotify_verifier_read_retries": 2,
    "spotify_verifier_retry_delay": 0.05,

    # HTTP (null = no timeout)
    "spotify_http_timeout": None,

    # Logging
    "log_level": "INFO",
    "log_file": "",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": True},
    "spotify_client_secret": {"type": str, "required": False},
    "spotify_redirect_uri": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_show_dialog": {"type": bool, "required": False},

    "spotify_storage_file": {"type": str, "required": False},

    "spotify_verifier_length": {"type": int, "required": False, "min": 43, "max": 128},
    "spotify_pkce_max_age": {"type": int, "required": False, "min": 0, "max": 86400},
    "spotify_verifier_read_retries": {"type": int, "required": False, "min": 0, "max": 10},
    "spotify_verifier_retry_delay": {"type": (int, float), "required": False, "min": 0, "max": 5},

    "spotify_http_timeout": {"type": (int, float, type(None)), "required": False, "min": 0, "max": 600},

    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
    "log_file": {"type": str, "required": False},
}


def load_config() -> Dict[str, Any]:
    """Read config.json and fill in defaults for anything it leaves out."""
    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file {CONFIG_PATH} not found.")

    with open(CONFIG_PATH, "r", encoding="utf-8") as f:
        config = json.load(f)

    if not isinstance(config, dict):
        raise ValueError(f"Config file {CONFIG_PATH} must contain a JSON object.")

    return {**DEFAULT_CONFIG, **config}


def save_config(config: Dict[str, Any]) -> bool:
    """Write config.json; the file may hold the client secret, so it is kept 0600."""
    tmp_path = f"{CONFIG_PATH}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        if platform.system() != "Windows":
            os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, CONFIG_PATH)
        return True
    except OSError as e:
        raise IOError(f"Failed to save config: {e}")


def _type_names(expected_type) -> str:
    if isinstance(expected_type, tuple):
        return "/".join("null" if t is type(None) else t.__name__ for t in expected_type)
    return expected_type.__name__


def _check_field(key: str, value: Any, rules: Dict[str, Any]) -> List[str]:
    expected_type = rules.get("type")
    # bool is an int subclass; True must not pass as a number
    if expected_type and (
        not isinstance(value, expected_type)
        or (isinstance(value, bool) and expected_type is not bool)
    ):
        return [f"Field '{key}' must be {_type_names(expected_type)}, got {type(value).__name__}"]

    if isinstance(value, list) and "element_type" in rules:
        bad_elems = [v for v in value if not isinstance(v, rules["element_type"])]
        if bad_elems:
            return [f"Field '{key}' must be a list of {rules['element_type'].__name__}, got invalid elements: {bad_elems}"]

    problems = []
    if "choices" in rules and value not in rules["choices"]:
        problems.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if "min" in rules and value < rules["min"]:
            problems.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
        if "max" in rules and value > rules["max"]:
            problems.append(f"Field '{key}' must be <= {rules['max']}, got {value}")
    return problems


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate configuration against CONFIG_SCHEMA.
    Returns (is_valid, list_of_errors).
    """
    errors: List[str] = []

    for key, rules in CONFIG_SCHEMA.items():
        if key not in config:
            if rules.get("required", False):
                errors.append(f"Missing required field: {key}")
            continue
        errors.extend(_check_field(key, config[key], rules))

    # Spotify only accepts an absolute redirect URI
    redirect_uri = config.get("spotify_redirect_uri")
    if isinstance(redirect_uri, str) and redirect_uri and "://" not in redirect_uri:
        errors.append(f"Field 'spotify_redirect_uri' must be an absolute URL, got '{redirect_uri}'")

    return len(errors) == 0, errors


def update_config(key: str, value: Any) -> Tuple[bool, str]:
    """
    Validate and persist one setting.
    Returns (success, message); secrets are masked in the message.
    """
    if key not in CONFIG_SCHEMA:
        return False, f"Unknown config key: {key}"

    config = load_config()
    candidate = {**config, key: value}

    is_valid, errors = validate_config(candidate)
    if not is_valid:
        return False, f"Validation failed: {', '.join(errors)}"

    save_config(candidate)

    shown = "********" if key in SECRET_KEYS and value else value
    return True, f"Updated '{key}' to '{shown}'"


def reset_to_defaults() -> Tuple[bool, str]:
    """Overwrite config.json with DEFAULT_CONFIG."""
    try:
        save_config(dict(DEFAULT_CONFIG))
        return True, "Configuration reset to defaults"
    except IOError as e:
        return False, f"Failed to reset config: {e}"


def get_config_value(key: str, default: Any = None) -> Any:
    """Single value from config.json, or ``default`` when the file is missing or unreadable."""
    try:
        return load_config().get(key, default)
    except (OSError, ValueError):
        return default
