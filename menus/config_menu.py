import questionary
from config import (
    load_config, validate_config, update_config, reset_to_defaults,
    CONFIG_SCHEMA, SECRET_KEYS
)
from utils.logger import log_error, log_success

# Sentinel: the user backed out of a prompt.
_CANCELLED = object()

CONFIG_CATEGORIES = {
    "Spotify App": ["spotify_client_id", "spotify_client_secret", "spotify_redirect_uri", "spotify_scopes", "spotify_show_dialog"],
    "Session": ["spotify_storage_file", "spotify_http_timeout"],
    "PKCE": ["spotify_verifier_length", "spotify_pkce_max_age", "spotify_verifier_read_retries", "spotify_verifier_retry_delay"],
    "Logging": ["log_level", "log_file"],
}


def config_menu(config: dict) -> dict:
    """
    Show the configuration menu.
    Returns the (possibly updated) config dict.
    """
    while True:
        choice = questionary.select(
            "⚙️ Config Menu — What would you like to do?",
            choices=[
                "View current config",
                "Update a setting",
                "Reset to defaults",
                "Validate configuration",
                "Back"
            ]
        ).ask()

        if choice == "View current config":
            view_config(config)

        elif choice == "Update a setting":
            config = update_setting_menu(config)

        elif choice == "Reset to defaults":
            config = reset_config_menu(config)

        elif choice == "Validate configuration":
            validate_config_menu(config)

        elif choice == "Back" or choice is None:
            break

    return config


def _display_value(key: str, value):
    if key in SECRET_KEYS:
        return "********" if value else "(not set)"
    if isinstance(value, bool):
        return "✓ Enabled" if value else "✗ Disabled"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if value is None:
        return "(none)"
    return value


def view_config(config: dict):
    """Print the settings grouped by area; secrets are masked."""
    print("\n" + "=" * 50)
    print("📋 Current Configuration")
    print("=" * 50)

    for category, keys in CONFIG_CATEGORIES.items():
        print(f"\n{category}:")
        for key in keys:
            if key in config:
                print(f"  {key}: {_display_value(key, config[key])}")

    print("\n" + "=" * 50)
    input("\nPress Enter to continue...")


def _nullable(schema: dict) -> bool:
    expected_type = schema.get("type")
    return isinstance(expected_type, tuple) and type(None) in expected_type


def _prompt_number(key: str, schema: dict, current_value):
    bounds = f"{schema.get('min', 0)}-{schema.get('max', 9999)}"
    hint = f"{bounds}, blank = none" if _nullable(schema) else bounds
    raw = questionary.text(
        f"Enter new value for {key} ({hint}):",
        default="" if current_value is None else str(current_value)
    ).ask()

    if raw is None:
        return _CANCELLED
    if not raw.strip() and _nullable(schema):
        return None
    try:
        return int(raw) if schema.get("type") is int else float(raw)
    except ValueError:
        log_error("Invalid number format")
        return _CANCELLED


def _prompt_value(key: str, schema: dict, current_value):
    """Ask for a new value in the shape the schema expects."""
    expected_type = schema.get("type")

    if "choices" in schema:
        value = questionary.select(f"Select new value for {key}:", choices=schema["choices"]).ask()

    elif expected_type is bool:
        value = questionary.confirm(
            f"Enable {key}?",
            default=current_value if isinstance(current_value, bool) else False
        ).ask()

    elif expected_type is list:
        raw = questionary.text(
            f"Enter new values for {key} (space or comma separated):",
            default=" ".join(current_value) if isinstance(current_value, list) else ""
        ).ask()
        value = None if raw is None else [s for s in raw.replace(",", " ").split() if s]

    elif expected_type is int or isinstance(expected_type, tuple):
        return _prompt_number(key, schema, current_value)

    elif key in SECRET_KEYS:
        value = questionary.password(f"Enter new value for {key}:").ask()

    else:
        value = questionary.text(f"Enter new value for {key}:", default=str(current_value or "")).ask()

    return _CANCELLED if value is None else value


def update_setting_menu(config: dict) -> dict:
    """Pick one setting, prompt for its new value and save it."""
    key = questionary.select(
        "Select setting to update:",
        choices=list(CONFIG_SCHEMA.keys()) + ["Back"]
    ).ask()

    if key == "Back" or key is None:
        return config

    current_value = config.get(key)
    print(f"\nCurrent value: {_display_value(key, current_value)}")

    new_value = _prompt_value(key, CONFIG_SCHEMA[key], current_value)
    if new_value is _CANCELLED:
        return config

    success, message = update_config(key, new_value)
    if success:
        log_success(message)
        config[key] = new_value
    else:
        log_error(message)

    return config


def reset_config_menu(config: dict) -> dict:
    """Reset config.json to defaults after confirmation."""
    confirm = questionary.confirm(
        "⚠️ Reset all settings to defaults? This cannot be undone.",
        default=False
    ).ask()

    if not confirm:
        return config

    success, message = reset_to_defaults()
    if not success:
        log_error(message)
        return config

    log_success(message)
    return load_config()


def validate_config_menu(config: dict):
    """Run validate_config on the in-memory config and list the problems."""
    is_valid, errors = validate_config(config)

    print("\n" + "=" * 50)
    print("🔍 Configuration Validation")
    print("=" * 50)

    if is_valid:
        log_success("Configuration is valid! ✓")
    else:
        log_error("Configuration has errors:")
        for error in errors:
            print(f"  ✗ {error}")

    print("=" * 50)
    input("\nPress Enter to continue...")
