import json
from config import load_config
from utils.logger import setup_logging, log_debug, log_info, log_error
from menus.main_menu import main_menu
from menus.account_menu import account_menu
from menus.library_menu import library_menu
from menus.config_menu import config_menu
from spotify_api import AuthFlowController, JsonFileStorage, SessionStore, SpotifyClient


def build_session(config: dict):
    """Wire storage, session, flow controller and API client together."""
    storage = JsonFileStorage(config.get("spotify_storage_file") or "data/session.json")
    session = SessionStore(storage)
    controller = AuthFlowController(session, config)
    client = SpotifyClient(session, config)
    return session, controller, client


def report_session_activity(session: SessionStore):
    """Print a progress line whenever the session starts waiting on Spotify."""
    last_seen = {"loading": session.is_loading}

    def listener(store: SessionStore) -> None:
        if store.is_loading and not last_seen["loading"]:
            log_info("⏳ Contacting Spotify...")
        elif last_seen["loading"] and not store.is_loading:
            log_debug("Spotify request finished")
        last_seen["loading"] = store.is_loading

    return session.subscribe(listener)


def status_label(session: SessionStore) -> str:
    if not session.has_valid_token:
        return "login pending" if session.has_pending_login else "signed out"
    if session.is_guest_mode:
        return "guest"
    name = session.identity.display_name if session.identity else "signed in"
    return f"{name}, {session.minutes_until_expiration} min left"


if __name__ == "__main__":
    try:
        config = load_config()
    except FileNotFoundError as e:
        setup_logging()
        log_error(f"Config file not found: {e}")
        log_error("Please create config.json with required settings.")
        exit(1)
    except json.JSONDecodeError as e:
        setup_logging()
        log_error(f"Config file contains invalid JSON: {e}")
        exit(1)
    except Exception as e:
        setup_logging()
        log_error(f"Error loading config: {e}")
        exit(1)

    setup_logging(config.get("log_level", "INFO"), config.get("log_file") or None)

    session, controller, client = build_session(config)
    report_session_activity(session)

    if session.has_valid_token:
        log_info(f"Restored session ({status_label(session)}).")

    while True:
        choice = main_menu(status_label(session))

        if choice == "Account Menu":
            account_menu(controller, config)

        elif choice == "Library Menu":
            library_menu(controller, client)

        elif choice == "Config Menu":
            config = config_menu(config)
            # Settings may point at another storage file or app; pick them up.
            session, controller, client = build_session(config)
            report_session_activity(session)

        elif choice == "Exit":
            log_info("Exiting program...")
            break

        else:
            log_error("Invalid choice.")
