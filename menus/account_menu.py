import asyncio
import time

import questionary

from spotify_api.auth import check_spotify_credentials, spotify_app_setup_instructions
from spotify_api.flow import AuthFlowController, AuthState
from spotify_api.session import SessionStore
from utils.logger import log_info, log_warning, log_error, log_success


def _parse_pasted_callback(pasted: str):
    """Accept a full redirect URL, a bare query string or just the code value."""
    pasted = (pasted or "").strip()
    if "://" in pasted or "=" in pasted:
        return pasted
    return {"code": pasted}


def session_status_lines(session: SessionStore) -> list:
    if not session.has_valid_token:
        lines = ["Signed in: NO"]
        if session.has_pending_login:
            lines.append("A login is waiting for its redirect URL (use 'Finish login').")
        return lines

    exp_str = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(session.token_expiration_time / 1000))
    who = session.identity.display_name if session.identity else "(profile not loaded)"
    return [
        f"Signed in: YES ({'guest' if session.is_guest_mode else 'Spotify account'})",
        f"User: {who}",
        f"Token expires at: {exp_str} (in {session.minutes_until_expiration} minutes)",
    ]


def show_setup_help(config: dict) -> None:
    creds = check_spotify_credentials(config)
    log_info("\n" + "=" * 72)
    log_info("SPOTIFY APP SETUP")
    log_info("=" * 72)
    log_info(spotify_app_setup_instructions(redirect_uri=creds.get("redirect_uri") or ""))
    log_info("Current config status:")
    log_info(f"- spotify_client_id: {'SET' if creds.get('client_id') else 'NOT SET'}")
    log_info(f"- spotify_redirect_uri: {creds.get('redirect_uri') or ''}")
    log_info(f"- spotify_scopes: {', '.join(creds.get('scopes') or [])}")
    log_info(f"- guest mode available: {'YES' if creds.get('guest_available') else 'NO'}")
    log_info("")
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
    else:
        log_info(creds.get("message") or "Spotify credentials look OK.")
    log_info("=" * 72 + "\n")


def finish_login(controller: AuthFlowController) -> AuthState:
    """Ask for the redirect URL the browser landed on and run the code exchange."""
    pasted = questionary.text(
        "Paste the full redirect URL (preferred) OR just the code=... value:"
    ).ask()
    if not (pasted or "").strip():
        log_warning("No redirect URL / code provided. The login is still pending.")
        return controller.state

    state = asyncio.run(controller.handle_callback(_parse_pasted_callback(pasted)))
    if state == AuthState.AUTHENTICATED:
        log_success(f"Spotify authentication successful. Token expires in {controller.session.minutes_until_expiration} minutes.")
    elif state == AuthState.ERROR:
        log_error(controller.session.last_error or "Spotify authentication failed.")
        log_info("Tip: start a new login; each redirect URL can only be used once.")
        controller.reset()
    return state


def login(controller: AuthFlowController, config: dict) -> AuthState:
    if controller.session.has_valid_token:
        log_info("Already signed in. Log out first to switch accounts.")
        return controller.state

    creds = check_spotify_credentials(config)
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
        show_setup_help(config)
        return controller.state

    log_info("\n" + "=" * 72)
    log_info("SPOTIFY AUTHENTICATION")
    log_info("=" * 72)
    log_info("1) A browser login will open (or you can copy/paste the URL).")
    log_info("2) After approving, Spotify will redirect you to your redirect_uri.")
    log_info("3) Copy the FULL redirect URL from the browser and paste it back here.")
    log_info("   (You can also quit now and use 'Finish login' later.)")

    url = controller.initiate_login()
    if url is None:
        log_error(controller.session.last_error or "Could not start the login.")
        controller.reset()
        return controller.state

    log_info("")
    log_info(f"Authorize URL:\n{url}")
    log_info("=" * 72)
    return finish_login(controller)


def login_as_guest(controller: AuthFlowController) -> AuthState:
    state = asyncio.run(controller.login_as_guest())
    if state == AuthState.GUEST_AUTHENTICATED:
        log_success("Guest session started. Library features need a real Spotify login.")
    elif state == AuthState.ERROR:
        log_error(controller.session.last_error or "Guest login failed.")
        controller.reset()
    else:
        log_info("Already signed in.")
    return state


def logout(controller: AuthFlowController) -> AuthState:
    confirm = questionary.confirm("Log out and forget the stored session?", default=True).ask()
    if confirm:
        controller.logout()
        log_success("Logged out.")
    return controller.state


def account_menu(controller: AuthFlowController, config: dict) -> None:
    """Sign-in related actions."""
    while True:
        for line in session_status_lines(controller.session):
            log_info(line)

        choice = questionary.select(
            "🔐 Account Menu — What would you like to do?",
            choices=[
                "Log in with Spotify",
                "Finish login (paste redirect URL)",
                "Continue as guest",
                "Log out",
                "Spotify setup help",
                "Back",
            ],
        ).ask()

        if choice == "Log in with Spotify":
            login(controller, config)

        elif choice == "Finish login (paste redirect URL)":
            if not controller.session.has_pending_login and not controller.session.has_valid_token:
                log_warning("No login in progress. Choose 'Log in with Spotify' first.")
                continue
            finish_login(controller)

        elif choice == "Continue as guest":
            login_as_guest(controller)

        elif choice == "Log out":
            logout(controller)

        elif choice == "Spotify setup help":
            show_setup_help(config)

        elif choice == "Back" or choice is None:
            break
