import asyncio

import questionary

from spotify_api.client import SpotifyClient
from spotify_api.errors import AuthError, SpotifyHTTPError, UnauthenticatedRequest
from spotify_api.flow import AuthFlowController
from utils.logger import log_info, log_warning, log_error


def _run(coro):
    """Run one Web API call; report failures instead of raising."""
    try:
        return asyncio.run(coro)
    except UnauthenticatedRequest:
        log_warning("Not signed in (or the token expired). Use the Account Menu to log in.")
    except SpotifyHTTPError as e:
        if e.status_code in (401, 403):
            log_warning(f"Spotify refused the request ({e.status_code}): {e.message}")
            log_info("Guest sessions cannot read personal data; log in with Spotify for that.")
        else:
            log_error(str(e))
    except AuthError as e:
        log_error(e.message)
    return None


def show_profile(controller: AuthFlowController, client: SpotifyClient) -> None:
    session = controller.session
    if not session.has_valid_token:
        log_warning("Not signed in (or the token expired). Use the Account Menu to log in.")
        return

    identity = _run(controller.load_identity(client))
    if identity is None:
        log_error(session.last_error or "Could not load the Spotify profile.")
        return

    log_info("\n" + "=" * 50)
    log_info(f"👤 {identity.display_name}")
    log_info("=" * 50)
    log_info(f"Spotify ID: {identity.id}")
    if identity.email:
        log_info(f"Email: {identity.email}")
    if identity.country:
        log_info(f"Country: {identity.country}")
    log_info(f"Followers: {identity.follower_count}")
    if identity.profile_url:
        log_info(f"Profile: {identity.profile_url}")
    if identity.avatar_url:
        log_info(f"Avatar: {identity.avatar_url}")
    log_info(f"Token expires in: {session.minutes_until_expiration} minutes")


def show_playlists(client: SpotifyClient) -> None:
    playlists = _run(client.get_user_playlists(max_playlists=200))
    if playlists is None:
        return
    if not playlists:
        log_info("No playlists found for this account.")
        return

    choices = []
    for p in playlists:
        pid = (p.get("id") or "").strip()
        if not pid:
            continue
        name = (p.get("name") or "(unnamed)").strip()
        total = (p.get("tracks") or {}).get("total")
        choices.append(questionary.Choice(title=f"{name} ({total if total is not None else '?'} tracks)", value=pid))
    choices.append(questionary.Choice(title="Back", value=None))

    pid = questionary.select("Select a playlist to inspect:", choices=choices).ask()
    if not pid:
        return

    playlist = _run(client.playlist(pid))
    if not playlist:
        return
    log_info(f"\n🎵 {playlist.get('name')}")
    owner = (playlist.get("owner") or {}).get("display_name")
    if owner:
        log_info(f"Owner: {owner}")
    items = ((playlist.get("tracks") or {}).get("items")) or []
    for i, item in enumerate(items, start=1):
        track = (item or {}).get("track") or {}
        artists = ", ".join(a.get("name", "") for a in track.get("artists") or [] if isinstance(a, dict))
        log_info(f"  {i:>3}. {artists} - {track.get('name')}")


def show_saved_albums(client: SpotifyClient) -> None:
    page = _run(client.current_user_saved_albums(limit=50))
    if page is None:
        return
    items = page.get("items") or []
    if not items:
        log_info("No saved albums.")
        return
    for item in items:
        album = (item or {}).get("album") or {}
        artists = ", ".join(a.get("name", "") for a in album.get("artists") or [] if isinstance(a, dict))
        log_info(f"  💿 {artists} - {album.get('name')} ({(album.get('tracks') or {}).get('total', '?')} tracks)")


def show_new_releases(client: SpotifyClient) -> None:
    page = _run(client.new_releases(limit=20))
    if page is None:
        return
    items = ((page.get("albums") or {}).get("items")) or []
    if not items:
        log_info("No new releases returned.")
        return
    for album in items:
        artists = ", ".join(a.get("name", "") for a in album.get("artists") or [] if isinstance(a, dict))
        log_info(f"  🆕 {artists} - {album.get('name')} ({album.get('release_date', '')})")


def library_menu(controller: AuthFlowController, client: SpotifyClient) -> None:
    """Read-only views over the signed-in account."""
    while True:
        choice = questionary.select(
            "📚 Library Menu — What would you like to see?",
            choices=[
                "My profile",
                "My playlists",
                "My saved albums",
                "New releases",
                "Back",
            ],
        ).ask()

        if choice == "My profile":
            show_profile(controller, client)

        elif choice == "My playlists":
            show_playlists(client)

        elif choice == "My saved albums":
            show_saved_albums(client)

        elif choice == "New releases":
            show_new_releases(client)

        elif choice == "Back" or choice is None:
            break
