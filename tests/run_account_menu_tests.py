#!/usr/bin/env python3
"""Account and library menu test runner.

Runs lightweight, local tests for:
- Login / finish-login / guest / logout wiring in the account menu
- Error recovery after a denied or broken login
- Library views on top of a mocked Spotify Web API

No network: every HTTP call goes through httpx.MockTransport and no browser
is opened.

Usage:
  cd spotify-session-cli
  python3 -m tests.run_account_menu_tests

"""

from __future__ import annotations

import tempfile
import types
import unittest
import urllib.parse
from dataclasses import dataclass
from typing import Any

# Ensure imports like `spotify_api.*` and `menus.*` work even when executed from repo root.
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import httpx

from spotify_api.auth import SpotifyTokenEndpoint
from spotify_api.client import SpotifyClient
from spotify_api.flow import AuthFlowController, AuthState
from spotify_api.session import SessionStore
from spotify_api.storage import ALL_SESSION_KEYS, MemoryStorage


REDIRECT_URI = "http://127.0.0.1:3000/callback"


# -------------------------
# Simple questionary mocks
# -------------------------

@dataclass
class _Askable:
    """Mimic questionary prompt objects that return a value from .ask().

    A callable value is evaluated on .ask(), so an answer can depend on what
    the code under test did before prompting (e.g. the authorize URL).
    """

    value: Any

    def ask(self):
        return self.value() if callable(self.value) else self.value


class _QuestionaryMock:
    """A minimal questionary stub that returns queued answers and captures args."""

    def __init__(self):
        # Preserve the real Choice constructor so production code can build choices.
        import questionary as _real_questionary

        self.Choice = _real_questionary.Choice

        self._queue: list[Any] = []
        self.prompts: list[str] = []
        self.last_select_choices = None

    def queue(self, *answers: Any) -> None:
        self._queue.extend(list(answers))

    def remaining(self) -> int:
        return len(self._queue)

    def _pop(self, message: str) -> Any:
        self.prompts.append(message)
        if not self._queue:
            raise AssertionError(f"QuestionaryMock queue exhausted at prompt: {message}")
        return self._queue.pop(0)

    def select(self, message: str, choices: list[Any]):
        self.last_select_choices = choices
        return _Askable(self._pop(message))

    def text(self, message: str, default: str = ""):
        return _Askable(self._pop(message))

    def password(self, message: str):
        return _Askable(self._pop(message))

    def confirm(self, message: str, default: bool = True):
        return _Askable(self._pop(message))


class _PatchModuleAttr:
    """Context manager to temporarily patch module attributes."""

    def __init__(self, module: types.ModuleType, attr: str, value: Any):
        self.module = module
        self.attr = attr
        self.value = value
        self._old = None

    def __enter__(self):
        self._old = getattr(self.module, self.attr)
        setattr(self.module, self.attr, self.value)

    def __exit__(self, exc_type, exc, tb):
        setattr(self.module, self.attr, self._old)


# -------------------------
# Helpers
# -------------------------


def _config(**overrides) -> dict:
    config = {
        "spotify_client_id": "cid",
        "spotify_client_secret": "shh",
        "spotify_redirect_uri": REDIRECT_URI,
        "spotify_scopes": ["user-read-private"],
    }
    config.update(overrides)
    return config


class _App:
    """Controller + client over in-memory storage and mocked Spotify endpoints."""

    def __init__(self, config: dict, token_handler=None, api_handler=None):
        self.config = config
        self.storage = MemoryStorage()
        self.session = SessionStore(self.storage)
        self.token_requests: list[httpx.Request] = []
        self.api_requests: list[httpx.Request] = []
        self.navigated: list[str] = []

        token_handler = token_handler or (
            lambda request: httpx.Response(200, json={"access_token": "AT", "token_type": "Bearer", "expires_in": 3600})
        )
        api_handler = api_handler or (lambda request: httpx.Response(200, json={}))

        def record_token(request):
            self.token_requests.append(request)
            return token_handler(request)

        def record_api(request):
            self.api_requests.append(request)
            return api_handler(request)

        self.controller = AuthFlowController(
            self.session,
            config,
            token_endpoint=SpotifyTokenEndpoint(config, transport=httpx.MockTransport(record_token)),
            navigator=self.navigated.append,
        )
        self.client = SpotifyClient(self.session, config, transport=httpx.MockTransport(record_api))

    def redirect_back(self, **extra) -> str:
        """The URL the browser would land on after approving the last authorize URL."""
        state = dict(urllib.parse.parse_qsl(urllib.parse.urlparse(self.navigated[-1]).query))["state"]
        params = {"code": "CODE", "state": state}
        params.update(extra)
        return f"{REDIRECT_URI}?{urllib.parse.urlencode(params)}"


# -------------------------
# Tests
# -------------------------


class TestAccountMenuLogin(unittest.TestCase):
    def test_login_opens_browser_and_exchanges_pasted_url(self):
        import menus.account_menu as am

        app = _App(_config())
        q = _QuestionaryMock()
        q.queue(lambda: app.redirect_back())

        with _PatchModuleAttr(am, "questionary", q):
            state = am.login(app.controller, app.config)

        self.assertEqual(state, AuthState.AUTHENTICATED)
        self.assertEqual(len(app.navigated), 1)
        self.assertEqual(len(app.token_requests), 1)
        self.assertTrue(app.session.has_valid_token)
        self.assertFalse(app.session.has_pending_login)

    def test_empty_paste_keeps_login_pending(self):
        import menus.account_menu as am

        app = _App(_config())
        q = _QuestionaryMock()
        q.queue("")

        with _PatchModuleAttr(am, "questionary", q):
            state = am.login(app.controller, app.config)

        self.assertEqual(state, AuthState.AWAITING_CALLBACK)
        self.assertTrue(app.session.has_pending_login)
        self.assertEqual(app.token_requests, [])

    def test_finish_login_later_from_menu(self):
        import menus.account_menu as am

        app = _App(_config())
        q = _QuestionaryMock()
        q.queue(
            "Log in with Spotify",
            "",  # give up on the first paste
            "Finish login (paste redirect URL)",
            lambda: app.redirect_back(),
            "Back",
        )

        with _PatchModuleAttr(am, "questionary", q):
            am.account_menu(app.controller, app.config)

        self.assertEqual(app.controller.state, AuthState.AUTHENTICATED)
        self.assertEqual(len(app.token_requests), 1)
        self.assertEqual(q.remaining(), 0)

    def test_bare_code_is_accepted(self):
        import menus.account_menu as am

        self.assertEqual(am._parse_pasted_callback("  abc123 "), {"code": "abc123"})
        self.assertEqual(am._parse_pasted_callback("?code=abc"), "?code=abc")

    def test_denied_login_is_reported_and_reset(self):
        import menus.account_menu as am

        app = _App(_config())
        q = _QuestionaryMock()
        q.queue(lambda: f"{REDIRECT_URI}?error=access_denied")

        with _PatchModuleAttr(am, "questionary", q):
            with self.assertLogs("spotify_session", level="ERROR") as logs:
                state = am.login(app.controller, app.config)

        self.assertEqual(state, AuthState.ERROR)
        self.assertTrue(any("access_denied" in line for line in logs.output))
        # reset() leaves ERROR so the next attempt can start cleanly.
        self.assertEqual(app.controller.state, AuthState.UNAUTHENTICATED)
        self.assertEqual(app.token_requests, [])
        self.assertFalse(app.session.has_pending_login)

    def test_missing_client_id_shows_setup_help_without_prompting(self):
        import menus.account_menu as am

        app = _App(_config(spotify_client_id=""))
        q = _QuestionaryMock()

        with _PatchModuleAttr(am, "questionary", q):
            with self.assertLogs("spotify_session", level="INFO") as logs:
                am.login(app.controller, app.config)

        self.assertEqual(q.prompts, [])
        self.assertEqual(app.navigated, [])
        self.assertTrue(any("SPOTIFY APP SETUP" in line for line in logs.output))

    def test_finish_login_without_pending_login_warns(self):
        import menus.account_menu as am

        app = _App(_config())
        q = _QuestionaryMock()
        q.queue("Finish login (paste redirect URL)", "Back")

        with _PatchModuleAttr(am, "questionary", q):
            with self.assertLogs("spotify_session", level="WARNING") as logs:
                am.account_menu(app.controller, app.config)

        self.assertTrue(any("No login in progress" in line for line in logs.output))
        self.assertEqual(len(q.prompts), 2)


class TestAccountMenuGuestAndLogout(unittest.TestCase):
    def test_guest_then_logout(self):
        import menus.account_menu as am

        app = _App(_config())
        q = _QuestionaryMock()
        q.queue("Continue as guest", "Log out", True, "Back")

        with _PatchModuleAttr(am, "questionary", q):
            am.account_menu(app.controller, app.config)

        self.assertEqual(len(app.token_requests), 1)
        self.assertEqual(app.navigated, [])
        self.assertEqual(app.controller.state, AuthState.UNAUTHENTICATED)
        for key in ALL_SESSION_KEYS:
            self.assertNotIn(key, app.storage.keys())

    def test_logout_can_be_cancelled(self):
        import menus.account_menu as am

        app = _App(_config())
        app.session.set_token("AT", 3600)
        q = _QuestionaryMock()
        q.queue(False)

        with _PatchModuleAttr(am, "questionary", q):
            am.logout(app.controller)

        self.assertTrue(app.session.has_valid_token)

    def test_guest_without_secret_reports_error(self):
        import menus.account_menu as am

        app = _App(_config(spotify_client_secret=""))

        with self.assertLogs("spotify_session", level="ERROR"):
            state = am.login_as_guest(app.controller)

        self.assertEqual(state, AuthState.ERROR)
        self.assertEqual(app.controller.state, AuthState.UNAUTHENTICATED)
        self.assertEqual(app.token_requests, [])


class TestLibraryMenu(unittest.TestCase):
    def test_profile_requires_login(self):
        import menus.library_menu as lm

        app = _App(_config())
        with self.assertLogs("spotify_session", level="WARNING"):
            lm.show_profile(app.controller, app.client)
        self.assertEqual(app.api_requests, [])

    def test_profile_is_loaded_into_session(self):
        import menus.library_menu as lm

        app = _App(
            _config(),
            api_handler=lambda request: httpx.Response(
                200, json={"id": "jane", "display_name": "Jane", "email": "jane@example.com"}
            ),
        )
        app.session.set_token("AT", 3600)

        with self.assertLogs("spotify_session", level="INFO") as logs:
            lm.show_profile(app.controller, app.client)

        self.assertEqual(app.session.identity.display_name, "Jane")
        self.assertTrue(any("Jane" in line for line in logs.output))
        self.assertEqual(app.api_requests[0].headers["Authorization"], "Bearer AT")

    def test_playlists_pick_and_inspect(self):
        import menus.library_menu as lm

        def api(request):
            if request.url.path == "/v1/me/playlists":
                return httpx.Response(
                    200,
                    json={"items": [{"id": "p1", "name": "Electro", "tracks": {"total": 1}}], "next": None},
                )
            return httpx.Response(
                200,
                json={
                    "name": "Electro",
                    "owner": {"display_name": "Jane"},
                    "tracks": {"items": [{"track": {"name": "Wolves", "artists": [{"name": "Marshmello"}]}}]},
                },
            )

        app = _App(_config(), api_handler=api)
        app.session.set_token("AT", 3600)
        q = _QuestionaryMock()
        q.queue("p1")

        with _PatchModuleAttr(lm, "questionary", q):
            with self.assertLogs("spotify_session", level="INFO") as logs:
                lm.show_playlists(app.client)

        self.assertEqual([r.url.path for r in app.api_requests], ["/v1/me/playlists", "/v1/playlists/p1"])
        self.assertTrue(any("Marshmello - Wolves" in line for line in logs.output))

    def test_forbidden_request_is_reported_not_raised(self):
        import menus.library_menu as lm

        app = _App(
            _config(),
            api_handler=lambda request: httpx.Response(403, json={"error": {"status": 403, "message": "Forbidden"}}),
        )
        app.session.set_token("AT", 3600)

        with self.assertLogs("spotify_session", level="WARNING") as logs:
            lm.show_saved_albums(app.client)

        self.assertTrue(any("403" in line for line in logs.output))


class TestConfigMenu(unittest.TestCase):
    def setUp(self):
        import config as config_module

        self._config_module = config_module
        self._tmp = tempfile.TemporaryDirectory()
        self._old_path = config_module.CONFIG_PATH
        config_module.CONFIG_PATH = str(Path(self._tmp.name) / "config.json")
        config_module.save_config(dict(config_module.DEFAULT_CONFIG))

    def tearDown(self):
        self._config_module.CONFIG_PATH = self._old_path
        self._tmp.cleanup()

    def test_update_number_setting(self):
        import menus.config_menu as cm

        q = _QuestionaryMock()
        q.queue("spotify_pkce_max_age", "300")

        with _PatchModuleAttr(cm, "questionary", q):
            cfg = cm.update_setting_menu(self._config_module.load_config())

        self.assertEqual(cfg["spotify_pkce_max_age"], 300)
        self.assertEqual(self._config_module.load_config()["spotify_pkce_max_age"], 300)

    def test_blank_timeout_means_no_timeout(self):
        import menus.config_menu as cm

        q = _QuestionaryMock()
        q.queue("spotify_http_timeout", "")

        with _PatchModuleAttr(cm, "questionary", q):
            cfg = cm.update_setting_menu({**self._config_module.load_config(), "spotify_http_timeout": 10.0})

        self.assertIsNone(cfg["spotify_http_timeout"])

    def test_invalid_value_is_not_saved(self):
        import menus.config_menu as cm

        q = _QuestionaryMock()
        q.queue("spotify_verifier_length", "12")

        with _PatchModuleAttr(cm, "questionary", q):
            with self.assertLogs("spotify_session", level="ERROR"):
                cfg = cm.update_setting_menu(self._config_module.load_config())

        self.assertEqual(cfg["spotify_verifier_length"], 64)
        self.assertEqual(self._config_module.load_config()["spotify_verifier_length"], 64)

    def test_secret_uses_password_prompt(self):
        import menus.config_menu as cm

        q = _QuestionaryMock()
        q.queue("spotify_client_secret", "s3cret")

        with _PatchModuleAttr(cm, "questionary", q):
            with self.assertLogs("spotify_session", level="INFO") as logs:
                cm.update_setting_menu(self._config_module.load_config())

        self.assertFalse(any("s3cret" in line for line in logs.output))
        self.assertEqual(self._config_module.load_config()["spotify_client_secret"], "s3cret")


class TestMainMenu(unittest.TestCase):
    def test_cancelled_prompt_means_exit(self):
        import menus.main_menu as mm

        q = _QuestionaryMock()
        q.queue(None)
        with _PatchModuleAttr(mm, "questionary", q):
            self.assertEqual(mm.main_menu("signed out"), "Exit")
        self.assertIn("signed out", q.prompts[0])


if __name__ == "__main__":
    unittest.main(verbosity=2)
