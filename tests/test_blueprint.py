"""Tests for the Flask login flow around the Makeflow strategy."""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest
import respx
from flask import Flask
from httpx import Response

from makeflow_oauth2 import (
    InternalOAuthError,
    MakeflowAuthPlugin,
    MakeflowConfig,
    MakeflowStrategy,
    PluginConfig,
)
from makeflow_oauth2.blueprint import RETURN_URL_KEY, STATE_KEY, USER_KEY, is_safe_return_url
from makeflow_oauth2.config import DEFAULT_API_URL, DEFAULT_TOKEN_URL

ERROR_REDIRECT = "/login?error=auth_failed"


def set_session(client, **values):
    with client.session_transaction() as sess:
        sess.update(values)


def get_session(client):
    with client.session_transaction() as sess:
        return dict(sess)


def test_plugin_registers_strategy(app):
    plugin = app.extensions["makeflow_oauth2"]
    assert isinstance(plugin, MakeflowAuthPlugin)
    assert isinstance(plugin.strategy, MakeflowStrategy)
    assert "makeflow" in app.cli.commands
    assert app.config["SESSION_COOKIE_SAMESITE"] == "Lax"


def test_plugin_init_app_later(v2_config, verify):
    plugin = MakeflowAuthPlugin(config=PluginConfig(strategy=v2_config, url_prefix="/mf"))
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "test-secret"

    plugin.init_app(app, verify)

    assert plugin.app is app
    assert app.test_client().get("/mf/login").status_code == 302


def test_plugin_loads_config_from_env(monkeypatch, verify):
    monkeypatch.setenv("MAKEFLOW_CLIENT_ID", "env-id")
    monkeypatch.setenv("MAKEFLOW_CLIENT_SECRET", "env-secret")
    app = Flask(__name__)

    plugin = MakeflowAuthPlugin(app, verify)

    assert plugin.strategy.config.client_id == "env-id"


def test_login_redirects_to_makeflow(client):
    resp = client.get("/auth/makeflow/login?next=/dashboard")

    assert resp.status_code == 302
    location = resp.headers["Location"]
    assert location.startswith("https://www.makeflow.com/api/oauth/authorize?")

    session = get_session(client)
    query = parse_qs(urlparse(location).query)
    assert query["state"] == [session[STATE_KEY]]
    assert query["client_id"] == ["client-123"]
    assert session[RETURN_URL_KEY] == "/dashboard"


@pytest.mark.parametrize("next_url", ["https://evil.example.com/", "//evil.example.com"])
def test_login_ignores_foreign_return_url(client, next_url):
    client.get("/auth/makeflow/login", query_string={"next": next_url})
    assert get_session(client)[RETURN_URL_KEY] == "/"


@pytest.mark.parametrize("url,expected", [
    ("/dashboard", True),
    ("/", True),
    ("", False),
    ("//evil.example.com", False),
    ("https://evil.example.com", False),
])
def test_is_safe_return_url(url, expected):
    assert is_safe_return_url(url) is expected


def test_callback_success(client, verify):
    set_session(client, **{STATE_KEY: "abc", RETURN_URL_KEY: "/dashboard"})

    with respx.mock:
        respx.post(DEFAULT_TOKEN_URL).mock(
            return_value=Response(200, json={"data": {"access_token": "T"}})
        )
        respx.post(f"{DEFAULT_API_URL}/access-token/get-user").mock(
            return_value=Response(200, json={"data": {"id": "42", "username": "alice"}})
        )
        resp = client.get("/auth/makeflow/callback?state=abc&code=the-code")

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard")
    session = get_session(client)
    assert session[USER_KEY] == {"id": "42", "name": "alice"}
    assert STATE_KEY not in session
    assert verify.calls[0][2]["provider"] == "makeflow"


def test_callback_state_mismatch(app, client):
    set_session(client, **{STATE_KEY: "abc"})
    authenticate = AsyncMock()
    app.extensions["makeflow_oauth2"].strategy.authenticate = authenticate

    resp = client.get("/auth/makeflow/callback?state=other&code=the-code")

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith(ERROR_REDIRECT)
    authenticate.assert_not_called()


def test_callback_without_stored_state(client):
    resp = client.get("/auth/makeflow/callback?state=abc&code=the-code")
    assert resp.headers["Location"].endswith(ERROR_REDIRECT)


def test_callback_provider_error(client):
    set_session(client, **{STATE_KEY: "abc"})
    resp = client.get("/auth/makeflow/callback?state=abc&error=access_denied")
    assert resp.headers["Location"].endswith(ERROR_REDIRECT)


def test_callback_without_code(client):
    set_session(client, **{STATE_KEY: "abc"})
    resp = client.get("/auth/makeflow/callback?state=abc")
    assert resp.headers["Location"].endswith(ERROR_REDIRECT)


def test_callback_authentication_error(app, client):
    set_session(client, **{STATE_KEY: "abc"})
    app.extensions["makeflow_oauth2"].strategy.authenticate = AsyncMock(
        side_effect=InternalOAuthError("Failed to obtain access token")
    )

    resp = client.get("/auth/makeflow/callback?state=abc&code=the-code")

    assert resp.headers["Location"].endswith(ERROR_REDIRECT)
    assert USER_KEY not in get_session(client)


def test_callback_verify_error(v2_config):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "test-secret"

    def verify(access_token, refresh_token, profile):
        raise RuntimeError("database down")

    plugin = MakeflowAuthPlugin(
        app,
        verify,
        PluginConfig(strategy=v2_config),
        token_exchange=AsyncMock(),
        profile_fetcher=AsyncMock(return_value={"id": "42"}),
    )
    client = app.test_client()
    set_session(client, **{STATE_KEY: "abc"})

    resp = client.get("/auth/makeflow/callback?state=abc&code=the-code")

    assert resp.headers["Location"].endswith(ERROR_REDIRECT)
    plugin.strategy._profile_fetcher.assert_awaited_once()


def test_logout(client):
    set_session(client, **{USER_KEY: {"id": "42"}, "other": "kept"})

    resp = client.get("/auth/makeflow/logout")

    assert resp.status_code == 302
    session = get_session(client)
    assert USER_KEY not in session
    assert session["other"] == "kept"


def test_info(client):
    resp = client.get("/auth/makeflow/info")

    assert resp.status_code == 200
    assert resp.get_json() == {
        "provider": "makeflow",
        "login_url": "http://localhost/auth/makeflow/login",
        "scope": [],
        "authenticated": False,
    }


def test_info_reports_scope(verify):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "test-secret"
    config = MakeflowConfig(client_id="id", client_secret="secret", scope="user:info task:create")
    MakeflowAuthPlugin(app, verify, PluginConfig(strategy=config))

    data = app.test_client().get("/auth/makeflow/info").get_json()

    assert data["scope"] == ["user:info", "task:create"]
