"""Shared fixtures for the Makeflow OAuth2 tests."""

import pytest
from flask import Flask

from makeflow_oauth2 import MakeflowAuthPlugin, MakeflowConfig, MakeflowStrategy, PluginConfig

MAKEFLOW_ENV_VARS = [
    "MAKEFLOW_CLIENT_ID",
    "MAKEFLOW_CLIENT_SECRET",
    "MAKEFLOW_CALLBACK_URL",
    "MAKEFLOW_SCOPE",
    "MAKEFLOW_AUTHORIZATION_URL",
    "MAKEFLOW_TOKEN_URL",
    "MAKEFLOW_API_URL",
    "MAKEFLOW_USER_AGENT",
    "MAKEFLOW_API_VERSION",
    "MAKEFLOW_URL_PREFIX",
    "MAKEFLOW_LOGIN_SUCCESS_REDIRECT",
    "MAKEFLOW_LOGIN_ERROR_REDIRECT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of the tests."""
    for name in MAKEFLOW_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def config():
    return MakeflowConfig(
        client_id="client-123",
        client_secret="shhh-its-a-secret",
        callback_url="https://www.example.net/auth/makeflow/callback",
        scope=("user:info",),
    )


@pytest.fixture()
def v2_config():
    return MakeflowConfig(
        client_id="client-123",
        client_secret="shhh-its-a-secret",
        api_version="v2",
    )


class RecordingVerify:
    """Verify callback that remembers its arguments."""

    def __init__(self, result=None):
        self.calls = []
        self.result = result

    def __call__(self, access_token, refresh_token, profile):
        self.calls.append((access_token, refresh_token, profile))
        if self.result is not None:
            return self.result
        return {"id": profile.get("id"), "name": profile.get("username")}


@pytest.fixture()
def verify():
    return RecordingVerify()


@pytest.fixture()
def strategy(config, verify):
    return MakeflowStrategy(config, verify)


@pytest.fixture()
def v2_strategy(v2_config, verify):
    return MakeflowStrategy(v2_config, verify)


@pytest.fixture()
def app(v2_config, verify):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "test-secret"
    app.config["TESTING"] = True
    MakeflowAuthPlugin(
        app,
        verify,
        PluginConfig(strategy=v2_config, login_error_redirect="/login?error=auth_failed"),
    )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()
