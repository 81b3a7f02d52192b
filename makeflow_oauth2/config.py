"""
Configuration management for the Makeflow OAuth2 strategy.

This module holds the Makeflow endpoint defaults, the scope vocabulary,
and the dataclasses used to configure the strategy and its Flask
integration.
"""

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple, Union

from .exceptions import ConfigurationError

PROVIDER_NAME = "makeflow"

DEFAULT_AUTHORIZATION_URL = "https://www.makeflow.com/api/oauth/authorize"
DEFAULT_TOKEN_URL = "https://www.makeflow.com/api/oauth/get-access-token"
DEFAULT_API_URL = "https://www.makeflow.com/api/v1"
DEFAULT_USER_AGENT = "passport-makeflow"

# Permission scopes Makeflow accepts (scope -> description)
VALID_SCOPES = {
    "task:create": "Create tasks",
    "task:update": "Update tasks",
    "task:send-message": "Send messages to tasks",
    "procedure:create": "Create procedures",
    "procedure:update": "Update procedures",
    "user:match": "Match users",
    "user:info": "Read user information",
}

# "v1": standard token exchange, GET /user/get-info, remapped profile
# "v2": JSON token exchange, POST /access-token/get-user, pass-through profile
API_VERSIONS = ("v1", "v2")


def parse_scope(scope: Union[str, Sequence[str], None]) -> Tuple[str, ...]:
    """
    Normalize a scope option into a tuple of scope tokens.

    Accepts a sequence of tokens or a single comma/space separated string.

    Raises:
        ConfigurationError: If any token is not a known Makeflow scope
    """
    if not scope:
        return ()

    if isinstance(scope, str):
        tokens = scope.replace(",", " ").split()
    else:
        tokens = [s.strip() for s in scope if s and s.strip()]

    unknown = [s for s in tokens if s not in VALID_SCOPES]
    if unknown:
        raise ConfigurationError(
            f"Unknown Makeflow scope(s): {', '.join(unknown)}. "
            f"Valid scopes: {', '.join(VALID_SCOPES)}"
        )
    return tuple(tokens)


@dataclass(frozen=True)
class MakeflowConfig:
    """Makeflow OAuth2 client configuration. Immutable once constructed."""

    # Client credentials
    client_id: str
    client_secret: str

    # Where Makeflow redirects after the user grants authorization
    callback_url: str = ""

    scope: Tuple[str, ...] = ()

    # Makeflow endpoints
    authorization_url: str = DEFAULT_AUTHORIZATION_URL
    token_url: str = DEFAULT_TOKEN_URL
    api_url: str = DEFAULT_API_URL

    # Headers sent with every request to Makeflow, read-only once built
    custom_headers: Mapping[str, str] = field(default_factory=dict, hash=False)
    user_agent: Optional[str] = None

    api_version: str = "v1"

    def __post_init__(self):
        if not self.client_id:
            raise ConfigurationError("Makeflow strategy requires a client_id")
        if not self.client_secret:
            raise ConfigurationError("Makeflow strategy requires a client_secret")
        if self.api_version not in API_VERSIONS:
            raise ConfigurationError(
                f"Unknown Makeflow API version: {self.api_version!r} "
                f"(expected one of {', '.join(API_VERSIONS)})"
            )

        # Empty values fall back to the production endpoints
        object.__setattr__(
            self, "authorization_url", self.authorization_url or DEFAULT_AUTHORIZATION_URL
        )
        object.__setattr__(self, "token_url", self.token_url or DEFAULT_TOKEN_URL)
        object.__setattr__(self, "api_url", (self.api_url or DEFAULT_API_URL).rstrip("/"))
        object.__setattr__(self, "scope", parse_scope(self.scope))

        headers = dict(self.custom_headers or {})
        if not headers.get("User-Agent"):
            headers["User-Agent"] = self.user_agent or DEFAULT_USER_AGENT
        object.__setattr__(self, "custom_headers", MappingProxyType(headers))

    @property
    def scope_string(self) -> str:
        """Scopes joined the way they are sent to the authorization endpoint."""
        return " ".join(self.scope)

    @classmethod
    def from_env(cls) -> "MakeflowConfig":
        """Create configuration from environment variables."""
        return cls(
            client_id=os.environ.get("MAKEFLOW_CLIENT_ID", ""),
            client_secret=os.environ.get("MAKEFLOW_CLIENT_SECRET", ""),
            callback_url=os.environ.get("MAKEFLOW_CALLBACK_URL", ""),
            scope=os.environ.get("MAKEFLOW_SCOPE", ""),
            authorization_url=os.environ.get("MAKEFLOW_AUTHORIZATION_URL", ""),
            token_url=os.environ.get("MAKEFLOW_TOKEN_URL", ""),
            api_url=os.environ.get("MAKEFLOW_API_URL", ""),
            user_agent=os.environ.get("MAKEFLOW_USER_AGENT") or None,
            api_version=os.environ.get("MAKEFLOW_API_VERSION", "v1"),
        )


@dataclass
class PluginConfig:
    """Configuration of the Flask integration around the strategy."""

    strategy: MakeflowConfig

    # Mount point of the login/callback blueprint
    url_prefix: str = "/auth/makeflow"

    # Frontend redirect settings
    login_success_redirect: str = "/"
    login_error_redirect: str = "/login?error=auth_failed"

    @classmethod
    def from_env(cls) -> "PluginConfig":
        """Create configuration from environment variables."""
        return cls(
            strategy=MakeflowConfig.from_env(),
            url_prefix=os.environ.get("MAKEFLOW_URL_PREFIX", "/auth/makeflow"),
            login_success_redirect=os.environ.get(
                "MAKEFLOW_LOGIN_SUCCESS_REDIRECT", "/"
            ),
            login_error_redirect=os.environ.get(
                "MAKEFLOW_LOGIN_ERROR_REDIRECT", "/login?error=auth_failed"
            ),
        )
