"""
Makeflow authentication strategy.

The strategy authenticates users by delegating to Makeflow using the
OAuth 2.0 authorization code flow. It supplies the Makeflow endpoints,
exchanges the authorization code for an access token, and fetches and
normalizes the user's Makeflow profile.

Example:

    def verify(access_token, refresh_token, profile):
        return find_or_create_user(profile["id"])

    strategy = MakeflowStrategy(
        MakeflowConfig(
            client_id="123-456-789",
            client_secret="shhh-its-a-secret",
            callback_url="https://www.example.net/auth/makeflow/callback",
            scope=("user:info",),
        ),
        verify,
    )

Makeflow exposes two API generations, selected by ``api_version``:

- ``v1``: standard form-encoded token exchange, bearer-authenticated
  ``GET /user/get-info``, profile remapped by :func:`format_profile`
- ``v2``: JSON token exchange with a ``data`` envelope,
  ``POST /access-token/get-user`` with an ``x-access-token`` header,
  profile passed through by :func:`tag_profile`
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, NamedTuple, Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from .config import PROVIDER_NAME, MakeflowConfig
from .exceptions import (
    AuthenticationFailed,
    ConfigurationError,
    InternalOAuthError,
    MakeflowAuthError,
    ProfileParseError,
)

logger = logging.getLogger(__name__)

# Errors raised by httpx, authlib and JSON decoding that we wrap
TRANSPORT_ERRORS = (httpx.HTTPError, AuthlibBaseError, ValueError)


class TokenResult(NamedTuple):
    """Outcome of an authorization code exchange."""

    access_token: Any
    refresh_token: Optional[str]
    params: dict


def _token_value(access_token: Any) -> str:
    """Return the bearer string for an access token or a token payload."""
    if isinstance(access_token, Mapping):
        value = access_token.get("access_token")
        if not value:
            raise InternalOAuthError("Token payload has no access_token")
        return str(value)
    return str(access_token)


def _unwrap_envelope(body: Any, what: str) -> Any:
    """Extract the ``data`` field of a Makeflow JSON response."""
    data = body.get("data") if isinstance(body, Mapping) else None
    # An empty mapping is a valid payload, an empty string or 0 is not
    if data is None or (not data and not isinstance(data, Mapping)):
        raise InternalOAuthError(f"Makeflow response for {what} has no data field")
    return data


class StandardTokenExchange:
    """Generic OAuth2 authorization code exchange, done by authlib."""

    @staticmethod
    def _headers(config: MakeflowConfig) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/x-www-form-urlencoded;charset=UTF-8",
            **config.custom_headers,
        }

    async def __call__(self, config: MakeflowConfig, code: str, params: dict) -> TokenResult:
        async with AsyncOAuth2Client(
            client_id=config.client_id,
            client_secret=config.client_secret,
            token_endpoint_auth_method="client_secret_post",
            redirect_uri=config.callback_url or None,
            headers=config.custom_headers,
        ) as client:
            token = await client.fetch_token(
                config.token_url, headers=self._headers(config), code=code, **params
            )

        access_token = token.get("access_token")
        if not access_token:
            raise InternalOAuthError("Failed to obtain access token")

        extra = {
            k: v for k, v in token.items() if k not in ("access_token", "refresh_token")
        }
        return TokenResult(access_token, token.get("refresh_token"), extra)


class JsonTokenExchange:
    """
    Makeflow v2 token exchange.

    Posts the exchange parameters as a JSON body and reads the token
    payload from the ``data`` envelope of the reply. No refresh token or
    extra parameters are surfaced.
    """

    async def __call__(self, config: MakeflowConfig, code: str, params: dict) -> TokenResult:
        params["client_id"] = config.client_id
        params["secret"] = config.client_secret
        params["code"] = code

        async with httpx.AsyncClient(headers=config.custom_headers) as client:
            resp = await client.post(
                config.token_url,
                json=params,
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()
            body = resp.json()

        return TokenResult(_unwrap_envelope(body, "access token"), None, {})


class GetInfoProfileFetcher:
    """Fetch the raw profile with a bearer-authenticated GET (v1)."""

    path = "/user/get-info"

    async def __call__(self, config: MakeflowConfig, access_token: Any) -> Any:
        token = {"access_token": _token_value(access_token), "token_type": "bearer"}
        async with AsyncOAuth2Client(
            client_id=config.client_id,
            token=token,
            headers=config.custom_headers,
        ) as client:
            resp = await client.get(config.api_url + self.path, headers=config.custom_headers)
            resp.raise_for_status()
            return resp.json()


class AccessTokenProfileFetcher:
    """Fetch the raw profile by posting the token in ``x-access-token`` (v2)."""

    path = "/access-token/get-user"

    async def __call__(self, config: MakeflowConfig, access_token: Any) -> Any:
        async with httpx.AsyncClient(headers=config.custom_headers) as client:
            resp = await client.post(
                config.api_url + self.path,
                headers={"x-access-token": _token_value(access_token)},
            )
            resp.raise_for_status()
            body = resp.json()

        return _unwrap_envelope(body, "user profile")


def format_profile(raw: Any) -> dict:
    """
    Build a normalized profile from a v1 Makeflow user object.

    The profile has the following keys, each present only when Makeflow
    returned the underlying field:

    - ``provider``      always ``makeflow``
    - ``id``            the user's Makeflow ID
    - ``username``      the user's Makeflow username
    - ``display_name``  the name to show for the user (the username)
    - ``emails``        the user's email addresses
    - ``_raw``, ``_json``  the unmodified provider response
    """
    if not isinstance(raw, Mapping):
        raise ProfileParseError(
            f"Expected a JSON object for the Makeflow profile, got {type(raw).__name__}"
        )

    profile = {"provider": PROVIDER_NAME}
    if "id" in raw:
        profile["id"] = raw["id"]
    else:
        logger.warning("Makeflow profile has no id field")
    if "username" in raw:
        profile["username"] = raw["username"]
        profile["display_name"] = raw["username"]
    if raw.get("email"):
        profile["emails"] = [{"value": raw["email"]}]
    profile["_raw"] = raw
    profile["_json"] = raw
    return profile


def tag_profile(raw: Any) -> dict:
    """Mark a v2 Makeflow user object with the provider name, in place."""
    if not isinstance(raw, dict):
        raise ProfileParseError(
            f"Expected a JSON object for the Makeflow profile, got {type(raw).__name__}"
        )
    raw["provider"] = PROVIDER_NAME
    return raw


VARIANTS = {
    "v1": (StandardTokenExchange, GetInfoProfileFetcher, format_profile),
    "v2": (JsonTokenExchange, AccessTokenProfileFetcher, tag_profile),
}

TokenExchange = Callable[[MakeflowConfig, str, dict], Awaitable[TokenResult]]
ProfileFetcher = Callable[[MakeflowConfig, Any], Awaitable[Any]]
ProfileFormatter = Callable[[Any], dict]


class MakeflowStrategy:
    """
    Makeflow OAuth2 strategy.

    Holds the immutable Makeflow configuration and the verify callback,
    and composes three replaceable steps: token exchange, profile fetch
    and profile normalization. Defaults for each step come from
    ``config.api_version``.

    The strategy keeps no state between calls, so one instance can serve
    any number of concurrent authentication attempts.
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        config: MakeflowConfig,
        verify: Callable,
        token_exchange: Optional[TokenExchange] = None,
        profile_fetcher: Optional[ProfileFetcher] = None,
        profile_formatter: Optional[ProfileFormatter] = None,
    ):
        """
        Initialize the strategy.

        Args:
            config: Makeflow client configuration
            verify: Called as ``verify(access_token, refresh_token, profile)``
                after a successful login; returns the application user
                (or an awaitable of it), falsy to reject the login
            token_exchange: Replaces the code-for-token step
            profile_fetcher: Replaces the user-info request
            profile_formatter: Replaces profile normalization
        """
        if not callable(verify):
            raise ConfigurationError("Makeflow strategy requires a verify callback")

        default_exchange, default_fetcher, default_formatter = VARIANTS[config.api_version]

        self.config = config
        self._verify = verify
        self._token_exchange = token_exchange or default_exchange()
        self._profile_fetcher = profile_fetcher or default_fetcher()
        self._profile_formatter = profile_formatter or default_formatter

    def authorization_url(self, state: str) -> str:
        """Build the Makeflow authorization URL the user is redirected to."""
        return prepare_grant_uri(
            self.config.authorization_url,
            self.config.client_id,
            "code",
            redirect_uri=self.config.callback_url or None,
            scope=self.config.scope_string or None,
            state=state,
        )

    async def exchange_code(self, code: str, params: Optional[dict] = None) -> TokenResult:
        """
        Exchange an authorization code for an access token.

        Args:
            code: Authorization code from the Makeflow callback
            params: Extra exchange parameters, updated in place

        Raises:
            InternalOAuthError: If the request or response parsing fails
        """
        params = {} if params is None else params
        logger.debug(f"Exchanging authorization code at {self.config.token_url}")
        try:
            result = await self._token_exchange(self.config, code, params)
        except MakeflowAuthError:
            raise
        except TRANSPORT_ERRORS as e:
            raise InternalOAuthError("Failed to obtain access token", e) from e

        logger.info("Obtained Makeflow access token")
        return result

    async def user_profile(self, access_token: Any) -> dict:
        """
        Retrieve and normalize the user's Makeflow profile.

        Every call performs a fresh request; nothing is cached.

        Raises:
            InternalOAuthError: If the request or response parsing fails
            ProfileParseError: If the profile has an unexpected shape
        """
        try:
            raw = await self._profile_fetcher(self.config, access_token)
        except MakeflowAuthError:
            raise
        except TRANSPORT_ERRORS as e:
            raise InternalOAuthError("Failed to fetch user profile", e) from e

        try:
            profile = self._profile_formatter(raw)
        except MakeflowAuthError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProfileParseError(f"Could not parse Makeflow profile: {e}") from e

        logger.debug(f"Fetched Makeflow profile for id={profile.get('id')}")
        return profile

    async def authenticate(self, code: str) -> Any:
        """
        Run the code exchange, profile fetch and verify callback.

        Returns:
            Whatever the verify callback returned

        Raises:
            MakeflowAuthError: If any step fails or verify rejects the user
        """
        token = await self.exchange_code(code)
        profile = await self.user_profile(token.access_token)

        user = self._verify(token.access_token, token.refresh_token, profile)
        if inspect.isawaitable(user):
            user = await user

        if not user:
            raise AuthenticationFailed(
                f"Makeflow user {profile.get('id')} was rejected by the application"
            )

        logger.info(f"Makeflow user {profile.get('id')} authenticated")
        return user
