"""
Flask blueprint driving the Makeflow OAuth2 login flow.

This blueprint provides the following endpoints:
- GET /login - Redirect the user to Makeflow for authorization
- GET /callback - Makeflow callback (receives authorization code)
- GET /logout - Clear the Makeflow session keys
- GET /info - Describe the configured provider
"""

import logging
import secrets

from flask import current_app, jsonify, redirect, request, session, url_for
from flask_smorest import Blueprint

from .exceptions import MakeflowAuthError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "makeflow_oauth2"

# Session keys
STATE_KEY = "makeflow_state"
RETURN_URL_KEY = "makeflow_return_url"
USER_KEY = "makeflow_user"

makeflow_bp = Blueprint(
    "makeflow_auth",
    __name__,
    description="Makeflow OAuth2 authentication endpoints",
)


def get_plugin():
    """Return the MakeflowAuthPlugin registered on the current app."""
    return current_app.extensions[EXTENSION_KEY]


def is_safe_return_url(url: str) -> bool:
    """Only allow redirects to paths on this site."""
    return bool(url) and url.startswith("/") and not url.startswith("//")


@makeflow_bp.route("/login")
def login():
    """
    Initiate the Makeflow authorization flow.

    Query Parameters:
        next: Local path to redirect to after successful login (optional)
    """
    plugin = get_plugin()

    # State for CSRF protection
    state = secrets.token_urlsafe(32)
    session[STATE_KEY] = state

    next_url = request.args.get("next", "")
    if not is_safe_return_url(next_url):
        next_url = plugin.config.login_success_redirect
    session[RETURN_URL_KEY] = next_url

    logger.debug(f"Login: generated state={state[:8]}..., return url={next_url}")

    authorization_url = plugin.strategy.authorization_url(state)
    logger.info("Initiating Makeflow login, redirecting to provider")
    return redirect(authorization_url)


@makeflow_bp.route("/callback")
async def callback():
    """
    Makeflow callback endpoint.

    Validates the state, exchanges the authorization code, fetches the
    profile and hands it to the application's verify callback. The value
    verify returns is stored in the session, so it must be serializable.
    """
    plugin = get_plugin()
    error_redirect = plugin.config.login_error_redirect

    try:
        state = request.args.get("state")
        stored_state = session.pop(STATE_KEY, None)
        if not state or state != stored_state:
            logger.warning("Makeflow state mismatch")
            return redirect(error_redirect)

        error = request.args.get("error")
        if error:
            error_description = request.args.get("error_description", "Unknown error")
            logger.error(f"Makeflow authorization error: {error} - {error_description}")
            return redirect(error_redirect)

        code = request.args.get("code")
        if not code:
            logger.error("No authorization code received")
            return redirect(error_redirect)

        user = await plugin.strategy.authenticate(code)

        session[USER_KEY] = user
        return_url = session.pop(RETURN_URL_KEY, plugin.config.login_success_redirect)
        return redirect(return_url)

    except MakeflowAuthError as e:
        logger.warning(f"Makeflow authentication failed: {e}")
        return redirect(error_redirect)
    except Exception as e:
        logger.exception(f"Error processing Makeflow callback: {e}")
        return redirect(error_redirect)


@makeflow_bp.route("/logout")
def logout():
    """Forget the Makeflow login."""
    for key in (USER_KEY, STATE_KEY, RETURN_URL_KEY):
        session.pop(key, None)

    logger.info("Makeflow user logged out")
    return redirect(get_plugin().config.login_success_redirect)


@makeflow_bp.route("/info")
def auth_info():
    """
    Return information about the configured provider.

    This endpoint can be used by the frontend to display login options.
    """
    strategy = get_plugin().strategy

    return jsonify({
        "provider": strategy.name,
        "login_url": url_for("makeflow_auth.login", _external=True),
        "scope": list(strategy.config.scope),
        "authenticated": USER_KEY in session,
    })
