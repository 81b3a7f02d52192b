"""
Exceptions raised by the Makeflow OAuth2 strategy.

Every failure surfaces as a subclass of MakeflowAuthError so callers can
treat any of them as fatal to the current authentication attempt.
"""

from typing import Optional


class MakeflowAuthError(Exception):
    """Base class for all Makeflow authentication errors."""


class ConfigurationError(MakeflowAuthError, ValueError):
    """Raised when the strategy is constructed with invalid options."""


class InternalOAuthError(MakeflowAuthError):
    """
    Wraps a failure while talking to the Makeflow OAuth2 or API endpoints.

    Covers transport errors, non-2xx responses, non-JSON bodies and
    responses missing the expected ``data`` envelope.
    """

    def __init__(self, message: str, oauth_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.oauth_error = oauth_error

    def __str__(self) -> str:
        if self.oauth_error is not None:
            return f"{self.message}: {self.oauth_error}"
        return self.message


class ProfileParseError(MakeflowAuthError):
    """Raised when the provider returned a profile we cannot normalize."""


class AuthenticationFailed(MakeflowAuthError):
    """Raised when the verify callback rejects the authenticated user."""
