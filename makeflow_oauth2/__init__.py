"""
makeflow-oauth2

Makeflow OAuth 2.0 authentication for Python web applications.

This package provides:
- A Makeflow strategy: endpoint defaults, code-for-token exchange,
  profile retrieval and normalization
- A Flask extension and blueprint driving the login flow
- ``flask makeflow`` CLI commands for setup and debugging
"""

__version__ = "0.1.0"

from .config import MakeflowConfig, PluginConfig
from .exceptions import (
    AuthenticationFailed,
    ConfigurationError,
    InternalOAuthError,
    MakeflowAuthError,
    ProfileParseError,
)
from .plugin import MakeflowAuthPlugin
from .strategy import MakeflowStrategy, TokenResult

__all__ = [
    "MakeflowConfig",
    "PluginConfig",
    "MakeflowStrategy",
    "TokenResult",
    "MakeflowAuthPlugin",
    "MakeflowAuthError",
    "ConfigurationError",
    "InternalOAuthError",
    "ProfileParseError",
    "AuthenticationFailed",
    "__version__",
]
