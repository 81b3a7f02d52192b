"""
Flask extension wiring the Makeflow strategy into an application.
"""

import logging
from typing import Callable, Optional

from flask import Flask

from .blueprint import EXTENSION_KEY, makeflow_bp
from .cli import makeflow_cli
from .config import PluginConfig
from .strategy import MakeflowStrategy

logger = logging.getLogger(__name__)


class MakeflowAuthPlugin:
    """
    Makeflow login for Flask applications.

    Registers the login/callback blueprint and the ``makeflow`` CLI group,
    and owns the MakeflowStrategy used by the blueprint.

    Example:

        def verify(access_token, refresh_token, profile):
            return {"id": profile["id"], "name": profile.get("display_name")}

        makeflow = MakeflowAuthPlugin(app, verify)
    """

    def __init__(
        self,
        app: Flask = None,
        verify: Optional[Callable] = None,
        config: Optional[PluginConfig] = None,
        **strategy_options,
    ):
        """
        Initialize the plugin.

        Args:
            app: Flask application instance (optional, can call init_app later)
            verify: Verify callback handed to the strategy
            config: Plugin configuration (loaded from the environment if omitted)
            strategy_options: Extra keyword arguments for MakeflowStrategy
        """
        self.app = app
        self.verify = verify
        self.config = config
        self.strategy: MakeflowStrategy = None
        self._strategy_options = strategy_options

        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask, verify: Optional[Callable] = None):
        """
        Initialize the plugin with a Flask application.

        Raises:
            ConfigurationError: If the Makeflow configuration is invalid
        """
        self.app = app
        if verify is not None:
            self.verify = verify

        if self.config is None:
            self.config = PluginConfig.from_env()

        self.strategy = MakeflowStrategy(
            self.config.strategy, self.verify, **self._strategy_options
        )

        if not app.config.get("SECRET_KEY"):
            logger.warning(
                "Flask SECRET_KEY not set. The Makeflow login flow needs sessions."
            )
        # Makeflow redirects back cross-site, Lax keeps the session cookie
        if app.config.get("SESSION_COOKIE_SAMESITE") is None:
            app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

        app.extensions[EXTENSION_KEY] = self
        app.register_blueprint(makeflow_bp, url_prefix=self.config.url_prefix)
        app.cli.add_command(makeflow_cli)

        logger.info("Makeflow OAuth2 plugin initialized")
        logger.info(f"Authorization URL: {self.config.strategy.authorization_url}")
        logger.debug(f"Makeflow API version: {self.config.strategy.api_version}")
