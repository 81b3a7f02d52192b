"""
CLI commands for the Makeflow OAuth2 plugin.

These commands help with setup and debugging of the Makeflow
integration. They are available as ``flask makeflow ...``.
"""

import click
import httpx

from .config import VALID_SCOPES, PluginConfig
from .exceptions import ConfigurationError


def _load_config() -> PluginConfig:
    try:
        return PluginConfig.from_env()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@click.group("makeflow")
def makeflow_cli():
    """Makeflow OAuth2 management commands."""
    pass


@makeflow_cli.command("show-config")
def show_config():
    """Display current Makeflow configuration."""
    config = _load_config()
    strategy = config.strategy

    click.echo("=== Makeflow Provider Configuration ===")
    click.echo(f"API Version: {strategy.api_version}")
    click.echo(f"Authorization URL: {strategy.authorization_url}")
    click.echo(f"Token URL: {strategy.token_url}")
    click.echo(f"API URL: {strategy.api_url}")
    click.echo(f"Callback URL: {strategy.callback_url or 'Not configured'}")
    click.echo(f"Scope: {strategy.scope_string or 'None'}")
    click.echo(f"Client ID: {strategy.client_id[:8]}...")
    click.echo("Client Secret: Configured")
    click.echo(f"User-Agent: {strategy.custom_headers['User-Agent']}")

    click.echo("\n=== Flask Integration ===")
    click.echo(f"URL prefix: {config.url_prefix}")
    click.echo(f"Login success redirect: {config.login_success_redirect}")
    click.echo(f"Login error redirect: {config.login_error_redirect}")


@makeflow_cli.command("list-scopes")
def list_scopes():
    """List the permission scopes Makeflow accepts."""
    click.echo("=== Makeflow Scopes ===\n")
    for scope, description in VALID_SCOPES.items():
        click.echo(f"  {scope:<20} {description}")


@makeflow_cli.command("validate-config")
def validate_config():
    """Validate the current configuration."""
    errors = []
    warnings = []

    try:
        config = PluginConfig.from_env()
    except ConfigurationError as e:
        errors.append(str(e))
    else:
        if not config.strategy.callback_url:
            warnings.append(
                "MAKEFLOW_CALLBACK_URL not configured (Makeflow will use the registered one)"
            )
        if not config.strategy.scope:
            warnings.append("MAKEFLOW_SCOPE not configured (no permissions requested)")

    if warnings:
        click.echo("=== Warnings ===")
        for warning in warnings:
            click.echo(f"  ! {warning}")

    if errors:
        click.echo("\n=== Errors ===")
        for error in errors:
            click.echo(f"  x {error}")
        click.echo(f"\nConfiguration validation failed with {len(errors)} error(s)")
        raise SystemExit(1)

    click.echo("\n[OK] Configuration is valid!")


@makeflow_cli.command("test-connection")
def test_connection():
    """Test connectivity to the Makeflow endpoints."""
    strategy = _load_config().strategy

    click.echo("=== Testing Makeflow Connectivity ===\n")

    endpoints = [
        ("Authorization URL", strategy.authorization_url),
        ("Token URL", strategy.token_url),
        ("API URL", strategy.api_url),
    ]
    failed = 0
    with httpx.Client(headers=strategy.custom_headers, timeout=10) as client:
        for label, url in endpoints:
            # Any HTTP answer counts, we are not sending credentials
            try:
                client.head(url, follow_redirects=True)
                click.echo(f"[OK] {label} reachable: {url}")
            except httpx.HTTPError as e:
                failed += 1
                click.echo(f"[FAIL] {label}: {e}")

    if failed:
        raise SystemExit(1)
