"""Typer application for inspecting and exercising the credential pipeline.

The ``attach-credentials`` command works against the JSON identity store
named in the settings file (see :mod:`attach_credentials.config`):

    attach-credentials set alice github --type bearer --payload '{"token": "t"}'
    attach-credentials status alice github
    attach-credentials apply alice github --params '{"url": "/user"}'
    attach-credentials providers

:func:`main` is the console-script entry point. Any
:class:`~attach_credentials.exceptions.AttachCredentialsError` is printed on
stderr and mapped to its ``exit_code``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any, Coroutine, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from attach_credentials import __version__
from attach_credentials.config import load_settings, resolve_credential, store_path
from attach_credentials.exceptions import AttachCredentialsError, ConfigError
from attach_credentials.exit_codes import EXIT_IDENTITY_FAILURE, EXIT_INVALID_USAGE
from attach_credentials.expiry import are_credentials_expired
from attach_credentials.models import CredentialRecord, Settings
from attach_credentials.orchestrator import CredentialResolver
from attach_credentials.refresh import OAuth2TokenStrategy, StrategyRegistry
from attach_credentials.store import JsonFileIdentityStore

app = typer.Typer(
    name="attach-credentials",
    help="Attach stored credentials to outbound HTTP request params.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_err_console = Console(stderr=True)
_state: dict[str, Any] = {"config": None}


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"attach-credentials {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Settings file (default: XDG config dir)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Root callback executed before every sub-command."""
    _state["config"] = config
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _settings() -> Settings:
    return load_settings(_state["config"])


def _store(settings: Settings) -> JsonFileIdentityStore:
    return JsonFileIdentityStore(store_path(settings))


def build_registry(settings: Settings, provider: str) -> StrategyRegistry:
    """Build a registry holding the token strategy for *provider*, if configured.

    Client secrets are resolved only for the requested provider so that
    unrelated ``prompt`` sources never trigger a prompt.
    """
    registry = StrategyRegistry()
    provider_config = settings.providers.get(provider)
    if provider_config is not None:
        registry.register(
            provider,
            OAuth2TokenStrategy(
                provider_config.token_url,
                client_id=(
                    resolve_credential(provider_config.client_id_source)
                    if provider_config.client_id_source
                    else None
                ),
                client_secret=(
                    resolve_credential(provider_config.client_secret_source)
                    if provider_config.client_secret_source
                    else None
                ),
                scopes=provider_config.scopes,
                timeout=provider_config.timeout,
            ),
        )
    return registry


def _parse_json_option(value: Optional[str], option: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{option} is not valid JSON: {exc}") from exc


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coro)
    except AttachCredentialsError as exc:
        _err_console.print(f"[red]Error:[/red] {exc}", highlight=False)
        raise typer.Exit(code=exc.exit_code) from None


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


@app.command("apply")
def apply_command(
    subject: str = typer.Argument(help="Subject (user) id."),
    provider: str = typer.Argument(help="Provider name."),
    params: Optional[str] = typer.Option(
        None, "--params", "-p", help="Base request params as a JSON object."
    ),
    keep_subject: bool = typer.Option(
        False, "--keep-subject", help="Keep the subject property in the output."
    ),
) -> None:
    """Print request params with the subject's credentials attached."""

    async def _apply() -> Any:
        settings = _settings()
        base = _parse_json_option(params, "--params") or {}
        if not isinstance(base, dict):
            raise ConfigError("--params must be a JSON object")
        resolver = CredentialResolver(
            provider_name=provider,
            identity_store=_store(settings),
            strategies=build_registry(settings, provider),
            subject_prop_name=settings.subject_prop_name,
            remove_subject_prop=not keep_subject,
        )
        return await resolver.resolve({**base, settings.subject_prop_name: subject})

    result = _run(_apply())
    typer.echo(json.dumps(result, indent=2, default=str))


@app.command("status")
def status_command(
    subject: str = typer.Argument(help="Subject (user) id."),
    provider: str = typer.Argument(help="Provider name."),
) -> None:
    """Show the stored identity and whether its credentials have expired."""

    async def _status() -> list:
        return await _store(_settings()).query_records(subject, provider)

    identities = _run(_status())
    if not identities:
        _err_console.print(f"No identity for '{subject}' and provider '{provider}'.")
        raise typer.Exit(code=EXIT_IDENTITY_FAILURE)

    table = Table(title=f"{subject} / {provider}")
    table.add_column("Identity")
    table.add_column("Type")
    table.add_column("Expires at")
    table.add_column("Expired")
    for identity in identities:
        if not identity.credentials:
            table.add_row(identity.id, "(placeholder)", "-", "-")
            continue
        record = CredentialRecord.model_validate(identity.credentials)
        kind = record.type or ("oauth2 token" if record.access_token else "?")
        expires = record.expires_at.isoformat() if record.expires_at else "never"
        expired = "yes" if are_credentials_expired(record) else "no"
        table.add_row(identity.id, kind, expires, expired)
    Console().print(table)


@app.command("set")
def set_command(
    subject: str = typer.Argument(help="Subject (user) id."),
    provider: str = typer.Argument(help="Provider name."),
    credential_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Credential type: basic, bearer, cookie, header."
    ),
    payload: Optional[str] = typer.Option(
        None, "--payload", help="Credential payload as a JSON object."
    ),
    credentials: Optional[str] = typer.Option(
        None, "--credentials", help="Full credential record as a JSON object."
    ),
    expires_at: Optional[datetime] = typer.Option(
        None, "--expires-at", help="Expiry time (ISO 8601)."
    ),
) -> None:
    """Create or replace the stored credentials for a subject and provider."""
    if credentials is None and credential_type is None:
        _err_console.print("[red]Error:[/red] pass --type/--payload or --credentials")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    async def _set() -> str:
        settings = _settings()
        if credentials is not None:
            data = _parse_json_option(credentials, "--credentials")
        else:
            data = {
                "type": credential_type,
                "payload": _parse_json_option(payload, "--payload") or {},
            }
        if not isinstance(data, dict):
            raise ConfigError("--credentials must be a JSON object")
        if expires_at is not None:
            data["expires_at"] = expires_at.isoformat()
        try:
            record = CredentialRecord.model_validate(data).to_store()
        except ValidationError as exc:
            raise ConfigError(f"Invalid credential record: {exc}") from exc

        store = _store(settings)
        existing = await store.query_records(subject, provider)
        if len(existing) > 1:
            raise ConfigError(
                f"{len(existing)} identities exist for '{subject}' and '{provider}'"
            )
        if existing:
            identity = await store.update_record_credentials(existing[0], record)
        else:
            identity = await store.create_record(subject, provider, record)
        return identity.id

    identity_id = _run(_set())
    _err_console.print(f"Stored credentials in identity {identity_id}.")


@app.command("providers")
def providers_command() -> None:
    """List the providers configured in the settings file."""
    try:
        settings = _settings()
    except AttachCredentialsError as exc:
        _err_console.print(f"[red]Error:[/red] {exc}", highlight=False)
        raise typer.Exit(code=exc.exit_code) from None
    if not settings.providers:
        _err_console.print("No providers configured.")
        return
    table = Table()
    table.add_column("Provider")
    table.add_column("Token URL")
    table.add_column("Scopes")
    for name, provider_config in sorted(settings.providers.items()):
        table.add_row(name, provider_config.token_url, " ".join(provider_config.scopes))
    Console().print(table)


def main() -> None:
    """CLI entry point invoked by the ``attach-credentials`` console script."""
    app()
