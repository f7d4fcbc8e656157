"""
FamilyVault CLI

Thin wrapper around the Vault API providing a command-line interface.

Usage:
    familyvault status [--json]
    familyvault users list [--json]
    familyvault users add <name> --user-pin 1234 [--as <admin> --pin <pin>]
    familyvault media list [--mine <profile>] [--json]
    familyvault upload <file> --as <profile> --pin <pin>
    familyvault config set-database --mode supabase --url <url> --key <key>
    familyvault login <profile> --pin <pin>
    familyvault schema
"""

from __future__ import annotations

import asyncio
import inspect
import json as json_module
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from .clients.drive_client import DriveError, download_url, preview_url
from .config.settings import get_settings
from .store import (
    BackendMode,
    DatabaseConfig,
    PendingWrite,
    Profile,
    RemoteWriteError,
    StorageConfig,
    StoreError,
    Vault,
    WriteStatus,
    new_profile,
    provisioning_sql,
)

app = typer.Typer(
    name="familyvault",
    help="FamilyVault - family photo and video sharing",
    no_args_is_help=True,
)

users_app = typer.Typer(name="users", help="Profile management commands", no_args_is_help=True)
media_app = typer.Typer(name="media", help="Shared catalog commands", no_args_is_help=True)
config_app = typer.Typer(name="config", help="Installation configuration commands", no_args_is_help=True)
app.add_typer(users_app, name="users")
app.add_typer(media_app, name="media")
app.add_typer(config_app, name="config")


def get_vault() -> Vault:
    """Create Vault instance."""
    return Vault()


def output_json(data: Any) -> None:
    """Output data as JSON."""
    typer.echo(json_module.dumps(data, indent=2, default=str))


def output_error(message: str) -> None:
    """Output error message."""
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)


def output_success(message: str) -> None:
    """Output success message."""
    typer.secho(message, fg=typer.colors.GREEN)


def output_warning(message: str) -> None:
    """Output warning message."""
    typer.secho(f"Warning: {message}", fg=typer.colors.YELLOW, err=True)


def run_with_vault(body: Callable[[Vault], Any]) -> Any:
    """
    Open the vault, run a command body against it, then flush pending writes.

    Backend and validation errors are reported as one line and exit 1.
    """

    async def _main():
        vault = get_vault()
        resolution = await vault.open()
        if resolution.warning:
            output_warning(resolution.warning)
        elif resolution.diagnostic:
            output_warning(resolution.diagnostic)

        try:
            result = body(vault)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            for outcome in await vault.close():
                if outcome.status == WriteStatus.DEGRADED:
                    output_warning(f"Change not saved to {outcome.backend}: {outcome.reason}")

    try:
        return asyncio.run(_main())
    except (StoreError, RemoteWriteError, DriveError, ValueError) as e:
        output_error(str(e))
        raise typer.Exit(1)


async def report(pending: PendingWrite, message: str) -> None:
    """Wait for a mutation's persistence and print how it went."""
    outcome = await pending
    if outcome.status == WriteStatus.WRITTEN:
        output_success(message)
    elif outcome.status == WriteStatus.SKIPPED:
        output_warning(f"Nothing changed: {outcome.reason}")
    else:
        output_warning(f"{message} (in memory only: {outcome.reason})")


def resolve_actor(vault: Vault, profile_id: Optional[str], pin: Optional[str], admin: bool = False) -> Profile:
    """Profile a command acts as: --as/--pin when given, else the saved session."""
    if profile_id is not None:
        if pin is None:
            output_error("--pin is required with --as")
            raise typer.Exit(1)
        profile = vault.session.authenticate(profile_id, pin)
    else:
        profile = vault.current_profile
        if profile is None:
            output_error("Not logged in. Use --as/--pin or run 'familyvault login' first.")
            raise typer.Exit(1)

    if admin and not profile.is_admin:
        output_error("Administrator access required.")
        raise typer.Exit(1)
    return profile


def _format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _mask(secret: Optional[str]) -> str:
    if not secret:
        return "(not set)"
    return secret[:4] + "..." if len(secret) > 8 else "****"


# =============================================================================
# Status Commands
# =============================================================================

@app.command("status")
def status_command(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the active backend and what is loaded."""
    status = run_with_vault(lambda vault: vault.status())

    if json:
        output_json(status)
        return

    typer.echo(f"{status['brand']}: {status['mode']}")
    typer.echo(f"Backend: {status['backend']} ({status['state']})")
    typer.echo(f"Profiles: {status['profiles']}")
    typer.echo(f"Media items: {status['media']}")
    typer.echo(f"Storage configured: {'yes' if status['storage_configured'] else 'no'}")
    typer.echo(f"Logged in as: {status['current_profile'] or '(nobody)'}")


@app.command("schema")
def schema_command():
    """Print the SQL that provisions the remote tables."""
    typer.echo(provisioning_sql(get_settings().remote))


# =============================================================================
# Session Commands
# =============================================================================

@app.command("login")
def login_command(
    profile_id: str = typer.Argument(..., help="Profile id"),
    pin: str = typer.Option(..., "--pin", "-p", help="4-digit PIN"),
):
    """Select a profile on this device."""
    profile = run_with_vault(lambda vault: vault.login(profile_id, pin))
    output_success(f"Logged in as {profile.display_name}")


@app.command("logout")
def logout_command():
    """Clear the selected profile."""
    run_with_vault(lambda vault: vault.logout())
    output_success("Logged out")


# =============================================================================
# User Commands
# =============================================================================

@users_app.command("list")
def users_list(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List all profiles."""
    profiles = run_with_vault(lambda vault: vault.list_profiles())

    if json:
        output_json({"users": [p.model_dump(by_alias=True, mode="json", exclude={"pin"}) for p in profiles]})
        return

    typer.echo(f"Found {len(profiles)} profile(s):")
    for profile in profiles:
        role = " (admin)" if profile.is_admin else ""
        typer.echo(f"  - {profile.id}: {profile.display_name}{role}")


@users_app.command("add")
def users_add(
    name: str = typer.Argument(..., help="Display name"),
    user_pin: str = typer.Option(..., "--user-pin", help="PIN for the new profile"),
    avatar: Optional[str] = typer.Option(None, "--avatar", help="Avatar URL"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Administrator profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="Administrator PIN"),
):
    """Add a profile (administrators only)."""

    async def body(vault: Vault):
        resolve_actor(vault, as_profile, pin, admin=True)
        profile = new_profile(name, user_pin, avatar=avatar)
        await report(vault.save_profile(profile), f"Added {profile.display_name} ({profile.id})")

    run_with_vault(body)


@users_app.command("edit")
def users_edit(
    profile_id: str = typer.Argument(..., help="Profile id"),
    name: Optional[str] = typer.Option(None, "--name", help="New display name"),
    user_pin: Optional[str] = typer.Option(None, "--user-pin", help="New PIN"),
    avatar: Optional[str] = typer.Option(None, "--avatar", help="New avatar URL"),
    avatar_file: Optional[Path] = typer.Option(None, "--avatar-file", help="Upload an avatar image"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Administrator profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="Administrator PIN"),
):
    """Edit a profile (administrators only)."""

    async def body(vault: Vault):
        resolve_actor(vault, as_profile, pin, admin=True)
        existing = vault.get_profile(profile_id)
        new_avatar = avatar
        if avatar_file is not None:
            new_avatar = await vault.upload_avatar(avatar_file)
        profile = new_profile(
            name or existing.display_name,
            user_pin or existing.pin,
            avatar=new_avatar or existing.avatar,
            profile_id=existing.id,
        )
        await report(vault.save_profile(profile), f"Updated {profile.display_name}")

    run_with_vault(body)


@users_app.command("remove")
def users_remove(
    profile_id: str = typer.Argument(..., help="Profile id"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Administrator profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="Administrator PIN"),
):
    """Remove a profile (administrators only)."""

    async def body(vault: Vault):
        resolve_actor(vault, as_profile, pin, admin=True)
        vault.get_profile(profile_id)
        await report(vault.delete_profile(profile_id), f"Removed {profile_id}")

    run_with_vault(body)


# =============================================================================
# Media Commands
# =============================================================================

@media_app.command("list")
def media_list(
    mine: Optional[str] = typer.Option(None, "--mine", help="Only items uploaded by this profile"),
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List the shared catalog, newest first."""
    entries = run_with_vault(lambda vault: vault.list_media(owner_id=mine))

    if json:
        output_json({"media": [e.to_record() for e in entries]})
        return

    if not entries:
        typer.echo("No media yet.")
        return

    typer.echo(f"Found {len(entries)} item(s):")
    for entry in entries:
        typer.echo(
            f"  - [{entry.kind.value}] {entry.caption} "
            f"by {entry.owner_name}, {_format_timestamp(entry.timestamp)} ({entry.id})"
        )
        if entry.tags:
            typer.echo(f"      tags: {', '.join(entry.tags)}")


@media_app.command("remove")
def media_remove(
    entry_id: str = typer.Argument(..., help="Media item id"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="PIN"),
):
    """Remove an item from the catalog."""

    async def body(vault: Vault):
        resolve_actor(vault, as_profile, pin)
        if vault.engine.get_media_entry(entry_id) is None:
            output_error(f"Media item not found: {entry_id}")
            raise typer.Exit(1)
        await report(vault.delete_media(entry_id), f"Removed {entry_id}")

    run_with_vault(body)


@app.command("upload")
def upload_command(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Photo or video to share"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="PIN"),
    mime_type: Optional[str] = typer.Option(None, "--mime-type", help="Override detected MIME type"),
):
    """Upload a file to shared storage and add it to the catalog."""

    async def body(vault: Vault):
        owner = resolve_actor(vault, as_profile, pin)
        return await vault.upload(file, mime_type=mime_type, owner=owner)

    entry = run_with_vault(body)
    output_success(f"Uploaded {entry.file_name} ({entry.id})")
    typer.echo(f"  {entry.caption}")
    if entry.tags:
        typer.echo(f"  tags: {', '.join(entry.tags)}")
    typer.echo(f"  preview: {preview_url(entry.url)}")
    typer.echo(f"  download: {download_url(entry.url)}")


# =============================================================================
# Config Commands
# =============================================================================

@config_app.command("show")
def config_show(
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show installation configuration."""
    config = run_with_vault(lambda vault: vault.get_config())

    if json:
        record = config.to_record()
        record["storage"]["apiKey"] = _mask(config.storage.api_key)
        record["database"]["supabaseAnonKey"] = _mask(config.database.supabase_anon_key)
        output_json(record)
        return

    typer.echo(f"Brand: {config.brand_name}")
    typer.echo(f"Database: {config.database.provider.value}")
    if config.database.is_remote:
        typer.echo(f"  URL: {config.database.supabase_url or '(not set)'}")
        typer.echo(f"  Key: {_mask(config.database.supabase_anon_key)}")
    typer.echo(f"Storage: {config.storage.provider}")
    typer.echo(f"  Folder: {config.storage.folder_id or '(not set)'}")
    typer.echo(f"  API key: {_mask(config.storage.api_key)}")
    if config.storage.email:
        typer.echo(f"  Account: {config.storage.email}")


def _save_config(vault: Vault, message: str, **update) -> Any:
    async def _apply():
        resolution = await vault.save_config(vault.get_config().model_copy(update=update))
        if resolution.warning:
            output_warning(resolution.warning)
        output_success(f"{message} ({vault.engine.mode_label})")

    return _apply()


@config_app.command("set-storage")
def config_set_storage(
    folder_id: str = typer.Option(..., "--folder-id", help="Drive folder id"),
    api_key: str = typer.Option(..., "--api-key", help="Drive API key"),
    email: Optional[str] = typer.Option(None, "--email", help="Account email (informational)"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Administrator profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="Administrator PIN"),
):
    """Configure blob storage (administrators only)."""

    def body(vault: Vault):
        resolve_actor(vault, as_profile, pin, admin=True)
        storage = StorageConfig(folder_id=folder_id, api_key=api_key, email=email or "")
        return _save_config(vault, "Storage settings saved", storage=storage)

    run_with_vault(body)


@config_app.command("set-database")
def config_set_database(
    mode: BackendMode = typer.Option(..., "--mode", help="local or supabase"),
    url: Optional[str] = typer.Option(None, "--url", help="Supabase project URL"),
    key: Optional[str] = typer.Option(None, "--key", help="Supabase anon key"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Administrator profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="Administrator PIN"),
):
    """Switch the catalog backend (administrators only)."""

    def body(vault: Vault):
        resolve_actor(vault, as_profile, pin, admin=True)
        current = vault.get_config().database
        database = DatabaseConfig(
            provider=mode,
            supabase_url=url if url is not None else current.supabase_url,
            supabase_anon_key=key if key is not None else current.supabase_anon_key,
        )
        return _save_config(vault, "Database settings saved", database=database)

    run_with_vault(body)


@config_app.command("set-brand")
def config_set_brand(
    name: str = typer.Argument(..., help="Brand name shown in the header"),
    as_profile: Optional[str] = typer.Option(None, "--as", help="Administrator profile id"),
    pin: Optional[str] = typer.Option(None, "--pin", "-p", help="Administrator PIN"),
):
    """Rename the installation (administrators only)."""

    def body(vault: Vault):
        resolve_actor(vault, as_profile, pin, admin=True)
        return _save_config(vault, f"Brand set to {name}", brand_name=name)

    run_with_vault(body)


def main():
    """Entry point for CLI."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app()


if __name__ == "__main__":
    main()
