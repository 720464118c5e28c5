"""Command line front end for the blob gallery.

Wires settings, profile, store, listing cache, catalog and controller
together in :func:`build_context` and exposes the read and write
operations as Typer commands.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import logging
import math
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .cache import ListingCache
from .catalog import ImageCatalog
from .controller import GalleryController
from .models import ActionResult, ObjectRecord
from .profiles import ProfileStorage, StoreProfile, profile_from_env
from .services import BlobStoreService
from .settings import AppSettings, SettingsStorage
from .ui_utils import format_size, format_uploaded_at, load_package_info

console = Console()

app = typer.Typer(
    name="blob-gallery",
    help="Upload, browse and summarise images in a blob store",
    rich_markup_mode="rich",
    no_args_is_help=True,
)
profile_app = typer.Typer(help="Manage saved store profiles", no_args_is_help=True)
config_app = typer.Typer(help="Show and change local settings", no_args_is_help=True)
app.add_typer(profile_app, name="profile")
app.add_typer(config_app, name="config")


class ConfigurationError(RuntimeError):
    """Raised when no usable store profile can be found."""


@dataclass
class AppContext:
    settings: AppSettings
    store: BlobStoreService
    catalog: ImageCatalog
    controller: GalleryController


@dataclass
class CliOptions:
    profile: Optional[str] = None
    settings_path: Optional[Path] = None
    profiles_path: Optional[Path] = None


def resolve_profile(profile_name: str | None, storage: ProfileStorage | None = None) -> StoreProfile:
    """Pick the named saved profile, or fall back to ``BLOB_*`` variables."""
    if profile_name:
        try:
            return (storage or ProfileStorage()).get(profile_name)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
    profile = profile_from_env()
    if profile is None:
        raise ConfigurationError(
            "No blob store configured. Set BLOB_BUCKET (and credentials) or pass --profile."
        )
    return profile


def build_context(
    profile: StoreProfile,
    settings: AppSettings | None = None,
    *,
    client_factory=None,
) -> AppContext:
    settings = settings or AppSettings()
    store = BlobStoreService(profile, client_factory=client_factory)
    cache = ListingCache(store.list_all_objects, ttl=settings.cache_ttl_seconds)
    catalog = ImageCatalog(cache)
    controller = GalleryController(store, catalog, settings)
    return AppContext(settings=settings, store=store, catalog=catalog, controller=controller)


def _options(ctx: typer.Context) -> CliOptions:
    return ctx.obj if isinstance(ctx.obj, CliOptions) else CliOptions()


def _context(ctx: typer.Context) -> AppContext:
    if isinstance(ctx.obj, AppContext):
        return ctx.obj
    options = _options(ctx)
    settings = SettingsStorage(options.settings_path).load()
    try:
        profile = resolve_profile(options.profile, ProfileStorage(options.profiles_path))
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    context = build_context(profile, settings)
    if not context.store.is_configured:
        console.print("[red]Blob store credentials are not configured.[/red]")
        console.print("Set BLOB_ACCESS_KEY_ID and BLOB_SECRET_ACCESS_KEY or save them in a profile.")
        raise typer.Exit(1)
    ctx.obj = context
    return context


def _records_table(records: list[ObjectRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Size", justify="right", no_wrap=True)
    table.add_column("Uploaded", style="green", no_wrap=True)
    table.add_column("URL", style="dim", overflow="fold")
    for record in records:
        table.add_row(
            record.pathname,
            format_size(record.size),
            format_uploaded_at(record.uploaded_at),
            record.url,
        )
    return table


def _report(result: ActionResult) -> None:
    if result.success:
        console.print(f"[green]{result.message}[/green]")
        if result.url:
            console.print(result.url)
        return
    console.print(f"[red]{result.message or result.error}[/red]")
    if result.existing_url:
        console.print(f"Existing: {result.existing_url}")
    raise typer.Exit(1)


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        info = load_package_info()
        console.print(f"{info.name} version {info.version or 'unknown'}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Saved profile name"),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Path to settings file"),
    profiles_path: Optional[Path] = typer.Option(None, "--profiles", help="Path to saved profiles file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """blob-gallery: an image library on top of an S3-compatible blob store."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not isinstance(ctx.obj, AppContext):
        ctx.obj = CliOptions(profile=profile, settings_path=settings_path, profiles_path=profiles_path)


@app.command("list")
def list_images(
    ctx: typer.Context,
    page: int = typer.Option(1, "--page", min=1, help="Page number"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Images per page"),
) -> None:
    """List images, most recent first."""
    context = _context(ctx)
    view = context.catalog.paginate(page, limit or context.settings.page_size)
    info = view.pagination
    console.print(_records_table(view.images, f"Page {info.page} of {max(info.total_pages, 1)}"))
    console.print(f"[dim]{info.total_count} image(s); more pages: {'yes' if info.has_more else 'no'}[/dim]")


@app.command("recent")
def recent_images(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Number of images"),
) -> None:
    """Show the most recently uploaded images."""
    context = _context(ctx)
    records = context.catalog.recent(limit or context.settings.recent_limit)
    console.print(_records_table(records, "Recent uploads"))


@app.command("show")
def show_image(ctx: typer.Context, target: str = typer.Argument(..., help="Image URL or filename")) -> None:
    """Show one image by URL or exact filename."""
    context = _context(ctx)
    record = context.catalog.find_by_url(target) or context.catalog.find_by_pathname(target)
    if record is None:
        console.print(f"[red]Image not found: {target}[/red]")
        raise typer.Exit(1)
    console.print(f"[bold cyan]{record.pathname}[/bold cyan]")
    console.print(f"Size: {format_size(record.size)}")
    console.print(f"Uploaded: {format_uploaded_at(record.uploaded_at)}")
    console.print(f"URL: {record.url}")
    console.print(f"Download: {record.download_url}")


@app.command("stats")
def show_statistics(ctx: typer.Context) -> None:
    """Show storage statistics."""
    context = _context(ctx)
    result = context.catalog.statistics()
    if not result.available:
        console.print(f"[red]Statistics unavailable: {result.reason}[/red]")
        raise typer.Exit(1)
    summary = result.summary

    table = Table(title="Storage statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total files", str(summary.total_files))
    table.add_row("Total storage", format_size(summary.total_storage))
    table.add_row("Average size", format_size(summary.average_file_size))
    table.add_row("Largest file", format_size(summary.largest_file))
    table.add_row("Smallest file", format_size(summary.smallest_file))
    table.add_row("Uploads (24h)", str(summary.recent_uploads))
    table.add_row("Today", str(summary.upload_dates.today))
    table.add_row("Last 7 days", str(summary.upload_dates.this_week))
    table.add_row("This month", str(summary.upload_dates.this_month))
    console.print(table)

    if summary.file_types:
        types_table = Table(title="File types")
        types_table.add_column("Type", style="magenta")
        types_table.add_column("Count", justify="right")
        for file_type, count in sorted(summary.file_types.items(), key=lambda item: (-item[1], item[0])):
            types_table.add_row(file_type, str(count))
        console.print(types_table)


@app.command("upload")
def upload_image(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Image file"),
) -> None:
    """Upload an image under its file name."""
    context = _context(ctx)
    size = path.stat().st_size
    with path.open("rb") as handle:
        result = context.controller.upload_image(path.name, handle, size=size)
    _report(result)


@app.command("delete")
def delete_image(ctx: typer.Context, url: str = typer.Argument(..., help="Image URL")) -> None:
    """Delete an image."""
    context = _context(ctx)
    _report(context.controller.delete_image(url))


@app.command("rename")
def rename_image(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Image URL"),
    new_name: str = typer.Argument(..., help="New file name"),
) -> None:
    """Rename an image, keeping its extension when none is given."""
    context = _context(ctx)
    _report(context.controller.rename_image(url, new_name))


@app.command("cache-info")
def cache_info(ctx: typer.Context) -> None:
    """Fetch the listing once and print cache diagnostics."""
    context = _context(ctx)
    context.catalog.list_all()
    info = context.catalog.cache_info()
    console.print(f"Cached: {'yes' if info.has_data else 'no'}")
    console.print(f"Objects: {info.count}")
    age = "-" if info.last_fetch_age is None else f"{info.last_fetch_age:.1f}s"
    console.print(f"Age: {age} (ttl {context.settings.cache_ttl_seconds:.0f}s)")
    console.print(f"Stale: {'yes' if info.is_stale else 'no'}")
    if info.serving_stale:
        console.print("[yellow]Serving stale data after a failed refresh[/yellow]")


@profile_app.command("save")
def save_profile(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Profile name"),
    bucket: str = typer.Option(..., "--bucket", help="Bucket name"),
    endpoint_url: str = typer.Option("", "--endpoint", help="S3-compatible endpoint URL"),
    region: str = typer.Option("", "--region", help="Region, e.g. auto for R2"),
    public_base_url: str = typer.Option("", "--public-base-url", help="Public URL prefix for objects"),
    access_key: str = typer.Option("", "--access-key", help="Access key id"),
    secret_key: Optional[str] = typer.Option(None, "--secret-key", help="Secret key (prompted when omitted)"),
) -> None:
    """Create or replace a saved profile. The secret goes to the OS keychain."""
    name = name.strip()
    if not name or not bucket.strip():
        console.print("[red]Profile name and bucket are required.[/red]")
        raise typer.Exit(1)
    if secret_key is None:
        secret_key = typer.prompt("Secret access key", default="", show_default=False, hide_input=True)
    profile = StoreProfile(
        name=name,
        endpoint_url=endpoint_url.strip(),
        bucket=bucket.strip(),
        access_key=access_key.strip(),
        secret_key=secret_key,
        region=region.strip(),
        public_base_url=public_base_url.strip(),
    )
    storage = ProfileStorage(_options(ctx).profiles_path)
    profiles = [existing for existing in storage.load() if existing.name != name]
    profiles.append(profile)
    storage.save(profiles)
    console.print(f"[green]Saved profile '{name}'[/green]")


@profile_app.command("list")
def list_profiles(ctx: typer.Context) -> None:
    """List saved profiles."""
    profiles = ProfileStorage(_options(ctx).profiles_path).load()
    if not profiles:
        console.print("[dim]No saved profiles.[/dim]")
        return
    table = Table(title="Profiles")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Bucket", no_wrap=True)
    table.add_column("Endpoint", style="dim", overflow="fold")
    table.add_column("Public URL", style="dim", overflow="fold")
    table.add_column("Secret", justify="center")
    for profile in profiles:
        table.add_row(
            profile.name,
            profile.bucket,
            profile.endpoint_url or "-",
            profile.public_base_url or "-",
            "yes" if profile.secret_key else "no",
        )
    console.print(table)


@profile_app.command("delete")
def delete_profile(ctx: typer.Context, name: str = typer.Argument(..., help="Profile name")) -> None:
    """Delete a saved profile and its keychain secret."""
    storage = ProfileStorage(_options(ctx).profiles_path)
    profiles = storage.load()
    remaining = [profile for profile in profiles if profile.name != name]
    if len(remaining) == len(profiles):
        console.print(f"[red]Profile '{name}' does not exist[/red]")
        raise typer.Exit(1)
    storage.save(remaining)
    console.print(f"[green]Deleted profile '{name}'[/green]")


@config_app.command("show")
def show_config(ctx: typer.Context) -> None:
    """Print the effective settings."""
    settings = SettingsStorage(_options(ctx).settings_path).load()
    for setting in fields(AppSettings):
        console.print(f"{setting.name} = {getattr(settings, setting.name)}")


@config_app.command("set")
def set_config(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Setting name, e.g. page_size"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Change one setting and write the settings file."""
    storage = SettingsStorage(_options(ctx).settings_path)
    settings = storage.load()
    names = [setting.name for setting in fields(AppSettings)]
    if key not in names:
        console.print(f"[red]Unknown setting '{key}'. Choose from: {', '.join(names)}[/red]")
        raise typer.Exit(1)
    cast = type(getattr(settings, key))
    try:
        converted = cast(value)
    except ValueError:
        converted = None
    if converted is None or not math.isfinite(converted) or converted <= 0:
        console.print(f"[red]{key} must be a positive {cast.__name__}[/red]")
        raise typer.Exit(1)
    storage.save(replace(settings, **{key: converted}))
    console.print(f"[green]{key} = {converted}[/green]")
