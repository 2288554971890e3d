"""Main CLI entry point for fcache.

Provides command-line inspection and maintenance of a cache store.
"""

import logging
import sys
from datetime import timedelta
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fcache.cache import CacheConfig, LoadingCache
from fcache.cache.validation import get_expiry
from fcache.exceptions import CacheError, InvalidationError, InvalidMetadataError
from fcache.metadata import GetURLParams

# Global console for Rich output
console = Console()


def format_size(size: int) -> str:
    """Format a byte count for humans.

    Examples:
        >>> format_size(512)
        '512 B'
        >>> format_size(3 * 1024 * 1024)
        '3.0 MB'
    """
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def build_config(obj: dict) -> CacheConfig:
    """Merge CLI options over the environment configuration.

    Priority:
    1. Explicit flags
    2. FCACHE_* environment variables
    3. Defaults

    Raises:
        click.ClickException: If no store is configured
    """
    config = CacheConfig.from_env()
    for name in ("bucket", "prefix", "endpoint_url", "region"):
        if obj.get(name):
            setattr(config, name, obj[name])
    if obj.get("local_dir"):
        config.local_dir = Path(obj["local_dir"]).expanduser()

    if not config.bucket and config.local_dir is None:
        raise click.ClickException(
            "No store configured: pass --bucket or --local-dir "
            "(or set FCACHE_BUCKET / FCACHE_LOCAL_DIR)"
        )
    return config


def open_cache(ctx: click.Context) -> LoadingCache:
    """Create a cache for the configured store, without the background sweep."""
    config = build_config(ctx.obj)
    try:
        store = config.build_store()
    except (CacheError, ValueError) as e:
        raise click.ClickException(str(e)) from e
    return LoadingCache(store, config.options(logging.getLogger("fcache.cli")))


@click.group()
@click.option("--bucket", "-b", help="S3 bucket (default: FCACHE_BUCKET env var)")
@click.option("--prefix", "-p", help="Key prefix inside the bucket")
@click.option("--endpoint-url", help="Custom S3 endpoint, e.g. MinIO")
@click.option("--region", help="S3 region")
@click.option(
    "--local-dir",
    "-d",
    type=click.Path(file_okay=False),
    help="Use a local directory store instead of S3",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, bucket, prefix, endpoint_url, region, local_dir, verbose):
    """fcache CLI - Inspect and maintain a file cache store.

    The store is selected with --bucket (S3) or --local-dir, or via
    FCACHE_* environment variables.
    """
    ctx.ensure_object(dict)
    ctx.obj.update(
        bucket=bucket,
        prefix=prefix,
        endpoint_url=endpoint_url,
        region=region,
        local_dir=local_dir,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@cli.command("stats")
@click.pass_context
def stats_cmd(ctx):
    """Show the number of stored keys and their total size.

    Example:
        fcache --bucket files stats
    """
    try:
        cache = open_cache(ctx)
        stats = cache.stat()
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    table = Table(title="Cache statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Keys", str(stats.keys))
    table.add_row("Size", format_size(stats.size))
    console.print(table)


@cli.command("keys")
@click.pass_context
def keys_cmd(ctx):
    """Print every key present in the store, one per line."""
    try:
        keys = open_cache(ctx).keys()
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    for key in keys:
        click.echo(key)


@cli.command("ls")
@click.pass_context
def ls_cmd(ctx):
    """List stored files with their metadata and expiration.

    Example:
        fcache --local-dir ./cache ls
    """
    try:
        metas = open_cache(ctx).store.list()
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    if not metas:
        console.print("[yellow]No files found[/yellow]")
        return

    table = Table(title=f"Files ({len(metas)})")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Type", style="magenta")
    table.add_column("Size", justify="right", style="green")
    table.add_column("Expires", style="blue")

    for meta in metas:
        try:
            expiry = get_expiry(meta)
            expires = expiry.strftime("%Y-%m-%d %H:%M:%S") if expiry else "never"
        except InvalidMetadataError:
            expires = "[red]invalid[/red]"
        table.add_row(meta.key, meta.name, meta.mime, format_size(meta.size), expires)

    console.print(table)


@cli.command("invalidate")
@click.pass_context
def invalidate_cmd(ctx):
    """Run one invalidation pass, removing expired files.

    Exits with status 1 if any item could not be processed.
    """
    try:
        removed = open_cache(ctx).invalidate()
    except InvalidationError as e:
        console.print(f"[green]✓[/green] Removed {e.removed} expired file(s)")
        console.print(f"[red]✗[/red] {len(e.errors)} error(s):")
        for err in e.errors:
            console.print(f"  • {err}")
        sys.exit(1)
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    console.print(f"[green]✓[/green] Removed {removed} expired file(s)")


@cli.command("url")
@click.argument("key")
@click.option("--filename", "-f", default="", help="Download filename override")
@click.option(
    "--expires",
    "-e",
    type=int,
    default=900,
    show_default=True,
    help="URL lifetime in seconds",
)
@click.pass_context
def url_cmd(ctx, key, filename, expires):
    """Print a direct-access URL for KEY.

    Only existing files are served: nothing is loaded, and hit counters and
    expirations are left alone.

    Example:
        fcache --bucket files url report.pdf -f "Q1 report.pdf"
    """
    try:
        url = open_cache(ctx).store.get_url(
            key, GetURLParams(filename=filename, expires=timedelta(seconds=expires))
        )
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    click.echo(url)


@cli.command("rm")
@click.argument("key")
@click.pass_context
def rm_cmd(ctx, key):
    """Remove KEY from the store."""
    try:
        open_cache(ctx).store.remove(key)
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    console.print(f"[green]✓[/green] Removed '{key}'")


if __name__ == "__main__":
    cli()
