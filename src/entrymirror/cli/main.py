"""Main CLI entry point for entrymirror.

Provides a command-line interface for browsing a repository through the
local mirror.
"""

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from entrymirror.cache.config import MirrorConfig
from entrymirror.lists.sort import SortSpec
from entrymirror.lists.window import UNSET
from entrymirror.repository import Repository

# Global console for Rich output
console = Console()


def build_repository(ctx_obj: dict) -> Repository:
    """Create a repository connection from CLI context.

    Priority for the base URI:
    1. Explicit --base flag
    2. ENTRYMIRROR_BASE_URI environment variable
    3. Config file at ~/.entrymirror/config.json

    Raises:
        click.ClickException: If no base URI is configured
    """
    config = MirrorConfig.from_env()
    if not config.base_uri:
        config = MirrorConfig.load()
    base = ctx_obj.get("base") or config.base_uri
    if not base:
        raise click.ClickException(
            "No repository given, use --base or set ENTRYMIRROR_BASE_URI"
        )
    return Repository(base, config=config)


async def _sign_in(repo: Repository, ctx_obj: dict) -> None:
    if ctx_obj.get("user"):
        await repo.auth.login(ctx_obj["user"], ctx_obj.get("password") or "")


@click.group()
@click.option("--base", "-b", help="Repository base URI (or ENTRYMIRROR_BASE_URI env var)")
@click.option("--user", "-u", help="Sign in as this user")
@click.option("--password", "-p", help="Password for --user")
@click.option("--verbose", "-v", is_flag=True, help="Log cache and session activity")
@click.pass_context
def cli(ctx, base, user, password, verbose):
    """entrymirror CLI - Browse a repository through a local mirror."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["base"] = base
    ctx.obj["user"] = user
    ctx.obj["password"] = password


@cli.command("entry")
@click.argument("uri")
@click.option("--force", is_flag=True, help="Skip the cache")
@click.pass_context
def entry_show(ctx, uri, force):
    """Show an entry.

    Example:
        entrymirror -b https://example.com/store/ entry https://example.com/store/1/entry/2
    """

    async def run():
        async with build_repository(ctx.obj) as repo:
            await _sign_in(repo, ctx.obj)
            entry = await repo.get_entry(uri, force=force)
            return entry, repo.cache.get_status(entry.uri)

    try:
        entry, status = asyncio.run(run())

        console.print(f"\n[bold cyan]Entry: {entry.uri}[/bold cyan]")
        console.print(f"[bold]Resource:[/bold] {entry.resource_uri}")
        if entry.context_id:
            console.print(f"[bold]Context:[/bold] {entry.context_id}")
        if status:
            console.print(f"[bold]Cached at:[/bold] {status['cached_at']}")
            if status["stale"]:
                console.print("[bold]Status:[/bold] [yellow]stale[/yellow]")
        console.print()

    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("list")
@click.argument("uri")
@click.option("--page", "-n", default=0, show_default=True, help="Page index")
@click.option("--limit", "-l", type=int, help="Page size")
@click.option("--sort", "-s", "sort_by", help="Sort on title, created, modified or size")
@click.option("--desc", is_flag=True, help="Sort in descending order")
@click.pass_context
def list_show(ctx, uri, page, limit: Optional[int], sort_by, desc):
    """Show one page of the members of a list.

    Example:
        entrymirror list https://example.com/store/1/entry/_top --limit 20 --sort modified --desc
    """
    sort = SortSpec(sort_by, descending=desc) if sort_by else UNSET

    async def run():
        async with build_repository(ctx.obj) as repo:
            await _sign_in(repo, ctx.obj)
            window = repo.get_list(uri, page_size=limit, sort=sort)
            entries = await window.get_page(page)
            return entries, window.size

    try:
        entries, size = asyncio.run(run())

        if not entries:
            console.print("[yellow]No entries on this page[/yellow]")
            return

        table = Table(title=f"Page {page} ({len(entries)} of {size})")
        table.add_column("Entry", style="cyan", no_wrap=True)
        table.add_column("Resource", style="white")
        table.add_column("Context", style="magenta")

        for entry in entries:
            table.add_row(entry.entry_id or entry.uri, entry.resource_uri, entry.context_id or "")

        console.print(table)

    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("whoami")
@click.pass_context
def whoami(ctx):
    """Show who the repository considers you to be."""

    async def run():
        async with build_repository(ctx.obj) as repo:
            await _sign_in(repo, ctx.obj)
            return await repo.auth.get_current_identity()

    try:
        identity = asyncio.run(run())
        if identity.is_guest:
            console.print("[yellow]guest[/yellow] (not signed in)")
        else:
            console.print(f"[green]✓[/green] {identity.subject} (id {identity.id})")
            if identity.home_context:
                console.print(f"  Home context: {identity.home_context}")
    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


if __name__ == "__main__":
    cli()
