"""CLI entry point for Signup Scanner."""

from __future__ import annotations

import click

from . import constants
from .auth import GoogleTokenRefresher, TokenManager, load_client_config, run_consent_flow
from .cache import TTLCache
from .display import (
    configure_logging,
    console,
    create_progress,
    display_categories,
    display_platforms,
    display_scan_results,
)
from .errors import ReauthRequired, TokenRefreshTransient, UserNotFound
from .export import export_scan
from .models import Category
from .platforms import DEFAULT_REGISTRY
from .scanner import ScanPipeline
from .store import SqliteUserStore

DEFAULT_USER = "default"


def _token_manager(store: SqliteUserStore) -> TokenManager:
    try:
        client_config = load_client_config(constants.CREDENTIALS_PATH)
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e
    return TokenManager(store, GoogleTokenRefresher(client_config))


def _reauth_exception(e: ReauthRequired) -> click.ClickException:
    return click.ClickException(
        f"{e}. Run 'signup-scanner login --user {e.user_id}' to authorize again."
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="signup-scanner")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Signup Scanner - find the services you signed up for from your Gmail."""
    configure_logging(verbose)


@cli.command()
@click.option("-u", "--user", "user_id", default=None, help="User id to store tokens under (default: mailbox address).")
def login(user_id: str | None) -> None:
    """Authorize Gmail access and store the tokens."""
    with SqliteUserStore(constants.USER_DB_PATH) as store:
        try:
            stored_as = run_consent_flow(store, user_id, constants.CREDENTIALS_PATH)
        except FileNotFoundError as e:
            raise click.ClickException(str(e)) from e
    console.print(f"[green]Stored credentials for {stored_as}[/green]")


@cli.command()
@click.option("-u", "--user", "user_id", default=DEFAULT_USER, help="Stored user id.")
def auth(user_id: str) -> None:
    """Check that a stored user's Gmail access works, refreshing tokens if needed."""
    with SqliteUserStore(constants.USER_DB_PATH) as store:
        manager = _token_manager(store)
        try:
            _, profile = manager.authenticate(user_id)
        except ReauthRequired as e:
            raise _reauth_exception(e) from e
        except (UserNotFound, TokenRefreshTransient) as e:
            raise click.ClickException(str(e)) from e
    console.print(f"Authenticated as {profile.get('emailAddress', user_id)}")


@cli.command()
@click.option("-u", "--user", "user_id", default=DEFAULT_USER, help="Stored user id.")
@click.option("-q", "--query", default=constants.DEFAULT_SIGNUP_QUERY, show_default=False, help="Gmail search query.")
@click.option("-m", "--max-messages", default=constants.DEFAULT_MAX_MESSAGES, type=int, help="Maximum messages to scan.")
@click.option("--since-last", "incremental", is_flag=True, help="Only scan signup mail from the last 30 days.")
@click.option("--force", "force_refresh", is_flag=True, help="Ignore cached results and rescan (--since-last always rescans).")
@click.option("--min-confidence", default=0, type=click.IntRange(0, 100), help="Minimum confidence to display.")
@click.option("--format", "fmt", type=click.Choice(["csv", "json"]), default="csv", help="Export format.")
@click.option("-o", "--output", default=None, help="Also export results to this file.")
def scan(
    user_id: str,
    query: str,
    max_messages: int,
    incremental: bool,
    force_refresh: bool,
    min_confidence: int,
    fmt: str,
    output: str | None,
) -> None:
    """Scan a mailbox and list detected signup services.

    Each run starts with an empty in-memory cache, so a plain run always
    reads the mailbox. --force only matters when one pipeline and cache are
    shared, for example when embedding ScanPipeline.
    """
    with SqliteUserStore(constants.USER_DB_PATH) as store, TTLCache() as cache:
        pipeline = ScanPipeline(_token_manager(store), cache)
        with create_progress() as progress:
            listing = progress.add_task("Listing messages", total=max_messages)
            fetching = progress.add_task("Fetching metadata", total=None)

            def on_page(listed: int, total: int) -> None:
                progress.update(listing, completed=listed, total=total)

            def on_chunk(chunk_num: int, total_chunks: int) -> None:
                progress.update(fetching, completed=chunk_num, total=total_chunks)

            options = dict(
                max_messages=max_messages,
                on_page=on_page,
                on_chunk=on_chunk,
            )
            try:
                if incremental:
                    result = pipeline.incremental_scan(user_id, **options)
                else:
                    result = pipeline.scan(
                        user_id, query=query, force_refresh=force_refresh, **options
                    )
            except ReauthRequired as e:
                raise _reauth_exception(e) from e
            except (UserNotFound, TokenRefreshTransient) as e:
                raise click.ClickException(str(e)) from e

    display_scan_results(result, min_confidence=min_confidence)

    if output:
        export_scan(result, format=fmt, output_path=output)
        console.print(f"Results saved to {output}")


@cli.command()
def users() -> None:
    """List users with stored credentials."""
    with SqliteUserStore(constants.USER_DB_PATH) as store:
        user_ids = store.list_users()

    if not user_ids:
        console.print("[dim]No stored users.[/dim]")
        return
    for uid in user_ids:
        console.print(uid)


@cli.command()
@click.option("-u", "--user", "user_id", default=DEFAULT_USER, help="Stored user id.")
def logout(user_id: str) -> None:
    """Forget a user's stored tokens."""
    with SqliteUserStore(constants.USER_DB_PATH) as store:
        removed = store.delete(user_id)

    if not removed:
        raise click.ClickException(f"No stored credentials for user {user_id!r}")
    console.print(f"[green]Removed credentials for {user_id}.[/green]")


@cli.group(name="platforms")
def platforms_group() -> None:
    """Browse the known platform registry."""


@platforms_group.command(name="list")
@click.option(
    "-c",
    "--category",
    type=click.Choice([c.value for c in Category]),
    default=None,
    help="Only show one category.",
)
def platforms_list(category: str | None) -> None:
    """List known platforms."""
    if category:
        rows = DEFAULT_REGISTRY.platforms_by_category(category)
    else:
        rows = list(DEFAULT_REGISTRY.items())
    display_platforms(rows)


@platforms_group.command(name="search")
@click.argument("term")
@click.option("-l", "--limit", default=10, type=int, help="Maximum results.")
def platforms_search(term: str, limit: int) -> None:
    """Search platforms by name, domain or keyword."""
    matches = DEFAULT_REGISTRY.search(term, limit=limit)
    if not matches:
        console.print(f"[yellow]No platforms match {term!r}[/yellow]")
        return
    display_platforms([(d, p) for d, p, _ in matches], title=f"Matches for {term!r}")


@platforms_group.command(name="categories")
def platforms_categories() -> None:
    """List categories with platform counts."""
    display_categories(DEFAULT_REGISTRY.categories_with_stats())


@platforms_group.command(name="stats")
def platforms_stats() -> None:
    """Show registry statistics."""
    stats = DEFAULT_REGISTRY.stats()
    console.print(f"[bold]Platforms:[/bold] {stats['total_platforms']}")
    console.print(f"[bold]Average confidence:[/bold] {stats['average_confidence']}")
    support = stats["unsubscribe_support"]
    console.print(
        f"[bold]Unsubscribe support:[/bold] link {support['link']}, "
        f"manual {support['manual']}, unknown {support['unknown']}"
    )
