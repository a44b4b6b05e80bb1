"""
CurrentReader Command Line Interface
====================================

Commands for managing subscriptions, refreshing feeds and reading articles.

Usage:
    currentreader --help                     # Show all commands
    currentreader check-config               # Validate configuration
    currentreader init-db                    # Initialize database
    currentreader add URL --tag news         # Subscribe to a feed
    currentreader refresh-all                # Refresh every feed
    currentreader list --saved               # Show saved articles
"""

import sys
import asyncio
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.models import Article, Feed, RefreshStatus
from .database.schema import DatabaseSchema
from .services.ingestion_service import IngestionService, LAST_REFRESH_ALL_KEY
from .storage.catalog_store import CatalogStore
from .utils.exceptions import CurrentReaderError, get_user_friendly_message
from .utils.logging import configure_application_logging

console = Console()


def _build_service() -> IngestionService:
    """Create the schema if needed and return a service over the configured database."""
    settings = get_settings()
    DatabaseSchema(settings.database.path).create_tables()
    return IngestionService.from_db_connection(get_db_manager(settings.database.path))


def _run(coro):
    """Run a service coroutine, turning application errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except CurrentReaderError as e:
        console.print(f"[bold red]❌ {get_user_friendly_message(e)}[/bold red]")
        if e.error_code:
            console.print(f"[dim]{e}[/dim]")
        sys.exit(1)


def _truncate(text: Optional[str], length: int) -> str:
    text = text or ""
    return text[: length - 3] + "..." if len(text) > length else text


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "Never"


def _print_articles(articles: List[Article], title: str) -> None:
    if not articles:
        console.print("[yellow]⚠️ No articles found[/yellow]")
        return

    table = Table(title=f"{title} ({len(articles)})")
    table.add_column("ID", style="dim")
    table.add_column("", width=2)
    table.add_column("Title", style="cyan")
    table.add_column("Published")
    table.add_column("Author", style="yellow")

    for article in articles:
        flags = ("★" if article.saved else "") + ("" if article.read else "•")
        table.add_row(
            article.id,
            flags,
            _truncate(article.title, 60),
            _format_time(article.published_at),
            _truncate(article.author, 20),
        )

    console.print(table)


def _print_feeds(feeds: List[Feed]) -> None:
    if not feeds:
        console.print("[yellow]⚠️ No feeds subscribed[/yellow]")
        return

    table = Table(title="Feeds")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("URL", style="blue")
    table.add_column("Tags", style="magenta")
    table.add_column("Last Fetched")

    for feed in feeds:
        table.add_row(
            feed.id,
            _truncate(feed.title, 30),
            _truncate(feed.feed_url, 40),
            ", ".join(feed.tags),
            _format_time(feed.last_fetched_at),
        )

    console.print(table)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """CurrentReader - RSS/Atom feed reader."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    try:
        settings = get_settings()
    except CurrentReaderError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking CurrentReader Configuration[/bold blue]")

    settings = get_settings()

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    checks = [
        ("Database", _check_database_config),
        ("Logging", _check_logging_config),
        ("Fetching", _check_fetch_config),
    ]

    all_passed = True
    for name, check_func in checks:
        status, details = check_func(settings)
        table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
        all_passed = all_passed and status

    console.print(table)

    if all_passed:
        console.print("[bold green]✅ All configuration checks passed![/bold green]")
    else:
        console.print("[bold red]❌ Configuration validation failed[/bold red]")
        sys.exit(1)


@cli.command()
def init_db():
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing CurrentReader Database[/bold blue]")

    settings = get_settings()
    schema = DatabaseSchema(settings.database.path)
    schema.create_tables()

    if not schema.verify_schema():
        console.print("[bold red]❌ Database schema verification failed[/bold red]")
        sys.exit(1)

    console.print("[bold green]✅ Database initialized successfully![/bold green]")

    db = get_db_manager(settings.database.path)
    info = db.get_database_info()
    info_table = Table(title="Database Information")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")

    info_table.add_row("Database Path", settings.database.path)
    info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
    for table_name, count in CatalogStore(db).get_statistics().items():
        info_table.add_row(f"Rows in {table_name}", str(count))

    console.print(info_table)


@cli.command()
@click.argument('url')
def discover(url):
    """List the feeds a web page advertises."""
    console.print(f"[bold blue]🔍 Discovering feeds on {url}[/bold blue]")
    feeds = _run(_build_service().discover_feeds(url))

    if not feeds:
        console.print("[yellow]⚠️ No feeds found[/yellow]")
        return

    table = Table(title="Discovered Feeds")
    table.add_column("Title", style="cyan")
    table.add_column("URL", style="blue")
    table.add_column("Type", style="dim")
    for feed in feeds:
        table.add_row(_truncate(feed.title, 40), feed.url, feed.type)
    console.print(table)


@cli.command()
@click.argument('url')
@click.option('--tag', 'tags', multiple=True, help='Tag for the feed (can specify multiple)')
def add(url, tags):
    """Subscribe to a feed by its URL."""
    console.print(f"[bold blue]📡 Adding feed: {url}[/bold blue]")
    result = _run(_build_service().add_feed(url, list(tags) or None))

    console.print(
        f"[bold green]✅ {result.feed.title}[/bold green] "
        f"[dim]({result.feed.id})[/dim] - {len(result.articles)} articles"
    )


@cli.command()
@click.argument('feed_id')
def refresh(feed_id):
    """Refresh a single feed."""
    result = _run(_build_service().refresh_feed(feed_id))

    if result.not_modified:
        console.print(f"[yellow]⏸ {result.feed.title}: not modified[/yellow]")
    else:
        console.print(
            f"[bold green]✅ {result.feed.title}: {len(result.articles)} articles[/bold green]"
        )


@cli.command()
@click.option('--max-concurrent', type=int, default=None,
              help='Maximum feeds refreshed in parallel (default from config)')
def refresh_all(max_concurrent):
    """Refresh every subscribed feed."""
    console.print("[bold blue]🔄 Refreshing all feeds[/bold blue]")
    summary = _run(_build_service().refresh_all(max_concurrent))

    if not summary.outcomes:
        console.print("[yellow]⚠️ No feeds subscribed[/yellow]")
        return

    icons = {
        RefreshStatus.REFRESHED: "✅",
        RefreshStatus.NOT_MODIFIED: "⏸",
        RefreshStatus.SKIPPED: "⏭",
        RefreshStatus.FAILED: "❌",
    }

    table = Table(title=f"Refresh Results ({summary.duration_seconds:.1f}s)")
    table.add_column("Status")
    table.add_column("Feed", style="blue")
    table.add_column("Articles", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Error", style="red")

    for outcome in summary.outcomes:
        table.add_row(
            f"{icons[outcome.status]} {outcome.status.value}",
            _truncate(outcome.feed_url, 45),
            str(outcome.article_count),
            str(outcome.new_article_count),
            outcome.error or "",
        )

    console.print(table)

    if summary.failed:
        sys.exit(1)


@cli.command(name='list')
@click.option('--feed', 'feed_id', help='Only articles of this feed')
@click.option('--saved', is_flag=True, help='Only saved articles')
@click.option('--tag', help='Only articles of feeds with this tag')
@click.option('--limit', default=50, help='Maximum articles to show (default: 50)')
def list_articles(feed_id, saved, tag, limit):
    """List articles, newest first."""
    articles = _run(
        _build_service().list_articles(feed_id=feed_id, saved=True if saved else None, tag=tag)
    )
    _print_articles(articles[:limit], "Saved Articles" if saved else "Articles")


@cli.command()
def feeds():
    """Show subscribed feeds and tags."""
    service = _build_service()
    _print_feeds(_run(service.list_feeds()))

    tags = _run(service.list_tags())
    if tags:
        console.print(f"🏷  Tags: {', '.join(tags)}")

    last_refresh = service.store.get_metadata(LAST_REFRESH_ALL_KEY)
    if last_refresh:
        console.print(f"[dim]Last refresh of all feeds: {last_refresh}[/dim]")


@cli.command()
@click.argument('article_id')
@click.option('--unread', is_flag=True, help='Mark as unread instead')
def read(article_id, unread):
    """Mark an article as read."""
    article = _run(_build_service().toggle_read(article_id, force=not unread))
    state = "read" if article.read else "unread"
    console.print(f"✅ Marked [cyan]{_truncate(article.title, 60)}[/cyan] as {state}")


@cli.command()
@click.argument('article_id')
def save(article_id):
    """Toggle an article's saved flag."""
    article = _run(_build_service().toggle_saved(article_id))
    state = "Saved" if article.saved else "Unsaved"
    console.print(f"★ {state} [cyan]{_truncate(article.title, 60)}[/cyan]")


@cli.command()
@click.argument('article_id')
def reader(article_id):
    """Show an article in reader view, fetching its page if needed."""
    service = _build_service()
    article = _run(service.load_reader_view(article_id))
    _run(service.set_article_state(article_id, read=True))

    console.print(f"\n[bold]{article.title}[/bold]")
    byline = " · ".join(filter(None, [article.author, _format_time(article.published_at)]))
    console.print(f"[dim]{byline}[/dim]")
    if article.url:
        console.print(f"[blue]{article.url}[/blue]")
    console.print()
    console.print(article.content_text or article.snippet or "[yellow]No content available[/yellow]")


@cli.command()
@click.argument('feed_id')
@click.confirmation_option(prompt='Remove this feed and all of its articles?')
def remove(feed_id):
    """Unsubscribe from a feed and delete its articles."""
    _run(_build_service().delete_feed(feed_id))
    console.print(f"[bold green]✅ Removed feed {feed_id}[/bold green]")


@cli.command()
@click.argument('query')
def search(query):
    """Search article titles, authors and text."""
    articles = _run(_build_service().search_articles(query))
    _print_articles(articles, f"Results for '{query}'")


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple:
    try:
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}, Pool: {settings.database.pool_size}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple:
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_fetch_config(settings) -> tuple:
    return True, (
        f"Timeout: {settings.fetch.timeout_seconds}s, "
        f"Concurrency: {settings.fetch.max_concurrent_refreshes}"
    )


def main():
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 CurrentReader interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
