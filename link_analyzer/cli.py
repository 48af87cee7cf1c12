"""Command line interface for the link analyzer."""

import asyncio
import sys

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from link_analyzer import __version__
from link_analyzer.core.config import settings
from link_analyzer.core.database import close_db, init_db
from link_analyzer.core.logging import get_logger, setup_logging
from link_analyzer.core.models import InboundMessage
from link_analyzer.scrapers.twitter_scraper import TwitterScraper
from link_analyzer.services.data_service import AnalysisStore
from link_analyzer.services.llm_processor import OllamaAnalyzer
from link_analyzer.services.messaging import ChannelTransport, MessageRouter
from link_analyzer.services.scraper_service import LinkProcessor
from link_analyzer.utils.metrics import setup_metrics
from link_analyzer.utils.url_detector import extract_urls

console = Console()

# Setup logging before CLI initialization
setup_logging()
logger = get_logger(__name__)

BANNER = r"""
[bold cyan]
╔═══════════════════════════════════════════════════════════╗
║                                                           ║
║                  [bold white]LINK ANALYZER[/bold white]                            ║
║      [dim]Chat links → scraping → local AI analysis[/dim]           ║
║                                                           ║
╚═══════════════════════════════════════════════════════════╝
[/bold cyan]
"""


def create_status_panel(title: str, content: str, style: str = "cyan") -> Panel:
    """Create a styled panel for status displays."""
    return Panel(
        content,
        title=f"[bold {style}]{title}[/bold {style}]",
        border_style=style,
        box=box.ROUNDED,
        padding=(1, 2),
    )


def status_mark(ok: bool) -> str:
    return "[green]✓[/green]" if ok else "[red]✗[/red]"


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx):
    """Analyze links shared in chat with a local Ollama model."""
    setup_metrics(settings.ollama_model)
    if ctx.invoked_subcommand is None:
        console.print(BANNER)
        console.print("[yellow]Tip:[/yellow] Use 'link-analyzer --help' to see available commands\n")


@cli.command(name="init-db")
def init_database():
    """Create the database tables."""

    async def _init():
        try:
            await init_db()
        finally:
            await close_db()

    asyncio.run(_init())
    console.print("[green]✓[/green] Database tables ready")


@cli.command()
def check():
    """Check database, Ollama model and Nitter mirrors."""

    async def _check() -> bool:
        store = AnalysisStore()
        analyzer = OllamaAnalyzer()
        twitter = TwitterScraper()
        try:
            db_ok = await store.health_check()
            model_ok = await analyzer.check_model()
            mirror = await twitter.check_mirror_availability()
        finally:
            await analyzer.close()
            await twitter.close()
            await close_db()

        table = Table(title="System check", box=box.ROUNDED)
        table.add_column("Component", style="cyan")
        table.add_column("Status")
        table.add_column("Details", style="dim")
        table.add_row("Database", status_mark(db_ok), settings.database_url.split("@")[-1])
        table.add_row("Ollama", status_mark(model_ok), f"{settings.ollama_host} ({settings.ollama_model})")
        table.add_row(
            "Nitter",
            "[green]✓[/green]" if mirror else "[yellow]![/yellow]",
            mirror or "No mirror available, the browser scraper will be used",
        )
        console.print(table)

        # Twitter still works through the browser without a mirror
        return db_ok and model_ok

    if not asyncio.run(_check()):
        sys.exit(1)


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--sender", "-s", default=None, help="Sender recorded with the results")
def process(urls, sender):
    """Process one or more URLs (or text containing URLs) in sequence."""
    found = []
    for value in urls:
        found.extend(extract_urls(value))

    if not found:
        console.print("[red]✗[/red] No valid URLs found")
        sys.exit(1)

    async def _process():
        processor = LinkProcessor()
        try:
            return await processor.process_batch(found, sender)
        finally:
            await processor.close()
            await close_db()

    summary = asyncio.run(_process())

    console.print(create_status_panel(
        "Batch completed",
        f"Total: [cyan]{summary.total}[/cyan]\n"
        f"Succeeded: [green]{summary.succeeded}[/green]\n"
        f"Skipped: [yellow]{summary.skipped}[/yellow]\n"
        f"Failed: [red]{summary.failed}[/red]",
        style="green" if summary.failed == 0 else "yellow",
    ))


@cli.command()
@click.option("--sender", "-s", default="me", help="Sender id for every line")
@click.option("--chat", "-c", "chat_id", default="stdin", help="Chat id for every line")
def listen(sender, chat_id):
    """Read messages from stdin, one per line, and process their links."""

    async def _listen():
        transport = ChannelTransport()
        processor = LinkProcessor()
        router = MessageRouter(transport, processor)

        async def _read_stdin():
            while True:
                line = await asyncio.to_thread(sys.stdin.readline)
                if not line:
                    break
                if line.strip():
                    await transport.put(InboundMessage(text=line.strip(), sender_id=sender, chat_id=chat_id))
            await transport.close()

        reader = asyncio.create_task(_read_stdin())
        try:
            await router.run()
        finally:
            if not reader.done():
                reader.cancel()
            await processor.close()
            await close_db()

    console.print(BANNER)
    console.print("[dim]Paste messages with links, Ctrl+D to finish.[/dim]\n")
    try:
        asyncio.run(_listen())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@cli.command()
@click.option("--limit", "-l", default=10, help="Rows per section")
@click.option("--category", default=None, help="Only show top records of this category")
@click.option("--search", default=None, help="Only show records whose content matches this text")
def stats(limit, category, search):
    """Show processing statistics."""

    async def _stats():
        store = AnalysisStore()
        try:
            summary = await store.overall_summary()
            daily = await store.recent_stats()
            categories = await store.top_categories(limit)
            platforms = await store.top_platforms(limit)
            if search:
                top = await store.full_text_search(search, limit)
            elif category:
                top = await store.search_by_category(category, limit)
            else:
                top = await store.search_by_relevance(4, limit)
        finally:
            await close_db()
        return summary, daily, categories, platforms, top

    summary, daily, categories, platforms, top = asyncio.run(_stats())

    console.print(create_status_panel(
        "Summary",
        f"Processed: [cyan]{summary['processed']}[/cyan]\n"
        f"Errors: [red]{summary['errors']}[/red]\n"
        f"Average relevance: [cyan]{summary['avg_relevance'] or '-'}[/cyan]\n"
        f"Average analysis time: [cyan]{summary['avg_time'] or '-'}s[/cyan]\n"
        f"High relevance (4-5): [green]{summary['high_relevance']}[/green]",
    ))

    daily_table = Table(title="Last 7 days", box=box.ROUNDED)
    daily_table.add_column("Date", style="cyan")
    daily_table.add_column("Processed", justify="right")
    daily_table.add_column("Avg relevance", justify="right")
    daily_table.add_column("Avg time (s)", justify="right")
    for day in daily:
        daily_table.add_row(
            str(day.fecha),
            str(day.total_procesados),
            str(day.relevancia_promedio or "-"),
            str(day.tiempo_promedio_seg or "-"),
        )
    console.print(daily_table)

    for title, rows in (("Categories", categories), ("Platforms", platforms)):
        table = Table(title=title, box=box.ROUNDED)
        table.add_column("Name", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Avg relevance", justify="right")
        for row in rows:
            table.add_row(str(row["name"]), str(row["count"]), str(row["avg_relevance"] or "-"))
        console.print(table)

    if search:
        top_title = f"Search: {search}"
    elif category:
        top_title = f"Top: {category}"
    else:
        top_title = "Most relevant"
    top_table = Table(title=top_title, box=box.ROUNDED)
    top_table.add_column("Rel.", justify="center")
    top_table.add_column("Category", style="cyan")
    top_table.add_column("Title")
    top_table.add_column("URL", style="dim", overflow="fold")
    for record in top:
        top_table.add_row(
            str(record.relevancia or "-"),
            record.categoria or "-",
            (record.title or "")[:60],
            record.url,
        )
    console.print(top_table)


def main():
    cli()


if __name__ == "__main__":
    main()
