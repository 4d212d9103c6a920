"""Command line interface using Click."""

import asyncio
import functools
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ..config import ConfigLoader, SiteConfiguration, get_settings
from ..config.types import ConfigError
from ..scheduler.manager import SchedulerManager
from ..scheduler.orchestrator import cleanup_crawl_orchestrator, get_crawl_orchestrator
from ..scheduler.types import SweepResult
from ..scraper.browser import cleanup_browser_runtime
from ..storage import cleanup_database_manager, cleanup_storage_manager, get_storage_manager
from ..utils.logging import get_structured_logger, setup_logging
from .types import CLIContext, CommandResult

console = Console()
logger = get_structured_logger(__name__)


async def shutdown() -> None:
    """Release the browser and database held by the process-wide singletons."""
    await cleanup_crawl_orchestrator()
    await cleanup_browser_runtime()
    await cleanup_storage_manager()
    await cleanup_database_manager()


def async_command(f):
    """Run an async Click command to completion and release shared resources."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        async def run():
            try:
                return await f(*args, **kwargs)
            finally:
                await shutdown()

        try:
            return asyncio.run(run())
        except KeyboardInterrupt:
            console.print("Operation cancelled by user", style="red")
            sys.exit(1)
        except Exception as e:
            console.print(f"Error: {str(e)}", style="red")
            logger.error("CLI command failed", error=str(e))
            sys.exit(1)

    return wrapper


def handle_result(result: CommandResult, ctx: CLIContext) -> None:
    """Print a command result and exit non-zero on failure."""
    if result.success:
        if result.message:
            console.print(result.message, style="green")
        if result.data and ctx.verbose:
            console.print_json(data=result.data)
        if ctx.verbose:
            console.print(f"Finished in {ctx.elapsed_seconds:.2f}s", style="dim")
    else:
        console.print(result.message, style="red")
        if result.data and ctx.debug:
            console.print_json(data=result.data)
        sys.exit(result.exit_code)


def sweep_table(result: SweepResult) -> Table:
    table = Table(title=f"{result.kind.value.title()} sweep")
    table.add_column("Endpoint")
    table.add_column("Result")
    table.add_column("Change")
    table.add_column("Error")
    for outcome in result.outcomes:
        table.add_row(
            outcome.url,
            "ok" if outcome.success else "failed",
            outcome.change_type or "-",
            outcome.error or "",
        )
    return table


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose: bool, debug: bool) -> None:
    """locwatch - monitor business websites for location page changes."""
    settings = get_settings()
    setup_logging("DEBUG" if debug else settings.log_level, json_logs=settings.json_logs)
    ctx.obj = CLIContext(verbose=verbose, debug=debug)


@cli.group()
def site():
    """Site registration commands."""
    pass


@site.command("add")
@click.argument("url")
@click.option("--domain", help="Domain name (defaults to the URL host)")
@click.option(
    "--save-to",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also append the site to this YAML sites file",
)
@click.pass_obj
@async_command
async def site_add(
    ctx: CLIContext, url: str, domain: Optional[str], save_to: Optional[Path]
) -> None:
    """Register a site for monitoring."""
    if "://" not in url:
        url = f"https://{url}"

    try:
        site_config = SiteConfiguration(url=url, domain=domain)
    except ConfigError as e:
        handle_result(CommandResult(success=False, message=str(e)), ctx)
        return

    storage = await get_storage_manager()
    if await storage.get_site_by_url(site_config.url):
        handle_result(
            CommandResult(success=False, message=f"Site already registered: {url}"),
            ctx,
        )
        return

    created = await storage.create_site(site_config.url, site_config.domain)
    if save_to is not None:
        try:
            ConfigLoader(save_to).add_site(site_config)
        except ConfigError as e:
            console.print(f"Not saved to {save_to}: {e}", style="yellow")

    handle_result(
        CommandResult(
            success=True,
            message=f"Site registered: {created.url} ({created.id})",
            data={"id": created.id, "url": created.url, "domain": created.domain},
        ),
        ctx,
    )


@site.command("list")
@click.pass_obj
@async_command
async def site_list(ctx: CLIContext) -> None:
    """List registered sites."""
    storage = await get_storage_manager()
    sites = await storage.list_sites()

    if not sites:
        console.print("No sites registered", style="yellow")
        return

    table = Table(title="Monitored sites")
    table.add_column("ID", style="cyan")
    table.add_column("URL")
    table.add_column("Status")
    table.add_column("Last checked")
    for s in sites:
        table.add_row(
            s.id,
            s.url,
            s.status,
            s.last_checked_at.isoformat(timespec="seconds") if s.last_checked_at else "never",
        )
    console.print(table)


@site.command("sync")
@click.option(
    "--file",
    "sites_file",
    type=click.Path(path_type=Path),
    help="YAML file with a 'sites' list (defaults to settings.sites_file)",
)
@click.pass_obj
@async_command
async def site_sync(ctx: CLIContext, sites_file: Optional[Path]) -> None:
    """Register every site listed in the YAML config file."""
    path = sites_file or Path(get_settings().sites_file)
    orchestrator = await get_crawl_orchestrator()
    created = await orchestrator.register_configured_sites(
        ConfigLoader(path).get_sites_config()
    )
    handle_result(
        CommandResult(success=True, message=f"Registered {len(created)} new site(s)"),
        ctx,
    )


@cli.command()
@click.argument("site_id")
@click.pass_obj
@async_command
async def discover(ctx: CLIContext, site_id: str) -> None:
    """Re-run endpoint discovery for one site."""
    orchestrator = await get_crawl_orchestrator()
    result = await orchestrator.refresh_site(site_id)

    if result.skipped:
        handle_result(CommandResult(success=True, message="Discovery already running, skipped"), ctx)
    elif result.errors:
        handle_result(CommandResult(success=False, message="; ".join(result.errors)), ctx)
    else:
        handle_result(
            CommandResult(
                success=True,
                message=f"Discovered {result.endpoints_created} endpoint(s)",
                data=result.to_dict(),
            ),
            ctx,
        )


@cli.command("discovery-sweep")
@click.pass_obj
@async_command
async def discovery_sweep(ctx: CLIContext) -> None:
    """Run discovery for every active site without endpoints."""
    orchestrator = await get_crawl_orchestrator()
    result = await orchestrator.run_discovery_sweep()
    message = (
        "Discovery already running, skipped"
        if result.skipped
        else f"Checked {result.sites_checked} site(s), created {result.endpoints_created} endpoint(s)"
    )
    handle_result(CommandResult(success=True, message=message, data=result.to_dict()), ctx)


@cli.command()
@click.pass_obj
@async_command
async def sweep(ctx: CLIContext) -> None:
    """Fetch every active endpoint once."""
    orchestrator = await get_crawl_orchestrator()
    result = await orchestrator.run_content_sweep()

    if result.skipped:
        handle_result(CommandResult(success=True, message="Content sweep already running, skipped"), ctx)
        return

    console.print(sweep_table(result))
    handle_result(
        CommandResult(
            success=True,
            message=(
                f"Processed {result.endpoints_processed} endpoint(s): "
                f"{result.succeeded} ok, {result.failed} failed, "
                f"{result.changes_detected} change(s)"
            ),
        ),
        ctx,
    )


@cli.command()
@click.argument("endpoint_id")
@click.pass_obj
@async_command
async def fetch(ctx: CLIContext, endpoint_id: str) -> None:
    """Fetch a single endpoint now."""
    orchestrator = await get_crawl_orchestrator()
    result = await orchestrator.fetch_endpoint(endpoint_id)

    if result.errors:
        handle_result(CommandResult(success=False, message="; ".join(result.errors)), ctx)
        return
    if result.skipped:
        handle_result(CommandResult(success=True, message="Content sweep running, skipped"), ctx)
        return

    outcome = result.outcomes[0]
    if not outcome.success:
        handle_result(CommandResult(success=False, message=f"Fetch failed: {outcome.error}"), ctx)
        return

    message = (
        f"Change detected: {outcome.change_type}"
        if outcome.change_detected
        else "No change detected"
    )
    handle_result(CommandResult(success=True, message=message, data=outcome.to_dict()), ctx)


@cli.command()
@click.option("--days", default=30, show_default=True, help="Window in days")
@click.pass_obj
@async_command
async def stats(ctx: CLIContext, days: int) -> None:
    """Show change statistics."""
    orchestrator = await get_crawl_orchestrator()
    statistics = await orchestrator.detector.get_change_statistics(window_days=days)

    console.print(f"Changes in the last {days} days: {statistics.total_changes}")
    for change_type, count in sorted(statistics.changes_by_type.items()):
        console.print(f"  {change_type}: {count}")

    if statistics.most_active_endpoints:
        table = Table(title="Most active endpoints")
        table.add_column("Endpoint")
        table.add_column("Changes", justify="right")
        for entry in statistics.most_active_endpoints:
            table.add_row(entry["url"] or entry["endpoint_id"], str(entry["change_count"]))
        console.print(table)


@cli.command()
@click.option("--endpoint", "endpoint_id", help="Limit to one endpoint")
@click.pass_obj
@async_command
async def changes(ctx: CLIContext, endpoint_id: Optional[str]) -> None:
    """List unprocessed changes."""
    storage = await get_storage_manager()
    pending = await storage.get_unprocessed_changes(endpoint_id=endpoint_id)

    if not pending:
        console.print("No unprocessed changes", style="green")
        return

    table = Table(title="Unprocessed changes")
    table.add_column("ID", style="cyan")
    table.add_column("Endpoint")
    table.add_column("Type")
    table.add_column("Detected")
    for change in pending:
        table.add_row(
            change.id,
            change.endpoint_id,
            change.change_type,
            change.detected_at.isoformat(timespec="seconds"),
        )
    console.print(table)


@cli.command()
@click.argument("endpoint_id")
@click.pass_obj
@async_command
async def diff(ctx: CLIContext, endpoint_id: str) -> None:
    """Show the diff between the two latest snapshots of an endpoint."""
    orchestrator = await get_crawl_orchestrator()
    text = await orchestrator.detector.get_content_diff(endpoint_id)
    if text is None:
        console.print("Fewer than two snapshots, nothing to compare", style="yellow")
        return
    console.print(text or "Snapshots are identical", markup=False, highlight=False)


@cli.command()
@click.pass_obj
@async_command
async def run(ctx: CLIContext) -> None:
    """Start the scheduler in the foreground."""
    settings = get_settings()
    orchestrator = await get_crawl_orchestrator()
    await orchestrator.register_configured_sites(
        ConfigLoader(Path(settings.sites_file)).get_sites_config()
    )

    scheduler = SchedulerManager(orchestrator, settings.scheduler)
    await scheduler.setup()
    console.print("Scheduler running, press Ctrl+C to stop", style="bold blue")
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.cleanup()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
