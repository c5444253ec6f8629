"""
CLI for the LunarCrush cache refresher.
Supports one-off refreshes, scheduled mode, and database maintenance.
"""
import asyncio
import sys

import click
import structlog

from lunarcrush_cache.config import Settings, load_settings
from lunarcrush_cache.database import Database
from lunarcrush_cache.exceptions import ConfigurationError
from lunarcrush_cache.models import RefreshState
from lunarcrush_cache.refresh.orchestrator import RunResult
from lunarcrush_cache.scheduler import run_scheduler
from lunarcrush_cache.service import refresh_service
from lunarcrush_cache.store.status import PostgresStatusRecorder
from lunarcrush_cache.utils.logging import setup_logging

logger = structlog.get_logger()


def _load_settings_or_exit() -> Settings:
    """Load settings, aborting with a diagnostic before any network call."""
    try:
        return load_settings()
    except ConfigurationError as e:
        click.echo(click.style(f"✗ {e}", fg="red"), err=True)
        sys.exit(1)


def exit_code_for(result: RunResult, allow_partial: bool = False) -> int:
    """0 on a complete run (or partial when allowed), 1 otherwise."""
    if result.status == RefreshState.COMPLETE:
        return 0
    if result.status == RefreshState.PARTIAL and allow_partial:
        return 0
    return 1


# =============================================================================
# CLI GROUP
# =============================================================================

@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default="console",
    help="Log output format (default: console)",
)
@click.pass_context
def cli(ctx, debug: bool, log_format: str):
    """
    LunarCrush cache refresher.

    Pulls market and social data from LunarCrush and writes pre-aggregated
    views into the crypto_cache table.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    setup_logging(level="DEBUG" if debug else "INFO", format_type=log_format)


# =============================================================================
# REFRESH COMMANDS
# =============================================================================

@cli.command()
@click.option("--dry-run", is_flag=True, help="Keep views in memory instead of writing to the database")
@click.option(
    "--parallel/--sequential",
    default=None,
    help="Refresh groups concurrently or one after another (default: from settings)",
)
@click.option("--allow-partial", is_flag=True, help="Exit 0 when only some groups failed")
def refresh(dry_run: bool, parallel, allow_partial: bool):
    """
    Run one full cache refresh.

    Exit code is 0 when every group was cached, 1 otherwise.
    """
    settings = _load_settings_or_exit()

    async def _run() -> RunResult:
        async with refresh_service(settings, dry_run=dry_run, parallel_groups=parallel) as orchestrator:
            result = await orchestrator.execute()
            if dry_run:
                for key, entry in sorted(orchestrator.store.entries.items()):
                    size = len(entry.data) if isinstance(entry.data, (list, dict)) else 0
                    click.echo(f"  {key:<28} {size:>4} records  ({entry.endpoint_url})")
            return result

    result = asyncio.run(_run())

    click.echo("\n" + "=" * 60)
    click.echo("CACHE REFRESH SUMMARY")
    click.echo("=" * 60)
    for group in result.groups:
        mark = click.style("✓", fg="green") if group.success else click.style("✗", fg="red")
        click.echo(f"{mark} {group.name}: {group.view_count} views")
        if group.error:
            click.echo(f"   Error: {group.error}")
    if result.fatal_error:
        click.echo(click.style(f"✗ Fatal: {result.fatal_error}", fg="red"))
    click.echo(
        f"\nStatus: {result.status.value} "
        f"({result.successful_endpoints} success, {result.failed_endpoints} failed)"
    )
    if not result.status_recorded:
        click.echo(click.style("! Status row could not be updated", fg="yellow"))

    sys.exit(exit_code_for(result, allow_partial))


@cli.command()
def schedule():
    """
    Run the scheduler for periodic refreshes.

    Press Ctrl+C to stop.
    """
    settings = _load_settings_or_exit()
    click.echo(f"Starting scheduler (every {settings.refresh_interval_minutes} minutes)...")
    click.echo("Press Ctrl+C to stop\n")
    asyncio.run(run_scheduler(settings))


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host: str, port: int):
    """Serve the POST refresh trigger over HTTP."""
    _load_settings_or_exit()
    import uvicorn

    uvicorn.run("lunarcrush_cache.api:app", host=host, port=port)


@cli.command()
def status():
    """Show the status of the last refresh run."""
    settings = _load_settings_or_exit()

    async def _run():
        async with Database(settings) as db:
            return await PostgresStatusRecorder(db).fetch()

    row = asyncio.run(_run())
    if row is None:
        click.echo("No refresh status found. Run a refresh first.")
        return

    color = {"complete": "green", "partial": "yellow", "updating": "cyan"}.get(row.status, "red")
    click.echo(f"Status: {click.style(str(row.status), fg=color)}")
    click.echo(f"  Successful endpoints: {row.successful_endpoints}")
    click.echo(f"  Failed endpoints: {row.failed_endpoints}")
    click.echo(f"  Last full update: {row.last_full_update or '-'}")
    click.echo(f"  Updated at: {row.updated_at}")
    if row.error_message:
        click.echo(f"  Error: {row.error_message}")


# =============================================================================
# DATABASE COMMANDS
# =============================================================================

@cli.group()
def db():
    """Database management commands."""
    pass


@db.command()
def migrate():
    """Create the cache tables (runs pending migrations)."""
    settings = _load_settings_or_exit()

    async def _run():
        async with Database(settings) as database:
            return await database.run_migrations()

    applied = asyncio.run(_run())
    if applied:
        for name in applied:
            click.echo(f"  ✓ Applied {name}")
    else:
        click.echo("No pending migrations")


@db.command()
def health():
    """Check database connectivity."""
    settings = _load_settings_or_exit()

    async def _run() -> bool:
        async with Database(settings) as database:
            return await database.health_check()

    if asyncio.run(_run()):
        click.echo(click.style("✓ Database connection healthy", fg="green"))
    else:
        click.echo(click.style("✗ Database connection failed", fg="red"))
        sys.exit(1)


# =============================================================================
# CONFIG COMMANDS
# =============================================================================

@cli.command()
def config():
    """Show current configuration (secrets masked)."""
    settings = _load_settings_or_exit()

    click.echo("\n" + "=" * 60)
    click.echo("CONFIGURATION")
    click.echo("=" * 60)

    click.echo("\nLUNARCRUSH:")
    click.echo(f"  Base URL: {settings.lunarcrush_api_base_url}")
    click.echo(f"  API key: {settings.lunarcrush_api_key[:4]}****")
    click.echo(f"  Rate limit: {settings.lunarcrush_rate_limit_rps} RPS (burst {settings.lunarcrush_burst})")
    click.echo(f"  Timeout: {settings.api_timeout_seconds}s")
    click.echo(f"  429 retries: {settings.retry_max_attempts} attempts, base backoff {settings.backoff_base_seconds}s")

    click.echo("\nCACHE:")
    click.echo(f"  TTL: {settings.cache_ttl_minutes} minutes")
    click.echo(f"  Refresh interval: every {settings.refresh_interval_minutes} minutes")
    click.echo(f"  Parallel groups: {settings.parallel_groups}")

    click.echo("\nDATABASE:")
    click.echo(f"  URL: {settings.masked_database_url}")


# =============================================================================
# ENTRY POINT
# =============================================================================

def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
