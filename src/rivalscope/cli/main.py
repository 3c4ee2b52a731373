"""Main CLI application using Click framework."""

import asyncio
import concurrent.futures
import functools
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import click
from rich.console import Console
from rich.table import Table

from ..config import ConfigLoader, create_example_config, get_settings
from ..detection.types import Severity
from ..notification.dispatcher import target_display_name
from ..scheduler.manager import CrawlScheduler
from ..tracking.types import CrawlCadence, MonitoringMode
from ..utils.logging import get_structured_logger, setup_logging
from .runtime import open_runtime
from .types import CLIContext, CLIError, CommandResult, OutputFormat

console = Console()
logger = get_structured_logger(__name__)

SEVERITY_STYLES = {"LOW": "dim", "MEDIUM": "yellow", "HIGH": "red", "CRITICAL": "bold red"}

format_option = click.option(
    "--format",
    "output_format",
    type=click.Choice(OutputFormat.choices()),
    default=OutputFormat.TABLE.value,
    help="Output format",
)


def _run_coroutine(coro):
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    # Called from inside a running loop (pytest-asyncio): use a worker thread
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


def async_command(f):
    """Decorator to run async functions in Click commands."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return _run_coroutine(f(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("❌ Operation cancelled by user", style="red")
            sys.exit(1)
        except CLIError as e:
            console.print(f"❌ {e}", style="red")
            sys.exit(1)
        except Exception as e:
            console.print(f"❌ Error: {str(e)}", style="red")
            logger.error("CLI command failed", error=str(e))
            sys.exit(1)

    return wrapper


def handle_result(result: CommandResult, ctx: CLIContext) -> None:
    """Handle command result output."""
    if result.success:
        if result.message:
            console.print(f"✅ {result.message}", style="green")
        if result.data and ctx.verbose:
            console.print_json(data=result.data)
    else:
        console.print(f"❌ {result.message}", style="red")
        if result.data and ctx.debug:
            console.print_json(data=result.data)

    if not result.success:
        sys.exit(result.exit_code)


def _value(field) -> str:
    return getattr(field, "value", field)


def _when(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "Never"


async def require_target(runtime, target_id: str):
    """Look a target up by id, or by an unambiguous id prefix as shown in tables."""
    found = await runtime.store.get_target(target_id)
    if found is not None:
        return found

    matches = [t for t in await runtime.store.list_targets() if t.id.startswith(target_id)]
    if len(matches) == 1:
        return matches[0]
    raise CLIError(f"Target not found: {target_id}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx, verbose: bool, debug: bool) -> None:
    """RivalScope - competitor website change monitoring."""
    ctx.obj = CLIContext(verbose=verbose, debug=debug)
    setup_logging(log_level=ctx.obj.log_level, json_logs=get_settings().json_logs)


# Target Management Commands
@cli.group()
def target():
    """Monitored target management commands."""
    pass


@target.command("add")
@click.argument("url")
@click.option("--name", help="Display name (defaults to domain)")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in MonitoringMode], case_sensitive=False),
    default="SINGLE_PAGE",
)
@click.option(
    "--cadence",
    type=click.Choice([c.value for c in CrawlCadence], case_sensitive=False),
    default="DAILY",
)
@click.option("--priority-path", "priority_paths", multiple=True, help="Path always crawled")
@click.option("--max-signals", default=8, type=click.IntRange(min=1), help="SMART budget")
@click.option("--account", "account_id", help="Account charged for crawls")
@click.pass_obj
@async_command
async def add_target(
    ctx: CLIContext,
    url: str,
    name: Optional[str],
    mode: str,
    cadence: str,
    priority_paths: tuple,
    max_signals: int,
    account_id: Optional[str],
) -> None:
    """Add a competitor website for monitoring."""
    parsed = urlparse(url)
    if not parsed.scheme:
        url = f"https://{url}"
        parsed = urlparse(url)

    async with open_runtime() as runtime:
        if await runtime.store.get_target_by_url(url):
            raise CLIError(f"Target already exists: {url}")

        created = await runtime.store.create_target(
            {
                "url": url,
                "name": name or parsed.netloc,
                "mode": MonitoringMode(mode.upper()),
                "cadence": CrawlCadence(cadence.upper()),
                "priority_paths": list(priority_paths),
                "max_signals": max_signals,
                "account_id": account_id,
                "is_active": True,
            }
        )

    handle_result(
        CommandResult(
            success=True,
            message=f"Target added: {target_display_name(created)} ({url})",
            data={"target_id": created.id, "mode": _value(created.mode)},
        ),
        ctx,
    )


@target.command("list")
@click.option("--status", type=click.Choice(["active", "inactive", "all"]), default="all")
@format_option
@click.pass_obj
@async_command
async def list_targets(ctx: CLIContext, status: str, output_format: str) -> None:
    """List monitored targets."""
    async with open_runtime() as runtime:
        targets = await runtime.store.list_targets()

    if status != "all":
        is_active = status == "active"
        targets = [t for t in targets if t.is_active == is_active]

    if output_format == OutputFormat.JSON:
        console.print_json(
            data=[
                {
                    "id": t.id,
                    "name": target_display_name(t),
                    "url": t.url,
                    "mode": _value(t.mode),
                    "cadence": _value(t.cadence),
                    "status": "active" if t.is_active else "inactive",
                    "last_crawled": t.last_crawled_at.isoformat() if t.last_crawled_at else None,
                }
                for t in targets
            ]
        )
        return

    table = Table()
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("URL", style="blue")
    table.add_column("Mode")
    table.add_column("Cadence")
    table.add_column("Status", justify="center")
    table.add_column("Last Crawled", style="yellow")

    for t in targets:
        table.add_row(
            t.id[:8],
            target_display_name(t),
            t.url,
            _value(t.mode),
            _value(t.cadence),
            "🟢 Active" if t.is_active else "🔴 Inactive",
            _when(t.last_crawled_at),
        )

    console.print(table)
    if ctx.verbose:
        handle_result(CommandResult(success=True, message=f"Found {len(targets)} targets"), ctx)


@target.command("remove")
@click.argument("target_id")
@click.option("--force", is_flag=True, help="Force removal without confirmation")
@click.pass_obj
@async_command
async def remove_target(ctx: CLIContext, target_id: str, force: bool) -> None:
    """Remove a target and all of its history."""
    async with open_runtime() as runtime:
        found = await require_target(runtime, target_id)

        if not force and not click.confirm(f"Remove target '{target_display_name(found)}'?"):
            console.print("❌ Operation cancelled", style="yellow")
            return

        await runtime.store.delete_target(found.id)

    handle_result(
        CommandResult(success=True, message=f"Target removed: {target_display_name(found)}"), ctx
    )


@target.command("toggle")
@click.argument("target_id")
@click.pass_obj
@async_command
async def toggle_target(ctx: CLIContext, target_id: str) -> None:
    """Pause or resume monitoring of a target."""
    async with open_runtime() as runtime:
        found = await require_target(runtime, target_id)
        updated = await runtime.store.update_target(found.id, {"is_active": not found.is_active})

    state = "resumed" if updated.is_active else "paused"
    handle_result(
        CommandResult(success=True, message=f"Monitoring {state}: {target_display_name(updated)}"),
        ctx,
    )


@target.command("import")
@click.option("--file", "config_file", type=click.Path(path_type=Path), default="targets.yaml")
@click.pass_obj
@async_command
async def import_targets(ctx: CLIContext, config_file: Path) -> None:
    """Create targets declared in a YAML file, skipping known URLs."""
    loader = ConfigLoader(config_file)
    issues = loader.validate_config()
    if issues:
        handle_result(
            CommandResult(
                success=False,
                message=f"Invalid targets file: {'; '.join(issues)}",
                data={"issues": issues},
                exit_code=1,
            ),
            ctx,
        )
        return

    created, skipped = 0, 0
    async with open_runtime() as runtime:
        for declared in loader.get_targets_config():
            if await runtime.store.get_target_by_url(declared.url):
                skipped += 1
                continue
            await runtime.store.create_target(
                {
                    "url": declared.url,
                    "name": declared.name,
                    "description": declared.description,
                    "mode": MonitoringMode(declared.mode),
                    "cadence": CrawlCadence(declared.cadence),
                    "priority_paths": list(declared.priority_paths),
                    "max_signals": declared.max_signals,
                    "is_active": declared.enabled,
                }
            )
            created += 1

    handle_result(
        CommandResult(
            success=True,
            message=f"Imported {created} targets ({skipped} already present)",
            data={"created": created, "skipped": skipped},
        ),
        ctx,
    )


# Crawl Commands
@cli.group()
def crawl():
    """Crawl execution commands."""
    pass


@crawl.command("run")
@click.argument("target_id")
@format_option
@click.pass_obj
@async_command
async def run_crawl(ctx: CLIContext, target_id: str, output_format: str) -> None:
    """Crawl a target now."""
    async with open_runtime() as runtime:
        found = await require_target(runtime, target_id)
        outcome = await runtime.crawl_service.crawl_target(found.id)

    if output_format == OutputFormat.JSON:
        console.print_json(data=outcome.to_dict())
    else:
        console.print(f"🔎 {outcome.rationale}", style="blue")
        if outcome.changes:
            table = Table(title="Detected Changes")
            table.add_column("Severity")
            table.add_column("Title", style="green")
            table.add_column("Description")
            table.add_column("URL", style="blue")
            for record in outcome.changes:
                sev = record.severity.value
                table.add_row(
                    f"[{SEVERITY_STYLES[sev]}]{sev}[/]", record.title, record.description, record.url or ""
                )
            console.print(table)
        for url, error in outcome.failed_urls.items():
            console.print(f"⚠️  {url}: {error}", style="yellow")

    handle_result(
        CommandResult(
            success=outcome.succeeded,
            message=(
                f"Crawled {outcome.pages_fetched}/{len(outcome.urls)} pages, "
                f"{len(outcome.changes)} changes, {outcome.signals_used} signals used"
                if outcome.succeeded
                else "All URLs failed to crawl"
            ),
            data=outcome.to_dict(),
            exit_code=1,
        ),
        ctx,
    )


# Change Commands
@cli.group()
def changes():
    """Detected change commands."""
    pass


@changes.command("list")
@click.option("--target", "target_id", help="Only changes for this target")
@click.option(
    "--min-severity",
    type=click.Choice([s.value for s in Severity], case_sensitive=False),
    help="Lowest severity shown",
)
@click.option("--unread", is_flag=True, help="Only unread changes")
@click.option("--limit", default=50, type=click.IntRange(min=1))
@format_option
@click.pass_obj
@async_command
async def list_changes(
    ctx: CLIContext,
    target_id: Optional[str],
    min_severity: Optional[str],
    unread: bool,
    limit: int,
    output_format: str,
) -> None:
    """List detected changes, newest first."""
    async with open_runtime() as runtime:
        records = await runtime.store.list_changes(
            target_id=target_id,
            min_severity=Severity(min_severity.upper()) if min_severity else None,
            unread_only=unread,
            limit=limit,
        )

    if output_format == OutputFormat.JSON:
        console.print_json(
            data=[
                {
                    "id": r.id,
                    "target_id": r.target_id,
                    "kind": r.kind.value,
                    "title": r.title,
                    "description": r.description,
                    "severity": r.severity.value,
                    "old_value": r.old_value,
                    "new_value": r.new_value,
                    "url": r.url,
                    "detected_at": r.detected_at.isoformat(),
                    "is_read": r.is_read,
                }
                for r in records
            ]
        )
        return

    table = Table()
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Detected", style="yellow")
    table.add_column("Severity")
    table.add_column("Title", style="green")
    table.add_column("Description")
    for r in records:
        sev = r.severity.value
        table.add_row(
            (r.id or "")[:8],
            _when(r.detected_at),
            f"[{SEVERITY_STYLES[sev]}]{sev}[/]",
            r.title if r.is_read else f"● {r.title}",
            r.description,
        )
    console.print(table)


@changes.command("read")
@click.argument("change_id")
@click.pass_obj
@async_command
async def mark_read(ctx: CLIContext, change_id: str) -> None:
    """Mark a change as read."""
    async with open_runtime() as runtime:
        found = await runtime.store.mark_change_read(change_id)

    if found:
        handle_result(CommandResult(success=True, message="Change marked as read"), ctx)
    else:
        handle_result(
            CommandResult(success=False, message=f"Change not found: {change_id}", exit_code=1),
            ctx,
        )


# Tracking Commands
@cli.group()
def tracking():
    """Sitemap discovery and URL selection commands."""
    pass


@tracking.command("preview")
@click.argument("target_id")
@click.pass_obj
@async_command
async def preview(ctx: CLIContext, target_id: str) -> None:
    """Summarize a target's URL universe."""
    async with open_runtime() as runtime:
        found = await require_target(runtime, target_id)
        summary = await runtime.crawl_service.preview(found.id)

    table = Table(title="Tracking Preview")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total URLs", str(summary.total_urls))
    table.add_row("Priority URLs", str(summary.priority_urls))
    table.add_row("Changed in last 7 days", str(summary.recent_changes))
    table.add_row("Estimated signals per crawl", str(summary.estimated_signals))
    console.print(table)

    if summary.top_paths:
        paths = Table(title="Top Sections")
        paths.add_column("Path", style="blue")
        paths.add_column("URLs", justify="right")
        for path, count in summary.top_paths:
            paths.add_row(path, str(count))
        console.print(paths)

    console.print(summary.rationale)


@tracking.command("select")
@click.argument("target_id")
@click.pass_obj
@async_command
async def select(ctx: CLIContext, target_id: str) -> None:
    """Show which URLs the next crawl would fetch and why."""
    async with open_runtime() as runtime:
        found = await require_target(runtime, target_id)
        plan = await runtime.crawl_service.plan(found)

    table = Table(title=f"Next crawl: {plan.estimated_cost} signals")
    table.add_column("#", justify="right")
    table.add_column("Tier", style="cyan")
    table.add_column("URL", style="blue")
    position = 0
    for tier in plan.trace:
        for url in tier.urls:
            position += 1
            table.add_row(str(position), tier.label, url)
    if not plan.trace:
        for position, url in enumerate(plan.urls, start=1):
            table.add_row(str(position), _value(found.mode), url)
    console.print(table)
    console.print(plan.rationale)


@tracking.command("sitemap")
@click.argument("target_id")
@click.pass_obj
@async_command
async def refresh_sitemap(ctx: CLIContext, target_id: str) -> None:
    """Rediscover a target's sitemap now."""
    async with open_runtime() as runtime:
        found = await require_target(runtime, target_id)
        entries = await runtime.crawl_service.refresh_sitemap(found.id)

    handle_result(
        CommandResult(
            success=True,
            message=f"Sitemap refreshed: {len(entries)} URLs",
            data={"urls": [e.url for e in entries[:50]]},
        ),
        ctx,
    )


# Account Commands
@cli.group()
def account():
    """Signal balance commands."""
    pass


@account.command("create")
@click.argument("email")
@click.option("--name", help="Account holder name")
@click.option("--balance", default=0, type=click.IntRange(min=0), help="Opening signal balance")
@click.pass_obj
@async_command
async def create_account(ctx: CLIContext, email: str, name: Optional[str], balance: int) -> None:
    """Create an account that pays for crawls."""
    async with open_runtime() as runtime:
        created = await runtime.ledger.create_account(email, name=name, balance=balance)

    handle_result(
        CommandResult(
            success=True,
            message=f"Account created: {created.id}",
            data={"account_id": created.id, "balance": created.signal_balance},
        ),
        ctx,
    )


@account.command("credit")
@click.argument("account_id")
@click.argument("amount", type=click.IntRange(min=1))
@click.option("--description", help="Ledger description")
@click.pass_obj
@async_command
async def credit(ctx: CLIContext, account_id: str, amount: int, description: Optional[str]) -> None:
    """Add signals to an account."""
    async with open_runtime() as runtime:
        balance = await runtime.ledger.credit(account_id, amount, description=description)

    handle_result(
        CommandResult(success=True, message=f"Credited {amount} signals, balance is now {balance}"),
        ctx,
    )


@account.command("balance")
@click.argument("account_id")
@click.pass_obj
@async_command
async def balance(ctx: CLIContext, account_id: str) -> None:
    """Show an account's signal balance."""
    async with open_runtime() as runtime:
        current = await runtime.ledger.get_balance(account_id)

    console.print(f"💳 {current} signals available")


# Scheduler Commands
@cli.group()
def scheduler():
    """Recurring crawl commands."""
    pass


@scheduler.command("start")
@click.pass_obj
@async_command
async def start_scheduler(ctx: CLIContext) -> None:
    """Crawl every active target on its cadence until interrupted."""
    async with open_runtime() as runtime:
        async with CrawlScheduler(runtime.crawl_service) as crawl_scheduler:
            jobs = crawl_scheduler.list_jobs()
            console.print(f"⏱️  Scheduler running with {len(jobs)} targets", style="blue")
            try:
                await asyncio.Event().wait()
            finally:
                stats = crawl_scheduler.get_stats()
                logger.info(
                    "Scheduler stopped",
                    executed=stats.crawls_executed,
                    succeeded=stats.crawls_succeeded,
                    failed=stats.crawls_failed,
                )


@scheduler.command("jobs")
@click.pass_obj
@async_command
async def list_jobs(ctx: CLIContext) -> None:
    """Show when each active target would next be crawled."""
    async with open_runtime() as runtime:
        async with CrawlScheduler(runtime.crawl_service) as crawl_scheduler:
            jobs = crawl_scheduler.list_jobs()

    table = Table()
    table.add_column("Target", style="cyan")
    table.add_column("Every", justify="right")
    table.add_column("Next Run", style="yellow")
    for job in jobs:
        table.add_row(job.target_id[:8], f"{job.interval_days}d", _when(job.next_run_time))
    console.print(table)


# Configuration Commands
@cli.group()
def config():
    """Targets file commands."""
    pass


@config.command("init")
@click.argument("path", type=click.Path(path_type=Path), default="targets.yaml")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_obj
def init_config(ctx: CLIContext, path: Path, force: bool) -> None:
    """Write an example targets file."""
    if path.exists() and not force:
        handle_result(
            CommandResult(success=False, message=f"File already exists: {path}", exit_code=1), ctx
        )
        return
    create_example_config(path)
    handle_result(CommandResult(success=True, message=f"Example targets written to {path}"), ctx)


@config.command("validate")
@click.argument("path", type=click.Path(exists=True, path_type=Path), default="targets.yaml")
@click.pass_obj
def validate_config(ctx: CLIContext, path: Path) -> None:
    """Check a targets file for problems."""
    issues = ConfigLoader(path).validate_config()
    for issue in issues:
        console.print(f"⚠️  {issue}", style="yellow")

    handle_result(
        CommandResult(
            success=not issues,
            message="Targets file is valid" if not issues else f"{len(issues)} problems found",
            exit_code=1,
        ),
        ctx,
    )


if __name__ == "__main__":
    cli()
