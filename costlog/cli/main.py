"""
CLI interface for CostLog.

Provides command-line access to usage import, statistics, alert rules,
alert checking and notification settings.
"""

import json
import sys
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
import typer
import yaml
from rich.console import Console
from rich.table import Table

from costlog.config.loader import DEFAULT_CONFIG_PATH, CostLogConfig, load_config_or_default
from costlog.core.anomaly import detect_anomalies
from costlog.core.budget import budget_status, check_budget_threshold
from costlog.core.checker import AlertChecker
from costlog.core.stats import (
    format_currency,
    format_number,
    model_breakdown,
    month_spend,
    project_breakdown,
    spend_by_provider,
    today_spend,
    total_spend,
    week_spend,
)
from costlog.logging_setup import configure_logging
from costlog.notify import ConsoleNotifier, NotificationDispatcher
from costlog.storage.db import initialize_schema
from costlog.storage.models import AlertRule, Budget, Severity, SlackConfig, UsageRecord
from costlog.storage.repository import CostLogStore, open_store

app = typer.Typer(help="Track AI API spend and raise budget alerts.")
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def _config(ctx: typer.Context) -> CostLogConfig:
    return ctx.obj["config"]


def _store(ctx: typer.Context) -> CostLogStore:
    storage = _config(ctx).storage
    return open_store(storage.path, cache_ttl_seconds=storage.cache_ttl_seconds)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: str = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to the YAML configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging"),
):
    """CostLog CLI."""
    configure_logging(verbose)
    try:
        ctx.obj = {"config": load_config_or_default(config_path)}
    except (ValueError, yaml.YAMLError) as e:
        _fail(f"Invalid configuration: {e}")
    if ctx.invoked_subcommand is None:
        console.print("CostLog - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the CostLog database."""
    try:
        initialize_schema(_config(ctx).storage.path)
    except Exception as e:
        _fail(f"initializing database: {e}")
    console.print("[green]✓[/] Database initialized successfully")


@app.command("import-usage")
def import_usage(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="JSON file containing a list of usage records"),
):
    """Import usage records; records whose id is already stored are skipped."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError("usage file must contain a JSON list")
        records = [UsageRecord.from_dict(item) for item in raw]
    except (OSError, KeyError, TypeError, ValueError) as e:
        _fail(f"reading {path}: {e}")

    added = _store(ctx).save_usage(records)
    console.print(f"[green]✓[/] Imported {added} new record(s), skipped {len(records) - added}")


@app.command("add-rules")
def add_rules(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="YAML file containing a list of alert rules"),
):
    """Create or replace alert rules from a YAML file."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or []
        if not isinstance(raw, list):
            raise ValueError("rules file must contain a YAML list")
        rules = []
        for item in raw:
            item = dict(item)
            item.setdefault("id", uuid.uuid4().hex)
            item.setdefault("createdAt", datetime.now().isoformat())
            rules.append(AlertRule.from_dict(item))
    except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
        _fail(f"reading {path}: {e}")

    store = _store(ctx)
    for rule in rules:
        store.save_alert_rule(rule)
    console.print(f"[green]✓[/] Saved {len(rules)} rule(s)")


@app.command()
def rules(ctx: typer.Context):
    """List alert rules."""
    table = Table(title="Alert Rules")
    for column in ("ID", "Name", "Trigger", "Threshold", "Period", "Provider", "Channels", "Last Triggered"):
        table.add_column(column, no_wrap=column in ("ID", "Name"))
    for rule in _store(ctx).get_alert_rules():
        table.add_row(
            rule.id[:8],
            rule.name if rule.enabled else f"[dim]{rule.name} (disabled)[/]",
            rule.trigger_type.value,
            f"{rule.threshold:g}",
            rule.period.value,
            rule.provider,
            ", ".join(sorted(c.value for c in rule.channels)) or "-",
            rule.last_triggered.strftime("%Y-%m-%d %H:%M") if rule.last_triggered else "never",
        )
    console.print(table)


@app.command()
def stats(
    ctx: typer.Context,
    days: int = typer.Option(14, "--days", "-d", help="Anomaly detection window in days"),
):
    """Show spend totals, breakdowns and the latest anomaly."""
    usage = _store(ctx).get_usage()
    if not usage:
        console.print("\n[bold yellow]No usage data found[/]")
        console.print("Run `costlog import-usage FILE` to load usage records.\n")
        return

    by_provider = spend_by_provider(usage)
    console.print("\n[bold]Spend[/bold]")
    console.print("-" * 40)
    console.print(f"Today:      {format_currency(today_spend(usage))}")
    console.print(f"This week:  {format_currency(week_spend(usage))}")
    console.print(f"This month: {format_currency(month_spend(usage))}")
    console.print(f"All time:   {format_currency(total_spend(usage))}")
    for provider, cost in by_provider.items():
        console.print(f"  {provider}: {format_currency(cost)}")

    models = Table(title="Models")
    for column in ("Model", "Provider", "Tokens", "Cost", "Share"):
        models.add_column(column)
    for row in model_breakdown(usage)[:10]:
        models.add_row(
            row.model, row.provider.value, format_number(row.tokens),
            format_currency(row.cost), f"{row.percentage:.1f}%",
        )
    console.print(models)

    projects = Table(title="Projects")
    for column in ("Project", "Provider", "Tokens", "Cost", "Share"):
        projects.add_column(column)
    for row in project_breakdown(usage)[:10]:
        projects.add_row(
            row.project_name, row.provider.value, format_number(row.tokens),
            format_currency(row.cost), f"{row.percentage:.1f}%",
        )
    console.print(projects)

    anomalies = detect_anomalies(usage, window_days=days)
    if anomalies:
        latest = anomalies[-1]
        console.print(
            f"\n[bold yellow]Unusual spend[/] on {latest.date.isoformat()}: "
            f"{format_currency(latest.actual_spend)} spent, "
            f"{latest.percentage_increase:.0f}% higher than the "
            f"{format_currency(latest.expected_spend)} daily average"
        )


@app.command()
def check(ctx: typer.Context):
    """Evaluate alert rules and the budget, sending notifications for new alerts."""
    config = _config(ctx)
    store = _store(ctx)
    usage = store.get_usage()

    with httpx.Client(timeout=config.notifications.timeout_seconds) as http_client, \
            NotificationDispatcher(
                store,
                http_client,
                ConsoleNotifier(console, enabled=console.is_terminal),
                email_relay_url=config.notifications.email_relay_url,
                executor=ThreadPoolExecutor(
                    max_workers=config.notifications.max_workers,
                    thread_name_prefix="costlog-notify",
                ),
            ) as dispatcher:
        fired = AlertChecker(store, dispatcher).check_alert_rules(usage)
        budget_alert = check_budget_threshold(store, usage)
        if budget_alert is not None:
            fired.append(budget_alert)

    if not fired:
        console.print("[green]✓[/] No new alerts")
        return
    for alert in fired:
        style = SEVERITY_STYLES[alert.severity]
        console.print(f"[{style}]{alert.severity.value.upper()}[/] {alert.title}: {alert.message}")


@app.command()
def alerts(
    ctx: typer.Context,
    unread: bool = typer.Option(False, "--unread", "-u", help="Only show unread alerts"),
):
    """List recorded alerts, newest first."""
    table = Table(title="Alerts")
    for column in ("ID", "Date", "Severity", "Title", "Message"):
        table.add_column(column)
    for alert in _store(ctx).get_alerts():
        if unread and alert.read:
            continue
        style = SEVERITY_STYLES[alert.severity]
        table.add_row(
            alert.id[:8],
            alert.date.strftime("%Y-%m-%d %H:%M"),
            f"[{style}]{alert.severity.value}[/]",
            alert.title if alert.read else f"[bold]{alert.title}[/]",
            alert.message,
        )
    console.print(table)


@app.command("mark-read")
def mark_read(
    ctx: typer.Context,
    alert_id: Optional[str] = typer.Argument(None, help="Alert id (or unique prefix)"),
    all_alerts: bool = typer.Option(False, "--all", "-a", help="Mark every alert as read"),
):
    """Mark one or all alerts as read."""
    store = _store(ctx)
    if all_alerts:
        store.mark_all_alerts_read()
        console.print("[green]✓[/] All alerts marked as read")
        return
    if not alert_id:
        _fail("pass an alert id or --all")

    matches = [a.id for a in store.get_alerts() if a.id.startswith(alert_id)]
    if len(matches) != 1:
        _fail(f"no unique alert matches '{alert_id}'")
    store.mark_alert_read(matches[0])
    console.print(f"[green]✓[/] Alert {matches[0][:8]} marked as read")


@app.command()
def slack(
    ctx: typer.Context,
    webhook_url: str = typer.Option(..., "--webhook-url", "-w", help="Slack incoming webhook URL"),
    channel: Optional[str] = typer.Option(None, "--channel", help="Channel label for reference"),
    disable: bool = typer.Option(False, "--disable", help="Store the webhook but disable delivery"),
):
    """Configure the Slack notification channel."""
    if not webhook_url.startswith("https://"):
        _fail("webhook URL must start with https://")
    _store(ctx).save_slack_config(SlackConfig(webhook_url=webhook_url, enabled=not disable, channel=channel))
    state = "disabled" if disable else "enabled"
    console.print(f"[green]✓[/] Slack notifications {state}")


@app.command()
def budget(
    ctx: typer.Context,
    limit: Optional[float] = typer.Option(None, "--limit", "-l", help="Monthly budget in USD"),
    threshold: float = typer.Option(80.0, "--threshold", "-t", help="Warning threshold in percent"),
):
    """Set the monthly budget (when --limit is given) and show its status."""
    store = _store(ctx)
    if limit is not None:
        try:
            store.save_budget(Budget(monthly_limit=limit, alert_threshold=threshold))
        except ValueError as e:
            _fail(str(e))

    current = store.get_budget()
    if current is None:
        console.print("[yellow]No budget set.[/] Use --limit to set one.")
        return

    status = budget_status(store.get_usage(), current)
    color = "red" if status.is_over_budget else "yellow" if status.is_warning else "green"
    console.print("\n[bold]Monthly Budget[/bold]")
    console.print("-" * 40)
    console.print(
        f"Spent: [{color}]{format_currency(status.spent)}[/] / {format_currency(status.limit)} "
        f"({status.percentage:.0f}%)"
    )
    console.print(
        f"Projected: {format_currency(status.projected_spend)}"
        + (" (over budget)" if status.will_exceed else "")
    )
    console.print(f"Days remaining: {status.days_remaining}")


if __name__ == "__main__":
    app()
