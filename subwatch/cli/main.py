"""
CLI interface for SubWatch.

Provides command-line access to subscriptions, usage logging and the
dashboard.
"""

import json
import sqlite3
import sys
from datetime import datetime
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from subwatch.config.loader import Settings, load_settings
from subwatch.config.logging import configure_logging
from subwatch.core.scoring import ValueScore
from subwatch.demo.seed_demo_data import seed_demo_data
from subwatch.sdk.tracker import SubscriptionTracker, subscription_to_dict, view_to_dict
from subwatch.storage.models import BillingCycle, Subscription, User
from subwatch.storage.repository import SubscriptionNotFoundError

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

# Errors a command reports and exits on instead of crashing
COMMAND_ERRORS = (ValueError, LookupError, sqlite3.Error)

_VALUE_STYLES = {
    ValueScore.GOOD: "green",
    ValueScore.AVERAGE: "yellow",
    ValueScore.WASTE: "red",
}


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {escape(message)}")
    sys.exit(EXIT_CODE_FAIL)


def _tracker(ctx: typer.Context) -> SubscriptionTracker:
    settings: Settings = ctx.obj
    return SubscriptionTracker(settings.db_path)


def _resolve_user(tracker: SubscriptionTracker, username: str) -> User:
    try:
        user = tracker.users.get_by_username(username)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    if user is None:
        _fail(f"Unknown user: {username}")
    return user


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML settings file"
    ),
):
    """SubWatch subscription tracker CLI."""
    try:
        settings = load_settings(config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        _fail(f"Invalid configuration: {e}")
    configure_logging(settings.log_level)
    ctx.obj = settings
    if ctx.invoked_subcommand is None:
        console.print("SubWatch - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the SubWatch database."""
    try:
        _tracker(ctx).initialize()
    except sqlite3.Error as e:
        _fail(f"initializing database: {e}")
    console.print("[green]✓[/] Database initialized successfully")


@app.command()
def register(ctx: typer.Context, username: str = typer.Argument(..., help="New username")):
    """Register a user."""
    tracker = _tracker(ctx)
    try:
        user = tracker.users.create(username)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Registered user {escape(user.username)} (id {user.id})")


@app.command()
def add(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Owning username"),
    name: str = typer.Option(..., "--name", "-n", help="Service name"),
    cost: str = typer.Option(..., "--cost", help="Charge per billing cycle"),
    cycle: BillingCycle = typer.Option(
        BillingCycle.MONTHLY,
        "--cycle",
        help="Billing cycle"
    ),
    start_date: Optional[datetime] = typer.Option(
        None,
        "--start-date",
        formats=["%Y-%m-%d"],
        help="Start date (defaults to today)"
    ),
    auto_cancel: bool = typer.Option(
        False,
        "--auto-cancel",
        help="Mark as eligible for Ghost Cancel"
    ),
    inactive: bool = typer.Option(
        False,
        "--inactive",
        help="Record an already cancelled subscription"
    ),
):
    """Add a subscription."""
    tracker = _tracker(ctx)
    owner = _resolve_user(tracker, user)
    try:
        subscription = tracker.subscriptions.create(
            user_id=owner.id,
            name=name,
            cost=cost,
            billing_cycle=cycle,
            start_date=start_date or datetime.now(),
            is_active=not inactive,
            auto_cancel=auto_cancel,
        )
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Added {escape(subscription.name)} (id {subscription.id})")


@app.command("list")
def list_subscriptions(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Username"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
):
    """List subscriptions with usage and value scores."""
    tracker = _tracker(ctx)
    owner = _resolve_user(tracker, user)
    try:
        views = tracker.score_all(owner.id)
    except COMMAND_ERRORS as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps([view_to_dict(view) for view in views], indent=2))
        return

    if not views:
        console.print("\n[dim]No subscriptions found.[/]")
        return

    table = Table(title=f"Subscriptions for {escape(owner.username)}")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Cost", justify="right")
    table.add_column("Status")
    table.add_column("Uses", justify="right")
    table.add_column("Cost/Use", justify="right")
    table.add_column("Value")
    table.add_column("Renewal", justify="right")
    for view in views:
        subscription = view.subscription
        style = _VALUE_STYLES[view.value_score]
        status = "active" if subscription.is_active else "cancelled"
        if subscription.auto_cancel:
            status += " (ghost)"
        table.add_row(
            str(subscription.id),
            escape(subscription.name),
            _format_cycle_cost(subscription),
            status,
            str(view.usage_count),
            f"${view.cost_per_use}",
            f"[{style}]{view.value_score.value}[/]",
            f"{view.days_until_renewal}d",
        )
    console.print(table)


@app.command()
def dashboard(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="Username"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a summary"),
):
    """Show total spend and subscription counts."""
    tracker = _tracker(ctx)
    owner = _resolve_user(tracker, user)
    try:
        payload = tracker.dashboard(owner.id)
    except COMMAND_ERRORS as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps(payload, indent=2))
        return

    console.print("\n[bold]Dashboard[/bold]")
    console.print("-" * 40)
    console.print(f"Total monthly spend: {_format_currency(payload['totalMonthlySpend'])}")
    console.print(f"Active subscriptions: {payload['activeCount']}")
    console.print(f"Cancelled subscriptions: {payload['cancelledCount']}")
    if payload["wasteCount"]:
        console.print(f"[red]Unused in the last 30 days: {payload['wasteCount']}[/]")
    else:
        console.print("Unused in the last 30 days: 0")


@app.command("log-usage")
def log_usage(
    ctx: typer.Context,
    subscription_id: int = typer.Argument(..., help="Subscription id"),
):
    """Record one usage of a subscription."""
    try:
        entry = _tracker(ctx).log_usage(subscription_id)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Logged usage for subscription {subscription_id} at {entry['date']}")


@app.command()
def toggle(
    ctx: typer.Context,
    subscription_id: int = typer.Argument(..., help="Subscription id"),
):
    """Flip a subscription between active and cancelled."""
    tracker = _tracker(ctx)
    try:
        current = tracker.subscriptions.get(subscription_id)
        if current is None:
            raise SubscriptionNotFoundError(subscription_id)
        updated = tracker.subscriptions.set_active(subscription_id, not current.is_active)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    state = "active" if updated.is_active else "cancelled"
    console.print(f"[green]✓[/] {escape(updated.name)} is now {state}")


@app.command()
def update(
    ctx: typer.Context,
    subscription_id: int = typer.Argument(..., help="Subscription id"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="New name"),
    cost: Optional[str] = typer.Option(None, "--cost", help="New cost per cycle"),
    cycle: Optional[BillingCycle] = typer.Option(None, "--cycle", help="New billing cycle"),
    auto_cancel: Optional[bool] = typer.Option(
        None,
        "--auto-cancel/--no-auto-cancel",
        help="Set or clear the Ghost Cancel flag"
    ),
):
    """Update fields of a subscription."""
    fields = {}
    if name is not None:
        fields["name"] = name
    if cost is not None:
        fields["cost"] = cost
    if cycle is not None:
        fields["billing_cycle"] = cycle
    if auto_cancel is not None:
        fields["auto_cancel"] = auto_cancel

    try:
        updated = _tracker(ctx).subscriptions.update(subscription_id, **fields)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    typer.echo(json.dumps(subscription_to_dict(updated), indent=2))


@app.command()
def delete(
    ctx: typer.Context,
    subscription_id: int = typer.Argument(..., help="Subscription id"),
):
    """Delete a subscription and its usage history."""
    try:
        _tracker(ctx).subscriptions.delete(subscription_id)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Deleted subscription {subscription_id}")


@app.command()
def seed(ctx: typer.Context):
    """Insert the demo account and sample subscriptions if missing."""
    settings: Settings = ctx.obj
    try:
        inserted = seed_demo_data(settings.db_path, settings.demo_username)
    except COMMAND_ERRORS as e:
        _fail(str(e))
    if inserted:
        console.print(f"[green]✓[/] Demo data inserted for user {escape(settings.demo_username)}")
    else:
        console.print(f"Demo user {escape(settings.demo_username)} already exists, nothing to do")


def _format_currency(amount) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${float(amount):,.2f}"


def _format_cycle_cost(subscription: Subscription) -> str:
    suffix = "mo" if subscription.billing_cycle == BillingCycle.MONTHLY else "yr"
    return f"{_format_currency(subscription.cost)}/{suffix}"


if __name__ == "__main__":
    app()
