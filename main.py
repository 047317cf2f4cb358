#!/usr/bin/env python3
"""Pet Health Alerts - CLI Entry Point."""
import sys
import json
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
import yaml
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {"high": "bold red", "medium": "yellow", "low": "dim"}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from alerts.factory import build_components

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    return build_components(config, db)


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="petalerts")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Pet Health Alerts - anomaly alert rules, notifications & batch sweeps."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _sev(severity):
    style = SEVERITY_STYLES.get(severity, "")
    return f"[{style}]{severity.upper()}[/{style}]" if style else severity.upper()


# ──────────────────────────────────────────────────────
# CHECK
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("user_id")
@click.argument("pet_id")
@click.option("--dry-run", is_flag=True, help="Show which rules would fire without notifying")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check(ctx, user_id, pet_id, dry_run, as_json):
    """Run anomaly detection for one pet and trigger matching alerts."""
    from alerts.errors import AlertCheckFailed

    c = _get_components(ctx)
    try:
        if dry_run:
            results = c["engine"].test_rules(pet_id, user_id)
        else:
            results = c["engine"].check_and_trigger_alerts(pet_id, user_id)
    except AlertCheckFailed as e:
        console.print(f"[red]Alert check failed:[/red] {e}")
        sys.exit(1)

    if as_json:
        payload = results if dry_run else [r.to_dict() for r in results]
        click.echo(json.dumps(payload, indent=2, default=str))
        return

    if dry_run:
        if not results:
            console.print("[dim]No rules or no anomalies to evaluate[/dim]")
            return
        table = Table(title=f"Rule Test - pet {pet_id}", show_header=True)
        table.add_column("Rule")
        table.add_column("Anomaly")
        table.add_column("Severity")
        table.add_column("Confidence", justify="right")
        table.add_column("Matches")
        table.add_column("Would Fire")
        for r in results:
            table.add_row(
                r["name"], r["anomaly_type"], _sev(r["severity"]), str(r["confidence"]),
                "✓" if r["matches"] else "✗",
                "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]",
            )
        console.print(table)
        return

    if results:
        console.print(f"[bold yellow]{len(results)} alert(s) triggered:[/bold yellow]")
    console.print(c["engine"].format_alert_summary(results), markup=False)


# ──────────────────────────────────────────────────────
# BATCH
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def batch(ctx, as_json):
    """Run one system-wide sweep over every pet covered by an active rule."""
    c = _get_components(ctx)
    result = c["batch"].batch_check_alerts()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    console.print(f"[bold]Batch sweep complete[/bold]")
    console.print(f"  Users checked:    {result.total_users_checked}")
    console.print(f"  Alerts triggered: {result.total_alerts_triggered}")
    if result.errors:
        console.print(f"  [red]Errors ({len(result.errors)}):[/red]")
        for err in result.errors:
            console.print(f"    • {err}")
        sys.exit(1)


# ──────────────────────────────────────────────────────
# SCHEDULE
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--interval", default=None, type=int, help="Seconds between sweeps (default: from config)")
@click.option("--no-initial", is_flag=True, help="Wait one interval before the first sweep")
@click.pass_context
def schedule(ctx, interval, no_initial):
    """Run the batch sweep periodically until interrupted."""
    from alerts.scheduler import SweepScheduler

    c = _get_components(ctx)
    interval = interval or c["config"]["alerts"]["sweep_interval_seconds"]
    scheduler = SweepScheduler(
        c["batch"], interval_seconds=interval, maintenance=c["maintenance"],
        maintenance_interval=c["config"]["alerts"].get("maintenance_interval_seconds", 900),
    )

    def report(result):
        console.print(
            f"[dim]{result.finished_at:%Y-%m-%d %H:%M:%S}[/dim] "
            f"users={result.total_users_checked} alerts={result.total_alerts_triggered} "
            f"errors={len(result.errors)}"
        )

    scheduler.on_sweep(report)
    console.print(f"[bold]Sweeping every {interval}s.[/bold] Press Ctrl+C to stop.")
    scheduler.start(run_immediately=not no_initial)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        scheduler.stop()
        console.print("\n[dim]Scheduler stopped.[/dim]")


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Alert rule management."""
    pass


@rules.command("list")
@click.argument("user_id")
@click.option("--pet", "pet_id", default=None, help="Only rules that apply to this pet")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive rules")
@click.pass_context
def rules_list(ctx, user_id, pet_id, include_inactive):
    """List a user's alert rules."""
    c = _get_components(ctx)
    user_rules = c["rules"].get_user_rules(user_id, pet_id=pet_id, include_inactive=include_inactive)
    if not user_rules:
        console.print("[dim]No alert rules[/dim]")
        return

    table = Table(title=f"Alert Rules - {user_id}", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Pet")
    table.add_column("Triggers")
    table.add_column("Channels")
    table.add_column("Limits")
    table.add_column("Fired", justify="right")
    table.add_column("Active")
    for r in user_rules:
        triggers = (
            f"{','.join(sorted(t.value for t in r.triggers.anomaly_types))} "
            f"({','.join(sorted(s.value for s in r.triggers.severity_levels))}) "
            f"≥{r.triggers.minimum_confidence}"
        )
        channels = ",".join(ch.value for ch in r.notifications.enabled_channels()) or "-"
        limits = f"{r.frequency.max_per_day}/d {r.frequency.max_per_week}/w {r.frequency.cooldown_hours}h"
        table.add_row(str(r.id), r.name, r.pet_id or "all", triggers, channels, limits,
                      str(r.stats.total_triggered),
                      "[green]✓[/green]" if r.is_active else "[red]✗[/red]")
    console.print(table)


@rules.command("add")
@click.argument("user_id")
@click.option("--file", "rule_file", type=click.Path(exists=True), help="Rule definition (YAML or JSON)")
@click.option("--template", "template_id", default=None, help="Start from a rule template (see: rules templates)")
@click.option("--name", default=None, help="Rule name")
@click.option("--description", default="", help="Rule description")
@click.option("--pet", "pet_id", default=None, help="Restrict the rule to one pet")
@click.option("--type", "anomaly_types", multiple=True,
              type=click.Choice(["frequency", "health_decline", "pattern_change", "consistency_change"]))
@click.option("--severity", "severity_levels", multiple=True, type=click.Choice(["low", "medium", "high"]))
@click.option("--confidence", default=None, type=int, help="Minimum confidence 0-100")
@click.option("--email", is_flag=True, help="Also notify by email")
@click.option("--push", is_flag=True, help="Also notify by push")
@click.option("--max-per-day", default=None, type=int)
@click.option("--max-per-week", default=None, type=int)
@click.option("--cooldown", default=None, type=int, help="Cooldown in hours")
@click.pass_context
def rules_add(ctx, user_id, rule_file, template_id, name, description, pet_id, anomaly_types, severity_levels,
              confidence, email, push, max_per_day, max_per_week, cooldown):
    """Create an alert rule from a file, a template, or options."""
    from alerts.errors import ValidationError

    c = _get_components(ctx)
    if template_id:
        try:
            rule = c["rules"].create_from_template(user_id, template_id, pet_id=pet_id)
        except ValidationError as e:
            console.print(f"[red]Invalid rule:[/red] {e}")
            sys.exit(1)
        console.print(f"[green]✓[/green] Created rule {rule.id}: {rule.name}")
        return

    if rule_file:
        with open(rule_file) as f:
            data = yaml.safe_load(f) or {}
    else:
        frequency = {"max_per_day": max_per_day, "max_per_week": max_per_week,
                     "cooldown_hours": cooldown}
        data = {
            "name": name or "",
            "description": description,
            "pet_id": pet_id,
            "triggers": {
                "anomaly_types": list(anomaly_types),
                "severity_levels": list(severity_levels),
                "minimum_confidence": confidence,
            },
            "notifications": {"in_app": True, "email": email, "push": push},
            "frequency": {k: v for k, v in frequency.items() if v is not None},
        }

    try:
        rule = c["rules"].create_rule(user_id, data)
    except ValidationError as e:
        console.print(f"[red]Invalid rule:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Created rule {rule.id}: {rule.name}")


@rules.command("templates")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def rules_templates(ctx, as_json):
    """List the rule templates."""
    c = _get_components(ctx)
    templates = c["rules"].get_templates()
    if as_json:
        click.echo(json.dumps(templates, indent=2))
        return

    table = Table(title="Rule Templates", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Triggers")
    table.add_column("Limits")
    for t in templates:
        trig, freq = t.get("triggers", {}), t.get("frequency", {})
        table.add_row(
            t["id"], t["name"], t.get("category", "-"),
            f"{','.join(trig.get('anomalyTypes', []))} ({','.join(trig.get('severityLevels', []))}) "
            f"≥{trig.get('minimumConfidence', '-')}",
            f"{freq.get('maxPerDay', '-')}/d {freq.get('maxPerWeek', '-')}/w {freq.get('cooldownHours', '-')}h",
        )
    console.print(table)


@rules.command("delete")
@click.argument("rule_id", type=int)
@click.pass_context
def rules_delete(ctx, rule_id):
    """Delete an alert rule."""
    c = _get_components(ctx)
    if c["rules"].delete_rule(rule_id):
        console.print(f"[green]✓[/green] Deleted rule {rule_id}")
    else:
        console.print(f"[red]Rule {rule_id} not found[/red]")
        sys.exit(1)


@rules.command("defaults")
@click.argument("user_id")
@click.pass_context
def rules_defaults(ctx, user_id):
    """Create the default rule set for a user."""
    c = _get_components(ctx)
    created = c["rules"].create_default_rules(user_id)
    console.print(f"[green]✓[/green] Created {created} default rule(s) for {user_id}")


# ──────────────────────────────────────────────────────
# STATS
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("user_id")
@click.option("--days", default=30, help="Days to look back for recent triggers")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx, user_id, days, as_json):
    """Show alert statistics for a user."""
    c = _get_components(ctx)
    s = c["rules"].get_statistics(user_id, days=days)

    if as_json:
        click.echo(json.dumps(s, indent=2))
        return

    console.print(f"[bold]Alert statistics - {user_id}[/bold]")
    console.print(f"  Rules:              {s['activeRules']} active / {s['totalRules']} total")
    console.print(f"  Times triggered:    {s['totalTriggered']}")
    console.print(f"  Notifications sent: {s['totalNotificationsSent']}")

    if s["recentTriggers"]:
        table = Table(title=f"Recent triggers (last {days}d)", show_header=True)
        table.add_column("Time", style="dim")
        table.add_column("Rule")
        table.add_column("Pet")
        table.add_column("Anomaly")
        table.add_column("Severity")
        for t in s["recentTriggers"]:
            table.add_row(t["triggeredAt"][:16], t["ruleName"], t["petId"] or "-",
                          t["anomalyType"], _sev(t["severity"]))
        console.print(table)


# ──────────────────────────────────────────────────────
# NOTIFICATIONS
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("user_id")
@click.option("--status", default=None, type=click.Choice(["unread", "read", "archived"]))
@click.option("--limit", default=20, help="Max notifications to show")
@click.pass_context
def notifications(ctx, user_id, status, limit):
    """Show a user's notifications."""
    c = _get_components(ctx)
    items = c["db"].get_notifications(user_id, status=status, limit=limit)
    if not items:
        console.print("[dim]No notifications[/dim]")
        return

    table = Table(title=f"Notifications - {user_id} ({c['db'].unread_count(user_id)} unread)",
                  show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Priority")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Channels")
    for n in items:
        sent = ",".join(ch.value for ch, state in n.channels.items() if state.sent) or "-"
        table.add_row(n.created_at.isoformat()[:16], n.priority.value, n.title[:60],
                      n.status.value, sent)
    console.print(table)


@cli.command("notification-stats")
@click.argument("user_id")
@click.option("--days", default=30, type=click.IntRange(1, 365), help="Days to look back")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def notification_stats(ctx, user_id, days, as_json):
    """Show notification counts for a user."""
    c = _get_components(ctx)
    s = c["db"].get_notification_statistics(user_id, days=days)

    if as_json:
        click.echo(json.dumps(s, indent=2))
        return

    console.print(f"[bold]Notification statistics - {user_id} (last {days}d)[/bold]")
    console.print(f"  Total:    {s['totalNotifications']}")
    console.print(f"  Unread:   {s['unreadCount']}  Read: {s['readCount']}  Archived: {s['archivedCount']}")
    for label, key in (("By category", "byCategory"), ("By priority", "byPriority")):
        counts = ", ".join(f"{k}={v}" for k, v in s[key].items()) or "-"
        console.print(f"  {label}: {counts}")


# ──────────────────────────────────────────────────────
# MAINTENANCE
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def maintain(ctx, as_json):
    """Delete expired notifications and retry undelivered email/push sends."""
    c = _get_components(ctx)
    result = c["maintenance"].run()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        console.print(f"  Expired removed: {result.expired_deleted}")
        console.print(f"  Redelivered:     {result.successful}/{result.processed}")
        for err in result.errors:
            console.print(f"  ✗ {err}", style="red", markup=False)
    if result.errors:
        sys.exit(1)


# ──────────────────────────────────────────────────────
# EMAIL
# ──────────────────────────────────────────────────────
@cli.group()
def email():
    """Email channel tools."""
    pass


@email.command("test")
@click.pass_context
def email_test(ctx):
    """Check the SMTP login without sending anything."""
    from notifications.email_sender import EmailSender

    c = _get_components(ctx)
    sender = EmailSender(c["config"])
    if not sender.is_configured():
        console.print("[red]Email not configured.[/red] Set the email section or PET_ALERTS_SMTP_* env vars.")
        sys.exit(1)

    result = sender.test_connection()
    if result["status"] == "ok":
        console.print(f"[green]✓[/green] {result['message']}")
    else:
        console.print(f"[red]Failed:[/red] {result['message']}")
        sys.exit(1)


# ──────────────────────────────────────────────────────
# USERS / PETS
# ──────────────────────────────────────────────────────
@cli.group()
def users():
    """Notification contact details."""
    pass


@users.command("set")
@click.argument("user_id")
@click.option("--email", default=None, help="Email address for alert emails")
@click.option("--token", "tokens", multiple=True, help="Push device token (repeatable)")
@click.pass_context
def users_set(ctx, user_id, email, tokens):
    """Set a user's email address and push device tokens."""
    c = _get_components(ctx)
    c["db"].upsert_user(user_id, email=email, device_tokens=list(tokens) or None)
    console.print(f"[green]✓[/green] Contact details saved for {user_id}")


@cli.group()
def pets():
    """Pet registry."""
    pass


@pets.command("add")
@click.argument("pet_id")
@click.argument("user_id")
@click.argument("name")
@click.pass_context
def pets_add(ctx, pet_id, user_id, name):
    """Register a pet so notifications can use its name."""
    c = _get_components(ctx)
    c["db"].add_pet(pet_id, user_id, name)
    console.print(f"[green]✓[/green] Registered {name} ({pet_id}) for {user_id}")


# ──────────────────────────────────────────────────────
# WEB
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--port", default=None, type=int, help="Port (default: from config)")
@click.option("--host", default=None, help="Host to bind (default: from config)")
@click.pass_context
def web(ctx, port, host):
    """Launch the HTTP API."""
    from web.app import create_app

    c = _get_components(ctx)
    web_cfg = c["config"].get("web", {})
    port = port or web_cfg.get("port", 5000)
    host = host or web_cfg.get("host", "127.0.0.1")

    app = create_app(c["config"], c)

    console.print(f"\n[bold]Pet Health Alerts -- HTTP API[/bold]\n")
    console.print(f"  Listening: http://{host}:{port}")
    console.print(f"\n  Press Ctrl+C to stop.\n")

    app.run(host=host, port=port, debug=False)


if __name__ == "__main__":
    cli()
