"""Command-line interface for RoleKeeper.

Each command builds a fresh in-memory directory from configuration, seeded
with the demo users unless ``--no-demo`` is given, and prints a view of it.
"""

import asyncio
import sys
from datetime import datetime, timezone

import click

from rolekeeper.application.seed import load_directory
from rolekeeper.application.services.admin_service import AdminService
from rolekeeper.core.config import get_settings
from rolekeeper.core.logging import LoggingContext, configure_logging, get_logger
from rolekeeper.domain.exceptions import RoleKeeperError


def _load(ctx: click.Context) -> AdminService:
    settings = ctx.obj["settings"]
    try:
        return asyncio.run(load_directory(settings, seed=ctx.obj["demo"]))
    except RoleKeeperError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version="0.1.0", prog_name="RoleKeeper")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default=None,
    help="Set log level (overrides configuration)",
)
@click.option(
    "--demo/--no-demo",
    default=True,
    help="Seed the directory with demo roles and users",
)
@click.option(
    "--admin",
    default="cli",
    show_default=True,
    help="Acting administrator recorded on every log line",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, demo: bool, admin: str) -> None:
    """RoleKeeper - user, role and permission administration."""
    settings = get_settings()
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level})
    configure_logging(settings)
    ctx.with_resource(LoggingContext(admin=admin))
    ctx.obj = {"settings": settings, "demo": demo}


@cli.command()
@click.pass_context
def catalog(ctx: click.Context) -> None:
    """List permission tags and departments."""
    settings = ctx.obj["settings"]
    service = _load(ctx)

    click.echo("Permissions:")
    for tag in service.list_permissions():
        click.echo(f"  {tag}")
    click.echo("Departments:")
    for department in settings.departments:
        click.echo(f"  {department}")


@cli.command()
@click.pass_context
def roles(ctx: click.Context) -> None:
    """List roles with their user counts."""
    service = _load(ctx)
    for role in service.list_roles():
        marker = " [system]" if role.is_system else ""
        permissions = ", ".join(service.catalog.sort(role.permissions)) or "-"
        click.echo(f"{role.id:>3}  {role.name}{marker}  users={role.user_count}  {permissions}")


@cli.command()
@click.pass_context
def users(ctx: click.Context) -> None:
    """List users."""
    service = _load(ctx)
    for user in service.list_users():
        two_factor = "2FA" if user.two_factor_enabled else "-"
        click.echo(
            f"{user.id:>3}  {user.username:<12} {user.role:<16} "
            f"{user.status.value:<8} {two_factor:<3}  last login: {user.last_login_display}"
        )


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show directory statistics."""
    service = _load(ctx)
    summary = service.stats()
    click.echo(f"Total users:       {summary.total_users}")
    click.echo(f"Active users:      {summary.active_users}")
    click.echo(f"2FA enabled:       {summary.two_factor_users}")
    click.echo(f"Roles:             {summary.roles}")
    click.echo(f"Password alerts:   {summary.password_alerts}")


@cli.command("password-alerts")
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Evaluate expiry as of this date (default: now)",
)
@click.option(
    "--threshold",
    type=click.IntRange(min=0),
    default=None,
    help="Alert window in days (overrides configuration)",
)
@click.pass_context
def password_alerts(ctx: click.Context, as_of: datetime | None, threshold: int | None) -> None:
    """List users whose password is expired or expires soon."""
    service = _load(ctx)
    if as_of is not None:
        as_of = as_of.replace(tzinfo=timezone.utc)
    alerts = service.password_alerts(as_of=as_of, threshold_days=threshold)

    logger = get_logger(__name__)
    logger.debug("Password alerts computed", count=len(alerts))

    if not alerts:
        click.echo("No users need a password reset.")
        return
    click.echo(f"{len(alerts)} user(s) need a password reset:")
    for alert in alerts:
        if alert.expired:
            when = f"expired {-alert.days_until_expiry} day(s) ago"
        else:
            when = f"expires in {alert.days_until_expiry} day(s)"
        click.echo(f"  {alert.username:<12} {alert.full_name:<24} {when}")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
