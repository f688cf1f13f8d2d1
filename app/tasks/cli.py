import click
from flask.cli import AppGroup
from app.services.claims import expire_old_claims
from app.services.discounts import deactivate_expired_discounts
from app.services import verification_jobs

perks_cli = AppGroup("perks", help="Scheduled maintenance jobs.")


@perks_cli.command("expire-claims")
def expire_claims_command():
    """Mark claimed codes past their expiry as expired."""
    click.echo(f"Expired claims: {expire_old_claims()}")


@perks_cli.command("deactivate-discounts")
def deactivate_discounts_command():
    click.echo(f"Deactivated discounts: {deactivate_expired_discounts()}")


@perks_cli.command("expire-verifications")
def expire_verifications_command():
    click.echo(f"Expired verifications: {verification_jobs.expire_verifications()}")


@perks_cli.command("send-expiry-reminders")
@click.option("--days", default=verification_jobs.REMINDER_DAYS, show_default=True)
def send_expiry_reminders_command(days):
    click.echo(f"Reminders sent: {verification_jobs.send_expiry_reminders(days_before=days)}")


@perks_cli.command("escalate-pending")
@click.option("--hours", default=verification_jobs.ESCALATE_AFTER_HOURS, show_default=True)
def escalate_pending_command(hours):
    click.echo(f"Escalated requests: {verification_jobs.escalate_pending(hours=hours)}")
