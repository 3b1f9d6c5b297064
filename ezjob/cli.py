"""CLI interface for ezjob."""

import json
import logging
import signal
import sys
from typing import Optional

import click

from .config import Settings
from .errors import EzJobError
from .log import configure_logging
from .models import JobState, JobType
from .reminders import ensure_maintenance_jobs
from .services import Services, build_services


class AppContext:
    """Settings for the invocation; services are built on first use."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._services: Optional[Services] = None

    @property
    def services(self) -> Services:
        if self._services is None:
            self._services = build_services(self.settings)
        return self._services


pass_app = click.make_pass_decorator(AppContext)


def _fmt(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@click.group()
@click.option("--data-dir", envvar="EZJOB_DATA_DIR", default=None, help="State directory")
@click.option("--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, data_dir: Optional[str], verbose: bool):
    """EzJob - background jobs, rate limits and security events"""
    configure_logging(logging.DEBUG if verbose else logging.INFO)
    settings = Settings(data_dir=data_dir) if data_dir else Settings()
    ctx.obj = AppContext(settings)


@cli.command()
@click.argument("job_json")
@pass_app
def schedule(app: AppContext, job_json: str):
    """Schedule a new job.

    Example:
        ezjob schedule '{"type":"cleanup","recurring":{"interval":"daily","time_of_day":"02:00"}}'
    """
    try:
        payload = json.loads(job_json)
        if not isinstance(payload, dict):
            click.echo("✗ Invalid JSON: expected an object", err=True)
            sys.exit(1)
        job_id = app.services.scheduler.schedule_job(
            payload.get("type"),
            data=payload.get("data"),
            scheduled_for=payload.get("scheduled_for"),
            recurring=payload.get("recurring"),
            active=payload.get("active", True),
        )
        job = app.services.scheduler.get_job(job_id)
        click.echo(f"✓ Job {job_id} scheduled, next run {_fmt(job.next_run)}")
    except json.JSONDecodeError as e:
        click.echo(f"✗ Invalid JSON: {e}", err=True)
        sys.exit(1)
    except EzJobError as e:
        click.echo(f"✗ Error: {e.message}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("job_id")
@pass_app
def cancel(app: AppContext, job_id: str):
    """Cancel a scheduled job."""
    if app.services.scheduler.cancel_job(job_id):
        click.echo(f"✓ Job {job_id} cancelled")
    else:
        click.echo(f"✗ Job {job_id} not found", err=True)
        sys.exit(1)


@cli.command("list")
@click.option("--type", "job_type", type=click.Choice([t.value for t in JobType]), help="Filter by type")
@click.option("--limit", default=20, help="Maximum jobs to display")
@pass_app
def list_jobs(app: AppContext, job_type: Optional[str], limit: int):
    """List scheduled jobs.

    Example:
        ezjob list --type weekly_digest
    """
    scheduler = app.services.scheduler
    jobs = scheduler.find_jobs(JobType(job_type)) if job_type else scheduler.get_jobs()
    jobs = sorted(jobs, key=lambda j: j.next_run or j.scheduled_for)[:limit]

    if not jobs:
        click.echo("No jobs found")
        return

    click.echo(f"\n{'ID':<34} {'Type':<16} {'Active':<7} {'Next run':<20} {'Last run':<20} {'Fails':<5}")
    click.echo("-" * 106)
    for job in jobs:
        click.echo(
            f"{job.id:<34} {job.type.value:<16} {str(job.active):<7} "
            f"{_fmt(job.next_run):<20} {_fmt(job.last_run):<20} {job.failure_count:<5}"
        )
    click.echo()


@cli.command()
@pass_app
def status(app: AppContext):
    """Show scheduler status and configuration."""
    jobs = app.services.scheduler.get_jobs()
    now = app.services.scheduler.clock.now()
    due = [job for job in jobs if job.state(now) == JobState.DUE]
    recurring = [job for job in jobs if job.recurring is not None]
    settings = app.settings

    click.echo("\n" + "=" * 50)
    click.echo("EzJob Status")
    click.echo("=" * 50)
    click.echo(f"Total Jobs:      {len(jobs)}")
    click.echo(f"  Due now:       {len(due)}")
    click.echo(f"  Recurring:     {len(recurring)}")
    click.echo(f"  Inactive:      {sum(1 for job in jobs if not job.active)}")
    click.echo(f"  Failing:       {sum(1 for job in jobs if job.failure_count)}")
    click.echo(f"Security Events: {len(app.services.security_log)}")
    click.echo("\nConfiguration:")
    click.echo(f"  Poll Interval: {settings.poll_interval_seconds}s")
    click.echo(f"  Timezone:      {settings.timezone}")
    click.echo("=" * 50 + "\n")


@cli.command()
@click.option("--once", is_flag=True, help="Run a single tick and exit")
@click.option("--maintenance/--no-maintenance", default=True, help="Ensure daily cleanup and security check jobs")
@pass_app
def run(app: AppContext, once: bool, maintenance: bool):
    """Run the scheduler loop.

    Example:
        ezjob run
        ezjob run --once
    """
    scheduler = app.services.scheduler
    if maintenance:
        ensure_maintenance_jobs(scheduler)

    if once:
        report = scheduler.run_pending()
        click.echo(
            f"Executed {len(report.executed)}, failed {len(report.failed)}, "
            f"removed {len(report.removed)}, rescheduled {len(report.rescheduled)}"
        )
        return

    def _handle_shutdown(signum, frame):
        click.echo("\nStopping scheduler...")
        scheduler.request_stop()

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)
    try:
        scheduler.run_forever()
    except EzJobError as e:
        click.echo(f"✗ {e.message}", err=True)
        sys.exit(1)


@cli.group()
def config():
    """Inspect configuration"""
    pass


@config.command()
@pass_app
def show(app: AppContext):
    """Show effective configuration.

    Values come from EZJOB_* environment variables or a .env file.
    """
    settings = app.settings
    click.echo("\nCurrent Configuration:")
    for key, value in settings.model_dump(exclude={"rate_limits"}).items():
        click.echo(f"  {key.replace('_', '-')}: {value}")
    click.echo("  rate-limits:")
    for operation, limit in sorted(settings.rate_limits.items()):
        click.echo(f"    {operation}: {limit.max_requests} per {limit.window_ms // 1000}s")
    click.echo()


@cli.group()
def security():
    """Security event log"""
    pass


@security.command("log")
@click.option("--user", "user_id", default=None, help="Only events for this user")
@click.option("--limit", default=20, help="Maximum events to display")
@pass_app
def security_log(app: AppContext, user_id: Optional[str], limit: int):
    """Show the most recent security events."""
    events = app.services.security_log.events(user_id)[-limit:]
    if not events:
        click.echo("No security events")
        return

    click.echo(f"\n{'Time':<20} {'Type':<20} {'User':<20} {'IP':<16} {'OK':<5}")
    click.echo("-" * 81)
    for event in events:
        click.echo(
            f"{_fmt(event.timestamp):<20} {event.type.value:<20} {(event.user_id or '-'):<20} "
            f"{(event.ip_address or '-'):<16} {str(event.success):<5}"
        )
    click.echo()


@security.command("check")
@click.argument("user_id")
@pass_app
def security_check(app: AppContext, user_id: str):
    """Check a user for suspicious login activity."""
    result = app.services.security_log.check_suspicious_activity(user_id)
    if result.suspicious:
        click.echo(f"⚠ Suspicious: {result.reason}")
        click.echo(f"  Recommendation: {result.recommendation}")
        sys.exit(2)
    click.echo("✓ No suspicious activity")


if __name__ == "__main__":
    cli()
