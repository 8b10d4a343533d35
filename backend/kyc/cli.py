# Overview: Flask CLI command groups for bootstrap and submission inspection.

# backend/kyc/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "kyc:create_app" (PowerShell: $env:FLASK_APP="kyc:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Submission inspection:
# - python -m flask submissions list --status pending_superadmin_review --limit 20
#   List submissions (optionally filtered by status).
# - python -m flask submissions timeline 42
#   Print the derived stage timeline for one submission.
# - python -m flask submissions stuck
#   List open submissions whose current stage is over its SLA.
# - python -m flask submissions stats --days 30
#   Print aggregate statistics.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import KYCError
from .validation import ValidationError
from .services import progress_service, stats_service, submission_service
from .time_utils import to_utc_z


def _hours(ms: int) -> str:
    return f"{ms / 3_600_000:.1f}h"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset.')
@with_appcontext
def reset_db_command(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("Refusing to reset without --yes.")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("Database reset complete.")


@click.group('submissions')
def submissions_group():
    """KYC submission inspection commands."""


@submissions_group.command('list')
@click.option('--status', default=None, help='Filter by submission status.')
@click.option('--limit', default=50, show_default=True, type=int)
@with_appcontext
def list_submissions_command(status, limit):
    """List submissions, newest first."""
    try:
        submissions = submission_service.list_submissions(status=status, limit=limit)
    except ValidationError as e:
        raise click.ClickException(str(e))

    if not submissions:
        click.echo("No submissions found.")
        return
    for s in submissions:
        click.echo(
            f"{s.id:>6}  marketer={s.marketer_id:<6} {s.status:<30} "
            f"forms={s.submitted_form_count()}/3  updated={to_utc_z(s.updated_at)}"
        )


@submissions_group.command('timeline')
@click.argument('submission_id', type=int)
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON.')
@with_appcontext
def timeline_command(submission_id, as_json):
    """Print the derived stage timeline for one submission."""
    try:
        timeline = progress_service.build_timeline(submission_id)
    except (KYCError, ValidationError) as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(timeline.to_dict(), indent=2))
        return

    click.echo(
        f"Submission {timeline.submission_id} ({timeline.current_status}) "
        f"progress={timeline.progress_percentage}% elapsed={_hours(timeline.total_time_elapsed_ms)}"
    )
    for stage in timeline.stages:
        click.echo(f"  {stage.name:<22} {stage.status:<12} {_hours(stage.time_elapsed_ms)}")
    if timeline.is_stuck:
        click.echo(f"  STUCK in {timeline.bottleneck_stage}")


@submissions_group.command('stuck')
@click.option('--limit', default=200, show_default=True, type=int)
@with_appcontext
def stuck_command(limit):
    """List open submissions whose current stage is over its SLA."""
    timelines = progress_service.list_timelines(
        bottleneck=progress_service.BOTTLENECK_STUCK,
        limit=limit,
    )
    if not timelines:
        click.echo("No stuck submissions.")
        return
    for t in timelines:
        stage = t.stage(t.bottleneck_stage)
        click.echo(
            f"{t.submission_id:>6}  {t.bottleneck_stage:<22} "
            f"{_hours(stage.time_elapsed_ms)} (limit {_hours(t.sla_thresholds_ms[t.bottleneck_stage])})"
        )


@submissions_group.command('stats')
@click.option('--days', default=None, type=int, help='Only submissions created in the last N days.')
@with_appcontext
def stats_command(days):
    """Print aggregate statistics."""
    try:
        stats = stats_service.submission_stats(days=days)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(stats, indent=2))


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(submissions_group)
