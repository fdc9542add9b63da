#!/usr/bin/env python3
"""
Go Make Your Picks Management CLI

Command-line management for seasons, rounds, the round clock and
notifications.
"""

import logging

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from makepicks import create_app, db
from makepicks.models import ReminderLog, Round, Season
from makepicks.services.notification_service import build_notification_service
from makepicks.services.round_service import RoundService
from makepicks.services.scheduler_service import scheduler_service
from makepicks.services.season_service import SeasonService
from makepicks.utils.results import ServiceError

app = create_app()


def _echo_result(result):
    if result.ok:
        click.echo(f"✅ {result.message}")
    else:
        click.echo(f"❌ {result.message} ({result.error_kind.value})")


@click.group()
def cli():
    """Go Make Your Picks Management CLI"""
    pass


# Season Management Commands
@cli.group()
def season():
    """Season management commands"""
    pass


@season.command("end")
@click.argument("season_id", type=int)
@with_appcontext
def end_season(season_id):
    """End a season: snapshot points and record winners"""
    result = SeasonService().end_season(season_id)
    _echo_result(result)
    if result.ok:
        for winner in result.value["winners"]:
            click.echo(f"  {winner['rank']}. {winner['name']} - {winner['total_points']} pts")


@season.command("reopen")
@click.argument("season_id", type=int)
@with_appcontext
def reopen_season(season_id):
    """Reopen an ended season"""
    _echo_result(SeasonService().reopen_season(season_id))


@season.command("set-default")
@click.argument("season_id", type=int)
@with_appcontext
def set_default(season_id):
    """Make a season the default"""
    _echo_result(SeasonService().set_default_season(season_id))


@season.command("list")
@with_appcontext
def list_seasons():
    """List all seasons"""
    seasons = Season.query.filter(Season.deleted_at.is_(None)).order_by(Season.id).all()
    if not seasons:
        click.echo("No seasons found.")
        return

    click.echo("Seasons:")
    for s in seasons:
        status = "ended" if s.is_ended else ("active" if s.is_active else "inactive")
        default = " (default)" if s.is_default else ""
        click.echo(f"  {s.id}: {s.name} - {status}{default}")


# Round Management Commands
@cli.group("round")
def round_cmd():
    """Round management commands"""
    pass


@round_cmd.command("lock")
@click.argument("round_id", type=int)
@with_appcontext
def lock_round(round_id):
    """Lock an active round and notify participants"""
    _echo_result(RoundService().lock_round(round_id))


@round_cmd.command("complete")
@click.argument("round_id", type=int)
@click.argument("placements", nargs=-1, required=True)
@with_appcontext
def complete_round(round_id, placements):
    """Complete a round with the official finishers in order (1st first)"""
    _echo_result(RoundService().complete_round(round_id, list(placements)))


@round_cmd.command("list")
@click.option("--season-id", type=int, help="Only rounds in this season")
@with_appcontext
def list_rounds(season_id):
    """List rounds with their status and lock time"""
    query = Round.query.filter(Round.deleted_at.is_(None))
    if season_id:
        query = query.filter_by(season_id=season_id)

    rounds = query.order_by(Round.lock_time).all()
    if not rounds:
        click.echo("No rounds found.")
        return

    for r in rounds:
        click.echo(f"  {r.id}: {r.sport_name} [{r.status}] locks {r.lock_time_utc.isoformat()}")


# Round Clock Commands
@cli.group()
def scheduler():
    """Round clock commands"""
    pass


@scheduler.command("tick")
@with_appcontext
def tick():
    """Run one round clock tick now"""
    result = scheduler_service.force_tick(app)
    _echo_result(result)
    if result.ok:
        click.echo(f"  {result.value}")


@scheduler.command("status")
@with_appcontext
def status():
    """Show round clock statistics for this process"""
    info = scheduler_service.get_status()
    click.echo(f"Running: {info['is_running']}")
    for key, value in info["stats"].items():
        click.echo(f"  {key}: {value}")


# Notification Commands
@cli.group()
def notify():
    """Notification commands"""
    pass


@notify.command("resend")
@click.argument("round_id", type=int)
@click.argument("reminder_type")
@with_appcontext
def resend(round_id, reminder_type):
    """Clear the ledger entry for a notification and send it again"""
    try:
        round_ = db.session.get(Round, round_id)
        if round_ is None:
            click.echo(f"❌ Round {round_id} not found!")
            return

        try:
            outcome = build_notification_service().manual_resend(round_, reminder_type)
        except ServiceError as e:
            click.echo(f"❌ {e.message}")
            return

        if outcome.sent:
            click.echo(
                f"✅ Sent {reminder_type} to {outcome.recipient_count} user(s): "
                f"{outcome.report.summary()}"
            )
        else:
            click.echo(f"Nothing sent: {outcome.reason}")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error: {str(e)}")
        logging.error(f"Notification resend failed - SQL error: {e}")


@notify.command("log")
@click.argument("round_id", type=int)
@with_appcontext
def show_log(round_id):
    """Show notifications recorded for a round"""
    entries = (
        ReminderLog.query.filter_by(round_id=round_id)
        .order_by(ReminderLog.sent_at)
        .all()
    )
    if not entries:
        click.echo("No notifications recorded.")
        return

    for entry in entries:
        click.echo(
            f"  {entry.sent_at.isoformat()} {entry.reminder_type} -> {entry.recipient_count}"
        )


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Create all database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


if __name__ == "__main__":
    with app.app_context():
        cli()
