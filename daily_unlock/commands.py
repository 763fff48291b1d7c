"""`flask daily-unlock ...` commands, meant to be driven by an external cron.

Suggested crontab (server time):
    */5 * * * *   flask daily-unlock sweep
    45 8 * * *    flask daily-unlock remind-daily
    0 10 * * *    flask daily-unlock remind-quiz
    0 2 * * *     flask daily-unlock cleanup-notifications
"""

from __future__ import annotations

import json
from datetime import timezone

import click
from dateutil import parser as date_parser
from flask.cli import AppGroup

from daily_unlock.service import DailyUnlockService
from notifications.dispatch import delete_expired_notifications


def create_daily_unlock_cli(service: DailyUnlockService) -> AppGroup:
    group = AppGroup("daily-unlock", help="Daily tip unlock maintenance tasks.")

    @group.command("sweep")
    @click.option("--now", "raw_now", default=None, help="ISO-8601 instant to reconcile against.")
    def sweep(raw_now):
        """Unlock every due tip for all eligible users."""
        now = None
        if raw_now:
            try:
                now = date_parser.isoparse(raw_now)
            except ValueError as exc:
                raise click.BadParameter(str(exc), param_hint="--now") from exc
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
        report = service.process_all_daily_unlocks(now)
        click.echo(json.dumps(report.to_dict(), indent=2))
        if report.failed:
            click.echo(f"⚠️ {len(report.failed)} user(s) failed; see log for details.", err=True)

    @group.command("remind-daily")
    def remind_daily():
        """Send the morning "new tips today" reminder."""
        report = service.send_daily_reminders()
        click.echo(f"✅ Daily reminders: {len(report.succeeded)} sent, {len(report.failed)} failed.")

    @group.command("remind-quiz")
    def remind_quiz():
        """Remind recently active users to take the placement quiz."""
        report = service.send_quiz_reminders()
        click.echo(f"✅ Quiz reminders: {len(report.succeeded)} sent, {len(report.failed)} failed.")

    @group.command("cleanup-notifications")
    def cleanup_notifications():
        """Delete inbox notifications past their expiry."""
        deleted = delete_expired_notifications()
        click.echo(f"🧹 Deleted {deleted} expired notification(s).")

    return group
