"""
Management command to serve the auto-lock flow on its interval.

Starts a long-running Prefect deployment that runs auto_lock_teams_flow
every lock_interval_minutes (15 by default). Each run has bounded retries
and a timeout shorter than the interval, so a stuck run never blocks the
next one.

Usage:
    python manage.py run_lock_scheduler
    python manage.py run_lock_scheduler --notify
"""

from django.core.management.base import BaseCommand

from economy.conf import get_economy_config
from economy.flows.auto_lock import auto_lock_teams_flow


class Command(BaseCommand):
    help = 'Serve the auto-lock flow on a fixed interval'

    def add_arguments(self, parser):
        parser.add_argument(
            '--notify',
            action='store_true',
            help='Send Slack summaries from each run'
        )
        parser.add_argument(
            '--name',
            type=str,
            default='auto-lock-teams',
            help='Deployment name'
        )

    def handle(self, *args, **options):
        config = get_economy_config()
        self.stdout.write(self.style.SUCCESS(
            f"Serving auto-lock every {config.lock_interval_minutes} minutes "
            f"(horizon {config.lock_horizon_minutes} minutes)"
        ))

        auto_lock_teams_flow.serve(
            name=options['name'],
            interval=config.lock_interval,
            parameters={'notify': options['notify']},
        )
