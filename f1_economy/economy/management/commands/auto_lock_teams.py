"""
Management command to run one auto-lock pass.

Locks every unlocked team (in leagues that lock at qualifying) for races
whose qualifying starts within the horizon. Safe to run repeatedly.

Usage:
    python manage.py auto_lock_teams
    python manage.py auto_lock_teams --horizon 120 --notify
"""

from django.core.management.base import BaseCommand, CommandError

from economy.flows.auto_lock import auto_lock_teams_flow


class Command(BaseCommand):
    help = 'Lock teams for races whose qualifying is about to start'

    def add_arguments(self, parser):
        parser.add_argument(
            '--horizon',
            type=int,
            help='Minutes ahead to look for qualifying sessions (default from config)'
        )
        parser.add_argument(
            '--notify',
            action='store_true',
            help='Send a Slack summary when teams were locked or a race failed'
        )

    def handle(self, *args, **options):
        summary = auto_lock_teams_flow(notify=options['notify'], horizon_minutes=options.get('horizon'))

        self.stdout.write(f"Races selected: {summary['races_selected']}")
        self.stdout.write(f"Teams locked:   {summary['teams_locked']}")
        self.stdout.write(f"Batches:        {summary['batches_committed']}")

        if summary['status'] == 'failed':
            raise CommandError(f"Auto-lock failed for {summary['races_failed']} race(s)")
        if summary['races_failed']:
            self.stdout.write(self.style.WARNING(
                f"⚠️  {summary['races_failed']} race(s) failed and will be retried next pass"
            ))
        else:
            self.stdout.write(self.style.SUCCESS('✅ Auto-lock pass complete'))
