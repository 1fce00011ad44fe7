"""
Management command to import the F1 race calendar from FastF1.

This command fetches the F1 event schedule and imports:
- Season
- Races (name, location, weekend format)
- Sessions with UTC start times (used for lock times)

Testing events are skipped: they never lock rosters.
Race status is never touched on re-import, so completed races stay completed.

Activating a season (the current year, or --activate) deactivates the
previous active season and rolls asset points over: season_points becomes
prior_season_points and starts again from zero.

Usage:
    python manage.py import_schedule --year 2025
    python manage.py import_schedule --year 2025 --event 6 --force
    python manage.py import_schedule --year 2026 --activate
"""

import fastf1
import pandas as pd
from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from economy.models import Asset, Race, Season, Session


class Command(BaseCommand):
    help = 'Import the F1 race calendar from FastF1 into the database'

    def add_arguments(self, parser):
        parser.add_argument(
            '--year',
            type=int,
            default=timezone.now().year,
            help='Season year (default: current year)'
        )
        parser.add_argument(
            '--event',
            type=int,
            help='Import only a specific event/round number'
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Re-import sessions even if the race already has all of them'
        )
        parser.add_argument(
            '--activate',
            action='store_true',
            help='Make this the active season and roll asset points over'
        )

    def handle(self, *args, **options):
        year = options['year']
        specific_event = options.get('event')
        force = options.get('force', False)

        self.stdout.write(self.style.SUCCESS(f'\n{"="*80}'))
        self.stdout.write(self.style.SUCCESS(f'F1 Schedule Import - {year} Season'))
        if force:
            self.stdout.write(self.style.WARNING('FORCE MODE: Re-importing all sessions'))
        self.stdout.write(self.style.SUCCESS(f'{"="*80}\n'))

        self.stdout.write('Fetching event schedule from FastF1...\n')
        schedule = fastf1.get_event_schedule(year)
        self.stdout.write(self.style.SUCCESS(f'✓ Found {len(schedule)} events\n'))

        if specific_event:
            schedule = schedule[schedule['RoundNumber'] == specific_event]
            if len(schedule) == 0:
                self.stdout.write(self.style.ERROR(f'Event {specific_event} not found'))
                return
            self.stdout.write(self.style.NOTICE(f'Importing only Round {specific_event}\n'))

        season = self.import_season(year, activate=options.get('activate', False))

        stats = {
            'races_created': 0,
            'races_updated': 0,
            'races_skipped': 0,
            'sessions_created': 0,
            'testing_skipped': 0,
        }

        for _, event_row in schedule.iterrows():
            if self.is_testing_event(event_row):
                stats['testing_skipped'] += 1
                continue

            self.stdout.write(f'\nProcessing Round {event_row["RoundNumber"]}: {event_row["EventName"]}...')
            race_stats = self.import_race(season, event_row, force)
            for key, value in race_stats.items():
                stats[key] += value

        self.stdout.write(self.style.SUCCESS(f'\n{"="*80}'))
        self.stdout.write(self.style.SUCCESS('Import Complete!'))
        self.stdout.write(self.style.SUCCESS(f'{"="*80}'))
        self.stdout.write(f'\nSummary:')
        self.stdout.write(f'  Races created:    {stats["races_created"]}')
        self.stdout.write(f'  Races updated:    {stats["races_updated"]}')
        self.stdout.write(f'  Races skipped:    {stats["races_skipped"]}')
        self.stdout.write(f'  Sessions created: {stats["sessions_created"]}')
        self.stdout.write(f'  Testing skipped:  {stats["testing_skipped"]}')
        self.stdout.write('')

    def is_testing_event(self, event_row):
        fmt = event_row.get('EventFormat', Race.FORMAT_CONVENTIONAL)
        return fmt == Race.FORMAT_TESTING or int(event_row['RoundNumber']) == 0

    def import_season(self, year, activate=False):
        """Get or create Season for the given year."""
        season, created = Season.objects.get_or_create(
            year=year,
            defaults={
                'name': f'{year} Formula 1 Season',
                'is_active': (year == timezone.now().year)
            }
        )

        if created:
            self.stdout.write(self.style.SUCCESS(f'✓ Created season: {season}'))
        else:
            self.stdout.write(f'  Using existing season: {season}')

        if activate and not season.is_active:
            season.is_active = True
            season.save(update_fields=['is_active'])
        if season.is_active:
            self.roll_over(season)

        return season

    @transaction.atomic
    def roll_over(self, season):
        """Deactivate older active seasons and restart asset season points."""
        previous = Season.objects.filter(is_active=True).exclude(pk=season.pk)
        if not previous.exists():
            return

        years = ', '.join(str(year) for year in previous.values_list('year', flat=True))
        previous.update(is_active=False)
        rolled = Asset.objects.update(prior_season_points=F('season_points'), season_points=0)
        self.stdout.write(self.style.WARNING(
            f'  Rolled over from {years}: {rolled} assets restart at 0 season points'
        ))

    def expected_session_count(self, event_row):
        return sum(
            1 for i in range(1, 6)
            if event_row.get(f'Session{i}') and not pd.isna(event_row.get(f'Session{i}'))
        )

    @transaction.atomic
    def import_race(self, season, event_row, force=False):
        """Import a single race event with all sessions."""
        stats = {'races_created': 0, 'races_updated': 0, 'races_skipped': 0, 'sessions_created': 0}

        race, created = Race.objects.get_or_create(
            season=season,
            round_number=int(event_row['RoundNumber']),
            defaults={'name': event_row['EventName']}
        )

        if not force and not created:
            existing_sessions = race.sessions.count()
            expected_sessions = self.expected_session_count(event_row)
            if existing_sessions > 0 and existing_sessions == expected_sessions:
                stats['races_skipped'] += 1
                self.stdout.write(f'  ⊙ Skipped race (already has {existing_sessions} sessions): {race.name}')
                return stats
            if existing_sessions > 0:
                self.stdout.write(
                    f'  ⚠ Race has {existing_sessions} sessions but expected {expected_sessions}, re-importing...'
                )

        race.name = event_row['EventName']
        race.country = event_row.get('Country', '') or ''
        race.location = event_row.get('Location', '') or ''
        race.event_format = event_row.get('EventFormat', Race.FORMAT_CONVENTIONAL)
        if event_row.get('EventDate') is not None and not pd.isna(event_row['EventDate']):
            race.event_date = event_row['EventDate'].date()
        race.save()

        if created:
            stats['races_created'] += 1
            self.stdout.write(f'  ✓ Created race: {race.name}')
        else:
            stats['races_updated'] += 1
            self.stdout.write(f'  ✓ Updated race: {race.name}')

        session_count = self.import_sessions(race, event_row)
        stats['sessions_created'] += session_count
        self.stdout.write(f'    → Created {session_count} sessions')
        if race.has_sprint:
            self.stdout.write(f'    → Sprint weekend')

        return stats

    def import_sessions(self, race, event_row):
        """Import Session1 through Session5 for a race."""
        sessions_created = 0

        for session_num in range(1, 6):
            session_type = event_row.get(f'Session{session_num}')
            session_date_utc = event_row.get(f'Session{session_num}DateUtc')

            if not session_type or pd.isna(session_type):
                continue

            session, created = Session.objects.get_or_create(
                race=race,
                session_number=session_num,
                defaults={'session_type': session_type}
            )
            session.session_type = session_type

            if session_date_utc is not None and not pd.isna(session_date_utc):
                moment = pd.Timestamp(session_date_utc)
                if moment.tzinfo is None:
                    moment = moment.tz_localize('UTC')
                session.session_date_utc = moment.to_pydatetime()

            session.save()

            if created:
                sessions_created += 1

        return sessions_created
