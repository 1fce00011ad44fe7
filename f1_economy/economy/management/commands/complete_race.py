"""
Management command to settle a finished race.

Reads results from a CSV and runs race completion processing: accrue
points, reprice assets, expire contracts, unlock teams, mark the race
completed.

CSV columns: code, and either points or position; optionally
sprint_points or sprint_position.

Usage:
    python manage.py complete_race --year 2025 --round 6 --file results/r06.csv
"""

import csv
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from economy.flows.race_completion import process_race_completion_flow
from economy.models import Race


def _optional_int(value):
    value = (value or '').strip()
    return int(value) if value else None


def _optional_float(value):
    value = (value or '').strip()
    return float(value) if value else None


class Command(BaseCommand):
    help = 'Process results for a completed race'

    def add_arguments(self, parser):
        parser.add_argument('--year', type=int, required=True, help='Season year')
        parser.add_argument('--round', type=int, required=True, help='Race round number')
        parser.add_argument('--file', type=str, required=True, help='Path to the results CSV')

    def read_results(self, path):
        results = {}
        with open(path, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            if 'code' not in (reader.fieldnames or []):
                raise CommandError("Results CSV needs a 'code' column")
            for line_number, row in enumerate(reader, start=2):
                try:
                    results[row['code'].strip().upper()] = {
                        'points': _optional_float(row.get('points')),
                        'position': _optional_int(row.get('position')),
                        'sprint_points': _optional_float(row.get('sprint_points')),
                        'sprint_position': _optional_int(row.get('sprint_position')),
                    }
                except ValueError as e:
                    raise CommandError(f"Line {line_number}: {e}")
        return results

    def handle(self, *args, **options):
        path = Path(options['file'])
        if not path.exists():
            raise CommandError(f"File not found: {path}")

        try:
            race = Race.objects.get(season__year=options['year'], round_number=options['round'])
        except Race.DoesNotExist:
            raise CommandError(f"No race for {options['year']} round {options['round']}")

        results = self.read_results(path)
        self.stdout.write(f"Processing {len(results)} results for {race}...")

        summary = process_race_completion_flow(race_id=str(race.pk), results=results)

        if summary['status'] == 'skipped':
            self.stdout.write(self.style.WARNING(f"⚠️  {race.name} was already completed, nothing to do"))
            return

        self.stdout.write(f"  Assets repriced:   {summary['assets_repriced']}")
        self.stdout.write(f"  Teams settled:     {summary['teams_settled']}")
        self.stdout.write(f"  Contracts expired: {summary['contracts_expired']}")
        self.stdout.write(self.style.SUCCESS(f"✅ {race.name} completed"))
