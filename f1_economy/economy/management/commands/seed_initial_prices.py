"""
Management command to seed asset prices from last season's points.

CSV columns: code, name, kind (driver|constructor), prior_season_points

Each asset is priced at dollars_per_point x (points / races_per_season),
clamped into the price range. Existing assets keep their current price
unless --reset is given.

Usage:
    python manage.py seed_initial_prices --file data/2024-points.csv
    python manage.py seed_initial_prices --file data/2024-points.csv --reset
"""

import csv
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from economy.conf import get_economy_config
from economy.engine import pricing
from economy.models import Asset

REQUIRED_COLUMNS = {'code', 'name', 'kind', 'prior_season_points'}


class Command(BaseCommand):
    help = 'Seed driver and constructor prices from prior-season points'

    def add_arguments(self, parser):
        parser.add_argument('--file', type=str, required=True, help='Path to the points CSV')
        parser.add_argument(
            '--reset',
            action='store_true',
            help='Reprice assets that already exist (clears their price history)'
        )

    def handle(self, *args, **options):
        path = Path(options['file'])
        reset = options['reset']
        if not path.exists():
            raise CommandError(f"File not found: {path}")

        config = get_economy_config()
        created = updated = skipped = 0

        with open(path, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            missing = REQUIRED_COLUMNS - set(reader.fieldnames or [])
            if missing:
                raise CommandError(f"Missing column(s): {', '.join(sorted(missing))}")

            with transaction.atomic():
                for line_number, row in enumerate(reader, start=2):
                    kind = row['kind'].strip().lower()
                    if kind not in (Asset.KIND_DRIVER, Asset.KIND_CONSTRUCTOR):
                        raise CommandError(f"Line {line_number}: unknown kind '{row['kind']}'")
                    try:
                        points = float(row['prior_season_points'])
                    except ValueError:
                        raise CommandError(
                            f"Line {line_number}: invalid points '{row['prior_season_points']}'"
                        )

                    price = pricing.initial_price(points, config)
                    code = row['code'].strip().upper()
                    asset = Asset.objects.filter(code=code).first()

                    if asset and not reset:
                        skipped += 1
                        continue

                    if asset is None:
                        asset = Asset(code=code)
                        created += 1
                    else:
                        asset.race_scores.all().delete()
                        updated += 1

                    asset.name = row['name'].strip()
                    asset.kind = kind
                    asset.prior_season_points = points
                    asset.season_points = 0
                    asset.current_price = price
                    asset.previous_price = 0
                    asset.tier = pricing.tier(price, config)
                    asset.save()

                    self.stdout.write(f"  {code:<6} {points:>7.0f} pts -> ${price} (tier {asset.tier})")

        self.stdout.write(self.style.SUCCESS(
            f"✓ Seeded prices: {created} created, {updated} repriced, {skipped} skipped"
        ))
