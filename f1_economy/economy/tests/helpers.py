"""
Shared builders for engine-level tests.

Everything here is in-memory: no database, no network.
"""

from datetime import datetime, timedelta, timezone

from economy.engine.types import (
    Asset,
    AssetKind,
    FantasyTeam,
    Race,
    RaceSchedule,
    RaceStatus,
)
from economy.storage.memory import InMemoryStore


# Saturday FP3 of a conventional weekend
FP3 = datetime(2025, 5, 24, 10, 30, tzinfo=timezone.utc)


def make_race(
    race_id='r1',
    round_number=1,
    name='Monaco Grand Prix',
    fp3=FP3,
    has_sprint=False,
    status=RaceStatus.UPCOMING,
    qualifying=None,
):
    """Race with qualifying 3h30 after FP3 and the race one day after FP3."""
    qualifying = qualifying or fp3 + timedelta(hours=3, minutes=30)
    schedule = RaceSchedule(
        fp1=fp3 - timedelta(days=1),
        fp2=None if has_sprint else fp3 - timedelta(hours=20),
        fp3=None if has_sprint else fp3,
        sprint_qualifying=fp3 - timedelta(hours=20) if has_sprint else None,
        sprint=fp3 if has_sprint else None,
        qualifying=qualifying,
        race=fp3 + timedelta(days=1),
    )
    return Race(
        id=race_id,
        round=round_number,
        name=name,
        schedule=schedule,
        has_sprint=has_sprint,
        status=status,
    )


def make_driver(code, price=100, season_points=0):
    return Asset(
        id=code,
        name=f'Driver {code}',
        kind=AssetKind.DRIVER,
        current_price=price,
        season_points=season_points,
    )


def make_constructor(code, price=150, season_points=0):
    return Asset(
        id=code,
        name=f'Constructor {code}',
        kind=AssetKind.CONSTRUCTOR,
        current_price=price,
        season_points=season_points,
    )


def default_assets():
    """
    12 drivers D01..D12 at $100 with season points 10, 20, ... 120
    (D11 and D12 fall outside the 10-asset star pool), plus two
    constructors.
    """
    drivers = [make_driver(f'D{i:02d}', price=100, season_points=i * 10) for i in range(1, 13)]
    constructors = [make_constructor('C1', price=150), make_constructor('C2', price=120)]
    return drivers + constructors


def make_store(assets=None, races=None, teams=None, **kwargs):
    return InMemoryStore(
        assets=default_assets() if assets is None else assets,
        races=races or [],
        teams=teams or [],
        **kwargs
    )


def make_team(team_id, league_id=None, locked=False, budget=1000):
    team = FantasyTeam(
        id=team_id,
        owner_id=f'owner-{team_id}',
        name=f'Team {team_id}',
        budget=budget,
        league_id=league_id,
    )
    team.lock.is_locked = locked
    team.lock.can_modify = not locked
    return team


# Database builders (TestCase only)

def create_season(year=2025, is_active=True):
    from economy.models import Season
    return Season.objects.create(year=year, name=f'{year} Formula 1 Season', is_active=is_active)


def create_db_race(season, round_number=1, name='Monaco Grand Prix', fp3=FP3, status='upcoming'):
    """Conventional weekend with the same session offsets as make_race()."""
    from economy.models import Race as RaceRow, Session

    race = RaceRow.objects.create(
        season=season,
        name=name,
        round_number=round_number,
        event_format=RaceRow.FORMAT_CONVENTIONAL,
        event_date=(fp3 + timedelta(days=1)).date(),
        status=status,
    )
    sessions = [
        (Session.TYPE_PRACTICE_1, fp3 - timedelta(days=1)),
        (Session.TYPE_PRACTICE_2, fp3 - timedelta(hours=20)),
        (Session.TYPE_PRACTICE_3, fp3),
        (Session.TYPE_QUALIFYING, fp3 + timedelta(hours=3, minutes=30)),
        (Session.TYPE_RACE, fp3 + timedelta(days=1)),
    ]
    for number, (session_type, start) in enumerate(sessions, start=1):
        Session.objects.create(
            race=race,
            session_type=session_type,
            session_number=number,
            session_date_utc=start,
        )
    return race
