"""
Django ORM implementation of EconomyStore.

Converts between economy.models rows and the engine dataclasses. Engine
ids map to model keys as follows:
- Asset.id       <-> Asset.code
- FantasyTeam.id <-> FantasyTeam.id (32-char hex primary key)
- Race.id        <-> str(Race.pk)
- league_id      <-> str(League.pk)

Batched writes run inside transaction.atomic() so a batch commits as a
unit; Increment values become F() expressions. Read-modify-write paths
take a row lock with select_for_update() before re-reading the team.

Asset history only includes scores from the active season.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from django.db import transaction
from django.db.models import F, Prefetch

from economy import models as m
from economy.engine.types import (
    AdminOverride,
    Asset,
    AssetKind,
    FantasyTeam,
    Holding,
    LockDeadline,
    LockStatus,
    PointsEntry,
    Race,
    RaceSchedule,
    RaceStatus,
)
from .base import (
    DEFAULT_BATCH_LIMIT,
    EconomyStore,
    Increment,
    RecordNotFound,
    StoreError,
    TeamUpdate,
    TEAM_UPDATE_FIELDS,
)


logger = logging.getLogger(__name__)


def _league_pk(league_id: Optional[str]) -> Optional[int]:
    return int(league_id) if league_id else None


class DjangoStore(EconomyStore):

    def __init__(self, batch_limit: int = DEFAULT_BATCH_LIMIT):
        super().__init__(batch_limit=batch_limit)

    # Conversion helpers

    def _asset_to_engine(self, row: m.Asset) -> Asset:
        history = [
            PointsEntry(
                points=score.points,
                round=score.race.round_number,
                is_sprint=score.is_sprint_weekend,
                race_id=str(score.race_id),
            )
            for score in row.race_scores.all()
        ]
        history.sort(key=lambda entry: entry.round, reverse=True)
        return Asset(
            id=row.code,
            name=row.name,
            kind=AssetKind(row.kind),
            current_price=row.current_price,
            previous_price=row.previous_price,
            season_points=row.season_points,
            prior_season_points=row.prior_season_points,
            history=history,
            tier=row.tier,
        )

    def _holding_to_engine(self, row: m.AssetHolding) -> Holding:
        return Holding(
            asset_id=row.asset.code,
            kind=AssetKind(row.asset.kind),
            purchase_price=row.purchase_price,
            current_price=row.current_price,
            points_scored=row.points_scored,
            races_held=row.races_held,
            contract_length=row.contract_length,
            acquired_round=row.acquired_round,
        )

    def _team_to_engine(self, row: m.FantasyTeam) -> FantasyTeam:
        drivers = []
        constructor = None
        for holding_row in row.holdings.all():
            holding = self._holding_to_engine(holding_row)
            if holding.kind == AssetKind.CONSTRUCTOR:
                constructor = holding
            else:
                drivers.append(holding)

        return FantasyTeam(
            id=row.id,
            owner_id=row.owner_id,
            name=row.name,
            budget=row.budget,
            league_id=str(row.league_id) if row.league_id else None,
            drivers=drivers,
            constructor=constructor,
            total_spent=row.total_spent,
            realized_adjustment=row.realized_adjustment,
            total_points=row.total_points,
            banked_points=row.banked_points,
            star_asset_id=row.star_asset.code if row.star_asset_id else None,
            lock=LockStatus(
                is_locked=row.is_locked,
                can_modify=row.can_modify,
                lock_reason=row.lock_reason,
                next_unlock_time=row.next_unlock_time,
                is_season_locked=row.is_season_locked,
                season_lock_races_remaining=row.season_lock_races_remaining,
            ),
            settled_race_id=str(row.settled_race_id) if row.settled_race_id else None,
            asset_lockouts=dict(row.asset_lockouts or {}),
        )

    def _race_to_engine(self, row: m.Race) -> Optional[Race]:
        times = {
            session.session_type: session.session_date_utc
            for session in row.sessions.all()
        }
        qualifying = times.get(m.Session.TYPE_QUALIFYING)
        race_start = times.get(m.Session.TYPE_RACE)
        if qualifying is None or race_start is None:
            logger.warning(f"Skipping {row}: missing qualifying or race session time")
            return None

        return Race(
            id=str(row.pk),
            round=row.round_number,
            name=row.name,
            has_sprint=row.has_sprint,
            status=RaceStatus(row.status),
            schedule=RaceSchedule(
                qualifying=qualifying,
                race=race_start,
                fp1=times.get(m.Session.TYPE_PRACTICE_1),
                fp2=times.get(m.Session.TYPE_PRACTICE_2),
                fp3=times.get(m.Session.TYPE_PRACTICE_3),
                sprint_qualifying=(
                    times.get(m.Session.TYPE_SPRINT_QUALIFYING)
                    or times.get(m.Session.TYPE_SPRINT_SHOOTOUT)
                ),
                sprint=times.get(m.Session.TYPE_SPRINT),
            ),
        )

    def _races(self, queryset) -> List[Race]:
        races = [self._race_to_engine(row) for row in queryset.prefetch_related('sessions')]
        return [race for race in races if race is not None]

    def _team_queryset(self):
        return m.FantasyTeam.objects.select_related('star_asset').prefetch_related(
            Prefetch('holdings', queryset=m.AssetHolding.objects.select_related('asset'))
        )

    def _asset_queryset(self):
        return m.Asset.objects.prefetch_related(
            Prefetch(
                'race_scores',
                queryset=m.AssetRaceScore.objects.filter(
                    race__season__is_active=True,
                ).select_related('race'),
            )
        )

    # Assets

    def get_asset(self, asset_id: str) -> Asset:
        try:
            return self._asset_to_engine(self._asset_queryset().get(code=asset_id))
        except m.Asset.DoesNotExist:
            raise RecordNotFound(f"Asset {asset_id} not found")

    def list_assets(self, kind: Optional[AssetKind] = None) -> List[Asset]:
        queryset = self._asset_queryset()
        if kind is not None:
            queryset = queryset.filter(kind=AssetKind(kind).value)
        return [self._asset_to_engine(row) for row in queryset]

    @transaction.atomic
    def save_assets(self, assets: Iterable[Asset]) -> None:
        for asset in assets:
            row, _ = m.Asset.objects.update_or_create(
                code=asset.id,
                defaults={
                    'name': asset.name,
                    'kind': AssetKind(asset.kind).value,
                    'current_price': asset.current_price,
                    'previous_price': asset.previous_price,
                    'season_points': asset.season_points,
                    'prior_season_points': asset.prior_season_points,
                    'tier': asset.tier,
                },
            )
            for entry in asset.history:
                if entry.race_id is None:
                    continue
                m.AssetRaceScore.objects.update_or_create(
                    asset=row,
                    race_id=int(entry.race_id),
                    defaults={
                        'points': entry.points,
                        'is_sprint_weekend': entry.is_sprint,
                    },
                )

    # Teams

    def get_team(self, team_id: str) -> FantasyTeam:
        try:
            return self._team_to_engine(self._team_queryset().get(pk=team_id))
        except m.FantasyTeam.DoesNotExist:
            raise RecordNotFound(f"Team {team_id} not found")

    def _write_team(self, team: FantasyTeam):
        star = None
        if team.star_asset_id:
            star = m.Asset.objects.get(code=team.star_asset_id)

        row, _ = m.FantasyTeam.objects.update_or_create(
            id=team.id,
            defaults={
                'owner_id': team.owner_id,
                'league_id': _league_pk(team.league_id),
                'name': team.name,
                'budget': team.budget,
                'total_spent': team.total_spent,
                'realized_adjustment': team.realized_adjustment,
                'total_points': team.total_points,
                'banked_points': team.banked_points,
                'star_asset': star,
                'is_locked': team.lock.is_locked,
                'can_modify': team.lock.can_modify,
                'lock_reason': team.lock.lock_reason,
                'next_unlock_time': team.lock.next_unlock_time,
                'is_season_locked': team.lock.is_season_locked,
                'season_lock_races_remaining': team.lock.season_lock_races_remaining,
                'settled_race_id': int(team.settled_race_id) if team.settled_race_id else None,
                'asset_lockouts': dict(team.asset_lockouts),
            },
        )

        held_codes = [holding.asset_id for holding in team.holdings]
        row.holdings.exclude(asset__code__in=held_codes).delete()
        assets = {a.code: a for a in m.Asset.objects.filter(code__in=held_codes)}
        for holding in team.holdings:
            if holding.asset_id not in assets:
                raise RecordNotFound(f"Asset {holding.asset_id} not found")
            m.AssetHolding.objects.update_or_create(
                team=row,
                asset=assets[holding.asset_id],
                defaults={
                    'purchase_price': holding.purchase_price,
                    'current_price': holding.current_price,
                    'points_scored': holding.points_scored,
                    'races_held': holding.races_held,
                    'contract_length': holding.contract_length,
                    'acquired_round': holding.acquired_round,
                },
            )

    @transaction.atomic
    def save_team(self, team: FantasyTeam) -> None:
        self._write_team(team)

    def save_teams(self, teams: Sequence[FantasyTeam]) -> None:
        self._check_batch(len(teams))
        with transaction.atomic():
            for team in teams:
                self._write_team(team)

    def list_teams(self) -> List[FantasyTeam]:
        return [self._team_to_engine(row) for row in self._team_queryset()]

    def find_team_for_owner(self, owner_id: str, league_id: Optional[str]) -> Optional[FantasyTeam]:
        queryset = self._team_queryset().filter(owner_id=owner_id)
        if league_id:
            queryset = queryset.filter(league_id=_league_pk(league_id))
        else:
            queryset = queryset.filter(league__isnull=True)
        row = queryset.first()
        return self._team_to_engine(row) if row else None

    def find_unlocked_teams(self) -> List[FantasyTeam]:
        return [
            self._team_to_engine(row)
            for row in self._team_queryset().filter(is_locked=False)
        ]

    def commit_team_updates(self, updates: Sequence[TeamUpdate]) -> int:
        self._check_batch(len(updates))
        with transaction.atomic():
            for update in updates:
                values = {}
                for name, value in update.fields.items():
                    if name not in TEAM_UPDATE_FIELDS:
                        raise StoreError(f"Field {name!r} cannot be updated in a batch")
                    values[name] = F(name) + value.amount if isinstance(value, Increment) else value
                updated = m.FantasyTeam.objects.filter(pk=update.team_id).update(**values)
                if not updated:
                    raise RecordNotFound(f"Team {update.team_id} not found")
        return len(updates)

    def _lock_rows(self, team_ids: Sequence[str]):
        # Locks the team rows only; the prefetching queryset joins nullable
        # relations that cannot be locked on every backend.
        locked = set(
            m.FantasyTeam.objects.select_for_update().filter(pk__in=team_ids).values_list('pk', flat=True)
        )
        missing = [team_id for team_id in team_ids if team_id not in locked]
        if missing:
            raise RecordNotFound(f"Teams not found: {', '.join(missing)}")

    @contextmanager
    def locked_team(self, team_id: str):
        with transaction.atomic():
            self._lock_rows([team_id])
            team = self.get_team(team_id)
            yield team
            self._write_team(team)

    def update_teams(self, team_ids: Sequence[str], mutate: Callable[[FantasyTeam], bool]) -> int:
        self._check_batch(len(team_ids))
        written = 0
        with transaction.atomic():
            self._lock_rows(team_ids)
            for row in self._team_queryset().filter(pk__in=team_ids):
                team = self._team_to_engine(row)
                if mutate(team):
                    self._write_team(team)
                    written += 1
        return written

    # Leagues

    def get_lock_policies(self, league_ids: Iterable[str]) -> Dict[str, LockDeadline]:
        pks = {_league_pk(league_id) for league_id in league_ids if league_id}
        rows = m.League.objects.filter(pk__in=pks).values_list('pk', 'lock_deadline')
        return {str(pk): LockDeadline(deadline) for pk, deadline in rows}

    # Races

    def list_races(self) -> List[Race]:
        return self._races(m.Race.objects.filter(season__is_active=True))

    def get_race(self, race_id: str) -> Race:
        row = m.Race.objects.filter(pk=int(race_id)).prefetch_related('sessions').first()
        race = self._race_to_engine(row) if row else None
        if race is None:
            raise RecordNotFound(f"Race {race_id} not found or has no schedule")
        return race

    def races_with_qualifying_between(
        self,
        start: datetime,
        end: datetime,
        status: RaceStatus = RaceStatus.UPCOMING,
    ) -> List[Race]:
        queryset = m.Race.objects.filter(
            status=RaceStatus(status).value,
            sessions__session_type=m.Session.TYPE_QUALIFYING,
            sessions__session_date_utc__gte=start,
            sessions__session_date_utc__lte=end,
        ).distinct()
        return self._races(queryset)

    def update_race_status(self, race_id: str, status: RaceStatus) -> None:
        updated = m.Race.objects.filter(pk=int(race_id)).update(status=RaceStatus(status).value)
        if not updated:
            raise RecordNotFound(f"Race {race_id} not found")

    def completed_race_ids(self) -> Set[str]:
        pks = m.Race.objects.filter(
            season__is_active=True,
            status=m.Race.STATUS_COMPLETED,
        ).values_list('pk', flat=True)
        return {str(pk) for pk in pks}

    # Admin

    def get_admin_override(self) -> AdminOverride:
        return AdminOverride(m.AdminLockOverride.load().value)

    def set_admin_override(self, value: AdminOverride) -> None:
        override = m.AdminLockOverride.load()
        override.value = AdminOverride(value).value
        override.save()
