"""
In-memory implementation of EconomyStore.

Records are deep-copied on the way in and out so callers can never mutate
stored state without going through the store. Every committed batch is
recorded in ``commits`` and ``write_count`` counts individual operations,
which tests use to assert idempotency (a second scheduler pass must write
nothing).
"""

import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from economy.engine.types import (
    AdminOverride,
    Asset,
    AssetKind,
    FantasyTeam,
    LockDeadline,
    Race,
    RaceStatus,
)
from .base import (
    DEFAULT_BATCH_LIMIT,
    EconomyStore,
    RecordNotFound,
    TeamUpdate,
    apply_team_update,
)


class InMemoryStore(EconomyStore):

    def __init__(
        self,
        assets: Iterable[Asset] = (),
        teams: Iterable[FantasyTeam] = (),
        races: Iterable[Race] = (),
        lock_policies: Optional[Dict[str, LockDeadline]] = None,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ):
        super().__init__(batch_limit=batch_limit)
        self._lock = threading.RLock()
        self._assets = {asset.id: copy.deepcopy(asset) for asset in assets}
        self._teams = {team.id: copy.deepcopy(team) for team in teams}
        self._races = {race.id: copy.deepcopy(race) for race in races}
        self._policies = dict(lock_policies or {})
        self._override = AdminOverride.NONE
        self.commits: List[int] = []
        self.write_count = 0

    def _record_commit(self, operations: int):
        self.commits.append(operations)
        self.write_count += operations

    # Assets

    def get_asset(self, asset_id: str) -> Asset:
        with self._lock:
            try:
                return copy.deepcopy(self._assets[asset_id])
            except KeyError:
                raise RecordNotFound(f"Asset {asset_id} not found")

    def list_assets(self, kind: Optional[AssetKind] = None) -> List[Asset]:
        with self._lock:
            return [
                copy.deepcopy(asset) for asset in self._assets.values()
                if kind is None or asset.kind == kind
            ]

    def save_assets(self, assets: Iterable[Asset]) -> None:
        with self._lock:
            for asset in assets:
                self._assets[asset.id] = copy.deepcopy(asset)

    # Teams

    def get_team(self, team_id: str) -> FantasyTeam:
        with self._lock:
            try:
                return copy.deepcopy(self._teams[team_id])
            except KeyError:
                raise RecordNotFound(f"Team {team_id} not found")

    def save_team(self, team: FantasyTeam) -> None:
        with self._lock:
            self._teams[team.id] = copy.deepcopy(team)
            self._record_commit(1)

    def save_teams(self, teams: Sequence[FantasyTeam]) -> None:
        self._check_batch(len(teams))
        with self._lock:
            for team in teams:
                self._teams[team.id] = copy.deepcopy(team)
            self._record_commit(len(teams))

    def list_teams(self) -> List[FantasyTeam]:
        with self._lock:
            return [copy.deepcopy(team) for team in self._teams.values()]

    def find_team_for_owner(self, owner_id: str, league_id: Optional[str]) -> Optional[FantasyTeam]:
        with self._lock:
            for team in self._teams.values():
                if team.owner_id == owner_id and team.league_id == league_id:
                    return copy.deepcopy(team)
        return None

    def find_unlocked_teams(self) -> List[FantasyTeam]:
        with self._lock:
            return [
                copy.deepcopy(team) for team in self._teams.values()
                if not team.lock.is_locked
            ]

    def commit_team_updates(self, updates: Sequence[TeamUpdate]) -> int:
        self._check_batch(len(updates))
        with self._lock:
            # Validate the whole batch before touching anything
            missing = [u.team_id for u in updates if u.team_id not in self._teams]
            if missing:
                raise RecordNotFound(f"Teams not found: {', '.join(missing)}")
            staged = {}
            for update in updates:
                team = staged.get(update.team_id) or copy.deepcopy(self._teams[update.team_id])
                staged[update.team_id] = apply_team_update(team, update.fields)
            self._teams.update(staged)
            self._record_commit(len(updates))
        return len(updates)

    @contextmanager
    def locked_team(self, team_id: str):
        with self._lock:
            team = self.get_team(team_id)
            yield team
            self._teams[team_id] = copy.deepcopy(team)
            self._record_commit(1)

    def update_teams(self, team_ids: Sequence[str], mutate: Callable[[FantasyTeam], bool]) -> int:
        self._check_batch(len(team_ids))
        with self._lock:
            missing = [team_id for team_id in team_ids if team_id not in self._teams]
            if missing:
                raise RecordNotFound(f"Teams not found: {', '.join(missing)}")
            staged = {}
            for team_id in team_ids:
                team = copy.deepcopy(self._teams[team_id])
                if mutate(team):
                    staged[team_id] = team
            if staged:
                self._teams.update(staged)
                self._record_commit(len(staged))
        return len(staged)

    # Leagues

    def set_lock_policy(self, league_id: str, deadline: LockDeadline):
        with self._lock:
            self._policies[league_id] = LockDeadline(deadline)

    def get_lock_policies(self, league_ids: Iterable[str]) -> Dict[str, LockDeadline]:
        with self._lock:
            return {
                league_id: self._policies[league_id]
                for league_id in set(league_ids)
                if league_id in self._policies
            }

    # Races

    def add_race(self, race: Race):
        with self._lock:
            self._races[race.id] = copy.deepcopy(race)

    def list_races(self) -> List[Race]:
        with self._lock:
            races = [copy.deepcopy(race) for race in self._races.values()]
        return sorted(races, key=lambda r: r.round)

    def get_race(self, race_id: str) -> Race:
        with self._lock:
            try:
                return copy.deepcopy(self._races[race_id])
            except KeyError:
                raise RecordNotFound(f"Race {race_id} not found")

    def races_with_qualifying_between(
        self,
        start: datetime,
        end: datetime,
        status: RaceStatus = RaceStatus.UPCOMING,
    ) -> List[Race]:
        return [
            race for race in self.list_races()
            if race.status == status and start <= race.schedule.qualifying <= end
        ]

    def update_race_status(self, race_id: str, status: RaceStatus) -> None:
        with self._lock:
            if race_id not in self._races:
                raise RecordNotFound(f"Race {race_id} not found")
            self._races[race_id].status = RaceStatus(status)

    def completed_race_ids(self) -> Set[str]:
        with self._lock:
            return {
                race.id for race in self._races.values()
                if race.status == RaceStatus.COMPLETED
            }

    # Admin

    def get_admin_override(self) -> AdminOverride:
        return self._override

    def set_admin_override(self, value: AdminOverride) -> None:
        self._override = AdminOverride(value)
