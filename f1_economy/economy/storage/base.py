"""
Storage interface for the economy engine.

One abstract store, two implementations:
- InMemoryStore (storage/memory.py): dict-backed, used by tests and demos
- DjangoStore (storage/django_store.py): ORM-backed, used in production

The implementation is chosen by whoever constructs the ledger or the
scheduler; nothing in the engine reads a global mode flag.

Batched writes:
    commit_team_updates() and save_teams() refuse batches larger than
    batch_limit operations. Callers split work with batched().

Read-modify-write:
    locked_team() and update_teams() re-read teams under a row lock (a
    store lock in memory) and write them back in the same commit, so a
    concurrent ledger mutation is never overwritten by a stale copy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, ContextManager, Dict, Iterable, Iterator, List, Optional, Sequence, Set, TypeVar

from economy.engine.types import (
    AdminOverride,
    Asset,
    AssetKind,
    FantasyTeam,
    LockDeadline,
    Race,
    RaceStatus,
)


DEFAULT_BATCH_LIMIT = 499

T = TypeVar('T')


class StoreError(Exception):
    """Base class for storage failures."""
    pass


class RecordNotFound(StoreError, LookupError):
    pass


class BatchLimitExceeded(StoreError):
    pass


@dataclass(frozen=True)
class Increment:
    """Field-level increment, applied atomically by the store."""
    amount: Any


@dataclass
class TeamUpdate:
    """
    Partial update for a single team.

    ``fields`` maps lock/accounting field names (see TEAM_UPDATE_FIELDS) to
    new values, or to Increment(...) for relative changes.
    """
    team_id: str
    fields: Dict[str, Any] = field(default_factory=dict)


LOCK_FIELDS = (
    'is_locked',
    'can_modify',
    'lock_reason',
    'next_unlock_time',
    'is_season_locked',
    'season_lock_races_remaining',
)

ACCOUNTING_FIELDS = (
    'budget',
    'total_spent',
    'realized_adjustment',
    'total_points',
    'banked_points',
)

TEAM_UPDATE_FIELDS = LOCK_FIELDS + ACCOUNTING_FIELDS


def batched(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    items = list(items)
    for start in range(0, len(items), size):
        yield items[start:start + size]


def apply_team_update(team: FantasyTeam, fields: Dict[str, Any]) -> FantasyTeam:
    """Apply a TeamUpdate's fields to a FantasyTeam in place."""
    for name, value in fields.items():
        if name not in TEAM_UPDATE_FIELDS:
            raise StoreError(f"Field {name!r} cannot be updated in a batch")
        target = team.lock if name in LOCK_FIELDS else team
        if isinstance(value, Increment):
            value = getattr(target, name) + value.amount
        setattr(target, name, value)
    return team


class EconomyStore(ABC):
    """Persistence collaborator for assets, teams, races and league policy."""

    def __init__(self, batch_limit: int = DEFAULT_BATCH_LIMIT):
        self.batch_limit = batch_limit

    def _check_batch(self, size: int):
        if size > self.batch_limit:
            raise BatchLimitExceeded(
                f"Batch of {size} operations exceeds limit of {self.batch_limit}"
            )

    # Assets

    @abstractmethod
    def get_asset(self, asset_id: str) -> Asset:
        ...

    @abstractmethod
    def list_assets(self, kind: Optional[AssetKind] = None) -> List[Asset]:
        ...

    @abstractmethod
    def save_assets(self, assets: Iterable[Asset]) -> None:
        ...

    # Teams

    @abstractmethod
    def get_team(self, team_id: str) -> FantasyTeam:
        ...

    @abstractmethod
    def save_team(self, team: FantasyTeam) -> None:
        ...

    @abstractmethod
    def save_teams(self, teams: Sequence[FantasyTeam]) -> None:
        """Save full team records in one commit of at most batch_limit teams."""
        ...

    @abstractmethod
    def list_teams(self) -> List[FantasyTeam]:
        ...

    @abstractmethod
    def find_team_for_owner(self, owner_id: str, league_id: Optional[str]) -> Optional[FantasyTeam]:
        ...

    @abstractmethod
    def find_unlocked_teams(self) -> List[FantasyTeam]:
        ...

    @abstractmethod
    def commit_team_updates(self, updates: Sequence[TeamUpdate]) -> int:
        """
        Apply partial team updates in one commit.

        Returns:
            Number of write operations performed
        """
        ...

    @abstractmethod
    def locked_team(self, team_id: str) -> ContextManager[FantasyTeam]:
        """
        Load a team for read-modify-write.

        The yielded team is saved when the block exits cleanly and
        discarded when it raises. No other writer can change the team in
        between.
        """
        ...

    @abstractmethod
    def update_teams(self, team_ids: Sequence[str], mutate: Callable[[FantasyTeam], bool]) -> int:
        """
        Re-read each team, apply ``mutate`` and save the ones it changed.

        All teams are updated in one commit of at most batch_limit teams.
        ``mutate`` returns False to leave a team untouched.

        Returns:
            Number of teams written
        """
        ...

    # Leagues

    @abstractmethod
    def get_lock_policies(self, league_ids: Iterable[str]) -> Dict[str, LockDeadline]:
        """Bulk-read lock deadlines; leagues without a policy are omitted."""
        ...

    # Races

    @abstractmethod
    def list_races(self) -> List[Race]:
        ...

    @abstractmethod
    def get_race(self, race_id: str) -> Race:
        ...

    @abstractmethod
    def races_with_qualifying_between(
        self,
        start: datetime,
        end: datetime,
        status: RaceStatus = RaceStatus.UPCOMING,
    ) -> List[Race]:
        ...

    @abstractmethod
    def update_race_status(self, race_id: str, status: RaceStatus) -> None:
        ...

    @abstractmethod
    def completed_race_ids(self) -> Set[str]:
        ...

    # Admin

    @abstractmethod
    def get_admin_override(self) -> AdminOverride:
        ...

    @abstractmethod
    def set_admin_override(self, value: AdminOverride) -> None:
        ...
