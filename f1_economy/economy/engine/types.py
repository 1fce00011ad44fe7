"""
Plain data types shared by the pricing, ledger and lock engine.

These are storage-agnostic: the Django store converts ORM rows into these
dataclasses and back, the in-memory store keeps them as-is.

Types:
- Asset: a driver or constructor with a price and points history
- Holding: one asset owned by a fantasy team under a contract
- FantasyTeam: roster, budget accounting and lock state
- Race / RaceSchedule: one race weekend and its session timestamps
- LockoutInfo: output of the lockout resolver
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class AssetKind(str, Enum):
    DRIVER = 'driver'
    CONSTRUCTOR = 'constructor'


class LockDeadline(str, Enum):
    """When a league freezes rosters on race weekend."""
    QUALIFYING = 'qualifying'
    RACE = 'race'


class RaceStatus(str, Enum):
    UPCOMING = 'upcoming'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class AdminOverride(str, Enum):
    NONE = 'none'
    LOCKED = 'locked'
    UNLOCKED = 'unlocked'


@dataclass(frozen=True)
class PointsEntry:
    """Fantasy points for one event, tagged with its round for ordering."""
    points: float
    round: int
    is_sprint: bool = False
    race_id: Optional[str] = None


@dataclass(frozen=True)
class EventScore:
    """Points an asset scored at a completed race weekend."""
    points: float
    sprint_points: float = 0

    @property
    def total(self) -> float:
        return self.points + self.sprint_points


@dataclass
class Asset:
    id: str
    name: str
    kind: AssetKind
    current_price: int
    previous_price: int = 0
    season_points: float = 0
    prior_season_points: float = 0
    # Most recent first
    history: List[PointsEntry] = field(default_factory=list)
    tier: str = 'C'

    @property
    def price_change(self) -> int:
        return self.current_price - self.previous_price if self.previous_price else 0


@dataclass
class Holding:
    asset_id: str
    kind: AssetKind
    purchase_price: int
    current_price: int
    points_scored: float = 0
    races_held: int = 0
    contract_length: int = 5
    acquired_round: int = 0

    @property
    def races_remaining(self) -> int:
        return max(0, self.contract_length - self.races_held)

    @property
    def contract_fulfilled(self) -> bool:
        return self.races_held >= self.contract_length


@dataclass
class LockStatus:
    is_locked: bool = False
    can_modify: bool = True
    lock_reason: Optional[str] = None
    next_unlock_time: Optional[datetime] = None
    is_season_locked: bool = False
    season_lock_races_remaining: int = 0


@dataclass
class FantasyTeam:
    """
    A user's fantasy team.

    Budget accounting identity, maintained by the ledger:
        budget == starting_budget - total_spent + realized_adjustment

    realized_adjustment collects everything that is not a purchase price:
    sale gains and losses, commissions, early-termination fees and early
    unlock fees. A team that never sold anything has realized_adjustment 0.
    """
    id: str
    owner_id: str
    name: str
    budget: int
    league_id: Optional[str] = None
    drivers: List[Holding] = field(default_factory=list)
    constructor: Optional[Holding] = None
    total_spent: int = 0
    realized_adjustment: int = 0
    total_points: float = 0
    banked_points: float = 0
    star_asset_id: Optional[str] = None
    lock: LockStatus = field(default_factory=LockStatus)
    # Last race whose completion was applied to this team
    settled_race_id: Optional[str] = None
    # Asset id -> completed race count from which it can be bought again
    asset_lockouts: Dict[str, int] = field(default_factory=dict)

    @property
    def holdings(self) -> List[Holding]:
        if self.constructor is None:
            return list(self.drivers)
        return list(self.drivers) + [self.constructor]

    def find_holding(self, asset_id: str) -> Optional[Holding]:
        for holding in self.holdings:
            if holding.asset_id == asset_id:
                return holding
        return None

    def remove_holding(self, asset_id: str) -> Holding:
        holding = self.find_holding(asset_id)
        if holding is None:
            raise KeyError(asset_id)
        if holding is self.constructor:
            self.constructor = None
        else:
            self.drivers.remove(holding)
        return holding

    @property
    def team_value(self) -> int:
        return sum(holding.current_price for holding in self.holdings)

    def copy(self) -> 'FantasyTeam':
        return copy.deepcopy(self)


@dataclass
class RaceSchedule:
    """UTC session start times for a race weekend."""
    qualifying: datetime
    race: datetime
    fp1: Optional[datetime] = None
    fp2: Optional[datetime] = None
    fp3: Optional[datetime] = None
    sprint_qualifying: Optional[datetime] = None
    sprint: Optional[datetime] = None


@dataclass
class Race:
    id: str
    round: int
    name: str
    schedule: RaceSchedule
    has_sprint: bool = False
    status: RaceStatus = RaceStatus.UPCOMING

    def __str__(self):
        return f"{self.name} (Round {self.round})"


@dataclass(frozen=True)
class LockoutInfo:
    is_locked: bool
    captain_locked: bool
    lock_reason: Optional[str] = None
    lock_time: Optional[datetime] = None
    race_start_time: Optional[datetime] = None
    next_race: Optional[Race] = None

    def to_dict(self) -> dict:
        return {
            'is_locked': self.is_locked,
            'captain_locked': self.captain_locked,
            'lock_reason': self.lock_reason,
            'lock_time': self.lock_time.isoformat() if self.lock_time else None,
            'race_start_time': self.race_start_time.isoformat() if self.race_start_time else None,
            'next_race': {
                'id': self.next_race.id,
                'round': self.next_race.round,
                'name': self.next_race.name,
            } if self.next_race else None,
        }
