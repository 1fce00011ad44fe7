"""
Budget ledger: team construction, trades, star picks and season locks.

Every mutation follows the same path:

1. Take the per-team lock (rapid repeated requests run one after another)
2. Load a fresh copy of the team through the store's locked_team(), which
   also holds off race settlement until the change is saved
3. Check the team is editable (own lock flags + optional lockout provider)
4. Apply the change to the copy
5. Re-validate structural invariants
6. Save

A failure at any step raises a LedgerError subclass carrying a
machine-readable ``reason`` and leaves the stored team untouched.

Accounting identity kept on every team:
    budget == starting_budget - total_spent + realized_adjustment

Usage:
    from economy.engine.ledger import BudgetLedger
    from economy.storage.memory import InMemoryStore

    ledger = BudgetLedger(InMemoryStore(assets=assets))
    team = ledger.create_team('user-1', 'Box Box Box')
    ledger.purchase(team.id, 'VER')
    receipt = ledger.sell(team.id, 'VER')
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set
from weakref import WeakValueDictionary

from economy.storage.base import EconomyStore, Increment, TeamUpdate
from . import pricing
from .config import DEFAULT_CONFIG, EconomyConfig
from .lockout import resolve_lockout
from .types import Asset, AssetKind, FantasyTeam, Holding, LockoutInfo


logger = logging.getLogger(__name__)

LockoutProvider = Callable[[], LockoutInfo]

SEASON_LOCK_REASON = "Season lock active"


class LedgerErrorReason(str, Enum):
    TEAM_LOCKED = 'team_locked'
    INSUFFICIENT_BUDGET = 'insufficient_budget'
    SLOT_FILLED = 'slot_filled'
    DUPLICATE_ASSET = 'duplicate_asset'
    NOT_HELD = 'not_held'
    KIND_MISMATCH = 'kind_mismatch'
    INELIGIBLE_STAR = 'ineligible_star'
    INVALID_CONTRACT = 'invalid_contract'
    ASSET_LOCKED_OUT = 'asset_locked_out'
    DUPLICATE_TEAM = 'duplicate_team'
    NOT_SEASON_LOCKED = 'not_season_locked'
    ALREADY_SEASON_LOCKED = 'already_season_locked'
    INVALID_SEASON_LOCK = 'invalid_season_lock'
    TEAM_INCOMPLETE = 'team_incomplete'
    INVALID_TEAM = 'invalid_team'


class LedgerError(Exception):
    """Base class for rejected ledger operations."""
    reason = None

    def __init__(self, message: str, reason: Optional[LedgerErrorReason] = None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason

    @property
    def message(self) -> str:
        return str(self)


class TeamLockedError(LedgerError):
    reason = LedgerErrorReason.TEAM_LOCKED


class InsufficientBudgetError(LedgerError):
    reason = LedgerErrorReason.INSUFFICIENT_BUDGET


class SlotFilledError(LedgerError):
    reason = LedgerErrorReason.SLOT_FILLED


class DuplicateAssetError(LedgerError):
    reason = LedgerErrorReason.DUPLICATE_ASSET


class AssetNotHeldError(LedgerError):
    reason = LedgerErrorReason.NOT_HELD


class AssetKindMismatchError(LedgerError):
    reason = LedgerErrorReason.KIND_MISMATCH


class IneligibleStarError(LedgerError):
    reason = LedgerErrorReason.INELIGIBLE_STAR


class InvalidContractError(LedgerError):
    reason = LedgerErrorReason.INVALID_CONTRACT


class AssetLockedOutError(LedgerError):
    reason = LedgerErrorReason.ASSET_LOCKED_OUT


class DuplicateTeamError(LedgerError):
    reason = LedgerErrorReason.DUPLICATE_TEAM


class SeasonLockError(LedgerError):
    """Season lock precondition failed; ``reason`` says which."""
    pass


class TeamValidationError(LedgerError):
    reason = LedgerErrorReason.INVALID_TEAM

    def __init__(self, issues: List['ValidationIssue']):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))


# Validation

ISSUE_BUDGET = 'budget'
ISSUE_ROSTER_SIZE = 'roster_size'
ISSUE_MISSING_CONSTRUCTOR = 'missing_constructor'
ISSUE_DUPLICATE_ASSET = 'duplicate_asset'
ISSUE_STAR = 'star'
ISSUE_CONTRACT = 'contract'


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str


@dataclass
class TeamValidation:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def codes(self) -> List[str]:
        return [issue.code for issue in self.issues]


@dataclass(frozen=True)
class SaleReceipt:
    asset_id: str
    purchase_price: int
    sale_value: int
    termination_fee: int
    net_proceeds: int
    points_banked: float


@dataclass(frozen=True)
class SwapReceipt:
    sale: SaleReceipt
    holding: Holding


def star_eligible_ids(assets: Iterable[Asset], pool_size: int) -> Set[str]:
    """Ids of the ``pool_size`` lowest season-points assets, ties broken by id."""
    ranked = sorted(assets, key=lambda asset: (asset.season_points, asset.id))
    return {asset.id for asset in ranked[:pool_size]}


def apply_sale(
    team: FantasyTeam,
    asset_id: str,
    config: EconomyConfig = DEFAULT_CONFIG,
    bank_points: bool = True,
    charge_fee: bool = True,
) -> SaleReceipt:
    """
    Remove a holding from ``team`` and credit the proceeds.

    Proceeds are the commission-reduced sale value minus the early
    termination fee (when charge_fee and the contract has races left),
    floored at zero. Mutates ``team`` in place.
    """
    holding = team.find_holding(asset_id)
    if holding is None:
        raise AssetNotHeldError(f"{asset_id} is not on the team")

    gross = pricing.sale_value(holding.current_price, config)
    fee = 0
    if charge_fee and not holding.contract_fulfilled:
        fee = pricing.early_termination_fee(
            holding.purchase_price,
            holding.contract_length,
            holding.races_held,
            config,
        )
    net = max(0, gross - fee)

    team.remove_holding(asset_id)
    team.budget += net
    team.total_spent -= holding.purchase_price
    team.realized_adjustment += net - holding.purchase_price

    banked = holding.points_scored if bank_points else 0
    team.banked_points += banked
    if team.star_asset_id == asset_id:
        team.star_asset_id = None

    return SaleReceipt(
        asset_id=asset_id,
        purchase_price=holding.purchase_price,
        sale_value=gross,
        termination_fee=fee,
        net_proceeds=net,
        points_banked=banked,
    )


def is_locked_out(team: FantasyTeam, asset_id: str, completed_races: int) -> bool:
    """True while an asset released on an expired contract may not be bought back."""
    expires_at = team.asset_lockouts.get(asset_id)
    return expires_at is not None and completed_races < expires_at


def release_expired_contracts(
    team: FantasyTeam,
    completed_races: int,
    config: EconomyConfig = DEFAULT_CONFIG,
) -> List[SaleReceipt]:
    """
    Sell every holding whose contract has run its course.

    Sold at sale value without a termination fee, points banked. Each
    released asset is locked out for contract_lockout_races races; lockouts
    that have run out are dropped. Mutates ``team`` in place.
    """
    receipts = []
    for holding in [h for h in team.holdings if h.contract_fulfilled]:
        receipts.append(apply_sale(team, holding.asset_id, config, bank_points=True, charge_fee=False))
        team.asset_lockouts[holding.asset_id] = completed_races + config.contract_lockout_races

    team.asset_lockouts = {
        asset_id: expires_at
        for asset_id, expires_at in team.asset_lockouts.items()
        if completed_races < expires_at
    }
    return receipts


def lockout_provider_for(
    store: EconomyStore,
    clock: Optional[Callable[[], datetime]] = None,
) -> LockoutProvider:
    """Build a provider that resolves the lockout from live store state."""
    clock = clock or (lambda: datetime.now(timezone.utc))

    def provider() -> LockoutInfo:
        return resolve_lockout(
            store.list_races(),
            store.completed_race_ids(),
            clock(),
            store.get_admin_override(),
        )

    return provider


class BudgetLedger:

    def __init__(
        self,
        store: EconomyStore,
        config: EconomyConfig = DEFAULT_CONFIG,
        lockout_provider: Optional[LockoutProvider] = None,
    ):
        self.store = store
        self.config = config
        self.lockout_provider = lockout_provider
        self._registry_lock = threading.Lock()
        # Entries live only while some caller holds the lock object
        self._team_locks = WeakValueDictionary()

    # Plumbing

    def _lock_for(self, team_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._team_locks.get(team_id)
            if lock is None:
                lock = self._team_locks[team_id] = threading.Lock()
            return lock

    def _ensure_editable(self, team: FantasyTeam):
        if team.lock.is_season_locked:
            raise TeamLockedError(team.lock.lock_reason or SEASON_LOCK_REASON)
        if team.lock.is_locked or not team.lock.can_modify:
            raise TeamLockedError(team.lock.lock_reason or "Team is locked")
        if self.lockout_provider is not None:
            info = self.lockout_provider()
            if info.is_locked:
                raise TeamLockedError(info.lock_reason or "Teams are locked")

    @contextmanager
    def _mutating(self, team_id: str, check_editable: bool = True):
        with self._lock_for(team_id), self.store.locked_team(team_id) as team:
            if check_editable:
                self._ensure_editable(team)
            yield team
            self._check_invariants(team)

    def _check_invariants(self, team: FantasyTeam):
        validation = self.validate_team(team, require_complete=False)
        if not validation.is_valid:
            logger.error(f"Team {team.id} failed validation: {validation.codes}")
            raise TeamValidationError(validation.issues)

    def _current_round(self) -> int:
        return len(self.store.completed_race_ids())

    # Validation

    def validate_team(self, team: FantasyTeam, require_complete: bool = True) -> TeamValidation:
        """
        Check a team against the structural rules.

        With require_complete the team must also be "built": a full driver
        roster plus a constructor. Without it only rules that every
        intermediate state must satisfy are checked.
        """
        config = self.config
        issues = []

        if team.budget < 0:
            issues.append(ValidationIssue(ISSUE_BUDGET, f"Budget is negative ({team.budget})"))
        expected_budget = config.starting_budget - team.total_spent + team.realized_adjustment
        if team.budget != expected_budget:
            issues.append(ValidationIssue(
                ISSUE_BUDGET,
                f"Budget {team.budget} does not match ledger ({expected_budget})",
            ))

        driver_count = len(team.drivers)
        if driver_count > config.team_size:
            issues.append(ValidationIssue(
                ISSUE_ROSTER_SIZE,
                f"Too many drivers ({driver_count}/{config.team_size})",
            ))
        elif require_complete and driver_count < config.team_size:
            issues.append(ValidationIssue(
                ISSUE_ROSTER_SIZE,
                f"Need {config.team_size} drivers, have {driver_count}",
            ))

        if require_complete and team.constructor is None:
            issues.append(ValidationIssue(ISSUE_MISSING_CONSTRUCTOR, "No constructor selected"))

        seen = set()
        for holding in team.holdings:
            if holding.asset_id in seen:
                issues.append(ValidationIssue(
                    ISSUE_DUPLICATE_ASSET,
                    f"{holding.asset_id} is held more than once",
                ))
            seen.add(holding.asset_id)
            if holding.contract_length < 1:
                issues.append(ValidationIssue(
                    ISSUE_CONTRACT,
                    f"{holding.asset_id} has an invalid contract length",
                ))

        if any(h.kind != AssetKind.DRIVER for h in team.drivers):
            issues.append(ValidationIssue(ISSUE_ROSTER_SIZE, "Driver slot holds a non-driver"))
        if team.constructor is not None and team.constructor.kind != AssetKind.CONSTRUCTOR:
            issues.append(ValidationIssue(
                ISSUE_MISSING_CONSTRUCTOR,
                "Constructor slot holds a non-constructor",
            ))

        if team.star_asset_id is not None and team.star_asset_id not in seen:
            issues.append(ValidationIssue(ISSUE_STAR, "Star asset is not on the team"))

        return TeamValidation(issues)

    def is_built(self, team: FantasyTeam) -> bool:
        return self.validate_team(team).is_valid

    # Team lifecycle

    def create_team(self, owner_id: str, name: str, league_id: Optional[str] = None) -> FantasyTeam:
        with self._registry_lock:
            if self.store.find_team_for_owner(owner_id, league_id) is not None:
                raise DuplicateTeamError(
                    f"Owner {owner_id} already has a team in league {league_id or '(none)'}"
                )
            team = FantasyTeam(
                id=uuid.uuid4().hex,
                owner_id=owner_id,
                name=name,
                league_id=league_id,
                budget=self.config.starting_budget,
            )
            self.store.save_team(team)

        logger.info(f"Created team {team.id} for owner {owner_id}")
        return team

    # Trading

    def _buy(self, team: FantasyTeam, asset: Asset, contract_length: Optional[int]) -> Holding:
        if contract_length is None:
            contract_length = self.config.default_contract_length
        if contract_length < 1:
            raise InvalidContractError(f"Contract length must be at least 1 race, got {contract_length}")

        if team.find_holding(asset.id) is not None:
            raise DuplicateAssetError(f"{asset.name} is already on the team")

        current_round = self._current_round()
        if is_locked_out(team, asset.id, current_round):
            raise AssetLockedOutError(
                f"{asset.name} left on an expired contract and cannot be bought again "
                f"until {team.asset_lockouts[asset.id] - current_round} more race(s) complete"
            )

        if asset.kind == AssetKind.CONSTRUCTOR:
            if team.constructor is not None:
                raise SlotFilledError("Constructor slot is already filled")
        elif len(team.drivers) >= self.config.team_size:
            raise SlotFilledError(f"All {self.config.team_size} driver slots are filled")

        if asset.current_price > team.budget:
            raise InsufficientBudgetError(
                f"{asset.name} costs ${asset.current_price}, budget is ${team.budget}"
            )

        holding = Holding(
            asset_id=asset.id,
            kind=asset.kind,
            purchase_price=asset.current_price,
            current_price=asset.current_price,
            contract_length=contract_length,
            acquired_round=current_round,
        )
        if asset.kind == AssetKind.CONSTRUCTOR:
            team.constructor = holding
        else:
            team.drivers.append(holding)

        team.budget -= asset.current_price
        team.total_spent += asset.current_price
        return holding

    def _sell(self, team: FantasyTeam, asset_id: str, bank_points: bool = True) -> SaleReceipt:
        return apply_sale(team, asset_id, self.config, bank_points=bank_points)

    def purchase(self, team_id: str, asset_id: str, contract_length: Optional[int] = None) -> Holding:
        """Buy an asset at its current price."""
        with self._mutating(team_id) as team:
            asset = self.store.get_asset(asset_id)
            holding = self._buy(team, asset, contract_length)

        logger.info(f"Team {team_id} bought {asset_id} for ${holding.purchase_price}")
        return holding

    def sell(self, team_id: str, asset_id: str, bank_points: bool = True) -> SaleReceipt:
        """
        Sell a holding.

        Proceeds are the commission-reduced sale value minus any early
        termination fee, never below zero.
        """
        with self._mutating(team_id) as team:
            receipt = self._sell(team, asset_id, bank_points=bank_points)

        logger.info(
            f"Team {team_id} sold {asset_id}: sale ${receipt.sale_value}, "
            f"fee ${receipt.termination_fee}, net ${receipt.net_proceeds}"
        )
        return receipt

    def swap(self, team_id: str, old_asset_id: str, new_asset_id: str) -> SwapReceipt:
        """
        Replace one holding with another asset of the same kind.

        Sale proceeds count toward affordability; if the purchase fails the
        sale is not applied either.
        """
        with self._mutating(team_id) as team:
            old = team.find_holding(old_asset_id)
            if old is None:
                raise AssetNotHeldError(f"{old_asset_id} is not on the team")
            new_asset = self.store.get_asset(new_asset_id)
            if new_asset.kind != old.kind:
                raise AssetKindMismatchError(
                    f"Cannot swap a {old.kind.value} for a {new_asset.kind.value}"
                )
            if team.find_holding(new_asset_id) is not None:
                raise DuplicateAssetError(f"{new_asset.name} is already on the team")

            sale = self._sell(team, old_asset_id)
            holding = self._buy(team, new_asset, None)

        logger.info(f"Team {team_id} swapped {old_asset_id} for {new_asset_id}")
        return SwapReceipt(sale=sale, holding=holding)

    # Star

    def assign_star(self, team_id: str, asset_id: str) -> FantasyTeam:
        """
        Make ``asset_id`` the team's star, replacing any previous star.

        Only the star_pool_size lowest-scoring assets by season points,
        drivers and constructors ranked together, qualify. The star can change until the captain lock at race
        start, even after rosters lock.
        """
        with self._mutating(team_id, check_editable=False) as team:
            self._ensure_captain_editable()
            holding = team.find_holding(asset_id)
            if holding is None:
                raise AssetNotHeldError(f"{asset_id} is not on the team")
            eligible = star_eligible_ids(self.store.list_assets(), self.config.star_pool_size)
            if asset_id not in eligible:
                raise IneligibleStarError(f"{asset_id} is not eligible to be a star")
            team.star_asset_id = asset_id
        return team

    def clear_star(self, team_id: str) -> FantasyTeam:
        with self._mutating(team_id, check_editable=False) as team:
            self._ensure_captain_editable()
            team.star_asset_id = None
        return team

    def _ensure_captain_editable(self):
        if self.lockout_provider is not None and self.lockout_provider().captain_locked:
            raise TeamLockedError("Captain pick is locked")

    # Locks

    def lock_team(self, team_id: str, reason: str) -> bool:
        """Lock a team for edits. Returns False when it was already locked."""
        with self._lock_for(team_id):
            team = self.store.get_team(team_id)
            if team.lock.is_locked:
                return False
            self.store.commit_team_updates([TeamUpdate(team_id, {
                'is_locked': True,
                'can_modify': False,
                'lock_reason': reason,
            })])
        return True

    def unlock_team(self, team_id: str) -> bool:
        """Release a race lock. Season locks are only released by early_unlock or expiry."""
        with self._lock_for(team_id):
            team = self.store.get_team(team_id)
            if team.lock.is_season_locked:
                raise SeasonLockError(
                    "Team is season locked; use early unlock",
                    LedgerErrorReason.ALREADY_SEASON_LOCKED,
                )
            if not team.lock.is_locked:
                return False
            self.store.commit_team_updates([TeamUpdate(team_id, {
                'is_locked': False,
                'can_modify': True,
                'lock_reason': None,
                'next_unlock_time': None,
            })])
        return True

    def season_lock(self, team_id: str, races_remaining: Optional[int] = None) -> FantasyTeam:
        """Opt a built team into a multi-race hold."""
        with self._mutating(team_id) as team:
            if not self.is_built(team):
                raise SeasonLockError(
                    "Only a complete team can be season locked",
                    LedgerErrorReason.TEAM_INCOMPLETE,
                )
            if races_remaining is None:
                races_remaining = self.config.season_lock_races
            if races_remaining < 1:
                raise SeasonLockError(
                    f"A season lock must cover at least 1 race, got {races_remaining}",
                    LedgerErrorReason.INVALID_SEASON_LOCK,
                )
            team.lock.is_season_locked = True
            team.lock.season_lock_races_remaining = races_remaining
            team.lock.is_locked = True
            team.lock.can_modify = False
            team.lock.lock_reason = SEASON_LOCK_REASON

        logger.info(f"Team {team_id} season locked for {team.lock.season_lock_races_remaining} races")
        return team

    def early_unlock(self, team_id: str) -> int:
        """
        Leave a season lock early for early_unlock_fee.

        The fee is applied as a field-level increment. If a race lock window
        is currently open the team stays race-locked.

        Returns:
            The team's budget after the fee
        """
        fee = self.config.early_unlock_fee
        with self._lock_for(team_id):
            team = self.store.get_team(team_id)
            if not team.lock.is_season_locked:
                raise SeasonLockError(
                    "Team is not season locked",
                    LedgerErrorReason.NOT_SEASON_LOCKED,
                )
            if team.budget < fee:
                raise InsufficientBudgetError(
                    f"Early unlock costs ${fee}, budget is ${team.budget}"
                )

            race_lock = self.lockout_provider() if self.lockout_provider else None
            still_locked = bool(race_lock and race_lock.is_locked)

            self.store.commit_team_updates([TeamUpdate(team_id, {
                'budget': Increment(-fee),
                'realized_adjustment': Increment(-fee),
                'is_season_locked': False,
                'season_lock_races_remaining': 0,
                'is_locked': still_locked,
                'can_modify': not still_locked,
                'lock_reason': race_lock.lock_reason if still_locked else None,
            })])

        logger.info(f"Team {team_id} paid ${fee} to leave its season lock")
        return team.budget - fee
