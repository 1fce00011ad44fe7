"""
Lockout resolver.

Pure function deciding whether rosters are editable right now. It is
evaluated on every read and never cached, so a schedule edit or an admin
override is visible immediately.

Rules:
- The relevant race is the lowest round that has not completed
  (cancelled races are skipped)
- Rosters lock at the first competitive session of that weekend:
  sprint qualifying on sprint weekends, otherwise FP3, otherwise qualifying
- The captain (star) pick locks at race start
- With every race completed the season is over and everything is locked
- An admin override forces the lock on or off
"""

from datetime import datetime
from typing import Collection, Iterable, Optional, Union

from .types import AdminOverride, LockoutInfo, Race, RaceStatus


SEASON_COMPLETE_REASON = "Season complete"


def next_incomplete_race(races: Iterable[Race], completed_race_ids: Collection[str]) -> Optional[Race]:
    """First race by ascending round whose id is not in completed_race_ids."""
    for race in sorted(races, key=lambda r: r.round):
        if race.status == RaceStatus.CANCELLED:
            continue
        if race.id not in completed_race_ids:
            return race
    return None


def lock_time_for(race: Race) -> datetime:
    """When rosters lock for ``race``."""
    schedule = race.schedule
    if race.has_sprint and schedule.sprint_qualifying is not None:
        return schedule.sprint_qualifying
    if schedule.fp3 is not None:
        return schedule.fp3
    return schedule.qualifying


def _coerce_override(value: Union[AdminOverride, str, None]) -> AdminOverride:
    if value is None:
        return AdminOverride.NONE
    return AdminOverride(value)


def resolve_lockout(
    races: Iterable[Race],
    completed_race_ids: Collection[str],
    now: datetime,
    admin_override: Union[AdminOverride, str, None] = None,
) -> LockoutInfo:
    """
    Resolve the current lock state.

    Args:
        races: Full season calendar (any order)
        completed_race_ids: Ids of races whose results are in
        now: Current time, timezone-aware like the schedule
        admin_override: 'none', 'locked' or 'unlocked'

    Returns:
        LockoutInfo describing roster and captain locks
    """
    override = _coerce_override(admin_override)
    race = next_incomplete_race(races, completed_race_ids)

    if race is None:
        if override == AdminOverride.UNLOCKED:
            return LockoutInfo(is_locked=False, captain_locked=False)
        return LockoutInfo(
            is_locked=True,
            captain_locked=True,
            lock_reason=SEASON_COMPLETE_REASON,
        )

    lock_time = lock_time_for(race)
    race_start = race.schedule.race
    is_locked = now >= lock_time
    captain_locked = now >= race_start
    lock_reason = f"Teams locked for {race.name}" if is_locked else None

    if override == AdminOverride.LOCKED:
        is_locked = True
        lock_reason = f"Teams locked for {race.name} (admin override)"
    elif override == AdminOverride.UNLOCKED:
        is_locked = False
        captain_locked = False
        lock_reason = None

    return LockoutInfo(
        is_locked=is_locked,
        captain_locked=captain_locked,
        lock_reason=lock_reason,
        lock_time=lock_time,
        race_start_time=race_start,
        next_race=race,
    )
