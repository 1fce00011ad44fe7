"""
Pricing engine for fantasy assets.

Pure functions that turn fantasy points into prices:

1. **Initial price**: prior-season points per race x dollars per point
2. **Rolling average**: weighted mean of the most recent events
   (sprint weekends weighted down)
3. **Target price**: rolling average x dollars per point
4. **Capped change**: price moves toward the target by at most
   MAX_CHANGE_PER_RACE per event
5. **Tier**: A / B / C bracket on the resulting price

Every price produced here is an integer in [min_price, max_price].

Usage:
    from economy.engine import pricing

    pricing.initial_price(480)                # 480
    pricing.rolling_average([10, 15, 8, 12, 5])  # 10.0
    pricing.reprice(asset.history, asset.current_price)
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, List, Optional, Sequence

from .config import DEFAULT_CONFIG, EconomyConfig
from .types import PointsEntry


TIER_A = 'A'
TIER_B = 'B'
TIER_C = 'C'


class PointsOrderError(ValueError):
    """Raised when points history is not ordered most-recent-first."""
    pass


@dataclass(frozen=True)
class PriceUpdate:
    old_price: int
    new_price: int
    change: int
    tier: str
    rolling_average: float


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def clamp_price(price: float, config: EconomyConfig = DEFAULT_CONFIG) -> int:
    return int(max(config.min_price, min(config.max_price, price)))


def initial_price(prior_season_points: float, config: EconomyConfig = DEFAULT_CONFIG) -> int:
    """
    Starting price from last season's total points.

    dollars_per_point x (points / races_per_season), rounded to the nearest
    dollar and clamped into the price range.
    """
    per_race = max(0, prior_season_points) / config.races_per_season
    return clamp_price(_round_half_up(config.dollars_per_point * per_race), config)


def recent_first(entries: Iterable[PointsEntry]) -> List[PointsEntry]:
    """Order a points history most-recent-first (highest round first)."""
    return sorted(entries, key=lambda entry: entry.round, reverse=True)


def rolling_average(
    recent_points: Sequence[float],
    sprint_flags: Optional[Sequence[bool]] = None,
    config: EconomyConfig = DEFAULT_CONFIG,
    *,
    rounds: Optional[Sequence[int]] = None,
) -> float:
    """
    Weighted average of the most recent events.

    Only the first rolling_window entries are used, so callers must pass
    points most-recent-first. When ``rounds`` is given it is checked to be
    strictly decreasing and PointsOrderError is raised otherwise.

    Args:
        recent_points: Fantasy points per event, most recent first
        sprint_flags: Parallel flags; True entries get sprint_weight
        rounds: Optional parallel round numbers used to verify ordering

    Returns:
        Weighted mean, 0 for an empty history
    """
    if rounds is not None:
        for newer, older in zip(rounds, rounds[1:]):
            if newer <= older:
                raise PointsOrderError(
                    f"Points must be ordered most-recent-first, got round {newer} before {older}"
                )

    window = list(recent_points[:config.rolling_window])
    if not window:
        return 0

    flags = list(sprint_flags or [])
    weighted_sum = 0.0
    total_weight = 0.0
    for index, points in enumerate(window):
        is_sprint = index < len(flags) and bool(flags[index])
        weight = config.sprint_weight if is_sprint else 1.0
        weighted_sum += points * weight
        total_weight += weight

    return weighted_sum / total_weight


def rolling_average_from_history(
    history: Sequence[PointsEntry],
    config: EconomyConfig = DEFAULT_CONFIG,
) -> float:
    """Rolling average of a PointsEntry history, verifying its ordering."""
    return rolling_average(
        [entry.points for entry in history],
        [entry.is_sprint for entry in history],
        config,
        rounds=[entry.round for entry in history],
    )


def price_from_rolling_average(avg: float, config: EconomyConfig = DEFAULT_CONFIG) -> int:
    return clamp_price(_round_half_up(avg * config.dollars_per_point), config)


def price_change(old: int, new: int, config: EconomyConfig = DEFAULT_CONFIG) -> int:
    """Signed change from old to new, capped at +/- max_change_per_race."""
    limit = config.max_change_per_race
    return max(-limit, min(limit, new - old))


def tier(price: int, config: EconomyConfig = DEFAULT_CONFIG) -> str:
    if price > config.a_tier_threshold:
        return TIER_A
    if price > config.b_tier_threshold:
        return TIER_B
    return TIER_C


def reprice(
    history: Sequence[PointsEntry],
    current_price: int,
    config: EconomyConfig = DEFAULT_CONFIG,
) -> PriceUpdate:
    """
    Recompute an asset's price after a completed event.

    The target comes from the rolling average of the (most-recent-first)
    history; the price then moves toward it by at most the per-race cap.
    """
    avg = rolling_average_from_history(history, config)
    target = price_from_rolling_average(avg, config)
    change = price_change(current_price, target, config)
    new_price = clamp_price(current_price + change, config)

    return PriceUpdate(
        old_price=current_price,
        new_price=new_price,
        change=new_price - current_price,
        tier=tier(new_price, config),
        rolling_average=avg,
    )


def race_points(position: Optional[int], config: EconomyConfig = DEFAULT_CONFIG) -> int:
    """Grand Prix points for a finishing position, 0 outside the points."""
    if not position or position < 1 or position > len(config.race_points_table):
        return 0
    return config.race_points_table[position - 1]


def sprint_points(position: Optional[int], config: EconomyConfig = DEFAULT_CONFIG) -> int:
    if not position or position < 1 or position > len(config.sprint_points_table):
        return 0
    return config.sprint_points_table[position - 1]


def sale_value(current_price: int, config: EconomyConfig = DEFAULT_CONFIG) -> int:
    """Proceeds of selling at current_price after commission, floored."""
    rate = Decimal(str(config.sale_commission_rate))
    return _floor(Decimal(current_price) * (Decimal(1) - rate))


def early_termination_fee(
    purchase_price: int,
    contract_length: int,
    races_held: int,
    config: EconomyConfig = DEFAULT_CONFIG,
) -> int:
    """Fee for leaving a contract early: a share of purchase price per race left."""
    races_remaining = max(0, contract_length - races_held)
    if races_remaining == 0:
        return 0
    rate = Decimal(str(config.early_termination_rate))
    return _floor(Decimal(purchase_price) * rate * races_remaining)
