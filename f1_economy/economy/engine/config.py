"""
Economy configuration.

All tunable numbers for pricing, trading and locking live in one frozen
dataclass so the engine can run with or without Django. Defaults come from
config/rules.py; Django deployments layer settings.ECONOMY_OVERRIDES on top
(see economy.conf.get_economy_config).

Usage:
    from economy.engine.config import DEFAULT_CONFIG, EconomyConfig

    config = EconomyConfig.from_rules(max_change_per_race=40)
"""

from dataclasses import dataclass, fields, replace
from datetime import timedelta
from typing import Dict, Optional

from config.rules import FANTASY_ECONOMY_RULES


@dataclass(frozen=True)
class EconomyConfig:
    # Season
    races_per_season: int = 24
    sprints_per_season: int = 4

    # Pricing
    dollars_per_point: int = 24
    rolling_window: int = 5
    sprint_weight: float = 0.75
    min_price: int = 5
    max_price: int = 700
    max_change_per_race: int = 60
    a_tier_threshold: int = 240
    b_tier_threshold: int = 120

    # Team
    starting_budget: int = 1000
    team_size: int = 5
    constructors_per_team: int = 1

    # Trading
    sale_commission_rate: float = 0.05
    default_contract_length: int = 5
    early_termination_rate: float = 0.05
    contract_lockout_races: int = 1

    # Star
    star_bonus: float = 0.5
    star_pool_size: int = 10

    # Locks
    early_unlock_fee: int = 50
    season_lock_races: int = 24
    batch_op_limit: int = 499
    lock_interval_minutes: int = 15
    lock_horizon_minutes: int = 60
    default_lock_deadline: str = 'qualifying'

    # Scoring tables, index 0 is P1
    race_points_table: tuple = (25, 18, 15, 12, 10, 8, 6, 4, 2, 1)
    sprint_points_table: tuple = (8, 7, 6, 5, 4, 3, 2, 1)

    @property
    def lock_interval(self) -> timedelta:
        return timedelta(minutes=self.lock_interval_minutes)

    @property
    def lock_horizon(self) -> timedelta:
        return timedelta(minutes=self.lock_horizon_minutes)

    @classmethod
    def from_rules(cls, rules: Optional[Dict] = None, **overrides) -> 'EconomyConfig':
        """
        Build a config from a rules dict shaped like FANTASY_ECONOMY_RULES.

        Keyword overrides win over the rules dict. Unknown override names
        raise TypeError so typos in settings surface immediately.
        """
        rules = rules or FANTASY_ECONOMY_RULES
        pricing = rules['pricing']
        team = rules['team']
        trading = rules['trading']
        star = rules['star']
        locks = rules['locks']
        scoring = rules['scoring']

        config = cls(
            races_per_season=rules['season']['races_per_season'],
            sprints_per_season=rules['season']['sprints_per_season'],
            dollars_per_point=pricing['dollars_per_point'],
            rolling_window=pricing['rolling_window'],
            sprint_weight=pricing['sprint_weight'],
            min_price=pricing['min_price'],
            max_price=pricing['max_price'],
            max_change_per_race=pricing['max_change_per_race'],
            a_tier_threshold=pricing['tiers']['A'],
            b_tier_threshold=pricing['tiers']['B'],
            starting_budget=team['starting_budget'],
            team_size=team['team_size'],
            constructors_per_team=team['constructors_per_team'],
            sale_commission_rate=trading['sale_commission_rate'],
            default_contract_length=trading['default_contract_length'],
            early_termination_rate=trading['early_termination_rate'],
            contract_lockout_races=trading['contract_lockout_races'],
            star_bonus=star['bonus'],
            star_pool_size=star['eligible_pool_size'],
            early_unlock_fee=locks['early_unlock_fee'],
            season_lock_races=locks['season_lock_races'],
            batch_op_limit=locks['batch_op_limit'],
            lock_interval_minutes=locks['interval_minutes'],
            lock_horizon_minutes=locks['horizon_minutes'],
            default_lock_deadline=locks['default_deadline'],
            race_points_table=tuple(
                scoring['race'][position] for position in sorted(scoring['race'])
            ),
            sprint_points_table=tuple(
                scoring['sprint'][position] for position in sorted(scoring['sprint'])
            ),
        )

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown economy setting(s): {', '.join(sorted(unknown))}")

        return replace(config, **overrides) if overrides else config


DEFAULT_CONFIG = EconomyConfig.from_rules()
