FANTASY_ECONOMY_RULES = {
    "season": {
        "races_per_season": 24,
        "sprints_per_season": 4,
    },
    "pricing": {
        "dollars_per_point": 24,    # $ per average fantasy point per race
        "rolling_window": 5,        # most recent events used for the average
        "sprint_weight": 0.75,      # sprint weekends count for less in the average
        "min_price": 5,
        "max_price": 700,
        "max_change_per_race": 60,  # price can move at most +/- $60 per event
        "tiers": {
            "A": 240,               # strictly above this is tier A
            "B": 120,               # strictly above this is tier B, everything else C
        },
    },
    "team": {
        "starting_budget": 1000,
        "team_size": 5,             # drivers per team
        "constructors_per_team": 1,
    },
    "trading": {
        "sale_commission_rate": 0.05,
        "default_contract_length": 5,     # races
        "early_termination_rate": 0.05,   # of purchase price, per race remaining
        "contract_lockout_races": 1,      # races an expired asset cannot be re-bought by the same team
    },
    "star": {
        "bonus": 0.5,               # star holding scores 1.5x
        "eligible_pool_size": 10,   # bottom-N assets by season points
    },
    "locks": {
        "early_unlock_fee": 50,
        "season_lock_races": 24,
        "batch_op_limit": 499,      # max writes per commit
        "interval_minutes": 15,
        "horizon_minutes": 60,      # lock teams whose qualifying starts within this window
        "default_deadline": "qualifying",
    },
    "scoring": {
        "race": {1: 25, 2: 18, 3: 15, 4: 12, 5: 10, 6: 8, 7: 6, 8: 4, 9: 2, 10: 1},
        "sprint": {1: 8, 2: 7, 3: 6, 4: 5, 5: 4, 6: 3, 7: 2, 8: 1},
    },
}
