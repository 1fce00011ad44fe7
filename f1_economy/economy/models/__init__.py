"""
Economy models module.

Model organization:
- events.py: Race calendar (Season, Race, Session)
- fantasy.py: Economy data (Asset, AssetRaceScore, League, FantasyTeam, AssetHolding)
- pipeline.py: Lock engine infrastructure (AdminLockOverride, AutoLockRun)
"""

# Import event models
from .events import (
    Season,
    Race,
    Session,
)

# Import fantasy models
from .fantasy import (
    Asset,
    AssetRaceScore,
    League,
    FantasyTeam,
    AssetHolding,
)

# Import pipeline models
from .pipeline import (
    AdminLockOverride,
    AutoLockRun,
)

# Explicit exports for clarity
__all__ = [
    # Event models (events.py)
    'Season',
    'Race',
    'Session',
    # Fantasy models (fantasy.py)
    'Asset',
    'AssetRaceScore',
    'League',
    'FantasyTeam',
    'AssetHolding',
    # Pipeline models (pipeline.py)
    'AdminLockOverride',
    'AutoLockRun',
]
