"""
Django-side access to the economy configuration.

Reads settings.ECONOMY_OVERRIDES (a dict of EconomyConfig field names) on
top of the defaults in config/rules.py.

Usage:
    from economy.conf import get_economy_config
    config = get_economy_config()
"""

from django.conf import settings

from economy.engine.config import EconomyConfig


def get_economy_config() -> EconomyConfig:
    overrides = getattr(settings, 'ECONOMY_OVERRIDES', None) or {}
    return EconomyConfig.from_rules(**overrides)
