"""
Fantasy economy engine.

Framework-free core used by the Django app and the Prefect flows:
- config.py: EconomyConfig and defaults
- types.py: dataclasses for assets, teams, races and lock state
- pricing.py: price model
- lockout.py: lock state resolver
- ledger.py: budget ledger and team validation
"""
