"""
Storage backends for the economy engine.

- base.py: EconomyStore interface, TeamUpdate / Increment, batching helpers
- memory.py: InMemoryStore
- django_store.py: DjangoStore (import directly; needs configured settings)
"""

from .base import (
    BatchLimitExceeded,
    EconomyStore,
    Increment,
    RecordNotFound,
    StoreError,
    TeamUpdate,
    batched,
)
from .memory import InMemoryStore

__all__ = [
    'BatchLimitExceeded',
    'EconomyStore',
    'Increment',
    'RecordNotFound',
    'StoreError',
    'TeamUpdate',
    'batched',
    'InMemoryStore',
]
