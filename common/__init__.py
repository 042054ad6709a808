"""
Shared plumbing for the intake decision engine.

Settings, structured logging, and the in-memory repository that the rule
store, workflow store and audit log read from and write to.
"""

from .config import Settings, settings
from .logging_config import setup_logging
from .storage import Collection, InMemoryStorage, default_id_factory, utc_now

__all__ = [
    "Settings",
    "settings",
    "setup_logging",
    "Collection",
    "InMemoryStorage",
    "default_id_factory",
    "utc_now",
]
