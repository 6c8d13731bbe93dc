"""
Database module for the design draft pipeline.

This module provides database connectivity, models, and operations
for storing pipeline items, their action log and live settings.
"""

from db.database import get_engine, get_session, init_db
from db.models import Item, ItemStatus, LogEntry, LogOutcome, Setting
from db.operations import ItemRepository
from db.log_operations import ActionLogRepository
from db.settings_operations import SettingsRepository

__all__ = [
    "get_engine",
    "get_session",
    "init_db",
    "Item",
    "ItemStatus",
    "LogEntry",
    "LogOutcome",
    "Setting",
    "ItemRepository",
    "ActionLogRepository",
    "SettingsRepository",
]
