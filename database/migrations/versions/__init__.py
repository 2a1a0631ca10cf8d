"""Пакет для версий миграций"""

from database.migrations.versions.v001_initial_schema import InitialSchema
from database.migrations.versions.v002_add_overlap_guard import AddOverlapGuard
from database.migrations.versions.v003_add_status_history import AddStatusHistory
from database.migrations.versions.v004_add_slot_holds import AddSlotHolds

ALL_MIGRATIONS = [InitialSchema, AddOverlapGuard, AddStatusHistory, AddSlotHolds]

__all__ = [
    "InitialSchema",
    "AddOverlapGuard",
    "AddStatusHistory",
    "AddSlotHolds",
    "ALL_MIGRATIONS",
]
