"""
MongoDB changelog migration engine.

This module applies versioned changelogs to a database exactly once, records
their execution state in the database and serializes concurrent runners
with a lock document.
"""

from docmove.migrations.applier import Applier, ChangeApplier
from docmove.migrations.lock import ChangeLockService, LockLease
from docmove.migrations.models import ChangeLog, ChangeType, Status, Watermark
from docmove.migrations.runner import MigrationRunner
from docmove.migrations.source import ChangeSource, FileChangeSource
from docmove.migrations.store import ChangeLogStore

__all__ = [
    "Applier",
    "ChangeApplier",
    "ChangeLockService",
    "ChangeLog",
    "ChangeLogStore",
    "ChangeSource",
    "ChangeType",
    "FileChangeSource",
    "LockLease",
    "MigrationRunner",
    "Status",
    "Watermark",
]
