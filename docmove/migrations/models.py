"""
Changelog data models and status tracking.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, NamedTuple, Optional

CHANGELOG_KEY_PREFIX = "changelog::"


class Status(str, Enum):
    """Execution status of a changelog."""

    TO_BE_EXECUTED = "to_be_executed"
    EXECUTED = "executed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ChangeType(str, Enum):
    """Kind of payload a changelog applies."""

    DOCUMENT_IMPORT = "document_import"
    QUERY_SCRIPT = "query_script"
    INDEX_DEFINITION = "index_definition"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


@dataclass
class ChangeLog:
    """
    One versioned unit of migration work.

    Attributes:
        version: Version string, compared lexically.
        description: Human-readable description of the change.
        type: Payload kind, selects the applier handler.
        script: Script reference relative to the migration root.
        checksum: SHA256 of the source content.
        status: Current execution status.
        order: Application sequence number, set only once executed.
        timestamp: When execution was last attempted.
        runner: Who attempted the execution.
        duration: Duration of the last attempt in milliseconds.
        cas: Concurrency token of the persisted record, None until first saved.
        dirty: Persisted record is out of date and must be rewritten.
    """

    version: str
    description: str
    type: ChangeType
    script: str = ""
    checksum: str = ""
    status: Status = Status.TO_BE_EXECUTED
    order: Optional[int] = None
    timestamp: Optional[datetime] = None
    runner: Optional[str] = None
    duration: Optional[int] = None
    cas: Optional[int] = None
    dirty: bool = field(default=False, compare=False, repr=False)

    @property
    def key(self) -> str:
        """Document id under which this changelog is persisted."""
        return f"{CHANGELOG_KEY_PREFIX}{self.version}"

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        return {
            "_id": self.key,
            "version": self.version,
            "description": self.description,
            "type": self.type.value,
            "script": self.script,
            "checksum": self.checksum,
            "status": self.status.value,
            "order": self.order,
            "timestamp": self.timestamp,
            "runner": self.runner,
            "duration": self.duration,
            "cas": self.cas,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeLog":
        """Create from MongoDB document."""
        return cls(
            version=data["version"],
            description=data["description"],
            type=ChangeType(data["type"]),
            script=data.get("script", ""),
            checksum=data.get("checksum", ""),
            status=Status(data["status"]),
            order=data.get("order"),
            timestamp=data.get("timestamp"),
            runner=data.get("runner"),
            duration=data.get("duration"),
            cas=data.get("cas"),
        )


class Watermark(NamedTuple):
    """Version and order of the highest-version executed changelog."""

    version: str = ""
    order: int = 0

    @classmethod
    def of(cls, changelogs: Iterable[ChangeLog]) -> "Watermark":
        executed = [c for c in changelogs if c.status == Status.EXECUTED]
        if not executed:
            return cls()
        last = max(executed, key=lambda c: c.version)
        return cls(last.version, last.order or 0)

    def advance(self, changelog: ChangeLog) -> "Watermark":
        return Watermark(changelog.version, changelog.order)


@dataclass
class LockRecord:
    """
    Migration lock held on a target database.

    Attributes:
        target: Name of the locked target, used as the document id.
        holder: Identifier of the process holding the lock.
        acquired_at: When the lock was acquired.
        expires_at: When the lock may be taken over, None for no lease.
    """

    target: str
    holder: str
    acquired_at: datetime
    expires_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = {
            "_id": self.target,
            "holder": self.holder,
            "acquired_at": self.acquired_at,
        }
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LockRecord":
        """Create from MongoDB document."""
        return cls(
            target=data["_id"],
            holder=data["holder"],
            acquired_at=data["acquired_at"],
            expires_at=data.get("expires_at"),
        )
