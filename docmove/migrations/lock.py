"""
Distributed migration lock backed by a MongoDB collection.
"""

import os
import socket
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from docmove.core.config import settings
from docmove.core.exceptions import LockUnavailableError
from docmove.core.metrics import LOCK_ACQUISITIONS
from docmove.log.logging import logger
from docmove.migrations.models import LockRecord


def default_holder_id() -> str:
    """Identify this process as a lock holder."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class LockLease:
    """Proof that the migration lock on ``target`` is held."""

    target: str
    holder: str
    acquired_at: datetime


class ChangeLockService:
    """
    Mutual exclusion between migration runners.

    One lock document per target, created with ``insert_one``: the unique
    ``_id`` makes the database the arbiter when two runners race, the first
    insert wins. Without ``lease_seconds`` a lock left behind by a crashed
    runner stays until it is removed with ``force_release``.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        collection_name: Optional[str] = None,
        holder: Optional[str] = None,
        lease_seconds: Optional[int] = None,
    ):
        """
        Initialize the lock service.

        Args:
            db: MongoDB database holding the lock collection.
            collection_name: Lock collection, defaults to the configured one.
            holder: Identity written into acquired locks.
            lease_seconds: Lock expiry in seconds, None or 0 disables expiry.
        """
        self._collection = db[collection_name or settings.migrations_lock_collection]
        self._holder = holder or default_holder_id()
        self._lease_seconds = lease_seconds or None

    @property
    def holder(self) -> str:
        return self._holder

    async def initialize(self) -> None:
        """Create the TTL index that purges expired leases."""
        await self._collection.create_index("expires_at", expireAfterSeconds=0)

    async def acquire(self, target: str) -> bool:
        """
        Try once to acquire the lock on ``target``.

        Returns:
            True if this service now holds the lock, False if another holder does.
        """
        now = datetime.now(timezone.utc)
        expires_at = None
        if self._lease_seconds:
            expires_at = now + timedelta(seconds=self._lease_seconds)
        record = LockRecord(
            target=target, holder=self._holder, acquired_at=now, expires_at=expires_at
        )

        try:
            await self._collection.insert_one(record.to_dict())
        except DuplicateKeyError:
            if self._lease_seconds and await self._take_over_expired(record, now):
                return True
            LOCK_ACQUISITIONS.labels(result="contended").inc()
            existing = await self.get_lock(target)
            logger.warning(
                "Migration lock on '{target}' is held by {holder}",
                target=target,
                holder=existing.holder if existing else "unknown",
                event_type="migration_lock_contended",
            )
            return False

        LOCK_ACQUISITIONS.labels(result="acquired").inc()
        logger.info(
            "Migration lock on '{target}' acquired",
            target=target,
            locked_by=self._holder,
            event_type="migration_lock_acquired",
        )
        return True

    async def _take_over_expired(self, record: LockRecord, now: datetime) -> bool:
        result = await self._collection.replace_one(
            {"_id": record.target, "expires_at": {"$lt": now}},
            record.to_dict(),
        )
        if result.modified_count > 0:
            LOCK_ACQUISITIONS.labels(result="taken_over").inc()
            logger.info(
                "Migration lock on '{target}' acquired (replaced expired)",
                target=record.target,
                locked_by=self._holder,
                event_type="migration_lock_acquired",
            )
            return True
        return False

    async def release(self, target: str) -> None:
        """Release the lock on ``target`` if this service holds it."""
        result = await self._collection.delete_one({"_id": target, "holder": self._holder})
        if result.deleted_count:
            logger.info(
                "Migration lock on '{target}' released",
                target=target,
                locked_by=self._holder,
                event_type="migration_lock_released",
            )
        else:
            logger.debug(
                "No migration lock on '{target}' held by {holder}",
                target=target,
                holder=self._holder,
                event_type="migration_lock_not_held",
            )

    async def force_release(self, target: str) -> bool:
        """
        Remove the lock on ``target`` whoever holds it.

        Returns:
            True if a lock was removed.
        """
        result = await self._collection.delete_one({"_id": target})
        if result.deleted_count:
            logger.warning(
                "Migration lock on '{target}' forcibly released",
                target=target,
                event_type="migration_lock_forced",
            )
        return bool(result.deleted_count)

    async def get_lock(self, target: str) -> Optional[LockRecord]:
        """Get the current lock record on ``target``, if any."""
        doc = await self._collection.find_one({"_id": target})
        return LockRecord.from_dict(doc) if doc else None

    @asynccontextmanager
    async def hold(self, target: str) -> AsyncIterator[LockLease]:
        """
        Hold the lock on ``target`` for the duration of the block.

        Raises:
            LockUnavailableError: If another runner holds the lock.
        """
        if not await self.acquire(target):
            raise LockUnavailableError(target)
        try:
            yield LockLease(
                target=target, holder=self._holder, acquired_at=datetime.now(timezone.utc)
            )
        except BaseException:
            # the error from the block wins over a failed release
            try:
                await self.release(target)
            except Exception as e:
                logger.opt(exception=e).error(
                    "Unable to release migration lock on '{target}'",
                    target=target,
                    locked_by=self._holder,
                    event_type="migration_lock_release_failed",
                )
            raise
        else:
            await self.release(target)
