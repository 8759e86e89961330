"""
Durable changelog execution records with optimistic concurrency.
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from docmove.core.config import settings
from docmove.core.exceptions import PersistenceConflictError, ReconciliationConflictError
from docmove.log.logging import logger
from docmove.migrations.models import ChangeLog, Status


class ChangeLogStore:
    """
    Reads and writes changelog records in the target database.

    Every record carries a ``cas`` counter. Writes are conditional on the
    counter last read for that record and bump it, so a write racing with
    another runner fails instead of overwriting it.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: Optional[str] = None):
        self._collection = db[collection_name or settings.migrations_collection]

    async def initialize(self) -> None:
        """Create the index used to list records in application order."""
        await self._collection.create_index("order")

    async def fetch_and_compare(self, changelogs: list[ChangeLog]) -> list[ChangeLog]:
        """
        Merge source changelogs with their persisted execution records.

        Args:
            changelogs: Changelogs discovered in the migration source.

        Returns:
            The same changelogs, in the same order, carrying persisted state.

        Raises:
            ReconciliationConflictError: If an executed changelog's content changed.
        """
        cursor = self._collection.find({"_id": {"$in": [c.key for c in changelogs]}})
        persisted = {}
        async for doc in cursor:
            persisted[doc["_id"]] = ChangeLog.from_dict(doc)

        mismatches = []
        for changelog in changelogs:
            record = persisted.get(changelog.key)
            if record is None:
                continue

            changelog.status = record.status
            changelog.order = record.order
            changelog.duration = record.duration
            changelog.timestamp = record.timestamp
            changelog.runner = record.runner
            if record.cas is None:
                # stored without a token; saved again under token 0
                changelog.cas = 0
                changelog.dirty = True
            else:
                changelog.cas = record.cas

            if record.status == Status.EXECUTED:
                if record.checksum != changelog.checksum:
                    logger.error(
                        "Executed changelog '{version}' was modified",
                        version=changelog.version,
                        expected_checksum=record.checksum,
                        actual_checksum=changelog.checksum,
                        event_type="changelog_checksum_mismatch",
                    )
                    mismatches.append(
                        {
                            "version": changelog.version,
                            "description": changelog.description,
                            "expected_checksum": record.checksum,
                            "actual_checksum": changelog.checksum,
                        }
                    )
                elif record.description != changelog.description:
                    logger.warning(
                        "Description of changelog '{version}' changed from '{old}' to '{new}'",
                        version=changelog.version,
                        old=record.description,
                        new=changelog.description,
                        event_type="changelog_description_changed",
                    )
                    changelog.dirty = True
            elif record.status == Status.FAILED:
                changelog.status = Status.TO_BE_EXECUTED

        if mismatches:
            raise ReconciliationConflictError(mismatches)

        return changelogs

    async def save(self, changelog: ChangeLog) -> None:
        """
        Persist a changelog using its concurrency token.

        A changelog without a token is inserted; otherwise the stored record
        is replaced only if its token still matches. Token 0 stands for a
        record stored without a ``cas`` value.

        Raises:
            PersistenceConflictError: If the record changed since it was read.
        """
        token = changelog.cas
        doc = changelog.to_dict()

        if token is None:
            doc["cas"] = 1
            try:
                await self._collection.insert_one(doc)
            except DuplicateKeyError as e:
                raise PersistenceConflictError(changelog.key, token) from e
        else:
            doc["cas"] = token + 1
            # a null filter also matches a missing field
            expected = token if token else None
            result = await self._collection.replace_one({"_id": changelog.key, "cas": expected}, doc)
            if result.matched_count == 0:
                raise PersistenceConflictError(changelog.key, token)

        changelog.cas = doc["cas"]
        changelog.dirty = False
        logger.debug(
            "Changelog '{version}' saved as {status}",
            version=changelog.version,
            status=changelog.status.value,
            event_type="changelog_saved",
        )

    async def fetch_all(self) -> list[ChangeLog]:
        """
        Get every persisted changelog.

        Returns:
            Changelog records sorted by version.
        """
        records = []
        async for doc in self._collection.find({}):
            records.append(ChangeLog.from_dict(doc))
        records.sort(key=lambda c: c.version)
        return records
