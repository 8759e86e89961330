"""
Migration runner driving changelog execution.
"""

import getpass
import socket
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from docmove.core.config import settings
from docmove.core.exceptions import ExecutionFailureError, MigrationError
from docmove.core.metrics import CHANGELOGS_PROCESSED, MIGRATION_RUNS, record_changelog
from docmove.log.logging import logger
from docmove.migrations.applier import Applier, ChangeApplier
from docmove.migrations.lock import ChangeLockService
from docmove.migrations.models import ChangeLog, Status, Watermark
from docmove.migrations.source import ChangeSource, FileChangeSource
from docmove.migrations.store import ChangeLogStore


def default_runner_name() -> str:
    """Name of the OS user running the migration, or the host name."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return socket.gethostname()


class MigrationRunner:
    """
    Applies the changelogs of a migration source to a database.

    A run:
    1. Acquires the database migration lock
    2. Fetches changelogs from the migration source
    3. Merges them with their persisted records
    4. Executes pending changelogs one at a time in discovery order

    The lock is released before any error leaves ``run``.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        migrations_path: Optional[str] = None,
        *,
        source: Optional[ChangeSource] = None,
        store: Optional[ChangeLogStore] = None,
        lock_service: Optional[ChangeLockService] = None,
        applier: Optional[Applier] = None,
        runner_name: Optional[str] = None,
        lock_timeout: Optional[int] = None,
    ):
        """
        Initialize the migration runner.

        Args:
            db: MongoDB database to migrate.
            migrations_path: Directory containing changelogs.
            source: Changelog source, a directory source by default.
            store: Changelog record store.
            lock_service: Migration lock service.
            applier: Applies changelog payloads.
            runner_name: Identity recorded on executed changelogs.
            lock_timeout: Lock lease in seconds, 0 or None for no expiry.
        """
        self._db = db
        self._target = db.name
        self._source = source or FileChangeSource(migrations_path)
        self._store = store or ChangeLogStore(db)
        if lock_timeout is None:
            lock_timeout = settings.migrations_lock_timeout
        self._lock_service = lock_service or ChangeLockService(db, lease_seconds=lock_timeout)
        self._applier = applier or ChangeApplier(db, self._source)
        self._runner_name = runner_name or settings.migrations_runner or default_runner_name()

    @property
    def target(self) -> str:
        return self._target

    async def initialize(self) -> None:
        """Create the indexes used by the change store and the lock."""
        await self._store.initialize()
        await self._lock_service.initialize()

        logger.info(
            "Migration system initialized",
            event_type="migration_initialized",
            target=self._target,
        )

    async def run(self) -> list[ChangeLog]:
        """
        Migrate the database.

        Returns:
            Changelogs executed by this run.

        Raises:
            MigrationError: Wrapping the cause of the failure.
        """
        with logger.contextualize(run_id=uuid.uuid4().hex, target=self._target):
            logger.info(
                "Begin database '{target}' migration",
                target=self._target,
                event_type="migration_started",
            )
            try:
                async with self._lock_service.hold(self._target):
                    changelogs = self._source.list()
                    if not changelogs:
                        logger.info(
                            "No migration scripts found", event_type="migration_none"
                        )
                        executed = []
                    else:
                        changelogs = await self._store.fetch_and_compare(changelogs)
                        executed = await self.execute_migration(changelogs)
            except Exception as e:
                MIGRATION_RUNS.labels(outcome="failed").inc()
                logger.error(
                    "Migration of '{target}' failed: {error}",
                    target=self._target,
                    error=str(e),
                    event_type="migration_failed",
                )
                raise MigrationError(f"Unable to migrate '{self._target}': {e}") from e

            MIGRATION_RUNS.labels(outcome="success").inc()
            logger.info(
                "Migration of '{target}' finished",
                target=self._target,
                executed=len(executed),
                event_type="migration_finished",
            )
            return executed

    async def execute_migration(self, changelogs: list[ChangeLog]) -> list[ChangeLog]:
        """
        Execute reconciled changelogs in order.

        - Executed changelogs are left alone, or re-saved when their record is stale
        - Skipped changelogs are left alone
        - A changelog whose version is not above the last executed one is skipped
        - Anything else is applied, and a failure stops the run

        Returns:
            Changelogs executed by this call.

        Raises:
            ExecutionFailureError: If a changelog fails to apply.
        """
        logger.info("Executing migration scripts...", event_type="migration_executing")
        watermark = Watermark.of(changelogs)
        executed = []

        for changelog in changelogs:
            if changelog.status == Status.EXECUTED:
                if changelog.cas is None or changelog.dirty:
                    logger.info(
                        "Updating changelog '{version}'",
                        version=changelog.version,
                        event_type="changelog_updating",
                    )
                    await self._store.save(changelog)
                continue

            if changelog.status == Status.SKIPPED:
                continue

            if changelog.version <= watermark.version:
                logger.warning(
                    "Changelog '{version}' version is lower than last executed one '{last}'. Skipping",
                    version=changelog.version,
                    last=watermark.version,
                    event_type="changelog_skipped",
                )
                changelog.status = Status.SKIPPED
                await self._store.save(changelog)
                CHANGELOGS_PROCESSED.labels(status=Status.SKIPPED.value).inc()
                continue

            if not await self.execute(changelog, watermark.order + 1):
                raise ExecutionFailureError(changelog)
            watermark = watermark.advance(changelog)
            executed.append(changelog)

        if executed:
            logger.info(
                "Executed {count} migration scripts",
                count=len(executed),
                event_type="migration_executed",
            )
        else:
            logger.info("No new migration scripts found", event_type="migration_none")
        return executed

    async def execute(self, changelog: ChangeLog, order: int) -> bool:
        """
        Apply one changelog and persist the outcome.

        Args:
            changelog: Changelog to apply.
            order: Order assigned if the execution succeeds.

        Returns:
            True if the changelog was executed, False if it failed.
        """
        logger.info(
            "Executing changelog '{version}'",
            version=changelog.version,
            description=changelog.description,
            event_type="changelog_executing",
        )
        start_time = time.time()
        changelog.timestamp = datetime.now(timezone.utc)
        changelog.runner = self._runner_name

        if await self._applier.apply(changelog):
            changelog.order = order
            changelog.status = Status.EXECUTED
            logger.info(
                "Changelog '{version}' successfully executed",
                version=changelog.version,
                order=order,
                event_type="changelog_executed",
            )
        else:
            changelog.status = Status.FAILED
            logger.error(
                "Unable to execute changelog '{version}'",
                version=changelog.version,
                event_type="changelog_failed",
            )

        changelog.duration = int((time.time() - start_time) * 1000)
        record_changelog(changelog.type.value, changelog.status.value, changelog.duration)
        await self._store.save(changelog)
        return changelog.status == Status.EXECUTED

    async def get_status(self) -> dict[str, Any]:
        """
        Get current migration status without taking the lock.

        Returns:
            Dictionary with migration status information.
        """
        changelogs = self._source.list()
        records = {c.key: c for c in await self._store.fetch_all()}

        applied = [r for r in records.values() if r.status == Status.EXECUTED]
        applied.sort(key=lambda r: r.order or 0)
        skipped = [r for r in records.values() if r.status == Status.SKIPPED]
        watermark = Watermark.of(applied)
        unapplied = [
            c
            for c in changelogs
            if c.key not in records or records[c.key].status == Status.FAILED
        ]
        # the next run skips anything not above the last executed version
        pending = [c for c in unapplied if c.version > watermark.version]
        outdated = [c for c in unapplied if c.version <= watermark.version]
        lock = await self._lock_service.get_lock(self._target)

        return {
            "target": self._target,
            "total_changelogs": len(changelogs),
            "applied_count": len(applied),
            "skipped_count": len(skipped),
            "pending_count": len(pending),
            "outdated_count": len(outdated),
            "current_version": watermark.version or None,
            "latest_version": max((c.version for c in changelogs), default=None),
            "locked_by": lock.holder if lock else None,
            "applied": [
                {
                    "version": r.version,
                    "description": r.description,
                    "order": r.order,
                    "applied_at": r.timestamp.isoformat() if r.timestamp else None,
                    "duration_ms": r.duration,
                    "runner": r.runner,
                }
                for r in applied
            ],
            "pending": [
                {
                    "version": c.version,
                    "description": c.description,
                    "type": c.type.value,
                    "status": records[c.key].status.value if c.key in records else None,
                }
                for c in pending
            ],
            "outdated": [{"version": c.version, "description": c.description} for c in outdated],
        }

    async def verify_checksums(self) -> list[dict]:
        """
        Verify that executed changelogs haven't been modified.

        Returns:
            List of changelogs with checksum mismatches.
        """
        sources = {c.key: c for c in self._source.list()}
        mismatches = []

        for record in await self._store.fetch_all():
            changelog = sources.get(record.key)
            if (
                record.status == Status.EXECUTED
                and changelog
                and changelog.checksum != record.checksum
            ):
                mismatches.append(
                    {
                        "version": record.version,
                        "description": record.description,
                        "expected_checksum": record.checksum,
                        "actual_checksum": changelog.checksum,
                    }
                )

        return mismatches
