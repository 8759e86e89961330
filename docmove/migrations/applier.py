"""
Applies changelog payloads to the target database.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from bson import json_util
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import IndexModel

from docmove.core.exceptions import ConfigurationError
from docmove.log.logging import logger
from docmove.migrations.models import ChangeLog, ChangeType
from docmove.migrations.source import ChangeSource

ChangeHandler = Callable[[ChangeLog], Awaitable[None]]


class Applier(ABC):
    """Performs the side effect of a changelog against the target system."""

    @abstractmethod
    async def apply(self, changelog: ChangeLog) -> bool:
        """Apply the changelog, returning True on success."""


class ChangeApplier(Applier):
    """
    Dispatches changelogs to a handler registered for their type.

    Built-in handlers:
    - DOCUMENT_IMPORT: upserts every document of a documents directory
    - QUERY_SCRIPT: runs each database command of a script in order
    - INDEX_DEFINITION: creates the indexes or the view named after the description
    """

    def __init__(self, db: AsyncIOMotorDatabase, source: ChangeSource):
        self._db = db
        self._source = source
        self._handlers: dict[ChangeType, ChangeHandler] = {
            ChangeType.DOCUMENT_IMPORT: self.import_documents,
            ChangeType.QUERY_SCRIPT: self.execute_script,
            ChangeType.INDEX_DEFINITION: self.import_named_resource,
        }

    def register(self, change_type: ChangeType, handler: ChangeHandler) -> None:
        """Register or replace the handler for a change type."""
        self._handlers[change_type] = handler

    async def apply(self, changelog: ChangeLog) -> bool:
        """
        Apply a changelog with the handler registered for its type.

        Returns:
            True if the handler succeeded, False if it raised.

        Raises:
            ConfigurationError: If no handler is registered for the type.
        """
        handler = self._handlers.get(changelog.type)
        if handler is None:
            raise ConfigurationError(f"Unknown changelog type '{changelog.type}'")

        try:
            await handler(changelog)
        except Exception as e:
            logger.opt(exception=e).error(
                "Unable to import {kind}: '{script}'",
                kind=changelog.type.label,
                script=changelog.script,
                error=str(e),
                event_type="changelog_apply_error",
            )
            return False
        return True

    async def import_documents(self, changelog: ChangeLog) -> None:
        """Upsert the documents of a documents directory."""
        documents = self._source.read_documents(changelog.script)
        for collection_name, docs in documents.items():
            collection = self._db[collection_name]
            for document_id, text in docs.items():
                document = json_util.loads(text)
                document.setdefault("_id", document_id)
                await collection.replace_one({"_id": document["_id"]}, document, upsert=True)
            logger.debug(
                "Imported {count} documents into {collection}",
                count=len(docs),
                collection=collection_name,
                event_type="documents_imported",
            )

    async def execute_script(self, changelog: ChangeLog) -> None:
        """Run the database commands of a query script in order."""
        commands = json_util.loads(self._source.read_file(changelog.script))
        if isinstance(commands, dict):
            commands = [commands]
        for index, command in enumerate(commands, start=1):
            await self._db.command(command)
            logger.debug(
                "Executed command {index}/{total} of '{script}'",
                index=index,
                total=len(commands),
                script=changelog.script,
                event_type="script_command_executed",
            )

    async def import_named_resource(self, changelog: ChangeLog) -> None:
        """Create the index set or view defined by an index definition."""
        name = changelog.description.replace(" ", "_")
        definition: dict[str, Any] = json_util.loads(self._source.read_file(changelog.script))

        if "pipeline" in definition:
            await self._db.drop_collection(name)
            await self._db.command(
                {"create": name, "viewOn": definition["viewOn"], "pipeline": definition["pipeline"]}
            )
            logger.debug("Created view {name}", name=name, event_type="view_created")
            return

        if "indexes" not in definition:
            raise ValueError(f"Definition '{changelog.script}' has neither indexes nor a pipeline")

        indexes = []
        for spec in definition["indexes"]:
            options = dict(spec)
            keys = list(options.pop("key").items())
            if len(definition["indexes"]) == 1:
                options.setdefault("name", name)
            indexes.append(IndexModel(keys, **options))

        collection_name = definition.get("collection", name)
        await self._db[collection_name].create_indexes(indexes)
        logger.debug(
            "Created {count} indexes on {collection}",
            count=len(indexes),
            collection=collection_name,
            event_type="indexes_created",
        )
