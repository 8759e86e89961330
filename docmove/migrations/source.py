"""
Changelog discovery from a migration directory.
"""

import hashlib
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path

from docmove.core.config import settings
from docmove.core.exceptions import ConfigurationError
from docmove.log.logging import logger
from docmove.migrations.models import ChangeLog, ChangeType

# e.g. V1__create_index.json, V1.2__seed_users/, V2__backfill_status.mql
CHANGELOG_PATTERN = re.compile(r"^V(?P<version>[\w.\-]+?)__(?P<description>[^.]+)(?P<ext>\.\w+)?$")

EXTENSION_TYPES = {
    ".mql": ChangeType.QUERY_SCRIPT,
    ".json": ChangeType.INDEX_DEFINITION,
}

DOCUMENT_EXTENSION = ".json"


class ChangeSource(ABC):
    """Produces changelog candidates and resolves their script references."""

    @abstractmethod
    def list(self) -> list[ChangeLog]:
        """Return changelog candidates in discovery order."""

    @abstractmethod
    def read_file(self, script: str) -> str:
        """Return the text of a script file."""

    @abstractmethod
    def read_documents(self, script: str) -> dict[str, dict[str, str]]:
        """Return ``{collection: {document_id: json_text}}`` for a documents script."""


class FileChangeSource(ChangeSource):
    """
    Reads changelogs from a directory.

    Each entry named ``V<version>__<description>`` is one changelog:
    - a directory is a document import, one subdirectory per collection
    - a ``.mql`` file is a query script
    - a ``.json`` file is an index or view definition
    Entries are discovered in name order.
    """

    def __init__(self, migrations_path: str | None = None):
        self._root = Path(migrations_path or settings.migrations_path)

    @property
    def root(self) -> Path:
        return self._root

    def list(self) -> list[ChangeLog]:
        """
        Discover all changelogs in the migration directory.

        Raises:
            ConfigurationError: On duplicate versions or unsupported file types.
        """
        changelogs = []

        if not self._root.is_dir():
            logger.warning(
                "Migrations directory not found: {path}",
                path=str(self._root),
                event_type="migrations_dir_missing",
            )
            return changelogs

        seen = {}
        for entry in sorted(self._root.iterdir(), key=lambda p: p.name):
            changelog = self._parse(entry)
            if changelog is None:
                continue
            if changelog.version in seen:
                raise ConfigurationError(
                    f"Found changelogs '{seen[changelog.version]}' and '{entry.name}' "
                    f"with the same version '{changelog.version}'"
                )
            seen[changelog.version] = entry.name
            changelogs.append(changelog)

        logger.info(
            "Discovered {count} changelogs",
            count=len(changelogs),
            path=str(self._root),
            event_type="changelogs_discovered",
        )
        return changelogs

    def _parse(self, entry: Path) -> ChangeLog | None:
        match = CHANGELOG_PATTERN.match(entry.name)
        if not match:
            logger.debug(
                "Ignoring {name}: not a changelog",
                name=entry.name,
                event_type="changelog_ignored",
            )
            return None

        if entry.is_dir():
            if match.group("ext"):
                raise ConfigurationError(f"Documents directory '{entry.name}' has an extension")
            change_type = ChangeType.DOCUMENT_IMPORT
        else:
            change_type = EXTENSION_TYPES.get((match.group("ext") or "").lower())
            if change_type is None:
                raise ConfigurationError(f"Unsupported changelog file type: '{entry.name}'")

        return ChangeLog(
            version=match.group("version"),
            description=match.group("description").replace("_", " "),
            type=change_type,
            script=entry.name,
            checksum=self.checksum(entry),
        )

    def checksum(self, path: Path) -> str:
        """Calculate the SHA256 checksum of a file or a whole directory."""
        digest = hashlib.sha256()
        if path.is_dir():
            for file_path in sorted(p for p in path.rglob("*") if p.is_file()):
                digest.update(file_path.relative_to(path).as_posix().encode())
                digest.update(file_path.read_bytes())
        else:
            digest.update(path.read_bytes())
        return digest.hexdigest()

    def read_file(self, script: str) -> str:
        return (self._root / script).read_text(encoding="utf-8")

    def read_documents(self, script: str) -> dict[str, dict[str, str]]:
        documents: dict[str, dict[str, str]] = {}
        directory = self._root / script
        for collection_dir in sorted(p for p in directory.iterdir() if p.is_dir()):
            collection = documents.setdefault(collection_dir.name, {})
            for file_name in sorted(os.listdir(collection_dir)):
                if file_name.endswith(DOCUMENT_EXTENSION):
                    file_path = collection_dir / file_name
                    collection[file_path.stem] = file_path.read_text(encoding="utf-8")
        return documents
