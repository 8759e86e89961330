"""Tests for the ChangeApplier class."""

from unittest.mock import AsyncMock

import pytest

from docmove.core.exceptions import ConfigurationError
from docmove.migrations.applier import ChangeApplier
from docmove.migrations.models import ChangeType
from docmove.migrations.source import FileChangeSource


@pytest.fixture
def source(tmp_path):
    return FileChangeSource(str(tmp_path))


class TestChangeApplier:
    """Tests for ChangeApplier."""

    @pytest.mark.asyncio
    async def test_import_documents(self, fake_db, source, tmp_path, make_changelog):
        users = tmp_path / "V2__seed_docs" / "users"
        users.mkdir(parents=True)
        (users / "admin.json").write_text('{"name": "admin"}')
        (users / "guest.json").write_text('{"_id": "visitor", "name": "guest"}')
        fake_db["users"].docs["admin"] = {"_id": "admin", "name": "old"}
        changelog = make_changelog("2", "seed docs", ChangeType.DOCUMENT_IMPORT)
        changelog.script = "V2__seed_docs"

        assert await ChangeApplier(fake_db, source).apply(changelog) is True

        assert fake_db["users"].docs == {
            "admin": {"_id": "admin", "name": "admin"},
            "visitor": {"_id": "visitor", "name": "guest"},
        }

    @pytest.mark.asyncio
    async def test_execute_script_runs_commands_in_order(
        self, fake_db, source, tmp_path, make_changelog
    ):
        (tmp_path / "V3__add_admin.mql").write_text(
            '[{"create": "audit"}, {"update": "users", "updates": []}]'
        )
        changelog = make_changelog("3", "add admin", ChangeType.QUERY_SCRIPT)
        changelog.script = "V3__add_admin.mql"

        assert await ChangeApplier(fake_db, source).apply(changelog) is True

        commands = [call.args[0] for call in fake_db.command.await_args_list]
        assert commands == [{"create": "audit"}, {"update": "users", "updates": []}]

    @pytest.mark.asyncio
    async def test_execute_script_single_command(self, fake_db, source, tmp_path, make_changelog):
        (tmp_path / "V3__ping.mql").write_text('{"ping": 1}')
        changelog = make_changelog("3", "ping", ChangeType.QUERY_SCRIPT)
        changelog.script = "V3__ping.mql"

        assert await ChangeApplier(fake_db, source).apply(changelog) is True

        fake_db.command.assert_awaited_once_with({"ping": 1})

    @pytest.mark.asyncio
    async def test_import_indexes(self, fake_db, source, tmp_path, make_changelog):
        (tmp_path / "V1__users_email.json").write_text(
            '{"collection": "users", "indexes": [{"key": {"email": 1}, "unique": true}]}'
        )
        changelog = make_changelog("1", "users email", ChangeType.INDEX_DEFINITION)
        changelog.script = "V1__users_email.json"

        assert await ChangeApplier(fake_db, source).apply(changelog) is True

        assert fake_db.calls_on("users") == ["create_indexes"]

    @pytest.mark.asyncio
    async def test_import_indexes_names_single_index(
        self, fake_db, source, tmp_path, make_changelog
    ):
        (tmp_path / "V1__users_email.json").write_text(
            '{"collection": "users", "indexes": [{"key": {"email": 1}}]}'
        )
        changelog = make_changelog("1", "users email", ChangeType.INDEX_DEFINITION)
        changelog.script = "V1__users_email.json"
        applier = ChangeApplier(fake_db, source)
        fake_db["users"].create_indexes = AsyncMock()

        await applier.import_named_resource(changelog)

        (indexes,) = fake_db["users"].create_indexes.await_args.args
        assert indexes[0].document["name"] == "users_email"
        assert indexes[0].document["key"] == {"email": 1}

    @pytest.mark.asyncio
    async def test_import_view(self, fake_db, source, tmp_path, make_changelog):
        (tmp_path / "V1__active_users.json").write_text(
            '{"viewOn": "users", "pipeline": [{"$match": {"active": true}}]}'
        )
        changelog = make_changelog("1", "active users", ChangeType.INDEX_DEFINITION)
        changelog.script = "V1__active_users.json"

        assert await ChangeApplier(fake_db, source).apply(changelog) is True

        fake_db.drop_collection.assert_awaited_once_with("active_users")
        fake_db.command.assert_awaited_once_with(
            {"create": "active_users", "viewOn": "users", "pipeline": [{"$match": {"active": True}}]}
        )

    @pytest.mark.asyncio
    async def test_handler_error_is_a_failure(self, fake_db, source, tmp_path, make_changelog):
        (tmp_path / "V3__broken.mql").write_text("not json")
        changelog = make_changelog("3", "broken", ChangeType.QUERY_SCRIPT)
        changelog.script = "V3__broken.mql"

        assert await ChangeApplier(fake_db, source).apply(changelog) is False

    @pytest.mark.asyncio
    async def test_invalid_definition_is_a_failure(self, fake_db, source, tmp_path, make_changelog):
        (tmp_path / "V1__nothing.json").write_text("{}")
        changelog = make_changelog("1", "nothing", ChangeType.INDEX_DEFINITION)
        changelog.script = "V1__nothing.json"

        assert await ChangeApplier(fake_db, source).apply(changelog) is False

    @pytest.mark.asyncio
    async def test_missing_handler_is_fatal(self, fake_db, source, make_changelog):
        applier = ChangeApplier(fake_db, source)
        del applier._handlers[ChangeType.QUERY_SCRIPT]

        with pytest.raises(ConfigurationError, match="Unknown changelog type"):
            await applier.apply(make_changelog("1"))

    @pytest.mark.asyncio
    async def test_register_custom_handler(self, fake_db, source, make_changelog):
        handler = AsyncMock()
        applier = ChangeApplier(fake_db, source)
        applier.register(ChangeType.QUERY_SCRIPT, handler)
        changelog = make_changelog("1")

        assert await applier.apply(changelog) is True

        handler.assert_awaited_once_with(changelog)
