"""
Unit tests for lock function migrations.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from xactlock import DEFAULT_LOCK_FUNCTION
from xactlock.migrations import (
    STATEMENT_BREAK,
    get_alembic_template,
    get_schema,
    get_statements,
    get_template_path,
    install_lock_function,
    list_schemas,
    lock_function_exists,
    uninstall_lock_function,
)


class TestSchemas:
    """Tests for SQL template loading."""

    def test_list_schemas(self) -> None:
        """Both schemas are shipped."""
        assert list_schemas() == ["lock_function", "lock_function_drop"]

    def test_template_path(self) -> None:
        """Templates are SQL files inside the package."""
        path = get_template_path("lock_function")

        assert path.suffix == ".sql"
        assert path.exists()

    def test_unknown_schema(self) -> None:
        """Unknown schema names raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Available schemas"):
            get_schema("does_not_exist")  # type: ignore[arg-type]

    def test_default_function_name(self) -> None:
        """The default function name is substituted."""
        sql = get_schema("lock_function")

        assert f"CREATE OR REPLACE FUNCTION {DEFAULT_LOCK_FUNCTION}(" in sql
        assert "{function_name}" not in sql

    def test_custom_function_name(self) -> None:
        """Schema-qualified names are substituted everywhere."""
        sql = get_schema("lock_function", "locking.try_lock")

        assert "CREATE OR REPLACE FUNCTION locking.try_lock(" in sql
        assert "COMMENT ON FUNCTION locking.try_lock(bigint, boolean, integer)" in sql

    def test_invalid_function_name(self) -> None:
        """Names that are not identifiers are never rendered into SQL."""
        with pytest.raises(ValueError):
            get_schema("lock_function", "f(); DROP TABLE users")

    def test_function_semantics(self) -> None:
        """The function covers both lock modes, both waits and timeout faults."""
        sql = get_schema("lock_function")

        for fragment in [
            "pg_try_advisory_xact_lock(key)",
            "pg_try_advisory_xact_lock_shared(key)",
            "pg_advisory_xact_lock(key)",
            "pg_advisory_xact_lock_shared(key)",
            "set_config('lock_timeout'",
            "lock_not_available OR query_canceled",
            "ERRCODE = '22023'",
        ]:
            assert fragment in sql

    def test_drop_schema(self) -> None:
        """The drop schema removes the function by signature."""
        sql = get_schema("lock_function_drop", "locking.try_lock")

        assert "DROP FUNCTION IF EXISTS locking.try_lock(bigint, boolean, integer);" in sql


class TestStatements:
    """Tests for splitting schemas into executable statements."""

    def test_function_statements(self) -> None:
        """The function and its comment are separate statements."""
        statements = get_statements("lock_function")

        assert len(statements) == 2
        assert "CREATE OR REPLACE FUNCTION" in statements[0]
        assert statements[1].startswith("COMMENT ON FUNCTION")
        assert all(STATEMENT_BREAK not in s for s in statements)

    def test_drop_statements(self) -> None:
        """The drop schema is a single statement."""
        assert len(get_statements("lock_function_drop")) == 1


class TestInstall:
    """Tests for install/uninstall helpers with a mocked connection."""

    async def test_install_executes_each_statement(self) -> None:
        """Every statement is executed separately."""
        conn = MagicMock()
        conn.execute = AsyncMock()

        await install_lock_function(conn, "locking.try_lock")

        executed = [call.args[0].text for call in conn.execute.await_args_list]
        assert executed == get_statements("lock_function", "locking.try_lock")

    async def test_uninstall(self) -> None:
        """Uninstall drops the function."""
        conn = MagicMock()
        conn.execute = AsyncMock()

        await uninstall_lock_function(conn)

        (call,) = conn.execute.await_args_list
        assert "DROP FUNCTION IF EXISTS" in call.args[0].text

    async def test_exists(self) -> None:
        """Existence is checked through the function signature."""
        conn = MagicMock()
        conn.execute = AsyncMock(return_value=SimpleNamespace(scalar=lambda: True))

        assert await lock_function_exists(conn, "locking.try_lock")

        params = conn.execute.await_args.args[1]
        assert params == {"signature": "locking.try_lock(bigint, boolean, integer)"}

    async def test_exists_validates_name(self) -> None:
        """Invalid names are rejected before querying."""
        conn = MagicMock()
        conn.execute = AsyncMock()

        with pytest.raises(ValueError):
            await lock_function_exists(conn, "bad name")

        conn.execute.assert_not_awaited()


class TestAlembicTemplate:
    """Tests for the Alembic migration template."""

    def test_template_placeholders(self) -> None:
        """The template carries the revision and function placeholders."""
        template = get_alembic_template("lock_function")

        for placeholder in [
            "${revision_id}",
            "${down_revision}",
            "${create_date}",
            "${function_name}",
        ]:
            assert placeholder in template
        assert "get_statements" in template

    def test_unknown_template(self) -> None:
        """Unknown templates raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            get_alembic_template("nope")
