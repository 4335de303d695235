"""
Database migration support for xactlock.

Provides the SQL of the server-side lock function the mutex calls, and
helpers to install it.

Schemas:
    - lock_function: CREATE OR REPLACE of the lock function and its comment
    - lock_function_drop: DROP of the lock function

Usage:
    from xactlock.migrations import get_schema, install_lock_function

    # Inspect the SQL
    print(get_schema("lock_function"))

    # Install into a database
    async with engine.begin() as conn:
        await install_lock_function(conn)

For Alembic migrations, see get_alembic_template("lock_function").
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from xactlock.config import DEFAULT_LOCK_FUNCTION, validate_function_name

# Schema file names
SchemaName = Literal["lock_function", "lock_function_drop"]

LOCK_FUNCTION_SCHEMA = "lock_function"
LOCK_FUNCTION_DROP_SCHEMA = "lock_function_drop"

# Separates statements that must be executed one at a time (asyncpg
# prepares each statement and rejects multi-statement strings)
STATEMENT_BREAK = "-- statement-break"

# Paths
_PACKAGE_DIR = Path(__file__).parent
_TEMPLATES_DIR = _PACKAGE_DIR / "templates"


def get_template_path(name: SchemaName) -> Path:
    """
    Get the path to a SQL template file.

    Raises:
        FileNotFoundError: If the template file doesn't exist
    """
    path = _TEMPLATES_DIR / f"{name}.sql"
    if not path.exists():
        raise FileNotFoundError(
            f"Schema template not found: {path}. Available schemas: {list_schemas()}"
        )
    return path


def get_schema(name: SchemaName, function_name: str = DEFAULT_LOCK_FUNCTION) -> str:
    """
    Load a SQL schema by name, rendered for a function name.

    Args:
        name: The schema name ("lock_function" or "lock_function_drop")
        function_name: Name of the lock function, optionally schema-qualified

    Returns:
        SQL as a string (may contain several statements)

    Raises:
        FileNotFoundError: If the schema file doesn't exist
        ValueError: If function_name is not a plain SQL identifier

    Example:
        >>> sql = get_schema("lock_function", function_name="locking.try_lock")
        >>> "CREATE OR REPLACE FUNCTION locking.try_lock(" in sql
        True
    """
    validate_function_name(function_name)
    template = get_template_path(name).read_text()
    return template.format(function_name=function_name)


def get_statements(name: SchemaName, function_name: str = DEFAULT_LOCK_FUNCTION) -> list[str]:
    """
    Load a SQL schema split into individually executable statements.

    Args:
        name: The schema name
        function_name: Name of the lock function

    Returns:
        Non-empty statements in execution order
    """
    sql = get_schema(name, function_name)
    return [part.strip() for part in sql.split(STATEMENT_BREAK) if part.strip()]


def list_schemas() -> list[str]:
    """
    List all available schema templates.

    Example:
        >>> list_schemas()
        ['lock_function', 'lock_function_drop']
    """
    if not _TEMPLATES_DIR.exists():
        return []
    return sorted(p.stem for p in _TEMPLATES_DIR.glob("*.sql"))


async def install_lock_function(
    conn: AsyncConnection,
    function_name: str = DEFAULT_LOCK_FUNCTION,
) -> None:
    """
    Create (or replace) the lock function.

    Runs inside the caller's transaction; commit it to make the function
    visible to other connections.

    Args:
        conn: Connection to execute on
        function_name: Name of the lock function

    Example:
        >>> async with engine.begin() as conn:
        ...     await install_lock_function(conn)
    """
    for statement in get_statements(LOCK_FUNCTION_SCHEMA, function_name):
        await conn.execute(text(statement))


async def uninstall_lock_function(
    conn: AsyncConnection,
    function_name: str = DEFAULT_LOCK_FUNCTION,
) -> None:
    """Drop the lock function if it exists."""
    for statement in get_statements(LOCK_FUNCTION_DROP_SCHEMA, function_name):
        await conn.execute(text(statement))


async def lock_function_exists(
    conn: AsyncConnection,
    function_name: str = DEFAULT_LOCK_FUNCTION,
) -> bool:
    """
    Check whether the lock function with the expected signature exists.

    Args:
        conn: Connection to query on
        function_name: Name of the lock function, resolved through search_path
            unless schema-qualified

    Returns:
        True if function_name(bigint, boolean, integer) exists
    """
    validate_function_name(function_name)
    result = await conn.execute(
        text("SELECT to_regprocedure(:signature) IS NOT NULL"),
        {"signature": f"{function_name}(bigint, boolean, integer)"},
    )
    return bool(result.scalar())


def get_alembic_template(name: str) -> str:
    """
    Load an Alembic migration template.

    The template contains ${revision_id}, ${down_revision},
    ${down_revision_repr}, ${create_date} and ${function_name} placeholders.

    Raises:
        FileNotFoundError: If the template doesn't exist

    Example:
        >>> template = get_alembic_template("lock_function")
        >>> migration = template.replace("${revision_id}", "abc123")
    """
    path = _TEMPLATES_DIR / "alembic" / f"{name}.py.template"
    if not path.exists():
        raise FileNotFoundError(f"Alembic template not found: {path}")
    return path.read_text()


__all__ = [
    "LOCK_FUNCTION_DROP_SCHEMA",
    "LOCK_FUNCTION_SCHEMA",
    "STATEMENT_BREAK",
    "SchemaName",
    "get_alembic_template",
    "get_schema",
    "get_statements",
    "get_template_path",
    "install_lock_function",
    "list_schemas",
    "lock_function_exists",
    "uninstall_lock_function",
]
