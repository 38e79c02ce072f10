"""
SQLAlchemy Database Connector

Executes deployment scripts through a SQLAlchemy engine. Targets PostgreSQL
(search_path is set per transaction and statement_timeout per statement, from
the time left in the script budget); any other SQLAlchemy dialect, such as
SQLite for local runs, runs without schema handling and checks the script
timeout between statements.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from pgdeploy.core.sql_utils import split_sql_statements
from pgdeploy.domain.errors import ConnectorError

from .base import ScriptExecution

logger = logging.getLogger(__name__)

_TIMEOUT_SQLSTATE = "57014"
_NO_PARAMETERS = {"no_parameters": True}


def quote_identifier(name: str) -> str:
    """Quote an identifier for PostgreSQL."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote a string literal for PostgreSQL."""
    return "'" + value.replace("'", "''") + "'"


def _now() -> float:
    return time.monotonic()


class ScriptTimeout(Exception):
    """The script used up its time budget"""


@dataclass
class _Progress:
    executed: int = 0


def _is_timeout_error(error: SQLAlchemyError) -> bool:
    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate == _TIMEOUT_SQLSTATE:
        return True
    return "statement timeout" in str(error).lower()


def _error_message(error: SQLAlchemyError) -> str:
    original = getattr(error, "orig", None)
    message = str(original) if original is not None else str(error)
    return message.strip() or type(error).__name__


class SQLAlchemyConnector:
    """Database connector over a SQLAlchemy engine

    Attributes:
        engine: SQLAlchemy engine (one logical connection is used at a time)
        dialect_name: Engine dialect name (e.g. "postgresql", "sqlite")
    """

    def __init__(self, target: str | Engine, **engine_options: Any) -> None:
        """Initialize connector

        Args:
            target: Database URL or an existing engine
            **engine_options: Passed to create_engine when target is a URL
        """
        self.engine = create_engine(target, **engine_options) if isinstance(target, str) else target
        self.dialect_name = self.engine.dialect.name

    @property
    def is_postgres(self) -> bool:
        return self.dialect_name == "postgresql"

    def _prepare_session(self, conn: Connection, schema: str | None, scope: str) -> None:
        if not self.is_postgres or not schema:
            return
        conn.exec_driver_sql(
            f"SET {scope} search_path TO {quote_identifier(schema)}, public",
            execution_options=_NO_PARAMETERS,
        )

    def _reset_session(self, conn: Connection) -> None:
        if not self.is_postgres:
            return
        conn.exec_driver_sql("RESET search_path", execution_options=_NO_PARAMETERS)
        conn.exec_driver_sql("RESET statement_timeout", execution_options=_NO_PARAMETERS)

    def _run_statements(
        self,
        conn: Connection,
        statements: list[str],
        deadline: float | None,
        scope: str,
        progress: _Progress,
    ) -> None:
        """Run statements in order within the script deadline.

        On PostgreSQL each statement gets a statement_timeout equal to what is
        left of the script budget, so the whole script is bounded rather than
        each statement. Other dialects are checked between statements only.
        """
        for statement in statements:
            if deadline is not None:
                remaining = deadline - _now()
                if remaining <= 0:
                    raise ScriptTimeout()
                if self.is_postgres:
                    conn.exec_driver_sql(
                        f"SET {scope} statement_timeout = {max(1, int(remaining * 1000))}",
                        execution_options=_NO_PARAMETERS,
                    )
            conn.exec_driver_sql(statement, execution_options=_NO_PARAMETERS)
            progress.executed += 1
        if deadline is not None and _now() > deadline:
            raise ScriptTimeout()

    def execute_script(
        self,
        sql: str,
        *,
        schema: str | None,
        timeout_seconds: int | None,
        transactional: bool = True,
    ) -> ScriptExecution:
        """Execute a script in one transaction, or statement by statement

        Transactional scripts commit only after every statement succeeded; any
        error rolls the whole script back. Non-transactional scripts run in
        autocommit mode, so statements that succeeded before a failure stay
        applied.

        Args:
            sql: Script text
            schema: Schema placed first on the search_path
            timeout_seconds: Time budget for the whole script
            transactional: Run inside one transaction

        Returns:
            ScriptExecution describing the outcome
        """
        statements = split_sql_statements(sql)
        progress = _Progress()
        start = _now()
        deadline = start + timeout_seconds if timeout_seconds else None

        try:
            if transactional:
                with self.engine.begin() as conn:
                    self._prepare_session(conn, schema, "LOCAL")
                    self._run_statements(conn, statements, deadline, "LOCAL", progress)
            else:
                with self.engine.connect() as conn:
                    conn = conn.execution_options(isolation_level="AUTOCOMMIT")
                    self._prepare_session(conn, schema, "SESSION")
                    try:
                        self._run_statements(conn, statements, deadline, "SESSION", progress)
                    finally:
                        self._reset_session(conn)
        except (SQLAlchemyError, ScriptTimeout) as e:
            if isinstance(e, ScriptTimeout):
                timed_out = True
                message = f"Script exceeded its {timeout_seconds}s timeout"
            else:
                timed_out = _is_timeout_error(e)
                message = _error_message(e)
                if timed_out:
                    message = f"Script timed out after {timeout_seconds}s: {message}"
            logger.debug("Script failed after %d statements: %s", progress.executed, message)
            return ScriptExecution(
                status="failed",
                execution_time_ms=int((_now() - start) * 1000),
                statements_executed=progress.executed,
                error_message=message,
                timed_out=timed_out,
                transactional=transactional,
            )

        return ScriptExecution(
            status="success",
            execution_time_ms=int((_now() - start) * 1000),
            statements_executed=progress.executed,
            transactional=transactional,
        )

    def execute(self, sql: str) -> None:
        """Execute one statement in its own transaction

        Raises:
            ConnectorError: If the statement fails
        """
        try:
            with self.engine.begin() as conn:
                conn.exec_driver_sql(sql, execution_options=_NO_PARAMETERS)
        except SQLAlchemyError as e:
            raise ConnectorError(f"Database error executing: {sql}: {_error_message(e)}") from e

    def ensure_schema(self, name: str) -> None:
        """Create a schema if it does not exist (no-op outside PostgreSQL)."""
        if not self.is_postgres:
            return
        self.execute(f"CREATE SCHEMA IF NOT EXISTS {quote_identifier(name)}")

    def installed_extension_version(self, name: str) -> str | None:
        """Look up an installed extension in pg_extension

        Raises:
            ConnectorError: If the dialect has no extensions or the query fails
        """
        if not self.is_postgres:
            raise ConnectorError(
                f"Extensions are not supported by the {self.dialect_name} dialect",
                code="unsupported_dialect",
            )
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    text("SELECT extversion FROM pg_extension WHERE extname = :name"),
                    {"name": name},
                ).first()
        except SQLAlchemyError as e:
            raise ConnectorError(f"Couldn't query extensions: {_error_message(e)}") from e
        return None if row is None else str(row[0])

    def close(self) -> None:
        self.engine.dispose()
