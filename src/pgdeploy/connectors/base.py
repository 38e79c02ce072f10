"""
Base Database Connector Protocol

Defines the contract the deployment engine consumes. Connectors own the
connection/session; the engine treats them as opaque and executes scripts
strictly one at a time through a single connector per run.
"""

from typing import Literal, Protocol

from pydantic import BaseModel, Field


class ScriptExecution(BaseModel):
    """Result of executing one script

    Attributes:
        status: success when every statement ran and the transaction committed
        execution_time_ms: Time taken to execute in milliseconds
        statements_executed: Number of statements that ran before stopping
        error_message: Error details if execution failed
        timed_out: True if the failure was a statement timeout
        transactional: Whether the script ran inside one transaction
    """

    status: Literal["success", "failed"] = Field(..., description="Execution status")
    execution_time_ms: int = Field(default=0, description="Execution time in milliseconds")
    statements_executed: int = Field(default=0, description="Statements executed")
    error_message: str | None = Field(None, description="Error message if failed")
    timed_out: bool = Field(default=False, description="Failed because of a timeout")
    transactional: bool = Field(default=True, description="Ran inside one transaction")

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class DatabaseConnector(Protocol):
    """Protocol for executing deployment scripts against a database

    `execute_script` reports SQL failures in its result instead of raising;
    `execute` is for statements that must succeed and raises ConnectorError.
    """

    dialect_name: str

    def execute_script(
        self,
        sql: str,
        *,
        schema: str | None,
        timeout_seconds: int | None,
        transactional: bool = True,
    ) -> ScriptExecution:
        """Run a script, committing on success and rolling back on failure"""
        ...

    def execute(self, sql: str) -> None:
        """Run one statement in its own transaction

        Raises:
            ConnectorError: If the statement fails
        """
        ...

    def ensure_schema(self, name: str) -> None:
        """Create a schema if it does not exist

        Raises:
            ConnectorError: If the schema cannot be created
        """
        ...

    def installed_extension_version(self, name: str) -> str | None:
        """Return the installed version of an extension, or None if absent

        Raises:
            ConnectorError: If the catalog cannot be queried
        """
        ...

    def close(self) -> None: ...
