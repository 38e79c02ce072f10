"""
Extension Provisioner

Ensures each declared extension exists before any script runs. Provisioning
is idempotent: the installed state is checked before any creation statement
is issued, and an extension installed at an equal-or-newer version is left
untouched.
"""

import logging
from enum import StrEnum

from pgdeploy.connectors.base import DatabaseConnector
from pgdeploy.connectors.postgres import quote_identifier, quote_literal
from pgdeploy.domain.errors import ConnectorError, ProvisionError
from pgdeploy.models import ExtensionDeclaration

from .version import satisfies_minimum

logger = logging.getLogger(__name__)


class ProvisionOutcome(StrEnum):
    """Result of ensuring one extension"""

    APPLIED = "applied"
    ALREADY_PRESENT = "already_present"


def create_extension_sql(extension: ExtensionDeclaration, default_schema: str) -> str:
    """Build the CREATE EXTENSION statement for a declaration."""
    schema = extension.schema_name or default_schema
    sql = f"CREATE EXTENSION IF NOT EXISTS {quote_identifier(extension.name)}"
    sql += f" WITH SCHEMA {quote_identifier(schema)}"
    if extension.version:
        sql += f" VERSION {quote_literal(extension.version)}"
    return sql


def update_extension_sql(extension: ExtensionDeclaration) -> str:
    """Build the ALTER EXTENSION ... UPDATE statement for a declaration."""
    if not extension.version:
        raise ValueError(f"Extension {extension.name} has no requested version")
    return (
        f"ALTER EXTENSION {quote_identifier(extension.name)} "
        f"UPDATE TO {quote_literal(extension.version)}"
    )


class ExtensionProvisioner:
    """Provision manifest extensions through a database connector

    Attributes:
        connector: Target database connector
        default_schema: Schema used when a declaration has no override
    """

    def __init__(self, connector: DatabaseConnector, default_schema: str) -> None:
        self.connector = connector
        self.default_schema = default_schema

    def ensure(self, extension: ExtensionDeclaration) -> ProvisionOutcome:
        """Ensure an extension is installed

        Args:
            extension: Declaration from the manifest (never mutated)

        Returns:
            APPLIED if a create/update statement ran, ALREADY_PRESENT otherwise

        Raises:
            ProvisionError: If the state cannot be read or the statement fails
        """
        try:
            installed = self.connector.installed_extension_version(extension.name)
        except ConnectorError as e:
            raise ProvisionError(
                f"Couldn't inspect extension {extension.name}: {e}", extension=extension.name
            ) from e

        if installed is None:
            self._run(extension, [create_extension_sql(extension, self.default_schema)])
            logger.info("Created extension %s", extension.name)
            return ProvisionOutcome.APPLIED

        if not extension.version:
            logger.debug("Extension %s already installed (%s)", extension.name, installed)
            return ProvisionOutcome.ALREADY_PRESENT

        satisfied = satisfies_minimum(installed, extension.version)
        if satisfied is None:
            logger.warning(
                "Extension %s installed at %s, requested %s; versions are not comparable, "
                "leaving it as is",
                extension.name,
                installed,
                extension.version,
            )
            return ProvisionOutcome.ALREADY_PRESENT
        if satisfied:
            logger.debug(
                "Extension %s at %s satisfies %s", extension.name, installed, extension.version
            )
            return ProvisionOutcome.ALREADY_PRESENT

        self._run(extension, [update_extension_sql(extension)])
        logger.info(
            "Updated extension %s from %s to %s", extension.name, installed, extension.version
        )
        return ProvisionOutcome.APPLIED

    def _run(self, extension: ExtensionDeclaration, statements: list[str]) -> None:
        schema = extension.schema_name or self.default_schema
        try:
            self.connector.ensure_schema(schema)
            for statement in statements:
                self.connector.execute(statement)
        except ConnectorError as e:
            raise ProvisionError(
                f"Couldn't provision extension {extension.name}: {e}", extension=extension.name
            ) from e
