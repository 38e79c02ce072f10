"""
Database connectors

The engine depends only on the DatabaseConnector protocol; SQLAlchemyConnector
is the bundled implementation.
"""

from .base import DatabaseConnector, ScriptExecution
from .postgres import SQLAlchemyConnector, quote_identifier, quote_literal

__all__ = [
    "DatabaseConnector",
    "ScriptExecution",
    "SQLAlchemyConnector",
    "quote_identifier",
    "quote_literal",
]
