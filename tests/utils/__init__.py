"""Shared test utilities."""

from .cli_helpers import invoke_cli, json_payload
from .fakes import FakeConnector, ScriptCall
from .project_builder import base_manifest, write_project

__all__ = [
    "invoke_cli",
    "json_payload",
    "FakeConnector",
    "ScriptCall",
    "base_manifest",
    "write_project",
]
