"""Helpers for invoking the pgdeploy CLI in tests."""

from __future__ import annotations

import json
from typing import Any

from click.testing import CliRunner, Result

from pgdeploy.cli import cli


def invoke_cli(*args: str, env: dict[str, str] | None = None) -> Result:
    """Invoke the Click CLI with an isolated environment."""
    runner = CliRunner()
    return runner.invoke(cli, list(args), env=env or {}, catch_exceptions=True)


def json_payload(result: Result) -> dict[str, Any]:
    """Decode the JSON envelope printed by a --json invocation."""
    return json.loads(result.stdout)
