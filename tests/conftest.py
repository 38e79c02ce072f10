from pathlib import Path

import pytest

from pgdeploy.config import DeployConfig
from pgdeploy.connectors.postgres import SQLAlchemyConnector
from pgdeploy.core.ledger import MemoryLedger
from pgdeploy.core.tracker import ExecutionTracker
from tests.utils import FakeConnector, base_manifest, write_project


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create an empty project directory"""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def seed_project(project_root: Path) -> Path:
    """Project with pre/post scripts, core migrations and an excluded file"""
    return write_project(
        project_root,
        base_manifest(
            pre_deploy_scripts=["pre/roles.sql"],
            post_deploy_scripts=["seed/*.sql", "seed/lookup.sql"],
            file_exclude_globs=["**/geo/**/*.sql"],
        ),
        {
            "pre/roles.sql": "CREATE TABLE roles (id INTEGER PRIMARY KEY, name TEXT);",
            "migrations/001_users.sql": "CREATE TABLE users (id INTEGER PRIMARY KEY);",
            "migrations/002_orders.sql": "CREATE TABLE orders (id INTEGER PRIMARY KEY);",
            "migrations/geo/003_points.sql": "CREATE TABLE points (id INTEGER PRIMARY KEY);",
            "seed/countries.sql": "INSERT INTO roles (id, name) VALUES (1, 'admin');",
            "seed/lookup.sql": "INSERT INTO roles (id, name) VALUES (2, 'reader');",
        },
    )


@pytest.fixture
def fake_connector() -> FakeConnector:
    """Connector double that records every call"""
    return FakeConnector()


@pytest.fixture
def sqlite_connector(tmp_path: Path):
    """SQLAlchemy connector over a file-backed SQLite database"""
    connector = SQLAlchemyConnector(f"sqlite:///{tmp_path / 'target.db'}")
    yield connector
    connector.close()


@pytest.fixture
def memory_ledger() -> MemoryLedger:
    return MemoryLedger()


@pytest.fixture
def tracker(memory_ledger: MemoryLedger) -> ExecutionTracker:
    return ExecutionTracker(memory_ledger)


@pytest.fixture
def deploy_config() -> DeployConfig:
    return DeployConfig(database_url="sqlite://")
