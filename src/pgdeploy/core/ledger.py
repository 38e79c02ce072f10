"""
Applied-scripts ledger stores

The ledger is persisted state that survives process invocations: created on
the first run, read and written thereafter, never deleted automatically. One
record per normalized script path.

- FileLedger: JSON document in the project (.pgdeploy/ledger.json)
- DatabaseLedger: table in the target database (pgdeploy_applied_scripts)
- MemoryLedger: process-local, for dry runs and tests
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import pydantic
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    delete,
    insert,
    inspect,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pgdeploy.connectors.postgres import quote_identifier
from pgdeploy.domain.errors import LedgerError
from pgdeploy.models import AppliedRecord

logger = logging.getLogger(__name__)

LEDGER_DIR = ".pgdeploy"
LEDGER_FILENAME = "ledger.json"
LEDGER_TABLE = "pgdeploy_applied_scripts"
LEDGER_FORMAT_VERSION = 1


class LedgerStore(Protocol):
    """Persistent store of AppliedRecords keyed by script path"""

    def get(self, path: str) -> AppliedRecord | None: ...

    def put(self, record: AppliedRecord) -> None: ...

    def all(self) -> list[AppliedRecord]: ...


def _sorted_records(records: list[AppliedRecord]) -> list[AppliedRecord]:
    return sorted(records, key=lambda record: (record.applied_at, record.path))


class MemoryLedger:
    """Ledger held in memory only"""

    def __init__(self, records: list[AppliedRecord] | None = None) -> None:
        self._records = {record.path: record for record in records or []}

    def get(self, path: str) -> AppliedRecord | None:
        return self._records.get(path)

    def put(self, record: AppliedRecord) -> None:
        self._records[record.path] = record

    def all(self) -> list[AppliedRecord]:
        return _sorted_records(list(self._records.values()))


def get_ledger_file_path(project_root: Path) -> Path:
    """Get the default ledger file path for a project"""
    return project_root / LEDGER_DIR / LEDGER_FILENAME


def _write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Atomically write JSON payload to file with deterministic formatting."""
    path.parent.mkdir(parents=True, exist_ok=True)
    file_descriptor, temp_path = tempfile.mkstemp(
        prefix=f"{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(file_descriptor, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True)
            handle.write("\n")
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class FileLedger:
    """Ledger stored as a JSON file

    Every put rewrites the whole file atomically, so a crash never leaves a
    half-written ledger behind.

    Attributes:
        path: Ledger file path
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._records: dict[str, AppliedRecord] | None = None

    def _load(self) -> dict[str, AppliedRecord]:
        if self._records is not None:
            return self._records
        if not self.path.exists():
            self._records = {}
            return self._records
        try:
            with open(self.path, encoding="utf-8") as f:
                payload = json.load(f)
            records = [
                AppliedRecord.model_validate(raw) for raw in payload.get("records", {}).values()
            ]
        except (OSError, json.JSONDecodeError, AttributeError, pydantic.ValidationError) as e:
            raise LedgerError(f"Couldn't read ledger file {self.path}: {e}") from e
        self._records = {record.path: record for record in records}
        logger.debug("Loaded %d ledger records from %s", len(records), self.path)
        return self._records

    def get(self, path: str) -> AppliedRecord | None:
        return self._load().get(path)

    def put(self, record: AppliedRecord) -> None:
        records = self._load()
        records[record.path] = record
        payload = {
            "version": LEDGER_FORMAT_VERSION,
            "records": {
                path: stored.model_dump(mode="json") for path, stored in records.items()
            },
        }
        try:
            _write_json_atomic(self.path, payload)
        except OSError as e:
            raise LedgerError(f"Couldn't write ledger file {self.path}: {e}") from e

    def all(self) -> list[AppliedRecord]:
        return _sorted_records(list(self._load().values()))


class DatabaseLedger:
    """Ledger stored in a table of the target database

    Creates and manages <schema>.pgdeploy_applied_scripts on first use.

    Attributes:
        engine: SQLAlchemy engine of the target database
        schema: Schema holding the ledger table (None: default schema)
        read_only: Never create the table; a missing table reads as empty
    """

    def __init__(
        self, engine: Engine, schema: str | None = None, *, read_only: bool = False
    ) -> None:
        self.engine = engine
        self.schema = schema
        self.read_only = read_only
        self.metadata = MetaData(schema=schema)
        self.table = Table(
            LEDGER_TABLE,
            self.metadata,
            Column("path", String(1024), primary_key=True),
            Column("fingerprint", String(64), nullable=False),
            Column("phase", String(8), nullable=False),
            Column("applied_at", DateTime(timezone=True), nullable=False),
            Column("outcome", String(16), nullable=False),
            Column("execution_time_ms", Integer, nullable=False, default=0),
        )
        self._ready = False
        self._missing = False

    def ensure_tracking_table(self) -> None:
        """Create the tracking schema and table if needed"""
        if self._ready:
            return
        if self.read_only:
            try:
                exists = inspect(self.engine).has_table(LEDGER_TABLE, schema=self.schema)
            except SQLAlchemyError as e:
                raise LedgerError(f"Couldn't inspect ledger table: {e}") from e
            self._missing = not exists
            self._ready = True
            return
        try:
            with self.engine.begin() as conn:
                if self.schema and self.engine.dialect.name == "postgresql":
                    conn.exec_driver_sql(
                        f"CREATE SCHEMA IF NOT EXISTS {quote_identifier(self.schema)}"
                    )
                self.metadata.create_all(conn, checkfirst=True)
        except SQLAlchemyError as e:
            raise LedgerError(f"Couldn't create ledger table: {e}") from e
        self._ready = True

    def _row_to_record(self, row: Any) -> AppliedRecord:
        return AppliedRecord(
            path=row.path,
            fingerprint=row.fingerprint,
            phase=row.phase,
            applied_at=row.applied_at,
            outcome=row.outcome,
            execution_time_ms=row.execution_time_ms or 0,
        )

    def get(self, path: str) -> AppliedRecord | None:
        self.ensure_tracking_table()
        if self._missing:
            return None
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(self.table).where(self.table.c.path == path)).first()
        except SQLAlchemyError as e:
            raise LedgerError(f"Couldn't read ledger record for {path}: {e}") from e
        return None if row is None else self._row_to_record(row)

    def put(self, record: AppliedRecord) -> None:
        if self.read_only:
            raise LedgerError(f"Ledger is read-only; cannot record {record.path}")
        self.ensure_tracking_table()
        values = record.model_dump()
        values["phase"] = record.phase.value
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.table).where(self.table.c.path == record.path))
                conn.execute(insert(self.table).values(**values))
        except SQLAlchemyError as e:
            raise LedgerError(f"Couldn't write ledger record for {record.path}: {e}") from e

    def all(self) -> list[AppliedRecord]:
        self.ensure_tracking_table()
        if self._missing:
            return []
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(self.table)).all()
        except SQLAlchemyError as e:
            raise LedgerError(f"Couldn't read ledger: {e}") from e
        return _sorted_records([self._row_to_record(row) for row in rows])
