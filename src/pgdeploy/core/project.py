"""Project repository facade over manifest loading and planning."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pgdeploy.models import Manifest

from .manifest import find_manifest, load_manifest
from .planner import ExecutionPlan, build_plan
from .resolver import DEFAULT_FINGERPRINT_WORKERS
from .sources import DEFAULT_MIGRATIONS_GLOB, DirectoryMigrationSource, FileSystemScriptSource


@dataclass(slots=True)
class ProjectRepository:
    """Application-facing access to a deployment project on disk.

    Attributes:
        migrations_glob: Core migration pattern (None: no core migrations)
        fingerprint_workers: Threads used to fingerprint scripts
    """

    migrations_glob: str | None = DEFAULT_MIGRATIONS_GLOB
    fingerprint_workers: int = DEFAULT_FINGERPRINT_WORKERS

    def manifest_path(self, *, project_root: Path, manifest: Path | None = None) -> Path:
        """Explicit manifest path, or the default manifest of the project."""
        if manifest is not None:
            return manifest if manifest.is_absolute() else project_root / manifest
        return find_manifest(project_root)

    def read_manifest(self, *, project_root: Path, manifest: Path | None = None) -> Manifest:
        """Load and validate the project manifest."""
        return load_manifest(self.manifest_path(project_root=project_root, manifest=manifest))

    def plan(self, *, project_root: Path, manifest: Manifest) -> ExecutionPlan:
        """Resolve every phase of the manifest and build the execution plan."""
        core_source = None
        if self.migrations_glob:
            core_source = DirectoryMigrationSource(self.migrations_glob)
        return build_plan(
            manifest,
            project_root,
            core_source,
            source=FileSystemScriptSource(project_root),
            max_workers=self.fingerprint_workers,
        )

    def load(
        self, *, project_root: Path, manifest: Path | None = None
    ) -> tuple[Manifest, ExecutionPlan]:
        """Load the manifest and plan it in one step."""
        loaded = self.read_manifest(project_root=project_root, manifest=manifest)
        return loaded, self.plan(project_root=project_root, manifest=loaded)
