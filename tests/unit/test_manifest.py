"""Unit tests for manifest parsing and loading."""

from pathlib import Path

import pydantic
import pytest

from pgdeploy.core.manifest import find_manifest, load_manifest, parse
from pgdeploy.domain.errors import ValidationError
from pgdeploy.models import Phase, normalize_script_path


class TestParse:
    def test_minimal_manifest(self) -> None:
        manifest = parse({"version": "1.0", "default_schema": "app"})
        assert manifest.default_schema == "app"
        assert manifest.pre_deploy_scripts == []
        assert manifest.post_deploy_scripts == []
        assert manifest.extensions == []

    def test_numeric_version_is_accepted(self) -> None:
        assert parse({"version": 1, "default_schema": "app"}).version == "1"

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse(["version", "1"])
        assert exc_info.value.code == "manifest_malformed"

    def test_missing_required_keys(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse({"pre_deploy_scripts": []})
        assert exc_info.value.code == "manifest_missing_keys"
        assert "default_schema" in exc_info.value.message
        assert "version" in exc_info.value.message

    def test_unsupported_version(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse({"version": "2.0", "default_schema": "app"})
        assert exc_info.value.code == "unsupported_version"

    @pytest.mark.parametrize("schema", ["", "1app", "app-schema", "a" * 64])
    def test_invalid_default_schema(self, schema: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse({"version": "1", "default_schema": schema})
        assert exc_info.value.code == "invalid_manifest"
        assert any(problem.startswith("default_schema") for problem in exc_info.value.problems)

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse({"version": "1", "default_schema": "app", "templates": {}})

    def test_script_paths_are_normalized(self) -> None:
        manifest = parse(
            {
                "version": "1",
                "default_schema": "app",
                "pre_deploy_scripts": ["./pre//setup.sql", "pre\\grants.sql"],
            }
        )
        assert manifest.pre_deploy_scripts == ["pre/setup.sql", "pre/grants.sql"]
        assert manifest.scripts_for(Phase.PRE) == ["pre/setup.sql", "pre/grants.sql"]
        assert manifest.scripts_for(Phase.CORE) == []

    def test_duplicate_paths_within_a_list_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse(
                {
                    "version": "1",
                    "default_schema": "app",
                    "post_deploy_scripts": ["seed/a.sql", "./seed/a.sql"],
                }
            )
        assert "duplicate script path" in exc_info.value.message

    @pytest.mark.parametrize("path", ["/etc/passwd.sql", "../outside.sql", "seed/../../x.sql"])
    def test_paths_outside_project_rejected(self, path: str) -> None:
        with pytest.raises(ValidationError):
            parse({"version": "1", "default_schema": "app", "pre_deploy_scripts": [path]})

    def test_exclude_globs_sorted_and_deduplicated(self) -> None:
        manifest = parse(
            {
                "version": "1",
                "default_schema": "app",
                "file_exclude_globs": ["**/tmp/*.sql", "**/geo/**/*.sql", "**/tmp/*.sql"],
            }
        )
        assert manifest.file_exclude_globs == ["**/geo/**/*.sql", "**/tmp/*.sql"]

    def test_extensions_accept_names_and_declarations(self) -> None:
        manifest = parse(
            {
                "version": "1",
                "default_schema": "app",
                "extensions": ["pgcrypto", {"name": "postgis", "schema": "gis", "version": "3.4"}],
            }
        )
        pgcrypto, postgis = manifest.extensions
        assert pgcrypto.name == "pgcrypto"
        assert pgcrypto.schema_name is None
        assert postgis.schema_name == "gis"
        assert postgis.version == "3.4"

    def test_duplicate_extensions_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse({"version": "1", "default_schema": "app", "extensions": ["postgis", "postgis"]})

    def test_manifest_is_immutable(self) -> None:
        manifest = parse({"version": "1", "default_schema": "app"})
        with pytest.raises(pydantic.ValidationError):
            manifest.default_schema = "other"  # type: ignore[misc]


class TestNormalizeScriptPath:
    def test_windows_separators(self) -> None:
        assert normalize_script_path("seed\\data\\a.sql") == "seed/data/a.sql"

    def test_empty_path_rejected(self) -> None:
        with pytest.raises(ValueError):
            normalize_script_path("  ")


class TestLoadManifest:
    def test_load_json(self, tmp_path: Path) -> None:
        path = tmp_path / "pgdeploy.json"
        path.write_text('{"version": "1.0", "default_schema": "app"}', encoding="utf-8")
        assert load_manifest(path).default_schema == "app"

    def test_load_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "pgdeploy.toml"
        path.write_text(
            'version = "1.0"\n'
            'default_schema = "app"\n'
            'post_deploy_scripts = ["seed/*.sql"]\n'
            "\n"
            "[[extensions]]\n"
            'name = "postgis"\n'
            'version = "3.4"\n',
            encoding="utf-8",
        )
        manifest = load_manifest(path)
        assert manifest.post_deploy_scripts == ["seed/*.sql"]
        assert manifest.extensions[0].name == "postgis"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError) as exc_info:
            load_manifest(tmp_path / "nope.json")
        assert exc_info.value.code == "manifest_unreadable"

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "pgdeploy.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValidationError) as exc_info:
            load_manifest(path)
        assert exc_info.value.code == "manifest_malformed"

    def test_find_manifest_prefers_json(self, tmp_path: Path) -> None:
        (tmp_path / "pgdeploy.toml").write_text("", encoding="utf-8")
        (tmp_path / "pgdeploy.json").write_text("{}", encoding="utf-8")
        assert find_manifest(tmp_path).name == "pgdeploy.json"

    def test_find_manifest_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            find_manifest(tmp_path)
