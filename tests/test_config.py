"""
Tests for intunesync.config module.

Tests catalog loading and descriptor construction including:
- YAML file loading and apiVersion checks
- Org defaults merging (dicts merge, lists replace)
- Strategy and detection variants
- Path resolution relative to the catalog
- Single-application selection
"""

from __future__ import annotations

from pathlib import Path

import pytest

from intunesync.config import (
    FileDetection,
    PageScrape,
    ProductCodeDetection,
    RegistryDetection,
    ReleaseAsset,
    ScriptDetection,
    StaticFallbackOnly,
    descriptor_from_dict,
    load_catalog,
    load_descriptors,
)
from intunesync.config.loader import _deep_merge_dicts
from intunesync.exceptions import ConfigError

pytestmark = pytest.mark.unit

REPO_CATALOG = Path(__file__).resolve().parents[1] / "catalog" / "apps.yaml"


class TestCatalogLoading:
    """Tests for load_catalog."""

    def test_load_simple_catalog(self, create_yaml_file, sample_catalog_data):
        path = create_yaml_file("catalog/apps.yaml", sample_catalog_data)

        catalog = load_catalog(path)

        assert catalog["apiVersion"] == "intunesync/v1"
        assert catalog["apps"][0]["id"] == "widget"

    def test_org_defaults_merged_under_apps(self, tmp_test_dir, create_yaml_file, sample_catalog_data):
        (tmp_test_dir / "defaults").mkdir()
        (tmp_test_dir / "defaults" / "org.yaml").write_text(
            "app_defaults:\n"
            "  supersedence: replace\n"
            "  installer_extensions: ['.msi']\n"
            "  intune:\n"
            "    architectures: x64\n"
            "    run_as_account: system\n"
        )
        sample_catalog_data["apps"][0]["intune"] = {"run_as_account": "user"}
        path = create_yaml_file("catalog/apps.yaml", sample_catalog_data)

        app = load_catalog(path)["apps"][0]

        assert app["supersedence"] == "replace"
        assert app["intune"] == {"architectures": "x64", "run_as_account": "user"}
        assert app["installer_extensions"] == [".msi"]

    def test_unsupported_api_version(self, create_yaml_file, sample_catalog_data):
        sample_catalog_data["apiVersion"] = "intunesync/v0"
        path = create_yaml_file("apps.yaml", sample_catalog_data)

        with pytest.raises(ConfigError, match="Unsupported apiVersion"):
            load_catalog(path)

    def test_empty_apps(self, create_yaml_file):
        path = create_yaml_file("apps.yaml", {"apiVersion": "intunesync/v1", "apps": []})
        with pytest.raises(ConfigError, match="non-empty list"):
            load_catalog(path)

    def test_missing_file(self, tmp_test_dir):
        with pytest.raises(ConfigError, match="not found"):
            load_catalog(tmp_test_dir / "missing.yaml")

    def test_invalid_yaml(self, tmp_test_dir):
        path = tmp_test_dir / "apps.yaml"
        path.write_text("apps: [unclosed\n")
        with pytest.raises(ConfigError, match="Error parsing YAML"):
            load_catalog(path)

    def test_deep_merge_lists_replace(self):
        merged = _deep_merge_dicts({"a": {"x": 1, "l": [1, 2]}}, {"a": {"l": [3]}})
        assert merged == {"a": {"x": 1, "l": [3]}}


class TestDescriptors:
    """Tests for descriptor_from_dict and load_descriptors."""

    def test_strategy_and_fallback(self, tmp_test_dir, sample_catalog_data):
        descriptor = descriptor_from_dict(sample_catalog_data["apps"][0], tmp_test_dir)

        assert isinstance(descriptor.strategy, PageScrape)
        assert descriptor.strategy.kind == "web_scrape"
        assert descriptor.fallback.version == "1.0.0"
        assert isinstance(descriptor.detection, ProductCodeDetection)
        assert descriptor.archive_dir == "widget"
        assert descriptor.supersedence_type == "update"

    def test_github_requires_repo_or_url(self, tmp_test_dir, sample_catalog_data):
        app = sample_catalog_data["apps"][0]
        app["source"] = {"strategy": "api_github", "asset_pattern": ".msi$"}
        with pytest.raises(ConfigError, match="repo"):
            descriptor_from_dict(app, tmp_test_dir)

        app["source"]["repo"] = "owner/repo"
        assert isinstance(descriptor_from_dict(app, tmp_test_dir).strategy, ReleaseAsset)

    def test_static_strategy(self, tmp_test_dir, sample_catalog_data):
        app = sample_catalog_data["apps"][0]
        app["source"] = {"strategy": "static"}
        assert isinstance(descriptor_from_dict(app, tmp_test_dir).strategy, StaticFallbackOnly)

    def test_unknown_strategy(self, tmp_test_dir, sample_catalog_data):
        app = sample_catalog_data["apps"][0]
        app["source"] = {"strategy": "carrier_pigeon"}
        with pytest.raises(ConfigError, match="unknown discovery strategy"):
            descriptor_from_dict(app, tmp_test_dir)

    def test_detection_variants(self, tmp_test_dir, sample_catalog_data):
        app = sample_catalog_data["apps"][0]

        app["detection"] = {"type": "file", "path": "C:\\App", "file_or_folder_name": "app.exe"}
        assert isinstance(descriptor_from_dict(app, tmp_test_dir).detection, FileDetection)

        app["detection"] = {"type": "registry", "key_path": "HKLM\\SOFTWARE\\App", "value_name": "Version"}
        assert isinstance(descriptor_from_dict(app, tmp_test_dir).detection, RegistryDetection)

        app["detection"] = {"type": "script", "script_path": "scripts/detect.ps1"}
        detection = descriptor_from_dict(app, tmp_test_dir).detection
        assert isinstance(detection, ScriptDetection)
        assert detection.script_path == (tmp_test_dir / "scripts" / "detect.ps1").resolve()

        app["detection"] = {"type": "wmi"}
        with pytest.raises(ConfigError, match="unknown detection type"):
            descriptor_from_dict(app, tmp_test_dir)

    def test_extraction_required_when_flagged(self, tmp_test_dir, sample_catalog_data):
        app = sample_catalog_data["apps"][0]
        app["requires_manual_extraction"] = True
        with pytest.raises(ConfigError, match="extraction"):
            descriptor_from_dict(app, tmp_test_dir)

        app["extraction"] = {"command": "{container} -x", "inner_installer": "inner-{version}.msi"}
        descriptor = descriptor_from_dict(app, tmp_test_dir)
        assert descriptor.extraction.command == ("{container}", "-x")

    def test_bad_supersedence(self, tmp_test_dir, sample_catalog_data):
        app = sample_catalog_data["apps"][0]
        app["supersedence"] = "merge"
        with pytest.raises(ConfigError, match="supersedence"):
            descriptor_from_dict(app, tmp_test_dir)

    def test_render_display_name(self, make_descriptor):
        assert make_descriptor().render_display_name("11.0.2") == "Widget 11"
        with pytest.raises(ConfigError, match="unknown token"):
            make_descriptor(display_name="Widget {build}").render_display_name("1.0")

    def test_select_single_app(self, create_yaml_file, sample_catalog_data):
        second = dict(sample_catalog_data["apps"][0], id="gadget")
        sample_catalog_data["apps"].append(second)
        path = create_yaml_file("apps.yaml", sample_catalog_data)

        assert [d.app_id for d in load_descriptors(path)] == ["widget", "gadget"]
        assert [d.app_id for d in load_descriptors(path, "gadget")] == ["gadget"]
        with pytest.raises(ConfigError, match="Unknown app id"):
            load_descriptors(path, "nope")

    def test_duplicate_ids(self, create_yaml_file, sample_catalog_data):
        sample_catalog_data["apps"].append(dict(sample_catalog_data["apps"][0]))
        path = create_yaml_file("apps.yaml", sample_catalog_data)
        with pytest.raises(ConfigError, match="Duplicate"):
            load_descriptors(path)

    def test_shipped_catalog_loads(self):
        descriptors = load_descriptors(REPO_CATALOG)
        kinds = {d.strategy.kind for d in descriptors}
        assert kinds == {"api_json", "api_github", "web_scrape", "url_download", "static"}
