"""
Tests for intunesync.validation module.

Tests catalog validation including:
- Valid catalogs (including the shipped one)
- Missing fields, unknown strategies, duplicate ids
- Strategy-specific configuration errors
- Fallback warnings and static strategy requirements
"""

from __future__ import annotations

from pathlib import Path

import pytest

from intunesync.validation import validate_catalog

pytestmark = pytest.mark.unit

REPO_CATALOG = Path(__file__).resolve().parents[1] / "catalog" / "apps.yaml"


def test_valid_catalog(create_yaml_file, sample_catalog_data):
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "valid"
    assert result.errors == []
    assert result.app_count == 1


def test_shipped_catalog_is_valid():
    result = validate_catalog(REPO_CATALOG)
    assert result.status == "valid", result.errors


def test_missing_file(tmp_test_dir):
    result = validate_catalog(tmp_test_dir / "missing.yaml")
    assert result.status == "invalid"
    assert "not found" in result.errors[0]


def test_invalid_yaml(tmp_test_dir):
    path = tmp_test_dir / "apps.yaml"
    path.write_text("apps: [unclosed\n")

    result = validate_catalog(path)

    assert result.status == "invalid"


def test_missing_required_fields(create_yaml_file, sample_catalog_data):
    del sample_catalog_data["apps"][0]["publisher"]
    del sample_catalog_data["apps"][0]["detection"]
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "invalid"
    assert any("publisher" in e for e in result.errors)
    assert any("detection" in e for e in result.errors)


def test_unknown_strategy(create_yaml_file, sample_catalog_data):
    sample_catalog_data["apps"][0]["source"] = {"strategy": "ftp_listing"}
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "invalid"
    assert any("ftp_listing" in e for e in result.errors)


def test_strategy_config_errors(create_yaml_file, sample_catalog_data):
    sample_catalog_data["apps"][0]["source"] = {"strategy": "web_scrape", "page_url": "x"}
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "invalid"
    assert any("pattern" in e for e in result.errors)


def test_duplicate_ids(create_yaml_file, sample_catalog_data):
    sample_catalog_data["apps"].append(dict(sample_catalog_data["apps"][0]))
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert any("Duplicate" in e for e in result.errors)


def test_missing_fallback_is_warning(create_yaml_file, sample_catalog_data):
    del sample_catalog_data["apps"][0]["fallback"]
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "valid"
    assert any("no fallback" in w for w in result.warnings)


def test_static_without_fallback(create_yaml_file, sample_catalog_data):
    app = sample_catalog_data["apps"][0]
    app["source"] = {"strategy": "static"}
    del app["fallback"]
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "invalid"
    assert any("static strategy needs a fallback" in e for e in result.errors)


def test_extraction_block_required(create_yaml_file, sample_catalog_data):
    sample_catalog_data["apps"][0]["requires_manual_extraction"] = True
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "invalid"
    assert any("extraction" in e for e in result.errors)


def test_bad_detection(create_yaml_file, sample_catalog_data):
    sample_catalog_data["apps"][0]["detection"] = {"type": "file"}
    path = create_yaml_file("apps.yaml", sample_catalog_data)

    result = validate_catalog(path)

    assert result.status == "invalid"
