"""
Pytest configuration and shared fixtures for intunesync tests.

This module provides reusable fixtures and test utilities used across
the test suite.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
import zipfile

import pytest
import yaml

from intunesync.config.descriptor import (
    ApplicationDescriptor,
    FileDetection,
    PageScrape,
)
from intunesync.logging import SilentLogger, set_global_logger


@pytest.fixture(autouse=True)
def silent_global_logger():
    """Reset the global logger so tests never inherit CLI verbosity."""
    set_global_logger(SilentLogger())
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def make_descriptor():
    """
    Factory fixture for ApplicationDescriptor records.

    Usage:
        descriptor = make_descriptor(display_name="Widget {major}")
    """

    def _make(**overrides: Any) -> ApplicationDescriptor:
        fields: dict[str, Any] = {
            "app_id": "widget",
            "display_name": "Widget {major}",
            "publisher": "Widget Corp",
            "strategy": PageScrape(
                page_url="https://widget.example.com/download",
                pattern=r"widget-(\d+\.\d+\.\d+)\.msi",
                url_template="https://cdn.example.com/widget-{version}.msi",
            ),
            "install_command": 'msiexec /i "{setup_file}" /qn',
            "uninstall_command": "msiexec /x {product_code} /qn",
            "detection": FileDetection(
                path=r"%ProgramFiles%\Widget", file_or_folder_name="widget.exe"
            ),
            "archive_dir": "widget",
        }
        fields.update(overrides)
        return ApplicationDescriptor(**fields)

    return _make


@pytest.fixture
def sample_catalog_data() -> dict[str, Any]:
    """
    Provide sample catalog configuration data.

    Returns a complete catalog structure for testing.
    """
    return {
        "apiVersion": "intunesync/v1",
        "apps": [
            {
                "id": "widget",
                "display_name": "Widget {major}",
                "publisher": "Widget Corp",
                "source": {
                    "strategy": "web_scrape",
                    "page_url": "https://widget.example.com/download",
                    "pattern": r"widget-(\d+\.\d+\.\d+)\.msi",
                    "url_template": "https://cdn.example.com/widget-{version}.msi",
                },
                "fallback": {
                    "url": "https://cdn.example.com/widget-1.0.0.msi",
                    "version": "1.0.0",
                    "filename": "widget-{version}.msi",
                },
                "install_command": 'msiexec /i "{setup_file}" /qn',
                "uninstall_command": "msiexec /x {product_code} /qn",
                "detection": {"type": "product_code"},
            }
        ],
    }


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("catalog/apps.yaml", {"key": "value"})
    """

    def _create(filename: str, data: dict[str, Any]) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


DETECTION_XML = """<?xml version="1.0" encoding="utf-8"?>
<ApplicationInfo ToolVersion="1.8.6">
  <Name>{setup_file}</Name>
  <UnencryptedContentSize>{size}</UnencryptedContentSize>
  <FileName>IntunePackage.intunewin</FileName>
  <SetupFile>{setup_file}</SetupFile>
  <EncryptionInfo>
    <EncryptionKey>ZW5jcnlwdGlvbg==</EncryptionKey>
    <MacKey>bWFj</MacKey>
    <InitializationVector>aXY=</InitializationVector>
    <Mac>bWFjdmFsdWU=</Mac>
    <ProfileIdentifier>ProfileVersion1</ProfileIdentifier>
    <FileDigest>ZGlnZXN0</FileDigest>
    <FileDigestAlgorithm>SHA256</FileDigestAlgorithm>
  </EncryptionInfo>
  {msi_info}
</ApplicationInfo>
"""

MSI_INFO = """<MsiInfo>
    <MsiProductCode>{{11111111-2222-3333-4444-555555555555}}</MsiProductCode>
    <MsiProductVersion>{version}</MsiProductVersion>
    <MsiUpgradeCode>{{66666666-7777-8888-9999-000000000000}}</MsiUpgradeCode>
    <MsiPublisher>Widget Corp</MsiPublisher>
  </MsiInfo>"""


@pytest.fixture
def make_intunewin(tmp_test_dir: Path):
    """
    Factory fixture building a minimal .intunewin archive.

    Usage:
        archive = make_intunewin("widget-1.0.0.intunewin", msi_version="1.0.0")
    """

    def _make(
        name: str,
        setup_file: str = "widget-1.0.0.msi",
        msi_version: str | None = "1.0.0",
        payload: bytes = b"encrypted-payload",
    ) -> Path:
        path = tmp_test_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        msi_info = MSI_INFO.format(version=msi_version) if msi_version else ""
        xml = DETECTION_XML.format(setup_file=setup_file, size=1234, msi_info=msi_info)
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("IntuneWinPackage/Metadata/Detection.xml", xml)
            zf.writestr("IntuneWinPackage/Contents/IntunePackage.intunewin", payload)
        return path

    return _make
