"""
Tests for intunesync.detection module.

Tests Win32 app definition bodies including:
- Detection rule variants and Graph rule types
- Auto-updating applications (greaterThanOrEqual)
- Opaque versions (existence checks)
- Command rendering and requirement fields
"""

from __future__ import annotations

import base64

import pytest

from intunesync.config.descriptor import (
    FileDetection,
    ProductCodeDetection,
    RegistryDetection,
    ScriptDetection,
)
from intunesync.detection import build_detection_rule, build_entry_spec, build_requirements
from intunesync.exceptions import ConfigError
from intunesync.io.intunewin import read_archive_metadata

pytestmark = pytest.mark.unit

PRODUCT_CODE = "{11111111-2222-3333-4444-555555555555}"


@pytest.fixture
def msi_metadata(make_intunewin):
    return read_archive_metadata(make_intunewin("widget-1.0.0.intunewin", msi_version="1.0.0"))


@pytest.fixture
def exe_metadata(make_intunewin):
    return read_archive_metadata(
        make_intunewin("setup.intunewin", setup_file="setup.exe", msi_version=None)
    )


class TestDetectionRules:
    """Tests for build_detection_rule."""

    def test_file_rule(self, make_descriptor, exe_metadata):
        descriptor = make_descriptor()
        rule = build_detection_rule(descriptor, descriptor.detection, exe_metadata, "2.5.0")

        assert rule["@odata.type"] == "#microsoft.graph.win32LobAppFileSystemRule"
        assert rule["operationType"] == "version"
        assert rule["operator"] == "equal"
        assert rule["comparisonValue"] == "2.5.0"

    def test_auto_update_uses_greater_or_equal(self, make_descriptor, exe_metadata):
        descriptor = make_descriptor(auto_update=True)
        rule = build_detection_rule(descriptor, descriptor.detection, exe_metadata, "2.5.0")
        assert rule["operator"] == "greaterThanOrEqual"

    def test_opaque_version_falls_back_to_exists(self, make_descriptor, exe_metadata):
        descriptor = make_descriptor()
        rule = build_detection_rule(descriptor, descriptor.detection, exe_metadata, "Latest")

        assert rule["operationType"] == "exists"
        assert rule["comparisonValue"] is None

    def test_product_code_from_archive(self, make_descriptor, msi_metadata):
        descriptor = make_descriptor(detection=ProductCodeDetection())
        rule = build_detection_rule(descriptor, descriptor.detection, msi_metadata, "1.0.0")

        assert rule["@odata.type"] == "#microsoft.graph.win32LobAppProductCodeRule"
        assert rule["productCode"] == PRODUCT_CODE
        assert rule["productVersionOperator"] == "equal"
        assert rule["productVersion"] == "1.0.0"

    def test_product_code_required(self, make_descriptor, exe_metadata):
        descriptor = make_descriptor(detection=ProductCodeDetection())
        with pytest.raises(ConfigError, match="product_code"):
            build_detection_rule(descriptor, descriptor.detection, exe_metadata, "1.0.0")

    def test_script_rule(self, make_descriptor, exe_metadata, tmp_path):
        script = tmp_path / "detect.ps1"
        script.write_text("Write-Output 'found'")
        descriptor = make_descriptor(detection=ScriptDetection(script_path=script))

        rule = build_detection_rule(descriptor, descriptor.detection, exe_metadata, "1.0")

        assert rule["@odata.type"] == "#microsoft.graph.win32LobAppPowerShellScriptRule"
        assert base64.b64decode(rule["scriptContent"]) == b"Write-Output 'found'"

    def test_missing_script(self, make_descriptor, exe_metadata, tmp_path):
        descriptor = make_descriptor(detection=ScriptDetection(script_path=tmp_path / "nope.ps1"))
        with pytest.raises(ConfigError, match="detection script"):
            build_detection_rule(descriptor, descriptor.detection, exe_metadata, "1.0")

    def test_registry_rule(self, make_descriptor, exe_metadata):
        descriptor = make_descriptor(
            detection=RegistryDetection(key_path=r"HKLM\SOFTWARE\Widget", value_name="Version")
        )
        rule = build_detection_rule(descriptor, descriptor.detection, exe_metadata, "3.0.21")

        assert rule["@odata.type"] == "#microsoft.graph.win32LobAppRegistryRule"
        assert rule["keyPath"] == r"HKLM\SOFTWARE\Widget"
        assert rule["comparisonValue"] == "3.0.21"


class TestEntrySpec:
    """Tests for build_entry_spec and build_requirements."""

    def test_commands_rendered(self, make_descriptor, msi_metadata):
        spec = build_entry_spec(make_descriptor(), msi_metadata, "1.0.0")

        assert spec.display_name == "Widget 1"
        assert spec.version == "1.0.0"
        assert spec.install_command == 'msiexec /i "widget-1.0.0.msi" /qn'
        assert spec.uninstall_command == f"msiexec /x {PRODUCT_CODE} /qn"
        assert spec.description == "Widget 1"
        assert len(spec.rules) == 1

    def test_unknown_command_token(self, make_descriptor, msi_metadata):
        descriptor = make_descriptor(install_command="{installer} /S")
        with pytest.raises(ConfigError, match="unknown token"):
            build_entry_spec(descriptor, msi_metadata, "1.0.0")

    def test_requirements(self, make_descriptor):
        descriptor = make_descriptor(
            detection=FileDetection(path="C:\\", file_or_folder_name="x"),
            minimum_os="W10_22H2",
            run_as_account="user",
        )
        requirements = build_requirements(descriptor)

        assert requirements["applicableArchitectures"] == "x64"
        assert requirements["minimumSupportedOperatingSystem"] == {"v10_22H2": True}
        assert requirements["minimumSupportedWindowsRelease"] == "22H2"
        assert requirements["installExperience"]["runAsAccount"] == "user"
        assert {"returnCode": 3010, "type": "softReboot"} in requirements["returnCodes"]
