# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Intune Win32 app definition bodies for intunesync.

Turns a descriptor, the archive metadata and the candidate version into the
pieces of a Graph ``win32LobApp``: install/uninstall command lines,
detection rules and requirement settings.

Detection rule variants map to Graph rule types:

    file          -> win32LobAppFileSystemRule
    product_code  -> win32LobAppProductCodeRule
    script        -> win32LobAppPowerShellScriptRule
    registry      -> win32LobAppRegistryRule

Applications flagged ``auto_update`` update themselves on clients, so their
version comparisons use ``greaterThanOrEqual``; a client that is already
ahead of the published version must still count as installed.

Example:
    ```python
    from intunesync.detection import build_entry_spec

    spec = build_entry_spec(descriptor, metadata, "25.01")
    spec.display_name    # "7-Zip 25"
    spec.rules[0]["@odata.type"]
    # '#microsoft.graph.win32LobAppProductCodeRule'
    ```
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from intunesync.config.descriptor import (
    ApplicationDescriptor,
    DetectionRule,
    FileDetection,
    ProductCodeDetection,
    RegistryDetection,
    ScriptDetection,
)
from intunesync.exceptions import ConfigError
from intunesync.io.intunewin import ArchiveMetadata
from intunesync.versioning.keys import parse_dotted

GRAPH_TYPE = "#microsoft.graph."

# Intune defaults for MSI/EXE installers
DEFAULT_RETURN_CODES = (
    (0, "success"),
    (1707, "success"),
    (3010, "softReboot"),
    (1641, "hardReboot"),
    (1618, "retry"),
)


@dataclass(frozen=True)
class AppEntrySpec:
    """Everything needed to create one Win32 app entry in Intune.

    Attributes:
        display_name: Rendered display name ("7-Zip 25").
        version: Candidate version, recorded as displayVersion.
        publisher: Publisher shown in the Company Portal.
        description: Description shown in the Company Portal.
        setup_file: Entry file inside the archive.
        install_command: Rendered install command line.
        uninstall_command: Rendered uninstall command line.
        rules: Graph detection rule bodies.
        requirements: Top-level win32LobApp requirement fields.
        icon: Optional PNG path for the largeIcon.
    """

    display_name: str
    version: str
    publisher: str
    description: str
    setup_file: str
    install_command: str
    uninstall_command: str
    rules: list[dict[str, Any]] = field(default_factory=list)
    requirements: dict[str, Any] = field(default_factory=dict)
    icon: Path | None = None


def _operator(descriptor: ApplicationDescriptor, configured: str) -> str:
    return "greaterThanOrEqual" if descriptor.auto_update else configured


def _product_code(rule: ProductCodeDetection, metadata: ArchiveMetadata) -> str:
    code = rule.product_code or metadata.product_code
    if not code:
        raise ConfigError(
            "product_code detection needs a product_code or an MSI setup file"
        )
    return code


def build_detection_rule(
    descriptor: ApplicationDescriptor,
    rule: DetectionRule,
    metadata: ArchiveMetadata,
    version: str,
) -> dict[str, Any]:
    """Build the Graph body of one detection rule."""
    # Opaque versions cannot be compared on the client; fall back to existence.
    comparable = parse_dotted(version) is not None

    if isinstance(rule, FileDetection):
        body = {
            "@odata.type": GRAPH_TYPE + "win32LobAppFileSystemRule",
            "ruleType": "detection",
            "path": rule.path,
            "fileOrFolderName": rule.file_or_folder_name,
            "check32BitOn64System": rule.check_32bit_on_64bit,
        }
        if comparable:
            body.update(
                operationType="version",
                operator=_operator(descriptor, rule.operator),
                comparisonValue=version,
            )
        else:
            body.update(operationType="exists", operator="notConfigured", comparisonValue=None)
        return body

    if isinstance(rule, ProductCodeDetection):
        product_version = metadata.product_version or (version if comparable else None)
        body = {
            "@odata.type": GRAPH_TYPE + "win32LobAppProductCodeRule",
            "ruleType": "detection",
            "productCode": _product_code(rule, metadata),
            "productVersionOperator": "notConfigured",
            "productVersion": None,
        }
        if product_version:
            body["productVersionOperator"] = _operator(descriptor, "equal")
            body["productVersion"] = product_version
        return body

    if isinstance(rule, ScriptDetection):
        try:
            script = rule.script_path.read_bytes()
        except OSError as err:
            raise ConfigError(f"Cannot read detection script {rule.script_path}: {err}") from err
        return {
            "@odata.type": GRAPH_TYPE + "win32LobAppPowerShellScriptRule",
            "ruleType": "detection",
            "enforceSignatureCheck": rule.enforce_signature_check,
            "runAs32Bit": rule.run_as_32bit,
            "scriptContent": base64.b64encode(script).decode("ascii"),
            "operationType": "notConfigured",
            "operator": "notConfigured",
            "comparisonValue": None,
        }

    if isinstance(rule, RegistryDetection):
        body = {
            "@odata.type": GRAPH_TYPE + "win32LobAppRegistryRule",
            "ruleType": "detection",
            "check32BitOn64System": rule.check_32bit_on_64bit,
            "keyPath": rule.key_path,
            "valueName": rule.value_name,
        }
        if comparable:
            body.update(
                operationType="version",
                operator=_operator(descriptor, rule.operator),
                comparisonValue=version,
            )
        else:
            body.update(operationType="exists", operator="notConfigured", comparisonValue=None)
        return body

    raise ConfigError(f"Unsupported detection rule: {rule!r}")


def build_requirements(descriptor: ApplicationDescriptor) -> dict[str, Any]:
    """Requirement and install-experience fields of a win32LobApp."""
    # "W10_21H2" -> "v10_21H2" / "21H2"
    minimum = descriptor.minimum_os
    os_key = minimum if minimum.startswith("v") else "v" + minimum[1:]
    release = minimum.split("_", 1)[1] if "_" in minimum else minimum
    return {
        "applicableArchitectures": descriptor.architectures,
        "minimumSupportedOperatingSystem": {os_key: True},
        "minimumSupportedWindowsRelease": release,
        "installExperience": {
            "runAsAccount": descriptor.run_as_account,
            "deviceRestartBehavior": descriptor.restart_behavior,
        },
        "returnCodes": [
            {"returnCode": code, "type": kind} for code, kind in DEFAULT_RETURN_CODES
        ],
    }


def render_command(template: str, setup_file: str, product_code: str | None, version: str) -> str:
    try:
        return template.format(
            setup_file=setup_file, product_code=product_code or "", version=version
        )
    except (KeyError, IndexError) as err:
        raise ConfigError(f"Command template {template!r} uses an unknown token: {err}") from err


def build_entry_spec(
    descriptor: ApplicationDescriptor, metadata: ArchiveMetadata, version: str
) -> AppEntrySpec:
    """Assemble the AppEntrySpec for one archive and version.

    Raises:
        ConfigError: If a template or detection rule cannot be rendered.

    """
    setup_file = metadata.setup_file
    product_code = metadata.product_code
    if isinstance(descriptor.detection, ProductCodeDetection):
        product_code = descriptor.detection.product_code or product_code

    return AppEntrySpec(
        display_name=descriptor.render_display_name(version),
        version=version,
        publisher=descriptor.publisher,
        description=descriptor.description or descriptor.render_display_name(version),
        setup_file=setup_file,
        install_command=render_command(
            descriptor.install_command, setup_file, product_code, version
        ),
        uninstall_command=render_command(
            descriptor.uninstall_command, setup_file, product_code, version
        ),
        rules=[build_detection_rule(descriptor, descriptor.detection, metadata, version)],
        requirements=build_requirements(descriptor),
        icon=descriptor.icon,
    )
