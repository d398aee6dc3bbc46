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

"""Result types returned by the intunesync public API."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

# PackageResult.status values
PACKAGE_SKIPPED = "skipped"
PACKAGE_PACKAGED = "packaged"
PACKAGE_FAILED = "failed"

# DeployResult.status values
DEPLOY_CREATED = "created"
DEPLOY_SKIPPED_EXISTING = "skipped_existing"
DEPLOY_FAILED = "failed"


@dataclass(frozen=True)
class PackageResult:
    """Outcome of the acquisition-and-packaging pipeline for one app.

    Attributes:
        app_id: Unique application identifier.
        status: "skipped", "packaged" or "failed".
        version: Version the run settled on (None if resolution failed).
        package_path: The .intunewin archive (packaged, or the existing one
            when skipped because installer and archive are both on disk).
        reason: Why the app was skipped or failed.
    """

    app_id: str
    status: str
    version: str | None = None
    package_path: Path | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != PACKAGE_FAILED


@dataclass(frozen=True)
class DeployResult:
    """Outcome of reconciling one app against the Intune catalog.

    Attributes:
        app_id: Unique application identifier.
        status: "created", "skipped_existing" or "failed".
        version: Candidate version that was reconciled.
        entry_id: Graph id of the created entry (created only).
        superseded: Ids of the older entries that now have an edge from the
            new entry.
        edge_failures: Ids of older entries whose edge could not be created.
        reason: Why the app was skipped or failed.
    """

    app_id: str
    status: str
    version: str | None = None
    entry_id: str | None = None
    superseded: tuple[str, ...] = ()
    edge_failures: tuple[str, ...] = ()
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != DEPLOY_FAILED


@dataclass
class RunSummary:
    """Per-application outcomes of one orchestrated pass.

    Attributes:
        succeeded: App ids that were skipped, packaged or created.
        failed: (app id, reason) pairs.
        results: Every per-app result in catalog order.
    """

    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    results: list[PackageResult | DeployResult] = field(default_factory=list)

    def record(self, result: PackageResult | DeployResult) -> None:
        self.results.append(result)
        if result.ok:
            self.succeeded.append(result.app_id)
        else:
            self.failed.append((result.app_id, result.reason or "unknown error"))

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a catalog.

    Attributes:
        status: Validation status ("valid" or "invalid").
        errors: List of error messages (empty if valid).
        warnings: List of warning messages.
        app_count: Number of apps in the catalog.
        catalog_path: String path to the validated catalog file.
    """

    status: str
    errors: list[str]
    warnings: list[str]
    app_count: int
    catalog_path: str
