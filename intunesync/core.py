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

"""Run orchestration for intunesync.

Two independent passes over the catalog:

- **Packaging** (run_packaging): the acquisition-and-packaging pipeline for
    each application. Needs no Graph access.
- **Deployment** (run_deployment): for each application, the newest archive
    by modification time is reconciled against Intune. The session is
    re-validated before every application; if it cannot be re-established
    the run aborts with AuthError.

One application's failure never stops the others; outcomes are collected in
a RunSummary.

Example:
    ```python
    from pathlib import Path
    from intunesync.auth import GraphSession
    from intunesync.config import load_descriptors
    from intunesync.core import run_deployment, run_packaging

    descriptors = load_descriptors(Path("catalog/apps.yaml"))
    packaging = run_packaging(descriptors, Path("packages"))
    deployment = run_deployment(descriptors, Path("packages"), GraphSession())
    print(packaging.failed, deployment.failed)
    ```
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from intunesync.auth.session import GraphSession
from intunesync.build import package_app
from intunesync.config.descriptor import ApplicationDescriptor
from intunesync.deploy import RetryPolicy, reconcile
from intunesync.exceptions import AuthError, IntuneSyncError
from intunesync.graph.client import GraphClient
from intunesync.io.intunewin import read_archive_metadata
from intunesync.ledger import extractor_for, newest_archive
from intunesync.logging import get_global_logger
from intunesync.results import DEPLOY_FAILED, DeployResult, RunSummary


def run_packaging(
    descriptors: Sequence[ApplicationDescriptor], packages_root: Path
) -> RunSummary:
    """Package every application in order and collect the outcomes."""
    logger = get_global_logger()
    summary = RunSummary()
    packages_root = Path(packages_root)

    for index, descriptor in enumerate(descriptors, start=1):
        logger.verbose("RUN", f"[{index}/{len(descriptors)}] Packaging {descriptor.app_id}")
        summary.record(package_app(descriptor, packages_root))

    logger.verbose(
        "RUN", f"Packaging done: {len(summary.succeeded)} ok, {len(summary.failed)} failed"
    )
    return summary


def archive_version(descriptor: ApplicationDescriptor, archive: Path) -> str | None:
    """Version of a local archive: from its filename, else from the MSI metadata."""
    version = extractor_for(descriptor).extract(archive.name)
    if version:
        return version
    metadata = read_archive_metadata(archive)
    return metadata.product_version


def _deploy_one(
    descriptor: ApplicationDescriptor,
    packages_root: Path,
    client: GraphClient,
    *,
    force_update: bool,
    assign_users: bool,
    assign_devices: bool,
    retry: RetryPolicy,
) -> DeployResult:
    logger = get_global_logger()
    archive_dir = packages_root / descriptor.archive_dir
    archive = newest_archive(archive_dir, descriptor.archive_glob)
    if archive is None:
        return DeployResult(
            descriptor.app_id, DEPLOY_FAILED, reason=f"No archive found in {archive_dir}"
        )
    logger.verbose("RUN", f"Newest archive: {archive.name}")

    version = archive_version(descriptor, archive)
    if not version:
        return DeployResult(
            descriptor.app_id,
            DEPLOY_FAILED,
            reason=f"Cannot determine the version of {archive.name}",
        )

    return reconcile(
        descriptor,
        archive,
        version,
        client,
        force_update=force_update,
        assign_users=assign_users,
        assign_devices=assign_devices,
        retry=retry,
    )


def run_deployment(
    descriptors: Sequence[ApplicationDescriptor],
    packages_root: Path,
    session: GraphSession,
    *,
    client: GraphClient | None = None,
    force_update: bool = False,
    assign_users: bool = False,
    assign_devices: bool = False,
    retry: RetryPolicy = RetryPolicy(),
) -> RunSummary:
    """Reconcile the newest archive of every application against Intune.

    Args:
        descriptors: Applications to deploy, in order.
        packages_root: Root of the archive directory tree.
        session: Graph session, re-validated before each application.
        client: Graph client to use (built from ``session`` when omitted).
        force_update: Publish even when an equal version exists.
        assign_users: Assign created entries to all users.
        assign_devices: Assign created entries to all devices.
        retry: Verification policy for apparent create failures.

    Returns:
        RunSummary of DeployResult values.

    Raises:
        AuthError: If the session cannot be (re-)established. Results
            gathered so far are lost with the aborted run.

    """
    logger = get_global_logger()
    summary = RunSummary()
    packages_root = Path(packages_root)
    client = client or GraphClient(session)

    for index, descriptor in enumerate(descriptors, start=1):
        logger.verbose("RUN", f"[{index}/{len(descriptors)}] Deploying {descriptor.app_id}")
        if not session.ensure_valid():
            raise AuthError("Graph session could not be re-established; aborting run")

        try:
            result = _deploy_one(
                descriptor,
                packages_root,
                client,
                force_update=force_update,
                assign_users=assign_users,
                assign_devices=assign_devices,
                retry=retry,
            )
        except AuthError:
            raise
        except (IntuneSyncError, OSError) as err:
            logger.warning("RUN", f"{descriptor.app_id}: {err}")
            result = DeployResult(descriptor.app_id, DEPLOY_FAILED, reason=str(err))
        summary.record(result)

    logger.verbose(
        "RUN", f"Deployment done: {len(summary.succeeded)} ok, {len(summary.failed)} failed"
    )
    return summary
