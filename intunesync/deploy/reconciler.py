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

"""Deployment reconciliation against the Intune app catalog.

Given one application's newest archive and its candidate version, decide
whether Intune already has it, create the entry when it does not, and make
the new entry supersede every strictly older sibling.

Intune has no stable key tying entries of one application together, so
identity is approximated from display names:

1. The rendered display name ("Widget 11") is cut before the first
   whitespace-digit run to get the base name ("Widget").
2. Every Win32 entry whose display name starts with the base name is a
   sibling.
3. A sibling's version is its displayVersion, or when Intune has none, the
   first dotted number in its display name after the base name.

Decision table:

    exact display-name match, equal version     -> skipped_existing
    exact display-name match, candidate greater -> create, supersede it
    exact display-name match, otherwise         -> skipped_existing
    any prefix sibling with an equal version    -> skipped_existing
    otherwise                                   -> create, supersede older

Siblings that are newer, incomparable, or have no recoverable version are
left alone. ``force_update`` republishes even when an equal version exists;
equal entries are still never superseded.

Example:
    ```python
    from intunesync.deploy import reconcile

    result = reconcile(descriptor, archive, "11.0", client, assign_users=True)
    if result.status == "created":
        print(result.entry_id, result.superseded)
    ```
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
import re
import time

from intunesync.config.descriptor import ApplicationDescriptor
from intunesync.detection import build_entry_spec
from intunesync.exceptions import AuthError, IntuneSyncError, NetworkError, UploadError
from intunesync.graph.client import GraphClient, PublishedAppEntry
from intunesync.io.intunewin import read_archive_metadata
from intunesync.logging import get_global_logger
from intunesync.results import (
    DEPLOY_CREATED,
    DEPLOY_FAILED,
    DEPLOY_SKIPPED_EXISTING,
    DeployResult,
)
from intunesync.versioning.keys import Comparison, compare_versions

_NAME_VERSION = re.compile(r"\d+(?:\.\d+)*")


@dataclass(frozen=True)
class RetryPolicy:
    """How long to keep checking for an entry after an apparent create failure.

    Attributes:
        attempts: Number of verification reads.
        initial_delay: Seconds to wait before the first read.
        backoff: Multiplier applied to the delay after each read.
    """

    attempts: int = 3
    initial_delay: float = 5.0
    backoff: float = 2.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        for _ in range(self.attempts):
            yield delay
            delay *= self.backoff


def base_display_name(display_name: str) -> str:
    """Strip the version part from a rendered display name.

    "Widget 11" -> "Widget"; "Notepad++ 8.7.1 (x64)" -> "Notepad++".
    """
    return re.split(r"\s+\d", display_name, maxsplit=1)[0]


def entry_version(entry: PublishedAppEntry, base_name: str) -> str | None:
    """Version recorded for a published entry, else recovered from its name."""
    if entry.display_version:
        return entry.display_version
    match = _NAME_VERSION.search(entry.display_name[len(base_name):])
    return match.group(0) if match else None


def _verify_created(
    client: GraphClient,
    display_name: str,
    known_ids: set[str],
    retry: RetryPolicy,
) -> PublishedAppEntry | None:
    """Look for an entry the failed create call left behind.

    Entries listed before the create call are never accepted; they may carry
    the same display name as the candidate (``{major}`` templates).
    """
    logger = get_global_logger()
    base = base_display_name(display_name)
    for attempt, delay in enumerate(retry.delays(), start=1):
        time.sleep(delay)
        try:
            entries = client.list_entries(base)
        except NetworkError as err:
            logger.verbose("DEPLOY", f"Verification read {attempt} failed: {err}")
            continue
        for entry in entries:
            if entry.display_name == display_name and entry.id not in known_ids:
                return entry
        logger.verbose("DEPLOY", f"Verification read {attempt}: no new {display_name!r}")
    return None


def _classify(
    candidate: str, display_name: str, entries: list[PublishedAppEntry], force_update: bool
) -> tuple[bool, list[PublishedAppEntry], str | None]:
    """Return (create, older entries, skip reason)."""
    logger = get_global_logger()
    base = base_display_name(display_name)

    for entry in entries:
        if entry.display_name != display_name:
            continue
        existing = entry_version(entry, base)
        outcome = compare_versions(candidate, existing) if existing else Comparison.INCOMPARABLE
        logger.verbose(
            "DEPLOY", f"Exact match {entry.display_name!r} ({existing}): candidate {outcome.value}"
        )
        if outcome is Comparison.GREATER:
            return True, [entry], None
        if outcome is Comparison.EQUAL and force_update:
            logger.verbose("DEPLOY", "Force update requested; republishing equal version")
            return True, [], None
        return False, [], f"{entry.display_name} ({existing}) already published"

    older: list[PublishedAppEntry] = []
    same_version: PublishedAppEntry | None = None
    for entry in entries:
        existing = entry_version(entry, base)
        if existing is None:
            logger.debug("DEPLOY", f"Ignoring {entry.display_name!r}: no version")
            continue
        outcome = compare_versions(candidate, existing)
        logger.debug("DEPLOY", f"{entry.display_name!r} ({existing}): candidate {outcome.value}")
        if outcome is Comparison.GREATER:
            older.append(entry)
        elif outcome is Comparison.EQUAL and same_version is None:
            same_version = entry

    if same_version is not None and not force_update:
        return False, [], (
            f"{same_version.display_name} already publishes version {candidate}"
        )
    return True, older, None


def reconcile(
    descriptor: ApplicationDescriptor,
    archive_path: Path,
    version: str,
    client: GraphClient,
    *,
    force_update: bool = False,
    assign_users: bool = False,
    assign_devices: bool = False,
    retry: RetryPolicy = RetryPolicy(),
) -> DeployResult:
    """Reconcile one archive against the Intune catalog.

    Args:
        descriptor: Application descriptor.
        archive_path: The .intunewin archive to publish.
        version: Candidate version of the archive.
        client: Graph client bound to a valid session.
        force_update: Publish even when an entry with an equal version
            exists.
        assign_users: Make a created entry available to all users.
        assign_devices: Require a created entry on all devices.
        retry: Verification policy for apparent create failures.

    Returns:
        DeployResult with status "created", "skipped_existing" or "failed".
        Supersedence edge failures never fail the result; they are listed in
        ``edge_failures``.

    Raises:
        AuthError: Propagated from the session; the caller aborts the run.

    """
    logger = get_global_logger()
    archive_path = Path(archive_path)

    try:
        display_name = descriptor.render_display_name(version)
        base = base_display_name(display_name)
        logger.verbose("DEPLOY", f"{display_name!r} (base name {base!r}) from {archive_path.name}")
        entries = client.list_entries(base)
        create, older, skip_reason = _classify(version, display_name, entries, force_update)
    except AuthError:
        raise
    except IntuneSyncError as err:
        return DeployResult(descriptor.app_id, DEPLOY_FAILED, version, reason=str(err))

    if not create:
        logger.verbose("DEPLOY", f"Skipping: {skip_reason}")
        return DeployResult(
            descriptor.app_id, DEPLOY_SKIPPED_EXISTING, version, reason=skip_reason
        )

    try:
        metadata = read_archive_metadata(archive_path)
        spec = build_entry_spec(descriptor, metadata, version)
    except IntuneSyncError as err:
        return DeployResult(descriptor.app_id, DEPLOY_FAILED, version, reason=str(err))

    try:
        created = client.create_entry(spec, archive_path, metadata)
    except UploadError as err:
        logger.warning("DEPLOY", f"Create reported an error: {err}; verifying")
        known_ids = {entry.id for entry in entries}
        created = _verify_created(client, display_name, known_ids, retry)
        if created is None:
            return DeployResult(descriptor.app_id, DEPLOY_FAILED, version, reason=str(err))
        logger.verbose("DEPLOY", f"Entry {created.id} exists despite the error")
    logger.verbose("DEPLOY", f"[OK] Created {display_name!r} ({created.id})")

    superseded: list[str] = []
    edge_failures: list[str] = []
    for old in older:
        if old.id == created.id:
            continue
        try:
            client.create_supersedence(created.id, old.id, descriptor.supersedence_type)
        except AuthError:
            raise
        except (IntuneSyncError, ValueError) as err:
            logger.warning("DEPLOY", f"Supersedence of {old.display_name!r} failed: {err}")
            edge_failures.append(old.id)
        else:
            superseded.append(old.id)

    targets = []
    if assign_users:
        targets.append(("allUsers", "available"))
    if assign_devices:
        targets.append(("allDevices", "required"))
    for group_kind, intent in targets:
        try:
            client.assign_to_group(created.id, group_kind, intent)
        except NetworkError as err:
            logger.warning("DEPLOY", f"Assignment to {group_kind} failed: {err}")

    return DeployResult(
        descriptor.app_id,
        DEPLOY_CREATED,
        version,
        entry_id=created.id,
        superseded=tuple(superseded),
        edge_failures=tuple(edge_failures),
    )
