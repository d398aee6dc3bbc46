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

"""Microsoft Graph catalog client for intunesync.

GraphClient is the only code that talks to the Intune app catalog. It lists
published Win32 apps by display-name prefix, creates new entries (including
the full content upload), and maintains supersedence relationships and
group assignments.

Create flow (win32LobApp):

    1. POST mobileApps                                   -> app id
    2. POST .../contentVersions                          -> content version id
    3. POST .../contentVersions/{cv}/files               -> file id
    4. poll file until azureStorageUriRequestSuccess     -> SAS URI
    5. PUT blocks + block list to the SAS URI
    6. POST .../files/{file}/commit (fileEncryptionInfo)
    7. poll file until commitFileSuccess
    8. PATCH mobileApps/{id} committedContentVersion

updateRelationships and assign both REPLACE the whole collection, so the
client reads the current collection first and posts it back with the new
item appended.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
import time
from typing import Any

import requests

from intunesync.auth.session import GRAPH_BASE, GraphSession
from intunesync.detection import AppEntrySpec
from intunesync.exceptions import NetworkError, UploadError
from intunesync.io.download import make_session
from intunesync.io.intunewin import ArchiveMetadata, open_payload
from intunesync.io.upload import upload_blocks
from intunesync.logging import get_global_logger

WIN32_TYPE = "#microsoft.graph.win32LobApp"
APPS_PATH = "/deviceAppManagement/mobileApps"

GROUP_TARGETS = {
    "allUsers": "#microsoft.graph.allLicensedUsersAssignmentTarget",
    "allDevices": "#microsoft.graph.allDevicesAssignmentTarget",
}


@dataclass(frozen=True)
class PublishedAppEntry:
    """An app entry as listed by Intune.

    Attributes:
        id: Graph object id.
        display_name: displayName as published.
        display_version: displayVersion, None when Intune has none recorded.
    """

    id: str
    display_name: str
    display_version: str | None = None


def _odata_quote(value: str) -> str:
    return value.replace("'", "''")


class GraphClient:
    """Intune app catalog operations over an explicit GraphSession."""

    def __init__(
        self,
        session: GraphSession,
        *,
        poll_interval: float = 5.0,
        poll_timeout: float = 600.0,
        timeout: int = 60,
    ) -> None:
        self.session = session
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.timeout = timeout
        self._http = make_session()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send one Graph request; on 401 reconnect once and retry."""
        logger = get_global_logger()
        url = path if path.startswith("https://") else GRAPH_BASE + path

        for attempt in (1, 2):
            logger.debug("GRAPH", f"{method} {url}")
            try:
                response = self._http.request(
                    method, url, headers=self.session.headers(), timeout=self.timeout, **kwargs
                )
            except requests.RequestException as err:
                raise NetworkError(f"Graph {method} {url} failed: {err}") from err

            if response.status_code == 401 and attempt == 1:
                logger.verbose("GRAPH", "401 from Graph; refreshing token")
                self.session.invalidate()
                continue
            if response.status_code >= 400:
                raise NetworkError(
                    f"Graph {method} {url} failed: {response.status_code} {response.text[:300]}"
                )
            if not response.content:
                return {}
            return response.json()
        raise NetworkError(f"Graph {method} {url} failed: unauthorized")

    def _get_all(self, path: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = self._request("GET", path, params=params)
        items.extend(page.get("value", []))
        while page.get("@odata.nextLink"):
            page = self._request("GET", page["@odata.nextLink"])
            items.extend(page.get("value", []))
        return items

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def list_entries(self, prefix: str) -> list[PublishedAppEntry]:
        """All Win32 app entries whose display name starts with ``prefix``."""
        params = {
            "$filter": (
                "isof('microsoft.graph.win32LobApp') and "
                f"startswith(displayName,'{_odata_quote(prefix)}')"
            ),
            "$select": "id,displayName,displayVersion",
        }
        entries = []
        for item in self._get_all(APPS_PATH, params=params):
            name = item.get("displayName") or ""
            if not name.startswith(prefix):
                continue
            entries.append(
                PublishedAppEntry(
                    id=item["id"],
                    display_name=name,
                    display_version=item.get("displayVersion") or None,
                )
            )
        get_global_logger().verbose(
            "GRAPH", f"{len(entries)} published entr{'y' if len(entries) == 1 else 'ies'} "
            f"start with {prefix!r}"
        )
        return entries

    def find_by_display_name(self, name: str) -> PublishedAppEntry | None:
        for entry in self.list_entries(name):
            if entry.display_name == name:
                return entry
        return None

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #
    def _app_body(
        self, spec: AppEntrySpec, archive_path: Path, metadata: ArchiveMetadata
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "@odata.type": WIN32_TYPE,
            "displayName": spec.display_name,
            "displayVersion": spec.version,
            "description": spec.description,
            "publisher": spec.publisher,
            "fileName": archive_path.name,
            "setupFilePath": spec.setup_file,
            "installCommandLine": spec.install_command,
            "uninstallCommandLine": spec.uninstall_command,
            "rules": spec.rules,
            "isFeatured": False,
            "notes": "Published by intunesync",
        }
        body.update(spec.requirements)
        if metadata.is_msi:
            body["msiInformation"] = {
                "productCode": metadata.product_code,
                "productVersion": metadata.product_version,
                "upgradeCode": metadata.upgrade_code,
                "publisher": metadata.publisher,
                "requiresReboot": False,
                "packageType": "perMachine",
            }
        if spec.icon is not None:
            body["largeIcon"] = {
                "@odata.type": "#microsoft.graph.mimeContent",
                "type": "image/png",
                "value": base64.b64encode(spec.icon.read_bytes()).decode("ascii"),
            }
        return body

    def _wait_for_state(self, path: str, success: str, failure: str) -> dict[str, Any]:
        logger = get_global_logger()
        deadline = time.monotonic() + self.poll_timeout
        while True:
            item = self._request("GET", path)
            state = item.get("uploadState")
            logger.debug("GRAPH", f"uploadState: {state}")
            if state == success:
                return item
            if state == failure:
                raise UploadError(f"Content file reached {failure}")
            if time.monotonic() >= deadline:
                raise UploadError(f"Timed out waiting for {success} (last state: {state})")
            time.sleep(self.poll_interval)

    def create_entry(
        self, spec: AppEntrySpec, archive_path: Path, metadata: ArchiveMetadata
    ) -> PublishedAppEntry:
        """Create a Win32 app entry and upload its content.

        Raises:
            UploadError: If any step of the create/upload flow fails. The app
                object may exist even then; callers verify by display name.

        """
        logger = get_global_logger()
        archive_path = Path(archive_path)

        try:
            app = self._request("POST", APPS_PATH, json=self._app_body(spec, archive_path, metadata))
            app_id = app["id"]
            logger.verbose("GRAPH", f"Created app {spec.display_name!r} ({app_id})")

            base = f"{APPS_PATH}/{app_id}/microsoft.graph.win32LobApp"
            content_version = self._request("POST", f"{base}/contentVersions", json={})
            cv_id = content_version["id"]

            files_path = f"{base}/contentVersions/{cv_id}/files"
            content_file = self._request(
                "POST",
                files_path,
                json={
                    "@odata.type": "#microsoft.graph.mobileAppContentFile",
                    "name": archive_path.name,
                    "size": metadata.unencrypted_size,
                    "sizeEncrypted": metadata.encrypted_size,
                    "manifest": None,
                    "isDependency": False,
                },
            )
            file_path = f"{files_path}/{content_file['id']}"

            ready = self._wait_for_state(
                file_path, "azureStorageUriRequestSuccess", "azureStorageUriRequestFailed"
            )
            logger.verbose("GRAPH", "Uploading encrypted payload...")
            with open_payload(archive_path, metadata) as payload:
                upload_blocks(ready["azureStorageUri"], payload)

            self._request(
                "POST",
                f"{file_path}/commit",
                json={"fileEncryptionInfo": metadata.encryption_info},
            )
            self._wait_for_state(file_path, "commitFileSuccess", "commitFileFailed")

            self._request(
                "PATCH",
                f"{APPS_PATH}/{app_id}",
                json={"@odata.type": WIN32_TYPE, "committedContentVersion": cv_id},
            )
        except (NetworkError, KeyError, OSError) as err:
            raise UploadError(f"Creating {spec.display_name!r} failed: {err}") from err

        logger.verbose("GRAPH", f"[OK] Content committed for {spec.display_name!r}")
        return PublishedAppEntry(id=app_id, display_name=spec.display_name, display_version=spec.version)

    # ------------------------------------------------------------------ #
    # Relationships and assignments
    # ------------------------------------------------------------------ #
    def create_supersedence(self, new_id: str, old_id: str, supersedence_type: str = "update") -> None:
        """Make ``new_id`` supersede ``old_id``, keeping existing relationships.

        Raises:
            NetworkError: If reading or updating relationships fails.
            ValueError: If both ids are the same entry.

        """
        if new_id == old_id:
            raise ValueError("An app entry cannot supersede itself")

        relationships = []
        for rel in self._get_all(f"{APPS_PATH}/{new_id}/relationships"):
            if rel.get("targetType") not in (None, "child"):
                continue
            target_id = rel.get("targetId")
            if target_id == old_id:
                return
            if not target_id:
                raise NetworkError(f"Relationship of {new_id} has no targetId: {rel}")
            odata_type = rel.get("@odata.type") or (
                "#microsoft.graph.mobileAppSupersedence"
                if "supersedenceType" in rel
                else "#microsoft.graph.mobileAppDependency"
            )
            item = {"@odata.type": odata_type, "targetId": target_id}
            for key in ("supersedenceType", "dependencyType"):
                if key in rel:
                    item[key] = rel[key]
            relationships.append(item)

        relationships.append(
            {
                "@odata.type": "#microsoft.graph.mobileAppSupersedence",
                "targetId": old_id,
                "supersedenceType": supersedence_type,
            }
        )
        self._request(
            "POST",
            f"{APPS_PATH}/{new_id}/updateRelationships",
            json={"relationships": relationships},
        )
        get_global_logger().verbose(
            "GRAPH", f"{new_id} supersedes {old_id} ({supersedence_type})"
        )

    def assign_to_group(self, app_id: str, group_kind: str, intent: str = "available") -> None:
        """Assign an app to all users or all devices, keeping existing assignments.

        Args:
            app_id: Graph id of the app entry.
            group_kind: "allUsers" or "allDevices".
            intent: "available" or "required".

        """
        if group_kind not in GROUP_TARGETS:
            raise ValueError(f"Unknown group kind {group_kind!r}")
        target_type = GROUP_TARGETS[group_kind]

        assignments = []
        for existing in self._get_all(f"{APPS_PATH}/{app_id}/assignments"):
            if existing.get("target", {}).get("@odata.type") == target_type:
                return
            assignments.append(
                {
                    "@odata.type": "#microsoft.graph.mobileAppAssignment",
                    "intent": existing.get("intent"),
                    "target": existing.get("target"),
                    "settings": existing.get("settings"),
                }
            )

        assignments.append(
            {
                "@odata.type": "#microsoft.graph.mobileAppAssignment",
                "intent": intent,
                "target": {"@odata.type": target_type},
                "settings": {
                    "@odata.type": "#microsoft.graph.win32LobAppAssignmentSettings",
                    "notifications": "showAll",
                    "deliveryOptimizationPriority": "notConfigured",
                },
            }
        )
        self._request(
            "POST",
            f"{APPS_PATH}/{app_id}/assign",
            json={"mobileAppAssignments": assignments},
        )
        get_global_logger().verbose("GRAPH", f"Assigned {app_id} to {group_kind} ({intent})")
