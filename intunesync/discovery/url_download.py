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

"""Fixed-URL discovery strategy for intunesync (FILE-FIRST).

Some vendors only publish a "latest" URL with no version anywhere but in the
installer itself. This handler makes no network call: it returns the
placeholder version "Latest" and the direct URL. The packaging pipeline
downloads the file under a temporary name and reads the real version from
the binary (MSI ProductVersion or EXE version resource).

Catalog Configuration:

    source:
      strategy: url_download
      url: "https://zoom.us/client/latest/ZoomInstallerFull.msi?archType=x64"

"""

from __future__ import annotations

from typing import Any

from intunesync.config.descriptor import ApplicationDescriptor, PostDownloadBinaryMetadata
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import PLACEHOLDER_VERSION, ResolvedVersion

from .base import check_string_fields, filename_from_url, register_strategy


class UrlDownloadStrategy:
    """Discovery handler for PostDownloadBinaryMetadata descriptors."""

    def get_version_info(self, descriptor: ApplicationDescriptor) -> ResolvedVersion:
        logger = get_global_logger()
        strategy: PostDownloadBinaryMetadata = descriptor.strategy  # type: ignore[assignment]

        logger.verbose("DISCOVERY", "Strategy: url_download (version read after download)")
        logger.verbose("DISCOVERY", f"Source URL: {strategy.url}")
        return ResolvedVersion(
            version=PLACEHOLDER_VERSION,
            download_url=strategy.url,
            filename=filename_from_url(strategy.url),
            source="url_download",
        )

    def validate_config(self, source: dict[str, Any]) -> list[str]:
        """Validate url_download strategy configuration."""
        errors = check_string_fields(source, required=("url",))
        url = source.get("url")
        if isinstance(url, str) and url and not url.startswith(("http://", "https://")):
            errors.append("source.url must start with http:// or https://")
        return errors


register_strategy("url_download", UrlDownloadStrategy)
