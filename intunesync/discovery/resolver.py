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

"""Version resolution for intunesync.

resolve_version() dispatches on the descriptor's strategy kind through the
handler registry. Network and parse failures of live discovery are converted
to the descriptor's static fallback triple when one is configured; without
a fallback they surface as DiscoveryError.

The final installer filename comes from the descriptor's
``installer_filename`` template when set (so archives embed the version in
a form the ledger can recover), otherwise from the handler.
"""

from __future__ import annotations

from dataclasses import replace

from intunesync.config.descriptor import ApplicationDescriptor
from intunesync.exceptions import DiscoveryError, NetworkError
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import PLACEHOLDER_VERSION, ResolvedVersion

from .base import fallback_version, get_strategy, render_template


def resolve_version(descriptor: ApplicationDescriptor) -> ResolvedVersion:
    """Produce the (version, download_url, filename) triple for one app.

    Args:
        descriptor: Application descriptor.

    Returns:
        Resolved version. ``version`` is "Latest" for post-download
        strategies; the pipeline replaces it once the installer is on disk.

    Raises:
        DiscoveryError: If live discovery failed and no fallback is configured.
        ConfigError: If the strategy kind is unknown or its fields are unusable.

    Example:
        ```python
        from intunesync.discovery import resolve_version

        resolved = resolve_version(descriptor)
        print(resolved.version, resolved.download_url, resolved.filename)
        ```

    """
    logger = get_global_logger()
    handler = get_strategy(descriptor.strategy.kind)

    try:
        resolved = handler.get_version_info(descriptor)
    except (NetworkError, DiscoveryError) as err:
        if descriptor.fallback is None:
            raise DiscoveryError(
                f"{descriptor.app_id}: discovery failed and no fallback is configured: {err}"
            ) from err
        logger.warning(
            "DISCOVERY",
            f"{descriptor.app_id}: live discovery failed ({err}); using fallback "
            f"version {descriptor.fallback.version}",
        )
        resolved = fallback_version(descriptor)

    if descriptor.installer_filename and resolved.version != PLACEHOLDER_VERSION:
        resolved = replace(
            resolved,
            filename=render_template(descriptor.installer_filename, resolved.version),
        )

    logger.verbose(
        "DISCOVERY",
        f"{descriptor.app_id}: {resolved.version} -> {resolved.filename} "
        f"(via {resolved.source})",
    )
    return resolved
