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

"""Exception hierarchy for intunesync.

This module defines a custom exception hierarchy that allows library users
to distinguish between different types of errors:

- ConfigError: Catalog/configuration errors (YAML parse, missing fields)
- NetworkError: Network/download errors (HTTP failures, timeouts)
- DiscoveryError: Version discovery produced no usable version
- ExtractionError: Self-extracting container did not yield its installer
- PackagingError: IntuneWinAppUtil.exe failures, missing tools
- UploadError: Intune (Graph) create/upload failures
- AuthError: Graph authentication could not be (re-)established

All exceptions inherit from IntuneSyncError, allowing users to catch all
intunesync errors with a single except clause if needed.

Example:
    Catching specific error types:
        ```python
        from intunesync.discovery import resolve_version
        from intunesync.exceptions import DiscoveryError

        try:
            resolved = resolve_version(descriptor)
        except DiscoveryError as e:
            print(f"No version available: {e}")
        ```

    Catching all intunesync errors:
        ```python
        from intunesync.exceptions import IntuneSyncError

        try:
            result = package_app(descriptor, Path("packages"))
        except IntuneSyncError as e:
            print(f"intunesync error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "IntuneSyncError",
    "ConfigError",
    "NetworkError",
    "DiscoveryError",
    "ExtractionError",
    "PackagingError",
    "UploadError",
    "AuthError",
]


class IntuneSyncError(Exception):
    """Base exception for all intunesync errors.

    All intunesync-specific exceptions inherit from this class, allowing
    users to catch all of them with a single except clause if needed.
    """

    pass


class ConfigError(IntuneSyncError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, invalid structure)
    - Missing or invalid descriptor fields
    - Unknown discovery strategy kinds
    - Missing catalog files
    """

    pass


class NetworkError(IntuneSyncError):
    """Raised for network/download-related errors.

    This exception is raised when there are problems with:

    - Download failures (HTTP errors, connection timeouts)
    - API call failures (GitHub API, JSON endpoints, vendor pages)
    """

    pass


class DiscoveryError(IntuneSyncError):
    """Raised when a discovery strategy cannot produce a version.

    Raised by strategy handlers when a page or API response does not contain
    what the descriptor expects (no regex match, missing JSON field, no
    matching release asset). The resolver converts it to the static fallback
    triple when one is configured.
    """

    pass


class ExtractionError(IntuneSyncError):
    """Raised when a self-extracting container does not yield its installer.

    Fatal for the current application's run: packaging never proceeds
    without the inner installer.
    """

    pass


class PackagingError(IntuneSyncError):
    """Raised for packaging-related errors.

    This exception is raised when there are problems with:

    - IntuneWinAppUtil.exe failures (non-zero exit, timeout)
    - Missing packaging tool
    - Unreadable .intunewin archives
    """

    pass


class UploadError(IntuneSyncError):
    """Raised when creating or uploading an Intune app entry fails.

    The reconciler treats this as an apparent failure first and verifies
    whether the entry exists anyway before reporting it.
    """

    pass


class AuthError(IntuneSyncError):
    """Raised when the Graph session cannot be established or refreshed.

    Unrecoverable authentication loss aborts the whole deployment run.
    """

    pass
