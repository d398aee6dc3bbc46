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

"""GitHub releases discovery strategy for intunesync.

Queries the "latest release" endpoint of a repository and selects the first
asset whose name matches ``asset_pattern``. The version is the release tag
with a single optional leading "v" stripped (``v2.47.1`` -> ``2.47.1``); it
is not otherwise normalized, so tags such as ``v2.47.1.windows.1`` stay
opaque to the comparator.

Catalog Configuration:
    ```yaml
    source:
        strategy: api_github
        repo: "git-for-windows/git"              # owner/repo
        asset_pattern: "Git-.*-64-bit\\.exe$"    # regex for asset name
        token: "${GITHUB_TOKEN}"                 # optional
    ```

``releases_url`` may replace ``repo`` for GitHub Enterprise or mirrors; the
endpoint may return a single release object or a list (first entry wins).

Error Handling:

- NetworkError: API failures, rate limiting, unknown repository
- DiscoveryError: No tag, no assets, no asset matching the pattern

Rate Limits:

- Unauthenticated: 60 requests/hour per IP
- Authenticated: 5000 requests/hour per token

"""

from __future__ import annotations

from typing import Any

import requests

from intunesync.config.descriptor import ApplicationDescriptor, ReleaseAsset
from intunesync.exceptions import DiscoveryError, NetworkError
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import ResolvedVersion

from .base import (
    check_regex_fields,
    check_string_fields,
    compile_pattern,
    expand_env,
    register_strategy,
)


def strip_tag_prefix(tag: str) -> str:
    """Strip a single optional leading "v" from a release tag."""
    return tag[1:] if tag.startswith("v") else tag


class ApiGithubStrategy:
    """Discovery handler for ReleaseAsset descriptors.

    Configuration example:
        source:
          strategy: api_github
          repo: "owner/repository"
          asset_pattern: ".*\\.msi$"
          token: "${GITHUB_TOKEN}"
    """

    def get_version_info(self, descriptor: ApplicationDescriptor) -> ResolvedVersion:
        """Fetch the latest release and pick the matching asset.

        Raises:
            NetworkError: If the API call fails.
            DiscoveryError: If the release has no tag or no matching asset.

        """
        logger = get_global_logger()
        strategy: ReleaseAsset = descriptor.strategy  # type: ignore[assignment]

        api_url = strategy.releases_url or (
            f"https://api.github.com/repos/{strategy.repo}/releases/latest"
        )
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        token = expand_env(strategy.token) if strategy.token else None
        if token:
            headers["Authorization"] = f"token {token}"
            logger.verbose("DISCOVERY", "Using authenticated API request")

        logger.verbose("DISCOVERY", "Strategy: api_github")
        logger.verbose("DISCOVERY", f"Fetching release from: {api_url}")

        try:
            response = requests.get(api_url, headers=headers, timeout=30)
            response.raise_for_status()
        except requests.exceptions.HTTPError as err:
            if response.status_code == 404:
                raise NetworkError(
                    f"Repository {strategy.repo or api_url!r} not found or has no releases"
                ) from err
            elif response.status_code == 403:
                raise NetworkError(
                    f"GitHub API rate limit exceeded. Consider using a token. "
                    f"Status: {response.status_code}"
                ) from err
            else:
                raise NetworkError(
                    f"GitHub API request failed: {response.status_code} "
                    f"{response.reason}"
                ) from err
        except requests.exceptions.RequestException as err:
            raise NetworkError(f"Failed to fetch GitHub release: {err}") from err

        try:
            release_data = response.json()
        except ValueError as err:
            raise NetworkError(
                f"Invalid JSON response from {api_url}. Response: {response.text[:200]}"
            ) from err

        if isinstance(release_data, list):
            if not release_data:
                raise DiscoveryError(f"No releases listed at {api_url}")
            release_data = release_data[0]
        if not isinstance(release_data, dict):
            raise DiscoveryError(
                f"Unexpected release payload from {api_url}: {type(release_data).__name__}"
            )

        tag_name = release_data.get("tag_name", "")
        if not tag_name:
            raise DiscoveryError("Release has no tag_name field")
        version = strip_tag_prefix(tag_name)
        logger.verbose("DISCOVERY", f"Release tag: {tag_name} -> version {version}")

        assets = release_data.get("assets", [])
        if not assets:
            raise DiscoveryError(f"Release {tag_name} has no assets")

        pattern = compile_pattern(strategy.asset_pattern, "asset_pattern")
        matched_asset = None
        for asset in assets:
            asset_name = asset.get("name", "")
            if pattern.search(asset_name):
                matched_asset = asset
                logger.verbose("DISCOVERY", f"Matched asset: {asset_name}")
                break

        if not matched_asset:
            available = [a.get("name", "(unnamed)") for a in assets]
            raise DiscoveryError(
                f"No assets matched pattern {strategy.asset_pattern!r}. "
                f"Available assets: {', '.join(available)}"
            )

        download_url = matched_asset.get("browser_download_url")
        if not download_url:
            raise DiscoveryError(f"Asset {matched_asset.get('name')} has no download URL")

        logger.verbose("DISCOVERY", f"Download URL: {download_url}")

        return ResolvedVersion(
            version=version,
            download_url=download_url,
            filename=matched_asset["name"],
            source="api_github",
        )

    def validate_config(self, source: dict[str, Any]) -> list[str]:
        """Validate api_github strategy configuration."""
        errors = check_string_fields(
            source,
            required=("asset_pattern",),
            optional=("repo", "releases_url", "token"),
        )
        repo = source.get("repo")
        if not repo and not source.get("releases_url"):
            errors.append(
                "Missing required field: must provide either source.repo or "
                "source.releases_url"
            )
        elif isinstance(repo, str) and repo and repo.count("/") != 1:
            errors.append("source.repo must be in format 'owner/repo' (e.g., 'git/git')")
        errors.extend(check_regex_fields(source, ("asset_pattern",)))
        return errors


register_strategy("api_github", ApiGithubStrategy)
