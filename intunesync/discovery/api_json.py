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

"""JSON API discovery strategy for intunesync.

Issues a GET against a vendor JSON endpoint and reads the version from a
JSONPath expression. The download URL comes either from a second JSONPath
expression or from a URL template filled with the version tokens.

Catalog Configuration:

    source:
      strategy: api_json
      url: "https://product-details.mozilla.org/1.0/firefox_versions.json"
      version_path: "LATEST_FIREFOX_VERSION"
      url_template: "https://download-installer.cdn.mozilla.net/pub/firefox/releases/{version}/win64/en-US/Firefox%20Setup%20{version}.msi"
      headers:
        Authorization: "Bearer ${VENDOR_TOKEN}"

Configuration Fields:

- **url** (str, required): JSON endpoint.
- **version_path** (str, required): JSONPath to the version field.
- **download_url_path** (str, optional): JSONPath to the download URL.
- **url_template** (str, optional): Used when download_url_path is absent.
  One of the two is required.
- **headers** (dict, optional): Request headers; ``${NAME}`` is expanded
  from the environment.

Error Handling:

- NetworkError: Request failures and non-JSON responses
- DiscoveryError: JSONPath matched nothing
- ConfigError: Invalid JSONPath expressions

"""

from __future__ import annotations

import json
from typing import Any

from jsonpath_ng import parse as jsonpath_parse

from intunesync.config.descriptor import ApiField, ApplicationDescriptor
from intunesync.exceptions import ConfigError, DiscoveryError, NetworkError
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import ResolvedVersion

from .base import (
    check_string_fields,
    expand_env,
    filename_from_url,
    http_get,
    register_strategy,
    render_template,
)


def _find_first(data: Any, path: str) -> Any:
    try:
        expr = jsonpath_parse(path)
    except Exception as err:
        raise ConfigError(f"Invalid JSONPath {path!r}: {err}") from err
    matches = expr.find(data)
    if not matches:
        raise DiscoveryError(f"JSONPath {path!r} did not match anything in API response")
    return matches[0].value


class ApiJsonStrategy:
    """Discovery handler for ApiField descriptors."""

    def get_version_info(self, descriptor: ApplicationDescriptor) -> ResolvedVersion:
        """Query the JSON endpoint and extract version and download URL.

        Raises:
            NetworkError: If the request fails or the body is not JSON.
            DiscoveryError: If a JSONPath matches nothing.

        """
        logger = get_global_logger()
        strategy: ApiField = descriptor.strategy  # type: ignore[assignment]

        logger.verbose("DISCOVERY", "Strategy: api_json")
        logger.verbose("DISCOVERY", f"Version path: {strategy.version_path}")

        headers = {k: expand_env(str(v)) for k, v in strategy.headers.items()}
        response = http_get(strategy.url, headers=headers)

        try:
            data = response.json()
        except json.JSONDecodeError as err:
            raise NetworkError(
                f"Invalid JSON response from {strategy.url}. Response: {response.text[:200]}"
            ) from err

        version = str(_find_first(data, strategy.version_path)).strip()
        logger.verbose("DISCOVERY", f"Extracted version: {version}")

        if strategy.download_url_path:
            download_url = str(_find_first(data, strategy.download_url_path))
        elif strategy.url_template:
            download_url = render_template(strategy.url_template, version)
        else:
            raise ConfigError(
                f"{descriptor.app_id}: api_json needs download_url_path or url_template"
            )
        logger.verbose("DISCOVERY", f"Download URL: {download_url}")

        return ResolvedVersion(
            version=version,
            download_url=download_url,
            filename=filename_from_url(download_url),
            source="api_json",
        )

    def validate_config(self, source: dict[str, Any]) -> list[str]:
        """Validate api_json strategy configuration."""
        errors = check_string_fields(
            source,
            required=("url", "version_path"),
            optional=("download_url_path", "url_template"),
        )
        if not source.get("download_url_path") and not source.get("url_template"):
            errors.append(
                "Missing required field: must provide either "
                "source.download_url_path or source.url_template"
            )
        for name in ("version_path", "download_url_path"):
            value = source.get(name)
            if isinstance(value, str) and value:
                try:
                    jsonpath_parse(value)
                except Exception as err:
                    errors.append(f"Invalid {name} JSONPath: {err}")
        headers = source.get("headers")
        if headers is not None and not isinstance(headers, dict):
            errors.append("source.headers must be a mapping")
        return errors


register_strategy("api_json", ApiJsonStrategy)
