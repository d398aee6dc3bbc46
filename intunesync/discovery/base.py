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

"""Discovery strategy base protocol and registry for intunesync.

This module defines the foundational components for the discovery system:

- StrategyHandler protocol: Interface that all handlers must implement
- Strategy registry: Global dict mapping strategy kinds to handler classes
- Registration and lookup functions: register_strategy() and get_strategy()
- Shared helpers used by several handlers (HTTP GET, env expansion,
  fallback triple construction)

Each DiscoveryStrategy variant in ``intunesync.config.descriptor`` carries a
``kind`` tag; exactly one handler is registered per kind:

- api_json: JSON endpoint + JSONPath field (ApiField)
- api_github: latest release asset (ReleaseAsset)
- web_scrape: regex over a vendor page (PageScrape)
- url_download: fixed URL, version read after download (PostDownloadBinaryMetadata)
- static: configured fallback only (StaticFallbackOnly)

Adding a strategy means adding a variant dataclass and a handler module
that calls register_strategy() at import time.

Example:
    Implementing a custom handler:
        ```python
        from intunesync.discovery.base import register_strategy

        class MyHandler:
            def get_version_info(self, descriptor):
                ...

            def validate_config(self, source):
                return []

        register_strategy("my_kind", MyHandler)
        ```

"""

from __future__ import annotations

import os
from pathlib import PurePosixPath
import re
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import unquote, urlparse

import requests

from intunesync.exceptions import ConfigError, DiscoveryError, NetworkError
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import ResolvedVersion, version_tokens

if TYPE_CHECKING:
    from intunesync.config.descriptor import ApplicationDescriptor

# -------------------------------
# Strategy Protocol
# -------------------------------


class StrategyHandler(Protocol):
    """Protocol for version discovery handlers.

    Each handler must implement get_version_info() which produces a
    ResolvedVersion for a descriptor whose strategy has the handler's kind.

    Handlers may optionally implement validate_config() to provide
    strategy-specific configuration validation without network calls.
    """

    def get_version_info(self, descriptor: ApplicationDescriptor) -> ResolvedVersion:
        """Resolve the current version and download location.

        Args:
            descriptor: Application descriptor; ``descriptor.strategy`` is
                the variant this handler is registered for.

        Returns:
            Resolved (version, download_url, filename, source).

        Raises:
            NetworkError: If the vendor endpoint cannot be reached.
            DiscoveryError: If the response does not contain what the
                strategy expects.
            ConfigError: If the strategy fields are unusable (bad regex).

        """
        ...

    def validate_config(self, source: dict[str, Any]) -> list[str]:
        """Validate the raw ``source`` block of a catalog entry.

        Should NOT make network calls. Returns a list of human-readable
        error messages, empty if the configuration is valid.
        """
        ...


# -------------------------------
# Strategy Registry
# -------------------------------

_STRATEGY_REGISTRY: dict[str, type[StrategyHandler]] = {}


def register_strategy(name: str, strategy_class: type[StrategyHandler]) -> None:
    """Register a discovery handler by kind in the global registry.

    Registering the same name twice overwrites the previous registration
    (allows monkey-patching for tests).
    """
    _STRATEGY_REGISTRY[name] = strategy_class


def get_strategy(name: str) -> StrategyHandler:
    """Get a discovery handler instance by kind from the global registry.

    Handlers are stateless, so a new instance is created for each call.

    Raises:
        ConfigError: If the kind is not registered. The error message lists
            the available kinds.

    """
    if name not in _STRATEGY_REGISTRY:
        available = ", ".join(_STRATEGY_REGISTRY.keys())
        raise ConfigError(
            f"Unknown discovery strategy: {name!r}. Available: {available or '(none)'}"
        )
    return _STRATEGY_REGISTRY[name]()


def available_strategies() -> list[str]:
    return sorted(_STRATEGY_REGISTRY)


# -------------------------------
# Shared helpers
# -------------------------------

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env(value: str) -> str:
    """Expand ``${NAME}`` references from the environment.

    Unset variables expand to an empty string and are logged.
    """
    logger = get_global_logger()

    def _sub(match: re.Match) -> str:
        name = match.group(1)
        env_value = os.environ.get(name)
        if not env_value:
            logger.verbose("DISCOVERY", f"Warning: Environment variable {name} not set")
            return ""
        return env_value

    return _ENV_REF.sub(_sub, value)


def http_get(
    url: str, headers: dict[str, str] | None = None, timeout: int = 30
) -> requests.Response:
    """GET a vendor URL and raise NetworkError on any failure."""
    logger = get_global_logger()
    logger.verbose("DISCOVERY", f"Fetching: {url}")
    try:
        response = requests.get(url, headers=headers or {}, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.HTTPError as err:
        raise NetworkError(
            f"Request to {url} failed: {err.response.status_code} {err.response.reason}"
        ) from err
    except requests.exceptions.RequestException as err:
        raise NetworkError(f"Request to {url} failed: {err}") from err
    logger.debug("DISCOVERY", f"Response: {response.status_code} ({len(response.content)} bytes)")
    return response


def compile_pattern(pattern: str, field_name: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as err:
        raise ConfigError(f"Invalid {field_name} regex: {pattern!r}: {err}") from err


def filename_from_url(url: str) -> str:
    """Last path segment of a URL, percent-decoded."""
    name = PurePosixPath(unquote(urlparse(url).path)).name
    if not name:
        raise DiscoveryError(f"Cannot derive an installer filename from URL {url!r}")
    return name


def render_template(template: str, version: str, groups: tuple = ()) -> str:
    """Substitute version tokens (and positional regex groups) into a template."""
    try:
        return template.format(*groups, **version_tokens(version))
    except (IndexError, KeyError) as err:
        raise ConfigError(f"Template {template!r} uses an unknown token: {err}") from err


def fallback_version(descriptor: ApplicationDescriptor) -> ResolvedVersion:
    """Build the configured static fallback triple.

    Raises:
        DiscoveryError: If the descriptor has no fallback.

    """
    fallback = descriptor.fallback
    if fallback is None:
        raise DiscoveryError(f"{descriptor.app_id}: no fallback configured")
    return ResolvedVersion(
        version=fallback.version,
        download_url=fallback.url,
        filename=render_template(fallback.filename, fallback.version),
        source="fallback",
    )


def check_string_fields(
    source: dict[str, Any], required: tuple[str, ...], optional: tuple[str, ...] = ()
) -> list[str]:
    """Shared validate_config helper: presence and type of string fields."""
    errors = []
    for name in required:
        if name not in source:
            errors.append(f"Missing required field: source.{name}")
        elif not isinstance(source[name], str):
            errors.append(f"source.{name} must be a string")
        elif not source[name].strip():
            errors.append(f"source.{name} cannot be empty")
    for name in optional:
        if name in source and not isinstance(source[name], str):
            errors.append(f"source.{name} must be a string")
    return errors


def check_regex_fields(source: dict[str, Any], names: tuple[str, ...]) -> list[str]:
    errors = []
    for name in names:
        value = source.get(name)
        if isinstance(value, str) and value:
            try:
                re.compile(value)
            except re.error as err:
                errors.append(f"Invalid {name} regex: {err}")
    return errors
