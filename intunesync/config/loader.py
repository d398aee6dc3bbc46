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

"""
Catalog loading and merging for intunesync.

The application catalog is a single YAML file listing every application the
tool manages. Organization-wide defaults can be layered underneath it.

Configuration Layers
--------------------
1. **Organization defaults** (defaults/org.yaml)
   - Found by walking upward from the catalog file
   - ``app_defaults`` holds fields applied to every application (Intune
     requirement settings, supersedence type, installer extensions)
   - Optional

2. **Catalog** (catalog/apps.yaml)
   - ``apiVersion: intunesync/v1``
   - ``app_defaults`` (optional, overrides the org layer)
   - ``apps``: list of application entries

Merge Behavior
--------------
Deep merge with "last wins" semantics:
  - **Dicts**: Recursively merged (keys from overlay override base)
  - **Lists**: Completely replaced (NOT appended/extended)
  - **Scalars**: Overwritten (strings, numbers, booleans)

Each application entry is merged on top of the effective ``app_defaults``.

Path Resolution
---------------
Relative paths (``icon``, ``detection.script_path``) are resolved against
the CATALOG FILE location when descriptors are built.

Examples
--------
    >>> from pathlib import Path
    >>> from intunesync.config import load_descriptors
    >>> apps = load_descriptors(Path("catalog/apps.yaml"))
    >>> apps[0].app_id
    '7zip'
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from intunesync.exceptions import ConfigError
from intunesync.logging import get_global_logger

from .descriptor import ApplicationDescriptor, descriptor_from_dict

SUPPORTED_API_VERSIONS = ("intunesync/v1",)

# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """
    Load a YAML file and return the parsed Python object.

    Raises:
      ConfigError - when the file is missing, empty, or not valid YAML
    """
    if not p.exists():
        raise ConfigError(f"file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    if data is None:
        raise ConfigError(f"YAML file is empty: {p}")
    return data


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts with "overlay wins".

    Rules:
      - dict + dict -> deep merge
      - list + list -> overlay REPLACES base (not concatenated)
      - everything else -> overlay overwrites base

    This function does not mutate inputs; returns a new dict.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


# -------------------------------
# Defaults discovery
# -------------------------------


def _find_defaults_root(start_dir: Path) -> Path | None:
    """
    Walk upward from 'start_dir' looking for a 'defaults/org.yaml'.
    Returns the 'defaults' directory or None if not found.
    """
    for parent in [start_dir] + list(start_dir.parents):
        candidate = parent / "defaults" / "org.yaml"
        if candidate.exists():
            return parent / "defaults"
    return None


# -------------------------------
# Public API
# -------------------------------


def load_catalog(catalog_path: Path) -> dict[str, Any]:
    """
    Load the catalog and return it with every app entry fully merged.

    Steps
      1) Read catalog YAML (must be a mapping with an 'apps' list).
      2) Find defaults root by scanning upwards for 'defaults/org.yaml'.
      3) Merge: org -> catalog (dicts deep-merge, lists replace).
      4) Merge the effective 'app_defaults' under every app entry.

    Returns
      The merged catalog dict; ``apps`` holds the merged entries.

    Raises
      ConfigError on missing files, YAML errors, or a malformed top level.
    """
    logger = get_global_logger()

    catalog_path = Path(catalog_path).resolve()
    logger.verbose("CONFIG", f"Loading catalog: {catalog_path}")

    catalog = _load_yaml_file(catalog_path)
    if not isinstance(catalog, dict):
        raise ConfigError(f"top-level YAML must be a mapping (dict): {catalog_path}")

    merged: dict[str, Any] = {}
    layers_merged = 0

    defaults_root = _find_defaults_root(catalog_path.parent)
    if defaults_root:
        org_path = defaults_root / "org.yaml"
        logger.verbose(
            "CONFIG", f"Loading: {org_path.relative_to(defaults_root.parent)}"
        )
        org_defaults = _load_yaml_file(org_path)
        if isinstance(org_defaults, dict):
            merged = _deep_merge_dicts(merged, org_defaults)
            layers_merged += 1

    merged = _deep_merge_dicts(merged, catalog)
    layers_merged += 1
    logger.verbose("CONFIG", f"Deep merging {layers_merged} layer(s)")

    api_version = merged.get("apiVersion")
    if api_version not in SUPPORTED_API_VERSIONS:
        raise ConfigError(
            f"Unsupported apiVersion {api_version!r} in {catalog_path.name}. "
            f"Supported: {', '.join(SUPPORTED_API_VERSIONS)}"
        )

    apps = merged.get("apps")
    if not isinstance(apps, list) or not apps:
        raise ConfigError(f"'apps' must be a non-empty list: {catalog_path}")

    app_defaults = merged.get("app_defaults") or {}
    merged_apps = []
    for index, app in enumerate(apps):
        if not isinstance(app, dict):
            raise ConfigError(f"apps[{index}] must be a mapping")
        merged_apps.append(_deep_merge_dicts(app_defaults, app))
    merged["apps"] = merged_apps

    logger.verbose("CONFIG", f"Catalog lists {len(merged_apps)} application(s)")
    return merged


def load_descriptors(
    catalog_path: Path, app_id: str | None = None
) -> list[ApplicationDescriptor]:
    """
    Load the catalog and build one ApplicationDescriptor per app entry.

    Args:
      catalog_path: Path to the catalog YAML file.
      app_id: Optional single-application selector.

    Raises
      ConfigError on invalid entries, duplicate ids, or an unknown app_id.
    """
    catalog_path = Path(catalog_path).resolve()
    catalog = load_catalog(catalog_path)

    descriptors: list[ApplicationDescriptor] = []
    seen: set[str] = set()
    for entry in catalog["apps"]:
        descriptor = descriptor_from_dict(entry, catalog_path.parent)
        if descriptor.app_id in seen:
            raise ConfigError(f"Duplicate app id in catalog: {descriptor.app_id!r}")
        seen.add(descriptor.app_id)
        descriptors.append(descriptor)

    if app_id is None:
        return descriptors

    selected = [d for d in descriptors if d.app_id == app_id]
    if not selected:
        available = ", ".join(sorted(seen))
        raise ConfigError(f"Unknown app id {app_id!r}. Available: {available}")
    return selected
