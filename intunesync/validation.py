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

"""Catalog validation module.

This module checks a catalog file without making network calls or
downloading files. Useful for quick feedback when editing the catalog and
as a CI pre-check.

Validation Checks:

- YAML syntax is valid and org defaults merge cleanly
- apiVersion is supported and apps is a non-empty list
- Each app has the required fields (id, display_name, publisher, source,
  install_command, uninstall_command, detection)
- App ids are unique
- Discovery strategy exists and its configuration is valid
- Detection rule shape is valid
- An extraction block is present when requires_manual_extraction is set

Example:
    ```python
    from pathlib import Path
    from intunesync.validation import validate_catalog

    result = validate_catalog(Path("catalog/apps.yaml"))
    if result.status == "valid":
        print(f"Catalog is valid with {result.app_count} app(s)")
    else:
        for error in result.errors:
            print(f"Error: {error}")
    ```

"""

from __future__ import annotations

from pathlib import Path

from intunesync.config.descriptor import descriptor_from_dict, detection_from_dict
from intunesync.config.loader import load_catalog
from intunesync.discovery import get_strategy
from intunesync.exceptions import ConfigError
from intunesync.logging import get_global_logger
from intunesync.results import ValidationResult

__all__ = ["validate_catalog"]

REQUIRED_FIELDS = (
    "id",
    "display_name",
    "publisher",
    "source",
    "install_command",
    "uninstall_command",
    "detection",
)


def _invalid(catalog_path: Path, errors: list[str]) -> ValidationResult:
    return ValidationResult(
        status="invalid",
        errors=errors,
        warnings=[],
        app_count=0,
        catalog_path=str(catalog_path),
    )


def validate_catalog(catalog_path: Path) -> ValidationResult:
    """Validate a catalog file without downloading anything.

    Does NOT make network calls, verify URLs, or check whether versions
    can be discovered.

    Args:
        catalog_path: Path to the catalog YAML file.

    Returns:
        ValidationResult with status "valid" or "invalid".

    """
    logger = get_global_logger()
    catalog_path = Path(catalog_path)
    errors: list[str] = []
    warnings: list[str] = []

    if not catalog_path.exists():
        return _invalid(catalog_path, [f"Catalog file not found: {catalog_path}"])

    try:
        catalog = load_catalog(catalog_path)
    except ConfigError as err:
        return _invalid(catalog_path, [str(err)])

    logger.verbose("CONFIG", "[OK] YAML syntax and apiVersion are valid")

    apps = catalog["apps"]
    base_dir = catalog_path.resolve().parent
    seen: set[str] = set()

    for idx, app in enumerate(apps):
        app_prefix = f"apps[{idx}]"

        missing = [name for name in REQUIRED_FIELDS if name not in app]
        for name in missing:
            errors.append(f"{app_prefix}: Missing required field: {name}")

        app_id = app.get("id")
        if "id" in app:
            if not isinstance(app_id, str) or not app_id:
                errors.append(f"{app_prefix}: Field 'id' must be a non-empty string")
            elif app_id in seen:
                errors.append(f"{app_prefix}: Duplicate app id {app_id!r}")
            else:
                seen.add(app_id)
                app_prefix = f"apps[{app_id}]"

        source = app.get("source")
        if isinstance(source, dict):
            strategy_name = source.get("strategy")
            if not isinstance(strategy_name, str):
                errors.append(f"{app_prefix}.source: Missing required field: strategy")
            else:
                try:
                    strategy = get_strategy(strategy_name)
                except ConfigError as err:
                    errors.append(f"{app_prefix}.source.strategy: {err}")
                else:
                    for error in strategy.validate_config(source):
                        errors.append(f"{app_prefix}: {error}")
                    if strategy_name == "static" and not app.get("fallback"):
                        errors.append(f"{app_prefix}: static strategy needs a fallback block")
                    elif not app.get("fallback"):
                        warnings.append(
                            f"{app_prefix}: no fallback; discovery failures will fail the app"
                        )
        elif "source" in app:
            errors.append(f"{app_prefix}.source: Must be a dictionary")

        detection = app.get("detection")
        if isinstance(detection, dict):
            try:
                detection_from_dict(detection, f"{app_prefix}.detection", base_dir)
            except ConfigError as err:
                errors.append(str(err))
        elif "detection" in app:
            errors.append(f"{app_prefix}.detection: Must be a dictionary")

        if app.get("requires_manual_extraction") and not app.get("extraction"):
            errors.append(
                f"{app_prefix}: requires_manual_extraction is set but no 'extraction' block given"
            )

        if not missing:
            try:
                descriptor = descriptor_from_dict(app, base_dir)
            except ConfigError as err:
                message = str(err)
                if message not in errors:
                    errors.append(message)
            else:
                if descriptor.icon is not None and not descriptor.icon.exists():
                    warnings.append(f"{app_prefix}: icon not found: {descriptor.icon}")
                logger.verbose("CONFIG", f"  [OK] {descriptor.app_id} ({descriptor.strategy.kind})")

    status = "valid" if not errors else "invalid"
    return ValidationResult(
        status=status,
        errors=errors,
        warnings=warnings,
        app_count=len(apps),
        catalog_path=str(catalog_path),
    )
