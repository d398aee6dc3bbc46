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

"""Extraction of inner installers from self-extracting containers.

Some vendors ship an EXE wrapper around the MSI that Intune should deploy.
The catalog supplies the extraction command; this module runs it, waits for
it to finish and verifies that the expected inner installer exists.

Example catalog block:

    requires_manual_extraction: true
    extraction:
      command: ["{container}", "/extract", "{source_dir}"]
      inner_installer: "VendorApp-{version}.msi"

"""

from __future__ import annotations

from pathlib import Path
import subprocess

from intunesync.config.descriptor import ExtractionSpec
from intunesync.exceptions import ExtractionError
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import version_tokens


def _render(template: str, tokens: dict[str, str]) -> str:
    try:
        return template.format(**tokens)
    except (KeyError, IndexError) as err:
        raise ExtractionError(f"Extraction template {template!r} uses an unknown token: {err}") from err


def inner_installer_path(spec: ExtractionSpec, source_dir: Path, version: str) -> Path:
    """Deterministic location of the inner installer for a version."""
    tokens = dict(version_tokens(version), source_dir=str(source_dir))
    return source_dir / _render(spec.inner_installer, tokens)


def run_extraction(
    spec: ExtractionSpec, container: Path, source_dir: Path, version: str
) -> Path:
    """Run the extraction command and return the inner installer path.

    Args:
        spec: Extraction command and expected inner installer.
        container: The downloaded self-extracting file.
        source_dir: Directory the installer must end up in.
        version: Version used to render the templates.

    Returns:
        Path of the inner installer.

    Raises:
        ExtractionError: If the command fails, times out, or the inner
            installer does not exist afterwards.

    """
    logger = get_global_logger()

    tokens = dict(
        version_tokens(version), container=str(container), source_dir=str(source_dir)
    )
    cmd = [_render(part, tokens) for part in spec.command]
    logger.verbose("EXTRACT", f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=True,
            timeout=spec.timeout,
            cwd=source_dir,
        )
        if result.stdout:
            logger.debug("EXTRACT", result.stdout.strip())
    except subprocess.CalledProcessError as err:
        message = f"Extraction command failed (exit code {err.returncode})"
        if err.stderr:
            message += f"\n{err.stderr}"
        raise ExtractionError(message) from err
    except subprocess.TimeoutExpired as err:
        raise ExtractionError(f"Extraction command timed out after {err.timeout}s") from err
    except OSError as err:
        raise ExtractionError(f"Extraction command could not start: {err}") from err

    inner = inner_installer_path(spec, source_dir, version)
    if not inner.is_file():
        raise ExtractionError(f"Expected inner installer not found after extraction: {inner}")

    logger.verbose("EXTRACT", f"[OK] Inner installer: {inner.name}")
    return inner
