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

"""Acquisition-and-packaging pipeline for intunesync.

package_app() takes one application from "what is the latest version" to a
.intunewin archive on disk, stopping early whenever the work is already
done.

Directory Layout:

    packages/
      7zip/                       # descriptor.archive_dir
        7z2409-x64.intunewin      # archives are never deleted
        7z2501-x64.intunewin
        source/                   # packed as a whole
          7z2501-x64.msi          # only the current installer is kept

Pipeline Steps:

    1. Resolve version (discovery, with static fallback).
    2. Post-download strategies: fetch under a temporary name and read the
       embedded version. An unreadable version keeps the placeholder and
       the temporary name so the ledger can never match it.
    3. Self-extracting containers: run the extraction command and verify
       the inner installer.
    4. Ledger check; up to date -> delete the temporary download, Skipped.
    5. Installer and archive both on disk -> Skipped; installer only ->
       package without fetching (resumes interrupted runs).
    6. Fetch the installer under its final name.
    7. Remove stale sibling installers from the source folder.
    8. Pack the source folder with the installer as entry file.

Running the pipeline twice with an unchanged upstream version yields
Skipped the second time without a second download.
"""

from __future__ import annotations

from pathlib import Path

from intunesync.config.descriptor import ApplicationDescriptor
from intunesync.discovery import resolve_version
from intunesync.discovery.base import render_template
from intunesync.exceptions import IntuneSyncError
from intunesync.io.download import fetch_file
from intunesync.ledger import extractor_for, is_up_to_date
from intunesync.logging import get_global_logger
from intunesync.results import (
    PACKAGE_FAILED,
    PACKAGE_PACKAGED,
    PACKAGE_SKIPPED,
    PackageResult,
)
from intunesync.versioning import read_binary_version
from intunesync.versioning.keys import PLACEHOLDER_VERSION

from .extract import inner_installer_path, run_extraction
from .packager import pack_source

SOURCE_DIRNAME = "source"
TOTAL_STEPS = 6


def _post_download_names(
    descriptor: ApplicationDescriptor, resolved_filename: str, source_dir: Path
) -> Path:
    suffix = Path(resolved_filename).suffix
    return source_dir / f"{descriptor.app_id}-latest{suffix}"


def _final_installer_name(
    descriptor: ApplicationDescriptor, resolved_filename: str, version: str
) -> str:
    """Installer name once the real version is known (post-download path)."""
    if descriptor.installer_filename:
        return render_template(descriptor.installer_filename, version)
    original = Path(resolved_filename)
    return f"{original.stem}-{version}{original.suffix}"


def _remove_stale_installers(
    descriptor: ApplicationDescriptor, source_dir: Path, keep: set[Path]
) -> list[Path]:
    logger = get_global_logger()
    removed = []
    if not source_dir.is_dir():
        return removed
    for path in sorted(source_dir.iterdir()):
        if not path.is_file() or path.resolve() in keep:
            continue
        if path.suffix.lower() in descriptor.installer_extensions:
            path.unlink()
            removed.append(path)
            logger.verbose("PACKAGE", f"Removed stale installer: {path.name}")
    return removed


def _run_pipeline(descriptor: ApplicationDescriptor, packages_root: Path) -> PackageResult:
    logger = get_global_logger()

    app_dir = Path(packages_root) / descriptor.archive_dir
    source_dir = app_dir / SOURCE_DIRNAME
    extractor = extractor_for(descriptor)

    # 1) Resolve
    logger.step(1, TOTAL_STEPS, f"Resolving version for {descriptor.app_id}...")
    resolved = resolve_version(descriptor)
    version = resolved.version
    installer_name = resolved.filename

    # 2) Post-download version discovery
    downloaded: Path | None = None
    if descriptor.strategy.kind == "url_download":
        logger.verbose("PACKAGE", "Downloading installer to read its version...")
        downloaded = _post_download_names(descriptor, resolved.filename, source_dir)
        fetch_file(resolved.download_url, downloaded)
        try:
            version = read_binary_version(downloaded).version
        except (RuntimeError, NotImplementedError, OSError) as err:
            logger.warning(
                "PACKAGE",
                f"{descriptor.app_id}: could not read installer version ({err}); "
                f"continuing with {PLACEHOLDER_VERSION!r} and {downloaded.name}",
            )
            installer_name = downloaded.name
        else:
            installer_name = _final_installer_name(descriptor, resolved.filename, version)
            logger.verbose("PACKAGE", f"Installer reports version {version}")

    # 3) Container extraction (post-download path; the container is on disk now)
    inner: Path | None = None
    if descriptor.requires_manual_extraction and downloaded is not None:
        logger.verbose("PACKAGE", "Extracting inner installer...")
        inner = run_extraction(descriptor.extraction, downloaded, source_dir, version)

    # 4) Ledger
    logger.step(2, TOTAL_STEPS, "Checking local archives...")
    if is_up_to_date(app_dir, version, descriptor.archive_glob, extractor):
        if downloaded is not None and downloaded.exists():
            downloaded.unlink()
            logger.verbose("PACKAGE", f"Removed temporary download: {downloaded.name}")
        if inner is not None and inner.exists():
            inner.unlink()
        return PackageResult(
            app_id=descriptor.app_id,
            status=PACKAGE_SKIPPED,
            version=version,
            reason=f"version {version} already packaged",
        )

    # 5) Installer / archive already on disk
    installer = source_dir / installer_name
    archive_path = app_dir / f"{Path(installer_name).stem}.intunewin"
    fetch_needed = True
    if downloaded is not None:
        if downloaded != installer:
            downloaded.replace(installer)
        fetch_needed = False
    elif installer.exists():
        if archive_path.exists():
            logger.verbose("PACKAGE", f"Installer and archive already present: {installer_name}")
            return PackageResult(
                app_id=descriptor.app_id,
                status=PACKAGE_SKIPPED,
                version=version,
                package_path=archive_path,
                reason="installer and archive already present",
            )
        logger.verbose("PACKAGE", f"Installer present without archive: {installer_name}")
        fetch_needed = False

    # 6) Fetch
    if fetch_needed:
        logger.step(3, TOTAL_STEPS, f"Downloading {installer_name}...")
        fetch_file(resolved.download_url, installer)

    if descriptor.requires_manual_extraction and inner is None:
        logger.step(4, TOTAL_STEPS, "Extracting inner installer...")
        inner = inner_installer_path(descriptor.extraction, source_dir, version)
        if not inner.is_file():
            inner = run_extraction(descriptor.extraction, installer, source_dir, version)

    # 7) Stale installers
    logger.step(5, TOTAL_STEPS, "Cleaning stale installers...")
    keep = {installer.resolve()}
    if inner is not None:
        keep.add(inner.resolve())
    _remove_stale_installers(descriptor, source_dir, keep)

    # 8) Pack
    logger.step(6, TOTAL_STEPS, "Creating .intunewin package...")
    setup_file = inner.relative_to(source_dir).as_posix() if inner else installer.name
    produced = pack_source(source_dir, setup_file, app_dir)
    if produced.resolve() != archive_path.resolve():
        produced.replace(archive_path)

    logger.verbose("PACKAGE", f"[OK] Package created: {archive_path}")
    return PackageResult(
        app_id=descriptor.app_id,
        status=PACKAGE_PACKAGED,
        version=version,
        package_path=archive_path,
    )


def package_app(descriptor: ApplicationDescriptor, packages_root: Path) -> PackageResult:
    """Run the acquisition-and-packaging pipeline for one application.

    Args:
        descriptor: Application descriptor.
        packages_root: Root of the archive directory tree.

    Returns:
        PackageResult with status "skipped", "packaged" or "failed". Errors
        of this application never propagate; they become a failed result.

    Example:
        ```python
        from pathlib import Path
        from intunesync.build import package_app

        result = package_app(descriptor, Path("packages"))
        print(result.status, result.package_path)
        ```

    """
    logger = get_global_logger()
    try:
        result = _run_pipeline(descriptor, packages_root)
    except (IntuneSyncError, OSError) as err:
        logger.warning("PACKAGE", f"{descriptor.app_id}: {err}")
        return PackageResult(app_id=descriptor.app_id, status=PACKAGE_FAILED, reason=str(err))

    logger.verbose("PACKAGE", f"{descriptor.app_id}: {result.status}")
    return result
