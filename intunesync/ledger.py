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

"""Local package existence checks for intunesync.

The archive directory of an application is the only persisted state of the
packaging pass. Archive filenames embed the version; the ledger recovers it
with a pluggable extractor and compares it with a candidate version.

Extractors:

- DottedVersionExtractor: first dotted-numeric substring
  (``Git-2.47.1-64-bit.intunewin`` -> ``2.47.1``)
- PatternVersionExtractor: regex + format for vendor-specific names
  (``7z2501-x64.intunewin`` with ``7z(\\d{2})(\\d{2})`` / ``{0}.{1}`` -> ``25.01``)

A filename no extractor can parse never counts as "up to date".

Example:
    ```python
    from pathlib import Path
    from intunesync.ledger import is_up_to_date

    is_up_to_date(Path("packages/git"), "2.47.1", "Git-*.intunewin")
    ```
"""

from __future__ import annotations

from pathlib import Path
import re
from typing import TYPE_CHECKING, Protocol

from intunesync.logging import get_global_logger
from intunesync.versioning.keys import Comparison, compare_versions

if TYPE_CHECKING:
    from intunesync.config.descriptor import ApplicationDescriptor


class VersionExtractor(Protocol):
    def extract(self, filename: str) -> str | None:
        """Return the version embedded in ``filename``, or None."""
        ...


class DottedVersionExtractor:
    """First dotted-numeric substring of a filename.

    At least one dot is required so architecture tags such as "x64" are
    never mistaken for a version.
    """

    _PATTERN = re.compile(r"\d+(?:\.\d+)+")

    def extract(self, filename: str) -> str | None:
        match = self._PATTERN.search(filename)
        if not match:
            return None
        return match.group(0).rstrip("._-")


class PatternVersionExtractor:
    """Vendor-specific extraction: regex groups combined by a format string."""

    def __init__(self, pattern: str, version_format: str = "{0}") -> None:
        self.pattern = re.compile(pattern)
        self.version_format = version_format

    def extract(self, filename: str) -> str | None:
        match = self.pattern.search(filename)
        if not match:
            return None
        if "version" in self.pattern.groupindex:
            return match.group("version")
        groups = match.groups()
        if not groups:
            return match.group(0)
        try:
            return self.version_format.format(*groups)
        except (IndexError, KeyError):
            return None


def extractor_for(descriptor: ApplicationDescriptor) -> VersionExtractor:
    """Pick the extractor an application's archive names need."""
    rule = descriptor.archive_version
    if rule is not None:
        return PatternVersionExtractor(rule.pattern, rule.format)
    return DottedVersionExtractor()


def is_up_to_date(
    archive_dir: Path,
    candidate: str,
    glob: str = "*.intunewin",
    extractor: VersionExtractor | None = None,
) -> bool:
    """Check whether ``candidate`` (or something newer) is already packaged.

    Args:
        archive_dir: Directory holding the application's archives.
        candidate: Version about to be packaged.
        glob: Archive filename pattern.
        extractor: Filename version extractor (dotted-numeric by default).

    Returns:
        True as soon as one archive's version compares Equal or Greater to
        the candidate; False for a missing or empty directory or when no
        filename yields a comparable version.

    """
    logger = get_global_logger()
    extractor = extractor or DottedVersionExtractor()

    archive_dir = Path(archive_dir)
    if not archive_dir.is_dir():
        logger.verbose("LEDGER", f"No archive directory yet: {archive_dir}")
        return False

    for path in sorted(archive_dir.glob(glob)):
        if not path.is_file():
            continue
        existing = extractor.extract(path.name)
        if existing is None:
            logger.debug("LEDGER", f"No version in {path.name}; ignoring")
            continue
        outcome = compare_versions(existing, candidate)
        logger.debug("LEDGER", f"{path.name}: {existing} vs {candidate} -> {outcome.value}")
        if outcome in (Comparison.EQUAL, Comparison.GREATER):
            logger.verbose("LEDGER", f"Already packaged: {path.name} ({existing})")
            return True

    return False


def newest_archive(archive_dir: Path, glob: str = "*.intunewin") -> Path | None:
    """Newest archive by modification time, or None if there is none."""
    archive_dir = Path(archive_dir)
    if not archive_dir.is_dir():
        return None
    archives = [p for p in archive_dir.glob(glob) if p.is_file()]
    if not archives:
        return None
    return max(archives, key=lambda p: p.stat().st_mtime)
