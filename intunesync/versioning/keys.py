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

"""Core version comparison utilities for intunesync.

This module is format-agnostic: it does NOT download or read files.
It only parses and compares version strings consistently across sources
(vendor APIs, release tags, archive filenames, Intune displayVersion).

Only strictly dotted-numeric strings ("25.01", "3.0.21.0") are ordered.
Anything else ("Latest", "v1.2", "1.0-beta") is an opaque token that can
only be equal to the exact same string; it is never ordered against
anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re

# Version token returned by strategies that only learn the real version
# after the installer has been downloaded.
PLACEHOLDER_VERSION = "Latest"

# ----------------------------
# Shared DTOs
# ----------------------------


@dataclass(frozen=True)
class DiscoveredVersion:
    """Container for a discovered version string.

    Attributes:
        version: Raw version string (e.g., "140.0.7339.128").
        source: Where it came from (e.g., "msi", "exe", "synthetic").

    """

    version: str
    source: str


@dataclass(frozen=True)
class ResolvedVersion:
    """Result of version resolution for one application.

    Attributes:
        version: Dotted-numeric version or an opaque token such as "Latest".
        download_url: URL to download the installer from.
        filename: Target installer filename (version embedded when known).
        source: Strategy kind or "fallback", for logging.

    """

    version: str
    download_url: str
    filename: str
    source: str


class Comparison(Enum):
    """Outcome of comparing version ``a`` against version ``b``."""

    LESS = "less"
    EQUAL = "equal"
    GREATER = "greater"
    INCOMPARABLE = "incomparable"


# ----------------------------
# Parsing
# ----------------------------

_DOTTED = re.compile(r"^\d+(?:\.\d+)*$")


def parse_dotted(text: str) -> tuple[int, ...] | None:
    """Parse a strictly dotted-numeric version into an int tuple.

    Returns None for anything that is not digits separated by single dots
    (surrounding whitespace is ignored).
    """
    s = text.strip()
    if not _DOTTED.match(s):
        return None
    return tuple(int(p) for p in s.split("."))


def _pad_equal(
    a: tuple[int, ...], b: tuple[int, ...]
) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """Pad tuples with zeros so they align for element-wise comparison."""
    n = max(len(a), len(b))
    return a + (0,) * (n - len(a)), b + (0,) * (n - len(b))


# ----------------------------
# Comparison
# ----------------------------


def compare_versions(a: str, b: str) -> Comparison:
    """Compare two version strings.

    Both dotted-numeric: component-wise comparison with missing trailing
    components treated as 0, so "1.2" == "1.2.0". Otherwise falls back to
    case-sensitive exact equality: EQUAL or INCOMPARABLE, never an ordering.

    Example:
        ```python
        compare_versions("1.2", "1.2.0")        # Comparison.EQUAL
        compare_versions("10.0", "9.9")         # Comparison.GREATER
        compare_versions("Latest", "3.0.6")     # Comparison.INCOMPARABLE
        ```
    """
    pa = parse_dotted(a)
    pb = parse_dotted(b)
    if pa is None or pb is None:
        return Comparison.EQUAL if a == b else Comparison.INCOMPARABLE

    pa, pb = _pad_equal(pa, pb)
    if pa < pb:
        return Comparison.LESS
    if pa > pb:
        return Comparison.GREATER
    return Comparison.EQUAL


def is_newer(remote: str, current: str | None) -> bool:
    """Decide if 'remote' is strictly newer than 'current'.

    A missing current version counts as older. Incomparable versions are
    never considered newer.
    """
    if current is None:
        return True
    return compare_versions(remote, current) is Comparison.GREATER


def version_key(s: str) -> tuple:
    """Sort key: dotted-numeric versions first (numerically), then text.

    Trailing zero components are dropped so "1.2" and "1.2.0" sort together.
    """
    nums = parse_dotted(s)
    if nums is None:
        return (1, s)
    trimmed = list(nums)
    while len(trimmed) > 1 and trimmed[-1] == 0:
        trimmed.pop()
    return (0, tuple(trimmed))


def version_tokens(version: str) -> dict[str, str]:
    """Build the template tokens derived from a version string.

    Tokens:
        version: The version as-is ("25.01").
        major: Text before the first dot ("25").
        compact: Version with dots removed ("2501").
        underscore: Dots replaced by underscores ("25_01").
    """
    return {
        "version": version,
        "major": version.split(".", 1)[0],
        "compact": version.replace(".", ""),
        "underscore": version.replace(".", "_"),
    }
