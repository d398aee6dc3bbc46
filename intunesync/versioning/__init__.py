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
Version comparison and extraction utilities for intunesync.

This package provides tools for comparing version strings and reading
embedded version metadata from installers (MSI, EXE).

Modules
-------
keys : module
    Total-order comparison over dotted-numeric versions with an explicit
    "incomparable" outcome for opaque tokens.
binary : module
    MSI/EXE ProductVersion extraction using PowerShell or msitools.

Public API
----------
Comparison : enum
    LESS, EQUAL, GREATER or INCOMPARABLE.
compare_versions : function
    Compare two version strings.
is_newer : function
    Check if a remote version is strictly newer than the current version.
version_key : function
    Sort key for version strings (numeric first, then text).
version_tokens : function
    Template tokens ({version}, {major}, {compact}, {underscore}).
ResolvedVersion : dataclass
    (version, download_url, filename, source) produced by discovery.
read_binary_version : function
    Embedded version of a downloaded installer.

Examples
--------
    >>> from intunesync.versioning import compare_versions, Comparison
    >>> compare_versions("1.2", "1.2.0") is Comparison.EQUAL
    True
    >>> compare_versions("Latest", "3.0.6")
    <Comparison.INCOMPARABLE: 'incomparable'>
"""

from .binary import read_binary_version
from .keys import (
    PLACEHOLDER_VERSION,
    Comparison,
    DiscoveredVersion,
    ResolvedVersion,
    compare_versions,
    is_newer,
    parse_dotted,
    version_key,
    version_tokens,
)
