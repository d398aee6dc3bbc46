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
intunesync - keep Intune Win32 apps in sync with their vendors.

intunesync watches a catalog of Windows applications, finds each vendor's
latest release, packages new versions as .intunewin archives and publishes
them to Microsoft Intune, making every new entry supersede the older ones
so clients upgrade in place.

Features
--------
- Version discovery strategies: JSON APIs, GitHub releases, HTML scraping
  (direct, two-step link following, lowest-of-many), post-download binary
  metadata, static fallback
- Local archive ledger: nothing is downloaded or packaged twice
- Self-extracting container support (inner installer extraction)
- IntuneWinAppUtil.exe packaging
- Intune Win32 app creation with content upload over Microsoft Graph
- Supersedence wiring and optional all-users / all-devices assignments

Quick Start
-----------
Validate the catalog:

    $ intunesync validate catalog/apps.yaml

Package everything, then publish:

    $ intunesync run catalog/apps.yaml --assign-users

For full CLI documentation:

    $ intunesync --help

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    Packaging and deployment passes over the catalog.
config : package
    Catalog loading, defaults merging and typed descriptors.
discovery : package
    One handler per version discovery strategy.
versioning : package
    Version comparison and binary version metadata.
ledger : module
    Local archive existence checks.
build : package
    Acquisition-and-packaging pipeline.
deploy : package
    Reconciliation against the Intune catalog.
graph, auth : packages
    Microsoft Graph client and session.

Public API
----------
    from intunesync.core import run_packaging, run_deployment
    from intunesync.config import load_descriptors
    from intunesync.validation import validate_catalog
    from intunesync.versioning import compare_versions
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Keep Intune Win32 apps in sync with their vendors"

# Re-export commonly used functions for convenience
from intunesync.config import load_descriptors
from intunesync.core import run_deployment, run_packaging
from intunesync.validation import validate_catalog
from intunesync.versioning import Comparison, ResolvedVersion, compare_versions

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "load_descriptors",
    "run_packaging",
    "run_deployment",
    "validate_catalog",
    "compare_versions",
    "Comparison",
    "ResolvedVersion",
]
