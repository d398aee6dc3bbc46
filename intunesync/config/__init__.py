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

"""Catalog loading and application descriptors for intunesync.

The catalog is a YAML file layered over optional organization defaults
(defaults/org.yaml). The loader performs deep merging where dicts are
merged recursively and lists/scalars are replaced (last wins), then turns
each entry into an immutable ApplicationDescriptor.

Public API:

- load_catalog: Load and merge the raw catalog dict
- load_descriptors: Build ApplicationDescriptor records (optionally one app)
- ApplicationDescriptor and the strategy/detection variant dataclasses

Example:
    Basic usage:

        from pathlib import Path
        from intunesync.config import load_descriptors

        for app in load_descriptors(Path("catalog/apps.yaml")):
            print(app.app_id, app.strategy.kind)

"""

from .descriptor import (
    ApiField,
    ApplicationDescriptor,
    ArchiveVersionRule,
    DetectionRule,
    DiscoveryStrategy,
    ExtractionSpec,
    Fallback,
    FileDetection,
    PageScrape,
    PostDownloadBinaryMetadata,
    ProductCodeDetection,
    RegistryDetection,
    ReleaseAsset,
    ScriptDetection,
    StaticFallbackOnly,
    descriptor_from_dict,
)
from .loader import load_catalog, load_descriptors

__all__ = [
    "ApiField",
    "ApplicationDescriptor",
    "ArchiveVersionRule",
    "DetectionRule",
    "DiscoveryStrategy",
    "ExtractionSpec",
    "Fallback",
    "FileDetection",
    "PageScrape",
    "PostDownloadBinaryMetadata",
    "ProductCodeDetection",
    "RegistryDetection",
    "ReleaseAsset",
    "ScriptDetection",
    "StaticFallbackOnly",
    "descriptor_from_dict",
    "load_catalog",
    "load_descriptors",
]
