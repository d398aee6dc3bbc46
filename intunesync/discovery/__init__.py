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

"""Discovery strategies for intunesync.

This package resolves each application's current version and download
location. Every DiscoveryStrategy variant of the catalog maps to exactly one
handler class, registered under the variant's ``kind``:

    api_json : ApiJsonStrategy
        GET a JSON endpoint and read the version from a JSONPath field.
    api_github : ApiGithubStrategy
        Latest GitHub release; first asset matching a pattern.
    web_scrape : WebScrapeStrategy
        Regex over a vendor page with direct, two_step or lowest rules.
    url_download : UrlDownloadStrategy (FILE-FIRST)
        Fixed URL; the version is read from the installer after download.
    static : StaticStrategy
        Always the configured fallback triple.

Example:
    Resolve one application:

        from pathlib import Path
        from intunesync.config import load_descriptors
        from intunesync.discovery import resolve_version

        descriptor = load_descriptors(Path("catalog/apps.yaml"), "7zip")[0]
        resolved = resolve_version(descriptor)
        print(f"{resolved.version} at {resolved.download_url}")

"""

# Import handler modules to trigger self-registration
from . import (
    api_github,  # noqa: F401
    api_json,  # noqa: F401
    static,  # noqa: F401
    url_download,  # noqa: F401
    web_scrape,  # noqa: F401
)
from .base import StrategyHandler, available_strategies, get_strategy
from .resolver import resolve_version

__all__ = ["StrategyHandler", "available_strategies", "get_strategy", "resolve_version"]
