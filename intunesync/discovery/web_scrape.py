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

"""Web scraping discovery strategy for intunesync.

Scrapes a vendor download page with a regular expression. What happens
after the match is governed by ``rule``:

direct (default):
    The first match yields the version; the download URL is either
    ``url_template`` filled with the version tokens and positional groups,
    or the named ``url`` group resolved against the page URL.

two_step:
    The first match yields an intermediate version used to build a second
    page URL (``second_page_template``). That page is scraped with
    ``second_pattern`` (regex) or ``link_selector`` (CSS, BeautifulSoup) to
    obtain the real download link. The installer filename is the link's own
    basename, which is often more specific than the first page suggests.
    A named ``version`` group in ``second_pattern`` overrides the version.

lowest:
    Every match on the page is collected, distinct versions are sorted
    ascending and the lowest one is used. Vendors that list an enterprise
    (stable) and a feature channel side by side are pinned to the
    conservative one this way.

Version Extraction:

- Named group ``(?P<version>...)`` wins when present.
- Otherwise ``version_format`` combines the positional groups
  (``"{0}.{1}"`` turns captures "25", "01" into "25.01").
- Without groups the whole match is the version.

Catalog Configuration:

    source:
      strategy: web_scrape
      page_url: "https://www.7-zip.org/download.html"
      pattern: 'href="a/7z(\\d{2})(\\d{2})-x64\\.msi"'
      version_format: "{0}.{1}"
      url_template: "https://www.7-zip.org/a/7z{compact}-x64.msi"

Two-step example (Notepad++):

    source:
      strategy: web_scrape
      rule: two_step
      page_url: "https://notepad-plus-plus.org/downloads/"
      pattern: 'href="/downloads/v(?P<version>[\\d.]+)/"'
      second_page_template: "https://notepad-plus-plus.org/downloads/v{version}/"
      second_pattern: 'href="(?P<url>[^"]+npp\\.[\\d.]+\\.Installer\\.x64\\.exe)"'

Error Handling:

- NetworkError: Page download failures
- DiscoveryError: Pattern or selector matched nothing
- ConfigError: Invalid regex, missing template for the chosen rule

"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from intunesync.config.descriptor import ApplicationDescriptor, PageScrape
from intunesync.exceptions import ConfigError, DiscoveryError
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import ResolvedVersion, version_key

from .base import (
    check_regex_fields,
    check_string_fields,
    compile_pattern,
    filename_from_url,
    http_get,
    register_strategy,
    render_template,
)

RULES = ("direct", "two_step", "lowest")


def _version_from_match(match: re.Match, version_format: str) -> str:
    if "version" in match.re.groupindex:
        return match.group("version")
    groups = match.groups()
    if not groups:
        return match.group(0)
    try:
        return version_format.format(*groups)
    except (IndexError, KeyError) as err:
        raise ConfigError(
            f"version_format {version_format!r} failed with groups {groups}: {err}"
        ) from err


def _url_from_match(
    match: re.Match, strategy: PageScrape, version: str, base_url: str
) -> str:
    if strategy.url_template:
        return urljoin(base_url, render_template(strategy.url_template, version, match.groups()))
    if "url" in match.re.groupindex:
        return urljoin(base_url, match.group("url"))
    raise ConfigError(
        "web_scrape needs source.url_template or a named 'url' group in source.pattern"
    )


class WebScrapeStrategy:
    """Discovery handler for PageScrape descriptors."""

    def get_version_info(self, descriptor: ApplicationDescriptor) -> ResolvedVersion:
        """Scrape the vendor page and apply the configured rule.

        Raises:
            NetworkError: If a page cannot be fetched.
            DiscoveryError: If nothing on the page matches.
            ConfigError: If the rule's fields are missing or invalid.

        """
        logger = get_global_logger()
        strategy: PageScrape = descriptor.strategy  # type: ignore[assignment]

        logger.verbose("DISCOVERY", f"Strategy: web_scrape ({strategy.rule})")
        pattern = compile_pattern(strategy.pattern, "pattern")
        html = http_get(strategy.page_url).text

        if strategy.rule == "lowest":
            return self._pick_lowest(strategy, pattern, html)

        match = pattern.search(html)
        if not match:
            raise DiscoveryError(
                f"Pattern {strategy.pattern!r} did not match anything on {strategy.page_url}"
            )
        version = _version_from_match(match, strategy.version_format)
        logger.verbose("DISCOVERY", f"Extracted version: {version}")

        if strategy.rule == "two_step":
            return self._follow_link(strategy, match, version)

        download_url = _url_from_match(match, strategy, version, strategy.page_url)
        logger.verbose("DISCOVERY", f"Download URL: {download_url}")
        return ResolvedVersion(
            version=version,
            download_url=download_url,
            filename=filename_from_url(download_url),
            source="web_scrape",
        )

    def _follow_link(
        self, strategy: PageScrape, first: re.Match, version: str
    ) -> ResolvedVersion:
        logger = get_global_logger()

        if not strategy.second_page_template:
            raise ConfigError("two_step rule requires source.second_page_template")
        second_url = urljoin(
            strategy.page_url,
            render_template(strategy.second_page_template, version, first.groups()),
        )
        logger.verbose("DISCOVERY", f"Following to second page: {second_url}")
        html = http_get(second_url).text

        if strategy.link_selector:
            soup = BeautifulSoup(html, "html.parser")
            element = soup.select_one(strategy.link_selector)
            if not element or not element.get("href"):
                raise DiscoveryError(
                    f"CSS selector {strategy.link_selector!r} found no link on {second_url}"
                )
            href = element["href"]
        elif strategy.second_pattern:
            second_pattern = compile_pattern(strategy.second_pattern, "second_pattern")
            second = second_pattern.search(html)
            if not second:
                raise DiscoveryError(
                    f"Pattern {strategy.second_pattern!r} did not match anything on {second_url}"
                )
            if "url" in second_pattern.groupindex:
                href = second.group("url")
            elif second_pattern.groups:
                href = second.group(1)
            else:
                href = second.group(0)
            if "version" in second_pattern.groupindex:
                version = second.group("version")
                logger.verbose("DISCOVERY", f"Second page refines version: {version}")
        else:
            raise ConfigError(
                "two_step rule requires source.second_pattern or source.link_selector"
            )

        download_url = urljoin(second_url, href)
        filename = filename_from_url(download_url)
        logger.verbose("DISCOVERY", f"Download URL: {download_url}")
        logger.verbose("DISCOVERY", f"Installer filename: {filename}")
        return ResolvedVersion(
            version=version,
            download_url=download_url,
            filename=filename,
            source="web_scrape",
        )

    def _pick_lowest(
        self, strategy: PageScrape, pattern: re.Pattern, html: str
    ) -> ResolvedVersion:
        logger = get_global_logger()

        candidates: dict[str, re.Match] = {}
        for match in pattern.finditer(html):
            version = _version_from_match(match, strategy.version_format)
            candidates.setdefault(version, match)

        if not candidates:
            raise DiscoveryError(
                f"Pattern {strategy.pattern!r} did not match anything on {strategy.page_url}"
            )

        ordered = sorted(candidates, key=version_key)
        chosen = ordered[0]
        if len(ordered) > 1:
            logger.verbose(
                "DISCOVERY",
                f"Found versions {', '.join(ordered)}; using lowest: {chosen}",
            )
        else:
            logger.verbose("DISCOVERY", f"Extracted version: {chosen}")

        download_url = _url_from_match(candidates[chosen], strategy, chosen, strategy.page_url)
        return ResolvedVersion(
            version=chosen,
            download_url=download_url,
            filename=filename_from_url(download_url),
            source="web_scrape",
        )

    def validate_config(self, source: dict[str, Any]) -> list[str]:
        """Validate web_scrape strategy configuration."""
        errors = check_string_fields(
            source,
            required=("page_url", "pattern"),
            optional=(
                "version_format",
                "url_template",
                "second_page_template",
                "second_pattern",
                "link_selector",
            ),
        )
        errors.extend(check_regex_fields(source, ("pattern", "second_pattern")))

        rule = source.get("rule", "direct")
        if rule not in RULES:
            errors.append(f"source.rule must be one of: {', '.join(RULES)}")
        elif rule == "two_step":
            if not source.get("second_page_template"):
                errors.append("two_step rule requires source.second_page_template")
            if not source.get("second_pattern") and not source.get("link_selector"):
                errors.append(
                    "two_step rule requires source.second_pattern or source.link_selector"
                )
        else:
            has_url_group = "(?P<url>" in str(source.get("pattern", ""))
            if not source.get("url_template") and not has_url_group:
                errors.append(
                    "Missing required field: source.url_template "
                    "(or a named 'url' group in source.pattern)"
                )

        selector = source.get("link_selector")
        if isinstance(selector, str) and selector.strip():
            try:
                BeautifulSoup("<html></html>", "html.parser").select_one(selector)
            except Exception as err:
                errors.append(f"Invalid CSS selector: {err}")
        return errors


register_strategy("web_scrape", WebScrapeStrategy)
