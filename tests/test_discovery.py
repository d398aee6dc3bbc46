"""
Tests for intunesync.discovery module.

Tests discovery strategies including:
- Strategy registry
- JSON API, GitHub release, page scraping (direct, two_step, lowest),
  post-download and static strategies
- Fallback handling in resolve_version
- Strategy configuration validation
"""

from __future__ import annotations

from pathlib import Path

import pytest
import requests_mock

from intunesync.config.descriptor import (
    ApiField,
    Fallback,
    PageScrape,
    PostDownloadBinaryMetadata,
    ReleaseAsset,
    StaticFallbackOnly,
)
from intunesync.config.loader import load_descriptors
from intunesync.discovery import available_strategies, get_strategy, resolve_version
from intunesync.discovery.api_github import ApiGithubStrategy, strip_tag_prefix
from intunesync.discovery.api_json import ApiJsonStrategy
from intunesync.discovery.base import register_strategy
from intunesync.discovery.web_scrape import WebScrapeStrategy
from intunesync.exceptions import ConfigError, DiscoveryError, NetworkError

pytestmark = pytest.mark.unit

FALLBACK = Fallback(
    url="https://cdn.example.com/widget-1.0.0.msi",
    version="1.0.0",
    filename="widget-{version}.msi",
)


class TestStrategyRegistry:
    """Tests for discovery strategy registration and lookup."""

    def test_all_variants_registered(self):
        assert set(available_strategies()) >= {
            "api_json",
            "api_github",
            "web_scrape",
            "url_download",
            "static",
        }

    def test_get_api_github_strategy(self):
        assert isinstance(get_strategy("api_github"), ApiGithubStrategy)

    def test_get_unknown_strategy_raises(self):
        with pytest.raises(ConfigError, match="Unknown discovery strategy"):
            get_strategy("nonexistent_strategy")

    def test_register_custom_strategy(self):
        class CustomStrategy:
            def get_version_info(self, descriptor):
                return None

            def validate_config(self, source):
                return []

        register_strategy("custom_test", CustomStrategy)
        assert isinstance(get_strategy("custom_test"), CustomStrategy)


class TestApiJsonStrategy:
    """Tests for the api_json strategy."""

    def test_version_and_download_url_paths(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ApiField(
                url="https://api.example.com/latest",
                version_path="$.release.version",
                download_url_path="$.release.url",
            )
        )
        with requests_mock.Mocker() as m:
            m.get(
                "https://api.example.com/latest",
                json={"release": {"version": "1.95.3", "url": "https://cdn.example.com/Setup-1.95.3.exe"}},
            )
            resolved = ApiJsonStrategy().get_version_info(descriptor)

        assert resolved.version == "1.95.3"
        assert resolved.download_url == "https://cdn.example.com/Setup-1.95.3.exe"
        assert resolved.filename == "Setup-1.95.3.exe"

    def test_url_template(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ApiField(
                url="https://api.example.com/versions.json",
                version_path="LATEST",
                url_template="https://cdn.example.com/{version}/app-{version}.msi",
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://api.example.com/versions.json", json={"LATEST": "133.0"})
            resolved = ApiJsonStrategy().get_version_info(descriptor)

        assert resolved.download_url == "https://cdn.example.com/133.0/app-133.0.msi"

    def test_missing_field_raises_discovery_error(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ApiField(
                url="https://api.example.com/latest",
                version_path="$.version",
                url_template="https://cdn.example.com/{version}.msi",
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://api.example.com/latest", json={"other": 1})
            with pytest.raises(DiscoveryError):
                ApiJsonStrategy().get_version_info(descriptor)

    def test_http_error_raises_network_error(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ApiField(
                url="https://api.example.com/latest",
                version_path="$.version",
                url_template="https://cdn.example.com/{version}.msi",
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://api.example.com/latest", status_code=500)
            with pytest.raises(NetworkError):
                ApiJsonStrategy().get_version_info(descriptor)

    def test_validate_config_requires_url_source(self):
        errors = ApiJsonStrategy().validate_config({"url": "https://x", "version_path": "$.v"})
        assert any("download_url_path" in e for e in errors)


class TestApiGithubStrategy:
    """Tests for the api_github strategy."""

    RELEASE = {
        "tag_name": "v2.47.1",
        "assets": [
            {"name": "Git-2.47.1-32-bit.exe", "browser_download_url": "https://gh/Git-2.47.1-32-bit.exe"},
            {"name": "Git-2.47.1-64-bit.exe", "browser_download_url": "https://gh/Git-2.47.1-64-bit.exe"},
        ],
    }

    def test_first_matching_asset(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ReleaseAsset(asset_pattern=r"64-bit\.exe$", repo="git-for-windows/git")
        )
        with requests_mock.Mocker() as m:
            m.get(
                "https://api.github.com/repos/git-for-windows/git/releases/latest",
                json=self.RELEASE,
            )
            resolved = ApiGithubStrategy().get_version_info(descriptor)

        assert resolved.version == "2.47.1"
        assert resolved.filename == "Git-2.47.1-64-bit.exe"
        assert resolved.download_url == "https://gh/Git-2.47.1-64-bit.exe"

    def test_release_list_uses_first_entry(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ReleaseAsset(
                asset_pattern=r"\.exe$", releases_url="https://ghe.example.com/api/releases"
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://ghe.example.com/api/releases", json=[self.RELEASE, {"tag_name": "v1"}])
            resolved = ApiGithubStrategy().get_version_info(descriptor)

        assert resolved.version == "2.47.1"
        assert resolved.filename == "Git-2.47.1-32-bit.exe"

    def test_no_matching_asset(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ReleaseAsset(asset_pattern=r"\.msi$", repo="git-for-windows/git")
        )
        with requests_mock.Mocker() as m:
            m.get(
                "https://api.github.com/repos/git-for-windows/git/releases/latest",
                json=self.RELEASE,
            )
            with pytest.raises(DiscoveryError, match="No assets matched"):
                ApiGithubStrategy().get_version_info(descriptor)

    def test_not_found(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ReleaseAsset(asset_pattern=r"\.exe$", repo="owner/missing")
        )
        with requests_mock.Mocker() as m:
            m.get("https://api.github.com/repos/owner/missing/releases/latest", status_code=404)
            with pytest.raises(NetworkError, match="not found"):
                ApiGithubStrategy().get_version_info(descriptor)

    def test_non_json_body_raises_network_error(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ReleaseAsset(asset_pattern=r"\.exe$", repo="git-for-windows/git")
        )
        with requests_mock.Mocker() as m:
            m.get(
                "https://api.github.com/repos/git-for-windows/git/releases/latest",
                text="<html>proxy login</html>",
            )
            with pytest.raises(NetworkError, match="Invalid JSON"):
                ApiGithubStrategy().get_version_info(descriptor)

    @pytest.mark.parametrize("payload", ["v2.47.1", [["nested"]], 42])
    def test_non_object_payload_raises_discovery_error(self, make_descriptor, payload):
        descriptor = make_descriptor(
            strategy=ReleaseAsset(asset_pattern=r"\.exe$", repo="git-for-windows/git")
        )
        with requests_mock.Mocker() as m:
            m.get(
                "https://api.github.com/repos/git-for-windows/git/releases/latest",
                json=payload,
            )
            with pytest.raises(DiscoveryError, match="Unexpected release payload"):
                ApiGithubStrategy().get_version_info(descriptor)

    def test_strip_tag_prefix_only_once(self):
        assert strip_tag_prefix("v2.47.1") == "2.47.1"
        assert strip_tag_prefix("vv1.0") == "v1.0"
        assert strip_tag_prefix("2.0") == "2.0"

    def test_validate_config_repo_format(self):
        errors = ApiGithubStrategy().validate_config({"asset_pattern": "x", "repo": "norepo"})
        assert any("owner/repo" in e for e in errors)


class TestWebScrapeStrategy:
    """Tests for the web_scrape strategy and its rules."""

    def test_direct_with_version_format(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PageScrape(
                page_url="https://www.7-zip.org/download.html",
                pattern=r'href="a/7z(\d{2})(\d{2})-x64\.msi"',
                version_format="{0}.{1}",
                url_template="https://www.7-zip.org/a/7z{compact}-x64.msi",
            )
        )
        html = '<a href="a/7z2501-x64.msi">Download</a> <a href="a/7z2409-x64.msi">old</a>'
        with requests_mock.Mocker() as m:
            m.get("https://www.7-zip.org/download.html", text=html)
            resolved = WebScrapeStrategy().get_version_info(descriptor)

        assert resolved.version == "25.01"
        assert resolved.download_url == "https://www.7-zip.org/a/7z2501-x64.msi"
        assert resolved.filename == "7z2501-x64.msi"

    def test_direct_named_url_group_is_joined(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PageScrape(
                page_url="https://vendor.example.com/downloads/",
                pattern=r'href="(?P<url>files/app-(?P<version>[\d.]+)\.msi)"',
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://vendor.example.com/downloads/", text='<a href="files/app-4.2.msi">')
            resolved = WebScrapeStrategy().get_version_info(descriptor)

        assert resolved.version == "4.2"
        assert resolved.download_url == "https://vendor.example.com/downloads/files/app-4.2.msi"

    def test_lowest_picks_conservative_channel(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PageScrape(
                page_url="https://vendor.example.com/downloads",
                pattern=r"app-(\d+\.\d+\.\d+)-x64\.msi",
                rule="lowest",
                url_template="https://cdn.example.com/app-{version}-x64.msi",
            )
        )
        html = "app-7.6.4-x64.msi app-7.6.1-x64.msi app-7.6.4-x64.msi"
        with requests_mock.Mocker() as m:
            m.get("https://vendor.example.com/downloads", text=html)
            resolved = WebScrapeStrategy().get_version_info(descriptor)

        assert resolved.version == "7.6.1"
        assert resolved.download_url == "https://cdn.example.com/app-7.6.1-x64.msi"

    def test_lowest_single_match(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PageScrape(
                page_url="https://vendor.example.com/downloads",
                pattern=r"app-(\d+\.\d+\.\d+)-x64\.msi",
                rule="lowest",
                url_template="https://cdn.example.com/app-{version}-x64.msi",
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://vendor.example.com/downloads", text="app-7.6.4-x64.msi")
            assert WebScrapeStrategy().get_version_info(descriptor).version == "7.6.4"

    def test_lowest_no_match_fails(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PageScrape(
                page_url="https://vendor.example.com/downloads",
                pattern=r"app-(\d+\.\d+\.\d+)-x64\.msi",
                rule="lowest",
                url_template="https://cdn.example.com/app-{version}-x64.msi",
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://vendor.example.com/downloads", text="nothing here")
            with pytest.raises(DiscoveryError):
                WebScrapeStrategy().get_version_info(descriptor)

    def test_two_step_second_pattern_refines_version(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PageScrape(
                page_url="https://vendor.example.com/releases/",
                pattern=r'href="/releases/(\d+\.\d+)/"',
                rule="two_step",
                second_page_template="https://vendor.example.com/releases/{version}/",
                second_pattern=r'href="(?P<url>[^"]+app-(?P<version>[\d.]+)-x64\.exe)"',
            )
        )
        with requests_mock.Mocker() as m:
            m.get("https://vendor.example.com/releases/", text='<a href="/releases/8.7/">8.7</a>')
            m.get(
                "https://vendor.example.com/releases/8.7/",
                text='<a href="/dl/app-8.7.1-x64.exe">installer</a>',
            )
            resolved = WebScrapeStrategy().get_version_info(descriptor)

        assert resolved.version == "8.7.1"
        assert resolved.download_url == "https://vendor.example.com/dl/app-8.7.1-x64.exe"
        assert resolved.filename == "app-8.7.1-x64.exe"

    def test_two_step_link_selector(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PageScrape(
                page_url="https://notepad-plus-plus.org/downloads/",
                pattern=r'href="/downloads/v(\d+(?:\.\d+)+)/"',
                rule="two_step",
                second_page_template="https://notepad-plus-plus.org/downloads/v{version}/",
                link_selector='a[href$=".x64.exe"]',
            )
        )
        second = (
            '<a href="https://github.com/npp/npp.8.7.1.Installer.exe">32</a>'
            '<a href="https://github.com/npp/npp.8.7.1.Installer.x64.exe">64</a>'
        )
        with requests_mock.Mocker() as m:
            m.get("https://notepad-plus-plus.org/downloads/", text='<a href="/downloads/v8.7.1/">')
            m.get("https://notepad-plus-plus.org/downloads/v8.7.1/", text=second)
            resolved = WebScrapeStrategy().get_version_info(descriptor)

        assert resolved.version == "8.7.1"
        assert resolved.filename == "npp.8.7.1.Installer.x64.exe"

    def test_validate_config_two_step_requirements(self):
        errors = WebScrapeStrategy().validate_config(
            {"page_url": "https://x", "pattern": "(\\d+)", "rule": "two_step"}
        )
        assert any("second_page_template" in e for e in errors)

    def test_validate_config_bad_regex(self):
        errors = WebScrapeStrategy().validate_config(
            {"page_url": "https://x", "pattern": "(unclosed", "url_template": "u"}
        )
        assert any("regex" in e for e in errors)


class TestResolveVersion:
    """Tests for resolve_version and fallback handling."""

    def test_failure_uses_fallback(self, make_descriptor):
        descriptor = make_descriptor(fallback=FALLBACK)
        with requests_mock.Mocker() as m:
            m.get("https://widget.example.com/download", status_code=503)
            resolved = resolve_version(descriptor)

        assert resolved.version == "1.0.0"
        assert resolved.download_url == FALLBACK.url
        assert resolved.filename == "widget-1.0.0.msi"
        assert resolved.source == "fallback"

    def test_no_match_uses_fallback(self, make_descriptor):
        descriptor = make_descriptor(fallback=FALLBACK)
        with requests_mock.Mocker() as m:
            m.get("https://widget.example.com/download", text="no links")
            assert resolve_version(descriptor).source == "fallback"

    def test_failure_without_fallback_raises(self, make_descriptor):
        descriptor = make_descriptor()
        with requests_mock.Mocker() as m:
            m.get("https://widget.example.com/download", status_code=404)
            with pytest.raises(DiscoveryError, match="no fallback"):
                resolve_version(descriptor)

    def test_github_proxy_page_uses_fallback(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=ReleaseAsset(asset_pattern=r"\.msi$", repo="vendor/widget"),
            fallback=FALLBACK,
        )
        with requests_mock.Mocker() as m:
            m.get(
                "https://api.github.com/repos/vendor/widget/releases/latest",
                text="<html>proxy</html>",
            )
            resolved = resolve_version(descriptor)

        assert resolved.source == "fallback"
        assert resolved.version == "1.0.0"

    def test_static_strategy(self, make_descriptor):
        descriptor = make_descriptor(strategy=StaticFallbackOnly(), fallback=FALLBACK)
        resolved = resolve_version(descriptor)
        assert (resolved.version, resolved.filename) == ("1.0.0", "widget-1.0.0.msi")

    def test_static_without_fallback_raises(self, make_descriptor):
        with pytest.raises(DiscoveryError):
            resolve_version(make_descriptor(strategy=StaticFallbackOnly()))

    def test_url_download_returns_placeholder(self, make_descriptor):
        descriptor = make_descriptor(
            strategy=PostDownloadBinaryMetadata(url="https://zoom.example.com/latest/Zoom.msi?arch=x64"),
            installer_filename="zoom-{version}.msi",
        )
        resolved = resolve_version(descriptor)

        assert resolved.version == "Latest"
        assert resolved.filename == "Zoom.msi"
        assert resolved.download_url.endswith("arch=x64")

    def test_installer_filename_template_applied(self, make_descriptor):
        descriptor = make_descriptor(installer_filename="Widget-{version}-x64.msi")
        with requests_mock.Mocker() as m:
            m.get("https://widget.example.com/download", text="widget-2.1.0.msi")
            resolved = resolve_version(descriptor)

        assert resolved.version == "2.1.0"
        assert resolved.filename == "Widget-2.1.0-x64.msi"


class TestShippedCatalogSources:
    """Discovery against listings shaped like the shipped catalog's vendor pages."""

    CATALOG = Path(__file__).resolve().parents[1] / "catalog" / "apps.yaml"

    def test_vlc_reads_current_release_directory(self):
        (descriptor,) = load_descriptors(self.CATALOG, "vlc")
        listing = (
            '<a href="../">../</a>\n'
            '<a href="vlc-3.0.21-win64.exe">vlc-3.0.21-win64.exe</a>\n'
            '<a href="vlc-3.0.21-win64.msi">vlc-3.0.21-win64.msi</a>\n'
        )
        with requests_mock.Mocker() as m:
            m.get(descriptor.strategy.page_url, text=listing)
            resolved = resolve_version(descriptor)

        assert resolved.source == "web_scrape"
        assert resolved.version == "3.0.21"
        assert resolved.download_url == (
            "https://download.videolan.org/pub/videolan/vlc/last/win64/vlc-3.0.21-win64.msi"
        )

    def test_libreoffice_pins_still_channel(self):
        (descriptor,) = load_descriptors(self.CATALOG, "libreoffice")
        listing = '<a href="../">../</a>\n<a href="25.2.1/">25.2.1/</a>\n<a href="24.8.5/">24.8.5/</a>\n'
        with requests_mock.Mocker() as m:
            m.get(descriptor.strategy.page_url, text=listing)
            resolved = resolve_version(descriptor)

        assert resolved.version == "24.8.5"
        assert resolved.download_url.endswith("/24.8.5/win/x86_64/LibreOffice_24.8.5_Win_x86-64.msi")
