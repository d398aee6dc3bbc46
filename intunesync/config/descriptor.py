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

"""Application descriptors for intunesync.

An ApplicationDescriptor is the immutable, per-application configuration
record loaded from the catalog at start-up. It carries one discovery
strategy (a closed set of tagged variants), an optional static fallback,
the Intune app metadata (commands, detection rule, requirements) and the
flags that drive the packaging pipeline.

Catalog entry example (YAML):

    - id: 7zip
      display_name: "7-Zip {major}"
      publisher: "Igor Pavlov"
      archive_dir: 7zip
      archive_glob: "7z*-x64.intunewin"
      archive_version: {pattern: '7z(\\d{2})(\\d{2})', format: "{0}.{1}"}
      installer_filename: "7z{compact}-x64.msi"
      source:
        strategy: web_scrape
        page_url: "https://www.7-zip.org/download.html"
        pattern: 'href="a/7z(\\d{2})(\\d{2})-x64\\.msi"'
        version_format: "{0}.{1}"
        url_template: "https://www.7-zip.org/a/7z{compact}-x64.msi"
      fallback:
        url: "https://www.7-zip.org/a/7z2501-x64.msi"
        version: "25.01"
        filename: "7z{compact}-x64.msi"
      detection: {type: product_code}

Each strategy variant has a ``kind`` matching the name its handler
registers under in ``intunesync.discovery``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Union

from intunesync.exceptions import ConfigError
from intunesync.versioning.keys import version_tokens

SupersedenceType = Literal["update", "replace"]
ScrapeRule = Literal["direct", "two_step", "lowest"]

DEFAULT_INSTALLER_EXTENSIONS = (".msi", ".exe", ".msix")

# -------------------------------
# Discovery strategy variants
# -------------------------------


@dataclass(frozen=True)
class ApiField:
    """GET a JSON endpoint and read the version from a JSONPath field."""

    url: str
    version_path: str
    download_url_path: str | None = None
    url_template: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    kind: str = field(default="api_json", init=False)


@dataclass(frozen=True)
class ReleaseAsset:
    """Latest GitHub release; first asset whose name matches the pattern."""

    asset_pattern: str
    repo: str | None = None
    releases_url: str | None = None
    token: str | None = None
    kind: str = field(default="api_github", init=False)


@dataclass(frozen=True)
class PageScrape:
    """Scrape a vendor page with a regex; ``rule`` composes the result."""

    page_url: str
    pattern: str
    rule: ScrapeRule = "direct"
    version_format: str = "{0}"
    url_template: str | None = None
    second_page_template: str | None = None
    second_pattern: str | None = None
    link_selector: str | None = None
    kind: str = field(default="web_scrape", init=False)


@dataclass(frozen=True)
class PostDownloadBinaryMetadata:
    """Fixed URL; the version is read from the installer after download."""

    url: str
    kind: str = field(default="url_download", init=False)


@dataclass(frozen=True)
class StaticFallbackOnly:
    """No live discovery; always use the configured fallback triple."""

    kind: str = field(default="static", init=False)


DiscoveryStrategy = Union[
    ApiField, ReleaseAsset, PageScrape, PostDownloadBinaryMetadata, StaticFallbackOnly
]


@dataclass(frozen=True)
class Fallback:
    """Static (url, version, filename-template) used when discovery fails."""

    url: str
    version: str
    filename: str


# -------------------------------
# Detection rule variants
# -------------------------------


@dataclass(frozen=True)
class FileDetection:
    path: str
    file_or_folder_name: str
    operator: str = "equal"
    check_32bit_on_64bit: bool = False
    kind: str = field(default="file", init=False)


@dataclass(frozen=True)
class ProductCodeDetection:
    """MSI product code rule; the code comes from the archive when omitted."""

    product_code: str | None = None
    kind: str = field(default="product_code", init=False)


@dataclass(frozen=True)
class ScriptDetection:
    script_path: Path
    enforce_signature_check: bool = False
    run_as_32bit: bool = False
    kind: str = field(default="script", init=False)


@dataclass(frozen=True)
class RegistryDetection:
    key_path: str
    value_name: str
    operator: str = "equal"
    check_32bit_on_64bit: bool = False
    kind: str = field(default="registry", init=False)


DetectionRule = Union[FileDetection, ProductCodeDetection, ScriptDetection, RegistryDetection]

# -------------------------------
# Auxiliary records
# -------------------------------


@dataclass(frozen=True)
class ArchiveVersionRule:
    """Ledger extraction rule for non-dotted archive names (e.g. 7z2501)."""

    pattern: str
    format: str = "{0}"


@dataclass(frozen=True)
class ExtractionSpec:
    """External extraction of a self-extracting container.

    Attributes:
        command: Argument list; tokens {container}, {source_dir} and the
            version tokens are substituted in every element.
        inner_installer: Path of the expected inner installer, relative to
            the source directory; version tokens are substituted.
        timeout: Seconds to wait for the command.
    """

    command: tuple[str, ...]
    inner_installer: str
    timeout: int = 600


@dataclass(frozen=True)
class ApplicationDescriptor:
    """Static per-application configuration record."""

    app_id: str
    display_name: str
    publisher: str
    strategy: DiscoveryStrategy
    install_command: str
    uninstall_command: str
    detection: DetectionRule
    description: str = ""
    archive_dir: str = ""
    archive_glob: str = "*.intunewin"
    fallback: Fallback | None = None
    installer_filename: str | None = None
    archive_version: ArchiveVersionRule | None = None
    extraction: ExtractionSpec | None = None
    auto_update: bool = False
    requires_manual_extraction: bool = False
    supersedence_type: SupersedenceType = "update"
    icon: Path | None = None
    installer_extensions: tuple[str, ...] = DEFAULT_INSTALLER_EXTENSIONS
    architectures: str = "x64"
    minimum_os: str = "W10_21H2"
    run_as_account: str = "system"
    restart_behavior: str = "suppress"

    @property
    def version_format_nonstandard(self) -> bool:
        return self.archive_version is not None

    def render_display_name(self, version: str) -> str:
        """Render the display name template for a version."""
        try:
            return self.display_name.format(**version_tokens(version))
        except (KeyError, IndexError) as err:
            raise ConfigError(
                f"{self.app_id}: display_name template {self.display_name!r} "
                f"uses an unknown token: {err}"
            ) from err


# -------------------------------
# Construction from catalog dicts
# -------------------------------


def _require(mapping: dict[str, Any], key: str, where: str) -> Any:
    value = mapping.get(key)
    if value in (None, ""):
        raise ConfigError(f"{where}: missing required field '{key}'")
    return value


def strategy_from_dict(source: dict[str, Any], where: str) -> DiscoveryStrategy:
    """Build the discovery strategy variant named by ``source.strategy``."""
    name = _require(source, "strategy", where)

    if name == "api_json":
        return ApiField(
            url=_require(source, "url", where),
            version_path=_require(source, "version_path", where),
            download_url_path=source.get("download_url_path"),
            url_template=source.get("url_template"),
            headers=dict(source.get("headers") or {}),
        )
    if name == "api_github":
        if not source.get("repo") and not source.get("releases_url"):
            raise ConfigError(f"{where}: api_github needs 'repo' or 'releases_url'")
        return ReleaseAsset(
            asset_pattern=_require(source, "asset_pattern", where),
            repo=source.get("repo"),
            releases_url=source.get("releases_url"),
            token=source.get("token"),
        )
    if name == "web_scrape":
        rule = source.get("rule", "direct")
        if rule not in ("direct", "two_step", "lowest"):
            raise ConfigError(f"{where}: unknown web_scrape rule {rule!r}")
        return PageScrape(
            page_url=_require(source, "page_url", where),
            pattern=_require(source, "pattern", where),
            rule=rule,
            version_format=source.get("version_format", "{0}"),
            url_template=source.get("url_template"),
            second_page_template=source.get("second_page_template"),
            second_pattern=source.get("second_pattern"),
            link_selector=source.get("link_selector"),
        )
    if name == "url_download":
        return PostDownloadBinaryMetadata(url=_require(source, "url", where))
    if name == "static":
        return StaticFallbackOnly()

    raise ConfigError(f"{where}: unknown discovery strategy {name!r}")


def detection_from_dict(
    detection: dict[str, Any], where: str, base_dir: Path
) -> DetectionRule:
    kind = _require(detection, "type", where)

    if kind == "file":
        return FileDetection(
            path=_require(detection, "path", where),
            file_or_folder_name=_require(detection, "file_or_folder_name", where),
            operator=detection.get("operator", "equal"),
            check_32bit_on_64bit=bool(detection.get("check_32bit_on_64bit", False)),
        )
    if kind == "product_code":
        return ProductCodeDetection(product_code=detection.get("product_code"))
    if kind == "script":
        script = Path(_require(detection, "script_path", where))
        if not script.is_absolute():
            script = (base_dir / script).resolve()
        return ScriptDetection(
            script_path=script,
            enforce_signature_check=bool(detection.get("enforce_signature_check", False)),
            run_as_32bit=bool(detection.get("run_as_32bit", False)),
        )
    if kind == "registry":
        return RegistryDetection(
            key_path=_require(detection, "key_path", where),
            value_name=_require(detection, "value_name", where),
            operator=detection.get("operator", "equal"),
            check_32bit_on_64bit=bool(detection.get("check_32bit_on_64bit", False)),
        )

    raise ConfigError(f"{where}: unknown detection type {kind!r}")


def descriptor_from_dict(app: dict[str, Any], base_dir: Path) -> ApplicationDescriptor:
    """Build an ApplicationDescriptor from one merged catalog entry.

    Args:
        app: Catalog entry after defaults were merged in.
        base_dir: Directory relative paths (icon, detection script) are
            resolved against, normally the catalog file's directory.

    Raises:
        ConfigError: On missing or invalid fields.

    """
    app_id = _require(app, "id", "app")
    where = f"apps[{app_id}]"

    fallback = None
    if app.get("fallback"):
        fb = app["fallback"]
        fallback = Fallback(
            url=_require(fb, "url", f"{where}.fallback"),
            version=str(_require(fb, "version", f"{where}.fallback")),
            filename=_require(fb, "filename", f"{where}.fallback"),
        )

    archive_version = None
    if app.get("archive_version"):
        av = app["archive_version"]
        archive_version = ArchiveVersionRule(
            pattern=_require(av, "pattern", f"{where}.archive_version"),
            format=av.get("format", "{0}"),
        )

    requires_extraction = bool(app.get("requires_manual_extraction", False))
    extraction = None
    if app.get("extraction"):
        ex = app["extraction"]
        command = _require(ex, "command", f"{where}.extraction")
        if isinstance(command, str):
            command = command.split()
        extraction = ExtractionSpec(
            command=tuple(str(c) for c in command),
            inner_installer=_require(ex, "inner_installer", f"{where}.extraction"),
            timeout=int(ex.get("timeout", 600)),
        )
    if requires_extraction and extraction is None:
        raise ConfigError(
            f"{where}: requires_manual_extraction is set but no 'extraction' block given"
        )

    supersedence = app.get("supersedence", "update")
    if supersedence not in ("update", "replace"):
        raise ConfigError(f"{where}: supersedence must be 'update' or 'replace'")

    icon = None
    if app.get("icon"):
        icon = Path(app["icon"])
        if not icon.is_absolute():
            icon = (base_dir / icon).resolve()

    intune = app.get("intune", {}) or {}
    extensions = app.get("installer_extensions") or DEFAULT_INSTALLER_EXTENSIONS

    return ApplicationDescriptor(
        app_id=app_id,
        display_name=_require(app, "display_name", where),
        publisher=_require(app, "publisher", where),
        description=app.get("description", "") or "",
        strategy=strategy_from_dict(app.get("source") or {}, f"{where}.source"),
        install_command=_require(app, "install_command", where),
        uninstall_command=_require(app, "uninstall_command", where),
        detection=detection_from_dict(
            app.get("detection") or {}, f"{where}.detection", base_dir
        ),
        archive_dir=app.get("archive_dir") or app_id,
        archive_glob=app.get("archive_glob", "*.intunewin"),
        fallback=fallback,
        installer_filename=app.get("installer_filename"),
        archive_version=archive_version,
        extraction=extraction,
        auto_update=bool(app.get("auto_update", False)),
        requires_manual_extraction=requires_extraction,
        supersedence_type=supersedence,
        icon=icon,
        installer_extensions=tuple(e.lower() for e in extensions),
        architectures=intune.get("architectures", "x64"),
        minimum_os=intune.get("minimum_os", "W10_21H2"),
        run_as_account=intune.get("run_as_account", "system"),
        restart_behavior=intune.get("restart_behavior", "suppress"),
    )
