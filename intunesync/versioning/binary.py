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

"""Embedded version extraction from downloaded installers.

Used by the post-download discovery path: the installer is fetched under a
temporary name first and its real version is read from the binary.

Backends:

MSI (ProductVersion from the Property table):

1. PowerShell COM (WindowsInstaller.Installer) on Windows
2. msiinfo (msitools package) on Linux/macOS

EXE (ProductVersion from the version resource):

1. PowerShell (Get-Item).VersionInfo on Windows

Example:
    Read an installer version:

        from pathlib import Path
        from intunesync.versioning.binary import read_binary_version

        discovered = read_binary_version(Path("packages/zoom/source/zoom-latest.msi"))
        print(f"{discovered.version} from {discovered.source}")
        # 6.4.3.58133 from msi

Note:
    This is pure file introspection; no network calls are made. Errors are
    chained for debugging (check the 'from err' clause).

"""

from __future__ import annotations

from pathlib import Path
import shutil
import subprocess
import sys

from intunesync.logging import get_global_logger

from .keys import DiscoveredVersion

_PS_MSI_SCRIPT = """
$installer = New-Object -ComObject WindowsInstaller.Installer
$db = $installer.OpenDatabase('{path}', 0)
$view = $db.OpenView("SELECT Value FROM Property WHERE Property='ProductVersion'")
$view.Execute()
$record = $view.Fetch()
if ($record) {{
    $record.StringData(1)
}} else {{
    Write-Error "ProductVersion not found"
    exit 1
}}
"""

_PS_EXE_SCRIPT = "(Get-Item -LiteralPath '{path}').VersionInfo.ProductVersion"


def _run_powershell(script: str) -> str:
    result = subprocess.run(
        ["powershell", "-NoProfile", "-NonInteractive", "-Command", script],
        check=True,
        capture_output=True,
        text=True,
        timeout=30,
    )
    return result.stdout.strip()


def _msi_version(p: Path) -> str:
    logger = get_global_logger()

    if sys.platform.startswith("win"):
        logger.debug("VERSION", "Trying backend: PowerShell COM...")
        try:
            version = _run_powershell(_PS_MSI_SCRIPT.format(path=p))
        except subprocess.CalledProcessError as err:
            raise RuntimeError(f"PowerShell MSI query failed: {err}") from err
        except subprocess.TimeoutExpired:
            raise RuntimeError("PowerShell MSI query timed out") from None
        if not version:
            raise RuntimeError("Empty ProductVersion in MSI Property table.")
        return version

    msiinfo = shutil.which("msiinfo")
    if msiinfo:
        logger.debug("VERSION", "Trying backend: msiinfo (msitools)...")
        try:
            result = subprocess.run(
                [msiinfo, "export", str(p), "Property"],
                check=True,
                capture_output=True,
                text=True,
            )
        except subprocess.CalledProcessError as err:
            raise RuntimeError(f"msiinfo failed: {err}") from err
        for line in result.stdout.splitlines():
            parts = line.strip().split("\t", 1)  # "Property<TAB>Value"
            if len(parts) == 2 and parts[0] == "ProductVersion" and parts[1]:
                return parts[1]
        raise RuntimeError("ProductVersion not found in MSI Property output.")

    raise NotImplementedError(
        "MSI version extraction is not available on this host. "
        "On Windows, ensure PowerShell is available. "
        "On Linux/macOS, install 'msitools'."
    )


def _exe_version(p: Path) -> str:
    logger = get_global_logger()

    if not sys.platform.startswith("win"):
        raise NotImplementedError(
            "EXE version extraction requires PowerShell on Windows."
        )

    logger.debug("VERSION", "Trying backend: PowerShell VersionInfo...")
    try:
        version = _run_powershell(_PS_EXE_SCRIPT.format(path=p))
    except subprocess.CalledProcessError as err:
        raise RuntimeError(f"PowerShell VersionInfo query failed: {err}") from err
    except subprocess.TimeoutExpired:
        raise RuntimeError("PowerShell VersionInfo query timed out") from None
    if not version:
        raise RuntimeError(f"No ProductVersion resource in {p.name}")
    # Some vendors pad the resource string ("6, 4, 3, 58133")
    return version.replace(", ", ".").replace(",", ".").strip()


def read_binary_version(file_path: str | Path) -> DiscoveredVersion:
    """Read the embedded product version from an MSI or EXE installer.

    Args:
        file_path: Path to the installer.

    Returns:
        Discovered version with source "msi" or "exe".

    Raises:
        FileNotFoundError: If the file doesn't exist.
        RuntimeError: If a backend ran but could not read the version.
        NotImplementedError: If no backend is available for the file type
            on this host.

    """
    logger = get_global_logger()
    p = Path(file_path)
    if not p.exists():
        raise FileNotFoundError(f"Installer not found: {p}")

    suffix = p.suffix.lower()
    logger.verbose("VERSION", f"Reading embedded version from: {p.name}")

    if suffix == ".msi":
        version = _msi_version(p)
        source = "msi"
    elif suffix == ".exe":
        version = _exe_version(p)
        source = "exe"
    else:
        raise NotImplementedError(f"No version reader for {suffix or 'extensionless'} files")

    logger.verbose("VERSION", f"Success! Extracted: {version} (via {source})")
    return DiscoveredVersion(version=version, source=source)
