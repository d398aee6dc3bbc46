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

""".intunewin packaging for intunesync.

Wraps Microsoft's Win32 Content Prep Tool (IntuneWinAppUtil.exe). The tool
is downloaded once and cached; every call packs one source folder with one
named setup file.

Example:
    ```python
    from pathlib import Path
    from intunesync.build.packager import pack_source

    archive = pack_source(
        Path("packages/7zip/source"), "7z2501-x64.msi", Path("packages/7zip")
    )
    # packages/7zip/7z2501-x64.intunewin
    ```
"""

from __future__ import annotations

from pathlib import Path
import subprocess

import requests

from intunesync.exceptions import NetworkError, PackagingError
from intunesync.logging import get_global_logger

INTUNEWIN_TOOL_URL = (
    "https://github.com/microsoft/Microsoft-Win32-Content-Prep-Tool"
    "/raw/master/IntuneWinAppUtil.exe"
)
DEFAULT_TOOL_CACHE = Path("cache/tools")


def get_intunewin_tool(cache_dir: Path = DEFAULT_TOOL_CACHE) -> Path:
    """Download and cache IntuneWinAppUtil.exe.

    Returns:
        Path to the cached tool.

    Raises:
        NetworkError: If download fails.
    """
    logger = get_global_logger()
    tool_path = cache_dir / "IntuneWinAppUtil.exe"

    if tool_path.exists():
        logger.verbose("PACKAGE", f"Using cached IntuneWinAppUtil: {tool_path}")
        return tool_path

    logger.verbose("PACKAGE", "Downloading IntuneWinAppUtil.exe...")
    try:
        response = requests.get(INTUNEWIN_TOOL_URL, timeout=60)
        response.raise_for_status()
    except requests.RequestException as err:
        raise NetworkError(f"Failed to download IntuneWinAppUtil.exe: {err}") from err

    cache_dir.mkdir(parents=True, exist_ok=True)
    tool_path.write_bytes(response.content)
    logger.verbose("PACKAGE", f"[OK] IntuneWinAppUtil.exe cached: {tool_path}")
    return tool_path


def pack_source(
    source_dir: Path,
    setup_file: str,
    output_dir: Path,
    *,
    tool_cache: Path = DEFAULT_TOOL_CACHE,
    timeout: int = 600,
) -> Path:
    """Pack a source folder into a .intunewin archive.

    Args:
        source_dir: Folder whose whole content goes into the archive.
        setup_file: Entry file name, relative to ``source_dir``.
        output_dir: Directory the archive is written to.
        tool_cache: Where IntuneWinAppUtil.exe is cached.
        timeout: Seconds to wait for the tool.

    Returns:
        Path to the created archive (named after the setup file's stem).

    Raises:
        PackagingError: If the setup file is missing, the tool exits
            non-zero or times out, or no archive appears.
        NetworkError: If the tool cannot be downloaded.

    """
    logger = get_global_logger()

    source_dir = Path(source_dir).resolve()
    output_dir = Path(output_dir).resolve()

    if not (source_dir / setup_file).is_file():
        raise PackagingError(f"Setup file not found: {source_dir / setup_file}")

    tool_path = get_intunewin_tool(tool_cache)
    output_dir.mkdir(parents=True, exist_ok=True)

    # IntuneWinAppUtil.exe -c <source> -s <setup file> -o <output> -q
    cmd = [
        str(tool_path),
        "-c",
        str(source_dir),
        "-s",
        setup_file,
        "-o",
        str(output_dir),
        "-q",
    ]
    logger.verbose("PACKAGE", f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
        if result.stdout:
            for line in result.stdout.strip().split("\n"):
                logger.debug("PACKAGE", f"  {line}")
    except subprocess.CalledProcessError as err:
        error_msg = f"IntuneWinAppUtil.exe failed (exit code {err.returncode})"
        if err.stderr:
            error_msg += f"\n{err.stderr}"
        raise PackagingError(error_msg) from err
    except subprocess.TimeoutExpired as err:
        raise PackagingError(f"IntuneWinAppUtil.exe timed out after {err.timeout}s") from err

    expected = output_dir / f"{Path(setup_file).stem}.intunewin"
    if not expected.exists():
        raise PackagingError(
            f"IntuneWinAppUtil.exe completed but {expected.name} was not found in {output_dir}"
        )

    logger.verbose("PACKAGE", f"[OK] Created: {expected.name}")
    return expected
