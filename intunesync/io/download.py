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

"""Installer download for intunesync.

The pipeline always knows the exact target filename before it downloads
(it comes from the resolved version), so unlike a browser-style download
the destination is a full path rather than a folder.

Behavior:

- Follows redirects and retries transient failures (urllib3 Retry).
- Streams to ``<dest>.part`` and renames on success, so an interrupted
  run never leaves a truncated file under the final name.
- Computes SHA-256 while streaming.

Example:
    from pathlib import Path
    from intunesync.io import fetch_file

    path, sha256, headers = fetch_file(
        "https://www.7-zip.org/a/7z2501-x64.msi",
        Path("packages/7zip/source/7z2501-x64.msi"),
    )

"""

from __future__ import annotations

import hashlib
from pathlib import Path
import time

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from intunesync import __version__
from intunesync.exceptions import NetworkError
from intunesync.logging import get_global_logger

# Stream size per chunk (1 MiB).
DEFAULT_CHUNK = 1024 * 1024


def make_session() -> requests.Session:
    """
    Create a requests.Session with sane retry/backoff defaults.

    - Retries on common transient status codes.
    - Applies exponential backoff.
    - Sets a User-Agent to avoid being blocked by vendor CDNs.
    """
    s = requests.Session()
    retries = Retry(
        total=5,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    s.headers.update(
        {
            "User-Agent": f"intunesync/{__version__}",
            "Accept-Encoding": "identity",
        }
    )
    s.mount("http://", HTTPAdapter(max_retries=retries))
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


def fetch_file(
    url: str,
    dest_path: Path,
    *,
    timeout: int = 60,
) -> tuple[Path, str, dict]:
    """Download a URL to an exact destination path.

    Args:
        url: Source URL.
        dest_path: Final file path (parent directories are created).
        timeout: Per-request timeout (seconds).

    Returns:
        A tuple (file_path, sha256_hex, headers_dict).

    Raises:
        NetworkError: On connection errors or non-2xx responses (after
            retries). Any partial ``.part`` file is left for inspection.

    """
    logger = get_global_logger()

    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    logger.verbose("HTTP", f"GET {url}")

    with make_session() as session:
        try:
            resp = session.get(url, stream=True, allow_redirects=True, timeout=timeout)
        except requests.RequestException as err:
            raise NetworkError(f"download failed for {url}: {err}") from err

        for hist in resp.history:
            logger.debug(
                "HTTP",
                f"Redirect {hist.status_code} -> {hist.headers.get('Location', 'unknown')}",
            )

        try:
            resp.raise_for_status()
        except requests.HTTPError as err:
            resp.close()
            raise NetworkError(f"download failed for {url}: {err}") from err

        logger.verbose("HTTP", f"Response: {resp.status_code} {resp.reason}")

        content_length = resp.headers.get("Content-Length")
        if content_length:
            size_mb = int(content_length) / (1024 * 1024)
            logger.verbose("HTTP", f"Content-Length: {content_length} ({size_mb:.1f} MB)")

        tmp = dest_path.with_suffix(dest_path.suffix + ".part")
        logger.verbose("FILE", f"Downloading to: {tmp}")

        sha = hashlib.sha256()
        started_at = time.time()
        try:
            with tmp.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK):
                    if not chunk:
                        continue
                    f.write(chunk)
                    sha.update(chunk)
        except requests.RequestException as err:
            raise NetworkError(f"download interrupted for {url}: {err}") from err
        finally:
            resp.close()

        digest = sha.hexdigest()
        logger.debug("FILE", f"SHA-256: {digest} (computed during download)")

        logger.verbose("FILE", f"Atomic rename: {tmp.name} -> {dest_path.name}")
        tmp.replace(dest_path)

        elapsed = time.time() - started_at
        logger.verbose("FILE", f"Download complete: {dest_path} in {elapsed:.1f}s")

        return dest_path, digest, dict(resp.headers)
