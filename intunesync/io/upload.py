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

"""Azure Storage block upload of encrypted .intunewin payloads.

Graph hands out a SAS URI for each content file. The payload is sent as a
series of blocks (``comp=block``) and committed with a block list
(``comp=blocklist``).
"""

from __future__ import annotations

import base64
from typing import IO

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from intunesync.exceptions import UploadError
from intunesync.logging import get_global_logger

# Azure accepts up to 100 MiB per block; Intune docs use 6 MiB.
DEFAULT_BLOCK_SIZE = 6 * 1024 * 1024


def _upload_session() -> requests.Session:
    s = requests.Session()
    retries = Retry(
        total=5,
        backoff_factor=1.0,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("PUT",),
        raise_on_status=False,
    )
    s.headers.update({"x-ms-blob-type": "BlockBlob"})
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


def _block_id(index: int) -> str:
    return base64.b64encode(f"{index:06d}".encode("ascii")).decode("ascii")


def upload_blocks(
    sas_uri: str,
    stream: IO[bytes],
    *,
    block_size: int = DEFAULT_BLOCK_SIZE,
    timeout: int = 120,
) -> int:
    """Upload a stream to a SAS URI as block blob and commit the block list.

    Returns:
        Number of blocks uploaded.

    Raises:
        UploadError: If any block or the block list is rejected.

    """
    logger = get_global_logger()
    block_ids: list[str] = []

    with _upload_session() as session:
        while True:
            chunk = stream.read(block_size)
            if not chunk:
                break
            block_id = _block_id(len(block_ids))
            try:
                response = session.put(
                    f"{sas_uri}&comp=block&blockid={block_id}", data=chunk, timeout=timeout
                )
                response.raise_for_status()
            except requests.RequestException as err:
                raise UploadError(f"Block {len(block_ids)} upload failed: {err}") from err
            block_ids.append(block_id)
            logger.debug("UPLOAD", f"Block {len(block_ids)} uploaded ({len(chunk)} bytes)")

        body = "<?xml version=\"1.0\" encoding=\"utf-8\"?><BlockList>"
        body += "".join(f"<Latest>{b}</Latest>" for b in block_ids)
        body += "</BlockList>"
        try:
            response = session.put(
                f"{sas_uri}&comp=blocklist", data=body.encode("utf-8"), timeout=timeout
            )
            response.raise_for_status()
        except requests.RequestException as err:
            raise UploadError(f"Block list commit failed: {err}") from err

    logger.verbose("UPLOAD", f"Uploaded {len(block_ids)} block(s)")
    return len(block_ids)
