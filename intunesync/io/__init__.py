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
File I/O for intunesync: installer downloads, .intunewin archive reading,
and block upload of encrypted payloads to Azure Storage.

Modules
-------
download : module
    fetch_file and make_session (retries, atomic .part writes, SHA-256).
intunewin : module
    read_archive_metadata for Detection.xml of .intunewin archives.
upload : module
    upload_blocks to a Graph-issued SAS URI.

Example:
    from pathlib import Path
    from intunesync.io import fetch_file

    path, sha256, headers = fetch_file(
        "https://example.com/installer.msi",
        Path("./packages/example/source/installer.msi"),
    )

"""

from .download import fetch_file, make_session
from .intunewin import ArchiveMetadata, open_payload, read_archive_metadata
from .upload import upload_blocks

__all__ = [
    "ArchiveMetadata",
    "fetch_file",
    "make_session",
    "open_payload",
    "read_archive_metadata",
    "upload_blocks",
]
