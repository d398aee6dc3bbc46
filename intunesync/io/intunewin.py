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

"""Reading .intunewin archives.

A .intunewin file is a zip with two members the upload needs:

    IntuneWinPackage/Metadata/Detection.xml     # sizes, encryption info, MSI info
    IntuneWinPackage/Contents/<FileName>        # the encrypted payload

Detection.xml carries everything Graph asks for when a content file is
created and committed (unencrypted size, encryption keys, digest) plus the
MSI properties used for product-code detection rules.

Example:
    ```python
    from pathlib import Path
    from intunesync.io.intunewin import read_archive_metadata

    meta = read_archive_metadata(Path("packages/7zip/7z2501-x64.intunewin"))
    print(meta.setup_file, meta.product_code, meta.product_version)
    ```
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO
import xml.etree.ElementTree as ETree
import zipfile

from intunesync.exceptions import PackagingError

METADATA_MEMBER = "IntuneWinPackage/Metadata/Detection.xml"
CONTENTS_PREFIX = "IntuneWinPackage/Contents/"

# Detection.xml element name -> Graph fileEncryptionInfo key
_ENCRYPTION_FIELDS = {
    "EncryptionKey": "encryptionKey",
    "MacKey": "macKey",
    "InitializationVector": "initializationVector",
    "Mac": "mac",
    "ProfileIdentifier": "profileIdentifier",
    "FileDigest": "fileDigest",
    "FileDigestAlgorithm": "fileDigestAlgorithm",
}


@dataclass(frozen=True)
class ArchiveMetadata:
    """Metadata of one .intunewin archive.

    Attributes:
        name: Name recorded by the packaging tool (the setup file name).
        setup_file: Entry file Intune runs.
        unencrypted_size: Size of the content before encryption (bytes).
        encrypted_size: Size of the encrypted payload member (bytes).
        payload_member: Zip member holding the encrypted payload.
        encryption_info: Graph ``fileEncryptionInfo`` body.
        product_code: MSI ProductCode (MSI setup files only).
        product_version: MSI ProductVersion (MSI setup files only).
        publisher: MSI Manufacturer (MSI setup files only).
        upgrade_code: MSI UpgradeCode (MSI setup files only).
    """

    name: str
    setup_file: str
    unencrypted_size: int
    encrypted_size: int
    payload_member: str
    encryption_info: dict[str, str] = field(default_factory=dict)
    product_code: str | None = None
    product_version: str | None = None
    publisher: str | None = None
    upgrade_code: str | None = None

    @property
    def is_msi(self) -> bool:
        return self.product_code is not None


def _text(root: ETree.Element, path: str) -> str | None:
    node = root.find(path)
    if node is None or node.text is None:
        return None
    return node.text.strip() or None


def read_archive_metadata(archive_path: Path) -> ArchiveMetadata:
    """Parse Detection.xml of a .intunewin archive.

    Raises:
        PackagingError: If the file is not a valid .intunewin archive.

    """
    archive_path = Path(archive_path)
    try:
        with zipfile.ZipFile(archive_path) as zf:
            try:
                xml_bytes = zf.read(METADATA_MEMBER)
            except KeyError as err:
                raise PackagingError(f"{archive_path.name}: missing {METADATA_MEMBER}") from err
            root = ETree.fromstring(xml_bytes)

            file_name = _text(root, "FileName")
            if not file_name:
                raise PackagingError(f"{archive_path.name}: Detection.xml has no FileName")
            payload_member = CONTENTS_PREFIX + file_name
            try:
                encrypted_size = zf.getinfo(payload_member).file_size
            except KeyError as err:
                raise PackagingError(f"{archive_path.name}: missing {payload_member}") from err
    except (zipfile.BadZipFile, OSError) as err:
        raise PackagingError(f"Cannot read archive {archive_path}: {err}") from err
    except ETree.ParseError as err:
        raise PackagingError(f"{archive_path.name}: invalid Detection.xml: {err}") from err

    encryption_info = {}
    for element, key in _ENCRYPTION_FIELDS.items():
        value = _text(root, f"EncryptionInfo/{element}")
        if value is not None:
            encryption_info[key] = value

    size_text = _text(root, "UnencryptedContentSize") or "0"
    setup_file = _text(root, "SetupFile") or ""
    return ArchiveMetadata(
        name=_text(root, "Name") or setup_file,
        setup_file=setup_file,
        unencrypted_size=int(size_text),
        encrypted_size=encrypted_size,
        payload_member=payload_member,
        encryption_info=encryption_info,
        product_code=_text(root, "MsiInfo/MsiProductCode"),
        product_version=_text(root, "MsiInfo/MsiProductVersion"),
        publisher=_text(root, "MsiInfo/MsiPublisher"),
        upgrade_code=_text(root, "MsiInfo/MsiUpgradeCode"),
    )


@contextmanager
def open_payload(archive_path: Path, metadata: ArchiveMetadata) -> Iterator[IO[bytes]]:
    """Open the encrypted payload member for streaming."""
    with zipfile.ZipFile(archive_path) as zf:
        with zf.open(metadata.payload_member) as payload:
            yield payload
