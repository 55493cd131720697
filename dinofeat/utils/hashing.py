# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
SHA256 helpers for checkpoint files.

Checkpoints are hundreds of megabytes to gigabytes, so files are hashed in
fixed-size chunks rather than read whole.
"""

import hashlib
from pathlib import Path

HASH_CHUNK_SIZE = 1 << 20


def compute_sha256(file_path: Path) -> str:
    """
    Lowercase hex SHA256 digest of a file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file can't be read.
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()
