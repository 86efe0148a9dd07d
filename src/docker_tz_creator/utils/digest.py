"""Digest calculation for extracted artifacts."""

import hashlib
from pathlib import Path
from typing import Union

CHUNK_SIZE = 1024 * 1024


def calculate_file_digest(path: Union[str, Path], algorithm: str = "sha256") -> str:
    """Calculate digest of a file without loading it into memory.

    Args:
        path: File to hash
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Digest string in format "algorithm:hex"

    Raises:
        ValueError: If algorithm is not supported
        OSError: If the file cannot be read
    """
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return f"{algorithm}:{hasher.hexdigest()}"
