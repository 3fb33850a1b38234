"""
License file digests and registry index provenance.

Files are hashed over their exact bytes: the build system re-verifies them
byte for byte, so no newline or whitespace normalization happens here.
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Sequence, Tuple

from .error_handling import ChecksumIOError, ErrorCategory, get_error_handler
from .structured_logging import log_checksum

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ChecksumPair:
    """One algorithm-tagged digest, e.g. ``md5=<hex>``."""

    algorithm: str
    value: str

    def __str__(self) -> str:
        return f"{self.algorithm}={self.value}"


@dataclass(frozen=True)
class IndexProvenance:
    """Opaque registry index reference and its two digests.

    Supplied by the caller from the registry snapshot; never computed or
    altered here.
    """

    reference: str
    md5sum: str
    sha256sum: str

    def digests(self) -> Tuple[ChecksumPair, ChecksumPair]:
        return (
            ChecksumPair("md5sum", self.md5sum),
            ChecksumPair("sha256sum", self.sha256sum),
        )


class ChecksumEngine:
    """Computes and caches digests of license files."""

    def __init__(self, algorithms: Sequence[str] = ("md5",), chunk_size: int = CHUNK_SIZE):
        for algorithm in algorithms:
            if algorithm not in hashlib.algorithms_guaranteed:
                raise ValueError(f"Unsupported digest algorithm: {algorithm}")
        self.algorithms = tuple(algorithms)
        self.chunk_size = chunk_size
        self._cache: Dict[Path, Tuple[ChecksumPair, ...]] = {}

    def file_digests(self, path: Path) -> Tuple[ChecksumPair, ...]:
        """
        Digest a file once per engine; repeated calls return the cached value.

        Raises:
            ChecksumIOError: If the file cannot be read
        """
        key = Path(path).resolve()
        if key in self._cache:
            return self._cache[key]

        hashers = [hashlib.new(algorithm) for algorithm in self.algorithms]
        try:
            with open(key, "rb") as f:
                for chunk in iter(lambda: f.read(self.chunk_size), b""):
                    for hasher in hashers:
                        hasher.update(chunk)
        except OSError as e:
            get_error_handler().error(
                ErrorCategory.CHECKSUM,
                "Unable to read license file for checksum",
                "checksums",
                "file_digests",
                exception=e,
                details={"file_path": key.name},
            )
            raise ChecksumIOError(key, e.strerror or str(e)) from e

        digests = tuple(
            ChecksumPair(algorithm, hasher.hexdigest())
            for algorithm, hasher in zip(self.algorithms, hashers)
        )
        self._cache[key] = digests
        log_checksum(str(key), list(self.algorithms))
        return digests

    def compute(self, paths: Iterable[Path]) -> Dict[Path, Tuple[ChecksumPair, ...]]:
        """
        Digest each distinct file.

        Keys are the paths as given; paths naming the same file share one
        digest computation.
        """
        return {path: self.file_digests(path) for path in paths}

