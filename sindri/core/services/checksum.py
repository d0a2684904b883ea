"""
Checksum comparator — has an activated file drifted from its template?

Prefers a content hash; falls back to a byte-for-byte comparison when
the configured algorithm is not available in this interpreter. Any read
error answers "differs", which makes callers take a backup.
"""

from __future__ import annotations

import filecmp
import hashlib
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class ChecksumComparator:
    """Compare two files by content."""

    def __init__(self, algorithm: str = "sha256"):
        self.algorithm = algorithm

    def digest(self, path: Path) -> str:
        """Hex digest of a file. Raises OSError / ValueError."""
        h = hashlib.new(self.algorithm)
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                h.update(chunk)
        return h.hexdigest()

    def differs(self, path_a: Path, path_b: Path) -> bool:
        """True when contents differ or either file cannot be read."""
        try:
            return self.digest(path_a) != self.digest(path_b)
        except ValueError:
            # Unsupported hash algorithm
            logger.debug("Hash %s unavailable, comparing bytes", self.algorithm)
        except OSError as e:
            logger.debug("Cannot hash %s / %s: %s", path_a, path_b, e)
            return True

        try:
            return not filecmp.cmp(path_a, path_b, shallow=False)
        except OSError as e:
            logger.debug("Cannot compare %s / %s: %s", path_a, path_b, e)
            return True
