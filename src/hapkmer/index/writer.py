"""Text serialization of the k-mer index.

Each range with at least one haplotype set is written as three lines:

    >chr1:1-1000
    <word0>,<word1>,...          packed haplotype sets, 64-bit words
    <hash>@<offset>,...          every retained hash and its block offset

Words and hashes are written as signed 64-bit decimals, the representation
earlier index files use.
"""

import logging
from pathlib import Path
from typing import IO, Iterable, Optional, Union

from hapkmer.index.encoder import EncodedRangeIndex
from hapkmer.index.errors import IndexWriteFailure
from hapkmer.index.hashing import to_signed64

logger = logging.getLogger(__name__)


def format_range_record(encoded: EncodedRangeIndex) -> str:
    words = ",".join(str(to_signed64(w)) for w in encoded.words)
    offsets = ",".join(f"{to_signed64(h)}@{offset}" for h, offset in encoded.hash_offsets)
    return f">{encoded.refrange}\n{words}\n{offsets}\n"


class IndexWriter:
    """Write encoded ranges to an index file.

    Example:
        ```python
        with IndexWriter("kmerIndex.txt") as writer:
            for encoded in encoded_ranges:
                writer.write_range(encoded)
        ```
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.ranges_written = 0
        self.hashes_written = 0
        self._handle: Optional[IO[str]] = None

    def __enter__(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "w", encoding="utf-8")
        except OSError as e:
            raise IndexWriteFailure(f"Cannot open index file {self.path}: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._handle is not None:
            try:
                self._handle.close()
            except OSError as e:
                if exc_type is None:
                    raise IndexWriteFailure(f"Cannot close index file {self.path}: {e}") from e
            finally:
                self._handle = None
        return False

    def write_range(self, encoded: Optional[EncodedRangeIndex]) -> None:
        """Write one range; empty ranges (None or no hashes) are skipped."""
        if encoded is None or not encoded.hash_offsets:
            return
        if self._handle is None:
            raise RuntimeError("IndexWriter must be used as a context manager")
        try:
            self._handle.write(format_range_record(encoded))
        except OSError as e:
            raise IndexWriteFailure(f"Failed writing range {encoded.refrange} to {self.path}: {e}") from e
        self.ranges_written += 1
        self.hashes_written += len(encoded.hash_offsets)

    def write_all(self, encoded_ranges: Iterable[Optional[EncodedRangeIndex]]) -> None:
        for encoded in encoded_ranges:
            self.write_range(encoded)


def write_discard_set(path: Union[str, Path], discard_set: Iterable[int]) -> int:
    """Write one discarded hash per line (sorted, signed). Returns the count."""
    path = Path(path)
    count = 0
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            for kmer_hash in sorted(discard_set):
                f.write(f"{to_signed64(kmer_hash)}\n")
                count += 1
    except OSError as e:
        raise IndexWriteFailure(f"Failed writing discard set to {path}: {e}") from e
    logger.info(f"Wrote {count} discarded kmer hashes to {path}")
    return count
