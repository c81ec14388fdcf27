"""Load a k-mer index file back into memory."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Tuple, Union

from hapkmer.index.encoder import words_to_bits
from hapkmer.index.hashing import to_unsigned64
from hapkmer.index.ranges import ReferenceRange

logger = logging.getLogger(__name__)


@dataclass
class KmerIndex:
    """In-memory k-mer index.

    ``range_to_bits`` holds each range's packed haplotype sets, ``hash_to_offsets``
    maps a hash to every (range, block offset) it appears under.
    """

    range_to_bits: Dict[ReferenceRange, int] = field(default_factory=dict)
    hash_to_offsets: Dict[int, List[Tuple[ReferenceRange, int]]] = field(default_factory=dict)

    def ranges(self) -> List[ReferenceRange]:
        return list(self.range_to_bits)

    def hap_ids_for_hash(
        self, kmer_hash: int, range_to_hap_index: Mapping[ReferenceRange, Mapping[str, int]]
    ) -> Dict[ReferenceRange, List[str]]:
        """Haplotype ids containing ``kmer_hash``, per range. Empty if unknown."""
        result: Dict[ReferenceRange, List[str]] = {}
        for refrange, offset in self.hash_to_offsets.get(kmer_hash, ()):
            hap_index = range_to_hap_index.get(refrange)
            bits = self.range_to_bits.get(refrange)
            if hap_index is None or bits is None:
                continue
            result[refrange] = [
                hap_id for hap_id, index in hap_index.items() if bits >> (offset + index) & 1
            ]
        return result


def _iter_records(path: Path) -> Iterator[Tuple[ReferenceRange, str, str]]:
    """Yield (range, words line, offsets line) for every record of an index file."""
    with open(path, "r", encoding="utf-8") as f:
        lines = [line.rstrip("\n") for line in f]
    line_number = 0
    while line_number < len(lines):
        header = lines[line_number]
        if not header:
            line_number += 1
            continue
        if not header.startswith(">"):
            raise ValueError(f"Expected a '>' range header at line {line_number + 1} of {path}, found {header[:40]!r}")
        if line_number + 2 >= len(lines):
            raise ValueError(f"Truncated record for {header[1:]} at line {line_number + 1} of {path}")
        yield ReferenceRange.parse(header[1:]), lines[line_number + 1], lines[line_number + 2]
        line_number += 3


def load_kmer_index(path: Union[str, Path]) -> KmerIndex:
    """Parse an index file written by ``IndexWriter``."""
    path = Path(path)
    index = KmerIndex()
    for refrange, words_line, offsets_line in _iter_records(path):
        words = [int(w) for w in words_line.split(",") if w]
        index.range_to_bits[refrange] = words_to_bits(words)
        for token in offsets_line.split(","):
            if not token:
                continue
            kmer_hash, sep, offset = token.partition("@")
            if not sep:
                logger.warning(f"Improperly formatted hash@offset token {token!r} for range {refrange}")
                continue
            index.hash_to_offsets.setdefault(to_unsigned64(int(kmer_hash)), []).append(
                (refrange, int(offset))
            )
    logger.debug(f"Loaded {len(index.range_to_bits)} ranges and {len(index.hash_to_offsets)} hashes from {path}")
    return index


def count_kmers_by_range(path: Union[str, Path]) -> Dict[ReferenceRange, int]:
    """Number of hash@offset entries per range, without decoding anything."""
    counts: Dict[ReferenceRange, int] = {}
    for refrange, _, offsets_line in _iter_records(Path(path)):
        counts[refrange] = sum(1 for token in offsets_line.split(",") if "@" in token)
    return counts
