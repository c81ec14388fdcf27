"""Bit-packed haplotype set encoding for one reference range.

Hashes of a range that share exactly the same haplotype ids form one
haplotype set. Each distinct set gets a block of ``haplotype_count`` bits in
the range's bit array, with the bit at a haplotype's local index set when the
haplotype is a member. Every hash then only needs the start offset of its
block:

    block 0: bits [0, n)      offset 0
    block 1: bits [n, 2n)     offset n
    ...

The bit array is an ``int`` bitset; ``words`` gives its 64-bit little-endian
word layout (bit ``i`` is bit ``i % 64`` of word ``i // 64``) with trailing
all-zero words dropped.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from hapkmer.index.errors import (
    BuildWarnings,
    InvalidHaplotypeIndex,
    MissingHaplotypeIndexMapping,
    MissingRangeMetadata,
)
from hapkmer.index.hashing import MASK64
from hapkmer.index.ranges import ReferenceRange

logger = logging.getLogger(__name__)


def bits_to_words(bits: int) -> List[int]:
    words = []
    while bits:
        words.append(bits & MASK64)
        bits >>= 64
    return words


def words_to_bits(words: Iterable[int]) -> int:
    bits = 0
    for i, word in enumerate(words):
        bits |= (word & MASK64) << (64 * i)
    return bits


@dataclass
class EncodedRangeIndex:
    refrange: ReferenceRange
    haplotype_count: int
    group_count: int
    bits: int = 0
    hash_offsets: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def bit_length(self) -> int:
        return self.haplotype_count * self.group_count

    @property
    def words(self) -> List[int]:
        return bits_to_words(self.bits)

    def member_indices(self, offset: int) -> Set[int]:
        """Local haplotype indices set in the block starting at ``offset``."""
        return {i for i in range(self.haplotype_count) if self.bits >> (offset + i) & 1}

    def members(self, offset: int, hap_index: Mapping[str, int]) -> Set[str]:
        indices = self.member_indices(offset)
        return {hap_id for hap_id, i in hap_index.items() if i in indices}


def group_hashes_by_haplotype_set(
    hashes: Iterable[int], keep_map: Mapping[int, Iterable[str]]
) -> Dict[FrozenSet[str], List[int]]:
    """Invert hash -> ids into ids -> hashes, groups in first-seen order."""
    groups: Dict[FrozenSet[str], List[int]] = {}
    for kmer_hash in hashes:
        groups.setdefault(frozenset(keep_map[kmer_hash]), []).append(kmer_hash)
    return groups


class HaplotypeSetEncoder:
    """Encode the haplotype sets of each range into a packed bit array.

    Args:
        range_to_hap_index: range -> (haplotype id -> 0-based local index).
        warnings: accumulator for missing-metadata warnings.
    """

    def __init__(
        self,
        range_to_hap_index: Mapping[ReferenceRange, Mapping[str, int]],
        warnings: Optional[BuildWarnings] = None,
    ):
        self.range_to_hap_index = range_to_hap_index
        self.warnings = warnings if warnings is not None else BuildWarnings()

    def encode(
        self,
        refrange: ReferenceRange,
        hashes: Sequence[int],
        keep_map: Mapping[int, Iterable[str]],
    ) -> Optional[EncodedRangeIndex]:
        """Encode one range. Returns None when the range has nothing to write.

        A range missing from ``range_to_hap_index`` cannot be encoded at all: a
        ``MissingRangeMetadata`` warning is recorded and None is returned, so
        every hash assigned to that range is left out of the index. A haplotype
        without a usable local index only loses its own bit.
        """
        groups = group_hashes_by_haplotype_set(hashes, keep_map)
        if not groups:
            return None

        hap_index = self.range_to_hap_index.get(refrange)
        if hap_index is None:
            self.warnings.add(
                MissingRangeMetadata(
                    subject=str(refrange),
                    detail=f"no haplotype index for this range, {len(hashes)} assigned kmers are left out of the index",
                )
            )
            return None

        haplotype_count = len(hap_index)
        encoded = EncodedRangeIndex(refrange, haplotype_count, len(groups))
        offset = 0
        bits = 0
        for hap_set, group_hashes in groups.items():
            for hap_id in sorted(hap_set):
                index = hap_index.get(hap_id)
                if index is None:
                    self.warnings.add(MissingHaplotypeIndexMapping(hap_id, str(refrange)))
                    continue
                if not 0 <= index < haplotype_count:
                    self.warnings.add(InvalidHaplotypeIndex(hap_id, str(refrange), index, haplotype_count))
                    continue
                bits |= 1 << (offset + index)
            encoded.hash_offsets.extend((kmer_hash, offset) for kmer_hash in group_hashes)
            offset += haplotype_count
        encoded.bits = bits
        return encoded
