import logging
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from hapkmer.index.errors import BuildWarnings, MissingRangeMetadata
from hapkmer.index.ranges import ReferenceRange

logger = logging.getLogger(__name__)


def most_frequent_range(
    hap_ids: Iterable[str], hap_id_to_ranges: Mapping[str, Sequence[ReferenceRange]]
) -> Optional[ReferenceRange]:
    """Majority vote over the ranges the given haplotypes belong to.

    Almost always every haplotype of a hash maps to the same range; rarely a
    k-mer is shared with haplotypes of other ranges, and then the range most of
    its haplotypes come from wins. Ties go to the lowest range in sort order.
    Returns None when none of the ids has range metadata.
    """
    counts = Counter()
    for hap_id in hap_ids:
        counts.update(hap_id_to_ranges.get(hap_id, ()))
    if not counts:
        return None
    return min(counts, key=lambda rr: (-counts[rr], rr))


class RangeAssigner:
    """Assign every retained hash to exactly one reference range."""

    def __init__(
        self,
        hap_id_to_ranges: Mapping[str, Sequence[ReferenceRange]],
        warnings: Optional[BuildWarnings] = None,
    ):
        self.hap_id_to_ranges = hap_id_to_ranges
        self.warnings = warnings if warnings is not None else BuildWarnings()

    def assign(self, keep_map: Mapping[int, Iterable[str]]) -> Dict[ReferenceRange, List[int]]:
        """Return range -> hashes, hashes listed in keep map order."""
        range_to_hashes: Dict[ReferenceRange, List[int]] = {}
        unplaced = 0
        for kmer_hash, hap_ids in keep_map.items():
            refrange = most_frequent_range(hap_ids, self.hap_id_to_ranges)
            if refrange is None:
                unplaced += 1
                self.warnings.add(
                    MissingRangeMetadata(
                        subject=f"kmer hash {kmer_hash}",
                        detail=f"none of haplotypes {sorted(hap_ids)} belong to a known range",
                    )
                )
                continue
            range_to_hashes.setdefault(refrange, []).append(kmer_hash)
        logger.debug(
            f"Assigned {len(keep_map) - unplaced} kmer hashes to {len(range_to_hashes)} ranges "
            f"({unplaced} without range metadata)"
        )
        return range_to_hashes
