"""Global keep/discard bookkeeping for k-mer hashes.

The keep map holds hash -> set of haplotype ids for hashes that are still
informative. Every occurrence of a hash is checked against the cap: when
``len(existing ids) + len(new ids) > max_haps_to_keep`` the hash is removed
from the keep map and moved to the discard set, and it never comes back. The
ids already collected for it are dropped, not truncated. Occurrences are
counted, not distinct ids, so a k-mer repeated inside one haplotype also
counts against the cap.

Two ways to build the same result are provided:

* ``KeepSetBuilder`` applies the policy incrementally, one hash occurrence at a
  time, in a single process.
* ``collect_hash_contributions`` / ``merge_contributions`` /
  ``resolve_contributions`` split the work into a read-only hashing phase that
  can run in worker processes and a single-writer phase. The hashing phase
  records, per hash, the haplotype id of every occurrence in input order; the
  single writer replays those occurrences through a ``KeepSetBuilder``.

Decisions for one hash depend only on that hash's own occurrences, so
replaying hash by hash in first-seen order gives exactly the sequential
result, repeated k-mers included, as long as parts are merged in input order.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set

from hapkmer.index.errors import InvalidNucleotide
from hapkmer.index.hashing import iter_canonical_hashes
from hapkmer.index.kmer_filter import KmerFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeepSetResult:
    """Frozen keep map and discard set."""

    keep_map: Dict[int, FrozenSet[str]]
    discard_set: FrozenSet[int]

    def __len__(self):
        return len(self.keep_map)

    def overlap_count(self) -> int:
        """Number of hashes present in both structures (always 0 when built here)."""
        return sum(1 for h in self.keep_map if h in self.discard_set)


class KeepSetBuilder:
    """Incremental keep/discard builder.

    Args:
        kmer_filter: filter applied to every canonical hash before the policy.
        max_haps_to_keep: cap checked on every occurrence of a hash.
    """

    def __init__(self, kmer_filter: KmerFilter, max_haps_to_keep: int):
        if max_haps_to_keep < 1:
            raise ValueError(f"max_haps_to_keep must be positive, got {max_haps_to_keep}")
        self.kmer_filter = kmer_filter
        self.max_haps_to_keep = max_haps_to_keep
        self.keep_map: Dict[int, Set[str]] = {}
        self.discard_set: Set[int] = set()
        self.windows_seen = 0
        self.windows_accepted = 0
        self._finalized = False

    def add_hash(self, kmer_hash: int, hap_ids: Iterable[str]) -> None:
        """Apply the keep/discard policy to one occurrence of an (already filtered) hash.

        A hash seen for the first time is always inserted with ``hap_ids``.
        """
        if self._finalized:
            raise RuntimeError("KeepSetBuilder has been finalized")
        if kmer_hash in self.discard_set:
            return
        hap_ids = list(hap_ids)
        existing = self.keep_map.get(kmer_hash)
        if existing is None:
            self.keep_map[kmer_hash] = set(hap_ids)
        elif len(existing) + len(hap_ids) > self.max_haps_to_keep:
            del self.keep_map[kmer_hash]
            self.discard_set.add(kmer_hash)
        else:
            existing.update(hap_ids)

    def add_sequence(self, hap_id: str, sequence: str) -> None:
        """Hash, filter and record every 32-mer of one haplotype sequence."""
        hap_ids = (hap_id,)
        try:
            for kmer_hash in iter_canonical_hashes(sequence):
                self.windows_seen += 1
                if self.kmer_filter.accepts(kmer_hash):
                    self.windows_accepted += 1
                    self.add_hash(kmer_hash, hap_ids)
        except InvalidNucleotide as e:
            raise InvalidNucleotide(e.nucleotide, hap_id) from e

    def add_haplotypes(self, hap_to_sequences: Mapping[str, Iterable[str]]) -> None:
        for hap_id, sequences in hap_to_sequences.items():
            for sequence in sequences:
                self.add_sequence(hap_id, sequence)

    def finalize(self) -> KeepSetResult:
        self._finalized = True
        logger.debug(
            f"Finished building kmer keep set: {self.windows_seen} windows, "
            f"{self.windows_accepted} passed the hash filter, keep set size = "
            f"{len(self.keep_map)}, discard set size = {len(self.discard_set)}"
        )
        return KeepSetResult(
            keep_map={h: frozenset(ids) for h, ids in self.keep_map.items()},
            discard_set=frozenset(self.discard_set),
        )


def collect_hash_contributions(
    hap_to_sequences: Mapping[str, Iterable[str]], kmer_filter: KmerFilter
) -> Dict[int, List[str]]:
    """Map step: every accepted hash -> haplotype id of each occurrence, in order.

    Pure and read-only with respect to global state, so it is safe to run in
    worker processes. Insertion order is first-seen order.
    """
    contributions: Dict[int, List[str]] = {}
    for hap_id, sequences in hap_to_sequences.items():
        for sequence in sequences:
            try:
                for kmer_hash in iter_canonical_hashes(sequence):
                    if kmer_filter.accepts(kmer_hash):
                        contributions.setdefault(kmer_hash, []).append(hap_id)
            except InvalidNucleotide as e:
                raise InvalidNucleotide(e.nucleotide, hap_id) from e
    return contributions


def merge_contributions(parts: Iterable[Mapping[int, Sequence[str]]]) -> Dict[int, List[str]]:
    """Reduce step: concatenate partial occurrence lists.

    Parts must be given in input order so both the first-seen hash order and
    the per-hash occurrence order match what the sequential builder sees.
    """
    merged: Dict[int, List[str]] = {}
    for part in parts:
        for kmer_hash, occurrences in part.items():
            merged.setdefault(kmer_hash, []).extend(occurrences)
    return merged


def resolve_contributions(
    merged: Mapping[int, Sequence[str]], max_haps_to_keep: int
) -> KeepSetResult:
    """Single-writer step: replay every occurrence of each hash through the cap."""
    # the filter already ran in the map step
    builder = KeepSetBuilder(KmerFilter(0, 0), max_haps_to_keep)
    for kmer_hash, occurrences in merged.items():
        for hap_id in occurrences:
            builder.add_hash(kmer_hash, (hap_id,))
            if kmer_hash in builder.discard_set:
                break
    return builder.finalize()
