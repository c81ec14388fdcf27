"""End-to-end k-mer index build.

    haplotype sequences -> keep/discard sets -> range assignment
        -> haplotype set encoding -> index file (+ discard file, statistics)

With ``threads > 1`` the hashing phase runs in worker processes as a map-reduce
(per-chunk occurrence lists, merged in input order and replayed through
the cap in the parent) and per-range encoding is spread over the same pool size.
Ranges are always written in sorted order.
"""

import concurrent.futures
import logging
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from hapkmer.index.diagnostics import (
    STATISTICS_FILENAME,
    count_adjacent_hashes,
    kmer_index_statistics,
    merge_adjacent_counts_into_report,
    read_statistics,
    summarize_counts,
    write_statistics,
)
from hapkmer.index.encoder import EncodedRangeIndex, HaplotypeSetEncoder
from hapkmer.index.errors import BuildWarnings
from hapkmer.index.keep_set import (
    KeepSetBuilder,
    KeepSetResult,
    collect_hash_contributions,
    merge_contributions,
    resolve_contributions,
)
from hapkmer.index.kmer_filter import KmerFilter
from hapkmer.index.providers import RangeMetadataProvider, SequenceProvider
from hapkmer.index.range_assign import RangeAssigner
from hapkmer.index.reader import count_kmers_by_range
from hapkmer.index.ranges import ReferenceRange
from hapkmer.index.writer import IndexWriter, write_discard_set

logger = logging.getLogger(__name__)

RANGES_PER_CHUNK = 64


@dataclass
class BuildResult:
    index_file: Path
    keep_set: KeepSetResult
    range_to_hashes: Dict[ReferenceRange, List[int]]
    ranges_written: int = 0
    hashes_written: int = 0
    warnings: BuildWarnings = field(default_factory=BuildWarnings)
    adjacent_counts: Dict[ReferenceRange, int] = field(default_factory=dict)
    discard_file: Optional[Path] = None
    statistics_file: Optional[Path] = None


def _chunks(items: Sequence, size: int) -> List[Sequence]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _collect_chunk(args) -> Dict[int, List[str]]:
    """Worker: contribution map for a chunk of ranges."""
    range_sequences, hash_mask, hash_filter_value = args
    kmer_filter = KmerFilter(hash_mask, hash_filter_value)
    return merge_contributions(
        collect_hash_contributions(hap_to_sequences, kmer_filter) for hap_to_sequences in range_sequences
    )


def _encode_range(args) -> Tuple[Optional[EncodedRangeIndex], BuildWarnings]:
    """Worker: encode one range against its slice of the keep map."""
    refrange, hashes, keep_slice, hap_index = args
    # logged by the parent when merged
    warnings = BuildWarnings(quiet=True)
    encoder = HaplotypeSetEncoder({refrange: hap_index} if hap_index is not None else {}, warnings)
    return encoder.encode(refrange, hashes, keep_slice), warnings


def build_keep_set(
    sequences: SequenceProvider,
    ranges: Sequence[ReferenceRange],
    kmer_filter: KmerFilter,
    max_haps_to_keep: int,
    threads: int = 1,
) -> KeepSetResult:
    """Hash every haplotype of every range and apply the keep/discard policy."""
    start = time.perf_counter()
    if threads <= 1:
        builder = KeepSetBuilder(kmer_filter, max_haps_to_keep)
        for refrange in ranges:
            builder.add_haplotypes(sequences.sequences_for_range(refrange))
        result = builder.finalize()
    else:
        jobs = [
            ([sequences.sequences_for_range(rr) for rr in chunk], kmer_filter.hash_mask, kmer_filter.hash_filter_value)
            for chunk in _chunks(list(ranges), RANGES_PER_CHUNK)
        ]
        with ProcessPoolExecutor(max_workers=threads) as executor:
            # map keeps submission order, which keeps first-seen hash order
            parts = list(executor.map(_collect_chunk, jobs))
        result = resolve_contributions(merge_contributions(parts), max_haps_to_keep)

    overlap = result.overlap_count()
    logger.info(
        f"Keep set: {len(result.keep_map)} kmers kept, {len(result.discard_set)} discarded "
        f"({time.perf_counter() - start:.2f} sec)"
    )
    if overlap:
        logger.warning(f"{overlap} kmers in the keep set are also in the discard set")
    return result


def encode_ranges(
    range_to_hashes: Mapping[ReferenceRange, List[int]],
    keep_map: Mapping[int, frozenset],
    range_to_hap_index: Mapping[ReferenceRange, Mapping[str, int]],
    warnings: BuildWarnings,
    threads: int = 1,
) -> List[EncodedRangeIndex]:
    """Encode every range that received hashes, returned in sorted range order."""
    ordered = sorted(range_to_hashes)
    if threads <= 1:
        encoder = HaplotypeSetEncoder(range_to_hap_index, warnings)
        encoded = [encoder.encode(rr, range_to_hashes[rr], keep_map) for rr in ordered]
    else:
        jobs = [
            (
                rr,
                range_to_hashes[rr],
                {h: keep_map[h] for h in range_to_hashes[rr]},
                range_to_hap_index.get(rr),
            )
            for rr in ordered
        ]
        done: Dict[ReferenceRange, Tuple[Optional[EncodedRangeIndex], BuildWarnings]] = {}
        with ProcessPoolExecutor(max_workers=threads) as executor:
            futures = {executor.submit(_encode_range, job): job[0] for job in jobs}
            for future in concurrent.futures.as_completed(futures):
                done[futures[future]] = future.result()
        encoded = []
        for rr in ordered:
            result, worker_warnings = done[rr]
            encoded.append(result)
            warnings.extend(worker_warnings)
    return [e for e in encoded if e is not None]


def build_kmer_index(
    sequences: SequenceProvider,
    metadata: RangeMetadataProvider,
    index_file: Union[str, Path],
    kmer_filter: KmerFilter,
    max_haps_to_keep: int,
    threads: int = 1,
    discard_file: Union[str, Path, None] = None,
    diagnostics: bool = True,
    statistics_file: Union[str, Path, None] = None,
) -> BuildResult:
    """Build a k-mer index file for every reference range of a haplotype graph.

    Args:
        sequences: haplotype sequences per range.
        metadata: ranges and haplotype membership.
        index_file: output index path.
        kmer_filter: hash downsampling filter.
        max_haps_to_keep: cap checked on every occurrence of a hash; see ``keep_set``.
        threads: worker processes for hashing and encoding.
        discard_file: if given, discarded hashes are written here.
        diagnostics: write the statistics report with the ``adjacentCount`` column.
        statistics_file: report path, defaults to ``kmerIndexStatistics.txt``
            next to the index file.

    Returns:
        BuildResult: what was built and written, including accumulated warnings.
    """
    index_file = Path(index_file)
    warnings = BuildWarnings()
    ranges = metadata.ranges()
    logger.info(
        f"Building kmer index for {len(ranges)} reference ranges "
        f"(hash mask {kmer_filter.hash_mask:#x}, filter value {kmer_filter.hash_filter_value:#x}, "
        f"max haplotypes per kmer {max_haps_to_keep}, threads {threads})"
    )

    keep_set = build_keep_set(sequences, ranges, kmer_filter, max_haps_to_keep, threads)

    hap_id_to_ranges = metadata.hap_id_to_ranges()
    range_to_hashes = RangeAssigner(hap_id_to_ranges, warnings).assign(keep_set.keep_map)

    start = time.perf_counter()
    encoded = encode_ranges(
        range_to_hashes, keep_set.keep_map, metadata.range_to_hap_index(), warnings, threads
    )
    with IndexWriter(index_file) as writer:
        writer.write_all(encoded)
    logger.info(
        f"Saved kmer index for {writer.ranges_written} ranges ({writer.hashes_written} kmers) "
        f"to {index_file}, elapsed time {time.perf_counter() - start:.2f} sec"
    )

    result = BuildResult(
        index_file=index_file,
        keep_set=keep_set,
        range_to_hashes=range_to_hashes,
        ranges_written=writer.ranges_written,
        hashes_written=writer.hashes_written,
        warnings=warnings,
    )

    if discard_file:
        result.discard_file = Path(discard_file)
        write_discard_set(result.discard_file, keep_set.discard_set)

    if diagnostics:
        result.adjacent_counts = count_adjacent_hashes(
            ranges, range_to_hashes, keep_set.keep_map, hap_id_to_ranges
        )
        report = write_statistics(
            kmer_index_statistics(ranges, count_kmers_by_range(index_file)),
            statistics_file if statistics_file else index_file.parent / STATISTICS_FILENAME,
        )
        result.statistics_file = merge_adjacent_counts_into_report(report, result.adjacent_counts)
        for line in summarize_counts(read_statistics(result.statistics_file)):
            logger.info(line)
    else:
        logger.info("Diagnostic output will not be written because diagnostics are disabled")

    if warnings:
        logger.warning(
            f"Index built with {len(warnings)} metadata warning(s); the affected entries are incomplete"
        )
    return result
