"""Per-range index statistics and the adjacent-range diagnostic.

The statistics table has one row per reference range of the graph:

    contig  start  end  length  kmerCount

``adjacentCount`` is appended when diagnostics are enabled: for a range R it is
the number of hashes assigned to R whose haplotypes also belong to the range
immediately before R in sorted order. High values point at k-mers that do not
separate neighbouring ranges well.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence, Union

import polars as pl

from hapkmer.index.errors import IndexWriteFailure
from hapkmer.index.ranges import ReferenceRange

logger = logging.getLogger(__name__)

STATISTICS_FILENAME = "kmerIndexStatistics.txt"
STATISTICS_SCHEMA = {
    "contig": pl.String,
    "start": pl.Int64,
    "end": pl.Int64,
    "length": pl.Int64,
    "kmerCount": pl.Int64,
}


def count_adjacent_hashes(
    ranges: Sequence[ReferenceRange],
    range_to_hashes: Mapping[ReferenceRange, Iterable[int]],
    keep_map: Mapping[int, Iterable[str]],
    hap_id_to_ranges: Mapping[str, Sequence[ReferenceRange]],
) -> Dict[ReferenceRange, int]:
    """Count, per range, assigned hashes also seen in the preceding range.

    Runs over the finalized assignment only; it never feeds back into the
    keep/discard decision.
    """
    ordered = sorted(ranges)
    adjacent_counts: Dict[ReferenceRange, int] = {}
    for previous, current in zip(ordered, ordered[1:]):
        count = 0
        for kmer_hash in range_to_hashes.get(current, ()):
            if any(previous in hap_id_to_ranges.get(hap_id, ()) for hap_id in keep_map[kmer_hash]):
                count += 1
        if count:
            adjacent_counts[current] = count
    return adjacent_counts


def kmer_index_statistics(
    ranges: Iterable[ReferenceRange], kmer_counts: Mapping[ReferenceRange, int]
) -> pl.DataFrame:
    """Build the per-range statistics table; ranges missing from the index count 0."""
    rows = [
        {
            "contig": rr.contig,
            "start": rr.start,
            "end": rr.end,
            "length": rr.length,
            "kmerCount": kmer_counts.get(rr, 0),
        }
        for rr in sorted(ranges)
    ]
    return pl.DataFrame(rows, schema=STATISTICS_SCHEMA)


def add_adjacent_counts(
    stats: pl.DataFrame, adjacent_counts: Mapping[ReferenceRange, int]
) -> pl.DataFrame:
    """Append the ``adjacentCount`` column to an existing statistics table."""
    keys = [
        str(ReferenceRange(contig, start, end))
        for contig, start, end in stats.select("contig", "start", "end").iter_rows()
    ]
    by_key = {str(rr): count for rr, count in adjacent_counts.items()}
    return stats.with_columns(
        pl.Series("adjacentCount", [by_key.get(k, 0) for k in keys], dtype=pl.Int64)
    )


def write_statistics(stats: pl.DataFrame, path: Union[str, Path]) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        stats.write_csv(path, separator="\t")
    except OSError as e:
        raise IndexWriteFailure(f"Failed writing index statistics to {path}: {e}") from e
    logger.info(f"Wrote statistics for {stats.height} ranges to {path}")
    return path


def read_statistics(path: Union[str, Path]) -> pl.DataFrame:
    return pl.read_csv(path, separator="\t", schema_overrides={"contig": pl.String})


def merge_adjacent_counts_into_report(
    report_path: Union[str, Path],
    adjacent_counts: Mapping[ReferenceRange, int],
    output_path: Union[str, Path, None] = None,
) -> Path:
    """Augment an existing statistics report with the ``adjacentCount`` column."""
    stats = read_statistics(report_path)
    if "adjacentCount" in stats.columns:
        stats = stats.drop("adjacentCount")
    return write_statistics(
        add_adjacent_counts(stats, adjacent_counts),
        output_path if output_path is not None else report_path,
    )


def summarize_counts(stats: pl.DataFrame) -> List[str]:
    """A few human-readable summary lines for the log."""
    total = stats.height
    empty = stats.filter(pl.col("kmerCount") == 0).height
    lines = [
        f"{total} reference ranges, {empty} without any indexed kmer",
        f"{stats['kmerCount'].sum()} indexed kmers in total",
    ]
    if total:
        lines.append(f"median kmers per range: {stats['kmerCount'].median()}")
    if "adjacentCount" in stats.columns:
        lines.append(f"{stats['adjacentCount'].sum()} kmers also seen in the preceding range")
    return lines
