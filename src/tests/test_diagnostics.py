from pathlib import Path

from hapkmer.index.diagnostics import (
    add_adjacent_counts,
    count_adjacent_hashes,
    kmer_index_statistics,
    merge_adjacent_counts_into_report,
    read_statistics,
    summarize_counts,
    write_statistics,
)
from hapkmer.index.ranges import ReferenceRange

R1 = ReferenceRange("chr1", 1, 100)
R2 = ReferenceRange("chr1", 101, 200)
R3 = ReferenceRange("chr2", 1, 50)

HAP_TO_RANGES = {
    "a": [R1],
    "b": [R1, R2],
    "c": [R2],
    "d": [R3],
    "e": [R2, R3],
}
KEEP_MAP = {
    1: frozenset({"a"}),
    2: frozenset({"b", "c"}),
    3: frozenset({"c"}),
    4: frozenset({"d", "e"}),
    5: frozenset({"d"}),
}
RANGE_TO_HASHES = {R1: [1], R2: [2, 3], R3: [4, 5]}


def test_adjacent_counts_look_at_preceding_range_only() -> None:
    counts = count_adjacent_hashes([R3, R1, R2], RANGE_TO_HASHES, KEEP_MAP, HAP_TO_RANGES)
    assert counts == {R2: 1, R3: 1}


def test_statistics_table_covers_every_range() -> None:
    stats = kmer_index_statistics([R2, R3, R1], {R1: 1, R2: 2})
    assert stats.columns == ["contig", "start", "end", "length", "kmerCount"]
    assert stats["contig"].to_list() == ["chr1", "chr1", "chr2"]
    assert stats["length"].to_list() == [100, 100, 50]
    assert stats["kmerCount"].to_list() == [1, 2, 0]

    with_adjacent = add_adjacent_counts(stats, {R3: 4})
    assert with_adjacent["adjacentCount"].to_list() == [0, 0, 4]


def test_report_is_written_as_tsv_and_augmented(tmp_path: Path) -> None:
    report = write_statistics(kmer_index_statistics([R1, R2], {R2: 3}), tmp_path / "stats.txt")
    lines = report.read_text().splitlines()
    assert lines[0] == "contig\tstart\tend\tlength\tkmerCount"
    assert lines[2] == "chr1\t101\t200\t100\t3"

    merged = merge_adjacent_counts_into_report(report, {R2: 2}, tmp_path / "merged.txt")
    merged_stats = read_statistics(merged)
    assert merged_stats.columns[-1] == "adjacentCount"
    assert merged_stats["adjacentCount"].to_list() == [0, 2]

    # re-augmenting replaces the column instead of adding a second one
    merge_adjacent_counts_into_report(merged, {R1: 1})
    assert read_statistics(merged)["adjacentCount"].to_list() == [1, 0]


def test_summary_lines() -> None:
    stats = add_adjacent_counts(kmer_index_statistics([R1, R2, R3], {R1: 4}), {R2: 1})
    lines = summarize_counts(stats)
    assert lines[0] == "3 reference ranges, 2 without any indexed kmer"
    assert lines[1] == "4 indexed kmers in total"
    assert lines[-1] == "1 kmers also seen in the preceding range"
