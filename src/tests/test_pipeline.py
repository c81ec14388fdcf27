import random
from pathlib import Path

import pytest

from hapkmer.index.diagnostics import read_statistics
from hapkmer.index.errors import InvalidNucleotide, MissingRangeMetadata
from hapkmer.index.hashing import iter_canonical_hashes
from hapkmer.index.kmer_filter import KmerFilter
from hapkmer.index.pipeline import build_kmer_index
from hapkmer.index.providers import InMemoryGraph
from hapkmer.index.reader import load_kmer_index
from hapkmer.index.ranges import ReferenceRange

SEQ = "ACCGTTAGCATGCAGTCCATGAAGCTTGACCGATTGCAGT"
SEQ_LAST_BASE_CHANGED = SEQ[:-1] + "A"
KEEP_ALL = KmerFilter(0, 0)

R1 = ReferenceRange("1", 1, 40)
R2 = ReferenceRange("1", 41, 80)


def test_two_haplotypes_one_mismatch(tmp_path: Path) -> None:
    graph = InMemoryGraph(
        [("h1", R1, "A"), ("h2", R1, "B")],
        {"h1": [SEQ], "h2": [SEQ_LAST_BASE_CHANGED]},
    )
    index_file = tmp_path / "kmerIndex.txt"
    result = build_kmer_index(graph, graph, index_file, KEEP_ALL, max_haps_to_keep=10)

    h1_hashes = list(iter_canonical_hashes(SEQ))
    h2_hashes = list(iter_canonical_hashes(SEQ_LAST_BASE_CHANGED))
    assert len(h1_hashes) == len(h2_hashes) == 9
    assert h1_hashes[:8] == h2_hashes[:8]
    assert h1_hashes[8] != h2_hashes[8]

    keep_map = result.keep_set.keep_map
    assert len(keep_map) == 10
    assert all(keep_map[h] == {"h1", "h2"} for h in h1_hashes[:8])
    assert keep_map[h1_hashes[8]] == {"h1"}
    assert keep_map[h2_hashes[8]] == {"h2"}
    assert not result.keep_set.discard_set

    lines = index_file.read_text().splitlines()
    assert lines[0] == ">1:1-40"
    # blocks: {h1,h2} at 0, {h1} at 2, {h2} at 4
    assert lines[1] == str(0b100111)
    offsets = [token.split("@")[1] for token in lines[2].split(",")]
    assert offsets == ["0"] * 8 + ["2", "4"]
    assert result.ranges_written == 1
    assert result.hashes_written == 10

    stats = read_statistics(tmp_path / "kmerIndexStatistics.txt")
    assert stats.columns == ["contig", "start", "end", "length", "kmerCount", "adjacentCount"]
    assert stats.row(0) == ("1", 1, 40, 40, 10, 0)


def test_cap_discards_shared_kmers_and_writes_discard_file(tmp_path: Path) -> None:
    graph = InMemoryGraph(
        [("h1", R1, None), ("h2", R1, None)],
        {"h1": [SEQ], "h2": [SEQ_LAST_BASE_CHANGED]},
    )
    result = build_kmer_index(
        graph,
        graph,
        tmp_path / "kmerIndex.txt",
        KEEP_ALL,
        max_haps_to_keep=1,
        discard_file=tmp_path / "discard.txt",
        diagnostics=False,
    )
    assert len(result.keep_set.keep_map) == 2
    assert len(result.keep_set.discard_set) == 8
    assert len((tmp_path / "discard.txt").read_text().splitlines()) == 8
    assert result.statistics_file is None
    assert not (tmp_path / "kmerIndexStatistics.txt").exists()


def test_kmer_repeated_within_a_haplotype_counts_each_occurrence(tmp_path: Path) -> None:
    repeated = SEQ[:36] * 2
    graph = InMemoryGraph([("h1", R1, None), ("h2", R1, None)], {"h1": [repeated], "h2": [SEQ]})
    result = build_kmer_index(
        graph, graph, tmp_path / "kmerIndex.txt", KEEP_ALL, max_haps_to_keep=1, threads=2
    )

    windows = list(iter_canonical_hashes(repeated))
    assert len(windows) == 41
    assert set(result.keep_set.discard_set) == set(windows[:5])
    assert windows[36:] == windows[:5]
    # SEQ shares its first five windows with the repeat, those stay discarded
    assert set(result.keep_set.keep_map) == set(windows[5:36]) | set(list(iter_canonical_hashes(SEQ))[5:])
    assert result.keep_set.keep_map[windows[5]] == {"h1"}


def test_empty_ranges_are_omitted_from_index(tmp_path: Path) -> None:
    graph = InMemoryGraph(
        [("h1", R1, None), ("h2", R2, None)],
        {"h1": [SEQ], "h2": ["ACGT" * 5]},
    )
    index_file = tmp_path / "kmerIndex.txt"
    build_kmer_index(graph, graph, index_file, KEEP_ALL, max_haps_to_keep=2)

    assert load_kmer_index(index_file).ranges() == [R1]
    stats = read_statistics(tmp_path / "kmerIndexStatistics.txt")
    assert stats["kmerCount"].to_list() == [9, 0]


def test_hashes_shared_across_ranges_go_to_majority_range(tmp_path: Path) -> None:
    graph = InMemoryGraph(
        [("h1", R1, None), ("h2", R2, None), ("h3", R2, None)],
        {"h1": [SEQ], "h2": [SEQ], "h3": [SEQ]},
    )
    result = build_kmer_index(graph, graph, tmp_path / "kmerIndex.txt", KEEP_ALL, max_haps_to_keep=3)
    assert set(result.range_to_hashes) == {R2}
    assert result.adjacent_counts == {R2: 9}
    stats = read_statistics(tmp_path / "kmerIndexStatistics.txt")
    assert stats["adjacentCount"].to_list() == [0, 9]


def test_missing_range_metadata_is_reported(tmp_path: Path) -> None:
    class NoHapIndex(InMemoryGraph):
        def range_to_hap_index(self):
            return {}

    graph = NoHapIndex([("h1", R1, None)], {"h1": [SEQ]})
    result = build_kmer_index(graph, graph, tmp_path / "kmerIndex.txt", KEEP_ALL, max_haps_to_keep=2)
    assert result.ranges_written == 0
    assert len(result.warnings.of_type(MissingRangeMetadata)) == 1


def test_invalid_nucleotide_aborts_build(tmp_path: Path) -> None:
    graph = InMemoryGraph([("h1", R1, None)], {"h1": [SEQ[:33] + "X" + SEQ]})
    with pytest.raises(InvalidNucleotide) as excinfo:
        build_kmer_index(graph, graph, tmp_path / "kmerIndex.txt", KEEP_ALL, max_haps_to_keep=2)
    assert excinfo.value.hap_id == "h1"


def test_parallel_build_writes_identical_index(tmp_path: Path) -> None:
    rng = random.Random(3)
    shared = "".join(rng.choice("ACGT") for _ in range(60))
    rows = []
    sequences = {}
    for r in range(6):
        refrange = ReferenceRange("2", r * 100 + 1, r * 100 + 100)
        for h in range(4):
            hap_id = f"r{r}h{h}"
            rows.append((hap_id, refrange, f"line{h}"))
            own = "".join(rng.choice("ACGT") for _ in range(70))
            # own[:36] * 2 repeats five windows inside the haplotype
            sequences[hap_id] = [own + shared[: 35 + 5 * h], own[::-1], own[:36] * 2]
    graph = InMemoryGraph(rows, sequences)
    kmer_filter = KmerFilter(3, 2)

    sequential = build_kmer_index(graph, graph, tmp_path / "seq" / "kmerIndex.txt", kmer_filter, 5)
    parallel = build_kmer_index(graph, graph, tmp_path / "par" / "kmerIndex.txt", kmer_filter, 5, threads=2)

    assert parallel.keep_set == sequential.keep_set
    assert (tmp_path / "par" / "kmerIndex.txt").read_text() == (
        tmp_path / "seq" / "kmerIndex.txt"
    ).read_text()
    assert (tmp_path / "par" / "kmerIndexStatistics.txt").read_text() == (
        tmp_path / "seq" / "kmerIndexStatistics.txt"
    ).read_text()
