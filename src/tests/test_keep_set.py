import random

import pytest

from hapkmer.index.errors import InvalidNucleotide
from hapkmer.index.hashing import iter_canonical_hashes
from hapkmer.index.keep_set import (
    KeepSetBuilder,
    collect_hash_contributions,
    merge_contributions,
    resolve_contributions,
)
from hapkmer.index.kmer_filter import KmerFilter

KEEP_ALL = KmerFilter(0, 0)


def random_sequence(rng: random.Random, length: int) -> str:
    return "".join(rng.choice("ACGT") for _ in range(length))


def test_hash_is_discarded_once_cap_is_exceeded() -> None:
    builder = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=2)
    builder.add_hash(7, ["a"])
    builder.add_hash(7, ["b"])
    assert builder.keep_map[7] == {"a", "b"}

    builder.add_hash(7, ["c"])
    assert 7 not in builder.keep_map
    assert 7 in builder.discard_set

    # discarded for good
    builder.add_hash(7, ["d"])
    result = builder.finalize()
    assert 7 not in result.keep_map
    assert result.discard_set == frozenset({7})


def test_every_occurrence_counts_against_cap() -> None:
    builder = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=2)
    builder.add_hash(11, ["a", "b"])
    builder.add_hash(11, ["a", "b"])
    result = builder.finalize()
    assert result.discard_set == frozenset({11})
    assert not result.keep_map


def test_kmer_repeated_inside_one_haplotype_is_discarded() -> None:
    builder = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=1)
    # two windows, both hash 0
    builder.add_sequence("a", "A" * 33)
    result = builder.finalize()
    assert result.discard_set == frozenset({0})
    assert not result.keep_map


def test_occurrence_order_decides_discard() -> None:
    kept = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=2)
    for hap_id in ("a", "a", "b"):
        kept.add_hash(5, [hap_id])
    assert kept.finalize().keep_map == {5: frozenset({"a", "b"})}

    dropped = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=2)
    for hap_id in ("a", "b", "a"):
        dropped.add_hash(5, [hap_id])
    assert dropped.finalize().discard_set == frozenset({5})


def test_new_hash_is_always_inserted() -> None:
    builder = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=1)
    builder.add_hash(3, ["a", "b"])
    assert builder.keep_map == {3: {"a", "b"}}

    builder.add_hash(3, ["c"])
    result = builder.finalize()
    assert result.discard_set == frozenset({3})
    assert not result.keep_map


def test_add_sequence_applies_filter_and_reports_haplotype() -> None:
    kmer_filter = KmerFilter(3, 1)
    sequence = random_sequence(random.Random(1), 200)
    builder = KeepSetBuilder(kmer_filter, max_haps_to_keep=4)
    builder.add_sequence("hap1", sequence)
    result = builder.finalize()

    assert builder.windows_seen == 200 - 31
    assert all(h & 3 == 1 for h in result.keep_map)
    assert set(result.keep_map) == {h for h in iter_canonical_hashes(sequence) if h & 3 == 1}

    builder = KeepSetBuilder(kmer_filter, max_haps_to_keep=4)
    with pytest.raises(InvalidNucleotide) as excinfo:
        builder.add_sequence("hap2", sequence[:50] + "X" + sequence[50:])
    assert excinfo.value.hap_id == "hap2"


def test_finalized_builder_rejects_updates() -> None:
    builder = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=2)
    builder.finalize()
    with pytest.raises(RuntimeError):
        builder.add_hash(1, ["a"])


def test_invalid_cap() -> None:
    with pytest.raises(ValueError):
        KeepSetBuilder(KEEP_ALL, max_haps_to_keep=0)


def test_keep_and_discard_are_disjoint_and_capped() -> None:
    rng = random.Random(42)
    shared = random_sequence(rng, 80)
    haplotypes = {
        f"hap{i}": [shared if i % 2 else random_sequence(rng, 60), random_sequence(rng, 50)]
        for i in range(8)
    }
    builder = KeepSetBuilder(KEEP_ALL, max_haps_to_keep=3)
    builder.add_haplotypes(haplotypes)
    result = builder.finalize()

    assert result.overlap_count() == 0
    assert all(1 <= len(ids) <= 3 for ids in result.keep_map.values())
    # four haplotypes carry the shared sequence
    assert set(iter_canonical_hashes(shared)) <= result.discard_set


def test_map_reduce_matches_sequential_build() -> None:
    rng = random.Random(7)
    shared = random_sequence(rng, 70)
    ranges = []
    for r in range(4):
        hap_to_sequences = {}
        for h in range(3):
            own = random_sequence(rng, 45)
            # own[:36] * 2 repeats five 32-mers inside the haplotype
            hap_to_sequences[f"r{r}h{h}"] = [own + shared[: 40 + h], own[:36] * 2]
        ranges.append(hap_to_sequences)
    kmer_filter = KEEP_ALL

    builder = KeepSetBuilder(kmer_filter, max_haps_to_keep=4)
    for hap_to_sequences in ranges:
        builder.add_haplotypes(hap_to_sequences)
    sequential = builder.finalize()

    parts = [collect_hash_contributions(h, kmer_filter) for h in ranges]
    reduced = resolve_contributions(merge_contributions(parts), 4)

    assert reduced.keep_map == sequential.keep_map
    assert list(reduced.keep_map) == list(sequential.keep_map)
    assert reduced.discard_set == sequential.discard_set
    assert sequential.discard_set


def test_merge_contributions_keeps_occurrence_order() -> None:
    merged = merge_contributions([{1: ["a"], 2: ["b"]}, {2: ["c", "b"], 3: ["d"]}])
    assert merged == {1: ["a"], 2: ["b", "c", "b"], 3: ["d"]}
    assert list(merged) == [1, 2, 3]


def test_resolve_replays_occurrences_in_order() -> None:
    kept = resolve_contributions(merge_contributions([{5: ["a", "a"]}, {5: ["b"]}]), 2)
    assert kept.keep_map == {5: frozenset({"a", "b"})}

    dropped = resolve_contributions(merge_contributions([{5: ["a"]}, {5: ["b", "a"]}]), 2)
    assert dropped.discard_set == frozenset({5})
    assert not dropped.keep_map
