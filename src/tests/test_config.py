import logging
from pathlib import Path

import pytest

from hapkmer.utils.config import IndexConfig, parse_hash_value


def test_parse_hash_value() -> None:
    assert parse_hash_value(3) == 3
    assert parse_hash_value("0x1F") == 31
    assert parse_hash_value("0b11") == 3
    assert parse_hash_value(" 12 ") == 12
    with pytest.raises(ValueError):
        parse_hash_value("three")


def test_defaults_and_derived_paths(tmp_path: Path) -> None:
    out = tmp_path / "results"
    config = IndexConfig(output=str(out), log_file=tmp_path / "cfg.log")

    assert out.is_dir()
    assert config.index_file == out / "kmerIndex.txt"
    assert config.statistics_file == out / "kmerIndexStatistics.txt"
    assert config.discard_file is None
    assert config.kmer_filter.hash_mask == 3
    assert config.kmer_filter.hash_filter_value == 1
    assert config.log_level == logging.INFO


@pytest.mark.parametrize(
    "kwargs",
    [
        {"hash_mask": "0b11", "hash_filter_value": "0x4"},
        {"max_haps_to_keep": 0},
        {"threads": 0},
    ],
)
def test_invalid_parameters(tmp_path: Path, kwargs) -> None:
    with pytest.raises(ValueError):
        IndexConfig(output=str(tmp_path / "out"), log_file=tmp_path / "cfg.log", **kwargs)


def test_save_and_read_round_trip(tmp_path: Path) -> None:
    config = IndexConfig(
        output=str(tmp_path / "out"),
        index_file=tmp_path / "idx" / "index.txt",
        hash_mask="0xF",
        hash_filter_value=5,
        max_haps_to_keep=7,
        threads=2,
        log_file=tmp_path / "cfg.log",
        log_level="debug",
    )
    saved = tmp_path / "config.json"
    config.save(saved)

    loaded = IndexConfig.read(saved)
    assert loaded.index_file == config.index_file
    assert loaded.statistics_file == tmp_path / "idx" / "kmerIndexStatistics.txt"
    assert loaded.kmer_filter == config.kmer_filter
    assert loaded.max_haps_to_keep == 7
    assert loaded.threads == 2
    assert loaded.log_level == logging.DEBUG
