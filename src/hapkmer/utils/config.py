"""Configuration management for hapkmer index builds.

Example:
    ```python
    config = IndexConfig(output="results", hash_mask="0b1111", hash_filter_value=6)
    print(config.index_file)
    # results/kmerIndex.txt
    ```
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from hapkmer.index.diagnostics import STATISTICS_FILENAME
from hapkmer.index.kmer_filter import DEFAULT_HASH_FILTER_VALUE, DEFAULT_HASH_MASK, KmerFilter
from hapkmer.utils.logging.loggit import parse_log_level, setup_logging

INDEX_FILENAME = "kmerIndex.txt"


def parse_hash_value(value: Union[int, str]) -> int:
    """Parse a hash mask/filter value given as int, decimal, ``0x`` or ``0b`` string."""
    if isinstance(value, int):
        return value
    text = value.strip().lower().replace("_", "")
    try:
        return int(text, 0)
    except ValueError:
        raise ValueError(
            f"Invalid hash value: {value}. Expected an integer such as 3, 0x3 or 0b11"
        ) from None


class IndexConfig:
    """Parameters of one k-mer index build.

    Args:
        output (str, optional): Output directory; the index and reports go here
            unless explicit file paths are given.
        haplotype_table (Path, optional): TSV with hap_id, contig, start, end[, sample].
        haplotype_fasta (Path, optional): FASTA of haplotype sequences.
        index_file (Path, optional): Index path. Default ``<output>/kmerIndex.txt``.
        discard_file (Path, optional): Where to write discarded hashes, if anywhere.
        statistics_file (Path, optional): Diagnostics report path.
        hash_mask (int | str): Mask for the hash filter.
        hash_filter_value (int | str): Value masked hashes must equal.
        max_haps_to_keep (int, optional): Cap on haplotypes per hash. Derived
            from the graph when not set.
        threads (int): Worker processes.
        diagnostics (bool): Write the statistics report.
        log_file (Path, optional): Path to log file.
        log_level (str): Logging level.
    """

    def __init__(
        self,
        output: Optional[str] = "hapkmer_out",
        haplotype_table: Optional[Path] = None,
        haplotype_fasta: Optional[Path] = None,
        index_file: Optional[Path] = None,
        discard_file: Optional[Path] = None,
        statistics_file: Optional[Path] = None,
        hash_mask: Union[int, str] = DEFAULT_HASH_MASK,
        hash_filter_value: Union[int, str] = DEFAULT_HASH_FILTER_VALUE,
        max_haps_to_keep: Optional[int] = None,
        threads: int = 1,
        diagnostics: bool = True,
        log_file: Optional[Path] = None,
        log_level: str = "info",
    ):
        self.output_dir = Path(output)
        self.haplotype_table = Path(haplotype_table) if haplotype_table else None
        self.haplotype_fasta = Path(haplotype_fasta) if haplotype_fasta else None
        self.index_file = Path(index_file) if index_file else self.output_dir / INDEX_FILENAME
        self.discard_file = Path(discard_file) if discard_file else None
        self.statistics_file = (
            Path(statistics_file) if statistics_file else self.index_file.parent / STATISTICS_FILENAME
        )
        self.hash_mask = parse_hash_value(hash_mask)
        self.hash_filter_value = parse_hash_value(hash_filter_value)
        # validates value & ~mask == 0
        self.kmer_filter = KmerFilter(self.hash_mask, self.hash_filter_value)
        if max_haps_to_keep is not None and max_haps_to_keep < 1:
            raise ValueError(f"max_haps_to_keep must be a positive integer, got {max_haps_to_keep}")
        self.max_haps_to_keep = max_haps_to_keep
        if threads < 1:
            raise ValueError(f"threads must be at least 1, got {threads}")
        self.threads = threads
        self.diagnostics = diagnostics
        self.log_file = log_file
        self.log_level = parse_log_level(log_level)
        self.logger = self.setup_logger()

        if not self.index_file.parent.exists():
            self.logger.info(f"Creating output directory: {self.index_file.parent}")
            self.index_file.parent.mkdir(parents=True, exist_ok=True)
        elif self.index_file.exists():
            self.logger.warning(f"Index file {self.index_file} already exists and will be overwritten")

    def setup_logger(self) -> logging.Logger:
        if isinstance(self.log_file, logging.Logger):
            return self.log_file
        return setup_logging(self.log_file, log_level=self.log_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            k: str(v) if isinstance(v, Path) else v
            for k, v in self.__dict__.items()
            if k not in ("logger", "kmer_filter")
        }

    @classmethod
    def read(cls, config_file: Path):
        with open(config_file, "r") as f:
            config_dict = json.load(f)
        if "output_dir" in config_dict:
            config_dict["output"] = config_dict.pop("output_dir")
        log_level = config_dict.get("log_level", "info")
        if isinstance(log_level, int):
            config_dict["log_level"] = logging.getLevelName(log_level).lower()
        return cls(**config_dict)

    def save(self, output_path: Path):
        with open(output_path, "w") as f:
            tmp_dict = self.to_dict()
            for key, value in tmp_dict.items():
                if not isinstance(value, (str, int, float, bool, type(None))):
                    tmp_dict[key] = str(value)
            json.dump(tmp_dict, f, indent=4)

    def update(self, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __str__(self):
        return f"IndexConfig(index_file={self.index_file}, output_dir={self.output_dir})"
