"""Sequence and range-metadata providers.

The index builder depends only on two small capability interfaces, so it does
not care how the haplotype graph or the haplotype sequences were obtained:

* ``SequenceProvider``: range -> (haplotype id -> sequences)
* ``RangeMetadataProvider``: the sorted ranges, haplotype id -> owning ranges,
  and range -> (haplotype id -> local index)

``InMemoryGraph`` implements both. ``load_haplotype_graph`` builds one from a
haplotype table (TSV) and a FASTA file of haplotype sequences.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

import polars as pl
from needletail import parse_fastx_file

from hapkmer.index.ranges import ReferenceRange

logger = logging.getLogger(__name__)

HAPLOTYPE_TABLE_COLUMNS = ("hap_id", "contig", "start", "end")


class SequenceProvider(Protocol):
    def sequences_for_range(self, refrange: ReferenceRange) -> Dict[str, List[str]]: ...


class RangeMetadataProvider(Protocol):
    def ranges(self) -> List[ReferenceRange]: ...

    def hap_id_to_ranges(self) -> Dict[str, List[ReferenceRange]]: ...

    def range_to_hap_index(self) -> Dict[ReferenceRange, Dict[str, int]]: ...


class InMemoryGraph:
    """Haplotype graph held in plain dictionaries.

    Args:
        rows: (hap_id, range, sample) triples; sample may be None.
        hap_sequences: haplotype id -> list of sequences.
    """

    def __init__(
        self,
        rows: Iterable[Tuple[str, ReferenceRange, Optional[str]]],
        hap_sequences: Mapping[str, Sequence[str]],
    ):
        self._range_haps: Dict[ReferenceRange, List[str]] = {}
        self._hap_samples: Dict[str, set] = {}
        for hap_id, refrange, sample in rows:
            haps = self._range_haps.setdefault(refrange, [])
            if hap_id not in haps:
                haps.append(hap_id)
            samples = self._hap_samples.setdefault(hap_id, set())
            if sample is not None:
                samples.add(sample)
        self._hap_sequences = {hap_id: list(seqs) for hap_id, seqs in hap_sequences.items()}

    def ranges(self) -> List[ReferenceRange]:
        return sorted(self._range_haps)

    def hap_ids(self, refrange: ReferenceRange) -> List[str]:
        return list(self._range_haps.get(refrange, ()))

    def hap_id_to_ranges(self) -> Dict[str, List[ReferenceRange]]:
        mapping: Dict[str, List[ReferenceRange]] = {}
        for refrange in self.ranges():
            for hap_id in self.hap_ids(refrange):
                mapping.setdefault(hap_id, []).append(refrange)
        return mapping

    def range_to_hap_index(self) -> Dict[ReferenceRange, Dict[str, int]]:
        # local index is the position in the sorted haplotype ids of the range
        return {
            refrange: {hap_id: i for i, hap_id in enumerate(sorted(self.hap_ids(refrange)))}
            for refrange in self.ranges()
        }

    def samples(self) -> List[str]:
        return sorted(set().union(*self._hap_samples.values())) if self._hap_samples else []

    def sequences_for_range(self, refrange: ReferenceRange) -> Dict[str, List[str]]:
        result = {}
        for hap_id in self.hap_ids(refrange):
            sequences = self._hap_sequences.get(hap_id)
            if sequences is None:
                logger.warning(f"No sequence found for haplotype {hap_id} in range {refrange}")
                continue
            result[hap_id] = sequences
        return result


def read_haplotype_table(path: Union[str, Path]) -> pl.DataFrame:
    """Read the TSV haplotype table (hap_id, contig, start, end[, sample])."""
    # every column as text; hap ids and contigs can look numeric
    table = pl.read_csv(path, separator="\t", infer_schema=False)
    missing = [c for c in HAPLOTYPE_TABLE_COLUMNS if c not in table.columns]
    if missing:
        raise ValueError(f"Haplotype table {path} is missing column(s): {', '.join(missing)}")
    return table.with_columns(pl.col("start").cast(pl.Int64), pl.col("end").cast(pl.Int64))


def read_haplotype_fasta(path: Union[str, Path]) -> Dict[str, List[str]]:
    """Read haplotype sequences; repeated record ids add further sequences.

    Sequences are upper-cased so soft-masked assemblies can be used directly.
    """
    hap_sequences: Dict[str, List[str]] = {}
    for record in parse_fastx_file(str(path)):
        hap_id = str(getattr(record, "id", "")).split()[0]
        hap_sequences.setdefault(hap_id, []).append(str(getattr(record, "seq", "")).upper())
    return hap_sequences


def load_haplotype_graph(
    table_path: Union[str, Path], fasta_path: Union[str, Path, None] = None
) -> InMemoryGraph:
    """Build the graph from the haplotype table, with sequences from ``fasta_path``.

    Without a FASTA only range metadata is available, which is all reading an
    existing index needs.
    """
    table = read_haplotype_table(table_path)
    has_sample = "sample" in table.columns
    rows = []
    for row in table.iter_rows(named=True):
        refrange = ReferenceRange(row["contig"], row["start"], row["end"])
        rows.append((row["hap_id"], refrange, row["sample"] if has_sample else None))
    graph = InMemoryGraph(rows, read_haplotype_fasta(fasta_path) if fasta_path is not None else {})
    logger.info(
        f"Loaded {len(rows)} haplotype rows over {len(graph.ranges())} reference ranges from {table_path}"
    )
    return graph


def default_max_haps_to_keep(graph: InMemoryGraph) -> int:
    """Half the number of samples in the graph (distinct haplotypes if no samples)."""
    samples = graph.samples()
    count = len(samples) if samples else len(graph.hap_id_to_ranges())
    return max(1, int(count * 0.5))
