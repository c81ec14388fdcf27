"""Error taxonomy for k-mer index building.

Fatal problems are exceptions (``InvalidNucleotide``, ``IndexWriteFailure``).
Recoverable metadata gaps are recorded as warning objects in a
``BuildWarnings`` accumulator so an operator can audit index completeness
after a run that otherwise succeeded.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class KmerIndexError(Exception):
    """Base class for all k-mer index errors."""


class InvalidNucleotide(KmerIndexError, ValueError):
    """Raised when a sequence contains a character outside A, C, G, T."""

    def __init__(self, nucleotide: str, hap_id: Optional[str] = None):
        self.nucleotide = nucleotide
        self.hap_id = hap_id
        where = f" (haplotype {hap_id})" if hap_id is not None else ""
        super().__init__(
            f"Attempted to update kmer hash with an invalid nucleotide character "
            f"({nucleotide!r}){where}. Must be one of A,C,G,T"
        )


class IndexWriteFailure(KmerIndexError, OSError):
    """Raised when the index, discard or statistics file cannot be written."""


@dataclass(frozen=True)
class MissingRangeMetadata:
    """A hash or range could not be placed because range metadata is absent."""

    subject: str
    detail: str

    def __str__(self):
        return f"Missing range metadata for {self.subject}: {self.detail}"


@dataclass(frozen=True)
class MissingHaplotypeIndexMapping:
    """A haplotype id has no local index in the range it was encoded for."""

    hap_id: str
    range_id: str

    def __str__(self):
        return (
            f"Haplotype {self.hap_id} has no index in range {self.range_id}; "
            "its bit is left unset"
        )


@dataclass(frozen=True)
class InvalidHaplotypeIndex:
    """A haplotype's local index falls outside the block width of its range."""

    hap_id: str
    range_id: str
    index: int
    haplotype_count: int

    def __str__(self):
        return (
            f"Haplotype {self.hap_id} has index {self.index} in range {self.range_id}, "
            f"outside 0..{self.haplotype_count - 1}; its bit is left unset"
        )


BuildWarning = Union[MissingRangeMetadata, MissingHaplotypeIndexMapping, InvalidHaplotypeIndex]


@dataclass
class BuildWarnings:
    """Accumulates recoverable problems seen while building an index."""

    items: List[BuildWarning] = field(default_factory=list)
    quiet: bool = False

    def add(self, warning: BuildWarning) -> None:
        if not self.quiet:
            logger.warning(str(warning))
        self.items.append(warning)

    def extend(self, warnings: "BuildWarnings") -> None:
        for warning in warnings:
            self.add(warning)

    def of_type(self, kind: type) -> List[BuildWarning]:
        return [w for w in self.items if isinstance(w, kind)]

    def __len__(self):
        return len(self.items)

    def __iter__(self):
        return iter(self.items)
