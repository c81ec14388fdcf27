from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class ReferenceRange:
    """A contiguous region of the reference genome.

    Ordered by contig, then start, then end. The string form ``contig:start-end``
    is the range identifier written to index files.
    """

    contig: str
    start: int
    end: int

    def __str__(self):
        return f"{self.contig}:{self.start}-{self.end}"

    @property
    def length(self) -> int:
        """Inclusive length of the range."""
        return self.end - self.start + 1

    @classmethod
    def parse(cls, range_string: str) -> "ReferenceRange":
        """Parse ``contig:start-end`` into a ReferenceRange."""
        contig, _, coords = range_string.strip().rpartition(":")
        if not contig:
            raise ValueError(f"Invalid reference range: {range_string!r}")
        start, _, end = coords.partition("-")
        return cls(contig, int(start), int(end))
