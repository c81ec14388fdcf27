"""Rolling two-bit k-mer hashing with reverse-complement canonicalization.

Nucleotides are encoded A=0, C=1, G=2, T=3. The forward hash of a 32-mer packs
the bases into 64 bits with the most recent base in the low bits. The reverse
complement hash is tracked in step: each new base's complement enters at the
most significant slot, so both hashes always describe the same window.

Example:
    ```python
    for h in iter_canonical_hashes("ACGT" * 10):
        print(h)
    ```
"""

import re
from typing import Iterator, List, NamedTuple, Optional

from hapkmer.index.errors import InvalidNucleotide

KMER_LENGTH = 32
PRIME_LENGTH = KMER_LENGTH - 1
MASK64 = 0xFFFF_FFFF_FFFF_FFFF

NUCLEOTIDE_CODES = {"A": 0, "C": 1, "G": 2, "T": 3}

_N_RUNS = re.compile("N+")


class KmerHashPair(NamedTuple):
    """Forward and reverse-complement encodings of the current window."""

    forward: int = 0
    reverse: int = 0

    @property
    def canonical(self) -> int:
        # both are non-negative ints below 2**64, so this is unsigned
        return min(self.forward, self.reverse)


def update_kmer_hash(hashes: KmerHashPair, nucleotide: str) -> KmerHashPair:
    """Push one nucleotide into both the forward and reverse-complement hashes."""
    code = NUCLEOTIDE_CODES.get(nucleotide)
    if code is None:
        raise InvalidNucleotide(nucleotide)
    return KmerHashPair(
        ((hashes.forward << 2) | code) & MASK64,
        (hashes.reverse >> 2) | ((3 - code) << 62),
    )


class NucleotideHasher:
    """Rolling hasher over a single N-free segment.

    The first 31 bases prime the window and produce nothing; every base after
    that completes a 32-mer and ``push`` returns its canonical hash.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.hashes = KmerHashPair()
        self.bases_seen = 0

    def push(self, nucleotide: str) -> Optional[int]:
        self.hashes = update_kmer_hash(self.hashes, nucleotide)
        self.bases_seen += 1
        if self.bases_seen < KMER_LENGTH:
            return None
        return self.hashes.canonical

    @property
    def canonical(self) -> int:
        return self.hashes.canonical


def split_on_n(sequence: str) -> List[str]:
    """Split a sequence on runs of N, keeping segments long enough for one k-mer."""
    return [seg for seg in _N_RUNS.split(sequence) if len(seg) > PRIME_LENGTH]


def iter_segment_hashes(segment: str) -> Iterator[int]:
    """Yield the canonical hash of every 32-mer of one N-free segment."""
    hasher = NucleotideHasher()
    for nucleotide in segment:
        canonical = hasher.push(nucleotide)
        if canonical is not None:
            yield canonical


def iter_canonical_hashes(sequence: str) -> Iterator[int]:
    """Yield canonical hashes for every window of every usable segment of a sequence."""
    for segment in split_on_n(sequence):
        yield from iter_segment_hashes(segment)


def forward_encode(kmer: str) -> int:
    """Two-bit pack a k-mer, first base in the most significant position."""
    value = 0
    for nucleotide in kmer:
        code = NUCLEOTIDE_CODES.get(nucleotide)
        if code is None:
            raise InvalidNucleotide(nucleotide)
        value = ((value << 2) | code) & MASK64
    return value


def reverse_complement(kmer: str) -> str:
    complement = {"A": "T", "C": "G", "G": "C", "T": "A"}
    try:
        return "".join(complement[c] for c in reversed(kmer))
    except KeyError as e:
        raise InvalidNucleotide(e.args[0]) from None


def reverse_complement_encode(kmer: str) -> int:
    """Forward encoding of the reverse complement of ``kmer``."""
    return forward_encode(reverse_complement(kmer))


def canonical_hash(kmer: str) -> int:
    """Canonical hash of a single 32-mer."""
    if len(kmer) != KMER_LENGTH:
        raise ValueError(f"Expected a {KMER_LENGTH}-mer, got {len(kmer)} bases")
    return min(forward_encode(kmer), reverse_complement_encode(kmer))


def to_signed64(value: int) -> int:
    """Two's complement view of an unsigned 64-bit value."""
    return value - (1 << 64) if value & (1 << 63) else value


def to_unsigned64(value: int) -> int:
    return value & MASK64
