from dataclasses import dataclass

from hapkmer.index.hashing import MASK64

DEFAULT_HASH_MASK = 3
DEFAULT_HASH_FILTER_VALUE = 1


@dataclass(frozen=True)
class KmerFilter:
    """Position-independent downsampling of canonical hashes.

    A hash is kept iff ``(hash & hash_mask) == hash_filter_value``. The filter
    value is expressed in the two-bit nucleotide code, so with the defaults
    (mask 3, value 1) only k-mers whose canonical form ends in C are used.
    A mask of 0 with value 0 keeps every hash.
    """

    hash_mask: int = DEFAULT_HASH_MASK
    hash_filter_value: int = DEFAULT_HASH_FILTER_VALUE

    def __post_init__(self):
        # masks given as negative signed longs are accepted
        object.__setattr__(self, "hash_mask", self.hash_mask & MASK64)
        object.__setattr__(self, "hash_filter_value", self.hash_filter_value & MASK64)
        if self.hash_filter_value & ~self.hash_mask & MASK64:
            raise ValueError(
                f"hash filter value {self.hash_filter_value:#x} has bits outside "
                f"hash mask {self.hash_mask:#x}; no hash could ever pass"
            )

    def accepts(self, kmer_hash: int) -> bool:
        return (kmer_hash & self.hash_mask) == self.hash_filter_value

    __call__ = accepts
