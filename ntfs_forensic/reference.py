"""MFT file references: (entry index, sequence number) pairs."""

from dataclasses import dataclass

ENTRY_MASK = 0xFFFFFFFFFFFF  # low 48 bits
ROOT_ENTRY = 5


@dataclass(frozen=True, order=True)
class FileReference:
    """
    Identifies an MFT entry across slot reuse. A stored reference whose
    sequence differs from the live entry's sequence points at a deleted
    object whose slot has been recycled.
    """
    entry: int
    sequence: int

    @classmethod
    def from_int(cls, value: int) -> "FileReference":
        return cls(entry=value & ENTRY_MASK, sequence=(value >> 48) & 0xFFFF)

    def __int__(self) -> int:
        return (self.sequence << 48) | (self.entry & ENTRY_MASK)

    def is_root(self) -> bool:
        return self.entry == ROOT_ENTRY

    def __str__(self) -> str:
        return f"{self.entry}-{self.sequence}"
