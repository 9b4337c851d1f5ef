"""Session-level configuration for MFT parsing."""

from dataclasses import dataclass
from enum import Enum

SECTOR_SIZE = 512
DEFAULT_ENTRY_SIZE = 1024


class NamespacePolicy(Enum):
    """How DOS 8.3 $FILE_NAME aliases take part in path resolution."""
    PREFER_WIN32 = "prefer-win32"  # DOS names used only when nothing else exists
    EXCLUDE_DOS = "exclude-dos"    # DOS-only names never used


@dataclass
class ParserSettings:
    """
    entry_size: MFT record size in bytes; 0 = detect from the first FILE record.
    sector_size: fixup stride (bytes per sector).
    cluster_size: bytes per cluster, used only to cross-check run lists against
        allocated sizes; None skips that check.
    namespace_policy: which $FILE_NAME is used for names and parents.
    """
    entry_size: int = 0
    sector_size: int = SECTOR_SIZE
    cluster_size: int | None = None
    namespace_policy: NamespacePolicy = NamespacePolicy.PREFER_WIN32

    def __post_init__(self):
        if self.entry_size < 0:
            raise ValueError(f"entry_size must be >= 0, got {self.entry_size}")
        if self.sector_size <= 0 or self.sector_size % 2:
            raise ValueError(f"sector_size must be a positive even number, got {self.sector_size}")
        if self.cluster_size is not None and self.cluster_size <= 0:
            raise ValueError(f"cluster_size must be positive, got {self.cluster_size}")
