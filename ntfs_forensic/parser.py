"""
MFT parsing session: reads fixed-size entries from an $MFT stream by absolute
seek and owns the path resolver for that stream.
"""

import logging
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from .cursor import read_exact, unpack_at
from .entry import FILE_HEADER, MftEntry
from .errors import DecodeError, EntryNotFound, EntryOutOfRange
from .paths import PathResolver, ResolvedPath
from .reference import FileReference
from .settings import DEFAULT_ENTRY_SIZE, SECTOR_SIZE, ParserSettings

logger = logging.getLogger(__name__)

_DETECT_WINDOW = 8192


def _plausible_entry_size(size: int) -> bool:
    return 512 <= size <= _DETECT_WINDOW and (size & (size - 1)) == 0


def _file_signature_offsets(buf: bytes) -> set[int]:
    return {off for off in range(0, len(buf) - 3, SECTOR_SIZE) if buf[off : off + 4] == FILE_HEADER}


def detect_entry_size(stream: BinaryIO) -> int:
    """
    Guess the entry size of an $MFT stream.

    The earliest sector holding a FILE signature is taken as the first record,
    so zeroed or damaged leading slots are tolerated. Its allocated size is
    tried first, then the common sizes; a size is accepted when another FILE
    record starts exactly that far on. Without such a match the allocated size
    is trusted if plausible, else 1024.
    """
    stream.seek(0)
    buf = read_exact(stream, _DETECT_WINDOW)
    offsets = _file_signature_offsets(buf)
    if not offsets:
        return DEFAULT_ENTRY_SIZE
    first = min(offsets)
    if first + 0x20 > len(buf):
        return DEFAULT_ENTRY_SIZE

    allocated = unpack_at("<I", buf, first + 0x1C)[0]
    for size in (allocated, 1024, 2048, 4096):
        if _plausible_entry_size(size) and first + size in offsets:
            return size
    logger.debug("No second FILE record in the first %d bytes; allocated size %d", len(buf), allocated)
    return allocated if _plausible_entry_size(allocated) else DEFAULT_ENTRY_SIZE


class MftParser:
    """
    Entry source over an $MFT stream.

    get_entry_by_reference is the lookup handed to the PathResolver, so paths
    are rebuilt on demand from whichever entries they need; nothing is loaded
    up front.
    """

    def __init__(self, stream: BinaryIO, settings: ParserSettings | None = None):
        self._stream = stream
        self._owns_stream = False
        self.settings = settings or ParserSettings()
        stream.seek(0, 2)
        self._size = stream.tell()
        self.entry_size = self.settings.entry_size or detect_entry_size(stream)
        logger.info("MFT stream: %d bytes, entry size %d, %d entries", self._size, self.entry_size, self.entry_count)
        self.resolver = PathResolver(self.get_entry_by_reference, self.settings.namespace_policy)

    @classmethod
    def from_path(cls, path: Path | str, settings: ParserSettings | None = None) -> "MftParser":
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"$MFT file not found: {path}")
        f = open(path, "rb")
        try:
            parser = cls(f, settings)
        except BaseException:
            f.close()
            raise
        parser._owns_stream = True
        return parser

    @property
    def entry_count(self) -> int:
        return self._size // self.entry_size

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()

    def __enter__(self) -> "MftParser":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __len__(self) -> int:
        return self.entry_count

    def read_entry_bytes(self, index: int) -> bytes:
        if index < 0 or index >= self.entry_count:
            raise EntryOutOfRange(f"Entry {index} is outside 0..{self.entry_count - 1}")
        self._stream.seek(index * self.entry_size)
        return read_exact(self._stream, self.entry_size)

    def get_entry(self, index: int) -> MftEntry:
        """Decode entry index. Raises EntryOutOfRange, or the entry's DecodeError."""
        raw = self.read_entry_bytes(index)
        return MftEntry.from_buffer(
            raw, index,
            sector_size=self.settings.sector_size,
            cluster_size=self.settings.cluster_size,
        )

    def iter_entries(self, indexes: Iterable[int] | None = None) -> Iterator[MftEntry | DecodeError]:
        """
        Yield each entry in order, or its DecodeError when it cannot be
        decoded. indexes past the end of the stream are skipped.
        """
        if indexes is None:
            indexes = range(self.entry_count)
        for index in indexes:
            try:
                entry = self.get_entry(index)
            except EntryOutOfRange:
                logger.warning("Entry %d is past the end of the MFT (%d entries)", index, self.entry_count)
                continue
            except DecodeError as e:
                logger.debug("Entry %d: %s", index, e)
                yield e
                continue
            yield entry

    def get_entry_by_reference(self, reference: FileReference) -> MftEntry:
        """
        Entry stored in the slot reference points at. The sequence number is
        not compared here; the resolver reports stale references itself.
        """
        try:
            entry = self.get_entry(reference.entry)
        except DecodeError as e:
            raise EntryNotFound(f"Entry {reference.entry} could not be decoded: {e}") from e
        if entry.is_unused:
            raise EntryNotFound(f"Entry {reference.entry} is unused")
        return entry

    def get_full_path(self, entry: MftEntry | FileReference) -> ResolvedPath:
        return self.resolver.resolve(entry)
