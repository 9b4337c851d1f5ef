"""
Exception taxonomy for NTFS metadata decoding.

Structural and encoding failures are DecodeError subclasses raised for one
unit (entry, attribute, journal record). Integrity problems such as fixup
mismatches are recorded on the decoded entry instead of being raised.
"""


class NtfsError(Exception):
    """Base class for everything this package raises."""


class DecodeError(NtfsError):
    """A unit (entry, attribute, record) could not be decoded."""

    def __init__(self, message: str, offset: int | None = None):
        super().__init__(message)
        self.message = message
        self.offset = offset

    def __str__(self) -> str:
        if self.offset is None:
            return self.message
        return f"{self.message} (at offset 0x{self.offset:X})"


class ShortRead(DecodeError):
    """A read ran past the end of the buffer."""


# --- MFT entries ---

class TruncatedEntry(DecodeError):
    """Entry buffer is shorter than the structure it must contain."""


class InvalidSignature(DecodeError):
    def __init__(self, signature: bytes, entry_index: int | None = None):
        where = f"entry {entry_index}" if entry_index is not None else "entry"
        super().__init__(f"Invalid signature {signature!r} for {where}")
        self.signature = signature
        self.entry_index = entry_index


class InvalidEntryHeader(DecodeError):
    """Header fields contradict each other or the buffer size."""


class FixupMismatch(NtfsError):
    """
    Trailing bytes of one or more sectors did not carry the update sequence
    number. Decoding records the sectors on MftEntry.fixup_mismatches and
    carries on; MftEntry.check_fixups() raises this for callers that want
    torn entries to fail.
    """

    def __init__(self, entry_index: int, sectors: list[int]):
        super().__init__(f"Fixup mismatch in entry {entry_index}, sectors {sectors}")
        self.entry_index = entry_index
        self.sectors = sectors


# --- attributes ---

class AttributeDecodeError(DecodeError):
    """One attribute failed to decode; the rest of the entry is still usable."""

    def __init__(self, message: str, offset: int | None = None, type_code: int | None = None):
        super().__init__(message, offset)
        self.type_code = type_code


class AttributeLengthOverflow(AttributeDecodeError):
    """Attribute length is smaller than its header or runs past the buffer."""


class AttributeContentOverflow(AttributeDecodeError):
    """Resident value or run list lies outside the attribute."""


class UnknownAttributeType(AttributeDecodeError):
    pass


class InvalidDataRun(AttributeDecodeError):
    pass


# --- USN journal ---

class TruncatedRecord(DecodeError):
    pass


class UnsupportedVersion(DecodeError):
    pass


class InvalidUsn(DecodeError):
    pass


class InvalidTimestamp(DecodeError):
    pass


class InvalidFilename(DecodeError):
    pass


class RecordLengthOverflow(DecodeError):
    """Declared record length is too large to be a USN record."""


# --- lookups ---

class EntryNotFound(NtfsError, LookupError):
    """The entry source has no usable entry for a reference or index."""


class EntryOutOfRange(EntryNotFound):
    pass
