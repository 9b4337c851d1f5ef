"""
Full-path reconstruction by walking $FILE_NAME parent references up to the
root directory (entry 5).

Chain problems never raise: the resolver returns the part of the path it
could assemble together with a PathStatus saying why it stopped.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .attributes import FileNameAttr
from .entry import MftEntry
from .errors import DecodeError, EntryNotFound
from .reference import ROOT_ENTRY, FileReference
from .settings import NamespacePolicy

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "\\"


class PathStatus(Enum):
    COMPLETE = "complete"
    STALE_PARENT = "stale_parent"      # parent slot reused (sequence mismatch)
    CYCLE = "cycle"                    # parent chain revisits an entry
    MISSING_PARENT = "missing_parent"  # lookup has no usable parent entry
    NO_FILE_NAME = "no_file_name"      # an entry on the chain has no usable $FILE_NAME


_STATUS_MARKERS = {
    PathStatus.STALE_PARENT: "[Orphaned]",
    PathStatus.CYCLE: "[Cycle]",
    PathStatus.MISSING_PARENT: "[Unknown]",
    PathStatus.NO_FILE_NAME: "[Unknown]",
}


@dataclass(frozen=True)
class ResolvedPath:
    """
    Name components from the volume root down to the entry. The root itself
    resolves to no components. steps is the number of entry lookups the
    resolution that produced this path performed.
    """
    components: tuple[str, ...]
    status: PathStatus = PathStatus.COMPLETE
    steps: int = 0

    @property
    def is_complete(self) -> bool:
        return self.status == PathStatus.COMPLETE

    @property
    def name(self) -> str:
        return self.components[-1] if self.components else ""

    def join(self, separator: str = PATH_SEPARATOR) -> str:
        body = separator.join(self.components)
        if self.is_complete:
            return separator + body
        marker = _STATUS_MARKERS[self.status]
        return f"{marker}{separator}{body}" if body else marker

    def __str__(self) -> str:
        return self.join()


class EntryLookup(Protocol):
    """Produces the decoded entry for a reference, raising EntryNotFound when absent."""

    def __call__(self, reference: FileReference) -> MftEntry: ...


class PathResolver:
    """
    Resolves and memoizes full paths for one parsing session.

    The cache is keyed by FileReference, so an entry whose slot was reused
    never picks up the path of its predecessor. A lock guards cache reads and
    writes; the lookup is always called without holding it, so a lookup that
    itself resolves paths cannot deadlock.
    """

    def __init__(self, lookup: EntryLookup, policy: NamespacePolicy = NamespacePolicy.PREFER_WIN32):
        self._lookup = lookup
        self.policy = policy
        self._cache: dict[FileReference, ResolvedPath] = {}
        self._lock = threading.Lock()
        self.lookups = 0

    def cache_info(self) -> dict:
        with self._lock:
            return {"size": len(self._cache), "lookups": self.lookups}

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.lookups = 0

    def cached(self, reference: FileReference) -> ResolvedPath | None:
        with self._lock:
            return self._cache.get(reference)

    def _store(self, reference: FileReference, path: ResolvedPath) -> ResolvedPath:
        with self._lock:
            # first writer wins so repeated resolutions return the same object
            return self._cache.setdefault(reference, path)

    def _fetch(self, reference: FileReference) -> MftEntry | None:
        with self._lock:
            self.lookups += 1
        try:
            entry = self._lookup(reference)
        except EntryNotFound as e:
            logger.debug("Lookup of %s failed: %s", reference, e)
            return None
        except DecodeError as e:
            logger.debug("Entry %s could not be decoded: %s", reference, e)
            return None
        if entry is None or entry.is_unused:
            return None
        return entry

    def _file_name_for(self, entry: MftEntry) -> tuple[FileNameAttr | None, int]:
        """Best $FILE_NAME for entry, following an extension record to its base entry."""
        fn = entry.best_file_name(self.policy)
        if fn is not None or not entry.is_extension():
            return fn, 0
        base_ref = entry.header.base_reference
        base = self._fetch(base_ref)
        if base is None or base.header.sequence != base_ref.sequence:
            return None, 1
        return base.best_file_name(self.policy), 1

    def resolve(self, entry_or_reference: MftEntry | FileReference) -> ResolvedPath:
        if isinstance(entry_or_reference, FileReference):
            reference = entry_or_reference
            hit = self.cached(reference)
            if hit is not None:
                return hit
            if reference.entry == ROOT_ENTRY:
                return self._store(reference, ResolvedPath((), PathStatus.COMPLETE, 0))
            entry = self._fetch(reference)
            if entry is None:
                return ResolvedPath((), PathStatus.MISSING_PARENT, 1)
            if entry.header.sequence != reference.sequence:
                return ResolvedPath((), PathStatus.STALE_PARENT, 1)
        else:
            entry = entry_or_reference

        hit = self.cached(entry.reference)
        if hit is not None:
            return hit
        if entry.entry_index == ROOT_ENTRY:
            return self._store(entry.reference, ResolvedPath((), PathStatus.COMPLETE, 0))
        return self._walk(entry)

    def _walk(self, entry: MftEntry) -> ResolvedPath:
        # (reference, name) pairs from the requested entry towards the root
        chain: list[tuple[FileReference, str]] = []
        visited = {entry.entry_index}
        prefix: tuple[str, ...] = ()
        status = PathStatus.COMPLETE
        steps = 0
        current = entry

        while True:
            fn, extra = self._file_name_for(current)
            steps += extra
            if fn is None:
                status = PathStatus.NO_FILE_NAME
                break
            chain.append((current.reference, fn.name))
            parent_ref = fn.parent
            if parent_ref.entry == ROOT_ENTRY:
                break
            ancestor = self.cached(parent_ref)
            if ancestor is not None:
                prefix, status = ancestor.components, ancestor.status
                break
            if parent_ref.entry in visited:
                logger.warning("Parent chain of entry %d loops back to entry %d", entry.entry_index, parent_ref.entry)
                status = PathStatus.CYCLE
                break
            parent = self._fetch(parent_ref)
            steps += 1
            if parent is None:
                status = PathStatus.MISSING_PARENT
                break
            if parent.header.sequence != parent_ref.sequence:
                logger.debug(
                    "Entry %d: parent %s is stale (live sequence %d)",
                    current.entry_index, parent_ref, parent.header.sequence,
                )
                status = PathStatus.STALE_PARENT
                break
            visited.add(parent_ref.entry)
            current = parent

        names = [name for _, name in chain]
        result = ResolvedPath(prefix + tuple(reversed(names)), status, steps)
        if status != PathStatus.CYCLE:
            # every ancestor on the chain would stop at the same place
            for depth in range(len(chain) - 1, 0, -1):
                reference = chain[depth][0]
                components = prefix + tuple(reversed(names[depth:]))
                self._store(reference, ResolvedPath(components, status, steps))
        return self._store(entry.reference, result)
