from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

from fixturelibrary.domain.errors import KeyConflictError, StorageError
from fixturelibrary.domain.fixture_index import FixtureIndex, key_namespace
from fixturelibrary.domain.models import (
    FileRefEntry,
    InlineEntry,
)


class StoreManager(ABC):
    """
    Abstract base class for fixture storage.

    A store owns a FixtureIndex and layers document persistence on top of it.
    The shared helpers here (read/write/reset) only rely on the abstract
    operations, so every store honours the same index semantics.
    """

    def __init__(self, index: Optional[FixtureIndex] = None):
        self.index = index if index is not None else FixtureIndex()
        self.load_error: Optional[StorageError] = None

    @abstractmethod
    def load(self) -> None:
        """Replace the in-memory index with the persisted one, if any."""
        pass

    @abstractmethod
    async def resolve(self, entry: FileRefEntry) -> Any:
        """Read and parse the document an entry refers to."""
        pass

    @abstractmethod
    async def persist(self, key: str, document: Any) -> FileRefEntry:
        """
        Store a document for ``key`` and return the reference to keep in the index.
        The index itself is not touched.
        """
        pass

    @abstractmethod
    async def flush(self) -> bool:
        """Persist the whole index. Returns False if it could not be written."""
        pass

    async def read(self, key: str) -> Any:
        """Document for ``key`` (aliases followed), or None when no body is stored."""
        entry = self.index.get(key)
        if isinstance(entry, InlineEntry):
            return copy.deepcopy(entry.document)
        if isinstance(entry, FileRefEntry):
            return await self.resolve(entry)
        return None

    async def write(
        self,
        key: str,
        document: Any,
        revision_hash: Optional[str] = None,
        override: bool = False,
        inline: bool = False,
    ) -> None:
        """
        Persist ``document`` and register it under ``key``.

        The conflict check runs before anything is written, so a rejected call
        leaves both the index and the files untouched.
        """
        canonical = key_namespace(key).key
        if not override and self.index.has(canonical):
            raise KeyConflictError(f"Key {canonical!r} already exists in the index")

        if inline:
            entry = InlineEntry(document=copy.deepcopy(document))
        else:
            ref = await self.persist(canonical, document)
            entry = FileRefEntry(path=ref.path, revision_hash=revision_hash)
        self.index.set(canonical, entry, override=True)

    async def reset(self) -> bool:
        """Drop every entry and persist the empty index."""
        self.index.clear()
        return await self.flush()
