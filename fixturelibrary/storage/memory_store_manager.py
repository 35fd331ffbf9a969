from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from fixturelibrary.domain.errors import MissingFileError
from fixturelibrary.domain.fixture_index import FixtureIndex, key_namespace
from fixturelibrary.domain.models import FileRefEntry
from fixturelibrary.storage.store_manager import StoreManager


class MemoryStoreManager(StoreManager):
    """
    Store without disk access.

    Useful when local storage isn't available or only a handful of documents
    are needed. "Files" live in a dict keyed by logical path and disappear with
    the process.
    """

    def __init__(self, index: Optional[FixtureIndex] = None):
        super().__init__(index)
        self._files: Dict[str, Any] = {}

    def load(self) -> None:
        pass

    async def resolve(self, entry: FileRefEntry) -> Any:
        if entry.path not in self._files:
            raise MissingFileError(f"{entry.path} doesn't exist")
        return copy.deepcopy(self._files[entry.path])

    async def persist(self, key: str, document: Any) -> FileRefEntry:
        logical_path = key_namespace(key).relative_path
        self._files[logical_path] = copy.deepcopy(document)
        return FileRefEntry(path=logical_path)

    async def flush(self) -> bool:
        return True
