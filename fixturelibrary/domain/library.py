"""
The fixture library: the entry point applications use to read and write fixtures.

Composes the store (index + persistence), the remote catalog source, the sync
engine and the schema validator.

Example::

    library = FixtureLibrary(JsonStoreManager(data_dir), GithubSource())
    await library.download_all()
    fixture = await library.get("cameo/auro-spot-300")
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Set

from fixturelibrary.core.config import LibraryConfig
from fixturelibrary.data.sync_status import SyncStatusStore
from fixturelibrary.domain.errors import RemoteSourceError, StorageError
from fixturelibrary.domain.fixture_index import FixtureIndex, key_namespace
from fixturelibrary.domain.models import (
    Diagnostic,
    FileRefEntry,
    InlineEntry,
    Namespace,
)
from fixturelibrary.services.github_source import GithubSource
from fixturelibrary.services.sync import SyncEngine
from fixturelibrary.services.validation import SchemaValidator
from fixturelibrary.storage.store_manager import StoreManager

logger = logging.getLogger(__name__)


class FixtureLibrary:
    def __init__(
        self,
        store: StoreManager,
        source: Optional[GithubSource] = None,
        validator: Optional[SchemaValidator] = None,
        config: Optional[LibraryConfig] = None,
        status_store: Optional[SyncStatusStore] = None,
    ):
        self.config = config or LibraryConfig()
        self.store = store
        self.source = source
        self.validator = validator
        self.sync: Optional[SyncEngine] = None
        if source is not None:
            self.sync = SyncEngine(
                store,
                source,
                status_store=status_store,
                max_concurrent_downloads=self.config.max_concurrent_downloads,
            )

        # Parsed documents by terminal key
        self._cache: Dict[str, Any] = {}
        self.last_diagnostics: List[Diagnostic] = []

    @property
    def index(self) -> FixtureIndex:
        return self.store.index

    @property
    def web_access(self) -> bool:
        return self.config.web_access and self.source is not None

    # ========================================================================
    # Reading
    # ========================================================================

    async def get(self, key: str) -> Any:
        """
        Document for ``key``, or None.

        Aliases are followed. On a miss the document is fetched from the
        catalog (if web access is allowed), validated and stored.
        """
        canonical = key_namespace(key).key
        terminal = self.index.resolve_key(canonical)

        if terminal is None and self.index.has(canonical):
            # Alias to a key that is gone
            return None

        lookup_key = terminal or canonical
        if lookup_key in self._cache:
            return copy.deepcopy(self._cache[lookup_key])

        entry = self.index.entry(lookup_key)
        document = None
        if isinstance(entry, InlineEntry):
            document = copy.deepcopy(entry.document)
        elif isinstance(entry, FileRefEntry):
            try:
                document = await self.store.resolve(entry)
            except (StorageError, ValueError) as e:
                logger.warning(f"Could not read stored document for {lookup_key}: {e}")

        if document is not None:
            self._cache[lookup_key] = copy.deepcopy(document)
            return document

        return await self._fetch_remote(lookup_key)

    async def _fetch_remote(self, key: str) -> Any:
        if not self.web_access:
            return None
        parsed = key_namespace(key)
        if parsed.namespace is not Namespace.OFL:
            return None

        try:
            result = await self.source.fetch_document_with_hash(parsed.catalog_path)
        except RemoteSourceError as e:
            logger.warning(f"Failed to fetch {key} from the catalog: {e}")
            return None
        if result is None:
            return None

        document, content_hash = result
        if self.config.validate_remote:
            if not self.validate(document):
                logger.warning(f"Catalog document {key} failed validation; not caching it")
                return None
        elif not self.config.persist_unvalidated:
            return document

        try:
            await self.store.write(key, document, revision_hash=content_hash, override=True)
        except StorageError as e:
            logger.error(f"Failed to store fetched document {key}: {e}")
            return document
        await self.store.flush()

        self._cache[key] = copy.deepcopy(document)
        return document

    # ========================================================================
    # Writing
    # ========================================================================

    async def set(
        self,
        key: str,
        document: Any,
        validate: bool = True,
        override: bool = False,
        inline: bool = False,
    ) -> Any:
        """
        Add a document to the library.

        Returns the document, or None if it failed validation or could not be
        stored. Raises KeyConflictError when the key exists and ``override``
        is False.
        """
        canonical = key_namespace(key).key
        if validate and not self.validate(document):
            return None

        try:
            await self.store.write(canonical, document, override=override, inline=inline)
        except StorageError as e:
            logger.error(f"Failed to store {canonical}: {e}")
            return None

        self._cache[canonical] = copy.deepcopy(document)
        await self.store.flush()
        return document

    async def set_alias(self, key: str, target_key: str, override: bool = False) -> None:
        self.index.set_alias(key, target_key, override=override)
        self._cache.pop(key_namespace(key).key, None)
        await self.store.flush()

    def validate(self, document: Any) -> bool:
        """
        Check a document against the fixture schema.

        Diagnostics of the last call are kept in ``last_diagnostics``.
        """
        if self.validator is None:
            self.last_diagnostics = []
            return True

        try:
            result = self.validator.validate(document)
        except Exception as e:
            logger.error(f"Validator failed: {e}", exc_info=True)
            self.last_diagnostics = [Diagnostic(message=str(e))]
            return False

        self.last_diagnostics = result.errors
        if not result.valid:
            logger.warning(f"Document failed validation with {len(result.errors)} error(s)")
        return result.valid

    # ========================================================================
    # Catalog synchronization
    # ========================================================================

    def _require_sync(self) -> SyncEngine:
        if not self.web_access or self.sync is None:
            raise RemoteSourceError("Web access is disabled")
        return self.sync

    async def refresh_listing(self) -> Set[str]:
        """Record remote hashes for new/changed catalog documents without downloading them."""
        changed = await self._require_sync().refresh_listing()
        for key in changed:
            self._cache.pop(key, None)
        return changed

    async def download_all(self) -> Set[str]:
        """Download every new or changed catalog document."""
        changed = await self._require_sync().download_all()
        for key in changed:
            self._cache.pop(key, None)
        return changed
