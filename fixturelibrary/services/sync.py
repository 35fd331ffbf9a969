"""
Reconcile the local index with the remote catalog listing.

Both operations compare the hash recorded for each key with the content hash
from the listing and only touch keys that are new or changed:

- refresh_listing() records the new hashes without downloading anything
- download_all() downloads and stores every changed document

The manifest is written once, after every per-key update has finished.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set, Tuple

from fixturelibrary.data.sync_status import SyncStatusStore
from fixturelibrary.domain.errors import InvalidKeyError, RemoteSourceError, StorageError
from fixturelibrary.domain.fixture_index import key_namespace
from fixturelibrary.domain.models import (
    FileRefEntry,
    Namespace,
    RemoteDocument,
    RemoteRefEntry,
    revision_hash_of,
)
from fixturelibrary.services.github_source import GithubSource
from fixturelibrary.storage.store_manager import StoreManager

logger = logging.getLogger(__name__)

# Catalog-level file listing manufacturers; not a fixture document.
MANUFACTURERS_FILE = "manufacturers.json"


def listing_keys(listing: List[RemoteDocument]) -> List[Tuple[str, RemoteDocument]]:
    """Pair each catalog document of a listing with its index key."""
    pairs: List[Tuple[str, RemoteDocument]] = []
    for document in listing:
        if document.path == MANUFACTURERS_FILE or not document.path.endswith(".json"):
            continue
        raw_key = document.path[: -len(".json")]
        try:
            parsed = key_namespace(raw_key)
        except InvalidKeyError as e:
            logger.warning(f"Skipping catalog file {document.path}: {e}")
            continue
        if parsed.namespace is not Namespace.OFL or parsed.name != raw_key:
            logger.warning(f"Skipping catalog file {document.path}: path collides with a namespace prefix")
            continue
        pairs.append((parsed.key, document))
    return pairs


class SyncEngine:
    """Change detection and download of catalog documents into a store."""

    def __init__(
        self,
        store: StoreManager,
        source: GithubSource,
        status_store: Optional[SyncStatusStore] = None,
        max_concurrent_downloads: int = 8,
    ):
        self.store = store
        self.source = source
        self.status_store = status_store
        self.max_concurrent_downloads = max(1, max_concurrent_downloads)

    async def refresh_listing(self) -> Set[str]:
        """
        Record the remote hash of every new or changed catalog document
        without downloading bodies.

        Returns the keys whose recorded hash changed.
        """
        logger.info("Starting reference-only catalog sync")
        # Listing errors (including truncation) propagate before anything changes.
        listing = await self.source.list_documents()
        index = self.store.index

        changed: Set[str] = set()
        for key, document in listing_keys(listing):
            if revision_hash_of(index.entry(key)) == document.content_hash:
                continue
            # A stale file reference is dropped; the next get() fetches the new body.
            index.set(key, RemoteRefEntry(revision_hash=document.content_hash), override=True)
            changed.add(key)

        await self.store.flush()
        await self._record("refresh", changed, [])
        logger.info(f"Reference-only sync finished: {len(changed)} changed")
        return changed

    async def download_all(self) -> Set[str]:
        """
        Download every catalog document that is missing locally or whose hash
        changed, and store it as a file reference.

        Returns the keys that were (re)downloaded. Documents that fail to
        download are logged and left out of the result.
        """
        logger.info("Starting full catalog sync")
        listing = await self.source.list_documents()
        index = self.store.index

        pending = [
            (key, document)
            for key, document in listing_keys(listing)
            if not isinstance(index.entry(key), FileRefEntry)
            or revision_hash_of(index.entry(key)) != document.content_hash
        ]
        logger.info(f"{len(pending)} catalog documents to download")

        semaphore = asyncio.Semaphore(self.max_concurrent_downloads)
        failed: List[str] = []

        async def download(key: str, document: RemoteDocument) -> bool:
            async with semaphore:
                try:
                    result = await self.source.fetch_document_with_hash(document.path, document.content_hash)
                except RemoteSourceError as e:
                    logger.warning(f"Failed to download {key}: {e}")
                    failed.append(key)
                    return False
                if result is None:
                    logger.warning(f"Catalog document {key} disappeared at the pinned revision")
                    failed.append(key)
                    return False

                body, _ = result
                try:
                    await self.store.write(key, body, revision_hash=document.content_hash, override=True)
                except StorageError as e:
                    logger.warning(f"Failed to store {key}: {e}")
                    failed.append(key)
                    return False
                except Exception as e:
                    # One bad document must not cancel the rest of the batch.
                    logger.error(f"Unexpected error storing {key}: {e}", exc_info=True)
                    failed.append(key)
                    return False
                return True

        # Every download is joined before the manifest is written.
        results = await asyncio.gather(*(download(key, document) for key, document in pending))
        changed = {key for (key, _), ok in zip(pending, results) if ok}

        await self.store.flush()
        await self._record("download", changed, failed)
        logger.info(f"Full sync finished: {len(changed)} downloaded, {len(failed)} failed")
        return changed

    async def _record(self, mode: str, changed: Set[str], failed: List[str]) -> None:
        if self.status_store is None:
            return
        revision = await self.source.pinned_revision()
        self.status_store.record(mode, revision, len(changed), failed)
