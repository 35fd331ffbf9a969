"""
Remote directory source for a catalog hosted in a GitHub repository.

This service handles:
- Pinning one revision of the catalog (a tag for the supported schema version,
  or the tip of the tracked branch)
- Listing every catalog document with its git blob hash at that revision
- Downloading single documents at that revision
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from fixturelibrary.core.config import LibraryConfig
from fixturelibrary.domain.errors import (
    ContentHashMismatchError,
    ListingTruncatedError,
    RemoteSourceError,
    TransportError,
)
from fixturelibrary.domain.models import RemoteDocument

logger = logging.getLogger(__name__)

USER_AGENT = "fixturelibrary"


def git_blob_sha(content: bytes) -> str:
    """SHA-1 that git assigns to a blob with this content."""
    header = f"blob {len(content)}\0".encode("ascii")
    return hashlib.sha1(header + content).hexdigest()


def tag_version(tag_name: str) -> str:
    """Version part of a tag name: 'schema-12.1.0' -> '12.1.0', 'v12.1.0' -> '12.1.0'."""
    version = tag_name.split("-", 1)[1] if "-" in tag_name else tag_name
    return version[1:] if version.startswith("v") else version


class PinnedRevision:
    """
    Memoized revision id.

    Owned by a GithubSource instance so that independent sources (and tests)
    never share a pin.
    """

    def __init__(self) -> None:
        self._value: Optional[str] = None

    @property
    def value(self) -> Optional[str]:
        return self._value

    async def get(self, loader: Callable[[], Awaitable[str]], force_refresh: bool = False) -> str:
        if self._value is None or force_refresh:
            self._value = await loader()
        return self._value

    def clear(self) -> None:
        self._value = None


class GithubSource:
    """Read-only access to the catalog directory of a GitHub repository."""

    def __init__(
        self,
        config: Optional[LibraryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or LibraryConfig()
        self._transport = transport
        self._pinned = PinnedRevision()

    # ========================================================================
    # HTTP
    # ========================================================================

    def _headers(self, api: bool) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if api:
            headers["Accept"] = "application/vnd.github+json"
            if self.config.github_token:
                headers["Authorization"] = f"Bearer {self.config.github_token}"
        return headers

    async def _get(self, url: str, api: bool = True) -> Optional[httpx.Response]:
        """
        GET ``url``. Returns None on 404; raises TransportError for any other
        failure once the retries are used up.
        """
        attempts = self.config.request_retries
        logger.debug(f"GET {url}")

        for attempt in range(1, attempts + 1):
            try:
                async with httpx.AsyncClient(
                    follow_redirects=True,
                    timeout=self.config.request_timeout,
                    transport=self._transport,
                ) as client:
                    response = await client.get(url, headers=self._headers(api))
            except httpx.TransportError as e:
                if attempt < attempts:
                    logger.warning(f"Request to {url} failed (attempt {attempt}/{attempts}): {e}. Retrying...")
                    await asyncio.sleep(self.config.retry_backoff * attempt)
                    continue
                raise TransportError(f"Request to {url} failed: {e}", url=url) from e

            if response.status_code == 404:
                return None
            if response.is_success:
                return response
            if response.status_code >= 500 and attempt < attempts:
                logger.warning(
                    f"{url} answered {response.status_code} (attempt {attempt}/{attempts}). Retrying..."
                )
                await asyncio.sleep(self.config.retry_backoff * attempt)
                continue
            raise TransportError(
                f"{response.status_code} - {response.reason_phrase} for {url}",
                status=response.status_code,
                url=url,
            )

        # Only reached when request_retries is misconfigured below 1.
        raise TransportError(f"No request made to {url}", url=url)

    async def _get_json(self, endpoint: str) -> Any:
        url = f"{self.config.repository_api_url}/{endpoint}"
        response = await self._get(url, api=True)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteSourceError(f"Invalid JSON from {url}: {e}") from e

    # ========================================================================
    # Revision pinning
    # ========================================================================

    async def pinned_revision(self, force_refresh: bool = False) -> str:
        """
        Revision all listings and downloads of this source refer to.

        Discovery costs several round trips, so the result is cached until
        ``force_refresh`` is passed.
        """
        return await self._pinned.get(self._discover_revision, force_refresh=force_refresh)

    async def _discover_revision(self) -> str:
        tags = await self._get_json("tags?per_page=100")
        if tags is None:
            raise RemoteSourceError(f"Repository {self.config.repository} not found")
        if not isinstance(tags, list):
            raise RemoteSourceError("Unexpected tag list format")

        for tag in tags:
            name = tag.get("name", "")
            if tag_version(name) == self.config.supported_version:
                sha = tag["commit"]["sha"]
                logger.info(f"Pinned catalog to tag {name} ({sha})")
                return sha

        branch = self.config.tracked_branch
        commit = await self._get_json(f"commits/{branch}")
        if not commit or "sha" not in commit:
            raise RemoteSourceError(f"Branch {branch} not found in {self.config.repository}")
        logger.info(
            f"No tag for schema version {self.config.supported_version}; "
            f"pinned catalog to {branch} ({commit['sha']})"
        )
        return commit["sha"]

    # ========================================================================
    # Listing
    # ========================================================================

    async def _catalog_tree_sha(self, revision: str) -> str:
        tree_sha = revision
        for segment in self.config.catalog_dir.strip("/").split("/"):
            tree = await self._get_json(f"git/trees/{tree_sha}")
            if tree is None:
                raise RemoteSourceError(f"Tree {tree_sha} not found")
            matches = [e for e in tree.get("tree", []) if e.get("path") == segment and e.get("type") == "tree"]
            if not matches:
                raise RemoteSourceError(f"Catalog directory {self.config.catalog_dir} not found at {revision}")
            tree_sha = matches[0]["sha"]
        return tree_sha

    async def list_documents(self) -> List[RemoteDocument]:
        """
        Every file of the catalog directory at the pinned revision.

        Raises ListingTruncatedError when the remote cuts the recursive listing
        short; callers then have to fetch documents one by one.
        """
        revision = await self.pinned_revision()
        catalog_sha = await self._catalog_tree_sha(revision)

        listing = await self._get_json(f"git/trees/{catalog_sha}?recursive=1")
        if listing is None:
            raise RemoteSourceError(f"Tree {catalog_sha} not found")
        if listing.get("truncated"):
            raise ListingTruncatedError(
                "The catalog listing was truncated by the remote. Fetch documents individually instead."
            )

        documents = [
            RemoteDocument(path=e["path"], content_hash=e["sha"])
            for e in listing.get("tree", [])
            # Directories and submodules are not documents
            if e.get("type") == "blob"
        ]
        logger.info(f"Listed {len(documents)} catalog files at {revision}")
        return documents

    # ========================================================================
    # Documents
    # ========================================================================

    async def fetch_document_with_hash(
        self,
        path: str,
        expected_hash: Optional[str] = None,
    ) -> Optional[Tuple[Any, str]]:
        """Download one document and return it with its blob hash, or None if missing."""
        if not path.endswith(".json"):
            path = f"{path}.json"

        revision = await self.pinned_revision()
        catalog_dir = self.config.catalog_dir.strip("/")
        url = f"{self.config.repository_raw_url}/{revision}/{catalog_dir}/{path}"

        response = await self._get(url, api=False)
        if response is None:
            logger.debug(f"Catalog document {path} not found at {revision}")
            return None

        content = response.content
        actual_hash = git_blob_sha(content)
        if expected_hash and self.config.verify_content_hash and actual_hash != expected_hash:
            logger.error(f"Content hash mismatch for {path}")
            raise ContentHashMismatchError(
                f"Content hash mismatch for {path}: expected {expected_hash}, got {actual_hash}"
            )

        try:
            document = json.loads(content)
        except ValueError as e:
            raise RemoteSourceError(f"Catalog document {path} is not valid JSON: {e}") from e
        return document, actual_hash

    async def fetch_document(self, path: str, expected_hash: Optional[str] = None) -> Any:
        """Download one document at the pinned revision, or None if it doesn't exist."""
        result = await self.fetch_document_with_hash(path, expected_hash)
        if result is None:
            return None
        return result[0]
