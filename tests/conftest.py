"""Test configuration and fixtures."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from fixturelibrary.core.config import LibraryConfig
from fixturelibrary.domain.errors import ListingTruncatedError
from fixturelibrary.domain.models import RemoteDocument
from fixturelibrary.services.validation import SchemaValidator
from fixturelibrary.storage.json_store_manager import JsonStoreManager


FIXTURE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["name", "categories", "modes"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "categories": {"type": "array", "items": {"type": "string"}},
        "modes": {"type": "array", "minItems": 1},
        "color": {"type": "string", "format": "color-hex"},
    },
}


def make_fixture(name: str) -> Dict[str, Any]:
    return {"name": name, "categories": ["Moving Head"], "modes": [{"name": "8ch", "channels": []}]}


class FakeSource:
    """Stands in for GithubSource; records every download."""

    def __init__(
        self,
        listing: Dict[str, str],
        documents: Optional[Dict[str, Any]] = None,
        truncated: bool = False,
        revision: str = "rev-1",
    ):
        self.listing = dict(listing)
        self.documents = dict(documents or {})
        self.truncated = truncated
        self.revision = revision
        self.fetched: List[str] = []
        self.listed = 0

    async def pinned_revision(self, force_refresh: bool = False) -> str:
        return self.revision

    async def list_documents(self) -> List[RemoteDocument]:
        self.listed += 1
        if self.truncated:
            raise ListingTruncatedError("listing truncated")
        return [RemoteDocument(path=path, content_hash=sha) for path, sha in self.listing.items()]

    async def fetch_document_with_hash(
        self, path: str, expected_hash: Optional[str] = None
    ) -> Optional[Tuple[Any, str]]:
        self.fetched.append(path)
        if path not in self.listing and path not in self.documents:
            return None
        document = self.documents.get(path, make_fixture(path[: -len(".json")]))
        return document, self.listing.get(path, "remote-hash")

    async def fetch_document(self, path: str, expected_hash: Optional[str] = None) -> Any:
        result = await self.fetch_document_with_hash(path, expected_hash)
        return None if result is None else result[0]


@pytest.fixture
def config() -> LibraryConfig:
    return LibraryConfig(retry_backoff=0, request_retries=1)


@pytest.fixture
def store(tmp_path, config) -> JsonStoreManager:
    return JsonStoreManager(tmp_path / "data", config)


@pytest.fixture
def validator() -> SchemaValidator:
    return SchemaValidator(FIXTURE_SCHEMA)


@pytest.fixture
def fixture_doc() -> Dict[str, Any]:
    return make_fixture("Auro Spot 300")
