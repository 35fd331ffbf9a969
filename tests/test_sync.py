"""
Unit tests for fixturelibrary/services/sync.py
"""
import json

import pytest

from fixturelibrary.data.sync_status import SyncStatusStore
from fixturelibrary.domain.errors import ListingTruncatedError, TransportError
from fixturelibrary.domain.models import FileRefEntry, RemoteDocument, RemoteRefEntry
from fixturelibrary.services.sync import SyncEngine, listing_keys
from tests.conftest import FakeSource

pytestmark = pytest.mark.asyncio


class FlakySource(FakeSource):
    """Fails to download the given paths."""

    def __init__(self, listing, failing):
        super().__init__(listing)
        self.failing = set(failing)

    async def fetch_document_with_hash(self, path, expected_hash=None):
        if path in self.failing:
            self.fetched.append(path)
            raise TransportError(f"503 for {path}", status=503)
        return await super().fetch_document_with_hash(path, expected_hash)


def count_flushes(store, monkeypatch):
    calls = []
    original = store.flush

    async def counting_flush():
        calls.append(1)
        return await original()

    monkeypatch.setattr(store, "flush", counting_flush)
    return calls


async def test_listing_keys_skip_non_documents():
    listing = [
        RemoteDocument(path="manufacturers.json", content_hash="m"),
        RemoteDocument(path="README.md", content_hash="r"),
        RemoteDocument(path="cameo/auro-spot-300.json", content_hash="h1"),
        RemoteDocument(path="custom/thing.json", content_hash="h2"),
        RemoteDocument(path="a/b/c.json", content_hash="h3"),
    ]
    assert [key for key, _ in listing_keys(listing)] == ["cameo/auro-spot-300"]


async def test_refresh_listing_reports_only_changed_keys(store):
    store.index.set("a/b", RemoteRefEntry(revision_hash="h1"))
    source = FakeSource({"a/b.json": "h1", "c/d.json": "h2"})

    changed = await SyncEngine(store, source).refresh_listing()

    assert changed == {"c/d"}
    assert store.index.entry("c/d") == RemoteRefEntry(revision_hash="h2")
    assert source.fetched == []


async def test_second_refresh_is_a_no_op(store):
    source = FakeSource({"a/b.json": "h1", "c/d.json": "h2"})
    engine = SyncEngine(store, source)

    await engine.refresh_listing()
    first = store.manifest_path.read_bytes()

    assert await engine.refresh_listing() == set()
    assert store.manifest_path.read_bytes() == first


async def test_refresh_replaces_stale_file_reference(store, fixture_doc):
    await store.write("a/b", fixture_doc, revision_hash="h1")
    source = FakeSource({"a/b.json": "h2"})

    assert await SyncEngine(store, source).refresh_listing() == {"a/b"}
    assert store.index.entry("a/b") == RemoteRefEntry(revision_hash="h2")


async def test_download_all_from_empty_index(store):
    source = FakeSource({"a/b.json": "h1", "c/d.json": "h2", "manufacturers.json": "m"})

    changed = await SyncEngine(store, source).download_all()

    assert changed == {"a/b", "c/d"}
    assert sorted(source.fetched) == ["a/b.json", "c/d.json"]
    assert store.index.entry("a/b") == FileRefEntry(path="ofl/a/b.json", revision_hash="h1")
    assert store.index.entry("c/d") == FileRefEntry(path="ofl/c/d.json", revision_hash="h2")
    assert (await store.read("c/d"))["name"] == "c/d"


async def test_download_all_skips_up_to_date_documents(store):
    source = FakeSource({"a/b.json": "h1", "c/d.json": "h2"})
    engine = SyncEngine(store, source)
    await engine.download_all()
    source.fetched.clear()

    source.listing["c/d.json"] = "h3"
    assert await engine.download_all() == {"c/d"}
    assert source.fetched == ["c/d.json"]


async def test_download_after_refresh_fetches_references(store):
    source = FakeSource({"a/b.json": "h1"})
    engine = SyncEngine(store, source)
    await engine.refresh_listing()

    assert await engine.download_all() == {"a/b"}
    assert isinstance(store.index.entry("a/b"), FileRefEntry)


async def test_truncated_listing_changes_nothing(store):
    source = FakeSource({"a/b.json": "h1"}, truncated=True)
    engine = SyncEngine(store, source)

    with pytest.raises(ListingTruncatedError):
        await engine.download_all()
    with pytest.raises(ListingTruncatedError):
        await engine.refresh_listing()

    assert source.fetched == []
    assert len(store.index) == 0
    assert not store.manifest_path.exists()


async def test_manifest_is_flushed_once_per_run(store, monkeypatch):
    calls = count_flushes(store, monkeypatch)
    source = FakeSource({f"m/f{i}.json": f"h{i}" for i in range(10)})

    await SyncEngine(store, source, max_concurrent_downloads=3).download_all()
    assert len(calls) == 1

    source.listing = {f"m/f{i}.json": f"x{i}" for i in range(10)}
    await SyncEngine(store, source).refresh_listing()
    assert len(calls) == 2


async def test_failed_downloads_are_skipped_and_recorded(tmp_path, store):
    status_store = SyncStatusStore(tmp_path / "status")
    source = FlakySource({"a/b.json": "h1", "c/d.json": "h2"}, failing=["c/d.json"])

    changed = await SyncEngine(store, source, status_store=status_store).download_all()

    assert changed == {"a/b"}
    assert not store.index.has("c/d")
    status = status_store.get_status()
    assert status.mode == "download"
    assert status.revision == "rev-1"
    assert status.changed_count == 1
    assert status.failed_keys == ["c/d"]

    # The status survives a reload
    assert SyncStatusStore(tmp_path / "status").get_status().failed_keys == ["c/d"]


async def test_refresh_is_recorded(store):
    status_store = SyncStatusStore()
    source = FakeSource({"a/b.json": "h1"}, revision="rev-9")

    await SyncEngine(store, source, status_store=status_store).refresh_listing()

    status = status_store.get_status()
    assert status.mode == "refresh"
    assert status.revision == "rev-9"
    assert status.last_synced is not None


async def test_unstorable_document_does_not_abort_the_batch(tmp_path, store):
    status_store = SyncStatusStore(tmp_path / "status")
    source = FakeSource(
        {"a/b.json": "h1", "c/d.json": "h2"},
        documents={"c/d.json": json.loads('{"name": "\\ud800"}')},
    )

    changed = await SyncEngine(store, source, status_store=status_store).download_all()

    assert changed == {"a/b"}
    assert not store.index.has("c/d")
    assert status_store.get_status().failed_keys == ["c/d"]
    assert "a/b" in store.manifest_path.read_text(encoding="utf-8")


async def test_unexpected_store_errors_are_recorded(store, monkeypatch):
    source = FakeSource({"a/b.json": "h1", "c/d.json": "h2"})
    original_write = store.write

    async def exploding_write(key, *args, **kwargs):
        if key == "c/d":
            raise RuntimeError("boom")
        return await original_write(key, *args, **kwargs)

    monkeypatch.setattr(store, "write", exploding_write)

    assert await SyncEngine(store, source).download_all() == {"a/b"}
    assert store.manifest_path.exists()
