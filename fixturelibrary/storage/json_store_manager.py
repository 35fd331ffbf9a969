from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os

from fixturelibrary.core.config import LibraryConfig
from fixturelibrary.domain.errors import (
    ManifestCorruptError,
    MissingFileError,
    StorageError,
)
from fixturelibrary.domain.fixture_index import FixtureIndex, key_namespace
from fixturelibrary.domain.models import FileRefEntry, KEY_SEPARATOR, Namespace
from fixturelibrary.storage.store_manager import StoreManager

logger = logging.getLogger(__name__)


class JsonStoreManager(StoreManager):
    """
    File-backed store.

    Layout::

        <data_dir>/index.json               manifest (whole index)
        <data_dir>/<ofl dir>/<name>.json    catalog documents
        <data_dir>/<custom dir>/<name>.json local documents

    Index entries keep logical paths ("ofl/...", "custom/..."); the mapping to
    physical directories comes from the config, so renaming a directory only
    needs a config change.
    """

    def __init__(self, data_dir: Path, config: Optional[LibraryConfig] = None):
        super().__init__()
        self._data_dir = Path(data_dir)
        self._config = config or LibraryConfig()
        self.manifest_path = self._data_dir / self._config.manifest_name

        # Ensure data directory exists
        for namespace in Namespace:
            (self._data_dir / self._config.namespace_dir(namespace)).mkdir(parents=True, exist_ok=True)

        self.load()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def load(self) -> None:
        self.load_error = None
        if not self.manifest_path.exists():
            self.index = FixtureIndex()
            return

        try:
            raw = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            self.index = FixtureIndex.from_manifest(raw)
        except Exception as e:
            # Startup never fails on a bad manifest; the next flush replaces it.
            self.load_error = ManifestCorruptError(f"Manifest {self.manifest_path} is unreadable: {e}")
            logger.warning(str(self.load_error))
            self.index = FixtureIndex()
        else:
            logger.debug(f"Loaded {len(self.index)} index entries from {self.manifest_path}")

    def physical_path(self, logical_path: str) -> Path:
        """Map a logical 'namespace/...' path to a file under the data directory."""
        head, sep, rest = logical_path.partition(KEY_SEPARATOR)
        if sep and head in {ns.value for ns in Namespace}:
            return self._data_dir / self._config.namespace_dir(Namespace(head)) / rest
        return self._data_dir / logical_path

    async def resolve(self, entry: FileRefEntry) -> Any:
        path = self.physical_path(entry.path)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError as e:
            raise MissingFileError(f"{path} doesn't exist") from e
        except OSError as e:
            logger.error(f"Failed to read {path}: {e}", exc_info=True)
            raise StorageError(f"Failed to read {path}: {e}") from e
        return json.loads(content)

    async def persist(self, key: str, document: Any) -> FileRefEntry:
        logical_path = key_namespace(key).relative_path
        path = self.physical_path(logical_path)
        await self._write_atomic(path, json.dumps(document, indent=2, ensure_ascii=False))
        return FileRefEntry(path=logical_path)

    async def flush(self) -> bool:
        content = json.dumps(self.index.to_manifest(), indent=2, sort_keys=True, ensure_ascii=False)
        try:
            await self._write_atomic(self.manifest_path, content + "\n")
        except StorageError as e:
            logger.error(f"Failed to write manifest: {e}")
            return False
        logger.debug(f"Wrote {len(self.index)} index entries to {self.manifest_path}")
        return True

    async def _write_atomic(self, path: Path, content: str) -> None:
        """Write to a temp file next to ``path`` and move it into place."""
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(content)
                await f.flush()
            await aiofiles.os.replace(tmp_path, path)
        except (OSError, ValueError) as e:
            # ValueError covers text that cannot be encoded (e.g. lone surrogates)
            tmp_path.unlink(missing_ok=True)
            logger.error(f"Failed to write {path}: {e}", exc_info=True)
            raise StorageError(f"Failed to write {path}: {e}") from e
