"""
Local index and synchronization engine for the Open Fixture Library catalog.

The package is responsible for:
* Keeping a key -> entry index of fixtures (aliases, inline documents, file references).
* Persisting documents and the index manifest under a data directory.
* Pinning a revision of the remote catalog and listing its documents.
* Downloading only the documents whose content hash changed.
"""

from fixturelibrary.core.config import LibraryConfig, load_config
from fixturelibrary.domain.errors import (
    ContentHashMismatchError,
    CyclicAliasError,
    DanglingAliasError,
    FixtureLibraryError,
    InvalidKeyError,
    KeyConflictError,
    ListingTruncatedError,
    ManifestCorruptError,
    MissingFileError,
    RemoteSourceError,
    StorageError,
    TransportError,
    ValidationFailed,
)
from fixturelibrary.domain.fixture_index import FixtureIndex, key_namespace
from fixturelibrary.domain.library import FixtureLibrary
from fixturelibrary.domain.models import (
    AliasEntry,
    FileRefEntry,
    InlineEntry,
    Namespace,
    NamespacedKey,
    RemoteDocument,
    RemoteRefEntry,
)
from fixturelibrary.services.github_source import GithubSource
from fixturelibrary.services.sync import SyncEngine
from fixturelibrary.services.validation import SchemaValidator
from fixturelibrary.storage.json_store_manager import JsonStoreManager
from fixturelibrary.storage.memory_store_manager import MemoryStoreManager

__version__ = "0.1.0"
