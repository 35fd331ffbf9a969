"""
Error taxonomy for the fixture library.

Integrity errors (invalid keys, dangling or cyclic aliases, key conflicts) are
contract violations and always reach the caller. Storage and remote errors are
raised by the store and the remote source, and the sync engine and library
decide whether to degrade or propagate them.
"""
from __future__ import annotations

from typing import List, Optional


class FixtureLibraryError(Exception):
    """Base class for all fixture library errors."""


# ---------------------------------------------------------------------------
# Index integrity
# ---------------------------------------------------------------------------


class InvalidKeyError(FixtureLibraryError, ValueError):
    """A key is empty or uses the separator outside of a namespace prefix."""


class DanglingAliasError(FixtureLibraryError):
    """An alias was created for a target key that is not in the index."""


class CyclicAliasError(FixtureLibraryError):
    """Alias resolution visited the same key twice."""

    def __init__(self, chain: List[str]):
        self.chain = chain
        super().__init__(f"Alias cycle detected: {' -> '.join(chain)}")


class KeyConflictError(FixtureLibraryError):
    """A key already exists and override was not requested."""


# ---------------------------------------------------------------------------
# Local storage
# ---------------------------------------------------------------------------


class StorageError(FixtureLibraryError):
    """Reading or writing the local store failed."""


class MissingFileError(StorageError):
    """A file referenced by the index does not exist in the store."""


class ManifestCorruptError(StorageError):
    """The manifest file exists but could not be parsed."""


# ---------------------------------------------------------------------------
# Remote source
# ---------------------------------------------------------------------------


class RemoteSourceError(FixtureLibraryError):
    """The remote catalog could not be read."""


class ListingTruncatedError(RemoteSourceError):
    """The recursive tree listing was truncated by the remote."""


class TransportError(RemoteSourceError):
    """A request failed with a non-404 status or never got a response."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        self.status = status
        self.url = url
        super().__init__(message)


class ContentHashMismatchError(RemoteSourceError):
    """A downloaded document does not match the hash from the listing."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationFailed(FixtureLibraryError):
    """A document was rejected by the schema validator."""

    def __init__(self, diagnostics):
        self.diagnostics = list(diagnostics)
        summary = "; ".join(f"{d.path or '<root>'}: {d.message}" for d in self.diagnostics[:5])
        super().__init__(f"Document failed schema validation: {summary}")
