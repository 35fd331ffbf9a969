"""
In-memory fixture index.

The index maps canonical keys to entries and is the single source of truth for
what the library knows about a key. It performs no I/O; the stores in
``fixturelibrary.storage`` wrap it with file-backed resolution.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from fixturelibrary.domain.errors import (
    CyclicAliasError,
    DanglingAliasError,
    InvalidKeyError,
    KeyConflictError,
)
from fixturelibrary.domain.models import (
    KEY_SEPARATOR,
    AliasEntry,
    Entry,
    Namespace,
    NamespacedKey,
    entry_from_manifest,
    entry_to_manifest,
)

logger = logging.getLogger(__name__)


def key_namespace(raw_key: str) -> NamespacedKey:
    """
    Parse a raw key into its namespace and name.

    ``"custom/foo"`` and ``"ofl/foo"`` carry an explicit namespace prefix.
    ``"manufacturer/fixture"`` and ``"foo"`` are catalog keys. Any key with more
    than one separator or an empty segment is rejected.
    """
    if not isinstance(raw_key, str) or not raw_key:
        raise InvalidKeyError("Keys must be non-empty strings")

    parts = raw_key.split(KEY_SEPARATOR)
    if len(parts) > 2:
        raise InvalidKeyError(f"Key {raw_key!r} uses the separator outside of a namespace prefix")
    if any(not part for part in parts):
        raise InvalidKeyError(f"Key {raw_key!r} has an empty segment")
    if any(part in (".", "..") or "\\" in part for part in parts):
        raise InvalidKeyError(f"Key {raw_key!r} contains a relative path segment")

    if len(parts) == 2 and parts[0] in (Namespace.CUSTOM.value, Namespace.OFL.value):
        return NamespacedKey(namespace=Namespace(parts[0]), name=parts[1])
    return NamespacedKey(namespace=Namespace.OFL, name=raw_key)


def canonical_key(raw_key: str) -> str:
    return key_namespace(raw_key).key


class FixtureIndex:
    """Mapping of canonical keys to index entries."""

    def __init__(self, entries: Optional[Dict[str, Entry]] = None):
        self._entries: Dict[str, Entry] = {}
        for key, entry in (entries or {}).items():
            self._entries[canonical_key(key)] = entry

    key_namespace = staticmethod(key_namespace)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def items(self) -> List[Tuple[str, Entry]]:
        return list(self._entries.items())

    def has(self, key: str) -> bool:
        """True if the key is present, alias or not."""
        return canonical_key(key) in self._entries

    def entry(self, key: str) -> Optional[Entry]:
        """Raw entry for a key, without following aliases."""
        return self._entries.get(canonical_key(key))

    def resolve_key(self, key: str) -> Optional[str]:
        """
        Follow aliases from ``key`` to the terminal key.

        Returns None when the chain ends at a key that is not in the index.
        Raises CyclicAliasError when a key is visited twice.
        """
        current = canonical_key(key)
        visited: List[str] = []
        while True:
            if current in visited:
                raise CyclicAliasError(visited + [current])
            visited.append(current)

            entry = self._entries.get(current)
            if entry is None:
                return None
            if not isinstance(entry, AliasEntry):
                return current
            current = canonical_key(entry.alias_of)

    def get(self, key: str) -> Optional[Entry]:
        """Terminal (non-alias) entry for a key, or None."""
        terminal = self.resolve_key(key)
        if terminal is None:
            return None
        return self._entries[terminal]

    def set(self, key: str, entry: Entry, override: bool = False) -> None:
        """
        Create or replace the entry for ``key``.

        Aliases must point at an existing key, whatever ``override`` says.
        Existing keys are only replaced when ``override`` is True.
        """
        canonical = canonical_key(key)
        if isinstance(entry, AliasEntry):
            target = canonical_key(entry.alias_of)
            if target not in self._entries:
                raise DanglingAliasError(f"Alias target {entry.alias_of!r} does not exist in the index")
            entry = AliasEntry(alias_of=target)

        if not override and canonical in self._entries:
            raise KeyConflictError(f"Key {canonical!r} already exists in the index")

        self._entries[canonical] = entry

    def set_alias(self, key: str, target_key: str, override: bool = False) -> None:
        self.set(key, AliasEntry(alias_of=target_key), override=override)

    def clear(self) -> None:
        self._entries.clear()

    def to_manifest(self) -> Dict[str, Dict[str, Any]]:
        return {key: entry_to_manifest(entry) for key, entry in sorted(self._entries.items())}

    @classmethod
    def from_manifest(cls, data: Dict[str, Any]) -> "FixtureIndex":
        """
        Build an index from a manifest object.

        Aliases are loaded as-is; a manifest written by an older version may
        contain dangling aliases, which simply resolve to None.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Manifest must be an object, got {type(data).__name__}")
        entries: Dict[str, Entry] = {}
        for key, raw in data.items():
            try:
                entries[key] = entry_from_manifest(raw)
            except ValueError as e:
                # e.g. web-only {"url": ...} items from older index files
                logger.warning(f"Skipping index entry {key!r}: {e}")
        return cls(entries)
