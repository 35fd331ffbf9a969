"""
Pydantic models for the fixture library.

This module defines the data shared by the index, the store and the sync engine:
- Index entries (alias, inline document, file reference, remote reference)
- Namespaced keys
- Remote listing entries
- Validator diagnostics

Entries serialize to the manifest with camelCase keys, e.g. ``{"aliasOf": ...}``
or ``{"path": ..., "revisionHash": ...}``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


KEY_SEPARATOR = "/"


class Namespace(str, Enum):
    """Logical namespaces a key can live in."""

    OFL = "ofl"
    CUSTOM = "custom"


class NamespacedKey(BaseModel):
    """
    A parsed key.

    Catalog keys live in the ``ofl`` namespace and keep their
    ``manufacturer/fixture`` form as the name. Local documents live in the
    ``custom`` namespace and always carry the ``custom/`` prefix in the
    canonical key.
    """

    model_config = ConfigDict(frozen=True)

    namespace: Namespace
    name: str

    @property
    def key(self) -> str:
        """Canonical key as stored in the index."""
        if self.namespace is Namespace.CUSTOM:
            return f"{Namespace.CUSTOM.value}{KEY_SEPARATOR}{self.name}"
        return self.name

    @property
    def relative_path(self) -> str:
        """Logical store path, namespace first."""
        return f"{self.namespace.value}{KEY_SEPARATOR}{self.name}.json"

    @property
    def catalog_path(self) -> str:
        """Path of the document inside the remote catalog directory."""
        return f"{self.name}.json"


# ---------------------------------------------------------------------------
# Index entries
# ---------------------------------------------------------------------------


class AliasEntry(BaseModel):
    """Indirection to another key."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    alias_of: str = Field(
        alias="aliasOf",
        description="Key this entry points to.",
    )


class InlineEntry(BaseModel):
    """Document body held directly in the index."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    document: Any = Field(
        description="The fixture document itself.",
    )


class FileRefEntry(BaseModel):
    """Document persisted as a file under the store root."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    path: str = Field(
        description="Logical path of the file, starting with the namespace (e.g. 'ofl/cameo/flat-pro-18.json').",
    )
    revision_hash: Optional[str] = Field(
        default=None,
        alias="revisionHash",
        description="Last known remote content hash. Absent for local documents.",
    )


class RemoteRefEntry(BaseModel):
    """A remote document known by its content hash but not downloaded yet."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    revision_hash: str = Field(
        alias="revisionHash",
        description="Remote content hash recorded by a reference-only sync.",
    )


Entry = Union[AliasEntry, InlineEntry, FileRefEntry, RemoteRefEntry]


def entry_from_manifest(raw: Dict[str, Any]) -> Entry:
    """
    Build an entry from its manifest form.

    Accepts the legacy ``sha`` and ``fixture`` keys written by older index files.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Index entry must be an object, got {type(raw).__name__}")

    data = dict(raw)
    # Migration: legacy index files used "sha"/"fixture".
    if "revisionHash" not in data and "sha" in data:
        data["revisionHash"] = data.pop("sha")
    if "document" not in data and "fixture" in data:
        data["document"] = data.pop("fixture")
    data.pop("url", None)
    # Legacy file references stored the bare key, relative to the data dir.
    if isinstance(data.get("path"), str) and not data["path"].endswith(".json"):
        data["path"] = f"{data['path']}.json"
    if data.get("revisionHash") == "":
        data.pop("revisionHash")

    if "aliasOf" in data:
        return AliasEntry(alias_of=data["aliasOf"])
    if "document" in data:
        return InlineEntry.model_validate(data)
    if "path" in data:
        return FileRefEntry.model_validate(data)
    if "revisionHash" in data:
        return RemoteRefEntry.model_validate(data)
    raise ValueError(f"Unrecognized index entry: {sorted(raw)}")


def entry_to_manifest(entry: Entry) -> Dict[str, Any]:
    """Serialize an entry to its manifest form."""
    return entry.model_dump(mode="json", by_alias=True, exclude_none=True)


def revision_hash_of(entry: Optional[Entry]) -> Optional[str]:
    """Recorded remote hash of an entry, if it carries one."""
    if isinstance(entry, (FileRefEntry, RemoteRefEntry)):
        return entry.revision_hash
    return None


# ---------------------------------------------------------------------------
# Remote listing
# ---------------------------------------------------------------------------


class RemoteDocument(BaseModel):
    """One file of the remote catalog at the pinned revision."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(
        description="Catalog-relative path, including the '.json' suffix.",
    )
    content_hash: str = Field(
        description="Git blob SHA-1 of the file content.",
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class Diagnostic(BaseModel):
    """A single schema violation."""

    path: str = Field(default="", description="JSON pointer-like path of the offending value.")
    message: str
    keyword: Optional[str] = Field(default=None, description="Schema keyword that failed (e.g. 'required').")


class ValidationResult(BaseModel):
    valid: bool
    errors: List[Diagnostic] = Field(default_factory=list)
