"""
Library configuration.

Persisted at: <DATA_DIR>/library.json
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

from fixturelibrary.domain.models import Namespace

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "library.json"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"


class LibraryConfig(BaseModel):
    """
    Settings for the local store, the GitHub catalog source and the sync engine.

    Missing fields fall back to defaults, so an older library.json keeps working
    after new settings are added.
    """

    # Local store
    manifest_name: str = Field(
        default="index.json",
        description="File name of the manifest inside the data directory.",
    )
    namespace_dirs: Dict[str, str] = Field(
        default_factory=lambda: {Namespace.OFL.value: "ofl", Namespace.CUSTOM.value: "custom"},
        description="Physical subdirectory name for each key namespace.",
    )

    # Remote catalog
    repository: str = Field(
        default="OpenLightingProject/open-fixture-library",
        description="GitHub repository holding the catalog, as 'owner/name'.",
    )
    api_base_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API.",
    )
    raw_base_url: str = Field(
        default="https://raw.githubusercontent.com",
        description="Base URL for raw file downloads.",
    )
    catalog_dir: str = Field(
        default="fixtures",
        description="Directory of the repository that contains the catalog documents.",
    )
    tracked_branch: str = Field(
        default="master",
        description="Branch used when no tag matches the supported schema version.",
    )
    supported_version: str = Field(
        default="12.3.0",
        description="Catalog schema version this library understands; a tag with this version is pinned.",
    )
    github_token: Optional[str] = Field(
        default=None,
        description="Optional token sent to the GitHub API to raise rate limits.",
    )

    # Requests
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for a single HTTP request.",
    )
    request_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per request when the connection fails.",
    )
    retry_backoff: float = Field(
        default=1.0,
        ge=0,
        description="Seconds to wait per attempt number between retries.",
    )

    # Sync and fallback behaviour
    web_access: bool = Field(
        default=True,
        description="If False, the library never contacts the remote catalog.",
    )
    max_concurrent_downloads: int = Field(
        default=8,
        ge=1,
        description="Upper bound on documents fetched at the same time during a full sync.",
    )
    verify_content_hash: bool = Field(
        default=True,
        description="Check downloaded documents against the content hash from the listing.",
    )
    validate_remote: bool = Field(
        default=True,
        description="Validate documents fetched on a cache miss before storing them.",
    )
    persist_unvalidated: bool = Field(
        default=False,
        description="Store documents fetched on a cache miss even when validate_remote is off.",
    )
    schema_path: Optional[str] = Field(
        default=None,
        description="Path to the fixture JSON schema. Without it every document is accepted.",
    )

    @property
    def repository_api_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/repos/{self.repository}"

    @property
    def repository_raw_url(self) -> str:
        return f"{self.raw_base_url.rstrip('/')}/{self.repository}"

    def namespace_dir(self, namespace: Namespace) -> str:
        return self.namespace_dirs.get(namespace.value, namespace.value)


def load_config(data_dir: Path, persist: bool = True) -> LibraryConfig:
    """
    Load library.json from ``data_dir``, falling back to defaults for any
    missing field, and write it back so new fields are persisted.
    """
    path = data_dir / CONFIG_FILE_NAME
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            config = LibraryConfig(**raw)
        except Exception as e:
            # If parsing fails, fall back to defaults and overwrite file.
            logger.warning(f"Ignoring unreadable config {path}: {e}")
            config = LibraryConfig()
    else:
        config = LibraryConfig()

    token_from_env = False
    if config.github_token is None and os.environ.get(GITHUB_TOKEN_ENV_VAR):
        config.github_token = os.environ[GITHUB_TOKEN_ENV_VAR]
        token_from_env = True

    if persist:
        data_dir.mkdir(parents=True, exist_ok=True)
        # Tokens taken from the environment stay out of library.json.
        exclude = {"github_token"} if token_from_env else None
        path.write_text(config.model_dump_json(indent=2, exclude=exclude), encoding="utf-8")
    return config
