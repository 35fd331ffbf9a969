from pathlib import Path
from typing import Optional
import logging
import os

from fixturelibrary.core.config import LibraryConfig, load_config
from fixturelibrary.data.sync_status import SyncStatusStore
from fixturelibrary.domain.library import FixtureLibrary
from fixturelibrary.services.github_source import GithubSource
from fixturelibrary.services.validation import SchemaValidator
from fixturelibrary.storage.json_store_manager import JsonStoreManager
from fixturelibrary.storage.store_manager import StoreManager

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "FIXTURELIBRARY_DATA_DIR"
_DEFAULT_DATA_DIR = Path(".fixturelibrary")

_config: Optional[LibraryConfig] = None
_store: Optional[StoreManager] = None
_source: Optional[GithubSource] = None
_library: Optional[FixtureLibrary] = None

def get_data_dir() -> Path:
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        d = Path(env_path).expanduser()
    else:
        d = _DEFAULT_DATA_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d

def get_config() -> LibraryConfig:
    global _config
    if _config is None:
        _config = load_config(get_data_dir())
    return _config

def get_store() -> StoreManager:
    global _store
    if _store is None:
        _store = JsonStoreManager(get_data_dir(), get_config())
    return _store

def get_source() -> GithubSource:
    global _source
    if _source is None:
        _source = GithubSource(get_config())
    return _source

def get_validator() -> Optional[SchemaValidator]:
    config = get_config()
    if not config.schema_path:
        return None
    try:
        return SchemaValidator.from_file(config.schema_path)
    except Exception as e:
        logger.error(f"Failed to load fixture schema {config.schema_path}: {e}")
        raise

def get_library() -> FixtureLibrary:
    global _library
    if _library is None:
        _library = FixtureLibrary(
            get_store(),
            get_source(),
            validator=get_validator(),
            config=get_config(),
            status_store=SyncStatusStore(get_data_dir()),
        )
    return _library

def reset_dependencies() -> None:
    """Forget every memoized instance (e.g. after changing the data dir)."""
    global _config, _store, _source, _library
    _config = None
    _store = None
    _source = None
    _library = None
