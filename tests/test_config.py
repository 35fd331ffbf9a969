"""
Unit tests for fixturelibrary/core/config.py and fixturelibrary/core/dependencies.py
"""
import json

import pytest

from fixturelibrary.core import dependencies
from fixturelibrary.core.config import CONFIG_FILE_NAME, LibraryConfig, load_config
from fixturelibrary.domain.library import FixtureLibrary


@pytest.fixture
def clean_dependencies(tmp_path, monkeypatch):
    monkeypatch.setenv(dependencies.DATA_ROOT_ENV_VAR, str(tmp_path / "library"))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    dependencies.reset_dependencies()
    yield tmp_path / "library"
    dependencies.reset_dependencies()


def test_defaults_are_written(tmp_path, monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    config = load_config(tmp_path)

    assert config == LibraryConfig()
    written = json.loads((tmp_path / CONFIG_FILE_NAME).read_text(encoding="utf-8"))
    assert written["repository"] == "OpenLightingProject/open-fixture-library"
    assert written["manifest_name"] == "index.json"


def test_partial_config_keeps_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    (tmp_path / CONFIG_FILE_NAME).write_text(json.dumps({"web_access": False}), encoding="utf-8")

    config = load_config(tmp_path)

    assert config.web_access is False
    assert config.tracked_branch == "master"
    written = json.loads((tmp_path / CONFIG_FILE_NAME).read_text(encoding="utf-8"))
    assert written["web_access"] is False
    assert "max_concurrent_downloads" in written


def test_unreadable_config_falls_back_to_defaults(tmp_path, caplog):
    (tmp_path / CONFIG_FILE_NAME).write_text("{broken", encoding="utf-8")
    with caplog.at_level("WARNING"):
        config = load_config(tmp_path, persist=False)
    assert config.repository == LibraryConfig().repository
    assert "unreadable config" in caplog.text


def test_token_from_environment_is_not_persisted(tmp_path, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "from-env")

    config = load_config(tmp_path)

    assert config.github_token == "from-env"
    written = json.loads((tmp_path / CONFIG_FILE_NAME).read_text(encoding="utf-8"))
    assert "github_token" not in written


def test_repository_urls():
    config = LibraryConfig(repository="o/r", api_base_url="https://api.example/", raw_base_url="https://raw.example")
    assert config.repository_api_url == "https://api.example/repos/o/r"
    assert config.repository_raw_url == "https://raw.example/o/r"


def test_data_dir_from_environment(clean_dependencies):
    assert dependencies.get_data_dir() == clean_dependencies
    assert clean_dependencies.is_dir()


def test_get_library_wires_shared_instances(clean_dependencies):
    library = dependencies.get_library()

    assert isinstance(library, FixtureLibrary)
    assert dependencies.get_library() is library
    assert library.store is dependencies.get_store()
    assert library.source is dependencies.get_source()
    assert library.validator is None
    assert (clean_dependencies / CONFIG_FILE_NAME).exists()

    dependencies.reset_dependencies()
    assert dependencies.get_library() is not library


def test_schema_path_loads_validator(clean_dependencies):
    schema_path = clean_dependencies / "schema.json"
    clean_dependencies.mkdir(parents=True, exist_ok=True)
    schema_path.write_text(json.dumps({"type": "object"}), encoding="utf-8")
    (clean_dependencies / CONFIG_FILE_NAME).write_text(
        json.dumps({"schema_path": str(schema_path)}), encoding="utf-8"
    )

    validator = dependencies.get_validator()
    assert validator is not None
    assert validator.validate({}).valid
