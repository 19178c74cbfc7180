"""Tests for configuration loading."""

import pytest

from log_ingest.config import Config, load_config
from log_ingest.exceptions import ConfigError

ENV_VARS = (
    "CONFIG_PATH", "STORAGE_DIR", "TMP_DIR", "CHUNK_SIZE_BYTES", "MAX_WORKERS",
    "BULK_BATCH_SIZE", "BULK_TIMEOUT_SECONDS", "BULK_TIMEOUT_PER_DOCUMENT_MS",
    "SERVER_HOST", "SERVER_PORT", "MAX_UPLOAD_MB", "RECORD_SESSIONS", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yml"))
        assert config == Config()
        assert config.chunk_size_bytes == 32 * 1024 * 1024
        assert config.bulk_batch_size == 10000
        assert config.bulk_timeout_seconds == 30.0

    def test_workers_default_bounded(self):
        assert 1 <= Config().workers <= 4
        assert Config(max_workers=7).workers == 7


class TestYaml:
    def test_ingest_section(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(
            "ingest:\n"
            "  storage_dir: /var/lib/ingest\n"
            "  max_workers: 2\n"
            "  bulk_timeout_seconds: 5\n"
            "  record_sessions: false\n"
        )
        config = load_config(str(path))
        assert config.storage_dir == "/var/lib/ingest"
        assert config.max_workers == 2
        assert config.bulk_timeout_seconds == 5.0
        assert config.record_sessions is False

    def test_flat_document(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("server_port: 8080\n")
        assert load_config(str(path)).server_port == 8080

    def test_config_path_env(self, tmp_path, monkeypatch):
        path = tmp_path / "alt.yml"
        path.write_text("ingest:\n  log_level: DEBUG\n")
        monkeypatch.setenv("CONFIG_PATH", str(path))
        assert load_config().log_level == "DEBUG"

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("ingest:\n  colour: blue\n")
        with pytest.raises(ConfigError, match="colour"):
            load_config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("ingest: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(str(path))


class TestEnvOverrides:
    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yml"
        path.write_text("ingest:\n  bulk_batch_size: 500\n")
        monkeypatch.setenv("BULK_BATCH_SIZE", "250")
        monkeypatch.setenv("RECORD_SESSIONS", "no")
        monkeypatch.setenv("TMP_DIR", "/scratch")
        config = load_config(str(path))
        assert config.bulk_batch_size == 250
        assert config.record_sessions is False
        assert config.tmp_dir == "/scratch"

    def test_bad_number(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE_BYTES", "lots")
        with pytest.raises(ConfigError, match="chunk_size_bytes"):
            load_config(str(tmp_path / "absent.yml"))


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"chunk_size_bytes": 0},
        {"max_workers": -1},
        {"bulk_batch_size": 0},
        {"bulk_timeout_seconds": 0},
        {"server_port": 70000},
    ])
    def test_rejects(self, kwargs):
        with pytest.raises(ConfigError):
            Config(**kwargs).validate()
