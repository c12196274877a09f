"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from src.utils.config import (
    AppConfig,
    EngineConfig,
    PreprocessingConfig,
    UploadConfig,
    load_config,
)


@pytest.fixture(autouse=True)
def _clear_credential_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("BAIDU_OCR_APP_ID", "BAIDU_OCR_API_KEY", "BAIDU_OCR_SECRET_KEY"):
        monkeypatch.delenv(var, raising=False)


class TestPreprocessingConfig:
    """Tests for PreprocessingConfig defaults and overrides."""

    def test_defaults(self) -> None:
        cfg = PreprocessingConfig()
        assert cfg.max_dimension == 2000
        assert cfg.jpeg_quality == 90
        assert cfg.sharpen_enabled is True
        assert cfg.normalize_enabled is True
        assert cfg.output_suffix == "_processed"

    def test_override(self) -> None:
        cfg = PreprocessingConfig(sharpen_enabled=False, max_dimension=800)
        assert cfg.sharpen_enabled is False
        assert cfg.max_dimension == 800


class TestEngineConfig:
    """Tests for EngineConfig defaults."""

    def test_defaults(self) -> None:
        cfg = EngineConfig()
        assert cfg.timeout_seconds == 10.0
        assert cfg.language_type == "CHN_ENG"
        assert cfg.api_key == ""
        assert cfg.base_url.startswith("https://aip.baidubce.com")


class TestUploadConfig:
    """Tests for UploadConfig defaults."""

    def test_defaults(self) -> None:
        cfg = UploadConfig()
        assert cfg.max_file_size == 5 * 1024 * 1024
        assert cfg.allowed_mime_types == ["image/jpeg", "image/png", "image/jpg"]

    def test_default_lists_are_independent(self) -> None:
        first = UploadConfig()
        first.allowed_mime_types.append("image/gif")
        assert "image/gif" not in UploadConfig().allowed_mime_types


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.preprocessing, PreprocessingConfig)
        assert isinstance(cfg.engine, EngineConfig)
        assert isinstance(cfg.upload, UploadConfig)
        assert cfg.log_level == "INFO"


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_load_default_config(self) -> None:
        cfg = load_config(Path(__file__).parent.parent / "configs" / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.engine.timeout_seconds == 10.0
        assert cfg.upload.max_file_size == 5242880

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert isinstance(cfg, AppConfig)
        assert cfg.preprocessing.jpeg_quality == 90

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "preprocessing": {"sharpen_enabled": False},
            "engine": {"timeout_seconds": 3.5, "api_key": "from-file"},
            "log_level": "DEBUG",
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.preprocessing.sharpen_enabled is False
        assert cfg.engine.timeout_seconds == 3.5
        assert cfg.engine.api_key == "from-file"
        assert cfg.log_level == "DEBUG"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, AppConfig)

    def test_env_overrides_credentials(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "engine:\n  api_key: from-file\n  secret_key: file-secret\n"
        )
        monkeypatch.setenv("BAIDU_OCR_API_KEY", "from-env")

        cfg = load_config(config_file)
        assert cfg.engine.api_key == "from-env"
        assert cfg.engine.secret_key == "file-secret"

    def test_env_overrides_without_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BAIDU_OCR_APP_ID", "12345")
        cfg = load_config(Path("/nonexistent/config.yaml"))
        assert cfg.engine.app_id == "12345"
