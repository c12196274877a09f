"""Configuration management for the vehicle document recognition service.

Loads and validates YAML configuration with sensible defaults for
preprocessing, the remote recognition engine, and upload handling.
Engine credentials may be overridden from the environment.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_CREDENTIAL_ENV_VARS = {
    "app_id": "BAIDU_OCR_APP_ID",
    "api_key": "BAIDU_OCR_API_KEY",
    "secret_key": "BAIDU_OCR_SECRET_KEY",
}


class PreprocessingConfig(BaseModel):
    """Configuration for the image enhancement step."""

    max_dimension: int = 2000
    jpeg_quality: int = 90
    sharpen_enabled: bool = True
    normalize_enabled: bool = True
    output_suffix: str = "_processed"


class EngineConfig(BaseModel):
    """Configuration for the remote recognition engine client."""

    app_id: str = ""
    api_key: str = ""
    secret_key: str = ""
    base_url: str = "https://aip.baidubce.com/rest/2.0/ocr/v1"
    token_url: str = "https://aip.baidubce.com/oauth/2.0/token"
    timeout_seconds: float = 10.0
    language_type: str = "CHN_ENG"


class UploadConfig(BaseModel):
    """Limits applied to uploaded images before recognition."""

    max_file_size: int = 5 * 1024 * 1024
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/png", "image/jpg"]
    )
    upload_dir: str = "./uploads"


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    log_level: str = "INFO"


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    """Replace engine credentials with values from the environment, if set."""
    overrides = {
        field: os.environ[var]
        for field, var in _CREDENTIAL_ENV_VARS.items()
        if os.environ.get(var)
    }
    if not overrides:
        return config
    logger.debug("Credentials overridden from environment: %s", sorted(overrides))
    engine = config.engine.model_copy(update=overrides)
    return config.model_copy(update={"engine": engine})


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return _apply_env_overrides(AppConfig(**raw))

    logger.info("No config file found at %s, using defaults", path)
    return _apply_env_overrides(AppConfig())
