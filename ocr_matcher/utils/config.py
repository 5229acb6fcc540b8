"""Configuration management for the OCR matcher.

Loads and validates YAML configuration with sensible defaults for
OCR backends, the AI comparison service, storage, uploads, and the
document quality gate.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class OCRConfig(BaseModel):
    """Configuration for text extraction backends."""

    backend: str = "tesseract"
    tesseract_cmd: str | None = None
    default_lang: str = "spa+eng"
    psm: int = 6
    pdf_dpi: int = 300
    binarize: bool = True
    normalize_text: bool = True
    remote_url: str = "https://api.mistral.ai/v1"
    remote_model: str = "mistral-ocr-latest"
    api_key_env: str = "MISTRAL_API_KEY"
    timeout_s: float = 120.0


class ComparisonConfig(BaseModel):
    """Configuration for the LLM-backed document comparison."""

    primary_model: str = "gpt-4o"
    fallback_model: str = "gpt-4o-mini"
    use_fallback: bool = True
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str | None = None
    timeout_s: float = 180.0
    temperature: float = 0.1


class StorageConfig(BaseModel):
    """Configuration for the comparison result store."""

    database_url: str = "sqlite:///data/ocr_matcher.db"
    echo: bool = False


class UploadConfig(BaseModel):
    """Configuration for uploaded file handling."""

    temp_dir: str = "/tmp/ocr-matcher-uploads"
    max_file_size_mb: int = 10
    max_files_per_role: int = 10
    allowed_content_types: list[str] = Field(
        default_factory=lambda: [
            "image/png",
            "image/jpeg",
            "image/tiff",
            "application/pdf",
            "application/octet-stream",
        ]
    )


class QualityGateConfig(BaseModel):
    """Thresholds for the product document quality gate."""

    enabled: bool = True
    min_product_lines: int = 3
    repetition_limit: float = 0.45
    pass_score: int = 5


class ServerConfig(BaseModel):
    """Bind address for the API server."""

    host: str = "0.0.0.0"
    port: int = 8000


class AppConfig(BaseModel):
    """Top-level application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    uploads: UploadConfig = Field(default_factory=UploadConfig)
    quality_gate: QualityGateConfig = Field(default_factory=QualityGateConfig)
    log_level: str = "INFO"


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
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()


def read_api_key(env_var: str) -> str:
    """Read an API key from the named environment variable.

    Returns an empty string (and logs a warning) when the variable is unset.
    """
    key = os.environ.get(env_var, "")
    if not key:
        logger.warning("%s environment variable is not set", env_var)
    return key
