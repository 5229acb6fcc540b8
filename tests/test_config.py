"""Tests for configuration loading and validation."""

from pathlib import Path

import yaml

from ocr_matcher.utils.config import (
    AppConfig,
    ComparisonConfig,
    OCRConfig,
    QualityGateConfig,
    StorageConfig,
    UploadConfig,
    load_config,
    read_api_key,
)


class TestOCRConfig:
    """Tests for OCRConfig defaults and overrides."""

    def test_defaults(self) -> None:
        cfg = OCRConfig()
        assert cfg.backend == "tesseract"
        assert cfg.default_lang == "spa+eng"
        assert cfg.psm == 6
        assert cfg.pdf_dpi == 300
        assert cfg.tesseract_cmd is None
        assert cfg.api_key_env == "MISTRAL_API_KEY"

    def test_override(self) -> None:
        cfg = OCRConfig(backend="remote", timeout_s=5)
        assert cfg.backend == "remote"
        assert cfg.timeout_s == 5.0


class TestComparisonConfig:
    """Tests for ComparisonConfig defaults."""

    def test_defaults(self) -> None:
        cfg = ComparisonConfig()
        assert cfg.primary_model == "gpt-4o"
        assert cfg.fallback_model == "gpt-4o-mini"
        assert cfg.use_fallback is True
        assert cfg.base_url is None


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.ocr, OCRConfig)
        assert isinstance(cfg.comparison, ComparisonConfig)
        assert isinstance(cfg.storage, StorageConfig)
        assert isinstance(cfg.uploads, UploadConfig)
        assert isinstance(cfg.quality_gate, QualityGateConfig)
        assert cfg.log_level == "INFO"

    def test_upload_defaults(self) -> None:
        cfg = UploadConfig()
        assert cfg.max_file_size_mb == 10
        assert "application/pdf" in cfg.allowed_content_types

    def test_nested_override(self) -> None:
        cfg = AppConfig(
            quality_gate=QualityGateConfig(enabled=False),
            log_level="DEBUG",
        )
        assert cfg.quality_gate.enabled is False
        assert cfg.log_level == "DEBUG"


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_load_default_config(self, config_dir: Path) -> None:
        cfg = load_config(config_dir / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.ocr.default_lang == "spa+eng"
        assert cfg.comparison.primary_model == "gpt-4o"
        assert cfg.server.port == 8000

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert isinstance(cfg, AppConfig)
        assert cfg.storage.database_url == "sqlite:///data/ocr_matcher.db"

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "ocr": {"backend": "remote", "psm": 4},
            "storage": {"database_url": "sqlite://"},
            "log_level": "DEBUG",
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.ocr.backend == "remote"
        assert cfg.ocr.psm == 4
        assert cfg.storage.database_url == "sqlite://"
        assert cfg.log_level == "DEBUG"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, AppConfig)


class TestReadApiKey:
    """Tests for API key lookup."""

    def test_reads_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("OCR_MATCHER_TEST_KEY", "secret")
        assert read_api_key("OCR_MATCHER_TEST_KEY") == "secret"

    def test_missing_returns_empty(self, monkeypatch) -> None:
        monkeypatch.delenv("OCR_MATCHER_TEST_KEY", raising=False)
        assert read_api_key("OCR_MATCHER_TEST_KEY") == ""
