"""
Central configuration for the bulk purchase-order engine.

Covers locations and collaborator settings (webhook, backups, demo
extractor).  Pricing rules, category mappings and the batch tuning knobs
(batch size, delay, auto-approve threshold...) are operator records kept
as JSON in the config directory and loaded by pipeline.rule_store.RuleStore.

Settings priority (highest wins):
  1. config/pipeline_settings.json  (admin-editable, persisted)
  2. Environment variables
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "output"
DEFAULT_BACKUP_DIR = PROJECT_ROOT / "backups"

SETTINGS_FILE = "pipeline_settings.json"


def _env_path(name: str, default: Path) -> Path:
    return Path(os.getenv(name, str(default)))


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _optional_str(value) -> Optional[str]:
    return None if value is None else str(value)


def _env_flag(name: str) -> bool:
    return _flag(os.getenv(name, "false"))


@dataclass
class Config:
    # --- Locations ---
    config_dir: Path = field(default_factory=lambda: _env_path("CONFIG_DIR", DEFAULT_CONFIG_DIR))
    output_dir: Path = field(default_factory=lambda: _env_path("OUTPUT_DIR", DEFAULT_OUTPUT_DIR))
    db_path: Path = field(
        default_factory=lambda: _env_path("DB_PATH", DEFAULT_OUTPUT_DIR / "pipeline.db")
    )

    # --- Extraction (demo mode) ---
    # Seconds between progress steps of SimulatedExtractor
    simulated_tick_seconds: float = field(
        default_factory=lambda: float(os.getenv("SIMULATED_TICK_SECONDS", "0.2"))
    )

    # --- Category mapping ---
    category_fuzzy_threshold: int = 85    # Minimum rapidfuzz score (0-100)

    # --- Webhook sink ---
    webhook_export_enabled: bool = field(default_factory=lambda: _env_flag("WEBHOOK_EXPORT_ENABLED"))
    webhook_export_url: Optional[str] = field(default_factory=lambda: os.getenv("WEBHOOK_EXPORT_URL"))
    webhook_export_method: str = field(default_factory=lambda: os.getenv("WEBHOOK_EXPORT_METHOD", "POST"))
    webhook_export_headers_json: Optional[str] = field(
        default_factory=lambda: os.getenv("WEBHOOK_EXPORT_HEADERS")
    )
    webhook_export_template: str = field(
        default_factory=lambda: os.getenv("WEBHOOK_EXPORT_TEMPLATE", "order_webhook_template.json.j2")
    )

    # --- Backups ---
    backup_dir: Path = field(default_factory=lambda: _env_path("BACKUP_DIR", DEFAULT_BACKUP_DIR))
    backup_retention_count: int = field(
        default_factory=lambda: int(os.getenv("BACKUP_RETENTION_COUNT", "7"))
    )

    # Keys pipeline_settings.json may override, with their types
    _OVERRIDABLE = {
        "simulated_tick_seconds":      float,
        "category_fuzzy_threshold":    int,
        "webhook_export_enabled":      _flag,
        "webhook_export_url":          _optional_str,
        "webhook_export_method":       str,
        "webhook_export_headers_json": _optional_str,
        "webhook_export_template":     str,
        "backup_retention_count":      int,
    }

    def __post_init__(self) -> None:
        self.config_dir = Path(self.config_dir)
        self.load_overrides()

    def load_overrides(self) -> None:
        """Apply runtime-tunable values from pipeline_settings.json, if present."""
        path = self.config_dir / SETTINGS_FILE
        if not path.exists():
            return
        try:
            with open(path, encoding="utf-8") as fh:
                overrides = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to load %s: %s", SETTINGS_FILE, exc)
            return
        for key, value in overrides.items():
            cast = self._OVERRIDABLE.get(key)
            if cast is None:
                continue
            try:
                setattr(self, key, cast(value))
            except (TypeError, ValueError) as exc:
                logger.warning("Ignoring %s=%r in %s: %s", key, value, SETTINGS_FILE, exc)

    def ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
