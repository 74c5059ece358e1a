"""
Integration tests for the backup service.
"""
import zipfile

import pytest

from pipeline.backup import BACKUP_PREFIX, BackupService
from pipeline.rule_store import RuleStore


@pytest.mark.integration
class TestBackupService:
    """Tests for BackupService."""

    def test_backup_contains_database_and_config(self, test_config, test_db, sample_order):
        test_db.upsert_order("job_1", sample_order)
        RuleStore(test_config.config_dir).apply_quick_setup()

        zip_name = BackupService(test_config).create_backup()

        with zipfile.ZipFile(test_config.backup_dir / zip_name) as zf:
            names = set(zf.namelist())
        assert zip_name.startswith(BACKUP_PREFIX)
        assert "output/pipeline.db" in names
        assert "config/pricing_rules.json" in names
        assert "config/bulk_processing.json" in names

    def test_rotation_keeps_newest(self, test_config):
        service = BackupService(test_config)
        created = [service.create_backup() for _ in range(5)]

        remaining = sorted(p.name for p in test_config.backup_dir.glob(f"{BACKUP_PREFIX}*.zip"))

        assert len(remaining) == test_config.backup_retention_count
        assert remaining == sorted(created)[-test_config.backup_retention_count:]
        assert service.get_last_backup_time() is not None

    def test_no_backups_yet(self, test_config):
        assert BackupService(test_config).get_last_backup_time() is None
