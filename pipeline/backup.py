"""
Snapshot archives of the engine's state.

Each archive is a ZIP holding a consistent copy of the approved-orders
database plus every record in the config directory (pricing rules,
category mappings, batch settings, webhook template).  The batch pipeline
takes one before a run when backup_before_processing is on; the CLI
`backup` command takes one on demand.  Only the newest
backup_retention_count archives are kept.
"""
import logging
import sqlite3
import zipfile
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "po_engine_backup_"
DB_ARCNAME = "output/pipeline.db"


class BackupService:
    """Creates, lists and rotates backup archives in config.backup_dir."""

    def __init__(self, config: Any) -> None:
        self.config = config
        self.backup_dir = Path(config.backup_dir)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def list_backups(self) -> list[Path]:
        """Archives in the backup directory, oldest first (names sort by timestamp)."""
        return sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*.zip"), key=lambda p: p.name)

    def create_backup(self) -> str:
        """Write a new archive and rotate old ones.  Returns the archive file name."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        archive = self.backup_dir / f"{BACKUP_PREFIX}{stamp}.zip"
        logger.info("Creating backup %s", archive.name)

        try:
            with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
                self._add_database(zf, stamp)
                added = self._add_config(zf)
        except Exception as e:
            logger.error("Backup %s failed: %s", archive.name, e)
            archive.unlink(missing_ok=True)
            raise

        logger.info("Backup %s written (%d config file(s))", archive.name, added)
        self.rotate_backups()
        return archive.name

    def rotate_backups(self) -> None:
        """Delete all but the newest backup_retention_count archives.  0 keeps everything."""
        keep = self.config.backup_retention_count
        if keep <= 0:
            return
        for old in self.list_backups()[:-keep]:
            logger.info("Rotating out old backup: %s", old.name)
            try:
                old.unlink()
            except OSError as e:
                logger.warning("Could not delete %s: %s", old, e)

    def get_last_backup_time(self) -> Optional[datetime]:
        backups = self.list_backups()
        if not backups:
            return None
        return datetime.fromtimestamp(backups[-1].stat().st_mtime)

    # ------------------------------------------------------------------
    # Archive members
    # ------------------------------------------------------------------

    def _add_database(self, zf: zipfile.ZipFile, stamp: str) -> None:
        db_path = Path(self.config.db_path)
        if not db_path.exists():
            logger.debug("No database at %s; skipping", db_path)
            return
        # Copy through the sqlite backup API so a write in progress
        # cannot leave a torn file in the archive
        snapshot = self.backup_dir / f"snapshot_{stamp}.db"
        try:
            with closing(sqlite3.connect(db_path)) as src, closing(sqlite3.connect(snapshot)) as dst:
                src.backup(dst)
            zf.write(snapshot, arcname=DB_ARCNAME)
        finally:
            snapshot.unlink(missing_ok=True)

    def _add_config(self, zf: zipfile.ZipFile) -> int:
        config_dir = Path(self.config.config_dir)
        if not config_dir.is_dir():
            return 0
        count = 0
        for path in sorted(config_dir.iterdir()):
            # Skip half-written files from RuleStore's atomic save
            if path.is_file() and path.suffix not in (".tmp", ".bak"):
                zf.write(path, arcname=f"config/{path.name}")
                count += 1
        return count
