"""
Backup executor - one backup run, executed on the backup worker.

Workflow:
1. Create BackupRun record (status: running)
2. Archive every data store unit into one compressed artifact
3. Remove the artifact again if the pipeline failed part way
4. Enforce the retention policy (whatever happened in step 2)
5. Update BackupRun (status: success/failed)

Runs inside the quiesce transaction; the caller provides the app context.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from worldsnap import db
from worldsnap.models import BackupRun
from .compression import (
    ArchiveExistsError,
    archive_then_compress,
    generate_archive_filename,
    get_archive_size
)
from .formats import CompressType
from .host import DataStoreUnit
from .retention import RetentionManager

logger = logging.getLogger(__name__)


class BackupExecutor:
    """
    Produces one artifact for a set of data store units.
    """

    def __init__(
        self,
        settings,
        units: List[DataStoreUnit],
        compress_type: CompressType,
        label: str,
        after_backup: Optional[Callable[[str], None]] = None
    ):
        """
        Initialize backup executor.

        Args:
            settings: BackupSettings (backups dir, levels, retention policy)
            units: Units whose directories go into the artifact
            compress_type: Artifact format
            label: Label embedded in the filename
            after_backup: Called with the filename once the artifact exists
        """
        self.settings = settings
        self.units = list(units)
        self.compress_type = compress_type
        self.label = label
        self.after_backup = after_backup
        self.run_record = None
        self.archive_path = None
        self.logs = []

    def execute(self) -> BackupRun:
        """
        Execute the backup run.

        Pipeline failures are recorded on the run, never raised; retention
        runs either way.

        Returns:
            BackupRun record with execution results
        """
        self.run_record = BackupRun(
            label=self.label,
            compress_type=self.compress_type.value,
            status='running',
            started_at=datetime.now(timezone.utc)
        )
        db.session.add(self.run_record)
        db.session.commit()

        succeeded = False
        try:
            self._create_artifact()
            self.run_record.status = 'success'
            succeeded = True
        except Exception as e:
            self.run_record.status = 'failed'
            self.run_record.error_message = str(e)
            self._log(f"Failed to create backup: {e}", logging.ERROR)
            self._discard_partial_artifact()
        finally:
            self.run_record.completed_at = datetime.now(timezone.utc)
            db.session.commit()

        if succeeded and self.after_backup is not None:
            try:
                self.after_backup(self.run_record.filename)
            except Exception as e:
                self._log(f"Post-backup notification failed: {e}", logging.WARNING)

        self._enforce_retention()

        self.run_record.logs = '\n'.join(self.logs)
        db.session.commit()

        return self.run_record

    def _create_artifact(self):
        """Archive all units into the backups directory."""
        backups_dir = Path(self.settings.backups_dir)
        backups_dir.mkdir(parents=True, exist_ok=True)

        filename = generate_archive_filename(self.label, self.compress_type)
        archive_path = str(backups_dir / filename)
        self.run_record.filename = filename

        # Same label in the same second; the existing artifact belongs to another run
        if os.path.lexists(archive_path):
            raise ArchiveExistsError(f"Backup already exists: {filename}")

        self._log("Creating backup archive...")
        self.archive_path = archive_path
        try:
            entry_count = archive_then_compress(
                archive_path,
                [str(unit.path) for unit in self.units],
                self.compress_type,
                self.settings.levels
            )
        except ArchiveExistsError:
            self.archive_path = None
            raise

        file_size = get_archive_size(self.archive_path)
        self.run_record.file_size_bytes = file_size
        self.run_record.entry_count = entry_count
        self._log(f"Created backup archive: {filename} ({file_size / 1024 / 1024:.2f} MB, {entry_count} entries)")

    def _discard_partial_artifact(self):
        """Remove an incomplete artifact so retention never counts it."""
        if self.archive_path and os.path.exists(self.archive_path):
            try:
                os.remove(self.archive_path)
                self._log(f"Removed incomplete archive: {os.path.basename(self.archive_path)}")
            except OSError as e:
                self._log(f"Warning: Failed to remove incomplete archive: {e}", logging.WARNING)

    def _enforce_retention(self):
        try:
            result = RetentionManager(self.settings.backups_dir, self.settings.policy).enforce()
        except Exception as e:
            self._log(f"Failed to run retention policy: {e}", logging.ERROR)
            return

        if result.deleted:
            self.run_record.deleted_artifacts = ','.join(result.deleted)
            self._log(f"Deleted old backups: {', '.join(result.deleted)}")
        if result.failed:
            self._log(f"Could not delete: {', '.join(result.failed)}", logging.WARNING)

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: logging level for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)
