"""
Backup service - the "run backup now" entry point.

Ties the host, the quiesce coordinator and the backup executor together.
Every trigger (interval job, session events, CLI, HTTP) goes through
``BackupService.run_backup``.
"""

import logging
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional

from .compression import parse_archive_filename
from .coordinator import QuiesceCoordinator
from .executor import BackupExecutor
from .formats import CompressType, CompressionLevels
from .retention import RetentionPolicy, list_artifacts

logger = logging.getLogger(__name__)


class BackupSettings(NamedTuple):
    """Resolved backup configuration."""
    backups_dir: Path
    data_dirs: List[str]
    default_compress_type: CompressType
    levels: CompressionLevels
    policy: RetentionPolicy
    interval_enabled: bool = False
    interval_initial_delay_minutes: int = 1
    interval_minutes: int = 20
    interval_skip_if_no_sessions: bool = True
    backup_on_session_join: bool = False
    backup_on_session_leave: bool = True

    @classmethod
    def from_config(cls, config) -> 'BackupSettings':
        """
        Resolve and validate settings from a Flask config mapping.

        Raises:
            ConfigurationError: If a compression level or format is invalid
        """
        # Negative budgets mean "disabled", like zero
        keep_last_n = max(int(config['KEEP_LAST_N_BACKUPS']), 0)
        storage_limit_mb = max(int(config['BACKUPS_DIR_STORAGE_LIMIT_MB']), 0)

        return cls(
            backups_dir=Path(config['BACKUPS_DIR']).expanduser(),
            data_dirs=list(config['DATA_DIRS']),
            default_compress_type=CompressType.from_name(config['DEFAULT_COMPRESS_TYPE']),
            levels=CompressionLevels(
                zstd_level=config['COMPRESS_ZSTD_LEVEL'],
                zip_level=config['COMPRESS_ZIP_LEVEL']
            ),
            policy=RetentionPolicy.create(
                keep_last_n=keep_last_n,
                storage_limit_bytes=storage_limit_mb * 1024 * 1024
            ),
            interval_enabled=bool(config['INTERVAL_BACKUP_ENABLED']),
            interval_initial_delay_minutes=int(config['INTERVAL_BACKUP_INITIAL_DELAY_MINUTES']),
            interval_minutes=int(config['INTERVAL_BACKUP_INTERVAL_MINUTES']),
            interval_skip_if_no_sessions=bool(config['INTERVAL_BACKUP_SKIP_IF_NO_SESSIONS']),
            backup_on_session_join=bool(config['BACKUP_ON_SESSION_JOIN']),
            backup_on_session_leave=bool(config['BACKUP_ON_SESSION_LEAVE'])
        )


class BackupService:
    """
    Runs backups for one host against one backups directory.
    """

    def __init__(self, app, host, settings: BackupSettings, coordinator: Optional[QuiesceCoordinator] = None):
        """
        Initialize backup service.

        Args:
            app: Flask app, used for an app context on the backup worker
            host: FlushCapability adapter exposing its ``units``
            settings: Resolved backup settings
            coordinator: Quiesce coordinator, one is created when None
        """
        self.app = app
        self.host = host
        self.settings = settings
        self.coordinator = coordinator or QuiesceCoordinator(host)

    @property
    def busy(self) -> bool:
        return self.coordinator.busy

    def run_backup(
        self,
        label: str,
        compress_type: Optional[CompressType] = None,
        after_backup: Optional[Callable[[str], None]] = None
    ) -> Future:
        """
        Quiesce the host and produce one artifact on the backup worker.

        Args:
            label: Label embedded in the filename
            compress_type: Artifact format, configured default when None
            after_backup: Called with the filename when the artifact exists

        Returns:
            Future resolving to the run as a dict (see BackupRun.to_dict)

        Raises:
            BackupInProgressError: If a backup is already running
        """
        if compress_type is None:
            compress_type = self.settings.default_compress_type

        units = list(self.host.units)
        executor = BackupExecutor(self.settings, units, compress_type, label, after_backup)

        logger.info(f"Starting backup '{label}' ({compress_type.value}) of {len(units)} data store units")
        return self.coordinator.run_backup_transaction(units, lambda: self._execute(executor))

    def _execute(self, executor: BackupExecutor) -> dict:
        with self.app.app_context():
            return executor.execute().to_dict()

    def list_artifacts(self) -> List[dict]:
        """Artifacts in the backups directory, oldest first."""
        artifacts = []
        for artifact in list_artifacts(self.settings.backups_dir):
            info = parse_archive_filename(artifact.name) or {}
            artifacts.append({
                'name': artifact.name,
                'size_bytes': artifact.size,
                'label': info.get('label'),
                'format': info.get('format'),
                'created_at': info['created_at'].isoformat() if info.get('created_at') else None
            })
        return artifacts

    def usage(self) -> dict:
        """Current size of the backups directory against the configured budget."""
        artifacts = list_artifacts(self.settings.backups_dir)
        return {
            'artifact_count': len(artifacts),
            'used_bytes': sum(artifact.size for artifact in artifacts),
            'keep_last_n': self.settings.policy.keep_last_n,
            'storage_limit_bytes': self.settings.policy.storage_limit_bytes
        }

    def shutdown(self, wait: bool = True):
        self.coordinator.shutdown(wait=wait)
