"""
Backup module for worldsnap.

This module handles the core backup functionality including:
- Compression formats and codec streams
- Archive writers and the archive-then-compress pipeline
- Quiesce coordination around the host's saves
- Retention policy enforcement
- Execution orchestration
"""

from .formats import CompressType, CompressionLevels, ConfigurationError
from .compression import archive_then_compress, generate_archive_filename, CompressionError, ArchiveExistsError
from .host import DataStoreUnit, FlushCapability, FlushError, LocalHost
from .coordinator import QuiesceCoordinator, QuiesceTransaction, BackupInProgressError
from .retention import RetentionManager, RetentionPolicy, RetentionDeleteError
from .executor import BackupExecutor
from .service import BackupService, BackupSettings

__all__ = [
    'CompressType',
    'CompressionLevels',
    'ConfigurationError',
    'archive_then_compress',
    'generate_archive_filename',
    'CompressionError',
    'ArchiveExistsError',
    'DataStoreUnit',
    'FlushCapability',
    'FlushError',
    'LocalHost',
    'QuiesceCoordinator',
    'QuiesceTransaction',
    'BackupInProgressError',
    'RetentionManager',
    'RetentionPolicy',
    'RetentionDeleteError',
    'BackupExecutor',
    'BackupService',
    'BackupSettings'
]
