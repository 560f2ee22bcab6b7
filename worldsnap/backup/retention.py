"""
Retention policy enforcement for backups.

Keeps the backups directory within a count budget (keep last N) and a size
budget (storage limit in bytes). The two rules run one after the other:
1. Count rule: the oldest artifacts beyond the newest N are marked
2. Size rule: the total is recomputed over what the count rule kept, then the
   oldest remaining artifacts are marked until the deficit is covered

Deletion only starts once both rules have been evaluated. When the size
limit is smaller than what is left, everything visited is deleted and the
limit simply stays violated.
"""

import logging
import os
import re
from pathlib import Path
from typing import List, NamedTuple

from .formats import ConfigurationError

logger = logging.getLogger(__name__)


ARTIFACT_PATTERN = re.compile(r'^\d{8}T\d{6}.*')


class RetentionDeleteError(Exception):
    """Raised when a single artifact cannot be removed."""
    pass


class RetentionPolicy(NamedTuple):
    """
    Retention budget. A zero value disables that rule.
    """
    keep_last_n: int = 0
    storage_limit_bytes: int = 0

    @classmethod
    def create(cls, keep_last_n: int = 0, storage_limit_bytes: int = 0) -> 'RetentionPolicy':
        """
        Validate and build a policy.

        Raises:
            ConfigurationError: If either value is negative or not an integer
        """
        for field, value in (('keep_last_n', keep_last_n), ('storage_limit_bytes', storage_limit_bytes)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{field} must be an integer, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"{field} must not be negative, got {value}")
        return cls(keep_last_n, storage_limit_bytes)


class BackupArtifact(NamedTuple):
    """One artifact in the backups directory."""
    name: str
    path: Path
    size: int


class RetentionResult(NamedTuple):
    """Outcome of one retention pass."""
    deleted: List[str]
    failed: List[str]
    remaining_bytes: int


def list_artifacts(backups_dir) -> List[BackupArtifact]:
    """
    List artifacts eligible for retention, oldest first.

    Only regular files whose name starts with the fixed timestamp prefix are
    considered; anything else in the directory is ignored.

    Args:
        backups_dir: Backups directory

    Returns:
        Artifacts sorted by filename
    """
    backups_dir = Path(backups_dir)
    if not backups_dir.exists():
        return []

    artifacts = []
    with os.scandir(backups_dir) as it:
        for entry in it:
            if not ARTIFACT_PATTERN.match(entry.name):
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
            artifacts.append(BackupArtifact(
                name=entry.name,
                path=Path(entry.path),
                size=entry.stat(follow_symlinks=False).st_size
            ))

    return sorted(artifacts, key=lambda artifact: artifact.name)


def select_for_deletion(artifacts: List[BackupArtifact], policy: RetentionPolicy) -> List[BackupArtifact]:
    """
    Decide which artifacts to delete.

    Args:
        artifacts: Artifacts sorted oldest first
        policy: Retention budget

    Returns:
        Artifacts to delete, oldest first, each at most once
    """
    marked = []

    # Count rule
    if policy.keep_last_n > 0 and len(artifacts) > policy.keep_last_n:
        marked.extend(artifacts[:len(artifacts) - policy.keep_last_n])

    # Size rule, over the listing as it stands after the count rule
    if policy.storage_limit_bytes > 0:
        marked_names = {artifact.name for artifact in marked}
        remaining = [a for a in artifacts if a.name not in marked_names]
        total_size = sum(artifact.size for artifact in remaining)

        if total_size > policy.storage_limit_bytes:
            size_to_free = total_size - policy.storage_limit_bytes
            for artifact in remaining:
                if size_to_free <= 0:
                    break
                marked.append(artifact)
                size_to_free -= artifact.size

    return marked


class RetentionManager:
    """
    Enforces a retention policy on one backups directory.
    """

    def __init__(self, backups_dir, policy: RetentionPolicy):
        """
        Initialize retention manager.

        Args:
            backups_dir: Directory holding the artifacts
            policy: Retention budget
        """
        self.backups_dir = Path(backups_dir)
        self.policy = policy

    def enforce(self) -> RetentionResult:
        """
        Evaluate both rules, then delete what they selected.

        A file that cannot be deleted is logged and skipped; the rest of the
        batch still goes ahead.

        Returns:
            RetentionResult with deleted and failed names and the bytes left
        """
        to_delete = select_for_deletion(list_artifacts(self.backups_dir), self.policy)

        deleted = []
        failed = []
        for artifact in to_delete:
            try:
                self._delete(artifact)
                deleted.append(artifact.name)
            except RetentionDeleteError as e:
                logger.error(str(e))
                failed.append(artifact.name)

        if deleted:
            logger.info(f"Deleted old backups: {', '.join(deleted)}")

        remaining_bytes = sum(artifact.size for artifact in list_artifacts(self.backups_dir))
        self._log_usage(remaining_bytes)

        return RetentionResult(deleted=deleted, failed=failed, remaining_bytes=remaining_bytes)

    def _delete(self, artifact: BackupArtifact):
        try:
            artifact.path.unlink()
        except FileNotFoundError:
            # Already gone (operator removed it), nothing left to free
            pass
        except OSError as e:
            raise RetentionDeleteError(f"Failed to delete backup {artifact.name}: {e}")

    def _log_usage(self, used_bytes: int):
        current_mb = used_bytes // 1024 // 1024
        if self.policy.storage_limit_bytes > 0:
            limit_mb = self.policy.storage_limit_bytes // 1024 // 1024
            logger.info(f"Currently using {current_mb}MB out of {limit_mb}MB.")
        else:
            logger.info(f"Currently using {current_mb}MB of backups directory, storage limit is disabled.")
