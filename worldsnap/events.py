"""
Session lifecycle triggers.

The host reports sessions joining and leaving; depending on configuration a
backup is taken. When the interval task skips idle periods, the last session
leaving always triggers a backup so the time since the previous interval run
is not lost.
"""

import logging

from worldsnap.backup.coordinator import BackupInProgressError

logger = logging.getLogger(__name__)


def _trigger(service, label):
    try:
        return service.run_backup(label)
    except BackupInProgressError:
        logger.warning(f"Backup '{label}' skipped, another backup is still running")
        return None


def session_joined(service, name: str):
    """
    Record a joining session and back up if configured.

    Returns:
        The backup future, or None if no backup was started
    """
    service.host.session_joined(name)

    if service.settings.backup_on_session_join:
        logger.info(f"Session {name} joined, running backup task...")
        return _trigger(service, f"{name}-join")
    return None


def session_left(service, name: str):
    """
    Record a leaving session and back up if configured.

    Returns:
        The backup future, or None if no backup was started
    """
    settings = service.settings
    was_last = service.host.active_sessions() == [name]
    service.host.session_left(name)

    if settings.interval_enabled and settings.interval_skip_if_no_sessions and was_last:
        logger.info(
            f"Last session {name} left, triggering one-time backup because "
            f"interval task and skip-if-no-sessions are enabled"
        )
        return _trigger(service, f"lastsession-{name}-leave")
    elif settings.backup_on_session_leave:
        logger.info(f"Session {name} left, running backup task...")
        return _trigger(service, f"{name}-leave")
    return None
