"""
Quiesce coordinator - brackets a backup with flush and autosave restoration.

Transaction:
1. Snapshot every unit's autosave flag
2. Flush live session state
3. Per unit: force autosave on and flush the unit
4. Run the unit of work on the backup worker
5. Restore every autosave flag to its snapshot, whatever the work did

Steps 1-3 and step 5 touch host state, so they are dispatched to the host's
primary context (``host.run_on_primary`` unless a dispatcher is given).
Step 4 runs on the backup worker.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from .host import DataStoreUnit, FlushCapability

logger = logging.getLogger(__name__)


class BackupInProgressError(RuntimeError):
    """Raised when a backup transaction is requested while one is running."""
    pass


class QuiesceTransaction:
    """
    Scoped guard over the units' autosave flags.

    ``acquire()`` flushes and records the flags; leaving the ``with`` block
    (or calling ``release()``) restores them exactly once.
    """

    def __init__(
        self,
        host: FlushCapability,
        units: List[DataStoreUnit],
        dispatcher: Optional[Callable[[Callable[[], None]], None]] = None
    ):
        """
        Initialize transaction.

        Args:
            host: Host flush capability
            units: Units taking part in the backup
            dispatcher: Runs a callable on the context where flag changes
                and flushes are safe and returns once it has run. Defaults
                to the host's ``run_on_primary``.
        """
        self.host = host
        self.units = list(units)
        self.dispatcher = dispatcher or host.run_on_primary
        self.saved_flags = None
        self._released = False
        self._release_lock = threading.Lock()

    def acquire(self) -> 'QuiesceTransaction':
        """
        Flush the host and open the snapshot window.

        Flush failures are logged and the transaction goes on; a backup is
        still attempted.
        """
        self.dispatcher(self._quiesce)
        return self

    def _quiesce(self):
        self.saved_flags = [unit.autosave for unit in self.units]

        logger.info("Saving all data store units and session state...")
        try:
            self.host.flush_sessions()
            logger.info("Saved session state")
        except Exception as e:
            logger.error(f"Failed to save session state: {e}")

        for unit in self.units:
            # Older hosts only honour a save request while autosave is on
            try:
                self.host.set_autosave(unit, True)
            except Exception as e:
                logger.error(f"Failed to enable autosave for {unit.name}: {e}")

            try:
                self.host.flush_unit(unit)
                logger.info(f"Saved data store unit: {unit.name}")
            except Exception as e:
                logger.error(f"Failed to save data store unit {unit.name}: {e}")

    def release(self):
        """Restore every autosave flag to its pre-transaction value, once."""
        with self._release_lock:
            if self._released or self.saved_flags is None:
                return
            self._released = True

        self.dispatcher(self._restore_flags)

    def _restore_flags(self):
        for unit, flag in zip(self.units, self.saved_flags):
            try:
                self.host.set_autosave(unit, flag)
            except Exception as e:
                logger.error(f"Failed to restore autosave for {unit.name}: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()
        return False


class QuiesceCoordinator:
    """
    Runs backup work inside a quiesce transaction on a dedicated worker.

    Only one transaction may be in flight at a time.
    """

    def __init__(
        self,
        host: FlushCapability,
        executor=None,
        dispatcher: Optional[Callable[[Callable[[], None]], None]] = None
    ):
        """
        Initialize coordinator.

        Args:
            host: Host flush capability
            executor: concurrent.futures executor for the work, a single
                worker thread by default
            dispatcher: See QuiesceTransaction
        """
        self.host = host
        self.dispatcher = dispatcher
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix='worldsnap-backup'
        )
        self._in_flight = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._in_flight.locked()

    def run_backup_transaction(self, units: List[DataStoreUnit], work: Callable[[], object]) -> Future:
        """
        Quiesce the host, then run ``work`` on the backup worker.

        May be called from any thread: flag reads and flushes are dispatched
        to the host's primary context and complete before this returns.

        Args:
            units: Units to quiesce
            work: Unit of work (archive, then retention)

        Returns:
            Future resolving to the work's return value, or None if it failed

        Raises:
            BackupInProgressError: If another transaction is still running
        """
        if not self._in_flight.acquire(blocking=False):
            raise BackupInProgressError("A backup is already in progress")

        try:
            transaction = QuiesceTransaction(self.host, units, self.dispatcher).acquire()
        except BaseException:
            self._in_flight.release()
            raise

        try:
            return self.executor.submit(self._run_work, transaction, work)
        except BaseException:
            try:
                transaction.release()
            finally:
                self._in_flight.release()
            raise

    def _run_work(self, transaction: QuiesceTransaction, work: Callable[[], object]):
        try:
            with transaction:
                try:
                    return work()
                except Exception as e:
                    logger.exception(f"Backup task failed: {e}")
                    return None
        finally:
            self._in_flight.release()

    def shutdown(self, wait: bool = True):
        """Stop the worker if this coordinator created it."""
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
