"""
Host-side collaborators of the backup pipeline.

The pipeline never implements saving itself. It needs three operations from
the host process that owns the data store:
- flush_sessions(): persist all live session state
- flush_unit(unit): persist one data store unit
- set_autosave(unit, flag): toggle the host's own periodic save for a unit

All three are called through run_on_primary(fn), so a host whose state may
only be touched from one thread gets every call on that thread.

Anything version specific (how a given host release actually saves) belongs
in a host adapter implementing FlushCapability, never in the pipeline.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


class FlushError(Exception):
    """Raised when the host fails to flush a unit or the session state."""
    pass


class DataStoreUnit:
    """
    One independently saved directory tree, e.g. one world.

    The autosave flag belongs to the host; the pipeline only flips it for the
    duration of one backup transaction.
    """

    def __init__(self, name: str, path, autosave: bool = True):
        self.name = name
        self.path = Path(path)
        self.autosave = autosave

    def __repr__(self):
        return f'<DataStoreUnit {self.name} autosave={self.autosave}>'


class FlushCapability:
    """
    Interface a host adapter provides to the quiesce coordinator.

    Flush methods signal failure by raising; the coordinator logs and
    carries on. Adapters set ``units`` to the data store units they own.
    """

    units: Sequence[DataStoreUnit] = ()

    def run_on_primary(self, fn: Callable[[], object]):
        """
        Run ``fn`` on the host's primary context and return its result once
        it has run. The default runs it in the calling thread.
        """
        return fn()

    def flush_sessions(self):
        raise NotImplementedError

    def flush_unit(self, unit: DataStoreUnit):
        raise NotImplementedError

    def set_autosave(self, unit: DataStoreUnit, flag: bool):
        raise NotImplementedError


class LocalHost(FlushCapability):
    """
    In-process host adapter.

    Used when worldsnap runs beside (or embedded in) the host process. The
    host registers its save routines as hooks; without hooks a flush only
    logs. Active sessions are tracked so the event triggers can tell when the
    last session leaves.
    """

    def __init__(self, units: Iterable[DataStoreUnit]):
        """
        Initialize local host.

        Args:
            units: Data store units owned by the host
        """
        self.units = sorted(units, key=lambda unit: unit.name)
        self._unit_flush_hooks: Dict[str, Callable[[DataStoreUnit], None]] = {}
        self._session_flush_hook: Optional[Callable[[], None]] = None
        self._primary_dispatcher: Optional[Callable[[Callable[[], object]], object]] = None
        self._sessions = set()
        self._lock = threading.Lock()

    @classmethod
    def from_paths(cls, paths: Iterable[str]) -> 'LocalHost':
        """
        Build a host whose units are the given directories.

        Unit names are the directory names, so they must be unique.

        Raises:
            ValueError: If two directories share a name
        """
        units = []
        seen = set()
        for path in paths:
            unit_path = Path(path).expanduser()
            name = unit_path.name
            if name in seen:
                raise ValueError(f"Duplicate data store unit name: {name}")
            seen.add(name)
            units.append(DataStoreUnit(name, unit_path))
        return cls(units)

    def register_unit_flush(self, name: str, hook: Callable[[DataStoreUnit], None]):
        """Register the host's save routine for one unit."""
        self.get_unit(name)
        self._unit_flush_hooks[name] = hook

    def register_session_flush(self, hook: Callable[[], None]):
        """Register the host's save routine for session state."""
        self._session_flush_hook = hook

    def register_primary_dispatcher(self, dispatcher: Callable[[Callable[[], object]], object]):
        """
        Register how to run a callable on the host's main thread.

        ``dispatcher(fn)`` must run ``fn`` there, wait for it and return its
        result. Without one, calls run on whichever thread asked.
        """
        self._primary_dispatcher = dispatcher

    def run_on_primary(self, fn: Callable[[], object]):
        if self._primary_dispatcher is None:
            return fn()
        return self._primary_dispatcher(fn)

    def get_unit(self, name: str) -> DataStoreUnit:
        for unit in self.units:
            if unit.name == name:
                return unit
        raise KeyError(f"Unknown data store unit: {name}")

    def flush_sessions(self):
        if self._session_flush_hook is None:
            logger.debug("No session flush hook registered, nothing to save")
            return
        try:
            self._session_flush_hook()
        except Exception as e:
            raise FlushError(f"Failed to save session state: {e}")

    def flush_unit(self, unit: DataStoreUnit):
        hook = self._unit_flush_hooks.get(unit.name)
        if hook is None:
            logger.debug(f"No flush hook registered for {unit.name}, nothing to save")
            return
        try:
            hook(unit)
        except Exception as e:
            raise FlushError(f"Failed to save {unit.name}: {e}")

    def set_autosave(self, unit: DataStoreUnit, flag: bool):
        unit.autosave = flag

    def session_joined(self, name: str):
        with self._lock:
            self._sessions.add(name)

    def session_left(self, name: str):
        with self._lock:
            self._sessions.discard(name)

    def active_sessions(self) -> List[str]:
        with self._lock:
            return sorted(self._sessions)
