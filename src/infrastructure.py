"""
infrastructure.py

In-memory implementation of the plot repository and the Unit of Work.

This is a self-contained, zero-dependency backend that stores plots in a
plain Python dict keyed by plot id.  It is intentionally simple: suitable
for local development, demos, and integration testing without needing any
real storage.

To swap in durable storage later, implement AbstractPlotRepository and
AbstractUnitOfWork from application.py and override get_uow() in api.py:

    app.dependency_overrides[get_uow] = lambda: SqlUnitOfWork(session)

Nothing in service.py, application.py, or api.py needs to change.
"""

from __future__ import annotations

import copy
import threading
from typing import Dict, List, Optional

from application import AbstractPlotRepository, AbstractUnitOfWork
from model import Plot


# ---------------------------------------------------------------------------
# Generic in-memory store
# ---------------------------------------------------------------------------

class _Store(dict):
    """A plain dict with typed get/save/delete helpers."""

    def fetch(self, key: str):
        return self.get(key)

    def put(self, obj) -> None:
        self[obj.id] = obj

    def remove(self, key: str) -> None:
        self.pop(key, None)

    def all(self) -> list:
        return list(self.values())


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Persists for the lifetime of the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    def __init__(self):
        self.plots: _Store = _Store()
        # Held for the whole of a unit of work; see InMemoryUnitOfWork.
        self.lock = threading.RLock()


_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# Repository implementation
# ---------------------------------------------------------------------------

class InMemoryPlotRepository(AbstractPlotRepository):
    """
    Plots are stored as whole values; a save replaces the previous value.
    Reads hand out copies so a caller can never change stored state
    without going through save().
    """

    def __init__(self, store: _Store, pending: Dict[str, Optional[Plot]]):
        self._s = store
        self._pending = pending

    def get(self, plot_id: str) -> Optional[Plot]:
        if plot_id in self._pending:
            plot = self._pending[plot_id]
        else:
            plot = self._s.fetch(plot_id)
        return copy.deepcopy(plot) if plot is not None else None

    def list_all(self) -> List[Plot]:
        merged = {p.id: p for p in self._s.all()}
        for plot_id, plot in self._pending.items():
            if plot is None:
                merged.pop(plot_id, None)
            else:
                merged[plot_id] = plot
        return [copy.deepcopy(p) for p in merged.values()]

    def save(self, plot: Plot) -> None:
        self._pending[plot.id] = copy.deepcopy(plot)

    def delete(self, plot_id: str) -> None:
        self._pending[plot_id] = None


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Buffers saves and deletes until commit(); rollback() discards them.
    A use case that fails half way therefore leaves the store untouched.

    Entering the unit of work takes the database lock and leaving it
    releases it, so the read-modify-write of one use case cannot interleave
    with another thread's.  FastAPI runs sync endpoints on a threadpool.
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self._db = db
        self._pending: Dict[str, Optional[Plot]] = {}
        self.plots = InMemoryPlotRepository(db.plots, self._pending)

    def __enter__(self) -> "InMemoryUnitOfWork":
        self._db.lock.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            super().__exit__(exc_type, exc_val, exc_tb)
        finally:
            self._db.lock.release()

    def commit(self) -> None:
        for plot_id, plot in self._pending.items():
            if plot is None:
                self._db.plots.remove(plot_id)
            else:
                self._db.plots.put(plot)
        self._pending.clear()

    def rollback(self) -> None:
        self._pending.clear()
