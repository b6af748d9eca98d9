"""Explicit per-run build context.

Everything that would otherwise be ambient global state (the cache root,
scratch directories, the cancellation flag and the event journal) lives on a
``BuildContext`` that is passed to every component call. Tests build their
own context around an isolated temporary cache root.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bootforge.models.reports import RunEvent

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"bf-{ts}-{uuid.uuid4().hex[:6]}"


class BuildContext:
    """Per-run state shared by the orchestrator and its components.

    Parameters
    ----------
    cache_root:
        Root of the persistent cache (entries, snapshots, locks).
    run_id:
        Identifier used in logs and the final report. Generated if omitted.
    """

    def __init__(self, cache_root: Path, run_id: str | None = None) -> None:
        self.cache_root = Path(cache_root).absolute()
        self.run_id = run_id or new_run_id()
        self.cancel_event = threading.Event()
        self._journal: list[RunEvent] = []
        self._journal_lock = threading.Lock()
        self._seq = 0

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    @property
    def entries_dir(self) -> Path:
        return self.cache_root / "entries"

    @property
    def snapshots_dir(self) -> Path:
        return self.cache_root / "snapshots"

    @property
    def locks_dir(self) -> Path:
        return self.cache_root / "locks"

    @property
    def work_dir(self) -> Path:
        return self.cache_root / "work"

    def build_dir(self, fingerprint: str) -> Path:
        """Output directory for building ``fingerprint``.

        Deterministic per fingerprint so paths a toolchain embeds in its
        output are the same on every rebuild; the fingerprint lock keeps two
        processes from sharing it.
        """
        return self.work_dir / fingerprint[:32] / "out"

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        logger.info("Run %s cancelled", self.run_id)
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def record(self, event: str, **fields: Any) -> RunEvent:
        """Append an event to the journal. Safe to call from worker threads."""
        with self._journal_lock:
            self._seq += 1
            entry = RunEvent(seq=self._seq, event=event, **fields)
            self._journal.append(entry)
        return entry

    @property
    def events(self) -> list[RunEvent]:
        with self._journal_lock:
            return list(self._journal)

    def events_of(self, event: str) -> list[RunEvent]:
        return [e for e in self.events if e.event == event]
