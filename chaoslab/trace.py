"""ChaosLab Trace Recorder.

Append-only, ordered log of step outcomes for one scenario run. Indices
are 1-based and gap-free.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Tuple

from chaoslab.types import ChaosLabError, TraceRow, TraceStatus


class TraceIndexError(ChaosLabError):
    """A row was appended out of sequence."""
    pass


class TraceRecorder:
    """Records TraceRows for a single run."""

    def __init__(self) -> None:
        self._rows: List[TraceRow] = []

    @staticmethod
    def start() -> float:
        """Monotonic start marker for a step."""
        return time.perf_counter()

    @property
    def next_index(self) -> int:
        return len(self._rows) + 1

    def end(
        self,
        operation: str,
        started: float,
        status: TraceStatus,
        fault_kind: Optional[str] = None,
        action: Optional[str] = None,
        note: Optional[str] = None,
    ) -> TraceRow:
        """Close a step opened with start() and append its row."""
        elapsed_ms = int((time.perf_counter() - started) * 1000 + 0.5)
        row = TraceRow(
            index=self.next_index,
            operation=operation,
            duration_ms=max(0, elapsed_ms),
            status=TraceStatus(status),
            fault_kind=fault_kind or None,
            action=action,
            note=note,
        )
        self._rows.append(row)
        return row

    def append(self, row: TraceRow) -> TraceRow:
        if row.index != self.next_index:
            raise TraceIndexError(
                f"Expected row index {self.next_index}, got {row.index}"
            )
        self._rows.append(row)
        return row

    @property
    def rows(self) -> Tuple[TraceRow, ...]:
        return tuple(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [row.to_dict() for row in self._rows]
