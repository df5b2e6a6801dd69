"""Undo/redo of an edit session's working state"""

import copy
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence

from rent_ledger.domain.models import Charge, LedgerSnapshot

HISTORY_LIMIT = 50


def take_snapshot(
    charges: Sequence[Charge],
    pending_overflow_delta: float,
    pending_refunds: Dict[str, float],
    placeholder_counter: int = 0,
) -> LedgerSnapshot:
    """Capture working state by value; later edits to the live state do not leak in"""
    return LedgerSnapshot(
        charges=tuple(copy.deepcopy(charge) for charge in charges),
        pending_overflow_delta=pending_overflow_delta,
        pending_refunds=tuple(sorted(pending_refunds.items())),
        placeholder_counter=placeholder_counter,
    )


def restore_charges(snapshot: LedgerSnapshot) -> List[Charge]:
    return [copy.deepcopy(charge) for charge in snapshot.charges]


class HistoryManager:
    """
    Bounded stack-of-snapshots history for one editing session.

    Recording a new action clears the redo stack. When the undo stack is
    full the oldest snapshot is dropped.
    """

    def __init__(self, limit: int = HISTORY_LIMIT):
        self.limit = limit
        self._undo: Deque[LedgerSnapshot] = deque(maxlen=limit)
        self._redo: List[LedgerSnapshot] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    def record(self, snapshot: LedgerSnapshot) -> None:
        """Push the pre-mutation state"""
        self._undo.append(snapshot)
        self._redo.clear()

    def undo(self, current: LedgerSnapshot) -> Optional[LedgerSnapshot]:
        """Return the state to restore, or None when there is nothing to undo"""
        if not self._undo:
            return None
        self._redo.append(current)
        return self._undo.pop()

    def redo(self, current: LedgerSnapshot) -> Optional[LedgerSnapshot]:
        if not self._redo:
            return None
        self._undo.append(current)
        return self._redo.pop()

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
