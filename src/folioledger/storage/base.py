from __future__ import annotations

import copy
from typing import Optional, Protocol

from ..ledger.errors import PersistenceFailure
from ..ledger.model import LedgerSnapshot


class StorageClient(Protocol):
    """Persistence seam for the ledger.

    Implementations raise ``PersistenceFailure`` when the store cannot be
    read or written; ``load`` returns None when nothing was saved yet.
    """

    def load(self) -> Optional[LedgerSnapshot]:
        ...

    def save(self, snapshot: LedgerSnapshot) -> None:
        ...


class MemoryStorage:
    """In-process store; ``fail_next`` simulates an unreachable backend."""

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None):
        self._snapshot = copy.deepcopy(snapshot)
        self.fail_next = False
        self.saves = 0

    def load(self) -> Optional[LedgerSnapshot]:
        if self.fail_next:
            self.fail_next = False
            raise PersistenceFailure("memory store unavailable")
        return copy.deepcopy(self._snapshot)

    def save(self, snapshot: LedgerSnapshot) -> None:
        if self.fail_next:
            self.fail_next = False
            raise PersistenceFailure("memory store unavailable")
        self._snapshot = copy.deepcopy(snapshot)
        self.saves += 1
