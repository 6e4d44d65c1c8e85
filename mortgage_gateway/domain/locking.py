"""Per-loan mutual exclusion"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class LoanLocks:
    """
    One re-entrant lock per loan id.

    Operations on the same loan are serialized; operations on different loans
    run concurrently. Re-entrant so a custody callback on the same thread sees
    the already-saved record instead of deadlocking.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = {}

    def _lock_for(self, loan_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                lock = self._locks[loan_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, loan_id: int) -> Iterator[None]:
        with self._lock_for(loan_id):
            yield
