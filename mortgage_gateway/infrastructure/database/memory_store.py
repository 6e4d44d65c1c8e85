"""Loan store kept in process memory, with the same save/commit/rollback boundary as the database"""

import itertools
import threading
from dataclasses import replace
from typing import Dict, List

from mortgage_gateway.domain.exceptions import LoanNotFound
from mortgage_gateway.domain.models import Loan


class InMemoryLoanStore:
    """
    Committed loans plus a per-thread layer of uncommitted saves.

    Like a database session, each thread has its own unit of work: its
    reads see its own pending saves first, so a custody callback during an
    operation observes the updated record, while other threads only see
    committed loans. Identifiers come from a counter and are never reused,
    even when an add is rolled back.
    """

    def __init__(self) -> None:
        self._committed: Dict[int, Loan] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def _pending(self) -> Dict[int, Loan]:
        pending = getattr(self._local, "pending", None)
        if pending is None:
            pending = self._local.pending = {}
        return pending

    def add(self, loan: Loan) -> Loan:
        with self._lock:
            stored = replace(loan, id=next(self._ids))
        self._pending[stored.id] = stored
        return replace(stored)

    def get(self, loan_id: int) -> Loan:
        loan = self._pending.get(loan_id)
        if loan is None:
            with self._lock:
                loan = self._committed.get(loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return replace(loan)

    def save(self, loan: Loan) -> None:
        if loan.id not in self._pending:
            with self._lock:
                if loan.id not in self._committed:
                    raise LoanNotFound(f"Loan {loan.id} not found")
        self._pending[loan.id] = replace(loan)

    def commit(self) -> None:
        with self._lock:
            self._committed.update(self._pending)
        self._pending.clear()

    def rollback(self) -> None:
        self._pending.clear()

    def list_by_party(self, party: str, limit: int = 20) -> List[Loan]:
        with self._lock:
            loans = [loan for loan in self._committed.values() if party in (loan.seller, loan.buyer)]
        loans.sort(key=lambda loan: loan.id, reverse=True)
        return [replace(loan) for loan in loans[:limit]]
