"""Interfaces the engine depends on - custody of assets/value and loan persistence"""

from typing import ContextManager, Protocol

from mortgage_gateway.domain.models import AssetDescriptor, Loan


class CustodyAdapter(Protocol):
    """
    Moves assets and value in and out of per-loan escrow accounts.

    Calls made inside one `atomic()` block form a single all-or-nothing unit:
    if any of them fails, none is observable. Failures are reported by raising
    CustodyTransferFailed.
    """

    def atomic(self) -> ContextManager[None]:
        ...

    def pull_asset(self, asset: AssetDescriptor, from_party: str, into: str) -> None:
        ...

    def release_asset(self, asset: AssetDescriptor, to: str, escrow: str) -> None:
        ...

    def accept_value(self, from_party: str, amount: int, escrow: str) -> None:
        ...

    def pay_out(self, to: str, amount: int, escrow: str) -> None:
        ...


class LoanStore(Protocol):
    """
    Loan persistence with an explicit transaction boundary.

    `save` makes a change visible to subsequent `get` calls in the same
    unit of work; `commit` makes it durable and `rollback` discards
    everything saved since the last commit.
    """

    def add(self, loan: Loan) -> Loan:
        """Persist a new loan, assigning the next identifier"""
        ...

    def get(self, loan_id: int) -> Loan:
        """Return a detached copy of the loan. Raises LoanNotFound."""
        ...

    def save(self, loan: Loan) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


def escrow_account(loan_id: int) -> str:
    """Name of the custody account holding a loan's asset and repayments"""
    return f"escrow:{loan_id}"
