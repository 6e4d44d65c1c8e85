"""Loan accounting engine - lifecycle state machine for escrowed credit sales"""

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterable, Iterator, List, Optional

from mortgage_gateway.domain.events import EventPublisher
from mortgage_gateway.domain.exceptions import (
    CustodyTransferFailed,
    DeadlineNotReached,
    ExtensionLimitExceeded,
    InsufficientDownPayment,
    InsufficientRepaymentForExtension,
    InvalidState,
    ParameterOutOfRange,
    Unauthorized,
)
from mortgage_gateway.domain.interest import (
    MAX_AMOUNT,
    calculate_default_fee,
    calculate_total_due,
    checked_add,
    checked_mul,
    checked_sub,
)
from mortgage_gateway.domain.locking import LoanLocks
from mortgage_gateway.domain.models import (
    LOAN_COMPLETED,
    LOAN_CREATED,
    LOAN_DEFAULTED,
    LOAN_STARTED,
    PAYMENT_MADE,
    AssetDescriptor,
    Loan,
    LoanEvent,
    LoanState,
)
from mortgage_gateway.domain.ports import CustodyAdapter, LoanStore, escrow_account
from mortgage_gateway.domain.registry import AuthorizationAdapter, ParameterRegistry
from mortgage_gateway.utils.time_utils import unix_now

OPEN_STATES = (LoanState.ACTIVE, LoanState.EXTENDED)

# A loan may be extended again while it is Extended, until max_extensions is used up
EXTENDABLE_STATES = (LoanState.ACTIVE, LoanState.EXTENDED)


class LoanEngine:
    """
    Creates, starts, collects payments on, extends, completes and defaults loans.

    Every mutating operation follows the same order:
    1. Lock the loan and load it
    2. Check all preconditions (nothing is written on failure)
    3. Save the updated record
    4. Run the custody transfers inside one atomic block
    5. Commit, or roll the save back if custody failed
    6. Publish lifecycle events
    """

    def __init__(
        self,
        registry: ParameterRegistry,
        custody: CustodyAdapter,
        store: LoanStore,
        locks: LoanLocks | None = None,
        publisher: EventPublisher | None = None,
        authorization: AuthorizationAdapter | None = None,
        clock: Callable[[], int] = unix_now,
    ):
        self.registry = registry
        self.custody = custody
        self.store = store
        self.locks = locks or LoanLocks()
        self.publisher = publisher or EventPublisher()
        self.authorization = authorization or registry
        self.clock = clock
        self._unit = threading.local()

    # Queries

    def get_loan(self, loan_id: int) -> Loan:
        with self.locks.hold(loan_id):
            return self.store.get(loan_id)

    def get_total_due(self, loan_id: int) -> int:
        """Total owed under the loan's current contracted duration and extensions"""
        with self.locks.hold(loan_id):
            return self._total_due(self.store.get(loan_id))

    # Operations

    def create_loan(
        self,
        originator: str,
        asset: AssetDescriptor,
        principal: int,
        down_payment_percent: int,
        duration: int,
    ) -> int:
        """
        Register a new Inactive loan offered by `originator`, who becomes the seller.

        Raises:
            Unauthorized: originator is not on the registry's access list
            ParameterOutOfRange: down payment percent, duration or principal out of bounds
            ArithmeticOverflow: the fully extended total due or the default fee would overflow
        """
        if not self.authorization.is_authorized_originator(originator):
            raise Unauthorized(f"{originator} is not an authorized originator")

        policy = self.registry.policy
        if not policy.min_down_payment <= down_payment_percent <= policy.max_down_payment:
            raise ParameterOutOfRange(
                f"Down payment must be {policy.min_down_payment}-{policy.max_down_payment}%, "
                f"got {down_payment_percent}%"
            )
        if not policy.min_duration <= duration <= policy.max_duration:
            raise ParameterOutOfRange(
                f"Duration must be {policy.min_duration}-{policy.max_duration}s, got {duration}s"
            )
        if not 0 < principal <= MAX_AMOUNT:
            raise ParameterOutOfRange(f"Principal must be positive, got {principal}")

        down_payment = checked_mul(principal, down_payment_percent) // 100
        if down_payment == 0:
            raise ParameterOutOfRange(f"Principal {principal} is too small for a non-zero down payment")

        loan = Loan(
            id=0,
            seller=originator,
            asset=asset,
            principal=principal,
            down_payment=down_payment,
            loan_amount=checked_sub(principal, down_payment),
            interest_rate=self.registry.interest_rate_for(duration),
            duration=duration,
        )

        # Reject terms whose worst case (every extension taken) cannot be represented
        calculate_total_due(
            loan.loan_amount,
            loan.interest_rate,
            checked_add(duration, checked_mul(policy.max_extensions, policy.extension_period)),
            policy.max_extensions,
            policy.extension_period,
        )
        calculate_default_fee(loan.down_payment, policy.default_fee)

        with self._unit_of_work():
            loan = self.store.add(loan)

        self._publish(
            loan,
            [
                (
                    LOAN_CREATED,
                    {
                        "seller": loan.seller,
                        "asset": loan.asset.key,
                        "principal": loan.principal,
                        "down_payment": loan.down_payment,
                        "loan_amount": loan.loan_amount,
                        "interest_rate": loan.interest_rate,
                        "duration": loan.duration,
                    },
                )
            ],
        )
        return loan.id

    def start_loan(self, loan_id: int, buyer: str, supplied_down_payment: int) -> Loan:
        """
        Activate an Inactive loan: the buyer pays the down payment and the asset
        moves from the seller into escrow.

        Raises:
            InvalidState: loan is not Inactive
            InsufficientDownPayment: supplied amount is below the required down payment
            CustodyTransferFailed: transfers failed, loan stays Inactive
        """
        with self.locks.hold(loan_id):
            loan = self.store.get(loan_id)
            self._require_state(loan, "start", (LoanState.INACTIVE,))

            if supplied_down_payment < loan.down_payment:
                raise InsufficientDownPayment(
                    f"Loan {loan_id} requires a down payment of {loan.down_payment}, got {supplied_down_payment}"
                )
            if supplied_down_payment > MAX_AMOUNT:
                raise ParameterOutOfRange(f"Down payment {supplied_down_payment} exceeds maximum amount")

            updated = replace(loan, buyer=buyer, start_time=self.clock(), state=LoanState.ACTIVE)
            escrow = escrow_account(loan_id)

            def settle() -> None:
                self.custody.pull_asset(loan.asset, loan.seller, escrow)
                self.custody.accept_value(buyer, supplied_down_payment, escrow)

            self._commit(updated, settle)

        self._publish(
            updated,
            [
                (
                    LOAN_STARTED,
                    {
                        "seller": updated.seller,
                        "buyer": buyer,
                        "down_payment": supplied_down_payment,
                        "start_time": updated.start_time,
                    },
                )
            ],
        )
        return updated

    def make_payment(self, loan_id: int, payer: str, amount: int) -> Loan:
        """
        Record a repayment from the buyer. Completes the loan in the same
        operation once the total repaid reaches the total due.

        Raises:
            InvalidState: loan is not Active or Extended
            Unauthorized: payer is not the buyer
            ParameterOutOfRange: amount is not positive
            ArithmeticOverflow: total repaid would exceed the maximum amount
        """
        with self.locks.hold(loan_id):
            loan = self.store.get(loan_id)
            self._require_state(loan, "pay", OPEN_STATES)

            if payer != loan.buyer:
                raise Unauthorized(f"{payer} is not the buyer of loan {loan_id}")
            if amount <= 0:
                raise ParameterOutOfRange(f"Payment must be positive, got {amount}")

            total_repaid = checked_add(loan.total_repaid, amount)
            total_due = self._total_due(loan)
            completed = total_repaid >= total_due

            updated = replace(
                loan,
                total_repaid=total_repaid,
                state=LoanState.COMPLETED if completed else loan.state,
            )
            escrow = escrow_account(loan_id)

            def settle() -> None:
                self.custody.accept_value(payer, amount, escrow)
                if completed:
                    self._complete_loan(updated, escrow)

            self._commit(updated, settle)

        events = [
            (
                PAYMENT_MADE,
                {"payer": payer, "amount": amount, "total_repaid": total_repaid, "total_due": total_due},
            )
        ]
        if completed:
            events.append(
                (
                    LOAN_COMPLETED,
                    {"seller": updated.seller, "buyer": updated.buyer, "total_repaid": total_repaid},
                )
            )
        self._publish(updated, events)
        return updated

    def extend_loan(self, loan_id: int) -> Loan:
        """
        Push the deadline back by one extension period.

        Raises:
            InvalidState: loan is not Active or Extended
            ExtensionLimitExceeded: all extensions already used
            InsufficientRepaymentForExtension: less than half the loan amount repaid
        """
        policy = self.registry.policy
        with self.locks.hold(loan_id):
            loan = self.store.get(loan_id)
            self._require_state(loan, "extend", EXTENDABLE_STATES)

            if loan.extensions_used >= policy.max_extensions:
                raise ExtensionLimitExceeded(
                    f"Loan {loan_id} already used {loan.extensions_used} of {policy.max_extensions} extensions"
                )
            if loan.total_repaid < loan.loan_amount // 2:
                raise InsufficientRepaymentForExtension(
                    f"Loan {loan_id} repaid {loan.total_repaid}, needs {loan.loan_amount // 2} to extend"
                )

            updated = replace(
                loan,
                duration=checked_add(loan.duration, policy.extension_period),
                extensions_used=loan.extensions_used + 1,
                state=LoanState.EXTENDED,
            )
            self._commit(updated, None)

        return updated

    def default_loan(self, loan_id: int) -> Loan:
        """
        Close an overdue loan: the asset returns to the seller, who also keeps
        the default fee; the rest of the buyer's repayments go back to the buyer.

        Raises:
            InvalidState: loan is not Active or Extended
            DeadlineNotReached: now is not past start_time + duration
            ArithmeticUnderflow: total repaid does not cover the default fee
            CustodyTransferFailed: transfers failed, loan stays open
        """
        with self.locks.hold(loan_id):
            loan = self.store.get(loan_id)
            self._require_state(loan, "default", OPEN_STATES)

            now = self.clock()
            if now <= loan.deadline:
                raise DeadlineNotReached(f"Loan {loan_id} deadline {loan.deadline} not passed at {now}")

            fee = calculate_default_fee(loan.down_payment, self.registry.policy.default_fee)
            refund = checked_sub(loan.total_repaid, fee)

            updated = replace(loan, state=LoanState.DEFAULTED)
            escrow = escrow_account(loan_id)

            def settle() -> None:
                self.custody.release_asset(loan.asset, loan.seller, escrow)
                if fee:
                    self.custody.pay_out(loan.seller, fee, escrow)
                if refund:
                    self.custody.pay_out(loan.buyer, refund, escrow)

            self._commit(updated, settle)

        self._publish(
            updated,
            [
                (
                    LOAN_DEFAULTED,
                    {"seller": updated.seller, "buyer": updated.buyer, "fee": fee, "refund": refund},
                )
            ],
        )
        return updated

    # Internals

    def _complete_loan(self, loan: Loan, escrow: str) -> None:
        """Settle a fully repaid loan: asset to the buyer, repayments to the seller"""
        # Only repayments are paid out; the down payment stays in escrow on completion and default
        self.custody.release_asset(loan.asset, loan.buyer, escrow)
        self.custody.pay_out(loan.seller, loan.total_repaid, escrow)

    def _total_due(self, loan: Loan) -> int:
        return calculate_total_due(
            loan.loan_amount,
            loan.interest_rate,
            loan.duration,
            loan.extensions_used,
            self.registry.policy.extension_period,
        )

    def _require_state(self, loan: Loan, operation: str, allowed: Iterable[LoanState]) -> None:
        if loan.state not in allowed:
            raise InvalidState(loan.id, loan.state.value, operation)

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        """
        One store commit per outermost operation on this thread.

        An operation started from a custody callback of another operation joins
        the enclosing unit: it never commits on its own, its events wait for the
        outer commit, and if it fails the whole unit is discarded.
        """
        depth = getattr(self._unit, "depth", 0)
        if depth == 0:
            self._unit.failed = False
            self._unit.deferred = []
        self._unit.depth = depth + 1
        try:
            yield
            if depth == 0:
                self.store.commit()
        except Exception:
            self._unit.failed = True
            if depth == 0:
                self.store.rollback()
            raise
        finally:
            self._unit.depth = depth

        if depth == 0:
            deferred, self._unit.deferred = self._unit.deferred, []
            for event in deferred:
                self.publisher.publish(event)

    def _commit(self, updated: Loan, settle: Optional[Callable[[], None]]) -> None:
        """Save first, then transfer; commit only if every transfer went through"""
        with self._unit_of_work():
            self.store.save(updated)
            if settle is None:
                return
            try:
                with self.custody.atomic():
                    settle()
                    if self._unit.failed:
                        raise CustodyTransferFailed(f"A nested operation during loan {updated.id} settlement failed")
            except CustodyTransferFailed:
                raise
            except Exception as e:
                raise CustodyTransferFailed(f"Custody transfer for loan {updated.id} failed: {e}") from e

    def _publish(self, loan: Loan, events: List[tuple]) -> None:
        timestamp = self.clock()
        for name, data in events:
            event = LoanEvent(name=name, loan_id=loan.id, timestamp=timestamp, data=data)
            if getattr(self._unit, "depth", 0):
                self._unit.deferred.append(event)
            else:
                self.publisher.publish(event)
