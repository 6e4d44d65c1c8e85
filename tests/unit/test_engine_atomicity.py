"""Unit tests for transactional boundaries, re-entrancy and per-loan serialization"""

import threading
import pytest
from typing import List
from mortgage_gateway.domain.engine import LoanEngine
from mortgage_gateway.domain.events import WILDCARD, EventPublisher
from mortgage_gateway.domain.exceptions import CustodyTransferFailed, LoanNotFound
from mortgage_gateway.domain.models import AssetDescriptor, Loan, LoanState
from mortgage_gateway.domain.ports import escrow_account
from mortgage_gateway.infrastructure.clients.memory_custody import InMemoryCustody
from mortgage_gateway.infrastructure.database.memory_store import InMemoryLoanStore
from tests.conftest import BUYER, MARKETPLACE, ONE_YEAR


class FlakyCustody(InMemoryCustody):
    """In-memory custody that fails the named operations"""

    def __init__(self, fail_on: List[str], error: Exception):
        super().__init__()
        self.fail_on = fail_on
        self.error = error

    def accept_value(self, from_party, amount, escrow):
        super().accept_value(from_party, amount, escrow)
        if "accept_value" in self.fail_on:
            raise self.error

    def pay_out(self, to, amount, escrow):
        if "pay_out" in self.fail_on:
            raise self.error
        super().pay_out(to, amount, escrow)


def build_engine(custody, registry, clock, store=None, publisher=None) -> LoanEngine:
    return LoanEngine(
        registry=registry,
        custody=custody,
        store=store or InMemoryLoanStore(),
        publisher=publisher,
        clock=clock,
    )


def test_failed_down_payment_rolls_back_asset_pull(registry, clock, nft: AssetDescriptor):
    custody = FlakyCustody(["accept_value"], CustodyTransferFailed("payment rail down"))
    custody.deposit_asset(nft, MARKETPLACE)
    engine = build_engine(custody, registry, clock)
    loan_id = engine.create_loan(MARKETPLACE, nft, 1000, 20, ONE_YEAR)

    with pytest.raises(CustodyTransferFailed):
        engine.start_loan(loan_id, BUYER, 200)

    loan = engine.get_loan(loan_id)
    assert loan.state == LoanState.INACTIVE
    assert loan.buyer is None
    assert custody.holder_of(nft) == MARKETPLACE
    assert custody.balances[escrow_account(loan_id)] == 0


def test_unexpected_custody_error_becomes_transfer_failure(registry, clock, nft: AssetDescriptor):
    custody = FlakyCustody(["pay_out"], RuntimeError("connection reset"))
    custody.deposit_asset(nft, MARKETPLACE)
    engine = build_engine(custody, registry, clock)
    loan_id = engine.create_loan(MARKETPLACE, nft, 1000, 20, ONE_YEAR)
    engine.start_loan(loan_id, BUYER, 200)

    with pytest.raises(CustodyTransferFailed) as exc_info:
        engine.make_payment(loan_id, BUYER, 820)

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    loan = engine.get_loan(loan_id)
    assert loan.state == LoanState.ACTIVE
    assert loan.total_repaid == 0
    assert custody.balances[escrow_account(loan_id)] == 200
    assert custody.holder_of(nft) == escrow_account(loan_id)


def test_custody_callback_sees_updated_loan(registry, clock, nft: AssetDescriptor):
    observed: List[Loan] = []

    class ObservingCustody(InMemoryCustody):
        def pull_asset(self, asset, from_party, into):
            observed.append(engine.get_loan(loan_id))
            super().pull_asset(asset, from_party, into)

    custody = ObservingCustody()
    custody.deposit_asset(nft, MARKETPLACE)
    engine = build_engine(custody, registry, clock)
    loan_id = engine.create_loan(MARKETPLACE, nft, 1000, 20, ONE_YEAR)

    engine.start_loan(loan_id, BUYER, 200)

    assert observed[0].state == LoanState.ACTIVE
    assert observed[0].buyer == BUYER


def test_reentrant_start_is_rejected(registry, clock, nft: AssetDescriptor):
    """A second start issued from inside custody observes Active and fails the outer operation"""

    class ReentrantCustody(InMemoryCustody):
        def accept_value(self, from_party, amount, escrow):
            engine.start_loan(loan_id, "attacker", amount)

    custody = ReentrantCustody()
    custody.deposit_asset(nft, MARKETPLACE)
    engine = build_engine(custody, registry, clock)
    loan_id = engine.create_loan(MARKETPLACE, nft, 1000, 20, ONE_YEAR)

    with pytest.raises(CustodyTransferFailed):
        engine.start_loan(loan_id, BUYER, 200)

    loan = engine.get_loan(loan_id)
    assert loan.state == LoanState.INACTIVE
    assert custody.holder_of(nft) == MARKETPLACE


class NestedPaymentCustody(InMemoryCustody):
    """Takes a buyer payment on the same loan while the asset is being pulled into escrow"""

    def __init__(self, fail_down_payment: bool = False, swallow_nested_error: bool = False):
        super().__init__()
        self.fail_down_payment = fail_down_payment
        self.swallow_nested_error = swallow_nested_error
        self.engine = None
        self.loan_id = None
        self.nested_amount = 10

    def pull_asset(self, asset, from_party, into):
        super().pull_asset(asset, from_party, into)
        try:
            self.engine.make_payment(self.loan_id, BUYER, self.nested_amount)
        except CustodyTransferFailed:
            if not self.swallow_nested_error:
                raise

    def accept_value(self, from_party, amount, escrow):
        if amount == self.nested_amount and self.swallow_nested_error:
            raise RuntimeError("payment rail down")
        if amount == 200 and self.fail_down_payment:
            raise CustodyTransferFailed("payment rail down")
        super().accept_value(from_party, amount, escrow)


class CountingStore(InMemoryLoanStore):
    def __init__(self):
        super().__init__()
        self.commits = 0

    def commit(self):
        self.commits += 1
        super().commit()


def start_with_nested_payment(custody: NestedPaymentCustody, registry, clock, nft: AssetDescriptor, store=None):
    recorded: List[str] = []
    publisher = EventPublisher()
    publisher.subscribe(WILDCARD, lambda event: recorded.append(event.name))
    custody.deposit_asset(nft, MARKETPLACE)
    engine = build_engine(custody, registry, clock, store=store, publisher=publisher)
    custody.engine = engine
    custody.loan_id = engine.create_loan(MARKETPLACE, nft, 1000, 20, ONE_YEAR)
    return engine, custody.loan_id, recorded


def test_nested_operation_commits_with_outer_operation(registry, clock, nft: AssetDescriptor):
    store = CountingStore()
    custody = NestedPaymentCustody()
    engine, loan_id, recorded = start_with_nested_payment(custody, registry, clock, nft, store=store)
    commits_before = store.commits

    engine.start_loan(loan_id, BUYER, 200)

    loan = engine.get_loan(loan_id)
    assert loan.state == LoanState.ACTIVE
    assert loan.total_repaid == 10
    assert store.commits == commits_before + 1
    assert custody.balances[escrow_account(loan_id)] == 210
    assert recorded == ["LoanCreated", "PaymentMade", "LoanStarted"]


def test_outer_failure_discards_nested_operation(registry, clock, nft: AssetDescriptor):
    """The nested payment succeeded, then the down payment transfer failed"""
    custody = NestedPaymentCustody(fail_down_payment=True)
    engine, loan_id, recorded = start_with_nested_payment(custody, registry, clock, nft)

    with pytest.raises(CustodyTransferFailed):
        engine.start_loan(loan_id, BUYER, 200)

    loan = engine.get_loan(loan_id)
    assert loan.state == LoanState.INACTIVE
    assert loan.buyer is None
    assert loan.total_repaid == 0
    assert custody.holder_of(nft) == MARKETPLACE
    assert custody.balances[escrow_account(loan_id)] == 0
    assert recorded == ["LoanCreated"]


def test_swallowed_nested_failure_fails_outer_operation(registry, clock, nft: AssetDescriptor):
    custody = NestedPaymentCustody(swallow_nested_error=True)
    engine, loan_id, recorded = start_with_nested_payment(custody, registry, clock, nft)

    with pytest.raises(CustodyTransferFailed):
        engine.start_loan(loan_id, BUYER, 200)

    loan = engine.get_loan(loan_id)
    assert loan.state == LoanState.INACTIVE
    assert loan.total_repaid == 0
    assert custody.holder_of(nft) == MARKETPLACE
    assert recorded == ["LoanCreated"]


def test_concurrent_payments_on_one_loan_are_serialized(registry, clock, nft: AssetDescriptor):
    custody = InMemoryCustody()
    custody.deposit_asset(nft, MARKETPLACE)
    engine = build_engine(custody, registry, clock)
    loan_id = engine.create_loan(MARKETPLACE, nft, 1_000_000, 20, ONE_YEAR)
    engine.start_loan(loan_id, BUYER, 200_000)

    def pay() -> None:
        for _ in range(25):
            engine.make_payment(loan_id, BUYER, 10)

    threads = [threading.Thread(target=pay) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert engine.get_loan(loan_id).total_repaid == 8 * 25 * 10
    assert custody.balances[escrow_account(loan_id)] == 200_000 + 2000


def test_failing_event_handler_does_not_undo_operation(registry, clock, nft: AssetDescriptor):
    publisher = EventPublisher()

    def broken(event):
        raise ValueError("subscriber bug")

    publisher.subscribe("LoanStarted", broken)
    custody = InMemoryCustody()
    custody.deposit_asset(nft, MARKETPLACE)
    engine = build_engine(custody, registry, clock, publisher=publisher)
    loan_id = engine.create_loan(MARKETPLACE, nft, 1000, 20, ONE_YEAR)

    engine.start_loan(loan_id, BUYER, 200)

    assert engine.get_loan(loan_id).state == LoanState.ACTIVE


def test_unknown_event_subscription_rejected():
    with pytest.raises(ValueError):
        EventPublisher().subscribe("LoanRefinanced", print)


def test_memory_store_rollback_discards_pending(loan_engine: LoanEngine, standard_loan: int, store: InMemoryLoanStore):
    loan = store.get(standard_loan)
    loan.state = LoanState.ACTIVE
    store.save(loan)
    assert store.get(standard_loan).state == LoanState.ACTIVE

    store.rollback()
    assert store.get(standard_loan).state == LoanState.INACTIVE


def test_memory_store_never_reuses_ids(store: InMemoryLoanStore, nft: AssetDescriptor):
    draft = Loan(id=0, seller=MARKETPLACE, asset=nft, principal=10, down_payment=1, loan_amount=9, interest_rate=25, duration=ONE_YEAR)
    first = store.add(draft)
    store.rollback()
    second = store.add(draft)
    store.commit()

    assert second.id == first.id + 1
    with pytest.raises(LoanNotFound):
        store.get(first.id)


def test_memory_store_pending_is_private_to_thread(store: InMemoryLoanStore, nft: AssetDescriptor):
    draft = Loan(id=0, seller=MARKETPLACE, asset=nft, principal=10, down_payment=1, loan_amount=9, interest_rate=25, duration=ONE_YEAR)
    loan = store.add(draft)
    seen = []

    thread = threading.Thread(target=lambda: seen.append(store.list_by_party(MARKETPLACE)))
    thread.start()
    thread.join()

    assert seen == [[]]
    store.commit()
    assert [l.id for l in store.list_by_party(MARKETPLACE)] == [loan.id]
