"""Data access layer for loan records"""

from typing import List
from sqlalchemy.orm import Session
from mortgage_gateway.infrastructure.database.models import LoanRecord
from mortgage_gateway.domain.exceptions import LoanNotFound
from mortgage_gateway.domain.models import AssetDescriptor, AssetKind, Loan, LoanState


def record_to_loan(record: LoanRecord) -> Loan:
    """Build a detached domain loan from an ORM row"""
    return Loan(
        id=record.id,
        seller=record.seller,
        asset=AssetDescriptor(
            kind=AssetKind(record.asset_kind),
            contract=record.asset_contract,
            token_id=record.asset_token_id,
            quantity=record.asset_quantity,
        ),
        principal=record.principal,
        down_payment=record.down_payment,
        loan_amount=record.loan_amount,
        interest_rate=record.interest_rate,
        duration=record.duration,
        buyer=record.buyer,
        extensions_used=record.extensions_used,
        start_time=record.start_time,
        total_repaid=record.total_repaid,
        state=LoanState(record.state),
    )


class LoanRepository:
    """
    SQLAlchemy-backed loan store.

    `save` flushes without committing, so the change is visible inside the
    session while custody transfers run and disappears on rollback.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, loan: Loan) -> Loan:
        """Persist a new loan; the database assigns the identifier"""
        record = LoanRecord(
            seller=loan.seller,
            asset_kind=loan.asset.kind.value,
            asset_contract=loan.asset.contract,
            asset_token_id=loan.asset.token_id,
            asset_quantity=loan.asset.quantity,
            principal=loan.principal,
            down_payment=loan.down_payment,
            loan_amount=loan.loan_amount,
            interest_rate=loan.interest_rate,
        )
        self._apply_lifecycle(record, loan)
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return record_to_loan(record)

    def get(self, loan_id: int) -> Loan:
        record = self.db.get(LoanRecord, loan_id)
        if record is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return record_to_loan(record)

    def save(self, loan: Loan) -> None:
        record = self.db.get(LoanRecord, loan.id)
        if record is None:
            raise LoanNotFound(f"Loan {loan.id} not found")
        self._apply_lifecycle(record, loan)
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def list_by_party(self, party: str, limit: int = 20) -> List[Loan]:
        """Most recent loans where the party is seller or buyer"""
        records = (
            self.db.query(LoanRecord)
            .filter((LoanRecord.seller == party) | (LoanRecord.buyer == party))
            .order_by(LoanRecord.id.desc())
            .limit(limit)
            .all()
        )
        return [record_to_loan(r) for r in records]

    def _apply_lifecycle(self, record: LoanRecord, loan: Loan) -> None:
        record.buyer = loan.buyer
        record.duration = loan.duration
        record.extensions_used = loan.extensions_used
        record.start_time = loan.start_time
        record.total_repaid = loan.total_repaid
        record.state = loan.state.value
