"""SQLAlchemy ORM models for loan records"""

from sqlalchemy import Column, String, Integer, BigInteger, DateTime, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class UintString(TypeDecorator):
    """Unsigned integer stored as decimal text, wide enough for 256-bit amounts"""

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


class LoanRecord(Base):
    """Loan terms fixed at creation plus mutable lifecycle fields"""

    __tablename__ = "mortgage_loan"
    # Identifiers are never handed out twice, even after deletes
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Creation-time terms
    seller = Column(Text, nullable=False, index=True)
    asset_kind = Column(String(16), nullable=False)
    asset_contract = Column(Text, nullable=False)
    asset_token_id = Column(UintString, nullable=True)
    asset_quantity = Column(UintString, nullable=True)
    principal = Column(UintString, nullable=False)
    down_payment = Column(UintString, nullable=False)
    loan_amount = Column(UintString, nullable=False)
    interest_rate = Column(Integer, nullable=False)

    # Lifecycle
    buyer = Column(Text, nullable=True, index=True)
    duration = Column(Integer, nullable=False)
    extensions_used = Column(Integer, nullable=False, default=0)
    start_time = Column(BigInteger, nullable=True)
    total_repaid = Column(UintString, nullable=False, default=0)
    state = Column(String(16), nullable=False, default="Inactive")

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
