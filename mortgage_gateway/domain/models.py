"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from mortgage_gateway.domain.exceptions import ParameterOutOfRange


class LoanState(str, Enum):
    """Lifecycle states of a loan"""

    INACTIVE = "Inactive"
    ACTIVE = "Active"
    EXTENDED = "Extended"
    COMPLETED = "Completed"
    DEFAULTED = "Defaulted"

    @property
    def is_terminal(self) -> bool:
        return self in (LoanState.COMPLETED, LoanState.DEFAULTED)


class AssetKind(str, Enum):
    """Kind of custodied asset"""

    FUNGIBLE = "fungible"  # token balance
    UNIQUE = "unique"  # single identified item


@dataclass(frozen=True)
class AssetDescriptor:
    """Reference to the asset held in escrow while a loan is open"""

    kind: AssetKind
    contract: str
    token_id: Optional[int] = None
    quantity: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.contract:
            raise ParameterOutOfRange("Asset contract is required")
        if self.kind == AssetKind.FUNGIBLE:
            if self.quantity is None or self.quantity <= 0:
                raise ParameterOutOfRange("Fungible asset requires a positive quantity")
            if self.token_id is not None:
                raise ParameterOutOfRange("Fungible asset cannot carry a token id")
        else:
            if self.token_id is None or self.token_id < 0:
                raise ParameterOutOfRange("Unique asset requires a token id")
            if self.quantity is not None:
                raise ParameterOutOfRange("Unique asset cannot carry a quantity")

    @property
    def key(self) -> str:
        """Stable identifier of the asset inside a custody ledger"""
        if self.kind == AssetKind.FUNGIBLE:
            return self.contract
        return f"{self.contract}#{self.token_id}"


@dataclass
class Loan:
    """
    Loan record owned by the engine.

    Creation-time terms (principal, down_payment, loan_amount, interest_rate)
    never change. Lifecycle fields change only through engine operations.
    Durations and timestamps are in seconds.
    """

    id: int
    seller: str
    asset: AssetDescriptor
    principal: int
    down_payment: int
    loan_amount: int
    interest_rate: int  # per-mille per year
    duration: int
    buyer: Optional[str] = None
    extensions_used: int = 0
    start_time: Optional[int] = None
    total_repaid: int = 0
    state: LoanState = LoanState.INACTIVE

    @property
    def deadline(self) -> Optional[int]:
        """Timestamp after which the loan may be defaulted"""
        if self.start_time is None:
            return None
        return self.start_time + self.duration


@dataclass(frozen=True)
class LoanEvent:
    """Observable lifecycle event, emitted once per transition"""

    name: str  # LoanCreated | LoanStarted | PaymentMade | LoanCompleted | LoanDefaulted
    loan_id: int
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Installment:
    """Single payment in a suggested repayment schedule"""

    due_time: int
    amount: int


LOAN_CREATED = "LoanCreated"
LOAN_STARTED = "LoanStarted"
PAYMENT_MADE = "PaymentMade"
LOAN_COMPLETED = "LoanCompleted"
LOAN_DEFAULTED = "LoanDefaulted"

EVENT_NAMES: List[str] = [LOAN_CREATED, LOAN_STARTED, PAYMENT_MADE, LOAN_COMPLETED, LOAN_DEFAULTED]
