"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from mortgage_gateway.domain.models import AssetKind, Loan


class AssetSchema(BaseModel):
    """Asset placed in escrow for the loan"""

    kind: AssetKind
    contract: str = Field(..., min_length=1, description="Token or collection identifier")
    token_id: Optional[int] = Field(None, ge=0, description="Item id for unique assets")
    quantity: Optional[int] = Field(None, gt=0, description="Amount for fungible assets")


class CreateLoanRequest(BaseModel):
    """Request body for POST /v1/loans"""

    asset: AssetSchema
    principal: int = Field(..., gt=0, description="Total sale price")
    down_payment_percent: int = Field(..., description="Down payment as whole percent of principal")
    duration_days: int = Field(..., gt=0, description="Contracted repayment term in days")


class CreateLoanResponse(BaseModel):
    """Response for POST /v1/loans"""

    loan_id: int
    down_payment: int
    loan_amount: int
    interest_rate: int
    total_due: int


class StartLoanRequest(BaseModel):
    """Request body for POST /v1/loans/{loan_id}/start"""

    down_payment: int = Field(..., gt=0, description="Down payment supplied by the buyer")


class PaymentRequest(BaseModel):
    """Request body for POST /v1/loans/{loan_id}/payments"""

    amount: int = Field(..., gt=0, description="Repayment amount")


class LoanResponse(BaseModel):
    """Full loan record"""

    loan_id: int
    state: str
    seller: str
    buyer: Optional[str] = None
    asset: AssetSchema
    principal: int
    down_payment: int
    loan_amount: int
    interest_rate: int
    duration: int
    extensions_used: int
    start_time: Optional[int] = None
    deadline: Optional[int] = None
    total_repaid: int
    total_due: int

    @classmethod
    def from_loan(cls, loan: Loan, total_due: int) -> "LoanResponse":
        return cls(
            loan_id=loan.id,
            state=loan.state.value,
            seller=loan.seller,
            buyer=loan.buyer,
            asset=AssetSchema(
                kind=loan.asset.kind,
                contract=loan.asset.contract,
                token_id=loan.asset.token_id,
                quantity=loan.asset.quantity,
            ),
            principal=loan.principal,
            down_payment=loan.down_payment,
            loan_amount=loan.loan_amount,
            interest_rate=loan.interest_rate,
            duration=loan.duration,
            extensions_used=loan.extensions_used,
            start_time=loan.start_time,
            deadline=loan.deadline,
            total_repaid=loan.total_repaid,
            total_due=total_due,
        )


class LoanListResponse(BaseModel):
    """Response for GET /v1/loans"""

    party: str
    loans: List[LoanResponse]


class TotalDueResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}/total-due"""

    loan_id: int
    total_due: int
    total_repaid: int
    outstanding: int


class InstallmentSchema(BaseModel):
    """Single installment in a suggested schedule"""

    due_time: int
    amount: int


class ScheduleResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}/schedule"""

    loan_id: int
    outstanding: int
    installments: List[InstallmentSchema]


class ConstantsResponse(BaseModel):
    """Response for GET /v1/registry/constants"""

    constants: Dict[str, int]


class InterestRateResponse(BaseModel):
    """Response for GET /v1/registry/interest-rate"""

    duration_days: int
    interest_rate: int


class OriginatorRequest(BaseModel):
    """Request body for PUT /v1/registry/originators/{identity}"""

    authorized: bool


class OriginatorResponse(BaseModel):
    """Originator authorization status"""

    identity: str
    authorized: bool
