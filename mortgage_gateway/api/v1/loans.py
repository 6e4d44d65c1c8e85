"""/v1/loans - loan origination, activation, repayment, extension and default"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from mortgage_gateway.api.v1.errors import loan_operation
from mortgage_gateway.api.v1.schemas import (
    CreateLoanRequest,
    CreateLoanResponse,
    InstallmentSchema,
    LoanListResponse,
    LoanResponse,
    PaymentRequest,
    ScheduleResponse,
    StartLoanRequest,
    TotalDueResponse,
)
from mortgage_gateway.api.dependencies import get_caller, get_engine, get_loan_repository, get_request_id
from mortgage_gateway.domain.engine import LoanEngine
from mortgage_gateway.domain.installments import remaining_schedule
from mortgage_gateway.domain.models import AssetDescriptor
from mortgage_gateway.infrastructure.database.repositories import LoanRepository
from mortgage_gateway.infrastructure.database.session import get_db
from mortgage_gateway.utils.time_utils import days

router = APIRouter()


def _loan_response(engine: LoanEngine, loan_id: int) -> LoanResponse:
    loan = engine.get_loan(loan_id)
    return LoanResponse.from_loan(loan, engine.get_total_due(loan_id))


@router.post("/loans", response_model=CreateLoanResponse, status_code=201)
def create_loan(
    request_body: CreateLoanRequest,
    request: Request,
    caller: str = Depends(get_caller),
    db: Session = Depends(get_db),
    engine: LoanEngine = Depends(get_engine),
):
    """
    Offer an asset on credit. The caller becomes the seller and must be an
    authorized originator.
    """
    with loan_operation("create_loan", get_request_id(request), db):
        asset = AssetDescriptor(**request_body.asset.model_dump())
        loan_id = engine.create_loan(
            originator=caller,
            asset=asset,
            principal=request_body.principal,
            down_payment_percent=request_body.down_payment_percent,
            duration=days(request_body.duration_days),
        )
        loan = engine.get_loan(loan_id)
        total_due = engine.get_total_due(loan_id)

    return CreateLoanResponse(
        loan_id=loan.id,
        down_payment=loan.down_payment,
        loan_amount=loan.loan_amount,
        interest_rate=loan.interest_rate,
        total_due=total_due,
    )


@router.get("/loans", response_model=LoanListResponse)
def list_loans(
    request: Request,
    party: str = Query(..., description="Seller or buyer identity"),
    db: Session = Depends(get_db),
    repository: LoanRepository = Depends(get_loan_repository),
    engine: LoanEngine = Depends(get_engine),
):
    """Recent loans where the party is seller or buyer"""
    with loan_operation("list_loans", get_request_id(request), db):
        loans = repository.list_by_party(party, limit=20)
        return LoanListResponse(
            party=party,
            loans=[LoanResponse.from_loan(loan, engine.get_total_due(loan.id)) for loan in loans],
        )


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: int, request: Request, db: Session = Depends(get_db), engine: LoanEngine = Depends(get_engine)):
    """Loan terms, lifecycle fields and live total due"""
    with loan_operation("get_loan", get_request_id(request), db):
        return _loan_response(engine, loan_id)


@router.post("/loans/{loan_id}/start", response_model=LoanResponse)
def start_loan(
    loan_id: int,
    request_body: StartLoanRequest,
    request: Request,
    caller: str = Depends(get_caller),
    db: Session = Depends(get_db),
    engine: LoanEngine = Depends(get_engine),
):
    """Buyer (the caller) supplies the down payment; the asset moves into escrow"""
    with loan_operation("start_loan", get_request_id(request), db):
        engine.start_loan(loan_id, buyer=caller, supplied_down_payment=request_body.down_payment)
        return _loan_response(engine, loan_id)


@router.post("/loans/{loan_id}/payments", response_model=LoanResponse)
def make_payment(
    loan_id: int,
    request_body: PaymentRequest,
    request: Request,
    caller: str = Depends(get_caller),
    db: Session = Depends(get_db),
    engine: LoanEngine = Depends(get_engine),
):
    """Repayment from the buyer; completes the loan once the total due is reached"""
    with loan_operation("make_payment", get_request_id(request), db):
        engine.make_payment(loan_id, payer=caller, amount=request_body.amount)
        return _loan_response(engine, loan_id)


@router.post("/loans/{loan_id}/extend", response_model=LoanResponse)
def extend_loan(loan_id: int, request: Request, db: Session = Depends(get_db), engine: LoanEngine = Depends(get_engine)):
    """Extend the deadline by one extension period"""
    with loan_operation("extend_loan", get_request_id(request), db):
        engine.extend_loan(loan_id)
        return _loan_response(engine, loan_id)


@router.post("/loans/{loan_id}/default", response_model=LoanResponse)
def default_loan(loan_id: int, request: Request, db: Session = Depends(get_db), engine: LoanEngine = Depends(get_engine)):
    """Default an overdue loan and settle seller and buyer"""
    with loan_operation("default_loan", get_request_id(request), db):
        engine.default_loan(loan_id)
        return _loan_response(engine, loan_id)


@router.get("/loans/{loan_id}/total-due", response_model=TotalDueResponse)
def get_total_due(loan_id: int, request: Request, db: Session = Depends(get_db), engine: LoanEngine = Depends(get_engine)):
    """Live total due under the current duration and extensions"""
    with loan_operation("get_total_due", get_request_id(request), db):
        loan = engine.get_loan(loan_id)
        total_due = engine.get_total_due(loan_id)

    return TotalDueResponse(
        loan_id=loan_id,
        total_due=total_due,
        total_repaid=loan.total_repaid,
        outstanding=max(total_due - loan.total_repaid, 0),
    )


@router.get("/loans/{loan_id}/schedule", response_model=ScheduleResponse)
def get_schedule(loan_id: int, request: Request, db: Session = Depends(get_db), engine: LoanEngine = Depends(get_engine)):
    """
    Suggested installments for the outstanding amount until the deadline.

    Returns:
        Equal installments every 30 days; empty once the loan is fully repaid
    """
    with loan_operation("get_schedule", get_request_id(request), db):
        loan = engine.get_loan(loan_id)
        total_due = engine.get_total_due(loan_id)

    if loan.state.is_terminal:
        installments = []
    else:
        installments = remaining_schedule(loan, total_due, engine.clock())

    return ScheduleResponse(
        loan_id=loan_id,
        outstanding=0 if loan.state.is_terminal else max(total_due - loan.total_repaid, 0),
        installments=[InstallmentSchema(due_time=i.due_time, amount=i.amount) for i in installments],
    )
