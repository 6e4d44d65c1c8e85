"""Mapping of domain errors to HTTP responses"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Type

from fastapi import HTTPException
from sqlalchemy.orm import Session

from mortgage_gateway.domain.exceptions import (
    ArithmeticOverflow,
    ArithmeticUnderflow,
    CustodyTransferFailed,
    DeadlineNotReached,
    ExtensionLimitExceeded,
    InsufficientDownPayment,
    InsufficientRepaymentForExtension,
    InvalidState,
    LoanError,
    LoanNotFound,
    ParameterOutOfRange,
    Unauthorized,
)
from mortgage_gateway.infrastructure.observability.metrics import record_operation

STATUS_BY_ERROR: Dict[Type[LoanError], int] = {
    Unauthorized: 403,
    LoanNotFound: 404,
    InvalidState: 409,
    DeadlineNotReached: 409,
    ParameterOutOfRange: 422,
    InsufficientDownPayment: 422,
    InsufficientRepaymentForExtension: 422,
    ExtensionLimitExceeded: 422,
    ArithmeticOverflow: 422,
    ArithmeticUnderflow: 422,
    CustodyTransferFailed: 502,
}


@contextmanager
def loan_operation(operation: str, request_id: str, db: Session) -> Iterator[None]:
    """
    Run an engine operation for an endpoint.

    Domain errors become HTTP errors carrying the error kind; the session is
    rolled back on any failure and the outcome is counted.
    """
    try:
        yield
    except HTTPException:
        db.rollback()
        raise
    except LoanError as e:
        db.rollback()
        record_operation(operation, e)
        status_code = STATUS_BY_ERROR.get(type(e), 400)
        level = logging.ERROR if status_code >= 500 else logging.WARNING
        logging.log(
            level,
            f"{operation} rejected: {e}",
            extra={"request_id": request_id, "operation": operation, "error": type(e).__name__},
        )
        raise HTTPException(status_code=status_code, detail={"error": type(e).__name__, "message": str(e)})
    except Exception as e:
        db.rollback()
        record_operation(operation, e)
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id, "operation": operation})
        raise HTTPException(status_code=500, detail={"error": "InternalError", "message": "Internal server error"})
    else:
        record_operation(operation)
