"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class LoanError(DomainException):
    """Base exception for loan lifecycle and accounting errors"""

    pass


class LoanNotFound(LoanError):
    """No loan exists under the requested identifier"""

    pass


class Unauthorized(LoanError):
    """Caller is not allowed to perform the operation"""

    pass


class ParameterOutOfRange(LoanError):
    """Down payment, duration, amount or asset parameters are outside policy bounds"""

    pass


class InvalidState(LoanError):
    """Operation is not permitted from the loan's current state"""

    def __init__(self, loan_id: int, state: str, operation: str):
        super().__init__(f"Cannot {operation} loan {loan_id} in state {state}")
        self.loan_id = loan_id
        self.state = state
        self.operation = operation


class InsufficientDownPayment(LoanError):
    """Supplied down payment is below the loan's required down payment"""

    pass


class InsufficientRepaymentForExtension(LoanError):
    """Buyer has not repaid half of the loan amount yet"""

    pass


class ExtensionLimitExceeded(LoanError):
    """All extensions for the loan have been used"""

    pass


class DeadlineNotReached(LoanError):
    """Loan cannot default before its repayment deadline has passed"""

    pass


class ArithmeticOverflow(LoanError):
    """Amount computation exceeded the native currency precision"""

    pass


class ArithmeticUnderflow(LoanError):
    """Amount computation went below zero"""

    pass


class CustodyTransferFailed(LoanError):
    """Custody collaborator could not execute the requested transfers"""

    pass
