"""Interest and total-due calculation with checked integer arithmetic"""

from mortgage_gateway.domain.exceptions import ArithmeticOverflow, ArithmeticUnderflow
from mortgage_gateway.utils.time_utils import days

# Native currency precision: unsigned 256-bit amounts
MAX_AMOUNT = 2**256 - 1

YEAR = days(365)
RATE_DENOMINATOR = 1000  # interest rates and fees are per-mille
EXTENSION_PERIOD = days(30)


def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > MAX_AMOUNT:
        raise ArithmeticOverflow(f"{a} + {b} exceeds maximum amount")
    return result


def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise ArithmeticUnderflow(f"{a} - {b} is negative")
    return a - b


def checked_mul(a: int, b: int) -> int:
    result = a * b
    if result > MAX_AMOUNT:
        raise ArithmeticOverflow(f"{a} * {b} exceeds maximum amount")
    return result


def effective_duration(duration: int, extensions_used: int, extension_period: int = EXTENSION_PERIOD) -> int:
    """Contracted duration plus one extension period per extension used"""
    return checked_add(duration, checked_mul(extensions_used, extension_period))


def calculate_total_due(
    loan_amount: int,
    interest_rate: int,
    duration: int,
    extensions_used: int = 0,
    extension_period: int = EXTENSION_PERIOD,
) -> int:
    """
    Total amount the buyer owes over the contracted term.

    Simple (non-compounding) interest prorated over the effective duration,
    not over elapsed wall-clock time:

        total_due = loan_amount + loan_amount * rate * effective / (365d * 1000)

    Division floors. Any intermediate value above MAX_AMOUNT raises
    ArithmeticOverflow instead of wrapping.

    Example:
        800 financed at 25 per-mille for 365 days -> 800 + 20 = 820
    """
    effective = effective_duration(duration, extensions_used, extension_period)
    interest = checked_mul(checked_mul(loan_amount, interest_rate), effective) // (YEAR * RATE_DENOMINATOR)
    return checked_add(loan_amount, interest)


def calculate_default_fee(down_payment: int, fee_rate: int) -> int:
    """Fee kept by the seller on default, per-mille of the down payment"""
    return checked_mul(down_payment, fee_rate) // RATE_DENOMINATOR
