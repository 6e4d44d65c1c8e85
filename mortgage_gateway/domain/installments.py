"""Suggested repayment schedule for an open loan"""

from typing import List
from mortgage_gateway.domain.models import Installment, Loan
from mortgage_gateway.utils.time_utils import days, generate_time_range

INSTALLMENT_INTERVAL = days(30)


def generate_repayment_schedule(
    total_due: int,
    start_time: int,
    duration: int,
    interval: int = INSTALLMENT_INTERVAL,
) -> List[Installment]:
    """
    Split the total due into equal installments over the contracted duration.

    The schedule is a quote only; the engine accepts any payment amounts
    and only checks the total against the total due.

    Requirements:
    - One installment per full interval of the duration (at least one)
    - Installments fall due every `interval` seconds after start
    - Last installment absorbs the rounding remainder

    Args:
        total_due: Amount still owed
        start_time: Loan start timestamp
        duration: Contracted duration in seconds
        interval: Seconds between installments (default 30 days)

    Example:
        820 over 365 days -> 12 installments: 11 x 68, last 72
    """
    if total_due <= 0:
        return []

    num_installments = max(duration // interval, 1)

    base_amount = total_due // num_installments
    remainder = total_due % num_installments

    due_times = generate_time_range(start_time, interval, num_installments)

    installments = []
    for i, due_time in enumerate(due_times):
        # Last installment absorbs remainder to ensure exact total
        amount = base_amount + (remainder if i == num_installments - 1 else 0)
        installments.append(Installment(due_time=due_time, amount=amount))

    return installments


def remaining_schedule(loan: Loan, total_due: int, now: int) -> List[Installment]:
    """Schedule for what is left to pay, from now until the deadline"""
    outstanding = max(total_due - loan.total_repaid, 0)
    start = loan.start_time if loan.start_time is not None else now
    remaining_duration = max(start + loan.duration - now, 0)
    return generate_repayment_schedule(outstanding, max(start, now), remaining_duration)
