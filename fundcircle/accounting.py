"""Loan accounting rules for the Fund Circle.

Pure functions with no side effects (no database access):
- The 70/30 recoverable / waiver split
- Flat installment schedule generation
- Marking installments paid and summing repayments

Every loan is split into a recoverable portion, repaid through `term`
monthly installments, and a waiver portion that is gifted and never
repaid. Persistence is handled by the services package.
"""
import logging
import math
import numbers
import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from dateutil.relativedelta import relativedelta

from fundcircle.config import (
    CURRENCY_PLACES,
    MAX_LOAN_TERM,
    MIN_LOAN_TERM,
    RECONCILE_LAST_INSTALLMENT,
    RECOVERABLE_RATIO,
)
from fundcircle.data_structures import (
    Installment,
    InstallmentStatus,
    Loan,
    LoanSplit,
)
from fundcircle.exceptions import (
    InstallmentNotFoundError,
    StateConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_CENT = Decimal(1).scaleb(-CURRENCY_PLACES)


def round_currency(value) -> float:
    """Round half-up to whole cents."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def validate_loan_terms(total_amount, term):
    """Reject amounts and terms that cannot produce a schedule.

    Raises:
        ValidationError: amount is not a positive number, or term is not a
            positive whole number of months.
    """
    if isinstance(total_amount, bool) or not isinstance(total_amount, numbers.Real):
        raise ValidationError("Loan amount must be a number", {'amount': total_amount})
    if not math.isfinite(total_amount):
        raise ValidationError("Loan amount must be a finite number", {'amount': total_amount})
    if not total_amount > 0:
        raise ValidationError("Loan amount must be greater than zero", {'amount': total_amount})
    if isinstance(term, bool) or not isinstance(term, numbers.Integral):
        raise ValidationError("Loan term must be a whole number of months", {'term': term})
    if term < MIN_LOAN_TERM:
        raise ValidationError(f"Loan term must be at least {MIN_LOAN_TERM} month(s)", {'term': term})
    if term > MAX_LOAN_TERM:
        raise ValidationError(f"Loan term cannot exceed {MAX_LOAN_TERM} months", {'term': term})


def compute_split(total_amount, term) -> LoanSplit:
    """Split a loan into its recoverable and waived portions.

    The recoverable portion is rounded to cents and the waiver takes the
    rest, so the two always add back up to the loan amount. The waiver is
    only rounded when the amount itself is in whole cents.

    Args:
        total_amount: Amount handed to the member.
        term: Repayment term in months.

    Returns:
        LoanSplit with the recoverable, waiver and per-installment amounts.
    """
    validate_loan_terms(total_amount, term)
    recoverable = round_currency(total_amount * RECOVERABLE_RATIO)
    waiver = total_amount - recoverable
    if round_currency(total_amount) == total_amount:
        waiver = round_currency(waiver)
    monthly = round_currency(recoverable / term)
    return LoanSplit(recoverable_amount=recoverable, waiver_amount=waiver, monthly_amount=monthly)


def build_installment_schedule(recoverable_amount, term, issued_date: datetime,
                               reconcile_last: bool = None) -> List[Installment]:
    """Generate the flat monthly schedule for a loan.

    Installment i (1-indexed) falls due i calendar months after issuance.
    Month ends are clamped, so Jan 31 is followed by the last day of
    February.

    Args:
        recoverable_amount: Amount to be repaid across the schedule.
        term: Number of monthly installments.
        issued_date: Loan issuance timestamp.
        reconcile_last: Let the last installment absorb the rounding
            remainder (default: RECONCILE_LAST_INSTALLMENT).

    Returns:
        List of `term` pending installments.
    """
    validate_loan_terms(recoverable_amount, term)
    if reconcile_last is None:
        reconcile_last = RECONCILE_LAST_INSTALLMENT

    monthly = round_currency(recoverable_amount / term)
    batch = uuid.uuid4().hex[:12]
    schedule = [
        Installment(
            id=f"inst-{batch}-{i}",
            amount=monthly,
            due_date=issued_date + relativedelta(months=i + 1),
            status=InstallmentStatus.PENDING,
        )
        for i in range(term)
    ]

    if reconcile_last:
        remainder = round_currency(recoverable_amount - monthly * term)
        if remainder:
            schedule[-1].amount = round_currency(monthly + remainder)
    return schedule


def build_loan(member_id: str, member_name: str, total_amount, term,
               issued_date: datetime = None, loan_id: str = None) -> Loan:
    """Create a new, fully scheduled loan.

    Raises:
        ValidationError: Missing member reference or invalid terms.
    """
    if not member_id:
        raise ValidationError("Loan requires a member", {'member_id': member_id})
    if issued_date is None:
        issued_date = datetime.now()

    split = compute_split(total_amount, term)
    loan = Loan(
        id=loan_id or uuid.uuid4().hex,
        member_id=member_id,
        member_name=member_name,
        total_amount=float(total_amount),
        recoverable_amount=split.recoverable_amount,
        waiver_amount=split.waiver_amount,
        term=int(term),
        issued_date=issued_date,
        installments=build_installment_schedule(split.recoverable_amount, term, issued_date),
    )
    logger.debug(f"Built loan {loan.id}: {total_amount} over {term}m, "
                 f"{split.monthly_amount}/month recoverable")
    return loan


def mark_installment_paid(loan: Loan, installment_id: str, paid_date: datetime = None) -> Loan:
    """Return a copy of the loan with one installment marked PAID.

    Raises:
        InstallmentNotFoundError: The installment is not part of the loan.
        StateConflictError: The installment was already paid.
    """
    target = loan.find_installment(installment_id)
    if target is None:
        raise InstallmentNotFoundError(installment_id, loan.id)
    if target.is_paid:
        raise StateConflictError(
            f"Installment '{installment_id}' is already paid",
            current_status=target.status,
            details={'loan_id': loan.id, 'paid_date': target.paid_date},
        )

    if paid_date is None:
        paid_date = datetime.now()
    installments = [
        replace(inst, status=InstallmentStatus.PAID, paid_date=paid_date) if inst.id == installment_id
        else replace(inst)
        for inst in loan.installments
    ]
    return replace(loan, installments=installments)


def amount_repaid(loan: Loan) -> float:
    """Sum of the PAID installments of a loan."""
    return round_currency(sum(inst.amount for inst in loan.paid_installments))
