"""Loan lifecycle service for the Fund Circle.

This service handles all loan-related operations including:
- Direct loan issuance by an admin
- Installment repayment
- Editing a loan's amount or term before repayment starts
- Loan deletion
"""
import logging
from dataclasses import replace

from fundcircle.accounting import (
    build_installment_schedule,
    build_loan,
    compute_split,
    mark_installment_paid,
    validate_loan_terms,
)
from fundcircle.data_structures import Loan, LoanStatus
from fundcircle.exceptions import StateConflictError, ValidationError
from fundcircle.repositories import LoanRepository, UserRepository
from fundcircle.retry import with_retries

logger = logging.getLogger(__name__)


class LoanService:
    """Handles loan lifecycle operations.

    All accounting is delegated to fundcircle.accounting; this class reads
    and writes loans through the LoanRepository, whose version check turns
    concurrent edits of the same loan into retries instead of lost updates.
    """

    def __init__(self, db_manager):
        """Initialize LoanService.

        Args:
            db_manager: DatabaseManager instance for data persistence.
        """
        self.db = db_manager
        self.loans = LoanRepository(db_manager)
        self.users = UserRepository(db_manager)

    @with_retries()
    def issue_loan(self, member_id, amount, term, issued_date=None) -> Loan:
        """Issue a loan directly to a member.

        Args:
            member_id: ID of the member receiving the loan.
            amount: Total amount handed out.
            term: Repayment term in months.
            issued_date: Issue timestamp (default: now).

        Returns:
            The new, persisted Loan.

        Raises:
            ValidationError: Invalid amount/term or missing member id.
            MemberNotFoundError: The member does not exist.
        """
        validate_loan_terms(amount, term)
        if not member_id:
            raise ValidationError("Loan requires a member", {'member_id': member_id})
        member = self.users.require(member_id)

        loan = build_loan(member.id, member.name, amount, term, issued_date)
        self.loans.insert(loan)
        logger.info(f"Issued loan {loan.id} to {member.id}: {loan.total_amount} over {loan.term}m "
                    f"(recoverable {loan.recoverable_amount}, waiver {loan.waiver_amount})")
        return loan

    @with_retries()
    def pay_installment(self, loan_id, installment_id, paid_date=None) -> Loan:
        """Mark one installment of a loan as paid.

        The loan is re-read on every attempt, so if another payment landed
        first the installment is checked again against fresh state.

        Returns:
            The saved Loan; its status is COMPLETED once every installment
            is paid.

        Raises:
            LoanNotFoundError: Unknown loan.
            InstallmentNotFoundError: The installment is not on this loan.
            StateConflictError: The installment was already paid.
        """
        loan = self.loans.require(loan_id)
        saved = self.loans.save(mark_installment_paid(loan, installment_id, paid_date))
        logger.info(f"Installment {installment_id} of loan {loan_id} paid "
                    f"({len(saved.paid_installments)}/{saved.term})")
        if saved.status == LoanStatus.COMPLETED:
            logger.info(f"Loan {loan_id} completed")
        return saved

    @with_retries()
    def update_loan(self, loan_id, amount, term) -> Loan:
        """Change a loan's amount and term, rebuilding its schedule.

        The schedule is regenerated from the original issue date. Loans
        that already have paid installments cannot be edited.

        Raises:
            ValidationError: Invalid amount or term.
            LoanNotFoundError: Unknown loan.
            StateConflictError: Repayment has already started.
        """
        validate_loan_terms(amount, term)
        loan = self.loans.require(loan_id)
        if loan.paid_installments:
            raise StateConflictError(
                f"Loan '{loan_id}' has paid installments and can no longer be edited",
                current_status=loan.status,
                details={'paid': len(loan.paid_installments)},
            )

        split = compute_split(amount, term)
        updated = replace(
            loan,
            total_amount=float(amount),
            recoverable_amount=split.recoverable_amount,
            waiver_amount=split.waiver_amount,
            term=int(term),
            installments=build_installment_schedule(split.recoverable_amount, term, loan.issued_date),
        )
        saved = self.loans.save(updated)
        logger.info(f"Loan {loan_id} updated: {amount} over {term}m")
        return saved

    @with_retries()
    def delete_loan(self, loan_id):
        """Delete a loan together with its installments."""
        self.loans.delete_by_id(loan_id)
        logger.info(f"Loan {loan_id} deleted")

    def get_loan(self, loan_id) -> Loan:
        return self.loans.require(loan_id)

    def list_loans(self, status=None):
        """All loans, newest first, optionally filtered by ACTIVE/COMPLETED."""
        if status is None:
            return self.loans.list_all()
        if status not in LoanStatus.ALL:
            raise ValidationError(f"Unknown loan status '{status}'")
        return self.loans.list_by_status(status)

    def member_loans(self, member_id):
        return self.loans.list_by_member(member_id)

    def active_loan(self, member_id):
        """The member's most recent active loan, or None."""
        for loan in self.loans.list_by_member(member_id):
            if loan.is_active:
                return loan
        return None
