"""Approval workflows for loan requests and member signups.

Both follow the same state machine: PENDING -> APPROVED | REJECTED, taken
exactly once. Every transition is a compare-and-swap on the PENDING
status, so of several admins acting on the same item only one succeeds;
the others get a StateConflictError and nothing is written.
"""
import logging
import uuid
from dataclasses import replace
from datetime import datetime

from fundcircle.accounting import build_loan, validate_loan_terms
from fundcircle.data_structures import LoanRequest, RequestStatus, UserStatus
from fundcircle.exceptions import StateConflictError
from fundcircle.repositories import LoanRepository, LoanRequestRepository, UserRepository
from fundcircle.retry import with_retries

logger = logging.getLogger(__name__)


class RequestLifecycleManager:
    """Moves loan requests and member signups out of PENDING."""

    def __init__(self, db_manager):
        """Initialize RequestLifecycleManager.

        Args:
            db_manager: DatabaseManager instance for data persistence.
        """
        self.db = db_manager
        self.requests = LoanRequestRepository(db_manager)
        self.users = UserRepository(db_manager)
        self.loans = LoanRepository(db_manager)

    # Loan requests
    @with_retries()
    def submit_request(self, member_id, amount, term, request_date=None) -> LoanRequest:
        """File a loan request on behalf of a member.

        Raises:
            ValidationError: Invalid amount or term.
            MemberNotFoundError: Unknown member.
            StateConflictError: The member is not approved, or still has an
                active loan.
        """
        validate_loan_terms(amount, term)
        member = self.users.require(member_id)
        if member.status != UserStatus.APPROVED:
            raise StateConflictError("Only approved members can request loans",
                                     current_status=member.status)
        if any(loan.is_active for loan in self.loans.list_by_member(member.id)):
            raise StateConflictError("Member already has an active loan", details={'member_id': member.id})

        request = LoanRequest(
            id=uuid.uuid4().hex,
            member_id=member.id,
            member_name=member.name,
            amount=float(amount),
            term=int(term),
            request_date=request_date or datetime.now(),
            status=RequestStatus.PENDING,
        )
        self.requests.insert(request)
        logger.info(f"Loan request {request.id} from {member.id}: {amount} over {term}m")
        return request

    @with_retries()
    def approve(self, request_id, issued_date=None):
        """Approve a pending request and issue its loan.

        The loan is written first and the request flips to APPROVED in the
        same transaction. If the loan cannot be stored the request stays
        PENDING and may be approved again.

        Returns:
            The newly issued Loan.

        Raises:
            LoanRequestNotFoundError: Unknown request.
            StateConflictError: The request was already processed.
        """
        with self.db.transaction():
            request = self.requests.require(request_id)
            self._ensure_pending(request)
            loan = build_loan(request.member_id, request.member_name, request.amount,
                              request.term, issued_date)
            self.loans.insert(loan)
            if not self.requests.compare_and_set_status(request_id, RequestStatus.PENDING,
                                                        RequestStatus.APPROVED):
                raise StateConflictError(f"Loan request '{request_id}' was processed concurrently")
        logger.info(f"Loan request {request_id} approved, loan {loan.id} issued")
        return loan

    @with_retries()
    def reject(self, request_id) -> LoanRequest:
        """Reject a pending request. No loan is created.

        Raises:
            LoanRequestNotFoundError: Unknown request.
            StateConflictError: The request was already processed.
        """
        request = self.requests.require(request_id)
        self._ensure_pending(request)
        if not self.requests.compare_and_set_status(request_id, RequestStatus.PENDING,
                                                    RequestStatus.REJECTED):
            raise StateConflictError(f"Loan request '{request_id}' was processed concurrently")
        logger.info(f"Loan request {request_id} rejected")
        return replace(request, status=RequestStatus.REJECTED)

    def _ensure_pending(self, request: LoanRequest):
        if not request.is_pending:
            raise StateConflictError(
                f"Loan request '{request.id}' was already {request.status.lower()}",
                current_status=request.status,
            )

    def pending_requests(self):
        return self.requests.list_by_status(RequestStatus.PENDING)

    def processed_requests(self):
        return [r for r in self.requests.list_all() if not r.is_pending]

    def member_requests(self, member_id):
        return self.requests.list_by_member(member_id)

    # Member signups
    @with_retries()
    def approve_member(self, user_id):
        return self._transition_member(user_id, UserStatus.APPROVED)

    @with_retries()
    def reject_member(self, user_id):
        return self._transition_member(user_id, UserStatus.REJECTED)

    def pending_members(self):
        return self.users.list_by_status(UserStatus.PENDING)

    def _transition_member(self, user_id, new_status):
        user = self.users.require(user_id)
        if user.status != UserStatus.PENDING:
            raise StateConflictError(f"Account '{user_id}' was already {user.status.lower()}",
                                     current_status=user.status)
        if not self.users.compare_and_set_status(user_id, UserStatus.PENDING, new_status):
            raise StateConflictError(f"Account '{user_id}' was processed concurrently")
        logger.info(f"Account {user_id} {new_status.lower()}")
        return replace(user, status=new_status)
