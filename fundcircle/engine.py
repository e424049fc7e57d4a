"""Business logic engine for the Fund Circle.

This module provides the FundCircleEngine class, a facade over the service
classes in fundcircle/services/. Every operation takes the caller's
Session and checks its role before delegating.

Service Classes:
    - MemberService: Signups and profiles
    - DepositService: Member contributions
    - LoanService: Loan issuance, repayment and edits
    - RequestLifecycleManager: Loan request and signup approvals
    - PortfolioAggregator: Fund-wide totals
"""
import logging

from fundcircle.backup import BackupManager
from fundcircle.reports import ReportGenerator
from fundcircle.services import (
    DepositService,
    LoanService,
    MemberService,
    PortfolioAggregator,
    RequestLifecycleManager,
)
from fundcircle.session import AuthGate, require_admin, require_member, require_session

logger = logging.getLogger(__name__)


class FundCircleEngine:
    """Entry point for the fund's operations.

    Attributes:
        db: DatabaseManager instance for data persistence.
        auth: AuthGate used for login and session restore.
    """

    def __init__(self, db_manager, strict_portfolio=False):
        self.db = db_manager
        self.auth = AuthGate(db_manager)
        self._strict_portfolio = strict_portfolio
        self._member_service = None
        self._deposit_service = None
        self._loan_service = None
        self._request_manager = None
        self._portfolio = None
        self._backup_manager = None
        self._report_generator = None

    @property
    def member_service(self):
        """Lazy-load MemberService instance."""
        if self._member_service is None:
            self._member_service = MemberService(self.db)
        return self._member_service

    @property
    def deposit_service(self):
        """Lazy-load DepositService instance."""
        if self._deposit_service is None:
            self._deposit_service = DepositService(self.db)
        return self._deposit_service

    @property
    def loan_service(self):
        """Lazy-load LoanService instance."""
        if self._loan_service is None:
            self._loan_service = LoanService(self.db)
        return self._loan_service

    @property
    def request_manager(self):
        """Lazy-load RequestLifecycleManager instance."""
        if self._request_manager is None:
            self._request_manager = RequestLifecycleManager(self.db)
        return self._request_manager

    @property
    def portfolio(self):
        """Lazy-load PortfolioAggregator instance."""
        if self._portfolio is None:
            self._portfolio = PortfolioAggregator(self.db, strict=self._strict_portfolio)
        return self._portfolio

    @property
    def backup_manager(self):
        if self._backup_manager is None:
            self._backup_manager = BackupManager(self.db)
        return self._backup_manager

    @property
    def report_generator(self):
        if self._report_generator is None:
            self._report_generator = ReportGenerator(self.db)
        return self._report_generator

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def signup(self, name, email, role):
        return self.member_service.signup(name, email, role)

    def login(self, email, role, remember=True):
        """Returns a Result carrying the Session (see AuthGate.login)."""
        return self.auth.login(email, role, remember=remember)

    def restore_session(self):
        return self.auth.restore()

    def logout(self, session):
        session.logout()

    def update_profile(self, session, **changes):
        """Edit the logged-in user's own profile and refresh the session."""
        require_session(session, "update profile")
        user = self.member_service.update_profile(session.user_id, **changes)
        session.rebind(user)
        return user

    def circle(self, session):
        require_session(session, "view circle")
        return self.member_service.circle()

    # =========================================================================
    # ADMIN: MEMBERSHIP
    # =========================================================================

    def pending_members(self, session):
        require_admin(session, "view pending members")
        return self.request_manager.pending_members()

    def approve_member(self, session, user_id):
        require_admin(session, "approve member")
        return self.request_manager.approve_member(user_id)

    def reject_member(self, session, user_id):
        require_admin(session, "reject member")
        return self.request_manager.reject_member(user_id)

    def list_members(self, session, status=None, role=None):
        require_admin(session, "list members")
        return self.member_service.list_members(status=status, role=role)

    # =========================================================================
    # ADMIN: DEPOSITS
    # =========================================================================

    def add_deposit(self, session, member_id, amount, payment_date=None, notes=None,
                    description=None, receipt_image=None):
        require_admin(session, "add deposit")
        return self.deposit_service.add_deposit(member_id, amount, payment_date, notes=notes,
                                                description=description, receipt_image=receipt_image)

    def update_deposit(self, session, deposit_id, **changes):
        require_admin(session, "update deposit")
        return self.deposit_service.update_deposit(deposit_id, **changes)

    def delete_deposit(self, session, deposit_id):
        require_admin(session, "delete deposit")
        self.deposit_service.delete_deposit(deposit_id)

    def list_deposits(self, session, member_id=None):
        require_admin(session, "list deposits")
        return self.deposit_service.list_deposits(member_id)

    # =========================================================================
    # ADMIN: LOANS AND REQUESTS
    # =========================================================================

    def issue_loan(self, session, member_id, amount, term, issued_date=None):
        require_admin(session, "issue loan")
        return self.loan_service.issue_loan(member_id, amount, term, issued_date)

    def pay_installment(self, session, loan_id, installment_id, paid_date=None):
        require_admin(session, "record repayment")
        return self.loan_service.pay_installment(loan_id, installment_id, paid_date)

    def update_loan(self, session, loan_id, amount, term):
        require_admin(session, "update loan")
        return self.loan_service.update_loan(loan_id, amount, term)

    def delete_loan(self, session, loan_id):
        require_admin(session, "delete loan")
        self.loan_service.delete_loan(loan_id)

    def list_loans(self, session, status=None):
        require_admin(session, "list loans")
        return self.loan_service.list_loans(status)

    def pending_requests(self, session):
        require_admin(session, "view loan requests")
        return self.request_manager.pending_requests()

    def processed_requests(self, session):
        require_admin(session, "view loan requests")
        return self.request_manager.processed_requests()

    def approve_request(self, session, request_id, issued_date=None):
        require_admin(session, "approve loan request")
        return self.request_manager.approve(request_id, issued_date)

    def reject_request(self, session, request_id):
        require_admin(session, "reject loan request")
        return self.request_manager.reject(request_id)

    # =========================================================================
    # ADMIN: BACKUP AND REPORTS
    # =========================================================================

    def export_backup(self, session, folder):
        require_admin(session, "export backup")
        return self.backup_manager.export_to_file(folder)

    def restore_backup(self, session, path):
        require_admin(session, "restore backup")
        self.backup_manager.restore_from_file(path)
        logger.info(f"Backup {path} restored by {session.user_id}")

    def export_report(self, session, folder):
        require_admin(session, "export report")
        return self.report_generator.export_portfolio_excel(folder)

    # =========================================================================
    # MEMBER
    # =========================================================================

    def request_loan(self, session, amount, term):
        require_member(session, "request loan")
        return self.request_manager.submit_request(session.user_id, amount, term)

    def my_requests(self, session):
        require_member(session, "view own requests")
        return self.request_manager.member_requests(session.user_id)

    def my_loans(self, session):
        require_member(session, "view own loans")
        return self.loan_service.member_loans(session.user_id)

    def my_deposits(self, session):
        require_member(session, "view own deposits")
        return self.deposit_service.list_deposits(session.user_id)

    def my_overview(self, session):
        require_member(session, "view own overview")
        return self.portfolio.member_overview(session.user_id)

    # =========================================================================
    # ANY SESSION
    # =========================================================================

    def dashboard(self, session):
        """Fund-wide summary, visible to every logged-in user."""
        require_session(session, "view dashboard")
        return self.portfolio.summary()

    def contributions(self, session):
        require_session(session, "view contributions")
        return self.portfolio.member_contributions()

    def loan_breakdown(self, session):
        require_session(session, "view loan breakdown")
        return self.portfolio.loan_breakdown()

