"""Ledger entities and read models for the Fund Circle engine."""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional


class Role:
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    ALL = (ADMIN, MEMBER)


class UserStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ALL = (PENDING, APPROVED, REJECTED)


class RequestStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ALL = (PENDING, APPROVED, REJECTED)


class LoanStatus:
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ALL = (ACTIVE, COMPLETED)


class InstallmentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    ALL = (PENDING, PAID)


@dataclass
class User:
    id: str
    name: str
    email: str
    role: str
    status: str
    balance: float = 0.0
    avatar: Optional[str] = None
    designation: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class Deposit:
    """A member's contribution, logged by an admin.

    member_name is copied from the member when the deposit is created and
    is not updated if the member later renames.
    """
    id: str
    member_id: str
    member_name: str
    amount: float
    payment_date: date
    entry_date: datetime
    receipt_image: Optional[str] = None
    notes: Optional[str] = None
    description: Optional[str] = None


@dataclass
class LoanRequest:
    id: str
    member_id: str
    member_name: str
    amount: float
    term: int
    request_date: datetime
    status: str = RequestStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


@dataclass
class Installment:
    id: str
    amount: float
    due_date: datetime
    status: str = InstallmentStatus.PENDING
    paid_date: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID


@dataclass
class Loan:
    """An issued loan and its repayment schedule.

    The loan owns its installments. Its status is derived from them and
    cannot be set directly. version counts saves and guards concurrent
    read-modify-write cycles.
    """
    id: str
    member_id: str
    member_name: str
    total_amount: float
    recoverable_amount: float
    waiver_amount: float
    term: int
    issued_date: datetime
    installments: List[Installment] = field(default_factory=list)
    version: int = 0

    @property
    def status(self) -> str:
        if all(inst.is_paid for inst in self.installments):
            return LoanStatus.COMPLETED
        return LoanStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def paid_installments(self) -> List[Installment]:
        return [inst for inst in self.installments if inst.is_paid]

    def find_installment(self, installment_id: str) -> Optional[Installment]:
        for inst in self.installments:
            if inst.id == installment_id:
                return inst
        return None


# =============================================================================
# READ MODELS
# =============================================================================

@dataclass
class LoanSplit:
    recoverable_amount: float
    waiver_amount: float
    monthly_amount: float


@dataclass
class PortfolioSummary:
    """Fund-wide totals, recomputed from a snapshot on every request.

    data_available is False when a collection could not be loaded and was
    counted as empty, so the totals may under-report.
    """
    total_deposits: float
    total_issued: float
    total_waivers: float
    total_recoveries: float
    current_balance: float
    total_outstanding: float
    active_loans: int = 0
    completed_loans: int = 0
    data_available: bool = True


@dataclass
class MemberContribution:
    member_id: str
    member_name: str
    total: float


@dataclass
class MemberOverview:
    member_id: str
    total_deposited: float
    deposit_count: int
    active_loan_id: Optional[str] = None
    remaining_debt: float = 0.0
    pending_requests: int = 0
