"""Portfolio aggregation for the Fund Circle.

Read-only rollups over the current deposits and loans: fund balance,
recoveries, waivers, outstanding debt and member contributions. Nothing is
cached; every figure is recomputed from the snapshot it is given.
"""
import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from fundcircle.accounting import amount_repaid, round_currency
from fundcircle.data_structures import (
    Deposit,
    InstallmentStatus,
    Loan,
    LoanStatus,
    MemberContribution,
    MemberOverview,
    PortfolioSummary,
    RequestStatus,
    User,
)
from fundcircle.exceptions import PersistenceError
from fundcircle.repositories import (
    DepositRepository,
    LoanRepository,
    LoanRequestRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

DEPOSIT_COLUMNS = ["id", "member_id", "member_name", "amount", "payment_date", "entry_date"]
LOAN_COLUMNS = ["id", "member_id", "member_name", "total_amount", "recoverable_amount",
                "waiver_amount", "term", "issued_date", "status", "paid_count", "repaid", "outstanding"]
INSTALLMENT_COLUMNS = ["loan_id", "member_id", "installment_id", "amount", "due_date", "status", "paid_date"]


def _iso(value):
    return value.isoformat() if value is not None else None


def deposits_frame(deposits: Iterable[Deposit]) -> pd.DataFrame:
    rows = [(d.id, d.member_id, d.member_name, float(d.amount), _iso(d.payment_date), _iso(d.entry_date))
            for d in deposits]
    return pd.DataFrame(rows, columns=DEPOSIT_COLUMNS).astype({"amount": float})


def loans_frame(loans: Iterable[Loan]) -> pd.DataFrame:
    rows = []
    for loan in loans:
        repaid = amount_repaid(loan)
        rows.append((loan.id, loan.member_id, loan.member_name, float(loan.total_amount),
                     float(loan.recoverable_amount), float(loan.waiver_amount), loan.term,
                     _iso(loan.issued_date), loan.status, len(loan.paid_installments), repaid,
                     round_currency(loan.recoverable_amount - repaid)))
    money = {c: float for c in ("total_amount", "recoverable_amount", "waiver_amount", "repaid", "outstanding")}
    return pd.DataFrame(rows, columns=LOAN_COLUMNS).astype(money)


def installments_frame(loans: Iterable[Loan]) -> pd.DataFrame:
    rows = [(loan.id, loan.member_id, inst.id, float(inst.amount), _iso(inst.due_date),
             inst.status, _iso(inst.paid_date))
            for loan in loans for inst in loan.installments]
    return pd.DataFrame(rows, columns=INSTALLMENT_COLUMNS).astype({"amount": float})


def _total(frame: pd.DataFrame, column: str) -> float:
    return round_currency(float(frame[column].sum())) if not frame.empty else 0.0


def total_deposits(deposits) -> float:
    return _total(deposits_frame(deposits), "amount")


def total_issued(loans) -> float:
    return _total(loans_frame(loans), "total_amount")


def total_waivers(loans) -> float:
    return _total(loans_frame(loans), "waiver_amount")


def total_recoveries(loans) -> float:
    """Sum of every PAID installment across all loans."""
    frame = installments_frame(loans)
    return _total(frame[frame["status"] == InstallmentStatus.PAID], "amount")


def current_balance(deposits, loans) -> float:
    """Cash in the fund: deposits minus money lent plus money recovered."""
    return round_currency(total_deposits(deposits) - total_issued(loans) + total_recoveries(loans))


def outstanding(loan: Loan) -> float:
    """Recoverable amount not yet repaid on one loan."""
    return round_currency(loan.recoverable_amount - amount_repaid(loan))


def summarize(deposits, loans, data_available=True) -> PortfolioSummary:
    deposits = list(deposits)
    loans = list(loans)
    loan_df = loans_frame(loans)
    recoveries = total_recoveries(loans)
    issued = _total(loan_df, "total_amount")
    deposited = total_deposits(deposits)
    return PortfolioSummary(
        total_deposits=deposited,
        total_issued=issued,
        total_waivers=_total(loan_df, "waiver_amount"),
        total_recoveries=recoveries,
        current_balance=round_currency(deposited - issued + recoveries),
        total_outstanding=_total(loan_df, "outstanding"),
        active_loans=int((loan_df["status"] == LoanStatus.ACTIVE).sum()),
        completed_loans=int((loan_df["status"] == LoanStatus.COMPLETED).sum()),
        data_available=data_available,
    )


def member_contributions(deposits, users: Optional[Iterable[User]] = None) -> List[MemberContribution]:
    """Total deposited per member, largest first.

    Members whose deposits sum to zero or less are left out. Names come
    from `users` when given (current names), otherwise from the most recent
    deposit's snapshot.
    """
    frame = deposits_frame(deposits)
    if frame.empty:
        return []
    totals = frame.groupby("member_id", sort=False).agg(
        total=("amount", "sum"), member_name=("member_name", "first"))
    totals = totals[totals["total"] > 0].sort_values("total", ascending=False, kind="stable")

    names = {u.id: u.name for u in users} if users is not None else {}
    return [
        MemberContribution(member_id=member_id, member_name=names.get(member_id, row["member_name"]),
                           total=round_currency(row["total"]))
        for member_id, row in totals.iterrows()
    ]


def loan_breakdown(loans) -> Dict[str, float]:
    """How issued money splits into recovered, waived and still owed (positive parts only)."""
    loans = list(loans)
    issued = total_issued(loans)
    recoveries = total_recoveries(loans)
    waivers = total_waivers(loans)
    parts = {
        "recoveries": recoveries,
        "waivers": waivers,
        "outstanding": round_currency(issued - recoveries - waivers),
    }
    return {name: value for name, value in parts.items() if value > 0}


def member_overview(member_id, deposits, loans, requests=()) -> MemberOverview:
    own_deposits = [d for d in deposits if d.member_id == member_id]
    own_loans = [l for l in loans if l.member_id == member_id]
    active = next((l for l in own_loans if l.is_active), None)
    return MemberOverview(
        member_id=member_id,
        total_deposited=total_deposits(own_deposits),
        deposit_count=len(own_deposits),
        active_loan_id=active.id if active else None,
        remaining_debt=outstanding(active) if active else 0.0,
        pending_requests=sum(1 for r in requests
                             if r.member_id == member_id and r.status == RequestStatus.PENDING),
    )


class PortfolioAggregator:
    """Computes portfolio figures from the current database contents.

    By default a collection that fails to load is counted as empty and the
    summary is flagged with data_available=False, so dashboards keep
    working but may under-report. With strict=True the PersistenceError
    propagates instead.
    """

    def __init__(self, db_manager, strict=False):
        self.db = db_manager
        self.strict = strict
        self.deposits = DepositRepository(db_manager)
        self.loans = LoanRepository(db_manager)
        self.users = UserRepository(db_manager)
        self.requests = LoanRequestRepository(db_manager)

    def _fetch(self, repository, missing: list) -> list:
        try:
            return repository.list_all()
        except PersistenceError as e:
            if self.strict:
                raise
            logger.warning(f"Could not load {repository.table}, counting it as empty: {e}")
            missing.append(repository.table)
            return []

    def summary(self) -> PortfolioSummary:
        missing = []
        deposits = self._fetch(self.deposits, missing)
        loans = self._fetch(self.loans, missing)
        return summarize(deposits, loans, data_available=not missing)

    def member_contributions(self) -> List[MemberContribution]:
        missing = []
        return member_contributions(self._fetch(self.deposits, missing), self._fetch(self.users, missing))

    def loan_breakdown(self) -> Dict[str, float]:
        return loan_breakdown(self._fetch(self.loans, []))

    def outstanding(self, loan_id) -> float:
        return outstanding(self.loans.require(loan_id))

    def member_overview(self, member_id) -> MemberOverview:
        missing = []
        return member_overview(
            member_id,
            self._fetch(self.deposits, missing),
            self._fetch(self.loans, missing),
            self._fetch(self.requests, missing),
        )
