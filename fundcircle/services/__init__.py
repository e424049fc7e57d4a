"""Services package for Fund Circle business logic.

Each service owns one area of the fund and talks to storage through the
repositories; the FundCircleEngine facade wires them together.
"""

from .member_service import MemberService
from .deposit_service import DepositService
from .loan_service import LoanService
from .request_service import RequestLifecycleManager
from .portfolio import PortfolioAggregator

__all__ = ['MemberService', 'DepositService', 'LoanService', 'RequestLifecycleManager',
           'PortfolioAggregator']
