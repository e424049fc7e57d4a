"""
Report generation module for the Fund Circle.
Builds portfolio DataFrames and exports them as an Excel workbook.
"""
import logging
import os
from datetime import datetime

import pandas as pd

from fundcircle.config import DATE_FORMAT_STORAGE, REPORT_FILENAME_FORMAT
from fundcircle.result import ErrorType, Result
from fundcircle.services import portfolio
from fundcircle.services.portfolio import PortfolioAggregator

logger = logging.getLogger(__name__)

HEADER_BG = '#D9E1F2'
TOTAL_BG = '#FCE4D6'

LOAN_HEADERS = {
    'member_name': 'Member', 'total_amount': 'Amount', 'recoverable_amount': 'Recoverable',
    'waiver_amount': 'Waiver', 'term': 'Term (months)', 'issued_date': 'Issued',
    'status': 'Status', 'paid_count': 'Paid', 'repaid': 'Repaid', 'outstanding': 'Outstanding',
}
DEPOSIT_HEADERS = {
    'member_name': 'Member', 'amount': 'Amount', 'payment_date': 'Payment Date', 'entry_date': 'Entered',
}
INSTALLMENT_HEADERS = {
    'loan_id': 'Loan', 'installment_id': 'Installment', 'amount': 'Amount',
    'due_date': 'Due', 'status': 'Status', 'paid_date': 'Paid On',
}


class ReportGenerator:
    def __init__(self, db_manager):
        self.db = db_manager
        self.aggregator = PortfolioAggregator(db_manager, strict=True)

    def loans_frame(self) -> pd.DataFrame:
        """Loans with repayment progress, newest first, with display headers."""
        df = portfolio.loans_frame(self.aggregator.loans.list_all())
        return df[list(LOAN_HEADERS)].rename(columns=LOAN_HEADERS)

    def deposits_frame(self) -> pd.DataFrame:
        df = portfolio.deposits_frame(self.aggregator.deposits.list_all())
        return df[list(DEPOSIT_HEADERS)].rename(columns=DEPOSIT_HEADERS)

    def installments_frame(self) -> pd.DataFrame:
        df = portfolio.installments_frame(self.aggregator.loans.list_all())
        return df[list(INSTALLMENT_HEADERS)].rename(columns=INSTALLMENT_HEADERS)

    def summary_frame(self) -> pd.DataFrame:
        s = self.aggregator.summary()
        rows = [
            ('Total Deposits', s.total_deposits),
            ('Loans Issued', s.total_issued),
            ('Waivers', s.total_waivers),
            ('Recoveries', s.total_recoveries),
            ('Outstanding', s.total_outstanding),
            ('Current Balance', s.current_balance),
            ('Active Loans', s.active_loans),
            ('Completed Loans', s.completed_loans),
        ]
        return pd.DataFrame(rows, columns=['Metric', 'Value'])

    def contributions_frame(self) -> pd.DataFrame:
        rows = [(c.member_name, c.total) for c in self.aggregator.member_contributions()]
        df = pd.DataFrame(rows, columns=['Member', 'Total Deposited'])
        if not df.empty:
            df.loc[len(df)] = ['TOTAL', df['Total Deposited'].sum()]
        return df

    def export_portfolio_excel(self, folder) -> Result:
        """Write the portfolio workbook into `folder`.

        Returns:
            Result with the file path on success.
        """
        filename = REPORT_FILENAME_FORMAT.format(date=datetime.now().strftime(DATE_FORMAT_STORAGE))
        output_path = os.path.join(folder, filename)
        try:
            sheets = {
                'Summary': self.summary_frame(),
                'Contributions': self.contributions_frame(),
                'Loans': self.loans_frame(),
                'Installments': self.installments_frame(),
                'Deposits': self.deposits_frame(),
            }
            with pd.ExcelWriter(output_path, engine='xlsxwriter') as writer:
                workbook = writer.book
                header_fmt = workbook.add_format({'bold': True, 'border': 1, 'bg_color': HEADER_BG})
                num_fmt = workbook.add_format({'num_format': '#,##0.00'})
                total_fmt = workbook.add_format({'bold': True, 'border': 1, 'num_format': '#,##0.00',
                                                 'bg_color': TOTAL_BG})

                for sheet_name, df in sheets.items():
                    df.to_excel(writer, index=False, sheet_name=sheet_name)
                    worksheet = writer.sheets[sheet_name]
                    for col_num, value in enumerate(df.columns.values):
                        worksheet.write(0, col_num, value, header_fmt)
                    worksheet.set_column(0, 0, 25)
                    if len(df.columns) > 1:
                        worksheet.set_column(1, len(df.columns) - 1, 15, num_fmt)

                # Totals row
                contributions = sheets['Contributions']
                if not contributions.empty:
                    worksheet = writer.sheets['Contributions']
                    total_row_idx = len(contributions)
                    for col_num, value in enumerate(contributions.iloc[-1]):
                        worksheet.write(total_row_idx, col_num, value, total_fmt)
        except Exception as e:
            logger.error(f"Excel export to {output_path} failed: {e}")
            return Result.fail(f"Excel Export Failed: {e}", ErrorType.PERSISTENCE)

        logger.info(f"Portfolio report written to {output_path}")
        return Result.ok(output_path)
