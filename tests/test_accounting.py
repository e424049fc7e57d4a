"""Tests for the loan accounting rules: split, schedule and repayment."""
import os
import sys
import unittest
from datetime import datetime

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fundcircle import mapping
from fundcircle.config import MAX_LOAN_TERM
from fundcircle.accounting import (
    amount_repaid,
    build_installment_schedule,
    build_loan,
    compute_split,
    mark_installment_paid,
    round_currency,
    validate_loan_terms,
)
from fundcircle.data_structures import InstallmentStatus, LoanStatus
from fundcircle.exceptions import InstallmentNotFoundError, StateConflictError, ValidationError


class TestRounding(unittest.TestCase):

    def test_half_up(self):
        self.assertEqual(round_currency(2.675), 2.68)
        self.assertEqual(round_currency(0.125), 0.13)
        self.assertEqual(round_currency(233.333333), 233.33)

    def test_whole_amounts_unchanged(self):
        self.assertEqual(round_currency(7000), 7000.0)


class TestValidation(unittest.TestCase):

    def test_rejects_bad_amounts(self):
        for amount in (0, -5, "1000", None, True):
            with self.assertRaises(ValidationError):
                validate_loan_terms(amount, 5)

    def test_rejects_bad_terms(self):
        for term in (0, -1, 1.5, "3", None):
            with self.assertRaises(ValidationError):
                validate_loan_terms(1000, term)

    def test_accepts_minimum_term(self):
        validate_loan_terms(0.01, 1)

    def test_rejects_non_finite_amounts(self):
        for amount in (float('inf'), float('-inf'), float('nan')):
            with self.assertRaises(ValidationError):
                validate_loan_terms(amount, 5)
        with self.assertRaises(ValidationError):
            compute_split(float('inf'), 5)

    def test_term_upper_bound(self):
        validate_loan_terms(1000, MAX_LOAN_TERM)
        with self.assertRaises(ValidationError):
            validate_loan_terms(1000, MAX_LOAN_TERM + 1)
        with self.assertRaises(ValidationError):
            build_loan("m1", "Alice", 1000, 120000, datetime(2024, 1, 1))


class TestSplit(unittest.TestCase):

    def test_ten_thousand_over_five_months(self):
        split = compute_split(10000, 5)
        self.assertEqual(split.recoverable_amount, 7000.0)
        self.assertEqual(split.waiver_amount, 3000.0)
        self.assertEqual(split.monthly_amount, 1400.0)

    def test_parts_add_up_to_total(self):
        for total in (1000, 333.33, 100.01, 0.01, 12345.67):
            split = compute_split(total, 7)
            self.assertAlmostEqual(split.recoverable_amount + split.waiver_amount, total, places=9)

    def test_uneven_monthly_amount_is_rounded(self):
        split = compute_split(1000, 3)
        self.assertEqual(split.recoverable_amount, 700.0)
        self.assertEqual(split.monthly_amount, 233.33)


class TestSchedule(unittest.TestCase):

    def test_flat_schedule(self):
        schedule = build_installment_schedule(700.0, 3, datetime(2024, 1, 15))
        self.assertEqual(len(schedule), 3)
        self.assertEqual([i.amount for i in schedule], [233.33, 233.33, 233.33])
        self.assertTrue(all(i.status == InstallmentStatus.PENDING for i in schedule))
        self.assertEqual(len({i.id for i in schedule}), 3)

    def test_due_dates_are_calendar_months(self):
        schedule = build_installment_schedule(300.0, 3, datetime(2024, 1, 15, 10, 30))
        self.assertEqual([i.due_date for i in schedule], [
            datetime(2024, 2, 15, 10, 30),
            datetime(2024, 3, 15, 10, 30),
            datetime(2024, 4, 15, 10, 30),
        ])

    def test_month_end_is_clamped(self):
        schedule = build_installment_schedule(300.0, 3, datetime(2024, 1, 31))
        self.assertEqual(schedule[0].due_date, datetime(2024, 2, 29))
        self.assertEqual(schedule[1].due_date, datetime(2024, 3, 31))
        self.assertEqual(schedule[2].due_date, datetime(2024, 4, 30))

    def test_reconcile_last_installment(self):
        schedule = build_installment_schedule(700.0, 3, datetime(2024, 1, 1), reconcile_last=True)
        self.assertEqual([i.amount for i in schedule], [233.33, 233.33, 233.34])
        self.assertAlmostEqual(sum(i.amount for i in schedule), 700.0, places=9)


class TestRepayment(unittest.TestCase):

    def setUp(self):
        self.loan = build_loan("m1", "Alice", 10000, 5, datetime(2024, 1, 1))

    def test_new_loan_is_active(self):
        self.assertEqual(self.loan.status, LoanStatus.ACTIVE)
        self.assertEqual(amount_repaid(self.loan), 0.0)

    def test_mark_paid_returns_copy(self):
        first = self.loan.installments[0]
        paid = mark_installment_paid(self.loan, first.id, datetime(2024, 2, 1))

        self.assertTrue(paid.installments[0].is_paid)
        self.assertEqual(paid.installments[0].paid_date, datetime(2024, 2, 1))
        self.assertFalse(self.loan.installments[0].is_paid)
        self.assertEqual(amount_repaid(paid), 1400.0)

    def test_paying_twice_is_rejected(self):
        first = self.loan.installments[0].id
        paid = mark_installment_paid(self.loan, first)
        with self.assertRaises(StateConflictError):
            mark_installment_paid(paid, first)

    def test_unknown_installment(self):
        with self.assertRaises(InstallmentNotFoundError) as context:
            mark_installment_paid(self.loan, "inst-nope")
        self.assertIn(self.loan.id, str(context.exception))

    def test_completed_when_all_paid(self):
        loan = self.loan
        for inst in self.loan.installments:
            loan = mark_installment_paid(loan, inst.id)
        self.assertEqual(loan.status, LoanStatus.COMPLETED)
        self.assertEqual(amount_repaid(loan), loan.recoverable_amount)

    def test_build_loan_requires_member(self):
        with self.assertRaises(ValidationError):
            build_loan("", "Nobody", 1000, 3)


class TestRecordMapping(unittest.TestCase):

    def test_loan_record_keeps_everything(self):
        loan = build_loan("m1", "Alice", 1000, 2, datetime(2024, 5, 31))
        loan = mark_installment_paid(loan, loan.installments[0].id, datetime(2024, 6, 30))
        record = mapping.loan_to_record(loan)

        self.assertEqual(record['memberId'], "m1")
        self.assertEqual(record['status'], LoanStatus.ACTIVE)
        self.assertEqual(record['installments'][0]['paidDate'], "2024-06-30T00:00:00")
        self.assertEqual(mapping.loan_from_record(record), loan)

    def test_record_missing_field(self):
        record = mapping.loan_to_record(build_loan("m1", "Alice", 1000, 2))
        del record['totalAmount']
        with self.assertRaises(KeyError):
            mapping.loan_from_record(record)


if __name__ == '__main__':
    unittest.main()
