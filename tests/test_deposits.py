"""Tests for logging and correcting member deposits."""
import io
import os
import sys
import unittest
from datetime import date, datetime

from PIL import Image

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fundcircle.database import DatabaseManager
from fundcircle.exceptions import DepositNotFoundError, MemberNotFoundError, ValidationError
from fundcircle.services import DepositService, MemberService


def png_bytes(size=(8, 8)):
    buf = io.BytesIO()
    Image.new("RGB", size, (30, 120, 200)).save(buf, format="PNG")
    return buf.getvalue()


class TestDeposits(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.members = MemberService(self.db)
        self.service = DepositService(self.db)
        self.member = self.members.signup("Alice", "alice@example.com")

    def tearDown(self):
        self.db.close()

    def test_add_deposit(self):
        deposit = self.service.add_deposit(self.member.id, 500, payment_date="2024-03-01", notes="March")

        stored = self.service.get_deposit(deposit.id)
        self.assertEqual(stored.amount, 500.0)
        self.assertEqual(stored.payment_date, date(2024, 3, 1))
        self.assertEqual(stored.member_name, "Alice")
        self.assertEqual(stored.notes, "March")
        self.assertIsInstance(stored.entry_date, datetime)
        self.assertEqual(stored.entry_date, deposit.entry_date)

    def test_payment_date_defaults_to_today(self):
        deposit = self.service.add_deposit(self.member.id, 100)
        self.assertEqual(deposit.payment_date, date.today())

    def test_invalid_deposits(self):
        with self.assertRaises(ValidationError):
            self.service.add_deposit(self.member.id, 0)
        with self.assertRaises(ValidationError):
            self.service.add_deposit(self.member.id, "100")
        for amount in (float('inf'), float('nan')):
            with self.assertRaises(ValidationError):
                self.service.add_deposit(self.member.id, amount)
        with self.assertRaises(ValidationError):
            self.service.add_deposit(self.member.id, 100, payment_date="not a date")
        with self.assertRaises(MemberNotFoundError):
            self.service.add_deposit("ghost", 100)
        self.assertEqual(self.service.list_deposits(), [])

    def test_name_snapshot_survives_rename(self):
        deposit = self.service.add_deposit(self.member.id, 500)
        self.members.update_profile(self.member.id, name="Alicia")

        self.assertEqual(self.service.get_deposit(deposit.id).member_name, "Alice")
        self.assertEqual(self.members.get_user(self.member.id).name, "Alicia")

    def test_update_keeps_entry_date(self):
        deposit = self.service.add_deposit(self.member.id, 500, payment_date=date(2024, 1, 5))
        updated = self.service.update_deposit(deposit.id, amount=750, payment_date="2024-01-06")

        self.assertEqual(updated.amount, 750.0)
        self.assertEqual(updated.payment_date, date(2024, 1, 6))
        self.assertEqual(updated.entry_date, deposit.entry_date)

    def test_update_rejects_bad_values(self):
        deposit = self.service.add_deposit(self.member.id, 500, payment_date=date(2024, 1, 5))
        with self.assertRaises(ValidationError):
            self.service.update_deposit(deposit.id, amount=float('inf'))
        with self.assertRaises(ValidationError):
            self.service.update_deposit(deposit.id, payment_date=None)

        stored = self.service.get_deposit(deposit.id)
        self.assertEqual(stored.amount, 500.0)
        self.assertEqual(stored.payment_date, date(2024, 1, 5))

    def test_entry_date_not_editable(self):
        deposit = self.service.add_deposit(self.member.id, 500)
        with self.assertRaises(ValidationError):
            self.service.update_deposit(deposit.id, entry_date=datetime(2020, 1, 1))
        with self.assertRaises(ValidationError):
            self.service.update_deposit(deposit.id, member_id="someone-else")

    def test_receipt_attached_and_removed(self):
        deposit = self.service.add_deposit(self.member.id, 500, receipt_image=png_bytes())
        self.assertTrue(deposit.receipt_image.startswith("data:image/png;base64,"))

        updated = self.service.update_deposit(deposit.id, receipt_image=None)
        self.assertIsNone(updated.receipt_image)

    def test_delete(self):
        deposit = self.service.add_deposit(self.member.id, 500)
        self.service.delete_deposit(deposit.id)
        with self.assertRaises(DepositNotFoundError):
            self.service.get_deposit(deposit.id)
        with self.assertRaises(DepositNotFoundError):
            self.service.delete_deposit(deposit.id)

    def test_list_by_member(self):
        bob = self.members.signup("Bob", "bob@example.com")
        self.service.add_deposit(self.member.id, 100)
        self.service.add_deposit(bob.id, 200)
        self.service.add_deposit(self.member.id, 300)

        self.assertEqual(len(self.service.list_deposits()), 3)
        self.assertEqual(sorted(d.amount for d in self.service.list_deposits(self.member.id)), [100.0, 300.0])


if __name__ == '__main__':
    unittest.main()
