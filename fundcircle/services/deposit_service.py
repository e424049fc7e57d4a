"""Deposit service for the Fund Circle.

This service handles member contributions:
- Logging a deposit on behalf of a member
- Correcting a deposit's amount, payment date, notes or receipt
- Deleting deposits
"""
import logging
import math
import numbers
import uuid
from datetime import date, datetime

from fundcircle.data_structures import Deposit
from fundcircle.exceptions import ValidationError
from fundcircle.mapping import parse_date
from fundcircle.receipts import normalize_receipt
from fundcircle.repositories import DepositRepository, UserRepository
from fundcircle.retry import with_retries

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ('amount', 'payment_date', 'notes', 'description', 'receipt_image')


def _validate_amount(amount):
    if isinstance(amount, bool) or not isinstance(amount, numbers.Real) \
            or not math.isfinite(amount) or not amount > 0:
        raise ValidationError("Deposit amount must be a positive number", {'amount': amount})


def _coerce_payment_date(value) -> date:
    try:
        parsed = parse_date(value)
    except (ValueError, TypeError, OverflowError):
        raise ValidationError("Invalid payment date", {'payment_date': value})
    return parsed or date.today()


class DepositService:
    """Handles deposit operations.

    Deposits copy the member's name when they are logged; the entry date is
    assigned here and never changes afterwards.
    """

    def __init__(self, db_manager):
        """Initialize DepositService.

        Args:
            db_manager: DatabaseManager instance for data persistence.
        """
        self.db = db_manager
        self.deposits = DepositRepository(db_manager)
        self.users = UserRepository(db_manager)

    @with_retries()
    def add_deposit(self, member_id, amount, payment_date=None, notes=None,
                    description=None, receipt_image=None) -> Deposit:
        """Log a deposit for a member.

        Args:
            member_id: ID of the contributing member.
            amount: Deposit amount.
            payment_date: Date the member paid (date or YYYY-MM-DD; default today).
            notes: Optional notes.
            description: Optional description.
            receipt_image: Optional receipt image (data URL, base64 or bytes).

        Returns:
            The persisted Deposit.

        Raises:
            ValidationError: Non-positive amount, bad date or bad image.
            MemberNotFoundError: Unknown member.
        """
        _validate_amount(amount)
        payment = _coerce_payment_date(payment_date)
        receipt = normalize_receipt(receipt_image) if receipt_image else None
        member = self.users.require(member_id)

        deposit = Deposit(
            id=uuid.uuid4().hex,
            member_id=member.id,
            member_name=member.name,
            amount=float(amount),
            payment_date=payment,
            entry_date=datetime.now(),
            receipt_image=receipt,
            notes=notes,
            description=description,
        )
        self.deposits.insert(deposit)
        logger.info(f"Deposit {deposit.id} of {deposit.amount} logged for {member.id}")
        return deposit

    @with_retries()
    def update_deposit(self, deposit_id, **changes) -> Deposit:
        """Correct an existing deposit.

        Only amount, payment_date, notes, description and receipt_image
        may change; passing receipt_image=None removes the receipt.

        Raises:
            ValidationError: Non-editable field or invalid value.
            DepositNotFoundError: Unknown deposit.
        """
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Deposit fields cannot be changed: {sorted(unknown)}")

        fields = dict(changes)
        if 'amount' in fields:
            _validate_amount(fields['amount'])
            fields['amount'] = float(fields['amount'])
        if 'payment_date' in fields:
            if fields['payment_date'] in (None, ""):
                raise ValidationError("A deposit's payment date cannot be cleared")
            fields['payment_date'] = _coerce_payment_date(fields['payment_date'])
        if 'receipt_image' in fields and fields['receipt_image']:
            fields['receipt_image'] = normalize_receipt(fields['receipt_image'])
        elif 'receipt_image' in fields:
            fields['receipt_image'] = None

        self.deposits.update_by_id(deposit_id, fields)
        logger.info(f"Deposit {deposit_id} updated: {sorted(fields)}")
        return self.deposits.require(deposit_id)

    @with_retries()
    def delete_deposit(self, deposit_id):
        self.deposits.delete_by_id(deposit_id)
        logger.info(f"Deposit {deposit_id} deleted")

    def get_deposit(self, deposit_id) -> Deposit:
        return self.deposits.require(deposit_id)

    def list_deposits(self, member_id=None):
        """Deposits, most recently entered first."""
        if member_id is not None:
            return self.deposits.list_by_member(member_id)
        return self.deposits.list_all()
