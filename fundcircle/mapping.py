"""Explicit field mappings between entities and their stored shapes.

Two shapes exist for every entity:
- sqlite rows, keyed by the snake_case attribute (column) names
- JSON records (backups), keyed by the camelCase names of the original
  fund app export

Each schema lists every dataclass field exactly once; the coverage check at
import time fails loudly if an entity gains a field nobody mapped.
"""
import dataclasses
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, NamedTuple, Optional

from dateutil import parser as date_parser

from fundcircle.data_structures import Deposit, Installment, Loan, LoanRequest, User


class Field(NamedTuple):
    attr: str
    key: str
    parse: Optional[Callable[[Any], Any]] = None
    required: bool = True


def parse_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return date_parser.isoparse(str(value))


def parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date_parser.isoparse(str(value)).date()


def _optional_str(value):
    return None if value is None else str(value)


def _encode(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


USER_SCHEMA = (
    Field('id', 'id', str),
    Field('name', 'name', str),
    Field('email', 'email', str),
    Field('role', 'role', str),
    Field('status', 'status', str),
    Field('balance', 'balance', float, required=False),
    Field('avatar', 'avatar', _optional_str, required=False),
    Field('designation', 'designation', _optional_str, required=False),
)

DEPOSIT_SCHEMA = (
    Field('id', 'id', str),
    Field('member_id', 'memberId', str),
    Field('member_name', 'memberName', str),
    Field('amount', 'amount', float),
    Field('payment_date', 'paymentDate', parse_date),
    Field('entry_date', 'entryDate', parse_datetime),
    Field('receipt_image', 'receiptImage', _optional_str, required=False),
    Field('notes', 'notes', _optional_str, required=False),
    Field('description', 'description', _optional_str, required=False),
)

LOAN_REQUEST_SCHEMA = (
    Field('id', 'id', str),
    Field('member_id', 'memberId', str),
    Field('member_name', 'memberName', str),
    Field('amount', 'amount', float),
    Field('term', 'term', int),
    Field('request_date', 'requestDate', parse_datetime),
    Field('status', 'status', str),
)

INSTALLMENT_SCHEMA = (
    Field('id', 'id', str),
    Field('amount', 'amount', float),
    Field('due_date', 'dueDate', parse_datetime),
    Field('status', 'status', str),
    Field('paid_date', 'paidDate', parse_datetime, required=False),
)

# installments are stored in their own table and embedded in records
LOAN_SCHEMA = (
    Field('id', 'id', str),
    Field('member_id', 'memberId', str),
    Field('member_name', 'memberName', str),
    Field('total_amount', 'totalAmount', float),
    Field('recoverable_amount', 'recoverableAmount', float),
    Field('waiver_amount', 'waiverAmount', float),
    Field('term', 'term', int),
    Field('issued_date', 'issuedDate', parse_datetime),
    Field('version', 'version', int, required=False),
)


def _check_coverage(cls, schema, embedded: Iterable[str] = ()):
    declared = {f.name for f in dataclasses.fields(cls)}
    mapped = {f.attr for f in schema} | set(embedded)
    if declared != mapped:
        raise TypeError(
            f"{cls.__name__} mapping out of date: "
            f"unmapped={sorted(declared - mapped)}, unknown={sorted(mapped - declared)}"
        )


_check_coverage(User, USER_SCHEMA)
_check_coverage(Deposit, DEPOSIT_SCHEMA)
_check_coverage(LoanRequest, LOAN_REQUEST_SCHEMA)
_check_coverage(Installment, INSTALLMENT_SCHEMA)
_check_coverage(Loan, LOAN_SCHEMA, embedded=('installments',))


def _dump(entity, schema, by_key: bool) -> Dict[str, Any]:
    return {(f.key if by_key else f.attr): _encode(getattr(entity, f.attr)) for f in schema}


def _load(cls, data: Dict[str, Any], schema, by_key: bool, **extra):
    kwargs = {}
    for f in schema:
        name = f.key if by_key else f.attr
        if name not in data or data[name] is None:
            if f.required:
                raise KeyError(name)
            continue
        value = data[name]
        kwargs[f.attr] = f.parse(value) if f.parse else value
    kwargs.update(extra)
    return cls(**kwargs)


def encode_value(value):
    """Convert a python value to its stored form (dates as ISO strings)."""
    return _encode(value)


def encode_fields(schema, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Encode a partial attribute dict for a column update.

    Raises:
        KeyError: A field is not a column of the schema.
    """
    columns = {f.attr for f in schema}
    unknown = set(fields) - columns
    if unknown:
        raise KeyError(f"Unknown fields: {sorted(unknown)}")
    return {name: _encode(value) for name, value in fields.items()}


# =============================================================================
# SQLITE ROWS
# =============================================================================

def user_to_row(user: User) -> Dict[str, Any]:
    return _dump(user, USER_SCHEMA, by_key=False)


def user_from_row(row: Dict[str, Any]) -> User:
    return _load(User, row, USER_SCHEMA, by_key=False)


def deposit_to_row(deposit: Deposit) -> Dict[str, Any]:
    return _dump(deposit, DEPOSIT_SCHEMA, by_key=False)


def deposit_from_row(row: Dict[str, Any]) -> Deposit:
    return _load(Deposit, row, DEPOSIT_SCHEMA, by_key=False)


def loan_request_to_row(request: LoanRequest) -> Dict[str, Any]:
    return _dump(request, LOAN_REQUEST_SCHEMA, by_key=False)


def loan_request_from_row(row: Dict[str, Any]) -> LoanRequest:
    return _load(LoanRequest, row, LOAN_REQUEST_SCHEMA, by_key=False)


def installment_to_row(installment: Installment, loan_id: str, seq: int) -> Dict[str, Any]:
    row = _dump(installment, INSTALLMENT_SCHEMA, by_key=False)
    row['loan_id'] = loan_id
    row['seq'] = seq
    return row


def installment_from_row(row: Dict[str, Any]) -> Installment:
    return _load(Installment, row, INSTALLMENT_SCHEMA, by_key=False)


def loan_to_row(loan: Loan) -> Dict[str, Any]:
    """Loan columns; status is written from the derived property for queries."""
    row = _dump(loan, LOAN_SCHEMA, by_key=False)
    row['status'] = loan.status
    return row


def loan_from_row(row: Dict[str, Any], installments) -> Loan:
    return _load(Loan, row, LOAN_SCHEMA, by_key=False, installments=list(installments))


# =============================================================================
# JSON RECORDS
# =============================================================================

def user_to_record(user: User) -> Dict[str, Any]:
    return _dump(user, USER_SCHEMA, by_key=True)


def user_from_record(record: Dict[str, Any]) -> User:
    return _load(User, record, USER_SCHEMA, by_key=True)


def deposit_to_record(deposit: Deposit) -> Dict[str, Any]:
    return _dump(deposit, DEPOSIT_SCHEMA, by_key=True)


def deposit_from_record(record: Dict[str, Any]) -> Deposit:
    return _load(Deposit, record, DEPOSIT_SCHEMA, by_key=True)


def loan_request_to_record(request: LoanRequest) -> Dict[str, Any]:
    return _dump(request, LOAN_REQUEST_SCHEMA, by_key=True)


def loan_request_from_record(record: Dict[str, Any]) -> LoanRequest:
    return _load(LoanRequest, record, LOAN_REQUEST_SCHEMA, by_key=True)


def installment_to_record(installment: Installment) -> Dict[str, Any]:
    return _dump(installment, INSTALLMENT_SCHEMA, by_key=True)


def installment_from_record(record: Dict[str, Any]) -> Installment:
    return _load(Installment, record, INSTALLMENT_SCHEMA, by_key=True)


def loan_to_record(loan: Loan) -> Dict[str, Any]:
    record = _dump(loan, LOAN_SCHEMA, by_key=True)
    record['installments'] = [installment_to_record(inst) for inst in loan.installments]
    record['status'] = loan.status
    return record


def loan_from_record(record: Dict[str, Any]) -> Loan:
    """Build a Loan from a backup record. A stored status is ignored."""
    installments = [installment_from_record(r) for r in record.get('installments') or []]
    return _load(Loan, record, LOAN_SCHEMA, by_key=True, installments=installments)
