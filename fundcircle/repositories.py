"""Per-collection persistence for the Fund Circle entities.

Every repository offers the same small contract: list_all, get, insert,
update_by_id and delete_by_id. Loans additionally own their installments
and are saved as a unit under an optimistic version check.
"""
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Optional

from fundcircle import mapping
from fundcircle.data_structures import Loan, LoanRequest, User
from fundcircle.exceptions import (
    DepositNotFoundError,
    LoanNotFoundError,
    LoanRequestNotFoundError,
    MemberNotFoundError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)


class Repository:
    """Generic CRUD over one entity table."""

    table = None
    schema = ()
    order_by = "id"
    not_found_error = NotFoundError

    def __init__(self, db_manager):
        self.db = db_manager

    def to_row(self, entity) -> dict:
        raise NotImplementedError

    def from_row(self, row: dict):
        raise NotImplementedError

    def list_all(self) -> list:
        rows = self.db.fetch_all(f"SELECT * FROM {self.table} ORDER BY {self.order_by}")
        return [self.from_row(r) for r in rows]

    def get(self, entity_id):
        row = self.db.fetch_one(f"SELECT * FROM {self.table} WHERE id=?", (entity_id,))
        return self.from_row(row) if row else None

    def require(self, entity_id):
        """Like get(), but raises the collection's NotFoundError."""
        entity = self.get(entity_id)
        if entity is None:
            raise self.not_found_error(entity_id)
        return entity

    def count(self) -> int:
        return self.db.fetch_one(f"SELECT COUNT(*) AS n FROM {self.table}")['n']

    def insert(self, entity):
        self._insert_row(self.table, self.to_row(entity))
        return entity

    def update_by_id(self, entity_id, fields: Dict):
        """Update some columns of one record.

        Raises:
            ValidationError: Unknown field, or an attempt to change the id.
            NotFoundError: No record has this id.
        """
        if 'id' in fields:
            raise ValidationError("Record ids cannot be changed", {'id': entity_id})
        try:
            encoded = mapping.encode_fields(self.schema, fields)
        except KeyError as e:
            raise ValidationError(str(e.args[0]), {'table': self.table})
        if not encoded:
            self.require(entity_id)
            return
        assignments = ", ".join(f"{col}=?" for col in encoded)
        cursor = self.db.execute(
            f"UPDATE {self.table} SET {assignments} WHERE id=?",
            list(encoded.values()) + [entity_id],
            table=self.table,
        )
        if cursor.rowcount == 0:
            raise self.not_found_error(entity_id)

    def delete_by_id(self, entity_id):
        cursor = self.db.execute(f"DELETE FROM {self.table} WHERE id=?", (entity_id,), table=self.table)
        if cursor.rowcount == 0:
            raise self.not_found_error(entity_id)

    def _insert_row(self, table, row: dict):
        cols = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        self.db.execute(f"INSERT INTO {table} ({cols}) VALUES ({marks})", list(row.values()), table=table)


class UserRepository(Repository):
    table = "users"
    schema = mapping.USER_SCHEMA
    order_by = "name COLLATE NOCASE, id"
    not_found_error = MemberNotFoundError

    def to_row(self, entity):
        return mapping.user_to_row(entity)

    def from_row(self, row):
        return mapping.user_from_row(row)

    def find_by_email(self, email: str) -> Optional[User]:
        row = self.db.fetch_one("SELECT * FROM users WHERE lower(email)=lower(?)", (email,))
        return self.from_row(row) if row else None

    def find_by_credentials(self, email: str, role: str) -> Optional[User]:
        row = self.db.fetch_one("SELECT * FROM users WHERE lower(email)=lower(?) AND role=?", (email, role))
        return self.from_row(row) if row else None

    def list_by_status(self, status: str) -> List[User]:
        rows = self.db.fetch_all(
            f"SELECT * FROM users WHERE status=? ORDER BY {self.order_by}", (status,))
        return [self.from_row(r) for r in rows]

    def compare_and_set_status(self, user_id, expected: str, new: str) -> bool:
        cursor = self.db.execute("UPDATE users SET status=? WHERE id=? AND status=?",
                                 (new, user_id, expected), table=self.table)
        return cursor.rowcount == 1


class DepositRepository(Repository):
    table = "deposits"
    schema = mapping.DEPOSIT_SCHEMA
    order_by = "entry_date DESC, id DESC"
    not_found_error = DepositNotFoundError

    def to_row(self, entity):
        return mapping.deposit_to_row(entity)

    def from_row(self, row):
        return mapping.deposit_from_row(row)

    def list_by_member(self, member_id):
        rows = self.db.fetch_all(
            f"SELECT * FROM deposits WHERE member_id=? ORDER BY {self.order_by}", (member_id,))
        return [self.from_row(r) for r in rows]


class LoanRequestRepository(Repository):
    table = "loan_requests"
    schema = mapping.LOAN_REQUEST_SCHEMA
    order_by = "request_date DESC, id DESC"
    not_found_error = LoanRequestNotFoundError

    def to_row(self, entity):
        return mapping.loan_request_to_row(entity)

    def from_row(self, row):
        return mapping.loan_request_from_row(row)

    def list_by_status(self, status: str) -> List[LoanRequest]:
        rows = self.db.fetch_all(
            f"SELECT * FROM loan_requests WHERE status=? ORDER BY {self.order_by}", (status,))
        return [self.from_row(r) for r in rows]

    def list_by_member(self, member_id) -> List[LoanRequest]:
        rows = self.db.fetch_all(
            f"SELECT * FROM loan_requests WHERE member_id=? ORDER BY {self.order_by}", (member_id,))
        return [self.from_row(r) for r in rows]

    def compare_and_set_status(self, request_id, expected: str, new: str) -> bool:
        """Move a request from `expected` to `new` status.

        Returns:
            True if this call made the transition, False if the request
            was no longer in the expected status (or does not exist).
        """
        cursor = self.db.execute("UPDATE loan_requests SET status=? WHERE id=? AND status=?",
                                 (new, request_id, expected), table=self.table)
        return cursor.rowcount == 1


class LoanRepository(Repository):
    """Loans and their embedded installments."""

    table = "loans"
    schema = mapping.LOAN_SCHEMA
    order_by = "issued_date DESC, id DESC"
    not_found_error = LoanNotFoundError

    def to_row(self, entity):
        return mapping.loan_to_row(entity)

    def from_row(self, row):
        return mapping.loan_from_row(row, self._installments_for([row['id']])[row['id']])

    def _installments_for(self, loan_ids=None) -> Dict[str, list]:
        if loan_ids is None:
            rows = self.db.fetch_all("SELECT * FROM installments ORDER BY loan_id, seq")
        else:
            marks = ", ".join("?" for _ in loan_ids)
            rows = self.db.fetch_all(
                f"SELECT * FROM installments WHERE loan_id IN ({marks}) ORDER BY loan_id, seq",
                list(loan_ids))
        grouped = defaultdict(list)
        for row in rows:
            grouped[row['loan_id']].append(mapping.installment_from_row(row))
        return grouped

    def _from_rows(self, rows, every_loan=False) -> List[Loan]:
        if not rows:
            return []
        installments = self._installments_for(None if every_loan else [r['id'] for r in rows])
        return [mapping.loan_from_row(r, installments.get(r['id'], [])) for r in rows]

    def list_all(self) -> List[Loan]:
        rows = self.db.fetch_all(f"SELECT * FROM loans ORDER BY {self.order_by}")
        return self._from_rows(rows, every_loan=True)

    def list_by_member(self, member_id) -> List[Loan]:
        rows = self.db.fetch_all(
            f"SELECT * FROM loans WHERE member_id=? ORDER BY {self.order_by}", (member_id,))
        return self._from_rows(rows)

    def list_by_status(self, status: str) -> List[Loan]:
        rows = self.db.fetch_all(
            f"SELECT * FROM loans WHERE status=? ORDER BY {self.order_by}", (status,))
        return self._from_rows(rows)

    def insert(self, entity: Loan) -> Loan:
        with self.db.transaction():
            self._insert_row("loans", self.to_row(entity))
            self._write_installments(entity)
        return entity

    def save(self, loan: Loan) -> Loan:
        """Replace a loan and its installments if nobody saved it since it was read.

        Returns:
            The loan with its version incremented.

        Raises:
            VersionConflictError: The stored version differs from loan.version.
            LoanNotFoundError: The loan no longer exists.
        """
        row = self.to_row(loan)
        row.pop('id')
        row.pop('version')
        assignments = ", ".join(f"{col}=?" for col in row)
        with self.db.transaction():
            cursor = self.db.execute(
                f"UPDATE loans SET {assignments}, version=version+1 WHERE id=? AND version=?",
                list(row.values()) + [loan.id, loan.version],
                table="loans",
            )
            if cursor.rowcount == 0:
                if self.db.fetch_one("SELECT id FROM loans WHERE id=?", (loan.id,)) is None:
                    raise LoanNotFoundError(loan.id)
                raise VersionConflictError(loan.id, loan.version)
            self.db.execute("DELETE FROM installments WHERE loan_id=?", (loan.id,), table="installments")
            self._write_installments(loan)
        return replace(loan, version=loan.version + 1)

    def update_by_id(self, entity_id, fields: Dict):
        """Column update; an `installments` entry replaces the schedule."""
        fields = dict(fields)
        if 'status' in fields:
            raise ValidationError("Loan status is derived from its installments", {'id': entity_id})
        installments = fields.pop('installments', None)
        if 'id' in fields or 'version' in fields:
            raise ValidationError("Loan ids and versions cannot be set directly", {'id': entity_id})
        try:
            mapping.encode_fields(self.schema, fields)
        except KeyError as e:
            raise ValidationError(str(e.args[0]), {'table': self.table})
        with self.db.transaction():
            loan = self.require(entity_id)
            updated = replace(loan, **fields)
            if installments is not None:
                updated = replace(updated, installments=list(installments))
            self.save(updated)

    def delete_by_id(self, entity_id):
        with self.db.transaction():
            self.db.execute("DELETE FROM installments WHERE loan_id=?", (entity_id,), table="installments")
            super().delete_by_id(entity_id)

    def _write_installments(self, loan: Loan):
        for seq, inst in enumerate(loan.installments):
            self._insert_row("installments", mapping.installment_to_row(inst, loan.id, seq))
