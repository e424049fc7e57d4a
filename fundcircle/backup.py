"""JSON backup and restore of the whole fund.

A backup is one JSON object with the four collections of the fund app
export: users, deposits, loans (installments embedded) and loanRequests.
Records use camelCase keys and ISO-8601 dates.
"""
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict

from fundcircle import mapping
from fundcircle.config import BACKUP_FILENAME_FORMAT, DATE_FORMAT_STORAGE
from fundcircle.exceptions import PersistenceError, ValidationError
from fundcircle.repositories import (
    DepositRepository,
    LoanRepository,
    LoanRequestRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

COLLECTIONS = (
    ('users', mapping.user_to_record, mapping.user_from_record),
    ('deposits', mapping.deposit_to_record, mapping.deposit_from_record),
    ('loans', mapping.loan_to_record, mapping.loan_from_record),
    ('loanRequests', mapping.loan_request_to_record, mapping.loan_request_from_record),
)


class BackupManager:
    """Exports and restores every collection of the fund."""

    def __init__(self, db_manager):
        self.db = db_manager
        self.repositories = {
            'users': UserRepository(db_manager),
            'deposits': DepositRepository(db_manager),
            'loans': LoanRepository(db_manager),
            'loanRequests': LoanRequestRepository(db_manager),
        }

    def export_state(self) -> Dict[str, list]:
        """Snapshot of all collections as JSON-ready records."""
        return {
            name: [to_record(entity) for entity in self.repositories[name].list_all()]
            for name, to_record, _ in COLLECTIONS
        }

    def export_to_file(self, folder) -> str:
        """Write a dated backup file into `folder`.

        Returns:
            Path of the written file.

        Raises:
            PersistenceError: The file could not be written.
        """
        filename = BACKUP_FILENAME_FORMAT.format(date=datetime.now().strftime(DATE_FORMAT_STORAGE))
        path = os.path.join(folder, filename)
        state = self.export_state()
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
        except OSError as e:
            raise PersistenceError(f"Could not write backup: {e}", {'path': path})
        logger.info(f"Backup written to {path} "
                    f"({', '.join(f'{len(v)} {k}' for k, v in state.items())})")
        return path

    def parse_state(self, data: Any) -> Dict[str, list]:
        """Validate a backup object and turn its records into entities.

        Raises:
            ValidationError: Missing collection or malformed record. Nothing
                has been written at this point.
        """
        if not isinstance(data, dict):
            raise ValidationError("Backup must be a JSON object")
        missing = [name for name, _, _ in COLLECTIONS if name not in data]
        if missing:
            raise ValidationError("Backup is missing collections", {'missing': missing})

        parsed = {}
        for name, _, from_record in COLLECTIONS:
            records = data[name]
            if not isinstance(records, list):
                raise ValidationError(f"'{name}' must be a list")
            entities = []
            for index, record in enumerate(records):
                if not isinstance(record, dict):
                    raise ValidationError(f"Invalid record in '{name}'", {'index': index})
                try:
                    entities.append(from_record(record))
                except KeyError as e:
                    raise ValidationError(f"Record in '{name}' is missing '{e.args[0]}'", {'index': index})
                except (TypeError, ValueError, OverflowError) as e:
                    raise ValidationError(f"Invalid value in '{name}': {e}", {'index': index})
            parsed[name] = entities
        return parsed

    def import_state(self, data: Any):
        """Replace every collection with the contents of a backup.

        The data is validated before anything is touched; the replacement
        itself runs in one transaction, so a failure leaves the previous
        state in place.

        Raises:
            ValidationError: The backup is malformed.
            PersistenceError: The backup could not be stored (for example
                duplicate ids or emails).
        """
        parsed = self.parse_state(data)
        with self.db.transaction():
            self.db.clear_entities()
            for name, _, _ in COLLECTIONS:
                repository = self.repositories[name]
                for entity in parsed[name]:
                    repository.insert(entity)
        logger.info(f"Backup restored ({', '.join(f'{len(v)} {k}' for k, v in parsed.items())})")

    def restore_from_file(self, path):
        """Load a backup file written by export_to_file().

        Raises:
            ValidationError: The file is not valid JSON or not a backup.
            PersistenceError: The file could not be read or stored.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Backup file is not valid JSON: {e}", {'path': path})
        except OSError as e:
            raise PersistenceError(f"Could not read backup: {e}", {'path': path})
        self.import_state(data)
