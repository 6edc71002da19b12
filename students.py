"""Whitelist operations used by the chat handlers.

Every operation returns a :class:`Result` instead of raising, so the router
can branch on ``result.ok`` and turn ``result.error`` into a notice for the
operator.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

import data_store
from data_store import (
    DataStoreError,
    DuplicateEmailError,
    StudentNotFoundError,
    StudentRecord,
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ErrorKind(Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    STORE = "store"


@dataclass(frozen=True)
class StudentError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Result:
    value: Any = None
    error: Optional[StudentError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result":
        return cls(error=StudentError(kind, message))


@dataclass
class BulkAddResult:
    succeeded: List[StudentRecord] = field(default_factory=list)
    failed: List[Tuple[str, StudentError]] = field(default_factory=list)


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def parse_email_list(text: str) -> List[str]:
    """Split comma separated input into trimmed, non-empty entries."""

    return [part.strip() for part in str(text or "").split(",") if part.strip()]


def _store_failure(action: str, exc: Exception) -> Result:
    logging.error("Store failure while trying to %s: %s", action, exc)
    return Result.failure(ErrorKind.STORE, f"Failed to {action}: {exc}")


def list_students() -> Result:
    try:
        return Result.success(data_store.list_students())
    except DataStoreError as exc:
        return _store_failure("fetch students", exc)


def add_student(email: str) -> Result:
    normalized = normalize_email(email)
    if not is_valid_email(normalized):
        logging.debug("Rejected malformed email %r", email)
        return Result.failure(ErrorKind.VALIDATION, f"Invalid email format: {str(email).strip()}")
    try:
        record = data_store.create_student(normalized)
    except DuplicateEmailError as exc:
        return Result.failure(ErrorKind.CONFLICT, str(exc))
    except DataStoreError as exc:
        return _store_failure("add student", exc)
    return Result.success(record)


def add_students(emails: Sequence[str]) -> BulkAddResult:
    """Add each of ``emails`` independently.

    Every input lands in exactly one of ``succeeded`` or ``failed``; a failure
    never stops the remaining inputs from being processed.
    """
    outcome = BulkAddResult()
    for email in emails:
        result = add_student(email)
        if result.ok:
            outcome.succeeded.append(result.value)
        else:
            outcome.failed.append((email, result.error))
    logging.info(
        "Bulk add finished: %d added, %d failed",
        len(outcome.succeeded),
        len(outcome.failed),
    )
    return outcome


def delete_student(email: str) -> Result:
    """Delete ``email``; the value is ``True`` if a record was removed."""

    normalized = normalize_email(email)
    if not normalized:
        return Result.failure(ErrorKind.VALIDATION, "No email provided.")
    try:
        return Result.success(data_store.delete_student(normalized))
    except DataStoreError as exc:
        return _store_failure("delete student", exc)


def update_student_email(old_email: str, new_email: str) -> Result:
    old_normalized = normalize_email(old_email)
    new_normalized = normalize_email(new_email)
    if not is_valid_email(new_normalized):
        return Result.failure(ErrorKind.VALIDATION, f"Invalid email format: {str(new_email).strip()}")
    try:
        record = data_store.update_student_email(old_normalized, new_normalized)
    except StudentNotFoundError as exc:
        return Result.failure(ErrorKind.NOT_FOUND, str(exc))
    except DuplicateEmailError as exc:
        return Result.failure(ErrorKind.CONFLICT, str(exc))
    except DataStoreError as exc:
        return _store_failure("update student", exc)
    return Result.success(record)
