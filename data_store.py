import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List

import pytz

STUDENTS_FILE = os.environ.get("STUDENTS_FILE", "students.json")


class DataStoreError(Exception):
    """Raised when the student file cannot be read or written."""


class DuplicateEmailError(DataStoreError):
    """Raised when an email is already present in the whitelist."""

    def __init__(self, email: str):
        super().__init__(f"Student with email {email} already exists")
        self.email = email


class StudentNotFoundError(DataStoreError):
    """Raised when an update targets an email that is not stored."""

    def __init__(self, email: str):
        super().__init__(f"Student with email {email} not found")
        self.email = email


@dataclass
class StudentRecord:
    id: str
    email: str
    created_at: str
    updated_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudentRecord":
        return cls(
            id=str(data["id"]),
            email=str(data["email"]),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or data.get("created_at") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now_iso() -> str:
    return datetime.now(pytz.utc).isoformat()


def _email_key(email: str) -> str:
    return str(email).strip().lower()


def load_students() -> Dict[str, Dict[str, Any]]:
    """Return the raw ``id -> record`` mapping stored in ``STUDENTS_FILE``.

    A missing file is an empty whitelist.  A file that exists but cannot be
    parsed raises :class:`DataStoreError` so callers never overwrite it.
    """
    if not os.path.exists(STUDENTS_FILE):
        return {}
    try:
        with open(STUDENTS_FILE, "r", encoding="utf-8-sig") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        logging.error("Failed to read %s: %s", STUDENTS_FILE, exc)
        raise DataStoreError(f"Failed to read students: {exc}") from exc
    if not isinstance(raw, dict):
        raise DataStoreError(f"Failed to read students: {STUDENTS_FILE} is malformed")

    cleaned: Dict[str, Dict[str, Any]] = {}
    for key, entry in raw.items():
        if not isinstance(entry, dict) or not entry.get("email"):
            logging.warning("Skipping malformed student entry %s", key)
            continue
        entry.setdefault("id", str(key))
        cleaned[str(entry["id"])] = entry
    return cleaned


def save_students(data: Dict[str, Dict[str, Any]]) -> None:
    """Persist ``data`` to ``STUDENTS_FILE`` atomically."""

    tmp_path = f"{STUDENTS_FILE}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
            try:
                f.flush()
                os.fsync(f.fileno())
            except OSError:
                # fsync may not be available on some platforms
                pass
        os.replace(tmp_path, STUDENTS_FILE)
    except OSError as exc:
        logging.error(
            "Failed to save %s atomically; original file left unchanged: %s",
            STUDENTS_FILE,
            exc,
        )
        try:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        except OSError:
            pass
        raise DataStoreError(f"Failed to save students: {exc}") from exc


def _find_by_email(data: Dict[str, Dict[str, Any]], email: str):
    key = _email_key(email)
    for sid, entry in data.items():
        if _email_key(entry.get("email", "")) == key:
            return sid
    return None


def list_students() -> List[StudentRecord]:
    """Return all students, most recently created first."""

    data = load_students()
    ordered = sorted(
        enumerate(data.values()),
        key=lambda pair: (pair[1].get("created_at") or "", pair[0]),
        reverse=True,
    )
    return [StudentRecord.from_dict(entry) for _, entry in ordered]


def create_student(email: str) -> StudentRecord:
    """Insert ``email`` and return the new record.

    Raises :class:`DuplicateEmailError` when the email (compared
    case-insensitively) is already whitelisted.
    """
    data = load_students()
    if _find_by_email(data, email) is not None:
        raise DuplicateEmailError(email)
    now = _now_iso()
    record = StudentRecord(id=uuid.uuid4().hex, email=email, created_at=now, updated_at=now)
    data[record.id] = record.to_dict()
    save_students(data)
    logging.info("Student added email=%s id=%s", email, record.id)
    return record


def delete_student(email: str) -> bool:
    """Remove ``email`` from the whitelist.

    Returns ``True`` when a record was removed.  Deleting an unknown email is
    not an error.
    """
    data = load_students()
    sid = _find_by_email(data, email)
    if sid is None:
        logging.info("Delete requested for unknown email=%s", email)
        return False
    data.pop(sid)
    save_students(data)
    logging.info("Student removed email=%s id=%s", email, sid)
    return True


def update_student_email(old_email: str, new_email: str) -> StudentRecord:
    """Change the email of the record stored under ``old_email``."""

    data = load_students()
    sid = _find_by_email(data, old_email)
    if sid is None:
        raise StudentNotFoundError(old_email)
    clash = _find_by_email(data, new_email)
    if clash is not None and clash != sid:
        raise DuplicateEmailError(new_email)
    entry = data[sid]
    entry["email"] = new_email
    entry["updated_at"] = _now_iso()
    save_students(data)
    logging.info("Student email changed id=%s %s -> %s", sid, old_email, new_email)
    return StudentRecord.from_dict(entry)
