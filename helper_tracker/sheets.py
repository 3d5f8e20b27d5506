"""
Spreadsheet-backed row store for helpers, incidents and users.

Every worksheet has a header row; records are located by a linear scan on
the ``id`` column, mutated cell by cell, and deleted by row index.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import bcrypt
import gspread

from helper_tracker.config import (
    DEFAULT_ADMIN_EMAIL,
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ADMIN_USERNAME,
    HELPERS_SHEET,
    INCIDENTS_SHEET,
    STAFF_SHEET,
    USERS_SHEET,
    get_env,
)
from helper_tracker.models import Helper, Incident, Staff, User, UserStatus, join_list
from helper_tracker.permissions import Role, parse_role

LOG = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

HEADERS: Dict[str, List[str]] = {
    HELPERS_SHEET: [
        "id", "name", "currentEmployer", "problem", "totalEmployers", "eaOfficer",
        "outstandingLoan", "employmentStartDate", "pt", "transferStatus",
    ],
    INCIDENTS_SHEET: [
        "id", "helperId", "incidentDate", "description", "severity", "reportedBy",
        "status", "resolution", "createdAt", "mediaUrls", "mediaFileIds",
    ],
    USERS_SHEET: [
        "id", "username", "email", "hashedPassword", "role", "status", "createdAt", "createdBy",
    ],
    STAFF_SHEET: ["id", "name", "role", "email", "contact"],
}

HEADER_ROW = 1


class SheetError(Exception):
    """Base class for row-store failures."""


class RecordNotFoundError(SheetError, LookupError):
    pass


class DuplicateRecordError(SheetError, ValueError):
    pass


class SheetSchemaError(SheetError):
    pass


def open_spreadsheet():
    """Authenticate with the service account from the environment and open the sheet."""
    credentials = {
        "type": "service_account",
        "client_email": get_env("GOOGLE_SERVICE_ACCOUNT_EMAIL"),
        "private_key": get_env("GOOGLE_PRIVATE_KEY").replace("\\n", "\n"),
        "token_uri": "https://oauth2.googleapis.com/token",
    }
    client = gspread.service_account_from_dict(credentials, scopes=SCOPES)
    spreadsheet = client.open_by_key(get_env("SHEET_ID"))
    print(f"[init] Opened spreadsheet: {spreadsheet.title}")
    return spreadsheet


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # Malformed hash stored in the sheet.
        return False


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id(existing: Iterable[str], prefix: str = "") -> str:
    """Millisecond timestamp id, bumped until unique within the sheet."""
    taken = set(existing)
    stamp = int(time.time() * 1000)
    while f"{prefix}{stamp}" in taken:
        stamp += 1
    return f"{prefix}{stamp}"


def _cell(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return join_list([str(v) for v in value])
    if isinstance(value, Enum):
        return str(value.value)
    return "" if value is None else str(value)


class SheetStore:
    """Row-scan CRUD over a gspread ``Spreadsheet`` (or anything shaped like one)."""

    def __init__(self, spreadsheet):
        self.spreadsheet = spreadsheet

    # ── Worksheet plumbing ───────────────────────────────────────────

    def _worksheet(self, title: str):
        try:
            ws = self.spreadsheet.worksheet(title)
        except gspread.exceptions.WorksheetNotFound:
            LOG.info("Creating missing worksheet %s", title)
            ws = self.spreadsheet.add_worksheet(title=title, rows=1000, cols=len(HEADERS[title]))
        if not ws.row_values(HEADER_ROW):
            ws.append_row(HEADERS[title])
        return ws

    def _records(self, title: str) -> Tuple[Any, List[Dict[str, Any]]]:
        ws = self._worksheet(title)
        return ws, ws.get_all_records()

    def _find(self, title: str, record_id: str, label: str) -> Tuple[Any, int, Dict[str, Any]]:
        """Return (worksheet, sheet row number, record) for *record_id*."""
        ws, records = self._records(title)
        headers = ws.row_values(HEADER_ROW)
        if "id" not in headers:
            raise SheetSchemaError(f'Sheet "{title}" is missing "id" column')
        for offset, record in enumerate(records):
            if str(record.get("id", "")) == str(record_id):
                return ws, offset + HEADER_ROW + 1, record
        raise RecordNotFoundError(f"{label} with id {record_id} not found")

    def _append(self, title: str, record: Dict[str, Any]) -> None:
        ws = self._worksheet(title)
        ws.append_row([_cell(record.get(h)) for h in HEADERS[title]])

    def _update(self, title: str, record_id: str, updates: Dict[str, Any], label: str) -> Dict[str, Any]:
        ws, row_number, record = self._find(title, record_id, label)
        headers = ws.row_values(HEADER_ROW)
        for key, value in updates.items():
            if key == "id" or value is None or key not in headers:
                continue
            ws.update_cell(row_number, headers.index(key) + 1, _cell(value))
            record[key] = _cell(value)
        LOG.info("Updated %s %s (%s)", label, record_id, ", ".join(sorted(updates)))
        return record

    def _delete(self, title: str, record_id: str, label: str) -> None:
        ws, row_number, _ = self._find(title, record_id, label)
        ws.delete_rows(row_number)
        LOG.info("Deleted %s %s", label, record_id)

    # ── Helpers ──────────────────────────────────────────────────────

    def list_helpers(self) -> List[Helper]:
        _, records = self._records(HELPERS_SHEET)
        return [Helper.from_row(r) for r in records]

    def get_helper(self, helper_id: str) -> Helper:
        _, _, record = self._find(HELPERS_SHEET, helper_id, "Helper")
        return Helper.from_row(record)

    def add_helper(self, data: Dict[str, Any]) -> Helper:
        existing = [h.id for h in self.list_helpers()]
        record = {h: data.get(h, "") for h in HEADERS[HELPERS_SHEET]}
        record["id"] = _new_id(existing)
        record["transferStatus"] = record["transferStatus"] or "New"
        self._append(HELPERS_SHEET, record)
        LOG.info("Added helper %s", record["id"])
        return Helper.from_row(record)

    def update_helper(self, helper_id: str, updates: Dict[str, Any]) -> Helper:
        return Helper.from_row(self._update(HELPERS_SHEET, helper_id, updates, "Helper"))

    def delete_helper(self, helper_id: str) -> None:
        self._delete(HELPERS_SHEET, helper_id, "Helper")

    # ── Incidents ────────────────────────────────────────────────────

    def list_incidents(self, helper_id: Optional[str] = None) -> List[Incident]:
        """All incidents (optionally for one helper), newest first."""
        _, records = self._records(INCIDENTS_SHEET)
        incidents = [Incident.from_row(r) for r in records]
        if helper_id:
            incidents = [i for i in incidents if i.helper_id == str(helper_id)]
        incidents.sort(key=lambda i: i.created_at, reverse=True)
        return incidents

    def get_incident(self, incident_id: str) -> Incident:
        _, _, record = self._find(INCIDENTS_SHEET, incident_id, "Incident")
        return Incident.from_row(record)

    def add_incident(self, data: Dict[str, Any]) -> Incident:
        existing = [i.id for i in self.list_incidents()]
        record = {h: data.get(h, "") for h in HEADERS[INCIDENTS_SHEET]}
        record["id"] = str(data.get("id") or _new_id(existing))
        if record["id"] in existing:
            raise DuplicateRecordError(f"Incident with id {record['id']} already exists")
        record["createdAt"] = _now_iso()
        record["severity"] = record["severity"] or "Medium"
        record["status"] = record["status"] or "Open"
        self._append(INCIDENTS_SHEET, record)
        LOG.info("Added incident %s for helper %s", record["id"], record["helperId"])
        return Incident.from_row(record)

    def update_incident(self, incident_id: str, updates: Dict[str, Any]) -> Incident:
        return Incident.from_row(self._update(INCIDENTS_SHEET, incident_id, updates, "Incident"))

    def delete_incident(self, incident_id: str) -> None:
        self._delete(INCIDENTS_SHEET, incident_id, "Incident")

    # ── Staff directory ──────────────────────────────────────────────

    def list_staff(self) -> List[Staff]:
        _, records = self._records(STAFF_SHEET)
        return [Staff.from_row(r) for r in records]

    def add_staff(self, data: Dict[str, Any]) -> Staff:
        existing = [s.id for s in self.list_staff()]
        record = {h: data.get(h, "") for h in HEADERS[STAFF_SHEET]}
        record["id"] = _new_id(existing)
        self._append(STAFF_SHEET, record)
        LOG.info("Added staff member %s", record["id"])
        return Staff.from_row(record)

    def update_staff(self, staff_id: str, updates: Dict[str, Any]) -> Staff:
        return Staff.from_row(self._update(STAFF_SHEET, staff_id, updates, "Staff"))

    def delete_staff(self, staff_id: str) -> None:
        self._delete(STAFF_SHEET, staff_id, "Staff")

    # ── Users ────────────────────────────────────────────────────────

    def list_users(self) -> List[User]:
        _, records = self._records(USERS_SHEET)
        return [User.from_row(r) for r in records]

    def get_user_by_username(self, username: str) -> Optional[Tuple[User, str]]:
        """Return (user, hashed_password), or None when the username is unknown."""
        _, records = self._records(USERS_SHEET)
        for record in records:
            if str(record.get("username", "")) == username:
                return User.from_row(record), str(record.get("hashedPassword", ""))
        return None

    def create_user(self, username: str, email: str, password: str,
                    role: Role, created_by: str) -> User:
        existing = self.list_users()
        if any(u.username == username for u in existing):
            raise DuplicateRecordError("Username already exists")
        if any(u.email == email for u in existing):
            raise DuplicateRecordError("Email already exists")

        record = {
            "id": _new_id((u.id for u in existing), prefix="user-"),
            "username": username,
            "email": email,
            "hashedPassword": hash_password(password),
            "role": parse_role(role).value,
            "status": UserStatus.ACTIVE.value,
            "createdAt": _now_iso(),
            "createdBy": created_by,
        }
        self._append(USERS_SHEET, record)
        LOG.info("Created user %s (role=%s) by %s", username, record["role"], created_by)
        return User.from_row(record)

    def update_user(self, user_id: str, **updates: Any) -> User:
        """Update any of username/email/hashedPassword/role/status."""
        if "role" in updates and updates["role"] is not None:
            updates["role"] = parse_role(updates["role"]).value
        return User.from_row(self._update(USERS_SHEET, user_id, updates, "User"))

    def set_password(self, user_id: str, new_password: str) -> None:
        self.update_user(user_id, hashedPassword=hash_password(new_password))

    def delete_user(self, user_id: str) -> None:
        self._delete(USERS_SHEET, user_id, "User")

    def ensure_default_admin(self) -> bool:
        """Seed the default admin when the Users sheet is empty. Returns True if seeded."""
        _, records = self._records(USERS_SHEET)
        if records:
            return False
        self._append(USERS_SHEET, {
            "id": "admin-1",
            "username": DEFAULT_ADMIN_USERNAME,
            "email": DEFAULT_ADMIN_EMAIL,
            "hashedPassword": hash_password(DEFAULT_ADMIN_PASSWORD),
            "role": Role.ADMIN.value,
            "status": UserStatus.ACTIVE.value,
            "createdAt": _now_iso(),
            "createdBy": "system",
        })
        LOG.warning("Created default admin user '%s'; change its password", DEFAULT_ADMIN_USERNAME)
        return True
