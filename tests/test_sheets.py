"""
Unit tests for the spreadsheet row store, run against an in-memory fake.
"""

import pytest

from conftest import FakeSpreadsheet, FakeWorksheet
from helper_tracker.config import HELPERS_SHEET, STAFF_SHEET, USERS_SHEET
from helper_tracker.permissions import Role
from helper_tracker.sheets import (
    HEADERS,
    DuplicateRecordError,
    RecordNotFoundError,
    SheetSchemaError,
    SheetStore,
    verify_password,
)

HELPER = {
    "name": "Siti",
    "currentEmployer": "Tan family",
    "problem": "",
    "totalEmployers": 2,
    "eaOfficer": "Mei",
    "outstandingLoan": 1500,
    "employmentStartDate": "2024-01-10",
    "pt": "Hoki",
}


# ── Tests: worksheet bootstrap ───────────────────────────────────────

def test_missing_worksheet_is_created_with_headers(store, spreadsheet):
    assert store.list_helpers() == []
    ws = spreadsheet.worksheets[HELPERS_SHEET]
    assert ws.rows == [HEADERS[HELPERS_SHEET]]


def test_sheet_without_id_column_is_rejected():
    spreadsheet = FakeSpreadsheet({HELPERS_SHEET: FakeWorksheet(HELPERS_SHEET, [["name"], ["Siti"]])})
    with pytest.raises(SheetSchemaError, match='missing "id" column'):
        SheetStore(spreadsheet).get_helper("1")


# ── Tests: helpers ───────────────────────────────────────────────────

def test_helper_crud_round(store):
    created = store.add_helper(HELPER)
    assert created.id
    assert created.transfer_status == "New"

    fetched = store.get_helper(created.id)
    assert fetched.name == "Siti"
    assert fetched.total_employers == 2
    assert fetched.outstanding_loan == 1500

    updated = store.update_helper(created.id, {"outstandingLoan": 900, "problem": "late salary"})
    assert updated.outstanding_loan == 900
    assert store.get_helper(created.id).problem == "late salary"

    store.delete_helper(created.id)
    with pytest.raises(RecordNotFoundError, match=f"Helper with id {created.id} not found"):
        store.get_helper(created.id)


def test_helper_ids_are_unique_within_sheet(store):
    ids = {store.add_helper(HELPER).id for _ in range(5)}
    assert len(ids) == 5


def test_update_ignores_id_and_unknown_columns(store, spreadsheet):
    helper = store.add_helper(HELPER)
    ws = spreadsheet.worksheets[HELPERS_SHEET]
    before = ws.update_calls
    store.update_helper(helper.id, {"id": "hijack", "nickname": "x", "name": None})
    assert ws.update_calls == before
    assert store.get_helper(helper.id).id == helper.id


def test_delete_only_removes_target_row(store):
    a = store.add_helper(dict(HELPER, name="A"))
    b = store.add_helper(dict(HELPER, name="B"))
    c = store.add_helper(dict(HELPER, name="C"))
    store.delete_helper(b.id)
    assert [h.id for h in store.list_helpers()] == [a.id, c.id]


def test_update_missing_helper_raises(store):
    with pytest.raises(RecordNotFoundError):
        store.update_helper("404", {"name": "x"})


# ── Tests: incidents ─────────────────────────────────────────────────

def test_incidents_filter_by_helper_and_sort_newest_first(store, monkeypatch):
    stamps = iter(["2024-01-01T00:00:00", "2024-03-01T00:00:00", "2024-02-01T00:00:00"])
    monkeypatch.setattr("helper_tracker.sheets._now_iso", lambda: next(stamps))

    store.add_incident({"helperId": "h1", "incidentDate": "2024-01-01", "description": "first one here"})
    store.add_incident({"helperId": "h2", "incidentDate": "2024-03-01", "description": "other helper"})
    store.add_incident({
        "helperId": "h1", "incidentDate": "2024-02-01", "description": "second one here",
        "mediaUrls": ["https://x/1", "https://x/2"],
    })

    mine = store.list_incidents(helper_id="h1")
    assert [i.description for i in mine] == ["second one here", "first one here"]
    assert mine[0].media_urls == ["https://x/1", "https://x/2"]
    assert mine[0].severity == "Medium"
    assert mine[0].status == "Open"
    assert [i.helper_id for i in store.list_incidents()] == ["h2", "h1", "h1"]


def test_incident_with_preset_id_must_be_unique(store):
    store.add_incident({"id": "inc-1", "helperId": "h1", "description": "something happened"})
    with pytest.raises(DuplicateRecordError):
        store.add_incident({"id": "inc-1", "helperId": "h1", "description": "again"})


def test_update_and_delete_incident(store):
    incident = store.add_incident({"helperId": "h1", "description": "something happened"})
    updated = store.update_incident(incident.id, {"status": "Resolved", "resolution": "paid back"})
    assert updated.status == "Resolved"
    store.delete_incident(incident.id)
    assert store.list_incidents() == []


# ── Tests: users ─────────────────────────────────────────────────────

def test_default_admin_seeded_once(store):
    assert store.ensure_default_admin() is True
    assert store.ensure_default_admin() is False
    user, hashed = store.get_user_by_username("admin")
    assert user.role is Role.ADMIN
    assert user.id == "admin-1"
    assert verify_password("admin123", hashed)


def test_create_user_hashes_password(store, spreadsheet):
    user = store.create_user("staffer", "s@example.com", "Passw0rd1", Role.STAFF, created_by="admin")
    assert user.id.startswith("user-")
    assert user.role is Role.STAFF
    assert user.created_by == "admin"

    row = spreadsheet.worksheets[USERS_SHEET].rows[1]
    assert "Passw0rd1" not in row
    _, hashed = store.get_user_by_username("staffer")
    assert verify_password("Passw0rd1", hashed)
    assert not verify_password("wrong", hashed)


def test_create_user_rejects_duplicates(store):
    store.create_user("staffer", "s@example.com", "Passw0rd1", Role.STAFF, created_by="admin")
    with pytest.raises(DuplicateRecordError, match="Username already exists"):
        store.create_user("staffer", "other@example.com", "Passw0rd1", Role.STAFF, created_by="admin")
    with pytest.raises(DuplicateRecordError, match="Email already exists"):
        store.create_user("other", "s@example.com", "Passw0rd1", Role.STAFF, created_by="admin")


def test_update_user_role_and_status(store):
    user = store.create_user("staffer", "s@example.com", "Passw0rd1", Role.STAFF, created_by="admin")
    updated = store.update_user(user.id, role="admin", status="inactive")
    assert updated.role is Role.ADMIN
    assert not updated.is_active


def test_unknown_stored_role_reads_as_viewer(store, spreadsheet):
    store.list_users()
    ws = spreadsheet.worksheets[USERS_SHEET]
    ws.append_row(["u-9", "odd", "odd@example.com", "", "superuser", "active", "", ""])
    user, _ = store.get_user_by_username("odd")
    assert user.role is Role.VIEWER


def test_unknown_username_returns_none(store):
    assert store.get_user_by_username("ghost") is None


def test_verify_password_tolerates_blank_and_malformed_hashes():
    assert verify_password("x", "") is False
    assert verify_password("x", "not-a-bcrypt-hash") is False


def test_delete_missing_user_raises(store):
    with pytest.raises(RecordNotFoundError, match="User with id nobody not found"):
        store.delete_user("nobody")


# ── Tests: staff directory ───────────────────────────────────────────

def test_staff_crud_round(store, spreadsheet):
    member = store.add_staff({"name": "Mei Lin", "role": "EA Officer", "email": "mei@example.com"})
    assert spreadsheet.worksheets[STAFF_SHEET].rows[0] == HEADERS[STAFF_SHEET]
    assert member.contact == ""

    updated = store.update_staff(member.id, {"contact": "91234567", "nickname": "ignored"})
    assert updated.contact == "91234567"
    assert [s.to_dict() for s in store.list_staff()] == [{
        "id": member.id, "name": "Mei Lin", "role": "EA Officer",
        "email": "mei@example.com", "contact": "91234567",
    }]

    store.delete_staff(member.id)
    assert store.list_staff() == []
    with pytest.raises(RecordNotFoundError, match=f"Staff with id {member.id} not found"):
        store.update_staff(member.id, {"name": "x"})
