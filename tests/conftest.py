"""
Shared fakes and fixtures: an in-memory spreadsheet shaped like gspread's,
a controllable clock for the cache, and a Flask test client.
"""

import bcrypt
import gspread
import pytest

from helper_tracker.api import auth
from helper_tracker.api.app import create_app
from helper_tracker.cache import AppCache
from helper_tracker.permissions import Role
from helper_tracker.sheets import SheetStore

PASSWORD = "Passw0rd1"


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeWorksheet:
    """Mimic the gspread Worksheet calls SheetStore makes."""
    def __init__(self, title, rows=None):
        self.title = title
        self.rows = [list(r) for r in (rows or [])]
        self.update_calls = 0

    def row_values(self, index):
        return list(self.rows[index - 1]) if len(self.rows) >= index else []

    def append_row(self, values):
        self.rows.append([str(v) for v in values])

    def get_all_records(self):
        if not self.rows:
            return []
        header = self.rows[0]
        records = []
        for row in self.rows[1:]:
            padded = row + [""] * (len(header) - len(row))
            records.append(dict(zip(header, padded)))
        return records

    def update_cell(self, row, col, value):
        self.update_calls += 1
        target = self.rows[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = str(value)

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSpreadsheet:
    """Mimic gspread Spreadsheet.worksheet()/add_worksheet()."""
    title = "Fake Helper Tracker"

    def __init__(self, worksheets=None):
        self.worksheets = dict(worksheets or {})

    def worksheet(self, title):
        if title not in self.worksheets:
            raise gspread.exceptions.WorksheetNotFound(title)
        return self.worksheets[title]

    def add_worksheet(self, title, rows, cols):
        ws = FakeWorksheet(title)
        self.worksheets[title] = ws
        return ws


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    real_gensalt = bcrypt.gensalt
    monkeypatch.setattr(bcrypt, "gensalt", lambda *a, **kw: real_gensalt(rounds=4))


@pytest.fixture(autouse=True)
def clear_sessions():
    auth.sessions.clear()
    yield
    auth.sessions.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def spreadsheet():
    return FakeSpreadsheet()


@pytest.fixture
def store(spreadsheet):
    return SheetStore(spreadsheet)


@pytest.fixture
def cache(clock):
    return AppCache(ttl_minutes=5, max_entries=100, timer=clock)


@pytest.fixture
def seeded_store(store):
    store.ensure_default_admin()
    store.create_user("staffer", "staff@example.com", PASSWORD, Role.STAFF, created_by="admin")
    store.create_user("watcher", "viewer@example.com", PASSWORD, Role.VIEWER, created_by="admin")
    return store


@pytest.fixture
def app(seeded_store, cache):
    app = create_app(store=seeded_store, cache=cache)
    app.testing = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Return a function that logs in and yields Authorization headers."""
    def _login(username, password=PASSWORD):
        response = client.post("/api/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.get_json()
        return {"Authorization": f"Bearer {response.get_json()['token']}"}
    return _login
