"""
Interactive CLI for Helper Tracker account administration.
Log in as an admin, then create accounts or list the existing ones.
"""

from getpass import getpass

from helper_tracker import forms
from helper_tracker.permissions import Role, can_manage_users, parse_role
from helper_tracker.sheets import DuplicateRecordError, SheetStore, open_spreadsheet, verify_password


def _ask(prompt: str) -> str:
    return input(prompt).strip()


def _create_user(store: SheetStore, admin_username: str) -> None:
    username = _ask("  username: ")
    email = _ask("  email: ")
    password = getpass("  password: ")
    role = _ask("  role [viewer/staff/admin] (viewer): ") or Role.VIEWER.value

    problems = [p for p in (forms.username(username), forms.email(email), forms.password(password)) if p]
    if role not in {r.value for r in Role}:
        problems.append(f"Unknown role '{role}'")
    if problems:
        print("\n[ERROR] " + "\n[ERROR] ".join(problems))
        return

    try:
        user = store.create_user(username, email, password, parse_role(role), created_by=admin_username)
    except DuplicateRecordError as e:
        print(f"\n[ERROR] {e}")
        return
    print(f"\n[ok] Created {user.username} ({user.role.value}) id={user.id}")


def _list_users(store: SheetStore) -> None:
    users = store.list_users()
    if not users:
        print("(no users)")
        return
    for u in users:
        print(f"  {u.id:<20} {u.username:<20} {u.role.value:<7} {u.status:<9} {u.email}")


def main():
    print("=== Helper Tracker: account administration ===\n")

    store = SheetStore(open_spreadsheet())
    if store.ensure_default_admin():
        print("[init] Users sheet was empty; default admin created.")

    # ── Login ────────────────────────────────────────────────────────
    try:
        username = _ask("Admin username (or 'quit'): ")
        if not username or username.lower() in {"quit", "exit"}:
            print("Goodbye.")
            return
        password = getpass("Password: ")
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    found = store.get_user_by_username(username)
    if found is None or not verify_password(password, found[1]):
        print("\n[ERROR] Login failed.")
        return
    admin, _ = found
    if not can_manage_users(admin.role):
        print(f"\n[ERROR] {admin.username} (role={admin.role.value}) cannot manage users.")
        return

    print(f"\n[auth] Logged in as: {admin.username} (role={admin.role.value})")

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            cmd = _ask("\nCommand [create/list/quit]: ").lower()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if cmd in {"quit", "exit"}:
            print("Goodbye.")
            break
        if cmd == "create":
            _create_user(store, admin.username)
        elif cmd == "list":
            _list_users(store)
        elif cmd:
            print(f"Unknown command '{cmd}'")


if __name__ == "__main__":
    main()
