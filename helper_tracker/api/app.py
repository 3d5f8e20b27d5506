"""
Flask application factory and server entry-point.
"""

import logging
import os
import sys
import time
import traceback

from flask import Flask
from flask_cors import CORS

from helper_tracker.api.auth import cleanup_expired_sessions
from helper_tracker.api.routes import register_routes
from helper_tracker.cache import AppCache
from helper_tracker.config import (
    CACHE_MAX_ENTRIES,
    CACHE_TTL_MINUTES,
    SESSION_CLEANUP_INTERVAL_SECONDS,
    SESSION_TIMEOUT_DEFAULT_HOURS,
)
from helper_tracker.sheets import SheetStore, open_spreadsheet


def create_app(store=None, cache=None):
    """
    Build and return a fully configured Flask application.

    *store* and *cache* are created here when not supplied; the same cache
    instance is shared by every request handled by this process.
    """
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    if store is None:
        try:
            print("[init] Connecting to spreadsheet...")
            store = SheetStore(open_spreadsheet())
            if store.ensure_default_admin():
                print("[init] Default admin created: username=admin (change the password)")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    if cache is None:
        cache = AppCache(ttl_minutes=CACHE_TTL_MINUTES, max_entries=CACHE_MAX_ENTRIES)
        print(f"[init] Cache ready (ttl={CACHE_TTL_MINUTES}m, max={CACHE_MAX_ENTRIES})")

    # ── Session sweep ────────────────────────────────────────────────
    app.config["SESSION_CLEANUP_INTERVAL"] = SESSION_CLEANUP_INTERVAL_SECONDS
    last_sweep = {"at": 0.0}

    @app.before_request
    def sweep_expired_sessions():
        now = time.time()
        if now - last_sweep["at"] >= app.config["SESSION_CLEANUP_INTERVAL"]:
            last_sweep["at"] = now
            cleanup_expired_sessions()

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, store, cache)

    return app


def main():
    """Run the development server."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    print("=" * 60)
    print("Helper Tracker – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print(f"[server] Default session timeout: {SESSION_TIMEOUT_DEFAULT_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - GET  http://{host}:{port}/api/helpers")
    print(f"  - GET  http://{host}:{port}/api/incidents")
    print(f"  - GET  http://{host}:{port}/api/users")
    print(f"  - GET  http://{host}:{port}/api/dashboard/metrics")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
