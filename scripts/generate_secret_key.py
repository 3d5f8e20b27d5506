#!/usr/bin/env python3
"""
Generate the JWT signing key and print a starter .env for the API server.
Run this and copy the output to your .env file, then fill in the blanks.
"""

import secrets

ENV_TEMPLATE = """\
JWT_SECRET_KEY={secret_key}
SHEET_ID=
GOOGLE_SERVICE_ACCOUNT_EMAIL=
GOOGLE_PRIVATE_KEY=
CACHE_TTL_MINUTES=5
CACHE_MAX_ENTRIES=100
API_PORT=8000
LOG_LEVEL=INFO"""

if __name__ == "__main__":
    print("=" * 60)
    print("Helper Tracker – .env Generator")
    print("=" * 60)
    print("\nGenerating a secure random JWT key...\n")

    print(ENV_TEMPLATE.format(secret_key=secrets.token_hex(32)))
    print("\n" + "=" * 60)
    print("Copy the lines above to your .env file")
    print("SHEET_ID and the Google service-account values must be filled in")
    print("=" * 60)
