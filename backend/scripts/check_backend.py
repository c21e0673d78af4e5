#!/usr/bin/env python3
"""
Quick checks so the backend can start. Run from backend/:
  python scripts/check_backend.py
"""
import os
import sys
from pathlib import Path

# Run from backend/
backend_dir = Path(__file__).resolve().parent.parent
os.chdir(backend_dir)
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))


def main():
    errors = []

    # 1) .env
    env_file = backend_dir / ".env"
    if not env_file.exists():
        errors.append("backend/.env missing. Set DATABASE_URL (and SMTP_* for email) there.")
    else:
        print("OK  .env exists")

    # 2) DB connection and schema
    try:
        from sqlalchemy import inspect, text

        from butternovel.db.session import engine
        from butternovel.db.tables import ALL_TABLE_NAMES

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("OK  Database connection (DATABASE_URL)")
        missing = sorted(set(ALL_TABLE_NAMES) - set(inspect(engine).get_table_names()))
        if missing:
            errors.append(f"Tables missing: {', '.join(missing)}. Run: alembic upgrade head")
            print("FAIL Tables missing:", ", ".join(missing))
        else:
            print("OK  All tables present")
    except Exception as e:
        errors.append(f"Database: {e}")
        print("FAIL Database:", e)

    # 3) SMTP (optional)
    from butternovel.config import settings

    if settings.smtp_user and settings.smtp_password:
        print("OK  SMTP configured (notification emails enabled)")
    else:
        print("--  SMTP not configured; notification emails are skipped")

    # 4) App import (catches missing deps, bad imports)
    try:
        from butternovel.main import app  # noqa: F401

        print("OK  App import (butternovel.main)")
    except Exception as e:
        errors.append(f"App import: {e}")
        print("FAIL App import:", e)

    if errors:
        print("\n---")
        for e in errors:
            print("•", e)
        print("\nThen start backend: uvicorn butternovel.main:app --reload --port 8000")
        return 1

    print("\nAll checks passed. Start with: uvicorn butternovel.main:app --reload --port 8000")
    return 0


if __name__ == "__main__":
    sys.exit(main())
