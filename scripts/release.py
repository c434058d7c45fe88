"""
OrgMS release step, run once per deploy before gunicorn starts (scripts/start.py calls it).

1. Check DATABASE_URL (Postgres only when ENV=production).
2. `alembic upgrade head` against that URL.
3. Re-seed the permission list and the dpo/bph/pengurus/anggota role matrix from
   app/orgms/constants.py, so permissions added in code (e.g. users.*) reach existing
   databases. Grants are additive, and the admin user's password is never overwritten.

Usage:
  python scripts/release.py [--migrate-only]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production. Set DATABASE_URL to Postgres.")
    return db_url


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    print("Upgrading schema to head...", flush=True)
    command.upgrade(cfg, "head")


def seed(db_url: str) -> None:
    from scripts import init_db

    print("Seeding permissions, roles and admin user...", flush=True)
    init_db.seed_only(database_url=db_url)


def run_release(*, migrate_only: bool = False) -> None:
    db_url = _database_url()
    print("=== OrgMS release start ===", flush=True)
    migrate(db_url)
    if not migrate_only:
        seed(db_url)
    print("=== OrgMS release done ===", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run OrgMS migrations and seed roles.")
    parser.add_argument("--migrate-only", action="store_true", help="skip the role/admin seed")
    args = parser.parse_args()
    run_release(migrate_only=args.migrate_only)


if __name__ == "__main__":
    main()
