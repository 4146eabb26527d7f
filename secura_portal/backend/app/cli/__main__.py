# backend/app/cli/__main__.py
from __future__ import annotations

import argparse

from app.cli.seed import seed_superadmin
from app.db import SessionLocal
from app.services.reconciliation import reconcile_orphans
from app.services.storage import get_blob_store


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m app.cli")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("seed-superadmin", help="create (or reset) the platform superadmin")
    s.add_argument("--email", required=True)
    s.add_argument("--password", default=None, help="generated when omitted")
    s.add_argument("--name", default="Platform Admin")

    r = sub.add_parser("reconcile", help="delete blobs recorded in orphaned_blobs")
    r.add_argument("--limit", type=int, default=500)

    args = p.parse_args()

    if args.command == "seed-superadmin":
        out = seed_superadmin(email=args.email, password=args.password, full_name=args.name)
        print({"ok": True, "user_id": out.user_id, "email": out.email, "created": out.created, "password": out.password})
        return

    db = SessionLocal()
    try:
        print({"ok": True, **reconcile_orphans(db, get_blob_store(), limit=args.limit)})
    finally:
        db.close()


if __name__ == "__main__":
    main()
