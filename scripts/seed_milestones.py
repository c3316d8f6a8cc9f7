#!/usr/bin/env python3
"""Create tables, seed the default milestone catalog and an initial superadmin."""
from __future__ import annotations

import argparse
import logging
import os

from flcseek.config import configure_logging, settings
from flcseek.constants import DEFAULT_MILESTONES, Role
from flcseek.db import SessionLocal, init_db
from flcseek.models import Milestone, User
from flcseek.users import service as users

log = logging.getLogger("seed_milestones")


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed milestones and the first superadmin account.")
    p.add_argument("--admin-username", default=os.getenv("SEED_ADMIN_USERNAME", "superadmin"))
    p.add_argument("--admin-password", default=os.getenv("SEED_ADMIN_PASSWORD"),
                   help="Password for the superadmin (skipped when omitted)")
    p.add_argument("--skip-tables", action="store_true", help="Do not run create_all first")
    return p.parse_args()


def seed_milestones(db) -> int:
    existing = {n for (n,) in db.query(Milestone.stage_number)}
    added = 0
    for number, name, short, desc in DEFAULT_MILESTONES:
        if number in existing:
            continue
        db.add(Milestone(
            stage_number=number,
            stage_name=name,
            short_name=short,
            description=desc,
            is_active=True,
            is_auto_calculated=(number == settings.ATTENDANCE_STAGE_NUMBER),
        ))
        added += 1
    db.commit()
    return added


def seed_admin(db, username: str, password: str) -> bool:
    if db.query(User.id).filter(User.username == username).first():
        return False
    users.create_user(db, {"username": username, "password": password, "role": Role.SUPERADMIN})
    return True


def main():
    configure_logging()
    args = parse_args()
    if not args.skip_tables:
        init_db()

    db = SessionLocal()
    try:
        added = seed_milestones(db)
        log.info("Milestones: %d added (%d in catalog)", added, len(DEFAULT_MILESTONES))
        if args.admin_password:
            if seed_admin(db, args.admin_username, args.admin_password):
                log.info("Created superadmin '%s'", args.admin_username)
            else:
                log.info("Superadmin '%s' already exists", args.admin_username)
        else:
            log.info("No --admin-password given; skipping superadmin")
    finally:
        db.close()


if __name__ == "__main__":
    main()
