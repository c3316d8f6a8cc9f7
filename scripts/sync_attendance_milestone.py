#!/usr/bin/env python3
"""
Re-apply the attendance-goal rule to every convert directly against the
database. Useful after importing historic attendance or lowering the goal.
"""
from __future__ import annotations

import argparse
import logging

from sqlalchemy import func
from tqdm import tqdm

from flcseek.attendance.service import evaluate_attendance_milestone
from flcseek.config import configure_logging, settings
from flcseek.db import SessionLocal
from flcseek.models import AttendanceRecord, ProgressRecord

log = logging.getLogger("sync_attendance_milestone")


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Complete the attendance milestone for everyone at the goal.")
    p.add_argument("--dry-run", action="store_true", help="Report who would be completed without writing")
    return p.parse_args()


def main():
    configure_logging()
    args = parse_args()
    stage = settings.ATTENDANCE_STAGE_NUMBER

    db = SessionLocal()
    try:
        at_goal = [
            pid for (pid, n) in db.query(AttendanceRecord.person_id, func.count(AttendanceRecord.id))
            .group_by(AttendanceRecord.person_id)
            if n >= settings.ATTENDANCE_GOAL
        ]
        done = {
            pid for (pid,) in db.query(ProgressRecord.person_id)
            .filter(ProgressRecord.stage_number == stage, ProgressRecord.is_completed.is_(True))
        }
        pending = [pid for pid in at_goal if pid not in done]
        log.info("%d people at goal (%d), %d still need stage %d",
                 len(at_goal), settings.ATTENDANCE_GOAL, len(pending), stage)
        if args.dry_run:
            return

        updated = 0
        for pid in tqdm(pending, desc="Completing attendance stage", unit="person"):
            try:
                if evaluate_attendance_milestone(db, pid, None):
                    db.commit()
                    updated += 1
            except Exception as e:
                db.rollback()
                tqdm.write(f"FAILED {pid}: {e}")
        log.info("Attendance stage completed for %d people", updated)
    finally:
        db.close()


if __name__ == "__main__":
    main()
