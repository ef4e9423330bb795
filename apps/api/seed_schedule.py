#!/usr/bin/env python3
"""
Seed the weekly default schedule from business rules.

    python seed_schedule.py          # only when the table is empty
    python seed_schedule.py --reset  # replace existing rows
"""

import sys

from sqlmodel import Session, select

from database import create_db_and_tables, engine
from models import DefaultSchedule
from services.slot_resolver import seed_default_schedule


def seed_schedule(reset: bool = False) -> int:
    create_db_and_tables()
    with Session(engine) as session:
        if reset:
            for row in session.exec(select(DefaultSchedule)).all():
                session.delete(row)
            session.commit()
        return seed_default_schedule(session)


if __name__ == "__main__":
    created = seed_schedule(reset="--reset" in sys.argv[1:])
    if created:
        print(f"✅ Seeded {created} default schedule rows")
    else:
        print("Default schedule already present (use --reset to replace it)")
