#!/usr/bin/env python3
"""Seed database with demo data (same routine as POST /api/seed)."""
from opstracker.database import SessionLocal
from opstracker.use_cases.seed import DEMO_PASSWORDS, USERS, seed_demo_data


def seed():
    """Seed database with demo data."""
    db = SessionLocal()
    try:
        created = seed_demo_data(db)
    finally:
        db.close()

    print("Demo data seeded:")
    for kind, count in created.items():
        print(f"  - {kind}: {count} created")
    print("\nLogin credentials:")
    for user in USERS:
        print(f"  {user['username']} / {DEMO_PASSWORDS[user['role']]} ({user['role']})")


if __name__ == "__main__":
    seed()
