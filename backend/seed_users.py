"""
Database seeding script for lab users and sample activities.

Creates a small lab team and a day's worth of activities so the
activity-to-notification generator has something to work with.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.core.timeutils import utc_now
from backend.app.models.user import User
from backend.app.models.activity import Activity
from backend.app.models.notification import Notification  # registers the table for create_all
from sqlalchemy import select


LAB_USERS = [
    ("Dr. Ada Lovelace", "ada@lab.example.com"),
    ("Rosalind Franklin", "rosalind@lab.example.com"),
    ("Barbara McClintock", "barbara@lab.example.com"),
]

# (user index or None, type, description, category)
SAMPLE_ACTIVITIES = [
    (0, "project_created", 'Dr. Ada Lovelace created project "Protein Folding"', "project"),
    (1, "task_created", 'Rosalind Franklin was assigned "Prepare X-ray samples"', "task"),
    (1, "experiment_updated", 'Rosalind Franklin updated experiment "Crystal growth"', "experiment"),
    (2, "inventory_low", "Pipette tips are below the reorder threshold", "inventory"),
    (2, "user_login", "Barbara McClintock logged in", "authentication"),
    (None, "failed_login_attempt", "Failed login attempt for unknown@lab.example.com", "authentication"),
]


async def seed_users():
    """
    Seed lab users and recent activities.

    Creates:
    - 3 lab users
    - 6 activities spread over the last few hours (one without a user)
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting lab data seeding...")

        result = await db.execute(
            select(User).where(User.email == LAB_USERS[0][1])
        )
        if result.scalar_one_or_none():
            print("ℹ️  Lab users already exist, skipping seeding")
            return

        users = [User(name=name, email=email, is_active=True) for name, email in LAB_USERS]
        db.add_all(users)
        await db.flush()
        for user in users:
            print(f"✅ Created user {user.name} <{user.email}> (id={user.id})")

        now = utc_now()
        for offset, (user_index, activity_type, description, category) in enumerate(SAMPLE_ACTIVITIES):
            db.add(Activity(
                type=activity_type,
                description=description,
                user_id=users[user_index].id if user_index is not None else None,
                meta={"category": category},
                created_at=now - timedelta(hours=len(SAMPLE_ACTIVITIES) - offset)
            ))
        print(f"✅ Created {len(SAMPLE_ACTIVITIES)} sample activities")

        await db.commit()

        print("\n🎉 Lab data seeding completed successfully!")
        print("\nNext: python scripts/generate_notifications_from_activities.py")


if __name__ == "__main__":
    asyncio.run(seed_users())
