"""
Generate notifications from recent activities.

Runs the activity-to-notification generator once against the configured
database and prints a summary. Safe to re-run: activities that already
produced a notification are skipped.

Usage:
    python scripts/generate_notifications_from_activities.py [--hours 24] [--continue-on-error]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.core.config import settings
from backend.app.core.exceptions import AppException
from backend.app.core.observability import configure_logging
from backend.app.core.redis_client import redis_client
from backend.app.db.session import AsyncSessionLocal, engine, Base
# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.activity import Activity
from backend.app.services.activity_notifications import generate_notifications_from_activities
from backend.app.services.notification_store import NotificationStore


async def main(hours: int, continue_on_error: bool) -> int:
    configure_logging(settings.log_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        async with AsyncSessionLocal() as db:
            print(f"🔎 Scanning activities from the last {hours} hours...")
            try:
                result = await generate_notifications_from_activities(
                    db, redis_client, window_hours=hours, continue_on_error=continue_on_error
                )
            except AppException as exc:
                print(f"❌ {exc.message}")
                return 1

            print(f"✅ Generated {result.count} notifications from {result.activities_scanned} activities")
            if result.skipped:
                print(f"ℹ️  Skipped {result.skipped} activities (already notified or no user)")
            if result.failed:
                print(f"⚠️  {result.failed} activities failed")

            total = await NotificationStore.count(db, {})
            unread = await NotificationStore.count(db, {"is_read": False})
            print(f"\n📬 Total notifications: {total}")
            print(f"📭 Unread notifications: {unread}")
    finally:
        await redis_client.aclose()
        await engine.dispose()

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate notifications from recent activities")
    parser.add_argument("--hours", type=int, default=settings.activity_window_hours,
                        help="Look-back window in hours")
    parser.add_argument("--continue-on-error", action="store_true",
                        default=settings.generator_continue_on_error,
                        help="Skip activities that fail instead of aborting")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.hours, args.continue_on_error)))
