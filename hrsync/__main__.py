"""
hrsync - background replication for the HR admin store.

Usage:
    python -m hrsync

Settings come from the environment or a .env file (see hrsync.config).
Runs a sync cycle at start and then every SYNC_INTERVAL_MINUTES until
interrupted.
"""

import asyncio
import logging
import sys

from pydantic import ValidationError

from hrsync.config import Settings, get_settings
from hrsync.storage import SQLiteStore
from hrsync.storage.cloud import SupabaseStore
from hrsync.sync import SyncOrchestrator, SyncScheduler

logger = logging.getLogger("hrsync")


async def run(settings: Settings) -> None:
    local = SQLiteStore(settings.local_db_path)
    remote = await SupabaseStore.connect(settings)

    if settings.admin_email and settings.admin_password:
        if not await remote.sign_in(settings.admin_email, settings.admin_password):
            logger.warning("Admin sign-in failed; cycles will be skipped until a session exists")

    scheduler = SyncScheduler(
        SyncOrchestrator(local, remote), interval_seconds=settings.sync_interval_seconds
    )
    await scheduler.run_forever()


def main() -> int:
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"✗ Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
