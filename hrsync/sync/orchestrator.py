"""Sync cycle orchestration.

One cycle: confirm an authenticated remote session, ask the remote to
provision its schema, then run each collection's synchronizer in
dependency order. A collection that fails is logged and the cycle moves on
to the next one.
"""

import logging
from typing import List, Optional

from hrsync.storage.base import LocalStore, RemoteStore
from hrsync.types import CycleReport, utc_now

from .id_mapper import IdentifierMapper
from .synchronizers import EntitySynchronizer, build_synchronizers

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Runs sync cycles between one local and one remote store.

    Not reentrant: callers must not start a cycle while another is running
    (SyncScheduler enforces this). Two overlapping cycles could both insert
    the same new rows remotely before either records the assigned ids.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore,
        synchronizers: Optional[List[EntitySynchronizer]] = None,
    ):
        self.local = local
        self.remote = remote
        self.mapper = IdentifierMapper(local, remote)
        self.synchronizers = (
            synchronizers
            if synchronizers is not None
            else build_synchronizers(local, remote, self.mapper)
        )

    async def _session_active(self) -> bool:
        try:
            return await self.remote.has_session()
        except Exception as e:
            logger.warning(f"Session check failed, treating as signed out: {e}")
            return False

    async def _provision_schema(self) -> None:
        try:
            await self.remote.setup_schema()
        except Exception as e:
            logger.warning(f"Schema setup RPC failed (assuming already provisioned): {e}")

    async def run_sync_cycle(self) -> CycleReport:
        """Reconcile every collection once.

        Returns a report for logging and tests; nothing in it needs acting on,
        since the next cycle re-diffs from scratch.
        """
        report = CycleReport(started_at=utc_now())

        if not await self._session_active():
            logger.info("No authenticated session, skipping sync cycle")
            report.skipped = True
            report.finished_at = utc_now()
            return report

        await self._provision_schema()
        self.mapper.reset()

        for synchronizer in self.synchronizers:
            collection = synchronizer.collection
            try:
                report.results[collection] = await synchronizer.sync()
            except Exception as e:
                logger.error(
                    f"Sync of {collection} failed, continuing with next collection: {e}",
                    exc_info=True,
                    extra={"collection": collection, "error_type": type(e).__name__},
                )
                report.failures[collection] = str(e)

        report.finished_at = utc_now()
        logger.info(
            f"Sync cycle complete: writes={report.writes}, "
            f"failed_collections={sorted(report.failures) or 'none'}"
        )
        return report
