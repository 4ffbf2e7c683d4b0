"""Identifier translation between the local and remote stores.

Local rows are keyed by sequential integers that never leave the machine.
The remote store keys rows by canonical identifiers: a server-assigned id
for departments and a client-generated UUID for employees. Every
cross-store reference goes through this mapper.

The mapper caches the set of remote department and employee ids for the
length of one cycle. Synchronizers prime the caches from listings they
already fetched and report rows they insert, so lookups stay accurate
without re-listing.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from hrsync.storage.base import DEPARTMENTS, EMPLOYEES, LocalStore, RemoteStore, StoreReadError

logger = logging.getLogger(__name__)


class IdentifierMapper:
    """Resolves and assigns canonical identifiers for one local/remote pair."""

    def __init__(self, local: LocalStore, remote: RemoteStore):
        self._local = local
        self._remote = remote
        self.reset()

    def reset(self) -> None:
        """Forget per-cycle remote listings. Called at the start of every cycle."""
        # str(canonical id) -> canonical id as the remote returned it
        self._remote_departments: Optional[Dict[str, Any]] = None
        self._remote_employees: Optional[set] = None

    # === Remote id caches ===

    def prime_departments(self, remote_rows) -> None:
        self._remote_departments = {
            str(row["id"]): row["id"] for row in remote_rows if row.get("id") is not None
        }

    def prime_employees(self, remote_rows) -> None:
        self._remote_employees = {str(row["id"]) for row in remote_rows if row.get("id")}

    def note_remote_department(self, remote_id: Any) -> None:
        if self._remote_departments is not None and remote_id is not None:
            self._remote_departments[str(remote_id)] = remote_id

    def note_remote_employee(self, canonical_id: str) -> None:
        if self._remote_employees is not None and canonical_id:
            self._remote_employees.add(str(canonical_id))

    async def _remote_department_ids(self) -> Dict[str, Any]:
        if self._remote_departments is None:
            self.prime_departments(await self._remote.list_all(DEPARTMENTS))
        return self._remote_departments

    async def _remote_employee_ids(self) -> set:
        if self._remote_employees is None:
            self.prime_employees(await self._remote.list_all(EMPLOYEES))
        return self._remote_employees

    # === Employees ===

    def ensure_employee_id(self, local_row: Dict[str, Any]) -> Optional[str]:
        """Return the employee's canonical id, generating and persisting one if missing.

        The id is written locally before anything is pushed, so a cycle that
        dies after the remote insert still finds the same id next time and
        updates instead of inserting a duplicate. Returns None if the id could
        not be stored; the row then waits for the next cycle.
        """
        existing = local_row.get("supabase_id")
        if existing:
            return existing

        canonical_id = str(uuid.uuid4())
        result = self._local.update_by_key(
            EMPLOYEES, {"id": local_row["id"]}, {"supabase_id": canonical_id}
        )
        if not result.ok:
            logger.warning(
                f"Could not assign canonical id to employee {local_row['id']}: {result.error}",
                extra={"collection": EMPLOYEES, "key": local_row["id"]},
            )
            return None

        local_row["supabase_id"] = canonical_id
        logger.info(f"Assigned canonical id {canonical_id} to local employee {local_row['id']}")
        return canonical_id

    def local_employee_id(self, canonical_id: Optional[str]) -> Optional[int]:
        """Local integer id of the employee mirrored from ``canonical_id``, if any."""
        if not canonical_id:
            return None
        row = self._local.get_by_key(EMPLOYEES, {"supabase_id": str(canonical_id)})
        return row["id"] if row else None

    async def remote_employee_exists(self, canonical_id: Optional[str]) -> bool:
        if not canonical_id:
            return False
        return str(canonical_id) in await self._remote_employee_ids()

    # === Departments ===

    def link_department(self, local_row: Dict[str, Any], remote_id: Any) -> bool:
        """Record the remote id of a department matched by name.

        Returns True only when a write happened.
        """
        if remote_id is None or local_row.get("supabase_id") == str(remote_id):
            return False
        result = self._local.update_by_key(
            DEPARTMENTS, {"id": local_row["id"]}, {"supabase_id": str(remote_id)}
        )
        if not result.ok:
            logger.warning(
                f"Could not link department {local_row.get('name')!r} to remote id {remote_id}: "
                f"{result.error}",
                extra={"collection": DEPARTMENTS, "key": local_row.get("name")},
            )
            return False
        local_row["supabase_id"] = str(remote_id)
        return True

    async def department_to_remote(
        self, local_department_id: Optional[int], context: str = ""
    ) -> Any:
        """Translate a local department reference for an outbound payload.

        Resolves to the department's canonical id, but only if that id exists
        on the remote side. Otherwise, or when the remote departments cannot be
        listed, the reference is nulled rather than sent dangling.
        """
        if local_department_id is None:
            return None

        row = self._local.get_by_key(DEPARTMENTS, {"id": local_department_id})
        canonical = row.get("supabase_id") if row else None
        try:
            remote_ids = await self._remote_department_ids()
        except StoreReadError as e:
            logger.warning(
                f"Data integrity: cannot verify department {local_department_id} referenced "
                f"by {context or 'employee'} ({e}); sending null",
                extra={"collection": EMPLOYEES, "key": context},
            )
            return None
        if canonical is None or str(canonical) not in remote_ids:
            logger.warning(
                f"Data integrity: local department {local_department_id} referenced by "
                f"{context or 'employee'} has no remote counterpart; sending null",
                extra={"collection": EMPLOYEES, "key": context},
            )
            return None
        return remote_ids[str(canonical)]

    def department_to_local(self, remote_department_id: Any, context: str = "") -> Optional[int]:
        """Translate a remote department reference for an inbound row."""
        if remote_department_id is None:
            return None

        row = self._local.get_by_key(DEPARTMENTS, {"supabase_id": str(remote_department_id)})
        if row is None:
            logger.warning(
                f"Data integrity: remote department {remote_department_id} referenced by "
                f"{context or 'employee'} is not mirrored locally; storing null",
                extra={"collection": EMPLOYEES, "key": context},
            )
            return None
        return row["id"]
