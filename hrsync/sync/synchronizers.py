"""Per-collection reconciliation.

Every synchronizer runs the same four steps each cycle, with no state
carried between cycles:

1. Fetch the full remote and local collections.
2. Index both by the collection's natural key.
3. Pull: insert remote-only rows locally, update local rows the policy
   says the remote dominates.
4. Push: insert local-only rows remotely, update remote rows the policy
   says the local side dominates.

Pulled updates copy the source row's last-modified value verbatim, so the
same change is never bounced back to where it came from. Pushed rows take
back the value the remote stored, for the same reason. A failed row
write is logged with its collection and key and the pass moves on. A
failed listing raises StoreReadError and ends this collection's pass only.
"""

import json
import logging
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from hrsync.storage.base import (
    ATTENDANCE,
    DEPARTMENTS,
    EMPLOYEES,
    MISSING_TABLE_CODE,
    PAYROLL,
    REGISTRATION,
    LocalStore,
    RemoteStore,
    StoreReadError,
    WriteResult,
)
from hrsync.types import SyncResult, parse_timestamp

from .id_mapper import IdentifierMapper
from .policies import AttendancePolicy, DominancePolicy, PayrollPolicy, TimestampPolicy

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def _pick(row: Row, fields: Iterable[str]) -> Row:
    return {f: row.get(f) for f in fields}


def _without_missing(payload: Row, *fields: str) -> Row:
    """Drop unset bookkeeping columns so the receiving store's defaults apply."""
    for f in fields:
        if payload.get(f) is None:
            payload.pop(f, None)
    return payload


def _from_json_text(value: Any) -> Any:
    """Nested values are stored locally as JSON text; send them as JSON."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def _describe(key: Any) -> str:
    if isinstance(key, tuple):
        return "/".join(str(part) for part in key)
    return str(key)


class EntitySynchronizer:
    """Fetch, index, pull and push for one collection.

    Subclasses define the natural key on each side, the field translation in
    each direction, and the dominance policy.
    """

    collection: str = ""
    policy: DominancePolicy = TimestampPolicy()

    def __init__(self, local: LocalStore, remote: RemoteStore, mapper: IdentifierMapper):
        self._local = local
        self._remote = remote
        self.mapper = mapper

    # === Hooks ===

    def remote_key(self, row: Row) -> Optional[Hashable]:
        raise NotImplementedError

    def local_key(self, row: Row) -> Optional[Hashable]:
        raise NotImplementedError

    def to_local(self, remote_row: Row) -> Optional[Row]:
        """Full local record for a remote-only row, or None to skip it this cycle."""
        raise NotImplementedError

    def local_update_fields(self, remote_row: Row) -> Row:
        """Mutable local fields taken from a dominant remote row."""
        raise NotImplementedError

    async def to_remote(self, local_row: Row) -> Row:
        """Remote payload for a local row, foreign keys translated."""
        raise NotImplementedError

    def remote_update_key(self, local_row: Row) -> Row:
        raise NotImplementedError

    async def can_push(self, local_row: Row) -> bool:
        return True

    def on_match(self, local_row: Row, remote_row: Row, result: SyncResult) -> None:
        """Called for rows present on both sides that the pull left alone."""

    def after_remote_insert(self, local_row: Row, stored: Row, result: SyncResult) -> None:
        """Called after a local row was inserted remotely."""

    # === Phases ===

    async def fetch(self) -> Tuple[List[Row], List[Row]]:
        remote_rows = await self._remote.list_all(self.collection)
        local_rows = self._local.list_all(self.collection)
        return remote_rows, local_rows

    @staticmethod
    def index(rows: List[Row], key_fn) -> Dict[Hashable, Row]:
        indexed = {}
        for row in rows:
            key = key_fn(row)
            if key is not None:
                indexed[key] = row
        return indexed

    async def sync(self) -> SyncResult:
        result = SyncResult(self.collection)

        remote_rows, local_rows = await self.fetch()
        remote_index = self.index(remote_rows, self.remote_key)
        local_index = self.index(local_rows, self.local_key)
        logger.debug(
            f"{self.collection}: {len(remote_index)} remote rows, {len(local_index)} local rows"
        )

        await self.pull(remote_rows, local_index, result)
        await self.push(local_rows, remote_index, result)

        logger.info(
            f"Synced {self.collection}: pulled={result.pulled}, pushed={result.pushed}, "
            f"linked={result.linked}, skipped={result.skipped}, errors={len(result.errors)}"
        )
        return result

    async def pull(self, remote_rows: List[Row], local_index: Dict[Hashable, Row], result):
        for remote_row in remote_rows:
            key = self.remote_key(remote_row)
            if key is None:
                result.skipped += 1
                continue
            try:
                self._pull_row(key, remote_row, local_index.get(key), result)
            except StoreReadError:
                raise
            except Exception as e:
                self._row_error("pull", key, e, result)

    def _pull_row(self, key, remote_row: Row, local_row: Optional[Row], result: SyncResult):
        if local_row is None:
            record = self.to_local(remote_row)
            if record is None:
                result.skipped += 1
                return
            write = self._local.insert(self.collection, record)
            if self._written(write, "local insert", key, result):
                result.pulled += 1
        elif self.policy.is_pull_worthy(local_row, remote_row):
            fields = self.local_update_fields(remote_row)
            write = self._local.update_by_key(self.collection, {"id": local_row["id"]}, fields)
            if self._written(write, "local update", key, result):
                result.pulled += 1
                # The push phase must see the row as it now stands.
                local_row.update(fields)
        else:
            self.on_match(local_row, remote_row, result)

    async def push(self, local_rows: List[Row], remote_index: Dict[Hashable, Row], result):
        for local_row in local_rows:
            key = self.local_key(local_row)
            if key is None:
                result.skipped += 1
                continue
            try:
                await self._push_row(key, local_row, remote_index.get(key), result)
            except StoreReadError:
                raise
            except Exception as e:
                self._row_error("push", key, e, result)

    async def _push_row(self, key, local_row: Row, remote_row: Optional[Row], result: SyncResult):
        if not self.policy.is_push_worthy(local_row, remote_row):
            return
        if not await self.can_push(local_row):
            result.skipped += 1
            return

        payload = await self.to_remote(local_row)
        if remote_row is None:
            write = await self._remote.insert(self.collection, payload)
            if self._written(write, "remote insert", key, result):
                result.pushed += 1
                self.after_remote_insert(local_row, write.data or payload, result)
                self._adopt_remote_timestamp(key, local_row, write.data, result)
        else:
            remote_key = self.remote_update_key(local_row)
            fields = {k: v for k, v in payload.items() if k not in remote_key}
            write = await self._remote.update_by_key(self.collection, remote_key, fields)
            if self._written(write, "remote update", key, result):
                result.pushed += 1
                self._adopt_remote_timestamp(key, local_row, write.data, result)

    def _adopt_remote_timestamp(self, key, local_row: Row, stored: Optional[Row], result):
        """Copy the last-modified value the remote stored back onto the local row.

        The remote fills in its own value when the payload had none. Both
        sides must hold the same one, or the next cycle would see the remote
        row as newer and pull it over local edits made in between.
        """
        field = getattr(self.policy, "field", None)
        if not stored or not field or stored.get(field) is None:
            return
        if parse_timestamp(stored[field]) == parse_timestamp(local_row.get(field)):
            return
        write = self._local.update_by_key(
            self.collection, {"id": local_row["id"]}, {field: stored[field]}
        )
        if self._written(write, "local timestamp update", key, result):
            local_row[field] = stored[field]

    # === Failure bookkeeping ===

    def _written(self, write: WriteResult, action: str, key, result: SyncResult) -> bool:
        if write.ok:
            return True
        message = f"Failed {action} for {self.collection}:{_describe(key)}: {write.error}"
        logger.warning(message, extra={"collection": self.collection, "key": _describe(key)})
        result.errors.append(message)
        return False

    def _row_error(self, phase: str, key, error: Exception, result: SyncResult) -> None:
        message = f"Error during {phase} of {self.collection}:{_describe(key)}: {error}"
        logger.error(
            message,
            exc_info=True,
            extra={
                "collection": self.collection,
                "key": _describe(key),
                "error_type": type(error).__name__,
            },
        )
        result.errors.append(message)


class DepartmentSynchronizer(EntitySynchronizer):
    """Departments, joined across stores by name.

    Local rows older than canonical ids are matched by name and get the remote
    id recorded in ``supabase_id``; that assignment is an identifier link,
    not a data change.
    """

    collection = DEPARTMENTS
    policy = TimestampPolicy("updated_at")

    async def fetch(self):
        remote_rows, local_rows = await super().fetch()
        self.mapper.prime_departments(remote_rows)
        return remote_rows, local_rows

    def remote_key(self, row):
        return row.get("name")

    def local_key(self, row):
        return row.get("name")

    def to_local(self, remote_row):
        record = _pick(remote_row, ("name", "budget", "created_at", "updated_at"))
        record["supabase_id"] = str(remote_row["id"]) if remote_row.get("id") is not None else None
        return _without_missing(record, "created_at", "updated_at")

    def local_update_fields(self, remote_row):
        fields = _pick(remote_row, ("budget", "updated_at"))
        if remote_row.get("id") is not None:
            fields["supabase_id"] = str(remote_row["id"])
        return fields

    def on_match(self, local_row, remote_row, result):
        if self.mapper.link_department(local_row, remote_row.get("id")):
            result.linked += 1

    async def to_remote(self, local_row):
        payload = _pick(local_row, ("name", "budget", "created_at", "updated_at"))
        return _without_missing(payload, "created_at", "updated_at")

    def remote_update_key(self, local_row):
        return {"name": local_row["name"]}

    def after_remote_insert(self, local_row, stored, result):
        remote_id = stored.get("id")
        if remote_id is None:
            logger.warning(
                f"Remote insert of department {local_row['name']!r} returned no id; "
                "it will be linked by name next cycle",
                extra={"collection": DEPARTMENTS, "key": local_row["name"]},
            )
            return
        self.mapper.note_remote_department(remote_id)
        self.mapper.link_department(local_row, remote_id)


class EmployeeSynchronizer(EntitySynchronizer):
    """Employees, keyed by canonical UUID on both sides.

    Local rows without a UUID get one before anything is indexed or pushed.
    Department references are translated through the mapper in both
    directions.
    """

    collection = EMPLOYEES
    policy = TimestampPolicy("updated_at")

    FIELDS = (
        "company_id",
        "first_name",
        "last_name",
        "email",
        "phone",
        "position",
        "salary",
        "hire_date",
        "status",
        "pin_code",
    )

    async def fetch(self):
        remote_rows, local_rows = await super().fetch()
        self.mapper.prime_employees(remote_rows)
        for row in local_rows:
            self.mapper.ensure_employee_id(row)
        return remote_rows, local_rows

    def remote_key(self, row):
        return row.get("id") or None

    def local_key(self, row):
        return row.get("supabase_id") or None

    def to_local(self, remote_row):
        record = _pick(remote_row, self.FIELDS)
        record["department_id"] = self.mapper.department_to_local(
            remote_row.get("department_id"), context=remote_row.get("email") or remote_row["id"]
        )
        record["supabase_id"] = remote_row["id"]
        record["created_at"] = remote_row.get("created_at")
        record["updated_at"] = remote_row.get("updated_at")
        return _without_missing(record, "created_at", "updated_at")

    def local_update_fields(self, remote_row):
        fields = _pick(remote_row, self.FIELDS)
        fields["department_id"] = self.mapper.department_to_local(
            remote_row.get("department_id"), context=remote_row.get("email") or remote_row["id"]
        )
        fields["updated_at"] = remote_row.get("updated_at")
        return fields

    async def to_remote(self, local_row):
        payload = {"id": local_row["supabase_id"]}
        payload.update(_pick(local_row, self.FIELDS))
        payload["department_id"] = await self.mapper.department_to_remote(
            local_row.get("department_id"), context=local_row.get("email") or str(local_row["id"])
        )
        payload["created_at"] = local_row.get("created_at")
        payload["updated_at"] = local_row.get("updated_at")
        return _without_missing(payload, "created_at", "updated_at")

    def remote_update_key(self, local_row):
        return {"id": local_row["supabase_id"]}

    def after_remote_insert(self, local_row, stored, result):
        self.mapper.note_remote_employee(local_row["supabase_id"])


class _EmployeeOwnedSynchronizer(EntitySynchronizer):
    """Collections whose rows belong to an employee.

    Rows only move once the owner is resolved on both sides: remote rows for
    employees not mirrored locally and local rows for employees missing
    remotely are skipped until a later cycle.
    """

    # Natural key columns after the owner's canonical id.
    KEY_FIELDS: Tuple[str, ...] = ()

    async def fetch(self):
        remote_rows = await self._remote.list_all(self.collection)
        local_rows = self._local.list_with_employee_uuid(self.collection)
        return remote_rows, local_rows

    def _key(self, owner, row) -> Optional[tuple]:
        if not owner or any(row.get(f) is None for f in self.KEY_FIELDS):
            return None
        return (str(owner),) + tuple(str(row[f]) for f in self.KEY_FIELDS)

    def remote_key(self, row):
        return self._key(row.get("employee_id"), row)

    def local_key(self, row):
        return self._key(row.get("emp_uuid"), row)

    def _local_owner(self, remote_row: Row) -> Optional[int]:
        owner = self.mapper.local_employee_id(remote_row.get("employee_id"))
        if owner is None:
            logger.debug(
                f"Skipping remote {self.collection} row for unmirrored employee "
                f"{remote_row.get('employee_id')}"
            )
        return owner

    async def can_push(self, local_row):
        if await self.mapper.remote_employee_exists(local_row.get("emp_uuid")):
            return True
        logger.debug(
            f"Skipping local {self.collection} row {local_row.get('id')}: employee "
            f"{local_row.get('emp_uuid')} not on remote yet"
        )
        return False

    def remote_update_key(self, local_row):
        key = {"employee_id": local_row["emp_uuid"]}
        key.update(_pick(local_row, self.KEY_FIELDS))
        return key


class AttendanceSynchronizer(_EmployeeOwnedSynchronizer):
    """Daily time entries keyed by (employee, date)."""

    collection = ATTENDANCE
    policy = AttendancePolicy("updated_at")
    KEY_FIELDS = ("date",)

    MUTABLE = ("check_in", "check_out", "status", "notes")

    def to_local(self, remote_row):
        owner = self._local_owner(remote_row)
        if owner is None:
            return None
        record = {"employee_id": owner, "date": remote_row["date"]}
        record.update(_pick(remote_row, self.MUTABLE + ("created_at", "updated_at")))
        return _without_missing(record, "created_at")

    def local_update_fields(self, remote_row):
        return _pick(remote_row, self.MUTABLE + ("updated_at",))

    async def to_remote(self, local_row):
        payload = {"employee_id": local_row["emp_uuid"], "date": local_row["date"]}
        payload.update(_pick(local_row, self.MUTABLE + ("created_at", "updated_at")))
        return _without_missing(payload, "created_at", "updated_at")


class PayrollSynchronizer(_EmployeeOwnedSynchronizer):
    """Payroll records keyed by (employee, period start, period end).

    Local and remote name the amounts differently: ``basic_salary`` is
    ``gross_pay`` and ``net_salary`` is ``net_pay`` remotely. Fields only the
    local computation uses get their local defaults on pull.
    """

    collection = PAYROLL
    policy = PayrollPolicy("updated_at")
    KEY_FIELDS = ("period_start", "period_end")

    SHARED = ("deductions", "breakdown", "status", "payment_date")
    LOCAL_DEFAULTS = {
        "allowances": 0,
        "cutoff_type": "Full Month",
        "working_days": 24,
        "days_present": 24,
        "daily_rate": 0,
    }

    def _amounts_to_local(self, remote_row):
        fields = {
            "basic_salary": remote_row.get("gross_pay"),
            "net_salary": remote_row.get("net_pay"),
        }
        fields.update(_pick(remote_row, self.SHARED))
        return fields

    def to_local(self, remote_row):
        owner = self._local_owner(remote_row)
        if owner is None:
            return None
        record = {
            "employee_id": owner,
            "period_start": remote_row["period_start"],
            "period_end": remote_row["period_end"],
        }
        record.update(self._amounts_to_local(remote_row))
        record.update(self.LOCAL_DEFAULTS)
        record["created_at"] = remote_row.get("created_at")
        record["updated_at"] = remote_row.get("updated_at")
        return _without_missing(record, "created_at")

    def local_update_fields(self, remote_row):
        fields = self._amounts_to_local(remote_row)
        fields["updated_at"] = remote_row.get("updated_at")
        return fields

    async def to_remote(self, local_row):
        payload = {
            "employee_id": local_row["emp_uuid"],
            "period_start": local_row["period_start"],
            "period_end": local_row["period_end"],
            "gross_pay": local_row.get("basic_salary"),
            "net_pay": local_row.get("net_salary"),
        }
        payload.update(_pick(local_row, self.SHARED + ("created_at", "updated_at")))
        payload["breakdown"] = _from_json_text(local_row.get("breakdown"))
        return _without_missing(payload, "created_at", "updated_at")


class RegistrationSynchronizer(EntitySynchronizer):
    """The installation's single admin profile, keyed by admin email.

    Only display and preference fields travel; credential hashes stay local.
    """

    collection = REGISTRATION
    policy = TimestampPolicy("last_updated")

    PROFILE_FIELDS = (
        "company_name",
        "company_email",
        "admin_name",
        "avatar",
        "bio",
        "theme_preference",
        "language",
    )

    async def to_remote(self, local_row):
        payload = {"admin_email": local_row["admin_email"]}
        payload.update(_pick(local_row, self.PROFILE_FIELDS))
        payload["is_registered"] = 1
        payload["last_updated"] = local_row.get("last_updated")
        return _without_missing(payload, "last_updated")

    def local_update_fields(self, remote_row):
        return _pick(remote_row, self.PROFILE_FIELDS + ("last_updated",))

    async def sync(self) -> SyncResult:
        result = SyncResult(self.collection)

        local_row = self._local.get_registration()
        if local_row is None:
            logger.debug("No registered admin profile locally, nothing to sync")
            return result

        email = local_row["admin_email"]
        try:
            remote_rows = await self._remote.list_where(self.collection, {"admin_email": email})
        except StoreReadError as e:
            if e.code == MISSING_TABLE_CODE:
                logger.warning("Remote profile table does not exist yet, skipping profile sync")
                return result
            raise
        remote_row = remote_rows[0] if remote_rows else None

        if self.policy.is_pull_worthy(local_row, remote_row):
            write = self._local.update_by_key(
                self.collection, {"admin_email": email}, self.local_update_fields(remote_row)
            )
            if self._written(write, "local update", email, result):
                result.pulled += 1
        elif self.policy.is_push_worthy(local_row, remote_row):
            payload = await self.to_remote(local_row)
            if remote_row is None:
                write = await self._remote.insert(self.collection, payload)
                action = "remote insert"
            else:
                payload.pop("admin_email")
                write = await self._remote.update_by_key(
                    self.collection, {"admin_email": email}, payload
                )
                action = "remote update"
            if self._written(write, action, email, result):
                result.pushed += 1
                self._adopt_remote_timestamp(email, local_row, write.data, result)

        logger.info(
            f"Synced {self.collection}: pulled={result.pulled}, pushed={result.pushed}, "
            f"errors={len(result.errors)}"
        )
        return result


def build_synchronizers(
    local: LocalStore, remote: RemoteStore, mapper: IdentifierMapper
) -> List[EntitySynchronizer]:
    """The five synchronizers in dependency order."""
    return [
        DepartmentSynchronizer(local, remote, mapper),
        EmployeeSynchronizer(local, remote, mapper),
        AttendanceSynchronizer(local, remote, mapper),
        PayrollSynchronizer(local, remote, mapper),
        RegistrationSynchronizer(local, remote, mapper),
    ]
