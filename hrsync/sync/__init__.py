"""Bidirectional replication between the local and remote stores."""

from .id_mapper import IdentifierMapper
from .orchestrator import SyncOrchestrator
from .policies import AttendancePolicy, DominancePolicy, PayrollPolicy, TimestampPolicy
from .scheduler import SyncScheduler
from .synchronizers import (
    AttendanceSynchronizer,
    DepartmentSynchronizer,
    EmployeeSynchronizer,
    EntitySynchronizer,
    PayrollSynchronizer,
    RegistrationSynchronizer,
    build_synchronizers,
)

__all__ = [
    "IdentifierMapper",
    "SyncOrchestrator",
    "SyncScheduler",
    # Dominance rules
    "DominancePolicy",
    "TimestampPolicy",
    "AttendancePolicy",
    "PayrollPolicy",
    # Synchronizers
    "EntitySynchronizer",
    "DepartmentSynchronizer",
    "EmployeeSynchronizer",
    "AttendanceSynchronizer",
    "PayrollSynchronizer",
    "RegistrationSynchronizer",
    "build_synchronizers",
]
