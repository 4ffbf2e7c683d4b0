"""
hrsync - Offline-first replication for the HR admin desktop store.

Keeps the embedded SQLite store and the Supabase store in step for
departments, employees, attendance, payroll and the admin profile.
"""

from .sync import SyncOrchestrator, SyncScheduler

try:
    from importlib.metadata import version

    __version__ = version("hrsync")
except Exception:
    __version__ = "0.0.0"

__all__ = ["SyncOrchestrator", "SyncScheduler"]
