"""
Background housekeeping.

Rows that can no longer be served are deleted by the purge worker; serving
never depends on it, since every access re-evaluates expiry itself.
"""

from pastebin.worker.purge_worker import run_purge_cycle, start_purge_worker

__all__ = ["run_purge_cycle", "start_purge_worker"]
