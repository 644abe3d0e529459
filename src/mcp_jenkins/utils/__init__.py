"""Logging and audit helpers."""
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    timed_section_sync,
    perf_logger,
)
from .audit_log import ChangeRecord, ChangeTracker, get_recent_changes, setup_audit_logging

__all__ = [
    "setup_logging",
    "timed",
    "timed_section",
    "timed_section_sync",
    "perf_logger",
    "ChangeRecord",
    "ChangeTracker",
    "get_recent_changes",
    "setup_audit_logging",
]
