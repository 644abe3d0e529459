"""Audit logging for convergence decisions.

Every dispatched, previewed, or failed action is written as one JSON line:
- Resource identity, action, and the rendered command
- Dry-run flag and outcome
- The probed state the decision was based on
"""
import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Create dedicated audit logger
audit_logger = logging.getLogger("butlercraft.audit")

DEFAULT_AUDIT_DIR = "~/.butlercraft"


def get_audit_file(log_dir: Optional[str] = None) -> str:
    return os.path.join(os.path.expanduser(log_dir or DEFAULT_AUDIT_DIR), "audit.log")


def setup_audit_logging(log_dir: Optional[str] = None) -> str:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.butlercraft/

    Returns:
        Path of the audit log file
    """
    audit_file = get_audit_file(log_dir)
    Path(audit_file).parent.mkdir(parents=True, exist_ok=True)

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )

    # One JSON document per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    # Don't propagate to the console/file loggers
    audit_logger.propagate = False
    return audit_file


@dataclass
class ChangeRecord:
    """Record of one convergence decision."""
    timestamp: str
    kind: str
    name: str
    action: str  # create, update, delete, build, ...
    user: str
    dry_run: bool
    success: bool
    command: Optional[str] = None
    present: Optional[bool] = None
    before_state: Optional[dict] = None
    drift: list[str] = field(default_factory=list)
    output: str = ""
    error: Optional[str] = None

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


class ChangeTracker:
    """Write audit records for one resource."""

    def __init__(self, kind: str, name: str, user: Optional[str] = None):
        self.kind = kind
        self.name = name
        self.user = user or os.environ.get("USER", "system")

    def log_change(
        self,
        action: str,
        success: bool,
        command: Optional[str] = None,
        output: str = "",
        error: Optional[str] = None,
        dry_run: bool = False,
        present: Optional[bool] = None,
        before_state: Optional[dict] = None,
        drift: Optional[list[str]] = None,
    ) -> ChangeRecord:
        """Log a convergence decision.

        Args:
            action: The action taken or previewed
            success: Whether the pass succeeded
            command: Rendered command (credentials are never part of it)
            output: Command output
            error: Error message if failed
            dry_run: Whether this was a preview (no changes made)
            present: Whether the object existed at probe time
            before_state: Probed state the decision was based on
            drift: Attribute differences observed at probe time

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            kind=self.kind,
            name=self.name,
            action=action,
            user=self.user,
            dry_run=dry_run,
            success=success,
            command=command,
            present=present,
            before_state=before_state,
            drift=list(drift or []),
            output=output[:1000] if output else "",  # Truncate long output
            error=error,
        )

        audit_logger.info(record.to_json())

        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    kind: Optional[str] = None,
    name: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.butlercraft/audit.log
        kind: Filter by resource kind
        name: Filter by resource name
        action: Filter by action
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if log_file is None:
        log_file = get_audit_file()

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if kind and record.kind != kind:
                continue
            if name and record.name != name:
                continue
            if action and record.action != action:
                continue

            records.append(record)

    return list(reversed(records[-limit:]))
