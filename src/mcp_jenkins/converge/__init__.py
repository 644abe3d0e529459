"""Converge - declarative Jenkins object management.

Declare the desired state of agents, nodes, and jobs; each convergence pass
probes the live object, decides the minimal action, and dispatches it once:
- Send desired state, not individual CLI calls
- Absent objects are created, present ones updated, deletes are idempotent
- Dry-run previews every decision without touching the server
- Every decision is audited

Usage:
    from mcp_jenkins.converge import ConfigParser, Reconciler

    desired = ConfigParser().parse("job", "build-x", {"config": "jobs/build-x.xml"})
    result = await Reconciler(executor).reconcile(desired, dry_run=True)
"""

from .reconciler import Reconciler, decide, validate_payload
from .schema import (
    ResourceKind,
    ActionKind,
    Mode,
    LauncherType,
    AvailabilityType,
    JNLPLauncher,
    CommandLauncher,
    SSHLauncher,
    Availability,
    NodeDesiredState,
    SlaveDesiredState,
    JobDesiredState,
    DesiredState,
    CurrentState,
    PassState,
    ReconcileResult,
    parse_action,
)
from .errors import (
    ConvergeError,
    InvalidConfig,
    ParseError,
    ProbeFailed,
    UnknownAction,
    ActionFailed,
)
from .parser import ConfigParser
from .probe import StateProbe
from .dispatcher import ActionDispatcher
from .render import render_node_config
from .drift import compute_drift, summarize_results

__all__ = [
    # Main reconciler
    "Reconciler",
    "decide",
    "validate_payload",
    # Schema classes
    "ResourceKind",
    "ActionKind",
    "Mode",
    "LauncherType",
    "AvailabilityType",
    "JNLPLauncher",
    "CommandLauncher",
    "SSHLauncher",
    "Availability",
    "NodeDesiredState",
    "SlaveDesiredState",
    "JobDesiredState",
    "DesiredState",
    "CurrentState",
    "PassState",
    "ReconcileResult",
    "parse_action",
    # Errors
    "ConvergeError",
    "InvalidConfig",
    "ParseError",
    "ProbeFailed",
    "UnknownAction",
    "ActionFailed",
    # Parser
    "ConfigParser",
    # Components (for advanced use)
    "StateProbe",
    "ActionDispatcher",
    "render_node_config",
    "compute_drift",
    "summarize_results",
]
