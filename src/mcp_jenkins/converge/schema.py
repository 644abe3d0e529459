"""Schema definitions for convergence passes.

Desired-state records per resource kind, the probed current state, and the
per-pass result.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from . import validator
from .errors import ConvergeError, InvalidConfig, UnknownAction
from .validator import validating


class ResourceKind(str, Enum):
    """Category of remote object."""
    SLAVE = "slave"
    JOB = "job"
    NODE = "node"


class ActionKind(str, Enum):
    """Requested intent, or the action a pass took."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ENABLE = "enable"
    DISABLE = "disable"
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ONLINE = "online"
    OFFLINE = "offline"
    BUILD = "build"
    NONE = "none"


# Intents that converge on presence/absence of the object
ENSURE_PRESENT = frozenset({ActionKind.CREATE, ActionKind.UPDATE})
ENSURE_ABSENT = frozenset({ActionKind.DELETE})

# Always-run state transitions, never skipped based on current state
IMPERATIVE = frozenset({
    ActionKind.ENABLE,
    ActionKind.DISABLE,
    ActionKind.CONNECT,
    ActionKind.DISCONNECT,
    ActionKind.ONLINE,
    ActionKind.OFFLINE,
    ActionKind.BUILD,
})


def parse_action(value: Any) -> ActionKind:
    """Coerce an intent into ``ActionKind``, raising ``UnknownAction``."""
    if isinstance(value, ActionKind):
        action = value
    else:
        try:
            action = ActionKind(str(value).strip().lower())
        except ValueError:
            raise UnknownAction(f"Unknown action: {value!r}")
    if action == ActionKind.NONE:
        raise UnknownAction("'none' is a result, not a requestable action")
    return action


class Mode(str, Enum):
    """Node usage mode."""
    NORMAL = "normal"
    EXCLUSIVE = "exclusive"


class LauncherType(str, Enum):
    """How an agent connects to the controller."""
    JNLP = "jnlp"
    COMMAND = "command"
    SSH = "ssh"


class AvailabilityType(str, Enum):
    """Retention strategy of an agent."""
    ALWAYS = "always"
    DEMAND = "demand"


# --- Launcher variants ---

@dataclass
class JNLPLauncher:
    """Agent connects inbound over JNLP."""
    type: ClassVar[LauncherType] = LauncherType.JNLP

    def to_dict(self) -> dict:
        return {"type": self.type.value}


@dataclass
class CommandLauncher:
    """Controller starts the agent by running a command."""
    command: str

    type: ClassVar[LauncherType] = LauncherType.COMMAND

    def __post_init__(self):
        validator.string(self.command, "launcher.command")

    def to_dict(self) -> dict:
        return {"type": self.type.value, **asdict(self)}


@dataclass
class SSHLauncher:
    """Controller starts the agent over SSH."""
    host: str
    port: int = 22
    username: Optional[str] = None
    credential: Optional[str] = None  # Jenkins credentials id
    jvm_options: Optional[str] = None

    type: ClassVar[LauncherType] = LauncherType.SSH

    def __post_init__(self):
        validator.string(self.host, "launcher.host")
        validator.positive_int(self.port, "launcher.port")
        validator.optional_string(self.username, "launcher.username")
        validator.optional_string(self.credential, "launcher.credential")
        validator.optional_string(self.jvm_options, "launcher.jvm_options")

    def to_dict(self) -> dict:
        return {"type": self.type.value, **asdict(self)}


Launcher = Union[JNLPLauncher, CommandLauncher, SSHLauncher]


@dataclass
class Availability:
    """When the agent should be kept online."""
    kind: AvailabilityType = AvailabilityType.ALWAYS
    in_demand_delay: int = 0  # minutes
    idle_delay: int = 0       # minutes

    def __post_init__(self):
        self.kind = validator.enum_of(AvailabilityType, self.kind, "availability")
        validator.non_negative_int(self.in_demand_delay, "availability.in_demand_delay")
        validator.non_negative_int(self.idle_delay, "availability.idle_delay")

    def to_dict(self) -> dict:
        if self.kind == AvailabilityType.ALWAYS:
            return {"type": self.kind.value}
        return {
            "type": self.kind.value,
            "in_demand_delay": self.in_demand_delay,
            "idle_delay": self.idle_delay,
        }


# --- Desired state ---

@dataclass
class NodeDesiredState:
    """Desired state for a generic node."""
    name: str
    action: ActionKind = ActionKind.CREATE
    description: str = ""
    remote_fs: Optional[str] = None
    mode: Mode = Mode.NORMAL
    launcher: Launcher = field(default_factory=JNLPLauncher)
    availability: Availability = field(default_factory=Availability)
    env: dict[str, str] = field(default_factory=dict)
    config: Optional[str] = None  # pre-built config.xml, overrides rendering

    kind: ClassVar[ResourceKind] = ResourceKind.NODE

    def __post_init__(self):
        with validating(self.kind.value, self.name if isinstance(self.name, str) else None):
            self._validate()

    def _validate(self) -> None:
        validator.string(self.name, "name")
        self.action = parse_action(self.action)
        self.description = validator.optional_string(self.description, "description") or ""
        validator.optional_string(self.remote_fs, "remote_fs")
        self.mode = validator.enum_of(Mode, self.mode, "mode")
        if not isinstance(self.launcher, (JNLPLauncher, CommandLauncher, SSHLauncher)):
            raise InvalidConfig(
                f"launcher must be a launcher variant, got {self.launcher!r}"
            )
        if not isinstance(self.availability, Availability):
            raise InvalidConfig(
                f"availability must be an Availability, got {self.availability!r}"
            )
        self.env = validator.string_map(self.env, "env")
        self.config = validator.config_path(self.config, "config")

    @property
    def needs_payload(self) -> bool:
        """Whether create/update cannot proceed without a config file."""
        return False

    def attributes(self) -> dict[str, Any]:
        """Canonical attribute mapping, comparable with ``CurrentState``."""
        return {
            "description": self.description,
            "remote_fs": self.remote_fs,
            "mode": self.mode,
            "launcher": self.launcher,
            "availability": self.availability,
            "env": self.env,
        }


@dataclass
class SlaveDesiredState(NodeDesiredState):
    """Desired state for a build agent."""
    executors: int = 1
    labels: list[str] = field(default_factory=list)

    kind: ClassVar[ResourceKind] = ResourceKind.SLAVE

    def _validate(self) -> None:
        super()._validate()
        validator.non_negative_int(self.executors, "executors")
        self.labels = validator.string_set(self.labels, "labels")

    def attributes(self) -> dict[str, Any]:
        attrs = super().attributes()
        attrs["executors"] = self.executors
        attrs["labels"] = self.labels
        return attrs


@dataclass
class JobDesiredState:
    """Desired state for a job, defined by an opaque config.xml."""
    name: str
    action: ActionKind = ActionKind.CREATE
    config: Optional[str] = None

    kind: ClassVar[ResourceKind] = ResourceKind.JOB

    def __post_init__(self):
        with validating(self.kind.value, self.name if isinstance(self.name, str) else None):
            validator.string(self.name, "name")
            self.action = parse_action(self.action)
            self.config = validator.config_path(self.config, "config")

    @property
    def needs_payload(self) -> bool:
        return True

    def attributes(self) -> dict[str, Any]:
        return {}


DesiredState = Union[NodeDesiredState, SlaveDesiredState, JobDesiredState]

DESIRED_STATE_TYPES: dict[ResourceKind, type] = {
    ResourceKind.NODE: NodeDesiredState,
    ResourceKind.SLAVE: SlaveDesiredState,
    ResourceKind.JOB: JobDesiredState,
}


# --- Current state ---

@dataclass
class CurrentState:
    """Live state of a remote object at probe time."""
    kind: ResourceKind
    name: str
    present: bool = False
    attributes: dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    raw: Optional[str] = None

    @classmethod
    def absent(cls, kind: ResourceKind, name: str) -> "CurrentState":
        return cls(kind=kind, name=name, present=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "name": self.name,
            "present": self.present,
            "attributes": {k: to_jsonable(v) for k, v in self.attributes.items()},
            "user_id": self.user_id,
        }


def to_jsonable(value: Any) -> Any:
    """Flatten enums and attribute variants for JSON output."""
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


# --- Pass result ---

class PassState(str, Enum):
    """Where a convergence pass ended."""
    UNPROBED = "unprobed"
    PROBED = "probed"
    DECIDED = "decided"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    """Result of one convergence pass for one resource."""
    kind: ResourceKind
    name: str
    action: ActionKind = ActionKind.NONE
    changed: bool = False
    dry_run: bool = False
    state: PassState = PassState.UNPROBED
    present: Optional[bool] = None
    command: Optional[str] = None
    output: str = ""
    error: Optional[ConvergeError] = None
    drift: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None

    def fail(self, error: ConvergeError) -> "ReconcileResult":
        """Mark the pass failed with ``error``."""
        if error.kind is None:
            error.kind = self.kind.value
        if error.name is None:
            error.name = self.name
        self.error = error
        self.state = PassState.FAILED
        self.changed = False
        return self

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "name": self.name,
            "action": self.action.value,
            "changed": self.changed,
            "dry_run": self.dry_run,
            "state": self.state.value,
            "present": self.present,
            "command": self.command,
            "output": self.output,
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "drift": self.drift,
        }
