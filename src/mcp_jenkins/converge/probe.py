"""Probe current remote state and normalize it.

``get-node`` / ``get-job`` output is either a not-found message (the object is
absent, a normal outcome) or an XML config document parsed into the canonical
attribute mapping of ``CurrentState``.
"""
import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Optional

from ..jenkins.base import CommandExecutor, ExecutorError
from ..utils.logging_config import timed
from .dispatcher import ActionDispatcher
from .errors import ProbeFailed
from .schema import (
    Availability,
    AvailabilityType,
    CommandLauncher,
    CurrentState,
    JNLPLauncher,
    Launcher,
    Mode,
    ResourceKind,
    SSHLauncher,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = {
    ResourceKind.SLAVE: "No such node",
    ResourceKind.NODE: "No such node",
    ResourceKind.JOB: "No such job",
}

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")


class StateProbe:
    """Fetch and parse current state, memoized for one convergence pass.

    Create a new probe per pass; results are never reused across passes.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        dispatcher: Optional[ActionDispatcher] = None,
        timeout: Optional[float] = None,
    ):
        self.executor = executor
        self.dispatcher = dispatcher or ActionDispatcher()
        self.timeout = timeout
        self._cache: dict[tuple[ResourceKind, str], CurrentState] = {}

    @property
    def target(self) -> str:
        return self.executor.target

    @timed("probe")
    async def fetch(self, kind: ResourceKind, name: str) -> CurrentState:
        """
        Fetch the current state of a named remote object.

        Returns:
            CurrentState with ``present=False`` when the object does not exist

        Raises:
            ProbeFailed: If the state could not be determined
        """
        kind = ResourceKind(kind)
        key = (kind, name)
        if key in self._cache:
            return self._cache[key]

        command = self.dispatcher.probe_command(kind, name)
        try:
            success, output = await self.executor.run(command, timeout=self.timeout)
        except ExecutorError as e:
            raise ProbeFailed(
                f"Could not run '{command}': {e}", kind=kind.value, name=name
            ) from e

        marker = NOT_FOUND_MARKERS[kind]
        if marker in (output or ""):
            logger.debug(f"{kind.value} {name} does not exist")
            state = CurrentState.absent(kind, name)
        elif not success:
            raise ProbeFailed(
                f"'{command}' failed: {output}", kind=kind.value, name=name
            )
        elif kind == ResourceKind.JOB:
            state = parse_job_config(name, output)
        else:
            state = parse_node_config(kind, name, output)

        self._cache[key] = state
        return state

    def clear(self) -> None:
        self._cache.clear()


def _parse_document(kind: ResourceKind, name: str, text: str) -> ET.Element:
    body = _XML_DECLARATION.sub("", text or "", count=1).strip()
    if not body:
        raise ProbeFailed("Empty probe response", kind=kind.value, name=name)
    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise ProbeFailed(
            f"Unparseable {kind.value} config: {e}", kind=kind.value, name=name
        ) from e


def _text(element: Optional[ET.Element], path: str) -> Optional[str]:
    """Stripped text of a child element, None if missing or empty."""
    if element is None:
        return None
    child = element.find(path)
    if child is None or child.text is None:
        return None
    value = child.text.strip()
    return value or None


def _int(element: Optional[ET.Element], path: str) -> Optional[int]:
    value = _text(element, path)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.debug(f"Ignoring non-integer <{path}>: {value!r}")
        return None


def parse_node_config(kind: ResourceKind, name: str, text: str) -> CurrentState:
    """
    Parse a ``get-node`` document into a CurrentState.

    Optional elements default to None. ``<name>`` is required.

    Raises:
        ProbeFailed: If the document is malformed or has no name
    """
    root = _parse_document(kind, name, text)

    remote_name = _text(root, "name")
    if remote_name is None:
        raise ProbeFailed(
            "Node config has no <name> element", kind=kind.value, name=name
        )

    mode_text = _text(root, "mode")
    try:
        mode = Mode(mode_text.lower()) if mode_text else None
    except ValueError:
        logger.debug(f"Unknown node mode {mode_text!r} for {name}")
        mode = None

    label_text = _text(root, "label")
    launcher_el = root.find("launcher")
    launcher_class = launcher_el.get("class") if launcher_el is not None else None

    attributes: dict[str, Any] = {
        "name": remote_name,
        "description": _text(root, "description"),
        "remote_fs": _text(root, "remoteFS"),
        "executors": _int(root, "numExecutors"),
        "mode": mode,
        "labels": label_text.split() if label_text else [],
        "launcher": _parse_launcher(launcher_el),
        "launcher_class": launcher_class,
        "availability": _parse_availability(root.find("retentionStrategy")),
        "env": _parse_env(root.find("nodeProperties")),
    }

    return CurrentState(
        kind=kind,
        name=name,
        present=True,
        attributes=attributes,
        user_id=_text(root, "userId"),
        raw=text,
    )


def parse_job_config(name: str, text: str) -> CurrentState:
    """Parse a ``get-job`` document; the job name comes from the request."""
    root = _parse_document(ResourceKind.JOB, name, text)
    disabled = _text(root, "disabled")
    return CurrentState(
        kind=ResourceKind.JOB,
        name=name,
        present=True,
        attributes={
            "job_type": root.tag,
            "description": _text(root, "description"),
            "disabled": disabled == "true" if disabled is not None else None,
        },
        raw=text,
    )


def _parse_launcher(element: Optional[ET.Element]) -> Optional[Launcher]:
    """Map a launcher class to its variant; unknown classes yield None."""
    if element is None:
        return None
    cls = element.get("class", "")

    if cls.endswith("JNLPLauncher"):
        return JNLPLauncher()

    if cls.endswith("CommandLauncher"):
        command = _text(element, "agentCommand")
        return CommandLauncher(command=command) if command else None

    if cls.endswith("SSHLauncher"):
        host = _text(element, "host")
        if not host:
            return None
        port = _int(element, "port")
        return SSHLauncher(
            host=host,
            port=port if port and port > 0 else 22,
            username=_text(element, "username"),
            credential=_text(element, "credentialsId"),
            jvm_options=_text(element, "jvmOptions"),
        )

    logger.debug(f"Unrecognized launcher class {cls!r}")
    return None


def _parse_availability(element: Optional[ET.Element]) -> Optional[Availability]:
    if element is None:
        return None
    cls = element.get("class", "")
    if cls.endswith("$Always"):
        return Availability(kind=AvailabilityType.ALWAYS)
    if cls.endswith("$Demand"):
        return Availability(
            kind=AvailabilityType.DEMAND,
            in_demand_delay=max(_int(element, "inDemandDelay") or 0, 0),
            idle_delay=max(_int(element, "idleDelay") or 0, 0),
        )
    return None


def _parse_env(properties: Optional[ET.Element]) -> dict[str, str]:
    """Environment variables from the serialized tree-map (key, value pairs)."""
    if properties is None:
        return {}
    tree_map = properties.find(".//envVars/tree-map")
    if tree_map is None:
        return {}
    strings = [child.text or "" for child in tree_map.findall("string")]
    return dict(zip(strings[0::2], strings[1::2]))
