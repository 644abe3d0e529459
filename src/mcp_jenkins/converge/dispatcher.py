"""Map intents to Jenkins CLI commands.

Each (kind, action) pair has exactly one verb. ``create`` and ``update`` carry
the config payload on stdin; everything else is ``<verb> <name>``.
"""
from typing import Any

from ..jenkins.base import Command
from .errors import UnknownAction
from .render import render_node_config
from .schema import (
    ActionKind,
    DesiredState,
    JobDesiredState,
    ResourceKind,
    parse_action,
)

_NODE_VERBS = {
    ActionKind.CREATE: "create-node",
    ActionKind.UPDATE: "update-node",
    ActionKind.DELETE: "delete-node",
    ActionKind.CONNECT: "connect-node",
    ActionKind.DISCONNECT: "disconnect-node",
    ActionKind.ONLINE: "online-node",
    ActionKind.OFFLINE: "offline-node",
}

COMMAND_VERBS: dict[ResourceKind, dict[ActionKind, str]] = {
    ResourceKind.JOB: {
        ActionKind.CREATE: "create-job",
        ActionKind.UPDATE: "update-job",
        ActionKind.DELETE: "delete-job",
        ActionKind.ENABLE: "enable-job",
        ActionKind.DISABLE: "disable-job",
        ActionKind.BUILD: "build",
    },
    ResourceKind.SLAVE: _NODE_VERBS,
    ResourceKind.NODE: _NODE_VERBS,
}

PROBE_VERBS = {
    ResourceKind.JOB: "get-job",
    ResourceKind.SLAVE: "get-node",
    ResourceKind.NODE: "get-node",
}

PAYLOAD_ACTIONS = frozenset({ActionKind.CREATE, ActionKind.UPDATE})


class ActionDispatcher:
    """Build the command for an action on a resource."""

    def verb_for(self, kind: ResourceKind, action: Any) -> str:
        """
        Look up the CLI verb for an action on a resource kind.

        Raises:
            UnknownAction: If the action is unknown or unsupported for the kind
        """
        kind = ResourceKind(kind)
        action = parse_action(action)
        verbs = COMMAND_VERBS[kind]
        if action not in verbs:
            supported = ", ".join(a.value for a in verbs)
            raise UnknownAction(
                f"Action '{action.value}' is not supported for {kind.value} "
                f"resources. Supported: {supported}",
                kind=kind.value,
            )
        return verbs[action]

    def supported_actions(self, kind: ResourceKind) -> list[ActionKind]:
        return list(COMMAND_VERBS[ResourceKind(kind)])

    def command_for(self, action: Any, resource: DesiredState) -> Command:
        """
        Build the command for ``action`` on ``resource``.

        Args:
            action: ActionKind or its string value
            resource: Desired state of the target object

        Returns:
            Command ready for an executor

        Raises:
            UnknownAction: If no template exists for the action and kind
        """
        try:
            verb = self.verb_for(resource.kind, action)
        except UnknownAction as e:
            e.kind = resource.kind.value
            e.name = resource.name
            raise
        action = parse_action(action)

        if action not in PAYLOAD_ACTIONS:
            return Command(verb=verb, args=(resource.name,))

        if isinstance(resource, JobDesiredState) or resource.config:
            return Command(
                verb=verb,
                args=(resource.name,),
                config_path=resource.config,
            )

        return Command(
            verb=verb,
            args=(resource.name,),
            payload=render_node_config(resource),
        )

    def probe_command(self, kind: ResourceKind, name: str) -> Command:
        """Read-only command returning the object's config XML."""
        return Command(
            verb=PROBE_VERBS[ResourceKind(kind)],
            args=(name,),
            mutating=False,
        )
