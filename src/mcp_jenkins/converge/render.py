"""Render agent desired state into a Jenkins node config.xml.

Produces the same document shape ``get-node`` returns, so the probe can read
back what was written.
"""
import xml.etree.ElementTree as ET

from .schema import (
    AvailabilityType,
    CommandLauncher,
    JNLPLauncher,
    NodeDesiredState,
    SSHLauncher,
)

LAUNCHER_CLASSES = {
    JNLPLauncher: "hudson.slaves.JNLPLauncher",
    CommandLauncher: "hudson.slaves.CommandLauncher",
    SSHLauncher: "hudson.plugins.sshslaves.SSHLauncher",
}

RETENTION_CLASSES = {
    AvailabilityType.ALWAYS: "hudson.slaves.RetentionStrategy$Always",
    AvailabilityType.DEMAND: "hudson.slaves.RetentionStrategy$Demand",
}

ENV_PROPERTY = "hudson.slaves.EnvironmentVariablesNodeProperty"


def render_node_config(desired: NodeDesiredState) -> bytes:
    """Render a node or slave desired state as config.xml bytes."""
    root = ET.Element("slave")
    ET.SubElement(root, "name").text = desired.name
    ET.SubElement(root, "description").text = desired.description
    ET.SubElement(root, "remoteFS").text = desired.remote_fs or ""
    ET.SubElement(root, "numExecutors").text = str(getattr(desired, "executors", 1))
    ET.SubElement(root, "mode").text = desired.mode.value.upper()

    _render_retention(root, desired)
    _render_launcher(root, desired)

    ET.SubElement(root, "label").text = " ".join(getattr(desired, "labels", []))

    properties = ET.SubElement(root, "nodeProperties")
    if desired.env:
        _render_env(properties, desired.env)

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _render_retention(root: ET.Element, desired: NodeDesiredState) -> None:
    availability = desired.availability
    strategy = ET.SubElement(
        root, "retentionStrategy", {"class": RETENTION_CLASSES[availability.kind]}
    )
    if availability.kind == AvailabilityType.DEMAND:
        ET.SubElement(strategy, "inDemandDelay").text = str(availability.in_demand_delay)
        ET.SubElement(strategy, "idleDelay").text = str(availability.idle_delay)


def _render_launcher(root: ET.Element, desired: NodeDesiredState) -> None:
    launcher = desired.launcher
    element = ET.SubElement(
        root, "launcher", {"class": LAUNCHER_CLASSES[type(launcher)]}
    )

    if isinstance(launcher, CommandLauncher):
        ET.SubElement(element, "agentCommand").text = launcher.command

    elif isinstance(launcher, SSHLauncher):
        ET.SubElement(element, "host").text = launcher.host
        ET.SubElement(element, "port").text = str(launcher.port)
        if launcher.credential:
            ET.SubElement(element, "credentialsId").text = launcher.credential
        if launcher.username:
            ET.SubElement(element, "username").text = launcher.username
        if launcher.jvm_options:
            ET.SubElement(element, "jvmOptions").text = launcher.jvm_options


def _render_env(properties: ET.Element, env: dict[str, str]) -> None:
    """Environment variables as Jenkins serializes them (custom tree-map)."""
    prop = ET.SubElement(properties, ENV_PROPERTY)
    env_vars = ET.SubElement(prop, "envVars", {"serialization": "custom"})
    ET.SubElement(env_vars, "unserializable-parents")
    tree_map = ET.SubElement(env_vars, "tree-map")
    default = ET.SubElement(tree_map, "default")
    ET.SubElement(default, "comparator", {"class": "hudson.util.CaseInsensitiveComparator"})
    ET.SubElement(tree_map, "int").text = str(len(env))
    for key in sorted(env, key=str.lower):
        ET.SubElement(tree_map, "string").text = key
        ET.SubElement(tree_map, "string").text = env[key]
