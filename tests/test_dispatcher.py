"""Tests for the ActionDispatcher and agent config rendering."""
import xml.etree.ElementTree as ET

import pytest

from mcp_jenkins.converge import (
    ActionDispatcher,
    ActionKind,
    Availability,
    CommandLauncher,
    JobDesiredState,
    NodeDesiredState,
    ResourceKind,
    SlaveDesiredState,
    SSHLauncher,
    UnknownAction,
    render_node_config,
)
from mcp_jenkins.converge.probe import parse_node_config


class TestVerbs:
    """Tests for the (kind, action) -> verb table."""

    @pytest.mark.parametrize("action,verb", [
        ("create", "create-job"),
        ("update", "update-job"),
        ("delete", "delete-job"),
        ("enable", "enable-job"),
        ("disable", "disable-job"),
        ("build", "build"),
    ])
    def test_job_verbs(self, action, verb):
        assert ActionDispatcher().verb_for(ResourceKind.JOB, action) == verb

    @pytest.mark.parametrize("kind", [ResourceKind.SLAVE, ResourceKind.NODE])
    @pytest.mark.parametrize("action,verb", [
        ("create", "create-node"),
        ("update", "update-node"),
        ("delete", "delete-node"),
        ("connect", "connect-node"),
        ("disconnect", "disconnect-node"),
        ("online", "online-node"),
        ("offline", "offline-node"),
    ])
    def test_node_verbs(self, kind, action, verb):
        assert ActionDispatcher().verb_for(kind, action) == verb

    def test_unsupported_combination(self):
        with pytest.raises(UnknownAction):
            ActionDispatcher().verb_for(ResourceKind.SLAVE, "build")

    def test_unknown_string(self):
        with pytest.raises(UnknownAction):
            ActionDispatcher().verb_for(ResourceKind.JOB, "frobnicate")

    def test_none_is_not_dispatchable(self):
        with pytest.raises(UnknownAction):
            ActionDispatcher().verb_for(ResourceKind.JOB, ActionKind.NONE)

    def test_supported_actions(self):
        actions = ActionDispatcher().supported_actions(ResourceKind.JOB)
        assert ActionKind.BUILD in actions
        assert ActionKind.OFFLINE not in actions


class TestCommandFor:
    """Tests for command construction."""

    def test_job_payload_from_file(self):
        desired = JobDesiredState(name="build-x", config="/tmp/build-x.xml")

        command = ActionDispatcher().command_for("create", desired)

        assert command.config_path == "/tmp/build-x.xml"
        assert command.mutating is True
        assert str(command) == "create-job build-x < /tmp/build-x.xml"

    def test_plain_command(self):
        command = ActionDispatcher().command_for(ActionKind.DELETE, SlaveDesiredState(name="agent-1"))

        assert command.has_input is False
        assert str(command) == "delete-node agent-1"

    def test_agent_rendered_payload(self):
        command = ActionDispatcher().command_for("update", SlaveDesiredState(name="agent-1"))

        assert command.config_path is None
        assert command.payload.startswith(b"<?xml")
        assert str(command) == "update-node agent-1 < (rendered config.xml)"

    def test_agent_config_file_overrides_rendering(self):
        desired = NodeDesiredState(name="edge-1", config="/etc/nodes/edge-1.xml")

        command = ActionDispatcher().command_for("create", desired)

        assert command.payload is None
        assert str(command) == "create-node edge-1 < /etc/nodes/edge-1.xml"

    def test_unknown_action_carries_identity(self):
        with pytest.raises(UnknownAction) as exc_info:
            ActionDispatcher().command_for("online", JobDesiredState(name="build-x"))

        assert exc_info.value.kind == "job"
        assert exc_info.value.name == "build-x"

    def test_probe_command(self):
        command = ActionDispatcher().probe_command("job", "build-x")

        assert str(command) == "get-job build-x"
        assert command.mutating is False


class TestRenderNodeConfig:
    """Tests for rendering agent config.xml."""

    def test_slave_document(self):
        desired = SlaveDesiredState(
            name="agent-1",
            description="Linux agent",
            remote_fs="/home/jenkins",
            executors=4,
            labels="linux docker",
            mode="exclusive",
        )

        root = ET.fromstring(render_node_config(desired))

        assert root.tag == "slave"
        assert root.findtext("name") == "agent-1"
        assert root.findtext("remoteFS") == "/home/jenkins"
        assert root.findtext("numExecutors") == "4"
        assert root.findtext("mode") == "EXCLUSIVE"
        assert root.findtext("label") == "linux docker"
        assert root.find("launcher").get("class") == "hudson.slaves.JNLPLauncher"
        assert root.find("retentionStrategy").get("class") == "hudson.slaves.RetentionStrategy$Always"

    def test_node_has_one_executor_no_labels(self):
        root = ET.fromstring(render_node_config(NodeDesiredState(name="edge-1")))

        assert root.findtext("numExecutors") == "1"
        assert not root.findtext("label")

    def test_demand_retention(self):
        desired = NodeDesiredState(
            name="edge-1",
            availability=Availability(kind="demand", in_demand_delay=2, idle_delay=10),
        )

        strategy = ET.fromstring(render_node_config(desired)).find("retentionStrategy")

        assert strategy.get("class").endswith("$Demand")
        assert strategy.findtext("inDemandDelay") == "2"
        assert strategy.findtext("idleDelay") == "10"

    def test_ssh_launcher(self):
        desired = NodeDesiredState(
            name="edge-1",
            launcher=SSHLauncher(host="10.0.0.5", credential="jenkins-key"),
        )

        launcher = ET.fromstring(render_node_config(desired)).find("launcher")

        assert launcher.get("class") == "hudson.plugins.sshslaves.SSHLauncher"
        assert launcher.findtext("host") == "10.0.0.5"
        assert launcher.findtext("port") == "22"
        assert launcher.findtext("credentialsId") == "jenkins-key"
        assert launcher.find("jvmOptions") is None

    def test_command_launcher_round_trip(self):
        desired = NodeDesiredState(
            name="edge-1",
            launcher=CommandLauncher(command="ssh edge java -jar agent.jar"),
            env={"LANG": "C", "a_var": "1"},
        )

        state = parse_node_config(ResourceKind.NODE, "edge-1", render_node_config(desired).decode())

        assert state.get("launcher") == desired.launcher
        assert state.get("env") == {"LANG": "C", "a_var": "1"}
