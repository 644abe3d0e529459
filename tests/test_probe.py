"""Tests for the StateProbe and the config.xml parsers."""
import pytest

from conftest import FakeExecutor, JOB_XML, NODE_XML
from mcp_jenkins.converge import (
    Availability,
    AvailabilityType,
    CommandLauncher,
    JNLPLauncher,
    Mode,
    ProbeFailed,
    ResourceKind,
    SSHLauncher,
    StateProbe,
)
from mcp_jenkins.converge.probe import parse_job_config, parse_node_config
from mcp_jenkins.jenkins.base import ExecutorUnavailable


SSH_NODE_XML = """<slave>
  <name>agent-ssh</name>
  <remoteFS>/var/lib/jenkins</remoteFS>
  <numExecutors>4</numExecutors>
  <mode>EXCLUSIVE</mode>
  <retentionStrategy class="hudson.slaves.RetentionStrategy$Demand">
    <inDemandDelay>1</inDemandDelay>
    <idleDelay>5</idleDelay>
  </retentionStrategy>
  <launcher class="hudson.plugins.sshslaves.SSHLauncher" plugin="ssh-slaves@1.9">
    <host>10.0.0.5</host>
    <port>2222</port>
    <credentialsId>jenkins-key</credentialsId>
    <jvmOptions>-Xmx512m</jvmOptions>
  </launcher>
  <label></label>
  <nodeProperties>
    <hudson.slaves.EnvironmentVariablesNodeProperty>
      <envVars serialization="custom">
        <unserializable-parents/>
        <tree-map>
          <default>
            <comparator class="hudson.util.CaseInsensitiveComparator"/>
          </default>
          <int>2</int>
          <string>JAVA_HOME</string>
          <string>/opt/java</string>
          <string>PATH</string>
          <string>/usr/bin</string>
        </tree-map>
      </envVars>
    </hudson.slaves.EnvironmentVariablesNodeProperty>
  </nodeProperties>
</slave>"""


class TestParseNodeConfig:
    """Tests for node document parsing."""

    def test_basic_fields(self):
        state = parse_node_config(ResourceKind.SLAVE, "agent-1", NODE_XML.format(name="agent-1"))

        assert state.present is True
        assert state.get("name") == "agent-1"
        assert state.get("description") == "Linux agent"
        assert state.get("mode") == Mode.NORMAL
        assert state.get("labels") == ["linux", "docker"]
        assert state.get("launcher") == JNLPLauncher()
        assert state.get("availability") == Availability()
        assert state.get("env") == {}
        assert state.user_id == "admin"

    def test_remote_fs_and_executors_not_swapped(self):
        """remoteFS maps to remote_fs, numExecutors to executors."""
        state = parse_node_config(ResourceKind.SLAVE, "agent-1", NODE_XML.format(name="agent-1"))

        assert state.get("remote_fs") == "/home/jenkins"
        assert state.get("executors") == 2

    def test_ssh_launcher_and_demand(self):
        state = parse_node_config(ResourceKind.NODE, "agent-ssh", SSH_NODE_XML)

        assert state.get("launcher") == SSHLauncher(
            host="10.0.0.5", port=2222, credential="jenkins-key", jvm_options="-Xmx512m"
        )
        assert state.get("launcher_class") == "hudson.plugins.sshslaves.SSHLauncher"
        assert state.get("availability") == Availability(
            kind=AvailabilityType.DEMAND, in_demand_delay=1, idle_delay=5
        )
        assert state.get("mode") == Mode.EXCLUSIVE
        assert state.get("labels") == []
        assert state.get("env") == {"JAVA_HOME": "/opt/java", "PATH": "/usr/bin"}

    def test_command_launcher(self):
        xml = """<slave><name>c</name>
          <launcher class="hudson.slaves.CommandLauncher">
            <agentCommand>ssh build java -jar agent.jar</agentCommand>
          </launcher></slave>"""

        state = parse_node_config(ResourceKind.NODE, "c", xml)

        assert state.get("launcher") == CommandLauncher(command="ssh build java -jar agent.jar")

    def test_unknown_launcher_keeps_class(self):
        xml = """<slave><name>k</name><launcher class="io.jenkins.KubernetesLauncher"/></slave>"""

        state = parse_node_config(ResourceKind.NODE, "k", xml)

        assert state.get("launcher") is None
        assert state.get("launcher_class") == "io.jenkins.KubernetesLauncher"

    def test_missing_optional_elements(self):
        state = parse_node_config(ResourceKind.NODE, "bare", "<slave><name>bare</name></slave>")

        assert state.get("description") is None
        assert state.get("remote_fs") is None
        assert state.get("executors") is None
        assert state.get("mode") is None
        assert state.get("launcher") is None
        assert state.get("availability") is None

    def test_missing_name_fails(self):
        with pytest.raises(ProbeFailed):
            parse_node_config(ResourceKind.NODE, "x", "<slave><remoteFS>/x</remoteFS></slave>")

    def test_empty_name_fails(self):
        with pytest.raises(ProbeFailed):
            parse_node_config(ResourceKind.NODE, "x", "<slave><name>  </name></slave>")

    def test_malformed_xml_fails(self):
        with pytest.raises(ProbeFailed) as exc_info:
            parse_node_config(ResourceKind.NODE, "x", "<slave><name>x</slave>")
        assert exc_info.value.name == "x"


class TestParseJobConfig:
    """Tests for job document parsing."""

    def test_job_fields(self):
        state = parse_job_config("build-x", JOB_XML)

        assert state.name == "build-x"
        assert state.get("job_type") == "project"
        assert state.get("description") == "Build X"
        assert state.get("disabled") is False

    def test_pipeline_job(self):
        xml = "<flow-definition plugin='workflow-job'><disabled>true</disabled></flow-definition>"

        state = parse_job_config("pipe", xml)

        assert state.get("job_type") == "flow-definition"
        assert state.get("disabled") is True


class TestStateProbe:
    """Tests for fetching state through an executor."""

    @pytest.mark.asyncio
    async def test_absent_node(self, executor):
        state = await StateProbe(executor).fetch(ResourceKind.SLAVE, "agent-1")

        assert state.present is False
        assert state.attributes == {}
        assert str(executor.calls[0]) == "get-node agent-1"
        assert executor.calls[0].mutating is False

    @pytest.mark.asyncio
    async def test_absent_with_trailing_garbage(self):
        """The not-found marker wins even with a zero exit and junk after it."""
        executor = FakeExecutor(probe_output=(True, "ERROR: No such node 'x'\n<slave><broken"))

        state = await StateProbe(executor).fetch(ResourceKind.NODE, "x")

        assert state.present is False

    @pytest.mark.asyncio
    async def test_absent_job(self, executor):
        state = await StateProbe(executor).fetch(ResourceKind.JOB, "build-x")

        assert state.present is False
        assert executor.verbs == ["get-job"]

    @pytest.mark.asyncio
    async def test_present_node(self):
        executor = FakeExecutor({("node", "agent-1"): NODE_XML.format(name="agent-1")})

        state = await StateProbe(executor).fetch("slave", "agent-1")

        assert state.present is True
        assert state.kind == ResourceKind.SLAVE
        assert state.raw.startswith("<?xml")

    @pytest.mark.asyncio
    async def test_cached_within_probe(self, executor):
        probe = StateProbe(executor)

        await probe.fetch(ResourceKind.NODE, "n")
        await probe.fetch(ResourceKind.NODE, "n")
        assert len(executor.calls) == 1

        probe.clear()
        await probe.fetch(ResourceKind.NODE, "n")
        assert len(executor.calls) == 2

    @pytest.mark.asyncio
    async def test_fresh_probe_refetches(self, executor):
        await StateProbe(executor).fetch(ResourceKind.NODE, "n")
        await StateProbe(executor).fetch(ResourceKind.NODE, "n")

        assert len(executor.calls) == 2

    @pytest.mark.asyncio
    async def test_executor_error_is_probe_failed(self):
        executor = FakeExecutor(raise_on={"get-job": ExecutorUnavailable("unreachable")})

        with pytest.raises(ProbeFailed) as exc_info:
            await StateProbe(executor).fetch(ResourceKind.JOB, "build-x")

        assert exc_info.value.kind == "job"

    @pytest.mark.asyncio
    async def test_failure_without_marker(self):
        executor = FakeExecutor(probe_output=(False, "ERROR: You must authenticate"))

        with pytest.raises(ProbeFailed):
            await StateProbe(executor).fetch(ResourceKind.NODE, "n")

    @pytest.mark.asyncio
    async def test_timeout_forwarded(self, executor):
        await StateProbe(executor, timeout=3).fetch(ResourceKind.NODE, "n")

        assert executor.timeouts == [3]
