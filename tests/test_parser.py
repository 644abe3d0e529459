"""Tests for the resource declaration parser."""
from pathlib import Path

import pytest

from mcp_jenkins.converge import (
    Availability,
    AvailabilityType,
    CommandLauncher,
    ConfigParser,
    InvalidConfig,
    JNLPLauncher,
    JobDesiredState,
    NodeDesiredState,
    ParseError,
    SlaveDesiredState,
    SSHLauncher,
)


class TestConfigParser:
    """Tests for ConfigParser."""

    def test_parse_minimal_slave(self):
        desired = ConfigParser().parse("slave", "agent-1")

        assert isinstance(desired, SlaveDesiredState)
        assert desired.name == "agent-1"
        assert desired.launcher == JNLPLauncher()

    def test_parse_slave(self):
        desired = ConfigParser().parse("slave", "agent-1", {
            "description": "Linux agent",
            "remote_fs": "/home/jenkins",
            "executors": 2,
            "labels": ["linux", "docker"],
            "launcher": {"type": "ssh", "host": "10.0.0.5", "port": 2222},
            "availability": {"type": "demand", "in_demand_delay": 1, "idle_delay": 5},
            "env": {"JAVA_HOME": "/opt/java"},
        })

        assert desired.executors == 2
        assert desired.launcher == SSHLauncher(host="10.0.0.5", port=2222)
        assert desired.availability == Availability(
            kind=AvailabilityType.DEMAND, in_demand_delay=1, idle_delay=5
        )

    def test_launcher_shorthand(self):
        desired = ConfigParser().parse("node", "edge-1", {"launcher": "jnlp", "availability": "always"})

        assert isinstance(desired, NodeDesiredState)
        assert desired.launcher == JNLPLauncher()
        assert desired.availability == Availability()

    def test_command_launcher(self):
        desired = ConfigParser().parse("node", "edge-1", {
            "launcher": {"type": "command", "command": "ssh edge java -jar agent.jar"},
        })

        assert desired.launcher == CommandLauncher(command="ssh edge java -jar agent.jar")

    def test_invalid_launcher_type(self):
        with pytest.raises(ParseError) as exc_info:
            ConfigParser().parse("node", "edge-1", {"launcher": {"type": "telepathy"}})
        assert exc_info.value.name == "edge-1"

    def test_invalid_launcher_option(self):
        with pytest.raises(ParseError):
            ConfigParser().parse("node", "edge-1", {"launcher": {"type": "ssh", "hostname": "x"}})

    def test_jnlp_takes_no_options(self):
        with pytest.raises(ParseError):
            ConfigParser().parse("node", "edge-1", {"launcher": {"type": "jnlp", "host": "x"}})

    def test_unknown_field(self):
        with pytest.raises(ParseError) as exc_info:
            ConfigParser().parse("job", "build-x", {"config": "a.xml", "executors": 2})
        assert "executors" in str(exc_info.value)

    def test_node_has_no_labels(self):
        with pytest.raises(ParseError):
            ConfigParser().parse("node", "edge-1", {"labels": ["x"]})

    def test_unknown_kind(self):
        with pytest.raises(ParseError):
            ConfigParser().parse("pipeline", "x")

    def test_validation_errors_are_invalid_config(self):
        with pytest.raises(InvalidConfig):
            ConfigParser().parse("slave", "agent-1", {"executors": -2})

    def test_relative_config_resolved(self, tmp_path):
        desired = ConfigParser(base_dir=str(tmp_path)).parse("job", "build-x", {"config": "jobs/build-x.xml"})

        assert isinstance(desired, JobDesiredState)
        assert desired.config == str(tmp_path / "jobs" / "build-x.xml")

    def test_absolute_config_kept(self, tmp_path):
        path = str(Path("/srv/jobs/build-x.xml"))
        desired = ConfigParser(base_dir=str(tmp_path)).parse("job", "build-x", {"config": path})

        assert desired.config == path


class TestParseSections:
    """Tests for parsing manifest sections."""

    def test_order_and_defaults(self):
        manifest = {
            "nodes": {"edge-1": None},
            "jobs": {"build-x": {"action": "build"}},
            "slaves": {"agent-1": {"labels": "linux"}, "agent-2": {"executors": 4}},
        }
        defaults = {"slave": {"executors": 2, "remote_fs": "/home/jenkins"}}

        resources = ConfigParser().parse_sections(manifest, defaults)

        assert [(r.kind.value, r.name) for r in resources] == [
            ("slave", "agent-1"), ("slave", "agent-2"), ("job", "build-x"), ("node", "edge-1"),
        ]
        assert resources[0].executors == 2
        assert resources[1].executors == 4
        assert resources[1].remote_fs == "/home/jenkins"

    def test_section_must_be_mapping(self):
        with pytest.raises(ParseError):
            ConfigParser().parse_sections({"jobs": ["build-x"]})

    def test_declaration_must_be_mapping(self):
        """A bare path where attributes belong is rejected with identity."""
        with pytest.raises(ParseError) as exc_info:
            ConfigParser().parse_sections({"jobs": {"build-x": "jobs/x.xml"}})

        assert exc_info.value.kind == "job"
        assert exc_info.value.name == "build-x"

    def test_declaration_must_be_mapping_with_defaults(self):
        with pytest.raises(ParseError):
            ConfigParser().parse_sections(
                {"slaves": {"agent-1": ["linux"]}},
                {"slave": {"executors": 2}},
            )
