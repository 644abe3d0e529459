"""Shared fixtures: an in-memory Jenkins behind the executor contract."""
from typing import Optional

import pytest

from mcp_jenkins.jenkins.base import Command, CommandExecutor

PROBE_VERBS = {"get-node", "get-job"}

NODE_XML = """<?xml version="1.1" encoding="UTF-8"?>
<slave>
  <name>{name}</name>
  <description>Linux agent</description>
  <remoteFS>/home/jenkins</remoteFS>
  <numExecutors>2</numExecutors>
  <mode>NORMAL</mode>
  <retentionStrategy class="hudson.slaves.RetentionStrategy$Always"/>
  <launcher class="hudson.slaves.JNLPLauncher"/>
  <label>linux docker</label>
  <nodeProperties/>
  <userId>admin</userId>
</slave>
"""

JOB_XML = """<?xml version='1.1' encoding='UTF-8'?>
<project>
  <description>Build X</description>
  <disabled>false</disabled>
  <builders/>
</project>
"""


def _family(verb: str) -> str:
    return "job" if verb.endswith("-job") or verb == "build" else "node"


class FakeExecutor(CommandExecutor):
    """Records every command; optionally mirrors mutations into its store."""

    def __init__(
        self,
        objects: Optional[dict[tuple[str, str], str]] = None,
        mirror: bool = True,
        fail_verbs: tuple[str, ...] = (),
        raise_on: Optional[dict[str, Exception]] = None,
        probe_output: Optional[tuple[bool, str]] = None,
    ):
        self.objects = dict(objects or {})
        self.mirror = mirror
        self.fail_verbs = set(fail_verbs)
        self.raise_on = dict(raise_on or {})
        self.probe_output = probe_output
        self.calls: list[Command] = []
        self.inputs: list[Optional[bytes]] = []
        self.timeouts: list[Optional[float]] = []

    @property
    def target(self) -> str:
        return "fake://jenkins"

    @property
    def verbs(self) -> list[str]:
        return [c.verb for c in self.calls]

    @property
    def mutating_calls(self) -> list[Command]:
        return [c for c in self.calls if c.mutating]

    async def run(self, command: Command, timeout: Optional[float] = None) -> tuple[bool, str]:
        self.calls.append(command)
        self.timeouts.append(timeout)
        self.inputs.append(command.read_input())

        if command.verb in self.raise_on:
            raise self.raise_on[command.verb]
        if command.verb in self.fail_verbs:
            return False, f"ERROR: {command.verb} failed"

        family = _family(command.verb)
        name = command.args[0]
        key = (family, name)

        if command.verb in PROBE_VERBS:
            if self.probe_output is not None:
                return self.probe_output
            if key in self.objects:
                return True, self.objects[key]
            return False, f"ERROR: No such {family} '{name}'"

        if self.mirror:
            if command.verb.startswith(("create-", "update-")):
                self.objects[key] = self.inputs[-1].decode("utf-8")
            elif command.verb.startswith("delete-"):
                self.objects.pop(key, None)
        return True, ""


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def job_config(tmp_path):
    """A job config.xml on disk."""
    path = tmp_path / "build-x.xml"
    path.write_text(JOB_XML)
    return str(path)
