"""Tests for drift reporting and summaries."""
from mcp_jenkins.converge import (
    ActionFailed,
    ActionKind,
    CurrentState,
    JNLPLauncher,
    Mode,
    ReconcileResult,
    ResourceKind,
    SlaveDesiredState,
    SSHLauncher,
    compute_drift,
    summarize_results,
)


def _current(**attributes):
    base = {
        "description": None,
        "remote_fs": "/home/jenkins",
        "executors": 2,
        "mode": Mode.NORMAL,
        "labels": ["docker", "linux"],
        "launcher": JNLPLauncher(),
        "env": {},
    }
    base.update(attributes)
    return CurrentState(ResourceKind.SLAVE, "agent-1", present=True, attributes=base)


class TestComputeDrift:
    """Tests for compute_drift."""

    def test_no_drift(self):
        desired = SlaveDesiredState(
            name="agent-1", remote_fs="/home/jenkins", executors=2, labels=["linux", "docker"]
        )
        current = _current(availability=desired.availability)

        assert compute_drift(desired, current) == []

    def test_changed_fields(self):
        desired = SlaveDesiredState(
            name="agent-1",
            remote_fs="/srv/jenkins",
            executors=4,
            labels=["linux"],
            launcher=SSHLauncher(host="10.0.0.5"),
        )
        current = _current(availability=desired.availability)

        drift = compute_drift(desired, current)

        assert "remote_fs: '/home/jenkins' -> '/srv/jenkins'" in drift
        assert "executors: 2 -> 4" in drift
        assert "labels: [docker, linux] -> [linux]" in drift
        assert any(line.startswith("launcher:") for line in drift)

    def test_unmanaged_remote_fs_ignored(self):
        desired = SlaveDesiredState(name="agent-1", executors=2, labels=["linux", "docker"])
        current = _current(availability=desired.availability)

        assert compute_drift(desired, current) == []

    def test_absent_has_no_drift(self):
        desired = SlaveDesiredState(name="agent-1")
        assert compute_drift(desired, CurrentState.absent(ResourceKind.SLAVE, "agent-1")) == []


class TestSummarize:
    """Tests for summarize_results."""

    def test_empty(self):
        assert summarize_results([]) == "No resources declared"

    def test_dry_run_summary(self):
        results = [
            ReconcileResult(
                ResourceKind.JOB, "build-x", action=ActionKind.CREATE, changed=True,
                dry_run=True, command="create-job build-x < /j.xml",
            ),
            ReconcileResult(ResourceKind.NODE, "edge-1", dry_run=True),
            ReconcileResult(ResourceKind.SLAVE, "agent-1", dry_run=True).fail(ActionFailed("boom")),
        ]

        summary = summarize_results(results)

        assert summary.startswith("3 resources: 1 would change, 1 failed")
        assert "[+] job build-x: DRY-RUN create" in summary
        assert "$ create-job build-x < /j.xml" in summary
        assert "[=] node edge-1: up to date" in summary
        assert "[!] slave agent-1: action_failed: boom" in summary
