from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import (
    FAST,
    INFRASTRUCTURE,
    FakeCoreApi,
    FakeCustomApi,
    FakeEC2,
    FakeEFS,
    Instance,
    client_error,
)
from efsctl import cli
from efsctl.cluster import KubernetesClusterContext
from efsctl.config import Settings

FAST_CONFIG = """\
[backoff.operation]
delay = 0.0
factor = 1.0
steps = 3

[backoff.volume_create]
delay = 0.0
factor = 1.0
steps = 3

[backoff.deletion]
delay = 0.0
factor = 1.0
steps = 3
"""


class FakeClients:
    def __init__(self, ec2: FakeEC2, efs: FakeEFS) -> None:
        self.ec2 = ec2
        self.efs = efs
        self.regions: list[str] = []

    def from_credentials(self, credentials, region: str) -> FakeClients:
        self.regions.append(region)
        return self


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "efsctl.toml").write_text(FAST_CONFIG)
    monkeypatch.setattr("efsctl.config.GLOBAL_CONFIG_PATH", tmp_path / "missing.toml")
    monkeypatch.delenv("STORAGECLASS_LOCATION", raising=False)
    monkeypatch.delenv("MANIFEST_LOCATION", raising=False)
    return tmp_path


@pytest.fixture
def clients(monkeypatch: pytest.MonkeyPatch) -> FakeClients:
    ec2 = FakeEC2(instances=[Instance("i-111", "subnet-a"), Instance("i-222", "subnet-b")])
    fake = FakeClients(ec2, FakeEFS())
    monkeypatch.setattr("efsctl.cli.CloudClients", fake)
    monkeypatch.setattr("efsctl.provisioner.CloudClients", fake)
    return fake


def _create_args(workspace: Path, *extra: str) -> list[str]:
    return [
        "--config-dir", str(workspace),
        "create",
        "--node", "aws:///us-east-1a/i-111",
        "--node", "aws:///us-east-1b/i-222",
        "--cluster-id", "mycluster",
        "--region", "us-east-1",
        *extra,
    ]


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_destroy_requires_region(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["destroy", "--file-system-id", "fs-1"])


class TestRender:
    def test_writes_both_manifests(self, workspace: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("STORAGECLASS_LOCATION", str(workspace / "out" / "sc.yaml"))
        monkeypatch.setenv("MANIFEST_LOCATION", str(workspace / "out" / "csi.yaml"))

        code = cli.main(["--config-dir", str(workspace), "render", "--file-system-id", "fs-9"])

        assert code == 0
        assert "fileSystemId: fs-9" in (workspace / "out" / "sc.yaml").read_text()
        assert "FromExistingClassName: efs-sc" in (workspace / "out" / "csi.yaml").read_text()

    def test_no_locations_writes_nothing(self, workspace: Path):
        code = cli.main(["--config-dir", str(workspace), "render", "--file-system-id", "fs-9"])
        assert code == 0
        assert not (workspace / "out").exists()


class TestCreate:
    def test_prints_ledger(self, workspace: Path, clients: FakeClients, capsys):
        code = cli.main(_create_args(workspace))

        assert code == 0
        ledger = json.loads(capsys.readouterr().out)
        assert ledger["security_group_id"] == "sg-1"
        assert ledger["file_system_id"] == "fs-1"
        assert len(ledger["mount_target_ids"]) == 2
        assert clients.regions == ["us-east-1"]

    def test_writes_manifests(self, workspace: Path, clients: FakeClients, monkeypatch):
        monkeypatch.setenv("STORAGECLASS_LOCATION", str(workspace / "sc.yaml"))
        assert cli.main(_create_args(workspace)) == 0
        assert "fileSystemId: fs-1" in (workspace / "sc.yaml").read_text()

    def test_node_requires_identity(self, workspace: Path, clients: FakeClients, capsys):
        code = cli.main([
            "--config-dir", str(workspace), "create", "--node", "aws:///us-east-1a/i-111"
        ])
        assert code == 1
        assert "--cluster-id" in capsys.readouterr().err

    def test_failure_prints_partial_ledger(self, workspace: Path, clients: FakeClients, capsys):
        clients.efs.failing_subnets = {"subnet-b"}

        code = cli.main(_create_args(workspace))

        assert code == 1
        captured = capsys.readouterr()
        ledger = json.loads(captured.out)
        assert len(ledger["mount_target_ids"]) == 1
        assert "subnet-b" in captured.err
        assert clients.efs.file_systems

    def test_rollback(self, workspace: Path, clients: FakeClients, capsys):
        clients.efs.failing_subnets = {"subnet-b"}

        code = cli.main(_create_args(workspace, "--rollback"))

        assert code == 1
        assert not clients.efs.file_systems
        assert not clients.efs.mount_targets
        assert not clients.ec2.groups
        # Nothing is left behind
        assert json.loads(capsys.readouterr().out) == {
            "security_group_id": None,
            "file_system_id": None,
            "mount_target_ids": [],
        }

    def test_incomplete_rollback_prints_leftovers(self, workspace: Path, clients: FakeClients, capsys):
        clients.efs.failing_subnets = {"subnet-b"}
        clients.ec2.errors["delete_security_group"] = [client_error("DependencyViolation")] * 3

        code = cli.main(_create_args(workspace, "--rollback"))

        assert code == 1
        ledger = json.loads(capsys.readouterr().out)
        assert ledger == {"security_group_id": "sg-1", "file_system_id": None, "mount_target_ids": []}

    def test_cluster_api_failure_exits_cleanly(self, workspace: Path, monkeypatch, capsys):
        context = KubernetesClusterContext(
            FakeCoreApi([], secret_data=None),
            FakeCustomApi(INFRASTRUCTURE),
            Settings(operation_backoff=FAST),
        )
        monkeypatch.setattr(
            "efsctl.cli.KubernetesClusterContext.from_kubeconfig",
            staticmethod(lambda kubeconfig, settings: context),
        )

        code = cli.main(["--config-dir", str(workspace), "create"])

        assert code == 1
        assert "secret kube-system/aws-creds: 404" in capsys.readouterr().err


class TestDestroy:
    def test_from_ledger_file(self, workspace: Path, clients: FakeClients):
        clients.ec2.groups["sg-1"] = {}
        clients.efs.file_systems["fs-1"] = {}
        ledger_path = workspace / "ledger.json"
        ledger_path.write_text(json.dumps({
            "security_group_id": "sg-1",
            "file_system_id": "fs-1",
            "mount_target_ids": [],
        }))

        code = cli.main([
            "--config-dir", str(workspace),
            "destroy", "--ledger", str(ledger_path), "--region", "us-west-2",
        ])

        assert code == 0
        assert not clients.ec2.groups
        assert not clients.efs.file_systems
        assert clients.regions == ["us-west-2"]

    def test_empty_ledger_needs_no_clients(self, workspace: Path, clients: FakeClients):
        code = cli.main(["--config-dir", str(workspace), "destroy", "--region", "us-east-1"])
        assert code == 0
        assert clients.regions == []

    def test_not_found_fails_unless_ignored(self, workspace: Path, clients: FakeClients):
        args = [
            "--config-dir", str(workspace),
            "destroy", "--file-system-id", "fs-gone", "--region", "us-east-1",
        ]
        assert cli.main(args) == 1
        assert cli.main([*args, "--ignore-not-found"]) == 0

    def test_unreadable_ledger(self, workspace: Path, clients: FakeClients, capsys):
        code = cli.main([
            "--config-dir", str(workspace),
            "destroy", "--ledger", str(workspace / "missing.json"), "--region", "us-east-1",
        ])
        assert code == 1
        assert "cannot read ledger" in capsys.readouterr().err

    def test_ledger_must_be_object(self, workspace: Path, clients: FakeClients, capsys):
        ledger_path = workspace / "ledger.json"
        ledger_path.write_text("[]")
        code = cli.main([
            "--config-dir", str(workspace),
            "destroy", "--ledger", str(ledger_path), "--region", "us-east-1",
        ])
        assert code == 1
        assert "must hold a JSON object" in capsys.readouterr().err
        assert clients.regions == []
