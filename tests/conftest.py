"""In-memory EC2/EFS and Kubernetes API fakes shaped like the responses efsctl reads."""

from __future__ import annotations

import base64
import itertools
from collections import defaultdict
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import pytest
from botocore.exceptions import ClientError
from kubernetes.client.exceptions import ApiException

from efsctl.config import Settings
from efsctl.retry import Backoff

FAST = Backoff(delay=0.0, factor=1.0, steps=3)


def client_error(code: str, operation: str = "Operation", **extra: Any) -> ClientError:
    response: dict[str, Any] = {"Error": {"Code": code, "Message": f"{code} raised"}, **extra}
    return ClientError(response, operation)  # type: ignore[arg-type]


@dataclass
class Instance:
    instance_id: str
    subnet_id: str
    vpc_id: str = "vpc-1"


class FakeEC2:
    def __init__(
        self,
        instances: list[Instance] | None = None,
        vpcs: dict[str, str] | None = None,
        page_size: int = 1,
    ) -> None:
        self.instances = {i.instance_id: i for i in instances or []}
        self.vpcs = vpcs if vpcs is not None else {"vpc-1": "10.0.0.0/16"}
        self.page_size = page_size
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.errors: dict[str, list[Exception]] = defaultdict(list)
        self.ingress_applied = True
        self.groups: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _record(self, name: str, kwargs: dict[str, Any]) -> None:
        self.calls.append((name, kwargs))
        if self.errors[name]:
            raise self.errors[name].pop(0)

    def called(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for n, kwargs in self.calls if n == name]

    def describe_instances(self, InstanceIds: list[str], NextToken: str | None = None) -> dict:
        self._record("describe_instances", {"InstanceIds": InstanceIds, "NextToken": NextToken})
        found = [self.instances[i] for i in InstanceIds if i in self.instances]
        start = int(NextToken) if NextToken else 0
        page = found[start:start + self.page_size]
        response: dict[str, Any] = {
            "Reservations": [
                {"Instances": [
                    {"InstanceId": i.instance_id, "SubnetId": i.subnet_id, "VpcId": i.vpc_id}
                    for i in page
                ]}
            ]
        }
        if start + self.page_size < len(found):
            response["NextToken"] = str(start + self.page_size)
        return response

    def describe_vpcs(self, VpcIds: list[str]) -> dict:
        self._record("describe_vpcs", {"VpcIds": VpcIds})
        return {
            "Vpcs": [{"VpcId": v, "CidrBlock": self.vpcs[v]} for v in VpcIds if v in self.vpcs]
        }

    def describe_security_groups(self, Filters: list[dict[str, Any]]) -> dict:
        self._record("describe_security_groups", {"Filters": Filters})
        return {"SecurityGroups": [{"GroupId": g} for g in self.groups]}

    def create_security_group(self, **kwargs: Any) -> dict:
        self._record("create_security_group", kwargs)
        group_id = f"sg-{next(self._ids)}"
        self.groups[group_id] = kwargs
        return {"GroupId": group_id}

    def authorize_security_group_ingress(self, **kwargs: Any) -> dict:
        self._record("authorize_security_group_ingress", kwargs)
        return {"Return": self.ingress_applied}

    def delete_security_group(self, GroupId: str) -> dict:
        self._record("delete_security_group", {"GroupId": GroupId})
        if GroupId not in self.groups:
            raise client_error("InvalidGroup.NotFound", "DeleteSecurityGroup")
        del self.groups[GroupId]
        return {}


class FakeEFS:
    def __init__(self, states: list[str] | None = None, invisible_polls: int = 0) -> None:
        self.states = list(states or ["available"])
        self.invisible_polls = invisible_polls
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.errors: dict[str, list[Exception]] = defaultdict(list)
        self.failing_subnets: set[str] = set()
        self.file_systems: dict[str, dict[str, Any]] = {}
        self.mount_targets: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _record(self, name: str, kwargs: dict[str, Any]) -> None:
        self.calls.append((name, kwargs))
        if self.errors[name]:
            raise self.errors[name].pop(0)

    def called(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for n, kwargs in self.calls if n == name]

    def create_file_system(self, **kwargs: Any) -> dict:
        self._record("create_file_system", kwargs)
        fs_id = f"fs-{next(self._ids)}"
        self.file_systems[fs_id] = kwargs
        return {"FileSystemId": fs_id, "LifeCycleState": "creating"}

    def describe_file_systems(self, FileSystemId: str) -> dict:
        self._record("describe_file_systems", {"FileSystemId": FileSystemId})
        if self.invisible_polls > 0:
            self.invisible_polls -= 1
            return {"FileSystems": []}
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return {"FileSystems": [{"FileSystemId": FileSystemId, "LifeCycleState": state}]}

    def create_mount_target(self, FileSystemId: str, SubnetId: str, SecurityGroups: list[str]) -> dict:
        self._record(
            "create_mount_target",
            {"FileSystemId": FileSystemId, "SubnetId": SubnetId, "SecurityGroups": SecurityGroups},
        )
        if SubnetId in self.failing_subnets:
            raise client_error("SubnetNotFound", "CreateMountTarget")
        mt_id = f"fsmt-{next(self._ids)}"
        self.mount_targets[mt_id] = {"FileSystemId": FileSystemId, "SubnetId": SubnetId}
        return {"MountTargetId": mt_id, "SubnetId": SubnetId, "FileSystemId": FileSystemId}

    def delete_mount_target(self, MountTargetId: str) -> dict:
        self._record("delete_mount_target", {"MountTargetId": MountTargetId})
        if MountTargetId not in self.mount_targets:
            raise client_error("MountTargetNotFound", "DeleteMountTarget")
        del self.mount_targets[MountTargetId]
        return {}

    def delete_file_system(self, FileSystemId: str) -> dict:
        self._record("delete_file_system", {"FileSystemId": FileSystemId})
        if FileSystemId not in self.file_systems:
            raise client_error("FileSystemNotFound", "DeleteFileSystem")
        if any(mt["FileSystemId"] == FileSystemId for mt in self.mount_targets.values()):
            raise client_error("FileSystemInUse", "DeleteFileSystem")
        del self.file_systems[FileSystemId]
        return {}


@dataclass
class FakeCloud:
    ec2: FakeEC2
    efs: FakeEFS
    settings: Settings = field(
        default_factory=lambda: Settings(
            operation_backoff=FAST,
            volume_create_backoff=FAST,
            deletion_backoff=FAST,
        )
    )


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(operation_backoff=FAST, volume_create_backoff=FAST, deletion_backoff=FAST)


@pytest.fixture
def two_subnet_cloud() -> FakeCloud:
    ec2 = FakeEC2(instances=[Instance("i-111", "subnet-a"), Instance("i-222", "subnet-b")])
    return FakeCloud(ec2=ec2, efs=FakeEFS(states=["creating", "available"]))


def k8s_node(name: str, provider_id: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name),
        spec=SimpleNamespace(provider_id=provider_id),
    )


def b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


INFRASTRUCTURE = {
    "status": {
        "infrastructureName": "mycluster-x7k2p",
        "platformStatus": {"aws": {"region": "us-east-1"}},
    }
}


class FakeCoreApi:
    def __init__(self, nodes: list[SimpleNamespace], secret_data: dict[str, str] | None = None) -> None:
        self.nodes = nodes
        self.secret_data = secret_data
        self.failures: list[Exception] = []
        self.secret_requests: list[tuple[str, str]] = []

    def list_node(self) -> SimpleNamespace:
        if self.failures:
            raise self.failures.pop(0)
        return SimpleNamespace(items=self.nodes)

    def read_namespaced_secret(self, name: str, namespace: str) -> SimpleNamespace:
        self.secret_requests.append((namespace, name))
        if self.secret_data is None:
            raise ApiException(status=404, reason="Not Found")
        return SimpleNamespace(data=self.secret_data)


class FakeCustomApi:
    def __init__(self, infrastructure: dict[str, Any]) -> None:
        self.infrastructure = infrastructure
        self.requests: list[dict[str, str]] = []

    def get_cluster_custom_object(self, **kwargs: str) -> dict[str, Any]:
        self.requests.append(kwargs)
        return self.infrastructure
