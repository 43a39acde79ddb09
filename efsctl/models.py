"""Resource model for a provisioning run.

Value objects describing the network context and the resources created
from it, plus the append-only ledger that drives teardown.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from efsctl.constants import NAME_TAG, OWNED, OWNERSHIP_TAG_PREFIX, LifecycleState
from efsctl.exceptions import InputError, LedgerError

# =============================================================================
# Compute Nodes
# =============================================================================


def node_id_from_provider_uri(uri: str) -> str:
    """Extract the instance id from a node provider URI.

    Provider URIs look like ``aws:///us-east-1a/i-0123456789abcdef0``;
    only the trailing segment is needed.

    Raises:
        InputError: If the URI has no scheme separator or no trailing segment.
    """
    scheme, sep, path = uri.partition(":///")
    if not sep or not scheme:
        raise InputError(f"malformed provider id {uri!r}")
    instance_id = path.rstrip("/").rsplit("/", 1)[-1]
    if not instance_id:
        raise InputError(f"no instance id in provider id {uri!r}")
    return instance_id


def node_ids_from_provider_uris(uris: Iterable[str]) -> frozenset[str]:
    """Deduplicated instance ids for a list of provider URIs."""
    return frozenset(node_id_from_provider_uri(uri) for uri in uris)


# =============================================================================
# Tags
# =============================================================================


def ownership_tag_key(cluster_identity: str, prefix: str = OWNERSHIP_TAG_PREFIX) -> str:
    return f"{prefix}{cluster_identity}"


def resource_tags(
    name: str,
    cluster_identity: str,
    prefix: str = OWNERSHIP_TAG_PREFIX,
) -> list[dict[str, str]]:
    """Name and ownership tags in the provider's Key/Value shape."""
    return [
        {"Key": NAME_TAG, "Value": name},
        {"Key": ownership_tag_key(cluster_identity, prefix), "Value": OWNED},
    ]


# =============================================================================
# Resources
# =============================================================================


@dataclass(frozen=True, slots=True)
class NetworkContext:
    """Shared network of the cluster's compute nodes.

    Attributes:
        vpc_id: Virtual network hosting the nodes.
        cidr_block: Address range of the virtual network.
        subnet_ids: Distinct subnets hosting at least one node.
    """

    vpc_id: str
    cidr_block: str
    subnet_ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class SecurityGroup:
    id: str
    name: str
    vpc_id: str


@dataclass(frozen=True, slots=True)
class FileSystem:
    id: str
    lifecycle_state: str = LifecycleState.CREATING

    @property
    def is_available(self) -> bool:
        return self.lifecycle_state == LifecycleState.AVAILABLE


@dataclass(frozen=True, slots=True)
class MountTarget:
    id: str
    subnet_id: str
    file_system_id: str
    security_group_id: str


# =============================================================================
# Ledger
# =============================================================================


@dataclass(slots=True)
class ResourceLedger:
    """Append-only record of resources created by one provisioning run.

    The ledger is the only source of truth for teardown. It is never
    rebuilt by querying the provider, because names are not unique
    across retried runs.
    """

    security_group_id: str | None = None
    file_system_id: str | None = None
    mount_target_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return (
            self.security_group_id is None
            and self.file_system_id is None
            and not self.mount_target_ids
        )

    def record_security_group(self, group_id: str) -> None:
        if self.security_group_id is not None:
            raise LedgerError(
                f"security group already recorded ({self.security_group_id}), got {group_id}"
            )
        self.security_group_id = group_id

    def record_file_system(self, file_system_id: str) -> None:
        if self.file_system_id is not None:
            raise LedgerError(
                f"file system already recorded ({self.file_system_id}), got {file_system_id}"
            )
        self.file_system_id = file_system_id

    def record_mount_target(self, mount_target_id: str) -> None:
        if mount_target_id in self.mount_target_ids:
            raise LedgerError(f"mount target {mount_target_id} already recorded")
        self.mount_target_ids.append(mount_target_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "security_group_id": self.security_group_id,
            "file_system_id": self.file_system_id,
            "mount_target_ids": list(self.mount_target_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceLedger:
        """Rebuild a ledger from ids the caller saved from an earlier run."""
        ledger = cls()
        if sg_id := data.get("security_group_id"):
            ledger.record_security_group(str(sg_id))
        if fs_id := data.get("file_system_id"):
            ledger.record_file_system(str(fs_id))
        for mt_id in data.get("mount_target_ids") or ():
            ledger.record_mount_target(str(mt_id))
        return ledger
