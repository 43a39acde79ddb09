"""Provisioning and teardown of a cluster-wide EFS file system.

The run is strictly sequential, since every step needs the previous
step's output:

    network context -> security group -> ingress rule
        -> file system -> mount targets

Each created resource is recorded in a ResourceLedger before the next
step runs. On failure the ledger is attached to the raised
ProvisioningError; rolling back is the caller's decision.

Example:
    from efsctl import Provisioner, StaticClusterContext

    context = StaticClusterContext.from_provider_uris(
        ["aws:///us-east-1a/i-111", "aws:///us-east-1b/i-222"],
        cluster_identity="mycluster-x7k2p",
        region="us-east-1",
    )
    provisioner = Provisioner.from_context(context)
    try:
        result = provisioner.provision(context.list_compute_nodes())
    except ProvisioningError as e:
        provisioner.destroy(e.ledger)
        raise
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError
from loguru import logger

from efsctl.clients import CloudClients
from efsctl.config import Settings
from efsctl.constants import CREATION_TOKEN_MAX_LENGTH, TERMINAL_LOOKUP_CODES, ResourceKind
from efsctl.exceptions import EfsctlError, InputError, ProvisioningError
from efsctl.filesystem import FilesystemProvisioner
from efsctl.models import FileSystem, MountTarget, NetworkContext, ResourceLedger, SecurityGroup
from efsctl.mount_targets import MountTargetProvisioner
from efsctl.network import NetworkContextResolver
from efsctl.retry import call, has_code
from efsctl.security import SecurityProvisioner
from efsctl.teardown import TeardownOrchestrator

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client
    from mypy_boto3_efs import EFSClient

    from efsctl.cluster import ClusterContextProvider

log = logger.bind(component="provisioner")


@dataclass(frozen=True, slots=True)
class ProvisionResult:
    """Everything a successful run created."""

    network: NetworkContext
    security_group: SecurityGroup
    file_system: FileSystem
    mount_targets: tuple[MountTarget, ...]
    ledger: ResourceLedger

    @property
    def file_system_id(self) -> str:
        return self.file_system.id


class Provisioner:
    """Creates the dependent resource chain for one file system.

    Only one run per cluster identity may be active at a time; this is
    not enforced here.
    """

    def __init__(
        self,
        ec2: EC2Client,
        efs: EFSClient,
        cluster_identity: str,
        settings: Settings | None = None,
    ) -> None:
        self.cluster_identity = cluster_identity
        self.settings = settings or Settings()
        self.resolver = NetworkContextResolver(ec2)
        self.security = SecurityProvisioner(
            ec2, cluster_identity, tag_prefix=self.settings.tag_prefix
        )
        self.filesystems = FilesystemProvisioner(
            efs,
            cluster_identity,
            backoff=self.settings.volume_create_backoff,
            tag_prefix=self.settings.tag_prefix,
        )
        self.mount_targets = MountTargetProvisioner(efs)
        self._ec2 = ec2
        self._efs = efs

    @classmethod
    def from_context(
        cls,
        context: ClusterContextProvider,
        settings: Settings | None = None,
    ) -> Provisioner:
        """Build a provisioner with clients for the context's region and credentials."""
        clients = CloudClients.from_credentials(context.get_credentials(), context.get_region())
        return cls(clients.ec2, clients.efs, context.get_cluster_identity(), settings)

    def creation_token(self) -> str:
        """A token unique to one run, making file system creation retry-safe."""
        suffix = uuid.uuid4().hex[:12]
        prefix = self.cluster_identity[: CREATION_TOKEN_MAX_LENGTH - len(suffix) - 1]
        return f"{prefix}-{suffix}"

    def provision(
        self,
        node_ids: Iterable[str],
        ledger: ResourceLedger | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ProvisionResult:
        """Create the file system and everything it depends on.

        Args:
            node_ids: Instance ids of the cluster's compute nodes.
            ledger: Ledger to record into. Pass one to keep a reference
                regardless of how the run ends.
            cancel: Optional event checked between retry attempts.

        Returns:
            ProvisionResult holding every created resource.

        Raises:
            InputError: If inputs are invalid; nothing was created.
            ProvisioningError: If a step failed. ``ledger`` holds what
                was created before it.
        """
        ledger = ledger if ledger is not None else ResourceLedger()
        node_ids = frozenset(node_ids)
        op = self.settings.operation_backoff

        network = self._step(
            ResourceKind.NETWORK,
            ledger,
            lambda: self._resolve_network(node_ids, ledger, cancel),
            action="resolving",
        )

        existing = self._step(
            ResourceKind.SECURITY_GROUP,
            ledger,
            lambda: self._existing_groups(network, cancel),
            action="looking up",
        )
        if existing:
            log.warning(
                "Security group(s) {ids} named {name} already exist for this cluster; "
                "creating a new one",
                ids=", ".join(existing),
                name=self.security.group_name,
            )

        group = self._step(
            ResourceKind.SECURITY_GROUP,
            ledger,
            lambda: self.security.create_security_group(network),
        )
        ledger.record_security_group(group.id)

        applied = self._step(
            ResourceKind.INGRESS_RULE,
            ledger,
            lambda: self.security.authorize_ingress(group.id, network),
            resource_id=group.id,
        )
        if not applied:
            raise ProvisioningError(
                ResourceKind.INGRESS_RULE,
                group.id,
                "provider did not apply the rule",
                ledger=ledger,
            )

        name = self.filesystems.file_system_name
        token = self.creation_token()
        created = self._step(
            ResourceKind.FILE_SYSTEM,
            ledger,
            lambda: call(
                lambda: self.filesystems.create_file_system(name, token),
                op,
                description=f"create file system {name}",
                cancel=cancel,
            ),
        )
        ledger.record_file_system(created.id)

        file_system = self._step(
            ResourceKind.FILE_SYSTEM,
            ledger,
            lambda: self.filesystems.wait_until_available(created.id, cancel=cancel),
            resource_id=created.id,
        )

        mount_targets = self._step(
            ResourceKind.MOUNT_TARGET,
            ledger,
            lambda: self.mount_targets.create_mount_targets(
                file_system.id,
                group.id,
                network.subnet_ids,
                on_created=lambda mt: ledger.record_mount_target(mt.id),
            ),
        )

        log.info(
            "Provisioned file system {fs_id} with {n} mount target(s)",
            fs_id=file_system.id,
            n=len(mount_targets),
        )
        return ProvisionResult(
            network=network,
            security_group=group,
            file_system=file_system,
            mount_targets=tuple(mount_targets),
            ledger=ledger,
        )

    def destroy(self, ledger: ResourceLedger, *, ignore_not_found: bool = False) -> None:
        """Delete everything in ``ledger``, dependents first.

        Raises:
            TeardownError: If any deletion failed.
        """
        TeardownOrchestrator(
            self._ec2,
            self._efs,
            backoff=self.settings.deletion_backoff,
            ignore_not_found=ignore_not_found,
        ).destroy_all(ledger)

    def _resolve_network(
        self,
        node_ids: frozenset[str],
        ledger: ResourceLedger,
        cancel: threading.Event | None,
    ) -> NetworkContext:
        try:
            return call(
                lambda: self.resolver.resolve(node_ids),
                self.settings.operation_backoff,
                description="resolve network context",
                terminal=has_code(*TERMINAL_LOOKUP_CODES),
                cancel=cancel,
            )
        except ClientError as e:
            kind = ResourceKind.VPC if e.operation_name == "DescribeVpcs" else ResourceKind.INSTANCES
            log.error("Failed to describe {kind}: {err}", kind=kind, err=e)
            raise ProvisioningError(kind, reason=str(e), ledger=ledger, action="describing") from e

    def _existing_groups(
        self,
        network: NetworkContext,
        cancel: threading.Event | None,
    ) -> list[str]:
        """Groups left by earlier runs; only used for a warning, so lookup errors are logged."""
        try:
            return call(
                lambda: self.security.find_security_groups(network),
                self.settings.operation_backoff,
                description="find security groups",
                cancel=cancel,
            )
        except ClientError as e:
            log.warning("Could not look up existing security groups: {err}", err=e)
            return []

    def _step[T](
        self,
        kind: ResourceKind,
        ledger: ResourceLedger,
        fn: Callable[[], T],
        *,
        resource_id: str | None = None,
        action: str = "creating",
    ) -> T:
        """Run one step, attaching the ledger to any failure."""
        try:
            return fn()
        except ProvisioningError as e:
            e.ledger = ledger
            raise
        except (ClientError, EfsctlError) as e:
            if isinstance(e, InputError) and ledger.is_empty:
                raise
            log.error("Failed {action} {kind}: {err}", action=action, kind=kind, err=e)
            raise ProvisioningError(kind, resource_id, str(e), ledger=ledger, action=action) from e
