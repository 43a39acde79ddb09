"""efsctl - Provision a shared EFS file system for a Kubernetes cluster.

Example:

    from efsctl import Provisioner, ProvisioningError, StaticClusterContext

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

    print(result.file_system_id)
"""

from efsctl.clients import CloudClients, Credentials
from efsctl.cluster import ClusterContextProvider, KubernetesClusterContext, StaticClusterContext
from efsctl.config import Settings, load_settings
from efsctl.exceptions import (
    CancelledError,
    ConfigurationError,
    EfsctlError,
    InputError,
    LedgerError,
    MountTargetError,
    NotAvailableError,
    ProvisioningError,
    StepFailure,
    TeardownError,
)
from efsctl.filesystem import FilesystemProvisioner
from efsctl.logging import LogConfig, setup_logging, teardown_logging
from efsctl.manifests import render_csi_manifest, render_storage_class, write_manifest
from efsctl.models import (
    FileSystem,
    MountTarget,
    NetworkContext,
    ResourceLedger,
    SecurityGroup,
    node_id_from_provider_uri,
)
from efsctl.mount_targets import MountTargetProvisioner
from efsctl.network import NetworkContextResolver
from efsctl.provisioner import ProvisionResult, Provisioner
from efsctl.retry import Backoff, Done, Fail, Retry, call, poll
from efsctl.security import SecurityProvisioner
from efsctl.teardown import TeardownOrchestrator

__all__ = [
    # Provisioning
    "Provisioner",
    "ProvisionResult",
    "NetworkContextResolver",
    "SecurityProvisioner",
    "FilesystemProvisioner",
    "MountTargetProvisioner",
    "TeardownOrchestrator",
    # Model
    "NetworkContext",
    "SecurityGroup",
    "FileSystem",
    "MountTarget",
    "ResourceLedger",
    "node_id_from_provider_uri",
    # Cluster context
    "ClusterContextProvider",
    "StaticClusterContext",
    "KubernetesClusterContext",
    "CloudClients",
    "Credentials",
    # Retry
    "Backoff",
    "Done",
    "Retry",
    "Fail",
    "poll",
    "call",
    # Config & logging
    "Settings",
    "load_settings",
    "LogConfig",
    "setup_logging",
    "teardown_logging",
    # Manifests
    "render_storage_class",
    "render_csi_manifest",
    "write_manifest",
    # Exceptions
    "EfsctlError",
    "InputError",
    "ConfigurationError",
    "LedgerError",
    "NotAvailableError",
    "CancelledError",
    "ProvisioningError",
    "MountTargetError",
    "StepFailure",
    "TeardownError",
]
