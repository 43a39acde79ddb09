"""Centralized constants and enums for efsctl.

All magic strings, ports, tags and retry policies are defined here
to ensure consistency across the provisioning steps.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

from efsctl.retry import Backoff

# =============================================================================
# Resource Tags
# =============================================================================

NAME_TAG: Final = "Name"
OWNERSHIP_TAG_PREFIX: Final = "kubernetes.io/cluster/"
OWNED: Final = "owned"


# =============================================================================
# Resource Kinds
# =============================================================================


class ResourceKind(StrEnum):
    """Kinds of cloud resources touched by a provisioning run."""

    INSTANCES = "instances"
    VPC = "vpc"
    NETWORK = "network context"
    SECURITY_GROUP = "security group"
    INGRESS_RULE = "ingress rule"
    FILE_SYSTEM = "file system"
    MOUNT_TARGET = "mount target"


# =============================================================================
# EFS Lifecycle States
# =============================================================================


class LifecycleState(StrEnum):
    """EFS file system lifecycle states."""

    CREATING = "creating"
    AVAILABLE = "available"
    UPDATING = "updating"
    DELETING = "deleting"
    DELETED = "deleted"
    ERROR = "error"


# =============================================================================
# Provider Error Codes
# =============================================================================

NOT_FOUND_CODES: Final = frozenset({
    "MountTargetNotFound",
    "FileSystemNotFound",
    "InvalidGroup.NotFound",
})

TERMINAL_LOOKUP_CODES: Final = frozenset({
    "InvalidInstanceID.Malformed",
    "InvalidInstanceID.NotFound",
    "InvalidVpcID.NotFound",
})

FILE_SYSTEM_ALREADY_EXISTS: Final = "FileSystemAlreadyExists"


# =============================================================================
# File System Settings
# =============================================================================

NFS_PORT: Final = 2049
PERFORMANCE_MODE: Final = "generalPurpose"
CREATION_TOKEN_MAX_LENGTH: Final = 64


# =============================================================================
# Retry Policies
# =============================================================================

# Object lookups and single API calls
OPERATION_BACKOFF: Final = Backoff(delay=2.0, factor=1.2, steps=5)
# File system availability; provisioning is slow
VOLUME_CREATE_BACKOFF: Final = Backoff(delay=5.0, factor=1.2, steps=10)
# Deletions wait for dependents to disappear
DELETION_BACKOFF: Final = Backoff(delay=5.0, factor=1.2, steps=5)


# =============================================================================
# Cluster Context
# =============================================================================

INFRASTRUCTURE_NAME: Final = "cluster"
SECRET_NAMESPACE: Final = "kube-system"
SECRET_NAME: Final = "aws-creds"
ACCESS_KEY_ID_FIELD: Final = "aws_access_key_id"
SECRET_ACCESS_KEY_FIELD: Final = "aws_secret_access_key"


# =============================================================================
# Manifests
# =============================================================================

CSI_DRIVER_NAME: Final = "efs.csi.aws.com"
DEFAULT_STORAGE_CLASS_NAME: Final = "efs-sc"
STORAGECLASS_LOCATION_ENV: Final = "STORAGECLASS_LOCATION"
MANIFEST_LOCATION_ENV: Final = "MANIFEST_LOCATION"
