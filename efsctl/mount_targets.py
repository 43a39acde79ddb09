"""Per-subnet EFS mount targets."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError
from loguru import logger

from efsctl.exceptions import MountTargetError
from efsctl.models import MountTarget

if TYPE_CHECKING:
    from mypy_boto3_efs import EFSClient

log = logger.bind(component="mount_targets")


class MountTargetProvisioner:
    """Creates one mount target per subnet.

    Each subnet is an independent unit of work; nothing is retried here.
    """

    def __init__(self, efs: EFSClient) -> None:
        self._efs = efs

    def create_mount_targets(
        self,
        file_system_id: str,
        security_group_id: str,
        subnet_ids: Iterable[str],
        *,
        on_created: Callable[[MountTarget], None] | None = None,
    ) -> list[MountTarget]:
        """Create a mount target in every subnet.

        Args:
            file_system_id: File system to expose.
            security_group_id: Group attached to every mount target.
            subnet_ids: Subnets hosting compute nodes.
            on_created: Called after each success, before the next subnet
                is attempted.

        Returns:
            The created mount targets, one per subnet.

        Raises:
            MountTargetError: On the first failure. ``created`` holds the
                mount targets created before it.
        """
        created: list[MountTarget] = []
        for subnet_id in sorted(subnet_ids):
            try:
                response = self._efs.create_mount_target(
                    FileSystemId=file_system_id,
                    SubnetId=subnet_id,
                    SecurityGroups=[security_group_id],
                )
            except ClientError as e:
                log.error(
                    "Failed to create mount target in {subnet}: {err}",
                    subnet=subnet_id,
                    err=e,
                )
                raise MountTargetError(subnet_id, created, str(e)) from e

            mount_target = MountTarget(
                id=response["MountTargetId"],
                subnet_id=subnet_id,
                file_system_id=file_system_id,
                security_group_id=security_group_id,
            )
            created.append(mount_target)
            log.info(
                "Created mount target {mt_id} in {subnet}",
                mt_id=mount_target.id,
                subnet=subnet_id,
            )
            if on_created is not None:
                on_created(mount_target)

        return created
