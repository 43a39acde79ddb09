"""Reverse-order, best-effort teardown of ledgered resources."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError
from loguru import logger

from efsctl.constants import DELETION_BACKOFF, NOT_FOUND_CODES, ResourceKind
from efsctl.exceptions import StepFailure, TeardownError
from efsctl.models import ResourceLedger
from efsctl.retry import Backoff, call, has_code

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client
    from mypy_boto3_efs import EFSClient

log = logger.bind(component="teardown")

type DeleteFn = Callable[[str], object]

is_not_found = has_code(*NOT_FOUND_CODES)


class TeardownOrchestrator:
    """Deletes everything a ledger records, dependents first.

    Order is mount targets, then the file system, then the security
    group. A file system cannot be deleted while a mount target still
    references it, and a group cannot be deleted while mount target
    interfaces use it, so each deletion is retried until its
    dependents are gone.

    Args:
        ec2: EC2 client.
        efs: EFS client.
        backoff: Retry policy for each deletion.
        ignore_not_found: Treat "not found" from the provider as success,
            making repeated teardown idempotent. When False, not-found
            is recorded as a failure of that step.
    """

    def __init__(
        self,
        ec2: EC2Client,
        efs: EFSClient,
        *,
        backoff: Backoff = DELETION_BACKOFF,
        ignore_not_found: bool = False,
    ) -> None:
        self._ec2 = ec2
        self._efs = efs
        self.backoff = backoff
        self.ignore_not_found = ignore_not_found

    def destroy_all(self, ledger: ResourceLedger) -> None:
        """Attempt every deletion the ledger calls for.

        Raises:
            TeardownError: If any step failed, listing every failure.
        """
        if ledger.is_empty:
            log.debug("Nothing to delete")
            return

        steps: list[tuple[ResourceKind, str, DeleteFn]] = [
            (ResourceKind.MOUNT_TARGET, mt_id, self._delete_mount_target)
            for mt_id in ledger.mount_target_ids
        ]
        if ledger.file_system_id:
            steps.append((ResourceKind.FILE_SYSTEM, ledger.file_system_id, self._delete_file_system))
        if ledger.security_group_id:
            steps.append(
                (ResourceKind.SECURITY_GROUP, ledger.security_group_id, self._delete_security_group)
            )

        failures: list[StepFailure] = []
        for kind, resource_id, delete in steps:
            try:
                self._run_step(kind, resource_id, delete)
            except Exception as e:
                log.error(
                    "Failed to delete {kind} {resource_id}: {err}",
                    kind=kind,
                    resource_id=resource_id,
                    err=e,
                )
                failures.append(StepFailure(str(kind), resource_id, e))

        if failures:
            raise TeardownError(failures)

    def _run_step(self, kind: ResourceKind, resource_id: str, delete: DeleteFn) -> None:
        log.info("Deleting {kind} {resource_id}", kind=kind, resource_id=resource_id)
        try:
            call(
                lambda: delete(resource_id),
                self.backoff,
                description=f"delete {kind} {resource_id}",
                terminal=is_not_found,
            )
        except ClientError as e:
            if self.ignore_not_found and is_not_found(e):
                log.info("{kind} {resource_id} already removed", kind=kind, resource_id=resource_id)
                return
            raise
        log.info("Deleted {kind} {resource_id}", kind=kind, resource_id=resource_id)

    def _delete_mount_target(self, mount_target_id: str) -> object:
        return self._efs.delete_mount_target(MountTargetId=mount_target_id)

    def _delete_file_system(self, file_system_id: str) -> object:
        return self._efs.delete_file_system(FileSystemId=file_system_id)

    def _delete_security_group(self, group_id: str) -> object:
        return self._ec2.delete_security_group(GroupId=group_id)
