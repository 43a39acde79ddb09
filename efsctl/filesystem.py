"""EFS file system creation and availability polling."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError
from loguru import logger

from efsctl.constants import (
    FILE_SYSTEM_ALREADY_EXISTS,
    OWNERSHIP_TAG_PREFIX,
    PERFORMANCE_MODE,
    VOLUME_CREATE_BACKOFF,
    LifecycleState,
)
from efsctl.exceptions import ProvisioningError
from efsctl.models import FileSystem, resource_tags
from efsctl.retry import Backoff, Done, Fail, PollOutcome, Retry, error_code, poll

if TYPE_CHECKING:
    from mypy_boto3_efs import EFSClient

log = logger.bind(component="filesystem")


class FilesystemProvisioner:
    """Creates an encrypted EFS file system and waits until it is usable."""

    def __init__(
        self,
        efs: EFSClient,
        cluster_identity: str,
        *,
        backoff: Backoff = VOLUME_CREATE_BACKOFF,
        tag_prefix: str = OWNERSHIP_TAG_PREFIX,
    ) -> None:
        self._efs = efs
        self.cluster_identity = cluster_identity
        self.backoff = backoff
        self.tag_prefix = tag_prefix

    @property
    def file_system_name(self) -> str:
        return f"{self.cluster_identity}-efs"

    def create_file_system(self, name: str, creation_token: str) -> FileSystem:
        """Request a new file system; returns while it is still creating.

        The provider returns the same file system for a repeated
        ``creation_token``, which makes this call safe to retry within
        one provisioning run.
        """
        try:
            response = self._efs.create_file_system(
                CreationToken=creation_token,
                PerformanceMode=PERFORMANCE_MODE,
                Encrypted=True,
                Tags=resource_tags(name, self.cluster_identity, self.tag_prefix),
            )
        except ClientError as e:
            existing = e.response.get("FileSystemId")
            if error_code(e) == FILE_SYSTEM_ALREADY_EXISTS and existing:
                log.info(
                    "File system {fs_id} already exists for token {token}",
                    fs_id=existing,
                    token=creation_token,
                )
                return FileSystem(id=str(existing))
            raise

        fs = FileSystem(
            id=response["FileSystemId"],
            lifecycle_state=response.get("LifeCycleState", LifecycleState.CREATING),
        )
        log.info("Created file system {fs_id} ({name})", fs_id=fs.id, name=name)
        return fs

    def describe(self, file_system_id: str) -> FileSystem | None:
        response = self._efs.describe_file_systems(FileSystemId=file_system_id)
        filesystems = response.get("FileSystems", [])
        if not filesystems:
            return None
        fs = filesystems[0]
        return FileSystem(id=fs["FileSystemId"], lifecycle_state=fs["LifeCycleState"])

    def wait_until_available(
        self,
        file_system_id: str,
        *,
        cancel: threading.Event | None = None,
    ) -> FileSystem:
        """Poll until the file system is available.

        A file system that is briefly invisible right after creation,
        one that is still creating, and provider errors are all retried.
        Only the ``error`` lifecycle state fails immediately.

        Raises:
            ProvisioningError: If the file system reports the error state.
            NotAvailableError: If the budget ran out while describes succeeded.
            ClientError: If the budget ran out and the last describe failed.
        """

        def check() -> PollOutcome[FileSystem]:
            try:
                fs = self.describe(file_system_id)
            except ClientError as e:
                return Retry(e)
            if fs is None:
                log.debug("File system {fs_id} not visible yet", fs_id=file_system_id)
                return Retry()
            if fs.is_available:
                return Done(fs)
            if fs.lifecycle_state == LifecycleState.ERROR:
                return Fail(ProvisioningError("file system", fs.id, "lifecycle state is error"))
            log.debug(
                "File system {fs_id} is {state}",
                fs_id=fs.id,
                state=fs.lifecycle_state,
            )
            return Retry()

        fs = poll(
            check,
            self.backoff,
            description=f"file system {file_system_id}",
            cancel=cancel,
        )
        log.info("File system {fs_id} is available", fs_id=fs.id)
        return fs
