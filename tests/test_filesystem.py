from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from conftest import FakeEFS, client_error
from efsctl.exceptions import NotAvailableError, ProvisioningError
from efsctl.filesystem import FilesystemProvisioner
from efsctl.retry import Backoff

FAST = Backoff(delay=0.0, factor=1.0, steps=5)


class TestCreateFileSystem:
    def test_encrypted_general_purpose(self):
        efs = FakeEFS()
        fs = FilesystemProvisioner(efs, "c1").create_file_system("c1-efs", "c1-token")

        (request,) = efs.called("create_file_system")
        assert request["Encrypted"] is True
        assert request["PerformanceMode"] == "generalPurpose"
        assert request["CreationToken"] == "c1-token"
        assert {"Key": "Name", "Value": "c1-efs"} in request["Tags"]
        assert {"Key": "kubernetes.io/cluster/c1", "Value": "owned"} in request["Tags"]
        assert fs.lifecycle_state == "creating"

    def test_existing_token_returns_same_file_system(self):
        efs = FakeEFS()
        efs.errors["create_file_system"].append(
            client_error("FileSystemAlreadyExists", "CreateFileSystem", FileSystemId="fs-existing")
        )
        fs = FilesystemProvisioner(efs, "c1").create_file_system("c1-efs", "tok")
        assert fs.id == "fs-existing"

    def test_other_errors_propagate(self):
        efs = FakeEFS()
        efs.errors["create_file_system"].append(client_error("FileSystemLimitExceeded"))
        with pytest.raises(ClientError):
            FilesystemProvisioner(efs, "c1").create_file_system("c1-efs", "tok")


class TestWaitUntilAvailable:
    def test_waits_through_creating(self):
        efs = FakeEFS(states=["creating", "creating", "available"])
        fs = FilesystemProvisioner(efs, "c1", backoff=FAST).wait_until_available("fs-1")
        assert fs.is_available
        assert len(efs.called("describe_file_systems")) == 3

    def test_tolerates_invisible_file_system(self):
        efs = FakeEFS(states=["available"], invisible_polls=2)
        fs = FilesystemProvisioner(efs, "c1", backoff=FAST).wait_until_available("fs-1")
        assert fs.id == "fs-1"

    def test_tolerates_api_errors(self):
        efs = FakeEFS(states=["available"])
        efs.errors["describe_file_systems"] = [client_error("ThrottlingException")] * 2
        fs = FilesystemProvisioner(efs, "c1", backoff=FAST).wait_until_available("fs-1")
        assert fs.is_available

    def test_never_available_exhausts_budget(self):
        efs = FakeEFS(states=["creating"])
        with pytest.raises(NotAvailableError, match="fs-1"):
            FilesystemProvisioner(efs, "c1", backoff=FAST).wait_until_available("fs-1")
        assert len(efs.called("describe_file_systems")) == FAST.steps

    def test_exhaustion_surfaces_last_api_error(self):
        efs = FakeEFS(states=["creating"])
        efs.errors["describe_file_systems"] = [client_error("InternalServerError")] * FAST.steps
        with pytest.raises(ClientError):
            FilesystemProvisioner(efs, "c1", backoff=FAST).wait_until_available("fs-1")

    def test_error_state_is_terminal(self):
        efs = FakeEFS(states=["creating", "error"])
        with pytest.raises(ProvisioningError, match="fs-1"):
            FilesystemProvisioner(efs, "c1", backoff=FAST).wait_until_available("fs-1")
        assert len(efs.called("describe_file_systems")) == 2
