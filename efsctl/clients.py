"""AWS client factories.

Clients are created lazily from a single boto3 session so a run that
never touches a service never builds its client.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import boto3
    from mypy_boto3_ec2 import EC2Client
    from mypy_boto3_efs import EFSClient


@dataclass(frozen=True, slots=True)
class Credentials:
    """Static cloud credentials."""

    access_key_id: str
    secret_access_key: str

    def __repr__(self) -> str:
        return f"Credentials(access_key_id={self.access_key_id!r}, secret_access_key='***')"


class CloudClients:
    """EC2 and EFS clients bound to one region."""

    def __init__(self, session: boto3.Session, region: str) -> None:
        self._session = session
        self.region = region

    @classmethod
    def from_credentials(cls, credentials: Credentials | None, region: str) -> CloudClients:
        """Build clients from static credentials, or boto3's default chain when None."""
        import boto3

        if credentials is None:
            return cls(boto3.Session(region_name=region), region)
        session = boto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            region_name=region,
        )
        return cls(session, region)

    @cached_property
    def ec2(self) -> EC2Client:
        return self._session.client("ec2", region_name=self.region)

    @cached_property
    def efs(self) -> EFSClient:
        return self._session.client("efs", region_name=self.region)
