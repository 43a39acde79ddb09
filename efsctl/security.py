"""Security group and NFS ingress rule for the file system."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from efsctl.constants import NAME_TAG, NFS_PORT, OWNED, OWNERSHIP_TAG_PREFIX
from efsctl.models import NetworkContext, SecurityGroup, ownership_tag_key, resource_tags

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client

log = logger.bind(component="security")


class SecurityProvisioner:
    """Creates the file system's security group and opens the NFS port.

    Group names derive from the cluster identity, so repeated runs against
    the same cluster produce discoverable names.
    """

    def __init__(
        self,
        ec2: EC2Client,
        cluster_identity: str,
        *,
        tag_prefix: str = OWNERSHIP_TAG_PREFIX,
    ) -> None:
        self._ec2 = ec2
        self.cluster_identity = cluster_identity
        self.tag_prefix = tag_prefix

    @property
    def group_name(self) -> str:
        return f"{self.cluster_identity}-efs-sg"

    def create_security_group(self, context: NetworkContext) -> SecurityGroup:
        """Create a new security group in the cluster VPC.

        Not idempotent: every call creates a new group.
        """
        response = self._ec2.create_security_group(
            GroupName=self.group_name,
            Description=f"EFS mount targets for cluster {self.cluster_identity}",
            VpcId=context.vpc_id,
            TagSpecifications=[
                {
                    "ResourceType": "security-group",
                    "Tags": resource_tags(self.group_name, self.cluster_identity, self.tag_prefix),
                }
            ],
        )
        group = SecurityGroup(
            id=response["GroupId"],
            name=self.group_name,
            vpc_id=context.vpc_id,
        )
        log.info("Created security group {sg_id} ({name})", sg_id=group.id, name=group.name)
        return group

    def authorize_ingress(self, group_id: str, context: NetworkContext) -> bool:
        """Allow NFS (TCP 2049) from the VPC address range.

        Returns:
            Whether the provider reports the rule as applied.
        """
        response = self._ec2.authorize_security_group_ingress(
            GroupId=group_id,
            IpPermissions=[
                {
                    "IpProtocol": "tcp",
                    "FromPort": NFS_PORT,
                    "ToPort": NFS_PORT,
                    "IpRanges": [
                        {"CidrIp": context.cidr_block, "Description": "NFS from cluster VPC"}
                    ],
                }
            ],
        )
        applied = bool(response.get("Return", False))
        log.info(
            "Ingress tcp/{port} from {cidr} on {sg_id}: applied={applied}",
            port=NFS_PORT,
            cidr=context.cidr_block,
            sg_id=group_id,
            applied=applied,
        )
        return applied

    def find_security_groups(self, context: NetworkContext) -> list[str]:
        """Ids of groups in the VPC carrying this cluster's name and ownership tag."""
        response = self._ec2.describe_security_groups(
            Filters=[
                {"Name": "vpc-id", "Values": [context.vpc_id]},
                {"Name": f"tag:{NAME_TAG}", "Values": [self.group_name]},
                {
                    "Name": f"tag:{ownership_tag_key(self.cluster_identity, self.tag_prefix)}",
                    "Values": [OWNED],
                },
            ]
        )
        return [sg["GroupId"] for sg in response.get("SecurityGroups", [])]
