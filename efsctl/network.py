"""Network context discovery for the cluster's compute nodes."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from loguru import logger

from efsctl.exceptions import InputError
from efsctl.models import NetworkContext

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client

log = logger.bind(component="network")


class NetworkContextResolver:
    """Resolves the shared VPC, its CIDR block and the node subnets."""

    def __init__(self, ec2: EC2Client) -> None:
        self._ec2 = ec2

    def resolve(self, node_ids: Iterable[str]) -> NetworkContext:
        """Determine the network context hosting ``node_ids``.

        Args:
            node_ids: EC2 instance ids of the cluster's compute nodes.
                A single node is enough.

        Returns:
            NetworkContext with one subnet entry per distinct subnet
            that actually hosts a node.

        Raises:
            InputError: If no node ids are given, no instances match,
                or the VPC cannot be found.
            botocore.exceptions.ClientError: On provider errors.
        """
        instance_ids = sorted(set(node_ids))
        if not instance_ids:
            raise InputError("no compute nodes given")

        instances = self._describe_instances(instance_ids)
        if not instances:
            raise InputError("no matching instances found")

        vpc_id = instances[0].get("VpcId")
        if not vpc_id:
            raise InputError(f"instance {instances[0].get('InstanceId')} has no VPC")

        cidr_block = self._cidr_block(vpc_id)

        subnet_ids = frozenset(i["SubnetId"] for i in instances if i.get("SubnetId"))
        if not subnet_ids:
            raise InputError(f"no subnets found for instances in VPC {vpc_id}")

        log.info(
            "Resolved VPC {vpc_id} ({cidr}) with {n} subnet(s) from {m} instance(s)",
            vpc_id=vpc_id,
            cidr=cidr_block,
            n=len(subnet_ids),
            m=len(instances),
        )
        return NetworkContext(vpc_id=vpc_id, cidr_block=cidr_block, subnet_ids=subnet_ids)

    def _describe_instances(self, instance_ids: list[str]) -> list[dict[str, Any]]:
        """Describe all instances in one batched request, following NextToken."""
        results: list[dict[str, Any]] = []
        request: dict[str, Any] = {"InstanceIds": instance_ids}

        while True:
            response = self._ec2.describe_instances(**request)
            for reservation in response.get("Reservations", []):
                results.extend(reservation.get("Instances", []))

            next_token = response.get("NextToken")
            if not next_token:
                break
            request["NextToken"] = next_token

        log.debug("Described {n} instance(s)", n=len(results))
        return results

    def _cidr_block(self, vpc_id: str) -> str:
        response = self._ec2.describe_vpcs(VpcIds=[vpc_id])
        vpcs = response.get("Vpcs", [])
        if not vpcs:
            raise InputError(f"no matching vpc found for {vpc_id}")
        cidr_block = vpcs[0].get("CidrBlock")
        if not cidr_block:
            raise InputError(f"vpc {vpc_id} has no CIDR block")
        return cidr_block
