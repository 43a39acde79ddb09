"""Cluster context: compute nodes, identity, region and credentials.

Two implementations of :class:`ClusterContextProvider` are provided:

- :class:`StaticClusterContext` for explicitly supplied values.
- :class:`KubernetesClusterContext`, which reads Node objects, the
  cluster ``Infrastructure`` object and the cloud credentials secret.
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger

from efsctl.clients import Credentials
from efsctl.config import Settings
from efsctl.constants import ACCESS_KEY_ID_FIELD, SECRET_ACCESS_KEY_FIELD
from efsctl.exceptions import ConfigurationError, EfsctlError, InputError
from efsctl.models import node_id_from_provider_uri, node_ids_from_provider_uris
from efsctl.retry import call

if TYPE_CHECKING:
    from kubernetes import client as k8s

log = logger.bind(component="cluster")

INFRASTRUCTURE_GROUP = "config.openshift.io"
INFRASTRUCTURE_VERSION = "v1"
INFRASTRUCTURE_PLURAL = "infrastructures"

# Never retried: missing object or denied access
_TERMINAL_STATUSES = frozenset({401, 403, 404})


class ClusterContextProvider(Protocol):
    def list_compute_nodes(self) -> frozenset[str]: ...

    def get_cluster_identity(self) -> str: ...

    def get_credentials(self) -> Credentials | None: ...

    def get_region(self) -> str: ...


@dataclass(frozen=True, slots=True)
class StaticClusterContext:
    """Cluster context from explicit values.

    Attributes:
        node_ids: Instance ids of the compute nodes.
        cluster_identity: Used for resource names and the ownership tag.
        region: Cloud region.
        credentials: Static credentials, or None for boto3's default chain.
    """

    node_ids: frozenset[str]
    cluster_identity: str
    region: str
    credentials: Credentials | None = None

    @classmethod
    def from_provider_uris(
        cls,
        uris: Iterable[str],
        cluster_identity: str,
        region: str,
        credentials: Credentials | None = None,
    ) -> StaticClusterContext:
        return cls(node_ids_from_provider_uris(uris), cluster_identity, region, credentials)

    def list_compute_nodes(self) -> frozenset[str]:
        return self.node_ids

    def get_cluster_identity(self) -> str:
        return self.cluster_identity

    def get_credentials(self) -> Credentials | None:
        return self.credentials

    def get_region(self) -> str:
        return self.region


class KubernetesClusterContext:
    """Cluster context read from the Kubernetes API.

    Every API call is retried under the settings' operation policy.
    """

    def __init__(
        self,
        core: k8s.CoreV1Api,
        custom: k8s.CustomObjectsApi,
        settings: Settings | None = None,
    ) -> None:
        self._core = core
        self._custom = custom
        self._settings = settings or Settings()

    @classmethod
    def from_kubeconfig(
        cls,
        kubeconfig: str | None = None,
        settings: Settings | None = None,
    ) -> KubernetesClusterContext:
        """Connect using a kubeconfig file, or in-cluster config when none is given.

        Raises:
            ConfigurationError: If no usable cluster configuration is found.
        """
        from kubernetes import client, config
        from kubernetes.config.config_exception import ConfigException

        try:
            if kubeconfig:
                config.load_kube_config(config_file=kubeconfig)
            else:
                try:
                    config.load_incluster_config()
                except ConfigException:
                    config.load_kube_config()
        except (ConfigException, OSError) as e:
            source = kubeconfig or "in-cluster or default kubeconfig"
            raise ConfigurationError(f"cannot load cluster configuration from {source}: {e}") from e
        return cls(client.CoreV1Api(), client.CustomObjectsApi(), settings)

    def _call[T](self, fn: Callable[[], T], resource: str) -> T:
        """Call the API, retrying transient errors.

        Raises:
            InputError: If ``resource`` is missing or access is denied.
            EfsctlError: If retries ran out on any other API error.
        """
        from kubernetes.client.exceptions import ApiException

        try:
            return call(
                fn,
                self._settings.operation_backoff,
                description=resource,
                retry_on=ApiException,
                terminal=lambda e: getattr(e, "status", None) in _TERMINAL_STATUSES,
            )
        except ApiException as e:
            if e.status in _TERMINAL_STATUSES:
                raise InputError(f"cannot read {resource}: {e.status} {e.reason}") from e
            raise EfsctlError(f"error reading {resource}: {e.status} {e.reason}") from e

    def list_compute_nodes(self) -> frozenset[str]:
        nodes = self._call(self._core.list_node, "nodes")
        node_ids: set[str] = set()
        for node in nodes.items:
            provider_id = node.spec.provider_id if node.spec else None
            if not provider_id:
                log.warning("Node {name} has no provider id, skipping", name=node.metadata.name)
                continue
            node_ids.add(node_id_from_provider_uri(provider_id))
        log.info("Found {n} compute node(s)", n=len(node_ids))
        return frozenset(node_ids)

    @cached_property
    def _infrastructure(self) -> dict[str, Any]:
        name = self._settings.infrastructure_name
        return self._call(
            lambda: self._custom.get_cluster_custom_object(
                group=INFRASTRUCTURE_GROUP,
                version=INFRASTRUCTURE_VERSION,
                plural=INFRASTRUCTURE_PLURAL,
                name=name,
            ),
            f"infrastructure {name}",
        )

    def get_cluster_identity(self) -> str:
        identity = self._infrastructure.get("status", {}).get("infrastructureName")
        if not identity:
            raise InputError("infrastructure object has no infrastructureName")
        return identity

    def get_region(self) -> str:
        status = self._infrastructure.get("status", {})
        region = status.get("platformStatus", {}).get("aws", {}).get("region")
        if not region:
            raise InputError("infrastructure object has no AWS region")
        return region

    def get_credentials(self) -> Credentials:
        namespace = self._settings.secret_namespace
        name = self._settings.secret_name
        secret = self._call(
            lambda: self._core.read_namespaced_secret(name=name, namespace=namespace),
            f"secret {namespace}/{name}",
        )
        data = secret.data or {}
        if ACCESS_KEY_ID_FIELD not in data:
            raise InputError("cloud credential id not found")
        if SECRET_ACCESS_KEY_FIELD not in data:
            raise InputError("cloud credential key not found")
        return Credentials(
            access_key_id=base64.b64decode(data[ACCESS_KEY_ID_FIELD]).decode(),
            secret_access_key=base64.b64decode(data[SECRET_ACCESS_KEY_FIELD]).decode(),
        )
