"""StorageClass and CSI test-driver manifests for the created file system.

Templates recognize exactly two tokens, ``${filesystemid}`` and
``${storageclassname}``.
"""

from __future__ import annotations

from pathlib import Path
from string import Template

from loguru import logger

from efsctl.constants import DEFAULT_STORAGE_CLASS_NAME

log = logger.bind(component="manifests")

STORAGE_CLASS_TEMPLATE = Template("""\
kind: StorageClass
apiVersion: storage.k8s.io/v1
metadata:
  name: ${storageclassname}
provisioner: efs.csi.aws.com
mountOptions:
  - tls
parameters:
  provisioningMode: efs-ap
  fileSystemId: ${filesystemid}
  directoryPerms: "700"
  basePath: "/dynamic_provisioning"
""")

CSI_MANIFEST_TEMPLATE = Template("""\
StorageClass:
  FromExistingClassName: ${storageclassname}
SnapshotClass:
  FromName: true
DriverInfo:
  Name: efs.csi.aws.com
  SupportedSizeRange:
    Min: 1Gi
    Max: 64Ti
  Capabilities:
    persistence: true
    fsGroup: false
    block: false
    exec: true
    volumeLimits: false
    controllerExpansion: false
    nodeExpansion: false
    snapshotDataSource: false
    RWX: true
    topology: false
""")


def render_storage_class(
    file_system_id: str,
    storage_class_name: str = DEFAULT_STORAGE_CLASS_NAME,
) -> str:
    return STORAGE_CLASS_TEMPLATE.substitute(
        filesystemid=file_system_id,
        storageclassname=storage_class_name,
    )


def render_csi_manifest(storage_class_name: str = DEFAULT_STORAGE_CLASS_NAME) -> str:
    return CSI_MANIFEST_TEMPLATE.substitute(storageclassname=storage_class_name)


def write_manifest(path: Path, content: str) -> Path:
    """Write a rendered manifest, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    log.info("Wrote manifest to {path}", path=path)
    return path
