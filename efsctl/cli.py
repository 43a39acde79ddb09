"""Command-line entry point.

    efsctl create [--node URI ... --cluster-id ID --region R] [--rollback]
    efsctl destroy (--ledger FILE | --file-system-id ID ...) [--ignore-not-found]
    efsctl render --file-system-id ID
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from efsctl.clients import CloudClients
from efsctl.cluster import ClusterContextProvider, KubernetesClusterContext, StaticClusterContext
from efsctl.config import Settings, load_settings
from efsctl.constants import ResourceKind
from efsctl.exceptions import (
    EfsctlError,
    InputError,
    ProvisioningError,
    StepFailure,
    TeardownError,
)
from efsctl.logging import LogConfig, setup_logging, teardown_logging
from efsctl.manifests import render_csi_manifest, render_storage_class, write_manifest
from efsctl.models import ResourceLedger
from efsctl.provisioner import Provisioner
from efsctl.teardown import TeardownOrchestrator

log = logger.bind(component="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="efsctl",
        description="Create and remove a shared EFS file system for a cluster",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory holding efsctl.toml (default: current directory)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Provision the file system and write manifests")
    create.add_argument(
        "--node",
        action="append",
        default=[],
        metavar="URI",
        help="Node provider id, e.g. aws:///us-east-1a/i-0123 (repeatable)",
    )
    create.add_argument("--cluster-id", default=None, help="Cluster identity for names and tags")
    create.add_argument("--region", default=None, help="Cloud region")
    create.add_argument("--kubeconfig", default=None, help="Kubeconfig for cluster discovery")
    create.add_argument(
        "--rollback",
        action="store_true",
        help="Delete everything created so far if provisioning fails",
    )
    create.set_defaults(handler=_cmd_create)

    destroy = sub.add_parser("destroy", help="Delete resources recorded by a create run")
    destroy.add_argument("--ledger", type=Path, default=None, help="Ledger JSON printed by create")
    destroy.add_argument("--file-system-id", default=None)
    destroy.add_argument("--security-group-id", default=None)
    destroy.add_argument("--mount-target-id", action="append", default=[])
    destroy.add_argument("--region", required=True, help="Cloud region")
    destroy.add_argument(
        "--ignore-not-found",
        action="store_true",
        help="Treat resources that no longer exist as deleted",
    )
    destroy.set_defaults(handler=_cmd_destroy)

    render = sub.add_parser("render", help="Write manifests for an existing file system")
    render.add_argument("--file-system-id", required=True)
    render.set_defaults(handler=_cmd_render)

    return parser


def _cluster_context(args: argparse.Namespace, settings: Settings) -> ClusterContextProvider:
    if args.node:
        if not args.cluster_id or not args.region:
            raise InputError("--node requires --cluster-id and --region")
        return StaticClusterContext.from_provider_uris(args.node, args.cluster_id, args.region)
    return KubernetesClusterContext.from_kubeconfig(args.kubeconfig, settings)


def _write_manifests(file_system_id: str, settings: Settings) -> None:
    if settings.storageclass_location is None and settings.manifest_location is None:
        log.warning("No manifest locations configured, skipping manifests")
        return
    if settings.storageclass_location is not None:
        write_manifest(
            settings.storageclass_location,
            render_storage_class(file_system_id, settings.storage_class_name),
        )
    if settings.manifest_location is not None:
        write_manifest(settings.manifest_location, render_csi_manifest(settings.storage_class_name))


def _print_ledger(ledger: ResourceLedger) -> None:
    print(json.dumps(ledger.to_dict(), indent=2))


def _remaining(failures: Sequence[StepFailure]) -> ResourceLedger:
    """Ledger of the resources a teardown failed to delete."""
    remaining = ResourceLedger()
    for failure in failures:
        match failure.kind:
            case ResourceKind.MOUNT_TARGET:
                remaining.record_mount_target(failure.resource_id)
            case ResourceKind.FILE_SYSTEM:
                remaining.record_file_system(failure.resource_id)
            case ResourceKind.SECURITY_GROUP:
                remaining.record_security_group(failure.resource_id)
    return remaining


def _rollback(provisioner: Provisioner, ledger: ResourceLedger) -> ResourceLedger:
    """Tear down ``ledger``; returns what is left behind."""
    log.warning("Rolling back resources created so far")
    try:
        provisioner.destroy(ledger)
    except TeardownError as e:
        log.error("Rollback incomplete: {err}", err=e)
        return _remaining(e.errors)
    log.info("Rollback complete")
    return ResourceLedger()


def _cmd_create(args: argparse.Namespace, settings: Settings) -> int:
    context = _cluster_context(args, settings)
    provisioner = Provisioner.from_context(context, settings)
    ledger = ResourceLedger()

    try:
        result = provisioner.provision(context.list_compute_nodes(), ledger)
    except ProvisioningError:
        if args.rollback and not ledger.is_empty:
            ledger = _rollback(provisioner, ledger)
        _print_ledger(ledger)
        raise

    _write_manifests(result.file_system_id, settings)
    _print_ledger(result.ledger)
    return 0


def _load_ledger(args: argparse.Namespace) -> ResourceLedger:
    if args.ledger is not None:
        try:
            data = json.loads(args.ledger.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise InputError(f"cannot read ledger {args.ledger}: {e}") from e
        if not isinstance(data, dict):
            raise InputError(f"ledger {args.ledger} must hold a JSON object")
        return ResourceLedger.from_dict(data)
    return ResourceLedger.from_dict({
        "security_group_id": args.security_group_id,
        "file_system_id": args.file_system_id,
        "mount_target_ids": args.mount_target_id,
    })


def _cmd_destroy(args: argparse.Namespace, settings: Settings) -> int:
    ledger = _load_ledger(args)
    if ledger.is_empty:
        log.info("Ledger is empty, nothing to delete")
        return 0
    clients = CloudClients.from_credentials(None, args.region)
    TeardownOrchestrator(
        clients.ec2,
        clients.efs,
        backoff=settings.deletion_backoff,
        ignore_not_found=args.ignore_not_found,
    ).destroy_all(ledger)
    return 0


def _cmd_render(args: argparse.Namespace, settings: Settings) -> int:
    _write_manifests(args.file_system_id, settings)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logger.remove()
    handler_ids = setup_logging(
        LogConfig(level="DEBUG" if args.verbose else "INFO", file=args.log_file)
    )
    try:
        settings = load_settings(project_dir=args.config_dir)
        return args.handler(args, settings)
    except EfsctlError as e:
        log.error("{err}", err=e)
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        teardown_logging(handler_ids)


if __name__ == "__main__":
    sys.exit(main())
