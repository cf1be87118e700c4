#!/usr/bin/env python3
"""
EKS to EKS PVC Sync

Recreates EFS-backed PersistentVolumeClaims of a source cluster on a target
cluster and copies the volume data between the two filesystems:

- Load both kubeconfig contexts and the EFS filesystem ids of their
  storage classes
- Index the selected PVCs on both clusters
- Mount both EFS roots locally
- Create the PVCs missing on the target and wait for them to show up
- rsync every bound volume directory from source to target

Usage:
    python pvc_sync.py --sourceEKSContext old --targetEKSContext new \\
        --sourceEFSDNSName fs-1.efs.eu-west-1.amazonaws.com \\
        --targetEFSDNSName fs-2.efs.eu-west-1.amazonaws.com [--dryRun]
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from claim_indexer import ClaimIndexer
from cluster_accessor import ClusterAccessor
from command_runner import CommandRunner, SubprocessCommandRunner
from migration_config import (
    DEFAULT_MOUNT_ARGS,
    DEFAULT_RSYNC_ARGS,
    MigrationConfig,
    build_config,
)
from migration_errors import ConfigurationError, PVCSyncError
from reconciliation_engine import ReconciliationEngine, ReconciliationResult
from structured_logger import setup_logging
from sync_driver import SyncDriver, SyncResult
from volume_mount_manager import VolumeMountManager

logger = logging.getLogger(__name__)

FILESYSTEM_ID_PARAMETER = "fileSystemId"


@dataclass
class SyncReport:
    """Summary of a finished run"""
    source_count: int
    target_count: int
    reconciliation: ReconciliationResult
    sync: SyncResult

    def lines(self) -> List[str]:
        return [
            f"pvcs selected on source: {self.source_count}",
            f"pvcs selected on target before reconciliation: {self.target_count}",
            f"pvcs created on target: {self.reconciliation.created_count} "
            f"in {self.reconciliation.attempts} attempt(s)",
            f"pvcs synced: {len(self.sync.transferred)}",
            f"pvcs skipped (volume not ready): {len(self.sync.skipped)}",
        ]


class PVCSyncOrchestrator:
    """Runs the sync phases in order for one configuration"""

    def __init__(
        self,
        config: MigrationConfig,
        source: ClusterAccessor,
        target: ClusterAccessor,
        runner: Optional[CommandRunner] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config
        self.source = source
        self.target = target
        self.runner = runner or SubprocessCommandRunner(dry_run=config.dry_run)

        self.indexer = ClaimIndexer(config.namespace_pattern, config.name_pattern)
        self.mount_manager = VolumeMountManager(self.runner, config)
        self.engine = ReconciliationEngine(target, self.indexer, config, sleep=sleep)
        self.sync_driver = SyncDriver(self.runner, config)

    @classmethod
    def from_config(cls, config: MigrationConfig) -> "PVCSyncOrchestrator":
        source = ClusterAccessor.for_context(config.source_context, config.kubeconfig_path)
        target = ClusterAccessor.for_context(config.target_context, config.kubeconfig_path)
        return cls(config, source, target)

    def filesystem_id(self, accessor: ClusterAccessor, storage_class: str, label: str) -> str:
        parameters = accessor.get_storage_class_parameters(storage_class)
        filesystem_id = parameters.get(FILESYSTEM_ID_PARAMETER)
        if not filesystem_id:
            raise ConfigurationError(
                f"Storage class {storage_class} has no {FILESYSTEM_ID_PARAMETER} parameter"
            )
        logger.info(f"StorageClass{label} fileSystemId: {filesystem_id}")
        return filesystem_id

    def run(self) -> SyncReport:
        config = self.config

        filesystem_id_source = self.filesystem_id(self.source, config.source_storage_class, "Source")
        filesystem_id_target = self.filesystem_id(self.target, config.target_storage_class, "Target")

        pvcs_source = self.indexer.index(self.source, config.source_storage_class)
        logger.info(f"There are {len(pvcs_source)} pvcs in the source cluster that match selection")

        pvcs_target = self.indexer.index(self.target, config.target_storage_class)
        logger.info(f"There are {len(pvcs_target)} pvcs in the target cluster that match selection")

        mount_source = self.mount_manager.mount("source-", filesystem_id_source, config.source_efs_dns_name)
        mount_target = self.mount_manager.mount("target-", filesystem_id_target, config.target_efs_dns_name)

        reconciliation = self.engine.reconcile(pvcs_source, pvcs_target)

        sync_result = self.sync_driver.sync(
            pvcs_source,
            reconciliation.target_index,
            mount_source.local_path,
            mount_target.local_path
        )

        return SyncReport(
            source_count=len(pvcs_source),
            target_count=len(pvcs_target),
            reconciliation=reconciliation,
            sync=sync_result
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recreate EFS-backed PVCs of one EKS cluster on another and rsync their data"
    )
    parser.add_argument("--config", help="YAML file with configuration values")
    parser.add_argument(
        "--sourceEKSContext", dest="source_context",
        help="Name of source EKS [Elastic Kubernetes Systems] context"
    )
    parser.add_argument(
        "--targetEKSContext", dest="target_context",
        help="Name of target EKS [Elastic Kubernetes Systems] context"
    )
    parser.add_argument(
        "--sourceEFSDNSName", dest="source_efs_dns_name",
        help="Name of EFS [Elastic Filesystem] DNS of source EKS"
    )
    parser.add_argument(
        "--targetEFSDNSName", dest="target_efs_dns_name",
        help="Name of EFS [Elastic Filesystem] DNS of target EKS"
    )
    parser.add_argument(
        "--sourceStorageClass", dest="source_storage_class",
        help="Name of source Storage Class in Kubernetes (default: efs)"
    )
    parser.add_argument(
        "--targetStorageClass", dest="target_storage_class",
        help="Name of target Storage Class in Kubernetes (default: efs)"
    )
    parser.add_argument(
        "--mountArgs", dest="mount_args",
        help=f"Arguments to mount EFS (default: {DEFAULT_MOUNT_ARGS})"
    )
    parser.add_argument(
        "--rsyncArgs", dest="rsync_args",
        help=f"Arguments to rsync EFS (default: {DEFAULT_RSYNC_ARGS})"
    )
    parser.add_argument(
        "--pvcIncludeNamespaceRegex", dest="namespace_pattern",
        help="Regular expression to select namespace of PVCs to synchronize (default: default)"
    )
    parser.add_argument(
        "--pvcIncludeNameRegex", dest="name_pattern",
        help="Regular expression to select names of PVCs to synchronize (default: .*)"
    )
    parser.add_argument(
        "--kubeconfig", dest="kubeconfig",
        help="Path to kubeconfig file (default: ~/.kube/config)"
    )
    parser.add_argument(
        "--mountRoot", dest="mount_root",
        help="Directory below which the EFS roots are mounted (default: /tmp)"
    )
    parser.add_argument(
        "--maxAttempts", dest="max_attempts", type=int,
        help="Maximum PVC creation attempts (default: 10)"
    )
    parser.add_argument(
        "--pollInterval", dest="poll_interval_seconds", type=float,
        help="Seconds to wait for PVs between attempts (default: 60)"
    )
    parser.add_argument(
        "--logFormat", dest="log_format", choices=["text", "json"],
        help="Log output format (default: text)"
    )
    parser.add_argument(
        "--dryRun", dest="dry_run", action="store_true", default=None,
        help="Dry-Run of configuration"
    )
    parser.add_argument(
        "--quiet", dest="quiet", action="store_true", default=None,
        help="Turn off verbose output"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = {key: value for key, value in vars(args).items() if key != "config"}

    try:
        config = build_config(overrides, config_file=args.config)
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"parse error: {e}")
        return 2

    setup_logging(
        dry_run=config.dry_run,
        quiet=config.quiet,
        log_format=config.log_format
    )

    try:
        logger.info("start")
        orchestrator = PVCSyncOrchestrator.from_config(config)
        report = orchestrator.run()

        for line in report.lines():
            logger.info(line)
        logger.info("end")
        return 0

    except KeyboardInterrupt:
        logger.warning("Sync interrupted by user")
        return 130
    except PVCSyncError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
