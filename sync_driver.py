#!/usr/bin/env python3
"""
rsync of volume directories from the source mount to the target mount.

Every source claim must have a counterpart in the target index; pairs whose
volumes are not bound yet on either side are skipped.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Tuple

from claim_indexer import ClaimIndex, bound_volume_name
from command_runner import CommandRunner, run_command, split_args
from migration_config import MigrationConfig
from migration_errors import ClaimPairingError, TransferError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryPairing:
    """Source and target directory of one matched claim"""
    key: str
    source_dir: str
    target_dir: str


@dataclass
class SyncResult:
    transferred: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def volume_dir(mount_path: str, volume_name: str) -> str:
    """Directory of a volume with a trailing separator, so rsync copies its contents."""
    return os.path.join(mount_path, volume_name) + os.sep


class SyncDriver:
    """Pairs claims by identity key and drives one rsync per pair."""

    def __init__(self, runner: CommandRunner, config: MigrationConfig):
        self.runner = runner
        self.rsync_args = config.rsync_args
        self.dry_run = config.dry_run

    def plan(
        self,
        source_index: ClaimIndex,
        target_index: ClaimIndex,
        source_mount: str,
        target_mount: str
    ) -> Tuple[List[DirectoryPairing], List[str]]:
        """
        Resolve directory pairs for every source claim.

        Returns:
            Tuple of (pairings to transfer, keys skipped because a volume is
            not bound yet), both in key order

        Raises:
            ClaimPairingError: If any source claim has no target claim
        """
        unmatched = [key for key in source_index if key not in target_index]
        if unmatched:
            raise ClaimPairingError(unmatched)

        pairings: List[DirectoryPairing] = []
        skipped: List[str] = []

        for key in sorted(source_index):
            source_volume = bound_volume_name(source_index[key])
            target_volume = bound_volume_name(target_index[key])

            if not source_volume or not target_volume:
                logger.info(
                    f"skipping pvc, volume not yet ready: {key}",
                    extra={'extra_fields': {'claim': key}}
                )
                skipped.append(key)
                continue

            pairings.append(DirectoryPairing(
                key=key,
                source_dir=volume_dir(source_mount, source_volume),
                target_dir=volume_dir(target_mount, target_volume)
            ))

        return pairings, skipped

    def transfer(self, pairing: DirectoryPairing) -> None:
        argv = ["rsync", *split_args(self.rsync_args), pairing.source_dir, pairing.target_dir]
        returncode = run_command(self.runner, argv, self.dry_run)
        if returncode != 0:
            raise TransferError(
                f"Couldn't rsync {pairing.source_dir} for pvc {pairing.key} "
                f"(exit status {returncode})",
                argv,
                returncode
            )

    def sync(
        self,
        source_index: ClaimIndex,
        target_index: ClaimIndex,
        source_mount: str,
        target_mount: str
    ) -> SyncResult:
        """Transfer every ready pair; the first failed transfer aborts the run."""
        logger.info("rsyncing dirs...")
        pairings, skipped = self.plan(source_index, target_index, source_mount, target_mount)

        result = SyncResult(skipped=skipped)
        for pairing in pairings:
            self.transfer(pairing)
            result.transferred.append(pairing.key)

        logger.info(
            f"{len(result.transferred)} pvc(s) synced, {len(result.skipped)} skipped"
        )
        return result
