"""Local NFS mounts of each cluster's EFS filesystem root."""

import logging
import os
from dataclasses import dataclass
from typing import List

from command_runner import CommandRunner, log_command, run_command, split_args
from migration_config import MigrationConfig
from migration_errors import MountError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MountPoint:
    environment: str
    local_path: str
    remote_endpoint: str


class VolumeMountManager:
    """
    Mounts remote filesystem roots below ``mount_root``.

    Mounts are never torn down here; the operator unmounts them after the
    run.
    """

    def __init__(self, runner: CommandRunner, config: MigrationConfig):
        self.runner = runner
        self.mount_root = config.mount_root
        self.mount_args = config.mount_args
        self.dry_run = config.dry_run

    def mount_path(self, prefix: str, filesystem_id: str) -> str:
        return os.path.join(self.mount_root, f"{prefix}{filesystem_id}")

    def mount_command(self, remote_endpoint: str, local_path: str) -> List[str]:
        return ["mount", *split_args(self.mount_args), remote_endpoint, local_path]

    def mount(self, prefix: str, filesystem_id: str, remote_dns_name: str) -> MountPoint:
        """
        Create the mount directory and mount ``<remote_dns_name>:/`` on it.

        Args:
            prefix: ``source-`` or ``target-``
            filesystem_id: EFS filesystem id from the storage class
            remote_dns_name: DNS name of the EFS endpoint

        Raises:
            MountError: If the directory cannot be created or mount fails
        """
        local_path = self.mount_path(prefix, filesystem_id)
        remote_endpoint = f"{remote_dns_name}:/"

        logger.info("creating dir...")
        mkdir_argv = ["mkdir", "-p", local_path]
        log_command(mkdir_argv)
        if not self.dry_run:
            try:
                os.makedirs(local_path, exist_ok=True)
            except OSError as e:
                raise MountError(f"Couldn't create dir {local_path}: {e}", mkdir_argv) from e

        logger.info("mounting NFS...")
        argv = self.mount_command(remote_endpoint, local_path)
        returncode = run_command(self.runner, argv, self.dry_run)
        if returncode != 0:
            raise MountError(
                f"Couldn't mount {remote_endpoint} on {local_path} (exit status {returncode})",
                argv,
                returncode
            )

        return MountPoint(
            environment=prefix.rstrip("-"),
            local_path=local_path,
            remote_endpoint=remote_endpoint
        )
