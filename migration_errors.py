"""
Exception types raised by the PVC sync components.

Every failure in the sync pipeline is fatal for the run; components raise one
of these and only the CLI entry point decides how to terminate.
"""

from typing import List, Optional, Sequence


class PVCSyncError(Exception):
    """Base class for all pvc-sync failures"""
    pass


class ConfigurationError(PVCSyncError):
    """Invalid or incomplete run configuration"""
    pass


class ClusterAccessError(PVCSyncError):
    """Failure talking to a cluster API (kubeconfig, listing, lookups)"""

    def __init__(self, message: str, context: Optional[str] = None):
        super().__init__(message)
        self.context = context


class ClaimCreationError(PVCSyncError):
    """A target claim could not be created"""

    def __init__(self, key: str, created_keys: Sequence[str], reason: str):
        self.key = key
        self.created_keys: List[str] = list(created_keys)
        message = f"Couldn't create pvc on target {key}: {reason}"
        if self.created_keys:
            message += f" (already created: {', '.join(self.created_keys)})"
        super().__init__(message)


class ClaimPairingError(PVCSyncError):
    """Source claims have no counterpart in the target index"""

    def __init__(self, missing_keys: Sequence[str]):
        self.missing_keys: List[str] = sorted(missing_keys)
        super().__init__(
            "Couldn't find corresponding pvc on target: "
            + ", ".join(self.missing_keys)
        )


class CommandExecutionError(PVCSyncError):
    """An external command failed or could not be started"""

    def __init__(self, message: str, argv: Sequence[str], returncode: Optional[int] = None):
        super().__init__(message)
        self.argv = list(argv)
        self.returncode = returncode


class MountError(CommandExecutionError):
    """Mount directory creation or the mount command failed"""
    pass


class TransferError(CommandExecutionError):
    """rsync of a volume directory failed"""
    pass
