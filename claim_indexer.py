"""Index PVCs of one cluster by ``namespace/name``."""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from kubernetes import client

from migration_errors import ConfigurationError

logger = logging.getLogger(__name__)

STORAGE_CLASS_ANNOTATION = "volume.beta.kubernetes.io/storage-class"

ClaimIndex = Dict[str, client.V1PersistentVolumeClaim]


def claim_key(claim: client.V1PersistentVolumeClaim) -> str:
    """Identity key shared by equivalent claims in different clusters."""
    return f"{claim.metadata.namespace}/{claim.metadata.name}"


def storage_class_annotation(claim: client.V1PersistentVolumeClaim) -> Optional[str]:
    annotations = claim.metadata.annotations or {}
    return annotations.get(STORAGE_CLASS_ANNOTATION)


def effective_storage_class(claim: client.V1PersistentVolumeClaim) -> Optional[str]:
    """``spec.storageClassName`` when set, otherwise the legacy annotation."""
    spec = claim.spec
    if spec is not None and spec.storage_class_name:
        return spec.storage_class_name
    return storage_class_annotation(claim)


def bound_volume_name(claim: client.V1PersistentVolumeClaim) -> str:
    """Name of the bound PV, empty while the claim is still pending."""
    if claim.spec is None:
        return ""
    return claim.spec.volume_name or ""


class ClaimIndexer:
    """
    Lists and filters claims for a configured namespace/name selection.

    Both patterns use search semantics: a claim is selected when the pattern
    matches anywhere in its namespace (or name).
    """

    def __init__(self, namespace_pattern: str, name_pattern: str):
        try:
            self.namespace_re = re.compile(namespace_pattern)
            self.name_re = re.compile(name_pattern)
        except re.error as e:
            raise ConfigurationError(f"Invalid pvc selection pattern: {e}") from e

    def selects(self, claim: client.V1PersistentVolumeClaim, storage_class_name: str) -> bool:
        metadata = claim.metadata
        if not self.namespace_re.search(metadata.namespace or ""):
            return False
        if not self.name_re.search(metadata.name or ""):
            return False
        return effective_storage_class(claim) == storage_class_name

    def index(self, accessor, storage_class_name: str) -> ClaimIndex:
        """
        Build a fresh claim index from a live listing.

        Args:
            accessor: ClusterAccessor for the cluster to list
            storage_class_name: Only claims of this storage class are kept

        Returns:
            Mapping of ``namespace/name`` to claim
        """
        claims: ClaimIndex = {}
        for claim in accessor.list_claims():
            if self.selects(claim, storage_class_name):
                claims[claim_key(claim)] = claim

        logger.debug(
            f"Indexed {len(claims)} pvc(s) with storage class {storage_class_name}"
        )
        return claims
