#!/usr/bin/env python3
"""
Reconciliation of PVCs between a source and a target cluster.

Claims present in the source index but missing from the target index are
recreated on the target as unbound copies. Binding is done by the target's
provisioner on its own schedule, so the engine polls: after every attempt
that created something it waits, re-lists the target, and tries again until
nothing new had to be created or the attempt budget is used up.
"""

import copy
import logging
import time
from dataclasses import dataclass
from typing import Callable, List

from kubernetes import client

from claim_indexer import (
    STORAGE_CLASS_ANNOTATION,
    ClaimIndex,
    ClaimIndexer,
    claim_key,
)
from migration_config import MigrationConfig
from migration_errors import ClaimCreationError, ClusterAccessError

logger = logging.getLogger(__name__)

BINDING_ANNOTATIONS = (
    "pv.kubernetes.io/bind-completed",
    "pv.kubernetes.io/bound-by-controller",
)


@dataclass
class ReconciliationResult:
    """Outcome of a reconcile run"""
    target_index: ClaimIndex
    created_count: int
    attempts: int
    exhausted: bool = False


def missing_keys(source_index: ClaimIndex, target_index: ClaimIndex) -> List[str]:
    """Keys of the source index with no claim in the target index, sorted."""
    return sorted(set(source_index) - set(target_index))


def synthesize_target_claim(
    source_claim: client.V1PersistentVolumeClaim,
    target_storage_class: str
) -> client.V1PersistentVolumeClaim:
    """
    Build the claim to create on the target cluster.

    The result is a deep copy of ``source_claim`` with every field the target
    cluster must assign itself cleared (uid, resource version, creation
    timestamp, binding annotations, bound volume). The storage class is
    switched to ``target_storage_class``: ``spec.storageClassName`` only when
    the source set it, the legacy annotation only when present.
    """
    claim = copy.deepcopy(source_claim)
    metadata = claim.metadata

    metadata.creation_timestamp = None
    metadata.uid = None
    metadata.resource_version = None

    if metadata.annotations:
        for annotation in BINDING_ANNOTATIONS:
            metadata.annotations.pop(annotation, None)

    if claim.spec is not None:
        claim.spec.volume_name = None

    if target_storage_class:
        if claim.spec is not None and claim.spec.storage_class_name:
            claim.spec.storage_class_name = target_storage_class
        if metadata.annotations and STORAGE_CLASS_ANNOTATION in metadata.annotations:
            metadata.annotations[STORAGE_CLASS_ANNOTATION] = target_storage_class

    return claim


class ReconciliationEngine:
    """Creates missing target claims and waits for the target to catch up."""

    def __init__(
        self,
        target_accessor,
        indexer: ClaimIndexer,
        config: MigrationConfig,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.target_accessor = target_accessor
        self.indexer = indexer
        self.target_storage_class = config.target_storage_class
        self.dry_run = config.dry_run
        self.max_attempts = config.max_attempts
        self.poll_interval_seconds = config.poll_interval_seconds
        self._sleep = sleep

    def create_missing(
        self,
        source_index: ClaimIndex,
        target_index: ClaimIndex
    ) -> List[str]:
        """
        Submit a creation request for every missing claim.

        Returns:
            Keys of the created claims; always empty in dry-run mode, where
            the requests are only validated by the API server

        Raises:
            ClaimCreationError: On the first claim that cannot be created
        """
        created: List[str] = []

        for key in missing_keys(source_index, target_index):
            source_claim = source_index[key]
            logger.info(
                f"creating pvc {key}",
                extra={'extra_fields': {'claim': key}}
            )

            new_claim = synthesize_target_claim(source_claim, self.target_storage_class)
            try:
                result = self.target_accessor.create_claim(
                    new_claim,
                    source_claim.metadata.namespace,
                    dry_run=self.dry_run
                )
            except ClusterAccessError as e:
                raise ClaimCreationError(key, created, str(e)) from e

            new_key = claim_key(result) if result is not None and result.metadata else key
            created.append(new_key)
            logger.info(
                f"created pvc {new_key}",
                extra={'extra_fields': {'claim': new_key}}
            )

        if self.dry_run:
            return []
        return created

    def reconcile(
        self,
        source_index: ClaimIndex,
        target_index: ClaimIndex
    ) -> ReconciliationResult:
        """
        Run the bounded create/wait loop.

        Args:
            source_index: Claims selected on the source cluster
            target_index: Claims currently present on the target cluster

        Returns:
            ReconciliationResult with the latest target index
        """
        created_total = 0
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                f"creating missing PVCs on target, attempt {attempt}...",
                extra={'extra_fields': {'attempt': attempt}}
            )
            created = self.create_missing(source_index, target_index)
            logger.info(f"{len(created)} pvcs created")

            if not created:
                return ReconciliationResult(
                    target_index=target_index,
                    created_count=created_total,
                    attempts=attempt
                )

            created_total += len(created)

            logger.info("Waiting pvs to be created...")
            self._sleep(self.poll_interval_seconds)
            target_index = self.indexer.index(
                self.target_accessor,
                self.target_storage_class
            )

        logger.warning(
            f"Target pvcs still missing after {attempt} attempts: "
            f"{', '.join(missing_keys(source_index, target_index)) or 'none'}"
        )
        return ReconciliationResult(
            target_index=target_index,
            created_count=created_total,
            attempts=attempt,
            exhausted=True
        )
