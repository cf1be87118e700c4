#!/usr/bin/env python3
"""
Kubernetes API access for one cluster context.

Each accessor owns its own ``ApiClient`` so the source and target clusters
never share connection state.
"""

import logging
from typing import Dict, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from migration_errors import ClusterAccessError

logger = logging.getLogger(__name__)

_API_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


class ClusterAccessor:
    """Typed handle to the claim and storage-class APIs of one cluster"""

    def __init__(
        self,
        api_client: client.ApiClient,
        context: Optional[str] = None
    ):
        self.context = context
        self.api_client = api_client
        self.core_v1_api = client.CoreV1Api(api_client)
        self.storage_v1_api = client.StorageV1Api(api_client)

    @classmethod
    def for_context(cls, context: str, kubeconfig: str) -> "ClusterAccessor":
        """
        Build an accessor from a named kubeconfig context.

        Args:
            context: Context name inside the kubeconfig file
            kubeconfig: Path to the kubeconfig file

        Raises:
            ClusterAccessError: If the kubeconfig or context cannot be loaded
        """
        try:
            api_client = config.new_client_from_config(
                config_file=kubeconfig,
                context=context
            )
        except (config.ConfigException, OSError) as e:
            raise ClusterAccessError(
                f"Fail to build the k8s config for context {context}: {e}",
                context=context
            ) from e

        logger.info(f"{context} context loaded successfully")
        return cls(api_client, context=context)

    def list_claims(self) -> List[client.V1PersistentVolumeClaim]:
        """List PVCs across all namespaces."""
        try:
            result = self.core_v1_api.list_persistent_volume_claim_for_all_namespaces()
        except _API_ERRORS as e:
            raise ClusterAccessError(
                f"Couldn't list pvcs in context {self.context}: {_describe(e)}",
                context=self.context
            ) from e
        return list(result.items or [])

    def create_claim(
        self,
        claim: client.V1PersistentVolumeClaim,
        namespace: str,
        dry_run: bool = False
    ) -> client.V1PersistentVolumeClaim:
        """
        Create a PVC in ``namespace``.

        With ``dry_run`` the request is still sent to the API server so it is
        validated, but nothing is persisted.
        """
        kwargs = {}
        if dry_run:
            kwargs['dry_run'] = "All"

        try:
            return self.core_v1_api.create_namespaced_persistent_volume_claim(
                namespace,
                claim,
                **kwargs
            )
        except _API_ERRORS as e:
            raise ClusterAccessError(
                f"Couldn't create pvc {namespace}/{claim.metadata.name} "
                f"in context {self.context}: {_describe(e)}",
                context=self.context
            ) from e

    def get_storage_class_parameters(self, name: str) -> Dict[str, str]:
        """Return the ``parameters`` map of a StorageClass."""
        try:
            storage_class = self.storage_v1_api.read_storage_class(name)
        except _API_ERRORS as e:
            raise ClusterAccessError(
                f"Couldn't get storage class named {name} in context {self.context}: {_describe(e)}",
                context=self.context
            ) from e
        return dict(storage_class.parameters or {})


def _describe(error: Exception) -> str:
    if isinstance(error, ApiException):
        return f"{error.status} {error.reason}"
    return str(error)
