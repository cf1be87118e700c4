"""
Pytest configuration and fixtures for pvc-sync tests.

Claims are real ``kubernetes.client`` models; the cluster API and the
mount/rsync commands are replaced by in-memory fakes.
"""

import copy
from typing import Dict, List, Optional, Sequence

import pytest
from kubernetes import client

from migration_config import MigrationConfig
from migration_errors import ClusterAccessError


def build_claim(
    namespace: str,
    name: str,
    storage_class: Optional[str] = "efs",
    volume_name: Optional[str] = None,
    annotations: Optional[Dict[str, str]] = None,
    uid: Optional[str] = None,
    resource_version: Optional[str] = None,
) -> client.V1PersistentVolumeClaim:
    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=client.V1ObjectMeta(
            namespace=namespace,
            name=name,
            annotations=annotations,
            uid=uid,
            resource_version=resource_version,
        ),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteMany"],
            resources=client.V1VolumeResourceRequirements(requests={"storage": "5Gi"}),
            storage_class_name=storage_class,
            volume_name=volume_name,
        ),
    )


class FakeClusterAccessor:
    """In-memory stand-in for ClusterAccessor."""

    def __init__(
        self,
        claims: Sequence[client.V1PersistentVolumeClaim] = (),
        parameters: Optional[Dict[str, Dict[str, str]]] = None,
        persist_created: bool = True,
        fail_on: Sequence[str] = (),
        context: str = "fake",
    ):
        self.context = context
        self.claims: List[client.V1PersistentVolumeClaim] = list(claims)
        self.parameters = parameters or {}
        self.persist_created = persist_created
        self.fail_on = set(fail_on)
        self.created: List[tuple] = []
        self.list_calls = 0

    def list_claims(self):
        self.list_calls += 1
        return [copy.deepcopy(claim) for claim in self.claims]

    def create_claim(self, claim, namespace, dry_run=False):
        key = f"{namespace}/{claim.metadata.name}"
        if key in self.fail_on:
            raise ClusterAccessError(f"Couldn't create pvc {key}: 422 Unprocessable Entity")
        self.created.append((claim, namespace, dry_run))
        if self.persist_created and not dry_run:
            self.claims.append(copy.deepcopy(claim))
        return claim

    def get_storage_class_parameters(self, name):
        if name not in self.parameters:
            raise ClusterAccessError(f"Couldn't get storage class named {name}")
        return dict(self.parameters[name])


class RecordingRunner:
    """CommandRunner that records argv lists instead of executing them."""

    def __init__(self, returncodes: Optional[Dict[str, int]] = None):
        self.calls: List[List[str]] = []
        self.returncodes = returncodes or {}

    def run(self, argv):
        self.calls.append(list(argv))
        return self.returncodes.get(argv[0], 0)

    def commands(self, program: str) -> List[List[str]]:
        return [call for call in self.calls if call[0] == program]


@pytest.fixture
def make_claim():
    """Factory for V1PersistentVolumeClaim objects."""
    return build_claim


@pytest.fixture
def config(tmp_path) -> MigrationConfig:
    """Valid configuration with mounts below a temporary directory."""
    return MigrationConfig(
        source_context="source-ctx",
        target_context="target-ctx",
        source_efs_dns_name="fs-source.efs.eu-west-1.amazonaws.com",
        target_efs_dns_name="fs-target.efs.eu-west-1.amazonaws.com",
        namespace_pattern="ns",
        mount_root=str(tmp_path),
        poll_interval_seconds=0,
    )


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def sleeps() -> List[float]:
    """Records cool-down sleeps instead of sleeping."""
    return []


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test (no external services)"
    )
