"""Shared pytest fixtures for kube-driver tests."""

import json
import os
import sys
from pathlib import Path

import pytest
from kubernetes.client.rest import ApiException

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


def _has_cluster():
    """Check if a real cluster is configured for integration tests."""
    if os.environ.get('KUBE_DRIVER_INTEGRATION') != '1':
        return False
    kubeconfig = os.environ.get('KUBECONFIG', str(Path.home() / '.kube' / 'config'))
    return Path(kubeconfig.split(os.pathsep)[0]).exists()


def pytest_collection_modifyitems(config, items):
    """Skip tests marked with requires_cluster when no cluster is available."""
    if _has_cluster():
        return
    skip_marker = pytest.mark.skip(reason="requires cluster (set KUBE_DRIVER_INTEGRATION=1 with a kubeconfig)")
    for item in items:
        if "requires_cluster" in item.keywords:
            item.add_marker(skip_marker)


class FakeResponse:
    """Stands in for the raw urllib3 response returned with _preload_content=False."""

    def __init__(self, payload: dict):
        self.data = json.dumps(payload).encode('utf-8')


class FakeCoreApi:
    """In-memory CoreV1Api subset for pods.

    Behaves like the API server where the lifecycle cares:
    - create of an existing name raises 409
    - read/delete of a missing name raises 404
    - delete with a zero grace period removes the pod and returns a Status
    - delete with a non-zero grace period marks the pod terminating and
      returns it; the pod disappears after removal_after_reads more reads

    Phase changes are scripted per pod with script_phases(); each read
    consumes one entry and bumps resourceVersion when the phase changes.
    """

    def __init__(self, default_grace_period: int = 30):
        self.pods: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.default_grace_period = default_grace_period
        self.removal_after_reads = 1
        self.create_error = None
        self.read_error = None
        self.delete_error = None
        self._phases: dict[str, list[str]] = {}
        self._terminating: dict[str, int] = {}
        self._rv = 1000
        self._uid = 0

    def _next_rv(self) -> str:
        self._rv += 1
        return str(self._rv)

    def script_phases(self, name: str, phases: list[str]) -> None:
        self._phases[name] = list(phases)

    def add_pod(self, name: str, namespace: str = 'default', container: str = None,
                image: str = 'clux/blog:0.1.0', phase: str = 'Running') -> dict:
        """Put a pod straight into the store (as if created by an earlier run)."""
        self._uid += 1
        doc = {
            'apiVersion': 'v1',
            'kind': 'Pod',
            'metadata': {
                'name': name,
                'namespace': namespace,
                'uid': f'uid-{self._uid:04d}',
                'resourceVersion': self._next_rv(),
            },
            'spec': {'containers': [{'name': container or name, 'image': image}]},
            'status': {'phase': phase},
        }
        self.pods[name] = doc
        return doc

    def create_namespaced_pod(self, namespace, body, **kwargs):
        self.calls.append(('create', body.metadata.name, kwargs))
        if self.create_error:
            raise self.create_error
        name = body.metadata.name
        if name in self.pods:
            raise ApiException(status=409, reason='Conflict')
        self._uid += 1
        doc = {
            'apiVersion': 'v1',
            'kind': 'Pod',
            'metadata': {
                'name': name,
                'namespace': namespace,
                'uid': f'uid-{self._uid:04d}',
                'resourceVersion': self._next_rv(),
            },
            'spec': {
                'containers': [{'name': c.name, 'image': c.image} for c in body.spec.containers],
            },
            'status': {'phase': 'Pending'},
        }
        self.pods[name] = doc
        return FakeResponse(doc)

    def read_namespaced_pod(self, name, namespace, **kwargs):
        self.calls.append(('read', name, kwargs))
        if self.read_error:
            raise self.read_error
        if name in self._terminating:
            if self._terminating[name] <= 0:
                del self._terminating[name]
                self.pods.pop(name, None)
            else:
                self._terminating[name] -= 1
        if name not in self.pods:
            raise ApiException(status=404, reason='Not Found')

        doc = self.pods[name]
        if self._phases.get(name):
            phase = self._phases[name].pop(0)
            if doc['status'].get('phase') != phase:
                doc['status']['phase'] = phase
                doc['metadata']['resourceVersion'] = self._next_rv()
        return FakeResponse(doc)

    def delete_namespaced_pod(self, name, namespace, grace_period_seconds=None, **kwargs):
        self.calls.append(('delete', name, dict(kwargs, grace_period_seconds=grace_period_seconds)))
        if self.delete_error:
            raise self.delete_error
        if name not in self.pods:
            raise ApiException(status=404, reason='Not Found')

        grace = self.default_grace_period if grace_period_seconds is None else grace_period_seconds
        if grace == 0:
            del self.pods[name]
            return FakeResponse({
                'kind': 'Status',
                'apiVersion': 'v1',
                'status': 'Success',
                'details': {'name': name, 'kind': 'pods'},
            })

        doc = self.pods[name]
        doc['metadata']['deletionTimestamp'] = '2026-10-19T12:00:00Z'
        doc['metadata']['deletionGracePeriodSeconds'] = grace
        doc['metadata']['resourceVersion'] = self._next_rv()
        self._terminating[name] = self.removal_after_reads
        return FakeResponse(doc)

    def read_namespace(self, name, **kwargs):
        self.calls.append(('read_namespace', name, kwargs))
        if name in ('default', 'demo'):
            return {'metadata': {'name': name}}
        raise ApiException(status=404, reason='Not Found')

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_core_api():
    """Fresh in-memory CoreV1Api."""
    return FakeCoreApi()


@pytest.fixture
def handle(fake_core_api):
    """ResourceHandle bound to the fake API in namespace 'default'."""
    from cluster.handle import ResourceHandle
    return ResourceHandle(fake_core_api, 'default')


@pytest.fixture
def blog_manifest():
    """The reference pod: blog / clux/blog:0.1.0."""
    from manifest import build_pod_manifest
    return build_pod_manifest(name='blog', image='clux/blog:0.1.0')


@pytest.fixture
def pod_document():
    """A decoded Pod reply as the API server sends it."""
    return {
        'apiVersion': 'v1',
        'kind': 'Pod',
        'metadata': {
            'name': 'blog',
            'namespace': 'default',
            'uid': '6f1c2a9e-0000-4000-8000-000000000001',
            'resourceVersion': '4711',
            'generation': 1,
        },
        'spec': {
            'containers': [
                {'name': 'blog', 'image': 'clux/blog:0.1.0'},
                {'name': 'sidecar', 'image': 'busybox'},
            ],
        },
        'status': {
            'phase': 'Running',
            'conditions': [
                {'type': 'Ready', 'status': 'True'},
                {'type': 'PodScheduled', 'status': 'True'},
            ],
        },
    }


@pytest.fixture
def config_dir(tmp_path):
    """Directory with a sample driver config file."""
    (tmp_path / 'driver.yaml').write_text("""
namespace: demo
context: kind-dev
ready_timeout: 30
ready_condition: ready
grace_period: 5
wait_for_deletion: true
""")
    return tmp_path
