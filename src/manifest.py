"""Pod manifest construction and validation.

A PodManifest is the immutable desired state submitted to the cluster. It is
validated when it is built, so a bad name or an empty container list fails
here instead of as a 422 from the API server.

Manifests can be built in code, from a plain Kubernetes document
(PodManifest.from_dict), or from a YAML file (load_manifest).
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from kubernetes import client

logger = logging.getLogger(__name__)

# Reference workload used when no manifest is given
DEFAULT_POD_NAME = 'blog'
DEFAULT_IMAGE = 'clux/blog:0.1.0'

RESTART_POLICIES = ('Always', 'OnFailure', 'Never')

# RFC 1123 label, as required for pod and container names
_DNS_LABEL = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$')
_DNS_LABEL_MAX = 63


class ManifestError(Exception):
    """Manifest is malformed or fails validation."""


def _validate_dns_label(value: str, what: str) -> None:
    if not value:
        raise ManifestError(f"{what} must not be empty")
    if len(value) > _DNS_LABEL_MAX:
        raise ManifestError(f"{what} '{value}' is longer than {_DNS_LABEL_MAX} characters")
    if not _DNS_LABEL.match(value):
        raise ManifestError(
            f"{what} '{value}' is not a valid DNS-1123 label "
            "(lowercase alphanumerics and '-', must start and end alphanumeric)"
        )


@dataclass(frozen=True)
class ContainerSpec:
    """A single container in the pod.

    Attributes:
        name: Container name (DNS-1123 label, unique within the pod)
        image: Image reference (e.g., clux/blog:0.1.0)
        command: Entrypoint override
        args: Arguments to the entrypoint
        ports: Container ports to declare
        env: Environment variables
    """
    name: str
    image: str
    command: tuple[str, ...] = ()
    args: tuple[str, ...] = ()
    ports: tuple[int, ...] = ()
    env: tuple[tuple[str, str], ...] = ()

    def __post_init__(self):
        _validate_dns_label(self.name, 'Container name')
        if not self.image or not self.image.strip():
            raise ManifestError(f"Container '{self.name}' has no image")
        for port in self.ports:
            if not isinstance(port, int) or not 1 <= port <= 65535:
                raise ManifestError(f"Container '{self.name}' has invalid port: {port!r}")

    def to_model(self) -> client.V1Container:
        container = client.V1Container(name=self.name, image=self.image)
        if self.command:
            container.command = list(self.command)
        if self.args:
            container.args = list(self.args)
        if self.ports:
            container.ports = [client.V1ContainerPort(container_port=p) for p in self.ports]
        if self.env:
            container.env = [client.V1EnvVar(name=k, value=v) for k, v in self.env]
        return container

    @classmethod
    def from_dict(cls, data: dict) -> 'ContainerSpec':
        """Create ContainerSpec from a Kubernetes container document."""
        if not isinstance(data, dict):
            raise ManifestError(f"Container entry must be a mapping, got {type(data).__name__}")
        ports = tuple(
            p.get('containerPort') if isinstance(p, dict) else p
            for p in data.get('ports') or []
        )
        env = tuple(
            (e.get('name', ''), str(e.get('value', '')))
            for e in data.get('env') or []
        )
        return cls(
            name=data.get('name', ''),
            image=data.get('image', ''),
            command=tuple(data.get('command') or ()),
            args=tuple(data.get('args') or ()),
            ports=ports,
            env=env,
        )


@dataclass(frozen=True)
class PodManifest:
    """Desired state of one Pod.

    Attributes:
        name: Pod name, stable for the whole lifecycle run
        containers: At least one container; the first is the one verified
        namespace: Target namespace (None = the handle's namespace)
        labels: metadata.labels
        restart_policy: spec.restartPolicy
    """
    name: str
    containers: tuple[ContainerSpec, ...]
    namespace: Optional[str] = None
    labels: tuple[tuple[str, str], ...] = field(default=())
    restart_policy: str = 'Always'

    kind = 'Pod'
    api_version = 'v1'

    def __post_init__(self):
        _validate_dns_label(self.name, 'Pod name')
        if self.namespace is not None:
            _validate_dns_label(self.namespace, 'Namespace')
        if not self.containers:
            raise ManifestError(f"Pod '{self.name}' must declare at least one container")

        seen: set[str] = set()
        for container in self.containers:
            if not isinstance(container, ContainerSpec):
                raise ManifestError(f"Pod '{self.name}' has a non-ContainerSpec entry: {container!r}")
            if container.name in seen:
                raise ManifestError(f"Pod '{self.name}' has duplicate container name '{container.name}'")
            seen.add(container.name)

        if self.restart_policy not in RESTART_POLICIES:
            raise ManifestError(
                f"Invalid restart_policy '{self.restart_policy}'. "
                f"Expected one of: {', '.join(RESTART_POLICIES)}"
            )

    @property
    def first_container_name(self) -> str:
        return self.containers[0].name

    def to_body(self) -> client.V1Pod:
        """Build the request body for the Kubernetes client."""
        metadata = client.V1ObjectMeta(name=self.name)
        if self.namespace:
            metadata.namespace = self.namespace
        if self.labels:
            metadata.labels = dict(self.labels)

        return client.V1Pod(
            api_version=self.api_version,
            kind=self.kind,
            metadata=metadata,
            spec=client.V1PodSpec(
                containers=[c.to_model() for c in self.containers],
                restart_policy=self.restart_policy,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain document form, used for dry-run output and reports."""
        metadata: dict[str, Any] = {'name': self.name}
        if self.namespace:
            metadata['namespace'] = self.namespace
        if self.labels:
            metadata['labels'] = dict(self.labels)

        containers = []
        for c in self.containers:
            entry: dict[str, Any] = {'name': c.name, 'image': c.image}
            if c.command:
                entry['command'] = list(c.command)
            if c.args:
                entry['args'] = list(c.args)
            if c.ports:
                entry['ports'] = [{'containerPort': p} for p in c.ports]
            if c.env:
                entry['env'] = [{'name': k, 'value': v} for k, v in c.env]
            containers.append(entry)

        return {
            'apiVersion': self.api_version,
            'kind': self.kind,
            'metadata': metadata,
            'spec': {
                'containers': containers,
                'restartPolicy': self.restart_policy,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PodManifest':
        """Create PodManifest from a Kubernetes Pod document.

        Raises:
            ManifestError: If the document is not a v1 Pod or fails validation
        """
        if not isinstance(data, dict):
            raise ManifestError(f"Manifest must be a mapping, got {type(data).__name__}")

        kind = data.get('kind', 'Pod')
        if kind != 'Pod':
            raise ManifestError(f"Unsupported kind '{kind}'. Only Pod manifests are supported")
        api_version = data.get('apiVersion', 'v1')
        if api_version != 'v1':
            raise ManifestError(f"Unsupported apiVersion '{api_version}' for Pod. Expected 'v1'")

        metadata = data.get('metadata') or {}
        spec = data.get('spec') or {}

        return cls(
            name=metadata.get('name', ''),
            namespace=metadata.get('namespace'),
            labels=tuple(sorted((metadata.get('labels') or {}).items())),
            containers=tuple(ContainerSpec.from_dict(c) for c in spec.get('containers') or []),
            restart_policy=spec.get('restartPolicy', 'Always'),
        )


def build_pod_manifest(
    name: str = DEFAULT_POD_NAME,
    image: str = DEFAULT_IMAGE,
    container_name: Optional[str] = None,
    namespace: Optional[str] = None,
) -> PodManifest:
    """Build a single-container pod manifest.

    The container is named after the pod unless container_name is given.
    """
    return PodManifest(
        name=name,
        namespace=namespace,
        containers=(ContainerSpec(name=container_name or name, image=image),),
    )


def load_manifest(path: Path) -> PodManifest:
    """Load a pod manifest from a YAML (or JSON) file.

    Raises:
        ManifestError: If the file is missing, unparseable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ManifestError(f"Manifest file not found: {path}")

    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ManifestError(f"Manifest file is empty: {path}")

    manifest = PodManifest.from_dict(data)
    logger.debug(f"Loaded manifest {manifest.name} from {path}")
    return manifest
