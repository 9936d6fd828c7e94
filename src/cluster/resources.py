"""Observed resource state and delete outcomes.

ObservedResource is a read-only snapshot parsed from the API server's JSON
reply. It is what condition predicates see and what the orchestrator
verifies against the manifest.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class ObservedContainer:
    """Container as declared in an observed pod spec."""
    name: str
    image: str = ''


@dataclass(frozen=True)
class ObservedResource:
    """Snapshot of a resource as returned by the API server.

    Attributes:
        kind: Object kind (e.g., 'Pod')
        name: metadata.name
        namespace: metadata.namespace
        uid: metadata.uid, stable for the lifetime of one object
        resource_version: metadata.resourceVersion, changes on every write
        generation: metadata.generation (0 when the server omits it)
        phase: status.phase for pods, '' otherwise
        containers: spec.containers in declaration order
        conditions: status.conditions as {type: status}
        deletion_timestamp: metadata.deletionTimestamp once deletion started
        raw: Full decoded document (not part of equality)
    """
    kind: str
    name: str
    namespace: str = ''
    uid: str = ''
    resource_version: str = ''
    generation: int = 0
    phase: str = ''
    containers: tuple[ObservedContainer, ...] = ()
    conditions: dict = field(default_factory=dict, hash=False)
    deletion_timestamp: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def is_terminating(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def first_container_name(self) -> Optional[str]:
        if not self.containers:
            return None
        return self.containers[0].name

    @classmethod
    def from_dict(cls, data: dict) -> 'ObservedResource':
        """Build from a decoded API document (camelCase keys)."""
        metadata = data.get('metadata') or {}
        spec = data.get('spec') or {}
        status = data.get('status') or {}

        containers = tuple(
            ObservedContainer(name=c.get('name', ''), image=c.get('image', ''))
            for c in spec.get('containers') or []
        )
        conditions = {
            c.get('type'): c.get('status')
            for c in status.get('conditions') or []
            if c.get('type')
        }

        return cls(
            kind=data.get('kind', ''),
            name=metadata.get('name', ''),
            namespace=metadata.get('namespace', ''),
            uid=metadata.get('uid', ''),
            resource_version=metadata.get('resourceVersion', ''),
            generation=metadata.get('generation') or 0,
            phase=status.get('phase') or '',
            containers=containers,
            conditions=conditions,
            deletion_timestamp=metadata.get('deletionTimestamp'),
            raw=data,
        )


@dataclass(frozen=True)
class Deleted:
    """Deletion completed synchronously; the object is gone.

    final_state is the last state the handle knew about, or None when the
    object was never read in this session.
    """
    name: str
    final_state: Optional[ObservedResource] = None


@dataclass(frozen=True)
class DeletionInitiated:
    """Deletion accepted but a finalization grace period is running.

    state is the object as returned at the moment deletion was initiated.
    """
    state: ObservedResource

    @property
    def name(self) -> str:
        return self.state.name


DeleteOutcome = Union[Deleted, DeletionInitiated]


def is_status_document(data: Any) -> bool:
    """True if a decoded reply is a meta/v1 Status rather than an object."""
    return isinstance(data, dict) and data.get('kind') == 'Status'
