"""Typed resource handle bound to one namespace and one kind.

The Kubernetes client is blocking, so each call runs in a worker thread via
asyncio.to_thread. Replies are requested raw (_preload_content=False) and
decoded here: that is the only way to tell a Status reply (object already
gone) from an object reply (deletion initiated) on delete.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from cluster.errors import ApiError, NotFoundError, translate
from cluster.resources import (
    DeleteOutcome,
    Deleted,
    DeletionInitiated,
    ObservedResource,
    is_status_document,
)

logger = logging.getLogger(__name__)

# CoreV1Api method suffix per supported kind. Manifests only build Pod bodies.
KINDS = {
    'pod': 'Pod',
}


def _decode(response: Any) -> dict:
    """Decode a raw urllib3 response (or an already-decoded dict)."""
    if isinstance(response, dict):
        return response
    data = getattr(response, 'data', response)
    if isinstance(data, bytes):
        data = data.decode('utf-8')
    if not data:
        return {}
    return json.loads(data)


def _is_stale(previous: Optional[ObservedResource], current: ObservedResource) -> bool:
    """True if current is older than previous for the same object.

    resourceVersion is opaque, but etcd-backed servers hand out integers; only
    compare numerically when both parse and belong to the same uid.
    """
    if previous is None or previous.uid != current.uid:
        return False
    try:
        return int(current.resource_version) < int(previous.resource_version)
    except (TypeError, ValueError):
        return False


class ResourceHandle:
    """Accessor for one resource kind in one namespace.

    Stateless apart from remembering the last state it read for each name,
    which is what a synchronous delete reports as the final state. Safe to
    share between runs that address distinct names.
    """

    def __init__(
        self,
        core_api,
        namespace: str,
        kind: str = 'pod',
        request_timeout: float = 10.0,
    ):
        """Initialize handle.

        Args:
            core_api: kubernetes.client.CoreV1Api (or a compatible object)
            namespace: Namespace all calls are bound to
            kind: One of KINDS (snake_case CoreV1Api suffix)
            request_timeout: Per-request client timeout in seconds
        """
        if kind not in KINDS:
            raise ValueError(f"Unsupported kind: {kind}. Available: {sorted(KINDS)}")
        self.core_api = core_api
        self.namespace = namespace
        self.kind = kind
        self.request_timeout = request_timeout
        self._last_seen: dict[str, ObservedResource] = {}

    def __repr__(self) -> str:
        return f"ResourceHandle(kind={KINDS[self.kind]}, namespace={self.namespace})"

    def _method(self, verb: str):
        return getattr(self.core_api, f'{verb}_namespaced_{self.kind}')

    def _call(self, verb: str, *args, **kwargs) -> dict:
        """Invoke a CoreV1Api method and decode the reply, translating errors."""
        method = self._method(verb)
        try:
            response = method(
                *args,
                _preload_content=False,
                _request_timeout=self.request_timeout,
                **kwargs,
            )
        except (ApiException, HTTPError) as e:
            raise translate(e) from e
        try:
            return _decode(response)
        except ValueError as e:
            raise ApiError(None, 'InvalidResponse', f"Undecodable {verb} reply: {e}") from e

    def _remember(self, observed: ObservedResource) -> ObservedResource:
        self._last_seen[observed.name] = observed
        return observed

    async def create(self, manifest) -> ObservedResource:
        """Submit a manifest.

        Raises:
            ConflictError: An object with that name already exists
            ApiError: Any other failure
        """
        logger.debug(f"Creating {KINDS[self.kind]} {manifest.name} in {self.namespace}")
        data = await asyncio.to_thread(self._call, 'create', self.namespace, manifest.to_body())
        return self._remember(ObservedResource.from_dict(data))

    async def get(self, name: str) -> ObservedResource:
        """Read the current state of a named object.

        Raises:
            NotFoundError: The object does not exist
            ApiError: Any other failure
        """
        data = await asyncio.to_thread(self._call, 'read', name, self.namespace)
        return self._remember(ObservedResource.from_dict(data))

    async def get_or_none(self, name: str) -> Optional[ObservedResource]:
        """Like get(), but an absent object is None rather than an error."""
        try:
            return await self.get(name)
        except NotFoundError:
            self._last_seen.pop(name, None)
            return None

    async def delete(self, name: str, grace_period_seconds: Optional[int] = None) -> DeleteOutcome:
        """Delete a named object.

        Returns:
            Deleted if the server removed it immediately, otherwise
            DeletionInitiated with the object as it was when deletion began

        Raises:
            NotFoundError: The object does not exist
            ApiError: Any other failure
        """
        kwargs = {}
        if grace_period_seconds is not None:
            kwargs['grace_period_seconds'] = grace_period_seconds

        logger.debug(f"Deleting {KINDS[self.kind]} {name} in {self.namespace} (grace={grace_period_seconds})")
        data = await asyncio.to_thread(self._call, 'delete', name, self.namespace, **kwargs)

        if is_status_document(data) or not data:
            return Deleted(name=name, final_state=self._last_seen.pop(name, None))

        observed = ObservedResource.from_dict(data)
        if observed.is_terminating:
            return DeletionInitiated(state=self._remember(observed))

        # An object reply without deletionTimestamp: nothing held it, it is gone.
        self._last_seen.pop(name, None)
        return Deleted(name=name, final_state=observed)

    async def observe(self, name: str, poll_interval: float = 1.0) -> AsyncIterator[Optional[ObservedResource]]:
        """Observation stream for one named object.

        Yields the object's state each time it changes; None while it does
        not exist. Duplicate and stale observations are suppressed. Runs
        until the consumer stops iterating or the task is cancelled.

        Raises:
            ApiError: Any read failure other than NotFound
        """
        previous: Optional[ObservedResource] = None
        first = True
        while True:
            current = await self.get_or_none(name)

            if current is None:
                if first or previous is not None:
                    yield None
                previous = None
            elif previous is None or (
                current.resource_version != previous.resource_version
                and not _is_stale(previous, current)
            ):
                yield current
                previous = current
            else:
                logger.debug(f"Skipping duplicate observation of {name} (rv={current.resource_version})")

            first = False
            await asyncio.sleep(poll_interval)
