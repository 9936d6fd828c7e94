"""Cluster API access: session, typed resource handles, error taxonomy."""

from cluster.errors import ApiError, ConflictError, NotFoundError
from cluster.handle import KINDS, ResourceHandle
from cluster.resources import (
    DeleteOutcome,
    Deleted,
    DeletionInitiated,
    ObservedContainer,
    ObservedResource,
)
from cluster.session import ClusterSession, ServerVersion, SessionError, connect

__all__ = [
    "ApiError",
    "ConflictError",
    "NotFoundError",
    "KINDS",
    "ResourceHandle",
    "DeleteOutcome",
    "Deleted",
    "DeletionInitiated",
    "ObservedContainer",
    "ObservedResource",
    "ClusterSession",
    "ServerVersion",
    "SessionError",
    "connect",
]
