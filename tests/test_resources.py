#!/usr/bin/env python3
"""Tests for cluster/resources.py and cluster/errors.py.

Tests verify:
1. ObservedResource parsing from API documents
2. Delete outcome types
3. Translation of client exceptions into the ApiError taxonomy
"""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError, ReadTimeoutError

from cluster.errors import ApiError, ConflictError, NotFoundError, translate
from cluster.resources import (
    Deleted,
    DeletionInitiated,
    ObservedContainer,
    ObservedResource,
    is_status_document,
)


class TestObservedResource:
    """Test ObservedResource.from_dict."""

    def test_from_pod_document(self, pod_document):
        """All identity and status fields should be parsed."""
        observed = ObservedResource.from_dict(pod_document)
        assert observed.kind == 'Pod'
        assert observed.name == 'blog'
        assert observed.namespace == 'default'
        assert observed.uid == '6f1c2a9e-0000-4000-8000-000000000001'
        assert observed.resource_version == '4711'
        assert observed.generation == 1
        assert observed.phase == 'Running'
        assert observed.containers == (
            ObservedContainer('blog', 'clux/blog:0.1.0'),
            ObservedContainer('sidecar', 'busybox'),
        )
        assert observed.conditions == {'Ready': 'True', 'PodScheduled': 'True'}
        assert observed.first_container_name == 'blog'
        assert not observed.is_terminating

    def test_sparse_document(self):
        """Missing sections should fall back to empty values."""
        observed = ObservedResource.from_dict({'kind': 'Pod', 'metadata': {'name': 'x'}})
        assert observed.phase == ''
        assert observed.containers == ()
        assert observed.first_container_name is None
        assert observed.generation == 0

    def test_terminating(self, pod_document):
        """deletionTimestamp marks the object as terminating."""
        pod_document['metadata']['deletionTimestamp'] = '2026-10-19T12:00:00Z'
        observed = ObservedResource.from_dict(pod_document)
        assert observed.is_terminating
        assert observed.deletion_timestamp == '2026-10-19T12:00:00Z'

    def test_raw_not_part_of_equality(self, pod_document):
        """Two snapshots with the same fields are equal regardless of raw."""
        a = ObservedResource.from_dict(pod_document)
        pod_document['status']['hostIP'] = '10.0.0.1'
        b = ObservedResource.from_dict(pod_document)
        assert a == b
        assert b.raw['status']['hostIP'] == '10.0.0.1'


class TestDeleteOutcome:
    """Test Deleted / DeletionInitiated."""

    def test_deletion_initiated_name(self, pod_document):
        state = ObservedResource.from_dict(pod_document)
        assert DeletionInitiated(state=state).name == 'blog'

    def test_deleted_without_final_state(self):
        outcome = Deleted(name='blog')
        assert outcome.final_state is None

    def test_is_status_document(self):
        """Only kind: Status replies are Status documents."""
        assert is_status_document({'kind': 'Status', 'status': 'Success'})
        assert not is_status_document({'kind': 'Pod'})
        assert not is_status_document(None)


class TestTranslate:
    """Test translate() for client exceptions."""

    def test_conflict(self):
        """409 should become ConflictError."""
        exc = ApiException(status=409, reason='Conflict')
        exc.body = json.dumps({'kind': 'Status', 'message': 'pods "blog" already exists'})
        err = translate(exc)
        assert isinstance(err, ConflictError)
        assert err.code == 409
        assert err.message == 'pods "blog" already exists'

    def test_not_found(self):
        """404 should become NotFoundError."""
        err = translate(ApiException(status=404, reason='Not Found'))
        assert isinstance(err, NotFoundError)
        assert err.code == 404

    def test_other_status(self):
        """Any other status should become a plain ApiError."""
        exc = ApiException(status=403, reason='Forbidden')
        exc.body = 'not json'
        err = translate(exc)
        assert type(err) is ApiError
        assert err.code == 403
        assert err.message == 'not json'
        assert str(err) == '403: not json'

    def test_transport_error(self):
        """urllib3 failures should become ApiError with no code."""
        err = translate(MaxRetryError(None, '/api/v1', reason='connection refused'))
        assert type(err) is ApiError
        assert err.code is None
        assert err.reason == 'MaxRetryError'
        assert str(err).startswith('transport: ')

    def test_read_timeout(self):
        """A client read timeout is a transport error."""
        err = translate(ReadTimeoutError(None, '/api/v1', 'Read timed out.'))
        assert err.code is None

    def test_api_error_passes_through(self):
        """Already-translated errors should be returned unchanged."""
        original = NotFoundError()
        assert translate(original) is original

    def test_unrelated_exception_rejected(self):
        """Non-client exceptions are programming errors."""
        with pytest.raises(TypeError):
            translate(ValueError('boom'))
