#!/usr/bin/env python3
"""Tests for common.py - event sinks."""

import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import (
    EventSink,
    FanoutEventSink,
    LoggingEventSink,
    RecordingEventSink,
    format_fields,
)


class TestFormatFields:
    """Test key=value rendering."""

    def test_insertion_order(self):
        assert format_fields({'resource': 'blog', 'stage': 'creating'}) == 'resource=blog stage=creating'

    def test_none_skipped(self):
        assert format_fields({'resource': 'blog', 'uid': None}) == 'resource=blog'

    def test_spaces_and_empty_quoted(self):
        assert format_fields({'cause': 'timed out', 'phase': ''}) == "cause='timed out' phase=''"

    def test_non_strings(self):
        assert format_fields({'attempt': 3, 'ok': True}) == 'attempt=3 ok=True'


class TestLoggingEventSink:
    """Test forwarding to a stdlib logger."""

    def test_info_event(self, caplog):
        sink = LoggingEventSink()
        with caplog.at_level(logging.INFO, logger='kube_driver.events'):
            sink.emit('created', resource='blog', uid='u1')
        assert caplog.records[0].levelno == logging.INFO
        assert caplog.records[0].getMessage() == 'created resource=blog uid=u1'

    def test_failure_events_logged_as_error(self, caplog):
        sink = LoggingEventSink()
        with caplog.at_level(logging.INFO, logger='kube_driver.events'):
            sink.emit('stage_failed', stage='creating')
            sink.emit('run_failed')
        assert [r.levelno for r in caplog.records] == [logging.ERROR, logging.ERROR]
        assert caplog.records[1].getMessage() == 'run_failed'

    def test_custom_logger(self):
        log = MagicMock()
        LoggingEventSink(log).emit('ready', phase='Running')
        log.log.assert_called_once_with(logging.INFO, 'ready phase=Running')


class TestRecordingEventSink:
    """Test the in-memory sink."""

    def test_records_in_order(self):
        sink = RecordingEventSink()
        sink.emit('run_started', resource='blog')
        sink.emit('stage_started', stage='creating')
        sink.emit('stage_started', stage='waiting_ready')

        assert sink.names() == ['run_started', 'stage_started', 'stage_started']
        assert [e.fields['stage'] for e in sink.find('stage_started')] == ['creating', 'waiting_ready']
        assert sink.find('missing') == []

    def test_fields_copied(self):
        sink = RecordingEventSink()
        fields = {'resource': 'blog'}
        sink.emit('created', **fields)
        fields['resource'] = 'other'
        assert sink.events[0].fields == {'resource': 'blog'}


class TestFanoutEventSink:
    """Test sending to several sinks."""

    def test_every_sink_receives(self):
        a, b = RecordingEventSink(), RecordingEventSink()
        FanoutEventSink(a, b).emit('ready', phase='Running')
        assert a.names() == b.names() == ['ready']


def test_sinks_satisfy_protocol():
    """All sinks are EventSinks."""
    for sink in (LoggingEventSink(), RecordingEventSink(), FanoutEventSink()):
        assert isinstance(sink, EventSink)
