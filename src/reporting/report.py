"""Lifecycle run reporting.

Besides stage results, a LifecycleReport carries the lifecycle outcome the
orchestrator records as stages complete (see the record_* methods).
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional


def _format_value(value) -> str:
    if isinstance(value, bool):
        return 'yes' if value else 'no'
    if isinstance(value, list):
        return ', '.join(value)
    if isinstance(value, float):
        return f"{value:.2f}s"
    return str(value)


@dataclass
class StageResult:
    """Result of a lifecycle stage."""
    name: str
    description: str
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class LifecycleReport:
    """Collects stage results for one run and writes report files.

    Files are only written when report_dir is set.
    """
    resource: str
    namespace: str = ''
    report_dir: Optional[Path] = None
    stages: list[StageResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False
    final_state: str = ''
    outcome: dict = field(default_factory=dict)

    _descriptions: dict = field(default_factory=dict, repr=False)
    _stage_start: Optional[datetime] = field(default=None, repr=False)

    def start(self):
        """Mark run start."""
        self.started_at = datetime.now()
        if self.report_dir:
            self.report_dir.mkdir(parents=True, exist_ok=True)

    def start_stage(self, name: str, description: str):
        """Mark stage start."""
        self._descriptions[name] = description
        self._stage_start = datetime.now()

    def pass_stage(self, name: str, message: str = '', duration: float = 0.0):
        """Record passed stage."""
        self._record_stage(name, 'passed', message, duration)

    def fail_stage(self, name: str, message: str = '', duration: float = 0.0):
        """Record failed stage."""
        self._record_stage(name, 'failed', message, duration)

    def skip_stage(self, name: str, description: str):
        """Record skipped stage."""
        self.stages.append(StageResult(
            name=name,
            description=description,
            status='skipped'
        ))

    def record_create(self, created: bool, uid: str = ''):
        """Record whether this run created the object (False: it already existed)."""
        self.outcome['created'] = created
        if uid:
            self.outcome['uid'] = uid

    def record_ready(self, condition: str, phase: str, elapsed: float):
        self.outcome['ready_condition'] = condition
        self.outcome['ready_phase'] = phase
        self.outcome['ready_elapsed'] = round(elapsed, 2)

    def record_verified(self, uid: str, containers: list[str]):
        self.outcome['uid'] = uid
        self.outcome['containers'] = list(containers)

    def record_delete(self, result: str, deletion_timestamp: Optional[str] = None,
                      elapsed: Optional[float] = None):
        """Record the delete outcome ('deleted' or 'deletion_initiated')."""
        self.outcome['delete_outcome'] = result
        if deletion_timestamp:
            self.outcome['deletion_timestamp'] = deletion_timestamp
        if elapsed is not None:
            self.outcome['delete_elapsed'] = round(elapsed, 2)

    def _record_stage(self, name: str, status: str, message: str, duration: float):
        now = datetime.now()
        if duration == 0.0 and self._stage_start:
            duration = (now - self._stage_start).total_seconds()

        self.stages.append(StageResult(
            name=name,
            description=self._descriptions.get(name, name),
            status=status,
            message=message,
            duration=duration,
            started_at=self._stage_start,
            finished_at=now
        ))
        self._stage_start = None

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    @property
    def error(self) -> Optional[str]:
        """Message of the first failed stage, if any."""
        for s in self.stages:
            if s.status == 'failed' and s.message:
                return s.message
        return None

    def finish(self, success: bool, final_state: str = ''):
        """Finalize report and write files."""
        self.finished_at = datetime.now()
        self.success = success
        self.final_state = final_state
        if self.report_dir:
            self._write_json()
            self._write_markdown()

    def _write_json(self):
        data = {
            'resource': self.resource,
            'namespace': self.namespace,
            'success': self.success,
            'final_state': self.final_state,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration': self.duration,
            'outcome': self.outcome,
            'stages': [
                {
                    'name': s.name,
                    'description': s.description,
                    'status': s.status,
                    'message': s.message,
                    'duration': s.duration
                }
                for s in self.stages
            ]
        }
        with open(self._report_filename('json'), 'w', encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def _write_markdown(self):
        status = 'PASSED' if self.success else 'FAILED'
        lines = [
            f"# {self.namespace}/{self.resource}" if self.namespace else f"# {self.resource}",
            "",
            f"**Status**: {status} ({self.final_state})",
            f"**Date**: {self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'}",
            f"**Duration**: {self.duration:.1f}s",
            "",
            "## Stages",
            "",
            "| Stage | Status | Duration | Message |",
            "|-------|--------|----------|---------|",
        ]
        for s in self.stages:
            lines.append(f"| {s.name} | {s.status} | {s.duration:.1f}s | {s.message} |")

        if self.outcome:
            lines.extend([
                "",
                "## Outcome",
                "",
                "| Field | Value |",
                "|-------|-------|",
            ])
            for key, value in self.outcome.items():
                lines.append(f"| {key} | {_format_value(value)} |")

        lines.extend(["", "---", f"Generated: {datetime.now().isoformat()}"])

        with open(self._report_filename('md'), 'w', encoding="utf-8") as f:
            f.write('\n'.join(lines))

    def _report_filename(self, ext: str) -> Path:
        """Generate report filename.

        Includes the resource name so parallel runs against distinct
        resources do not collide.
        """
        assert self.report_dir is not None
        timestamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unknown'
        status = 'passed' if self.success else 'failed'
        return self.report_dir / f"{timestamp}.{self.resource}.{status}.{ext}"

    def to_dict(self) -> dict:
        """Return report as dictionary for JSON output."""
        result = {
            'resource': self.resource,
            'namespace': self.namespace,
            'success': self.success,
            'final_state': self.final_state,
            'duration_seconds': round(self.duration, 1),
            'outcome': dict(self.outcome),
            'stages': [
                {
                    'name': s.name,
                    'status': s.status,
                    'duration': round(s.duration, 1),
                }
                for s in self.stages
            ]
        }
        if not self.success and self.error:
            result['error'] = self.error
        return result
