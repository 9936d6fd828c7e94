"""Run reporting."""

from reporting.report import LifecycleReport, StageResult

__all__ = ["LifecycleReport", "StageResult"]
