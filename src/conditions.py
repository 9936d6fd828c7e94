"""Condition predicates over observed resource state.

A condition takes the latest observation (None when the object does not
exist) and returns a bool. Conditions must be pure: the waiter evaluates
them once per observation and may see the same object several times.
"""

from typing import Callable, Optional

from cluster.resources import ObservedResource

Condition = Callable[[Optional[ObservedResource]], bool]


def is_pod_running(obj: Optional[ObservedResource]) -> bool:
    """Pod exists and its phase is Running."""
    return obj is not None and obj.phase == 'Running'


def is_pod_ready(obj: Optional[ObservedResource]) -> bool:
    """Pod is Running and its Ready condition is True."""
    return is_pod_running(obj) and obj.conditions.get('Ready') == 'True'


def is_pod_succeeded(obj: Optional[ObservedResource]) -> bool:
    return obj is not None and obj.phase == 'Succeeded'


def is_pod_failed(obj: Optional[ObservedResource]) -> bool:
    return obj is not None and obj.phase == 'Failed'


def is_deleted(uid: str) -> Condition:
    """Object with this uid is gone.

    A different uid under the same name means the original was deleted and
    something recreated it, which also counts.
    """
    def _condition(obj: Optional[ObservedResource]) -> bool:
        return obj is None or obj.uid != uid
    _condition.__name__ = f'is_deleted({uid})'
    return _condition


def any_of(*conditions: Condition) -> Condition:
    def _condition(obj: Optional[ObservedResource]) -> bool:
        return any(c(obj) for c in conditions)
    _condition.__name__ = 'any_of(' + ', '.join(describe(c) for c in conditions) + ')'
    return _condition


def describe(condition: Condition) -> str:
    """Readable name for logs and reports."""
    return getattr(condition, '__name__', repr(condition))


# Readiness predicates selectable by name (config ready_condition, --ready-condition)
READY_CONDITIONS: dict[str, Condition] = {
    'running': is_pod_running,
    'ready': is_pod_ready,
    'succeeded': is_pod_succeeded,
    'completed': any_of(is_pod_succeeded, is_pod_failed),
}
