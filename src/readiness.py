"""Pre-flight readiness checks before a lifecycle run.

Validates cluster prerequisites before creating anything:
- API server reachable (and which version it runs)
- Target namespace exists
"""

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from cluster.errors import ApiError


def validate_api_reachable(session) -> tuple[bool, str]:
    """Check the API server answers /version.

    Args:
        session: ClusterSession

    Returns:
        (success, message) tuple
    """
    try:
        version = session.apiserver_version()
    except ApiError as e:
        if e.code == 401:
            return False, (
                "API server rejected credentials (401). "
                "Check the kubeconfig user or refresh the token."
            )
        if e.code is None:
            return False, f"Cannot connect to API server: {e.message}"
        return False, f"Unexpected API response: {e}"
    return True, f"API server reachable (version {version})"


def validate_namespace(core_api, namespace: str, request_timeout: float = 10.0) -> tuple[bool, str]:
    """Check the target namespace exists.

    A 403 is treated as success: many users may act inside a namespace
    without being allowed to read the Namespace object itself.

    Args:
        core_api: kubernetes.client.CoreV1Api
        namespace: Namespace name

    Returns:
        (success, message) tuple
    """
    try:
        core_api.read_namespace(namespace, _request_timeout=request_timeout)
    except ApiException as e:
        if e.status == 404:
            return False, (
                f"Namespace '{namespace}' not found. "
                f"Create it with: kubectl create namespace {namespace}"
            )
        if e.status == 403:
            return True, f"Namespace '{namespace}' not readable (403), assuming it exists"
        return False, f"Error checking namespace '{namespace}': {e.status} {e.reason}"
    except HTTPError as e:
        return False, f"Cannot connect to API server: {e}"
    return True, f"Namespace '{namespace}' exists"


def run_preflight_checks(session, namespace: str) -> tuple[bool, list[tuple[str, bool, str]]]:
    """Run all preflight checks in order, stopping at the first failure.

    Returns:
        (all_passed, [(check_name, success, message), ...])
    """
    results: list[tuple[str, bool, str]] = []

    success, message = validate_api_reachable(session)
    results.append(('api_reachable', success, message))
    if not success:
        return False, results

    success, message = validate_namespace(session.core_api, namespace, session.request_timeout)
    results.append(('namespace', success, message))
    return success, results


def format_preflight_results(results: list[tuple[str, bool, str]]) -> str:
    """Format results for terminal output."""
    lines = ["Preflight checks:"]
    for name, success, message in results:
        mark = "✓" if success else "✗"
        lines.append(f"  {mark} {name}: {message}")
    return '\n'.join(lines)
