#!/usr/bin/env python3
"""CLI entry point for kube-driver.

Runs one pod lifecycle against the current cluster:

    connect -> create (409 tolerated) -> wait for Running -> verify -> delete

Examples:
    kube-driver                                  # pod 'blog', image clux/blog:0.1.0
    kube-driver --namespace demo --timeout 30
    kube-driver --ready-condition ready
    kube-driver --manifest-file pod.yaml --wait-deleted
    kube-driver --dry-run

Exit status is 0 when the run reaches Done, 1 otherwise.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from cluster import ApiError, SessionError, connect
from common import FanoutEventSink, LoggingEventSink, RecordingEventSink
from conditions import READY_CONDITIONS
from config import ConfigError, load_config
from lifecycle import LifecycleOrchestrator
from manifest import DEFAULT_IMAGE, DEFAULT_POD_NAME, ManifestError, build_pod_manifest, load_manifest
from readiness import format_preflight_results, run_preflight_checks
from reporting import LifecycleReport

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='kube-driver',
        description='Create, wait for, verify and delete one pod against a Kubernetes cluster'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Driver config file (YAML). Default: $KUBE_DRIVER_CONFIG if set'
    )
    parser.add_argument(
        '--kubeconfig',
        help='Path to kubeconfig (default: $KUBECONFIG or ~/.kube/config)'
    )
    parser.add_argument(
        '--context',
        help='kubeconfig context to use (default: current context)'
    )
    parser.add_argument(
        '--in-cluster',
        action='store_true',
        default=None,
        help='Use the pod service account instead of a kubeconfig'
    )
    parser.add_argument(
        '--namespace', '-n',
        help='Target namespace (default: from config, else "default")'
    )
    parser.add_argument(
        '--manifest-file', '-f',
        type=Path,
        help='Pod manifest (YAML/JSON). Overrides --name/--image'
    )
    parser.add_argument(
        '--name',
        default=DEFAULT_POD_NAME,
        help=f'Pod and container name when no manifest file is given (default: {DEFAULT_POD_NAME})'
    )
    parser.add_argument(
        '--image',
        default=DEFAULT_IMAGE,
        help=f'Container image when no manifest file is given (default: {DEFAULT_IMAGE})'
    )
    parser.add_argument(
        '--timeout', '-t',
        type=float,
        dest='ready_timeout',
        help='Seconds to wait for the ready condition (default: 15)'
    )
    parser.add_argument(
        '--ready-condition',
        choices=sorted(READY_CONDITIONS),
        help='Condition that marks the pod ready (default: running)'
    )
    parser.add_argument(
        '--poll-interval',
        type=float,
        help='Seconds between observations while waiting (default: 1)'
    )
    parser.add_argument(
        '--grace-period',
        type=int,
        help='Deletion grace period in seconds (default: server default)'
    )
    parser.add_argument(
        '--wait-deleted',
        action='store_true',
        default=None,
        dest='wait_for_deletion',
        help='After deletion starts, wait until the pod is gone'
    )
    parser.add_argument(
        '--delete-timeout',
        type=float,
        help='Seconds to wait for deletion with --wait-deleted (default: 60)'
    )
    parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        help='Write JSON and markdown run reports to this directory'
    )
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip API and namespace checks before the run'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show the stages and manifest without contacting the cluster'
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def _configure_logging(args) -> None:
    if args.json_output:
        # Remove existing handlers and redirect to stderr
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(stderr_handler)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        # The kubernetes client is chatty at DEBUG; keep it at WARNING unless asked
        logging.getLogger('kubernetes').setLevel(logging.WARNING)


def _load_manifest(args, namespace: str):
    if args.manifest_file:
        manifest = load_manifest(args.manifest_file)
    else:
        manifest = build_pod_manifest(name=args.name, image=args.image)
    if manifest.namespace and manifest.namespace != namespace:
        logger.info(f"Manifest namespace '{manifest.namespace}' overrides '{namespace}'")
    return manifest


def preview(orchestrator: LifecycleOrchestrator, namespace: str) -> None:
    """Show what would be executed without running."""
    manifest = orchestrator.manifest

    print("")
    print("═══════════════════════════════════════════════════════════════")
    print(f"  DRY-RUN: {namespace}/{manifest.name}")
    print("═══════════════════════════════════════════════════════════════")
    print("")
    print("Stages to execute:")
    for stage, _step, description in orchestrator.get_stages():
        print(f"  [ OK ] {stage.value}: {description}")
    print("")
    print("Manifest:")
    for line in json.dumps(manifest.to_dict(), indent=2).splitlines():
        print(f"  {line}")
    print("")
    print("═══════════════════════════════════════════════════════════════")
    print("  Mode: DRY-RUN (no changes made)")
    print("═══════════════════════════════════════════════════════════════")
    print("")


def _handle_results(args, orchestrator: LifecycleOrchestrator, recorder: RecordingEventSink,
                    success: bool) -> int:
    """Handle JSON output and return exit code."""
    if args.json_output:
        report_data = orchestrator.report.to_dict()
        report_data['events'] = [{'event': e.event, **e.fields} for e in recorder.events]
        print(json.dumps(report_data, indent=2, default=str))

    if success:
        logger.info(f"Lifecycle of {orchestrator.name} completed: {orchestrator.state.value}")
        return 0

    error = orchestrator.error
    logger.error(f"Lifecycle of {orchestrator.name} failed: {error}")
    if not args.json_output:
        print(f"Error: {error}", file=sys.stderr)
    return 1


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    _configure_logging(args)

    try:
        config = load_config(args.config)
        config.apply_overrides(
            kubeconfig=args.kubeconfig,
            context=args.context,
            in_cluster=args.in_cluster,
            namespace=args.namespace,
            ready_timeout=args.ready_timeout,
            ready_condition=args.ready_condition,
            poll_interval=args.poll_interval,
            grace_period=args.grace_period,
            wait_for_deletion=args.wait_for_deletion,
            delete_timeout=args.delete_timeout,
            report_dir=args.report_dir,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        manifest = _load_manifest(args, config.namespace)
    except ManifestError as e:
        print(f"Error loading manifest: {e}", file=sys.stderr)
        return 1

    namespace = manifest.namespace or config.namespace
    recorder = RecordingEventSink()
    report = LifecycleReport(resource=manifest.name, namespace=namespace, report_dir=config.report_dir)

    def make_orchestrator(handle):
        return LifecycleOrchestrator(
            handle,
            manifest,
            ready_condition=READY_CONDITIONS[config.ready_condition],
            ready_timeout=config.ready_timeout,
            poll_interval=config.poll_interval,
            grace_period=config.grace_period,
            wait_for_deletion=config.wait_for_deletion,
            delete_timeout=config.delete_timeout,
            events=FanoutEventSink(LoggingEventSink(), recorder),
            report=report,
        )

    if args.dry_run:
        preview(make_orchestrator(None), namespace)
        return 0

    try:
        session = connect(
            kubeconfig=config.kubeconfig,
            context=config.context,
            in_cluster=config.in_cluster,
            request_timeout=config.request_timeout,
        )
    except SessionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with session:
        if args.skip_preflight:
            try:
                logger.info(f"API version: {session.apiserver_version()}")
            except ApiError as e:
                print(f"Error: cannot reach API server: {e}", file=sys.stderr)
                return 1
        else:
            passed, results = run_preflight_checks(session, namespace)
            for _name, _ok, message in results:
                logger.info(message)
            if not passed:
                print(format_preflight_results(results), file=sys.stderr)
                print("\nUse --skip-preflight to bypass these checks", file=sys.stderr)
                return 1

        orchestrator = make_orchestrator(session.handle(namespace))
        success = asyncio.run(orchestrator.run())

    return _handle_results(args, orchestrator, recorder, success)


if __name__ == '__main__':
    sys.exit(main())
