from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from .config import ScaleCommand, ScalePattern, ScalerError, build_command
from .history import ScaleHistory
from .k8s import ClusterClient
from .manifests import Resource, load_resources, parse_variables
from .oscillator import ReplicaOscillator, set_replicas

LOGGER = logging.getLogger("prombench_scaler")

EXIT_FAILURE = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="prombench-scaler", description="The Prombench-Scaler tool"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SCALER_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    scale = commands.add_parser(
        "scale",
        help="Scale a Kubernetes deployment object periodically up and down.",
        description=(
            "Scale a Kubernetes deployment object periodically up and down. "
            "ex: prombench-scaler scale -v NAMESPACE:scale -f fake-webserver.yaml 20 1 15m"
        ),
    )
    scale.add_argument(
        "-f",
        "--file",
        dest="files",
        action="append",
        required=True,
        help="yaml file or folder that describes the parameters for the deployment.",
    )
    scale.add_argument(
        "-v",
        "--vars",
        dest="variables",
        action="append",
        default=[],
        metavar="KEY:VALUE",
        help="Substitute the {{ .KEY }} token holders in the yaml files.",
    )
    scale.add_argument(
        "--kubeconfig",
        default=os.environ.get("KUBECONFIG"),
        help="Path to a kubeconfig file; in-cluster configuration is used when unset",
    )
    scale.add_argument("--context", help="kubeconfig context to use")
    scale.add_argument(
        "--history-path",
        default=os.environ.get("SCALER_HISTORY_PATH"),
        help="Write one CSV row per apply attempt to this file on shutdown",
    )
    scale.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the deployments that would be scaled without touching the cluster",
    )
    scale.add_argument("max", type=int, help="Number of Replicas to scale up.")
    scale.add_argument("min", type=int, help="Number of Replicas to scale down.")
    scale.add_argument(
        "interval", help="Time to wait before changing the number of replicas (e.g. 15m)."
    )
    scale.add_argument(
        "pattern",
        nargs="?",
        default="burst",
        help="Auto-scaling pattern. Available values: burst, step.",
    )
    scale.add_argument(
        "step_factor",
        nargs="?",
        type=int,
        default=0,
        help="Indicates the 'step height' during step-like autoscaling.",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def install_signal_handlers(stop_event: threading.Event) -> dict[int, object]:
    def handler(signum, frame) -> None:
        LOGGER.info("Received signal %d, stopping", signum)
        stop_event.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, handler)
    return previous


def restore_signal_handlers(previous: dict[int, object]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        command = build_command(
            args.pattern, args.max, args.min, args.interval, args.step_factor
        )
        variables = parse_variables(args.variables)
    except ScalerError as exc:
        print(f"Error parsing commandline arguments: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if args.dry_run:
        try:
            resources = load_resources(args.files, variables)
        except ScalerError as exc:
            print(f"Error parsing deployment files: {exc}", file=sys.stderr)
            return EXIT_FAILURE
        if command.pattern is ScalePattern.STEP:
            command = command.with_derived_step_factor()
        _print_plan(command, resources)
        return 0

    try:
        cluster = ClusterClient.from_config(args.kubeconfig, args.context)
    except ScalerError as exc:
        print(f"Error creating k8s client inside the k8s cluster: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        cluster.load_descriptors(args.files, variables)
    except ScalerError as exc:
        print(f"Error parsing deployment files: {exc}", file=sys.stderr)
        cluster.close()
        return EXIT_FAILURE

    history = ScaleHistory() if args.history_path else None
    oscillator = ReplicaOscillator(cluster, command, history=history)
    stop_event = threading.Event()
    previous_handlers = install_signal_handlers(stop_event)
    try:
        oscillator.run(stop_event)
    finally:
        restore_signal_handlers(previous_handlers)
        cluster.close()
        if history is not None:
            history.write_csv(Path(args.history_path))
        LOGGER.info("Apply summary: %s", dict(oscillator.outcomes) or "<empty>")
    return 0


def _print_plan(command: ScaleCommand, resources: list[Resource]) -> None:
    print(
        f"Pattern: {command.pattern.value} max={command.max} min={command.min} "
        f"interval={command.interval_s}s scalingFactor={command.step_factor}"
    )
    targets = set_replicas(resources, command.max)
    if not targets:
        print("  <no deployments found>")
    for resource in targets:
        for obj in resource.objects:
            print(f"  - {resource.file_name}: {obj.namespace}/{obj.name}")


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
