from __future__ import annotations

import collections
import copy
import itertools
import logging
import threading
from typing import Callable, Iterator, Protocol, Sequence

from .config import ScaleCommand, ScalePattern
from .history import ScaleHistory
from .manifests import Resource, ResourceKind

LOGGER = logging.getLogger("prombench_scaler.oscillator")


class Cluster(Protocol):
    def list_resources(self) -> list[Resource]: ...

    def apply(self, resources: Sequence[Resource]) -> None: ...


def set_replicas(resources: Sequence[Resource], replicas: int) -> list[Resource]:
    """Copy the deployments of ``resources`` with ``spec.replicas`` set.

    Objects of any other kind are left out, as are files without a
    deployment. The input is not modified.
    """
    scaled: list[Resource] = []
    for resource in resources:
        objects = []
        for obj in resource.objects:
            if obj.kind is not ResourceKind.DEPLOYMENT:
                continue
            clone = copy.deepcopy(obj)
            clone.body.setdefault("spec", {})["replicas"] = replicas
            objects.append(clone)
        if objects:
            scaled.append(Resource(file_name=resource.file_name, objects=objects))
    return scaled


def burst_sequence(command: ScaleCommand) -> Iterator[int]:
    return itertools.cycle((command.max, command.min))


def step_sequence(command: ScaleCommand) -> Iterator[int]:
    """Ramp from ``min`` by ``step_factor``, holding at ``max``.

    The factor is used as given; see ``ScaleCommand.with_derived_step_factor``.
    """
    replicas = command.min
    while True:
        yield replicas
        replicas = command.clamp(replicas + command.step_factor)


class ReplicaOscillator:
    """Scale every loaded deployment up and down on a fixed cadence."""

    def __init__(
        self,
        cluster: Cluster,
        command: ScaleCommand,
        history: ScaleHistory | None = None,
    ) -> None:
        if command.pattern is ScalePattern.STEP:
            command = command.with_derived_step_factor()
        self._cluster = cluster
        self._command = command
        self._history = history
        self.outcomes: collections.Counter[str] = collections.Counter()

    @property
    def command(self) -> ScaleCommand:
        return self._command

    def replica_sequence(self) -> Iterator[int]:
        if self._command.pattern is ScalePattern.BURST:
            return burst_sequence(self._command)
        return step_sequence(self._command)

    def run(self, stop_event: threading.Event | None = None) -> int:
        """Apply replica changes until ``stop_event`` is set.

        Returns the number of apply attempts made.
        """
        stop_event = stop_event or threading.Event()
        command = self._command
        LOGGER.info("Auto-scale pattern: %s", command.pattern.value)
        LOGGER.info(
            "Starting Prombench-Scaler: max=%d min=%d interval=%.3fs scalingFactor=%d",
            command.max,
            command.min,
            command.interval_s,
            command.step_factor,
        )

        targets_for = self._targets_lookup()
        attempts = 0
        for replicas in self.replica_sequence():
            if stop_event.is_set():
                break
            LOGGER.info("Scaling Deployment to %d", replicas)
            self._apply(replicas, targets_for(replicas))
            attempts += 1
            if stop_event.wait(command.interval_s):
                break

        LOGGER.info("Scaler stopped after %d apply attempt(s)", attempts)
        return attempts

    def _targets_lookup(self) -> Callable[[int], list[Resource]]:
        resources = self._cluster.list_resources()
        if self._command.pattern is ScalePattern.BURST:
            snapshots = {
                self._command.max: set_replicas(resources, self._command.max),
                self._command.min: set_replicas(resources, self._command.min),
            }
            return snapshots.__getitem__
        return lambda replicas: set_replicas(resources, replicas)

    def _apply(self, replicas: int, targets: list[Resource]) -> None:
        deployments = sum(len(resource.objects) for resource in targets)
        try:
            self._cluster.apply(targets)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Error scaling deployment to %d: %s", replicas, exc)
            self.outcomes["failed"] += 1
            if self._history is not None:
                self._history.record(replicas, deployments, error=exc)
            return
        self.outcomes["ok"] += 1
        if self._history is not None:
            self._history.record(replicas, deployments)


__all__ = [
    "ReplicaOscillator",
    "burst_sequence",
    "set_replicas",
    "step_sequence",
]
