"""Shared fixtures for the scaler tests."""

import sys
import threading
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from scaler.k8s import ClusterClientError  # noqa: E402
from scaler.manifests import ManifestObject, Resource, ResourceKind  # noqa: E402


DEPLOYMENT_AND_SERVICE = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: fake-webserver
  namespace: {{ .NAMESPACE }}
spec:
  replicas: 1
---
apiVersion: v1
kind: Service
metadata:
  name: fake-webserver
  namespace: {{ .NAMESPACE }}
"""


class InstantEvent(threading.Event):
    """Event whose ``wait`` never blocks and remembers the requested timeouts."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float | None] = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return self.is_set()


class FakeCluster:
    def __init__(self, resources, stop_event, stop_after, fail_on=()):
        self._resources = resources
        self._stop_event = stop_event
        self._stop_after = stop_after
        self._fail_on = set(fail_on)
        self.received: list[list[Resource]] = []
        self.list_calls = 0

    def list_resources(self):
        self.list_calls += 1
        return self._resources

    def apply(self, resources):
        self.received.append(resources)
        if len(self.received) >= self._stop_after:
            self._stop_event.set()
        if len(self.received) in self._fail_on:
            raise ClusterClientError("the server is currently unable to handle the request")

    @property
    def replicas(self) -> list[int]:
        counts = []
        for resources in self.received:
            values = {
                obj.body["spec"]["replicas"]
                for resource in resources
                for obj in resource.objects
            }
            assert len(values) == 1
            counts.append(values.pop())
        return counts


def deployment(name: str, replicas: int = 1) -> ManifestObject:
    return ManifestObject(
        kind=ResourceKind.DEPLOYMENT,
        body={
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": name, "namespace": "scale"},
            "spec": {"replicas": replicas},
        },
    )


def service(name: str) -> ManifestObject:
    return ManifestObject(
        kind=ResourceKind.SERVICE,
        body={"apiVersion": "v1", "kind": "Service", "metadata": {"name": name}},
    )


@pytest.fixture
def target_set() -> list[Resource]:
    return [
        Resource(
            file_name="fake-webserver.yaml",
            objects=[deployment("fake-webserver"), service("fake-webserver")],
        ),
        Resource(file_name="services.yaml", objects=[service("other")]),
        Resource(file_name="node-exporter.yaml", objects=[deployment("node-exporter", 3)]),
    ]


@pytest.fixture
def stop_event() -> InstantEvent:
    return InstantEvent()


@pytest.fixture
def manifest_file(tmp_path: Path) -> Path:
    path = tmp_path / "fake-webserver.yaml"
    path.write_text(DEPLOYMENT_AND_SERVICE, encoding="utf-8")
    return path
