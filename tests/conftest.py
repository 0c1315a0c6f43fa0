# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Shared fakes: a deterministic clock and an in-memory cluster provider."""

from __future__ import annotations

from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest

from cluster_tester.errors import ConflictError, NotFoundError


class FakeClock:
    """Monotonic clock that only advances when ``sleep`` is called."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_pod(
    name: str,
    node: str | None = None,
    phase: str = "Running",
    ready: bool = True,
    terminating: bool = False,
) -> SimpleNamespace:
    conditions = [SimpleNamespace(type="Ready", status="True" if ready else "False")]
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, deletion_timestamp="2026-01-01T00:00:00Z" if terminating else None),
        spec=SimpleNamespace(node_name=node),
        status=SimpleNamespace(phase=phase, conditions=conditions),
    )


def make_node(name: str, zone: str | None = None, ready: bool = True) -> SimpleNamespace:
    labels = {"topology.kubernetes.io/zone": zone} if zone else {}
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, labels=labels),
        status=SimpleNamespace(conditions=[SimpleNamespace(type="Ready", status="True" if ready else "False")]),
    )


class FakeCluster:
    """In-memory stand-in for ClusterProvider.

    ``pods`` may be a list, or a callable returning a list on each listing so
    tests can script how the cluster moves between samples. ``pods_by_selector``
    overrides it per label selector. Workloads may be callables as well.
    """

    def __init__(self) -> None:
        self.created: list[tuple[str, str, dict]] = []
        self.existing: set[tuple[str, str]] = set()
        self.namespaces: set[str] = set()
        self.nodes: dict[str, Any] = {}
        self.pods: list[Any] | Callable[[], list[Any]] = []
        self.pods_by_selector: dict[str, list[Any] | Callable[[], list[Any]]] = {}
        self.pod_queries: list[dict[str, Any]] = []
        self.deleted_pods: list[str] = []
        self.node_lookups: list[str] = []
        self.released = 0
        self.cleared: list[str] = []
        self.deployments: dict[str, Any] = {}
        self.stateful_sets: dict[str, Any] = {}
        self.replaced: list[tuple[str, Any]] = []
        self.hpas: list[Any] = []
        self.closed = False
        self.namespace_phase = "Active"

    def _create(self, kind: str, namespace: str, body: dict) -> None:
        key = (kind, body["metadata"]["name"])
        if key in self.existing:
            raise ConflictError(f"{kind} {body['metadata']['name']} already exists", status=409)
        self.existing.add(key)
        self.created.append((kind, namespace, body))

    def create_deployment(self, namespace: str, body: dict) -> None:
        self._create("Deployment", namespace, body)

    def create_stateful_set(self, namespace: str, body: dict) -> None:
        self._create("StatefulSet", namespace, body)

    def create_service(self, namespace: str, body: dict) -> None:
        self._create("Service", namespace, body)

    def create_pod_disruption_budget(self, namespace: str, body: dict) -> None:
        self._create("PodDisruptionBudget", namespace, body)

    def create_horizontal_pod_autoscaler(self, namespace: str, body: dict) -> None:
        self._create("HorizontalPodAutoscaler", namespace, body)

    def get_deployment(self, namespace: str, name: str) -> Any:
        try:
            workload = self.deployments[name]
        except KeyError:
            raise NotFoundError(f"deployment {name} not found", status=404) from None
        return workload() if callable(workload) else workload

    def list_deployments(self, namespace: str) -> list[Any]:
        return [w() if callable(w) else w for w in self.deployments.values()]

    def replace_deployment(self, namespace: str, name: str, body: Any) -> None:
        self.replaced.append((name, body))

    def get_stateful_set(self, namespace: str, name: str) -> Any:
        try:
            workload = self.stateful_sets[name]
        except KeyError:
            raise NotFoundError(f"statefulset {name} not found", status=404) from None
        return workload() if callable(workload) else workload

    def replace_stateful_set(self, namespace: str, name: str, body: Any) -> None:
        self.replaced.append((name, body))

    def list_horizontal_pod_autoscalers(self, namespace: str) -> list[Any]:
        return list(self.hpas)

    def list_pods(self, namespace: str, label_selector: str | None = None, field_selector: str | None = None) -> list:
        self.pod_queries.append({"label_selector": label_selector, "field_selector": field_selector})
        pods = self.pods_by_selector.get(label_selector, self.pods)
        return pods() if callable(pods) else list(pods)

    def delete_pod(self, namespace: str, name: str) -> None:
        self.deleted_pods.append(name)

    def list_nodes(self) -> list[Any]:
        return list(self.nodes.values())

    def get_node(self, name: str) -> Any:
        self.node_lookups.append(name)
        try:
            return self.nodes[name]
        except KeyError:
            raise NotFoundError(f"node {name} not found", status=404) from None

    def get_namespace(self, name: str) -> Any:
        if name not in self.namespaces:
            raise NotFoundError(f"namespace {name} not found", status=404)
        return SimpleNamespace(metadata=SimpleNamespace(name=name), status=SimpleNamespace(phase=self.namespace_phase))

    def ensure_namespace(self, name: str, log: Any = None) -> bool:
        created = name not in self.namespaces
        self.namespaces.add(name)
        return created

    def clear_namespace(self, name: str, log: Any = None) -> bool:
        self.cleared.append(name)
        self.namespaces.discard(name)
        return True

    def release_idle_connections(self) -> None:
        self.released += 1

    def __enter__(self) -> FakeCluster:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.closed = True


class DictManifestSource:
    """Manifest source backed by a dict of name -> text."""

    def __init__(self, blobs: dict[str, str]) -> None:
        self.blobs = blobs

    def load(self, name: str) -> bytes:
        return self.blobs[name].encode()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()
