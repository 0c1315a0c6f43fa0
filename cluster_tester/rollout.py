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

"""Rollout progress tracking on top of the convergence monitor."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from kubernetes import client

from cluster_tester import logger
from cluster_tester.cluster import ClusterProvider
from cluster_tester.config import MonitorOptions
from cluster_tester.errors import ConfigurationError
from cluster_tester.monitor import ConvergenceMonitor, InvariantPredicate, MonitorResult, Verdict, all_of


# ============================================================================
# Tolerances
# ============================================================================

def resolve_tolerance(value: int | str | None, desired: int, round_up: bool) -> int:
    """Convert an absolute or percentage tolerance into a replica count.

    Percentages scale ``desired`` and round down, or up when ``round_up`` is set,
    matching how the platform resolves maxUnavailable and maxSurge.

    Args:
        value: Absolute count, ``"N%"`` string, or None (treated as 0).
        desired: Desired replica count the percentage applies to.
        round_up: Whether a fractional result rounds up.

    Returns:
        Absolute replica count.

    Raises:
        ConfigurationError: If the value is negative or not a count/percentage.
    """
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise ConfigurationError(f"tolerance must not be negative, got {value}")
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("%") and text[:-1].isdigit():
            scaled = desired * int(text[:-1])
            return -(-scaled // 100) if round_up else scaled // 100
        if text.isdigit():
            return int(text)
    raise ConfigurationError(f"invalid tolerance {value!r}: expected a count or a percentage")


def max_unavailable_count(value: int | str | None, desired: int) -> int:
    return resolve_tolerance(value, desired, round_up=False)


def max_surge_count(value: int | str | None, desired: int) -> int:
    return resolve_tolerance(value, desired, round_up=True)


def resolve_bounds(max_surge: int | str | None, max_unavailable: int | str | None, desired: int) -> tuple[int, int]:
    """Resolve (surge, unavailable) counts for a rolling update.

    When both resolve to zero the platform still allows one unavailable
    replica so the rollout can make progress.
    """
    surge = max_surge_count(max_surge, desired)
    unavailable = max_unavailable_count(max_unavailable, desired)
    if surge == 0 and unavailable == 0:
        unavailable = 1
    return surge, unavailable


# ============================================================================
# Snapshots
# ============================================================================

@dataclass(frozen=True)
class PodBreakdown:
    """Pod states observed for a workload in one sample."""

    ready: int = 0
    running_not_ready: int = 0
    pending: int = 0
    terminating: int = 0
    names: tuple[str, ...] = ()

    @property
    def running(self) -> int:
        return self.ready + self.running_not_ready

    def __str__(self) -> str:
        return (f"Ready: {self.ready} | RunningNotReady: {self.running_not_ready} | "
                f"Pending: {self.pending} | Terminating: {self.terminating}")


def _is_ready(pod: client.V1Pod) -> bool:
    conditions = (pod.status.conditions if pod.status else None) or []
    return any(cond.type == "Ready" and cond.status == "True" for cond in conditions)


def pod_breakdown(pods: Iterable[client.V1Pod]) -> PodBreakdown:
    """Classify pods as terminating, pending, ready or running-but-not-ready."""
    ready = running_not_ready = pending = terminating = 0
    names = []
    for pod in pods:
        names.append(pod.metadata.name)
        if pod.metadata.deletion_timestamp is not None:
            terminating += 1
            continue
        phase = pod.status.phase if pod.status else None
        if phase == "Pending":
            pending += 1
        elif phase == "Running":
            if _is_ready(pod):
                ready += 1
            else:
                running_not_ready += 1
    return PodBreakdown(ready, running_not_ready, pending, terminating, tuple(names))


@dataclass(frozen=True)
class RolloutSnapshot:
    """One observation of a workload rollout.

    Attributes:
        desired: Desired replica count from the workload spec.
        updated: Replicas running the latest template.
        total: All replicas, including surge replicas.
        available: Replicas available to serve.
        max_surge: Absolute surge tolerance.
        max_unavailable: Absolute unavailability tolerance.
        stale: Whether the status predates the latest spec generation.
        pods: Optional pod state breakdown for diagnostics.
    """

    desired: int
    updated: int
    total: int
    available: int
    max_surge: int = 0
    max_unavailable: int = 0
    stale: bool = False
    pods: PodBreakdown | None = field(default=None, compare=False)

    @property
    def floor(self) -> int:
        return self.desired - self.max_unavailable

    @property
    def ceiling(self) -> int:
        return self.desired + self.max_surge

    def __str__(self) -> str:
        text = (f"desired={self.desired} updated={self.updated} total={self.total} "
                f"available={self.available} (floor {self.floor}, ceiling {self.ceiling})")
        if self.stale:
            text += " [stale status]"
        if self.pods is not None:
            text += f" pods: {self.pods}"
        return text


def rollout_complete(snapshot: RolloutSnapshot) -> bool:
    """Terminal predicate: updated, total and available all equal desired on a fresh status."""
    return (
        not snapshot.stale
        and snapshot.updated == snapshot.desired
        and snapshot.total == snapshot.desired
        and snapshot.available == snapshot.desired
    )


def rollout_within_bounds(snapshot: RolloutSnapshot) -> Verdict:
    """Invariant: availability never below the floor and replicas never above the ceiling."""
    problems = []
    if snapshot.available < snapshot.floor:
        problems.append(
            f"available {snapshot.available} < {snapshot.desired} - maxUnavailable {snapshot.max_unavailable}"
        )
    if snapshot.total > snapshot.ceiling:
        problems.append(
            f"total {snapshot.total} > {snapshot.desired} + maxSurge {snapshot.max_surge}"
        )
    if problems:
        return Verdict.failed("; ".join(problems))
    return Verdict.passed()


# ============================================================================
# Cluster observation
# ============================================================================

def format_selector(match_labels: dict[str, str] | None) -> str:
    return ",".join(f"{key}={value}" for key, value in sorted((match_labels or {}).items()))


def _is_stale(metadata: client.V1ObjectMeta, observed_generation: int | None) -> bool:
    return observed_generation is not None and metadata.generation is not None \
        and observed_generation < metadata.generation


def observe_deployment(
    provider: ClusterProvider,
    namespace: str,
    name: str,
    label_selector: str | None = None,
) -> RolloutSnapshot:
    """Read a Deployment and its pods into a rollout snapshot."""
    deployment = provider.get_deployment(namespace, name)
    spec, status = deployment.spec, deployment.status
    desired = spec.replicas if spec.replicas is not None else 1

    strategy = spec.strategy
    if strategy is not None and strategy.type == "Recreate":
        surge, unavailable = 0, desired
    else:
        rolling = strategy.rolling_update if strategy is not None else None
        surge, unavailable = resolve_bounds(
            rolling.max_surge if rolling else None,
            rolling.max_unavailable if rolling else None,
            desired,
        )

    selector = label_selector or format_selector(spec.selector.match_labels if spec.selector else None)
    pods = provider.list_pods(namespace, label_selector=selector or None)
    return RolloutSnapshot(
        desired=desired,
        updated=status.updated_replicas or 0,
        total=status.replicas or 0,
        available=status.available_replicas or 0,
        max_surge=surge,
        max_unavailable=unavailable,
        stale=_is_stale(deployment.metadata, status.observed_generation),
        pods=pod_breakdown(pods),
    )


def observe_stateful_set(
    provider: ClusterProvider,
    namespace: str,
    name: str,
    label_selector: str | None = None,
) -> RolloutSnapshot:
    """Read a StatefulSet and its pods into a rollout snapshot (no surge)."""
    stateful_set = provider.get_stateful_set(namespace, name)
    spec, status = stateful_set.spec, stateful_set.status
    desired = spec.replicas if spec.replicas is not None else 1

    strategy = spec.update_strategy
    rolling = strategy.rolling_update if strategy is not None else None
    raw_unavailable = getattr(rolling, "max_unavailable", None) if rolling else None
    unavailable = max_unavailable_count(raw_unavailable, desired) if raw_unavailable is not None else 1

    available = status.available_replicas
    if available is None:
        available = status.ready_replicas or 0
    selector = label_selector or format_selector(spec.selector.match_labels if spec.selector else None)
    pods = provider.list_pods(namespace, label_selector=selector or None)
    return RolloutSnapshot(
        desired=desired,
        updated=status.updated_replicas or 0,
        total=status.replicas or 0,
        available=available,
        max_surge=0,
        max_unavailable=unavailable,
        stale=_is_stale(stateful_set.metadata, status.observed_generation),
        pods=pod_breakdown(pods),
    )


# ============================================================================
# Tracker
# ============================================================================

class RolloutTracker:
    """Convergence monitor specialised for rollouts.

    Succeeds once the rollout is complete; fails fast when availability drops
    below ``desired - maxUnavailable`` or replicas exceed ``desired + maxSurge``.
    The minimum of ``measure`` (available replicas by default) is reported at
    the end of every run, pass or fail.

    Args:
        read: Returns a fresh RolloutSnapshot.
        extra_invariant: Additional invariant ANDed with the bounds check.
        measure: Value whose minimum is tracked.
        options: Monitor timing options.
        name: Label for logs.
        log: Logger or scenario logger adapter.
        clock: Monotonic clock.
        sleep: Blocking sleep.
    """

    def __init__(
        self,
        read: Callable[[], RolloutSnapshot],
        *,
        extra_invariant: InvariantPredicate | None = None,
        measure: Callable[[RolloutSnapshot], int] | None = None,
        options: MonitorOptions | None = None,
        name: str = "rollout",
        log: Any = logger,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        invariant = rollout_within_bounds
        if extra_invariant is not None:
            invariant = all_of(rollout_within_bounds, extra_invariant)
        self.name = name
        self.log = log
        self.monitor = ConvergenceMonitor(
            read,
            invariant=invariant,
            terminal=rollout_complete,
            measure=measure or (lambda snapshot: snapshot.available),
            options=options,
            name=name,
            log=log,
            clock=clock,
            sleep=sleep,
        )

    def run(self) -> MonitorResult:
        result = self.monitor.run()
        self.log.info(
            "%s: minimum observed %s across %d checks (outcome: %s)",
            self.name, result.min_observed, result.attempts, result.outcome.value,
            extra={"fields": {"min_observed": result.min_observed, "outcome": result.outcome.value}},
        )
        return result
