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

"""Sampling, waiting and manifest helpers shared by the scenario catalog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from kubernetes import client

from cluster_tester.constants import (
    FIELD_SELECTOR_RUNNING,
    HPA_POLL_INTERVAL_SECONDS,
    HPA_WAIT_TIMEOUT_SECONDS,
    POST_DELETION_INTERVAL_SECONDS,
)
from cluster_tester.errors import ConfigurationError, ScenarioCheckError
from cluster_tester.manifests import read_manifest_field
from cluster_tester.monitor import ConvergenceMonitor, InvariantPredicate, MonitorResult, Verdict, at_least
from cluster_tester.rollout import format_selector
from cluster_tester.scenario import ScenarioContext
from cluster_tester.topology import Placement, resolve_placements, zone_distribution


# ============================================================================
# Manifest fields
# ============================================================================

def manifest_int(ctx: ScenarioContext, name: str, *keys: str) -> int:
    """Read an integer field from the first document of manifest ``name``.

    Raises:
        ConfigurationError: If the field is missing or not an integer.
    """
    value = read_manifest_field(ctx.load(name), *keys)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigurationError(f"{name}: expected integer at {'.'.join(keys)}, got {value!r}")
    return value


def manifest_selector(ctx: ScenarioContext, name: str) -> str:
    """Label selector built from the workload's ``spec.selector.matchLabels``."""
    labels = read_manifest_field(ctx.load(name), "spec", "selector", "matchLabels")
    if not isinstance(labels, dict) or not labels:
        raise ConfigurationError(f"{name}: workload has no spec.selector.matchLabels")
    return format_selector(labels)


def manifest_name(ctx: ScenarioContext, name: str) -> str:
    value = read_manifest_field(ctx.load(name), "metadata", "name")
    if not isinstance(value, str):
        raise ConfigurationError(f"{name}: missing metadata.name")
    return value


# ============================================================================
# Pod sampling
# ============================================================================

def active_pods(ctx: ScenarioContext, selector: str, running_only: bool = True) -> list[client.V1Pod]:
    """Pods matching ``selector`` that are not being deleted."""
    pods = ctx.provider.list_pods(
        ctx.namespace,
        label_selector=selector,
        field_selector=FIELD_SELECTOR_RUNNING if running_only else None,
    )
    return [pod for pod in pods if pod.metadata.deletion_timestamp is None]


def running_count(ctx: ScenarioContext, selector: str) -> int:
    return len(active_pods(ctx, selector))


@dataclass(frozen=True)
class PlacementSample:
    """Running pod count plus where each running pod landed."""

    running: int
    placements: tuple[Placement, ...]

    def __str__(self) -> str:
        return f"running={self.running} zones: {zone_distribution(self.placements)}"


def sample_placements(ctx: ScenarioContext, selector: str) -> PlacementSample:
    pods = active_pods(ctx, selector)
    return PlacementSample(len(pods), tuple(resolve_placements(ctx.provider, pods)))


def when_placed(predicate: InvariantPredicate) -> InvariantPredicate:
    """Apply a placement predicate only once at least one pod is placed."""

    def check(sample: PlacementSample) -> Verdict:
        if not any(zone for _, zone in sample.placements):
            return Verdict.passed()
        return predicate(sample.placements)

    return check


def audit_placements(ctx: ScenarioContext, selector: str, what: str) -> list[Placement]:
    """Resolve zones for every pod matching ``selector``; each must be scheduled on a zoned node.

    Raises:
        ScenarioCheckError: If no pod matches or a pod has no zone.
    """
    pods = active_pods(ctx, selector, running_only=False)
    if not pods:
        raise ScenarioCheckError(f"No {what} pods found")
    placements = resolve_placements(ctx.provider, pods)
    unzoned = [entity for entity, zone in placements if not zone]
    if unzoned:
        raise ScenarioCheckError(f"{what} pods without a zone (unscheduled or unlabeled node): {', '.join(unzoned)}")
    for entity, zone in placements:
        ctx.log.info("%s Pod: %-40s Zone: %s", what, entity, zone)
    return placements


# ============================================================================
# Waits
# ============================================================================

def wait_for_running(
    ctx: ScenarioContext,
    selector: str,
    target: int,
    *,
    invariant: InvariantPredicate | None = None,
    name: str = "Waiting for HPA",
    timeout: float = HPA_WAIT_TIMEOUT_SECONDS,
) -> MonitorResult:
    """Poll until ``target`` pods run, judging each sample against ``invariant``.

    Raises:
        MonitorFailure: If the invariant breaks, the wait times out, or pods cannot be listed.
    """
    ctx.log.info("=== %s: target %d running pods ===", name, target)
    monitor = ConvergenceMonitor(
        lambda: sample_placements(ctx, selector),
        invariant=invariant,
        terminal=lambda sample: sample.running >= target,
        measure=lambda sample: sample.running,
        options=ctx.monitor_options(interval=HPA_POLL_INTERVAL_SECONDS, timeout=timeout),
        name=name,
        log=ctx.log,
        clock=ctx.clock,
        sleep=ctx.sleep,
    )
    return monitor.run().raise_for_outcome()


def hold_running_floor(ctx: ScenarioContext, selector: str, floor: int, checks: int) -> MonitorResult:
    """Require at least ``floor`` running pods on each of ``checks`` consecutive samples."""
    monitor = ConvergenceMonitor(
        lambda: running_count(ctx, selector),
        invariant=at_least(floor, int, "running pod count"),
        min_samples=checks,
        measure=int,
        options=ctx.monitor_options(
            interval=POST_DELETION_INTERVAL_SECONDS,
            timeout=checks * POST_DELETION_INTERVAL_SECONDS + ctx.options.timeout,
        ),
        describe=lambda count: f"running pods={count}",
        name="post-deletion",
        log=ctx.log,
        clock=ctx.clock,
        sleep=ctx.sleep,
    )
    return monitor.run().raise_for_outcome()


# ============================================================================
# Workload mutation
# ============================================================================

def set_cpu_request(workload: Any, cpu: str) -> None:
    """Set the first container's CPU request on a Deployment or StatefulSet in place."""
    containers = workload.spec.template.spec.containers
    if not containers:
        raise ConfigurationError(f"{workload.metadata.name}: pod template has no containers")
    container = containers[0]
    if container.resources is None:
        container.resources = client.V1ResourceRequirements()
    requests = dict(container.resources.requests or {})
    requests["cpu"] = cpu
    container.resources.requests = requests
