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

"""Topology spread scenarios: autoscaled workloads must stay balanced across zones."""

from __future__ import annotations

from cluster_tester.constants import DEFAULT_MAX_SKEW
from cluster_tester.errors import ScenarioCheckError
from cluster_tester.scenario import Scenario, ScenarioContext, Step
from cluster_tester.scenarios.common import (
    audit_placements,
    manifest_int,
    manifest_name,
    manifest_selector,
    wait_for_running,
    when_placed,
)
from cluster_tester.topology import skew_at_most, zone_distribution


def describe_workloads(ctx: ScenarioContext, kind: str, name: str) -> None:
    """Log the workload and its autoscalers; fail if either is missing."""
    ctx.log.info("=== Verifying cluster resources ===")
    if kind == "StatefulSet":
        stateful_set = ctx.provider.get_stateful_set(ctx.namespace, name)
        ctx.log.info("- %s (Replicas: %s)", stateful_set.metadata.name, stateful_set.spec.replicas)
    else:
        deployments = ctx.provider.list_deployments(ctx.namespace)
        if not deployments:
            raise ScenarioCheckError(f"no deployments found in {ctx.namespace}")
        ctx.log.info("Found %d deployments in namespace:", len(deployments))
        for deployment in deployments:
            ctx.log.info("- %s (Replicas: %s)", deployment.metadata.name, deployment.spec.replicas)

    hpas = ctx.provider.list_horizontal_pod_autoscalers(ctx.namespace)
    if not hpas:
        raise ScenarioCheckError(f"no horizontal pod autoscalers found in {ctx.namespace}")
    ctx.log.info("Found %d HPAs in namespace:", len(hpas))
    for hpa in hpas:
        ctx.log.info("- %s (Min: %s, Max: %s)", hpa.metadata.name, hpa.spec.min_replicas, hpa.spec.max_replicas)


def topology_scenario(tag: str, directory: str, workload_file: str, kind: str) -> Scenario:
    """Build a scenario that scales ``workload_file`` via its HPA and audits zone skew.

    Args:
        tag: Scenario tag.
        directory: Manifest directory holding the workload and ``hpa-trigger.yaml``.
        workload_file: Workload manifest within ``directory``.
        kind: ``Deployment`` or ``StatefulSet``.
    """
    workload = f"{directory}/{workload_file}"
    hpa = f"{directory}/hpa-trigger.yaml"

    def apply_manifests(ctx: ScenarioContext) -> None:
        ctx.state["max_replicas"] = manifest_int(ctx, hpa, "spec", "maxReplicas")
        ctx.state["selector"] = manifest_selector(ctx, workload)
        ctx.state["workload"] = manifest_name(ctx, workload)
        ctx.apply(workload)
        ctx.log.info("=== Applying HPA manifest (maxReplicas: %d) ===", ctx.state["max_replicas"])
        ctx.apply(hpa)
        ctx.stabilize()

    def verify_resources(ctx: ScenarioContext) -> None:
        describe_workloads(ctx, kind, ctx.state["workload"])

    def wait_for_scale_out(ctx: ScenarioContext) -> None:
        result = wait_for_running(
            ctx,
            ctx.state["selector"],
            ctx.state["max_replicas"],
            invariant=when_placed(skew_at_most(DEFAULT_MAX_SKEW)),
        )
        ctx.log.info("Waiting for HPA, Reached required pod count of %d", result.last_sample.running)

    def verify_constraints(ctx: ScenarioContext) -> None:
        ctx.log.info("=== Verifying pod scale count and distribution ===")
        placements = audit_placements(ctx, ctx.state["selector"], kind)
        distribution = zone_distribution(placements)
        ctx.log.info(
            "Zone Distribution Analysis: total=%d zones=%d max=%d min=%d skew=%d",
            distribution.total, len(distribution.counts), distribution.max_count,
            distribution.min_count, distribution.skew,
            extra={"fields": {"distribution": distribution.counts}},
        )
        if distribution.skew > DEFAULT_MAX_SKEW:
            raise ScenarioCheckError(
                f"Topology skew violation: Max zone skew {distribution.skew} "
                f"exceeds allowed maximum of {DEFAULT_MAX_SKEW}"
            )
        ctx.log.info("Zone topology validation successful - max skew of %d within threshold", distribution.skew)

    return Scenario(
        tag=tag,
        description=f"{kind} Topology Constraints",
        labels=("topology", kind.lower()),
        steps=(
            Step("should apply topology manifests", apply_manifests),
            Step("should verify topology resources exist", verify_resources),
            Step("should scale out without breaking zone skew", wait_for_scale_out),
            Step("should verify topology constraints", verify_constraints),
        ),
    )


DEPLOYMENT_TOPOLOGY = topology_scenario(
    "DeploymentTopologyTest", "topology_deployment", "topology-dep.yaml", "Deployment",
)
STATEFULSET_TOPOLOGY = topology_scenario(
    "StatefulSetTopologyTest", "topology_statefulset", "topology-statefulset.yaml", "StatefulSet",
)
