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

"""Disruption budget scenarios: running pods must stay above minAvailable."""

from __future__ import annotations

from cluster_tester.constants import (
    POST_DELETION_CHECKS,
    ROLLOUT_CPU_REQUEST,
    ROLLOUT_MAX_CHECKS,
    ROLLOUT_POLL_INTERVAL_SECONDS,
)
from cluster_tester.errors import ConfigurationError, ScenarioCheckError
from cluster_tester.manifests import read_manifest_field
from cluster_tester.monitor import at_least
from cluster_tester.rollout import RolloutTracker, observe_deployment, resolve_tolerance
from cluster_tester.scenario import Scenario, ScenarioContext, Step
from cluster_tester.scenarios.common import (
    active_pods,
    hold_running_floor,
    manifest_name,
    manifest_selector,
    set_cpu_request,
)


def budget_floor(ctx: ScenarioContext, pdb: str, workload: str) -> int:
    """Resolve the budget's minAvailable against the workload's desired replicas.

    Raises:
        ConfigurationError: If the budget sets no minAvailable.
    """
    value = read_manifest_field(ctx.load(pdb), "spec", "minAvailable")
    if value is None:
        raise ConfigurationError(f"{pdb}: spec.minAvailable is required")
    desired = read_manifest_field(ctx.load(workload), "spec", "replicas", default=1)
    return resolve_tolerance(value, desired, round_up=True)


def pdb_scenario(tag: str, directory: str, workload_file: str, kind: str) -> Scenario:
    """Build a disruption budget scenario for a Deployment or a StatefulSet.

    Deployments additionally roll out a new pod template while the budget
    floor is judged on every sample.
    """
    workload = f"{directory}/{workload_file}"
    pdb = f"{directory}/pdb.yaml"

    def apply_manifests(ctx: ScenarioContext) -> None:
        ctx.state["min_available"] = budget_floor(ctx, pdb, workload)
        ctx.state["selector"] = manifest_selector(ctx, workload)
        ctx.state["workload"] = manifest_name(ctx, workload)
        ctx.log.info("=== Minimum allowed pods from PDB: %d ===", ctx.state["min_available"])
        ctx.apply(workload)
        ctx.apply(pdb)
        ctx.stabilize()

    def rolling_update(ctx: ScenarioContext) -> None:
        name, floor = ctx.state["workload"], ctx.state["min_available"]
        deployment = ctx.provider.get_deployment(ctx.namespace, name)
        set_cpu_request(deployment, ROLLOUT_CPU_REQUEST)
        ctx.log.info("=== Triggering rolling update with new CPU requests ===")
        ctx.provider.replace_deployment(ctx.namespace, name, deployment)

        ctx.log.info("=== Starting rolling update monitoring ===")
        tracker = RolloutTracker(
            lambda: observe_deployment(ctx.provider, ctx.namespace, name, ctx.state["selector"]),
            extra_invariant=at_least(floor, lambda snapshot: snapshot.pods.running, "Running Pod count"),
            measure=lambda snapshot: snapshot.pods.running,
            options=ctx.monitor_options(
                interval=ROLLOUT_POLL_INTERVAL_SECONDS,
                timeout=ROLLOUT_POLL_INTERVAL_SECONDS * ROLLOUT_MAX_CHECKS,
            ),
            name="rolling update",
            log=ctx.log,
            clock=ctx.clock,
            sleep=ctx.sleep,
        )
        result = tracker.run().raise_for_outcome()
        ctx.log.info("=== Rolling update completed with minimum %d running pods (PDB requires >=%d) ===",
                     result.min_observed, floor)

    def deletions(ctx: ScenarioContext) -> None:
        floor = ctx.state["min_available"]
        pods = active_pods(ctx, ctx.state["selector"])
        ctx.log.info("=== Initial active pods: %d ===", len(pods))
        if len(pods) < floor:
            raise ScenarioCheckError(f"Initial pods ({len(pods)}) below PDB minimum ({floor})")

        ctx.log.info("=== Deleting all %d pods ===", len(pods))
        for pod in pods:
            ctx.provider.delete_pod(ctx.namespace, pod.metadata.name)

        ctx.log.info("=== Performing post-deletion validation ===")
        hold_running_floor(ctx, ctx.state["selector"], floor, POST_DELETION_CHECKS)
        ctx.log.info("=== All post-deletion checks passed ===")

    steps = [Step("should apply PDB manifests", apply_manifests)]
    if kind == "Deployment":
        steps.append(Step("should maintain minimum pods during rolling update", rolling_update))
    steps.append(Step("should maintain minimum pod count during deletions", deletions))
    return Scenario(
        tag=tag,
        description=f"{kind} PDB E2E test",
        labels=("pdb", kind.lower()),
        steps=tuple(steps),
    )


DEPLOYMENT_PDB = pdb_scenario("DeploymentPDBTest", "pdb_deployment", "deployment.yaml", "Deployment")
STATEFULSET_PDB = pdb_scenario("StatefulSetPDBTest", "pdb_statefulset", "sts.yaml", "StatefulSet")
