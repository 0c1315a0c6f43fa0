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

"""Rolling update scenarios: a template change must respect surge and unavailability bounds."""

from __future__ import annotations

from collections.abc import Callable

from cluster_tester.constants import ROLLOUT_CPU_REQUEST, ROLLOUT_MAX_CHECKS, ROLLOUT_POLL_INTERVAL_SECONDS
from cluster_tester.monitor import ConvergenceMonitor
from cluster_tester.rollout import (
    RolloutSnapshot,
    RolloutTracker,
    observe_deployment,
    observe_stateful_set,
    rollout_complete,
)
from cluster_tester.scenario import Scenario, ScenarioContext, Step
from cluster_tester.scenarios.common import manifest_name, manifest_selector, set_cpu_request


def rolling_update_scenario(tag: str, directory: str, workload_file: str, kind: str) -> Scenario:
    """Build a scenario that settles a workload, then rolls out a new pod template.

    The initial rollout only has to converge; the second one is judged on
    every sample against ``desired - maxUnavailable`` and ``desired + maxSurge``.
    """
    workload = f"{directory}/{workload_file}"
    observe = observe_stateful_set if kind == "StatefulSet" else observe_deployment

    def reader(ctx: ScenarioContext) -> Callable[[], RolloutSnapshot]:
        return lambda: observe(ctx.provider, ctx.namespace, ctx.state["workload"], ctx.state["selector"])

    def apply_workload(ctx: ScenarioContext) -> None:
        ctx.state["selector"] = manifest_selector(ctx, workload)
        ctx.state["workload"] = manifest_name(ctx, workload)
        ctx.apply(workload)

    def wait_for_initial_rollout(ctx: ScenarioContext) -> None:
        ConvergenceMonitor(
            reader(ctx),
            terminal=rollout_complete,
            measure=lambda snapshot: snapshot.available,
            options=ctx.monitor_options(),
            name="initial rollout",
            log=ctx.log,
            clock=ctx.clock,
            sleep=ctx.sleep,
        ).run().raise_for_outcome()

    def roll_out_new_template(ctx: ScenarioContext) -> None:
        name = ctx.state["workload"]
        if kind == "StatefulSet":
            current = ctx.provider.get_stateful_set(ctx.namespace, name)
            set_cpu_request(current, ROLLOUT_CPU_REQUEST)
            ctx.log.info("=== Triggering rolling update with new CPU requests ===")
            ctx.provider.replace_stateful_set(ctx.namespace, name, current)
        else:
            current = ctx.provider.get_deployment(ctx.namespace, name)
            set_cpu_request(current, ROLLOUT_CPU_REQUEST)
            ctx.log.info("=== Triggering rolling update with new CPU requests ===")
            ctx.provider.replace_deployment(ctx.namespace, name, current)

        result = RolloutTracker(
            reader(ctx),
            options=ctx.monitor_options(
                interval=ROLLOUT_POLL_INTERVAL_SECONDS,
                timeout=ROLLOUT_POLL_INTERVAL_SECONDS * ROLLOUT_MAX_CHECKS,
            ),
            name="rolling update",
            log=ctx.log,
            clock=ctx.clock,
            sleep=ctx.sleep,
        ).run().raise_for_outcome()
        ctx.log.info("=== Rollout completed with minimum %d available replicas ===", result.min_observed)

    return Scenario(
        tag=tag,
        description=f"{kind} Rolling Update E2E test",
        labels=("rollout", kind.lower()),
        steps=(
            Step(f"should apply the {kind} manifest", apply_workload),
            Step("should complete the initial rollout", wait_for_initial_rollout),
            Step("should keep replicas within bounds during rolling update", roll_out_new_template),
        ),
    )


DEPLOYMENT_ROLLING_UPDATE = rolling_update_scenario(
    "DeploymentRollingUpdateTest", "rolling_update_deployment", "deployment_start.yaml", "Deployment",
)
STATEFULSET_ROLLING_UPDATE = rolling_update_scenario(
    "StatefulSetRollingUpdateTest", "rolling_update_statefulset", "sts_start.yaml", "StatefulSet",
)
