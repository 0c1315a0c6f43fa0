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

"""Zone (anti-)affinity scenarios relative to a zone-marker workload."""

from __future__ import annotations

from cluster_tester.constants import ZONE_MARKER_TIMEOUT_SECONDS
from cluster_tester.errors import ScenarioCheckError
from cluster_tester.scenario import Scenario, ScenarioContext, Step
from cluster_tester.scenarios.common import (
    audit_placements,
    manifest_int,
    manifest_selector,
    wait_for_running,
    when_placed,
)
from cluster_tester.topology import zones_excluded, zones_within


def zone_affinity_scenario(tag: str, directory: str, dependent_file: str, kind: str, anti: bool) -> Scenario:
    """Build a scenario placing a dependent workload with or away from a zone marker.

    With ``anti`` unset every dependent pod must share a zone with a marker
    pod; with it set no dependent pod may share one. The rule is judged on
    every sample while the autoscaler scales the dependent workload out, and
    once more over all pods at the end.

    Args:
        tag: Scenario tag.
        directory: Manifest directory with ``zone-marker.yaml`` and ``hpa-trigger.yaml``.
        dependent_file: Dependent workload manifest within ``directory``.
        kind: ``Deployment`` or ``StatefulSet``.
        anti: Whether marker zones are forbidden rather than required.
    """
    marker = f"{directory}/zone-marker.yaml"
    dependent = f"{directory}/{dependent_file}"
    hpa = f"{directory}/hpa-trigger.yaml"
    relation = "Anti Affinity" if anti else "Affinity"

    def zone_rule(ctx: ScenarioContext):
        zones = ctx.state["marker_zones"]
        return zones_excluded(zones) if anti else zones_within(zones)

    def place_zone_marker(ctx: ScenarioContext) -> None:
        ctx.state["marker_selector"] = manifest_selector(ctx, marker)
        ctx.log.info("=== Applying Zone Marker manifest ===")
        ctx.apply(marker)
        wait_for_running(ctx, ctx.state["marker_selector"], 1, name="Waiting for zone marker",
                         timeout=ZONE_MARKER_TIMEOUT_SECONDS)

        ctx.log.info("=== Getting zone-marker pod details ===")
        placements = audit_placements(ctx, ctx.state["marker_selector"], "Zone-Marker")
        ctx.state["marker_zones"] = sorted({zone for _, zone in placements})
        ctx.log.info("Zone-Marker Zones (%s): %s", "forbidden for scheduling" if anti else "required for scheduling",
                     ctx.state["marker_zones"])

    def apply_dependent(ctx: ScenarioContext) -> None:
        ctx.state["max_replicas"] = manifest_int(ctx, hpa, "spec", "maxReplicas")
        ctx.state["selector"] = manifest_selector(ctx, dependent)
        ctx.log.info("=== Applying %s %s manifest ===", relation, kind)
        ctx.apply(dependent)
        ctx.log.info("=== Applying HPA manifest (maxReplicas: %d) ===", ctx.state["max_replicas"])
        ctx.apply(hpa)

    def wait_for_scale_out(ctx: ScenarioContext) -> None:
        wait_for_running(ctx, ctx.state["selector"], ctx.state["max_replicas"],
                         invariant=when_placed(zone_rule(ctx)))

    def validate_zones(ctx: ScenarioContext) -> None:
        ctx.log.info("=== Validating zone constraints ===")
        placements = audit_placements(ctx, ctx.state["selector"], "Dependent")
        verdict = zone_rule(ctx)(placements)
        if not verdict:
            raise ScenarioCheckError(verdict.message)
        ctx.log.info("Zone-Marker Zones: %s Dependent Pod Zones: %s",
                     ctx.state["marker_zones"], sorted({zone for _, zone in placements}))

    separation = "separation between" if anti else "co-location of"
    return Scenario(
        tag=tag,
        description=f"{kind} {relation} E2E test",
        labels=("affinity", kind.lower()),
        steps=(
            Step("should place the zone marker", place_zone_marker),
            Step(f"should apply {relation.lower()} manifests", apply_dependent),
            Step("should scale out within the zone rule", wait_for_scale_out),
            Step(f"should enforce zone {separation} zone-marker and dependent-app", validate_zones),
        ),
    )


DEPLOYMENT_AFFINITY = zone_affinity_scenario(
    "DeploymentAffinityTest", "affinity_deployment", "affinity-dependent-app.yaml", "Deployment", anti=False,
)
DEPLOYMENT_ANTI_AFFINITY = zone_affinity_scenario(
    "DeploymentAntiAffinityTest", "anti_affinity_deployment", "anti-affinity-dependent-app.yaml",
    "Deployment", anti=True,
)
STATEFULSET_AFFINITY = zone_affinity_scenario(
    "StatefulSetAffinityTest", "affinity_statefulset", "affinity-dependent-app.yaml", "StatefulSet", anti=False,
)
STATEFULSET_ANTI_AFFINITY = zone_affinity_scenario(
    "StatefulSetAntiAffinityTest", "anti_affinity_statefulset", "anti-affinity-dependent-app.yaml",
    "StatefulSet", anti=True,
)
