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

"""Basic reachability checks: nodes are listed, ready, and the namespace exists."""

from __future__ import annotations

from kubernetes import client

from cluster_tester.errors import ScenarioCheckError
from cluster_tester.scenario import Scenario, ScenarioContext, Step


def node_ready(node: client.V1Node) -> bool:
    conditions = (node.status.conditions if node.status else None) or []
    return any(cond.type == "Ready" and cond.status == "True" for cond in conditions)


def list_cluster_nodes(ctx: ScenarioContext) -> None:
    ctx.log.info("=== Listing cluster nodes ===")
    nodes = ctx.provider.list_nodes()
    if not nodes:
        raise ScenarioCheckError("cluster reports no nodes")
    ctx.log.info("Discovered %d nodes:", len(nodes))
    for i, node in enumerate(nodes, start=1):
        ctx.log.info("%d. %s", i, node.metadata.name)


def check_node_readiness(ctx: ScenarioContext) -> None:
    ctx.log.info("=== Checking node readiness ===")
    ready = 0
    for node in ctx.provider.list_nodes():
        is_ready = node_ready(node)
        ready += is_ready
        ctx.log.info("Node %-30s: %s", node.metadata.name, "Ready" if is_ready else "Not Ready")
    if not ready:
        raise ScenarioCheckError("no node reports Ready")


def verify_test_namespace(ctx: ScenarioContext) -> None:
    """Read back the namespace the runner created; it must be Active, not Terminating."""
    ctx.log.info("=== Verifying test namespace ===")
    namespace = ctx.provider.get_namespace(ctx.namespace)
    phase = namespace.status.phase if namespace.status else None
    if phase != "Active":
        raise ScenarioCheckError(f"namespace {ctx.namespace} is {phase or 'in an unknown phase'}, expected Active")
    ctx.log.info("Namespace %s verified (phase %s)", ctx.namespace, phase)


CONNECTIVITY = Scenario(
    tag="ConnectivityTest",
    description="Basic cluster connectivity test",
    labels=("smoke",),
    steps=(
        Step("should list cluster nodes", list_cluster_nodes),
        Step("should have ready nodes", check_node_readiness),
        Step("should have an active test namespace", verify_test_namespace),
    ),
)
