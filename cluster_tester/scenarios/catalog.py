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

"""Ordered registry of every scenario the suite can run."""

from __future__ import annotations

from cluster_tester.scenario import Scenario
from cluster_tester.scenarios.affinity import (
    DEPLOYMENT_AFFINITY,
    DEPLOYMENT_ANTI_AFFINITY,
    STATEFULSET_AFFINITY,
    STATEFULSET_ANTI_AFFINITY,
)
from cluster_tester.scenarios.connectivity import CONNECTIVITY
from cluster_tester.scenarios.pdb import DEPLOYMENT_PDB, STATEFULSET_PDB
from cluster_tester.scenarios.rolling_update import DEPLOYMENT_ROLLING_UPDATE, STATEFULSET_ROLLING_UPDATE
from cluster_tester.scenarios.topology import DEPLOYMENT_TOPOLOGY, STATEFULSET_TOPOLOGY

CATALOG: tuple[Scenario, ...] = (
    CONNECTIVITY,
    DEPLOYMENT_TOPOLOGY,
    STATEFULSET_TOPOLOGY,
    DEPLOYMENT_AFFINITY,
    DEPLOYMENT_ANTI_AFFINITY,
    STATEFULSET_AFFINITY,
    STATEFULSET_ANTI_AFFINITY,
    DEPLOYMENT_PDB,
    STATEFULSET_PDB,
    DEPLOYMENT_ROLLING_UPDATE,
    STATEFULSET_ROLLING_UPDATE,
)


def catalog_tags() -> list[str]:
    return [scenario.tag for scenario in CATALOG]
