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

"""Tests for zone distribution and placement predicates."""

from __future__ import annotations

import pytest

from conftest import make_node, make_pod

from cluster_tester.errors import EmptyDistributionError
from cluster_tester.topology import (
    ZoneDistribution,
    resolve_placements,
    skew_at_most,
    zone_distribution,
    zones_excluded,
    zones_within,
)


class TestZoneDistribution:
    def test_counts_and_skew(self):
        dist = zone_distribution([("a", "z1"), ("b", "z2"), ("c", "z1"), ("d", "z3"), ("e", "z1")])
        assert dist.counts == {"z1": 3, "z2": 1, "z3": 1}
        assert dist.total == 5
        assert dist.skew == 2

    def test_single_zone_has_zero_skew(self):
        assert zone_distribution([("a", "z1"), ("b", "z1")]).skew == 0

    def test_unplaced_entities_are_excluded(self):
        dist = zone_distribution([("a", "z1"), ("b", None), ("c", "")])
        assert dist.counts == {"z1": 1}

    def test_empty_distribution_raises(self):
        with pytest.raises(EmptyDistributionError):
            _ = zone_distribution([("a", None)]).skew

    def test_empty_distribution_is_a_value_error(self):
        with pytest.raises(ValueError):
            _ = ZoneDistribution().max_count

    def test_zones_are_sorted(self):
        assert list(zone_distribution([("a", "z2"), ("b", "z1")]).counts) == ["z1", "z2"]

    def test_str(self):
        assert str(zone_distribution([("a", "z1"), ("b", "z2"), ("c", "z2")])) == "z1=1, z2=2 (skew 1)"
        assert str(ZoneDistribution()) == "no zones populated"


class TestPredicates:
    def test_skew_within_bound(self):
        assert skew_at_most(1)([("a", "z1"), ("b", "z2"), ("c", "z1")]).ok

    def test_skew_violation_message(self):
        verdict = skew_at_most(1)([("a", "z1"), ("b", "z1"), ("c", "z1"), ("d", "z2")])
        assert not verdict
        assert "zone skew 2 exceeds allowed maximum of 1" in verdict.message

    def test_skew_on_empty_fails(self):
        assert not skew_at_most(1)([])

    def test_zones_excluded(self):
        verdict = zones_excluded(["z1"])([("a", "z2"), ("b", "z1")])
        assert verdict.message == "b in prohibited zone z1"

    def test_zones_excluded_ignores_unplaced(self):
        assert zones_excluded(["z1"])([("a", None)]).ok

    def test_zones_within(self):
        assert zones_within(["z1", "z2"])([("a", "z1"), ("b", "z2")]).ok
        verdict = zones_within(["z1"])([("a", "z1"), ("b", "z3")])
        assert verdict.message == "b in zone z3 outside ['z1']"


class TestResolvePlacements:
    def test_maps_pods_to_node_zones(self, cluster):
        cluster.nodes = {"n1": make_node("n1", "z1"), "n2": make_node("n2", "z2")}
        pods = [make_pod("p1", "n1"), make_pod("p2", "n2"), make_pod("p3", "n1")]
        assert resolve_placements(cluster, pods) == [("p1", "z1"), ("p2", "z2"), ("p3", "z1")]

    def test_nodes_looked_up_once(self, cluster):
        cluster.nodes = {"n1": make_node("n1", "z1")}
        resolve_placements(cluster, [make_pod("p1", "n1"), make_pod("p2", "n1")])
        assert cluster.node_lookups == ["n1"]

    def test_unscheduled_and_unlabeled(self, cluster):
        cluster.nodes = {"n1": make_node("n1")}
        placements = resolve_placements(cluster, [make_pod("p1"), make_pod("p2", "n1")])
        assert placements == [("p1", None), ("p2", None)]
        assert cluster.node_lookups == ["n1"]
