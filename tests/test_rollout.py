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

"""Tests for rollout tolerances, bounds and the rollout tracker."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from conftest import make_pod

from cluster_tester.config import MonitorOptions
from cluster_tester.errors import ConfigurationError
from cluster_tester.monitor import Outcome, at_least
from cluster_tester.rollout import (
    RolloutSnapshot,
    RolloutTracker,
    format_selector,
    max_surge_count,
    max_unavailable_count,
    observe_deployment,
    observe_stateful_set,
    pod_breakdown,
    resolve_bounds,
    resolve_tolerance,
    rollout_complete,
    rollout_within_bounds,
)


def _snapshots(desired, surge, unavailable, *triples):
    return [
        RolloutSnapshot(desired=desired, updated=u, total=t, available=a, max_surge=surge, max_unavailable=unavailable)
        for u, t, a in triples
    ]


def _make_tracker(snapshots, clock, **kwargs) -> RolloutTracker:
    values = iter(snapshots)
    return RolloutTracker(
        lambda: next(values),
        options=MonitorOptions(interval=15.0, timeout=300.0),
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


class TestTolerances:
    @pytest.mark.parametrize("value, desired, round_up, expected", [
        (2, 10, False, 2),
        ("25%", 10, False, 2),
        ("25%", 10, True, 3),
        ("10%", 10, True, 1),
        ("0%", 10, True, 0),
        ("100%", 3, False, 3),
        ("3", 10, False, 3),
        (None, 10, True, 0),
    ])
    def test_resolve(self, value, desired, round_up, expected):
        assert resolve_tolerance(value, desired, round_up) == expected

    @pytest.mark.parametrize("value", ["abc", "%", "-1", -1, 1.5, True])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            resolve_tolerance(value, 10, round_up=False)

    def test_surge_rounds_up_unavailable_rounds_down(self):
        assert max_surge_count("25%", 5) == 2
        assert max_unavailable_count("25%", 5) == 1

    def test_bounds_never_both_zero(self):
        assert resolve_bounds("0%", "0%", 10) == (0, 1)
        assert resolve_bounds(1, 0, 10) == (1, 0)


class TestPredicates:
    def test_complete(self):
        assert rollout_complete(RolloutSnapshot(desired=3, updated=3, total=3, available=3))
        assert not rollout_complete(RolloutSnapshot(desired=3, updated=3, total=4, available=3))

    def test_stale_status_is_not_complete(self):
        assert not rollout_complete(RolloutSnapshot(desired=3, updated=3, total=3, available=3, stale=True))

    def test_within_bounds(self):
        snapshot = RolloutSnapshot(desired=10, updated=5, total=11, available=9, max_surge=1, max_unavailable=1)
        assert rollout_within_bounds(snapshot).ok

    def test_availability_floor(self):
        snapshot = RolloutSnapshot(desired=10, updated=3, total=10, available=9, max_surge=1, max_unavailable=0)
        verdict = rollout_within_bounds(snapshot)
        assert verdict.message == "available 9 < 10 - maxUnavailable 0"

    def test_surge_ceiling(self):
        snapshot = RolloutSnapshot(desired=10, updated=3, total=12, available=10, max_surge=1)
        assert "total 12 > 10 + maxSurge 1" in rollout_within_bounds(snapshot).message


class TestRolloutTracker:
    def test_floor_fires_on_first_sample(self, clock):
        snapshots = _snapshots(10, 1, 0, (3, 10, 9), (7, 10, 9), (10, 10, 10))
        result = _make_tracker(snapshots, clock).run()
        assert result.outcome is Outcome.VIOLATED
        assert result.attempts == 1
        assert result.min_observed == 9

    def test_succeeds_on_third_sample_with_tolerance(self, clock):
        snapshots = _snapshots(10, 1, 1, (3, 10, 9), (7, 10, 9), (10, 10, 10))
        result = _make_tracker(snapshots, clock).run()
        assert result.outcome is Outcome.SUCCEEDED
        assert result.attempts == 3
        assert result.min_observed == 9
        assert clock.sleeps == [15.0, 15.0]

    def test_extra_invariant_and_measure(self, clock):
        snapshots = _snapshots(6, 1, 1, (1, 7, 6), (3, 7, 5))
        result = _make_tracker(
            snapshots, clock,
            extra_invariant=at_least(6, lambda s: s.available, "available"),
            measure=lambda s: s.total,
        ).run()
        assert result.outcome is Outcome.VIOLATED
        assert result.attempts == 2
        assert "available 5 < minimum 6" in result.message
        assert result.min_observed == 7


def _deployment(replicas=4, strategy=None, generation=2, observed=2, **status):
    return SimpleNamespace(
        metadata=SimpleNamespace(name="app", generation=generation),
        spec=SimpleNamespace(
            replicas=replicas,
            strategy=strategy,
            selector=SimpleNamespace(match_labels={"component": "web", "app": "app"}),
        ),
        status=SimpleNamespace(
            updated_replicas=status.get("updated", replicas),
            replicas=status.get("total", replicas),
            available_replicas=status.get("available", replicas),
            ready_replicas=status.get("ready", replicas),
            observed_generation=observed,
        ),
    )


class TestObserve:
    def test_format_selector(self):
        assert format_selector({"b": "2", "a": "1"}) == "a=1,b=2"
        assert format_selector(None) == ""

    def test_pod_breakdown(self):
        pods = [
            make_pod("a"),
            make_pod("b", ready=False),
            make_pod("c", phase="Pending"),
            make_pod("d", terminating=True),
        ]
        breakdown = pod_breakdown(pods)
        assert (breakdown.ready, breakdown.running_not_ready, breakdown.pending, breakdown.terminating) == (1, 1, 1, 1)
        assert breakdown.running == 2
        assert breakdown.names == ("a", "b", "c", "d")

    def test_deployment_percent_strategy(self, cluster):
        strategy = SimpleNamespace(type="RollingUpdate",
                                   rolling_update=SimpleNamespace(max_surge="25%", max_unavailable="25%"))
        cluster.deployments["app"] = _deployment(replicas=10, strategy=strategy, available=8)
        cluster.pods = [make_pod("p1")]
        snapshot = observe_deployment(cluster, "test-ns", "app")
        assert (snapshot.max_surge, snapshot.max_unavailable) == (3, 2)
        assert snapshot.available == 8
        assert snapshot.pods.ready == 1
        assert cluster.pod_queries[-1]["label_selector"] == "app=app,component=web"

    def test_deployment_without_rolling_update(self, cluster):
        cluster.deployments["app"] = _deployment(strategy=None)
        snapshot = observe_deployment(cluster, "test-ns", "app")
        assert (snapshot.max_surge, snapshot.max_unavailable) == (0, 1)

    def test_deployment_recreate(self, cluster):
        cluster.deployments["app"] = _deployment(strategy=SimpleNamespace(type="Recreate", rolling_update=None))
        snapshot = observe_deployment(cluster, "test-ns", "app")
        assert (snapshot.max_surge, snapshot.max_unavailable) == (0, 4)

    def test_deployment_stale_generation(self, cluster):
        cluster.deployments["app"] = _deployment(generation=3, observed=2)
        assert observe_deployment(cluster, "test-ns", "app").stale

    def test_stateful_set_defaults(self, cluster):
        stateful_set = _deployment(replicas=3, available=None, ready=2)
        stateful_set.spec.update_strategy = SimpleNamespace(type="RollingUpdate", rolling_update=None)
        cluster.stateful_sets["app"] = stateful_set
        snapshot = observe_stateful_set(cluster, "test-ns", "app")
        assert (snapshot.max_surge, snapshot.max_unavailable) == (0, 1)
        assert snapshot.available == 2
