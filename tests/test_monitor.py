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

"""Tests for the convergence monitor state machine."""

from __future__ import annotations

import itertools

import pytest

from cluster_tester.config import MonitorOptions
from cluster_tester.errors import (
    ClusterApiError,
    ConfigurationError,
    ConvergenceTimeout,
    InvariantViolation,
    ObservationUnavailable,
)
from cluster_tester.monitor import ConvergenceMonitor, Outcome, Verdict, all_of, at_least


class Sampler:
    """Replays scripted values (or raises scripted exceptions) one per call."""

    def __init__(self, values) -> None:
        self._values = iter(values)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        value = next(self._values)
        if isinstance(value, Exception):
            raise value
        return value


def _make_monitor(sampler, clock, **kwargs) -> ConvergenceMonitor:
    options = kwargs.pop("options", MonitorOptions(interval=1.0, timeout=30.0, observation_retry_wait=0.5))
    return ConvergenceMonitor(
        sampler,
        options=options,
        measure=kwargs.pop("measure", int),
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


class TestPredicates:
    def test_at_least_passes_on_floor(self):
        assert at_least(5, int)(5).ok

    def test_at_least_message(self):
        verdict = at_least(5, int, "running pods")(4)
        assert not verdict
        assert verdict.message == "running pods 4 < minimum 5"

    def test_all_of_keeps_every_failure(self):
        combined = all_of(
            lambda s: Verdict.failed("first"),
            lambda s: Verdict.passed(),
            lambda s: Verdict.failed("second"),
        )
        assert combined(None).message == "first; second"

    def test_all_of_passes(self):
        assert all_of(lambda s: Verdict.passed())(None).ok


class TestSucceeded:
    def test_terminal_reached(self, clock):
        sampler = Sampler([1, 2, 3, 4])
        result = _make_monitor(sampler, clock, terminal=lambda s: s >= 3).run()
        assert result.outcome is Outcome.SUCCEEDED
        assert result.attempts == 3
        assert (result.min_observed, result.max_observed) == (1, 3)
        assert clock.sleeps == [1.0, 1.0]
        assert result.raise_for_outcome() is result

    def test_hold_requires_min_samples(self, clock):
        sampler = Sampler([6, 6, 6, 6])
        result = _make_monitor(sampler, clock, invariant=at_least(5, int), min_samples=3).run()
        assert result.ok
        assert result.attempts == 3
        assert sampler.calls == 3


class TestViolated:
    def test_budget_floor_breaks_on_third_sample(self, clock):
        sampler = Sampler([6, 6, 4, 5])
        result = _make_monitor(
            sampler, clock, invariant=at_least(5, int, "running pods"), min_samples=10,
        ).run()
        assert result.outcome is Outcome.VIOLATED
        assert result.attempts == 3
        assert result.min_observed == 4
        assert result.last_sample == 4
        assert result.message.startswith("Check 3: running pods 4 < minimum 5")

    def test_stops_polling_at_violation(self, clock):
        sampler = Sampler([6, 4, 6, 6, 6])
        _make_monitor(sampler, clock, invariant=at_least(5, int), min_samples=5).run()
        assert sampler.calls == 2

    def test_invariant_checked_before_terminal(self, clock):
        sampler = Sampler([2])
        result = _make_monitor(sampler, clock, invariant=at_least(5, int), terminal=lambda s: True).run()
        assert result.outcome is Outcome.VIOLATED

    def test_raise_for_outcome(self, clock):
        result = _make_monitor(Sampler([1]), clock, invariant=at_least(5, int)).run()
        with pytest.raises(InvariantViolation) as exc_info:
            result.raise_for_outcome()
        assert exc_info.value.result is result


class TestTimedOut:
    def test_reports_true_minimum(self, clock):
        sampler = Sampler(itertools.cycle([5, 3, 7, 4]))
        options = MonitorOptions(interval=1.0, timeout=5.0)
        result = _make_monitor(sampler, clock, terminal=lambda s: False, options=options).run()
        assert result.outcome is Outcome.TIMED_OUT
        assert result.attempts == 7
        assert result.min_observed == 3
        assert result.max_observed == 7
        assert "min observed 3" in result.message
        with pytest.raises(ConvergenceTimeout):
            result.raise_for_outcome()


class TestObservation:
    def test_transient_failure_is_retried_within_tick(self, clock):
        sampler = Sampler([ClusterApiError("connection reset"), 5])
        result = _make_monitor(sampler, clock).run()
        assert result.ok
        assert result.attempts == 1
        assert clock.sleeps == [0.5]

    def test_unavailable_after_consecutive_failures(self, clock):
        sampler = Sampler([ClusterApiError("down")] * 3)
        result = _make_monitor(sampler, clock).run()
        assert result.outcome is Outcome.OBSERVATION_UNAVAILABLE
        assert result.attempts == 1
        assert "down" in result.message
        assert sampler.calls == 3
        with pytest.raises(ObservationUnavailable):
            result.raise_for_outcome()

    def test_unexpected_errors_propagate(self, clock):
        with pytest.raises(ValueError):
            _make_monitor(Sampler([ValueError("bug")]), clock).run()


class TestValidation:
    @pytest.mark.parametrize("options", [
        MonitorOptions(interval=0),
        MonitorOptions(timeout=0),
        MonitorOptions(observation_attempts=0),
    ])
    def test_invalid_options(self, clock, options):
        with pytest.raises(ConfigurationError):
            _make_monitor(Sampler([1]), clock, options=options).run()

    def test_invalid_min_samples(self, clock):
        with pytest.raises(ConfigurationError):
            _make_monitor(Sampler([1]), clock, min_samples=0).run()
