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

"""Bounded polling loop that judges a moving cluster state against invariants.

A run samples caller-supplied state once per tick, tracks extrema of a
measured value, checks the immediate invariant on every sample and ends as
soon as the invariant breaks, the terminal predicate holds, the deadline
passes, or the state cannot be read. Runs share no state with each other.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from cluster_tester import logger
from cluster_tester.config import MonitorOptions
from cluster_tester.errors import (
    ClusterApiError,
    ConfigurationError,
    ConvergenceTimeout,
    InvariantViolation,
    ObservationUnavailable,
)

S = TypeVar("S")


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    VIOLATED = "violated"
    TIMED_OUT = "timed_out"
    OBSERVATION_UNAVAILABLE = "observation_unavailable"


@dataclass(frozen=True)
class Verdict:
    """Result of evaluating an invariant predicate on one sample."""

    ok: bool
    message: str | None = None

    @classmethod
    def passed(cls) -> Verdict:
        return cls(True)

    @classmethod
    def failed(cls, message: str) -> Verdict:
        return cls(False, message)

    def __bool__(self) -> bool:
        return self.ok


InvariantPredicate = Callable[[Any], Verdict]
TerminalPredicate = Callable[[Any], bool]


def all_of(*predicates: InvariantPredicate) -> InvariantPredicate:
    """Compose predicates with logical AND, keeping every failing diagnostic."""

    def combined(sample: Any) -> Verdict:
        failures = []
        for predicate in predicates:
            verdict = predicate(sample)
            if not verdict.ok:
                failures.append(verdict.message or "invariant failed")
        return Verdict.failed("; ".join(failures)) if failures else Verdict.passed()

    return combined


def at_least(floor: int, measure: Callable[[Any], int], label: str = "observed count") -> InvariantPredicate:
    """Invariant ``measure(sample) >= floor``."""

    def predicate(sample: Any) -> Verdict:
        value = measure(sample)
        if value < floor:
            return Verdict.failed(f"{label} {value} < minimum {floor}")
        return Verdict.passed()

    return predicate


# ============================================================================
# Run state and result
# ============================================================================

@dataclass
class ConvergenceRun:
    """Mutable bookkeeping for one polling session; discarded when the run ends."""

    deadline: float
    interval: float
    attempts: int = 0
    min_observed: float | None = None
    max_observed: float | None = None
    terminal: bool = False
    last_sample: Any = None

    def observe(self, value: float | None) -> None:
        if value is None:
            return
        if self.min_observed is None or value < self.min_observed:
            self.min_observed = value
        if self.max_observed is None or value > self.max_observed:
            self.max_observed = value


@dataclass(frozen=True)
class MonitorResult:
    """Terminal summary of a convergence run.

    Attributes:
        outcome: How the run ended.
        attempts: Number of ticks taken, including the final one.
        min_observed: Smallest measured value across every sample, or None.
        max_observed: Largest measured value across every sample, or None.
        last_sample: The most recent successfully read sample.
        message: Human readable explanation of the outcome.
        elapsed: Seconds from start to end of the run.
    """

    outcome: Outcome
    attempts: int
    min_observed: float | None
    max_observed: float | None
    last_sample: Any
    message: str
    elapsed: float

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCEEDED

    def raise_for_outcome(self) -> MonitorResult:
        """Return self on success, otherwise raise the matching MonitorFailure."""
        if self.outcome is Outcome.VIOLATED:
            raise InvariantViolation(self)
        if self.outcome is Outcome.TIMED_OUT:
            raise ConvergenceTimeout(self)
        if self.outcome is Outcome.OBSERVATION_UNAVAILABLE:
            raise ObservationUnavailable(self)
        return self


# ============================================================================
# Monitor
# ============================================================================

class ConvergenceMonitor(Generic[S]):
    """Single-threaded sampler implementing Running -> {Succeeded, Violated, TimedOut, ObservationUnavailable}.

    Args:
        sample: Side-effecting read returning a fresh state snapshot.
        invariant: Immediate invariant checked on every sample, or None.
        terminal: Predicate whose truth ends the run in success; None means always true.
        measure: Extracts the numeric value whose extrema are tracked, or None.
        options: Interval, timeout and observation retry policy.
        min_samples: Samples required before success may be declared.
        describe: Renders a sample for logs and diagnostics.
        name: Label used in log records and messages.
        log: Logger (or scenario logger adapter) receiving one record per tick.
        clock: Monotonic clock returning seconds.
        sleep: Blocking sleep used between ticks and between read retries.
    """

    def __init__(
        self,
        sample: Callable[[], S],
        *,
        invariant: InvariantPredicate | None = None,
        terminal: TerminalPredicate | None = None,
        measure: Callable[[S], float] | None = None,
        options: MonitorOptions | None = None,
        min_samples: int = 1,
        describe: Callable[[S], str] = str,
        name: str = "convergence",
        log: Any = logger,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.sample = sample
        self.invariant = invariant
        self.terminal = terminal
        self.measure = measure
        self.options = options or MonitorOptions()
        self.min_samples = min_samples
        self.describe = describe
        self.name = name
        self.log = log
        self._clock = clock
        self._sleep = sleep

    def _validate(self) -> None:
        if self.options.interval <= 0:
            raise ConfigurationError(f"{self.name}: interval must be positive, got {self.options.interval}")
        if self.options.timeout <= 0:
            raise ConfigurationError(f"{self.name}: deadline must be in the future, got timeout {self.options.timeout}")
        if self.options.observation_attempts < 1:
            raise ConfigurationError(f"{self.name}: observation_attempts must be at least 1")
        if self.min_samples < 1:
            raise ConfigurationError(f"{self.name}: min_samples must be at least 1")

    def _read(self) -> S:
        """Take one snapshot, retrying consecutive API failures within the tick.

        Raises:
            RetryError: When every allowed attempt failed.
        """
        retryer = Retrying(
            stop=stop_after_attempt(self.options.observation_attempts),
            wait=wait_fixed(self.options.observation_retry_wait),
            retry=retry_if_exception_type(ClusterApiError),
            sleep=self._sleep,
            before_sleep=lambda state: self.log.warning(
                "%s: observation failed (attempt %d/%d): %s",
                self.name, state.attempt_number, self.options.observation_attempts,
                state.outcome.exception(),
            ),
        )
        return retryer(self.sample)

    def run(self) -> MonitorResult:
        """Poll until a terminal outcome and return it.

        Raises:
            ConfigurationError: If the interval, timeout or sample policy is invalid.
        """
        self._validate()
        start = self._clock()
        state = ConvergenceRun(deadline=start + self.options.timeout, interval=self.options.interval)

        while True:
            state.attempts += 1
            read_start = self._clock()
            try:
                snapshot = self._read()
            except RetryError as err:
                cause = err.last_attempt.exception()
                return self._finish(
                    state, start, Outcome.OBSERVATION_UNAVAILABLE,
                    f"{self.name}: cluster state unavailable after "
                    f"{self.options.observation_attempts} consecutive attempts on check {state.attempts}: {cause}",
                )
            sampling = self._clock() - read_start

            state.last_sample = snapshot
            value = self.measure(snapshot) if self.measure else None
            state.observe(value)
            self.log.info(
                "Check %d: %s", state.attempts, self.describe(snapshot),
                extra={"fields": {
                    "monitor": self.name,
                    "attempt": state.attempts,
                    "observed": value,
                    "sampling_ms": round(sampling * 1000),
                }},
            )

            if self.invariant is not None:
                verdict = self.invariant(snapshot)
                if not verdict.ok:
                    return self._finish(
                        state, start, Outcome.VIOLATED,
                        f"Check {state.attempts}: {verdict.message} (sample: {self.describe(snapshot)})",
                    )

            if state.attempts >= self.min_samples and (self.terminal is None or self.terminal(snapshot)):
                return self._finish(
                    state, start, Outcome.SUCCEEDED,
                    f"{self.name}: condition reached after {state.attempts} checks",
                )

            if self._clock() > state.deadline:
                return self._finish(
                    state, start, Outcome.TIMED_OUT,
                    f"{self.name}: condition not reached within {self.options.timeout:g}s after "
                    f"{state.attempts} checks (min observed {state.min_observed}, "
                    f"max observed {state.max_observed}, last sample: {self.describe(snapshot)})",
                )

            self._sleep(state.interval)

    def _finish(self, state: ConvergenceRun, start: float, outcome: Outcome, message: str) -> MonitorResult:
        state.terminal = True
        result = MonitorResult(
            outcome=outcome,
            attempts=state.attempts,
            min_observed=state.min_observed,
            max_observed=state.max_observed,
            last_sample=state.last_sample,
            message=message,
            elapsed=self._clock() - start,
        )
        fields = {"monitor": self.name, "outcome": outcome.value, "attempts": state.attempts,
                  "min_observed": state.min_observed, "max_observed": state.max_observed}
        if result.ok:
            self.log.info(message, extra={"fields": fields})
        else:
            self.log.error(message, extra={"fields": fields})
        return result
