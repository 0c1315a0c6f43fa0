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

"""Scenario model and the runner that sequences scenarios into a suite run."""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from cluster_tester import logger
from cluster_tester.cluster import ClusterProvider
from cluster_tester.config import MonitorOptions, SuiteConfig
from cluster_tester.constants import BOOTSTRAP_TAG, FAILURE_MARKER
from cluster_tester.errors import ClusterTesterError
from cluster_tester.logs import LogChannel, ScenarioLog, attach_channel, scenario_logger
from cluster_tester.manifests import ManifestSource, ResourceDescriptor, apply_manifest
from cluster_tester.report import FinalReport, aggregate, print_summary, write_report


# ============================================================================
# Scenario model
# ============================================================================

@dataclass
class ScenarioContext:
    """Everything a step needs: cluster access, manifests, logging and shared state.

    Attributes:
        provider: Cluster state provider.
        namespace: Namespace the scenario owns for its lifetime.
        manifests: Source of raw manifest blobs.
        log: Logger adapter stamping records with the scenario tag.
        options: Default monitor options for this scenario.
        settings: Suite settings, when running under the CLI.
        state: Values handed from one step to the next.
        sleep: Blocking sleep used for stabilization pauses and monitors.
        clock: Monotonic clock handed to monitors.
    """

    provider: ClusterProvider
    namespace: str
    manifests: ManifestSource
    log: ScenarioLog
    options: MonitorOptions = field(default_factory=MonitorOptions)
    settings: SuiteConfig | None = None
    state: dict[str, Any] = field(default_factory=dict)
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    def load(self, name: str) -> bytes:
        return self.manifests.load(name)

    def apply(self, name: str) -> list[ResourceDescriptor]:
        """Apply the manifest stored under ``name`` into the scenario namespace."""
        self.log.info("=== Applying %s ===", name)
        return apply_manifest(self.provider, self.load(name), self.namespace, self.log)

    def stabilize(self, reason: str = "Wait for Pods to schedule") -> None:
        seconds = self.settings.stabilize_seconds if self.settings else 0
        if seconds > 0:
            self.log.info("=== %s (%ss) ===", reason, int(seconds))
            self.sleep(seconds)

    def monitor_options(self, **overrides: Any) -> MonitorOptions:
        """Scenario defaults with ``overrides`` applied."""
        return dataclasses.replace(self.options, **overrides)


StepFunc = Callable[[ScenarioContext], None]


@dataclass(frozen=True)
class Step:
    name: str
    run: StepFunc


@dataclass(frozen=True)
class Scenario:
    """Named, ordered list of steps run against a fresh namespace."""

    tag: str
    steps: tuple[Step, ...]
    description: str = ""
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScenarioResult:
    """Outcome of one scenario run."""

    tag: str
    passed: bool
    completed_steps: tuple[str, ...] = ()
    skipped_steps: tuple[str, ...] = ()
    failed_step: str | None = None
    error: str | None = None
    duration: float = 0.0


@dataclass(frozen=True)
class SuiteRun:
    """Per-scenario results plus the aggregated report."""

    results: list[ScenarioResult]
    report: FinalReport
    report_path: Path | None

    @property
    def ok(self) -> bool:
        return not self.report.failed_but_not_allowed


# ============================================================================
# Runner
# ============================================================================

def _release_connections(provider: ClusterProvider, log: ScenarioLog) -> None:
    try:
        provider.release_idle_connections()
    except Exception as err:  # pool cleanup never decides a scenario
        log.warning("Releasing idle connections failed: %s", err)


def run_scenario(
    scenario: Scenario,
    provider: ClusterProvider,
    manifests: ManifestSource,
    settings: SuiteConfig | None = None,
    *,
    namespace: str | None = None,
    options: MonitorOptions | None = None,
    cleanup: bool = True,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> ScenarioResult:
    """Run ``scenario``'s steps in order; the first failing step skips the rest.

    Any exception raised by a step, by namespace setup or by teardown is
    caught here and turned into a failed result, with the failure marker
    logged under the scenario tag. The namespace is ensured before the first
    step and cleared afterwards.

    Args:
        scenario: Scenario to run.
        provider: Cluster state provider.
        manifests: Source of manifest blobs.
        settings: Suite settings; supplies namespace, options and stabilization.
        namespace: Overrides the settings namespace.
        options: Overrides the settings monitor options.
        cleanup: Whether to clear the namespace at the end.
        sleep: Blocking sleep handed to steps and monitors.
        clock: Monotonic clock handed to monitors.

    Returns:
        The scenario's result.
    """
    log = scenario_logger(scenario.tag)
    started = clock()
    ctx = ScenarioContext(
        provider=provider,
        namespace=namespace or (settings.test_namespace if settings else "default"),
        manifests=manifests,
        log=log,
        options=options or (settings.monitor_options() if settings else MonitorOptions()),
        settings=settings,
        sleep=sleep,
        clock=clock,
    )
    allowed = settings.is_allowed_to_fail(scenario.tag) if settings else False
    log.info("=== Starting %s ===", scenario.description or scenario.tag)
    log.info("=== tag: %s, allowed to fail: %s", scenario.tag, str(allowed).lower())

    completed: list[str] = []
    failed_step: str | None = None
    error: str | None = None

    try:
        provider.ensure_namespace(ctx.namespace, log)
    except Exception as err:  # scenario boundary
        failed_step, error = "setup", str(err) or type(err).__name__
        log.error("Namespace setup failed: %s", error, exc_info=not isinstance(err, ClusterTesterError))

    if failed_step is None:
        for step in scenario.steps:
            try:
                step.run(ctx)
            except Exception as err:  # scenario boundary: any failure fails the scenario
                failed_step, error = step.name, str(err) or type(err).__name__
                log.error("Step '%s' failed: %s", step.name, error, exc_info=not isinstance(err, ClusterTesterError))
                break
            finally:
                _release_connections(provider, log)
            completed.append(step.name)

    if cleanup:
        try:
            provider.clear_namespace(ctx.namespace, log)
        except Exception as err:  # scenario boundary
            log.error("Namespace teardown failed: %s", err, exc_info=not isinstance(err, ClusterTesterError))
            if failed_step is None:
                failed_step, error = "teardown", str(err) or type(err).__name__

    if failed_step is not None:
        log.error("%s:%s", scenario.tag, FAILURE_MARKER)

    skipped = tuple(step.name for step in scenario.steps if step.name not in completed and step.name != failed_step)
    return ScenarioResult(
        tag=scenario.tag,
        passed=failed_step is None,
        completed_steps=tuple(completed),
        skipped_steps=skipped,
        failed_step=failed_step,
        error=error,
        duration=clock() - started,
    )


def run_suite(
    scenarios: Iterable[Scenario],
    provider: ClusterProvider,
    manifests: ManifestSource,
    settings: SuiteConfig,
    *,
    channel: LogChannel | None = None,
    now: datetime | None = None,
    write: bool = True,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> SuiteRun:
    """Run every scenario in order, then drain the log channel into the final report.

    Returns:
        SuiteRun with per-scenario results, the report and where it was written.
    """
    scenarios = list(scenarios)
    channel = channel or LogChannel()
    results: list[ScenarioResult] = []

    with attach_channel(channel):
        bootstrap = scenario_logger(BOOTSTRAP_TAG)
        bootstrap.info("Running %d scenarios in namespace %s", len(scenarios), settings.test_namespace)
        if settings.allowed_to_fail_tags:
            bootstrap.info("Allowed to fail: %s", ", ".join(settings.allowed_to_fail_tags))
        for scenario in scenarios:
            results.append(
                run_scenario(scenario, provider, manifests, settings, sleep=sleep, clock=clock)
            )

    report = aggregate(channel.drain(), settings.allowed_to_fail_tags, now)
    path = write_report(report, settings.report_dir, now) if write else None
    print_summary(report)
    logger.info("Suite finished: %d/%d scenarios passed", sum(r.passed for r in results), len(results))
    return SuiteRun(results=results, report=report, report_path=path)


def select(scenarios: Sequence[Scenario], tags: Iterable[str] | None) -> list[Scenario]:
    """Filter ``scenarios`` down to ``tags`` preserving catalog order.

    Raises:
        ClusterTesterError: If a tag names no known scenario.
    """
    wanted = [tag for tag in (tags or []) if tag]
    if not wanted:
        return list(scenarios)
    known = {scenario.tag for scenario in scenarios}
    unknown = [tag for tag in wanted if tag not in known]
    if unknown:
        raise ClusterTesterError(f"unknown scenario tags: {', '.join(unknown)} (known: {', '.join(sorted(known))})")
    return [scenario for scenario in scenarios if scenario.tag in wanted]
