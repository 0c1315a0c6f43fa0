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

"""Correlate the suite's JSON log stream into a per-scenario final report."""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from rich.panel import Panel

from cluster_tester import console
from cluster_tester.constants import (
    BOOTSTRAP_TAG,
    FAILURE_MARKER,
    RATIO_UNDEFINED,
    REPORT_FILENAME_PREFIX,
    REPORT_FILENAME_TIME_FORMAT,
    REPORT_TAG,
    REPORT_TIMESTAMP_FORMAT,
    SUMMARY_MIN_TAGS,
)
from cluster_tester.logs import scenario_logger


class FinalReport(BaseModel):
    """Suite-level verdict derived from the tagged log stream."""

    model_config = ConfigDict(frozen=True)

    test_timestamp: str
    failing_tests: list[str] = Field(default_factory=list)
    succeeding_tests: list[str] = Field(default_factory=list)
    allowed_to_fail_tests: list[str] = Field(default_factory=list)
    failed_but_not_allowed: list[str] = Field(default_factory=list)
    success_ratio: str = RATIO_UNDEFINED
    logs_by_tags: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    @property
    def tag_count(self) -> int:
        return len(self.failing_tests) + len(self.succeeding_tests)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), indent=1)


def success_ratio(succeeding: int, failing: int) -> str:
    """Format ``succeeding / (succeeding + failing)`` as a percentage, or N/A with no tags."""
    total = succeeding + failing
    if total == 0:
        return RATIO_UNDEFINED
    return f"{succeeding / total * 100:.2f}%"


def _parse(line: str) -> dict[str, Any] | None:
    try:
        entry = json.loads(line)
    except (TypeError, ValueError):
        return None
    return entry if isinstance(entry, dict) else None


def aggregate(lines: Iterable[str], allowed_to_fail: Iterable[str], now: datetime | None = None) -> FinalReport:
    """Group log records by tag and classify each tag as failing or succeeding.

    Each line is parsed on its own; malformed lines and records without a
    string tag are skipped, and the bootstrap tag is never reported. A tag
    fails when any of its messages carries the failure marker.

    Args:
        lines: JSON log lines in emission order.
        allowed_to_fail: Tags whose failure does not fail the suite.
        now: Report time; defaults to the current local time.

    Returns:
        The assembled FinalReport.
    """
    allowed = set(allowed_to_fail)
    logs_by_tags: dict[str, list[dict[str, Any]]] = {}
    failing: list[str] = []

    for line in lines:
        entry = _parse(line)
        if entry is None:
            continue
        tag = entry.get("tag")
        if not isinstance(tag, str) or tag == BOOTSTRAP_TAG:
            continue
        message = entry.get("message")
        if isinstance(message, str) and FAILURE_MARKER in message and tag not in failing:
            failing.append(tag)
        logs_by_tags.setdefault(tag, []).append(
            {key: value for key, value in entry.items() if key not in ("tag", "level")}
        )

    succeeding = [tag for tag in logs_by_tags if tag not in failing]
    return FinalReport(
        test_timestamp=(now or datetime.now()).strftime(REPORT_TIMESTAMP_FORMAT),
        failing_tests=failing,
        succeeding_tests=succeeding,
        allowed_to_fail_tests=[tag for tag in failing if tag in allowed],
        failed_but_not_allowed=[tag for tag in failing if tag not in allowed],
        success_ratio=success_ratio(len(succeeding), len(failing)),
        logs_by_tags=logs_by_tags,
    )


def report_path(directory: Path, now: datetime) -> Path:
    return Path(directory) / f"{REPORT_FILENAME_PREFIX}{now.strftime(REPORT_FILENAME_TIME_FORMAT)}.json"


def write_report(report: FinalReport, directory: Path, now: datetime | None = None) -> Path:
    """Write ``report`` as indented JSON under ``directory``, creating it if needed.

    Returns:
        Path of the written file.
    """
    log = scenario_logger(REPORT_TAG)
    path = report_path(directory, now or datetime.now())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.to_json())
    log.info("Final report written to %s", path)
    return path


def print_summary(report: FinalReport) -> bool:
    """Print per-bucket counts; returns False when too few tags were seen to bother."""
    if report.tag_count < SUMMARY_MIN_TAGS:
        return False

    console.print(Panel.fit("Test Suite Summary", style="bold blue"))
    console.print(f"[yellow]Report time:[/yellow] {report.test_timestamp}")
    buckets = [
        ("Succeeding Tests", report.succeeding_tests, "green"),
        ("Failing Tests", report.failing_tests, "red"),
        ("Allowed to Fail Tests", report.allowed_to_fail_tests, "yellow"),
        ("Failed but Not Allowed to Fail Tests", report.failed_but_not_allowed, "red"),
    ]
    for title, tags, color in buckets:
        console.print(f"\n[{color}]{title} ({len(tags)}):[/{color}]")
        for tag in tags:
            console.print(f"  - {tag}")
    console.print(f"\n[bold]Success Ratio: {report.success_ratio}[/bold]")
    return True
