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

"""Tests for log-stream aggregation into the final report."""

from __future__ import annotations

import json
from datetime import datetime

from cluster_tester.report import FinalReport, aggregate, print_summary, success_ratio, write_report

NOW = datetime(2026, 3, 14, 9, 26, 53)


def _line(tag, message, level="info", **extra) -> str:
    entry = {"level": level, "timestamp": "2026-03-14T09:00:00+00:00", "message": message, **extra}
    if tag is not None:
        entry["tag"] = tag
    return json.dumps(entry)


def _stream() -> list[str]:
    return [
        _line("Setup", "Running 4 scenarios"),
        _line("ConnectivityTest", "Discovered 3 nodes:"),
        _line("DeploymentPDBTest", "=== Minimum allowed pods from PDB: 5 ==="),
        "not json at all",
        _line(None, "untagged"),
        json.dumps({"tag": 7, "message": "numeric tag"}),
        _line("DeploymentPDBTest", "Check 3: running pods 4 < minimum 5", level="error", attempt=3),
        _line("DeploymentPDBTest", "DeploymentPDBTest:TEST_FAILED", level="error"),
        _line("DeploymentTopologyTest", "DeploymentTopologyTest:TEST_FAILED", level="error"),
        _line("DeploymentTopologyTest", "DeploymentTopologyTest:TEST_FAILED", level="error"),
        _line("StatefulSetPDBTest", "=== All post-deletion checks passed ==="),
    ]


class TestAggregate:
    def test_classifies_tags(self):
        report = aggregate(_stream(), ["DeploymentTopologyTest"], NOW)
        assert report.failing_tests == ["DeploymentPDBTest", "DeploymentTopologyTest"]
        assert report.succeeding_tests == ["ConnectivityTest", "StatefulSetPDBTest"]
        assert report.allowed_to_fail_tests == ["DeploymentTopologyTest"]
        assert report.failed_but_not_allowed == ["DeploymentPDBTest"]
        assert report.success_ratio == "50.00%"
        assert report.test_timestamp == "03/14/2026 09:26:53"

    def test_bootstrap_tag_excluded(self):
        report = aggregate(_stream(), [], NOW)
        assert "Setup" not in report.logs_by_tags
        assert "Setup" not in report.succeeding_tests

    def test_records_drop_tag_and_level(self):
        report = aggregate(_stream(), [], NOW)
        records = report.logs_by_tags["DeploymentPDBTest"]
        assert len(records) == 3
        assert records[1] == {
            "timestamp": "2026-03-14T09:00:00+00:00",
            "message": "Check 3: running pods 4 < minimum 5",
            "attempt": 3,
        }

    def test_no_tags(self):
        report = aggregate(["garbage", _line("Setup", "only bootstrap")], [], NOW)
        assert report.success_ratio == "N/A"
        assert report.tag_count == 0

    def test_idempotent_except_timestamp(self):
        first = aggregate(_stream(), ["DeploymentTopologyTest"], NOW)
        second = aggregate(_stream(), ["DeploymentTopologyTest"], datetime(2027, 1, 1))
        assert first.model_dump(exclude={"test_timestamp"}) == second.model_dump(exclude={"test_timestamp"})
        assert first.to_json() == aggregate(_stream(), ["DeploymentTopologyTest"], NOW).to_json()


class TestSuccessRatio:
    def test_formats_two_decimals(self):
        assert success_ratio(2, 1) == "66.67%"
        assert success_ratio(0, 3) == "0.00%"

    def test_undefined_without_tags(self):
        assert success_ratio(0, 0) == "N/A"


class TestWriteReport:
    def test_writes_named_file_and_creates_directory(self, tmp_path):
        report = aggregate(_stream(), [], NOW)
        path = write_report(report, tmp_path / "temp", NOW)
        assert path == tmp_path / "temp" / "test_suite_log_20260314-092653.json"
        data = json.loads(path.read_text())
        assert data["failed_but_not_allowed"] == ["DeploymentPDBTest", "DeploymentTopologyTest"]
        assert list(data) == [
            "test_timestamp",
            "failing_tests",
            "succeeding_tests",
            "allowed_to_fail_tests",
            "failed_but_not_allowed",
            "success_ratio",
            "logs_by_tags",
        ]
        assert path.read_text().startswith('{\n "test_timestamp"')

    def test_round_trips_through_model(self, tmp_path):
        report = aggregate(_stream(), [], NOW)
        path = write_report(report, tmp_path, NOW)
        assert FinalReport.model_validate_json(path.read_text()) == report

    def test_serialized_keys_match_field_names(self):
        report = aggregate([_line("A", "A:TEST_FAILED")], [], NOW)
        assert set(json.loads(report.to_json())) == {
            "test_timestamp",
            "failing_tests",
            "succeeding_tests",
            "allowed_to_fail_tests",
            "failed_but_not_allowed",
            "success_ratio",
            "logs_by_tags",
        }
        assert json.loads(report.to_json())["failed_but_not_allowed"] == ["A"]


class TestPrintSummary:
    def test_suppressed_below_three_tags(self):
        report = aggregate([_line("A", "ok"), _line("B", "ok")], [], NOW)
        assert print_summary(report) is False

    def test_printed_from_three_tags(self):
        assert print_summary(aggregate(_stream(), [], NOW)) is True
