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

"""Report subcommands (build)."""

from __future__ import annotations

from pathlib import Path

import typer

from cluster_tester import console
from cluster_tester.config import load_settings
from cluster_tester.errors import ConfigurationError
from cluster_tester.report import aggregate, print_summary, write_report

app = typer.Typer(help="Aggregate JSON log lines into a final report.")


@app.command()
def build(
    log_file: Path = typer.Argument(..., help="File of JSON log lines, one record per line"),
    output_dir: Path | None = typer.Option(None, "--output-dir", help="Report directory (overrides REPORT_DIR)"),
    allowed_to_fail: str | None = typer.Option(
        None, "--allowed-to-fail", help="Comma separated tags (overrides ALLOWED_TO_FAIL)"),
) -> None:
    """Rebuild the final report from a saved log stream."""
    try:
        lines = log_file.read_text().splitlines()
    except OSError as err:
        raise ConfigurationError(f"log file error: {err} (checked: {log_file})") from err

    _, suite_cfg = load_settings()
    if allowed_to_fail is not None:
        suite_cfg = suite_cfg.model_copy(update={"allowed_to_fail": allowed_to_fail})

    report = aggregate(lines, suite_cfg.allowed_to_fail_tags)
    path = write_report(report, output_dir or suite_cfg.report_dir)
    if not print_summary(report):
        console.print(f"Tags: {report.tag_count}, success ratio: {report.success_ratio}")
    console.print(f"[green]\u2705 Report written to {path}[/green]")
