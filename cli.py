#!/usr/bin/env python3
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

"""
cli.py - Convergence verification suite for Kubernetes clusters.

Subcommands:
    suite     Run scenarios and write the final report (run, list)
    manifest  Decode and apply multi-document manifests (apply, validate)
    report    Rebuild the final report from a saved log stream (build)

Examples:
    # Run every scenario against the current kubeconfig context
    ./cli.py suite run

    # Run two scenarios, tolerating a topology failure
    ./cli.py suite run --only DeploymentPDBTest --only DeploymentTopologyTest \
        --allowed-to-fail DeploymentTopologyTest

    # Check a manifest offline, then apply it
    ./cli.py manifest validate manifests/pdb_deployment/deployment.yaml
    ./cli.py manifest apply manifests/pdb_deployment/deployment.yaml --namespace test-ns

    # Rebuild a report from captured JSON log lines
    ./cli.py report build suite.log --output-dir ./temp

Cluster access is selected with ACCESS_MODE (KUBECONFIG, LOCAL_K8S_API,
EXTERNAL_K8S_API); see README.md for every environment variable.
"""

from __future__ import annotations

import logging
import sys

import typer

from cluster_tester import console
from cluster_tester.commands import manifest_cmd, report_cmd, suite_cmd

app = typer.Typer(
    help="Convergence verification suite for Kubernetes clusters.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(suite_cmd.app, name="suite")
app.add_typer(manifest_cmd.app, name="manifest")
app.add_typer(report_cmd.app, name="report")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)
