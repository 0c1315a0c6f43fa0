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

"""Manifest subcommands (apply, validate)."""

from __future__ import annotations

from pathlib import Path

import typer

from cluster_tester import console
from cluster_tester.cluster import connect
from cluster_tester.config import load_settings
from cluster_tester.errors import ConfigurationError
from cluster_tester.manifests import apply_manifest, validate_manifest

app = typer.Typer(help="Decode and apply multi-document manifests.")


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as err:
        raise ConfigurationError(f"manifest file error: {err} (checked: {path})") from err


@app.command()
def apply(
    path: Path = typer.Argument(..., help="Manifest file (documents separated by ---)"),
    namespace: str | None = typer.Option(None, "--namespace", help="Default namespace (overrides TEST_NAMESPACE)"),
) -> None:
    """Create every resource in a manifest through the kind dispatcher."""
    blob = _read(path)
    access_cfg, suite_cfg = load_settings()
    target = namespace or suite_cfg.test_namespace
    with connect(access_cfg) as provider:
        created = apply_manifest(provider, blob, target)
    console.print(f"[green]\u2705 Created {len(created)} resources in {target}[/green]")
    for descriptor in created:
        console.print(f"  {descriptor}")


@app.command()
def validate(
    path: Path = typer.Argument(..., help="Manifest file (documents separated by ---)"),
    namespace: str = typer.Option("default", "--namespace", help="Namespace assumed for unscoped documents"),
) -> None:
    """Decode a manifest offline and report every document that would fail."""
    descriptors = validate_manifest(_read(path), namespace)
    console.print(f"[green]\u2705 {len(descriptors)} documents decoded[/green]")
    for descriptor in descriptors:
        console.print(f"  {descriptor}")
