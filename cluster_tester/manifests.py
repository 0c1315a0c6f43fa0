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

"""Multi-document manifest decoding and per-kind dispatch to creation calls."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import yaml

from cluster_tester import logger
from cluster_tester.cluster import ClusterProvider
from cluster_tester.constants import DOCUMENT_SEPARATOR
from cluster_tester.errors import (
    ClusterApiError,
    ConfigurationError,
    ManifestApplyError,
    ManifestDecodeError,
    UnsupportedKindError,
)


class ResourceKind(Enum):
    """Closed set of resource families the dispatcher can create."""

    DEPLOYMENT = ("apps/v1", "Deployment")
    STATEFUL_SET = ("apps/v1", "StatefulSet")
    SERVICE = ("v1", "Service")
    POD_DISRUPTION_BUDGET = ("policy/v1", "PodDisruptionBudget")
    HORIZONTAL_POD_AUTOSCALER = ("autoscaling/v2", "HorizontalPodAutoscaler")

    @property
    def api_version(self) -> str:
        return self.value[0]

    @property
    def kind_name(self) -> str:
        return self.value[1]

    @classmethod
    def lookup(cls, api_version: str, kind: str) -> ResourceKind | None:
        for member in cls:
            if member.value == (api_version, kind):
                return member
        return None


# Every ResourceKind must have exactly one entry here.
CREATORS: dict[ResourceKind, str] = {
    ResourceKind.DEPLOYMENT: "create_deployment",
    ResourceKind.STATEFUL_SET: "create_stateful_set",
    ResourceKind.SERVICE: "create_service",
    ResourceKind.POD_DISRUPTION_BUDGET: "create_pod_disruption_budget",
    ResourceKind.HORIZONTAL_POD_AUTOSCALER: "create_horizontal_pod_autoscaler",
}


@dataclass(frozen=True)
class ResourceDescriptor:
    """One decoded manifest document.

    Attributes:
        index: 1-based position of the document in its blob.
        kind: Resource family.
        namespace: Target namespace (document value or the caller's default).
        name: ``metadata.name``.
        payload: Decoded document, passed to the API as the request body.
    """

    index: int
    kind: ResourceKind
    namespace: str
    name: str
    payload: dict[str, Any]

    def __str__(self) -> str:
        return f"{self.kind.kind_name} {self.namespace}/{self.name}"


# ============================================================================
# Decoding
# ============================================================================

_CLOSING_SEPARATOR = re.compile(r"(\A|\n)---[ \t]*\r?\n?\Z")
_CLOSING_SEPARATOR_BYTES = re.compile(rb"(\A|\n)---[ \t]*\r?\n?\Z")


def split_documents(blob: str | bytes) -> list[str | bytes]:
    """Split a blob on the literal document separator.

    A separator closing the last document without a newline after it is
    dropped, leaving that document intact.

    Args:
        blob: Raw manifest content.

    Returns:
        Every document in order, including empty ones, so positions stay stable.
    """
    separator = DOCUMENT_SEPARATOR.encode() if isinstance(blob, bytes) else DOCUMENT_SEPARATOR
    documents = blob.split(separator)
    closing = _CLOSING_SEPARATOR_BYTES if isinstance(blob, bytes) else _CLOSING_SEPARATOR
    documents[-1] = closing.sub(lambda match: match.group(1), documents[-1])
    return documents


def decode_document(index: int, document: str | bytes, default_namespace: str) -> ResourceDescriptor | None:
    """Decode one document into a descriptor.

    Args:
        index: 1-based position of the document, used in errors.
        document: Raw document text.
        default_namespace: Namespace used when the document sets none.

    Returns:
        The descriptor, or None when the document holds only comments.

    Raises:
        ManifestDecodeError: If the document is not valid UTF-8 or YAML, or lacks identity fields.
        UnsupportedKindError: If apiVersion/kind is outside the registered set.
    """
    if isinstance(document, bytes):
        try:
            document = document.decode("utf-8")
        except UnicodeDecodeError as err:
            raise ManifestDecodeError(index, f"invalid UTF-8: {err}") from err
    try:
        doc = yaml.safe_load(document)
    except yaml.YAMLError as err:
        raise ManifestDecodeError(index, f"invalid YAML: {err}") from err
    if doc is None:
        return None
    if not isinstance(doc, dict):
        raise ManifestDecodeError(index, f"document is a {type(doc).__name__}, not a mapping")

    api_version, kind = doc.get("apiVersion"), doc.get("kind")
    if not isinstance(api_version, str) or not isinstance(kind, str):
        raise ManifestDecodeError(index, "document is missing apiVersion or kind")
    metadata = doc.get("metadata")
    if not isinstance(metadata, dict) or not isinstance(metadata.get("name"), str):
        raise ManifestDecodeError(index, "document is missing metadata.name")

    resource_kind = ResourceKind.lookup(api_version, kind)
    if resource_kind is None:
        raise UnsupportedKindError(index, f"{api_version}/{kind}")

    namespace = metadata.get("namespace") or default_namespace
    metadata["namespace"] = namespace
    return ResourceDescriptor(
        index=index,
        kind=resource_kind,
        namespace=namespace,
        name=metadata["name"],
        payload=doc,
    )


# ============================================================================
# Dispatch
# ============================================================================

def dispatch(provider: ClusterProvider, descriptor: ResourceDescriptor) -> None:
    """Create ``descriptor`` through the provider operation registered for its kind."""
    create = getattr(provider, CREATORS[descriptor.kind])
    create(descriptor.namespace, descriptor.payload)


def decode_manifest(blob: str | bytes, namespace: str) -> tuple[list[ResourceDescriptor], list[tuple[int, str, str]]]:
    """Decode every document in ``blob`` without touching the cluster.

    Args:
        blob: Raw multi-document manifest.
        namespace: Default namespace for documents that set none.

    Returns:
        Decoded descriptors and (index, phase, cause) failures, both in document order.
    """
    descriptors: list[ResourceDescriptor] = []
    failures: list[tuple[int, str, str]] = []
    for index, document in enumerate(split_documents(blob), start=1):
        if not document.strip():
            continue
        try:
            descriptor = decode_document(index, document, namespace)
        except UnsupportedKindError as err:
            failures.append((index, "dispatch", err.reason))
            continue
        except ManifestDecodeError as err:
            failures.append((index, "decode", err.reason))
            continue
        if descriptor is not None:
            descriptors.append(descriptor)
    return descriptors, failures


def validate_manifest(blob: str | bytes, namespace: str) -> list[ResourceDescriptor]:
    """Decode ``blob`` and fail if any document is unusable.

    Raises:
        ManifestApplyError: If any document failed to decode or names an unsupported kind.
    """
    descriptors, failures = decode_manifest(blob, namespace)
    if failures:
        raise ManifestApplyError(failures)
    return descriptors


def apply_manifest(
    provider: ClusterProvider,
    blob: str | bytes,
    namespace: str,
    log: Any = logger,
) -> list[ResourceDescriptor]:
    """Decode every document in ``blob`` and create each resource.

    A failing document never stops its siblings. Creation is one-shot: an
    existing resource surfaces as that document's ConflictError.

    Args:
        provider: Cluster state provider used for creation calls.
        blob: Raw multi-document manifest.
        namespace: Default namespace for documents that set none.
        log: Logger for per-document progress.

    Returns:
        Descriptors of every created resource, in document order.

    Raises:
        ManifestApplyError: If any document failed to decode, dispatch or apply.
    """
    descriptors, failures = decode_manifest(blob, namespace)
    created: list[ResourceDescriptor] = []
    for descriptor in descriptors:
        try:
            dispatch(provider, descriptor)
        except ClusterApiError as err:
            failures.append((descriptor.index, "apply", str(err)))
            continue
        log.info("Created %s", descriptor)
        created.append(descriptor)

    if failures:
        raise ManifestApplyError(sorted(failures, key=lambda failure: failure[0]))
    return created


def read_manifest_field(blob: str | bytes, *keys: str, default: Any = None) -> Any:
    """Safely traverse the first non-empty document of ``blob`` by key path.

    Args:
        blob: Raw manifest content.
        *keys: Sequence of mapping keys to traverse (e.g. ``"spec", "minAvailable"``).
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.

    Raises:
        ManifestDecodeError: If the first document is not valid YAML.
    """
    for index, document in enumerate(split_documents(blob), start=1):
        if not document.strip():
            continue
        try:
            node = yaml.safe_load(document)
        except yaml.YAMLError as err:
            raise ManifestDecodeError(index, f"invalid YAML: {err}") from err
        for key in keys:
            if not isinstance(node, dict):
                return default
            node = node.get(key)
            if node is None:
                return default
        return node
    return default


# ============================================================================
# Manifest sources
# ============================================================================

class ManifestSource(Protocol):
    """Anything that resolves a logical manifest name to raw bytes."""

    def load(self, name: str) -> bytes: ...


class DirectoryManifestSource:
    """Serve manifest blobs by logical name from a directory tree."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def load(self, name: str) -> bytes:
        """Read the manifest stored at ``root/name``.

        Raises:
            ConfigurationError: If the file cannot be read.
        """
        path = self.root / name
        try:
            return path.read_bytes()
        except OSError as err:
            raise ConfigurationError(f"manifest file error: {err} (checked: {path})") from err
