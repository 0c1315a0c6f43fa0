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

"""Exception hierarchy for manifest application, cluster access and monitoring."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cluster_tester.monitor import MonitorResult


class ClusterTesterError(Exception):
    """Base class for every error raised by cluster_tester."""


class ConfigurationError(ClusterTesterError):
    """Invalid settings or missing credential material; raised before any polling."""


# ============================================================================
# Manifest errors
# ============================================================================

class ManifestDecodeError(ClusterTesterError):
    """A single manifest document could not be decoded."""

    def __init__(self, index: int, reason: str) -> None:
        super().__init__(reason)
        self.index = index
        self.reason = reason


class UnsupportedKindError(ManifestDecodeError):
    """A decoded document names a resource kind that has no creation operation."""

    def __init__(self, index: int, type_name: str) -> None:
        super().__init__(index, f"unsupported type {type_name}")
        self.type_name = type_name


class ManifestApplyError(ClusterTesterError):
    """Aggregate of every per-document failure from one manifest apply.

    Attributes:
        failures: List of (document index, phase, cause) tuples in document order.
    """

    def __init__(self, failures: list[tuple[int, str, str]]) -> None:
        self.failures = failures
        lines = [f"Document {index} {phase} failed: {cause}" for index, phase, cause in failures]
        super().__init__("manifest application errors:\n" + "\n".join(lines))

    @property
    def indices(self) -> list[int]:
        return [index for index, _, _ in self.failures]


# ============================================================================
# Cluster API errors
# ============================================================================

class ClusterApiError(ClusterTesterError):
    """A cluster API call failed (transport error or non-success status)."""

    def __init__(self, message: str, status: int | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class NotFoundError(ClusterApiError):
    """The addressed resource does not exist (HTTP 404)."""


class ConflictError(ClusterApiError):
    """The resource already exists or was modified concurrently (HTTP 409)."""


# ============================================================================
# Monitor outcomes
# ============================================================================

class MonitorFailure(ClusterTesterError):
    """A convergence run ended in a failure outcome."""

    def __init__(self, result: MonitorResult) -> None:
        super().__init__(result.message)
        self.result = result


class InvariantViolation(MonitorFailure):
    """The immediate invariant failed on a sample."""


class ConvergenceTimeout(MonitorFailure):
    """The terminal predicate did not hold before the deadline."""


class ObservationUnavailable(MonitorFailure):
    """Cluster state could not be read within the allowed consecutive attempts."""


class EmptyDistributionError(ClusterTesterError, ValueError):
    """Skew was requested over a distribution with no populated zone."""


class ChannelClosedError(ClusterTesterError):
    """The log channel was written to or drained after it was drained."""


class ScenarioCheckError(ClusterTesterError):
    """A one-shot scenario check found the cluster in an unexpected state."""
