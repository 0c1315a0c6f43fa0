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

"""Zone distribution, skew, and zone-membership predicates over pod placements."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from kubernetes import client

from cluster_tester.cluster import ClusterProvider
from cluster_tester.constants import LABEL_ZONE
from cluster_tester.errors import EmptyDistributionError
from cluster_tester.monitor import InvariantPredicate, Verdict

Placement = tuple[str, str | None]


@dataclass(frozen=True)
class ZoneDistribution:
    """Entity count per populated zone, built fresh from one placement snapshot."""

    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def max_count(self) -> int:
        if not self.counts:
            raise EmptyDistributionError("no zone is populated")
        return max(self.counts.values())

    @property
    def min_count(self) -> int:
        if not self.counts:
            raise EmptyDistributionError("no zone is populated")
        return min(self.counts.values())

    @property
    def skew(self) -> int:
        """``max(count) - min(count)`` over populated zones.

        Raises:
            EmptyDistributionError: If no zone holds an entity.
        """
        return self.max_count - self.min_count

    def __str__(self) -> str:
        if not self.counts:
            return "no zones populated"
        zones = ", ".join(f"{zone}={count}" for zone, count in self.counts.items())
        return f"{zones} (skew {self.skew})"


def zone_distribution(placements: Iterable[Placement]) -> ZoneDistribution:
    """Count entities per zone; entities without a zone are excluded.

    Args:
        placements: (entity, zone) pairs; zone may be None or empty.

    Returns:
        Distribution keyed by zone name in sorted order.
    """
    counts: dict[str, int] = {}
    for _, zone in placements:
        if not zone:
            continue
        counts[zone] = counts.get(zone, 0) + 1
    return ZoneDistribution(dict(sorted(counts.items())))


# ============================================================================
# Predicates
# ============================================================================

def skew_at_most(max_skew: int) -> InvariantPredicate:
    """Invariant: zone skew of the sampled placements never exceeds ``max_skew``."""

    def predicate(placements: Sequence[Placement]) -> Verdict:
        distribution = zone_distribution(placements)
        if not distribution.counts:
            return Verdict.failed("no entity is placed in any zone")
        if distribution.skew > max_skew:
            return Verdict.failed(
                f"zone skew {distribution.skew} exceeds allowed maximum of {max_skew} ({distribution})"
            )
        return Verdict.passed()

    return predicate


def zones_excluded(forbidden: Iterable[str]) -> InvariantPredicate:
    """Invariant: no placed entity sits in any of the ``forbidden`` zones."""
    forbidden = frozenset(forbidden)

    def predicate(placements: Sequence[Placement]) -> Verdict:
        offenders = [f"{entity} in prohibited zone {zone}" for entity, zone in placements if zone in forbidden]
        if offenders:
            return Verdict.failed("; ".join(offenders))
        return Verdict.passed()

    return predicate


def zones_within(allowed: Iterable[str]) -> InvariantPredicate:
    """Invariant: every placed entity sits in one of the ``allowed`` zones."""
    allowed = frozenset(allowed)

    def predicate(placements: Sequence[Placement]) -> Verdict:
        offenders = [
            f"{entity} in zone {zone} outside {sorted(allowed)}"
            for entity, zone in placements if zone and zone not in allowed
        ]
        if offenders:
            return Verdict.failed("; ".join(offenders))
        return Verdict.passed()

    return predicate


# ============================================================================
# Placement resolution
# ============================================================================

def resolve_placements(
    provider: ClusterProvider,
    pods: Iterable[client.V1Pod],
    zone_label: str = LABEL_ZONE,
) -> list[Placement]:
    """Map each pod to the zone label of the node it is scheduled on.

    Unscheduled pods and nodes without the label yield a None zone. Nodes are
    looked up once per call.
    """
    node_zones: dict[str, str | None] = {}
    placements: list[Placement] = []
    for pod in pods:
        node_name = pod.spec.node_name if pod.spec else None
        if not node_name:
            placements.append((pod.metadata.name, None))
            continue
        if node_name not in node_zones:
            node = provider.get_node(node_name)
            node_zones[node_name] = (node.metadata.labels or {}).get(zone_label)
        placements.append((pod.metadata.name, node_zones[node_name]))
    return placements
