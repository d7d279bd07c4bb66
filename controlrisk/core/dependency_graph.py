"""Control Dependency Graph with Cascade Risk Propagation.

Models compliance controls as a directed acyclic graph where an edge
parent -> child means the child control depends on the parent. When an
upstream control fails, the failure propagates probabilistically to its
dependants.

Cascade Risk Propagation, for each control v in topological order:
    parent_survival = PRODUCT(1 - strength(u, v) * cascade_risk(u)) over parents u
    cascade_from_parents = 1 - parent_survival
    cascade_risk(v) = 1 - (1 - failure_probability(v)) * (1 - cascade_from_parents)

i.e. the union of "v fails on its own" and "v fails because a parent
cascaded", treating both as independent events. Roots keep their own
failure probability.

Cyclic dependency declarations are rejected with ``CycleDetected``; no
cascade value is defined for them.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from controlrisk.core.evidence import failure_probability_from_pass_rate
from controlrisk.utils.error_handling import (
    CycleDetected,
    DataValidationError,
    UnknownNodeReference,
)
from controlrisk.utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_PATH_CANDIDATES = 5
MAX_CRITICAL_PATHS = 3
WHATIF_NOISE_THRESHOLD = 0.01

# =============================================================================
# INPUT MODELS
# =============================================================================


class ControlNode(BaseModel):
    """A compliance control as registered by the control registry.

    ``failure_probability`` defaults to ``1 - pass_rate / 100`` when omitted.
    Registry exports use camelCase keys (``passRate``); both spellings load.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    pass_rate: float = Field(default=100.0, ge=0.0, le=100.0)
    failure_probability: float = Field(ge=0.0, le=1.0)
    category: str = ""

    @model_validator(mode="before")
    @classmethod
    def derive_failure_probability(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("failure_probability", data.get("failureProbability")) is not None:
            return data

        pass_rate = data.get("pass_rate", data.get("passRate", 100.0))
        data = dict(data)
        data.pop("failureProbability", None)
        try:
            data["failure_probability"] = failure_probability_from_pass_rate(
                float(pass_rate)
            )
        except DataValidationError as e:
            raise ValueError(str(e)) from e
        return data


class DependencyEdge(BaseModel):
    """Declared dependency: ``child_id`` depends on ``parent_id``."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    parent_id: str
    child_id: str
    strength: float = Field(ge=0.0, le=1.0)
    type: str = "functional"  # functional, data, operational


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class GraphNode:
    """A control after cascade propagation."""

    id: str
    name: str
    pass_rate: float
    failure_probability: float
    cascade_risk: float
    depth: int
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "pass_rate": self.pass_rate,
            "failure_probability": self.failure_probability,
            "cascade_risk": self.cascade_risk,
            "depth": self.depth,
            "category": self.category,
        }


@dataclass
class CascadeResult:
    """Output of cascade propagation over a control graph.

    Attributes:
        nodes: Controls in topological order with cascade risk and depth
        edges: The dependency edges that were propagated over
        critical_paths: Up to 3 root-to-leaf paths with the highest mean risk
        total_cascade_risk: Mean cascade risk across all controls
        most_vulnerable_node: Control with the highest cascade risk
        cascade_depth: Longest dependency chain (in edges)

    """

    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[DependencyEdge] = field(default_factory=list)
    critical_paths: list[list[str]] = field(default_factory=list)
    total_cascade_risk: float = 0.0
    most_vulnerable_node: GraphNode | None = None
    cascade_depth: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.model_dump() for edge in self.edges],
            "critical_paths": [list(path) for path in self.critical_paths],
            "total_cascade_risk": self.total_cascade_risk,
            "most_vulnerable_node": (
                self.most_vulnerable_node.to_dict() if self.most_vulnerable_node else None
            ),
            "cascade_depth": self.cascade_depth,
        }


@dataclass(frozen=True)
class AffectedControl:
    """Risk change of one control under a forced upstream failure."""

    id: str
    name: str
    original_risk: float
    new_cascade_risk: float
    risk_increase: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "original_risk": self.original_risk,
            "new_cascade_risk": self.new_cascade_risk,
            "risk_increase": self.risk_increase,
        }


@dataclass
class WhatIfResult:
    """Delta analysis for one forced control failure."""

    failed_control_id: str
    failed_control_name: str
    affected_controls: list[AffectedControl] = field(default_factory=list)
    total_impact: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "failed_control_id": self.failed_control_id,
            "failed_control_name": self.failed_control_name,
            "affected_controls": [c.to_dict() for c in self.affected_controls],
            "total_impact": self.total_impact,
        }


# =============================================================================
# GRAPH ENGINE
# =============================================================================


def _coerce_node(node: ControlNode | Mapping[str, Any]) -> ControlNode:
    if isinstance(node, ControlNode):
        return node
    return ControlNode.model_validate(dict(node))


def _coerce_edge(edge: DependencyEdge | Mapping[str, Any]) -> DependencyEdge:
    if isinstance(edge, DependencyEdge):
        return edge
    return DependencyEdge.model_validate(dict(edge))


class ControlDependencyGraph:
    """Cascade risk engine over a declared control dependency graph.

    Parallel edges between the same pair of controls are kept; each one
    contributes its own survival factor.
    """

    def __init__(
        self,
        nodes: Sequence[ControlNode | Mapping[str, Any]],
        edges: Sequence[DependencyEdge | Mapping[str, Any]],
    ):
        """Build the graph, validating every node reference.

        Raises:
            DataValidationError: If two controls share an id
            UnknownNodeReference: If an edge references an unknown control

        """
        self.nodes = [_coerce_node(n) for n in nodes]
        self.edges = [_coerce_edge(e) for e in edges]
        self.graph = nx.MultiDiGraph()

        for node in self.nodes:
            if node.id in self.graph:
                raise DataValidationError(f"Duplicate control id: {node.id!r}")
            self.graph.add_node(node.id, control=node)

        for edge in self.edges:
            for node_id in (edge.parent_id, edge.child_id):
                if node_id not in self.graph:
                    raise UnknownNodeReference(node_id)
            self.graph.add_edge(
                edge.parent_id,
                edge.child_id,
                strength=edge.strength,
                type=edge.type,
            )

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.graph

    def control(self, node_id: str) -> ControlNode:
        if node_id not in self.graph:
            raise UnknownNodeReference(node_id, context="lookup")
        return self.graph.nodes[node_id]["control"]

    def topological_order(self) -> list[str]:
        """Order controls with Kahn's algorithm.

        Raises:
            CycleDetected: If some controls can never reach in-degree zero

        """
        in_degree = dict(self.graph.in_degree())
        queue = deque(node_id for node_id in self.graph if in_degree[node_id] == 0)

        ordered: list[str] = []
        while queue:
            node_id = queue.popleft()
            ordered.append(node_id)
            for _, child_id in self.graph.out_edges(node_id):
                in_degree[child_id] -= 1
                if in_degree[child_id] == 0:
                    queue.append(child_id)

        if len(ordered) < self.graph.number_of_nodes():
            placed = set(ordered)
            remaining = [node_id for node_id in self.graph if node_id not in placed]
            raise CycleDetected(remaining)

        return ordered

    def propagate(
        self,
        failure_overrides: Mapping[str, float] | None = None,
    ) -> CascadeResult:
        """Propagate cascade risk through the graph.

        Args:
            failure_overrides: Failure probabilities replacing the registered
                ones for specific controls (used for what-if analysis)

        Returns:
            CascadeResult with per-control risk, critical paths and aggregates

        """
        if not self.nodes:
            return CascadeResult()

        overrides = failure_overrides or {}
        propagated: dict[str, GraphNode] = {}

        for node_id in self.topological_order():
            control = self.graph.nodes[node_id]["control"]
            failure_probability = overrides.get(node_id, control.failure_probability)
            parent_edges = list(self.graph.in_edges(node_id, data=True))

            if not parent_edges:
                depth = 0
                cascade_risk = failure_probability
            else:
                depth = 1 + max(propagated[u].depth for u, _, _ in parent_edges)
                parent_survival = 1.0
                for parent_id, _, data in parent_edges:
                    parent_survival *= 1.0 - data["strength"] * propagated[parent_id].cascade_risk
                cascade_from_parents = 1.0 - parent_survival
                cascade_risk = 1.0 - (1.0 - failure_probability) * (1.0 - cascade_from_parents)

            propagated[node_id] = GraphNode(
                id=control.id,
                name=control.name,
                pass_rate=control.pass_rate,
                failure_probability=failure_probability,
                cascade_risk=cascade_risk,
                depth=depth,
                category=control.category,
            )

        ordered_nodes = list(propagated.values())
        most_vulnerable = max(ordered_nodes, key=lambda n: n.cascade_risk)
        total_cascade_risk = sum(n.cascade_risk for n in ordered_nodes) / len(ordered_nodes)
        cascade_depth = max(n.depth for n in ordered_nodes)

        logger.debug(
            f"Propagated cascade risk over {len(ordered_nodes)} controls: "
            f"mean={total_cascade_risk:.4f}, depth={cascade_depth}, "
            f"most vulnerable={most_vulnerable.id}"
        )

        return CascadeResult(
            nodes=ordered_nodes,
            edges=list(self.edges),
            critical_paths=self._critical_paths(ordered_nodes, propagated),
            total_cascade_risk=total_cascade_risk,
            most_vulnerable_node=most_vulnerable,
            cascade_depth=cascade_depth,
        )

    def _critical_paths(
        self,
        ordered_nodes: list[GraphNode],
        propagated: dict[str, GraphNode],
    ) -> list[list[str]]:
        """Trace the riskiest root-to-leaf chains.

        Terminal controls are those nothing depends on (no outgoing edges).
        A root that has dependants is not terminal even though it has no
        parents. From each of the riskiest terminals the walk follows the
        highest-risk parent back to a root; paths are scored by mean risk.
        """
        leaves = [n for n in ordered_nodes if self.graph.out_degree(n.id) == 0]
        candidates = sorted(leaves, key=lambda n: n.cascade_risk, reverse=True)
        candidates = candidates[:MAX_PATH_CANDIDATES]

        scored: list[tuple[list[str], float]] = []
        for leaf in candidates:
            path = [leaf.id]
            current = leaf.id
            while True:
                parent_ids = [u for u, _ in self.graph.in_edges(current)]
                if not parent_ids:
                    break
                riskiest = parent_ids[0]
                for parent_id in parent_ids[1:]:
                    if propagated[parent_id].cascade_risk > propagated[riskiest].cascade_risk:
                        riskiest = parent_id
                path.insert(0, riskiest)
                current = riskiest

            path_risk = sum(propagated[node_id].cascade_risk for node_id in path) / len(path)
            scored.append((path, path_risk))

        scored.sort(key=lambda item: item[1], reverse=True)
        return [path for path, _ in scored[:MAX_CRITICAL_PATHS]]


# =============================================================================
# PUBLIC API
# =============================================================================


def calculate_cascade_risk(
    nodes: Sequence[ControlNode | Mapping[str, Any]],
    edges: Sequence[DependencyEdge | Mapping[str, Any]],
) -> CascadeResult:
    """Propagate cascade risk through a control dependency graph.

    An empty node list yields an empty, well-formed result.

    Raises:
        CycleDetected: If the dependencies are cyclic
        UnknownNodeReference: If an edge references an unknown control

    """
    return ControlDependencyGraph(nodes, edges).propagate()


def simulate_control_failure(
    nodes: Sequence[ControlNode | Mapping[str, Any]],
    edges: Sequence[DependencyEdge | Mapping[str, Any]],
    failed_control_id: str,
    noise_threshold: float = WHATIF_NOISE_THRESHOLD,
) -> WhatIfResult:
    """Simulate what happens when one control fails outright.

    Cascade risk is computed on the registered graph and again with the
    failed control's failure probability forced to 1.0. Other controls whose
    risk rises by more than ``noise_threshold`` are reported, largest first.

    Raises:
        UnknownNodeReference: If ``failed_control_id`` is not a known control

    """
    graph = ControlDependencyGraph(nodes, edges)
    if failed_control_id not in graph:
        raise UnknownNodeReference(failed_control_id, context="what-if simulation")

    baseline = {n.id: n for n in graph.propagate().nodes}
    scenario = graph.propagate({failed_control_id: 1.0})

    affected: list[AffectedControl] = []
    for node in scenario.nodes:
        if node.id == failed_control_id:
            continue
        original_risk = baseline[node.id].cascade_risk
        risk_increase = node.cascade_risk - original_risk
        if risk_increase > noise_threshold:
            affected.append(
                AffectedControl(
                    id=node.id,
                    name=node.name,
                    original_risk=original_risk,
                    new_cascade_risk=node.cascade_risk,
                    risk_increase=risk_increase,
                )
            )

    affected.sort(key=lambda c: c.risk_increase, reverse=True)
    total_impact = sum(c.risk_increase for c in affected)

    logger.info(
        f"What-if failure of {failed_control_id}: {len(affected)} controls affected, "
        f"total impact {total_impact:.4f}"
    )

    return WhatIfResult(
        failed_control_id=failed_control_id,
        failed_control_name=graph.control(failed_control_id).name,
        affected_controls=affected,
        total_impact=total_impact,
    )
