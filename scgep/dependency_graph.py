"""
Constraint Dependency Graph and Cascading Impact
================================================

Builds a directed graph over constraints (edge = "can trigger downstream") and
walks it to accumulate system-wide exposure.

Graph construction:
- Nodes are the requested constraints plus every registered constraint
  reachable through their downstream lists
- An iterative DFS marks the nodes on the current path; an edge that
  re-enters the current path closes a cycle, is dropped and recorded as a
  warning on the graph
- Levels follow a topological order: roots are level 0, every other node is
  1 + the highest level among its upstream nodes

Impact quantification:
- Breadth-first over downstream edges with a visited set, so each reachable
  constraint contributes exactly once even when paths converge
- Financial ranges and risk scores add up; operational delay and throughput
  reduction take the maximum; probability is the chance that at least one
  constraint materialises

Both functions take a mapping of constraint id to ConstraintModel, normally a
``ConstraintEngine.snapshot()``.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import networkx as nx

from . import config
from .constraints import (
    ConstraintModel,
    ConstraintNotFoundError,
    FinancialImpact,
    OperationalImpact,
    QuantifiedImpact,
    RiskEstimate,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyEdge:
    source: str
    target: str
    strength: float                     # 0-1
    type: str = 'triggers'


@dataclass
class DependencyGraph:
    """Acyclic view of a constraint set"""
    levels: Dict[str, int]
    edges: List[DependencyEdge]
    dropped_edges: List[Tuple[str, str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    graph: nx.DiGraph = field(default_factory=nx.DiGraph, repr=False, compare=False)

    @property
    def nodes(self) -> List[str]:
        return list(self.levels)

    @property
    def has_cycle(self) -> bool:
        return bool(self.dropped_edges)

    @property
    def roots(self) -> List[str]:
        return [n for n, level in self.levels.items() if level == 0]

    def level(self, constraint_id: str) -> int:
        return self.levels[constraint_id]

    def topological_order(self) -> List[str]:
        # levels are filled in topological order
        return list(self.levels)

    def critical_path(self) -> List[str]:
        """Longest downstream chain (by number of edges)."""
        if not self.levels:
            return []
        return nx.dag_longest_path(self.graph)


def impact_strength(source: ConstraintModel, target: ConstraintModel) -> float:
    """
    Strength of a downstream edge.

    0.5 base, plus the mean severity score of both ends halved, plus 0.1 per
    shared impact area, capped at 1.
    """
    strength = 0.5
    strength += (config.SEVERITY_SCORE[source.severity] + config.SEVERITY_SCORE[target.severity]) / 4
    shared = set(source.impact_areas) & set(target.impact_areas)
    strength += 0.1 * len(shared)
    return min(strength, 1.0)


def build_dependency_graph(constraints: Mapping[str, ConstraintModel],
                           constraint_ids: Optional[Iterable[str]] = None) -> DependencyGraph:
    """
    Build the dependency graph for ``constraint_ids`` (default: all).

    Raises
    ------
    ConstraintNotFoundError
        If a requested id is not in ``constraints``. Unknown ids inside a
        downstream list are skipped with a warning instead.
    """
    start_ids = list(constraint_ids) if constraint_ids is not None else list(constraints)
    for cid in start_ids:
        if cid not in constraints:
            raise ConstraintNotFoundError(cid)

    g = nx.DiGraph()
    warnings: List[str] = []
    dropped: List[Tuple[str, str]] = []
    done = set()

    for start in start_ids:
        if start in done:
            continue
        g.add_node(start)
        path = [start]
        on_path = {start}
        stack = [(start, iter(constraints[start].downstream_impacts))]

        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                path.pop()
                on_path.discard(node)
                done.add(node)
                continue

            if child not in constraints:
                msg = f"Constraint '{node}' lists unknown downstream constraint '{child}'; edge skipped"
                if msg not in warnings:
                    warnings.append(msg)
                    logger.warning(msg)
                continue

            if child in on_path:
                cycle = path[path.index(child):] + [child]
                msg = f"Cycle detected: {' -> '.join(cycle)}; edge {node} -> {child} ignored"
                dropped.append((node, child))
                warnings.append(msg)
                logger.warning(msg)
                continue

            g.add_edge(node, child, strength=impact_strength(constraints[node], constraints[child]))
            if child not in done:
                path.append(child)
                on_path.add(child)
                stack.append((child, iter(constraints[child].downstream_impacts)))

    levels: Dict[str, int] = {}
    for node in nx.topological_sort(g):
        preds = list(g.predecessors(node))
        levels[node] = 1 + max(levels[p] for p in preds) if preds else 0

    edges = [DependencyEdge(u, v, data['strength']) for u, v, data in g.edges(data=True)]
    logger.debug(f"Dependency graph: {g.number_of_nodes()} nodes, {len(edges)} edges, "
                 f"{len(dropped)} dropped")
    return DependencyGraph(levels=levels, edges=edges, dropped_edges=dropped,
                           warnings=warnings, graph=g)


def reachable_constraints(constraints: Mapping[str, ConstraintModel],
                          constraint_id: str) -> List[Tuple[str, int]]:
    """
    Breadth-first walk over downstream edges.

    Returns (constraint id, depth) pairs in visiting order, the start first.
    Every constraint appears once.
    """
    if constraint_id not in constraints:
        raise ConstraintNotFoundError(constraint_id)

    visited = {constraint_id}
    order = []
    queue = deque([(constraint_id, 0)])
    while queue:
        cid, depth = queue.popleft()
        order.append((cid, depth))
        for child in constraints[cid].downstream_impacts:
            if child in visited:
                continue
            if child not in constraints:
                logger.warning(f"Constraint '{cid}' lists unknown downstream constraint '{child}'")
                continue
            visited.add(child)
            queue.append((child, depth + 1))
    return order


def quantify_total_impact(constraints: Mapping[str, ConstraintModel], constraint_id: str,
                          decay_factor: float = 1.0) -> QuantifiedImpact:
    """
    System-wide exposure of a constraint including everything it can trigger.

    Parameters
    ----------
    constraints : mapping
        Constraint id → ConstraintModel.
    constraint_id : str
        Where the cascade starts.
    decay_factor : float
        Weight applied per level of depth to financial values and risk
        scores (1.0 = no decay).
    """
    if not (0.0 <= decay_factor <= 1.0):
        raise ValueError(f"decay_factor must be within [0, 1], got {decay_factor}")

    fin_min = fin_max = fin_expected = 0.0
    risk_score = 0.0
    delay = throughput = 0.0
    no_event = 1.0

    for cid, depth in reachable_constraints(constraints, constraint_id):
        impact = constraints[cid].impact
        weight = decay_factor ** depth
        fin_min += impact.financial.min * weight
        fin_max += impact.financial.max * weight
        fin_expected += impact.financial.expected * weight
        risk_score += impact.risk.risk_score * weight
        delay = max(delay, impact.operational.delay)
        throughput = max(throughput, impact.operational.throughput_reduction)
        no_event *= 1.0 - impact.risk.probability

    probability = 1.0 - no_event
    return QuantifiedImpact(
        financial=FinancialImpact(min=fin_min, max=fin_max, expected=fin_expected),
        operational=OperationalImpact(delay=delay, throughput_reduction=throughput),
        risk=RiskEstimate(
            probability=probability,
            consequence=risk_score / probability if probability > 0 else 0.0,
            risk_score=risk_score,
        ),
    )


def aggregate_impacts(models: Iterable[ConstraintModel]) -> QuantifiedImpact:
    """
    Combined direct impact of constraints assumed to occur together.

    Financial values add up, operational values take the maximum, probability
    is the joint probability and consequence the worst single consequence.
    """
    fin_min = fin_max = fin_expected = 0.0
    delay = throughput = consequence = 0.0
    probability = 1.0
    for m in models:
        fin_min += m.impact.financial.min
        fin_max += m.impact.financial.max
        fin_expected += m.impact.financial.expected
        delay = max(delay, m.impact.operational.delay)
        throughput = max(throughput, m.impact.operational.throughput_reduction)
        probability *= m.impact.risk.probability
        consequence = max(consequence, m.impact.risk.consequence)
    return QuantifiedImpact(
        financial=FinancialImpact(min=fin_min, max=fin_max, expected=fin_expected),
        operational=OperationalImpact(delay=delay, throughput_reduction=throughput),
        risk=RiskEstimate.from_probability(probability, consequence),
    )
