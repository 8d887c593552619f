"""
Constraint engine: one analysis session's constraint store.

Create one ``ConstraintEngine`` per session or request and pass it
explicitly. Graph analyses run on an immutable snapshot of the store taken at
call time, so constraints added or removed during an analysis never affect
it.

Usage::

    engine = ConstraintEngine()
    engine.add_constraints(to_constraint_models(report))
    graph = engine.build_dependency_graph()
    impact = engine.quantify_total_impact('material:lithium')
    actions = engine.find_optimal_mitigation('material:lithium', top_n=3)
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from . import dependency_graph, mitigation
from .constraints import (
    CONSTRAINT_TYPES,
    ConstraintModel,
    ConstraintNotFoundError,
    MitigationAction,
    QuantifiedImpact,
)
from .dependency_graph import DependencyGraph
from .mitigation import MitigationPortfolio

logger = logging.getLogger(__name__)


@dataclass
class ConstraintScenario:
    """A named combination of constraints with its mitigation plan."""
    name: str
    description: str
    constraints: List[ConstraintModel]
    probability: float                  # joint probability, constraints assumed independent
    aggregated_impact: QuantifiedImpact
    critical_path: List[str]
    mitigation_plan: MitigationPortfolio
    assumptions: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


@dataclass
class MetricComparison:
    """One metric across scenarios and the scenario that does best on it."""
    metric: str
    values: Dict[str, float]
    winner: str


@dataclass
class ScenarioComparison:
    scenarios: List[ConstraintScenario]
    metrics: List[MetricComparison]

    def winner(self, metric: str) -> str:
        for m in self.metrics:
            if m.metric == metric:
                return m.winner
        raise KeyError(metric)

    def to_dataframe(self) -> pd.DataFrame:
        """Scenarios as rows, metrics as columns."""
        return pd.DataFrame(
            {m.metric: m.values for m in self.metrics},
            index=[s.name for s in self.scenarios],
        )


# (metric, value of a scenario, True when lower is better)
SCENARIO_METRICS = (
    ('expected_impact', lambda s: s.aggregated_impact.financial.expected, True),
    ('risk_score', lambda s: s.aggregated_impact.risk.risk_score, True),
    ('mitigation_roi', lambda s: s.mitigation_plan.roi, False),
)


def _metric_winner(values: Dict[str, float], lower_is_better: bool) -> str:
    """Best scenario on one metric; ties go to the first scenario given."""
    sign = 1.0 if lower_is_better else -1.0
    return min(values, key=lambda name: sign * values[name])


class ConstraintEngine:
    """Thread-safe constraint store plus the graph analyses over it."""

    def __init__(self, constraints: Optional[Iterable[ConstraintModel]] = None):
        self._lock = threading.Lock()
        self._constraints: Dict[str, ConstraintModel] = {}
        self._scenarios: Dict[str, ConstraintScenario] = {}
        if constraints is not None:
            self.add_constraints(constraints)

    def __len__(self):
        with self._lock:
            return len(self._constraints)

    def __contains__(self, constraint_id):
        with self._lock:
            return constraint_id in self._constraints

    # ── Store ────────────────────────────────────────────────────────────────

    def add_constraint(self, model: ConstraintModel):
        """Register a constraint, replacing one with the same id."""
        if not isinstance(model, ConstraintModel):
            raise TypeError(f"Expected ConstraintModel, got {type(model).__name__}")
        with self._lock:
            if model.id in self._constraints:
                logger.debug(f"Replacing constraint '{model.id}'")
            self._constraints[model.id] = model

    def add_constraints(self, models: Iterable[ConstraintModel]):
        for model in models:
            self.add_constraint(model)

    def remove_constraint(self, constraint_id: str) -> ConstraintModel:
        with self._lock:
            if constraint_id not in self._constraints:
                raise ConstraintNotFoundError(constraint_id)
            return self._constraints.pop(constraint_id)

    def set_status(self, constraint_id: str, status: str) -> ConstraintModel:
        """Replace a constraint with a copy in a new lifecycle status."""
        with self._lock:
            if constraint_id not in self._constraints:
                raise ConstraintNotFoundError(constraint_id)
            updated = self._constraints[constraint_id].with_status(status)
            self._constraints[constraint_id] = updated
        return updated

    def get_constraint(self, constraint_id: str) -> ConstraintModel:
        with self._lock:
            try:
                return self._constraints[constraint_id]
            except KeyError:
                raise ConstraintNotFoundError(constraint_id) from None

    def get_active_constraints(self) -> List[ConstraintModel]:
        with self._lock:
            return [c for c in self._constraints.values() if c.status == 'active']

    def get_constraints_by_type(self, constraint_type: str) -> List[ConstraintModel]:
        if constraint_type not in CONSTRAINT_TYPES:
            raise ValueError(f"Unknown constraint type '{constraint_type}'; "
                             f"expected one of {CONSTRAINT_TYPES}")
        with self._lock:
            return [c for c in self._constraints.values() if c.type == constraint_type]

    def snapshot(self) -> Mapping[str, ConstraintModel]:
        """Read-only copy of the store."""
        with self._lock:
            return MappingProxyType(dict(self._constraints))

    # ── Analyses ─────────────────────────────────────────────────────────────

    def build_dependency_graph(self, constraint_ids: Optional[Iterable[str]] = None) -> DependencyGraph:
        """
        Dependency graph over ``constraint_ids`` (default: active constraints)
        and everything they can trigger.
        """
        snapshot = self.snapshot()
        if constraint_ids is None:
            constraint_ids = [c.id for c in snapshot.values() if c.status == 'active']
        return dependency_graph.build_dependency_graph(snapshot, constraint_ids)

    def quantify_total_impact(self, constraint_id: str, decay_factor: float = 1.0) -> QuantifiedImpact:
        return dependency_graph.quantify_total_impact(self.snapshot(), constraint_id, decay_factor)

    def find_optimal_mitigation(self, constraint_id: str, top_n: Optional[int] = None,
                                min_feasibility: Optional[float] = None) -> List[MitigationAction]:
        """Rank a constraint's mitigation options by ROI."""
        constraint = self.get_constraint(constraint_id)
        return mitigation.rank_mitigations(constraint.mitigation_options, top_n=top_n,
                                           min_feasibility=min_feasibility)

    def optimize_mitigation_portfolio(self, constraint_ids: Iterable[str],
                                      budget: Optional[float] = None) -> MitigationPortfolio:
        """Best set of actions across several constraints within a budget."""
        snapshot = self.snapshot()
        actions = []
        for cid in constraint_ids:
            if cid not in snapshot:
                raise ConstraintNotFoundError(cid)
            actions.extend(snapshot[cid].mitigation_options)
        return mitigation.select_portfolio(actions, budget)

    def create_scenario(self, name: str, constraint_ids: Iterable[str], description: str = '',
                        assumptions: Optional[Dict[str, Any]] = None,
                        budget: Optional[float] = None) -> ConstraintScenario:
        """
        Combine constraints into a scenario.

        The scenario holds the combined direct impact, the critical path of
        the constraints' dependency graph and a mitigation portfolio.
        """
        ids = list(constraint_ids)
        snapshot = self.snapshot()
        for cid in ids:
            if cid not in snapshot:
                raise ConstraintNotFoundError(cid)
        models = [snapshot[cid] for cid in ids]

        graph = dependency_graph.build_dependency_graph(snapshot, ids)
        aggregated = dependency_graph.aggregate_impacts(models)
        plan = mitigation.select_portfolio(
            [a for m in models for a in m.mitigation_options], budget
        )

        scenario = ConstraintScenario(
            name=name,
            description=description,
            constraints=models,
            probability=aggregated.risk.probability,
            aggregated_impact=aggregated,
            critical_path=graph.critical_path(),
            mitigation_plan=plan,
            assumptions=dict(assumptions or {}),
            warnings=list(graph.warnings),
        )
        with self._lock:
            self._scenarios[name] = scenario
        logger.info(f"Scenario '{name}': {len(models)} constraints, "
                    f"expected impact ${aggregated.financial.expected:,.0f}, "
                    f"critical path {' -> '.join(scenario.critical_path) or '(none)'}")
        return scenario

    def get_scenario(self, name: str) -> ConstraintScenario:
        with self._lock:
            return self._scenarios[name]

    def compare_scenarios(self, names: Iterable[str]) -> ScenarioComparison:
        """
        Compare stored scenarios on expected impact, risk score and
        mitigation ROI.

        Parameters
        ----------
        names : iterable of str
            Names given to :meth:`create_scenario`. Duplicates are ignored.

        Returns
        -------
        ScenarioComparison
            Per-metric values by scenario name, with the winner: lowest
            expected impact, lowest risk score, highest mitigation ROI.

        Raises
        ------
        KeyError
            If a scenario was never created.
        ValueError
            If no names are given.
        """
        names = list(dict.fromkeys(names))
        if not names:
            raise ValueError("No scenarios to compare")
        with self._lock:
            missing = [n for n in names if n not in self._scenarios]
            if missing:
                raise KeyError(f"Unknown scenarios: {missing}")
            scenarios = [self._scenarios[n] for n in names]

        metrics = []
        for metric, value_of, lower_is_better in SCENARIO_METRICS:
            values = {s.name: float(value_of(s)) for s in scenarios}
            metrics.append(MetricComparison(metric=metric, values=values,
                                            winner=_metric_winner(values, lower_is_better)))
        logger.info("Scenario comparison: " + ", ".join(f"{m.metric} -> {m.winner}" for m in metrics))
        return ScenarioComparison(scenarios=scenarios, metrics=metrics)
