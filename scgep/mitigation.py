"""
Mitigation Optimizer
====================

Ranks and selects mitigation actions for constraints.

- ``rank_mitigations``: NPV impact per dollar, highest first; ties go to the
  more feasible action, remaining ties keep their declared order
- ``select_portfolio``: budget-constrained 0-1 knapsack over actions from one
  or more constraints, solved with ``scipy.optimize.milp``; an action is only
  selected together with the actions it depends on
- ``implementation_sequence``: dependency order for a set of actions

Actions are never modified; every function returns new lists.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

import numpy as np
from scipy.optimize import Bounds, LinearConstraint, milp

from . import config
from .constraints import MitigationAction

logger = logging.getLogger(__name__)


@dataclass
class MitigationPortfolio:
    actions: List[MitigationAction] = field(default_factory=list)
    total_cost: float = 0.0
    expected_benefit: float = 0.0
    implementation_sequence: List[str] = field(default_factory=list)
    budget: Optional[float] = None

    @property
    def roi(self) -> float:
        if self.total_cost > 0:
            return self.expected_benefit / self.total_cost
        return 0.0


def rank_mitigations(actions: Iterable[MitigationAction],
                     top_n: Optional[int] = None,
                     min_feasibility: Optional[float] = None) -> List[MitigationAction]:
    """
    Order actions by ROI (``npv_impact / cost``) descending.

    Parameters
    ----------
    actions : iterable of MitigationAction
    top_n : int, optional
        Keep only the first ``top_n`` ranked actions.
    min_feasibility : float, optional
        Drop actions less feasible than this.

    Returns
    -------
    list of MitigationAction
        Actions without a positive cost have no ROI and are left out.
    """
    candidates = []
    for action in actions:
        if action.roi is None:
            logger.warning(f"Mitigation '{action.id}' has non-positive cost ({action.cost}); "
                           f"excluded from ROI ranking")
            continue
        if min_feasibility is not None and action.feasibility < min_feasibility:
            continue
        candidates.append(action)

    # list.sort is stable, equal keys keep their input order
    candidates.sort(key=lambda a: (-a.roi, -a.feasibility))
    if top_n is not None:
        candidates = candidates[:top_n]
    return candidates


def implementation_sequence(actions: Sequence[MitigationAction]) -> List[str]:
    """
    Order action ids so that every action follows the actions it depends on.

    Dependencies outside ``actions`` are ignored. When the remaining actions
    all wait on each other, the first one in input order is scheduled to
    break the cycle.
    """
    remaining = [a for a in actions]
    pending = {a.id for a in remaining}
    ordered: List[str] = []

    while remaining:
        ready = [a for a in remaining if not any(dep in pending for dep in a.dependencies)]
        if not ready:
            ready = [remaining[0]]
            logger.warning(f"Circular mitigation dependencies; scheduling '{ready[0].id}' first")
        for a in ready:
            ordered.append(a.id)
            pending.discard(a.id)
        ready_ids = {a.id for a in ready}
        remaining = [a for a in remaining if a.id not in ready_ids]
    return ordered


def select_portfolio(actions: Iterable[MitigationAction],
                     budget: Optional[float] = None,
                     min_feasibility: float = config.MIN_PORTFOLIO_FEASIBILITY) -> MitigationPortfolio:
    """
    Choose the actions that maximise total NPV impact within a budget.

    Only actions at least ``min_feasibility`` feasible with a positive NPV
    impact are considered. Without a budget every such action is selected.
    """
    candidates = [a for a in actions if a.feasibility >= min_feasibility and a.npv_impact > 0]

    if budget is None:
        selected = sorted(_with_available_prerequisites(candidates), key=lambda a: -a.npv_impact)
    elif not candidates:
        selected = []
    else:
        selected = _knapsack(candidates, budget)

    portfolio = MitigationPortfolio(
        actions=selected,
        total_cost=sum(a.cost for a in selected),
        expected_benefit=sum(a.npv_impact for a in selected),
        implementation_sequence=implementation_sequence(selected),
        budget=budget,
    )
    logger.info(f"Mitigation portfolio: {len(selected)} of {len(candidates)} candidate actions, "
                f"cost ${portfolio.total_cost:,.0f}, benefit ${portfolio.expected_benefit:,.0f}")
    return portfolio


def _with_available_prerequisites(candidates: List[MitigationAction]) -> List[MitigationAction]:
    """Drop actions whose prerequisites (directly or transitively) are not candidates."""
    kept = list(candidates)
    while True:
        ids = {a.id for a in kept}
        remaining = [a for a in kept if all(dep in ids for dep in a.dependencies)]
        if len(remaining) == len(kept):
            return kept
        kept = remaining


def _knapsack(candidates: List[MitigationAction], budget: float) -> List[MitigationAction]:
    """
    0-1 knapsack:  max Σ npv_i x_i  s.t.  Σ cost_i x_i <= budget,
    x_i <= x_j for every dependency j of i, x binary.
    """
    n = len(candidates)
    index = {a.id: i for i, a in enumerate(candidates)}

    rows = [np.array([a.cost for a in candidates])]
    lower = [-np.inf]
    upper = [budget]
    for i, a in enumerate(candidates):
        for dep in a.dependencies:
            row = np.zeros(n)
            row[i] = 1.0
            # a prerequisite that is not a candidate rules the action out
            if dep in index:
                row[index[dep]] = -1.0
            rows.append(row)
            lower.append(-np.inf)
            upper.append(0.0)

    res = milp(
        c=-np.array([a.npv_impact for a in candidates]),
        constraints=LinearConstraint(np.vstack(rows), lower, upper),
        integrality=np.ones(n),
        bounds=Bounds(0, 1),
    )
    if not res.success:
        logger.warning(f"Mitigation knapsack did not solve: {res.message}")
        return []

    chosen = [candidates[i] for i in range(n) if res.x[i] > 0.5]
    return sorted(chosen, key=lambda a: -a.npv_impact)
