"""
Material Stock-Flow Accounting
==============================

Tracks, per planning period, the stock and consumption of each material given
a deployment schedule.

Model Structure:
- Available(t) = Stock(t-1) + Supply(t) + Recovered(t)
- Committed draw(t) = commitments made in t × material intensity
  (material is reserved when a build is committed)
- Realized draw(t) = commitments that become operational in t × intensity
  (the same material, shifted by the technology's lead time)
- Stock(t) = max(0, Available(t) - Committed draw(t))
- Shortfall(t) = max(0, Committed draw(t) - Available(t))
- Utilization(t) = Committed draw(t) / Available(t), left uncapped

The ``MaterialLedger`` is the incremental form used by the solver while it
allocates; ``MaterialFlowTracker`` replays a finished solution through the
same ledger so both always agree.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from . import config
from .domain import PlanningConfiguration

if TYPE_CHECKING:
    from .solver import Solution

logger = logging.getLogger(__name__)


def utilization_ratio(draw: float, available: float) -> float:
    """Draw over available supply; ``inf`` when drawing against nothing."""
    if available > 0:
        return draw / available
    if draw > 0:
        return float('inf')
    return 0.0


# ============================================================================
# INCREMENTAL LEDGER
# ============================================================================

@dataclass
class MaterialPeriodState:
    """Closing position of one material in one period."""
    available: float
    committed: float
    remaining: float
    shortfall: float


class MaterialLedger:
    """
    Period-by-period material balance.

    Usage::

        ledger.open_period(t, recovered)
        ledger.reserve('lithium', 120.0)
        states = ledger.close_period()
    """

    def __init__(self, cfg: PlanningConfiguration):
        self.cfg = cfg
        self.stock: Dict[str, float] = {
            m.id: cfg.effective_stock(m) for m in cfg.materials
        }
        self.period: Optional[int] = None
        self.available: Dict[str, float] = {}
        self.committed: Dict[str, float] = {}

    def open_period(self, period: int, recovered: Optional[Dict[str, float]] = None):
        recovered = recovered or {}
        self.period = period
        self.available = {
            m.id: self.stock[m.id] + self.cfg.effective_supply(m) + recovered.get(m.id, 0.0)
            for m in self.cfg.materials
        }
        self.committed = {m.id: 0.0 for m in self.cfg.materials}

    def remaining(self, material_id: str) -> float:
        return max(0.0, self.available[material_id] - self.committed[material_id])

    def reserve(self, material_id: str, quantity: float):
        self.committed[material_id] += quantity

    def close_period(self) -> Dict[str, MaterialPeriodState]:
        states = {}
        for mat_id, available in self.available.items():
            committed = self.committed[mat_id]
            remaining = max(0.0, available - committed)
            states[mat_id] = MaterialPeriodState(
                available=available,
                committed=committed,
                remaining=remaining,
                shortfall=max(0.0, committed - available),
            )
            # Stock equation: Stock(t) = Available(t) - Draw(t), never negative
            self.stock[mat_id] = remaining
        self.period = None
        return states


def recovered_material(cfg: PlanningConfiguration,
                       retired: Iterable[Tuple[str, float]]) -> Dict[str, float]:
    """
    Material returned to supply by retiring capacity.

    ``retired`` yields (technology_id, MW) pairs.
    """
    recovered: Dict[str, float] = {}
    for tech_id, capacity in retired:
        tech = cfg.technology_index[tech_id]
        for mat_id, intensity in tech.material_requirements.items():
            material = cfg.material_index.get(mat_id)
            if material is None or material.recovery_rate <= 0:
                continue
            recovered[mat_id] = recovered.get(mat_id, 0.0) + capacity * intensity * material.recovery_rate
    return recovered


# ============================================================================
# REPLAY
# ============================================================================

@dataclass
class MaterialFlowSeries:
    """Time series for one material, indexed by period."""
    material_id: str
    periods: List[int]
    years: List[int]
    available: np.ndarray
    committed_draw: np.ndarray
    realized_draw: np.ndarray
    remaining_stock: np.ndarray
    shortfall: np.ndarray
    utilization: np.ndarray

    @property
    def peak_utilization(self) -> float:
        if len(self.utilization) == 0:
            return 0.0
        return float(np.max(self.utilization))

    @property
    def peak_period(self) -> Optional[int]:
        if len(self.utilization) == 0:
            return None
        return self.periods[int(np.argmax(self.utilization))]

    @property
    def is_over_committed(self) -> bool:
        return bool(np.any(self.utilization > 1.0 + config.CONSERVATION_TOLERANCE))


@dataclass
class MaterialFlowResult:
    """Container for the replayed material flows of one solution"""
    scenario: str
    series: Dict[str, MaterialFlowSeries] = field(default_factory=dict)

    def __getitem__(self, material_id: str) -> MaterialFlowSeries:
        return self.series[material_id]

    def __iter__(self):
        return iter(self.series.values())

    def peak_utilization(self, material_id: str) -> float:
        return self.series[material_id].peak_utilization

    def conservation_violations(
        self,
        tolerance: float = config.CONSERVATION_TOLERANCE
    ) -> List[Tuple[str, int, float]]:
        """
        Periods where committed draw exceeds available supply plus carried stock.

        Returns
        -------
        list
            (material_id, period, excess_tonnes)
        """
        violations = []
        for s in self.series.values():
            excess = s.committed_draw - s.available
            for i in np.nonzero(excess > tolerance)[0]:
                violations.append((s.material_id, s.periods[i], float(excess[i])))
        return violations

    def to_dataframe(self) -> pd.DataFrame:
        """
        Long-format table with columns:
        - scenario, material, period, year
        - available, committed_draw, realized_draw, remaining_stock,
          shortfall, utilization
        """
        frames = []
        for s in self.series.values():
            frames.append(pd.DataFrame({
                'scenario': self.scenario,
                'material': s.material_id,
                'period': s.periods,
                'year': s.years,
                'available': s.available,
                'committed_draw': s.committed_draw,
                'realized_draw': s.realized_draw,
                'remaining_stock': s.remaining_stock,
                'shortfall': s.shortfall,
                'utilization': s.utilization,
            }))
        if not frames:
            return pd.DataFrame(columns=[
                'scenario', 'material', 'period', 'year', 'available', 'committed_draw',
                'realized_draw', 'remaining_stock', 'shortfall', 'utilization',
            ])
        return pd.concat(frames, ignore_index=True)


class MaterialFlowTracker:
    """
    Replays a solution's deployment schedule period by period.

    Process:
    1. Open the period with carried stock, supply and material recovered from
       the period's retirements
    2. Reserve material for every commitment made in the period
    3. Record realized draw for builds becoming operational in the period
    4. Close the period, carrying the remaining stock forward
    """

    def track(self, solution: 'Solution') -> MaterialFlowResult:
        cfg = solution.config
        n = cfg.n_periods
        mat_ids = [m.id for m in cfg.materials]

        arrays = {
            name: {m: np.zeros(n) for m in mat_ids}
            for name in ('available', 'committed', 'realized', 'remaining', 'shortfall', 'utilization')
        }

        commitments_by_period: Dict[int, list] = {}
        online_by_period: Dict[int, list] = {}
        for c in solution.commitments:
            commitments_by_period.setdefault(c.period, []).append(c)
            online_by_period.setdefault(c.online_period, []).append(c)
        retired_by_period: Dict[int, list] = {}
        for r in solution.retirements:
            retired_by_period.setdefault(r.period, []).append((r.technology_id, r.capacity))

        ledger = MaterialLedger(cfg)
        for t in range(n):
            ledger.open_period(t, recovered_material(cfg, retired_by_period.get(t, [])))

            for c in commitments_by_period.get(t, []):
                tech = cfg.technology_index[c.technology_id]
                for mat_id, intensity in tech.material_requirements.items():
                    ledger.reserve(mat_id, c.capacity * intensity)

            for c in online_by_period.get(t, []):
                tech = cfg.technology_index[c.technology_id]
                for mat_id, intensity in tech.material_requirements.items():
                    arrays['realized'][mat_id][t] += c.capacity * intensity

            for mat_id, state in ledger.close_period().items():
                arrays['available'][mat_id][t] = state.available
                arrays['committed'][mat_id][t] = state.committed
                arrays['remaining'][mat_id][t] = state.remaining
                arrays['shortfall'][mat_id][t] = state.shortfall
                arrays['utilization'][mat_id][t] = utilization_ratio(state.committed, state.available)

        result = MaterialFlowResult(scenario=cfg.scenario_name)
        for mat_id in mat_ids:
            result.series[mat_id] = MaterialFlowSeries(
                material_id=mat_id,
                periods=cfg.periods,
                years=cfg.years,
                available=arrays['available'][mat_id],
                committed_draw=arrays['committed'][mat_id],
                realized_draw=arrays['realized'][mat_id],
                remaining_stock=arrays['remaining'][mat_id],
                shortfall=arrays['shortfall'][mat_id],
                utilization=arrays['utilization'][mat_id],
            )

        over = [s.material_id for s in result if s.is_over_committed]
        if over:
            logger.warning(f"Over-committed materials in '{cfg.scenario_name}': {over}")
        return result


def track_material_flows(solution: 'Solution') -> MaterialFlowResult:
    """Convenience wrapper around :class:`MaterialFlowTracker`."""
    return MaterialFlowTracker().track(solution)
