"""
Capacity Expansion Solver
=========================

Period-by-period greedy-with-lookahead capacity expansion under material,
spatial, lead-time and reliability constraints.

Key Features:
1. Builds committed in period t with lead time L become operational at t+L
2. Material is reserved at commitment, so later allocations in the same
   period see the reduced availability immediately
3. Land/offshore area is occupied from commitment until retirement
4. Capacity past its lifetime retires and returns recovered material
5. Unmet reserve margin, peak load or RPS energy is priced as a shortfall
   penalty; only requirements no allocation could ever meet make a solve
   infeasible

Allocation per period and zone:
- RPS pass: renewables ranked by cost per MWh fill the projected renewable
  energy gap at their arrival period
- Reliability pass: all technologies ranked by cost per firm MW fill the
  projected firm-capacity gap (peak × (1 + reserve margin)) at their arrival
  period
- A technology is held back while a cheaper technology with a shorter lead
  time still has headroom to cover the same gap later

The solver is a pure function of its configuration: no randomness and no
wall-clock input to any decision.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import linprog

from . import config
from .domain import PlanningConfiguration, Technology, Zone, require_valid
from .material_flow import MaterialLedger, recovered_material

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Commitment:
    """A build decision: capacity committed in a period for one zone."""
    period: int
    zone_id: str
    technology_id: str
    capacity: float                     # MW
    online_period: int
    retirement_period: Optional[int]    # None when the build outlives the horizon
    driver: str                         # 'rps' or 'reliability'


@dataclass(frozen=True)
class Retirement:
    period: int
    zone_id: str
    technology_id: str
    capacity: float
    existing: bool = False


@dataclass(frozen=True)
class PeriodShortfall:
    """Unmet requirements of one zone in one period."""
    period: int
    zone_id: str
    reserve_shortfall: float            # MW of firm capacity below requirement
    load_shed: float                    # MW of firm capacity below peak load
    rps_shortfall: float                # MWh of renewable energy below target
    penalty: float                      # discounted $


@dataclass(frozen=True)
class MaterialShortfall:
    """Material demanded by an allocation beyond what the period could supply."""
    period: int
    material_id: str
    zone_id: str
    technology_id: str
    requested: float                    # tonnes
    granted: float                      # tonnes

    @property
    def deficit(self) -> float:
        return self.requested - self.granted


@dataclass(frozen=True)
class AreaUse:
    period: int
    zone_id: str
    siting: str
    used: float                         # km²
    available: float                    # km²

    @property
    def utilization(self) -> float:
        if self.available > 0:
            return self.used / self.available
        return float('inf') if self.used > 0 else 0.0


@dataclass(frozen=True)
class DeploymentDelay:
    """
    A technology that became operational later than it was first needed.

    ``actual_period`` is None when the delayed capacity was never deployed
    within the horizon.
    """
    zone_id: str
    technology_id: str
    planned_period: int
    actual_period: Optional[int]
    reason: str

    @property
    def delay(self) -> Optional[int]:
        if self.actual_period is None:
            return None
        return self.actual_period - self.planned_period


@dataclass
class CostBreakdown:
    investment: float = 0.0
    operating: float = 0.0
    penalty: float = 0.0

    @property
    def total(self) -> float:
        return self.investment + self.operating + self.penalty


@dataclass
class Solution:
    """Output of one solve"""
    config: PlanningConfiguration
    commitments: List[Commitment]
    retirements: List[Retirement]
    shortfalls: List[PeriodShortfall]
    material_shortfalls: List[MaterialShortfall]
    area_use: List[AreaUse]
    delays: List[DeploymentDelay]
    costs: CostBreakdown
    period_costs: List[CostBreakdown]
    objective_value: float
    feasibility: bool
    convergence: str                    # 'optimal', 'shortfall' or 'infeasible'
    diagnostics: List[str] = field(default_factory=list)

    @property
    def scenario(self) -> str:
        return self.config.scenario_name

    @property
    def shortfall_periods(self) -> List[int]:
        periods = {s.period for s in self.shortfalls}
        periods.update(s.period for s in self.material_shortfalls)
        return sorted(periods)

    def _zone_filter(self, zone_id: Optional[str]):
        return (lambda z: True) if zone_id is None else (lambda z: z == zone_id)

    def installed_capacity(self, technology_id: str, zone_id: Optional[str] = None) -> np.ndarray:
        """Operational capacity from new builds (MW) in each period."""
        n = self.config.n_periods
        series = np.zeros(n)
        keep = self._zone_filter(zone_id)
        for c in self.commitments:
            if c.technology_id != technology_id or not keep(c.zone_id):
                continue
            end = c.retirement_period if c.retirement_period is not None else n
            series[c.online_period:end] += c.capacity
        return series

    def total_capacity(self, technology_id: str, zone_id: Optional[str] = None) -> np.ndarray:
        """Operational capacity including the existing fleet (MW) in each period."""
        n = self.config.n_periods
        series = self.installed_capacity(technology_id, zone_id)
        keep = self._zone_filter(zone_id)
        for zone in self.config.zones:
            if not keep(zone.id):
                continue
            existing = zone.existing_capacity.get(technology_id, 0.0)
            end = max(0, min(zone.existing_retirement.get(technology_id, n), n))
            series[:end] += existing
        return series

    def committed_capacity(self, technology_id: str, zone_id: Optional[str] = None) -> np.ndarray:
        """Capacity committed (MW) in each period."""
        series = np.zeros(self.config.n_periods)
        keep = self._zone_filter(zone_id)
        for c in self.commitments:
            if c.technology_id == technology_id and keep(c.zone_id):
                series[c.period] += c.capacity
        return series

    def deployments_frame(self) -> pd.DataFrame:
        """One row per commitment."""
        columns = ['scenario', 'period', 'year', 'zone', 'technology', 'capacity_mw',
                   'online_period', 'retirement_period', 'driver']
        years = self.config.years
        rows = [{
            'scenario': self.scenario,
            'period': c.period,
            'year': years[c.period],
            'zone': c.zone_id,
            'technology': c.technology_id,
            'capacity_mw': c.capacity,
            'online_period': c.online_period,
            'retirement_period': c.retirement_period,
            'driver': c.driver,
        } for c in self.commitments]
        return pd.DataFrame(rows, columns=columns)

    def capacity_frame(self) -> pd.DataFrame:
        """Installed and total capacity per period, zone and technology."""
        years = self.config.years
        rows = []
        for zone in self.config.zones:
            for tech in self.config.technologies:
                installed = self.installed_capacity(tech.id, zone.id)
                total = self.total_capacity(tech.id, zone.id)
                for t in self.config.periods:
                    rows.append({
                        'scenario': self.scenario,
                        'period': t,
                        'year': years[t],
                        'zone': zone.id,
                        'technology': tech.id,
                        'installed_mw': float(installed[t]),
                        'total_mw': float(total[t]),
                    })
        return pd.DataFrame(rows)

    def costs_frame(self) -> pd.DataFrame:
        """Discounted cost breakdown per period."""
        return pd.DataFrame([{
            'scenario': self.scenario,
            'period': t,
            'year': self.config.years[t],
            'investment': c.investment,
            'operating': c.operating,
            'penalty': c.penalty,
            'total': c.total,
        } for t, c in enumerate(self.period_costs)])

    def summary(self) -> Dict:
        return {
            'scenario': self.scenario,
            'objective_value': self.objective_value,
            'investment': self.costs.investment,
            'operating': self.costs.operating,
            'penalty': self.costs.penalty,
            'feasibility': self.feasibility,
            'convergence': self.convergence,
            'committed_mw': sum(c.capacity for c in self.commitments),
            'shortfall_periods': len(self.shortfall_periods),
            'material_shortfalls': len(self.material_shortfalls),
        }


@dataclass
class _Vintage:
    capacity: float
    commit_period: int
    online_period: int
    retirement_period: int


# ============================================================================
# FEASIBILITY CHECK
# ============================================================================

def _max_constructible(cfg: PlanningConfiguration, zone: Zone, weights: Dict[str, float],
                       area_in_use: Dict[str, float]) -> float:
    """
    Largest weighted capacity any allocation could add within the zone's caps.

    Solves  max Σ w_g x_g  s.t.  Σ_{g sited s} x_g / density_g <= free area_s,  x >= 0.
    """
    techs = [t for t in cfg.technologies if weights.get(t.id, 0.0) > 0]
    if not techs:
        return 0.0

    sitings = sorted({t.siting for t in techs})
    free = {s: cfg.effective_area(zone, s) - area_in_use.get(s, 0.0) for s in sitings}
    c = np.array([-weights[t.id] for t in techs])
    A_ub = np.array([
        [1.0 / t.capacity_density if t.siting == s else 0.0 for t in techs]
        for s in sitings
    ])
    b_ub = np.array([max(0.0, free[s]) for s in sitings])

    res = linprog(c, A_ub=A_ub, b_ub=b_ub, bounds=[(0, None)] * len(techs), method='highs')
    if res.status == 3:
        return float('inf')
    if not res.success:
        logger.warning(f"Feasibility LP for zone '{zone.id}' did not solve: {res.message}")
        return 0.0
    return float(-res.fun)


def check_feasibility(cfg: PlanningConfiguration) -> List[str]:
    """
    Find requirements that no allocation can satisfy within the area caps.

    Lead times, materials and manufacturing are ignored here; a requirement
    they prevent from being met is a shortfall, not an infeasibility.

    Returns
    -------
    list of str
        One diagnostic per zone and requirement; empty when feasible.
    """
    diagnostics = []
    hours = cfg.hours_per_period
    firm_weights = {t.id: t.elcc for t in cfg.technologies}
    rps_weights = {t.id: t.capacity_factor * hours for t in cfg.technologies if t.renewable}
    tol = config.FEASIBILITY_TOLERANCE

    for zone in cfg.zones:
        cache: Dict[Tuple, Tuple[float, float]] = {}
        reserve_periods, rps_periods = [], []
        worst_reserve = worst_rps = None

        for p in cfg.periods:
            alive = tuple(sorted(
                (tech_id, mw) for tech_id, mw in zone.existing_capacity.items()
                if p < zone.existing_retirement.get(tech_id, cfg.n_periods)
            ))
            if alive not in cache:
                area_in_use: Dict[str, float] = {}
                for tech_id, mw in alive:
                    tech = cfg.technology_index[tech_id]
                    area_in_use[tech.siting] = area_in_use.get(tech.siting, 0.0) + mw / tech.capacity_density
                cache[alive] = (
                    _max_constructible(cfg, zone, firm_weights, area_in_use),
                    _max_constructible(cfg, zone, rps_weights, area_in_use),
                )
            max_firm, max_energy = cache[alive]

            existing_firm = sum(mw * cfg.technology_index[tid].elcc for tid, mw in alive)
            existing_energy = sum(mw * rps_weights.get(tid, 0.0) for tid, mw in alive)

            required = cfg.reserve_requirement(zone, p)
            reachable = existing_firm + max_firm
            if required > reachable * (1 + tol) + tol:
                reserve_periods.append(p)
                worst_reserve = worst_reserve or (p, required, reachable)

            required_energy = zone.rps_target * cfg.energy_demand(zone, p)
            reachable_energy = existing_energy + max_energy
            if required_energy > reachable_energy * (1 + tol) + tol:
                rps_periods.append(p)
                worst_rps = worst_rps or (p, required_energy, reachable_energy)

        if reserve_periods:
            p, req, reach = worst_reserve
            diagnostics.append(
                f"Zone '{zone.id}': reserve margin cannot be met by any allocation in "
                f"{len(reserve_periods)} period(s) starting {p} "
                f"(requires {req:,.0f} MW firm, area caps allow {reach:,.0f} MW)"
            )
        if rps_periods:
            p, req, reach = worst_rps
            diagnostics.append(
                f"Zone '{zone.id}': RPS target cannot be met by any allocation in "
                f"{len(rps_periods)} period(s) starting {p} "
                f"(requires {req:,.0f} MWh renewable, area caps allow {reach:,.0f} MWh)"
            )

    return diagnostics


# ============================================================================
# MAIN SOLVER CLASS
# ============================================================================

class CapacityExpansionSolver:
    """
    Greedy-with-lookahead SC-GEP solver.

    Process per period:
    1. Retire capacity past its lifetime and recover its material
    2. Open the material ledger (stock + supply + recovery)
    3. For each zone: RPS pass, then reliability pass
    4. Close the ledger, price shortfalls and operating costs
    """

    def __init__(self, cfg: PlanningConfiguration):
        self.cfg = cfg

    # ── State helpers ────────────────────────────────────────────────────────

    def _reset(self):
        cfg = self.cfg
        self.ledger = MaterialLedger(cfg)
        self.vintages: Dict[Tuple[str, str], List[_Vintage]] = {
            (z.id, t.id): [] for z in cfg.zones for t in cfg.technologies
        }
        self.manufactured: Dict[str, float] = {}
        self.capped_period: Dict[str, int] = {}
        self.pending_delays: Dict[Tuple[str, str], Tuple[int, int, str]] = {}
        self.flagged_lead_time = set()

        self.commitments: List[Commitment] = []
        self.retirements: List[Retirement] = []
        self.shortfalls: List[PeriodShortfall] = []
        self.material_shortfalls: List[MaterialShortfall] = []
        self.area_use: List[AreaUse] = []
        self.delays: List[DeploymentDelay] = []
        self.period_costs = [CostBreakdown() for _ in cfg.periods]

    def _existing(self, zone: Zone, tech_id: str, period: int) -> float:
        if period < zone.existing_retirement.get(tech_id, self.cfg.n_periods):
            return zone.existing_capacity.get(tech_id, 0.0)
        return 0.0

    def _capacity(self, zone: Zone, tech: Technology, period: int) -> float:
        """Operational MW at ``period`` from everything committed so far."""
        total = self._existing(zone, tech.id, period)
        for v in self.vintages[(zone.id, tech.id)]:
            if v.online_period <= period < v.retirement_period:
                total += v.capacity
        return total

    def _area_used(self, zone: Zone, siting: str, period: int) -> float:
        used = 0.0
        for tech in self.cfg.technologies:
            if tech.siting != siting:
                continue
            mw = self._existing(zone, tech.id, period)
            for v in self.vintages[(zone.id, tech.id)]:
                if v.commit_period <= period < v.retirement_period:
                    mw += v.capacity
            used += mw / tech.capacity_density
        return used

    def _firm(self, zone: Zone, period: int) -> float:
        return sum(self._capacity(zone, t, period) * t.elcc for t in self.cfg.technologies)

    def _renewable_energy(self, zone: Zone, period: int) -> float:
        hours = self.cfg.hours_per_period
        return sum(
            self._capacity(zone, t, period) * t.capacity_factor * hours
            for t in self.cfg.technologies if t.renewable
        )

    def _firm_gap(self, zone: Zone, period: int) -> float:
        return self.cfg.reserve_requirement(zone, period) - self._firm(zone, period)

    def _rps_gap(self, zone: Zone, period: int) -> float:
        return zone.rps_target * self.cfg.energy_demand(zone, period) - self._renewable_energy(zone, period)

    # ── Ranking ──────────────────────────────────────────────────────────────

    def _unit_cost(self, tech: Technology, period: int) -> float:
        """Capital plus embodied material cost per MW."""
        return self.cfg.capital_cost(tech, period) + tech.material_cost(self.cfg.material_index)

    def _ranked(self, period: int, driver: str) -> List[Tuple[Technology, float]]:
        """
        Candidate technologies with their per-MW contribution, cheapest first.

        Contribution is firm MW per MW (reliability) or MWh per MW (rps).
        """
        hours = self.cfg.hours_per_period
        candidates = []
        for tech in self.cfg.technologies:
            if driver == 'rps':
                if not tech.renewable:
                    continue
                contribution = tech.capacity_factor * hours
            else:
                contribution = tech.elcc
            if contribution <= 0:
                continue
            if period + self.cfg.effective_lead_time(tech) >= self.cfg.n_periods:
                continue
            candidates.append((self._unit_cost(tech, period) / contribution, tech.id, tech, contribution))
        candidates.sort(key=lambda c: (c[0], c[1]))
        return [(tech, contribution) for _, _, tech, contribution in candidates]

    def _future_headroom(self, zone: Zone, tech: Technology, period: int, n_periods: int) -> float:
        """MW a technology could still add over the next ``n_periods``, ignoring materials."""
        if self.capped_period.get(tech.id, -2) >= period - 1:
            return 0.0
        free_area = self.cfg.effective_area(zone, tech.siting) - self._area_used(zone, tech.siting, period)
        headroom = max(0.0, free_area) * tech.capacity_density
        manufacturing = self.cfg.effective_manufacturing(tech)
        if manufacturing is not None:
            headroom = min(headroom, manufacturing * n_periods)
        return headroom

    # ── Allocation ───────────────────────────────────────────────────────────

    def _cap_allocation(self, zone: Zone, tech: Technology, period: int,
                        desired: float) -> Tuple[float, Optional[str]]:
        """
        Clip a desired build to area, material and manufacturing limits.

        Returns the granted MW and the name of the binding limit (None when
        the full request was granted).
        """
        caps: Dict[str, float] = {}
        free_area = self.cfg.effective_area(zone, tech.siting) - self._area_used(zone, tech.siting, period)
        caps[tech.siting] = max(0.0, free_area) * tech.capacity_density
        for mat_id, intensity in tech.material_requirements.items():
            if intensity > 0:
                caps[f"material:{mat_id}"] = self.ledger.remaining(mat_id) / intensity
        manufacturing = self.cfg.effective_manufacturing(tech)
        if manufacturing is not None:
            caps['manufacturing'] = max(0.0, manufacturing - self.manufactured.get(tech.id, 0.0))

        granted, binding = desired, None
        for name, cap in caps.items():
            if cap < granted:
                granted, binding = cap, name
        if granted < config.CAPACITY_TOLERANCE:
            granted = 0.0
        return granted, binding

    def _commit(self, zone: Zone, tech: Technology, period: int, capacity: float, driver: str):
        cfg = self.cfg
        lead = cfg.effective_lead_time(tech)
        online = period + lead
        retirement = online + tech.lifetime

        self.vintages[(zone.id, tech.id)].append(_Vintage(capacity, period, online, retirement))
        for mat_id, intensity in tech.material_requirements.items():
            self.ledger.reserve(mat_id, capacity * intensity)
        self.manufactured[tech.id] = self.manufactured.get(tech.id, 0.0) + capacity

        self.period_costs[period].investment += (
            capacity * self._unit_cost(tech, period) * cfg.discount_factor(period)
        )
        self.commitments.append(Commitment(
            period=period,
            zone_id=zone.id,
            technology_id=tech.id,
            capacity=capacity,
            online_period=online,
            retirement_period=retirement if retirement < cfg.n_periods else None,
            driver=driver,
        ))

        key = (zone.id, tech.id)
        pending = self.pending_delays.get(key)
        if pending is not None and period > pending[0]:
            _, planned, reason = self.pending_delays.pop(key)
            self.delays.append(DeploymentDelay(zone.id, tech.id, planned, online, reason))

    def _record_cap(self, zone: Zone, tech: Technology, period: int, desired: float,
                    granted: float, binding: str):
        if binding.startswith('material:') or binding == 'manufacturing':
            self.capped_period[tech.id] = period
        if binding.startswith('material:'):
            mat_id = binding.split(':', 1)[1]
            intensity = tech.material_requirements[mat_id]
            self.material_shortfalls.append(MaterialShortfall(
                period=period,
                material_id=mat_id,
                zone_id=zone.id,
                technology_id=tech.id,
                requested=desired * intensity,
                granted=granted * intensity,
            ))
        key = (zone.id, tech.id)
        if key not in self.pending_delays:
            planned = period + self.cfg.effective_lead_time(tech)
            self.pending_delays[key] = (period, planned, binding)

    def _allocate(self, zone: Zone, period: int, driver: str):
        gap_fn = self._rps_gap if driver == 'rps' else self._firm_gap
        ranked = self._ranked(period, driver)

        for i, (tech, contribution) in enumerate(ranked):
            lead = self.cfg.effective_lead_time(tech)
            arrival = period + lead
            need = gap_fn(zone, arrival)
            if need <= config.CAPACITY_TOLERANCE:
                continue

            # Leave the gap to cheaper, faster technologies that can still reach it
            for cheaper, cheaper_contribution in ranked[:i]:
                cheaper_lead = self.cfg.effective_lead_time(cheaper)
                if cheaper_lead < lead:
                    headroom = self._future_headroom(zone, cheaper, period, lead - cheaper_lead)
                    need -= headroom * cheaper_contribution
            if need <= config.CAPACITY_TOLERANCE:
                continue

            desired = need / contribution
            granted, binding = self._cap_allocation(zone, tech, period, desired)
            if binding is not None:
                self._record_cap(zone, tech, period, desired, granted, binding)
            if granted <= 0:
                continue

            if lead > 0 and gap_fn(zone, period) > config.CAPACITY_TOLERANCE:
                key = (zone.id, tech.id, driver)
                if key not in self.flagged_lead_time:
                    self.flagged_lead_time.add(key)
                    self.delays.append(DeploymentDelay(zone.id, tech.id, period, arrival, 'lead_time'))

            self._commit(zone, tech, period, granted, driver)

    # ── Period bookkeeping ───────────────────────────────────────────────────

    def _retire(self, period: int) -> List[Tuple[str, float]]:
        retired = []
        for zone in self.cfg.zones:
            for tech_id, mw in zone.existing_capacity.items():
                if zone.existing_retirement.get(tech_id) == period and mw > 0:
                    self.retirements.append(Retirement(period, zone.id, tech_id, mw, existing=True))
                    retired.append((tech_id, mw))
            for tech in self.cfg.technologies:
                for v in self.vintages[(zone.id, tech.id)]:
                    if v.retirement_period == period:
                        self.retirements.append(Retirement(period, zone.id, tech.id, v.capacity))
                        retired.append((tech.id, v.capacity))
        return retired

    def _settle_period(self, period: int):
        cfg = self.cfg
        penalties = cfg.penalties
        hours = cfg.hours_per_period
        discount = cfg.discount_factor(period)
        costs = self.period_costs[period]

        for zone in cfg.zones:
            for tech in cfg.technologies:
                mw = self._capacity(zone, tech, period)
                if mw > 0:
                    costs.operating += mw * (
                        tech.fixed_om + tech.capacity_factor * hours * tech.variable_cost
                    ) * discount

            firm = self._firm(zone, period)
            reserve_short = max(0.0, cfg.reserve_requirement(zone, period) - firm)
            load_shed = max(0.0, cfg.peak_load(zone, period) - firm)
            rps_short = max(0.0, self._rps_gap(zone, period))
            if reserve_short > config.CAPACITY_TOLERANCE or rps_short > config.CAPACITY_TOLERANCE:
                penalty = (
                    reserve_short * penalties.reserve_penalty
                    + load_shed * penalties.unserved_hours * penalties.voll
                    + rps_short * penalties.rps_penalty
                ) * discount
                costs.penalty += penalty
                self.shortfalls.append(PeriodShortfall(
                    period=period,
                    zone_id=zone.id,
                    reserve_shortfall=reserve_short,
                    load_shed=load_shed,
                    rps_shortfall=rps_short,
                    penalty=penalty,
                ))

            for siting in ('land', 'offshore'):
                available = cfg.effective_area(zone, siting)
                used = self._area_used(zone, siting, period)
                if available > 0 or used > 0:
                    self.area_use.append(AreaUse(period, zone.id, siting, used, available))

    # ── Entry point ──────────────────────────────────────────────────────────

    def solve(self) -> Solution:
        cfg = self.cfg
        require_valid(cfg)

        logger.info("=" * 80)
        logger.info(f"SC-GEP SOLVE: scenario '{cfg.scenario_name}'")
        logger.info("=" * 80)
        logger.info(f"  Periods: {cfg.n_periods} from {cfg.start_year}")
        logger.info(f"  Zones: {len(cfg.zones)}, technologies: {len(cfg.technologies)}, "
                    f"materials: {len(cfg.materials)}")
        started = time.perf_counter()

        diagnostics = check_feasibility(cfg)
        for d in diagnostics:
            logger.warning(f"  Infeasible: {d}")

        self._reset()
        zones = sorted(cfg.zones, key=lambda z: z.id)
        for t in cfg.periods:
            retired = self._retire(t)
            self.ledger.open_period(t, recovered_material(cfg, retired))
            self.manufactured = {}
            for zone in zones:
                self._allocate(zone, t, 'rps')
                self._allocate(zone, t, 'reliability')
            self.ledger.close_period()
            self._settle_period(t)

        for (zone_id, tech_id), (_, planned, reason) in sorted(self.pending_delays.items()):
            self.delays.append(DeploymentDelay(zone_id, tech_id, planned, None, reason))

        costs = CostBreakdown(
            investment=sum(c.investment for c in self.period_costs),
            operating=sum(c.operating for c in self.period_costs),
            penalty=sum(c.penalty for c in self.period_costs),
        )
        if diagnostics:
            convergence = 'infeasible'
        elif self.shortfalls or self.material_shortfalls:
            convergence = 'shortfall'
        else:
            convergence = 'optimal'

        solution = Solution(
            config=cfg,
            commitments=self.commitments,
            retirements=self.retirements,
            shortfalls=self.shortfalls,
            material_shortfalls=self.material_shortfalls,
            area_use=self.area_use,
            delays=self.delays,
            costs=costs,
            period_costs=self.period_costs,
            objective_value=costs.total,
            feasibility=not diagnostics,
            convergence=convergence,
            diagnostics=diagnostics,
        )

        logger.info(f"  Objective: ${solution.objective_value:,.0f} "
                    f"(investment ${costs.investment:,.0f}, operating ${costs.operating:,.0f}, "
                    f"penalty ${costs.penalty:,.0f})")
        if solution.shortfall_periods:
            logger.warning(f"  Shortfalls in {len(solution.shortfall_periods)} period(s)")
        logger.info(f"  Status: {convergence} ({time.perf_counter() - started:.2f}s)")
        return solution


def solve(cfg: PlanningConfiguration) -> Solution:
    """Solve one planning configuration."""
    return CapacityExpansionSolver(cfg).solve()
