"""
Bottleneck Analyzer
===================

Post-processes a solved plan:
1. Material bottlenecks from the replayed utilization series
2. Spatial constraints from land/offshore area utilization per zone
3. Technology deployment delays caused by lead times or supply limits
4. Recommendations and the cost impact of the constraints

Severity thresholds come from a :class:`~scgep.config.SeverityThresholds`
table passed to the analyzer. Infinite utilization (draw against zero supply)
is reported as ``config.OVER_UTILIZATION_MARKER`` and classified critical.

``to_constraint_models`` turns a report into ConstraintModel instances that
can be registered with a :class:`~scgep.constraint_engine.ConstraintEngine`.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from . import config
from .config import SeverityThresholds
from .constraints import (
    ConstraintModel,
    FinancialImpact,
    MitigationAction,
    OperationalImpact,
    QuantifiedImpact,
    RiskEstimate,
)
from .material_flow import MaterialFlowResult, track_material_flows
from .solver import Solution

logger = logging.getLogger(__name__)


def _finite(utilization: float) -> float:
    if math.isinf(utilization) or math.isnan(utilization):
        return config.OVER_UTILIZATION_MARKER
    return min(utilization, config.OVER_UTILIZATION_MARKER)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class MaterialBottleneck:
    material_id: str
    peak_utilization: float             # finite; over-utilization uses the marker
    peak_period: Optional[int]
    peak_year: Optional[int]
    severity: Optional[str]             # 'critical', 'high', 'moderate' or None
    constraint: bool
    periods_constrained: List[int] = field(default_factory=list)
    shortfall_tonnes: float = 0.0
    affected_technologies: List[str] = field(default_factory=list)
    impact: str = ''


@dataclass
class SpatialConstraint:
    zone_id: str
    siting: str                         # 'land' or 'offshore'
    peak_utilization: float
    peak_period: Optional[int]
    peak_year: Optional[int]
    severity: Optional[str]
    constraint: bool
    used_area: float = 0.0              # km² at the peak
    available_area: float = 0.0


@dataclass
class TechnologyDelay:
    technology_id: str
    zone_id: str
    planned_period: int
    actual_period: Optional[int]        # None when never deployed within the horizon
    planned_year: int
    actual_year: Optional[int]
    delay: Optional[int]                # periods
    reason: str                         # 'lead_time', 'material:<id>', 'land', 'offshore', 'manufacturing'

    @property
    def cause(self) -> str:
        return self.reason.split(':', 1)[0]


@dataclass
class BottleneckReport:
    """Output of :meth:`BottleneckAnalyzer.analyze`"""
    scenario: str
    material_bottlenecks: List[MaterialBottleneck]
    spatial_constraints: List[SpatialConstraint]
    technology_delays: List[TechnologyDelay]
    recommendations: List[str]
    cost_impact: Dict[str, float]
    solution: Optional[Solution] = field(default=None, repr=False, compare=False)

    def constrained_materials(self) -> List[MaterialBottleneck]:
        return [b for b in self.material_bottlenecks if b.constraint]

    def constrained_areas(self) -> List[SpatialConstraint]:
        return [s for s in self.spatial_constraints if s.constraint]

    def severity_counts(self) -> Dict[str, int]:
        counts = {'critical': 0, 'high': 0, 'moderate': 0}
        for item in [*self.material_bottlenecks, *self.spatial_constraints]:
            if item.severity is not None:
                counts[item.severity] += 1
        return counts

    @property
    def critical_count(self) -> int:
        return self.severity_counts()['critical']

    def to_frames(self) -> Dict[str, pd.DataFrame]:
        """One DataFrame per finding type."""
        return {
            'materials': pd.DataFrame([vars(b) for b in self.material_bottlenecks]),
            'spatial': pd.DataFrame([vars(s) for s in self.spatial_constraints]),
            'delays': pd.DataFrame([vars(d) for d in self.technology_delays]),
        }


# ============================================================================
# ANALYZER
# ============================================================================

class BottleneckAnalyzer:
    """
    Classify material and spatial constraints and collect deployment delays.

    Parameters
    ----------
    material_thresholds, spatial_thresholds : SeverityThresholds
        Utilization thresholds (defaults from ``scgep.config``).
    include_unconstrained : bool
        Also report materials and areas below the moderate threshold, with
        ``constraint=False``.
    """

    def __init__(self,
                 material_thresholds: SeverityThresholds = config.MATERIAL_THRESHOLDS,
                 spatial_thresholds: SeverityThresholds = config.SPATIAL_THRESHOLDS,
                 include_unconstrained: bool = False):
        self.material_thresholds = material_thresholds
        self.spatial_thresholds = spatial_thresholds
        self.include_unconstrained = include_unconstrained

    def analyze(self, solution: Solution, flows: Optional[MaterialFlowResult] = None,
                reference_cost: Optional[float] = None) -> BottleneckReport:
        """
        Analyze a solved plan.

        Parameters
        ----------
        solution : Solution
        flows : MaterialFlowResult, optional
            Replayed material flows; computed from ``solution`` when omitted.
        reference_cost : float, optional
            Objective of a reference plan (e.g. unconstrained supply) used for
            the cost increase in ``cost_impact``.
        """
        if flows is None:
            flows = track_material_flows(solution)

        materials = self._material_bottlenecks(solution, flows)
        spatial = self._spatial_constraints(solution)
        delays = self._technology_delays(solution)

        report = BottleneckReport(
            scenario=solution.scenario,
            material_bottlenecks=materials,
            spatial_constraints=spatial,
            technology_delays=delays,
            recommendations=self._recommendations(materials, spatial, delays),
            cost_impact=self._cost_impact(solution, reference_cost),
            solution=solution,
        )

        counts = report.severity_counts()
        logger.info(f"Bottlenecks in '{report.scenario}': {counts['critical']} critical, "
                    f"{counts['high']} high, {counts['moderate']} moderate; "
                    f"{len(delays)} deployment delays")
        return report

    # ── Materials ────────────────────────────────────────────────────────────

    def _material_bottlenecks(self, solution: Solution,
                              flows: MaterialFlowResult) -> List[MaterialBottleneck]:
        cfg = solution.config
        deficits: Dict[str, float] = {}
        for s in solution.material_shortfalls:
            deficits[s.material_id] = deficits.get(s.material_id, 0.0) + s.deficit

        results = []
        for series in flows:
            utilization = np.array([_finite(u) for u in series.utilization])
            if len(utilization) == 0:
                continue
            peak_idx = int(np.argmax(utilization))
            peak = float(utilization[peak_idx])
            severity = self.material_thresholds.classify(peak)
            if severity is None and not self.include_unconstrained:
                continue

            material = cfg.material_index[series.material_id]
            constrained = [
                series.periods[i] for i, u in enumerate(utilization)
                if self.material_thresholds.classify(u) is not None
            ]
            users = sorted(
                t.id for t in cfg.technologies
                if t.material_requirements.get(series.material_id, 0) > 0
            )
            if severity is not None:
                impact = (f"{severity.capitalize()} bottleneck - {material.name} utilization at "
                          f"{peak * 100:.1f}% in {series.years[peak_idx]}")
            else:
                impact = 'No constraint'

            results.append(MaterialBottleneck(
                material_id=series.material_id,
                peak_utilization=peak,
                peak_period=series.periods[peak_idx],
                peak_year=series.years[peak_idx],
                severity=severity,
                constraint=severity is not None,
                periods_constrained=constrained,
                shortfall_tonnes=deficits.get(series.material_id, 0.0),
                affected_technologies=users,
                impact=impact,
            ))

        results.sort(key=lambda b: (-b.peak_utilization, b.material_id))
        return results

    # ── Land / offshore ──────────────────────────────────────────────────────

    def _spatial_constraints(self, solution: Solution) -> List[SpatialConstraint]:
        years = solution.config.years
        peaks: Dict[Tuple[str, str], Tuple[float, object]] = {}
        for use in solution.area_use:
            key = (use.zone_id, use.siting)
            u = _finite(use.utilization)
            if key not in peaks or u > peaks[key][0]:
                peaks[key] = (u, use)

        results = []
        for (zone_id, siting), (peak, use) in sorted(peaks.items()):
            severity = self.spatial_thresholds.classify(peak)
            if severity is None and not self.include_unconstrained:
                continue
            results.append(SpatialConstraint(
                zone_id=zone_id,
                siting=siting,
                peak_utilization=peak,
                peak_period=use.period,
                peak_year=years[use.period],
                severity=severity,
                constraint=severity is not None,
                used_area=use.used,
                available_area=use.available,
            ))

        results.sort(key=lambda s: (-s.peak_utilization, s.zone_id, s.siting))
        return results

    # ── Delays ───────────────────────────────────────────────────────────────

    def _technology_delays(self, solution: Solution) -> List[TechnologyDelay]:
        cfg = solution.config

        def year_of(period):
            if period is None:
                return None
            return cfg.start_year + period * cfg.period_length_years

        first: Dict[Tuple[str, str, str], object] = {}
        for d in solution.delays:
            key = (d.technology_id, d.zone_id, d.reason)
            if key not in first or d.planned_period < first[key].planned_period:
                first[key] = d

        results = []
        for d in first.values():
            delay = d.delay if d.actual_period is not None else cfg.n_periods - d.planned_period
            results.append(TechnologyDelay(
                technology_id=d.technology_id,
                zone_id=d.zone_id,
                planned_period=d.planned_period,
                actual_period=d.actual_period,
                planned_year=year_of(d.planned_period),
                actual_year=year_of(d.actual_period),
                delay=delay,
                reason=d.reason,
            ))

        results.sort(key=lambda d: (d.planned_period, d.zone_id, d.technology_id, d.reason))
        return results

    # ── Summary ──────────────────────────────────────────────────────────────

    def _recommendations(self, materials: List[MaterialBottleneck],
                         spatial: List[SpatialConstraint],
                         delays: List[TechnologyDelay]) -> List[str]:
        recommendations = []
        for b in materials:
            if b.severity == 'critical':
                recommendations.append(
                    f"Secure additional {b.material_id} supply or stockpile ahead of "
                    f"{b.peak_year}: utilization peaks at {b.peak_utilization * 100:.1f}% "
                    f"(used by {', '.join(b.affected_technologies)})"
                )
            elif b.severity == 'high':
                recommendations.append(
                    f"Expand {b.material_id} recycling and diversify suppliers: "
                    f"utilization reaches {b.peak_utilization * 100:.1f}%"
                )
        for s in spatial:
            if s.severity in ('critical', 'high'):
                recommendations.append(
                    f"Zone {s.zone_id}: {s.siting} area {s.peak_utilization * 100:.1f}% used by "
                    f"{s.peak_year}; repower existing sites or shift deployment to other zones"
                )
        lead_time = [d for d in delays if d.cause == 'lead_time']
        supply = [d for d in delays if d.cause != 'lead_time']
        if lead_time:
            techs = sorted({d.technology_id for d in lead_time})
            recommendations.append(
                f"Commit {', '.join(techs)} earlier: lead times left requirements unmet "
                f"in {len(lead_time)} zone/technology pair(s)"
            )
        for d in supply:
            if d.actual_period is None:
                recommendations.append(
                    f"{d.technology_id} in {d.zone_id} limited by {d.reason} from {d.planned_year} "
                    f"and never deployed within the horizon"
                )
        return recommendations

    def _cost_impact(self, solution: Solution, reference_cost: Optional[float]) -> Dict[str, float]:
        total = solution.objective_value
        impact = {
            'total_cost': total,
            'penalty_cost': solution.costs.penalty,
            'penalty_share': solution.costs.penalty / total if total > 0 else 0.0,
            'cost_increase': 0.0,
            'cost_increase_percent': 0.0,
        }
        if reference_cost is not None:
            impact['cost_increase'] = total - reference_cost
            if reference_cost > 0:
                impact['cost_increase_percent'] = (total - reference_cost) / reference_cost * 100
        return impact


def analyze_supply_chain(solution: Solution,
                         thresholds: Optional[SeverityThresholds] = None) -> BottleneckReport:
    """Replay material flows and analyze bottlenecks in one call."""
    if thresholds is None:
        analyzer = BottleneckAnalyzer()
    else:
        analyzer = BottleneckAnalyzer(material_thresholds=thresholds, spatial_thresholds=thresholds)
    return analyzer.analyze(solution, track_material_flows(solution))


# ============================================================================
# CONSTRAINT SEEDING
# ============================================================================

def _impact(expected: float, probability: float, severity: str,
            delay: float = 0.0, throughput_reduction: float = 0.0) -> QuantifiedImpact:
    low, high = config.EXPOSURE_RANGE
    consequence = config.SEVERITY_SCORE[severity] * config.MAX_CONSEQUENCE
    return QuantifiedImpact(
        financial=FinancialImpact(min=expected * low, max=expected * high, expected=expected),
        operational=OperationalImpact(delay=delay, throughput_reduction=throughput_reduction),
        risk=RiskEstimate.from_probability(min(1.0, max(0.0, probability)), consequence),
    )


def _mitigations(constraint_id: str, library, exposure: float) -> Tuple[MitigationAction, ...]:
    actions = []
    for key, name, kind, cost_share, periods, effectiveness, risk_reduction, feasibility, needs in library:
        cost = exposure * cost_share
        actions.append(MitigationAction(
            id=f"{constraint_id}/{key}",
            name=name,
            type=kind,
            cost=cost,
            time_to_implement=periods,
            effectiveness=effectiveness,
            npv_impact=exposure * effectiveness - cost,
            risk_reduction=risk_reduction,
            feasibility=feasibility,
            dependencies=tuple(f"{constraint_id}/{n}" for n in needs),
        ))
    return tuple(actions)


def _delay_severity(delay: TechnologyDelay) -> str:
    if delay.actual_period is None:
        return 'critical'
    if delay.delay is not None and delay.delay >= 3:
        return 'major'
    return 'moderate'


def to_constraint_models(report: BottleneckReport,
                         solution: Optional[Solution] = None) -> List[ConstraintModel]:
    """
    Seed ConstraintModels from a bottleneck report.

    - ``material:<id>`` (resource) for every constrained material
    - ``spatial:<zone>:<siting>`` (spatial) for every constrained area
    - ``delay:<technology>:<zone>`` (systemic) for every delayed deployment

    Materials and areas link downstream to the delays of the technologies
    that draw on them. Each constraint carries candidate mitigations from the
    libraries in ``scgep.config``.
    """
    solution = solution if solution is not None else report.solution
    if solution is None:
        raise ValueError("to_constraint_models needs the solution the report was built from")
    cfg = solution.config

    # Exposure inputs
    penalty_by_zone_period: Dict[Tuple[str, int], float] = {}
    for s in solution.shortfalls:
        penalty_by_zone_period[(s.zone_id, s.period)] = s.penalty
    requested: Dict[str, float] = {}
    for s in solution.material_shortfalls:
        requested[s.material_id] = requested.get(s.material_id, 0.0) + s.requested
    invested: Dict[Tuple[str, str], float] = {}
    for c in solution.commitments:
        tech = cfg.technology_index[c.technology_id]
        key = (c.zone_id, tech.siting)
        invested[key] = invested.get(key, 0.0) + c.capacity * cfg.capital_cost(tech, c.period)

    # Delays, aggregated per technology and zone
    delays: Dict[Tuple[str, str], List[TechnologyDelay]] = {}
    for d in report.technology_delays:
        delays.setdefault((d.technology_id, d.zone_id), []).append(d)

    delay_models: Dict[Tuple[str, str], ConstraintModel] = {}
    for (tech_id, zone_id), items in sorted(delays.items()):
        cid = f"delay:{tech_id}:{zone_id}"
        worst = max(items, key=lambda d: (d.actual_period is None, d.delay or 0))
        end = worst.actual_period if worst.actual_period is not None else cfg.n_periods
        exposure = sum(
            penalty_by_zone_period.get((zone_id, p), 0.0)
            for p in range(min(d.planned_period for d in items), end)
        )
        severity = _delay_severity(worst)
        delay_models[(tech_id, zone_id)] = ConstraintModel(
            id=cid,
            name=f"{cfg.technology_index[tech_id].name} deployment delay in {zone_id}",
            type='systemic',
            severity=severity,
            description='; '.join(f"{d.reason}: period {d.planned_period} -> "
                                  f"{d.actual_period if d.actual_period is not None else 'never'}"
                                  for d in items),
            impact=_impact(exposure, 1.0, severity, delay=float(worst.delay or 0)),
            impact_areas=('deployment', zone_id),
            mitigation_options=_mitigations(cid, config.DELAY_MITIGATIONS, exposure),
            source='bottleneck_analyzer',
        )

    models: List[ConstraintModel] = []
    for b in report.constrained_materials():
        cid = f"material:{b.material_id}"
        material = cfg.material_index[b.material_id]
        exposure = b.shortfall_tonnes * material.unit_cost + sum(
            penalty_by_zone_period.get((z.id, p), 0.0) for z in cfg.zones for p in b.periods_constrained
        )
        downstream = tuple(sorted(
            m.id for (tech_id, _), m in delay_models.items() if tech_id in b.affected_technologies
        ))
        severity = config.BOTTLENECK_TO_CONSTRAINT_SEVERITY[b.severity]
        throughput = b.shortfall_tonnes / requested[b.material_id] if requested.get(b.material_id) else 0.0
        models.append(ConstraintModel(
            id=cid,
            name=f"{material.name} supply bottleneck",
            type='resource',
            severity=severity,
            description=b.impact,
            impact=_impact(exposure, b.peak_utilization, severity, throughput_reduction=throughput),
            impact_areas=('materials', *b.affected_technologies),
            downstream_impacts=downstream,
            mitigation_options=_mitigations(cid, config.MATERIAL_MITIGATIONS, exposure),
            source='bottleneck_analyzer',
        ))

    for s in report.constrained_areas():
        cid = f"spatial:{s.zone_id}:{s.siting}"
        exposure = invested.get((s.zone_id, s.siting), 0.0) * config.SPATIAL_INVESTMENT_SHARE
        sited = {t.id for t in cfg.technologies if t.siting == s.siting}
        downstream = tuple(sorted(
            m.id for (tech_id, zone_id), m in delay_models.items()
            if zone_id == s.zone_id and tech_id in sited
        ))
        severity = config.BOTTLENECK_TO_CONSTRAINT_SEVERITY[s.severity]
        models.append(ConstraintModel(
            id=cid,
            name=f"{s.siting.capitalize()} area cap in {s.zone_id}",
            type='spatial',
            severity=severity,
            description=f"{s.used_area:,.1f} of {s.available_area:,.1f} km² used by {s.peak_year}",
            impact=_impact(exposure, s.peak_utilization, severity),
            impact_areas=('siting', s.zone_id),
            downstream_impacts=downstream,
            mitigation_options=_mitigations(cid, config.SPATIAL_MITIGATIONS, exposure),
            source='bottleneck_analyzer',
        ))

    models.extend(delay_models.values())
    logger.info(f"Seeded {len(models)} constraint models from '{report.scenario}'")
    return models
