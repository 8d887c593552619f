"""
Scenario Comparator
===================

Runs the solver independently for several named scenarios and summarizes how
their outcomes diverge.

Each scenario's configuration is derived from the same base configuration by
applying that scenario's multipliers. Solves run on a bounded thread pool and
share no mutable state; results are merged only after every solve finished.
"""

import logging
from dataclasses import dataclass, field
from multiprocessing import cpu_count
from multiprocessing.pool import ThreadPool
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from . import config
from .bottlenecks import BottleneckAnalyzer, BottleneckReport
from .config import SeverityThresholds
from .domain import ConfigurationError, PlanningConfiguration, require_valid
from .material_flow import MaterialFlowResult, track_material_flows
from .scenarios import SCENARIOS, apply_scenario, baseline_config
from .solver import Solution, solve

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@dataclass
class ComparisonResult:
    """Solutions, bottleneck reports and insights for a set of scenarios"""
    per_scenario: Dict[str, Solution]
    reports: Dict[str, BottleneckReport]
    flows: Dict[str, MaterialFlowResult]
    insights: List[str] = field(default_factory=list)
    summary: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def scenarios(self) -> List[str]:
        return list(self.per_scenario)

    def total_cost(self, scenario: str) -> float:
        return self.per_scenario[scenario].objective_value

    @property
    def cost_range(self) -> Tuple[float, float]:
        costs = [s.objective_value for s in self.per_scenario.values()]
        return min(costs), max(costs)


def _solve_and_track(cfg: PlanningConfiguration) -> Tuple[Solution, MaterialFlowResult]:
    solution = solve(cfg)
    return solution, track_material_flows(solution)


def _scenario_configs(names: Sequence[str],
                      base_config: PlanningConfiguration) -> Dict[str, PlanningConfiguration]:
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        raise ConfigurationError([
            f"Unknown scenario(s) {unknown}. Available scenarios: {sorted(SCENARIOS)}"
        ])
    configs = {}
    for name in names:
        cfg = apply_scenario(base_config, name)
        require_valid(cfg)
        configs[name] = cfg
    return configs


def _insights(result: ComparisonResult) -> List[str]:
    insights = []
    solutions = result.per_scenario
    costs = {name: s.objective_value for name, s in solutions.items()}

    cheapest = min(costs, key=costs.get)
    dearest = max(costs, key=costs.get)
    low, high = costs[cheapest], costs[dearest]
    spread = high - low
    pct = spread / low * 100 if low > 0 else 0.0
    insights.append(
        f"Total cost ranges from ${low / 1e9:,.2f}B ({cheapest}) to ${high / 1e9:,.2f}B "
        f"({dearest}), a spread of ${spread / 1e9:,.2f}B ({pct:.1f}%)"
    )

    if 'baseline' in costs and costs['baseline'] > 0:
        for name, cost in costs.items():
            if name == 'baseline':
                continue
            change = (cost - costs['baseline']) / costs['baseline'] * 100
            insights.append(f"{name}: {change:+.1f}% total cost versus baseline")

    critical = {name: r.critical_count for name, r in result.reports.items()}
    worst = max(critical, key=critical.get)
    if critical[worst] > 0:
        insights.append(f"{worst} has the most critical bottlenecks ({critical[worst]})")
    else:
        insights.append("No scenario has a critical bottleneck")

    critical_sets = [
        {b.material_id for b in r.material_bottlenecks if b.severity == 'critical'}
        for r in result.reports.values()
    ]
    everywhere = set.intersection(*critical_sets) if critical_sets else set()
    if everywhere and len(critical_sets) > 1:
        insights.append(f"Critical in every scenario: {', '.join(sorted(everywhere))}")

    shortfalls = {name: len(s.shortfall_periods) for name, s in solutions.items()}
    most = max(shortfalls, key=shortfalls.get)
    if shortfalls[most] > 0:
        insights.append(f"{most} has the most shortfall periods ({shortfalls[most]})")

    for name, s in solutions.items():
        if not s.feasibility:
            insights.append(f"{name} is infeasible: {s.diagnostics[0]}")
    return insights


def _summary_frame(result: ComparisonResult) -> pd.DataFrame:
    rows = []
    for name, solution in result.per_scenario.items():
        row = solution.summary()
        report = result.reports[name]
        row.update({f"{k}_bottlenecks": v for k, v in report.severity_counts().items()})
        row['delays'] = len(report.technology_delays)
        peak = max((b.peak_utilization for b in report.material_bottlenecks), default=0.0)
        row['peak_material_utilization'] = peak
        rows.append(row)
    return pd.DataFrame(rows).set_index('scenario')


def compare_scenarios(names: Sequence[str],
                      base_config: Optional[PlanningConfiguration] = None,
                      max_workers: Optional[int] = None,
                      thresholds: Optional[SeverityThresholds] = None) -> ComparisonResult:
    """
    Solve and compare named scenarios.

    Parameters
    ----------
    names : sequence of str
        Scenario names from :data:`scgep.scenarios.SCENARIOS`.
    base_config : PlanningConfiguration, optional
        Configuration the scenarios are derived from (default: the baseline
        catalogue).
    max_workers : int, optional
        Upper bound on concurrent solves.
    thresholds : SeverityThresholds, optional
        Thresholds for the bottleneck reports.

    Raises
    ------
    ConfigurationError
        If a name is unknown or a derived configuration is invalid. Raised
        before any solve starts.
    """
    names = list(dict.fromkeys(names))
    if not names:
        raise ValueError("compare_scenarios needs at least one scenario name")
    base_config = base_config if base_config is not None else baseline_config()
    configs = _scenario_configs(names, base_config)

    n_workers = min(len(names), cpu_count(), max_workers or config.MAX_SCENARIO_WORKERS)
    logger.info("=" * 80)
    logger.info(f"SCENARIO COMPARISON: {', '.join(names)} ({n_workers} workers)")
    logger.info("=" * 80)

    if n_workers > 1:
        with ThreadPool(n_workers) as pool:
            outputs = pool.map(_solve_and_track, [configs[n] for n in names])
    else:
        outputs = [_solve_and_track(configs[n]) for n in names]

    per_scenario = {name: out[0] for name, out in zip(names, outputs)}
    flows = {name: out[1] for name, out in zip(names, outputs)}

    if thresholds is None:
        analyzer = BottleneckAnalyzer()
    else:
        analyzer = BottleneckAnalyzer(material_thresholds=thresholds, spatial_thresholds=thresholds)
    reference = per_scenario['baseline'].objective_value if 'baseline' in per_scenario else None
    reports = {
        name: analyzer.analyze(per_scenario[name], flows[name], reference_cost=reference)
        for name in names
    }

    result = ComparisonResult(per_scenario=per_scenario, reports=reports, flows=flows)
    result.insights = _insights(result)
    result.summary = _summary_frame(result)

    for insight in result.insights:
        logger.info(f"  {insight}")
    return result
