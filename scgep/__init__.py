"""
SC-GEP Planning Engine
======================

Supply-chain-constrained generation expansion planning: multi-period capacity
expansion under material-supply, lead-time, spatial and reliability
constraints, plus a constraint dependency and mitigation engine.

Main Components:
- domain: materials, technologies, products, zones and the planning configuration
- technology_catalog / scenarios: baseline data and the configuration factory
- solver: period-by-period capacity expansion with shortfall penalties
- material_flow: stock-flow replay of a solution's material draw
- bottlenecks: material, spatial and lead-time bottleneck analysis
- dependency_graph / mitigation / constraint_engine: cascading impact and
  mitigation selection over constraint models
- comparison / sensitivity: multi-scenario and uncertainty analysis

Example Usage:
    from scgep import create_config, solve, analyze_supply_chain

    cfg = create_config('constrained_supply', {'n_periods': 20})
    solution = solve(cfg)
    report = analyze_supply_chain(solution)

    for b in report.material_bottlenecks:
        print(b.material_id, b.severity, b.peak_utilization)

Version: 1.0.0
"""

__version__ = '1.0.0'

from .domain import (
    ConfigurationError,
    Material,
    Technology,
    Product,
    Zone,
    ScenarioMultipliers,
    PenaltyCosts,
    PlanningConfiguration,
    validate_config,
)

from .scenarios import (
    SCENARIOS,
    available_scenarios,
    baseline_config,
    create_config,
)

from .solver import (
    CapacityExpansionSolver,
    Solution,
    solve,
)

from .material_flow import (
    MaterialFlowTracker,
    MaterialFlowResult,
    track_material_flows,
)

from .bottlenecks import (
    BottleneckAnalyzer,
    BottleneckReport,
    analyze_supply_chain,
    to_constraint_models,
)

from .constraints import (
    ConstraintModel,
    ConstraintNotFoundError,
    MitigationAction,
    QuantifiedImpact,
)

from .dependency_graph import (
    DependencyGraph,
    build_dependency_graph,
    quantify_total_impact,
)

from .mitigation import (
    rank_mitigations,
    select_portfolio,
)

from .constraint_engine import ConstraintEngine, ScenarioComparison

from .comparison import (
    ComparisonResult,
    compare_scenarios,
)

from .sensitivity import (
    supply_sensitivity,
    demand_uncertainty,
)

from .config import SeverityThresholds

__all__ = [
    # Domain
    'ConfigurationError',
    'Material',
    'Technology',
    'Product',
    'Zone',
    'ScenarioMultipliers',
    'PenaltyCosts',
    'PlanningConfiguration',
    'validate_config',

    # Scenarios
    'SCENARIOS',
    'available_scenarios',
    'baseline_config',
    'create_config',

    # Solver
    'CapacityExpansionSolver',
    'Solution',
    'solve',

    # Material flows and bottlenecks
    'MaterialFlowTracker',
    'MaterialFlowResult',
    'track_material_flows',
    'BottleneckAnalyzer',
    'BottleneckReport',
    'SeverityThresholds',
    'analyze_supply_chain',
    'to_constraint_models',

    # Constraint engine
    'ConstraintModel',
    'ConstraintNotFoundError',
    'MitigationAction',
    'QuantifiedImpact',
    'DependencyGraph',
    'build_dependency_graph',
    'quantify_total_impact',
    'rank_mitigations',
    'select_portfolio',
    'ConstraintEngine',
    'ScenarioComparison',

    # Comparison and sensitivity
    'ComparisonResult',
    'compare_scenarios',
    'supply_sensitivity',
    'demand_uncertainty',
]
