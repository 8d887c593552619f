#!/usr/bin/env python3
"""
SC-GEP command line interface
=============================

    scgep solve --scenario baseline --periods 20
    scgep solve --scenario high_demand --output-dir outputs/
    scgep compare baseline high_demand constrained_supply --workers 3
    scgep bottlenecks --scenario constrained_supply --mitigations 3

``solve`` prints the cost breakdown and optionally writes the deployment,
capacity, cost and material-flow tables as CSV. ``compare`` solves several
scenarios and prints the summary table and insights. ``bottlenecks`` prints
the bottleneck report and the ranked mitigations of every seeded constraint.
"""

import argparse
import sys
from pathlib import Path

from .bottlenecks import analyze_supply_chain, to_constraint_models
from .comparison import compare_scenarios
from .constraint_engine import ConstraintEngine
from .domain import ConfigurationError
from .material_flow import track_material_flows
from .scenarios import SCENARIO_DESCRIPTIONS, available_scenarios, create_config
from .solver import solve


def _config(args):
    overrides = {}
    if args.periods is not None:
        overrides['n_periods'] = args.periods
    return overrides


def _print_header(title):
    print("=" * 70)
    print(f"  {title}")
    print("=" * 70)


def cmd_solve(args) -> int:
    cfg = create_config(args.scenario, _config(args))
    solution = solve(cfg)

    _print_header(f"SC-GEP SOLUTION: {args.scenario}")
    print(f"  Status:      {solution.convergence} (feasible: {solution.feasibility})")
    print(f"  Objective:   ${solution.objective_value / 1e9:,.3f}B")
    print(f"  Investment:  ${solution.costs.investment / 1e9:,.3f}B")
    print(f"  Operating:   ${solution.costs.operating / 1e9:,.3f}B")
    print(f"  Penalty:     ${solution.costs.penalty / 1e9:,.3f}B")
    print(f"  Commitments: {len(solution.commitments)}")
    print(f"  Shortfall periods: {solution.shortfall_periods}")
    for d in solution.diagnostics:
        print(f"  ✗ {d}")

    if args.output_dir:
        out = Path(args.output_dir)
        out.mkdir(parents=True, exist_ok=True)
        solution.deployments_frame().to_csv(out / f"{args.scenario}_deployments.csv", index=False)
        solution.capacity_frame().to_csv(out / f"{args.scenario}_capacity.csv", index=False)
        solution.costs_frame().to_csv(out / f"{args.scenario}_costs.csv", index=False)
        track_material_flows(solution).to_dataframe().to_csv(
            out / f"{args.scenario}_material_flows.csv", index=False
        )
        print(f"\nOutputs written to {out}/")
    return 0 if solution.feasibility else 2


def cmd_compare(args) -> int:
    overrides = _config(args)
    base = create_config('baseline', overrides)
    result = compare_scenarios(args.scenarios, base, max_workers=args.workers)

    _print_header("SCENARIO COMPARISON")
    print(result.summary.to_string())
    print("\nInsights:")
    for insight in result.insights:
        print(f"  - {insight}")
    if args.output:
        result.summary.to_csv(args.output)
        print(f"\nSummary written to {args.output}")
    return 0


def cmd_bottlenecks(args) -> int:
    cfg = create_config(args.scenario, _config(args))
    solution = solve(cfg)
    report = analyze_supply_chain(solution)

    _print_header(f"BOTTLENECKS: {args.scenario}")
    print("\nMaterials:")
    for b in report.material_bottlenecks:
        print(f"  {b.material_id:<12} {b.severity:<9} peak {b.peak_utilization * 100:7.1f}% "
              f"in {b.peak_year}, shortfall {b.shortfall_tonnes:,.0f} t")
    print("\nAreas:")
    for s in report.spatial_constraints:
        print(f"  {s.zone_id:<8} {s.siting:<9} {s.severity:<9} peak {s.peak_utilization * 100:7.1f}%")
    print("\nDelays:")
    for d in report.technology_delays:
        actual = d.actual_year if d.actual_year is not None else 'never'
        print(f"  {d.technology_id:<16} {d.zone_id:<8} {d.planned_year} -> {actual} ({d.reason})")
    print("\nRecommendations:")
    for r in report.recommendations:
        print(f"  - {r}")

    if args.mitigations:
        engine = ConstraintEngine(to_constraint_models(report, solution))
        graph = engine.build_dependency_graph()
        print("\nConstraints:")
        for cid in graph.topological_order():
            impact = engine.quantify_total_impact(cid)
            print(f"  [{graph.level(cid)}] {cid}: cascading exposure "
                  f"${impact.financial.expected / 1e6:,.1f}M")
            for action in engine.find_optimal_mitigation(cid, top_n=args.mitigations):
                print(f"        {action.name} (ROI {action.roi:.2f}, feasibility {action.feasibility:.2f})")
        for w in graph.warnings:
            print(f"  ! {w}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='scgep',
        description="Supply-chain-constrained generation expansion planning."
    )
    parser.add_argument(
        "--periods", type=int, default=None,
        help="Number of planning periods (default: 30)."
    )
    sub = parser.add_subparsers(dest='command', required=True)

    scenario_help = "Scenario name: " + "; ".join(
        f"{name} ({desc})" for name, desc in SCENARIO_DESCRIPTIONS.items()
    )

    p_solve = sub.add_parser('solve', help="Solve one scenario.")
    p_solve.add_argument("--scenario", default='baseline', choices=available_scenarios(),
                         help=scenario_help)
    p_solve.add_argument("--output-dir", default=None,
                         help="Write deployment, capacity, cost and material-flow CSVs here.")
    p_solve.set_defaults(func=cmd_solve)

    p_compare = sub.add_parser('compare', help="Solve and compare several scenarios.")
    p_compare.add_argument("scenarios", nargs='+', choices=available_scenarios())
    p_compare.add_argument("--workers", type=int, default=None,
                           help="Maximum concurrent solves.")
    p_compare.add_argument("--output", default=None, help="Write the summary table as CSV.")
    p_compare.set_defaults(func=cmd_compare)

    p_bottle = sub.add_parser('bottlenecks', help="Analyze supply-chain bottlenecks of a scenario.")
    p_bottle.add_argument("--scenario", default='baseline', choices=available_scenarios(),
                          help=scenario_help)
    p_bottle.add_argument("--mitigations", type=int, default=0,
                          help="Show the top N mitigations for every seeded constraint.")
    p_bottle.set_defaults(func=cmd_bottlenecks)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
