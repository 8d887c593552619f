"""
Tests for the constraint dependency graph and cascading impact.

Run: pytest tests/test_dependency_graph.py -v
"""

from dataclasses import replace

import pytest

from conftest import make_constraint
from scgep.constraints import ConstraintNotFoundError, OperationalImpact
from scgep.dependency_graph import (
    aggregate_impacts,
    build_dependency_graph,
    impact_strength,
    quantify_total_impact,
    reachable_constraints,
)


class TestGraphConstruction:

    def test_diamond_levels(self, diamond_constraints):
        graph = build_dependency_graph(diamond_constraints)
        assert graph.levels == {'A': 0, 'B': 1, 'C': 1, 'D': 2}
        assert graph.roots == ['A']
        assert not graph.has_cycle
        assert graph.warnings == []

    def test_edges(self, diamond_constraints):
        graph = build_dependency_graph(diamond_constraints)
        pairs = {(e.source, e.target) for e in graph.edges}
        assert pairs == {('A', 'B'), ('A', 'C'), ('B', 'D'), ('C', 'D')}

    def test_topological_order(self, diamond_constraints):
        order = build_dependency_graph(diamond_constraints).topological_order()
        assert order.index('A') < order.index('B') < order.index('D')
        assert order.index('C') < order.index('D')

    def test_critical_path(self, diamond_constraints):
        path = build_dependency_graph(diamond_constraints).critical_path()
        assert len(path) == 3
        assert path[0] == 'A' and path[-1] == 'D'

    def test_subset_includes_downstream_closure(self, diamond_constraints):
        graph = build_dependency_graph(diamond_constraints, ['B'])
        assert set(graph.nodes) == {'B', 'D'}
        assert graph.level('D') == 1

    def test_empty_graph(self):
        graph = build_dependency_graph({})
        assert graph.nodes == []
        assert graph.critical_path() == []


class TestCycles:
    """Cycles are broken and reported, never followed."""

    def test_two_node_cycle(self):
        constraints = {
            'A': make_constraint('A', downstream=('B',)),
            'B': make_constraint('B', downstream=('A',)),
        }
        graph = build_dependency_graph(constraints)
        assert graph.has_cycle
        assert graph.dropped_edges == [('B', 'A')]
        assert graph.levels == {'A': 0, 'B': 1}
        assert graph.warnings == ["Cycle detected: A -> B -> A; edge B -> A ignored"]

    def test_self_loop(self):
        graph = build_dependency_graph({'A': make_constraint('A', downstream=('A',))})
        assert graph.dropped_edges == [('A', 'A')]
        assert graph.levels == {'A': 0}

    def test_impact_over_cycle_counts_each_once(self):
        constraints = {
            'A': make_constraint('A', downstream=('B',), expected=10.0),
            'B': make_constraint('B', downstream=('A',), expected=5.0),
        }
        impact = quantify_total_impact(constraints, 'A')
        assert impact.financial.expected == 15.0


class TestUnknownReferences:

    def test_unknown_downstream_skipped(self):
        constraints = {'A': make_constraint('A', downstream=('ghost',))}
        graph = build_dependency_graph(constraints)
        assert graph.nodes == ['A']
        assert len(graph.warnings) == 1
        assert 'ghost' in graph.warnings[0]

    def test_unknown_requested_id(self, diamond_constraints):
        with pytest.raises(ConstraintNotFoundError) as exc:
            build_dependency_graph(diamond_constraints, ['nope'])
        assert exc.value.constraint_id == 'nope'

    def test_not_found_is_key_error(self, diamond_constraints):
        with pytest.raises(KeyError):
            quantify_total_impact(diamond_constraints, 'nope')


class TestCascadingImpact:

    def test_converging_paths_counted_once(self, diamond_constraints):
        # D is reachable through B and C but contributes once
        impact = quantify_total_impact(diamond_constraints, 'A')
        assert impact.financial.expected == 1234.0
        assert impact.financial.min == 617.0
        assert impact.financial.max == 2468.0

    def test_reachable_depths(self, diamond_constraints):
        assert reachable_constraints(diamond_constraints, 'A') == [
            ('A', 0), ('B', 1), ('C', 1), ('D', 2)
        ]

    def test_probability_at_least_one(self, diamond_constraints):
        impact = quantify_total_impact(diamond_constraints, 'A')
        assert impact.risk.probability == pytest.approx(1 - 0.5 ** 4)
        assert impact.risk.risk_score == pytest.approx(8.0)
        assert impact.risk.consequence == pytest.approx(8.0 / 0.9375)

    def test_leaf_impact_is_its_own(self, diamond_constraints):
        impact = quantify_total_impact(diamond_constraints, 'D')
        assert impact.financial.expected == 4.0
        assert impact.risk.probability == pytest.approx(0.5)

    def test_decay(self, diamond_constraints):
        impact = quantify_total_impact(diamond_constraints, 'A', decay_factor=0.5)
        assert impact.financial.expected == pytest.approx(1000 + 0.5 * 230 + 0.25 * 4)

    def test_invalid_decay(self, diamond_constraints):
        with pytest.raises(ValueError):
            quantify_total_impact(diamond_constraints, 'A', decay_factor=1.5)

    def test_operational_takes_maximum(self):
        a = make_constraint('A', downstream=('B',))
        b = make_constraint('B')
        a = replace(a, impact=replace(a.impact, operational=OperationalImpact(delay=2, throughput_reduction=0.1)))
        b = replace(b, impact=replace(b.impact, operational=OperationalImpact(delay=5, throughput_reduction=0.05)))
        impact = quantify_total_impact({'A': a, 'B': b}, 'A')
        assert impact.operational.delay == 5
        assert impact.operational.throughput_reduction == 0.1


class TestStrengthAndAggregation:

    def test_strength_from_severity(self):
        a = make_constraint('A', severity='moderate')
        b = make_constraint('B', severity='moderate')
        assert impact_strength(a, b) == pytest.approx(0.75)

    def test_strength_capped(self):
        a = make_constraint('A', severity='critical', impact_areas=('x', 'y'))
        b = make_constraint('B', severity='critical', impact_areas=('x', 'y'))
        assert impact_strength(a, b) == 1.0

    def test_aggregate_joint_probability(self, diamond_constraints):
        impact = aggregate_impacts([diamond_constraints['A'], diamond_constraints['B']])
        assert impact.financial.expected == 1200.0
        assert impact.risk.probability == pytest.approx(0.25)
        assert impact.risk.consequence == 4.0
