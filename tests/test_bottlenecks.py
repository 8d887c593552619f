"""
Tests for the bottleneck analyzer and constraint seeding.

Run: pytest tests/test_bottlenecks.py -v
"""

import numpy as np
import pytest

from conftest import make_battery_config, make_single_tech_config
from scgep import config
from scgep.bottlenecks import (
    BottleneckAnalyzer,
    analyze_supply_chain,
    to_constraint_models,
)
from scgep.config import SeverityThresholds
from scgep.constraint_engine import ConstraintEngine
from scgep.material_flow import track_material_flows
from scgep.solver import solve


@pytest.fixture
def lithium_limited():
    return solve(make_battery_config(lithium_supply=200.0))


# ===================================================================
# test_material_bottlenecks
# ===================================================================

class TestMaterialBottlenecks:

    def test_capped_lithium_is_critical(self, lithium_limited):
        report = analyze_supply_chain(lithium_limited)
        assert len(report.material_bottlenecks) == 1
        lithium = report.material_bottlenecks[0]
        assert lithium.material_id == 'lithium'
        assert lithium.severity == 'critical'
        assert lithium.constraint
        assert lithium.peak_utilization == pytest.approx(1.0)
        assert lithium.shortfall_tonnes > 0
        assert lithium.affected_technologies == ['battery']

    def test_high_band(self):
        # First-period draw is 1207.5 MW × 0.6 t/MW = 724.5 t against 800 t
        report = analyze_supply_chain(solve(make_battery_config(lithium_supply=800.0)))
        lithium = report.material_bottlenecks[0]
        assert lithium.peak_utilization == pytest.approx(724.5 / 800.0)
        assert lithium.severity == 'high'

    def test_ample_supply_not_reported(self):
        report = analyze_supply_chain(solve(make_battery_config(lithium_supply=2_000.0)))
        assert report.material_bottlenecks == []
        assert report.critical_count == 0

    def test_include_unconstrained(self):
        solution = solve(make_battery_config(lithium_supply=2_000.0))
        report = BottleneckAnalyzer(include_unconstrained=True).analyze(solution)
        lithium = report.material_bottlenecks[0]
        assert lithium.severity is None
        assert not lithium.constraint
        assert lithium.impact == 'No constraint'

    def test_custom_thresholds(self):
        solution = solve(make_battery_config(lithium_supply=2_000.0))
        strict = SeverityThresholds(critical=0.3, high=0.2, moderate=0.1)
        report = analyze_supply_chain(solution, thresholds=strict)
        assert report.material_bottlenecks[0].severity == 'critical'

    def test_infinite_utilization_uses_marker(self):
        solution = solve(make_single_tech_config())
        flows = track_material_flows(solution)
        flows['steel'].utilization[2] = np.inf
        report = BottleneckAnalyzer().analyze(solution, flows)
        steel = report.material_bottlenecks[0]
        assert steel.peak_utilization == config.OVER_UTILIZATION_MARKER
        assert steel.peak_period == 2
        assert steel.severity == 'critical'

    def test_recommendation_for_critical_material(self, lithium_limited):
        report = analyze_supply_chain(lithium_limited)
        assert any('lithium' in r and 'stockpile' in r for r in report.recommendations)


# ===================================================================
# test_spatial_constraints
# ===================================================================

class TestSpatialConstraints:

    def test_fully_used_land_is_critical(self):
        # 100 MW at 10 MW/km² fills exactly the 10 km² available
        cfg = make_single_tech_config(existing=0.0, demand_growth=0.0, lead_time=0,
                                      land_area=10.0, n_periods=4)
        solution = solve(cfg)
        assert solution.feasibility
        report = analyze_supply_chain(solution)
        assert len(report.spatial_constraints) == 1
        land = report.spatial_constraints[0]
        assert (land.zone_id, land.siting) == ('z1', 'land')
        assert land.peak_utilization == pytest.approx(1.0)
        assert land.severity == 'critical'
        assert land.available_area == 10.0

    def test_ample_land_not_reported(self, single_tech_config):
        report = analyze_supply_chain(solve(single_tech_config))
        assert report.spatial_constraints == []


# ===================================================================
# test_technology_delays
# ===================================================================

class TestTechnologyDelays:

    def test_lead_time_delay(self):
        cfg = make_single_tech_config(existing=0.0, demand_growth=0.0, n_periods=6)
        report = analyze_supply_chain(solve(cfg))
        assert len(report.technology_delays) == 1
        d = report.technology_delays[0]
        assert d.technology_id == 'firm'
        assert d.cause == 'lead_time'
        assert (d.planned_year, d.actual_year, d.delay) == (2025, 2028, 3)
        assert any('Commit firm earlier' in r for r in report.recommendations)

    def test_material_delays_keep_first_occurrence(self, lithium_limited):
        report = analyze_supply_chain(lithium_limited)
        material = [d for d in report.technology_delays if d.cause == 'material']
        assert len(material) == 1
        assert material[0].reason == 'material:lithium'
        assert material[0].planned_period == 1

    def test_frames(self, lithium_limited):
        frames = analyze_supply_chain(lithium_limited).to_frames()
        assert set(frames) == {'materials', 'spatial', 'delays'}
        assert len(frames['materials']) == 1


# ===================================================================
# test_cost_impact
# ===================================================================

class TestCostImpact:

    def test_reference_cost(self, lithium_limited):
        reference = lithium_limited.objective_value / 2
        report = BottleneckAnalyzer().analyze(lithium_limited, reference_cost=reference)
        assert report.cost_impact['cost_increase'] == pytest.approx(reference)
        assert report.cost_impact['cost_increase_percent'] == pytest.approx(100.0)

    def test_penalty_share(self, lithium_limited):
        impact = analyze_supply_chain(lithium_limited).cost_impact
        assert 0 < impact['penalty_share'] <= 1
        assert impact['cost_increase'] == 0.0


# ===================================================================
# test_constraint_seeding
# ===================================================================

class TestConstraintSeeding:

    @pytest.fixture
    def models(self, lithium_limited):
        return {m.id: m for m in to_constraint_models(analyze_supply_chain(lithium_limited))}

    def test_ids(self, models):
        assert set(models) == {'material:lithium', 'delay:battery:z1'}

    def test_material_links_to_delay(self, models):
        material = models['material:lithium']
        assert material.type == 'resource'
        assert material.severity == 'critical'
        assert material.downstream_impacts == ('delay:battery:z1',)
        assert models['delay:battery:z1'].type == 'systemic'

    def test_mitigation_ids_and_dependencies(self, models):
        actions = {a.id: a for a in models['material:lithium'].mitigation_options}
        assert 'material:lithium/strategic_stockpile' in actions
        substitution = actions['material:lithium/material_substitution']
        assert substitution.dependencies == ('material:lithium/diversify_supply',)

    def test_exposure_positive(self, models):
        for m in models.values():
            assert m.impact.financial.expected > 0, f"{m.id} has no exposure"
            assert m.impact.financial.min <= m.impact.financial.expected <= m.impact.financial.max

    def test_engine_accepts_seeded_models(self, models):
        engine = ConstraintEngine(models.values())
        graph = engine.build_dependency_graph()
        assert graph.level('material:lithium') == 0
        assert graph.level('delay:battery:z1') == 1
        assert not graph.has_cycle

    def test_requires_solution(self, lithium_limited):
        report = analyze_supply_chain(lithium_limited)
        report.solution = None
        with pytest.raises(ValueError):
            to_constraint_models(report)
