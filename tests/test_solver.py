"""
Tests for the capacity expansion solver.

Run: pytest tests/test_solver.py -v
"""

import dataclasses

import numpy as np
import pytest

from conftest import make_single_tech_config
from scgep.domain import ConfigurationError
from scgep.solver import AreaUse, CapacityExpansionSolver, check_feasibility, solve


# ===================================================================
# test_determinism
# ===================================================================

class TestDeterminism:
    """Identical input gives identical output."""

    def test_two_solves_are_identical(self, single_tech_config):
        first = solve(single_tech_config)
        second = solve(single_tech_config)
        assert first.commitments == second.commitments
        assert first.retirements == second.retirements
        assert first.shortfalls == second.shortfalls
        assert first.delays == second.delays
        assert first.objective_value == second.objective_value

    def test_solver_instance_can_be_reused(self, single_tech_config):
        solver = CapacityExpansionSolver(single_tech_config)
        assert solver.solve().commitments == solver.solve().commitments


# ===================================================================
# test_cost_accounting
# ===================================================================

class TestCostAccounting:

    def test_objective_is_sum_of_components(self):
        sol = solve(make_single_tech_config(existing=0.0, demand_growth=0.0))
        c = sol.costs
        assert sol.objective_value == pytest.approx(c.investment + c.operating + c.penalty)
        assert c.penalty > 0, "Lead time should force a priced shortfall"

    def test_period_costs_sum_to_total(self, single_tech_config):
        sol = solve(single_tech_config)
        assert len(sol.period_costs) == single_tech_config.n_periods
        assert sum(p.total for p in sol.period_costs) == pytest.approx(sol.objective_value)

    def test_costs_frame(self, single_tech_config):
        sol = solve(single_tech_config)
        frame = sol.costs_frame()
        assert len(frame) == single_tech_config.n_periods
        assert frame['total'].sum() == pytest.approx(sol.objective_value)

    def test_summary_keys(self, single_tech_config):
        summary = solve(single_tech_config).summary()
        for key in ('scenario', 'objective_value', 'investment', 'operating', 'penalty',
                    'feasibility', 'convergence', 'committed_mw', 'shortfall_periods'):
            assert key in summary, f"Missing summary key: {key}"


# ===================================================================
# test_lead_time
# ===================================================================

class TestLeadTime:
    """Builds become operational exactly lead time periods after commitment."""

    def test_first_build_arrives_when_existing_fleet_is_exceeded(self, single_tech_config):
        # 100 MW growing 10 %/yr passes the 200 MW fleet in period 8 (214 MW)
        sol = solve(single_tech_config)
        assert sol.commitments, "Expected at least one commitment"
        first = sol.commitments[0]
        assert first.period == 5
        assert first.online_period == 8
        assert first.capacity == pytest.approx(100 * 1.1 ** 8 - 200)

        installed = sol.installed_capacity('firm')
        assert np.all(installed[:8] == 0.0), "Capacity operational before lead time elapsed"
        assert np.all(installed[8:] > 0.0)

    def test_every_commitment_respects_lead_time(self, single_tech_config):
        sol = solve(single_tech_config)
        for c in sol.commitments:
            assert c.online_period - c.period == 3

    def test_no_commitment_that_cannot_arrive(self, single_tech_config):
        sol = solve(single_tech_config)
        assert all(c.online_period < single_tech_config.n_periods for c in sol.commitments)

    def test_no_shortfall_when_fleet_covers_the_wait(self, single_tech_config):
        sol = solve(single_tech_config)
        assert sol.shortfall_periods == []
        assert sol.convergence == 'optimal'

    def test_committed_then_installed(self, single_tech_config):
        sol = solve(single_tech_config)
        committed = sol.committed_capacity('firm')
        installed = sol.installed_capacity('firm')
        assert np.cumsum(committed)[-1] >= installed[-1] - 1e-9

    def test_lead_time_delay_recorded(self):
        cfg = make_single_tech_config(existing=0.0, demand_growth=0.0, n_periods=6)
        sol = solve(cfg)
        lead_delays = [d for d in sol.delays if d.reason == 'lead_time']
        assert len(lead_delays) == 1
        assert lead_delays[0].planned_period == 0
        assert lead_delays[0].actual_period == 3
        assert lead_delays[0].delay == 3


# ===================================================================
# test_shortfall_vs_infeasible
# ===================================================================

class TestShortfallVersusInfeasible:
    """Unmet requirements are priced; only impossible ones are infeasible."""

    def test_lead_time_gap_is_a_shortfall(self):
        cfg = make_single_tech_config(existing=0.0, demand_growth=0.0, n_periods=6)
        sol = solve(cfg)
        assert sol.feasibility
        assert sol.convergence == 'shortfall'
        assert sol.shortfall_periods == [0, 1, 2]
        first = sol.shortfalls[0]
        assert first.load_shed == pytest.approx(100.0)
        assert first.penalty > 0

    def test_area_cap_makes_solve_infeasible(self):
        # 1 km² at 10 MW/km² can never host the 200+ MW the zone needs
        cfg = make_single_tech_config(land_area=1.0)
        sol = solve(cfg)
        assert not sol.feasibility
        assert sol.convergence == 'infeasible'
        assert any('reserve margin' in d for d in sol.diagnostics)
        assert sol.objective_value >= 0

    def test_check_feasibility_passes_ample_area(self, single_tech_config):
        assert check_feasibility(single_tech_config) == []

    def test_invalid_config_raises_before_solving(self):
        with pytest.raises(ConfigurationError):
            solve(make_single_tech_config(n_periods=0))


# ===================================================================
# test_material_caps
# ===================================================================

class TestMaterialCaps:

    @pytest.fixture
    def scarce(self):
        return solve(make_single_tech_config(
            existing=0.0, demand_growth=0.0, lead_time=0, supply=5.0, n_periods=5
        ))

    def test_allocation_clipped_to_material(self, scarce):
        for c in scarce.commitments:
            assert c.capacity <= 5.0 + 1e-9

    def test_material_shortfall_recorded(self, scarce):
        first = scarce.material_shortfalls[0]
        assert first.period == 0
        assert first.material_id == 'steel'
        assert first.requested == pytest.approx(100.0)
        assert first.granted == pytest.approx(5.0)
        assert first.deficit == pytest.approx(95.0)

    def test_material_delay_recorded(self, scarce):
        reasons = {d.reason for d in scarce.delays}
        assert 'material:steel' in reasons
        assert 'lead_time' not in reasons

    def test_unresolved_delay_has_no_actual_period(self, scarce):
        assert any(d.actual_period is None and d.delay is None for d in scarce.delays)

    def test_convergence_is_shortfall(self, scarce):
        assert scarce.feasibility
        assert scarce.convergence == 'shortfall'


# ===================================================================
# test_retirement
# ===================================================================

class TestRetirement:

    def test_capacity_retires_after_lifetime(self):
        cfg = make_single_tech_config(existing=0.0, demand_growth=0.0, lead_time=0,
                                      lifetime=2, n_periods=6)
        sol = solve(cfg)
        assert sol.commitments[0].retirement_period == 2
        assert [r.period for r in sol.retirements] == [2, 4]
        assert all(not r.existing for r in sol.retirements)
        assert sol.shortfall_periods == []

    def test_existing_fleet_retirement(self):
        cfg = make_single_tech_config(demand_growth=0.0, lead_time=0, n_periods=4)
        zone = dataclasses.replace(cfg.zones[0], existing_retirement={'firm': 2})
        sol = solve(dataclasses.replace(cfg, zones=(zone,)))
        retired = [r for r in sol.retirements if r.existing]
        assert len(retired) == 1
        assert retired[0].period == 2
        assert sol.total_capacity('firm')[2] == pytest.approx(100.0)


# ===================================================================
# test_outputs
# ===================================================================

class TestOutputs:

    def test_area_use_recorded_every_period(self, single_tech_config):
        sol = solve(single_tech_config)
        land = [a for a in sol.area_use if a.siting == 'land']
        assert len(land) == single_tech_config.n_periods
        assert all(0 <= a.utilization < 1 for a in land)

    def test_area_utilization_against_zero_area(self):
        assert AreaUse(0, 'z', 'offshore', used=1.0, available=0.0).utilization == float('inf')
        assert AreaUse(0, 'z', 'offshore', used=0.0, available=0.0).utilization == 0.0

    def test_deployments_frame(self, single_tech_config):
        sol = solve(single_tech_config)
        frame = sol.deployments_frame()
        assert len(frame) == len(sol.commitments)
        assert set(frame['driver']) == {'reliability'}
        assert frame['year'].iloc[0] == single_tech_config.years[5]

    def test_capacity_frame_non_negative(self, single_tech_config):
        frame = solve(single_tech_config).capacity_frame()
        assert (frame['installed_mw'] >= 0).all()
        assert (frame['total_mw'] >= frame['installed_mw']).all()


# ===================================================================
# test_baseline (full catalogue)
# ===================================================================

@pytest.mark.slow
class TestBaselineSolve:

    @pytest.fixture(scope="class")
    def solution(self, short_baseline):
        return solve(short_baseline)

    def test_capacities_non_negative(self, solution):
        assert all(c.capacity > 0 for c in solution.commitments)
        for tech in solution.config.technologies:
            assert np.all(solution.installed_capacity(tech.id) >= 0)

    def test_zones_processed(self, solution):
        zones = {a.zone_id for a in solution.area_use}
        assert zones == {z.id for z in solution.config.zones}

    def test_rps_driver_present(self, solution):
        assert any(c.driver == 'rps' for c in solution.commitments)

    def test_objective_positive(self, solution):
        assert solution.objective_value > 0
