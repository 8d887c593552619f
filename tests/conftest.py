"""
Pytest configuration and shared fixtures for the SC-GEP tests.

This conftest.py adds the project root to sys.path so that `scgep` imports
work from within the tests/ directory without installing the package, and
provides small hand-built planning configurations.
"""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path so `import scgep` works
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scgep.constraints import (  # noqa: E402
    ConstraintModel,
    FinancialImpact,
    MitigationAction,
    QuantifiedImpact,
    RiskEstimate,
)
from scgep.domain import Material, PlanningConfiguration, Technology, Zone  # noqa: E402
from scgep.scenarios import create_config  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: solves the full baseline catalogue")


# ---------------------------------------------------------------------------
# Configuration builders
# ---------------------------------------------------------------------------

def make_single_tech_config(lead_time=3, peak_load=100.0, demand_growth=0.1,
                            existing=200.0, n_periods=12, reserve_margin=0.0,
                            land_area=10_000.0, capacity_density=10.0,
                            supply=1_000_000.0, lifetime=50, recovery_rate=0.0):
    """One zone, one firm technology (ELCC 1) drawing on one ample material."""
    steel = Material(id='steel', name='Steel', category='base', primary_supply=supply,
                     unit_cost=100.0, recovery_rate=recovery_rate)
    plant = Technology(
        id='firm', name='Firm Plant', type='thermal',
        material_requirements={'steel': 1.0},
        capital_cost=1_000_000.0, lead_time=lead_time, lifetime=lifetime,
        capacity_factor=0.5, elcc=1.0, renewable=False, siting='land',
        capacity_density=capacity_density, variable_cost=10.0, fixed_om=1_000.0,
    )
    zone = Zone(
        id='z1', name='Zone 1', land_area=land_area, peak_load=peak_load,
        demand_growth=demand_growth, reserve_margin=reserve_margin, rps_target=0.0,
        existing_capacity={'firm': existing} if existing else {},
    )
    return PlanningConfiguration(
        materials=(steel,), technologies=(plant,), zones=(zone,),
        n_periods=n_periods, scenario_name='single_tech',
    )


def make_battery_config(lithium_supply=200.0, n_periods=10, peak_load=1_000.0,
                        demand_growth=0.05):
    """One zone served only by batteries, limited by lithium supply."""
    lithium = Material(id='lithium', name='Lithium', category='critical',
                       primary_supply=lithium_supply, unit_cost=15_000.0)
    battery = Technology(
        id='battery', name='Battery', type='battery',
        material_requirements={'lithium': 0.6},
        capital_cost=350_000.0, lead_time=1, lifetime=15,
        capacity_factor=0.0, elcc=1.0, renewable=False, siting='land',
        capacity_density=900.0, fixed_om=10_000.0,
    )
    zone = Zone(id='z1', name='Zone 1', land_area=5_000.0, peak_load=peak_load,
                demand_growth=demand_growth, reserve_margin=0.15)
    return PlanningConfiguration(
        materials=(lithium,), technologies=(battery,), zones=(zone,),
        n_periods=n_periods, scenario_name='battery_only',
    )


# ---------------------------------------------------------------------------
# Constraint builders
# ---------------------------------------------------------------------------

def make_constraint(cid, downstream=(), expected=100.0, probability=0.5, consequence=4.0,
                    severity='moderate', actions=(), impact_areas=(), status='active',
                    constraint_type='resource'):
    return ConstraintModel(
        id=cid,
        name=cid,
        type=constraint_type,
        severity=severity,
        status=status,
        impact=QuantifiedImpact(
            financial=FinancialImpact(min=expected / 2, max=expected * 2, expected=expected),
            risk=RiskEstimate.from_probability(probability, consequence),
        ),
        impact_areas=tuple(impact_areas),
        downstream_impacts=tuple(downstream),
        mitigation_options=tuple(actions),
    )


def make_action(aid, npv, cost, feasibility=0.8, dependencies=()):
    return MitigationAction(
        id=aid, name=aid, cost=cost, time_to_implement=1, effectiveness=0.5,
        npv_impact=npv, risk_reduction=0.3, feasibility=feasibility,
        dependencies=tuple(dependencies),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def root_dir():
    """Return the project root directory as a Path object."""
    return ROOT


@pytest.fixture
def single_tech_config():
    return make_single_tech_config()


@pytest.fixture
def battery_config():
    return make_battery_config()


@pytest.fixture(scope="session")
def short_baseline():
    """Baseline catalogue over a short horizon."""
    return create_config('baseline', {'n_periods': 8})


@pytest.fixture
def diamond_constraints():
    """A -> B, A -> C, B -> D, C -> D"""
    return {
        'A': make_constraint('A', downstream=('B', 'C'), expected=1000.0),
        'B': make_constraint('B', downstream=('D',), expected=200.0),
        'C': make_constraint('C', downstream=('D',), expected=30.0),
        'D': make_constraint('D', expected=4.0),
    }
