"""
Technology Catalogue
====================

Baseline data for the Maryland / PJM planning region: materials, technologies,
learning rates and zones. ``scgep.scenarios`` builds planning configurations
from these tables.

INSTRUCTIONS FOR EDITING:
1. Material supply figures are the share of global production available to
   the planning region, in tonnes per period.
2. Material requirements (right side) are tonnes per MW of installed capacity.
3. A technology missing from TECHNOLOGY_LIFETIMES falls back to DEFAULT_LIFETIME.

Format:
    TECHNOLOGY_MATERIALS = {
        'technology_id': {
            'material_id': tonnes_per_MW,
            ...
        }
    }
"""

import logging
from typing import Dict, List, Tuple

from .domain import Material, Product, Technology, Zone

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME = 30
DEFAULT_LEAD_TIME = 2


# ============================================================================
# MATERIALS
# ============================================================================
# (id, name, category, primary supply t/period, unit cost $/t,
#  stock t, recovery rate)

MATERIALS = [
    ('lithium', 'Lithium', 'critical', 900.0, 15_000.0, 400.0, 0.10),
    ('cobalt', 'Cobalt', 'critical', 500.0, 55_000.0, 200.0, 0.15),
    ('nickel', 'Nickel', 'critical', 4_000.0, 18_000.0, 1_500.0, 0.80),
    ('silicon', 'Silicon', 'base', 20_000.0, 2_500.0, 5_000.0, 0.85),
    ('copper', 'Copper', 'base', 30_000.0, 9_000.0, 8_000.0, 0.85),
    ('neodymium', 'Neodymium', 'rare_earth', 60.0, 120_000.0, 20.0, 0.05),
]


# ============================================================================
# MATERIAL INTENSITIES (t/MW)
# ============================================================================

TECHNOLOGY_MATERIALS = {
    # ============================================================================
    # SOLAR
    # ============================================================================
    'solar_pv': {
        'silicon': 4.0,
        'copper': 4.5,
    },

    # ============================================================================
    # STORAGE
    # ============================================================================
    'battery_storage': {
        # 4-hour lithium-ion (NMC) system
        'lithium': 0.6,
        'cobalt': 0.25,
        'nickel': 1.2,
        'copper': 1.0,
    },

    # ============================================================================
    # WIND
    # ============================================================================
    'wind_onshore': {
        'copper': 3.0,
        'nickel': 0.4,
        'neodymium': 0.03,      # direct-drive share of the fleet
    },

    'wind_offshore': {
        'copper': 8.0,
        'nickel': 0.5,
        'neodymium': 0.18,
    },

    # ============================================================================
    # THERMAL
    # ============================================================================
    'gas_ct': {
        'copper': 1.0,
        'nickel': 0.05,
    },
}


# ============================================================================
# TECHNOLOGY PARAMETERS
# ============================================================================
# Costs in $/MW (capital), $/MWh (variable) and $/MW-period (fixed O&M)

TECHNOLOGY_PARAMETERS = {
    'solar_pv': dict(
        name='Solar PV', type='solar', capital_cost=1_200_000.0,
        capacity_factor=0.22, elcc=0.40, renewable=True, siting='land',
        capacity_density=36.0, variable_cost=0.0, fixed_om=20_000.0,
        manufacturing_capacity=3_000.0,
    ),
    'battery_storage': dict(
        name='Battery Storage', type='battery', capital_cost=350_000.0,
        capacity_factor=0.0, elcc=0.95, renewable=False, siting='land',
        capacity_density=900.0, variable_cost=5.0, fixed_om=10_000.0,
        manufacturing_capacity=1_500.0,
    ),
    'wind_onshore': dict(
        name='Onshore Wind', type='wind_onshore', capital_cost=1_500_000.0,
        capacity_factor=0.35, elcc=0.20, renewable=True, siting='land',
        capacity_density=3.09, variable_cost=0.0, fixed_om=40_000.0,
        manufacturing_capacity=800.0,
    ),
    'wind_offshore': dict(
        name='Offshore Wind', type='wind_offshore', capital_cost=2_800_000.0,
        capacity_factor=0.45, elcc=0.30, renewable=True, siting='offshore',
        capacity_density=5.2, variable_cost=0.0, fixed_om=80_000.0,
        manufacturing_capacity=600.0,
    ),
    'gas_ct': dict(
        name='Gas Combustion Turbine', type='thermal', capital_cost=950_000.0,
        capacity_factor=0.10, elcc=0.90, renewable=False, siting='land',
        capacity_density=200.0, variable_cost=45.0, fixed_om=15_000.0,
        manufacturing_capacity=None,
    ),
}


# ============================================================================
# LEAD TIMES AND LIFETIMES (periods)
# ============================================================================

TECHNOLOGY_LEAD_TIMES = {
    'solar_pv': 2,
    'battery_storage': 1,
    'wind_onshore': 3,
    'wind_offshore': 4,
    'gas_ct': 2,
}

TECHNOLOGY_LIFETIMES = {
    'solar_pv': 30,
    'battery_storage': 15,
    'wind_onshore': 25,
    'wind_offshore': 25,
    'gas_ct': 30,
}


# ============================================================================
# LEARNING RATES (capital cost decline per period)
# ============================================================================

LEARNING_RATES = {
    'solar_pv': 0.02,
    'battery_storage': 0.03,
    'wind_onshore': 0.01,
    'wind_offshore': 0.015,
    'gas_ct': 0.0,
}


# ============================================================================
# ZONES (Maryland utility territories)
# ============================================================================

ZONES = [
    dict(
        id='bge', name='Baltimore Gas & Electric',
        land_area=1_200.0, offshore_area=0.0, peak_load=6_428.0,
        demand_growth=0.012, rps_target=0.50,
        existing_capacity={'solar_pv': 800.0, 'battery_storage': 200.0,
                           'wind_onshore': 150.0, 'gas_ct': 7_000.0},
        existing_retirement={'gas_ct': 18},
    ),
    dict(
        id='aps', name='Allegheny Power Systems',
        land_area=800.0, offshore_area=0.0, peak_load=1_554.0,
        demand_growth=0.021, rps_target=0.50,
        existing_capacity={'solar_pv': 300.0, 'battery_storage': 100.0,
                           'wind_onshore': 75.0, 'gas_ct': 1_700.0},
        existing_retirement={'gas_ct': 20},
    ),
    dict(
        id='dpl', name='Delmarva Power & Light',
        land_area=600.0, offshore_area=1_500.0, peak_load=961.0,
        demand_growth=0.018, rps_target=0.50,
        existing_capacity={'solar_pv': 200.0, 'battery_storage': 50.0,
                           'wind_onshore': 25.0, 'gas_ct': 1_050.0},
        existing_retirement={'gas_ct': 15},
    ),
    dict(
        id='pepco', name='Potomac Electric Power Company',
        land_area=400.0, offshore_area=0.0, peak_load=2_958.0,
        demand_growth=0.025, rps_target=0.50,
        existing_capacity={'solar_pv': 400.0, 'battery_storage': 150.0,
                           'wind_onshore': 50.0, 'gas_ct': 3_200.0},
        existing_retirement={'gas_ct': 22},
    ),
]

BASELINE_RESERVE_MARGIN = 0.15
BASELINE_LOAD_FACTOR = 0.60


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_lifetime(technology_id: str) -> int:
    """Get the lifetime (periods) for a technology"""
    return TECHNOLOGY_LIFETIMES.get(technology_id, DEFAULT_LIFETIME)


def get_lead_time(technology_id: str) -> int:
    """Get the lead time (periods) for a technology"""
    return TECHNOLOGY_LEAD_TIMES.get(technology_id, DEFAULT_LEAD_TIME)


def get_material_requirements(technology_id: str) -> Dict[str, float]:
    """
    Get the material intensities for a technology.

    Returns:
        dict: {material_id: tonnes_per_MW}
    """
    return dict(TECHNOLOGY_MATERIALS.get(technology_id, {}))


def validate_catalog() -> bool:
    """Check that every technology references known materials and parameters."""
    material_ids = {row[0] for row in MATERIALS}
    errors = []

    for tech_id, requirements in TECHNOLOGY_MATERIALS.items():
        if tech_id not in TECHNOLOGY_PARAMETERS:
            errors.append(f"  - {tech_id}: material intensities but no parameters")
        for mat_id, qty in requirements.items():
            if mat_id not in material_ids:
                errors.append(f"  - {tech_id}: unknown material '{mat_id}'")
            if qty < 0:
                errors.append(f"  - {tech_id}: negative intensity for '{mat_id}'")

    for tech_id in TECHNOLOGY_PARAMETERS:
        if tech_id not in TECHNOLOGY_MATERIALS:
            logger.warning(f"  - {tech_id}: no material intensities (no material draw)")

    if errors:
        logger.error("Technology catalogue validation failed:")
        for e in errors:
            logger.error(e)
        raise ValueError("Technology catalogue validation failed:\n" + "\n".join(errors))

    logger.debug("Technology catalogue validation passed")
    return True


def build_materials() -> Tuple[Material, ...]:
    return tuple(
        Material(id=mid, name=name, category=cat, primary_supply=supply,
                 unit_cost=cost, stock=stock, recovery_rate=recovery)
        for mid, name, cat, supply, cost, stock, recovery in MATERIALS
    )


def build_technologies() -> Tuple[Technology, ...]:
    technologies: List[Technology] = []
    for tech_id, params in TECHNOLOGY_PARAMETERS.items():
        technologies.append(Technology(
            id=tech_id,
            material_requirements=get_material_requirements(tech_id),
            lead_time=get_lead_time(tech_id),
            lifetime=get_lifetime(tech_id),
            **params,
        ))
    return tuple(technologies)


def build_products() -> Tuple[Product, ...]:
    return tuple(
        Product(id=f"{tech_id}_product", technology_id=tech_id, learning_rate=rate)
        for tech_id, rate in LEARNING_RATES.items()
        if tech_id in TECHNOLOGY_PARAMETERS
    )


def build_zones() -> Tuple[Zone, ...]:
    return tuple(
        Zone(
            reserve_margin=BASELINE_RESERVE_MARGIN,
            load_factor=BASELINE_LOAD_FACTOR,
            **{k: (dict(v) if isinstance(v, dict) else v) for k, v in spec.items()},
        )
        for spec in ZONES
    )
