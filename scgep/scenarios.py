"""
Scenario definitions and configuration factory.

A scenario is a named set of multipliers applied on top of a base
configuration. ``create_config`` is the entry point used by callers that
build scenario-specific input from the baseline plus per-material,
per-technology or per-zone overrides.
"""

import dataclasses
import logging
from typing import Any, Dict, Mapping, Optional

from . import technology_catalog as catalog
from .domain import (
    ConfigurationError,
    PenaltyCosts,
    PlanningConfiguration,
    ScenarioMultipliers,
    require_valid,
)

logger = logging.getLogger(__name__)


# ── Declared scenarios ─────────────────────────────────────────────────────────
SCENARIOS = {
    'baseline': ScenarioMultipliers(),
    'low_demand': ScenarioMultipliers(demand=0.8),
    'high_demand': ScenarioMultipliers(demand=1.4),
    'constrained_supply': ScenarioMultipliers(supply=0.6, stock=0.5, lead_time=1.5,
                                              manufacturing=0.7),
    'unconstrained_supply': ScenarioMultipliers(supply=100.0, stock=100.0,
                                                manufacturing=100.0),
    'rapid_expansion': ScenarioMultipliers(supply=1.3, stock=1.5, lead_time=0.6,
                                           manufacturing=2.0),
    'land_constrained': ScenarioMultipliers(land_area=0.5),
}

SCENARIO_DESCRIPTIONS = {
    'baseline': 'Reference supply, demand and lead times',
    'low_demand': 'Demand 20% below reference',
    'high_demand': 'Demand 40% above reference',
    'constrained_supply': 'Supply chain disruption: 60% supply, 50% stock, 1.5x lead times',
    'unconstrained_supply': 'Material and manufacturing supply effectively unlimited',
    'rapid_expansion': 'Accelerated deployment: shorter lead times, doubled manufacturing',
    'land_constrained': 'Half of the land and offshore area available for siting',
}

# Top-level overrides accepted by create_config besides the per-entity blocks
SCALAR_OVERRIDES = ('n_periods', 'start_year', 'period_length_years', 'discount_rate')


def available_scenarios():
    return list(SCENARIOS)


def baseline_config(**kwargs) -> PlanningConfiguration:
    """
    Build the reference Maryland / PJM configuration.

    Keyword arguments are passed to :class:`PlanningConfiguration`
    (e.g. ``n_periods=10``).
    """
    catalog.validate_catalog()
    return PlanningConfiguration(
        materials=catalog.build_materials(),
        technologies=catalog.build_technologies(),
        zones=catalog.build_zones(),
        products=catalog.build_products(),
        **kwargs,
    )


def apply_scenario(base: PlanningConfiguration, scenario_name: str) -> PlanningConfiguration:
    """Return a new configuration with the scenario's multipliers applied."""
    if scenario_name not in SCENARIOS:
        raise ConfigurationError([
            f"Unknown scenario '{scenario_name}'. Available scenarios: {sorted(SCENARIOS)}"
        ])
    return dataclasses.replace(
        base,
        scenario_name=scenario_name,
        multipliers=base.multipliers.combine(SCENARIOS[scenario_name]),
    )


def _replace_fields(obj, changes: Mapping[str, Any], label: str, errors: list):
    names = {f.name for f in dataclasses.fields(obj)}
    unknown = set(changes) - names
    if unknown:
        errors.append(f"{label}: unknown fields {sorted(unknown)}")
        return obj
    return dataclasses.replace(obj, **changes)


def _override_entities(entities, changes: Mapping[str, Mapping[str, Any]], kind: str, errors: list):
    by_id = {e.id: e for e in entities}
    missing = set(changes) - set(by_id)
    for entity_id in sorted(missing):
        errors.append(f"Override for unknown {kind} '{entity_id}'")
    return tuple(
        _replace_fields(e, changes[e.id], f"{kind} '{e.id}'", errors) if e.id in changes else e
        for e in entities
    )


def apply_overrides(base: PlanningConfiguration,
                    overrides: Optional[Mapping[str, Any]]) -> PlanningConfiguration:
    """
    Apply per-entity and scalar overrides to a configuration.

    ``overrides`` may contain:
    - ``materials`` / ``technologies`` / ``zones``: {id: {field: value}}
    - ``multipliers`` / ``penalties``: {field: value}
    - any of ``n_periods``, ``start_year``, ``period_length_years``, ``discount_rate``
    """
    if not overrides:
        return base

    errors = []
    known = {'materials', 'technologies', 'zones', 'multipliers', 'penalties', *SCALAR_OVERRIDES}
    unknown = set(overrides) - known
    if unknown:
        errors.append(f"Unknown override keys {sorted(unknown)}; accepted keys: {sorted(known)}")

    changes: Dict[str, Any] = {k: overrides[k] for k in SCALAR_OVERRIDES if k in overrides}
    if 'materials' in overrides:
        changes['materials'] = _override_entities(base.materials, overrides['materials'],
                                                  'material', errors)
    if 'technologies' in overrides:
        changes['technologies'] = _override_entities(base.technologies, overrides['technologies'],
                                                     'technology', errors)
    if 'zones' in overrides:
        changes['zones'] = _override_entities(base.zones, overrides['zones'], 'zone', errors)
    if 'multipliers' in overrides:
        changes['multipliers'] = _replace_fields(base.multipliers, overrides['multipliers'],
                                                 'multipliers', errors)
    if 'penalties' in overrides:
        changes['penalties'] = _replace_fields(base.penalties or PenaltyCosts(),
                                               overrides['penalties'], 'penalties', errors)

    if errors:
        raise ConfigurationError(errors)
    return dataclasses.replace(base, **changes)


def create_config(scenario_name: str = 'baseline',
                  overrides: Optional[Mapping[str, Any]] = None,
                  base: Optional[PlanningConfiguration] = None) -> PlanningConfiguration:
    """
    Build a validated configuration for a named scenario.

    Parameters
    ----------
    scenario_name : str
        One of :data:`SCENARIOS`.
    overrides : dict, optional
        Per-entity or scalar overrides, see :func:`apply_overrides`.
    base : PlanningConfiguration, optional
        Configuration to start from (default: :func:`baseline_config`).

    Raises
    ------
    ConfigurationError
        If the scenario is unknown, an override is malformed or the resulting
        configuration fails validation.
    """
    base = base if base is not None else baseline_config()
    cfg = apply_scenario(apply_overrides(base, overrides), scenario_name)
    require_valid(cfg)
    logger.info(f"Created configuration for scenario '{scenario_name}' "
                f"({cfg.n_periods} periods from {cfg.start_year})")
    return cfg
