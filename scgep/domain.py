"""
Domain Model for Supply-Chain-Constrained Generation Expansion Planning
=======================================================================

Static description of the planning problem:
1. Materials with primary/recycled supply and carried stock
2. Technologies with material intensities, lead times and lifetimes
3. Products (a technology plus its capital-cost learning curve)
4. Zones with spatial caps, reserve margin and RPS targets
5. PlanningConfiguration, the immutable bundle handed to the solver

No behavior lives here beyond derived (effective) values and validation.
Scenario multipliers are stored on the configuration and applied through the
accessor methods, so a configuration is never rewritten once created.

All quantities are per planning period unless stated otherwise:
- material supply and stock in tonnes
- capacity in MW, area in km², costs in $
"""

import logging
import math
import numbers
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from . import config

logger = logging.getLogger(__name__)


MATERIAL_CATEGORIES = ('critical', 'rare_earth', 'base')
TECHNOLOGY_TYPES = (
    'solar', 'battery', 'wind_onshore', 'wind_offshore',
    'thermal', 'nuclear', 'hydro',
)
SITING_TYPES = ('land', 'offshore')


class ConfigurationError(ValueError):
    """Raised when a planning configuration is missing data or is invalid."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        message = "Invalid planning configuration:\n" + "\n".join(
            f"  - {e}" for e in self.errors
        )
        super().__init__(message)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

def _freeze(obj, name: str):
    """Replace a mapping field of a frozen dataclass with a read-only copy."""
    object.__setattr__(obj, name, MappingProxyType(dict(getattr(obj, name))))


@dataclass(frozen=True)
class Material:
    """A supply-constrained material (e.g. lithium, neodymium)."""
    id: str
    name: str
    category: str
    primary_supply: float               # tonnes/period
    unit_cost: float                    # $/tonne
    stock: float = 0.0                  # tonnes on hand at the start of the horizon
    recycled_supply: float = 0.0        # tonnes/period from outside the modelled fleet
    recovery_rate: float = 0.0          # share recovered from retired capacity


@dataclass(frozen=True)
class Technology:
    """
    A generation or storage technology.

    ``material_requirements`` maps material id to tonnes per MW. Material is
    reserved when a build is committed, not when it becomes operational.
    """
    id: str
    name: str
    type: str
    material_requirements: Mapping[str, float] = field(hash=False)
    capital_cost: float                 # $/MW
    lead_time: int                      # periods from commitment to operation
    lifetime: int                       # periods of operation before retirement
    capacity_factor: float = 0.0
    elcc: float = 1.0                   # capacity credit toward the reserve margin
    renewable: bool = False
    siting: str = 'land'
    capacity_density: float = 1.0       # MW/km²
    variable_cost: float = 0.0          # $/MWh
    fixed_om: float = 0.0               # $/MW-period
    manufacturing_capacity: Optional[float] = None  # MW/period across all zones

    def __post_init__(self):
        _freeze(self, 'material_requirements')

    def material_cost(self, materials: Dict[str, 'Material']) -> float:
        """Embodied material cost per MW."""
        return sum(
            qty * materials[mat_id].unit_cost
            for mat_id, qty in self.material_requirements.items()
            if mat_id in materials
        )


@dataclass(frozen=True)
class Product:
    """
    Deployable unit: one technology plus its capital-cost curve.

    Cost in period t is ``cost_curve[t]`` when an explicit curve is given
    (the last value is held past its end), otherwise the technology's capital
    cost declined by ``learning_rate`` per period.
    """
    id: str
    technology_id: str
    learning_rate: float = 0.0
    cost_curve: Tuple[float, ...] = ()

    def capital_cost(self, period: int, base_cost: float) -> float:
        if self.cost_curve:
            return self.cost_curve[min(period, len(self.cost_curve) - 1)]
        return base_cost * (1.0 - self.learning_rate) ** period


@dataclass(frozen=True)
class Zone:
    """Planning region with spatial caps and reliability/policy targets."""
    id: str
    name: str
    land_area: float                    # km² available for land-sited builds
    peak_load: float                    # MW in the first period
    offshore_area: float = 0.0          # km² available for offshore builds
    demand_growth: float = 0.0          # fraction per year
    load_factor: float = 0.6
    reserve_margin: float = 0.15
    rps_target: float = 0.0             # fraction of energy from renewables
    existing_capacity: Mapping[str, float] = field(default_factory=dict, hash=False)
    # Period at which an existing fleet retires; absent means it outlives the horizon
    existing_retirement: Mapping[str, int] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        _freeze(self, 'existing_capacity')
        _freeze(self, 'existing_retirement')


@dataclass(frozen=True)
class ScenarioMultipliers:
    """Scenario-specific scaling applied on top of the base data."""
    supply: float = 1.0
    stock: float = 1.0
    lead_time: float = 1.0
    land_area: float = 1.0
    demand: float = 1.0
    capital_cost: float = 1.0
    manufacturing: float = 1.0

    def combine(self, other: 'ScenarioMultipliers') -> 'ScenarioMultipliers':
        """Multiply two sets of multipliers field by field."""
        return ScenarioMultipliers(
            supply=self.supply * other.supply,
            stock=self.stock * other.stock,
            lead_time=self.lead_time * other.lead_time,
            land_area=self.land_area * other.land_area,
            demand=self.demand * other.demand,
            capital_cost=self.capital_cost * other.capital_cost,
            manufacturing=self.manufacturing * other.manufacturing,
        )


@dataclass(frozen=True)
class PenaltyCosts:
    """Prices attached to shortfalls."""
    voll: float = config.DEFAULT_VOLL
    unserved_hours: float = config.DEFAULT_UNSERVED_HOURS
    rps_penalty: float = config.DEFAULT_RPS_PENALTY
    reserve_penalty: float = config.DEFAULT_RESERVE_PENALTY


@dataclass(frozen=True)
class PlanningConfiguration:
    """
    Immutable input bundle for one solve.

    Use :meth:`effective_supply`, :meth:`effective_lead_time` and the other
    accessors to read values with the scenario multipliers applied.
    """
    materials: Tuple[Material, ...]
    technologies: Tuple[Technology, ...]
    zones: Tuple[Zone, ...]
    products: Tuple[Product, ...] = ()
    start_year: int = config.DEFAULT_START_YEAR
    n_periods: int = config.DEFAULT_N_PERIODS
    period_length_years: int = config.DEFAULT_PERIOD_LENGTH_YEARS
    discount_rate: float = config.DEFAULT_DISCOUNT_RATE
    scenario_name: str = 'baseline'
    multipliers: ScenarioMultipliers = field(default_factory=ScenarioMultipliers)
    penalties: PenaltyCosts = field(default_factory=PenaltyCosts)

    # ── Lookups ──────────────────────────────────────────────────────────────

    @cached_property
    def material_index(self) -> Dict[str, Material]:
        return {m.id: m for m in self.materials}

    @cached_property
    def technology_index(self) -> Dict[str, Technology]:
        return {t.id: t for t in self.technologies}

    @cached_property
    def zone_index(self) -> Dict[str, Zone]:
        return {z.id: z for z in self.zones}

    @cached_property
    def product_index(self) -> Dict[str, Product]:
        """Product per technology id; flat-cost products fill the gaps."""
        products = {p.technology_id: p for p in self.products}
        for tech in self.technologies:
            if tech.id not in products:
                products[tech.id] = Product(id=f"{tech.id}_standard", technology_id=tech.id)
        return products

    @property
    def periods(self) -> List[int]:
        return list(range(self.n_periods))

    @property
    def years(self) -> List[int]:
        return [self.start_year + t * self.period_length_years for t in self.periods]

    @property
    def hours_per_period(self) -> float:
        return config.HOURS_PER_YEAR * self.period_length_years

    # ── Effective values ─────────────────────────────────────────────────────

    def effective_supply(self, material: Material) -> float:
        """Primary plus recycled supply for one period."""
        return material.primary_supply * self.multipliers.supply + material.recycled_supply

    def effective_stock(self, material: Material) -> float:
        return material.stock * self.multipliers.stock

    def effective_lead_time(self, technology: Technology) -> int:
        """Lead time in whole periods, rounded half up after the multiplier."""
        scaled = technology.lead_time * self.multipliers.lead_time
        return max(0, int(math.floor(scaled + 0.5)))

    def effective_area(self, zone: Zone, siting: str) -> float:
        area = zone.offshore_area if siting == 'offshore' else zone.land_area
        return area * self.multipliers.land_area

    def effective_manufacturing(self, technology: Technology) -> Optional[float]:
        if technology.manufacturing_capacity is None:
            return None
        return technology.manufacturing_capacity * self.multipliers.manufacturing

    def capital_cost(self, technology: Technology, period: int) -> float:
        product = self.product_index[technology.id]
        return product.capital_cost(period, technology.capital_cost) * self.multipliers.capital_cost

    def peak_load(self, zone: Zone, period: int) -> float:
        years_elapsed = period * self.period_length_years
        return zone.peak_load * self.multipliers.demand * (1.0 + zone.demand_growth) ** years_elapsed

    def energy_demand(self, zone: Zone, period: int) -> float:
        """MWh demanded in a period."""
        return self.peak_load(zone, period) * zone.load_factor * self.hours_per_period

    def reserve_requirement(self, zone: Zone, period: int) -> float:
        """Firm MW required: peak load plus reserve margin."""
        return self.peak_load(zone, period) * (1.0 + zone.reserve_margin)

    def discount_factor(self, period: int) -> float:
        return (1.0 + self.discount_rate) ** -(period * self.period_length_years)


# ============================================================================
# VALIDATION
# ============================================================================

@dataclass
class ValidationResult:
    """Container for validation results"""
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    metadata: Dict

    def __post_init__(self):
        """Ensure errors and warnings are lists"""
        if self.errors is None:
            self.errors = []
        if self.warnings is None:
            self.warnings = []
        if self.metadata is None:
            self.metadata = {}

    def log_results(self):
        """Log validation results"""
        if self.errors:
            logger.error(f"Validation failed with {len(self.errors)} errors:")
            for error in self.errors:
                logger.error(f"  - {error}")
        if self.warnings:
            logger.warning(f"Validation completed with {len(self.warnings)} warnings:")
            for warning in self.warnings:
                logger.warning(f"  - {warning}")
        if self.is_valid:
            logger.debug("Configuration validation passed")


def _duplicates(ids: List[str]) -> List[str]:
    seen, dupes = set(), []
    for i in ids:
        if i in seen and i not in dupes:
            dupes.append(i)
        seen.add(i)
    return dupes


def _check_fraction(errors: List[str], label: str, value: float):
    if not (0.0 <= value <= 1.0):
        errors.append(f"{label} must be within [0, 1], got {value}")


def _check_non_negative(errors: List[str], label: str, value: float, finite: bool = False):
    """NaN always fails; infinity fails when ``finite`` is set."""
    if math.isnan(value) or value < 0 or (finite and math.isinf(value)):
        qualifier = "finite and non-negative" if finite else "non-negative"
        errors.append(f"{label} must be {qualifier}, got {value}")


def _is_period(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool) and value >= 0


def validate_config(cfg: PlanningConfiguration) -> ValidationResult:
    """
    Check a configuration for missing or invalid data.

    Returns
    -------
    ValidationResult
        ``is_valid`` is False when any error was collected. Warnings never
        block a solve.
    """
    errors: List[str] = []
    warnings: List[str] = []

    # Horizon
    if not _is_period(cfg.n_periods) or cfg.n_periods == 0:
        errors.append(f"Planning horizon must have at least one period, got n_periods={cfg.n_periods}")
    if not _is_period(cfg.period_length_years) or cfg.period_length_years == 0:
        errors.append(f"period_length_years must be positive, got {cfg.period_length_years}")
    if not (-1.0 < cfg.discount_rate < math.inf):
        errors.append(f"discount_rate must be finite and greater than -1, got {cfg.discount_rate}")

    if not cfg.technologies:
        errors.append("No technologies defined")
    if not cfg.zones:
        errors.append("No zones defined")

    for kind, items in (('material', cfg.materials), ('technology', cfg.technologies),
                        ('zone', cfg.zones), ('product', cfg.products)):
        for dup in _duplicates([item.id for item in items]):
            errors.append(f"Duplicate {kind} id '{dup}'")

    # Materials
    for m in cfg.materials:
        if m.category not in MATERIAL_CATEGORIES:
            errors.append(f"Material '{m.id}': unknown category '{m.category}' "
                          f"(expected one of {MATERIAL_CATEGORIES})")
        for label, value in (('primary_supply', m.primary_supply),
                             ('recycled_supply', m.recycled_supply),
                             ('stock', m.stock)):
            _check_non_negative(errors, f"Material '{m.id}': {label}", value)
        _check_non_negative(errors, f"Material '{m.id}': unit_cost", m.unit_cost, finite=True)
        _check_fraction(errors, f"Material '{m.id}': recovery_rate", m.recovery_rate)

    # Technologies
    material_ids = {m.id for m in cfg.materials}
    for t in cfg.technologies:
        if t.type not in TECHNOLOGY_TYPES:
            errors.append(f"Technology '{t.id}': unknown type '{t.type}'")
        if t.siting not in SITING_TYPES:
            errors.append(f"Technology '{t.id}': siting must be one of {SITING_TYPES}, got '{t.siting}'")
        _check_non_negative(errors, f"Technology '{t.id}': lead_time", t.lead_time, finite=True)
        if not (0 < t.lifetime < math.inf):
            errors.append(f"Technology '{t.id}': lifetime must be finite and positive, got {t.lifetime}")
        for label in ('capital_cost', 'variable_cost', 'fixed_om'):
            _check_non_negative(errors, f"Technology '{t.id}': {label}", getattr(t, label), finite=True)
        if not (0 < t.capacity_density < math.inf):
            errors.append(f"Technology '{t.id}': capacity_density must be finite and positive, "
                          f"got {t.capacity_density}")
        if t.manufacturing_capacity is not None:
            _check_non_negative(errors, f"Technology '{t.id}': manufacturing_capacity",
                                t.manufacturing_capacity)
        _check_fraction(errors, f"Technology '{t.id}': elcc", t.elcc)
        _check_fraction(errors, f"Technology '{t.id}': capacity_factor", t.capacity_factor)
        for mat_id, qty in t.material_requirements.items():
            if mat_id not in material_ids:
                errors.append(f"Technology '{t.id}': requires unknown material '{mat_id}'")
            else:
                _check_non_negative(errors, f"Technology '{t.id}': requirement for '{mat_id}'", qty,
                                    finite=True)
        if not t.material_requirements:
            warnings.append(f"Technology '{t.id}' has no material requirements")

    # Products
    tech_ids = {t.id for t in cfg.technologies}
    for dup in _duplicates([p.technology_id for p in cfg.products]):
        errors.append(f"More than one product declared for technology '{dup}'")
    for p in cfg.products:
        if p.technology_id not in tech_ids:
            errors.append(f"Product '{p.id}': unknown technology '{p.technology_id}'")
        if not (0.0 <= p.learning_rate < 1.0):
            errors.append(f"Product '{p.id}': learning_rate must be within [0, 1), got {p.learning_rate}")
        if any(not (0 <= c < math.inf) for c in p.cost_curve):
            errors.append(f"Product '{p.id}': cost curve contains negative or non-finite values")

    # Zones
    has_renewable = any(t.renewable for t in cfg.technologies)
    for z in cfg.zones:
        for label, value in (('land_area', z.land_area), ('offshore_area', z.offshore_area),
                             ('peak_load', z.peak_load), ('reserve_margin', z.reserve_margin)):
            _check_non_negative(errors, f"Zone '{z.id}': {label}", value)
        if not (-1.0 < z.demand_growth < math.inf):
            errors.append(f"Zone '{z.id}': demand_growth must be finite and greater than -1, "
                          f"got {z.demand_growth}")
        if not (0.0 < z.load_factor <= 1.0):
            errors.append(f"Zone '{z.id}': load_factor must be within (0, 1], got {z.load_factor}")
        _check_fraction(errors, f"Zone '{z.id}': rps_target", z.rps_target)
        for tech_id, mw in z.existing_capacity.items():
            if tech_id not in tech_ids:
                errors.append(f"Zone '{z.id}': existing capacity for unknown technology '{tech_id}'")
            else:
                _check_non_negative(errors, f"Zone '{z.id}': existing capacity for '{tech_id}'", mw,
                                    finite=True)
        for tech_id, period in z.existing_retirement.items():
            if not _is_period(period):
                errors.append(f"Zone '{z.id}': retirement period for '{tech_id}' must be a "
                              f"non-negative integer, got {period!r}")
            if tech_id not in z.existing_capacity:
                warnings.append(f"Zone '{z.id}': retirement period given for '{tech_id}' "
                                f"without existing capacity")
        if z.rps_target > 0 and not has_renewable:
            warnings.append(f"Zone '{z.id}' has an RPS target but no renewable technology is defined")

    # Multipliers
    for name, value in vars(cfg.multipliers).items():
        _check_non_negative(errors, f"Scenario multiplier '{name}'", value, finite=True)

    for name, value in vars(cfg.penalties).items():
        _check_non_negative(errors, f"Penalty '{name}'", value, finite=True)

    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        metadata={
            'scenario': cfg.scenario_name,
            'n_materials': len(cfg.materials),
            'n_technologies': len(cfg.technologies),
            'n_zones': len(cfg.zones),
            'n_periods': cfg.n_periods,
        },
    )


def require_valid(cfg: PlanningConfiguration) -> ValidationResult:
    """Validate and raise :class:`ConfigurationError` on any error."""
    result = validate_config(cfg)
    result.log_results()
    if not result.is_valid:
        raise ConfigurationError(result.errors)
    return result
