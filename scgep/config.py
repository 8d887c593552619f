# config.py - Shared constants for the SC-GEP planning engine
# Edit thresholds and default costs here rather than in the modules that use them

from dataclasses import dataclass
from typing import Optional

# ── Time ───────────────────────────────────────────────────────────────────────
HOURS_PER_YEAR = 8760
DEFAULT_START_YEAR = 2025
DEFAULT_N_PERIODS = 30
DEFAULT_PERIOD_LENGTH_YEARS = 1
DEFAULT_DISCOUNT_RATE = 0.05

# ── Penalty costs (PJM / Maryland reference values) ────────────────────────────
DEFAULT_VOLL = 10_000.0                 # $/MWh of unserved energy
DEFAULT_UNSERVED_HOURS = 50.0           # hours/period a peak-load shortfall is unserved
DEFAULT_RPS_PENALTY = 60.0              # $/MWh, Maryland alternative compliance payment
DEFAULT_RESERVE_PENALTY = 263_000.0     # $/MW-period, PJM net CONE

# ── Numerical tolerances ───────────────────────────────────────────────────────
CAPACITY_TOLERANCE = 1e-6               # MW below which an allocation is dropped
FEASIBILITY_TOLERANCE = 1e-6            # relative slack for the any-allocation check
CONSERVATION_TOLERANCE = 1e-6           # tonnes

# ── Utilization sentinels ──────────────────────────────────────────────────────
# Infinite utilization (draw against zero supply) is reported as this ratio
OVER_UTILIZATION_MARKER = 999.0

# ── Scenario comparison ────────────────────────────────────────────────────────
MAX_SCENARIO_WORKERS = 5

# ── Constraint engine ──────────────────────────────────────────────────────────
SEVERITY_SCORE = {
    'critical': 1.0,
    'major': 0.75,
    'moderate': 0.5,
    'minor': 0.25,
}
MIN_PORTFOLIO_FEASIBILITY = 0.7         # actions below this are never put in a portfolio

# Bottleneck severity → ConstraintModel severity
BOTTLENECK_TO_CONSTRAINT_SEVERITY = {
    'critical': 'critical',
    'high': 'major',
    'moderate': 'moderate',
}

# ── Mitigation library ─────────────────────────────────────────────────────────
# Candidate actions generated for seeded constraints.
# Each entry: (action key, name, type, cost share of exposure, periods to implement,
#              effectiveness, risk reduction, feasibility, prerequisite keys)
MATERIAL_MITIGATIONS = [
    ('strategic_stockpile', 'Build a strategic stockpile', 'preventive', 0.20, 1, 0.35, 0.30, 0.90, ()),
    ('diversify_supply', 'Diversify primary supply sources', 'preventive', 0.15, 2, 0.45, 0.40, 0.80, ()),
    ('expand_recycling', 'Expand end-of-life recycling', 'corrective', 0.10, 3, 0.25, 0.20, 0.85, ()),
    ('material_substitution', 'Substitute with lower-intensity chemistry', 'corrective', 0.30, 4, 0.55,
     0.50, 0.60, ('diversify_supply',)),
]

SPATIAL_MITIGATIONS = [
    ('repower_sites', 'Repower existing sites at higher density', 'corrective', 0.20, 2, 0.30, 0.25, 0.85, ()),
    ('dual_use_siting', 'Dual-use siting (agrivoltaics, brownfields)', 'preventive', 0.12, 2, 0.20,
     0.15, 0.80, ()),
    ('interzonal_transfer', 'Shift deployment to neighbouring zones', 'contingency', 0.25, 3, 0.40,
     0.35, 0.75, ('repower_sites',)),
]

DELAY_MITIGATIONS = [
    ('expedite_procurement', 'Expedite long-lead procurement', 'preventive', 0.10, 1, 0.30, 0.25, 0.85, ()),
    ('bridge_capacity', 'Contract bridge capacity', 'contingency', 0.18, 1, 0.50, 0.45, 0.90, ()),
]

# ── Constraint seeding ─────────────────────────────────────────────────────────
EXPOSURE_RANGE = (0.5, 1.5)             # financial min/max as multiples of expected
SPATIAL_INVESTMENT_SHARE = 0.10         # share of sited investment at risk from an area cap
MAX_CONSEQUENCE = 10.0                  # consequence scale of a critical constraint


@dataclass(frozen=True)
class SeverityThresholds:
    """
    Utilization thresholds used by the bottleneck analyzer.

    Ratios are fractions (0.95 = 95 %). A value exactly on a threshold belongs
    to the more severe class.
    """
    critical: float = 0.95
    high: float = 0.85
    moderate: float = 0.70

    def __post_init__(self):
        if not (self.critical >= self.high >= self.moderate >= 0):
            raise ValueError(
                f"Thresholds must satisfy critical >= high >= moderate >= 0, "
                f"got {self.critical}, {self.high}, {self.moderate}"
            )

    def classify(self, utilization: float) -> Optional[str]:
        """Return 'critical', 'high', 'moderate' or None."""
        if utilization >= self.critical:
            return 'critical'
        if utilization >= self.high:
            return 'high'
        if utilization >= self.moderate:
            return 'moderate'
        return None


MATERIAL_THRESHOLDS = SeverityThresholds()
SPATIAL_THRESHOLDS = SeverityThresholds()
