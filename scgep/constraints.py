"""
Constraint model types shared by the bottleneck analyzer and the constraint
engine.

A ConstraintModel describes one supply-chain constraint: what it costs if it
materialises, how it delays operations, how likely it is, which other
constraints it can trigger and which mitigation actions are available.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

CONSTRAINT_TYPES = ('resource', 'spatial', 'systemic', 'opportunity')
CONSTRAINT_SEVERITIES = ('critical', 'major', 'moderate', 'minor')
CONSTRAINT_STATUSES = ('active', 'predicted', 'mitigated', 'resolved')
MITIGATION_TYPES = ('preventive', 'corrective', 'contingency')


class ConstraintNotFoundError(KeyError):
    """Raised when a constraint id is not registered with the engine."""

    def __init__(self, constraint_id: str):
        self.constraint_id = constraint_id
        super().__init__(f"Constraint '{constraint_id}' is not registered")


@dataclass(frozen=True)
class FinancialImpact:
    min: float = 0.0
    max: float = 0.0
    expected: float = 0.0
    currency: str = 'USD'


@dataclass(frozen=True)
class OperationalImpact:
    delay: float = 0.0                  # periods
    throughput_reduction: float = 0.0   # fraction of planned deployment


@dataclass(frozen=True)
class RiskEstimate:
    probability: float = 0.0            # 0-1
    consequence: float = 0.0
    risk_score: float = 0.0             # probability × consequence

    @classmethod
    def from_probability(cls, probability: float, consequence: float) -> 'RiskEstimate':
        return cls(probability=probability, consequence=consequence,
                   risk_score=probability * consequence)


@dataclass(frozen=True)
class QuantifiedImpact:
    financial: FinancialImpact = field(default_factory=FinancialImpact)
    operational: OperationalImpact = field(default_factory=OperationalImpact)
    risk: RiskEstimate = field(default_factory=RiskEstimate)


@dataclass(frozen=True)
class MitigationAction:
    """A candidate intervention against one constraint."""
    id: str
    name: str
    cost: float
    time_to_implement: float            # periods
    effectiveness: float                # 0-1
    npv_impact: float
    risk_reduction: float               # 0-1
    feasibility: float                  # 0-1
    type: str = 'preventive'
    description: str = ''
    dependencies: Tuple[str, ...] = ()  # ids of actions that must come first

    @property
    def roi(self) -> Optional[float]:
        """NPV impact per dollar; None when cost is not positive."""
        if self.cost <= 0:
            return None
        return self.npv_impact / self.cost


@dataclass(frozen=True)
class ConstraintModel:
    id: str
    name: str
    type: str
    severity: str
    impact: QuantifiedImpact = field(default_factory=QuantifiedImpact)
    status: str = 'active'
    description: str = ''
    impact_areas: Tuple[str, ...] = ()
    downstream_impacts: Tuple[str, ...] = ()
    mitigation_options: Tuple[MitigationAction, ...] = ()
    source: str = 'external'

    def __post_init__(self):
        if self.type not in CONSTRAINT_TYPES:
            raise ValueError(f"Constraint '{self.id}': type must be one of {CONSTRAINT_TYPES}, "
                             f"got '{self.type}'")
        if self.severity not in CONSTRAINT_SEVERITIES:
            raise ValueError(f"Constraint '{self.id}': severity must be one of "
                             f"{CONSTRAINT_SEVERITIES}, got '{self.severity}'")
        if self.status not in CONSTRAINT_STATUSES:
            raise ValueError(f"Constraint '{self.id}': status must be one of "
                             f"{CONSTRAINT_STATUSES}, got '{self.status}'")

    def with_status(self, status: str) -> 'ConstraintModel':
        return replace(self, status=status)
