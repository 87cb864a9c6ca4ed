from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Balances below this are treated as fully busted.
BUST_EPSILON = 0.01
# Smallest stake the simulator will place.
MIN_STAKE = 0.10
SIMULATION_ITERATIONS = 2000


class FormulaType(str, Enum):
    HOLD_PERCENT = "HOLD_PERCENT"
    BONUS_COST = "BONUS_COST"
    CANNIBALIZATION = "CANNIBALIZATION"
    NET_CONTRIBUTION = "NET_CONTRIBUTION"
    CHURN_PROB = "CHURN_PROB"
    ROI_PERCENT = "ROI_PERCENT"


class MetricDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    formula_type: FormulaType
    target: float = 0.0
    weight: float = Field(default=1.0, ge=0.0)
    is_currency: bool = False
    is_percentage: bool = False


DEFAULT_METRICS: List[MetricDefinition] = [
    MetricDefinition(id="m1", name="Hold %", formula_type=FormulaType.HOLD_PERCENT, target=0.065, is_percentage=True),
    MetricDefinition(id="m2", name="Bonus Cost", formula_type=FormulaType.BONUS_COST, target=0.35, is_percentage=True),
    MetricDefinition(id="m3", name="Cannibalization", formula_type=FormulaType.CANNIBALIZATION, target=0.15, is_percentage=True),
    MetricDefinition(id="m4", name="VIP Net Contribution", formula_type=FormulaType.NET_CONTRIBUTION, target=0.0, is_currency=True),
    MetricDefinition(id="m5", name="Churn risk", formula_type=FormulaType.CHURN_PROB, target=0.08, is_percentage=True),
]


class BonusConfig(BaseModel):
    """
    One deposit-match offer plus the player model used to wager it through.
    Casino fields (rtp, volatility) and sportsbook fields (min_odds,
    bookie_margin, is_free_bet) are both present; `mode` picks which apply.
    """

    model_config = ConfigDict(frozen=True)

    mode: Literal["casino", "sportsbook"] = "casino"
    # Zero is accepted; ratios over the deposit fall back to a denominator of 1.
    deposit: float = Field(default=100.0, ge=0.0)
    match_percent: float = Field(default=100.0, ge=0.0)
    match_up_to: float = Field(default=500.0, ge=0.0)
    wager_multiplier: float = Field(default=35.0, gt=0.0)
    rtp: float = Field(default=96.5, gt=0.0, le=100.0)
    volatility: float = Field(default=0.5, ge=0.0, le=1.0)
    risk_score: float = Field(default=5.0, ge=1.0, le=10.0)
    use_manual_bet: bool = False
    manual_bet_size: float = Field(default=2.0, ge=0.0)
    min_odds: float = Field(default=1.8, ge=1.0)
    bookie_margin: float = Field(default=5.0, ge=0.0, lt=100.0)
    is_free_bet: bool = False
    loop_limit: int = Field(default=1500, ge=1)
    iterations: int = Field(default=SIMULATION_ITERATIONS, ge=1)
    seed: Optional[int] = None
    metrics: List[MetricDefinition] = Field(default_factory=lambda: list(DEFAULT_METRICS))

    @property
    def bonus_amount(self) -> float:
        return min(self.deposit * (self.match_percent / 100.0), self.match_up_to)

    @property
    def start_bankroll(self) -> float:
        return self.deposit + self.bonus_amount

    @property
    def wagering_required(self) -> float:
        return self.start_bankroll * self.wager_multiplier


@dataclass(frozen=True)
class WagerSimulation:
    ev: float
    win_rate: float
    bust_rate: float
    win_count: int
    bust_count: int
    average_end_balance: float
    median_end_balance: float
    min_balance: float
    max_balance: float
    results_distribution: Tuple[float, ...]
    wager_completed_avg: float
    total_wagering_required: float
    bonus_amount: float
    iterations: int

    @property
    def theoretical_cost(self) -> float:
        return -self.ev


@dataclass(frozen=True)
class EvaluatedMetric:
    definition: MetricDefinition
    actual: float
    formula_string: str
    score: float

    @property
    def weighted_score(self) -> float:
        return self.score * self.definition.weight


@dataclass(frozen=True)
class RiskReport:
    metrics: Tuple[EvaluatedMetric, ...] = ()
    composite_risk_score: float = 0.0


@dataclass(frozen=True)
class SimulationResult:
    simulation: WagerSimulation
    risk: RiskReport = field(default_factory=RiskReport)

    def __getattr__(self, name: str) -> Any:
        # Aggregate fields (win_rate, results_distribution, ...) read through to the simulation.
        if name.startswith("__") or name == "simulation":
            raise AttributeError(name)
        return getattr(self.simulation, name)

    @property
    def risk_metrics(self) -> Tuple[EvaluatedMetric, ...]:
        return self.risk.metrics

    @property
    def composite_risk_score(self) -> float:
        return self.risk.composite_risk_score


@dataclass(frozen=True)
class HistogramBin:
    range_label: str
    midpoint: float
    count: int
