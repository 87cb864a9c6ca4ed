from .distribution import histogram, quantile, quantile_band
from .models import (
    DEFAULT_METRICS,
    SIMULATION_ITERATIONS,
    BonusConfig,
    EvaluatedMetric,
    FormulaType,
    HistogramBin,
    MetricDefinition,
    RiskReport,
    SimulationResult,
    WagerSimulation,
)
from .pipeline import result_histogram, result_to_dict, run_simulation
from .risk_scoring import FORMULAS, score
from .wager_sim import simulate, stake_size

__all__ = [
    "BonusConfig",
    "DEFAULT_METRICS",
    "EvaluatedMetric",
    "FORMULAS",
    "FormulaType",
    "HistogramBin",
    "MetricDefinition",
    "RiskReport",
    "SIMULATION_ITERATIONS",
    "SimulationResult",
    "WagerSimulation",
    "histogram",
    "quantile",
    "quantile_band",
    "result_histogram",
    "result_to_dict",
    "run_simulation",
    "score",
    "simulate",
    "stake_size",
]
