from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from .distribution import histogram, quantile_band
from .models import BonusConfig, HistogramBin, SimulationResult
from .risk_scoring import score
from .wager_sim import UniformSource, simulate


def run_simulation(cfg: BonusConfig, rng: Optional[UniformSource] = None, workers: int = 1) -> SimulationResult:
    sim = simulate(cfg, rng=rng, workers=workers)
    return SimulationResult(simulation=sim, risk=score(cfg, sim))


def result_to_dict(result: SimulationResult, include_distribution: bool = False) -> Dict[str, Any]:
    sim = result.simulation
    out: Dict[str, Any] = {
        "ev": sim.ev,
        "theoretical_cost": sim.theoretical_cost,
        "win_rate": sim.win_rate,
        "bust_rate": sim.bust_rate,
        "win_count": sim.win_count,
        "bust_count": sim.bust_count,
        "average_end_balance": sim.average_end_balance,
        "median_end_balance": sim.median_end_balance,
        "min_balance": sim.min_balance,
        "max_balance": sim.max_balance,
        "wager_completed_avg": sim.wager_completed_avg,
        "total_wagering_required": sim.total_wagering_required,
        "bonus_amount": sim.bonus_amount,
        "iterations": sim.iterations,
        "quantiles": quantile_band(sim.results_distribution),
        "risk_metrics": [
            {
                "id": m.definition.id,
                "name": m.definition.name,
                "formula_type": m.definition.formula_type.value,
                "target": m.definition.target,
                "weight": m.definition.weight,
                "actual": m.actual,
                "formula": m.formula_string,
                "score": m.score,
                "weighted_score": m.weighted_score,
            }
            for m in result.risk_metrics
        ],
        "composite_risk_score": result.composite_risk_score,
    }
    if include_distribution:
        out["results_distribution"] = list(sim.results_distribution)
    return out


def histogram_to_rows(bins: List[HistogramBin]) -> List[Dict[str, Any]]:
    return [asdict(b) for b in bins]


def result_histogram(result: SimulationResult, bin_count: int = 20) -> List[HistogramBin]:
    return histogram(result.simulation.results_distribution, bin_count)
