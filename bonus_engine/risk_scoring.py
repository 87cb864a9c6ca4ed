from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, List

from .models import BonusConfig, EvaluatedMetric, FormulaType, MetricDefinition, RiskReport, WagerSimulation


@dataclass(frozen=True)
class FormulaInputs:
    deposit: float
    bonus: float
    average_end_balance: float
    average_wagered: float
    ev: float
    bust_rate: float


@dataclass(frozen=True)
class FormulaSpec:
    label: str
    penalty: float
    compute: Callable[[FormulaInputs], float]
    describe: Callable[[FormulaInputs], str]
    # (actual, inputs, target) -> True when the metric breaches its target.
    breached: Callable[[float, FormulaInputs, float], bool]


def _denominator(x: float) -> float:
    return x if x and math.isfinite(x) else 1.0


FORMULAS: Dict[FormulaType, FormulaSpec] = {
    FormulaType.HOLD_PERCENT: FormulaSpec(
        label="(D + B - avg end) / avg wagered",
        penalty=2.0,
        compute=lambda x: (x.deposit + x.bonus - x.average_end_balance) / _denominator(x.average_wagered),
        describe=lambda x: f"({x.deposit:.2f} + {x.bonus:.2f} - {x.average_end_balance:.2f}) / {_denominator(x.average_wagered):.2f}",
        breached=lambda actual, x, target: actual < target,
    ),
    FormulaType.BONUS_COST: FormulaSpec(
        label="B / avg wagered",
        penalty=3.0,
        compute=lambda x: x.bonus / _denominator(x.average_wagered),
        describe=lambda x: f"{x.bonus:.2f} / {_denominator(x.average_wagered):.2f}",
        breached=lambda actual, x, target: actual > target,
    ),
    FormulaType.CANNIBALIZATION: FormulaSpec(
        label="B / D",
        penalty=4.0,
        compute=lambda x: x.bonus / _denominator(x.deposit),
        describe=lambda x: f"{x.bonus:.2f} / {_denominator(x.deposit):.2f}",
        breached=lambda actual, x, target: actual > target,
    ),
    FormulaType.NET_CONTRIBUTION: FormulaSpec(
        label="-EV",
        penalty=5.0,
        compute=lambda x: -x.ev,
        describe=lambda x: f"-({x.ev:.2f})",
        breached=lambda actual, x, target: x.ev > target,
    ),
    FormulaType.CHURN_PROB: FormulaSpec(
        label="P(bust)",
        penalty=2.0,
        compute=lambda x: x.bust_rate / 100.0,
        describe=lambda x: f"{x.bust_rate:.2f}% / 100",
        breached=lambda actual, x, target: actual > target,
    ),
    FormulaType.ROI_PERCENT: FormulaSpec(
        label="EV / D",
        penalty=3.0,
        compute=lambda x: x.ev / _denominator(x.deposit),
        describe=lambda x: f"{x.ev:.2f} / {_denominator(x.deposit):.2f}",
        breached=lambda actual, x, target: actual > target,
    ),
}

_missing = [f.value for f in FormulaType if f not in FORMULAS]
if _missing:
    raise RuntimeError(f"risk formulas missing for: {', '.join(_missing)}")


def formula_inputs(cfg: BonusConfig, sim: WagerSimulation) -> FormulaInputs:
    return FormulaInputs(
        deposit=cfg.deposit,
        bonus=cfg.bonus_amount,
        average_end_balance=sim.average_end_balance,
        average_wagered=sim.wager_completed_avg,
        ev=sim.ev,
        bust_rate=sim.bust_rate,
    )


def evaluate_metric(definition: MetricDefinition, inputs: FormulaInputs) -> EvaluatedMetric:
    spec = FORMULAS[definition.formula_type]
    actual = spec.compute(inputs)
    score = spec.penalty if spec.breached(actual, inputs, definition.target) else 0.0
    return EvaluatedMetric(
        definition=definition,
        actual=actual,
        formula_string=f"{spec.label} = {spec.describe(inputs)}",
        score=score,
    )


def composite_score(metrics: List[EvaluatedMetric]) -> float:
    return sum(m.score * m.definition.weight for m in metrics)


def score(cfg: BonusConfig, sim: WagerSimulation) -> RiskReport:
    """
    Evaluate cfg.metrics in order against one simulation. Deterministic.
    """
    inputs = formula_inputs(cfg, sim)
    evaluated = [evaluate_metric(d, inputs) for d in cfg.metrics]
    return RiskReport(metrics=tuple(evaluated), composite_risk_score=composite_score(evaluated))
