from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from bonus_engine.models import BonusConfig, HistogramBin, SimulationResult
from bonus_engine.pipeline import histogram_to_rows, result_to_dict

from .config import DeskSettings


def build_run_report(config: BonusConfig, result: SimulationResult, bins: List[HistogramBin]) -> Dict[str, Any]:
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "config": config.model_dump(mode="json"),
        "result": result_to_dict(result),
        "histogram": histogram_to_rows(bins),
    }


def write_run_report(settings: DeskSettings, report: Dict[str, Any]) -> Path:
    out_dir = Path(settings.report_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
    path = out_dir / f"bonus_run_{ts}.json"
    path.write_text(json.dumps(report, indent=2))
    return path


def export_distribution_csv(result: SimulationResult, path: str) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    frame = pd.DataFrame(
        {
            "trial_rank": range(len(result.simulation.results_distribution)),
            "end_balance": list(result.simulation.results_distribution),
        }
    )
    frame.to_csv(out, index=False)
    return out
