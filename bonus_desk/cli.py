from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from bonus_engine.distribution import quantile_band
from bonus_engine.models import BonusConfig, EvaluatedMetric, HistogramBin, MetricDefinition, SimulationResult
from bonus_engine.pipeline import result_histogram, run_simulation
from bonus_engine.risk_scoring import FORMULAS

from .audit import AuditLogger
from .config import DeskSettings, load_config
from .narrative import analyze_bonus
from .presets import PresetStore
from .run_report import build_run_report, export_distribution_csv, write_run_report

app = typer.Typer(add_completion=False)
console = Console()


def _open_store(settings: DeskSettings) -> PresetStore:
    return PresetStore(settings.db_path)


def _apply_overrides(base: BonusConfig, overrides: Dict[str, Any]) -> BonusConfig:
    update = {k: v for k, v in overrides.items() if v is not None}
    if not update:
        return base
    data = base.model_dump()
    data.update(update)
    try:
        return BonusConfig.model_validate(data)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _format_metric_value(metric: MetricDefinition, value: float, currency: str) -> str:
    if metric.is_currency:
        return f"{currency}{value:,.0f}"
    if metric.is_percentage:
        return f"{value:.3f}"
    return f"{value:g}"


def _score_style(score: float) -> str:
    if score > 3:
        return "bold red"
    if score > 0:
        return "yellow"
    return "green"


def render_summary(cfg: BonusConfig, result: SimulationResult, currency: str) -> Table:
    sim = result.simulation
    band = quantile_band(sim.results_distribution)
    table = Table(title=f"Bonus Simulation ({cfg.mode}, {sim.iterations} trials)")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Bonus amount", f"{currency}{sim.bonus_amount:.2f}")
    table.add_row("Wagering required", f"{currency}{sim.total_wagering_required:.2f}")
    table.add_row("Player EV", f"{currency}{sim.ev:.2f}")
    table.add_row("Operator theoretical cost", f"{currency}{sim.theoretical_cost:.2f}")
    table.add_row("Win rate", f"{sim.win_rate:.1f}%")
    table.add_row("Bust rate", f"{sim.bust_rate:.1f}%")
    table.add_row("Average end balance", f"{currency}{sim.average_end_balance:.2f}")
    table.add_row("Median end balance", f"{currency}{sim.median_end_balance:.2f}")
    table.add_row("Min / max balance", f"{currency}{sim.min_balance:.2f} / {currency}{sim.max_balance:.2f}")
    for label, value in band.items():
        table.add_row(f"{label.upper()} end balance", f"{currency}{value:.2f}")
    table.add_row("Avg wagered", f"{currency}{sim.wager_completed_avg:.2f}")
    return table


def render_risk_matrix(metrics: List[EvaluatedMetric], composite: float, currency: str, alert_threshold: float) -> Table:
    table = Table(title="Operator Risk Matrix")
    table.add_column("Metric")
    table.add_column("Actual", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Weight", justify="right")
    table.add_column("Risk Formula")
    table.add_column("Risk Score", justify="right")
    for m in metrics:
        d = m.definition
        actual = _format_metric_value(d, m.actual, currency)
        table.add_row(
            d.name,
            f"[red]{actual}[/red]" if m.score > 0 else actual,
            _format_metric_value(d, d.target, currency),
            f"{d.weight:g}",
            m.formula_string,
            f"[{_score_style(m.score)}]{m.score:g}[/]",
        )
    style = "bold red" if composite > alert_threshold else "bold green"
    table.add_row("COMPOSITE RISK SCORE", "", "", "", "", f"[{style}]{composite:g}[/]")
    return table


def render_histogram(bins: List[HistogramBin], width: int = 40) -> Table:
    table = Table(title="End Balance Distribution")
    table.add_column("Range")
    table.add_column("Count", justify="right")
    table.add_column("")
    peak = max((b.count for b in bins), default=0)
    for b in bins:
        bar = "#" * (0 if peak == 0 else int(round(width * b.count / peak)))
        table.add_row(b.range_label, str(b.count), bar)
    return table


def _run_and_render(
    settings: DeskSettings,
    cfg: BonusConfig,
    workers: Optional[int],
    bins: Optional[int],
    csv_path: Optional[str],
    report: bool,
    analyze: bool,
    source: str,
) -> SimulationResult:
    currency = settings.display.currency_symbol
    n_workers = workers or settings.workers
    n_bins = bins or settings.display.histogram_bins
    store = _open_store(settings)
    audit = AuditLogger(store, settings.log_path)
    try:
        result = run_simulation(cfg, workers=n_workers)
        hist = result_histogram(result, n_bins)
        console.print(render_summary(cfg, result, currency))
        console.print(
            render_risk_matrix(
                list(result.risk_metrics),
                result.composite_risk_score,
                currency,
                settings.display.composite_alert_threshold,
            )
        )
        console.print(render_histogram(hist))

        context: Dict[str, Any] = {
            "source": source,
            "mode": cfg.mode,
            "iterations": cfg.iterations,
            "seed": cfg.seed,
            "ev": result.ev,
            "win_rate": result.simulation.win_rate,
            "composite_risk_score": result.composite_risk_score,
        }
        if csv_path:
            out = export_distribution_csv(result, csv_path)
            context["csv"] = str(out)
            console.print(f"Distribution written to {out}")
        if report:
            path = write_run_report(settings, build_run_report(cfg, result, hist))
            context["report"] = str(path)
            console.print(f"Run report written to {path}")
        audit.log("simulation", "bonus simulation completed", context)

        if analyze:
            text = analyze_bonus(cfg, result, settings)
            audit.log("analysis", "narrative analysis requested", {"source": source, "chars": len(text)})
            console.print(text)
        return result
    finally:
        store.close()


@app.command("simulate")
def simulate_cmd(
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
    mode: Optional[str] = typer.Option(None, help="casino|sportsbook"),
    deposit: Optional[float] = typer.Option(None, help="Player deposit"),
    match_percent: Optional[float] = typer.Option(None, help="Bonus match percentage"),
    match_up_to: Optional[float] = typer.Option(None, help="Bonus cap"),
    wager_multiplier: Optional[float] = typer.Option(None, help="Wagering multiplier on deposit + bonus"),
    rtp: Optional[float] = typer.Option(None, help="Casino RTP percentage"),
    volatility: Optional[float] = typer.Option(None, help="Casino volatility 0-1"),
    risk_score: Optional[float] = typer.Option(None, help="Player aggression 1-10"),
    manual_bet: Optional[float] = typer.Option(None, help="Fixed stake per bet (disables aggression sizing)"),
    min_odds: Optional[float] = typer.Option(None, help="Sportsbook decimal odds"),
    bookie_margin: Optional[float] = typer.Option(None, help="Sportsbook margin percentage"),
    free_bet: Optional[bool] = typer.Option(None, "--free-bet/--no-free-bet", help="First sportsbook bet is a free bet"),
    loop_limit: Optional[int] = typer.Option(None, help="Max bets per trial"),
    iterations: Optional[int] = typer.Option(None, help="Number of trials"),
    seed: Optional[int] = typer.Option(None, help="Random seed (unseeded when omitted)"),
    workers: Optional[int] = typer.Option(None, help="Worker processes"),
    bins: Optional[int] = typer.Option(None, help="Histogram bins"),
    csv: Optional[str] = typer.Option(None, help="Write sorted end balances to CSV"),
    report: bool = typer.Option(True, "--report/--no-report", help="Write JSON run report"),
    analyze: bool = typer.Option(False, help="Request a narrative analysis from Gemini"),
):
    """
    Simulate a deposit-match bonus and score it against the operator risk matrix.
    """
    if mode is not None and mode not in {"casino", "sportsbook"}:
        raise typer.BadParameter("--mode must be one of: casino, sportsbook")
    settings = load_config(config)
    overrides: Dict[str, Any] = {
        "mode": mode,
        "deposit": deposit,
        "match_percent": match_percent,
        "match_up_to": match_up_to,
        "wager_multiplier": wager_multiplier,
        "rtp": rtp,
        "volatility": volatility,
        "risk_score": risk_score,
        "min_odds": min_odds,
        "bookie_margin": bookie_margin,
        "is_free_bet": free_bet,
        "loop_limit": loop_limit,
        "iterations": iterations,
        "seed": seed,
    }
    if manual_bet is not None:
        overrides["use_manual_bet"] = True
        overrides["manual_bet_size"] = manual_bet
    cfg = _apply_overrides(settings.bonus, overrides)
    _run_and_render(settings, cfg, workers, bins, csv, report, analyze, source="cli")


@app.command("catalog")
def catalog():
    """
    List the risk formula kinds available to metric definitions.
    """
    table = Table(title="Risk Formula Catalog")
    table.add_column("Formula type")
    table.add_column("Actual")
    table.add_column("Penalty", justify="right")
    for kind, spec in FORMULAS.items():
        table.add_row(kind.value, spec.label, f"{spec.penalty:g}")
    console.print(table)


@app.command("preset-save")
def preset_save(
    name: str = typer.Argument(..., help="Display name for the preset"),
    config: Optional[str] = typer.Option(None, help="Path to YAML config to snapshot"),
):
    settings = load_config(config)
    store = _open_store(settings)
    try:
        preset_id = store.save(name, settings.bonus)
        AuditLogger(store, settings.log_path).log("preset_save", name, {"id": preset_id})
    finally:
        store.close()
    console.print(f"Saved preset [bold]{name}[/bold] as {preset_id}")


@app.command("preset-list")
def preset_list(config: Optional[str] = typer.Option(None, help="Path to YAML config")):
    settings = load_config(config)
    store = _open_store(settings)
    try:
        records = store.list()
    finally:
        store.close()
    table = Table(title="Saved Presets")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Mode")
    table.add_column("Created")
    for r in records:
        table.add_row(r.id, r.name, r.mode, r.created_at)
    console.print(table)


def _load_preset(settings: DeskSettings, preset_id: str) -> BonusConfig:
    store = _open_store(settings)
    try:
        cfg = store.load(preset_id)
    finally:
        store.close()
    if cfg is None:
        raise typer.BadParameter(f"unknown preset id: {preset_id}")
    return cfg


@app.command("preset-show")
def preset_show(
    preset_id: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
):
    settings = load_config(config)
    cfg = _load_preset(settings, preset_id)
    console.print_json(json.dumps(cfg.model_dump(mode="json")))


@app.command("preset-run")
def preset_run(
    preset_id: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
    seed: Optional[int] = typer.Option(None, help="Random seed"),
    workers: Optional[int] = typer.Option(None, help="Worker processes"),
    report: bool = typer.Option(True, "--report/--no-report", help="Write JSON run report"),
    analyze: bool = typer.Option(False, help="Request a narrative analysis from Gemini"),
):
    settings = load_config(config)
    cfg = _apply_overrides(_load_preset(settings, preset_id), {"seed": seed})
    _run_and_render(settings, cfg, workers, None, None, report, analyze, source=f"preset:{preset_id}")


@app.command("preset-delete")
def preset_delete(
    preset_id: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
):
    settings = load_config(config)
    store = _open_store(settings)
    try:
        removed = store.delete(preset_id)
        if removed:
            AuditLogger(store, settings.log_path).log("preset_delete", preset_id, {"id": preset_id})
    finally:
        store.close()
    if not removed:
        raise typer.BadParameter(f"unknown preset id: {preset_id}")
    console.print(f"Deleted preset {preset_id}")


@app.command("audit-tail")
def audit_tail(
    limit: int = typer.Option(20, help="Rows to show"),
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
):
    settings = load_config(config)
    store = _open_store(settings)
    try:
        rows = store.recent_audit(limit)
    finally:
        store.close()
    table = Table(title="Audit Log")
    table.add_column("Time")
    table.add_column("Event")
    table.add_column("Message")
    table.add_column("Context")
    for r in rows:
        table.add_row(r["ts"], r["event_type"], r["message"], json.dumps(r["context"], default=str))
    console.print(table)


if __name__ == "__main__":
    app()
