"""
Narrative bonus analysis from Gemini.

The model is asked for a structured JSON verdict which is validated and then
rendered as three markdown sections. Every failure path returns a plain-text
message instead of raising, so callers can print whatever comes back.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from google import genai
from google.genai import types as genai_types
from pydantic import BaseModel, Field, ValidationError

from bonus_engine.models import BonusConfig, SimulationResult

from .config import DeskSettings

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API key is missing. Set GEMINI_API_KEY to enable the analysis."
EMPTY_RESPONSE_MESSAGE = "AI analysis returned an empty response."
MALFORMED_RESPONSE_MESSAGE = (
    "An error occurred while generating the analysis. The response may have been malformed. Please try again."
)


class NarrativeOutput(BaseModel):
    verdict: str = Field(
        description=(
            "Final verdict on the bonus's profitability. Explain the math behind the EV, contrasting the "
            "theoretical house edge with the simulated outcome where losses are capped. State clearly "
            "whether it is a +EV or -EV play."
        )
    )
    risk_assessment: str = Field(
        description=(
            "Assessment of risk and volatility. Focus on the bust rate, the shape of the outcome "
            "distribution and why the EV is driven by a small share of successful runs."
        )
    )
    strategy_tip: str = Field(
        description=(
            "A practical tip on bankroll management given the bust rate, and how the player's aggression "
            "changes the outcome."
        )
    )


def build_prompt(config: BonusConfig, result: SimulationResult, currency: str = "€") -> str:
    sim = result.simulation
    lines = [
        "Act as a casino mathematician and bonus analyst. Your tone is professional, insightful and slightly academic.",
        "Analyze the following bonus offer and its Monte Carlo simulation results.",
        "Your entire response MUST be a single JSON object that follows the provided schema.",
        "",
        "Bonus parameters:",
        f"- Product: {config.mode}",
        f"- Deposit: {currency}{config.deposit:g}",
        f"- Bonus match: {config.match_percent:g}% up to {currency}{config.match_up_to:g}",
        f"- Wager requirement multiplier: {config.wager_multiplier:g}x",
    ]
    if config.mode == "casino":
        lines.append(f"- Game RTP: {config.rtp:g}%")
        lines.append(f"- Volatility index: {config.volatility:g} (0-1 scale)")
    else:
        lines.append(f"- Minimum odds: {config.min_odds:g}")
        lines.append(f"- Bookmaker margin: {config.bookie_margin:g}%")
        lines.append(f"- First bet is a free bet: {'yes' if config.is_free_bet else 'no'}")
    if config.use_manual_bet:
        lines.append(f"- Fixed stake: {currency}{config.manual_bet_size:g}")
    else:
        lines.append(f"- Player aggression (risk score): {config.risk_score:g}/10")
    lines += [
        "",
        "Simulation results:",
        f"- Player EV: {currency}{sim.ev:.2f}",
        f"- Win probability (beat wager): {sim.win_rate:.1f}%",
        f"- Bust probability: {sim.bust_rate:.1f}%",
        f"- Average ending balance: {currency}{sim.average_end_balance:.2f}",
        f"- Operator composite risk score: {result.composite_risk_score:g}",
        "",
        "Provide a three-part analysis backed by these data points.",
    ]
    return "\n".join(lines)


def format_analysis(output: NarrativeOutput, ev: float) -> str:
    verdict_title = "Mathematically Profitable (+EV)" if ev > 0 else "Not Profitable (-EV)"
    return (
        f"**1. Verdict: {verdict_title}**\n{output.verdict}\n\n"
        f"**2. Risk Assessment: Volatility & Risk of Ruin**\n{output.risk_assessment}\n\n"
        f"**3. Strategy Tip: Variance and Bankroll Management**\n{output.strategy_tip}"
    )


def analyze_bonus(
    config: BonusConfig,
    result: SimulationResult,
    settings: DeskSettings,
    client: Optional[Any] = None,
) -> str:
    if client is None:
        if not settings.gemini_api_key:
            return MISSING_KEY_MESSAGE
        client = genai.Client(
            api_key=settings.gemini_api_key,
            http_options=genai_types.HttpOptions(timeout=settings.narrative.timeout_seconds * 1000),
        )

    prompt = build_prompt(config, result, settings.display.currency_symbol)
    try:
        response = client.models.generate_content(
            model=settings.narrative.model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=NarrativeOutput,
                temperature=settings.narrative.temperature,
            ),
        )
    except Exception:
        logger.exception("Gemini request failed")
        return MALFORMED_RESPONSE_MESSAGE

    text = getattr(response, "text", None)
    if not text:
        return EMPTY_RESPONSE_MESSAGE
    try:
        output = NarrativeOutput.model_validate_json(text)
    except ValidationError as exc:
        logger.warning("Gemini response failed validation: %s", exc)
        return MALFORMED_RESPONSE_MESSAGE
    return format_analysis(output, result.ev)
