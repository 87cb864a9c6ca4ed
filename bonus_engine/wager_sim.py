from __future__ import annotations

import math
import random
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

from .models import BUST_EPSILON, MIN_STAKE, BonusConfig, WagerSimulation


class UniformSource(Protocol):
    def random(self) -> float: ...


@dataclass
class TrialBatch:
    balances: List[float]
    wagered_total: float
    wins: int


def stake_size(cfg: BonusConfig) -> float:
    """
    Per-bet stake. Aggression 1..10 maps linearly onto 0.5%..10% of the
    starting bankroll unless a manual stake is set.
    """
    if cfg.use_manual_bet:
        return max(MIN_STAKE, cfg.manual_bet_size)
    aggression = (max(1.0, min(10.0, cfg.risk_score)) - 1.0) / 9.0
    pct = 0.005 + aggression * 0.095
    return max(MIN_STAKE, cfg.start_bankroll * pct)


def sportsbook_win_probability(cfg: BonusConfig) -> float:
    return (1.0 / max(1.0, cfg.min_odds)) * (1.0 - cfg.bookie_margin / 100.0)


def standard_normal(rng: UniformSource) -> float:
    # Box-Muller; 1 - u keeps the log argument in (0, 1].
    u1 = 1.0 - rng.random()
    u2 = rng.random()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def run_trial(cfg: BonusConfig, rng: UniformSource, stake: float, target: float) -> Tuple[float, float]:
    balance = cfg.start_bankroll
    wagered = 0.0
    steps = 0
    free_bet_open = cfg.mode == "sportsbook" and cfg.is_free_bet
    drift = cfg.rtp / 100.0 - 1.0
    std_dev = 1.0 + cfg.volatility * 14.0
    win_prob = sportsbook_win_probability(cfg)

    while wagered < target and balance > 0 and steps < cfg.loop_limit:
        bet = min(stake, balance)
        if cfg.mode == "casino":
            balance += bet * drift + bet * std_dev * standard_normal(rng)
        else:
            if rng.random() < win_prob:
                balance += bet * (cfg.min_odds - 1.0)
            elif not free_bet_open:
                balance -= bet
            free_bet_open = False
        wagered += bet
        steps += 1
        if balance < BUST_EPSILON:
            balance = 0.0

    return balance, wagered


def run_batch(cfg: BonusConfig, n_trials: int, rng: UniformSource) -> TrialBatch:
    stake = stake_size(cfg)
    target = cfg.wagering_required
    balances: List[float] = []
    wagered_total = 0.0
    wins = 0
    for _ in range(n_trials):
        balance, wagered = run_trial(cfg, rng, stake, target)
        balances.append(balance)
        wagered_total += wagered
        # Running out of steps with money left is still not a win.
        if balance >= BUST_EPSILON and wagered >= target:
            wins += 1
    return TrialBatch(balances=balances, wagered_total=wagered_total, wins=wins)


def _run_seeded_batch(cfg: BonusConfig, n_trials: int, seed: int) -> TrialBatch:
    return run_batch(cfg, n_trials, random.Random(seed))


def partition_trials(n_trials: int, workers: int) -> List[int]:
    k = max(1, min(int(workers), n_trials))
    base, extra = divmod(n_trials, k)
    return [base + (1 if i < extra else 0) for i in range(k)]


def summarize_trials(cfg: BonusConfig, batches: Sequence[TrialBatch]) -> WagerSimulation:
    balances: List[float] = []
    wagered_total = 0.0
    wins = 0
    for b in batches:
        balances.extend(b.balances)
        wagered_total += b.wagered_total
        wins += b.wins
    balances.sort()

    n = len(balances)
    avg_end = sum(balances) / max(1, n)
    # Upper median for even counts: index n // 2 of the sorted balances.
    median = balances[n // 2] if balances else 0.0
    return WagerSimulation(
        ev=avg_end - cfg.deposit,
        win_rate=100.0 * wins / max(1, n),
        bust_rate=100.0 * (n - wins) / max(1, n),
        win_count=wins,
        bust_count=n - wins,
        average_end_balance=avg_end,
        median_end_balance=median,
        min_balance=balances[0] if balances else 0.0,
        max_balance=balances[-1] if balances else 0.0,
        results_distribution=tuple(balances),
        wager_completed_avg=wagered_total / max(1, n),
        total_wagering_required=cfg.wagering_required,
        bonus_amount=cfg.bonus_amount,
        iterations=n,
    )


def simulate(cfg: BonusConfig, rng: Optional[UniformSource] = None, workers: int = 1) -> WagerSimulation:
    """
    Run cfg.iterations independent wagering trials.

    rng defaults to random.Random(cfg.seed), which is unseeded when cfg.seed
    is None. With workers > 1 the trials are split across processes, each
    seeded from rng, and the partial batches are merged before one sort.
    """
    if rng is None:
        rng = random.Random(cfg.seed)
    counts = partition_trials(cfg.iterations, workers)
    if len(counts) == 1:
        return summarize_trials(cfg, [run_batch(cfg, cfg.iterations, rng)])

    seeds = [int(rng.random() * (1 << 53)) for _ in counts]
    with ProcessPoolExecutor(max_workers=len(counts)) as executor:
        batches = list(executor.map(_run_seeded_batch, [cfg] * len(counts), counts, seeds))
    return summarize_trials(cfg, batches)
