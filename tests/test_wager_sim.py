import math
import random

import pytest

from bonus_engine.models import BUST_EPSILON, BonusConfig
from bonus_engine.wager_sim import (
    TrialBatch,
    partition_trials,
    run_batch,
    run_trial,
    simulate,
    sportsbook_win_probability,
    stake_size,
    summarize_trials,
)


class ConstantRng:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def test_simulation_structure_and_consistency():
    cfg = BonusConfig(iterations=300, loop_limit=800)
    sim = simulate(cfg, rng=random.Random(11))
    assert len(sim.results_distribution) == 300
    assert all(b >= 0 for b in sim.results_distribution)
    assert list(sim.results_distribution) == sorted(sim.results_distribution)
    assert sim.ev == sim.average_end_balance - cfg.deposit
    assert sim.win_count + sim.bust_count == 300
    assert sim.min_balance <= sim.median_end_balance <= sim.max_balance
    assert sim.total_wagering_required == pytest.approx(7000.0)
    assert sim.theoretical_cost == -sim.ev


def test_seeded_runs_repeat():
    cfg = BonusConfig(iterations=50, seed=5)
    a = simulate(cfg)
    b = simulate(cfg)
    assert a.results_distribution == b.results_distribution


def test_stake_size_maps_aggression_and_floors():
    low = BonusConfig(risk_score=1)
    high = BonusConfig(risk_score=10)
    assert stake_size(low) == pytest.approx(200 * 0.005)
    assert stake_size(high) == pytest.approx(200 * 0.10)
    tiny = BonusConfig(deposit=1, match_percent=0, risk_score=1)
    assert stake_size(tiny) == pytest.approx(0.10)
    manual = BonusConfig(use_manual_bet=True, manual_bet_size=0.0)
    assert stake_size(manual) == pytest.approx(0.10)
    assert stake_size(BonusConfig(use_manual_bet=True, manual_bet_size=7.5)) == pytest.approx(7.5)


def test_sportsbook_win_probability_devigs():
    cfg = BonusConfig(mode="sportsbook", min_odds=2.0, bookie_margin=5)
    assert sportsbook_win_probability(cfg) == pytest.approx(0.475)


def test_free_bet_loss_keeps_stake():
    cfg = BonusConfig(mode="sportsbook", is_free_bet=True, min_odds=2.0, loop_limit=1, iterations=5)
    sim = simulate(cfg, rng=ConstantRng(0.99))
    assert all(b == pytest.approx(cfg.start_bankroll) for b in sim.results_distribution)
    assert sim.win_count == 0


def test_losing_bet_without_free_bet_costs_stake():
    cfg = BonusConfig(mode="sportsbook", is_free_bet=False, min_odds=2.0, loop_limit=1, iterations=3)
    sim = simulate(cfg, rng=ConstantRng(0.99))
    expected = cfg.start_bankroll - stake_size(cfg)
    assert all(b == pytest.approx(expected) for b in sim.results_distribution)


def test_free_bet_exemption_used_once_per_trial():
    cfg = BonusConfig(mode="sportsbook", is_free_bet=True, min_odds=2.0, loop_limit=2, iterations=4)
    sim = simulate(cfg, rng=ConstantRng(0.99))
    expected = cfg.start_bankroll - stake_size(cfg)
    assert all(b == pytest.approx(expected) for b in sim.results_distribution)


def test_step_budget_exhaustion_is_not_a_win():
    cfg = BonusConfig(mode="sportsbook", min_odds=2.0, loop_limit=3, iterations=10)
    sim = simulate(cfg, rng=ConstantRng(0.0))
    assert sim.win_count == 0
    assert sim.bust_count == 10
    assert sim.bust_rate == 100.0
    assert all(b > cfg.start_bankroll for b in sim.results_distribution)


def test_sportsbook_winning_streak_completes_wagering():
    cfg = BonusConfig(mode="sportsbook", min_odds=2.0, wager_multiplier=1, loop_limit=500, iterations=2)
    sim = simulate(cfg, rng=ConstantRng(0.0))
    assert sim.win_count == 2
    assert sim.wager_completed_avg >= cfg.wagering_required


def test_busted_balances_clamp_to_zero():
    cfg = BonusConfig(mode="sportsbook", min_odds=2.0, risk_score=10, loop_limit=1000, iterations=3)
    sim = simulate(cfg, rng=ConstantRng(0.99))
    assert sim.results_distribution == (0.0, 0.0, 0.0)
    assert sim.bust_count == 3


def test_summarize_uses_upper_median_for_even_counts():
    cfg = BonusConfig(iterations=4)
    sim = summarize_trials(cfg, [TrialBatch([4.0, 1.0], 10.0, 1), TrialBatch([3.0, 2.0], 30.0, 0)])
    assert sim.results_distribution == (1.0, 2.0, 3.0, 4.0)
    assert sim.median_end_balance == 3.0
    assert sim.wager_completed_avg == 10.0
    assert sim.win_rate == 25.0


def test_win_rate_does_not_rise_with_wagering_multiplier():
    rates = []
    for mult in (5, 40, 80):
        cfg = BonusConfig(wager_multiplier=mult, iterations=2000)
        rates.append(simulate(cfg, rng=random.Random(21)).win_rate)
    assert rates[0] >= rates[1] >= rates[2]
    assert rates[2] == 0.0


def test_low_volatility_offer_has_negative_ev():
    cfg = BonusConfig(volatility=0.0, iterations=2000)
    sim = simulate(cfg, rng=random.Random(2024))
    assert -cfg.deposit <= sim.ev < 0


def test_default_offer_scenario_outputs_are_consistent():
    cfg = BonusConfig(
        mode="casino",
        deposit=100,
        match_percent=100,
        match_up_to=500,
        wager_multiplier=35,
        rtp=96.5,
        volatility=0.5,
        risk_score=5,
        loop_limit=1500,
        iterations=2000,
    )
    sim = simulate(cfg, rng=random.Random(7))
    assert len(sim.results_distribution) == 2000
    assert sim.ev >= -cfg.deposit
    assert 0.0 <= sim.win_rate <= 100.0
    assert sim.win_rate + sim.bust_rate == pytest.approx(100.0)
    assert sim.min_balance >= 0.0


def test_parallel_workers_merge_partial_batches():
    cfg = BonusConfig(iterations=101, loop_limit=300)
    sim = simulate(cfg, rng=random.Random(3), workers=2)
    assert len(sim.results_distribution) == 101
    assert list(sim.results_distribution) == sorted(sim.results_distribution)
    assert sim.win_count + sim.bust_count == 101
    assert sim.ev == sim.average_end_balance - cfg.deposit


def test_partition_trials():
    assert partition_trials(10, 3) == [4, 3, 3]
    assert partition_trials(2, 8) == [1, 1]
    assert partition_trials(5, 1) == [5]


@pytest.mark.parametrize("volatility", [0.0, 0.5])
def test_casino_step_applies_drift_and_volatility_spread(volatility):
    # u1 = u2 = 0.5 gives z = -sqrt(2 ln 2).
    cfg = BonusConfig(volatility=volatility, rtp=96.5, loop_limit=1, iterations=1)
    bet = stake_size(cfg)
    z = -math.sqrt(-2.0 * math.log(0.5))
    expected = cfg.start_bankroll + bet * (0.965 - 1.0) + bet * (1.0 + volatility * 14.0) * z
    sim = simulate(cfg, rng=ConstantRng(0.5))
    assert sim.results_distribution[0] == pytest.approx(expected)
    assert sim.wager_completed_avg == pytest.approx(bet)


@pytest.mark.parametrize("volatility", [0.0, 1.0])
def test_casino_step_with_zero_normal_loses_house_edge(volatility):
    # u = 0.25 puts the Box-Muller angle at pi / 2, so z is ~0.
    cfg = BonusConfig(volatility=volatility, rtp=90.0, loop_limit=3, iterations=1)
    bet = stake_size(cfg)
    sim = simulate(cfg, rng=ConstantRng(0.25))
    assert sim.results_distribution[0] == pytest.approx(cfg.start_bankroll - 3 * bet * 0.10)


def test_win_requires_money_left_and_wagering_met():
    cfg = BonusConfig(wager_multiplier=3, loop_limit=200)
    stake = stake_size(cfg)
    target = cfg.wagering_required
    rng = random.Random(9)
    trials = [run_trial(cfg, rng, stake, target) for _ in range(200)]
    expected_wins = sum(1 for b, w in trials if b >= BUST_EPSILON and w >= target)

    batch = run_batch(cfg, 200, random.Random(9))
    assert batch.balances == [b for b, _ in trials]
    assert batch.wins == expected_wins
    assert batch.wins > 0


def test_survivors_short_of_requirement_are_not_winners():
    # 40 bets of ~9.44 cannot cover the 600 requirement.
    cfg = BonusConfig(wager_multiplier=3, loop_limit=40)
    target = cfg.wagering_required
    rng = random.Random(9)
    trials = [run_trial(cfg, rng, stake_size(cfg), target) for _ in range(200)]
    survivors = [b for b, _ in trials if b >= BUST_EPSILON]
    assert survivors
    assert all(w < target for _, w in trials)
    assert run_batch(cfg, 200, random.Random(9)).wins == 0
