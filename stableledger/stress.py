"""
stress.py - Price-path stress testing of a PositionController

Generates collateral price paths and replays them against an engine,
recording which accounts become liquidatable and whether the system stays
solvent at each step.

Example:
    path = simulate_price_path(2000 * 10**8, steps=250, volatility=0.04, seed=7)
    steps = run_price_path(engine, eth_feed, path)
    first_breach = next((s for s in steps if s.liquidatable), None)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

from .core import Address
from .risk import AccountRisk


@dataclass(frozen=True, slots=True)
class StressStep:
    """State of the system after one price update."""
    step: int
    answer: int
    liquidatable: Tuple[Address, ...]
    solvent: bool


def simulate_price_path(
    initial_answer: int,
    steps: int,
    volatility: float,
    drift: float = 0.0,
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Geometric Brownian motion path of feed answers.

    Args:
        initial_answer: Starting answer (feed decimals)
        steps: Number of answers to generate after the initial one
        volatility: Per-step standard deviation of log returns
        drift: Per-step mean of log returns
        seed: Seed for reproducible paths

    Returns:
        int64 array of length steps + 1 starting with initial_answer.
        Answers never drop below 1.
    """
    if initial_answer <= 0:
        raise ValueError(f"initial_answer must be positive, got {initial_answer}")
    if steps < 0:
        raise ValueError(f"steps cannot be negative, got {steps}")
    if volatility < 0:
        raise ValueError(f"volatility cannot be negative, got {volatility}")

    rng = np.random.default_rng(seed)
    shocks = rng.normal(drift - 0.5 * volatility ** 2, volatility, size=steps)
    log_path = np.concatenate(([0.0], np.cumsum(shocks)))
    path = np.floor(initial_answer * np.exp(log_path)).astype(np.int64)
    path[0] = initial_answer
    return np.maximum(path, 1)


def liquidatable_accounts(engine) -> List[AccountRisk]:
    """Accounts below the minimum health factor, least healthy first."""
    risks = [engine.assess(user) for user in engine.list_accounts()]
    return sorted((r for r in risks if r.is_liquidatable), key=lambda r: r.health_factor)


def run_price_path(
    engine,
    feed,
    path,
    on_step: Optional[Callable[[int, object], None]] = None,
) -> List[StressStep]:
    """
    Push each answer of path into feed and record the engine's state.

    Args:
        engine: PositionController to observe
        feed: Raw feed (with update_answer) behind one of the engine's assets
        path: Sequence of answers
        on_step: Optional callback(step, engine) run after each update and
            before the state is recorded, e.g. a liquidation bot

    Returns:
        One StressStep per answer
    """
    results = []
    for step, answer in enumerate(path):
        feed.update_answer(int(answer))
        if on_step is not None:
            on_step(step, engine)
        results.append(StressStep(
            step=step,
            answer=int(answer),
            liquidatable=tuple(r.user for r in liquidatable_accounts(engine)),
            solvent=engine.verify_solvency()['valid'],
        ))
    return results
