"""
Imperfect Abs Scoring — Composite Score Engine
================================================

Pure integer scoring shared by the contracts, the backend and the CLI.

    base  = reps*10 + (accuracy*reps)/10 + streak*25
    total = (base + Σ cross-chain slots) × (1 + bonus_bps / 10000)

Every division truncates and the order of operations matches the
on-chain formula exactly, so results are bit-for-bit comparable.
"""

from __future__ import annotations

import logging
from typing import Optional

from scoring.models import CompositeScore, CrossChainFitnessData, LocalAbsScore
from scoring.rules import ScoreWeights, performance_label

logger = logging.getLogger("scoring.engine")


def calculate_base_score(reps: int, form_accuracy: int, streak: int) -> int:
    return (
        reps * ScoreWeights.POINTS_PER_REP
        + (form_accuracy * reps) // ScoreWeights.ACCURACY_DIVISOR
        + streak * ScoreWeights.POINTS_PER_STREAK
    )


def multi_chain_bonus_bps(active_chains: int) -> int:
    """10% (1000 bps) for every active chain beyond the first."""
    if active_chains <= 1:
        return 0
    return (active_chains - 1) * ScoreWeights.BONUS_BPS_PER_EXTRA_CHAIN


def calculate_total_score(
    local: Optional[LocalAbsScore],
    cross_chain: Optional[CrossChainFitnessData],
) -> CompositeScore:
    """Combine the local aggregate and the cross-chain slots of one user."""
    base_local = 0
    if local is not None:
        base_local = calculate_base_score(
            local.total_reps, local.average_form_accuracy, local.best_streak
        )

    slots = cross_chain.slot_values() if cross_chain is not None else []
    cross_chain_sum = sum(slots)

    active_chains = sum(1 for value in slots if value > 0)
    if base_local > 0:
        active_chains += 1

    bonus_bps = multi_chain_bonus_bps(active_chains)
    subtotal = base_local + cross_chain_sum
    total = subtotal + (subtotal * bonus_bps) // ScoreWeights.BPS_DENOMINATOR

    return CompositeScore(
        base_local_score=base_local,
        cross_chain_sum=cross_chain_sum,
        active_chains=active_chains,
        bonus_bps=bonus_bps,
        total_score=total,
    )


class ScoringEngine:
    """Composite score orchestrator for a single user.

    Usage:
        engine = ScoringEngine()
        composite = engine.score(local_score, cross_chain_data)
    """

    def score(
        self,
        local: Optional[LocalAbsScore],
        cross_chain: Optional[CrossChainFitnessData] = None,
    ) -> CompositeScore:
        composite = calculate_total_score(local, cross_chain)
        logger.debug(
            "Composite %d (%s) — base %d + cross-chain %d, %d chain(s), +%d bps",
            composite.total_score, performance_label(composite.total_score),
            composite.base_local_score, composite.cross_chain_sum,
            composite.active_chains, composite.bonus_bps,
        )
        return composite

    @staticmethod
    def explain(composite: CompositeScore) -> str:
        """Human-readable summary of a composite score."""
        parts = [
            f"{performance_label(composite.total_score)} ({composite.total_score} points).",
            f"Local {composite.base_local_score}, cross-chain {composite.cross_chain_sum}.",
        ]
        if composite.bonus_bps:
            parts.append(
                f"Multi-chain bonus +{composite.bonus_bps // 100}% "
                f"across {composite.active_chains} chains."
            )
        return " ".join(parts)
