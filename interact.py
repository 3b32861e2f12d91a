"""
Imperfect Abs — Interaction Script
====================================

CLI for exercising a local deployment of the Imperfect Abs contracts.

Usage:
    python interact.py demo [--users 3] [--weatherxm-key KEY]
    python interact.py score <reps> <form_accuracy> <streak> [--polygon N] [--base N] [--celo N] [--monad N]

Environment:
    Reads .env for OWNER_ADDRESS and WEATHERXM_API_KEY.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from leaderboard_engine.engine import LeaderboardEngine
from scoring.engine import ScoringEngine
from scoring.models import CrossChainFitnessData, CrossChainSlot, LocalAbsScore, Txn
from scoring.rules import SUBMISSION_COOLDOWN, SUBMISSION_FEE
from smart_contracts.imperfect_abs.chainlink import derive_address
from smart_contracts.imperfect_abs.deploy_config import deploy
from smart_contracts.imperfect_abs.errors import ContractError

# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("imperfect_abs")

DEMO_WORKOUTS = [
    # reps, form accuracy, streak, duration
    (50, 90, 3, 300),
    (35, 75, 1, 240),
    (80, 95, 7, 600),
    (20, 60, 0, 120),
]


# ─────────────────────────────────────────────────────────────────────────────
# Core actions
# ─────────────────────────────────────────────────────────────────────────────
def run_demo(user_count: int, weatherxm_key: str | None) -> None:
    """Drive a scripted scenario through every contract."""
    owner = os.getenv("OWNER_ADDRESS", "0x" + "0" * 39 + "1")
    t = int(time.time())

    deployment = deploy(owner, deployed_at=t, weatherxm_api_key=weatherxm_key)
    hub, board = deployment.hub, deployment.leaderboard
    index = LeaderboardEngine(contract=hub.address)
    index.attach(deployment.events)

    users = [derive_address(f"demo-user-{i}") for i in range(user_count)]

    # ── Automation: weather bonuses + daily challenge ────────────────
    logger.info("─" * 60)
    logger.info("DAILY CHALLENGE")
    logger.info("─" * 60)
    _, perform_data = hub.check_upkeep(t)
    hub.perform_upkeep(Txn(sender=owner, timestamp=t), perform_data)
    if hub.state.challenge_request_id is not None:
        deployment.run_vrf(hub.state.challenge_request_id, t)
    challenge = hub.get_current_challenge(t)
    logger.info("  %s (+%d bps), seasonal bonus +%d bps",
                challenge.describe(), challenge.bonus_multiplier, hub.get_seasonal_bonus())

    # ── Hub submissions + oracle ─────────────────────────────────────
    logger.info("─" * 60)
    logger.info("HUB SUBMISSIONS")
    logger.info("─" * 60)
    for i, user in enumerate(users):
        reps, accuracy, streak, duration = DEMO_WORKOUTS[i % len(DEMO_WORKOUTS)]
        receipt = hub.submit_workout_session(
            Txn(sender=user, timestamp=t), reps, accuracy, streak, duration
        )
        logger.info("  %s… session #%d → request %s…", user[:10], receipt.session_index, (receipt.request_id or "none")[:12])
        if receipt.request_id:
            result = asyncio.run(deployment.run_oracle(receipt.request_id, t + 5))
            session = hub.get_user_sessions(user)[receipt.session_index]
            logger.info(
                "    oracle delivered=%s  enhanced=%d  conditions=%s  status=%s",
                result.delivered, session.enhanced_score, session.weather_conditions or "-", session.status.value,
            )
        if hub.has_completed_challenge(user):
            logger.info("    daily challenge completed (+%d)", hub.get_challenge_bonus(user))

    # ── Cross-chain scores ───────────────────────────────────────────
    logger.info("─" * 60)
    logger.info("CROSS-CHAIN BRIDGING")
    logger.info("─" * 60)
    t += SUBMISSION_COOLDOWN
    for i, user in enumerate(users):
        for slot in (CrossChainSlot.POLYGON, CrossChainSlot.BASE)[: 1 + i % 2]:
            deployment.remote_ledger_for(slot.value).set_score(user, 40 + 10 * i, 25 + 5 * i, t)
            bridge = deployment.bridge_for(slot.value)
            fee = bridge.get_estimated_fee(user)
            try:
                receipt = bridge.bridge_user_data(Txn(sender=user, value=fee, timestamp=t), user)
                logger.info("  %s… %s score %d bridged (fee %d)", user[:10], slot.value, receipt.score, receipt.fee)
            except ContractError as exc:
                logger.warning("  %s… %s bridge rejected: %s", user[:10], slot.value, exc.message)

    # ── Ranking ──────────────────────────────────────────────────────
    logger.info("─" * 60)
    logger.info("📋 LEADERBOARD")
    logger.info("─" * 60)
    for entry in index.top_performers(len(users)):
        logger.info("  #%d  %s…  %6d  %s", entry.rank, entry.user[:10], entry.total_score, entry.tier)
        logger.info("       %s", ScoringEngine.explain(hub.get_total_score(entry.user)))

    # ── Rewards ──────────────────────────────────────────────────────
    logger.info("─" * 60)
    logger.info("REWARDS")
    logger.info("─" * 60)
    for i, user in enumerate(users):
        reps, accuracy, streak, duration = DEMO_WORKOUTS[i % len(DEMO_WORKOUTS)]
        board.submit_workout_session(
            Txn(sender=user, value=SUBMISSION_FEE, timestamp=t), reps, accuracy, streak, duration
        )
    logger.info("  Pool: %d wei, owner balance: %d wei",
                board.state.reward_config.total_reward_pool, board.state.owner_balance)

    payouts = board.emergency_distribute(Txn(sender=deployment.owner, timestamp=t + 1))
    for payout in payouts:
        claimed = board.claim_rewards(Txn(sender=payout.user, timestamp=t + 2))
        logger.info("  #%d  %s…  claimed %d wei", payout.rank, payout.user[:10], claimed)

    logger.info("─" * 60)
    logger.info("✅ Demo complete — %d events emitted.", len(deployment.events))
    logger.info("─" * 60)


def show_score(reps: int, accuracy: int, streak: int, remote: dict[str, int]) -> None:
    """Offline composite score for one hypothetical session."""
    local = LocalAbsScore(
        user="0x" + "0" * 40,
        total_reps=reps,
        average_form_accuracy=accuracy,
        best_streak=streak,
        sessions_completed=1,
    )
    cross_chain = CrossChainFitnessData(**{f"{k}_score": v for k, v in remote.items()})
    composite = ScoringEngine().score(local, cross_chain)

    logger.info("─" * 60)
    logger.info("  Base (local)    : %d", composite.base_local_score)
    logger.info("  Cross-chain sum : %d", composite.cross_chain_sum)
    logger.info("  Active chains   : %d", composite.active_chains)
    logger.info("  Bonus           : %d bps", composite.bonus_bps)
    logger.info("  Total           : %d", composite.total_score)
    logger.info("  %s", ScoringEngine.explain(composite))
    logger.info("─" * 60)


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────
def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="interact",
        description="Imperfect Abs — Local Deployment CLI",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ── demo ─────────────────────────────────────────────────────────
    demo_parser = subparsers.add_parser("demo", help="Run a scripted end-to-end scenario")
    demo_parser.add_argument("--users", type=int, default=3, help="Number of demo users (1–10)")
    demo_parser.add_argument("--weatherxm-key", type=str, default=None, help="WeatherXM API key (optional)")

    # ── score ────────────────────────────────────────────────────────
    score_parser = subparsers.add_parser("score", help="Compute a composite score offline")
    score_parser.add_argument("reps", type=int, help="Total reps")
    score_parser.add_argument("form_accuracy", type=int, help="Form accuracy (0–100)")
    score_parser.add_argument("streak", type=int, help="Best streak")
    for slot in CrossChainSlot:
        score_parser.add_argument(f"--{slot.value}", type=int, default=0, help=f"{slot.value} chain score")

    args = parser.parse_args(argv)
    load_dotenv(Path(__file__).parent / ".env")

    try:
        if args.command == "demo":
            if not 1 <= args.users <= 10:
                logger.error("--users must be between 1 and 10 (got %d)", args.users)
                sys.exit(1)
            run_demo(args.users, args.weatherxm_key or os.getenv("WEATHERXM_API_KEY"))

        elif args.command == "score":
            if not 0 <= args.form_accuracy <= 100:
                logger.error("Form accuracy must be between 0 and 100 (got %d)", args.form_accuracy)
                sys.exit(1)
            remote = {slot.value: getattr(args, slot.value) for slot in CrossChainSlot}
            show_score(args.reps, args.form_accuracy, args.streak, remote)

    except KeyboardInterrupt:
        logger.info("\nInterrupted by user.")
        sys.exit(130)
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
