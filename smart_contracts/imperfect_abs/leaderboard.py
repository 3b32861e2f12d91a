"""
Imperfect Abs — Leaderboard Contract (fee & reward variant)
=============================================================

Paid submissions feed a reward pool that is periodically paid out to the
top performers.

  • Each submission must carry ``submission_fee``; the excess is refunded.
    ``owner_share`` percent goes to the owner balance, the rest to the pool.
  • A distribution selects the top N users by base score (ties go to the
    earlier registrant) and weights rank r (0-based) by ``(N - r) * 100``.
    Payouts are credited to pending balances and claimed by the user;
    integer dust stays in the pool for the next period.
  • Distribution can be triggered by the owner, by the automation upkeep
    when ``auto_distribution`` is on, or by the owner as an emergency
    override without the timing check. All three share one reentrancy
    guard.
"""

from __future__ import annotations

import heapq
import logging
from typing import Optional

from scoring.engine import calculate_base_score
from scoring.models import (
    FeeConfig,
    LocalAbsScore,
    Payout,
    RewardConfig,
    RewardConfigView,
    SubmissionReceipt,
    Txn,
    UserReward,
    WorkoutSession,
)
from scoring.rules import (
    DISTRIBUTION_PERIOD,
    LEADERBOARD_SHARE,
    OWNER_SHARE,
    RANK_WEIGHT_UNIT,
    SUBMISSION_FEE,
    TOP_PERFORMERS_COUNT,
)
from smart_contracts.imperfect_abs import ledger
from smart_contracts.imperfect_abs.chainlink import derive_address
from smart_contracts.imperfect_abs.codec import normalize_address
from smart_contracts.imperfect_abs.errors import (
    DistributionNotDue,
    InsufficientFee,
    InvalidConfig,
    NoPendingRewards,
    NoRewardsToDistribute,
)
from smart_contracts.imperfect_abs.events import (
    EventLog,
    LeaderboardUpdated,
    RewardClaimed,
    RewardsDistributed,
)
from smart_contracts.imperfect_abs.state import LeaderboardState, non_reentrant, only_owner

logger = logging.getLogger("leaderboard")


class ImperfectAbsLeaderboard:
    """Leaderboard contract with submission fees and rank-weighted rewards."""

    def __init__(
        self,
        owner: str,
        fee_config: Optional[FeeConfig] = None,
        reward_config: Optional[RewardConfig] = None,
        deployed_at: int = 0,
        events: Optional[EventLog] = None,
        address: Optional[str] = None,
    ) -> None:
        self.address = address or derive_address("imperfect-abs-leaderboard")
        self.events = events if events is not None else EventLog()
        fee_config = fee_config or FeeConfig(
            submission_fee=SUBMISSION_FEE,
            owner_share=OWNER_SHARE,
            leaderboard_share=LEADERBOARD_SHARE,
        )
        _check_fee_config(fee_config)
        self.state = LeaderboardState(
            owner=normalize_address(owner),
            fee_config=fee_config,
            reward_config=reward_config or RewardConfig(
                distribution_period=DISTRIBUTION_PERIOD,
                top_performers_count=TOP_PERFORMERS_COUNT,
                last_distribution=deployed_at,
            ),
        )

    # ── Submission ────────────────────────────────────────────────────
    def submit_workout_session(
        self,
        txn: Txn,
        reps: int,
        form_accuracy: int,
        streak: int,
        duration: int,
    ) -> SubmissionReceipt:
        fee = self.state.fee_config.submission_fee
        if txn.value < fee:
            raise InsufficientFee(txn.value, fee)

        user = normalize_address(txn.sender)
        session_index = ledger.record_submission(
            self.state, user, reps, form_accuracy, streak, duration, txn.timestamp
        )

        owner_cut = fee * self.state.fee_config.owner_share // 100
        self.state.owner_balance += owner_cut
        self.state.reward_config.total_reward_pool += fee - owner_cut

        ledger.register_on_leaderboard(self.state, user)
        self.state.user_rewards.setdefault(user, UserReward())

        self.events.emit(LeaderboardUpdated(
            contract=self.address,
            timestamp=txn.timestamp,
            user=user,
            total_score=self.player_score(user),
            sessions_completed=self.state.scores[user].sessions_completed,
        ))
        return SubmissionReceipt(session_index=session_index, refund=txn.value - fee)

    # ── Ranking ───────────────────────────────────────────────────────
    def player_score(self, user: str) -> int:
        score = self.state.scores.get(user.lower())
        if score is None:
            return 0
        return calculate_base_score(score.total_reps, score.average_form_accuracy, score.best_streak)

    def get_top_performers(self, count: int) -> list[LocalAbsScore]:
        """Top ``count`` users by base score, selected without a full sort."""
        index = self.state.user_index
        top = heapq.nlargest(
            count,
            self.state.leaderboard,
            key=lambda user: (self.player_score(user), -index[user]),
        )
        return [self.state.scores[user] for user in top]

    # ── Distribution ──────────────────────────────────────────────────
    def time_until_next_distribution(self, now: int) -> int:
        config = self.state.reward_config
        return max(0, config.last_distribution + config.distribution_period - now)

    def distribute_rewards(self, txn: Txn) -> list[Payout]:
        """Owner-triggered distribution, only once the period has elapsed."""
        only_owner(self.state, txn.sender)
        remaining = self.time_until_next_distribution(txn.timestamp)
        if remaining > 0:
            raise DistributionNotDue(remaining)
        return self._distribute(txn.timestamp, "manual")

    def emergency_distribute(self, txn: Txn) -> list[Payout]:
        """Owner override that skips the timing check."""
        only_owner(self.state, txn.sender)
        return self._distribute(txn.timestamp, "emergency")

    def check_upkeep(self, now: int) -> tuple[bool, bytes]:
        config = self.state.reward_config
        needed = (
            config.auto_distribution
            and self.time_until_next_distribution(now) == 0
            and config.total_reward_pool > 0
            and any(self.player_score(u) > 0 for u in self.state.leaderboard)
        )
        return needed, b""

    def perform_upkeep(self, txn: Txn, perform_data: bytes = b"") -> list[Payout]:
        """Automation entrypoint; conditions are re-validated on-chain."""
        needed, _ = self.check_upkeep(txn.timestamp)
        if not needed:
            raise DistributionNotDue(self.time_until_next_distribution(txn.timestamp))
        return self._distribute(txn.timestamp, "automatic")

    def _distribute(self, now: int, trigger: str) -> list[Payout]:
        with non_reentrant(self.state):
            config = self.state.reward_config
            pool = config.total_reward_pool
            winners = [
                s.user for s in self.get_top_performers(config.top_performers_count)
                if self.player_score(s.user) > 0
            ]
            if pool == 0 or not winners:
                raise NoRewardsToDistribute(pool, len(winners))

            n = len(winners)
            weights = [(n - rank) * RANK_WEIGHT_UNIT for rank in range(n)]
            total_weight = sum(weights)

            for reward in self.state.user_rewards.values():
                reward.current_period_earned = 0
                reward.rank = 0

            payouts: list[Payout] = []
            for rank, (user, weight) in enumerate(zip(winners, weights)):
                amount = pool * weight // total_weight
                reward = self.state.user_rewards.setdefault(user, UserReward())
                reward.pending_amount += amount
                reward.total_earned += amount
                reward.current_period_earned = amount
                reward.rank = rank + 1
                payouts.append(Payout(user=user, rank=rank + 1, amount=amount))

            distributed = sum(p.amount for p in payouts)
            config.total_reward_pool = pool - distributed
            config.last_distribution = now

            self.events.emit(RewardsDistributed(
                contract=self.address,
                timestamp=now,
                total_distributed=distributed,
                recipients=len(payouts),
                trigger=trigger,
            ))
            logger.info(
                "Distributed %d wei to %d performer(s) [%s] — %d wei left in pool",
                distributed, len(payouts), trigger, config.total_reward_pool,
            )
            return payouts

    # ── Claims ────────────────────────────────────────────────────────
    def claim_rewards(self, txn: Txn) -> int:
        """Pull payment of the caller's pending rewards. Returns the amount."""
        with non_reentrant(self.state):
            user = normalize_address(txn.sender)
            reward = self.state.user_rewards.get(user)
            if reward is None or reward.pending_amount == 0:
                raise NoPendingRewards(user)

            amount = reward.pending_amount
            reward.pending_amount = 0
            reward.last_claimed = txn.timestamp
            self.events.emit(RewardClaimed(
                contract=self.address, timestamp=txn.timestamp, user=user, amount=amount
            ))
            return amount

    def withdraw_owner_balance(self, txn: Txn) -> int:
        only_owner(self.state, txn.sender)
        with non_reentrant(self.state):
            amount = self.state.owner_balance
            self.state.owner_balance = 0
            return amount

    # ── Owner configuration ───────────────────────────────────────────
    def update_fee_config(self, txn: Txn, fee_config: FeeConfig) -> None:
        only_owner(self.state, txn.sender)
        _check_fee_config(fee_config)
        self.state.fee_config = fee_config

    def update_reward_config(
        self,
        txn: Txn,
        distribution_period: int,
        top_performers_count: int,
        auto_distribution: bool,
    ) -> None:
        only_owner(self.state, txn.sender)
        if distribution_period <= 0 or top_performers_count <= 0:
            raise InvalidConfig(
                "period and top performer count must be positive",
                {"distribution_period": distribution_period, "top_performers_count": top_performers_count},
            )
        config = self.state.reward_config
        config.distribution_period = distribution_period
        config.top_performers_count = top_performers_count
        config.auto_distribution = auto_distribution

    # ── Views ─────────────────────────────────────────────────────────
    def get_reward_config(self, now: int) -> RewardConfigView:
        return RewardConfigView(
            **self.state.reward_config.model_dump(),
            time_until_next_distribution=self.time_until_next_distribution(now),
        )

    def get_user_reward_info(self, user: str) -> UserReward:
        return self.state.user_rewards.get(user.lower(), UserReward()).model_copy()

    def get_user_abs_score_safe(self, user: str) -> tuple[LocalAbsScore, bool]:
        return ledger.get_user_abs_score_safe(self.state, user)

    def get_user_sessions(self, user: str) -> list[WorkoutSession]:
        return ledger.get_user_sessions(self.state, user)

    def get_time_until_next_submission(self, user: str, now: int) -> int:
        return ledger.time_until_next_submission(self.state, user.lower(), now)


def _check_fee_config(fee_config: FeeConfig) -> None:
    if fee_config.owner_share + fee_config.leaderboard_share != 100:
        raise InvalidConfig(
            "owner and leaderboard shares must sum to 100",
            {"owner_share": fee_config.owner_share, "leaderboard_share": fee_config.leaderboard_share},
        )
