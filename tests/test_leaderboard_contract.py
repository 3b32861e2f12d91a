"""
Tests for the fee & reward leaderboard contract.
"""
import pytest

from scoring.models import FeeConfig, RewardConfig, Txn
from scoring.rules import DISTRIBUTION_PERIOD, SUBMISSION_COOLDOWN, SUBMISSION_FEE
from smart_contracts.imperfect_abs.errors import (
    DistributionNotDue,
    InsufficientFee,
    InvalidConfig,
    NoPendingRewards,
    NoRewardsToDistribute,
    NotOwner,
)
from smart_contracts.imperfect_abs.events import LeaderboardUpdated, RewardClaimed, RewardsDistributed
from smart_contracts.imperfect_abs.leaderboard import ImperfectAbsLeaderboard

OWNER = "0x" + "0" * 39 + "1"
ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
CAROL = "0x" + "c" * 40
T0 = 1_700_000_000


@pytest.fixture
def board():
    return ImperfectAbsLeaderboard(OWNER, deployed_at=T0)


def _submit(board, user, reps, now=T0, value=None, accuracy=0, streak=0):
    fee = board.state.fee_config.submission_fee if value is None else value
    return board.submit_workout_session(
        Txn(sender=user, value=fee, timestamp=now), reps, accuracy, streak, 60
    )


def _three_players(board, now=T0):
    _submit(board, ALICE, 30, now)   # 300
    _submit(board, BOB, 20, now)     # 200
    _submit(board, CAROL, 10, now)   # 100


class TestSubmission:
    def test_fee_split_and_refund(self, board):
        receipt = _submit(board, ALICE, 10, value=SUBMISSION_FEE + 5)
        assert receipt.refund == 5
        assert board.state.owner_balance == SUBMISSION_FEE * 20 // 100
        assert board.state.reward_config.total_reward_pool == SUBMISSION_FEE * 80 // 100

        event = board.events.last(LeaderboardUpdated)
        assert (event.user, event.total_score, event.sessions_completed) == (ALICE, 100, 1)

    def test_insufficient_fee(self, board):
        with pytest.raises(InsufficientFee) as exc:
            _submit(board, ALICE, 10, value=SUBMISSION_FEE - 1)
        assert exc.value.details == {"sent": SUBMISSION_FEE - 1, "required": SUBMISSION_FEE}
        assert board.state.reward_config.total_reward_pool == 0
        assert board.state.leaderboard == []

    def test_cooldown_applies(self, board):
        _submit(board, ALICE, 10)
        assert board.get_time_until_next_submission(ALICE, T0 + 20) == SUBMISSION_COOLDOWN - 20
        _submit(board, ALICE, 10, now=T0 + SUBMISSION_COOLDOWN)
        assert board.state.leaderboard == [ALICE]
        assert len(board.get_user_sessions(ALICE)) == 2

    def test_shares_must_sum_to_100(self):
        with pytest.raises(InvalidConfig):
            ImperfectAbsLeaderboard(
                OWNER, fee_config=FeeConfig(submission_fee=1, owner_share=30, leaderboard_share=60)
            )


class TestTopPerformers:
    def test_ordering(self, board):
        _submit(board, CAROL, 10)
        _submit(board, ALICE, 30)
        _submit(board, BOB, 20)
        assert [s.user for s in board.get_top_performers(2)] == [ALICE, BOB]

    def test_ties_go_to_earlier_registrant(self, board):
        _submit(board, BOB, 10)
        _submit(board, ALICE, 10)
        assert [s.user for s in board.get_top_performers(5)] == [BOB, ALICE]


class TestDistribution:
    def test_rank_weighted_payouts(self, board):
        _three_players(board)
        pool = board.state.reward_config.total_reward_pool
        payouts = board.emergency_distribute(Txn(sender=OWNER, timestamp=T0 + 1))

        assert [(p.user, p.rank) for p in payouts] == [(ALICE, 1), (BOB, 2), (CAROL, 3)]
        assert [p.amount for p in payouts] == [pool * 3 // 6, pool * 2 // 6, pool * 1 // 6]
        assert board.state.reward_config.total_reward_pool == 0
        assert board.state.reward_config.last_distribution == T0 + 1

        info = board.get_user_reward_info(ALICE)
        assert (info.pending_amount, info.current_period_earned, info.rank) == (pool // 2, pool // 2, 1)
        assert board.events.last(RewardsDistributed).trigger == "emergency"

    def test_dust_stays_in_pool(self):
        board = ImperfectAbsLeaderboard(
            OWNER,
            fee_config=FeeConfig(submission_fee=7, owner_share=0, leaderboard_share=100),
            deployed_at=T0,
        )
        _three_players(board)
        assert board.state.reward_config.total_reward_pool == 21

        payouts = board.emergency_distribute(Txn(sender=OWNER, timestamp=T0))
        assert [p.amount for p in payouts] == [10, 7, 3]
        assert board.state.reward_config.total_reward_pool == 1
        assert board.events.last(RewardsDistributed).total_distributed == 20

    def test_weights_cover_selected_winners_only(self):
        board = ImperfectAbsLeaderboard(
            OWNER,
            fee_config=FeeConfig(submission_fee=10, owner_share=0, leaderboard_share=100),
            reward_config=RewardConfig(distribution_period=DISTRIBUTION_PERIOD, top_performers_count=2),
        )
        _three_players(board)
        payouts = board.emergency_distribute(Txn(sender=OWNER, timestamp=T0))
        assert [(p.user, p.amount) for p in payouts] == [(ALICE, 20), (BOB, 10)]
        assert board.get_user_reward_info(CAROL).pending_amount == 0

    def test_not_due(self, board):
        _three_players(board)
        with pytest.raises(DistributionNotDue) as exc:
            board.distribute_rewards(Txn(sender=OWNER, timestamp=T0 + 100))
        assert exc.value.details["remaining"] == DISTRIBUTION_PERIOD - 100

        payouts = board.distribute_rewards(Txn(sender=OWNER, timestamp=T0 + DISTRIBUTION_PERIOD))
        assert len(payouts) == 3
        assert board.time_until_next_distribution(T0 + DISTRIBUTION_PERIOD) == DISTRIBUTION_PERIOD

    def test_owner_only(self, board):
        _three_players(board)
        with pytest.raises(NotOwner):
            board.distribute_rewards(Txn(sender=ALICE, timestamp=T0 + DISTRIBUTION_PERIOD))
        with pytest.raises(NotOwner):
            board.emergency_distribute(Txn(sender=ALICE, timestamp=T0))

    def test_empty_pool(self, board):
        with pytest.raises(NoRewardsToDistribute):
            board.emergency_distribute(Txn(sender=OWNER, timestamp=T0))

    def test_period_fields_reset(self, board):
        _three_players(board)
        board.emergency_distribute(Txn(sender=OWNER, timestamp=T0))
        board.update_reward_config(Txn(sender=OWNER, timestamp=T0), DISTRIBUTION_PERIOD, 1, False)
        _submit(board, ALICE, 10, now=T0 + SUBMISSION_COOLDOWN)
        board.emergency_distribute(Txn(sender=OWNER, timestamp=T0 + SUBMISSION_COOLDOWN))

        bob = board.get_user_reward_info(BOB)
        assert (bob.current_period_earned, bob.rank) == (0, 0)
        assert bob.total_earned > 0
        assert board.get_user_reward_info(ALICE).rank == 1


class TestUpkeep:
    def test_disabled_by_default(self, board):
        _three_players(board)
        assert board.check_upkeep(T0 + DISTRIBUTION_PERIOD) == (False, b"")

    def test_automatic_distribution(self, board):
        _three_players(board)
        board.update_reward_config(Txn(sender=OWNER, timestamp=T0), DISTRIBUTION_PERIOD, 10, True)

        assert board.check_upkeep(T0 + 1)[0] is False
        with pytest.raises(DistributionNotDue):
            board.perform_upkeep(Txn(sender=CAROL, timestamp=T0 + 1))

        assert board.check_upkeep(T0 + DISTRIBUTION_PERIOD)[0] is True
        payouts = board.perform_upkeep(Txn(sender=CAROL, timestamp=T0 + DISTRIBUTION_PERIOD))
        assert len(payouts) == 3
        assert board.events.last(RewardsDistributed).trigger == "automatic"
        assert board.check_upkeep(T0 + DISTRIBUTION_PERIOD)[0] is False

    def test_no_upkeep_with_empty_pool(self, board):
        board.update_reward_config(Txn(sender=OWNER, timestamp=T0), DISTRIBUTION_PERIOD, 10, True)
        assert board.check_upkeep(T0 + DISTRIBUTION_PERIOD)[0] is False


class TestClaims:
    def test_claim(self, board):
        _three_players(board)
        board.emergency_distribute(Txn(sender=OWNER, timestamp=T0))
        expected = board.get_user_reward_info(BOB).pending_amount

        assert board.claim_rewards(Txn(sender=BOB, timestamp=T0 + 5)) == expected
        info = board.get_user_reward_info(BOB)
        assert (info.pending_amount, info.last_claimed, info.total_earned) == (0, T0 + 5, expected)
        assert board.events.last(RewardClaimed).amount == expected

        with pytest.raises(NoPendingRewards):
            board.claim_rewards(Txn(sender=BOB, timestamp=T0 + 6))

    def test_claim_without_rewards(self, board):
        with pytest.raises(NoPendingRewards):
            board.claim_rewards(Txn(sender=ALICE, timestamp=T0))

    def test_owner_withdrawal(self, board):
        _three_players(board)
        with pytest.raises(NotOwner):
            board.withdraw_owner_balance(Txn(sender=ALICE, timestamp=T0))
        assert board.withdraw_owner_balance(Txn(sender=OWNER, timestamp=T0)) == 3 * SUBMISSION_FEE // 5
        assert board.state.owner_balance == 0


class TestConfiguration:
    def test_update_fee_config(self, board):
        new = FeeConfig(submission_fee=1, owner_share=50, leaderboard_share=50)
        with pytest.raises(NotOwner):
            board.update_fee_config(Txn(sender=ALICE, timestamp=T0), new)
        with pytest.raises(InvalidConfig):
            board.update_fee_config(
                Txn(sender=OWNER, timestamp=T0),
                FeeConfig(submission_fee=1, owner_share=50, leaderboard_share=49),
            )
        board.update_fee_config(Txn(sender=OWNER, timestamp=T0), new)
        _submit(board, ALICE, 10)
        assert board.state.owner_balance == 0
        assert board.state.reward_config.total_reward_pool == 1

    def test_update_reward_config(self, board):
        with pytest.raises(InvalidConfig):
            board.update_reward_config(Txn(sender=OWNER, timestamp=T0), 0, 10, False)
        board.update_reward_config(Txn(sender=OWNER, timestamp=T0), 3600, 3, True)
        view = board.get_reward_config(T0 + 600)
        assert (view.distribution_period, view.top_performers_count, view.auto_distribution) == (3600, 3, True)
        assert view.time_until_next_distribution == 3000

    def test_reward_info_is_a_copy(self, board):
        _submit(board, ALICE, 10)
        board.get_user_reward_info(ALICE).pending_amount = 99
        assert board.get_user_reward_info(ALICE).pending_amount == 0
