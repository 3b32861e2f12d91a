"""
Tests for the hub's VRF daily challenge, weather bonus refresh and
automation upkeep, plus the simulated VRF coordinator.
"""
import pytest

from scoring.models import ChallengeType, Txn
from scoring.rules import (
    CHALLENGE_DURATION,
    SUBMISSION_COOLDOWN,
    VRF_REQUEST_TIMEOUT,
    WEATHER_UPDATE_INTERVAL,
    ChallengeRules,
)
from smart_contracts.imperfect_abs.chainlink import VRFCoordinator, VRFRequestError
from smart_contracts.imperfect_abs.codec import decode_upkeep_flags, encode_upkeep_flags
from smart_contracts.imperfect_abs.deploy_config import deploy
from smart_contracts.imperfect_abs.errors import (
    ChallengeUpdatePending,
    InvalidCoordinator,
    InvalidPayload,
    NotOwner,
    UpkeepNotNeeded,
)
from smart_contracts.imperfect_abs.events import (
    ChallengeCompleted,
    DailyChallengeGenerated,
    WeatherBonusesUpdated,
)
from smart_contracts.imperfect_abs.hub import generate_challenge

OWNER = "0x" + "0" * 39 + "1"
ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
T0 = 1_700_000_000                 # 2023-11-14 UTC
JAN_2024 = 1_704_067_200
APR_2024 = 1_711_929_600
JUL_2024 = 1_719_792_000


def _word(challenge_type, target_offset=0, bonus_step=0):
    """Random word that yields a known challenge."""
    return (
        int(challenge_type)
        + (target_offset << ChallengeRules.TARGET_SHIFT)
        + (bonus_step << ChallengeRules.BONUS_SHIFT)
    )


def _open_challenge(deployment, word, now=T0):
    hub = deployment.hub
    request_id = hub.manual_challenge_update(Txn(sender=OWNER, timestamp=now))
    result = deployment.run_vrf(request_id, now, [word])
    assert result.delivered and result.callback_error is None
    return hub.get_current_challenge(now)


def _submit(hub, user=ALICE, now=T0, reps=10, accuracy=0, streak=0, duration=60):
    return hub.submit_workout_session(Txn(sender=user, timestamp=now), reps, accuracy, streak, duration)


class TestGenerateChallenge:
    @pytest.mark.parametrize("challenge_type", list(ChallengeType))
    def test_type_from_word(self, challenge_type):
        challenge = generate_challenge(_word(challenge_type), T0)
        assert challenge.challenge_type == challenge_type
        assert challenge.target == ChallengeRules.TARGET_RANGES[challenge_type][0]
        assert challenge.bonus_multiplier == ChallengeRules.MIN_BONUS_BPS
        assert challenge.expires_at == T0 + CHALLENGE_DURATION
        assert challenge.active is True

    def test_target_and_bonus_offsets(self):
        challenge = generate_challenge(_word(ChallengeType.REPS, target_offset=10, bonus_step=5), T0)
        assert (challenge.target, challenge.bonus_multiplier) == (30, 1000)

    def test_ranges_wrap(self):
        low, high = ChallengeRules.TARGET_RANGES[ChallengeType.ACCURACY]
        challenge = generate_challenge(_word(ChallengeType.ACCURACY, target_offset=high - low + 1, bonus_step=16), T0)
        assert challenge.target == low
        assert challenge.bonus_multiplier == ChallengeRules.MIN_BONUS_BPS

    def test_values_stay_in_range(self):
        for word in (0, 1, 2**255 + 12345, 2**256 - 1, 0xDEADBEEF):
            challenge = generate_challenge(word, T0)
            low, high = ChallengeRules.TARGET_RANGES[challenge.challenge_type]
            assert low <= challenge.target <= high
            assert ChallengeRules.MIN_BONUS_BPS <= challenge.bonus_multiplier <= ChallengeRules.MAX_BONUS_BPS

    def test_descriptions(self):
        assert generate_challenge(_word(ChallengeType.DURATION, target_offset=30), T0).describe() == (
            "Workout for at least 1:30"
        )
        assert generate_challenge(_word(ChallengeType.COMBO), T0).describe() == (
            "Complete 10 reps with 90%+ accuracy"
        )


class TestVRFCoordinator:
    def test_unregistered_consumer_rejected(self):
        coordinator = VRFCoordinator()
        subscription_id = coordinator.create_subscription()
        with pytest.raises(VRFRequestError) as exc:
            coordinator.request_random_words(Txn(sender=ALICE, timestamp=T0), coordinator.key_hash, subscription_id)
        assert exc.value.details["reason"] == "consumer not registered"

    def test_request_validation(self, deployment):
        coordinator, hub = deployment.vrf_coordinator, deployment.hub
        txn = Txn(sender=hub.address, timestamp=T0)
        sub = deployment.vrf_subscription_id
        with pytest.raises(VRFRequestError):
            coordinator.request_random_words(txn, "0x" + "00" * 32, sub)
        with pytest.raises(VRFRequestError):
            coordinator.request_random_words(txn, coordinator.key_hash, 99)
        with pytest.raises(VRFRequestError):
            coordinator.request_random_words(txn, coordinator.key_hash, sub, request_confirmations=1)
        with pytest.raises(VRFRequestError):
            coordinator.request_random_words(txn, coordinator.key_hash, sub, num_words=0)

    def test_fulfilled_once(self, deployment):
        request_id = deployment.hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0))
        assert [r.request_id for r in deployment.vrf_coordinator.pending_requests] == [request_id]

        first = deployment.run_vrf(request_id, T0 + 1)
        again = deployment.run_vrf(request_id, T0 + 2)
        assert first.delivered and len(first.random_words) == 1
        assert again.delivered is False
        assert deployment.vrf_coordinator.pending_requests == []
        assert len(deployment.events.of_type(DailyChallengeGenerated)) == 1

    def test_derived_words_are_deterministic(self, deployment):
        request_id = deployment.hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0))
        other = deploy(OWNER, deployed_at=T0)
        other_id = other.hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0))
        assert request_id == other_id
        assert deployment.run_vrf(request_id, T0).random_words == other.run_vrf(other_id, T0).random_words


class TestDailyChallenge:
    def test_no_challenge_before_first_request(self, hub):
        challenge = hub.get_current_challenge(T0)
        assert challenge.active is False
        assert (challenge.target, challenge.bonus_multiplier, challenge.expires_at) == (0, 0, 0)

    def test_manual_update_is_owner_only(self, hub):
        with pytest.raises(NotOwner):
            hub.manual_challenge_update(Txn(sender=ALICE, timestamp=T0))

    def test_generated_from_vrf(self, deployment):
        challenge = _open_challenge(deployment, _word(ChallengeType.STREAK, target_offset=2, bonus_step=3))
        assert (challenge.challenge_type, challenge.target) == (ChallengeType.STREAK, 5)
        assert challenge.bonus_multiplier == 800
        assert challenge.active is True

        event = deployment.events.last(DailyChallengeGenerated)
        assert (event.challenge_type, event.target, event.bonus_multiplier) == (2, 5, 800)
        assert event.expires_at == T0 + CHALLENGE_DURATION
        assert deployment.hub.state.last_challenge_update == T0

    def test_expires(self, deployment):
        _open_challenge(deployment, _word(ChallengeType.REPS))
        hub = deployment.hub
        assert hub.get_current_challenge(T0 + CHALLENGE_DURATION - 1).active is True
        expired = hub.get_current_challenge(T0 + CHALLENGE_DURATION)
        assert expired.active is False
        assert expired.target == 20

    def test_second_request_while_pending(self, hub):
        request_id = hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0))
        with pytest.raises(ChallengeUpdatePending) as exc:
            hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0 + 10))
        assert exc.value.details["request_id"] == request_id

    def test_unanswered_request_replaced_after_timeout(self, deployment):
        hub = deployment.hub
        stale_id = hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0))
        fresh_id = hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0 + VRF_REQUEST_TIMEOUT))
        assert fresh_id != stale_id

        deployment.run_vrf(stale_id, T0 + VRF_REQUEST_TIMEOUT + 1, [_word(ChallengeType.REPS)])
        assert hub.state.current_challenge is None
        assert hub.state.challenge_request_id == fresh_id

        deployment.run_vrf(fresh_id, T0 + VRF_REQUEST_TIMEOUT + 2, [_word(ChallengeType.ACCURACY)])
        assert hub.state.current_challenge.challenge_type == ChallengeType.ACCURACY

    def test_empty_words_clear_request(self, deployment):
        hub = deployment.hub
        request_id = hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0))
        deployment.run_vrf(request_id, T0, [])
        assert hub.state.challenge_request_id is None
        assert hub.state.current_challenge is None
        hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0 + 1))

    def test_callback_only_from_coordinator(self, deployment):
        hub = deployment.hub
        request_id = hub.manual_challenge_update(Txn(sender=OWNER, timestamp=T0))
        with pytest.raises(InvalidCoordinator) as exc:
            hub.raw_fulfill_random_words(Txn(sender=BOB, timestamp=T0), request_id, [7])
        assert exc.value.details["coordinator"] == deployment.vrf_coordinator.address
        assert hub.state.current_challenge is None


class TestChallengeCompletion:
    def test_completed_on_submission(self, deployment):
        hub = deployment.hub
        _open_challenge(deployment, _word(ChallengeType.REPS, target_offset=10, bonus_step=5))

        _submit(hub, reps=30, accuracy=80, streak=1)
        event = deployment.events.last(ChallengeCompleted)
        # base 300 + 240 + 25 = 565, 10% bonus
        assert (event.user, event.session_index, event.bonus_earned) == (ALICE, 0, 56)
        assert hub.has_completed_challenge(ALICE) is True
        assert hub.get_challenge_bonus(ALICE) == 56

    def test_bonus_does_not_change_total_score(self, deployment):
        hub = deployment.hub
        _open_challenge(deployment, _word(ChallengeType.REPS))
        _submit(hub, reps=20)
        assert hub.get_total_score(ALICE).total_score == 200

    def test_completed_once_per_challenge(self, deployment):
        hub = deployment.hub
        _open_challenge(deployment, _word(ChallengeType.REPS))
        _submit(hub, reps=20)
        _submit(hub, reps=40, now=T0 + SUBMISSION_COOLDOWN)
        assert len(deployment.events.of_type(ChallengeCompleted)) == 1

    def test_target_not_met(self, deployment):
        hub = deployment.hub
        _open_challenge(deployment, _word(ChallengeType.DURATION, target_offset=240))
        _submit(hub, duration=299)
        assert hub.has_completed_challenge(ALICE) is False
        _submit(hub, duration=300, now=T0 + SUBMISSION_COOLDOWN)
        assert hub.has_completed_challenge(ALICE) is True

    def test_combo_needs_accuracy(self, deployment):
        hub = deployment.hub
        _open_challenge(deployment, _word(ChallengeType.COMBO))
        _submit(hub, reps=10, accuracy=ChallengeRules.COMBO_MIN_ACCURACY - 1)
        _submit(hub, user=BOB, reps=10, accuracy=ChallengeRules.COMBO_MIN_ACCURACY)
        assert hub.has_completed_challenge(ALICE) is False
        assert hub.has_completed_challenge(BOB) is True

    def test_expired_challenge_not_completed(self, deployment):
        hub = deployment.hub
        _open_challenge(deployment, _word(ChallengeType.REPS))
        _submit(hub, reps=100, now=T0 + CHALLENGE_DURATION)
        assert deployment.events.of_type(ChallengeCompleted) == []

    def test_new_challenge_resets_completions(self, deployment):
        hub = deployment.hub
        _open_challenge(deployment, _word(ChallengeType.REPS))
        _submit(hub, reps=20)
        later = T0 + CHALLENGE_DURATION
        _open_challenge(deployment, _word(ChallengeType.ACCURACY), now=later)
        assert hub.has_completed_challenge(ALICE) is False
        assert hub.get_challenge_bonus(ALICE) > 0


class TestWeatherBonuses:
    @pytest.mark.parametrize(
        "now,month,bonus",
        [(T0, 11, 500), (JAN_2024, 1, 1000), (APR_2024, 4, 200), (JUL_2024, 7, 800)],
    )
    def test_seasonal_bonus_by_month(self, deployment, now, month, bonus):
        hub = deployment.hub
        assert hub.manual_weather_update(Txn(sender=OWNER, timestamp=now)) == bonus
        assert hub.get_seasonal_bonus() == bonus
        assert hub.state.last_weather_update == now
        event = deployment.events.last(WeatherBonusesUpdated)
        assert (event.month, event.seasonal_bonus_bps) == (month, bonus)

    def test_manual_update_is_owner_only(self, hub):
        with pytest.raises(NotOwner):
            hub.manual_weather_update(Txn(sender=ALICE, timestamp=T0))

    def test_regional_bonus(self, hub):
        assert hub.get_regional_bonus("Desert") == 1000
        assert hub.get_regional_bonus("arctic") == 1200
        assert hub.get_regional_bonus("lunar") == 0


class TestHubUpkeep:
    def test_fresh_deployment_needs_both(self, hub):
        needed, data = hub.check_upkeep(T0)
        assert needed is True
        assert decode_upkeep_flags(data) == (True, True)

    def test_perform_runs_both(self, deployment):
        hub = deployment.hub
        _, data = hub.check_upkeep(T0)
        assert hub.perform_upkeep(Txn(sender=BOB, timestamp=T0), data) == (True, True)
        assert hub.state.last_weather_update == T0
        assert hub.state.challenge_request_id is not None

        # Weather is fresh and the challenge request is in flight
        needed, data = hub.check_upkeep(T0 + 1)
        assert (needed, decode_upkeep_flags(data)) == (False, (False, False))
        with pytest.raises(UpkeepNotNeeded) as exc:
            hub.perform_upkeep(Txn(sender=BOB, timestamp=T0 + 1), encode_upkeep_flags(True, True))
        assert exc.value.details["weather_remaining"] == WEATHER_UPDATE_INTERVAL - 1

    def test_intervals(self, deployment):
        hub = deployment.hub
        hub.manual_weather_update(Txn(sender=OWNER, timestamp=T0))
        _open_challenge(deployment, _word(ChallengeType.REPS))

        assert decode_upkeep_flags(hub.check_upkeep(T0 + WEATHER_UPDATE_INTERVAL - 1)[1]) == (False, False)
        assert decode_upkeep_flags(hub.check_upkeep(T0 + WEATHER_UPDATE_INTERVAL)[1]) == (True, False)
        assert decode_upkeep_flags(hub.check_upkeep(T0 + CHALLENGE_DURATION)[1]) == (True, True)

    def test_only_flagged_work_is_done(self, deployment):
        hub = deployment.hub
        hub.perform_upkeep(Txn(sender=BOB, timestamp=T0), encode_upkeep_flags(True, False))
        assert hub.state.last_weather_update == T0
        assert hub.state.challenge_request_id is None

    def test_flags_are_revalidated(self, deployment):
        hub = deployment.hub
        hub.manual_weather_update(Txn(sender=OWNER, timestamp=T0))
        done = hub.perform_upkeep(Txn(sender=BOB, timestamp=T0 + 1), encode_upkeep_flags(True, True))
        assert done == (False, True)
        assert len(deployment.events.of_type(WeatherBonusesUpdated)) == 1

    def test_failed_vrf_request_keeps_weather_update(self, deployment):
        hub = deployment.hub
        hub.state.vrf_subscription_id = 99
        _, data = hub.check_upkeep(T0)
        assert hub.perform_upkeep(Txn(sender=BOB, timestamp=T0), data) == (True, False)
        assert hub.state.challenge_request_id is None
        assert decode_upkeep_flags(hub.check_upkeep(T0 + 1)[1]) == (False, True)

    def test_malformed_perform_data(self, hub):
        with pytest.raises(InvalidPayload):
            hub.perform_upkeep(Txn(sender=BOB, timestamp=T0), b"\x01")
