"""
API tests for the FastAPI backend, driven through TestClient against a
fresh local deployment with a controllable clock.
"""
from backend import config
from scoring.rules import CHALLENGE_DURATION, SUBMISSION_COOLDOWN

OWNER = "0x" + "0" * 39 + "1"
ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40


def _submit(client, sender=ALICE, reps=10, accuracy=0, streak=0):
    return client.post(
        "/submit",
        json={"sender": sender, "reps": reps, "form_accuracy": accuracy, "streak": streak, "duration": 60},
    )


class TestRoot:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["name"] == "Imperfect Abs API"
        assert body["chains"] == ["base", "celo", "monad", "polygon"]


class TestSubmission:
    def test_submit(self, client):
        resp = _submit(client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"] == ALICE
        assert body["session_index"] == 0
        assert body["total_score"] == 100
        assert body["request_id"]

    def test_cooldown(self, client, clock):
        _submit(client)
        resp = _submit(client)
        assert resp.status_code == 429
        body = resp.json()
        assert body["code"] == "COOLDOWN_ACTIVE"
        assert body["details"]["remaining"] == SUBMISSION_COOLDOWN

        clock.advance(SUBMISSION_COOLDOWN)
        assert _submit(client).json()["session_index"] == 1

    def test_invalid_reps(self, client):
        resp = _submit(client, reps=0)
        assert resp.status_code == 422
        assert resp.json()["code"] == "INVALID_REPS"

    def test_sessions(self, client):
        _submit(client, reps=25, accuracy=80)
        body = client.get(f"/sessions/{ALICE.upper().replace('0X', '0x')}").json()
        assert body["session_count"] == 1
        session = body["sessions"][0]
        assert (session["reps"], session["form_accuracy"]) == (25, 80)
        assert session["analysis_complete"] is False


class TestOracle:
    def test_run_pending_request(self, client):
        request_id = _submit(client, reps=50, accuracy=90).json()["request_id"]
        pending = client.get("/oracle/pending").json()
        assert [p["request_id"] for p in pending] == [request_id]
        assert pending[0]["args"][:3] == ["50", "90", "60"]

        result = client.post(f"/oracle/run/{request_id}").json()
        assert result == {"request_id": request_id, "delivered": True, "callback_error": None}
        assert client.get("/oracle/pending").json() == []

        session = client.get(f"/sessions/{ALICE}").json()["sessions"][0]
        assert session["analysis_complete"] is True
        assert session["status"] == "analysis-completed"
        assert (session["enhanced_score"], session["weather_conditions"]) == (100, "unknown")

    def test_run_unknown_request(self, client):
        assert client.post("/oracle/run/0xdeadbeef").status_code == 404

    def test_fulfill_with_error(self, client):
        request_id = _submit(client, reps=10).json()["request_id"]
        result = client.post("/oracle/fulfill", json={"request_id": request_id, "err": "boom"}).json()
        assert result["delivered"] is True
        session = client.get(f"/sessions/{ALICE}").json()["sessions"][0]
        assert session["status"] == "analysis-failed"
        assert session["enhanced_score"] == 100

    def test_fulfill_malformed_reports_callback_error(self, client):
        request_id = _submit(client).json()["request_id"]
        result = client.post(
            "/oracle/fulfill", json={"request_id": request_id, "response": '{"score":"x"}'}
        ).json()
        assert result["callback_error"] == "INVALID_JSON"


class TestScores:
    def test_score_breakdown(self, client):
        _submit(client)
        body = client.get(f"/scores/{ALICE}").json()
        assert body["exists"] is True
        assert body["composite"]["total_score"] == 100
        assert body["tier"] == "Active"
        assert body["rank"] == 1
        assert "100" in body["explanation"]

    def test_unknown_user(self, client):
        body = client.get(f"/scores/{BOB}").json()
        assert body["exists"] is False
        assert body["composite"]["total_score"] == 0
        assert body["rank"] is None
        assert body["tier"] == "Beginner"

    def test_leaderboard(self, client):
        _submit(client, sender=ALICE, reps=10)
        _submit(client, sender=BOB, reps=30)
        body = client.get("/leaderboard", params={"limit": 5}).json()
        assert body["total_users"] == 2
        assert [(e["user"], e["rank"]) for e in body["entries"]] == [(BOB, 1), (ALICE, 2)]


class TestBridge:
    def test_bridge_flow(self, client):
        _submit(client)
        resp = client.post(
            "/bridge/polygon/remote-score", json={"user": ALICE, "pushups": 30, "squats": 20}
        )
        assert resp.json()["score"] == 50

        fee = client.get(f"/bridge/polygon/fee/{ALICE}").json()["fee"]
        receipt = client.post(
            "/bridge/polygon/user", json={"sender": ALICE, "user": ALICE, "value": fee + 1}
        ).json()
        assert (receipt["score"], receipt["refund"]) == (50, 1)

        composite = client.get(f"/scores/{ALICE}").json()["composite"]
        assert (composite["active_chains"], composite["total_score"]) == (2, 165)
        assert client.get(f"/bridge/polygon/info/{ALICE}").json()["can_bridge"] is False

        again = client.post("/bridge/polygon/user", json={"sender": ALICE, "user": ALICE, "value": fee})
        assert again.status_code == 429
        assert again.json()["code"] == "BRIDGE_COOLDOWN_ACTIVE"

    def test_underpaid_bridge(self, client):
        client.post("/bridge/base/remote-score", json={"user": ALICE, "pushups": 30})
        resp = client.post("/bridge/base/user", json={"sender": ALICE, "user": ALICE, "value": 0})
        assert resp.status_code == 402
        assert resp.json()["code"] == "NOT_ENOUGH_BALANCE"

    def test_batch(self, client):
        for user in (ALICE, BOB):
            client.post("/bridge/celo/remote-score", json={"user": user, "pushups": 15})
        fee = client.get(f"/bridge/celo/fee/{ALICE}").json()["fee"]
        receipt = client.post(
            "/bridge/celo/batch", json={"sender": OWNER, "users": [ALICE, "bogus", BOB], "value": 2 * fee}
        ).json()
        assert receipt["bridged_users"] == [ALICE, BOB]
        assert receipt["skipped_users"] == ["bogus"]
        assert receipt["refund"] == 0

    def test_unknown_chain(self, client):
        assert client.get(f"/bridge/solana/info/{ALICE}").status_code == 404


class TestRewards:
    def _paid_submit(self, client, sender, reps):
        return client.post(
            "/rewards/submit",
            json={"sender": sender, "value": config.SUBMISSION_FEE_WEI, "reps": reps, "form_accuracy": 0},
        )

    def test_underpaid_submission(self, client):
        resp = client.post(
            "/rewards/submit", json={"sender": ALICE, "value": 0, "reps": 10, "form_accuracy": 0}
        )
        assert resp.status_code == 402
        assert resp.json()["code"] == "INSUFFICIENT_FEE"

    def test_distribution_and_claim(self, client, clock):
        assert self._paid_submit(client, ALICE, 30).status_code == 200
        assert self._paid_submit(client, BOB, 10).status_code == 200
        pool = client.get("/rewards/config").json()["total_reward_pool"]

        early = client.post("/rewards/distribute", json={"sender": OWNER})
        assert early.status_code == 409
        assert early.json()["code"] == "DISTRIBUTION_NOT_DUE"
        assert client.post("/rewards/distribute", json={"sender": ALICE}).status_code == 403

        clock.advance(config.REWARD_PERIOD_SECONDS)
        body = client.post("/rewards/distribute", json={"sender": OWNER}).json()
        assert body["trigger"] == "manual"
        assert [(p["user"], p["rank"]) for p in body["payouts"]] == [(ALICE, 1), (BOB, 2)]
        assert body["payouts"][0]["amount"] == pool * 200 // 300
        assert body["total_distributed"] + body["remaining_pool"] == pool

        pending = client.get(f"/rewards/{ALICE}").json()["pending_amount"]
        claimed = client.post("/rewards/claim", json={"sender": ALICE}).json()
        assert claimed == {"user": ALICE, "amount": pending}

        again = client.post("/rewards/claim", json={"sender": ALICE})
        assert again.status_code == 409
        assert again.json()["code"] == "NO_PENDING_REWARDS"

    def test_emergency_distribution(self, client):
        self._paid_submit(client, ALICE, 10)
        body = client.post("/rewards/distribute", json={"sender": OWNER, "emergency": True}).json()
        assert body["trigger"] == "emergency"
        assert body["payouts"][0]["user"] == ALICE

    def test_upkeep_disabled(self, client, clock):
        self._paid_submit(client, ALICE, 10)
        clock.advance(config.REWARD_PERIOD_SECONDS)
        assert client.post("/rewards/upkeep", json={"sender": BOB}).json() == {
            "upkeep_needed": False, "distribution": None,
        }

    def test_config_and_top(self, client, clock):
        self._paid_submit(client, ALICE, 10)
        clock.advance(100)
        view = client.get("/rewards/config").json()
        assert view["time_until_next_distribution"] == config.REWARD_PERIOD_SECONDS - 100
        top = client.get("/rewards/top", params={"limit": 3}).json()
        assert [s["user"] for s in top] == [ALICE]


class TestChallenge:
    ACCURACY_75 = 3 + (5 << 8)     # accuracy challenge, target 75%, +5%

    def test_no_challenge_yet(self, client):
        body = client.get("/challenge").json()
        assert body["active"] is False
        assert body["target"] == 0

    def test_request_is_owner_only(self, client):
        resp = client.post("/challenge/request", json={"sender": ALICE})
        assert resp.status_code == 403
        assert resp.json()["code"] == "NOT_OWNER"

    def test_request_fulfill_and_complete(self, client, clock):
        request_id = client.post("/challenge/request", json={"sender": OWNER}).json()["request_id"]
        pending = client.post("/challenge/request", json={"sender": OWNER})
        assert pending.status_code == 409
        assert pending.json()["code"] == "CHALLENGE_UPDATE_PENDING"

        result = client.post(
            "/challenge/fulfill", json={"request_id": request_id, "random_words": [self.ACCURACY_75]}
        ).json()
        assert result["delivered"] is True and result["callback_error"] is None

        body = client.get("/challenge").json()
        assert (body["challenge_type"], body["target"], body["bonus_multiplier"]) == (3, 75, 500)
        assert body["description"] == "Achieve 75% form accuracy"
        assert body["active"] is True

        _submit(client, reps=10, accuracy=80)
        # base 100 + 80 = 180, 5% bonus
        assert client.get(f"/challenge/user/{ALICE}").json() == {
            "user": ALICE, "completed": True, "bonus_earned": 9,
        }
        assert client.get(f"/challenge/user/{BOB}").json()["completed"] is False

        clock.advance(CHALLENGE_DURATION)
        assert client.get("/challenge").json()["active"] is False

    def test_upkeep(self, client):
        body = client.post("/challenge/upkeep", json={"sender": BOB}).json()
        assert body == {
            "weather_update_needed": True,
            "challenge_update_needed": True,
            "weather_updated": True,
            "challenge_requested": True,
        }
        again = client.post("/challenge/upkeep", json={"sender": BOB}).json()
        assert again["weather_update_needed"] is False
        assert again["challenge_update_needed"] is False
        assert again["weather_updated"] is False

    def test_weather(self, client, clock):
        client.post("/challenge/upkeep", json={"sender": BOB})
        body = client.get("/challenge/weather").json()
        assert body["seasonal_bonus_bps"] == 500
        assert body["last_update"] == clock.now
        assert body["regional_bonus_bps"]["desert"] == 1000
