"""
Shared pytest fixtures.

Every test gets a fresh local deployment with a fixed deployment time,
so cooldowns and reward periods are fully deterministic.
"""
import pytest
from fastapi.testclient import TestClient

from backend import config
from backend.main import app
from scoring.rules import (
    DISTRIBUTION_PERIOD,
    LEADERBOARD_SHARE,
    OWNER_SHARE,
    SUBMISSION_FEE,
    TOP_PERFORMERS_COUNT,
)
from smart_contracts.imperfect_abs.deploy_config import deploy

OWNER = "0x" + "0" * 39 + "1"
T0 = 1_700_000_000


class Clock:
    def __init__(self, now: int):
        self.now = now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture
def deployment():
    return deploy(OWNER, deployed_at=T0)


@pytest.fixture
def queued_deployment():
    """CCIP messages wait in flight until delivered explicitly."""
    return deploy(OWNER, deployed_at=T0, deliver_immediately=False)


@pytest.fixture
def hub(deployment):
    return deployment.hub


@pytest.fixture
def clock(monkeypatch):
    c = Clock(T0)
    monkeypatch.setattr(config, "now", lambda: c.now)
    return c


@pytest.fixture
def client(clock, monkeypatch):
    monkeypatch.setattr(config, "OWNER_ADDRESS", OWNER)
    monkeypatch.setattr(config, "WEATHERXM_API_KEY", None)
    monkeypatch.setattr(config, "AUTO_DISTRIBUTION", False)
    monkeypatch.setattr(config, "SUBMISSION_FEE_WEI", SUBMISSION_FEE)
    monkeypatch.setattr(config, "OWNER_SHARE_PCT", OWNER_SHARE)
    monkeypatch.setattr(config, "LEADERBOARD_SHARE_PCT", LEADERBOARD_SHARE)
    monkeypatch.setattr(config, "REWARD_PERIOD_SECONDS", DISTRIBUTION_PERIOD)
    monkeypatch.setattr(config, "TOP_PERFORMERS", TOP_PERFORMERS_COUNT)
    config.reset_deployment()
    with TestClient(app) as c:
        yield c
    config.reset_deployment()
