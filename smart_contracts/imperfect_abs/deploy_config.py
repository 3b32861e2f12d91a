"""Deploy configuration for the Imperfect Abs contracts.

Wires a complete local deployment: the Avalanche hub with its Functions
and VRF subscriptions, the fee & reward leaderboard, and one fitness ledger plus
CCIP bridge per remote chain. Every bridge is allowlisted on the hub as
the only sender for its chain.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from scoring.models import CrossChainSlot, FeeConfig, RewardConfig, Txn
from scoring.rules import FUNCTIONS_GAS_LIMIT, ChainSelectors
from scoring.weather import WeatherAnalyzer
from smart_contracts.imperfect_abs.bridge import FitnessCCIPBridge
from smart_contracts.imperfect_abs.chainlink import (
    CCIPNetwork,
    FulfillmentResult,
    FunctionsRouter,
    RandomWordsResult,
    RemoteFitnessLedger,
    VRFCoordinator,
    derive_address,
)
from smart_contracts.imperfect_abs.codec import normalize_address
from smart_contracts.imperfect_abs.events import EventLog
from smart_contracts.imperfect_abs.hub import ImperfectAbsHub
from smart_contracts.imperfect_abs.leaderboard import ImperfectAbsLeaderboard

logger = logging.getLogger(__name__)

HUB_CHAIN_SELECTOR = ChainSelectors.AVALANCHE_FUJI

DEFAULT_REMOTE_CHAINS: dict[CrossChainSlot, int] = {
    CrossChainSlot.POLYGON: ChainSelectors.POLYGON,
    CrossChainSlot.BASE: ChainSelectors.BASE,
    CrossChainSlot.CELO: ChainSelectors.CELO,
    CrossChainSlot.MONAD: ChainSelectors.MONAD_TESTNET,
}


@dataclass
class LocalDeployment:
    owner: str
    events: EventLog
    functions_router: FunctionsRouter
    subscription_id: int
    ccip_network: CCIPNetwork
    hub: ImperfectAbsHub
    leaderboard: ImperfectAbsLeaderboard
    analyzer: WeatherAnalyzer
    vrf_coordinator: VRFCoordinator
    vrf_subscription_id: int
    bridges: dict[CrossChainSlot, FitnessCCIPBridge] = field(default_factory=dict)
    remote_ledgers: dict[CrossChainSlot, RemoteFitnessLedger] = field(default_factory=dict)

    def bridge_for(self, chain: str) -> FitnessCCIPBridge:
        """Look up a bridge by slot name ("polygon", "base", …)."""
        return self.bridges[CrossChainSlot(chain.lower())]

    def remote_ledger_for(self, chain: str) -> RemoteFitnessLedger:
        return self.remote_ledgers[CrossChainSlot(chain.lower())]

    async def run_oracle(self, request_id: str, timestamp: int) -> FulfillmentResult:
        """Play the DON: run the analysis job on the committed args and fulfill."""
        commitment = self.functions_router.get_commitment(request_id)
        if commitment is None:
            return self.functions_router.fulfill(request_id, timestamp=timestamp)
        response, err = await self.analyzer.run(commitment.args)
        return self.functions_router.fulfill(request_id, response, err, timestamp)

    def run_vrf(
        self, request_id: int, timestamp: int, random_words: Optional[list[int]] = None
    ) -> RandomWordsResult:
        """Play the VRF coordinator for a pending randomness request."""
        return self.vrf_coordinator.fulfill_random_words(request_id, random_words, timestamp)


def deploy(
    owner: str,
    deployed_at: int = 0,
    deliver_immediately: bool = True,
    fee_config: Optional[FeeConfig] = None,
    reward_config: Optional[RewardConfig] = None,
    remote_chains: Optional[dict[CrossChainSlot, int]] = None,
    weatherxm_api_key: Optional[str] = None,
    functions_gas_limit: int = FUNCTIONS_GAS_LIMIT,
) -> LocalDeployment:
    """Deploy and wire every contract of the system."""
    owner = normalize_address(owner)
    events = EventLog()
    remote_chains = remote_chains or DEFAULT_REMOTE_CHAINS
    owner_txn = Txn(sender=owner, timestamp=deployed_at)

    # ── Hub + Functions and VRF subscriptions ────────────────────────
    functions_router = FunctionsRouter()
    subscription_id = functions_router.create_subscription()
    vrf_coordinator = VRFCoordinator()
    vrf_subscription_id = vrf_coordinator.create_subscription()

    network = CCIPNetwork(deliver_immediately=deliver_immediately)
    hub_router = network.router_for(HUB_CHAIN_SELECTOR)

    hub = ImperfectAbsHub(
        owner,
        functions_router,
        hub_router.address,
        subscription_id=subscription_id,
        gas_limit=functions_gas_limit,
        events=events,
        vrf_coordinator=vrf_coordinator,
        vrf_subscription_id=vrf_subscription_id,
    )
    functions_router.add_consumer(subscription_id, hub)
    vrf_coordinator.add_consumer(vrf_subscription_id, hub)
    network.register_receiver(HUB_CHAIN_SELECTOR, hub)
    logger.info(
        "Hub deployed at %s (functions subscription %d, VRF subscription %d)",
        hub.address, subscription_id, vrf_subscription_id,
    )

    # ── Leaderboard variant ──────────────────────────────────────────
    leaderboard = ImperfectAbsLeaderboard(
        owner,
        fee_config=fee_config,
        reward_config=reward_config,
        deployed_at=deployed_at,
        events=events,
    )
    logger.info("Leaderboard deployed at %s", leaderboard.address)

    deployment = LocalDeployment(
        owner=owner,
        events=events,
        functions_router=functions_router,
        subscription_id=subscription_id,
        ccip_network=network,
        hub=hub,
        leaderboard=leaderboard,
        analyzer=WeatherAnalyzer(api_key=weatherxm_api_key),
        vrf_coordinator=vrf_coordinator,
        vrf_subscription_id=vrf_subscription_id,
    )

    # ── Remote chains ────────────────────────────────────────────────
    for slot, selector in remote_chains.items():
        ledger = RemoteFitnessLedger(derive_address(f"fitness-ledger:{slot.value}"))
        bridge = FitnessCCIPBridge(
            owner,
            network.router_for(selector),
            ledger,
            destination_chain_selector=HUB_CHAIN_SELECTOR,
            destination_receiver=hub.address,
            events=events,
        )
        hub.allowlist_source_chain(owner_txn, selector, slot, sender=bridge.address)
        deployment.remote_ledgers[slot] = ledger
        deployment.bridges[slot] = bridge
        logger.info("Bridge for %s (selector %d) at %s", slot.value, selector, bridge.address)

    logger.info("✅ Deployed Imperfect Abs with %d remote chain(s)", len(deployment.bridges))
    return deployment
