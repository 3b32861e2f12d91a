"""
Imperfect Abs — Chainlink Collaborators (local simulation)
============================================================

In-process stand-ins for the external services the contracts talk to:

    • FunctionsRouter      — asynchronous off-chain compute (DON) requests
    • VRFCoordinator       — verifiable random words for daily challenges
    • CCIPNetwork/Router   — cross-chain message transport with fees
    • RemoteFitnessLedger  — read-only fitness contract on a remote chain

They reproduce the boundary behaviour only: request/message ids,
commitments consumed exactly once, fee quotes, delivery that may be
deferred and reordered, and reverting calls.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional, Protocol

from pydantic import BaseModel

from scoring.models import Any2EVMMessage, EVM2AnyMessage, RemoteScore, Txn
from scoring.rules import (
    CCIP_BASE_FEE,
    CCIP_FEE_PER_BYTE,
    FUNCTIONS_DON_ID,
    VRF_CALLBACK_GAS_LIMIT,
    VRF_KEY_HASH,
    VRF_MAX_NUM_WORDS,
    VRF_NUM_WORDS,
    VRF_REQUEST_CONFIRMATIONS,
)
from smart_contracts.imperfect_abs.errors import (
    ContractError,
    InsufficientFee,
    UnsupportedDestination,
)

logger = logging.getLogger("chainlink")


def derive_address(label: str) -> str:
    """Deterministic pseudo-address for simulated contracts."""
    return "0x" + hashlib.sha256(label.encode()).hexdigest()[:40]


def _derive_id(*parts: object) -> str:
    return "0x" + hashlib.sha256(":".join(str(p) for p in parts).encode()).hexdigest()


class ExternalCallReverted(Exception):
    """A call into another contract reverted."""


class FunctionsRequestError(ContractError):
    http_status = 502
    code = "FUNCTIONS_REQUEST_FAILED"

    def __init__(self, reason: str, subscription_id: int):
        super().__init__(
            message=f"Functions request rejected: {reason}.",
            details={"reason": reason, "subscription_id": subscription_id},
        )


class VRFRequestError(ContractError):
    http_status = 502
    code = "VRF_REQUEST_FAILED"

    def __init__(self, reason: str, subscription_id: int):
        super().__init__(
            message=f"VRF request rejected: {reason}.",
            details={"reason": reason, "subscription_id": subscription_id},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Chainlink Functions
# ─────────────────────────────────────────────────────────────────────────────
class FunctionsConsumer(Protocol):
    address: str

    def handle_oracle_fulfillment(
        self, txn: Txn, request_id: str, response: bytes, err: bytes
    ) -> None: ...


class FunctionsCommitment(BaseModel):
    request_id: str
    consumer: str
    source: str
    args: list[str]
    subscription_id: int
    gas_limit: int
    timestamp: int


class FulfillmentResult(BaseModel):
    request_id: str
    delivered: bool
    callback_error: Optional[str] = None


class FunctionsRouter:
    """Tracks subscriptions and pending commitments; delivers callbacks once."""

    def __init__(self, don_id: str = FUNCTIONS_DON_ID, address: Optional[str] = None) -> None:
        self.don_id = don_id
        self.address = address or derive_address(f"functions-router:{don_id}")
        self._subscriptions: dict[int, set[str]] = {}
        self._consumers: dict[str, FunctionsConsumer] = {}
        self._commitments: dict[str, FunctionsCommitment] = {}
        self._nonce = 0

    def create_subscription(self) -> int:
        subscription_id = len(self._subscriptions) + 1
        self._subscriptions[subscription_id] = set()
        return subscription_id

    def add_consumer(self, subscription_id: int, consumer: FunctionsConsumer) -> None:
        if subscription_id not in self._subscriptions:
            raise FunctionsRequestError("unknown subscription", subscription_id)
        self._subscriptions[subscription_id].add(consumer.address)
        self._consumers[consumer.address] = consumer

    def send_request(
        self,
        txn: Txn,
        source: str,
        args: list[str],
        subscription_id: int,
        gas_limit: int,
    ) -> str:
        consumers = self._subscriptions.get(subscription_id)
        if consumers is None:
            raise FunctionsRequestError("unknown subscription", subscription_id)
        if txn.sender not in consumers:
            raise FunctionsRequestError("consumer not registered", subscription_id)

        self._nonce += 1
        request_id = _derive_id(self.don_id, txn.sender, subscription_id, self._nonce)
        self._commitments[request_id] = FunctionsCommitment(
            request_id=request_id,
            consumer=txn.sender,
            source=source,
            args=list(args),
            subscription_id=subscription_id,
            gas_limit=gas_limit,
            timestamp=txn.timestamp,
        )
        logger.info("Functions request %s… from %s", request_id[:12], txn.sender[:10])
        return request_id

    def get_commitment(self, request_id: str) -> Optional[FunctionsCommitment]:
        return self._commitments.get(request_id)

    @property
    def pending_requests(self) -> list[FunctionsCommitment]:
        return list(self._commitments.values())

    def fulfill(
        self,
        request_id: str,
        response: bytes = b"",
        err: bytes = b"",
        timestamp: int = 0,
    ) -> FulfillmentResult:
        """Deliver a DON result. The commitment is consumed before the callback runs."""
        commitment = self._commitments.pop(request_id, None)
        if commitment is None:
            logger.warning("Fulfillment for unknown request %s… dropped", request_id[:12])
            return FulfillmentResult(request_id=request_id, delivered=False)

        consumer = self._consumers[commitment.consumer]
        txn = Txn(sender=self.address, timestamp=max(timestamp, commitment.timestamp))
        try:
            consumer.handle_oracle_fulfillment(txn, request_id, response, err)
        except ContractError as exc:
            # The callback reverted; the request stays consumed.
            logger.warning("Callback for %s… reverted: %s", request_id[:12], exc.code)
            return FulfillmentResult(
                request_id=request_id, delivered=True, callback_error=exc.code
            )
        return FulfillmentResult(request_id=request_id, delivered=True)


# ─────────────────────────────────────────────────────────────────────────────
# Chainlink VRF
# ─────────────────────────────────────────────────────────────────────────────
class VRFConsumer(Protocol):
    address: str

    def raw_fulfill_random_words(
        self, txn: Txn, request_id: int, random_words: list[int]
    ) -> None: ...


class RandomWordsRequest(BaseModel):
    request_id: int
    consumer: str
    key_hash: str
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    timestamp: int


class RandomWordsResult(BaseModel):
    request_id: int
    delivered: bool
    random_words: list[int] = []
    callback_error: Optional[str] = None


class VRFCoordinator:
    """Verifiable randomness: one callback per request, words derived from a seed."""

    def __init__(self, key_hash: str = VRF_KEY_HASH, address: Optional[str] = None) -> None:
        self.key_hash = key_hash
        self.address = address or derive_address(f"vrf-coordinator:{key_hash}")
        self._subscriptions: dict[int, set[str]] = {}
        self._consumers: dict[str, VRFConsumer] = {}
        self._requests: dict[int, RandomWordsRequest] = {}
        self._nonce = 0

    def create_subscription(self) -> int:
        subscription_id = len(self._subscriptions) + 1
        self._subscriptions[subscription_id] = set()
        return subscription_id

    def add_consumer(self, subscription_id: int, consumer: VRFConsumer) -> None:
        if subscription_id not in self._subscriptions:
            raise VRFRequestError("unknown subscription", subscription_id)
        self._subscriptions[subscription_id].add(consumer.address)
        self._consumers[consumer.address] = consumer

    def request_random_words(
        self,
        txn: Txn,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int = VRF_REQUEST_CONFIRMATIONS,
        callback_gas_limit: int = VRF_CALLBACK_GAS_LIMIT,
        num_words: int = VRF_NUM_WORDS,
    ) -> int:
        consumers = self._subscriptions.get(subscription_id)
        if consumers is None:
            raise VRFRequestError("unknown subscription", subscription_id)
        if txn.sender not in consumers:
            raise VRFRequestError("consumer not registered", subscription_id)
        if key_hash.lower() != self.key_hash.lower():
            raise VRFRequestError("invalid key hash", subscription_id)
        if request_confirmations < VRF_REQUEST_CONFIRMATIONS:
            raise VRFRequestError("too few request confirmations", subscription_id)
        if not 1 <= num_words <= VRF_MAX_NUM_WORDS:
            raise VRFRequestError("num words out of range", subscription_id)

        self._nonce += 1
        request_id = int(_derive_id(key_hash, txn.sender, subscription_id, self._nonce), 16)
        self._requests[request_id] = RandomWordsRequest(
            request_id=request_id,
            consumer=txn.sender,
            key_hash=key_hash,
            subscription_id=subscription_id,
            request_confirmations=request_confirmations,
            callback_gas_limit=callback_gas_limit,
            num_words=num_words,
            timestamp=txn.timestamp,
        )
        logger.info("VRF request %d… from %s", request_id % 10**8, txn.sender[:10])
        return request_id

    def get_request(self, request_id: int) -> Optional[RandomWordsRequest]:
        return self._requests.get(request_id)

    @property
    def pending_requests(self) -> list[RandomWordsRequest]:
        return list(self._requests.values())

    def fulfill_random_words(
        self,
        request_id: int,
        random_words: Optional[list[int]] = None,
        timestamp: int = 0,
    ) -> RandomWordsResult:
        """Deliver random words; without explicit words they are derived from the request id."""
        request = self._requests.pop(request_id, None)
        if request is None:
            logger.warning("VRF fulfillment for unknown request %d dropped", request_id)
            return RandomWordsResult(request_id=request_id, delivered=False)

        if random_words is None:
            random_words = [
                int(_derive_id("vrf-word", request_id, i), 16) for i in range(request.num_words)
            ]
        consumer = self._consumers[request.consumer]
        txn = Txn(sender=self.address, timestamp=max(timestamp, request.timestamp))
        try:
            consumer.raw_fulfill_random_words(txn, request_id, list(random_words))
        except ContractError as exc:
            logger.warning("VRF callback for %d reverted: %s", request_id, exc.code)
            return RandomWordsResult(
                request_id=request_id,
                delivered=True,
                random_words=random_words,
                callback_error=exc.code,
            )
        return RandomWordsResult(request_id=request_id, delivered=True, random_words=random_words)


# ─────────────────────────────────────────────────────────────────────────────
# CCIP
# ─────────────────────────────────────────────────────────────────────────────
class CCIPReceiver(Protocol):
    address: str

    def ccip_receive(self, txn: Txn, message: Any2EVMMessage) -> None: ...


class InFlightMessage(BaseModel):
    destination_chain_selector: int
    receiver: str
    message: Any2EVMMessage


class CCIPNetwork:
    """Shared transport between per-chain routers.

    With ``deliver_immediately=False`` sent messages wait in ``in_flight``
    until ``deliver_pending`` is called, in any order the caller chooses.
    """

    def __init__(self, deliver_immediately: bool = True) -> None:
        self.deliver_immediately = deliver_immediately
        self.in_flight: list[InFlightMessage] = []
        self.failed: list[tuple[InFlightMessage, str]] = []
        self._receivers: dict[tuple[int, str], CCIPReceiver] = {}
        self._routers: dict[int, "CCIPRouter"] = {}

    def router_for(self, chain_selector: int) -> "CCIPRouter":
        router = self._routers.get(chain_selector)
        if router is None:
            router = CCIPRouter(self, chain_selector)
            self._routers[chain_selector] = router
        return router

    def register_receiver(self, chain_selector: int, receiver: CCIPReceiver) -> None:
        self._receivers[(chain_selector, receiver.address)] = receiver
        self.router_for(chain_selector)

    def supports(self, chain_selector: int) -> bool:
        return any(selector == chain_selector for selector, _ in self._receivers)

    def dispatch(self, item: InFlightMessage, timestamp: int) -> None:
        if self.deliver_immediately:
            self._deliver(item, timestamp)
        else:
            self.in_flight.append(item)

    def deliver_pending(
        self,
        timestamp: int,
        order: Optional[list[int]] = None,
    ) -> list[str]:
        """Deliver queued messages; ``order`` lists queue positions to deliver."""
        queue = self.in_flight
        positions = order if order is not None else list(range(len(queue)))
        selected = [queue[i] for i in positions]
        taken = set(positions)
        self.in_flight = [m for i, m in enumerate(queue) if i not in taken]

        delivered: list[str] = []
        for item in selected:
            if self._deliver(item, timestamp):
                delivered.append(item.message.message_id)
        return delivered

    def _deliver(self, item: InFlightMessage, timestamp: int) -> bool:
        receiver = self._receivers.get((item.destination_chain_selector, item.receiver))
        if receiver is None:
            logger.warning("No receiver %s on chain %d", item.receiver, item.destination_chain_selector)
            self.failed.append((item, "NO_RECEIVER"))
            return False

        router = self.router_for(item.destination_chain_selector)
        try:
            receiver.ccip_receive(Txn(sender=router.address, timestamp=timestamp), item.message)
        except ContractError as exc:
            # Failed messages are kept for manual re-execution.
            logger.warning("CCIP message %s… failed: %s", item.message.message_id[:12], exc.code)
            self.failed.append((item, exc.code))
            return False
        return True


class CCIPRouter:
    """Per-chain router: fee quotes and message submission."""

    def __init__(
        self,
        network: CCIPNetwork,
        chain_selector: int,
        base_fee: int = CCIP_BASE_FEE,
        fee_per_byte: int = CCIP_FEE_PER_BYTE,
    ) -> None:
        self.network = network
        self.chain_selector = chain_selector
        self.address = derive_address(f"ccip-router:{chain_selector}")
        self.base_fee = base_fee
        self.fee_per_byte = fee_per_byte
        self._nonce = 0

    def get_fee(self, destination_chain_selector: int, message: EVM2AnyMessage) -> int:
        if not self.network.supports(destination_chain_selector):
            raise UnsupportedDestination(destination_chain_selector)
        return self.base_fee + self.fee_per_byte * len(message.data)

    def ccip_send(
        self,
        txn: Txn,
        destination_chain_selector: int,
        message: EVM2AnyMessage,
    ) -> str:
        fee = self.get_fee(destination_chain_selector, message)
        if txn.value < fee:
            raise InsufficientFee(txn.value, fee)

        self._nonce += 1
        message_id = _derive_id(self.chain_selector, txn.sender, self._nonce, message.data.hex())
        self.network.dispatch(
            InFlightMessage(
                destination_chain_selector=destination_chain_selector,
                receiver=message.receiver,
                message=Any2EVMMessage(
                    message_id=message_id,
                    source_chain_selector=self.chain_selector,
                    sender=txn.sender,
                    data=message.data,
                ),
            ),
            txn.timestamp,
        )
        return message_id


# ─────────────────────────────────────────────────────────────────────────────
# Remote fitness ledger
# ─────────────────────────────────────────────────────────────────────────────
class RemoteFitnessLedger:
    """Read-only fitness contract deployed on a remote chain.

    ``legacy=True`` models older deployments without ``getUserScoreSafe``;
    ``reverting=True`` makes every read revert.
    """

    def __init__(self, address: str, legacy: bool = False, reverting: bool = False) -> None:
        self.address = address
        self.legacy = legacy
        self.reverting = reverting
        self._scores: dict[str, RemoteScore] = {}

    def set_score(self, user: str, pushups: int, squats: int, timestamp: int) -> None:
        user = user.lower()
        self._scores[user] = RemoteScore(
            user=user, pushups=pushups, squats=squats, timestamp=timestamp, exists=True
        )

    def get_user_score(self, user: str) -> RemoteScore:
        if self.reverting:
            raise ExternalCallReverted("getUserScore reverted")
        row = self._scores.get(user.lower())
        if row is None:
            return RemoteScore(user=user.lower(), exists=False)
        return row

    def get_user_score_safe(self, user: str) -> RemoteScore:
        if self.legacy:
            raise ExternalCallReverted("function selector was not recognized")
        return self.get_user_score(user)
