"""In-process bridge connecting several local chains.

Models the unified bridge: one contract address on every attached network.
Outbound assets are locked at that address on the origin chain; delivery
credits the destination and invokes the destination contract's
``on_message_received`` with the bridge as caller. A failing destination call
leaves no trace on the destination chain and releases the locked asset to the
fallback address on the origin chain.
"""

import asyncio
import logging
from typing import Optional, Union

from eth_abi import encode
from eth_utils import keccak

from aggzap.addresses import NATIVE_TOKEN, normalize_address
from aggzap.bridge.base import BridgeMessage, BridgeTransport, RelayResult
from aggzap.chain import CallContext, Chain
from aggzap.contracts.token import Token
from aggzap.errors import (
    InvalidAmount,
    MessageAlreadyClaimed,
    MissingContract,
    UnknownMessage,
    UnknownNetwork,
    ZapError,
)
from aggzap.ledger.models import MessageStatus
from aggzap.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)

MESSAGE_ID_TYPES = (
    "uint32",   # origin network
    "address",  # origin address
    "uint32",   # destination network
    "address",  # destination address
    "address",  # fallback address
    "address",  # token
    "uint256",  # amount
    "bytes",    # call data
    "uint256",  # deposit count
)


class LocalBridge(BridgeTransport):
    """Bridge transport between chains living in this process."""

    def __init__(self, address: str, token_map: Optional[dict] = None):
        """Initialize the bridge.

        Args:
            address: Bridge address used on every attached chain
            token_map: Optional ``{(origin_network, token, destination_network): wrapped}``
                overrides; unmapped tokens arrive at the same address
        """
        self._address = normalize_address(address, allow_zero=False)
        self._chains: dict[int, Chain] = {}
        self._token_map: dict[tuple[int, str, int], str] = {}
        self._relay_lock = asyncio.Lock()
        for (origin, token, destination), wrapped in (token_map or {}).items():
            self.map_token(origin, token, destination, wrapped)

    def __repr__(self) -> str:
        return f"LocalBridge(address={self._address}, networks={sorted(self._chains)})"

    @property
    def address(self) -> str:
        return self._address

    # Topology
    def attach(self, chain: Chain) -> None:
        """Make the bridge reachable on a chain."""
        self._chains[chain.network_id] = chain
        chain.register(self)
        logger.info(f"Bridge {self._address} attached to {chain.name} (network {chain.network_id})")

    def get_chain(self, network_id: int) -> Chain:
        chain = self._chains.get(network_id)
        if chain is None:
            raise UnknownNetwork(network_id)
        return chain

    @property
    def chains(self) -> list[Chain]:
        return list(self._chains.values())

    def map_token(self, origin_network: int, token: str, destination_network: int, wrapped: str) -> None:
        key = (origin_network, normalize_address(token), destination_network)
        self._token_map[key] = normalize_address(wrapped)

    def wrapped_token(self, origin_network: int, token: str, destination_network: int) -> str:
        """Address under which ``token`` arrives on the destination network."""
        key = (origin_network, normalize_address(token), destination_network)
        return self._token_map.get(key, key[1])

    # Outbound
    async def bridge_and_call(
        self,
        ctx: CallContext,
        destination_network_id: int,
        destination_address: str,
        fallback_address: str,
        amount: int,
        token: str,
        force_update_global_exit_root: bool = True,
        permit_data: bytes = b"",
        call_data: bytes = b"",
    ) -> BridgeMessage:
        if destination_network_id == ctx.network_id or destination_network_id not in self._chains:
            raise UnknownNetwork(destination_network_id)
        if amount <= 0:
            raise InvalidAmount(amount)

        origin_address = ctx.sender
        destination_address = normalize_address(destination_address, allow_zero=False)
        fallback_address = normalize_address(fallback_address, allow_zero=False)
        token = normalize_address(token)

        # Lock the asset at the bridge address
        if token == NATIVE_TOKEN:
            if ctx.value != amount or ctx.value_target != self._address:
                raise InvalidAmount(
                    ctx.value, f"value attached to the bridge must equal bridged amount {amount}"
                )
        else:
            bridge_ctx = await ctx.call(self._address)
            await Token(ctx.chain, token).transfer_from(
                bridge_ctx, origin_address, self._address, amount
            )

        deposit_count = await ctx.registry.count_bridge_deposits()
        message_id = "0x" + keccak(
            encode(
                list(MESSAGE_ID_TYPES),
                [
                    ctx.network_id,
                    origin_address,
                    destination_network_id,
                    destination_address,
                    fallback_address,
                    token,
                    amount,
                    bytes(call_data),
                    deposit_count,
                ],
            )
        ).hex()

        deposit = await ctx.registry.create_bridge_deposit(
            message_id=message_id,
            origin_network=ctx.network_id,
            origin_address=origin_address,
            destination_network=destination_network_id,
            destination_address=destination_address,
            fallback_address=fallback_address,
            token=token,
            amount=amount,
            call_data=bytes(call_data).hex(),
            force_update_global_exit_root=force_update_global_exit_root,
        )
        await ctx.emit(
            self._address,
            "BridgeEvent",
            {
                "message_id": message_id,
                "origin_network": ctx.network_id,
                "origin_address": origin_address,
                "destination_network": destination_network_id,
                "destination_address": destination_address,
                "token": token,
                "amount": amount,
                "deposit_count": deposit_count,
            },
        )
        logger.info(
            f"Bridge message {message_id[:10]} queued: {amount} of {token} "
            f"from network {ctx.network_id} to {destination_address} on network {destination_network_id}"
        )
        return BridgeMessage.from_record(deposit)

    # Delivery
    async def relay(self, message: Union[BridgeMessage, str]) -> RelayResult:
        """Deliver one message exactly once.

        Raises:
            UnknownMessage: If no origin chain knows the message
            MessageAlreadyClaimed: If it was already delivered or refunded
        """
        message_id = message.message_id if isinstance(message, BridgeMessage) else message

        async with self._relay_lock:
            source, message = await self._load_message(message_id)
            if message.status != MessageStatus.PENDING:
                raise MessageAlreadyClaimed(message_id)
            destination = self.get_chain(message.destination_network)

            async with destination.view() as ctx:
                already_claimed = await ctx.registry.is_claimed(message_id)
            if already_claimed:
                # Claimed on the destination but never settled on the source
                logger.warning(
                    f"Bridge message {message_id[:10]} already claimed on {destination.name}, "
                    f"settling source"
                )
                async with source.transaction(self._address) as ctx:
                    await ctx.registry.settle_bridge_deposit(message_id, MessageStatus.DELIVERED)
                return RelayResult(message_id=message_id, status=MessageStatus.DELIVERED)

            try:
                async with destination.transaction(self._address) as ctx:
                    receipt = await self._claim(ctx, message)
            except MessageAlreadyClaimed:
                raise
            except ZapError as e:
                await self._refund(source, message, f"{type(e).__name__}: {e}")
                return RelayResult(
                    message_id=message_id,
                    status=MessageStatus.REFUNDED,
                    error=f"{type(e).__name__}: {e}",
                )

            async with source.transaction(self._address) as ctx:
                await ctx.registry.settle_bridge_deposit(message_id, MessageStatus.DELIVERED)

        logger.info(f"Bridge message {message_id[:10]} delivered on {destination.name}")
        return RelayResult(message_id=message_id, status=MessageStatus.DELIVERED, receipt=receipt)

    async def relay_pending(self) -> list[RelayResult]:
        """Relay every pending message in queue order.

        A message that fails to relay stays pending and is reported with its
        error; the rest of the queue is still processed.
        """
        results = []
        for message in await self.pending_messages():
            try:
                results.append(await self.relay(message))
            except (ZapError, LockTimeoutError) as e:
                error = f"{type(e).__name__}: {e}"
                logger.error(f"Bridge message {message.message_id[:10]} relay failed: {error}")
                results.append(
                    RelayResult(
                        message_id=message.message_id,
                        status=MessageStatus.PENDING,
                        error=error,
                    )
                )
        return results

    async def _load_message(self, message_id: str) -> tuple[Chain, BridgeMessage]:
        for chain in self._chains.values():
            async with chain.view() as ctx:
                deposit = await ctx.registry.get_bridge_deposit(message_id)
                if deposit is not None:
                    return chain, BridgeMessage.from_record(deposit)
        raise UnknownMessage(message_id)

    async def _claim(self, ctx: CallContext, message: BridgeMessage):
        """Claim on the destination chain: replay guard, asset, callback."""
        if await ctx.registry.is_claimed(message.message_id):
            raise MessageAlreadyClaimed(message.message_id)
        await ctx.registry.mark_claimed(message.message_id, message.origin_network)

        wrapped = self.wrapped_token(message.origin_network, message.token, message.destination_network)
        if wrapped == NATIVE_TOKEN:
            # Native asset is released from the bridge's own balance as call value
            await ctx.ledger.mint(NATIVE_TOKEN, self._address, message.amount)
            call_ctx = await ctx.call(self._address, message.destination_address, message.amount)
        else:
            await ctx.ledger.mint(wrapped, message.destination_address, message.amount)
            await ctx.emit(
                wrapped,
                "Transfer",
                {"from": None, "to": message.destination_address, "value": message.amount},
            )
            call_ctx = await ctx.call(self._address)

        await ctx.emit(
            self._address,
            "ClaimEvent",
            {
                "message_id": message.message_id,
                "origin_network": message.origin_network,
                "origin_address": message.origin_address,
                "destination_address": message.destination_address,
                "token": wrapped,
                "amount": message.amount,
            },
        )

        if not message.call_data:
            return None
        target = ctx.chain.get_contract(message.destination_address)
        if target is None or not hasattr(target, "on_message_received"):
            raise MissingContract(message.destination_address, "message receiver")
        return await target.on_message_received(
            call_ctx, message.origin_address, message.origin_network, message.call_data
        )

    async def _refund(self, source: Chain, message: BridgeMessage, reason: str) -> None:
        """Release the locked asset to the fallback address on the origin chain."""
        async with source.transaction(self._address) as ctx:
            if message.token == NATIVE_TOKEN:
                await ctx.ledger.transfer(
                    NATIVE_TOKEN, self._address, message.fallback_address, message.amount
                )
            else:
                await Token(source, message.token).transfer(
                    ctx, message.fallback_address, message.amount
                )
            await ctx.registry.settle_bridge_deposit(
                message.message_id, MessageStatus.REFUNDED, error_message=reason
            )
            await ctx.emit(
                self._address,
                "MessageRefunded",
                {
                    "message_id": message.message_id,
                    "fallback_address": message.fallback_address,
                    "token": message.token,
                    "amount": message.amount,
                    "reason": reason,
                },
            )
        logger.warning(
            f"Bridge message {message.message_id[:10]} refunded to {message.fallback_address}: {reason}"
        )

    # Queries
    async def get_messages(self, status: Optional[MessageStatus] = None) -> list[BridgeMessage]:
        """Messages originating on any attached chain, optionally filtered by status."""
        messages = []
        for chain in self._chains.values():
            async with chain.view() as ctx:
                deposits = await ctx.registry.get_bridge_deposits(status)
                messages.extend(BridgeMessage.from_record(d) for d in deposits)
        return messages

    async def get_message(self, message_id: str) -> BridgeMessage:
        _, message = await self._load_message(message_id)
        return message

    async def pending_messages(self) -> list[BridgeMessage]:
        return await self.get_messages(MessageStatus.PENDING)
