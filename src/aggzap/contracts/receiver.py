"""Destination-side zap contract.

The receiver is the only trusted target of bridge callbacks. One inbound
call walks through: authenticate the caller and origin, decode the intent,
route it to a pool, deposit on the user's behalf, record. Any failure raises
and the whole call rolls back with the chain transaction.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from aggzap.addresses import NATIVE_TOKEN, normalize_address
from aggzap.chain import CallContext
from aggzap.codec import decode_intent
from aggzap.contracts.base import Contract
from aggzap.contracts.pool import YieldPool
from aggzap.contracts.token import Token
from aggzap.errors import NoPoolConfigured, UnauthorizedCaller
from aggzap.ledger.models import ContractKind, ReceiverState

logger = logging.getLogger(__name__)


@dataclass
class DepositReceipt:
    """What one delivered zap did on the destination chain."""

    user: str
    pool: str
    token: str
    amount: int
    lp_received: int


@dataclass
class ReceiverStats:
    total_deposits: int
    total_volume: int


class ZapReceiver(Contract):
    """Decodes bridged intents and deposits them into pools."""

    kind = ContractKind.ZAP_RECEIVER

    @classmethod
    async def deploy(
        cls, ctx: CallContext, bridge: str, address: Optional[str] = None
    ) -> "ZapReceiver":
        bridge = normalize_address(bridge, allow_zero=False)
        receiver = await cls._create(ctx, address)
        await ctx.registry.add_state(
            ReceiverState(
                address=receiver.address,
                bridge=bridge,
                total_deposits=0,
                total_volume=0,
            )
        )
        return receiver

    async def _state(self, ctx: CallContext) -> ReceiverState:
        return await ctx.registry.get_state(ReceiverState, self.address)

    # Views
    async def bridge(self, ctx: CallContext) -> str:
        return (await self._state(ctx)).bridge

    async def is_sender_authorized(self, ctx: CallContext, network_id: int, sender: str) -> bool:
        return await ctx.registry.is_sender_authorized(
            self.address, network_id, normalize_address(sender)
        )

    async def get_pool(self, ctx: CallContext, token: str) -> Optional[str]:
        return await ctx.registry.get_pool_route(self.address, normalize_address(token))

    async def get_stats(self, ctx: CallContext) -> ReceiverStats:
        state = await self._state(ctx)
        return ReceiverStats(total_deposits=state.total_deposits, total_volume=state.total_volume)

    # Bridge callback
    async def on_message_received(
        self,
        ctx: CallContext,
        origin_address: str,
        origin_network_id: int,
        data: Union[bytes, str],
    ) -> DepositReceipt:
        state = await self._state(ctx)

        # Authenticate
        if ctx.sender != state.bridge:
            raise UnauthorizedCaller(f"{ctx.sender} is not the bridge")
        origin_address = normalize_address(origin_address)
        if not await ctx.registry.is_sender_authorized(
            self.address, origin_network_id, origin_address
        ):
            raise UnauthorizedCaller(
                f"Sender {origin_address} on network {origin_network_id} is not authorized"
            )

        # Decode
        intent = decode_intent(data)

        # Route
        pool_address = await ctx.registry.get_pool_route(self.address, intent.token)
        if pool_address is None:
            raise NoPoolConfigured(intent.token)
        pool = ctx.chain.get_contract(pool_address)
        if not isinstance(pool, YieldPool):
            raise NoPoolConfigured(intent.token)

        state.total_deposits += 1
        state.total_volume += intent.amount
        await ctx.session.flush()

        # Deposit
        self_ctx = await ctx.call(self.address)
        if intent.token == NATIVE_TOKEN:
            pool_ctx = await ctx.call(self.address, pool.address, intent.amount)
            lp_received = await pool.deposit_for(pool_ctx, intent.recipient, intent.token, intent.amount)
        else:
            erc20 = Token(ctx.chain, intent.token)
            await erc20.approve(self_ctx, pool.address, intent.amount)
            lp_received = await pool.deposit_for(
                self_ctx, intent.recipient, intent.token, intent.amount
            )
            if await erc20.allowance(ctx, self.address, pool.address):
                await erc20.approve(self_ctx, pool.address, 0)

        await ctx.emit(
            self.address,
            "DepositExecuted",
            {
                "user": intent.recipient,
                "pool": pool.address,
                "token": intent.token,
                "amount": intent.amount,
                "lp_received": lp_received,
            },
        )
        logger.info(
            f"Zap delivered: {intent.amount} of {intent.token} into pool {pool.address} "
            f"for {intent.recipient} (origin {origin_address} on network {origin_network_id})"
        )
        return DepositReceipt(
            user=intent.recipient,
            pool=pool.address,
            token=intent.token,
            amount=intent.amount,
            lp_received=lp_received,
        )

    # Admin
    async def authorize_sender(
        self, ctx: CallContext, network_id: int, sender: str, authorized: bool = True
    ) -> None:
        await self.only_owner(ctx)
        sender = normalize_address(sender, allow_zero=False)
        await ctx.registry.set_sender_authorized(self.address, network_id, sender, authorized)
        await ctx.emit(
            self.address,
            "SenderAuthorized",
            {"network_id": network_id, "sender": sender, "authorized": authorized},
        )

    async def set_pool(self, ctx: CallContext, token: str, pool: str) -> None:
        await self.only_owner(ctx)
        token = normalize_address(token)
        pool = normalize_address(pool, allow_zero=False)
        await ctx.registry.set_pool_route(self.address, token, pool)
        await ctx.emit(self.address, "PoolConfigured", {"token": token, "pool": pool})
