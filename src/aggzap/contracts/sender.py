"""Source-side zap contract.

Validates a deposit request, takes the protocol fee out of the principal and
hands the rest to the bridge together with the encoded intent.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from aggzap.addresses import NATIVE_TOKEN, UINT32_MAX, ZERO_ADDRESS, normalize_address
from aggzap.bridge.base import BridgeTransport
from aggzap.chain import CallContext
from aggzap.codec import Intent, compute_zap_id, encode_intent
from aggzap.config import BPS_DENOMINATOR, MAX_FEE_BPS
from aggzap.contracts.base import Contract
from aggzap.contracts.token import Token
from aggzap.errors import (
    FeeTooHigh,
    InvalidAmount,
    InvalidDestinationReceiver,
    MissingContract,
    UnknownNetwork,
    UnsupportedToken,
)
from aggzap.ledger.models import ContractKind, SenderState

logger = logging.getLogger(__name__)

DEFAULT_FEE_BPS = 10  # 0.1%


def calculate_fee(amount: int, fee_bps: int) -> int:
    """Protocol fee for ``amount``, rounded down."""
    return amount * fee_bps // BPS_DENOMINATOR


@dataclass
class SenderStats:
    total_zaps: int
    total_volume: int
    fee_bps: int


class ZapSender(Contract):
    """Entry point for users starting a cross-chain zap."""

    kind = ContractKind.ZAP_SENDER

    @classmethod
    async def deploy(
        cls,
        ctx: CallContext,
        bridge: str,
        fee_recipient: str,
        fee_bps: int = DEFAULT_FEE_BPS,
        address: Optional[str] = None,
    ) -> "ZapSender":
        if fee_bps < 0:
            raise InvalidAmount(fee_bps, "fee cannot be negative")
        if fee_bps > MAX_FEE_BPS:
            raise FeeTooHigh(fee_bps, MAX_FEE_BPS)
        bridge = normalize_address(bridge, allow_zero=False)
        fee_recipient = normalize_address(fee_recipient, allow_zero=False)

        sender = await cls._create(ctx, address)
        await ctx.registry.add_state(
            SenderState(
                address=sender.address,
                bridge=bridge,
                fee_recipient=fee_recipient,
                fee_bps=fee_bps,
                nonce=0,
                total_zaps=0,
                total_volume=0,
            )
        )
        return sender

    async def _state(self, ctx: CallContext) -> SenderState:
        return await ctx.registry.get_state(SenderState, self.address)

    # Views
    async def bridge(self, ctx: CallContext) -> str:
        return (await self._state(ctx)).bridge

    async def fee_bps(self, ctx: CallContext) -> int:
        return (await self._state(ctx)).fee_bps

    async def fee_recipient(self, ctx: CallContext) -> str:
        return (await self._state(ctx)).fee_recipient

    async def calculate_fee(self, ctx: CallContext, amount: int) -> int:
        return calculate_fee(amount, await self.fee_bps(ctx))

    async def is_token_supported(self, ctx: CallContext, token: str) -> bool:
        return await ctx.registry.is_token_supported(self.address, normalize_address(token))

    async def destination_receiver(self, ctx: CallContext, network_id: int) -> Optional[str]:
        return await ctx.registry.get_destination_receiver(self.address, network_id)

    async def get_stats(self, ctx: CallContext) -> SenderStats:
        state = await self._state(ctx)
        return SenderStats(
            total_zaps=state.total_zaps,
            total_volume=state.total_volume,
            fee_bps=state.fee_bps,
        )

    # Zaps
    async def zap_liquidity(
        self,
        ctx: CallContext,
        destination_contract: str,
        token: str,
        amount: int,
        destination_network_id: int,
    ) -> str:
        """Zap an ERC20 amount into the pool behind ``destination_contract``.

        The caller must have approved this contract for ``amount``. Returns the
        zap id.
        """
        token = normalize_address(token)
        if token == NATIVE_TOKEN or not await self.is_token_supported(ctx, token):
            raise UnsupportedToken(token)
        return await self._zap(ctx, destination_contract, token, amount, destination_network_id)

    async def zap_liquidity_eth(
        self,
        ctx: CallContext,
        destination_contract: str,
        destination_network_id: int,
    ) -> str:
        """Zap the native asset attached to the call."""
        if not await self.is_token_supported(ctx, NATIVE_TOKEN):
            raise UnsupportedToken(NATIVE_TOKEN)
        if ctx.value_target != self.address:
            raise InvalidAmount(ctx.value, "native value must be attached to the sender contract")
        return await self._zap(
            ctx, destination_contract, NATIVE_TOKEN, ctx.value, destination_network_id
        )

    async def _resolve_receiver(
        self, ctx: CallContext, destination_contract: str, network_id: int
    ) -> str:
        """Registered receiver for the network, or an explicit non-zero one when none is registered."""
        destination_contract = normalize_address(destination_contract)
        registered = await self.destination_receiver(ctx, network_id)
        if registered is not None:
            if destination_contract not in (registered, ZERO_ADDRESS):
                raise InvalidDestinationReceiver(
                    f"Receiver {destination_contract} does not match {registered} "
                    f"registered for network {network_id}"
                )
            return registered
        if destination_contract == ZERO_ADDRESS:
            raise InvalidDestinationReceiver(f"No receiver registered for network {network_id}")
        return destination_contract

    async def _zap(
        self,
        ctx: CallContext,
        destination_contract: str,
        token: str,
        amount: int,
        destination_network_id: int,
    ) -> str:
        if amount <= 0:
            raise InvalidAmount(amount)
        # Network ids are uint32 in the zap id and on the bridge
        if not 0 <= destination_network_id <= UINT32_MAX:
            raise UnknownNetwork(destination_network_id)
        receiver = await self._resolve_receiver(ctx, destination_contract, destination_network_id)

        state = await self._state(ctx)
        bridge = ctx.chain.get_contract(state.bridge)
        if not isinstance(bridge, BridgeTransport):
            raise MissingContract(state.bridge, "bridge")

        user = ctx.sender
        fee = calculate_fee(amount, state.fee_bps)
        net_amount = amount - fee

        # Effects
        zap_id = compute_zap_id(
            ctx.network_id,
            self.address,
            state.nonce,
            user,
            token,
            amount,
            destination_network_id,
            receiver,
        )
        state.nonce += 1
        state.total_zaps += 1
        state.total_volume += amount
        await ctx.session.flush()

        # Interactions
        self_ctx = await ctx.call(self.address)
        if token == NATIVE_TOKEN:
            # value already moved to this contract with the call
            if fee:
                await ctx.ledger.transfer(NATIVE_TOKEN, self.address, state.fee_recipient, fee)
        else:
            erc20 = Token(ctx.chain, token)
            await erc20.transfer_from(self_ctx, user, self.address, amount)
            if fee:
                await erc20.transfer(self_ctx, state.fee_recipient, fee)
            await erc20.approve(self_ctx, bridge.address, net_amount)

        intent = Intent(recipient=user, token=token, amount=net_amount)
        bridge_ctx = await ctx.call(
            self.address,
            bridge.address,
            net_amount if token == NATIVE_TOKEN else 0,
        )
        message = await bridge.bridge_and_call(
            bridge_ctx,
            destination_network_id=destination_network_id,
            destination_address=receiver,
            fallback_address=user,
            amount=net_amount,
            token=token,
            force_update_global_exit_root=True,
            permit_data=b"",
            call_data=encode_intent(intent),
        )

        await ctx.emit(
            self.address,
            "ZapInitiated",
            {
                "zap_id": zap_id,
                "user": user,
                "token": token,
                "amount": amount,
                "fee": fee,
                "destination_network": destination_network_id,
                "destination_receiver": receiver,
                "message_id": message.message_id,
            },
        )
        logger.info(
            f"Zap {zap_id[:10]}: {amount} of {token} from {user} "
            f"(fee {fee}) to network {destination_network_id}"
        )
        return zap_id

    # Admin
    async def set_supported_token(self, ctx: CallContext, token: str, supported: bool) -> None:
        await self.only_owner(ctx)
        token = normalize_address(token)
        await ctx.registry.set_token_supported(self.address, token, supported)
        await ctx.emit(self.address, "TokenSupportUpdated", {"token": token, "supported": supported})

    async def set_fee(self, ctx: CallContext, fee_bps: int) -> None:
        await self.only_owner(ctx)
        if fee_bps < 0:
            raise InvalidAmount(fee_bps, "fee cannot be negative")
        if fee_bps > MAX_FEE_BPS:
            raise FeeTooHigh(fee_bps, MAX_FEE_BPS)
        state = await self._state(ctx)
        old = state.fee_bps
        state.fee_bps = fee_bps
        await ctx.session.flush()
        await ctx.emit(self.address, "FeeUpdated", {"old_fee_bps": old, "new_fee_bps": fee_bps})

    async def set_destination_receiver(self, ctx: CallContext, network_id: int, receiver: str) -> None:
        await self.only_owner(ctx)
        receiver = normalize_address(receiver, allow_zero=False)
        await ctx.registry.set_destination_receiver(self.address, network_id, receiver)
        await ctx.emit(
            self.address,
            "DestinationReceiverUpdated",
            {"network_id": network_id, "receiver": receiver},
        )

    async def set_fee_recipient(self, ctx: CallContext, fee_recipient: str) -> None:
        await self.only_owner(ctx)
        fee_recipient = normalize_address(fee_recipient, allow_zero=False)
        state = await self._state(ctx)
        state.fee_recipient = fee_recipient
        await ctx.session.flush()
        await ctx.emit(self.address, "FeeRecipientUpdated", {"fee_recipient": fee_recipient})
