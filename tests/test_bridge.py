"""Tests for the local bridge transport."""

import asyncio

import pytest

from aggzap.addresses import NATIVE_TOKEN, derive_address
from aggzap.bridge import LocalBridge, RelayResult
from aggzap.contracts.token import Token
from aggzap.errors import (
    InvalidAmount,
    MessageAlreadyClaimed,
    UnknownMessage,
    UnknownNetwork,
)
from aggzap.ledger.models import MessageStatus
from aggzap.utils.locks import LockTimeoutError

USDC = 10**6


async def zap_usdc(deployment, user, amount) -> str:
    """Approve and zap ``amount`` USDC from ``user`` on the source chain."""
    usdc = Token(deployment.source, deployment.token_address("USDC"))
    async with deployment.source.transaction(user) as ctx:
        await usdc.approve(ctx, deployment.sender.address, amount)
    async with deployment.source.transaction(user) as ctx:
        return await deployment.sender.zap_liquidity(
            ctx, deployment.receiver.address, usdc.address, amount, deployment.destination.network_id
        )


async def bridge_direct(deployment, user, amount, destination_network=None):
    """Bridge USDC from ``user`` to themselves on the destination without a call."""
    usdc = Token(deployment.source, deployment.token_address("USDC"))
    async with deployment.source.transaction(user) as ctx:
        await usdc.approve(ctx, deployment.bridge.address, amount)
        return await deployment.bridge.bridge_and_call(
            ctx,
            destination_network or deployment.destination.network_id,
            user,
            user,
            amount,
            usdc.address,
        )


class TestOutbound:
    """Tests for locking assets and queueing messages."""

    @pytest.mark.asyncio
    async def test_bridge_locks_asset(self, deployment, funded_user):
        message = await bridge_direct(deployment, funded_user, 10 * USDC)

        assert message.status == MessageStatus.PENDING
        assert message.origin_network == deployment.source.network_id
        assert message.call_data == b""
        async with deployment.source.view() as ctx:
            usdc = deployment.token_address("USDC")
            assert await ctx.ledger.balance_of(usdc, deployment.bridge.address) == 10 * USDC
            assert await ctx.ledger.balance_of(usdc, funded_user) == 9_990 * USDC

        events = await deployment.source.get_events("BridgeEvent")
        assert events[-1].data["message_id"] == message.message_id

    @pytest.mark.asyncio
    async def test_unknown_destination_network(self, deployment, funded_user):
        with pytest.raises(UnknownNetwork):
            await bridge_direct(deployment, funded_user, 10 * USDC, destination_network=99)

        assert await deployment.bridge.pending_messages() == []

    @pytest.mark.asyncio
    async def test_same_network_rejected(self, deployment, funded_user):
        with pytest.raises(UnknownNetwork):
            await bridge_direct(
                deployment, funded_user, 10 * USDC, destination_network=deployment.source.network_id
            )

    @pytest.mark.asyncio
    async def test_zero_amount(self, deployment, funded_user):
        with pytest.raises(InvalidAmount):
            await bridge_direct(deployment, funded_user, 0)

    @pytest.mark.asyncio
    async def test_native_value_must_reach_bridge(self, deployment, funded_user, stranger):
        """Test native bridging only accepts value attached to the bridge itself."""
        source = deployment.source
        await source.airdrop(deployment.bridge.address, 10**18)

        with pytest.raises(InvalidAmount):
            async with source.transaction(funded_user, to=stranger, value=10**18) as ctx:
                await deployment.bridge.bridge_and_call(
                    ctx, deployment.destination.network_id, funded_user, funded_user, 10**18, NATIVE_TOKEN
                )

        assert await source.native_balance(deployment.bridge.address) == 10**18
        assert await deployment.bridge.pending_messages() == []

    @pytest.mark.asyncio
    async def test_message_ids_unique(self, deployment, funded_user):
        """Test identical deposits get distinct message ids."""
        first = await bridge_direct(deployment, funded_user, 10 * USDC)
        second = await bridge_direct(deployment, funded_user, 10 * USDC)

        assert first.message_id != second.message_id

    @pytest.mark.asyncio
    async def test_message_to_dict(self, deployment, funded_user):
        message = await bridge_direct(deployment, funded_user, 10 * USDC)

        data = message.to_dict()

        assert data["amount"] == "10000000"
        assert data["call_data"] == "0x"
        assert data["status"] == "pending"


class TestRelay:
    """Tests for message delivery."""

    @pytest.mark.asyncio
    async def test_plain_transfer(self, deployment, funded_user):
        """Test a message without call data only credits the destination."""
        message = await bridge_direct(deployment, funded_user, 10 * USDC)

        result = await deployment.bridge.relay(message)

        assert result.delivered
        assert result.receipt is None
        async with deployment.destination.view() as ctx:
            usdc = deployment.token_address("USDC")
            assert await ctx.ledger.balance_of(usdc, funded_user) == 10 * USDC
        assert (await deployment.bridge.get_message(message.message_id)).status == MessageStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_zap_delivery(self, deployment, funded_user):
        """Test relaying a zap runs the receiver callback."""
        await zap_usdc(deployment, funded_user, 100 * USDC)
        message = (await deployment.bridge.pending_messages())[0]

        result = await deployment.bridge.relay(message.message_id)

        assert result.status == MessageStatus.DELIVERED
        assert result.receipt.user == funded_user
        assert result.receipt.lp_received == 99_900_000
        claims = await deployment.destination.get_events("ClaimEvent")
        assert claims[0].data["message_id"] == message.message_id

    @pytest.mark.asyncio
    async def test_replay_rejected(self, deployment, funded_user):
        await zap_usdc(deployment, funded_user, 100 * USDC)
        message = (await deployment.bridge.pending_messages())[0]
        await deployment.bridge.relay(message)

        with pytest.raises(MessageAlreadyClaimed):
            await deployment.bridge.relay(message)

        async with deployment.destination.view() as ctx:
            assert await deployment.pool.get_user_lp_balance(ctx, funded_user) == 99_900_000

    @pytest.mark.asyncio
    async def test_concurrent_relays_deliver_once(self, deployment, funded_user):
        """Test two relayers racing on one message credit it once."""
        await zap_usdc(deployment, funded_user, 100 * USDC)
        message = (await deployment.bridge.pending_messages())[0]

        results = await asyncio.gather(
            deployment.bridge.relay(message),
            deployment.bridge.relay(message),
            return_exceptions=True,
        )

        delivered = [r for r in results if isinstance(r, RelayResult)]
        rejected = [r for r in results if isinstance(r, MessageAlreadyClaimed)]
        assert len(delivered) == 1
        assert len(rejected) == 1
        async with deployment.destination.view() as ctx:
            assert await deployment.pool.get_user_lp_balance(ctx, funded_user) == 99_900_000
            assert (await deployment.receiver.get_stats(ctx)).total_deposits == 1

    @pytest.mark.asyncio
    async def test_unknown_message(self, deployment):
        with pytest.raises(UnknownMessage):
            await deployment.bridge.relay("0x" + "00" * 32)

    @pytest.mark.asyncio
    async def test_relay_pending(self, deployment, funded_user):
        await zap_usdc(deployment, funded_user, 10 * USDC)
        await zap_usdc(deployment, funded_user, 20 * USDC)

        results = await deployment.bridge.relay_pending()

        assert [r.status for r in results] == [MessageStatus.DELIVERED] * 2
        assert await deployment.bridge.pending_messages() == []
        delivered = await deployment.bridge.get_messages(MessageStatus.DELIVERED)
        assert len(delivered) == 2

    @pytest.mark.asyncio
    async def test_unsettled_claims_recovered(self, deployment, funded_user, monkeypatch):
        """Test messages claimed on the destination but left pending on the source settle later."""
        await zap_usdc(deployment, funded_user, 10 * USDC)
        await zap_usdc(deployment, funded_user, 20 * USDC)

        def source_busy(*args, **kwargs):
            raise LockTimeoutError("source chain busy")

        monkeypatch.setattr(deployment.source, "transaction", source_busy)
        stalled = await deployment.bridge.relay_pending()

        assert [r.status for r in stalled] == [MessageStatus.PENDING] * 2
        assert all("LockTimeoutError" in r.error for r in stalled)
        assert len(await deployment.bridge.pending_messages()) == 2
        async with deployment.destination.view() as ctx:
            assert await deployment.pool.get_user_lp_balance(ctx, funded_user) == 29_970_000

        monkeypatch.undo()
        recovered = await deployment.bridge.relay_pending()

        assert [r.status for r in recovered] == [MessageStatus.DELIVERED] * 2
        assert [r.message_id for r in recovered] == [r.message_id for r in stalled]
        assert await deployment.bridge.pending_messages() == []
        async with deployment.destination.view() as ctx:
            assert await deployment.pool.get_user_lp_balance(ctx, funded_user) == 29_970_000
            assert (await deployment.receiver.get_stats(ctx)).total_deposits == 2

    @pytest.mark.asyncio
    async def test_relay_pending_continues_past_failure(self, deployment, funded_user, monkeypatch):
        """Test one message failing to relay does not block the rest of the queue."""
        await zap_usdc(deployment, funded_user, 10 * USDC)
        await zap_usdc(deployment, funded_user, 20 * USDC)
        first, second = await deployment.bridge.pending_messages()
        relay = deployment.bridge.relay

        async def relay_or_fail(message):
            if message.message_id == first.message_id:
                raise LockTimeoutError("destination chain busy")
            return await relay(message)

        monkeypatch.setattr(deployment.bridge, "relay", relay_or_fail)
        results = await deployment.bridge.relay_pending()

        assert [r.status for r in results] == [MessageStatus.PENDING, MessageStatus.DELIVERED]
        assert results[0].message_id == first.message_id
        assert results[1].message_id == second.message_id
        assert [m.message_id for m in await deployment.bridge.pending_messages()] == [first.message_id]

    @pytest.mark.asyncio
    async def test_token_map(self, deployment, funded_user):
        """Test a mapped token arrives under its wrapped address."""
        usdc = deployment.token_address("USDC")
        weth = deployment.token_address("WETH")
        deployment.bridge.map_token(deployment.source.network_id, usdc, deployment.destination.network_id, weth)
        message = await bridge_direct(deployment, funded_user, 10 * USDC)

        await deployment.bridge.relay(message)

        async with deployment.destination.view() as ctx:
            assert await ctx.ledger.balance_of(weth, funded_user) == 10 * USDC
            assert await ctx.ledger.balance_of(usdc, funded_user) == 0


class TestRefund:
    """Tests for failed destination calls."""

    @pytest.mark.asyncio
    async def test_failed_callback_refunds_fallback(self, deployment, funded_user):
        """Test a reverted deposit leaves nothing on the destination and refunds the user."""
        usdc = deployment.token_address("USDC")
        async with deployment.destination.transaction(deployment.deployer) as ctx:
            await deployment.pool.set_supported_token(ctx, usdc, False)
        await zap_usdc(deployment, funded_user, 100 * USDC)
        message = (await deployment.bridge.pending_messages())[0]

        result = await deployment.bridge.relay(message)

        assert result.status == MessageStatus.REFUNDED
        assert not result.delivered
        assert "UnsupportedToken" in result.error

        # Fee stays with the recipient, the net amount goes back to the user
        async with deployment.source.view() as ctx:
            assert await ctx.ledger.balance_of(usdc, funded_user) == 9_900 * USDC + 99_900_000
            assert await ctx.ledger.balance_of(usdc, deployment.bridge.address) == 0
            assert await ctx.ledger.balance_of(usdc, deployment.deployer) == 100_000

        refunds = await deployment.source.get_events("MessageRefunded")
        assert refunds[0].data["message_id"] == message.message_id
        assert refunds[0].data["amount"] == 99_900_000

        assert await deployment.destination.get_events("ClaimEvent") == []
        assert await deployment.destination.get_events("DepositExecuted") == []
        async with deployment.destination.view() as ctx:
            assert await ctx.ledger.balance_of(usdc, deployment.receiver.address) == 0
            assert not await ctx.registry.is_claimed(message.message_id)

        settled = await deployment.bridge.get_message(message.message_id)
        assert settled.status == MessageStatus.REFUNDED
        assert "UnsupportedToken" in settled.error_message

    @pytest.mark.asyncio
    async def test_refunded_message_cannot_be_relayed(self, deployment, funded_user):
        usdc = deployment.token_address("USDC")
        async with deployment.destination.transaction(deployment.deployer) as ctx:
            await deployment.pool.set_supported_token(ctx, usdc, False)
        await zap_usdc(deployment, funded_user, 100 * USDC)
        message = (await deployment.bridge.pending_messages())[0]
        await deployment.bridge.relay(message)

        with pytest.raises(MessageAlreadyClaimed):
            await deployment.bridge.relay(message)

    @pytest.mark.asyncio
    async def test_call_to_non_receiver_refunds(self, deployment, funded_user):
        """Test call data aimed at an address without a callback is refunded."""
        usdc = Token(deployment.source, deployment.token_address("USDC"))
        target = derive_address("bridge", "plain-account")
        async with deployment.source.transaction(funded_user) as ctx:
            await usdc.approve(ctx, deployment.bridge.address, 5 * USDC)
            message = await deployment.bridge.bridge_and_call(
                ctx,
                deployment.destination.network_id,
                target,
                funded_user,
                5 * USDC,
                usdc.address,
                call_data=b"\x01",
            )

        result = await deployment.bridge.relay(message)

        assert result.status == MessageStatus.REFUNDED
        assert "MissingContract" in result.error
        async with deployment.destination.view() as ctx:
            assert await ctx.ledger.balance_of(usdc.address, target) == 0


class TestTopology:
    """Tests for attaching chains."""

    def test_get_unknown_chain(self):
        bridge = LocalBridge(derive_address("bridge", "standalone"))

        with pytest.raises(UnknownNetwork):
            bridge.get_chain(5)

    @pytest.mark.asyncio
    async def test_attach_registers_bridge(self, chain):
        bridge = LocalBridge(derive_address("bridge", "standalone"))
        bridge.attach(chain)

        assert bridge.get_chain(chain.network_id) is chain
        assert chain.get_contract(bridge.address) is bridge
        assert bridge.chains == [chain]
