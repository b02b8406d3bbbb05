"""Tests for chain transactions and the token contract."""

import asyncio

import pytest

from aggzap.addresses import NATIVE_TOKEN, derive_address
from aggzap.chain import Chain
from aggzap.contracts.token import Token, from_base_units, to_base_units
from aggzap.errors import InsufficientFunds, InvalidAddress, NotOwner

DEPLOYER = derive_address("chain", "deployer")
ALICE = derive_address("chain", "alice")
BOB = derive_address("chain", "bob")


async def deploy_token(chain: Chain, decimals: int = 6) -> Token:
    async with chain.transaction(DEPLOYER) as ctx:
        token = await Token.deploy(ctx, "Mock USDC", "USDC", decimals)
    return token


class TestTransactions:
    """Tests for atomic execution."""

    @pytest.mark.asyncio
    async def test_commit(self, chain: Chain):
        """Test a successful call is visible afterwards."""
        token = await deploy_token(chain)
        async with chain.transaction(DEPLOYER) as ctx:
            await token.mint(ctx, ALICE, 1_000)

        async with chain.view() as ctx:
            assert await token.balance_of(ctx, ALICE) == 1_000
            assert await token.total_supply(ctx) == 1_000

    @pytest.mark.asyncio
    async def test_rollback_discards_state_and_events(self, chain: Chain):
        """Test a failing call leaves no balances and no events behind."""
        token = await deploy_token(chain)
        events_before = len(await chain.get_events())

        with pytest.raises(InsufficientFunds):
            async with chain.transaction(DEPLOYER) as ctx:
                await token.mint(ctx, ALICE, 1_000)
                await token.transfer(await ctx.call(ALICE), BOB, 5_000)

        async with chain.view() as ctx:
            assert await token.balance_of(ctx, ALICE) == 0
            assert await token.total_supply(ctx) == 0
        assert len(await chain.get_events()) == events_before

    @pytest.mark.asyncio
    async def test_view_does_not_commit(self, chain: Chain):
        token = await deploy_token(chain)
        async with chain.view() as ctx:
            await ctx.ledger.mint(token.address, ALICE, 10)

        async with chain.view() as ctx:
            assert await token.balance_of(ctx, ALICE) == 0

    @pytest.mark.asyncio
    async def test_value_transfer(self, chain: Chain):
        """Test value attached to a call moves to the target first."""
        await chain.airdrop(ALICE, 10**18)

        async with chain.transaction(ALICE, to=BOB, value=4 * 10**17) as ctx:
            assert ctx.value == 4 * 10**17

        assert await chain.native_balance(ALICE) == 6 * 10**17
        assert await chain.native_balance(BOB) == 4 * 10**17

    @pytest.mark.asyncio
    async def test_value_without_target(self, chain: Chain):
        await chain.airdrop(ALICE, 10**18)

        with pytest.raises(InvalidAddress):
            async with chain.transaction(ALICE, value=1):
                pass

        assert await chain.native_balance(ALICE) == 10**18

    @pytest.mark.asyncio
    async def test_transactions_are_serialized(self, chain: Chain):
        """Test two concurrent calls never interleave."""
        order = []

        async def call(name):
            async with chain.transaction(ALICE):
                order.append(f"{name}_start")
                await asyncio.sleep(0.05)
                order.append(f"{name}_end")

        await asyncio.gather(call("A"), call("B"))

        assert order in [
            ["A_start", "A_end", "B_start", "B_end"],
            ["B_start", "B_end", "A_start", "A_end"],
        ]

    @pytest.mark.asyncio
    async def test_deployed_contracts_registered_on_commit(self, chain: Chain):
        token = await deploy_token(chain)

        assert chain.get_contract(token.address) is token

    @pytest.mark.asyncio
    async def test_reverted_deploy_not_registered(self, chain: Chain):
        address = derive_address("chain", "doomed")
        with pytest.raises(RuntimeError):
            async with chain.transaction(DEPLOYER) as ctx:
                await Token.deploy(ctx, "Doomed", "DOOM", address=address)
                raise RuntimeError("abort")

        assert chain.get_contract(address) is None


class TestToken:
    """Tests for the ERC20-like token contract."""

    @pytest.mark.asyncio
    async def test_pinned_address(self, chain: Chain):
        address = derive_address("chain", "pinned")
        async with chain.transaction(DEPLOYER) as ctx:
            token = await Token.deploy(ctx, "Mock WETH", "WETH", 18, address=address)

        assert token.address == address
        async with chain.view() as ctx:
            assert await token.symbol(ctx) == "WETH"
            assert await token.decimals(ctx) == 18

    @pytest.mark.asyncio
    async def test_only_owner_or_minter_mints(self, chain: Chain):
        token = await deploy_token(chain)

        with pytest.raises(NotOwner):
            async with chain.transaction(ALICE) as ctx:
                await token.mint(ctx, ALICE, 1)

        async with chain.transaction(DEPLOYER) as ctx:
            await token.set_minter(ctx, ALICE)
        async with chain.transaction(ALICE) as ctx:
            await token.mint(ctx, ALICE, 1)

        async with chain.view() as ctx:
            assert await token.balance_of(ctx, ALICE) == 1
            assert await token.is_minter(ctx, ALICE)

    @pytest.mark.asyncio
    async def test_transfer_events(self, chain: Chain):
        token = await deploy_token(chain)
        async with chain.transaction(DEPLOYER) as ctx:
            await token.mint(ctx, ALICE, 100)
        async with chain.transaction(ALICE) as ctx:
            await token.transfer(ctx, BOB, 40)

        transfers = await chain.get_events("Transfer", token.address)

        assert [(e.data["from"], e.data["to"], e.data["value"]) for e in transfers] == [
            (None, ALICE, 100),
            (ALICE, BOB, 40),
        ]

    @pytest.mark.asyncio
    async def test_transfer_from(self, chain: Chain):
        token = await deploy_token(chain)
        async with chain.transaction(DEPLOYER) as ctx:
            await token.mint(ctx, ALICE, 100)
        async with chain.transaction(ALICE) as ctx:
            await token.approve(ctx, BOB, 60)
        async with chain.transaction(BOB) as ctx:
            await token.transfer_from(ctx, ALICE, BOB, 60)

        async with chain.view() as ctx:
            assert await token.balance_of(ctx, BOB) == 60
            assert await token.allowance(ctx, ALICE, BOB) == 0

    @pytest.mark.asyncio
    async def test_native_token_is_not_a_contract(self, chain: Chain):
        assert chain.get_contract(NATIVE_TOKEN) is None


class TestUnitConversion:
    """Tests for human/base unit helpers."""

    def test_to_base_units(self):
        assert to_base_units("99.9", 6) == 99_900_000
        assert to_base_units("1", 18) == 10**18
        assert to_base_units("0.0000001", 6) == 0

    def test_from_base_units(self):
        assert str(from_base_units(100_000, 6)) == "0.1"
