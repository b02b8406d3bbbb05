"""Tests for the ledger module."""

import pytest

from aggzap.addresses import NATIVE_TOKEN, UINT256_MAX, derive_address
from aggzap.errors import InsufficientAllowance, InsufficientFunds, InvalidAmount, MissingContract
from aggzap.ledger.models import MessageStatus
from aggzap.ledger.registry import RegistryRepository
from aggzap.ledger.repository import LedgerRepository

TOKEN = derive_address("ledger", "token")
ALICE = derive_address("ledger", "alice")
BOB = derive_address("ledger", "bob")
POOL = derive_address("ledger", "pool")


class TestTokenOperations:
    """Tests for token metadata and supply."""

    @pytest.mark.asyncio
    async def test_create_token(self, ledger_repo: LedgerRepository, db_session):
        """Test token creation starts with zero supply."""
        token = await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await db_session.commit()

        assert token.symbol == "USDC"
        assert token.decimals == 6
        assert token.total_supply == 0

    @pytest.mark.asyncio
    async def test_mint_updates_supply_and_balance(self, ledger_repo: LedgerRepository):
        """Test minting credits the holder and grows supply."""
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await ledger_repo.mint(TOKEN, ALICE, 1_000_000)

        assert await ledger_repo.balance_of(TOKEN, ALICE) == 1_000_000
        assert (await ledger_repo.get_token(TOKEN)).total_supply == 1_000_000

    @pytest.mark.asyncio
    async def test_mint_zero_rejected(self, ledger_repo: LedgerRepository):
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)

        with pytest.raises(InvalidAmount):
            await ledger_repo.mint(TOKEN, ALICE, 0)

    @pytest.mark.asyncio
    async def test_mint_unknown_token(self, ledger_repo: LedgerRepository):
        """Test minting a token that was never created fails."""
        with pytest.raises(MissingContract):
            await ledger_repo.mint(TOKEN, ALICE, 1)

    @pytest.mark.asyncio
    async def test_burn(self, ledger_repo: LedgerRepository):
        await ledger_repo.create_token(TOKEN, "LP", "LP", 18)
        await ledger_repo.mint(TOKEN, ALICE, 500)
        await ledger_repo.burn(TOKEN, ALICE, 200)

        assert await ledger_repo.balance_of(TOKEN, ALICE) == 300
        assert (await ledger_repo.get_token(TOKEN)).total_supply == 300

    @pytest.mark.asyncio
    async def test_large_amounts_are_lossless(self, ledger_repo: LedgerRepository, db_session):
        """Test balances near the uint256 limit survive storage."""
        await ledger_repo.create_token(TOKEN, "Big", "BIG", 18)
        await ledger_repo.mint(TOKEN, ALICE, UINT256_MAX - 1)
        await db_session.commit()

        assert await ledger_repo.balance_of(TOKEN, ALICE) == UINT256_MAX - 1


class TestBalanceOperations:
    """Tests for transfers and allowances."""

    @pytest.mark.asyncio
    async def test_transfer(self, ledger_repo: LedgerRepository):
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await ledger_repo.mint(TOKEN, ALICE, 1_000)
        await ledger_repo.transfer(TOKEN, ALICE, BOB, 400)

        assert await ledger_repo.balance_of(TOKEN, ALICE) == 600
        assert await ledger_repo.balance_of(TOKEN, BOB) == 400

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, ledger_repo: LedgerRepository):
        """Test transfer above balance raises InsufficientFunds."""
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await ledger_repo.mint(TOKEN, ALICE, 100)

        with pytest.raises(InsufficientFunds) as exc_info:
            await ledger_repo.transfer(TOKEN, ALICE, BOB, 101)

        assert exc_info.value.have == 100
        assert exc_info.value.need == 101

    @pytest.mark.asyncio
    async def test_native_asset_needs_no_token(self, ledger_repo: LedgerRepository):
        """Test the native asset moves without token metadata."""
        await ledger_repo.mint(NATIVE_TOKEN, ALICE, 10**18)
        await ledger_repo.transfer(NATIVE_TOKEN, ALICE, BOB, 10**17)

        assert await ledger_repo.balance_of(NATIVE_TOKEN, BOB) == 10**17

    @pytest.mark.asyncio
    async def test_transfer_from_consumes_allowance(self, ledger_repo: LedgerRepository):
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await ledger_repo.mint(TOKEN, ALICE, 1_000)
        await ledger_repo.approve(TOKEN, ALICE, POOL, 600)

        await ledger_repo.transfer_from(TOKEN, POOL, ALICE, POOL, 250)

        assert await ledger_repo.allowance(TOKEN, ALICE, POOL) == 350
        assert await ledger_repo.balance_of(TOKEN, POOL) == 250

    @pytest.mark.asyncio
    async def test_transfer_from_without_allowance(self, ledger_repo: LedgerRepository):
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await ledger_repo.mint(TOKEN, ALICE, 1_000)
        await ledger_repo.approve(TOKEN, ALICE, POOL, 10)

        with pytest.raises(InsufficientAllowance):
            await ledger_repo.transfer_from(TOKEN, POOL, ALICE, POOL, 11)

    @pytest.mark.asyncio
    async def test_unlimited_allowance(self, ledger_repo: LedgerRepository):
        """Test a max allowance never decreases."""
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await ledger_repo.mint(TOKEN, ALICE, 1_000)
        await ledger_repo.approve(TOKEN, ALICE, POOL, UINT256_MAX)

        await ledger_repo.transfer_from(TOKEN, POOL, ALICE, BOB, 1_000)

        assert await ledger_repo.allowance(TOKEN, ALICE, POOL) == UINT256_MAX

    @pytest.mark.asyncio
    async def test_approve_sets_not_adds(self, ledger_repo: LedgerRepository):
        await ledger_repo.create_token(TOKEN, "Mock USDC", "USDC", 6)
        await ledger_repo.approve(TOKEN, ALICE, POOL, 100)
        await ledger_repo.approve(TOKEN, ALICE, POOL, 40)

        assert await ledger_repo.allowance(TOKEN, ALICE, POOL) == 40


class TestEventLog:
    """Tests for event recording."""

    @pytest.mark.asyncio
    async def test_events_in_order(self, ledger_repo: LedgerRepository):
        await ledger_repo.record_event(1, POOL, "Deposit", {"amount": 1})
        await ledger_repo.record_event(1, POOL, "Withdraw", {"amount": 2})
        await ledger_repo.record_event(2, POOL, "Deposit", {"amount": 3})

        deposits = await ledger_repo.get_events(name="Deposit")

        assert [e.data["amount"] for e in deposits] == [1, 3]
        assert len(await ledger_repo.get_events(contract=POOL)) == 3


class TestRegistry:
    """Tests for contract registries and bridge bookkeeping."""

    @pytest.mark.asyncio
    async def test_missing_entries_mean_false(self, registry_repo: RegistryRepository):
        """Test absent registry rows read as not supported / not authorized."""
        assert not await registry_repo.is_token_supported(POOL, TOKEN)
        assert not await registry_repo.is_sender_authorized(POOL, 2, ALICE)
        assert not await registry_repo.is_depositor_authorized(POOL, ALICE)
        assert await registry_repo.get_pool_route(POOL, TOKEN) is None
        assert await registry_repo.get_destination_receiver(POOL, 1) is None

    @pytest.mark.asyncio
    async def test_toggle_supported_token(self, registry_repo: RegistryRepository):
        await registry_repo.set_token_supported(POOL, TOKEN, True)
        assert await registry_repo.is_token_supported(POOL, TOKEN)
        assert await registry_repo.get_supported_tokens(POOL) == [TOKEN]

        await registry_repo.set_token_supported(POOL, TOKEN, False)
        assert not await registry_repo.is_token_supported(POOL, TOKEN)
        assert await registry_repo.get_supported_tokens(POOL) == []

    @pytest.mark.asyncio
    async def test_sender_authorization_is_per_network(self, registry_repo: RegistryRepository):
        await registry_repo.set_sender_authorized(POOL, 2, ALICE, True)

        assert await registry_repo.is_sender_authorized(POOL, 2, ALICE)
        assert not await registry_repo.is_sender_authorized(POOL, 3, ALICE)

    @pytest.mark.asyncio
    async def test_pool_account_principal(self, registry_repo: RegistryRepository):
        await registry_repo.add_principal(POOL, ALICE, TOKEN, 100)
        await registry_repo.add_principal(POOL, ALICE, TOKEN, 50)
        account = await registry_repo.remove_principal(POOL, ALICE, TOKEN, 30)

        assert account.principal == 120

    @pytest.mark.asyncio
    async def test_pool_account_underflow(self, registry_repo: RegistryRepository):
        await registry_repo.add_principal(POOL, ALICE, TOKEN, 10)

        with pytest.raises(ValueError, match="underflow"):
            await registry_repo.remove_principal(POOL, ALICE, TOKEN, 11)

    @pytest.mark.asyncio
    async def test_bridge_deposit_lifecycle(self, registry_repo: RegistryRepository):
        """Test a bridge deposit goes from pending to delivered."""
        message_id = "0x" + "ab" * 32
        await registry_repo.create_bridge_deposit(
            message_id=message_id,
            origin_network=2,
            origin_address=ALICE,
            destination_network=1,
            destination_address=BOB,
            fallback_address=ALICE,
            token=TOKEN,
            amount=99_900_000,
            call_data="",
            force_update_global_exit_root=True,
        )

        pending = await registry_repo.get_bridge_deposits(MessageStatus.PENDING)
        assert [d.message_id for d in pending] == [message_id]

        deposit = await registry_repo.settle_bridge_deposit(message_id, MessageStatus.DELIVERED)

        assert deposit.status == MessageStatus.DELIVERED.value
        assert deposit.settled_at is not None
        assert await registry_repo.get_bridge_deposits(MessageStatus.PENDING) == []

    @pytest.mark.asyncio
    async def test_claims(self, registry_repo: RegistryRepository):
        message_id = "0x" + "cd" * 32
        assert not await registry_repo.is_claimed(message_id)

        await registry_repo.mark_claimed(message_id, 2)

        assert await registry_repo.is_claimed(message_id)
