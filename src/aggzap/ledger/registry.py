"""Repository for contract state, registries and bridge bookkeeping."""

from datetime import datetime, timezone
from typing import Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aggzap.errors import MissingContract
from aggzap.ledger.models import (
    AuthorizedDepositor,
    AuthorizedSender,
    BridgeDeposit,
    ClaimedMessage,
    ContractKind,
    ContractRecord,
    DestinationReceiver,
    MessageStatus,
    PoolAccount,
    PoolReserve,
    PoolRoute,
    PoolState,
    ReceiverState,
    SenderState,
    SupportedToken,
)

StateT = TypeVar("StateT", SenderState, ReceiverState, PoolState)


class RegistryRepository:
    """Repository for everything contracts keep besides token balances."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Contract records
    async def create_contract(self, address: str, kind: ContractKind, owner: str) -> ContractRecord:
        record = ContractRecord(address=address, kind=kind.value, owner=owner)
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_contract(self, address: str) -> Optional[ContractRecord]:
        stmt = select(ContractRecord).where(ContractRecord.address == address)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_contract(self, address: str, kind: ContractKind) -> ContractRecord:
        record = await self.get_contract(address)
        if record is None or record.kind != kind.value:
            raise MissingContract(address, kind.value)
        return record

    async def count_contracts(self) -> int:
        result = await self.session.execute(select(ContractRecord.address))
        return len(result.all())

    async def get_state(self, model: type[StateT], address: str) -> StateT:
        """Load the state row of a sender, receiver or pool."""
        state = await self.session.get(model, address)
        if state is None:
            raise MissingContract(address, model.__tablename__.replace("_state", ""))
        return state

    async def add_state(self, state: StateT) -> StateT:
        self.session.add(state)
        await self.session.flush()
        return state

    # Supported tokens (sender and pool)
    async def is_token_supported(self, contract: str, token: str) -> bool:
        stmt = select(SupportedToken).where(
            SupportedToken.contract == contract, SupportedToken.token == token
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return bool(record and record.supported)

    async def set_token_supported(self, contract: str, token: str, supported: bool) -> None:
        stmt = select(SupportedToken).where(
            SupportedToken.contract == contract, SupportedToken.token == token
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            record = SupportedToken(contract=contract, token=token, supported=supported)
            self.session.add(record)
        else:
            record.supported = supported
        await self.session.flush()

    async def get_supported_tokens(self, contract: str) -> list[str]:
        stmt = (
            select(SupportedToken.token)
            .where(SupportedToken.contract == contract, SupportedToken.supported.is_(True))
            .order_by(SupportedToken.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Destination receivers (sender side)
    async def get_destination_receiver(self, contract: str, network_id: int) -> Optional[str]:
        stmt = select(DestinationReceiver).where(
            DestinationReceiver.contract == contract,
            DestinationReceiver.network_id == network_id,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return record.receiver if record else None

    async def set_destination_receiver(self, contract: str, network_id: int, receiver: str) -> None:
        stmt = select(DestinationReceiver).where(
            DestinationReceiver.contract == contract,
            DestinationReceiver.network_id == network_id,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            self.session.add(
                DestinationReceiver(contract=contract, network_id=network_id, receiver=receiver)
            )
        else:
            record.receiver = receiver
        await self.session.flush()

    # Authorized senders (receiver side)
    async def is_sender_authorized(self, contract: str, network_id: int, sender: str) -> bool:
        stmt = select(AuthorizedSender).where(
            AuthorizedSender.contract == contract,
            AuthorizedSender.network_id == network_id,
            AuthorizedSender.sender == sender,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return bool(record and record.authorized)

    async def set_sender_authorized(
        self, contract: str, network_id: int, sender: str, authorized: bool
    ) -> None:
        stmt = select(AuthorizedSender).where(
            AuthorizedSender.contract == contract,
            AuthorizedSender.network_id == network_id,
            AuthorizedSender.sender == sender,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            self.session.add(
                AuthorizedSender(
                    contract=contract,
                    network_id=network_id,
                    sender=sender,
                    authorized=authorized,
                )
            )
        else:
            record.authorized = authorized
        await self.session.flush()

    # Pool routes (receiver side)
    async def get_pool_route(self, contract: str, token: str) -> Optional[str]:
        stmt = select(PoolRoute).where(PoolRoute.contract == contract, PoolRoute.token == token)
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return record.pool if record else None

    async def set_pool_route(self, contract: str, token: str, pool: str) -> None:
        stmt = select(PoolRoute).where(PoolRoute.contract == contract, PoolRoute.token == token)
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            self.session.add(PoolRoute(contract=contract, token=token, pool=pool))
        else:
            record.pool = pool
        await self.session.flush()

    # Authorized depositors (pool side)
    async def is_depositor_authorized(self, contract: str, depositor: str) -> bool:
        stmt = select(AuthorizedDepositor).where(
            AuthorizedDepositor.contract == contract,
            AuthorizedDepositor.depositor == depositor,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return bool(record and record.authorized)

    async def set_depositor_authorized(self, contract: str, depositor: str, authorized: bool) -> None:
        stmt = select(AuthorizedDepositor).where(
            AuthorizedDepositor.contract == contract,
            AuthorizedDepositor.depositor == depositor,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            self.session.add(
                AuthorizedDepositor(contract=contract, depositor=depositor, authorized=authorized)
            )
        else:
            record.authorized = authorized
        await self.session.flush()

    # Pool accounts
    async def get_pool_account(self, pool: str, user: str, token: str) -> Optional[PoolAccount]:
        stmt = select(PoolAccount).where(
            PoolAccount.pool == pool, PoolAccount.user == user, PoolAccount.token == token
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_accounts(self, pool: str, user: str) -> list[PoolAccount]:
        stmt = (
            select(PoolAccount)
            .where(PoolAccount.pool == pool, PoolAccount.user == user)
            .order_by(PoolAccount.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_token_accounts(self, pool: str, token: str) -> list[PoolAccount]:
        stmt = select(PoolAccount).where(PoolAccount.pool == pool, PoolAccount.token == token)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_principal(self, pool: str, user: str, token: str, amount: int) -> PoolAccount:
        """Increase a user's principal, creating the account on first deposit."""
        account = await self.get_pool_account(pool, user, token)
        if account is None:
            account = PoolAccount(pool=pool, user=user, token=token, principal=0)
            self.session.add(account)
        account.principal += amount
        await self.session.flush()
        return account

    async def remove_principal(self, pool: str, user: str, token: str, amount: int) -> PoolAccount:
        account = await self.get_pool_account(pool, user, token)
        if account is None or account.principal < amount:
            have = account.principal if account else 0
            raise ValueError(f"Pool account underflow: have {have}, remove {amount}")
        account.principal -= amount
        await self.session.flush()
        return account

    # Pool reserves
    async def get_reserve(self, pool: str, token: str) -> int:
        stmt = select(PoolReserve).where(PoolReserve.pool == pool, PoolReserve.token == token)
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        return record.balance if record else 0

    async def adjust_reserve(self, pool: str, token: str, delta: int) -> int:
        stmt = select(PoolReserve).where(PoolReserve.pool == pool, PoolReserve.token == token)
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            record = PoolReserve(pool=pool, token=token, balance=0)
            self.session.add(record)
        if record.balance + delta < 0:
            raise ValueError(f"Pool reserve underflow for {token}: {record.balance} + {delta}")
        record.balance += delta
        await self.session.flush()
        return record.balance

    # Bridge deposits (source side)
    async def count_bridge_deposits(self) -> int:
        result = await self.session.execute(select(BridgeDeposit.id))
        return len(result.all())

    async def create_bridge_deposit(self, **fields) -> BridgeDeposit:
        deposit = BridgeDeposit(status=MessageStatus.PENDING.value, **fields)
        self.session.add(deposit)
        await self.session.flush()
        return deposit

    async def get_bridge_deposit(self, message_id: str) -> Optional[BridgeDeposit]:
        stmt = select(BridgeDeposit).where(BridgeDeposit.message_id == message_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_bridge_deposits(
        self, status: Optional[MessageStatus] = None
    ) -> list[BridgeDeposit]:
        stmt = select(BridgeDeposit)
        if status is not None:
            stmt = stmt.where(BridgeDeposit.status == status.value)
        stmt = stmt.order_by(BridgeDeposit.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def settle_bridge_deposit(
        self,
        message_id: str,
        status: MessageStatus,
        error_message: Optional[str] = None,
    ) -> BridgeDeposit:
        deposit = await self.get_bridge_deposit(message_id)
        if deposit is None:
            raise ValueError(f"Bridge deposit {message_id} not found")
        deposit.status = status.value
        deposit.error_message = error_message
        deposit.settled_at = datetime.now(timezone.utc)
        await self.session.flush()
        return deposit

    # Claimed messages (destination side)
    async def is_claimed(self, message_id: str) -> bool:
        stmt = select(ClaimedMessage).where(ClaimedMessage.message_id == message_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def mark_claimed(self, message_id: str, origin_network: int) -> ClaimedMessage:
        claim = ClaimedMessage(message_id=message_id, origin_network=origin_network)
        self.session.add(claim)
        await self.session.flush()
        return claim
