"""A single blockchain network and its call context.

A ``Chain`` owns the database holding that network's state. Every external
call runs inside ``Chain.transaction()``: one database transaction under the
chain's execution lock, committed when the call returns and rolled back when
anything raises. Contract-to-contract calls reuse the same transaction through
``CallContext.call()``.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from aggzap.addresses import NATIVE_TOKEN, ZERO_ADDRESS, normalize_address
from aggzap.errors import InvalidAddress, InvalidAmount
from aggzap.ledger.database import close_db, create_engine, create_session_factory, init_db
from aggzap.ledger.registry import RegistryRepository
from aggzap.ledger.repository import LedgerRepository
from aggzap.utils.locks import ExecutionLock

logger = logging.getLogger(__name__)


@dataclass
class EventRecord:
    """An event read back from a chain's log."""

    name: str
    contract: str
    tx_index: int
    data: dict


@dataclass
class CallContext:
    """Execution context of one call: who is calling, with what value, in which transaction."""

    chain: "Chain"
    session: AsyncSession
    sender: str
    value: int = 0
    value_target: Optional[str] = None  # account the attached value was moved to
    tx_index: int = 0
    deployed: list = field(default_factory=list)  # shared by nested contexts

    @property
    def network_id(self) -> int:
        return self.chain.network_id

    @property
    def ledger(self) -> LedgerRepository:
        return LedgerRepository(self.session)

    @property
    def registry(self) -> RegistryRepository:
        return RegistryRepository(self.session)

    async def call(
        self, caller: str, target: Optional[str] = None, value: int = 0
    ) -> "CallContext":
        """Context for a call made by contract ``caller`` inside this transaction.

        A non-zero ``value`` moves that much native asset from caller to target
        before the callee runs, like an EVM value transfer.
        """
        if value and target is None:
            raise InvalidAddress("Value transfer requires a target")
        if value:
            target = normalize_address(target)
            await self.ledger.transfer(NATIVE_TOKEN, caller, target, value)
        return replace(
            self, sender=caller, value=value, value_target=target if value else None
        )

    async def emit(self, contract: str, name: str, payload: dict) -> None:
        """Emit an event; it disappears with the transaction if the call reverts."""
        await self.ledger.record_event(self.tx_index, contract, name, payload)


class Chain:
    """One network: its database, its deployed contracts and its execution lock."""

    def __init__(
        self,
        network_id: int,
        name: str,
        database_url: str = "sqlite+aiosqlite:///:memory:",
        echo: bool = False,
        lock_timeout: Optional[float] = 30.0,
    ):
        self.network_id = network_id
        self.name = name
        self.engine = create_engine(database_url, echo=echo)
        self.session_factory = create_session_factory(self.engine)
        self._lock = ExecutionLock(name, timeout=lock_timeout)
        self._contracts: dict[str, Any] = {}
        self._tx_count = 0

    def __repr__(self) -> str:
        return f"Chain(network_id={self.network_id}, name={self.name!r})"

    async def start(self) -> None:
        """Create the chain's tables."""
        await init_db(self.engine)
        logger.info(f"Chain {self.name} (network {self.network_id}) started")

    async def close(self) -> None:
        await close_db(self.engine)

    # Contract code registry
    def register(self, contract: Any) -> None:
        """Attach the code object living at ``contract.address``."""
        self._contracts[contract.address] = contract

    def get_contract(self, address: str) -> Optional[Any]:
        return self._contracts.get(normalize_address(address))

    # Execution
    @asynccontextmanager
    async def transaction(
        self, sender: str, to: Optional[str] = None, value: int = 0
    ) -> AsyncIterator[CallContext]:
        """Run one external call atomically.

        Args:
            sender: Account originating the call
            to: Contract receiving ``value``
            value: Native asset attached to the call
        """
        sender = normalize_address(sender)
        if value < 0:
            raise InvalidAmount(value, "value cannot be negative")

        async with self._lock:
            self._tx_count += 1
            tx_index = self._tx_count
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        ctx = CallContext(self, session, sender, value=value, tx_index=tx_index)
                        if value:
                            if to is None:
                                raise InvalidAddress("Value transfer requires a target")
                            ctx.value_target = normalize_address(to)
                            await ctx.ledger.transfer(NATIVE_TOKEN, sender, ctx.value_target, value)
                        yield ctx
            except Exception as e:
                logger.warning(
                    f"[{self.name}] tx #{tx_index} from {sender} reverted: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            for contract in ctx.deployed:
                self.register(contract)
            logger.debug(f"[{self.name}] tx #{tx_index} from {sender} committed")

    @asynccontextmanager
    async def view(self) -> AsyncIterator[CallContext]:
        """Read-only context; nothing done inside it is committed."""
        async with self._lock:
            async with self.session_factory() as session:
                yield CallContext(self, session, ZERO_ADDRESS)
                await session.rollback()

    # Convenience
    async def airdrop(self, address: str, amount: int) -> None:
        """Credit native asset to an account (test networks only)."""
        address = normalize_address(address)
        async with self.transaction(ZERO_ADDRESS) as ctx:
            await ctx.ledger.mint(NATIVE_TOKEN, address, amount)

    async def native_balance(self, address: str) -> int:
        async with self.view() as ctx:
            return await ctx.ledger.balance_of(NATIVE_TOKEN, normalize_address(address))

    async def get_events(
        self, name: Optional[str] = None, contract: Optional[str] = None
    ) -> list[EventRecord]:
        if contract is not None:
            contract = normalize_address(contract)
        async with self.view() as ctx:
            events = await ctx.ledger.get_events(name=name, contract=contract)
            return [
                EventRecord(
                    name=event.name,
                    contract=event.contract,
                    tx_index=event.tx_index,
                    data=event.data,
                )
                for event in events
            ]
