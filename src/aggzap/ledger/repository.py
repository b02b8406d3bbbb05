"""Repository for token ledger and event log operations."""

import json
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aggzap.addresses import NATIVE_TOKEN, UINT256_MAX
from aggzap.errors import InsufficientAllowance, InsufficientFunds, InvalidAmount, MissingContract
from aggzap.ledger.models import (
    EventLog,
    TokenAllowance,
    TokenBalance,
    TokenContract,
    TokenMinter,
)


class LedgerRepository:
    """Balances, allowances and supply of every token on one chain.

    Addresses passed in are expected to be checksummed already; callers
    normalize at the contract boundary.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # Token operations
    async def create_token(
        self,
        address: str,
        name: str,
        symbol: str,
        decimals: int = 18,
    ) -> TokenContract:
        """Register token metadata with zero supply."""
        token = TokenContract(
            address=address,
            name=name,
            symbol=symbol,
            decimals=decimals,
            total_supply=0,
        )
        self.session.add(token)
        await self.session.flush()
        return token

    async def get_token(self, address: str) -> Optional[TokenContract]:
        """Get token metadata."""
        stmt = select(TokenContract).where(TokenContract.address == address)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_token(self, address: str) -> TokenContract:
        token = await self.get_token(address)
        if token is None:
            raise MissingContract(address, "token")
        return token

    # Balance operations
    async def get_balance(self, token: str, holder: str) -> Optional[TokenBalance]:
        """Get the balance record for a holder."""
        stmt = select(TokenBalance).where(
            TokenBalance.token == token, TokenBalance.holder == holder
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_balance(self, token: str, holder: str) -> TokenBalance:
        """Get or create a balance record for token/holder."""
        balance = await self.get_balance(token, holder)
        if balance is None:
            balance = TokenBalance(token=token, holder=holder, amount=0)
            self.session.add(balance)
            await self.session.flush()
        return balance

    async def balance_of(self, token: str, holder: str) -> int:
        balance = await self.get_balance(token, holder)
        return balance.amount if balance else 0

    async def credit(self, token: str, holder: str, amount: int) -> TokenBalance:
        """Add amount to a holder's balance."""
        balance = await self.get_or_create_balance(token, holder)
        balance.amount += amount
        await self.session.flush()
        return balance

    async def debit(self, token: str, holder: str, amount: int) -> TokenBalance:
        """Subtract amount from a holder's balance. Raises InsufficientFunds if short."""
        balance = await self.get_or_create_balance(token, holder)
        if balance.amount < amount:
            raise InsufficientFunds(token, holder, balance.amount, amount)
        balance.amount -= amount
        await self.session.flush()
        return balance

    async def transfer(self, token: str, sender: str, to: str, amount: int) -> None:
        """Move tokens (or the native asset) between holders."""
        if amount < 0:
            raise InvalidAmount(amount, "transfer amount cannot be negative")
        if token != NATIVE_TOKEN:
            await self.require_token(token)
        await self.debit(token, sender, amount)
        await self.credit(token, to, amount)

    # Allowance operations
    async def get_allowance(self, token: str, owner: str, spender: str) -> Optional[TokenAllowance]:
        stmt = select(TokenAllowance).where(
            TokenAllowance.token == token,
            TokenAllowance.owner == owner,
            TokenAllowance.spender == spender,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        record = await self.get_allowance(token, owner, spender)
        return record.amount if record else 0

    async def approve(self, token: str, owner: str, spender: str, amount: int) -> TokenAllowance:
        """Set (not add to) the amount spender may pull from owner."""
        if amount < 0 or amount > UINT256_MAX:
            raise InvalidAmount(amount, "allowance out of uint256 range")
        await self.require_token(token)
        record = await self.get_allowance(token, owner, spender)
        if record is None:
            record = TokenAllowance(token=token, owner=owner, spender=spender, amount=amount)
            self.session.add(record)
        else:
            record.amount = amount
        await self.session.flush()
        return record

    async def transfer_from(
        self, token: str, spender: str, owner: str, to: str, amount: int
    ) -> None:
        """Pull tokens from owner on behalf of spender, consuming allowance.

        An allowance of UINT256_MAX is treated as unlimited and never decreases.
        """
        await self.require_token(token)
        current = await self.allowance(token, owner, spender)
        if current < amount:
            raise InsufficientAllowance(token, owner, spender, current, amount)
        if current != UINT256_MAX:
            await self.approve(token, owner, spender, current - amount)
        await self.transfer(token, owner, to, amount)

    # Supply operations
    async def mint(self, token: str, to: str, amount: int) -> None:
        """Create new units. For the native asset only the balance changes."""
        if amount <= 0:
            raise InvalidAmount(amount)
        if token != NATIVE_TOKEN:
            record = await self.require_token(token)
            record.total_supply += amount
        await self.credit(token, to, amount)

    async def burn(self, token: str, holder: str, amount: int) -> None:
        """Destroy units held by holder."""
        if amount <= 0:
            raise InvalidAmount(amount)
        record = await self.require_token(token)
        await self.debit(token, holder, amount)
        record.total_supply -= amount
        await self.session.flush()

    async def is_minter(self, token: str, minter: str) -> bool:
        stmt = select(TokenMinter).where(TokenMinter.token == token, TokenMinter.minter == minter)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def set_minter(self, token: str, minter: str, allowed: bool) -> None:
        stmt = select(TokenMinter).where(TokenMinter.token == token, TokenMinter.minter == minter)
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if allowed and record is None:
            self.session.add(TokenMinter(token=token, minter=minter))
        elif not allowed and record is not None:
            await self.session.delete(record)
        await self.session.flush()

    # Event operations
    async def record_event(self, tx_index: int, contract: str, name: str, payload: dict) -> EventLog:
        """Append an event to the log."""
        event = EventLog(
            tx_index=tx_index,
            contract=contract,
            name=name,
            payload=json.dumps(payload, sort_keys=True, default=str),
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_events(
        self,
        name: Optional[str] = None,
        contract: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[EventLog]:
        """Get events in emission order."""
        stmt = select(EventLog)
        if name is not None:
            stmt = stmt.where(EventLog.name == name)
        if contract is not None:
            stmt = stmt.where(EventLog.contract == contract)
        stmt = stmt.order_by(EventLog.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
