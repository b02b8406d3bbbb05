"""ERC20-like token contract over the chain's token ledger."""

import logging
from decimal import ROUND_DOWN, Decimal
from typing import Optional, Union

from aggzap.addresses import normalize_address
from aggzap.chain import CallContext
from aggzap.contracts.base import Contract
from aggzap.errors import InvalidAmount, NotOwner
from aggzap.ledger.models import ContractKind

logger = logging.getLogger(__name__)


def to_base_units(amount: Union[Decimal, str, int], decimals: int) -> int:
    """Convert a human amount ("1.5") into integer base units, truncating dust."""
    scaled = (Decimal(str(amount)) * (Decimal(10) ** decimals)).quantize(
        Decimal("1"), rounding=ROUND_DOWN
    )
    return int(scaled)


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Convert integer base units into a human Decimal amount."""
    return Decimal(amount) / (Decimal(10) ** decimals)


class Token(Contract):
    """Fungible token with allowances and an owner-managed minter set."""

    kind = ContractKind.TOKEN

    @classmethod
    async def deploy(
        cls,
        ctx: CallContext,
        name: str,
        symbol: str,
        decimals: int = 18,
        address: Optional[str] = None,
    ) -> "Token":
        """Deploy a token with zero supply.

        Passing ``address`` pins the deployment, which is how the same token
        lives at the same address on several networks.
        """
        token = await cls._create(ctx, address)
        await ctx.ledger.create_token(token.address, name, symbol, decimals)
        return token

    # Views
    async def name(self, ctx: CallContext) -> str:
        return (await ctx.ledger.require_token(self.address)).name

    async def symbol(self, ctx: CallContext) -> str:
        return (await ctx.ledger.require_token(self.address)).symbol

    async def decimals(self, ctx: CallContext) -> int:
        return (await ctx.ledger.require_token(self.address)).decimals

    async def total_supply(self, ctx: CallContext) -> int:
        return (await ctx.ledger.require_token(self.address)).total_supply

    async def balance_of(self, ctx: CallContext, holder: str) -> int:
        return await ctx.ledger.balance_of(self.address, normalize_address(holder))

    async def allowance(self, ctx: CallContext, owner: str, spender: str) -> int:
        return await ctx.ledger.allowance(
            self.address, normalize_address(owner), normalize_address(spender)
        )

    async def is_minter(self, ctx: CallContext, account: str) -> bool:
        return await ctx.ledger.is_minter(self.address, normalize_address(account))

    # Transfers
    async def transfer(self, ctx: CallContext, to: str, amount: int) -> bool:
        to = normalize_address(to, allow_zero=False)
        await ctx.ledger.transfer(self.address, ctx.sender, to, amount)
        await ctx.emit(self.address, "Transfer", {"from": ctx.sender, "to": to, "value": amount})
        return True

    async def approve(self, ctx: CallContext, spender: str, amount: int) -> bool:
        spender = normalize_address(spender, allow_zero=False)
        await ctx.ledger.approve(self.address, ctx.sender, spender, amount)
        await ctx.emit(
            self.address,
            "Approval",
            {"owner": ctx.sender, "spender": spender, "value": amount},
        )
        return True

    async def transfer_from(self, ctx: CallContext, owner: str, to: str, amount: int) -> bool:
        """Move ``amount`` from ``owner`` to ``to`` using the caller's allowance."""
        owner = normalize_address(owner)
        to = normalize_address(to, allow_zero=False)
        await ctx.ledger.transfer_from(self.address, ctx.sender, owner, to, amount)
        await ctx.emit(self.address, "Transfer", {"from": owner, "to": to, "value": amount})
        return True

    # Supply
    async def _only_minter(self, ctx: CallContext) -> None:
        if ctx.sender == await self.owner(ctx):
            return
        if not await ctx.ledger.is_minter(self.address, ctx.sender):
            raise NotOwner(ctx.sender, self.address)

    async def mint(self, ctx: CallContext, to: str, amount: int) -> None:
        await self._only_minter(ctx)
        to = normalize_address(to, allow_zero=False)
        await ctx.ledger.mint(self.address, to, amount)
        await ctx.emit(
            self.address, "Transfer", {"from": None, "to": to, "value": amount}
        )

    async def burn(self, ctx: CallContext, holder: str, amount: int) -> None:
        await self._only_minter(ctx)
        holder = normalize_address(holder)
        if amount <= 0:
            raise InvalidAmount(amount)
        await ctx.ledger.burn(self.address, holder, amount)
        await ctx.emit(
            self.address, "Transfer", {"from": holder, "to": None, "value": amount}
        )

    async def set_minter(self, ctx: CallContext, minter: str, allowed: bool = True) -> None:
        await self.only_owner(ctx)
        minter = normalize_address(minter, allow_zero=False)
        await ctx.ledger.set_minter(self.address, minter, allowed)
        await ctx.emit(self.address, "MinterUpdated", {"minter": minter, "allowed": allowed})
        logger.info(f"Minter {minter} {'granted' if allowed else 'revoked'} on token {self.address}")
