"""Yield pool receiving zapped deposits.

The pool mints its LP token 1:1 with deposited principal and shows a fixed
APY. It computes no yield of its own.
"""

import logging
from typing import Optional

from aggzap.addresses import NATIVE_TOKEN, normalize_address
from aggzap.chain import CallContext
from aggzap.contracts.base import Contract
from aggzap.contracts.token import Token
from aggzap.errors import (
    InsufficientBalance,
    InvalidAmount,
    UnauthorizedDepositor,
    UnsupportedToken,
)
from aggzap.ledger.models import ContractKind, PoolState

logger = logging.getLogger(__name__)

DEFAULT_APY_BPS = 500  # 5%
LP_DECIMALS = 18


class YieldPool(Contract):
    """Pool holding per-token reserves and per-user principal."""

    kind = ContractKind.YIELD_POOL

    @classmethod
    async def deploy(
        cls,
        ctx: CallContext,
        name: str,
        symbol: str,
        lp_token: Optional[str] = None,
        apy_bps: int = DEFAULT_APY_BPS,
        address: Optional[str] = None,
    ) -> "YieldPool":
        """Deploy a pool.

        Without ``lp_token`` the pool deploys and owns a fresh LP token. With
        one, pools share that LP token and each must be granted minter rights
        by the token's owner.
        """
        if apy_bps < 0:
            raise InvalidAmount(apy_bps, "APY cannot be negative")
        pool = await cls._create(ctx, address)

        if lp_token is None:
            lp = await Token.deploy(
                await ctx.call(pool.address),
                name=f"{name} LP",
                symbol=f"{symbol}-LP",
                decimals=LP_DECIMALS,
            )
            lp_token = lp.address
        else:
            lp_token = normalize_address(lp_token, allow_zero=False)
            await ctx.ledger.require_token(lp_token)

        await ctx.registry.add_state(
            PoolState(
                address=pool.address,
                lp_token=lp_token,
                name=name,
                symbol=symbol,
                apy_bps=apy_bps,
            )
        )
        return pool

    async def _state(self, ctx: CallContext) -> PoolState:
        return await ctx.registry.get_state(PoolState, self.address)

    async def _lp(self, ctx: CallContext) -> Token:
        return Token(ctx.chain, (await self._state(ctx)).lp_token)

    # Views
    async def lp_token(self, ctx: CallContext) -> str:
        return (await self._state(ctx)).lp_token

    async def name(self, ctx: CallContext) -> str:
        return (await self._state(ctx)).name

    async def symbol(self, ctx: CallContext) -> str:
        return (await self._state(ctx)).symbol

    async def get_apy(self, ctx: CallContext) -> int:
        return (await self._state(ctx)).apy_bps

    async def get_tvl(self, ctx: CallContext, token: str) -> int:
        return await ctx.registry.get_reserve(self.address, normalize_address(token))

    async def get_user_lp_balance(self, ctx: CallContext, user: str) -> int:
        lp = await self._lp(ctx)
        return await lp.balance_of(ctx, user)

    async def get_user_deposit(self, ctx: CallContext, user: str, token: str) -> int:
        account = await ctx.registry.get_pool_account(
            self.address, normalize_address(user), normalize_address(token)
        )
        return account.principal if account else 0

    async def is_token_supported(self, ctx: CallContext, token: str) -> bool:
        return await ctx.registry.is_token_supported(self.address, normalize_address(token))

    async def get_supported_tokens(self, ctx: CallContext) -> list[str]:
        return await ctx.registry.get_supported_tokens(self.address)

    async def is_authorized_depositor(self, ctx: CallContext, depositor: str) -> bool:
        return await ctx.registry.is_depositor_authorized(
            self.address, normalize_address(depositor)
        )

    async def _check_caller(self, ctx: CallContext, user: str) -> None:
        """The user acts for themselves; anyone else must be an authorized depositor."""
        if ctx.sender == user:
            return
        if not await ctx.registry.is_depositor_authorized(self.address, ctx.sender):
            raise UnauthorizedDepositor(ctx.sender, user)

    # Deposits
    async def deposit(self, ctx: CallContext, token: str, amount: int) -> int:
        """Deposit for the caller. Returns LP minted."""
        return await self.deposit_for(ctx, ctx.sender, token, amount)

    async def deposit_for(self, ctx: CallContext, user: str, token: str, amount: int) -> int:
        """Deposit the caller's funds and credit ``user``. Returns LP minted.

        ERC20 principal is pulled from the caller with ``transfer_from``; native
        principal must be attached to the call as value.
        """
        user = normalize_address(user, allow_zero=False)
        token = normalize_address(token)
        await self._check_caller(ctx, user)
        if not await self.is_token_supported(ctx, token):
            raise UnsupportedToken(token)
        if amount <= 0:
            raise InvalidAmount(amount)

        pool_ctx = await ctx.call(self.address)
        if token == NATIVE_TOKEN:
            if ctx.value != amount or ctx.value_target != self.address:
                raise InvalidAmount(
                    ctx.value, f"value attached to the pool must equal deposit amount {amount}"
                )
        else:
            await Token(ctx.chain, token).transfer_from(pool_ctx, ctx.sender, self.address, amount)

        lp_minted = amount
        await ctx.registry.add_principal(self.address, user, token, amount)
        await ctx.registry.adjust_reserve(self.address, token, amount)
        lp = await self._lp(ctx)
        await lp.mint(pool_ctx, user, lp_minted)

        await ctx.emit(
            self.address,
            "Deposit",
            {"user": user, "token": token, "amount": amount, "lp_minted": lp_minted},
        )
        logger.info(f"Pool {self.address}: {user} deposited {amount} of {token}")
        return lp_minted

    async def withdraw(self, ctx: CallContext, user: str, lp_amount: int) -> dict[str, int]:
        """Redeem ``lp_amount`` LP from ``user`` for a proportional share of each token.

        The share is taken against the user's principal in this pool, which is
        also the LP this pool minted for them. Only the LP covered by the
        rounded-down payouts is burned, so rounding dust stays with the user.
        Returns ``{token: amount paid}``.
        """
        user = normalize_address(user, allow_zero=False)
        await self._check_caller(ctx, user)
        if lp_amount <= 0:
            raise InvalidAmount(lp_amount)

        lp = await self._lp(ctx)
        lp_balance = await lp.balance_of(ctx, user)
        if lp_amount > lp_balance:
            raise InsufficientBalance(lp_balance, lp_amount)

        accounts = [
            a for a in await ctx.registry.get_user_accounts(self.address, user) if a.principal > 0
        ]
        pool_share = sum(a.principal for a in accounts)
        if lp_amount > pool_share:
            raise InsufficientBalance(pool_share, lp_amount)

        amounts: dict[str, int] = {}
        for account in accounts:
            payout = account.principal * lp_amount // pool_share
            if payout:
                amounts[account.token] = payout
        # LP is burned one for one against the principal actually paid out
        lp_burned = sum(amounts.values())
        if lp_burned == 0:
            raise InvalidAmount(lp_amount, "LP amount too small to redeem any principal")

        # Effects
        for token, payout in amounts.items():
            await ctx.registry.remove_principal(self.address, user, token, payout)
            await ctx.registry.adjust_reserve(self.address, token, -payout)
        pool_ctx = await ctx.call(self.address)
        await lp.burn(pool_ctx, user, lp_burned)

        # Interactions
        for token, payout in amounts.items():
            if token == NATIVE_TOKEN:
                await ctx.ledger.transfer(NATIVE_TOKEN, self.address, user, payout)
            else:
                await Token(ctx.chain, token).transfer(pool_ctx, user, payout)

        await ctx.emit(
            self.address,
            "Withdraw",
            {"user": user, "lp_burned": lp_burned, "amounts": amounts},
        )
        logger.info(f"Pool {self.address}: {user} withdrew {amounts} for {lp_burned} LP")
        return amounts

    # Admin
    async def set_supported_token(self, ctx: CallContext, token: str, supported: bool) -> None:
        await self.only_owner(ctx)
        token = normalize_address(token)
        await ctx.registry.set_token_supported(self.address, token, supported)
        await ctx.emit(self.address, "TokenSupportUpdated", {"token": token, "supported": supported})

    async def set_authorized_depositor(
        self, ctx: CallContext, depositor: str, authorized: bool
    ) -> None:
        await self.only_owner(ctx)
        depositor = normalize_address(depositor, allow_zero=False)
        await ctx.registry.set_depositor_authorized(self.address, depositor, authorized)
        await ctx.emit(
            self.address,
            "DepositorUpdated",
            {"depositor": depositor, "authorized": authorized},
        )

    async def set_apy(self, ctx: CallContext, apy_bps: int) -> None:
        """Set the displayed APY."""
        await self.only_owner(ctx)
        if apy_bps < 0:
            raise InvalidAmount(apy_bps, "APY cannot be negative")
        state = await self._state(ctx)
        state.apy_bps = apy_bps
        await ctx.session.flush()
        await ctx.emit(self.address, "APYUpdated", {"apy_bps": apy_bps})
