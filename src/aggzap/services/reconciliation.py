"""Pool solvency reconciliation.

For every token a pool supports, the principal credited to users must be
backed by tokens the pool actually holds in the ledger, and the pool's
accounted reserve must match that principal.
"""

import logging
from dataclasses import dataclass, field

from aggzap.contracts.pool import YieldPool

logger = logging.getLogger(__name__)


@dataclass
class TokenSolvency:
    token: str
    total_principal: int
    reserve: int
    ledger_balance: int

    @property
    def is_solvent(self) -> bool:
        return self.total_principal <= self.ledger_balance

    @property
    def reserve_matches(self) -> bool:
        return self.reserve == self.total_principal


@dataclass
class SolvencyReport:
    pool: str
    tokens: list[TokenSolvency] = field(default_factory=list)
    lp_supply: int = 0

    @property
    def is_solvent(self) -> bool:
        return all(t.is_solvent and t.reserve_matches for t in self.tokens)

    def to_dict(self) -> dict:
        return {
            "pool": self.pool,
            "is_solvent": self.is_solvent,
            "lp_supply": str(self.lp_supply),
            "tokens": [
                {
                    "token": t.token,
                    "total_principal": str(t.total_principal),
                    "reserve": str(t.reserve),
                    "ledger_balance": str(t.ledger_balance),
                    "is_solvent": t.is_solvent,
                    "reserve_matches": t.reserve_matches,
                }
                for t in self.tokens
            ],
        }


async def check_pool_solvency(pool: YieldPool) -> SolvencyReport:
    """Compare pool accounting against the chain's token ledger."""
    report = SolvencyReport(pool=pool.address)
    async with pool.chain.view() as ctx:
        lp_token = await pool.lp_token(ctx)
        report.lp_supply = (await ctx.ledger.require_token(lp_token)).total_supply

        for token in await pool.get_supported_tokens(ctx):
            accounts = await ctx.registry.get_token_accounts(pool.address, token)
            report.tokens.append(
                TokenSolvency(
                    token=token,
                    total_principal=sum(a.principal for a in accounts),
                    reserve=await ctx.registry.get_reserve(pool.address, token),
                    ledger_balance=await ctx.ledger.balance_of(token, pool.address),
                )
            )

    for entry in report.tokens:
        if not entry.is_solvent:
            logger.error(
                f"Pool {pool.address} insolvent for {entry.token}: "
                f"principal {entry.total_principal} > balance {entry.ledger_balance}"
            )
        elif not entry.reserve_matches:
            logger.warning(
                f"Pool {pool.address} reserve drift for {entry.token}: "
                f"reserve {entry.reserve}, principal {entry.total_principal}"
            )
    return report
