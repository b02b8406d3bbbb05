"""Common plumbing for contracts living on a chain."""

import logging
from typing import ClassVar, Optional

from aggzap.addresses import derive_address, normalize_address
from aggzap.chain import CallContext, Chain
from aggzap.errors import NotOwner
from aggzap.ledger.models import ContractKind

logger = logging.getLogger(__name__)


class Contract:
    """Code object bound to an address on one chain.

    The object itself holds no protocol state: everything lives in the chain's
    database and is reached through the ``CallContext`` of the current call.
    """

    kind: ClassVar[ContractKind]

    def __init__(self, chain: Chain, address: str):
        self.chain = chain
        self.address = normalize_address(address)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address}, chain={self.chain.name})"

    @classmethod
    async def _create(cls, ctx: CallContext, address: Optional[str] = None):
        """Record the deployment and return the bound object.

        The deployer (``ctx.sender``) becomes the owner. Without an explicit
        address one is derived from the network, deployer and deployment count.
        """
        if address is None:
            count = await ctx.registry.count_contracts()
            address = derive_address(ctx.network_id, ctx.sender, count)
        address = normalize_address(address, allow_zero=False)

        await ctx.registry.create_contract(address, cls.kind, ctx.sender)
        contract = cls(ctx.chain, address)
        ctx.deployed.append(contract)
        await ctx.emit(address, "OwnershipTransferred", {"previous_owner": None, "new_owner": ctx.sender})
        logger.info(f"Deployed {cls.__name__} at {address} on {ctx.chain.name}")
        return contract

    async def owner(self, ctx: CallContext) -> str:
        record = await ctx.registry.require_contract(self.address, self.kind)
        return record.owner

    async def only_owner(self, ctx: CallContext) -> None:
        """Reject the call unless it comes from the administrative principal."""
        if ctx.sender != await self.owner(ctx):
            raise NotOwner(ctx.sender, self.address)

    async def transfer_ownership(self, ctx: CallContext, new_owner: str) -> None:
        await self.only_owner(ctx)
        new_owner = normalize_address(new_owner, allow_zero=False)
        record = await ctx.registry.require_contract(self.address, self.kind)
        previous = record.owner
        record.owner = new_owner
        await ctx.session.flush()
        await ctx.emit(
            self.address,
            "OwnershipTransferred",
            {"previous_owner": previous, "new_owner": new_owner},
        )
