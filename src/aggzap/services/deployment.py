"""Local protocol deployment and route wiring.

Brings up a source and a destination chain connected by a ``LocalBridge``,
deploys mock USDC and WETH at the same address on both, a yield pool on the
destination, and a sender/receiver pair configured symmetrically.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from aggzap.addresses import NATIVE_TOKEN, derive_address, normalize_address
from aggzap.bridge.local import LocalBridge
from aggzap.chain import Chain
from aggzap.config import Settings, get_settings
from aggzap.contracts.pool import YieldPool
from aggzap.contracts.receiver import ZapReceiver
from aggzap.contracts.sender import ZapSender
from aggzap.contracts.token import Token

logger = logging.getLogger(__name__)

# (symbol, name, decimals) of the mock tokens
MOCK_TOKENS = (
    ("USDC", "Mock USDC", 6),
    ("WETH", "Mock Wrapped Ether", 18),
)


@dataclass
class ProtocolDeployment:
    """Handles to everything ``deploy_protocol`` created."""

    source: Chain
    destination: Chain
    bridge: LocalBridge
    deployer: str
    sender: ZapSender
    receiver: ZapReceiver
    pool: YieldPool
    tokens: dict[str, str] = field(default_factory=dict)  # symbol -> address

    def token_address(self, symbol: str) -> str:
        if symbol.upper() in ("ETH", "NATIVE"):
            return NATIVE_TOKEN
        return self.tokens[symbol.upper()]

    async def fund(self, account: str, symbol: str, amount: int, on_source: bool = True) -> None:
        """Mint test funds to ``account`` (base units)."""
        chain = self.source if on_source else self.destination
        account = normalize_address(account, allow_zero=False)
        token = self.token_address(symbol)
        if token == NATIVE_TOKEN:
            await chain.airdrop(account, amount)
            return
        async with chain.transaction(self.deployer) as ctx:
            await Token(chain, token).mint(ctx, account, amount)

    async def close(self) -> None:
        await self.source.close()
        await self.destination.close()


async def configure_route(
    source: Chain,
    destination: Chain,
    sender: ZapSender,
    receiver: ZapReceiver,
    pool: YieldPool,
    tokens: Iterable[str],
    owner: str,
) -> None:
    """Make ``sender`` -> ``receiver`` -> ``pool`` usable for ``tokens``.

    Both directions of trust are written: the sender's destination receiver
    and the receiver's authorized sender, plus pool routing, pool support and
    the receiver's depositor rights on the pool.
    """
    tokens = [normalize_address(t) for t in tokens]

    async with source.transaction(owner) as ctx:
        await sender.set_destination_receiver(ctx, destination.network_id, receiver.address)
        for token in tokens:
            await sender.set_supported_token(ctx, token, True)

    async with destination.transaction(owner) as ctx:
        await receiver.authorize_sender(ctx, source.network_id, sender.address, True)
        await pool.set_authorized_depositor(ctx, receiver.address, True)
        for token in tokens:
            await receiver.set_pool(ctx, token, pool.address)
            await pool.set_supported_token(ctx, token, True)

    logger.info(
        f"Route {source.name}:{sender.address} -> {destination.name}:{receiver.address} "
        f"configured for {len(tokens)} token(s)"
    )


async def deploy_protocol(
    settings: Optional[Settings] = None,
    deployer: Optional[str] = None,
    support_native: bool = True,
) -> ProtocolDeployment:
    """Deploy and wire the whole protocol on two fresh local chains."""
    settings = settings or get_settings()
    deployer = normalize_address(deployer or derive_address("aggzap", "deployer"), allow_zero=False)
    fee_recipient = normalize_address(settings.fee_recipient or deployer, allow_zero=False)

    source = Chain(
        settings.source_network_id,
        settings.source_network_name,
        database_url=settings.database_url_for(settings.source_network_name),
        echo=settings.sql_echo,
        lock_timeout=settings.lock_timeout_seconds,
    )
    destination = Chain(
        settings.destination_network_id,
        settings.destination_network_name,
        database_url=settings.database_url_for(settings.destination_network_name),
        echo=settings.sql_echo,
        lock_timeout=settings.lock_timeout_seconds,
    )
    await source.start()
    await destination.start()

    bridge = LocalBridge(settings.bridge_address)
    bridge.attach(source)
    bridge.attach(destination)

    # Same token address on both networks, so the bridge's identity mapping applies
    tokens: dict[str, str] = {}
    for symbol, name, decimals in MOCK_TOKENS:
        address = derive_address("aggzap", "token", symbol)
        for chain in (source, destination):
            async with chain.transaction(deployer) as ctx:
                await Token.deploy(ctx, name, symbol, decimals, address=address)
        tokens[symbol] = address

    async with destination.transaction(deployer) as ctx:
        pool = await YieldPool.deploy(
            ctx, "AggZap Pool", "AZP", apy_bps=settings.default_apy_bps
        )
        receiver = await ZapReceiver.deploy(ctx, bridge.address)

    async with source.transaction(deployer) as ctx:
        sender = await ZapSender.deploy(
            ctx, bridge.address, fee_recipient, fee_bps=settings.default_fee_bps
        )

    route_tokens = list(tokens.values())
    if support_native:
        route_tokens.append(NATIVE_TOKEN)
    await configure_route(source, destination, sender, receiver, pool, route_tokens, deployer)

    logger.info(
        f"Protocol deployed: sender {sender.address} on {source.name}, "
        f"receiver {receiver.address} and pool {pool.address} on {destination.name}"
    )
    return ProtocolDeployment(
        source=source,
        destination=destination,
        bridge=bridge,
        deployer=deployer,
        sender=sender,
        receiver=receiver,
        pool=pool,
        tokens=tokens,
    )
