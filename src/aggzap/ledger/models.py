"""SQLAlchemy models for per-chain state.

Every chain owns one database holding its token ledger, contract state,
registries, bridge bookkeeping and event log.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text, TypeDecorator, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Uint256(TypeDecorator):
    """Unsigned 256-bit integer stored losslessly as a decimal string."""

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if value < 0:
            raise ValueError(f"uint256 cannot be negative: {value}")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ContractKind(str, Enum):
    """Kind of code deployed at a contract address."""

    TOKEN = "token"
    ZAP_SENDER = "zap_sender"
    ZAP_RECEIVER = "zap_receiver"
    YIELD_POOL = "yield_pool"


class MessageStatus(str, Enum):
    """Status of a bridge message."""

    PENDING = "pending"        # Locked on the source chain, not yet claimed
    DELIVERED = "delivered"    # Claimed and executed on the destination chain
    REFUNDED = "refunded"      # Destination call failed, released to fallback


# ======================
# Token ledger
# ======================


class TokenContract(Base):
    """ERC20-like token metadata."""

    __tablename__ = "tokens"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    decimals: Mapped[int] = mapped_column(default=18)
    total_supply: Mapped[int] = mapped_column(Uint256, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class TokenBalance(Base):
    """Balance of one holder for one token (native asset uses the zero address)."""

    __tablename__ = "token_balances"
    __table_args__ = (Index("ix_token_balances_token_holder", "token", "holder", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    holder: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)


class TokenAllowance(Base):
    """Amount a spender may pull from an owner."""

    __tablename__ = "token_allowances"
    __table_args__ = (
        Index("ix_token_allowances_token_owner_spender", "token", "owner", "spender", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    owner: Mapped[str] = mapped_column(String(42), nullable=False)
    spender: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)


class TokenMinter(Base):
    """Addresses allowed to mint a token besides its owner."""

    __tablename__ = "token_minters"
    __table_args__ = (Index("ix_token_minters_token_minter", "token", "minter", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    minter: Mapped[str] = mapped_column(String(42), nullable=False)


class EventLog(Base):
    """Event emitted by a contract during a transaction."""

    __tablename__ = "event_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tx_index: Mapped[int] = mapped_column(nullable=False, index=True)
    contract: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def data(self) -> dict:
        return json.loads(self.payload)


# ======================
# Contract state
# ======================


class ContractRecord(Base):
    """A deployed contract and its administrative principal."""

    __tablename__ = "contracts"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    kind: Mapped[ContractKind] = mapped_column(String(20), nullable=False)
    owner: Mapped[str] = mapped_column(String(42), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SenderState(Base):
    """Zap sender configuration and counters."""

    __tablename__ = "sender_state"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    bridge: Mapped[str] = mapped_column(String(42), nullable=False)
    fee_recipient: Mapped[str] = mapped_column(String(42), nullable=False)
    fee_bps: Mapped[int] = mapped_column(nullable=False)
    nonce: Mapped[int] = mapped_column(default=0)
    total_zaps: Mapped[int] = mapped_column(Uint256, nullable=False)
    total_volume: Mapped[int] = mapped_column(Uint256, nullable=False)


class ReceiverState(Base):
    """Zap receiver configuration and counters."""

    __tablename__ = "receiver_state"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    bridge: Mapped[str] = mapped_column(String(42), nullable=False)
    total_deposits: Mapped[int] = mapped_column(Uint256, nullable=False)
    total_volume: Mapped[int] = mapped_column(Uint256, nullable=False)


class PoolState(Base):
    """Yield pool configuration."""

    __tablename__ = "pool_state"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    lp_token: Mapped[str] = mapped_column(String(42), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    apy_bps: Mapped[int] = mapped_column(nullable=False)


# ======================
# Registries
# ======================


class SupportedToken(Base):
    """Token allow-list entry of a sender or pool."""

    __tablename__ = "supported_tokens"
    __table_args__ = (Index("ix_supported_tokens_contract_token", "contract", "token", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    supported: Mapped[bool] = mapped_column(default=False)


class DestinationReceiver(Base):
    """Trusted receiver of a sender on a destination network."""

    __tablename__ = "destination_receivers"
    __table_args__ = (
        Index("ix_destination_receivers_contract_network", "contract", "network_id", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract: Mapped[str] = mapped_column(String(42), nullable=False)
    network_id: Mapped[int] = mapped_column(nullable=False)
    receiver: Mapped[str] = mapped_column(String(42), nullable=False)


class AuthorizedSender(Base):
    """Origin (network, sender) pair trusted by a receiver."""

    __tablename__ = "authorized_senders"
    __table_args__ = (
        Index(
            "ix_authorized_senders_contract_network_sender",
            "contract",
            "network_id",
            "sender",
            unique=True,
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract: Mapped[str] = mapped_column(String(42), nullable=False)
    network_id: Mapped[int] = mapped_column(nullable=False)
    sender: Mapped[str] = mapped_column(String(42), nullable=False)
    authorized: Mapped[bool] = mapped_column(default=False)


class PoolRoute(Base):
    """Pool a receiver deposits a token into."""

    __tablename__ = "pool_routes"
    __table_args__ = (Index("ix_pool_routes_contract_token", "contract", "token", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    pool: Mapped[str] = mapped_column(String(42), nullable=False)


class AuthorizedDepositor(Base):
    """Principal allowed to credit arbitrary users in a pool."""

    __tablename__ = "authorized_depositors"
    __table_args__ = (
        Index("ix_authorized_depositors_contract_depositor", "contract", "depositor", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract: Mapped[str] = mapped_column(String(42), nullable=False)
    depositor: Mapped[str] = mapped_column(String(42), nullable=False)
    authorized: Mapped[bool] = mapped_column(default=False)


class PoolAccount(Base):
    """Principal a user has deposited into a pool, per token."""

    __tablename__ = "pool_accounts"
    __table_args__ = (Index("ix_pool_accounts_pool_user_token", "pool", "user", "token", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    pool: Mapped[str] = mapped_column(String(42), nullable=False)
    user: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    principal: Mapped[int] = mapped_column(Uint256, nullable=False)


class PoolReserve(Base):
    """Accounted pool balance per token (TVL)."""

    __tablename__ = "pool_reserves"
    __table_args__ = (Index("ix_pool_reserves_pool_token", "pool", "token", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    pool: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    balance: Mapped[int] = mapped_column(Uint256, nullable=False)


# ======================
# Bridge bookkeeping
# ======================


class BridgeDeposit(Base):
    """Asset locked on the source chain, waiting to be claimed."""

    __tablename__ = "bridge_deposits"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(66), unique=True, nullable=False, index=True)
    origin_network: Mapped[int] = mapped_column(nullable=False)
    origin_address: Mapped[str] = mapped_column(String(42), nullable=False)
    destination_network: Mapped[int] = mapped_column(nullable=False)
    destination_address: Mapped[str] = mapped_column(String(42), nullable=False)
    fallback_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    call_data: Mapped[str] = mapped_column(Text, default="")  # hex, no 0x
    force_update_global_exit_root: Mapped[bool] = mapped_column(default=True)
    status: Mapped[MessageStatus] = mapped_column(
        String(20), default=MessageStatus.PENDING, nullable=False
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ClaimedMessage(Base):
    """Replay guard on the destination chain."""

    __tablename__ = "claimed_messages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(66), unique=True, nullable=False, index=True)
    origin_network: Mapped[int] = mapped_column(nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
