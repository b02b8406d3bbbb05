"""Ledger module for per-chain balances, contract state and events."""

from aggzap.ledger.database import close_db, create_engine, create_session_factory, init_db
from aggzap.ledger.models import (
    AuthorizedDepositor,
    AuthorizedSender,
    Base,
    BridgeDeposit,
    ClaimedMessage,
    ContractKind,
    ContractRecord,
    DestinationReceiver,
    EventLog,
    MessageStatus,
    PoolAccount,
    PoolReserve,
    PoolRoute,
    PoolState,
    ReceiverState,
    SenderState,
    SupportedToken,
    TokenAllowance,
    TokenBalance,
    TokenContract,
    TokenMinter,
)
from aggzap.ledger.registry import RegistryRepository
from aggzap.ledger.repository import LedgerRepository

__all__ = [
    # Models
    "Base",
    "TokenContract",
    "TokenBalance",
    "TokenAllowance",
    "TokenMinter",
    "EventLog",
    "ContractRecord",
    "SenderState",
    "ReceiverState",
    "PoolState",
    "SupportedToken",
    "DestinationReceiver",
    "AuthorizedSender",
    "PoolRoute",
    "AuthorizedDepositor",
    "PoolAccount",
    "PoolReserve",
    "BridgeDeposit",
    "ClaimedMessage",
    # Enums
    "ContractKind",
    "MessageStatus",
    # Database
    "create_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    "LedgerRepository",
    "RegistryRepository",
]
